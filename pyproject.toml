[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "simplecontainer"
version = "0.1.0"
description = "A small Linux container runtime built on namespaces, cgroups v2 and overlayfs"
requires-python = ">=3.12"
dependencies = []
keywords = ["container", "cgroups", "namespaces", "overlayfs", "linux"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
simplecontainer = "simplecontainer.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["simplecontainer"]

[tool.pytest.ini_options]
addopts = "-ra"
