"""A small Linux container runtime built on namespaces, cgroups v2 and overlayfs."""

__version__ = "0.1.0"