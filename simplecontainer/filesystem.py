"""Root filesystem preparation for containers: directories, overlayfs and mounts."""

import os
import subprocess

from .config import DEFAULT_STATE_DIR
from .utils import ContainerError, create_directory, log_error, log_message, remove_directory

BASE_LOWERDIR = os.path.join(DEFAULT_STATE_DIR, "rootfs", "base")
IMAGES_DIR = os.path.join(DEFAULT_STATE_DIR, "images")

PATH_LIMIT = 2048
MOUNT_OPTIONS_LIMIT = 4096

ESSENTIAL_MOUNTS = (
    ("proc", "/proc", "proc"),
    ("sysfs", "/sys", "sysfs"),
    ("devtmpfs", "/dev", "devtmpfs"),
    ("tmpfs", "/tmp", "tmpfs"),
)

_ROOTFS_SUBDIRS = ("proc", "sys", "dev", "tmp")


def _run(cmd, what):
    try:
        result = subprocess.run(cmd, capture_output=True, text=True)
    except OSError as exc:
        raise ContainerError(f"{what}: {exc}") from exc
    if result.returncode != 0:
        raise ContainerError(f"{what}: {result.stderr.strip()}")


def _mount(source, target, fstype, options=None):
    cmd = ["mount", "-t", fstype]
    if options:
        cmd += ["-o", options]
    cmd += [source, target]
    _run(cmd, f"cannot mount {fstype} on {target}")


def _check_length(path, what):
    if len(path) >= PATH_LIMIT:
        raise ContainerError(f"{what} path too long: {path}")


def overlay_mount_options(lowerdir, upperdir, workdir):
    """Return the overlayfs option string for the three layer directories."""
    options = f"lowerdir={lowerdir},upperdir={upperdir},workdir={workdir}"
    if len(options) >= MOUNT_OPTIONS_LIMIT:
        raise ContainerError("overlayfs paths are too long")
    return options


def prepare_container_directories(config):
    """Create the root, overlay work directory and essential mount points."""
    create_directory(config.rootfs, 0o755)
    create_directory(config.overlay_workdir, 0o755)
    subdirs = [os.path.join(config.rootfs, name) for name in _ROOTFS_SUBDIRS]
    for path in subdirs:
        _check_length(path, "rootfs")
    for path in subdirs:
        create_directory(path, 0o755)


def setup_overlayfs(config, lowerdir=BASE_LOWERDIR):
    """Mount an overlay of *lowerdir* with a private upper layer on the rootfs."""
    upperdir = os.path.join(config.overlay_workdir, "upper")
    workdir = os.path.join(config.overlay_workdir, "work")
    _check_length(upperdir, "overlay_workdir")
    _check_length(workdir, "overlay_workdir")
    create_directory(upperdir, 0o755)
    create_directory(workdir, 0o755)
    options = overlay_mount_options(lowerdir, upperdir, workdir)
    _mount("overlay", config.rootfs, "overlay", options)
    log_message("overlayfs set up successfully")


def setup_container_rootfs(config, lowerdir=BASE_LOWERDIR):
    """Prepare directories and mount the overlay root filesystem."""
    try:
        prepare_container_directories(config)
    except ContainerError:
        log_error("cannot create container directories")
        raise
    try:
        setup_overlayfs(config, lowerdir)
    except ContainerError:
        log_error("cannot set up overlayfs")
        raise


def cleanup_container_rootfs(config):
    """Unmount the overlay and remove the container's directories."""
    _run(["umount", config.rootfs], "cannot unmount overlayfs")
    remove_directory(config.rootfs)
    remove_directory(config.overlay_workdir)


def do_chroot(path):
    """Change the root directory to *path* and move into it."""
    try:
        os.chroot(path)
    except OSError as exc:
        raise ContainerError(f"cannot chroot to {path}: {exc}") from exc
    try:
        os.chdir("/")
    except OSError as exc:
        raise ContainerError(f"cannot change directory to /: {exc}") from exc


def mount_essential_filesystems():
    """Mount /proc, /sys, /dev and /tmp inside the container root."""
    for source, target, fstype in ESSENTIAL_MOUNTS:
        _mount(source, target, fstype)
    log_message("essential filesystems mounted successfully")


def load_container_image(image_path, images_dir=IMAGES_DIR):
    """Check that an image exists and make sure the images directory is there."""
    try:
        os.stat(image_path)
    except OSError as exc:
        raise ContainerError(f"container image not found: {image_path}") from exc
    create_directory(images_dir, 0o755)
    log_message("image %s loaded", image_path)