"""Filesystem helpers, identifiers and logging shared by the runtime."""

import os
import secrets
import shutil
import string
import sys
import time

ID_CHARSET = string.ascii_lowercase + string.digits
DEFAULT_ID_LENGTH = 63
MIN_ID_LENGTH = 7


class ContainerError(Exception):
    """Raised when a container operation cannot be completed."""


def generate_unique_id(length=DEFAULT_ID_LENGTH):
    """Return a random identifier of lower-case letters and digits."""
    if length < MIN_ID_LENGTH:
        raise ValueError(f"identifier length must be at least {MIN_ID_LENGTH}")
    return "".join(secrets.choice(ID_CHARSET) for _ in range(length))


def directory_exists(path):
    """Return True if *path* names an existing directory."""
    return os.path.isdir(path)


def create_directory(path, mode=0o755):
    """Create *path* and any missing parents; existing directories are fine."""
    if directory_exists(path):
        return
    try:
        os.makedirs(path, mode, exist_ok=True)
    except OSError as exc:
        raise ContainerError(f"cannot create directory {path}: {exc}") from exc


def remove_directory(path):
    """Remove the directory *path* together with everything inside it."""
    if os.path.islink(path) or not os.path.isdir(path):
        raise ContainerError(f"not a directory: {path}")
    try:
        shutil.rmtree(path)
    except OSError as exc:
        raise ContainerError(f"cannot remove directory {path}: {exc}") from exc


def _timestamp():
    return time.strftime("[%Y-%m-%d %H:%M:%S]", time.localtime())


def _format(fmt, args):
    return fmt % args if args else fmt


def log_message(fmt, *args):
    """Print an informational line with a timestamp to standard output."""
    print(f"{_timestamp()} INFO: {_format(fmt, args)}", file=sys.stdout)


def log_error(fmt, *args):
    """Print an error line with a timestamp to standard error."""
    print(f"{_timestamp()} ERROR: {_format(fmt, args)}", file=sys.stderr)


def has_root_privileges():
    """Return True when running with an effective user id of 0."""
    return os.geteuid() == 0


def copy_file(source, destination):
    """Copy the contents of *source* to *destination* (created with mode 0644)."""
    try:
        with open(source, "rb") as src:
            fd = os.open(destination, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o644)
            with os.fdopen(fd, "wb") as dst:
                shutil.copyfileobj(src, dst)
    except OSError as exc:
        raise ContainerError(f"cannot copy {source} to {destination}: {exc}") from exc


def remove_file(path):
    """Delete the file *path*."""
    try:
        os.unlink(path)
    except OSError as exc:
        raise ContainerError(f"cannot remove file {path}: {exc}") from exc