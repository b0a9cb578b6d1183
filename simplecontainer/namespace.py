"""Linux namespace setup and inspection for container processes."""

import os
import socket
import subprocess

from .utils import ContainerError, log_error

CLONE_NEWNS = getattr(os, "CLONE_NEWNS", 0x00020000)
CLONE_NEWUTS = getattr(os, "CLONE_NEWUTS", 0x04000000)
CLONE_NEWIPC = getattr(os, "CLONE_NEWIPC", 0x08000000)
CLONE_NEWUSER = getattr(os, "CLONE_NEWUSER", 0x10000000)
CLONE_NEWPID = getattr(os, "CLONE_NEWPID", 0x20000000)
CLONE_NEWNET = getattr(os, "CLONE_NEWNET", 0x40000000)

CONTAINER_NAMESPACES = (
    CLONE_NEWPID | CLONE_NEWNS | CLONE_NEWUTS | CLONE_NEWUSER | CLONE_NEWNET | CLONE_NEWIPC
)

PROC_SELF = "/proc/self"

_NAMESPACE_NAMES = {
    CLONE_NEWPID: "pid",
    CLONE_NEWNS: "mnt",
    CLONE_NEWUTS: "uts",
    CLONE_NEWUSER: "user",
    CLONE_NEWNET: "net",
    CLONE_NEWIPC: "ipc",
}


def _run(cmd, what):
    try:
        result = subprocess.run(cmd, capture_output=True, text=True)
    except OSError as exc:
        raise ContainerError(f"{what}: {exc}") from exc
    if result.returncode != 0:
        raise ContainerError(f"{what}: {result.stderr.strip()}")


def _write_proc_file(name, text):
    path = os.path.join(PROC_SELF, name)
    data = text.encode()
    try:
        fd = os.open(path, os.O_WRONLY)
    except OSError as exc:
        raise ContainerError(f"cannot open {path}: {exc}") from exc
    try:
        written = os.write(fd, data)
    except OSError as exc:
        raise ContainerError(f"cannot write {path}: {exc}") from exc
    finally:
        os.close(fd)
    if written != len(data):
        raise ContainerError(f"short write to {path}")


def setup_user_namespace():
    """Map the current user and group to root inside the user namespace."""
    _write_proc_file("uid_map", f"0 {os.getuid()} 1")
    try:
        _write_proc_file("setgroups", "deny")
    except ContainerError:
        pass
    _write_proc_file("gid_map", f"0 {os.getgid()} 1")


def setup_pid_namespace():
    """Mount a fresh /proc for the new PID namespace."""
    _run(["mount", "-t", "proc", "proc", "/proc"], "cannot mount /proc")


def setup_mount_namespace():
    """Make every mount below / private to this namespace."""
    _run(["mount", "--make-rprivate", "/"], "cannot make / private")


def setup_uts_namespace(hostname):
    """Set the hostname inside the UTS namespace."""
    try:
        socket.sethostname(hostname)
    except OSError as exc:
        raise ContainerError(f"cannot set hostname: {exc}") from exc


def setup_network_namespace():
    """Bring up the loopback interface; failures are ignored."""
    try:
        subprocess.run(["ip", "link", "set", "lo", "up"])
    except OSError:
        pass


def setup_namespaces(config):
    """Configure UTS, mount, PID, user and network namespaces in order."""
    steps = (
        ("UTS", lambda: setup_uts_namespace(config.name)),
        ("mount", setup_mount_namespace),
        ("PID", setup_pid_namespace),
        ("user", setup_user_namespace),
        ("network", setup_network_namespace),
    )
    for label, step in steps:
        try:
            step()
        except ContainerError as exc:
            log_error("cannot set up %s namespace", label)
            raise ContainerError(f"cannot set up {label} namespace: {exc}") from exc


def get_namespace_path(nstype):
    """Return the /proc/<pid>/ns entry name for *nstype*, or None if unknown."""
    return _NAMESPACE_NAMES.get(nstype)


def _namespace_file(pid, nstype):
    name = get_namespace_path(nstype)
    if name is None:
        return None
    return f"/proc/{pid}/ns/{name}"


def join_namespace(pid, nstype):
    """Move the calling process into the *nstype* namespace of process *pid*."""
    path = _namespace_file(pid, nstype)
    if path is None:
        raise ContainerError(f"invalid namespace type: {nstype}")
    try:
        fd = os.open(path, os.O_RDONLY)
    except OSError as exc:
        raise ContainerError(f"cannot open namespace {path}: {exc}") from exc
    try:
        os.setns(fd, nstype)
    except OSError as exc:
        raise ContainerError(f"cannot join namespace {path}: {exc}") from exc
    finally:
        os.close(fd)


def namespace_exists(pid, nstype):
    """Return True if process *pid* exposes a namespace of type *nstype*."""
    path = _namespace_file(pid, nstype)
    return path is not None and os.access(path, os.F_OK)