"""Control-group (v2) management for containers."""

import os
import re

from .utils import ContainerError, create_directory, directory_exists, log_message, remove_directory

CGROUP_BASE_PATH = "/sys/fs/cgroup"
SUBTREE_CONTROLLERS = "+memory +cpu +io"

_LEADING_INT = re.compile(r"\s*(\d+)")


def _leading_int(text):
    match = _LEADING_INT.match(text)
    return int(match.group(1)) if match else 0


def write_cgroup_file(cgroup_path, file, value):
    """Write *value* into an existing control file of the cgroup."""
    path = os.path.join(cgroup_path, file)
    data = value.encode()
    try:
        fd = os.open(path, os.O_WRONLY)
    except OSError as exc:
        raise ContainerError(f"cannot open cgroup file {path}: {exc}") from exc
    try:
        written = os.write(fd, data)
    except OSError as exc:
        raise ContainerError(f"cannot write cgroup file {path}: {exc}") from exc
    finally:
        os.close(fd)
    if written != len(data):
        raise ContainerError(f"short write to cgroup file {path}")


def read_cgroup_file(cgroup_path, file):
    """Return the text content of a control file of the cgroup."""
    path = os.path.join(cgroup_path, file)
    try:
        with open(path, encoding="utf-8", errors="replace") as handle:
            return handle.read()
    except OSError as exc:
        raise ContainerError(f"cannot read cgroup file {path}: {exc}") from exc


def parse_cpu_stat(text):
    """Return the ``usage_usec`` value from cpu.stat text, or 0 if absent."""
    for line in text.splitlines():
        if line.startswith("usage_usec "):
            return _leading_int(line[len("usage_usec "):])
    return 0


def parse_io_stat(text):
    """Return total (read_bytes, write_bytes) summed over io.stat lines."""
    read_bytes = write_bytes = 0
    for line in text.splitlines():
        if "rbytes=" in line:
            read_bytes += _leading_int(line[line.index("rbytes=") + len("rbytes="):])
        if "wbytes=" in line:
            write_bytes += _leading_int(line[line.index("wbytes=") + len("wbytes="):])
    return read_bytes, write_bytes


def setup(config, base_path=CGROUP_BASE_PATH):
    """Create the container's cgroup under *base_path* and enable controllers."""
    if not directory_exists(base_path):
        create_directory(base_path, 0o755)
    full_path = os.path.join(base_path, config.id)
    config.cgroup_path = full_path
    create_directory(full_path, 0o755)
    write_cgroup_file(base_path, "cgroup.subtree_control", SUBTREE_CONTROLLERS)
    log_message("cgroup for container %s created at %s", config.id, full_path)


def cleanup(config):
    """Remove the container's cgroup directory."""
    remove_directory(config.cgroup_path)
    log_message("cgroup for container %s cleaned up", config.id)


def set_memory_limit(config, limit_bytes):
    """Set memory.max and record the limit on *config*."""
    write_cgroup_file(config.cgroup_path, "memory.max", str(limit_bytes))
    config.mem_limit_bytes = limit_bytes
    log_message("memory limit for container %s set: %d bytes", config.id, limit_bytes)


def set_cpu_shares(config, shares):
    """Set cpu.weight and record it on *config*."""
    write_cgroup_file(config.cgroup_path, "cpu.weight", str(shares))
    config.cpu_shares = shares
    log_message("CPU shares for container %s set: %d", config.id, shares)


def set_cpu_affinity(config, cpu_id):
    """Pin the container to one CPU; a negative id leaves it unpinned."""
    if cpu_id < 0:
        return
    write_cgroup_file(config.cgroup_path, "cpuset.cpus", str(cpu_id))
    config.cpu_affinity = cpu_id
    log_message("CPU affinity for container %s set: CPU %d", config.id, cpu_id)


def set_io_weight(config, weight):
    """Set io.weight and record it on *config*."""
    write_cgroup_file(config.cgroup_path, "io.weight", str(weight))
    config.io_weight = weight
    log_message("I/O weight for container %s set: %d", config.id, weight)


def add_process(config, pid):
    """Move process *pid* into the container's cgroup."""
    write_cgroup_file(config.cgroup_path, "cgroup.procs", str(pid))
    log_message("process %d added to cgroup of container %s", pid, config.id)


def get_memory_usage(config):
    """Return current memory usage in bytes."""
    return _leading_int(read_cgroup_file(config.cgroup_path, "memory.current"))


def get_cpu_usage(config):
    """Return accumulated CPU time in microseconds."""
    return parse_cpu_stat(read_cgroup_file(config.cgroup_path, "cpu.stat"))


def get_io_usage(config):
    """Return (read_bytes, write_bytes) for the container's cgroup."""
    return parse_io_stat(read_cgroup_file(config.cgroup_path, "io.stat"))