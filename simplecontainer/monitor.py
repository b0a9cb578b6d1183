"""Per-container event logging and resource usage reporting."""

import os
import time
from dataclasses import dataclass
from enum import IntEnum

from . import cgroup
from .config import DEFAULT_STATE_DIR
from .utils import ContainerError, create_directory, directory_exists, log_message

LOG_BASE_PATH = os.path.join(DEFAULT_STATE_DIR, "logs")


class EventType(IntEnum):
    SYSCALL = 1
    NAMESPACE = 2
    CGROUP = 3


def _event_label(event_type):
    try:
        return EventType(event_type).name
    except ValueError:
        return "UNKNOWN"


@dataclass(frozen=True)
class ResourceUsage:
    cpu_usage: int
    mem_usage: int
    io_read: int
    io_write: int


class Monitor:
    """Writes container lifecycle events to one log file per container."""

    def __init__(self, log_dir=LOG_BASE_PATH):
        self.log_dir = str(log_dir)

    def init(self):
        """Make sure the log directory exists."""
        if not directory_exists(self.log_dir):
            create_directory(self.log_dir, 0o755)
        log_message("eBPF monitoring initialized")

    def cleanup(self):
        """Release monitoring resources."""
        log_message("eBPF monitoring cleaned up")

    def log_path(self, container_id):
        return os.path.join(self.log_dir, f"{container_id}.log")

    def log_event(self, container_id, event_type, message):
        """Append a timestamped event line to the container's log."""
        stamp = time.strftime("[%Y-%m-%d %H:%M:%S]", time.localtime())
        path = self.log_path(container_id)
        try:
            with open(path, "a", encoding="utf-8") as handle:
                handle.write(f"{stamp} {_event_label(event_type)}: {message}\n")
        except OSError as exc:
            raise ContainerError(f"cannot open log file {path}: {exc}") from exc

    def watch(self, config):
        """Record the start of a container and the settings it runs with."""
        cid = config.id
        self.log_event(cid, EventType.CGROUP, f"container started with PID {config.container_pid}")
        self.log_event(cid, EventType.NAMESPACE, "created PID namespace")
        self.log_event(cid, EventType.NAMESPACE, f"created UTS namespace (hostname: {config.name})")
        self.log_event(cid, EventType.NAMESPACE, "created mount namespace")
        self.log_event(cid, EventType.NAMESPACE, "created user namespace")
        self.log_event(cid, EventType.NAMESPACE, "created network namespace")
        self.log_event(cid, EventType.NAMESPACE, "created IPC namespace")
        self.log_event(cid, EventType.CGROUP, f"memory limit set to {config.mem_limit_bytes} bytes")
        self.log_event(cid, EventType.CGROUP, f"CPU shares set to {config.cpu_shares}")
        if config.cpu_affinity >= 0:
            self.log_event(cid, EventType.CGROUP, f"CPU affinity set to core {config.cpu_affinity}")
        self.log_event(cid, EventType.CGROUP, f"I/O weight set to {config.io_weight}")
        self.log_event(
            cid,
            EventType.SYSCALL,
            f'execve (pid={config.container_pid}, binary="{config.binary_path}")',
        )

    def stop_container(self, config):
        """Record that a container has stopped."""
        self.log_event(config.id, EventType.CGROUP, "container stopped")


def get_resource_usage(config):
    """Read CPU, memory and I/O usage from the container's cgroup."""
    mem_usage = cgroup.get_memory_usage(config)
    cpu_usage = cgroup.get_cpu_usage(config)
    io_read, io_write = cgroup.get_io_usage(config)
    return ResourceUsage(cpu_usage=cpu_usage, mem_usage=mem_usage, io_read=io_read, io_write=io_write)