"""Container lifecycle management: creation, start, stop and inspection."""

import os
import signal
import time

from . import cgroup
from .config import DEFAULT_STATE_DIR, ContainerConfig
from .filesystem import do_chroot, mount_essential_filesystems, setup_container_rootfs
from .monitor import Monitor, get_resource_usage
from .namespace import CONTAINER_NAMESPACES, setup_namespaces
from .utils import (
    ContainerError,
    create_directory,
    generate_unique_id,
    log_error,
    log_message,
)

STOP_TIMEOUT = 10.0
STOP_POLL_INTERVAL = 0.1
_MB = 1024 * 1024
_KB = 1024
_SEPARATOR = "-" * 38


def _exit_code(status):
    code = os.waitstatus_to_exitcode(status)
    return code if code >= 0 else 128 - code


class ContainerManager:
    """Holds a bounded set of containers and drives their lifecycle."""

    def __init__(self, max_containers, state_dir=DEFAULT_STATE_DIR,
                 cgroup_base=cgroup.CGROUP_BASE_PATH, monitor=None):
        self.max_containers = max_containers
        self.state_dir = str(state_dir)
        self.cgroup_base = str(cgroup_base)
        self.monitor = monitor if monitor is not None else Monitor(
            os.path.join(self.state_dir, "logs")
        )
        self.containers = []
        for sub in ("", "rootfs", "overlays", "logs"):
            try:
                create_directory(os.path.join(self.state_dir, sub), 0o755)
            except ContainerError as exc:
                log_error("%s", exc)

    def __len__(self):
        return len(self.containers)

    def __iter__(self):
        return iter(self.containers)

    @property
    def container_count(self):
        """Number of containers created so far."""
        return len(self.containers)

    @property
    def lowerdir(self):
        """Base image directory used as the lower overlay layer."""
        return os.path.join(self.state_dir, "rootfs", "base")

    def find_by_id(self, container_id):
        """Return the container with *container_id*, or None."""
        return next((c for c in self.containers if c.id == container_id), None)

    def _require(self, container_id):
        config = self.find_by_id(container_id)
        if config is None:
            log_error("container with id %s not found", container_id)
            raise ContainerError(f"container with id {container_id} not found")
        return config

    def create(self, name, binary_path, args):
        """Create a stopped container that will run *binary_path* with *args*."""
        if len(self.containers) >= self.max_containers:
            log_error("maximum number of containers reached")
            raise ContainerError("maximum number of containers reached")
        config = ContainerConfig.new(
            generate_unique_id(), name, binary_path, args, self.state_dir
        )
        try:
            setup_container_rootfs(config, self.lowerdir)
        except ContainerError:
            log_error("cannot prepare container filesystem")
            raise
        self.containers.append(config)
        log_message("container created with id %s", config.id)
        return config

    @staticmethod
    def _container_process(config):
        """Body of the container's init process; never returns."""
        try:
            setup_namespaces(config)
            do_chroot(config.rootfs)
            os.chdir("/")
            mount_essential_filesystems()
            os.execv(config.binary_path, config.args)
        except BaseException as exc:  # noqa: BLE001 - the child must never unwind
            log_error("cannot run program %s: %s", config.binary_path, exc)
        finally:
            os._exit(1)

    def _spawn(self, config):
        pid = os.fork()
        if pid != 0:
            return pid
        try:
            os.unshare(CONTAINER_NAMESPACES)
            inner = os.fork()
            if inner == 0:
                self._container_process(config)
            signal.signal(signal.SIGTERM, lambda signum, frame: os.kill(inner, signal.SIGTERM))
            _, status = os.waitpid(inner, 0)
            os._exit(_exit_code(status))
        except BaseException as exc:  # noqa: BLE001 - the child must never unwind
            log_error("cannot create container process: %s", exc)
        os._exit(1)

    def start(self, container_id):
        """Set up the cgroup and launch the container's process."""
        config = self._require(container_id)
        if config.running:
            log_error("container %s is already running", container_id)
            raise ContainerError(f"container {container_id} is already running")
        try:
            cgroup.setup(config, self.cgroup_base)
        except ContainerError:
            log_error("cannot set up cgroup")
            raise

        limits = [
            (cgroup.set_memory_limit, config.mem_limit_bytes),
            (cgroup.set_cpu_shares, config.cpu_shares),
        ]
        if config.cpu_affinity >= 0:
            limits.append((cgroup.set_cpu_affinity, config.cpu_affinity))
        limits.append((cgroup.set_io_weight, config.io_weight))
        for apply, value in limits:
            try:
                apply(config, value)
            except ContainerError as exc:
                log_error("%s", exc)

        try:
            pid = self._spawn(config)
        except OSError as exc:
            log_error("cannot create container process")
            raise ContainerError(f"cannot create container process: {exc}") from exc

        try:
            cgroup.add_process(config, pid)
        except ContainerError:
            log_error("cannot open cgroup.procs")
            try:
                os.kill(pid, signal.SIGKILL)
                os.waitpid(pid, 0)
            except (ProcessLookupError, ChildProcessError):
                pass
            raise

        config.container_pid = pid
        config.running = True
        try:
            self.monitor.watch(config)
        except ContainerError as exc:
            log_error("%s", exc)
        log_message("container %s started with PID %d", container_id, pid)

    def stop(self, container_id):
        """Terminate a running container, escalating to SIGKILL after a timeout."""
        config = self._require(container_id)
        if not config.running:
            log_error("container %s is not running", container_id)
            raise ContainerError(f"container {container_id} is not running")
        pid = config.container_pid
        try:
            os.kill(pid, signal.SIGTERM)
        except OSError as exc:
            log_error("cannot send SIGTERM to container")
            raise ContainerError(f"cannot send SIGTERM to container: {exc}") from exc

        deadline = time.monotonic() + STOP_TIMEOUT
        while time.monotonic() < deadline:
            try:
                reaped, _ = os.waitpid(pid, os.WNOHANG)
            except ChildProcessError:
                break
            if reaped != 0:
                break
            time.sleep(STOP_POLL_INTERVAL)

        try:
            os.kill(pid, 0)
        except OSError:
            pass
        else:
            log_message("sending SIGKILL to container %s", container_id)
            try:
                os.kill(pid, signal.SIGKILL)
                os.waitpid(pid, 0)
            except (ProcessLookupError, ChildProcessError):
                pass

        for action in (self.monitor.stop_container, cgroup.cleanup):
            try:
                action(config)
            except ContainerError as exc:
                log_error("%s", exc)

        config.container_pid = -1
        config.running = False
        log_message("container %s stopped", container_id)

    def status(self, container_id):
        """Return a human-readable status report of one container."""
        config = self._require(container_id)
        lines = [
            f"ID: {config.id}",
            f"Name: {config.name}",
            f"State: {'running' if config.running else 'stopped'}",
        ]
        if config.running:
            lines.append(f"PID: {config.container_pid}")
            try:
                usage = get_resource_usage(config)
            except ContainerError:
                usage = None
            if usage is not None:
                lines += [
                    f"CPU usage: {usage.cpu_usage}%",
                    f"Memory usage: {usage.mem_usage // _MB} MB",
                    f"I/O read: {usage.io_read // _KB} KB",
                    f"I/O write: {usage.io_write // _KB} KB",
                ]
        affinity = str(config.cpu_affinity) if config.cpu_affinity >= 0 else "all cores"
        lines += [
            f"Memory limit: {config.mem_limit_bytes // _MB} MB",
            f"CPU shares: {config.cpu_shares}",
            f"CPU affinity: {affinity}",
            f"I/O weight: {config.io_weight}",
        ]
        return "\n".join(lines)

    def list(self):
        """Return a table of all containers."""
        lines = [
            f"Containers: {len(self.containers)}",
            _SEPARATOR,
            f"{'ID':<10} {'NAME':<20} {'STATE':<10} {'PID':<10}",
            _SEPARATOR,
        ]
        for config in self.containers:
            state = "running" if config.running else "stopped"
            pid = config.container_pid if config.running else -1
            lines.append(f"{config.id:<10} {config.name:<20} {state:<10} {pid:<10}")
        return "\n".join(lines)

    def _update(self, container_id, attribute, value, apply):
        config = self._require(container_id)
        setattr(config, attribute, value)
        if config.running:
            apply(config, value)

    def set_memory_limit(self, container_id, mem_limit_bytes):
        """Change the memory limit, applying it at once if running."""
        self._update(container_id, "mem_limit_bytes", mem_limit_bytes, cgroup.set_memory_limit)

    def set_cpu_shares(self, container_id, cpu_shares):
        """Change the CPU weight, applying it at once if running."""
        self._update(container_id, "cpu_shares", cpu_shares, cgroup.set_cpu_shares)

    def set_cpu_affinity(self, container_id, cpu_id):
        """Change the CPU pinning, applying it at once if running."""
        self._update(container_id, "cpu_affinity", cpu_id, cgroup.set_cpu_affinity)

    def set_io_weight(self, container_id, io_weight):
        """Change the I/O weight, applying it at once if running."""
        self._update(container_id, "io_weight", io_weight, cgroup.set_io_weight)

    def close(self):
        """Stop every running container."""
        for config in self.containers:
            if config.running:
                try:
                    self.stop(config.id)
                except ContainerError as exc:
                    log_error("%s", exc)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False