"""Configuration record describing a single container."""

import os
from dataclasses import dataclass, field

DEFAULT_STATE_DIR = "/var/lib/simplecontainer"
DEFAULT_MEM_LIMIT = 512 * 1024 * 1024
DEFAULT_CPU_SHARES = 1024
DEFAULT_IO_WEIGHT = 100
NO_AFFINITY = -1

MAX_NAME_LENGTH = 255
MAX_PATH_LENGTH = 511


@dataclass
class ContainerConfig:
    """Identity, paths, resource limits and run state of one container."""

    id: str
    name: str
    rootfs: str
    overlay_workdir: str
    binary_path: str
    args: list[str] = field(default_factory=list)
    mem_limit_bytes: int = DEFAULT_MEM_LIMIT
    cpu_shares: int = DEFAULT_CPU_SHARES
    cpu_affinity: int = NO_AFFINITY
    io_weight: int = DEFAULT_IO_WEIGHT
    container_pid: int = -1
    running: bool = False
    cgroup_path: str = ""

    @classmethod
    def new(cls, container_id, name, binary_path, args, state_dir=DEFAULT_STATE_DIR):
        """Build a fresh, stopped configuration with default limits."""
        return cls(
            id=container_id,
            name=name[:MAX_NAME_LENGTH],
            rootfs=os.path.join(state_dir, "rootfs", container_id),
            overlay_workdir=os.path.join(state_dir, "overlays", container_id),
            binary_path=binary_path[:MAX_PATH_LENGTH],
            args=list(args),
            cgroup_path=f"/simplecontainer/{container_id}",
        )

    @property
    def argc(self):
        """Number of arguments passed to the binary."""
        return len(self.args)