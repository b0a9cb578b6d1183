# simplecontainer

A small container runtime for Linux. It runs a program inside new PID,
mount, UTS, user, network and IPC namespaces, on an overlayfs root
filesystem. A cgroup v2 group sets the memory limit, CPU weight, CPU
affinity and I/O weight. Each container's lifecycle events go to its own
log file.

## Requirements

- Linux with cgroup v2 mounted at `/sys/fs/cgroup`
- overlayfs support
- the `mount`, `umount` and `ip` commands on the `PATH`
- root privileges (without them the command prints an error and exits with status 1)
- Python 3.12 or later

Runtime state lives under `/var/lib/simplecontainer`:

- `rootfs/base` is the lower overlay layer
- `rootfs/<id>` is the per-container root
- `overlays/<id>` holds the upper and work directories
- `logs/<id>.log` holds the event logs

## Installation

```
pip install .
```

## Command line

```
simplecontainer <command> [options] [arguments]
```

| Command          | Meaning                                        |
|------------------|------------------------------------------------|
| `run <binary>`   | create a container and run a binary in it      |
| `list`           | print a table of the known containers          |
| `stop <id>`      | send SIGTERM, then SIGKILL after 10 seconds    |
| `start <id>`     | start a stopped container                      |
| `status <id>`    | print a container's state, limits and usage    |
| `help`           | print the help text                            |

Options for `run`:

| Option                  | Meaning                                                     |
|-------------------------|-------------------------------------------------------------|
| `--name, -n <name>`     | container name, also used as its hostname (default `container`) |
| `--memory, -m <size>`   | memory limit; `K`, `M` and `G` suffixes are powers of 1024 (default 512M) |
| `--cpu, -c <n>`         | pin the container to one CPU                                |
| `--io-weight, -i <w>`   | I/O weight (default 100)                                    |
| `--detach, -d`          | do not wait for the container to exit                       |
| `--help, -h`            | print the help text                                         |

Options stop at the first argument that is not an option. That argument
is the binary, and it and everything after it form the program's
argument list. Long options can be abbreviated when the abbreviation is
unambiguous.

Examples:

```
sudo simplecontainer run --name demo1 --memory 100M /bin/echo hello
sudo simplecontainer run --name demo2 --cpu 0 /bin/sh -c 'nproc'
sudo simplecontainer list
```

Without `--detach`, `run` waits for the container. It then prints the
exit code or the signal that ended it.

## Library use

```python
from simplecontainer.container import ContainerManager

with ContainerManager(max_containers=10) as manager:
    config = manager.create("demo", "/bin/echo", ["/bin/echo", "hello"])
    manager.set_memory_limit(config.id, 100 * 1024 * 1024)
    manager.start(config.id)
    print(manager.status(config.id))
```

On leaving the `with` block, every running container is stopped.
Failures raise `simplecontainer.utils.ContainerError`.

Modules:

- `simplecontainer.container`: `ContainerManager` holds up to
  `max_containers` containers. It has `create`, `start`, `stop`, `status`
  and `list`, which return report text, plus `find_by_id` and setters for
  the memory limit, CPU shares, CPU affinity and I/O weight. A setter on a
  running container applies the new value to the cgroup at once.
- `simplecontainer.config`: `ContainerConfig`, the dataclass for one
  container's identity, paths, limits and run state.
- `simplecontainer.cgroup`: setup and cleanup of a container's cgroup,
  limit setters, `add_process`, and usage readers. `parse_cpu_stat` and
  `parse_io_stat` parse `cpu.stat` and `io.stat` text.
- `simplecontainer.filesystem`: creates the container directories, mounts
  the overlay root (`overlay_mount_options` builds its option string), and
  provides `do_chroot` and `mount_essential_filesystems`.
- `simplecontainer.namespace`: setup for each namespace, `join_namespace`,
  `namespace_exists` and `get_namespace_path`.
- `simplecontainer.monitor`: `Monitor` writes timestamped `SYSCALL`,
  `NAMESPACE` and `CGROUP` events to the log files.
  `get_resource_usage` returns a `ResourceUsage` read from the cgroup.
- `simplecontainer.ipc`: `IpcRegistry` holds up to 32 named shared-memory
  channels owned by the current process. `send_message` stores up to
  4096 bytes. `receive_message` returns the stored bytes, or raises if
  they exceed the given buffer size.
- `simplecontainer.utils`: directory and file helpers, identifier
  generation and timestamped logging.

## What it does not do

- Containers are kept in memory only. Each `simplecontainer` invocation
  starts with an empty set, so `list`, `stop`, `start` and `status` only
  see containers created in the same process. From the command line,
  that means none.
- It does not fetch or unpack images. `filesystem.load_container_image`
  only checks that the image path exists and creates the images
  directory. The lower layer in `rootfs/base` must be filled by hand.
- Monitoring writes fixed lifecycle entries to the log files. It does not
  trace system calls or kernel events.
- The IPC channels are not reachable from the command line.
- No container networking beyond bringing up the loopback interface.