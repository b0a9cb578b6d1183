"""Command-line interface: argument parsing and command dispatch."""

import os
import re
import sys
from collections import deque
from dataclasses import dataclass, field

from .config import DEFAULT_IO_WEIGHT, DEFAULT_MEM_LIMIT, NO_AFFINITY
from .container import ContainerManager
from .monitor import Monitor
from .utils import ContainerError, has_root_privileges, log_error

CMD_RUN = "run"
CMD_LIST = "list"
CMD_STOP = "stop"
CMD_START = "start"
CMD_STATUS = "status"
CMD_HELP = "help"

MAX_CONTAINERS = 100
DEFAULT_NAME = "container"

_MEMORY_SUFFIXES = {"k": 1024, "m": 1024 * 1024, "g": 1024 * 1024 * 1024}
_MEMORY_RE = re.compile(r"\s*\+?(\d*)(.?)", re.DOTALL)
_INT_RE = re.compile(r"\s*([+-]?\d+)")

_LONG_OPTIONS = {
    "name": "n",
    "memory": "m",
    "cpu": "c",
    "io-weight": "i",
    "detach": "d",
    "help": "h",
}
_SHORT_OPTIONS = frozenset("nmcidh")
_TAKES_VALUE = frozenset("nmci")

HELP_TEXT = """\
Usage: simplecontainer <command> [options] [arguments]

Commands:
  run <binary>    run a binary inside a container
  list            list containers
  stop <id>       stop a container
  start <id>      start a container again
  status <id>     show the status of a container
  help            show this help message

Options for run:
  --name, -n <name>        container name
  --memory, -m <amount>    memory limit (example: 100M)
  --cpu, -c <number>       pin the container to one CPU
  --io-weight, -i <weight> I/O weight (1-100)
  --detach, -d             run in the background
  --help, -h               show this help message"""


@dataclass
class RunOptions:
    """Settings collected from the arguments of the ``run`` command."""

    name: str = DEFAULT_NAME
    memory_limit: int = DEFAULT_MEM_LIMIT
    cpu_affinity: int = NO_AFFINITY
    io_weight: int = DEFAULT_IO_WEIGHT
    detach: bool = False
    show_help: bool = False
    binary_path: str | None = None
    args: list[str] = field(default_factory=list)


def _atoi(text):
    match = _INT_RE.match(text)
    return int(match.group(1)) if match else 0


def parse_memory(value):
    """Convert a size such as ``100M`` to bytes; K, M and G suffixes are binary."""
    match = _MEMORY_RE.match(value)
    digits, suffix = match.group(1), match.group(2)
    number = int(digits) if digits else 0
    return number * _MEMORY_SUFFIXES.get(suffix.lower(), 1)


def _resolve_long(name):
    if name in _LONG_OPTIONS:
        return _LONG_OPTIONS[name]
    matches = [option for option in _LONG_OPTIONS if option.startswith(name)]
    if len(matches) == 1:
        return _LONG_OPTIONS[matches[0]]
    if not matches:
        raise ValueError(f"unrecognized option '--{name}'")
    raise ValueError(f"option '--{name}' is ambiguous")


def _apply(options, flag, value):
    """Record one option; return True when parsing should stop for help."""
    if flag == "n":
        options.name = value
    elif flag == "m":
        options.memory_limit = parse_memory(value)
    elif flag == "c":
        options.cpu_affinity = _atoi(value)
    elif flag == "i":
        options.io_weight = _atoi(value)
    elif flag == "d":
        options.detach = True
    elif flag == "h":
        options.show_help = True
        return True
    return False


def parse_run_args(argv):
    """Parse the arguments following ``run``; options end at the binary path."""
    options = RunOptions()
    pending = deque(argv)
    while pending:
        arg = pending[0]
        if arg == "--":
            pending.popleft()
            break
        if not arg.startswith("-") or arg == "-":
            break
        pending.popleft()
        if arg.startswith("--"):
            name, eq, inline = arg[2:].partition("=")
            flag = _resolve_long(name)
            value = None
            if flag in _TAKES_VALUE:
                if eq:
                    value = inline
                elif pending:
                    value = pending.popleft()
                else:
                    raise ValueError(f"option '--{name}' requires an argument")
            elif eq:
                raise ValueError(f"option '--{name}' doesn't allow an argument")
            if _apply(options, flag, value):
                return options
            continue
        chars = arg[1:]
        for pos, flag in enumerate(chars):
            if flag not in _SHORT_OPTIONS:
                raise ValueError(f"invalid option -- '{flag}'")
            if flag in _TAKES_VALUE:
                value = chars[pos + 1:]
                if not value:
                    if not pending:
                        raise ValueError(f"option requires an argument -- '{flag}'")
                    value = pending.popleft()
                if _apply(options, flag, value):
                    return options
                break
            if _apply(options, flag, None):
                return options
    if not pending:
        raise ValueError("binary path not specified")
    options.binary_path = pending[0]
    options.args = list(pending)
    return options


def print_help():
    """Print usage information to standard output."""
    print(HELP_TEXT)


def _wait_for(pid):
    try:
        _, status = os.waitpid(pid, 0)
    except ChildProcessError:
        return
    if os.WIFEXITED(status):
        print(f"container finished with exit code {os.WEXITSTATUS(status)}")
    elif os.WIFSIGNALED(status):
        print(f"container terminated by signal {os.WTERMSIG(status)}")


def run(manager, argv):
    """Create and start a container from the ``run`` arguments; return an exit code."""
    try:
        options = parse_run_args(argv)
    except ValueError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    if options.show_help:
        print_help()
        return 0

    try:
        config = manager.create(options.name, options.binary_path, options.args)
    except ContainerError:
        print("error creating container", file=sys.stderr)
        return 1

    for setter, value in (
        (manager.set_memory_limit, options.memory_limit),
        (manager.set_cpu_affinity, options.cpu_affinity),
        (manager.set_io_weight, options.io_weight),
    ):
        try:
            setter(config.id, value)
        except ContainerError as exc:
            log_error("%s", exc)

    print("Starting container...")
    try:
        manager.start(config.id)
    except ContainerError:
        print("error starting container", file=sys.stderr)
        return 1

    if not options.detach:
        _wait_for(config.container_pid)
    return 0


def list_containers(manager):
    """Print the table of containers."""
    print(manager.list())
    return 0


def stop(manager, container_id):
    """Stop a container; return an exit code."""
    try:
        manager.stop(container_id)
    except ContainerError:
        return 1
    return 0


def start(manager, container_id):
    """Start a container; return an exit code."""
    try:
        manager.start(container_id)
    except ContainerError:
        return 1
    return 0


def status(manager, container_id):
    """Print the status of a container; return an exit code."""
    try:
        report = manager.status(container_id)
    except ContainerError:
        return 1
    print(report)
    return 0


_ID_COMMANDS = {CMD_STOP: stop, CMD_START: start, CMD_STATUS: status}


def process_command(manager, argv):
    """Dispatch the command in *argv* (without the program name); return an exit code."""
    if not argv:
        print_help()
        return 1
    command, rest = argv[0], argv[1:]
    if command == CMD_RUN:
        return run(manager, rest)
    if command == CMD_LIST:
        return list_containers(manager)
    if command in _ID_COMMANDS:
        if not rest:
            print("error: container id not specified", file=sys.stderr)
            return 1
        return _ID_COMMANDS[command](manager, rest[0])
    if command == CMD_HELP:
        print_help()
        return 0
    print(f"error: unknown command '{command}'", file=sys.stderr)
    print_help()
    return 1


def main(argv=None):
    """Entry point of the ``simplecontainer`` command."""
    if argv is None:
        argv = sys.argv[1:]
    if not has_root_privileges():
        print("this program requires root privileges", file=sys.stderr)
        return 1

    monitor = Monitor()
    try:
        monitor.init()
    except ContainerError:
        print("error initializing eBPF monitoring", file=sys.stderr)
        return 1

    try:
        with ContainerManager(MAX_CONTAINERS, monitor=monitor) as manager:
            return process_command(manager, list(argv))
    finally:
        monitor.cleanup()


if __name__ == "__main__":
    sys.exit(main())