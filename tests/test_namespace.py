import os
import subprocess
from unittest import mock

import pytest

from simplecontainer import namespace
from simplecontainer.cgroup import read_cgroup_file
from simplecontainer.config import ContainerConfig
from simplecontainer.utils import ContainerError


@pytest.mark.parametrize(
    "nstype, name",
    [
        (namespace.CLONE_NEWPID, "pid"),
        (namespace.CLONE_NEWNS, "mnt"),
        (namespace.CLONE_NEWUTS, "uts"),
        (namespace.CLONE_NEWUSER, "user"),
        (namespace.CLONE_NEWNET, "net"),
        (namespace.CLONE_NEWIPC, "ipc"),
    ],
)
def test_get_namespace_path(nstype, name):
    assert namespace.get_namespace_path(nstype) == name


def test_get_namespace_path_unknown():
    assert namespace.get_namespace_path(12345) is None


def test_namespace_exists_for_own_process():
    assert namespace.namespace_exists(os.getpid(), namespace.CLONE_NEWPID) is True


def test_namespace_exists_invalid_type():
    assert namespace.namespace_exists(os.getpid(), 12345) is False


def test_namespace_exists_missing_process():
    assert namespace.namespace_exists(999999999, namespace.CLONE_NEWNET) is False


def test_join_namespace_invalid_type():
    with pytest.raises(ContainerError):
        namespace.join_namespace(os.getpid(), 12345)


def test_join_namespace_missing_process():
    with pytest.raises(ContainerError):
        namespace.join_namespace(999999999, namespace.CLONE_NEWUTS)


def test_setup_uts_namespace_sets_hostname(tmp_path):
    config = ContainerConfig.new("abcdefg", "box", "/bin/echo", ["/bin/echo"], str(tmp_path))
    with mock.patch("socket.sethostname") as sethostname:
        result = namespace.setup_uts_namespace(config.name)
    assert result is None
    assert sethostname.call_args_list == [mock.call("box")]


def test_setup_uts_namespace_failure():
    with mock.patch("socket.sethostname", side_effect=PermissionError("denied")):
        with pytest.raises(ContainerError):
            namespace.setup_uts_namespace("box")


def test_setup_network_namespace_brings_up_loopback():
    done = subprocess.CompletedProcess([], 0)
    with mock.patch("subprocess.run", return_value=done) as run:
        result = namespace.setup_network_namespace()
    assert result is None
    assert run.call_args.args[0] == ["ip", "link", "set", "lo", "up"]


def test_setup_network_namespace_ignores_missing_tool():
    with mock.patch("subprocess.run", side_effect=FileNotFoundError("ip")) as run:
        result = namespace.setup_network_namespace()
    assert result is None
    assert run.call_count == 1


def test_setup_mount_namespace_command():
    done = subprocess.CompletedProcess([], 0, "", "")
    with mock.patch("subprocess.run", return_value=done) as run:
        result = namespace.setup_mount_namespace()
    assert result is None
    cmd = run.call_args.args[0]
    assert cmd[0] == "mount"
    assert "--make-rprivate" in cmd
    assert cmd[-1] == "/"


def test_setup_pid_namespace_failure():
    failed = subprocess.CompletedProcess([], 32, "", "permission denied")
    with mock.patch("subprocess.run", return_value=failed):
        with pytest.raises(ContainerError):
            namespace.setup_pid_namespace()


def test_setup_user_namespace_writes_maps(tmp_path, monkeypatch):
    for name in ("uid_map", "setgroups", "gid_map"):
        (tmp_path / name).write_text("")
    monkeypatch.setattr(namespace, "PROC_SELF", str(tmp_path))
    assert namespace.setup_user_namespace() is None
    assert read_cgroup_file(str(tmp_path), "uid_map") == f"0 {os.getuid()} 1"
    assert read_cgroup_file(str(tmp_path), "gid_map") == f"0 {os.getgid()} 1"
    assert read_cgroup_file(str(tmp_path), "setgroups") == "deny"


def test_setup_user_namespace_without_setgroups(tmp_path, monkeypatch):
    (tmp_path / "uid_map").write_text("")
    (tmp_path / "gid_map").write_text("")
    monkeypatch.setattr(namespace, "PROC_SELF", str(tmp_path))
    assert namespace.setup_user_namespace() is None
    assert read_cgroup_file(str(tmp_path), "gid_map") == f"0 {os.getgid()} 1"
    assert not (tmp_path / "setgroups").exists()


def test_setup_user_namespace_missing_uid_map(tmp_path, monkeypatch):
    monkeypatch.setattr(namespace, "PROC_SELF", str(tmp_path))
    with pytest.raises(ContainerError):
        namespace.setup_user_namespace()


def test_setup_namespaces_stops_at_first_failure(tmp_path):
    config = ContainerConfig.new("abcdefg", "box", "/bin/echo", ["/bin/echo"], str(tmp_path))
    with mock.patch("socket.sethostname", side_effect=PermissionError("denied")), \
            mock.patch("subprocess.run") as run:
        with pytest.raises(ContainerError, match="UTS"):
            namespace.setup_namespaces(config)
    assert run.call_count == 0