import os
import subprocess
from unittest import mock

import pytest

from simplecontainer import filesystem
from simplecontainer.config import ContainerConfig
from simplecontainer.utils import ContainerError, directory_exists


def _ok(*args, **kwargs):
    return subprocess.CompletedProcess(args, 0, "", "")


@pytest.fixture
def config(tmp_path):
    return ContainerConfig.new("abcdefg", "box", "/bin/echo", ["/bin/echo"], str(tmp_path))


def test_overlay_mount_options_format():
    options = filesystem.overlay_mount_options("/lower", "/up", "/work")
    assert options == "lowerdir=/lower,upperdir=/up,workdir=/work"


def test_overlay_mount_options_too_long():
    with pytest.raises(ContainerError):
        filesystem.overlay_mount_options("/" + "l" * 4096, "/up", "/work")


def test_prepare_container_directories(config):
    assert filesystem.prepare_container_directories(config) is None
    assert directory_exists(config.overlay_workdir) is True
    made = [directory_exists(os.path.join(config.rootfs, name)) for name in ("proc", "sys", "dev", "tmp")]
    assert made == [True, True, True, True]


def test_setup_overlayfs_mounts_overlay(config):
    with mock.patch("subprocess.run", side_effect=_ok) as run:
        filesystem.setup_overlayfs(config, "/lower")
    upper = os.path.join(config.overlay_workdir, "upper")
    work = os.path.join(config.overlay_workdir, "work")
    assert os.path.isdir(upper)
    assert os.path.isdir(work)
    cmd = run.call_args.args[0]
    assert cmd[:3] == ["mount", "-t", "overlay"]
    assert filesystem.overlay_mount_options("/lower", upper, work) in cmd
    assert cmd[-1] == config.rootfs


def test_setup_overlayfs_mount_failure(config):
    failed = subprocess.CompletedProcess([], 32, "", "permission denied")
    with mock.patch("subprocess.run", return_value=failed):
        with pytest.raises(ContainerError):
            filesystem.setup_overlayfs(config, "/lower")


def test_setup_container_rootfs(config):
    with mock.patch("subprocess.run", side_effect=_ok) as run:
        result = filesystem.setup_container_rootfs(config, "/lower")
    assert result is None
    assert run.call_count == 1
    assert run.call_args.args[0][-1] == config.rootfs
    assert directory_exists(os.path.join(config.rootfs, "tmp")) is True
    assert directory_exists(os.path.join(config.overlay_workdir, "upper")) is True


def test_cleanup_container_rootfs_removes_directories(config):
    filesystem.prepare_container_directories(config)
    with mock.patch("subprocess.run", side_effect=_ok) as run:
        filesystem.cleanup_container_rootfs(config)
    assert run.call_args.args[0] == ["umount", config.rootfs]
    assert not os.path.exists(config.rootfs)
    assert not os.path.exists(config.overlay_workdir)


def test_cleanup_container_rootfs_unmount_failure(config):
    filesystem.prepare_container_directories(config)
    failed = subprocess.CompletedProcess([], 1, "", "not mounted")
    with mock.patch("subprocess.run", return_value=failed):
        with pytest.raises(ContainerError):
            filesystem.cleanup_container_rootfs(config)
    assert os.path.isdir(config.rootfs)


def test_mount_essential_filesystems_order():
    with mock.patch("subprocess.run", side_effect=_ok) as run:
        result = filesystem.mount_essential_filesystems()
    assert result is None
    targets = [call.args[0][-1] for call in run.call_args_list]
    assert targets == ["/proc", "/sys", "/dev", "/tmp"]


def test_do_chroot_missing_path(tmp_path):
    with pytest.raises(ContainerError):
        filesystem.do_chroot(str(tmp_path / "missing"))


def test_load_container_image_missing(tmp_path):
    with pytest.raises(ContainerError):
        filesystem.load_container_image(str(tmp_path / "nope.tar"), str(tmp_path / "images"))
    assert not (tmp_path / "images").exists()


def test_load_container_image_creates_images_dir(tmp_path):
    image = tmp_path / "image.tar"
    image.write_bytes(b"data")
    filesystem.load_container_image(str(image), str(tmp_path / "images"))
    assert (tmp_path / "images").is_dir()