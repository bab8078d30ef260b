from __future__ import annotations

from pathlib import Path

import pytest

from debroot.errors import CommandError, PreconditionViolation
from debroot.lib import fsck as fsck_mod
from debroot.lib import loop as loop_mod
from debroot.lib import mount as mount_mod
from debroot.lib import pkg as pkg_mod
from debroot.lib.command import CmdResult, run_cmd
from debroot.lib.hwdetect import detect_arch, normalize_arch
from debroot.lib.mount import overlay_supported
from debroot.lock import instance_lock


class _Recorder:
    def __init__(self, returncode=0):
        self.returncode = returncode
        self.calls = []

    def __call__(self, argv, *, check=True, env=None, cwd=None, input_text=None):
        argv = [str(a) for a in argv]
        self.calls.append((argv, env))
        return CmdResult(argv=argv, returncode=self.returncode, stdout="", stderr="")


@pytest.fixture
def recorder(monkeypatch):
    def install(module, returncode=0):
        r = _Recorder(returncode)
        monkeypatch.setattr(module, "run_cmd", r)
        return r

    return install


def test_run_cmd_captures_output():
    r = run_cmd(["sh", "-c", "echo out; echo err >&2"])
    assert r.returncode == 0
    assert r.stdout.strip() == "out"
    assert r.stderr.strip() == "err"


def test_run_cmd_failure():
    with pytest.raises(CommandError) as exc:
        run_cmd(["sh", "-c", "exit 3"])
    assert exc.value.returncode == 3
    assert run_cmd(["sh", "-c", "exit 3"], check=False).returncode == 3


def test_run_cmd_missing_tool():
    with pytest.raises(CommandError) as exc:
        run_cmd(["debroot-no-such-tool"])
    assert exc.value.returncode == 127


def test_system_mounter_argv(recorder):
    r = recorder(mount_mod)
    m = mount_mod.SystemMounter()

    m.mount("overlay", Path("/usr"), fstype="overlay", options="lowerdir=/a,upperdir=/b,workdir=/c")
    m.umount("/usr")
    m.remount("/", read_only=True)

    assert [c[0] for c in r.calls] == [
        ["mount", "-t", "overlay", "-o", "lowerdir=/a,upperdir=/b,workdir=/c", "overlay", "/usr"],
        ["umount", "/usr"],
        ["mount", "-o", "remount,ro", "/"],
    ]


def test_overlay_supported(tmp_path):
    fs = tmp_path / "filesystems"
    fs.write_text("nodev\toverlay\n", encoding="utf-8")
    assert overlay_supported(fs)
    fs.write_text("nodev\toverlayfs_not\n\text4\n", encoding="utf-8")
    assert not overlay_supported(fs)
    assert not overlay_supported(tmp_path / "missing")


def test_losetup_argv(recorder):
    r = recorder(loop_mod)
    attacher = loop_mod.LosetupAttacher()

    assert attacher.attach("/data/debian.img", "/dev/loop7") == "/dev/loop7"
    attacher.detach("/dev/loop7")

    assert [c[0] for c in r.calls] == [["losetup", "/dev/loop7", "/data/debian.img"], ["losetup", "-d", "/dev/loop7"]]


@pytest.mark.parametrize("code", [0, 1, 2, 3])
def test_e2fsck_corrected_errors_are_tolerated(recorder, code):
    recorder(fsck_mod, returncode=code)
    fsck_mod.Ext4Tools().check("/data/debian.img")


@pytest.mark.parametrize("code", [4, 8, 12])
def test_e2fsck_uncorrected_errors_fail(recorder, code):
    recorder(fsck_mod, returncode=code)
    with pytest.raises(CommandError):
        fsck_mod.Ext4Tools().check("/data/debian.img")


def test_resize2fs_size_in_kib(recorder):
    r = recorder(fsck_mod)
    tools = fsck_mod.Ext4Tools()
    tools.resize("/img", 256 * 1024**2)
    tools.resize("/img")
    assert [c[0] for c in r.calls] == [["resize2fs", "/img", "262144K"], ["resize2fs", "/img"]]


def test_dpkg_installer(recorder):
    r = recorder(pkg_mod)
    installer = pkg_mod.DpkgInstaller(dpkg=["chroot", "/x", "dpkg"])

    installer.install(Path("/var/cache/apt/archives/bash.deb"))
    installer.update()

    assert r.calls[0] == (
        ["chroot", "/x", "dpkg", "--install", "/var/cache/apt/archives/bash.deb"],
        {"DEBIAN_FRONTEND": "noninteractive"},
    )
    assert r.calls[1][0] == ["apt-get", "update"]


def test_write_sources_list(tmp_path):
    p = pkg_mod.write_sources_list(str(tmp_path), "http://m.example/debian", suite="trixie", component="main contrib")
    assert p.read_text(encoding="utf-8") == "deb http://m.example/debian trixie main contrib\n"


def test_normalize_arch():
    assert normalize_arch("x86_64") == "amd64"
    assert normalize_arch("aarch64") == "arm64"
    assert normalize_arch("armv7l") == "armhf"
    assert normalize_arch("riscv64") == "riscv64"
    assert detect_arch("AARCH64") == "arm64"


def test_instance_lock_is_exclusive(tmp_path):
    path = str(tmp_path / "run/debroot.lock")
    with instance_lock(path):
        with pytest.raises(PreconditionViolation, match="Another debroot command"):
            with instance_lock(path):
                pass
    with instance_lock(path):
        pass
