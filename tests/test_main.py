from __future__ import annotations

import json
import logging

import pytest

from debroot.logging_utils import CONSOLE_ONLY, configure_logging
from debroot.main import COMMANDS, main


@pytest.fixture
def config_file(tmp_path):
    p = tmp_path / "debroot.yaml"
    p.write_text(
        f"lock_path: {tmp_path / 'run/debroot.lock'}\n"
        "flags:\n"
        f"  persist_path: {tmp_path / 'lib/flags.json'}\n"
        f"  session_path: {tmp_path / 'run/flags.json'}\n",
        encoding="utf-8",
    )
    return p


@pytest.fixture
def cli(config_file, tmp_path):
    def run(*argv, **kwargs):
        return main(["--config", str(config_file), "--log", str(tmp_path / "debroot.log"), *argv], **kwargs)

    return run


def test_no_command_prints_usage(capsys):
    assert main([]) == 1
    assert "usage: debroot" in capsys.readouterr().err


def test_unknown_command(capsys):
    assert main(["frobnicate"]) == 1
    err = capsys.readouterr().err
    assert "usage: debroot" in err
    assert "unknown command: frobnicate" in err


def test_every_documented_command_is_dispatched():
    assert set(COMMANDS) == {
        "bootstrap",
        "diskimage-mount",
        "diskimage-unmount",
        "mount",
        "unmount",
        "resize",
        "delete",
        "enter",
        "status",
    }


def test_missing_config_file(tmp_path, capsys):
    assert main(["--config", str(tmp_path / "absent.yaml"), "status"]) == 1
    assert "cannot load config" in capsys.readouterr().err


def test_status_prints_flags(cli, tmp_path, capsys):
    (tmp_path / "lib").mkdir()
    (tmp_path / "lib/flags.json").write_text(
        json.dumps({"persist.debroot.enabled": "true", "persist.debroot.rootdir": "/data/debian"}),
        encoding="utf-8",
    )

    assert cli("status") == 0

    lines = capsys.readouterr().out.splitlines()
    assert lines == [
        "persist.debroot.enabled=true",
        "persist.debroot.rootdir=/data/debian",
        "persist.debroot.diskimage=",
        "persist.debroot.diskimage.size=",
        "sys.debroot.diskimage.mounted=",
        "sys.debroot.ramdisk.mounted=",
    ]


def test_status_with_corrupt_flags_still_succeeds(cli, tmp_path, capsys):
    (tmp_path / "run").mkdir()
    (tmp_path / "run/flags.json").write_text("not json", encoding="utf-8")

    assert cli("status") == 0
    assert "sys.debroot.ramdisk.mounted=" in capsys.readouterr().out


def test_mount_while_disabled_fails(cli, tmp_path):
    assert cli("mount") == 1
    assert not (tmp_path / "lib/flags.json").exists()


def test_commands_use_injected_lifecycle(cli, lifecycle, store, names, shell, tmp_path):
    store.set(names.rootdir, str(tmp_path / "debian"))
    factory = lambda cfg: lifecycle  # noqa: E731

    assert cli("bootstrap", lifecycle_factory=factory) == 0
    assert store.get(names.enabled) == "true"

    shell.returncode = 7
    assert cli("enter", "uname", "-a", lifecycle_factory=factory) == 7
    assert shell.calls[-1][0] == ["uname", "-a"]

    assert cli("unmount", lifecycle_factory=factory) == 0
    assert cli("unmount", lifecycle_factory=factory) == 1
    assert cli("delete", lifecycle_factory=factory) == 0
    assert store.get(names.enabled) == "false"


def test_unexpected_errors_propagate(cli):
    def broken(cfg):
        raise RuntimeError("wiring failed")

    with pytest.raises(RuntimeError, match="wiring failed"):
        cli("status", lifecycle_factory=broken)


@pytest.fixture
def fresh_logging(monkeypatch):
    root = logging.getLogger()
    monkeypatch.delattr(root, "_debroot_log_path", raising=False)
    handlers = list(root.handlers)
    yield root
    for h in root.handlers:
        if h not in handlers:
            h.close()
    root.handlers[:] = handlers


def test_unwritable_log_falls_back_to_console(fresh_logging, config_file, monkeypatch, capsys):
    monkeypatch.chdir("/proc")

    assert main(["--config", str(config_file), "--log", "/proc/nonexistent/debroot.log", "status"]) == 0

    captured = capsys.readouterr()
    assert "persist.debroot.enabled=" in captured.out
    assert "Cannot write /proc/nonexistent/debroot.log" in captured.err
    assert CONSOLE_ONLY in captured.err


def test_unwritable_log_path_uses_working_directory(fresh_logging, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "blocker").write_text("", encoding="utf-8")

    chosen = configure_logging(str(tmp_path / "blocker/debroot.log"))

    assert chosen == str(tmp_path / "debroot.log")
