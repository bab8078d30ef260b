from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .config import EnvConfig, load_config
from .errors import ConfigurationMissing, DebrootError
from .flag_store import FileFlagStore, FlagStore, PropertyFlagStore
from .lib.env import HostLayout
from .lib.fetch import VerifiedFetcher
from .lib.fsck import Ext4Tools
from .lib.loop import LosetupAttacher
from .lib.mount import SystemMounter
from .lib.pkg import DpkgInstaller
from .lifecycle import Lifecycle
from .lock import instance_lock
from .logging_utils import DEFAULT_LOG_PATH, configure_logging

logger = logging.getLogger(__name__)


def build_store(cfg: EnvConfig) -> FlagStore:
    if cfg.flag_backend == "property":
        return PropertyFlagStore()
    if cfg.flag_backend != "file":
        raise ConfigurationMissing(f"Unknown flag backend: {cfg.flag_backend}")
    return FileFlagStore(persist_path=cfg.persist_flags_path, session_path=cfg.session_flags_path)


def build_lifecycle(cfg: EnvConfig) -> Lifecycle:
    """Wire the lifecycle with the real system capabilities."""
    return Lifecycle(
        cfg=cfg,
        store=build_store(cfg),
        layout=HostLayout(Path(cfg.host_root)),
        mounter=SystemMounter(),
        loop=LosetupAttacher(),
        fsck=Ext4Tools(),
        installer=DpkgInstaller(),
        fetcher=VerifiedFetcher(
            attempts=cfg.fetch_attempts,
            delay_s=cfg.fetch_delay_s,
            timeout_s=cfg.fetch_timeout_s,
        ),
    )


def _bootstrap(lc: Lifecycle, args: List[str]) -> int:
    lc.bootstrap()
    return 0


def _diskimage_mount(lc: Lifecycle, args: List[str]) -> int:
    lc.diskimage_mount()
    return 0


def _diskimage_unmount(lc: Lifecycle, args: List[str]) -> int:
    lc.diskimage_unmount()
    return 0


def _mount(lc: Lifecycle, args: List[str]) -> int:
    lc.mount()
    return 0


def _unmount(lc: Lifecycle, args: List[str]) -> int:
    lc.unmount()
    return 0


def _resize(lc: Lifecycle, args: List[str]) -> int:
    lc.resize(args[0] if args else None)
    return 0


def _delete(lc: Lifecycle, args: List[str]) -> int:
    lc.delete()
    return 0


def _enter(lc: Lifecycle, args: List[str]) -> int:
    return lc.enter(args)


def _status(lc: Lifecycle, args: List[str]) -> int:
    for name, value in lc.status().items():
        print(f"{name}={value}")
    return 0


Command = Callable[[Lifecycle, List[str]], int]

COMMANDS: Dict[str, Command] = {
    "bootstrap": _bootstrap,
    "diskimage-mount": _diskimage_mount,
    "diskimage-unmount": _diskimage_unmount,
    "mount": _mount,
    "unmount": _unmount,
    "resize": _resize,
    "delete": _delete,
    "enter": _enter,
    "status": _status,
}

UNLOCKED_COMMANDS = {"status"}


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="debroot",
        description="Manage a Debian environment overlaid on a read-only host.",
    )
    p.add_argument("--config", default=None, help="Path to debroot config (yaml)")
    p.add_argument("--log", default=None, help=f"Path to log file (default {DEFAULT_LOG_PATH})")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    p.add_argument("command", nargs="?", help=" | ".join(COMMANDS))
    p.add_argument("args", nargs=argparse.REMAINDER, help="Command arguments")
    return p


def run(
    command: str,
    args: List[str],
    *,
    cfg: EnvConfig,
    lifecycle_factory: Callable[[EnvConfig], Lifecycle] = build_lifecycle,
) -> int:
    handler = COMMANDS[command]
    lifecycle = lifecycle_factory(cfg)
    if command in UNLOCKED_COMMANDS:
        return handler(lifecycle, args)
    with instance_lock(cfg.lock_path):
        logger.info("debroot %s %s", command, " ".join(args))
        return handler(lifecycle, args)


def main(
    argv: Optional[List[str]] = None,
    *,
    lifecycle_factory: Callable[[EnvConfig], Lifecycle] = build_lifecycle,
) -> int:
    p = build_parser()
    ns = p.parse_args(argv)

    if not ns.command or ns.command not in COMMANDS:
        p.print_usage(sys.stderr)
        if ns.command:
            print(f"debroot: unknown command: {ns.command}", file=sys.stderr)
        return 1

    try:
        cfg = load_config(ns.config)
    except (OSError, ValueError) as e:
        print(f"debroot: cannot load config {ns.config}: {e}", file=sys.stderr)
        return 1

    configure_logging(
        log_path=ns.log or cfg.log_path or DEFAULT_LOG_PATH,
        level=logging.DEBUG if ns.verbose else logging.INFO,
    )

    try:
        return run(ns.command, list(ns.args), cfg=cfg, lifecycle_factory=lifecycle_factory)
    except DebrootError as e:
        logger.error("%s failed: %s", ns.command, e)
        return 1
    except Exception:
        logger.exception("%s failed unexpectedly", ns.command)
        raise


if __name__ == "__main__":
    raise SystemExit(main())
