from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Protocol, Union

from .command import run_cmd

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class Mounter(Protocol):
    def mount(
        self,
        source: PathLike,
        target: PathLike,
        *,
        fstype: Optional[str] = None,
        options: Optional[str] = None,
    ) -> None:
        ...

    def umount(self, target: PathLike) -> None:
        ...

    def remount(self, target: PathLike, *, read_only: bool) -> None:
        ...


class SystemMounter:
    """Mounter backed by mount(8)/umount(8)."""

    def mount(
        self,
        source: PathLike,
        target: PathLike,
        *,
        fstype: Optional[str] = None,
        options: Optional[str] = None,
    ) -> None:
        argv = ["mount"]
        if fstype:
            argv += ["-t", fstype]
        if options:
            argv += ["-o", options]
        argv += [str(source), str(target)]
        run_cmd(argv)

    def umount(self, target: PathLike) -> None:
        run_cmd(["umount", str(target)])

    def remount(self, target: PathLike, *, read_only: bool) -> None:
        mode = "ro" if read_only else "rw"
        run_cmd(["mount", "-o", f"remount,{mode}", str(target)])


def overlay_options(*, lower: Path, upper: Path, work: Path) -> str:
    return f"lowerdir={lower},upperdir={upper},workdir={work}"


def overlay_supported(filesystems: Path) -> bool:
    """True if the kernel lists overlay in /proc/filesystems."""
    try:
        text = filesystems.read_text(encoding="utf-8")
    except OSError as e:
        logger.warning("Unable to read %s: %s", filesystems, e)
        return False
    for line in text.splitlines():
        parts = line.split()
        if parts and parts[-1] == "overlay":
            return True
    return False
