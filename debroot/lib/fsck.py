from __future__ import annotations

import logging
from typing import Optional, Protocol

from ..errors import CommandError
from .command import run_cmd

logger = logging.getLogger(__name__)

# e2fsck exit status bits: 1 = errors corrected, 2 = corrected (reboot advised),
# 4 and above = errors left uncorrected or the check itself failed.
E2FSCK_UNCORRECTED = 4


class FilesystemChecker(Protocol):
    def check(self, image: str) -> None:
        ...

    def make(self, image: str) -> None:
        ...

    def resize(self, image: str, size_bytes: Optional[int] = None) -> None:
        ...


class Ext4Tools:
    """ext4 image maintenance via e2fsprogs."""

    def check(self, image: str) -> None:
        r = run_cmd(["e2fsck", "-f", "-y", image], check=False)
        if r.returncode >= E2FSCK_UNCORRECTED:
            raise CommandError(
                r.argv,
                r.returncode,
                r.stderr,
                f"Filesystem check failed for {image} (e2fsck exit {r.returncode})",
            )
        if r.returncode:
            logger.warning("e2fsck corrected errors on %s (exit %d)", image, r.returncode)

    def make(self, image: str) -> None:
        run_cmd(["mkfs.ext4", "-F", "-q", image])

    def resize(self, image: str, size_bytes: Optional[int] = None) -> None:
        argv = ["resize2fs", image]
        if size_bytes is not None:
            argv.append(f"{size_bytes // 1024}K")
        run_cmd(argv)
