from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple


@dataclass(frozen=True)
class HostLayout:
    """Host paths touched by the overlay, relative to a configurable root."""

    root: Path = Path("/")

    def _p(self, rel: str) -> Path:
        return self.root / rel

    @property
    def system_etc(self) -> Path:
        return self._p("system/etc")

    @property
    def system_usr(self) -> Path:
        return self._p("system/usr")

    @property
    def system_sh(self) -> Path:
        return self._p("system/bin/sh")

    @property
    def etc(self) -> Path:
        return self._p("etc")

    @property
    def usr(self) -> Path:
        return self._p("usr")

    @property
    def tmp(self) -> Path:
        return self._p("tmp")

    @property
    def filesystems(self) -> Path:
        return self._p("proc/filesystems")

    @property
    def live_archives(self) -> Path:
        """Package cache as seen through the mounted /var symlink."""
        return self._p("var/cache/apt/archives")

    def overlays(self, rootdir: Path) -> List[Tuple[Path, Path, Path, Path]]:
        """(mountpoint, lower, upper, workdir) in mount order."""
        work = rootdir / ".overlay-work"
        return [
            (self.usr, self.system_usr, rootdir / "usr", work / "usr"),
            (self.etc, self.system_etc, rootdir / "etc", work / "etc"),
        ]

    def symlinks(self, rootdir: Path) -> List[Tuple[Path, Path]]:
        """(link, target) pairs created while the overlay is mounted."""
        return [
            (self._p("home"), rootdir / "home"),
            (self._p("srv"), rootdir / "srv"),
            (self._p("var"), rootdir / "var"),
            (self._p("run"), rootdir / "var/run"),
            (self._p("bin"), rootdir / "usr/bin"),
        ]

    def saved_links(self, rootdir: Path) -> Path:
        """Host symlinks the compatibility links replaced, kept until unmount."""
        return rootdir / ".overlay-work" / "host-links.json"
