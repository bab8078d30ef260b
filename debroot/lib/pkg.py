from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol, Sequence

from .command import run_cmd

logger = logging.getLogger(__name__)


class PackageInstaller(Protocol):
    def install(self, deb: Path) -> None:
        ...

    def update(self) -> None:
        ...


class DpkgInstaller:
    """Installs into the live (overlay mounted) root with dpkg/apt-get."""

    def __init__(
        self,
        *,
        dpkg: Sequence[str] = ("dpkg",),
        apt_get: Sequence[str] = ("apt-get",),
    ):
        self.dpkg = list(dpkg)
        self.apt_get = list(apt_get)

    def install(self, deb: Path) -> None:
        run_cmd([*self.dpkg, "--install", str(deb)], env={"DEBIAN_FRONTEND": "noninteractive"})

    def update(self) -> None:
        run_cmd([*self.apt_get, "update"], env={"DEBIAN_FRONTEND": "noninteractive"})


def write_sources_list(
    target_root: str,
    mirror: str,
    *,
    suite: str = "bookworm",
    component: str = "main",
) -> Path:
    """Point apt inside the environment at the configured mirror."""

    p = Path(target_root) / "etc/apt/sources.list"
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(f"deb {mirror} {suite} {component}\n", encoding="utf-8")
    logger.info("Configured apt repo: %s (%s %s)", mirror, suite, component)
    return p
