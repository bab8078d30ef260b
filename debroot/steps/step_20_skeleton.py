from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List

from ..pipeline import ProvisionCtx

logger = logging.getLogger(__name__)


SKELETON_DIRS: List[str] = [
    "etc/apt/apt.conf.d",
    "etc/apt/preferences.d",
    "etc/apt/sources.list.d",
    "etc/apt/trusted.gpg.d",
    "etc/dpkg/dpkg.cfg.d",
    "home/root",
    "srv",
    "tmp",
    "usr/bin",
    "usr/lib",
    "usr/sbin",
    "usr/share",
    "usr/local/bin",
    "var/cache/apt/archives/partial",
    "var/lib/apt/lists/partial",
    "var/lib/dpkg/alternatives",
    "var/lib/dpkg/info",
    "var/lib/dpkg/triggers",
    "var/lib/dpkg/updates",
    "var/log",
    "var/run",
    "var/tmp",
    ".overlay-work/etc",
    ".overlay-work/usr",
]


def skeleton_files(hostname: str) -> Dict[str, str]:
    return {
        "etc/hostname": f"{hostname}\n",
        "etc/hosts": (
            "127.0.0.1\tlocalhost\n"
            f"127.0.1.1\t{hostname}\n"
            "::1\t\tlocalhost ip6-localhost ip6-loopback\n"
        ),
        "etc/resolv.conf": "nameserver 8.8.8.8\nnameserver 8.8.4.4\n",
        "var/lib/dpkg/status": "",
        "var/lib/dpkg/available": "",
    }


def create_skeleton(root: Path, *, hostname: str) -> List[Path]:
    """Create the directory skeleton; existing files are never overwritten."""
    written: List[Path] = []
    for rel in SKELETON_DIRS:
        (root / rel).mkdir(parents=True, exist_ok=True)
    for rel, contents in skeleton_files(hostname).items():
        p = root / rel
        if p.exists() or p.is_symlink():
            continue
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(contents, encoding="utf-8")
        written.append(p)
    return written


class SkeletonStep:
    step_id = "20_skeleton"

    def run(self, ctx: ProvisionCtx) -> None:
        written = create_skeleton(ctx.rootdir, hostname=ctx.cfg.hostname)
        logger.info("Skeleton ready under %s (%d new files)", ctx.rootdir, len(written))
