from __future__ import annotations

import logging
import os
import shutil
import stat
from dataclasses import dataclass
from pathlib import Path

from ..lib.command import run_cmd
from ..pipeline import ProvisionCtx

logger = logging.getLogger(__name__)

_ELF_MAGIC = b"\x7fELF"
_SHEBANG = b"#!"


def is_executable_content(path: Path) -> bool:
    """True for ELF binaries and #! scripts."""
    try:
        with open(path, "rb") as f:
            head = f.read(4)
    except OSError as e:
        logger.debug("Unable to read %s: %s", path, e)
        return False
    return head.startswith(_ELF_MAGIC) or head.startswith(_SHEBANG)


@dataclass
class NormalizeStats:
    dirs: int = 0
    files: int = 0
    executables: int = 0


def normalize_tree(root: Path, *, chown: bool = True) -> NormalizeStats:
    """root:root, dirs 0755, files 0644 (0755 if executable). Symlinks untouched."""
    stats = NormalizeStats()

    def fix(path: Path, mode: int) -> None:
        if chown:
            os.lchown(path, 0, 0)
        os.chmod(path, mode)

    fix(root, 0o755)
    for dirpath, dirnames, filenames in os.walk(root):
        base = Path(dirpath)
        for name in dirnames:
            p = base / name
            if p.is_symlink():
                continue
            fix(p, 0o755)
            stats.dirs += 1
        for name in filenames:
            p = base / name
            st = os.lstat(p)
            if not stat.S_ISREG(st.st_mode):
                continue
            if is_executable_content(p):
                fix(p, 0o755)
                stats.executables += 1
            else:
                fix(p, 0o644)
            stats.files += 1
    return stats


class NormalizePermissionsStep:
    step_id = "80_normalize_permissions"

    def run(self, ctx: ProvisionCtx) -> None:
        stats = normalize_tree(ctx.rootdir, chown=ctx.cfg.normalize_ownership)
        logger.info(
            "Normalized %s: %d dirs, %d files (%d executable)",
            ctx.rootdir,
            stats.dirs,
            stats.files,
            stats.executables,
        )

        if not ctx.cfg.restorecon:
            return
        if shutil.which("restorecon") is None:
            logger.warning("restorecon not available; skipping security label restore")
            return
        run_cmd(["restorecon", "-R", str(ctx.rootdir)])
