"""Union mounts that put the environment on top of the read-only host."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Dict, List

from .errors import KernelFeatureUnavailable, MountStepFailure, PreconditionViolation
from .lib.env import HostLayout
from .lib.mount import Mounter, overlay_options, overlay_supported
from .probe import ResourceProbe
from .rollback import MountOperation, RollbackStack

logger = logging.getLogger(__name__)


def find_shadowed(lower: Path, upper: Path) -> List[str]:
    """Relative paths of files present in both layers.

    Directories merge in an overlay; files in the upper layer hide the
    lower copy entirely.
    """
    if not lower.is_dir() or not upper.is_dir():
        return []
    shadowed: List[str] = []
    for dirpath, dirnames, filenames in os.walk(lower):
        rel_dir = Path(dirpath).relative_to(lower)
        for name in filenames:
            candidate = upper / rel_dir / name
            if candidate.exists() or candidate.is_symlink():
                if not candidate.is_dir():
                    shadowed.append(str(rel_dir / name))
        dirnames.sort()
    return sorted(shadowed)


class OverlayMountManager:
    UNMOUNTED = "unmounted"
    MOUNTED = "mounted"

    def __init__(self, *, probe: ResourceProbe, layout: HostLayout, mounter: Mounter):
        self.probe = probe
        self.layout = layout
        self.mounter = mounter

    def state(self) -> str:
        return self.MOUNTED if self.probe.is_ramdisk_mounted() else self.UNMOUNTED

    def check_kernel_support(self) -> None:
        if not overlay_supported(self.layout.filesystems):
            raise KernelFeatureUnavailable("Kernel does not support the overlay filesystem")

    def warn_shadowed(self, rootdir: Path) -> List[str]:
        found: List[str] = []
        for mountpoint, lower, upper, _work in self.layout.overlays(rootdir):
            for rel in find_shadowed(lower, upper):
                found.append(str(mountpoint / rel))
        if found:
            logger.warning(
                "%d host file(s) are hidden by the environment while mounted: %s",
                len(found),
                ", ".join(found),
            )
        return found

    def mount(self, rootdir: str) -> None:
        """Build the overlay. Any failure reverts to the unmounted layout."""
        root = Path(rootdir)
        if self.probe.is_ramdisk_mounted():
            raise PreconditionViolation("Overlay is already mounted")
        if self.probe.diskimage() and not self.probe.is_diskimage_mounted():
            raise PreconditionViolation("Disk image must be attached before mounting the overlay")
        if not root.is_dir():
            raise PreconditionViolation(f"Environment root {root} does not exist")

        self.check_kernel_support()

        for _mp, _lower, upper, work in self.layout.overlays(root):
            upper.mkdir(parents=True, exist_ok=True)
            work.mkdir(parents=True, exist_ok=True)

        try:
            with RollbackStack() as stack:
                stack.push(self._remount_root_op())
                self.warn_shadowed(root)
                stack.push(self._replace_etc_symlink_op())
                for d in (self.layout.etc, self.layout.usr, self.layout.tmp):
                    stack.push(self._make_dir_op(d))
                stack.push(self._mount_op("tmpfs", self.layout.tmp, fstype="tmpfs", options="mode=1777"))
                for mountpoint, lower, upper, work in self.layout.overlays(root):
                    stack.push(
                        self._mount_op(
                            "overlay",
                            mountpoint,
                            fstype="overlay",
                            options=overlay_options(lower=lower, upper=upper, work=work),
                        )
                    )
                replaced: Dict[str, str] = {}
                for link, target in self.layout.symlinks(root):
                    stack.push(self._symlink_op(link, target, replaced))
                stack.push(self._save_links_op(self.layout.saved_links(root), replaced))
                self.mounter.remount(self.layout.root, read_only=True)
                stack.commit()
        except Exception as e:
            raise MountStepFailure(f"Overlay mount failed and was rolled back: {e}") from e

        logger.info("Overlay mounted from %s", root)

    def unmount(self, rootdir: str) -> None:
        root = Path(rootdir)
        if not self.probe.is_ramdisk_mounted():
            raise PreconditionViolation("Overlay is not mounted")

        self.mounter.remount(self.layout.root, read_only=False)
        try:
            for mountpoint, _lower, _upper, _work in reversed(self.layout.overlays(root)):
                self.mounter.umount(mountpoint)
            self.mounter.umount(self.layout.tmp)
            for d in (self.layout.etc, self.layout.usr, self.layout.tmp):
                _remove_empty_dir(d)
            replaced = _load_saved_links(self.layout.saved_links(root))
            for link, _target in self.layout.symlinks(root):
                if link.is_symlink():
                    link.unlink()
                previous = replaced.get(str(link))
                if previous is not None:
                    link.symlink_to(previous)
            self.layout.saved_links(root).unlink(missing_ok=True)
            self._restore_etc_symlink()
        finally:
            self.mounter.remount(self.layout.root, read_only=True)

        logger.info("Overlay unmounted")

    def _restore_etc_symlink(self) -> None:
        etc = self.layout.etc
        if etc.is_symlink():
            return
        _remove_empty_dir(etc)
        if etc.exists():
            logger.warning("%s is not empty; leaving it in place of the host symlink", etc)
            return
        etc.symlink_to(self.layout.system_etc)

    def _remount_root_op(self) -> MountOperation:
        root = self.layout.root
        return MountOperation(
            description=f"remount {root} read-write",
            apply=lambda: self.mounter.remount(root, read_only=False),
            revert=lambda: self.mounter.remount(root, read_only=True),
        )

    def _replace_etc_symlink_op(self) -> MountOperation:
        etc = self.layout.etc
        removed: List[str] = []

        def apply() -> None:
            if etc.is_symlink():
                removed.append(os.readlink(etc))
                etc.unlink()

        def revert() -> None:
            if not etc.is_symlink() and not etc.exists():
                etc.symlink_to(removed[0] if removed else self.layout.system_etc)

        return MountOperation(description=f"replace {etc} symlink", apply=apply, revert=revert)

    def _make_dir_op(self, path: Path) -> MountOperation:
        created: List[bool] = []

        def apply() -> None:
            if not path.is_dir():
                path.mkdir()
                created.append(True)

        def revert() -> None:
            if created:
                _remove_empty_dir(path)

        return MountOperation(description=f"create {path}", apply=apply, revert=revert)

    def _mount_op(self, source: str, target: Path, *, fstype: str, options: str) -> MountOperation:
        return MountOperation(
            description=f"mount {fstype} on {target}",
            apply=lambda: self.mounter.mount(source, target, fstype=fstype, options=options),
            revert=lambda: self.mounter.umount(target),
        )

    def _symlink_op(self, link: Path, target: Path, replaced: Dict[str, str]) -> MountOperation:
        """Point link at target, remembering any host symlink it replaces."""

        def apply() -> None:
            if link.is_symlink():
                replaced[str(link)] = os.readlink(link)
                link.unlink()
            link.symlink_to(target)

        def revert() -> None:
            if link.is_symlink():
                link.unlink()
            previous = replaced.pop(str(link), None)
            if previous is not None:
                link.symlink_to(previous)

        return MountOperation(description=f"symlink {link} -> {target}", apply=apply, revert=revert)

    def _save_links_op(self, path: Path, replaced: Dict[str, str]) -> MountOperation:
        def apply() -> None:
            path.write_text(json.dumps(replaced, indent=2, sort_keys=True) + "\n", encoding="utf-8")

        def revert() -> None:
            path.unlink(missing_ok=True)

        return MountOperation(description=f"record replaced links in {path}", apply=apply, revert=revert)


def _remove_empty_dir(path: Path) -> None:
    if path.is_dir() and not path.is_symlink() and not any(path.iterdir()):
        path.rmdir()


def _load_saved_links(path: Path) -> Dict[str, str]:
    if not path.is_file():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except ValueError:
        logger.warning("Ignoring unreadable %s; replaced host links are not restored", path)
        return {}
    return {str(k): str(v) for k, v in data.items()} if isinstance(data, dict) else {}
