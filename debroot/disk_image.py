from __future__ import annotations

import logging
import re
from pathlib import Path

from .errors import ConfigurationMissing, PreconditionViolation
from .lib.fsck import FilesystemChecker
from .lib.loop import LoopDeviceAttacher
from .lib.mount import Mounter
from .probe import ResourceProbe

logger = logging.getLogger(__name__)

_SIZE_RE = re.compile(r"^\s*(\d+)\s*([KMGT]?)(i?B)?\s*$", re.IGNORECASE)
_UNITS = {"": 1, "K": 1024, "M": 1024**2, "G": 1024**3, "T": 1024**4}


def parse_size(size: str) -> int:
    """Parse "512M" / "1G" / "1GiB" / "4096" (binary units) into bytes."""
    m = _SIZE_RE.match(size or "")
    if not m:
        raise ConfigurationMissing(f"Invalid disk image size: {size!r}")
    value = int(m.group(1)) * _UNITS[m.group(2).upper()]
    if value <= 0:
        raise ConfigurationMissing(f"Disk image size must be positive: {size!r}")
    return value


class DiskImageManager:
    """Owns the loop-backed disk image: create, attach, detach, resize."""

    ABSENT = "absent"
    CREATED = "created"
    ATTACHED = "attached"

    def __init__(
        self,
        *,
        probe: ResourceProbe,
        mounter: Mounter,
        loop: LoopDeviceAttacher,
        fsck: FilesystemChecker,
        loop_device: str,
    ):
        self.probe = probe
        self.mounter = mounter
        self.loop = loop
        self.fsck = fsck
        self.loop_device = loop_device

    def state(self, path: str) -> str:
        if not Path(path).exists():
            return self.ABSENT
        if self.probe.is_diskimage_mounted():
            return self.ATTACHED
        return self.CREATED

    def ensure_created(self, path: str, size: str) -> bool:
        """Create and format the image. Returns False if it already existed."""
        image = Path(path)
        if image.exists():
            logger.info("Disk image %s already exists", image)
            return False
        if not size:
            raise ConfigurationMissing(f"Disk image size is required to create {image}")

        size_bytes = parse_size(size)
        image.parent.mkdir(parents=True, exist_ok=True)
        # Sparse allocation: blocks are only backed once written.
        with open(image, "wb") as f:
            f.truncate(size_bytes)
        try:
            self.fsck.make(str(image))
        except Exception:
            image.unlink()
            raise
        logger.info("Created disk image %s (%d bytes)", image, size_bytes)
        return True

    def attach(self, path: str, mountpoint: str) -> str:
        if self.probe.is_ramdisk_mounted():
            raise PreconditionViolation("Cannot attach disk image: overlay is mounted")
        if self.probe.is_diskimage_mounted():
            raise PreconditionViolation(f"Disk image already attached on {self.loop_device}")
        if not Path(path).exists():
            raise PreconditionViolation(f"Disk image {path} does not exist; run bootstrap first")

        self.fsck.check(path)
        device = self.loop.attach(path, self.loop_device)
        try:
            Path(mountpoint).mkdir(parents=True, exist_ok=True)
            self.mounter.mount(device, mountpoint, fstype="ext4")
        except Exception:
            logger.error("Mounting %s on %s failed; releasing %s", device, mountpoint, device)
            self.loop.detach(device)
            raise
        logger.info("Disk image %s mounted at %s", path, mountpoint)
        return device

    def detach(self, path: str, mountpoint: str) -> None:
        if self.probe.is_ramdisk_mounted():
            raise PreconditionViolation("Cannot detach disk image while the overlay is mounted")

        self.mounter.umount(mountpoint)
        self.loop.detach(self.loop_device)
        self.fsck.check(path)
        logger.info("Disk image %s detached", path)

    def resize(self, path: str, new_size: str) -> int:
        """Resize an unmounted image. Shrinking can destroy data; it is not blocked."""
        if self.probe.is_ramdisk_mounted() or self.probe.is_diskimage_mounted():
            raise PreconditionViolation("Disk image must be unmounted before resizing")
        image = Path(path)
        if not image.exists():
            raise PreconditionViolation(f"Disk image {image} does not exist")

        size_bytes = parse_size(new_size)
        current = image.stat().st_size
        self.fsck.check(path)
        if size_bytes < current:
            logger.warning(
                "Shrinking %s from %d to %d bytes; data beyond the new size is lost",
                image,
                current,
                size_bytes,
            )
            self.fsck.resize(path, size_bytes)
            with open(image, "r+b") as f:
                f.truncate(size_bytes)
        else:
            with open(image, "r+b") as f:
                f.truncate(size_bytes)
            self.fsck.resize(path)
        self.fsck.check(path)
        logger.info("Resized %s to %d bytes", image, size_bytes)
        return size_bytes
