from __future__ import annotations

import logging
from typing import Dict

from .errors import ConfigurationMissing, DebrootError
from .flag_store import FlagNames, FlagStore, as_bool

logger = logging.getLogger(__name__)


class ResourceProbe:
    """Read-only view of the lifecycle state recorded in the flag store."""

    def __init__(self, store: FlagStore, names: FlagNames):
        self.store = store
        self.names = names

    def is_enabled(self) -> bool:
        return as_bool(self.store.get(self.names.enabled))

    def is_diskimage_mounted(self) -> bool:
        return as_bool(self.store.get(self.names.diskimage_mounted))

    def is_ramdisk_mounted(self) -> bool:
        return as_bool(self.store.get(self.names.ramdisk_mounted))

    def rootdir(self) -> str:
        return self.store.get(self.names.rootdir).strip()

    def diskimage(self) -> str:
        return self.store.get(self.names.diskimage).strip()

    def diskimage_size(self) -> str:
        return self.store.get(self.names.diskimage_size).strip()

    def require_rootdir(self) -> str:
        rootdir = self.rootdir()
        if not rootdir:
            raise ConfigurationMissing(f"{self.names.rootdir} is not set")
        return rootdir

    def require_diskimage(self) -> str:
        image = self.diskimage()
        if not image:
            raise ConfigurationMissing(f"{self.names.diskimage} is not set (disk image disabled)")
        return image

    def snapshot(self) -> Dict[str, str]:
        """Point-in-time read of every flag; unreadable flags come back empty."""
        out: Dict[str, str] = {}
        for name in self.names.all():
            try:
                out[name] = self.store.get(name)
            except (OSError, ValueError, DebrootError) as e:
                logger.warning("Unable to read %s: %s", name, e)
                out[name] = ""
        return out
