from __future__ import annotations

import logging
from typing import Protocol

from .command import run_cmd

logger = logging.getLogger(__name__)


class LoopDeviceAttacher(Protocol):
    def attach(self, image: str, device: str) -> str:
        ...

    def detach(self, device: str) -> None:
        ...


class LosetupAttacher:
    """Bind images to a fixed loop device slot with losetup(8)."""

    def attach(self, image: str, device: str) -> str:
        # A busy slot makes losetup fail; we never fall back to --find.
        run_cmd(["losetup", device, image])
        logger.info("Attached %s to %s", image, device)
        return device

    def detach(self, device: str) -> None:
        run_cmd(["losetup", "-d", device])
        logger.info("Released %s", device)
