from __future__ import annotations

import logging
import platform
from typing import Optional

logger = logging.getLogger(__name__)


def normalize_arch(machine: str) -> str:
    m = machine.lower()
    return {
        "x86_64": "amd64",
        "amd64": "amd64",
        "i686": "i386",
        "i386": "i386",
        "aarch64": "arm64",
        "arm64": "arm64",
        "armv8l": "armhf",
        "armv7l": "armhf",
        "armv6l": "armel",
    }.get(m, m)


def detect_arch(machine: Optional[str] = None) -> str:
    """Debian architecture name of the running host."""
    arch = normalize_arch(machine or platform.machine())
    logger.debug("Host architecture: %s", arch)
    return arch
