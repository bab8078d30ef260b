from __future__ import annotations

import fcntl
import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from .errors import PreconditionViolation

logger = logging.getLogger(__name__)


@contextmanager
def instance_lock(path: str) -> Iterator[None]:
    """Hold an exclusive, non-blocking flock for the duration of one command."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, "a", encoding="utf-8") as f:
        try:
            fcntl.flock(f, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as e:
            raise PreconditionViolation(f"Another debroot command is running (lock: {p})") from e
        logger.debug("Acquired %s (pid %d)", p, os.getpid())
        try:
            yield
        finally:
            fcntl.flock(f, fcntl.LOCK_UN)
