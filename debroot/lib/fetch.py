from __future__ import annotations

import hashlib
import http.client
import logging
import os
import tempfile
import time
import urllib.request
from pathlib import Path
from typing import Any, Callable, Optional, Union

from ..errors import ChecksumMismatch, FetchExhausted, TransientFetchFailure

logger = logging.getLogger(__name__)

_CHUNK = 1024 * 1024
_USER_AGENT = "debroot/0.1"


def sha256_file(path: Union[str, Path]) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK), b""):
            h.update(chunk)
    return h.hexdigest()


class VerifiedFetcher:
    """Download with optional sha256 verification and bounded retries.

    Transport errors are retried (fixed delay between attempts). A checksum
    mismatch is never retried: it points at corruption or tampering.
    """

    def __init__(
        self,
        *,
        attempts: int = 6,
        delay_s: float = 15.0,
        timeout_s: float = 60.0,
        opener: Callable[..., Any] = urllib.request.urlopen,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.attempts = max(1, attempts)
        self.delay_s = delay_s
        self.timeout_s = timeout_s
        self._opener = opener
        self._sleep = sleep

    def fetch(self, url: str, destination: Union[str, Path], sha256: Optional[str] = None) -> Path:
        dest = Path(destination)
        expected = sha256.lower() if sha256 else None

        if expected and dest.is_file() and sha256_file(dest) == expected:
            logger.info("Already fetched %s (checksum ok)", dest)
            return dest

        dest.parent.mkdir(parents=True, exist_ok=True)

        for attempt in range(1, self.attempts + 1):
            try:
                tmp, actual = self._download(url, dest)
            except TransientFetchFailure as e:
                logger.warning("Fetch %s failed (attempt %d/%d): %s", url, attempt, self.attempts, e)
                if attempt < self.attempts:
                    self._sleep(self.delay_s)
                continue

            if expected and actual != expected:
                os.unlink(tmp)
                raise ChecksumMismatch(url, expected, actual)
            if not expected:
                logger.warning("No checksum for %s; content is unverified", url)

            os.replace(tmp, dest)
            logger.info("Fetched %s -> %s", url, dest)
            return dest

        raise FetchExhausted(f"Giving up on {url} after {self.attempts} attempts")

    def _download(self, url: str, dest: Path) -> tuple[str, str]:
        """Stream url into a temp file next to dest; return (temp path, sha256)."""
        fd, tmp = tempfile.mkstemp(prefix=f".{dest.name}.", suffix=".part", dir=str(dest.parent))
        h = hashlib.sha256()
        try:
            with os.fdopen(fd, "wb") as out:
                request = urllib.request.Request(url, headers={"User-Agent": _USER_AGENT})
                with self._opener(request, timeout=self.timeout_s) as response:
                    for chunk in iter(lambda: response.read(_CHUNK), b""):
                        h.update(chunk)
                        out.write(chunk)
        except (OSError, http.client.HTTPException) as e:
            os.unlink(tmp)
            raise TransientFetchFailure(str(e)) from e
        except BaseException:
            os.unlink(tmp)
            raise
        return tmp, h.hexdigest()
