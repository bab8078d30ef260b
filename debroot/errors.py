from __future__ import annotations

from typing import Sequence


class DebrootError(RuntimeError):
    pass


class PreconditionViolation(DebrootError):
    """Operation requested in the wrong lifecycle state."""


class ConfigurationMissing(DebrootError):
    """A required flag (rootdir, disk image size, ...) is unset or unusable."""


class TransientFetchFailure(DebrootError):
    pass


class FetchExhausted(DebrootError):
    pass


class ChecksumMismatch(DebrootError):
    def __init__(self, url: str, expected: str, actual: str):
        super().__init__(f"sha256 mismatch for {url}: expected {expected}, got {actual}")
        self.url = url
        self.expected = expected
        self.actual = actual


class KernelFeatureUnavailable(DebrootError):
    pass


class MountStepFailure(DebrootError):
    pass


class PackageInstallFailure(DebrootError):
    pass


class CommandError(DebrootError):
    def __init__(self, argv: Sequence[str], returncode: int, stderr: str, message: str):
        super().__init__(message)
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
