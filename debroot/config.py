from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

# Host state lives outside every path the overlay replaces (/etc, /usr, /tmp,
# /home, /srv, /var, /run, /bin), so it reads the same mounted or not.
DEFAULT_PERSIST_FLAGS = "/data/debroot/flags.json"
DEFAULT_SESSION_FLAGS = "/dev/debroot/flags.json"
DEFAULT_LOCK_PATH = "/dev/debroot/debroot.lock"
DEFAULT_MIRROR = "http://deb.debian.org/debian"
DEFAULT_ENTER_PATH = "/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin:/system/bin"


@dataclass(frozen=True)
class EnvConfig:
    raw: Dict[str, Any] = field(default_factory=dict)

    def _section(self, name: str) -> Dict[str, Any]:
        return self.raw.get(name) or {}

    @property
    def namespace(self) -> str:
        return str(self.raw.get("namespace") or "debroot")

    @property
    def host_root(self) -> str:
        return str(self.raw.get("host_root") or "/")

    @property
    def loop_device(self) -> str:
        return str(self.raw.get("loop_device") or "/dev/loop7")

    @property
    def hostname(self) -> str:
        return str(self.raw.get("hostname") or "localhost")

    @property
    def lock_path(self) -> str:
        return str(self.raw.get("lock_path") or DEFAULT_LOCK_PATH)

    @property
    def log_path(self) -> Optional[str]:
        value = self.raw.get("log_path")
        return str(value) if value else None

    @property
    def flag_backend(self) -> str:
        return str(self._section("flags").get("backend") or "file")

    @property
    def persist_flags_path(self) -> str:
        return str(self._section("flags").get("persist_path") or DEFAULT_PERSIST_FLAGS)

    @property
    def session_flags_path(self) -> str:
        return str(self._section("flags").get("session_path") or DEFAULT_SESSION_FLAGS)

    @property
    def debian_mirror(self) -> str:
        return str(self._section("repository").get("mirror") or DEFAULT_MIRROR)

    @property
    def debian_suite(self) -> str:
        return str(self._section("repository").get("suite") or "bookworm")

    @property
    def debian_component(self) -> str:
        return str(self._section("repository").get("component") or "main")

    @property
    def repository_key_url(self) -> Optional[str]:
        value = self._section("repository").get("key_url")
        return str(value) if value else None

    @property
    def repository_key_sha256(self) -> Optional[str]:
        value = self._section("repository").get("key_sha256")
        return str(value) if value else None

    @property
    def packages_base_url(self) -> str:
        return str(self._section("packages").get("base_url") or self.debian_mirror).rstrip("/")

    @property
    def packages_manifest(self) -> Optional[str]:
        value = self._section("packages").get("manifest")
        return str(value) if value else None

    @property
    def allow_unverified_packages(self) -> bool:
        return bool(self._section("packages").get("allow_unverified", False))

    @property
    def fetch_attempts(self) -> int:
        return int(self._section("fetch").get("attempts") or 6)

    @property
    def fetch_delay_s(self) -> float:
        value = self._section("fetch").get("delay_s")
        return float(15 if value is None else value)

    @property
    def fetch_timeout_s(self) -> float:
        return float(self._section("fetch").get("timeout_s") or 60)

    @property
    def normalize_ownership(self) -> bool:
        return bool(self._section("normalize").get("ownership", True))

    @property
    def restorecon(self) -> bool:
        return bool(self._section("normalize").get("restorecon", True))

    @property
    def enter_shell(self) -> List[str]:
        value = self._section("enter").get("shell") or ["/bin/bash", "--login"]
        return [str(v) for v in value] if isinstance(value, list) else [str(value)]

    @property
    def enter_home(self) -> str:
        return str(self._section("enter").get("home") or "/home/root")

    @property
    def enter_path(self) -> str:
        return str(self._section("enter").get("path") or DEFAULT_ENTER_PATH)


def load_config(path: Optional[str]) -> EnvConfig:
    """Load the YAML config; no path means built-in defaults."""
    if not path:
        return EnvConfig()

    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(path)

    if p.suffix.lower() not in {".yaml", ".yml"}:
        raise ValueError("debroot config must be YAML")

    import yaml

    raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"{path} must contain a mapping/object")

    return EnvConfig(raw=raw)
