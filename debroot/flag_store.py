from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Protocol

from .lib.command import run_cmd

logger = logging.getLogger(__name__)


PERSIST_PREFIX = "persist."
SESSION_PREFIX = "sys."


class FlagStore(Protocol):
    """Named string flags; unset flags read as an empty string."""

    def get(self, name: str) -> str:
        ...

    def set(self, name: str, value: str) -> None:
        ...


@dataclass(frozen=True)
class FlagNames:
    namespace: str = "debroot"

    @property
    def enabled(self) -> str:
        return f"persist.{self.namespace}.enabled"

    @property
    def rootdir(self) -> str:
        return f"persist.{self.namespace}.rootdir"

    @property
    def diskimage(self) -> str:
        return f"persist.{self.namespace}.diskimage"

    @property
    def diskimage_size(self) -> str:
        return f"persist.{self.namespace}.diskimage.size"

    @property
    def diskimage_mounted(self) -> str:
        return f"sys.{self.namespace}.diskimage.mounted"

    @property
    def ramdisk_mounted(self) -> str:
        return f"sys.{self.namespace}.ramdisk.mounted"

    def all(self) -> list[str]:
        return [
            self.enabled,
            self.rootdir,
            self.diskimage,
            self.diskimage_size,
            self.diskimage_mounted,
            self.ramdisk_mounted,
        ]


def as_bool(value: str) -> bool:
    return value.strip().lower() == "true"


def from_bool(value: bool) -> str:
    return "true" if value else "false"


def _detect_format(path: Path) -> str:
    ext = path.suffix.lower().lstrip(".")
    if ext in {"json", "yaml", "yml"}:
        return ext
    # Default to JSON for unknown extensions.
    return "json"


def _load_document(path: Path) -> Dict[str, str]:
    if not path.exists():
        return {}

    fmt = _detect_format(path)
    text = path.read_text(encoding="utf-8")
    if fmt in {"yaml", "yml"}:
        import yaml

        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text) if text.strip() else {}

    if not isinstance(data, dict):
        raise ValueError(f"Flag file must be an object/dict, got {type(data)}: {path}")

    return {str(k): "" if v is None else str(v) for k, v in data.items()}


def _save_document(path: Path, flags: Dict[str, str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)

    fmt = _detect_format(path)
    if fmt in {"yaml", "yml"}:
        import yaml

        text = yaml.safe_dump(flags, sort_keys=True)
    else:
        text = json.dumps(flags, indent=2, sort_keys=True) + "\n"

    # Readers must never observe a half-written file.
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


class FileFlagStore:
    """Flags kept in two documents.

    persist.* flags survive reboots (persist_path, normally under /data).
    sys.* flags are session scoped (session_path, normally on the /dev tmpfs).
    """

    def __init__(self, *, persist_path: str, session_path: str):
        self.persist_path = Path(persist_path)
        self.session_path = Path(session_path)

    def _path_for(self, name: str) -> Path:
        if name.startswith(SESSION_PREFIX):
            return self.session_path
        if name.startswith(PERSIST_PREFIX):
            return self.persist_path
        raise ValueError(f"Flag name must start with {PERSIST_PREFIX!r} or {SESSION_PREFIX!r}: {name}")

    def get(self, name: str) -> str:
        return _load_document(self._path_for(name)).get(name, "")

    def set(self, name: str, value: str) -> None:
        path = self._path_for(name)
        flags = _load_document(path)
        flags[name] = value
        _save_document(path, flags)
        logger.debug("flag %s=%s (%s)", name, value, path)


class PropertyFlagStore:
    """Flags backed by the host property service (getprop/setprop)."""

    def __init__(self, *, getprop: str = "getprop", setprop: str = "setprop"):
        self.getprop = getprop
        self.setprop = setprop

    def get(self, name: str) -> str:
        r = run_cmd([self.getprop, name])
        return r.stdout.strip()

    def set(self, name: str, value: str) -> None:
        run_cmd([self.setprop, name, value])
