from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union


def _package_root() -> Path:
    # debroot/lib/manifests.py -> debroot
    return Path(__file__).resolve().parents[1]


DEFAULT_MANIFEST = _package_root() / "manifests" / "packages.yaml"


@dataclass(frozen=True)
class PackageEntry:
    """One manifest line: a repository path (may contain {arch}) plus checksum."""

    path: str
    sha256: Union[str, Dict[str, str], None] = None
    arch: Optional[str] = None

    def resolved_arch(self, host_arch: str) -> str:
        return self.arch or host_arch

    def url_path(self, host_arch: str) -> str:
        return self.path.format(arch=self.resolved_arch(host_arch)).lstrip("/")

    def filename(self, host_arch: str) -> str:
        return self.url_path(host_arch).rsplit("/", 1)[-1]

    def checksum(self, host_arch: str) -> Optional[str]:
        if isinstance(self.sha256, dict):
            return self.sha256.get(self.resolved_arch(host_arch))
        return self.sha256


def load_yaml(path: Union[str, Path]) -> Dict[str, Any]:
    import yaml

    p = Path(path)
    data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Manifest must be a mapping/dict: {p}")
    return data


def load_package_manifest(path: Union[str, Path, None] = None) -> List[PackageEntry]:
    """Load the ordered package list. Order is preserved as written."""

    data = load_yaml(path or DEFAULT_MANIFEST)
    entries: List[PackageEntry] = []
    for item in data.get("packages") or []:
        if not isinstance(item, dict) or not item.get("path"):
            raise ValueError(f"Manifest entry needs a path: {item!r}")
        sha = item.get("sha256")
        if sha is not None and not isinstance(sha, dict):
            sha = str(sha)
        entries.append(
            PackageEntry(
                path=str(item["path"]),
                sha256=sha,
                arch=str(item["arch"]) if item.get("arch") else None,
            )
        )
    return entries
