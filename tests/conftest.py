from __future__ import annotations

import hashlib
import io
import os
import urllib.error
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import pytest

from debroot.config import EnvConfig
from debroot.errors import CommandError
from debroot.flag_store import FlagNames
from debroot.lib.env import HostLayout
from debroot.lib.fetch import VerifiedFetcher
from debroot.lifecycle import Lifecycle
from debroot.probe import ResourceProbe

MIRROR = "http://mirror.test/debian"
PACKAGES: Dict[str, bytes] = {
    "pool/main/a/alpha/alpha_1.0_amd64.deb": b"alpha package contents",
    "pool/main/b/beta/beta_2.0_all.deb": b"beta package contents",
}
KEY_URL = f"{MIRROR}/debroot.asc"
KEY = b"-----BEGIN PGP PUBLIC KEY BLOCK-----\ntest\n-----END PGP PUBLIC KEY BLOCK-----\n"


def sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class MemoryFlagStore:
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.flags: Dict[str, str] = dict(initial or {})
        self.writes: List[Tuple[str, str]] = []

    def get(self, name: str) -> str:
        return self.flags.get(name, "")

    def set(self, name: str, value: str) -> None:
        self.flags[name] = value
        self.writes.append((name, value))


class FakeMounter:
    """Mount table in memory. The host root starts read-only."""

    def __init__(self):
        self.mounts: Dict[str, Tuple[str, Optional[str], Optional[str]]] = {}
        self.read_only = True
        self.calls: List[tuple] = []
        self.fail_mount: set = set()
        self.fail_remount_ro = 0
        self.fail_remount_rw = False

    def mount(self, source, target, *, fstype=None, options=None) -> None:
        key = str(target)
        self.calls.append(("mount", key, fstype))
        if key in self.fail_mount:
            raise CommandError(["mount", str(source), key], 32, "injected", f"mount {key} failed")
        if key in self.mounts:
            raise CommandError(["mount", str(source), key], 32, "busy", f"{key} already mounted")
        self.mounts[key] = (str(source), fstype, options)

    def umount(self, target) -> None:
        key = str(target)
        self.calls.append(("umount", key))
        if key not in self.mounts:
            raise CommandError(["umount", key], 32, "not mounted", f"{key} not mounted")
        del self.mounts[key]

    def remount(self, target, *, read_only: bool) -> None:
        self.calls.append(("remount", str(target), read_only))
        if read_only and self.fail_remount_ro:
            self.fail_remount_ro -= 1
            raise CommandError(["mount", "-o", "remount,ro"], 32, "busy", "remount ro failed")
        if not read_only and self.fail_remount_rw:
            raise CommandError(["mount", "-o", "remount,rw"], 32, "denied", "remount rw failed")
        self.read_only = read_only


class FakeLoop:
    def __init__(self):
        self.attached: Dict[str, str] = {}
        self.calls: List[tuple] = []

    def attach(self, image: str, device: str) -> str:
        self.calls.append(("attach", image, device))
        if device in self.attached:
            raise CommandError(["losetup", device, image], 1, "busy", f"{device} busy")
        self.attached[device] = image
        return device

    def detach(self, device: str) -> None:
        self.calls.append(("detach", device))
        if device not in self.attached:
            raise CommandError(["losetup", "-d", device], 1, "no such device", f"{device} not attached")
        del self.attached[device]


class FakeFsck:
    def __init__(self):
        self.checked: List[str] = []
        self.made: List[str] = []
        self.resized: List[Tuple[str, Optional[int]]] = []
        self.fail_make = False

    def check(self, image: str) -> None:
        self.checked.append(image)

    def make(self, image: str) -> None:
        if self.fail_make:
            raise CommandError(["mkfs.ext4", image], 1, "injected", "mkfs failed")
        self.made.append(image)

    def resize(self, image: str, size_bytes: Optional[int] = None) -> None:
        self.resized.append((image, size_bytes))


class FakeInstaller:
    def __init__(self):
        self.installed: List[Path] = []
        self.updates = 0
        self.fail_on: set = set()

    def install(self, deb: Path) -> None:
        if not deb.is_file():
            raise CommandError(["dpkg", "--install", str(deb)], 2, "missing", f"{deb} not found")
        if deb.name in self.fail_on:
            raise CommandError(["dpkg", "--install", str(deb)], 1, "injected", f"dpkg failed on {deb.name}")
        self.installed.append(deb)

    def update(self) -> None:
        self.updates += 1


class FakeOpener:
    """Stands in for urlopen: serves bytes by URL, raises URLError otherwise."""

    def __init__(self, content: Mapping[str, bytes]):
        self.content = dict(content)
        self.requests: List[str] = []
        self.failures_left: Dict[str, int] = {}

    def __call__(self, request, timeout=None):
        url = request.full_url
        self.requests.append(url)
        if self.failures_left.get(url, 0) > 0:
            self.failures_left[url] -= 1
            raise urllib.error.URLError("connection reset")
        if url not in self.content:
            raise urllib.error.URLError(f"no route to {url}")
        return io.BytesIO(self.content[url])


class RecordingShell:
    def __init__(self, returncode: int = 0):
        self.returncode = returncode
        self.calls: List[Tuple[List[str], Dict[str, str]]] = []

    def __call__(self, argv: Sequence[str], env: Mapping[str, str]) -> int:
        self.calls.append((list(argv), dict(env)))
        return self.returncode


@pytest.fixture
def names() -> FlagNames:
    return FlagNames()


@pytest.fixture
def store() -> MemoryFlagStore:
    return MemoryFlagStore()


@pytest.fixture
def probe(store, names) -> ResourceProbe:
    return ResourceProbe(store, names)


@pytest.fixture
def mounter() -> FakeMounter:
    return FakeMounter()


@pytest.fixture
def loop() -> FakeLoop:
    return FakeLoop()


@pytest.fixture
def fsck() -> FakeFsck:
    return FakeFsck()


@pytest.fixture
def installer() -> FakeInstaller:
    return FakeInstaller()


@pytest.fixture
def opener() -> FakeOpener:
    content = {f"{MIRROR}/{path}": data for path, data in PACKAGES.items()}
    content[KEY_URL] = KEY
    return FakeOpener(content)


@pytest.fixture
def shell() -> RecordingShell:
    return RecordingShell(returncode=0)


@pytest.fixture
def host(tmp_path) -> HostLayout:
    """A read-only style host: /system holds the real /etc and /usr, /etc is a symlink."""
    root = tmp_path / "host"
    (root / "system/etc").mkdir(parents=True)
    (root / "system/etc/hostname").write_text("host\n", encoding="utf-8")
    (root / "system/usr/bin").mkdir(parents=True)
    (root / "system/bin").mkdir(parents=True)
    (root / "proc").mkdir()
    (root / "proc/filesystems").write_text("nodev\tsysfs\nnodev\ttmpfs\n\text4\nnodev\toverlay\n", encoding="utf-8")
    os.symlink(root / "system/etc", root / "etc")
    return HostLayout(root)


@pytest.fixture
def env_root(tmp_path) -> Path:
    root = tmp_path / "env"
    for rel in ("etc", "usr/bin", "var/run", "home", "srv"):
        (root / rel).mkdir(parents=True)
    return root


@pytest.fixture
def manifest(tmp_path) -> Path:
    p = tmp_path / "packages.yaml"
    p.write_text(
        "packages:\n"
        "  - path: pool/main/a/alpha/alpha_1.0_{arch}.deb\n"
        f"    sha256: {{amd64: \"{sha256(PACKAGES['pool/main/a/alpha/alpha_1.0_amd64.deb'])}\"}}\n"
        "  - path: pool/main/b/beta/beta_2.0_{arch}.deb\n"
        "    arch: all\n"
        f"    sha256: \"{sha256(PACKAGES['pool/main/b/beta/beta_2.0_all.deb'])}\"\n",
        encoding="utf-8",
    )
    return p


@pytest.fixture
def cfg(tmp_path, manifest) -> EnvConfig:
    return EnvConfig(
        raw={
            "hostname": "debroot-test",
            "lock_path": str(tmp_path / "debroot.lock"),
            "packages": {"base_url": MIRROR + "/", "manifest": str(manifest)},
            "repository": {"key_url": KEY_URL, "key_sha256": sha256(KEY)},
            "fetch": {"attempts": 2, "delay_s": 0},
            "normalize": {"ownership": False, "restorecon": False},
            "enter": {"home": "/home/root", "path": "/usr/bin:/bin"},
        }
    )


@pytest.fixture
def lifecycle(cfg, store, host, mounter, loop, fsck, installer, opener, shell) -> Lifecycle:
    return Lifecycle(
        cfg=cfg,
        store=store,
        layout=host,
        mounter=mounter,
        loop=loop,
        fsck=fsck,
        installer=installer,
        fetcher=VerifiedFetcher(attempts=2, delay_s=0, opener=opener, sleep=lambda s: None),
        shell_runner=shell,
        arch="amd64",
    )
