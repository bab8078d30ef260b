"""Lifecycle orchestration: preconditions, component calls, flag records.

This is the only module that writes lifecycle flags, and it writes them
only after the physical operation succeeded.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from .config import EnvConfig
from .disk_image import DiskImageManager
from .errors import ConfigurationMissing, PreconditionViolation
from .flag_store import FlagNames, FlagStore, from_bool
from .lib.env import HostLayout
from .lib.fetch import VerifiedFetcher
from .lib.fsck import FilesystemChecker
from .lib.hwdetect import detect_arch
from .lib.loop import LoopDeviceAttacher
from .lib.mount import Mounter
from .lib.pkg import PackageInstaller
from .overlay import OverlayMountManager
from .pipeline import PipelineResult, ProvisionCtx, Step, run_pipeline
from .probe import ResourceProbe
from .steps import (
    EnableAndMountStep,
    FetchPackagesStep,
    InstallPackagesStep,
    NormalizePermissionsStep,
    PrepareRootStep,
    SkeletonStep,
    SyncIndexStep,
    WriteSourcesStep,
)

logger = logging.getLogger(__name__)

ShellRunner = Callable[[Sequence[str], Mapping[str, str]], int]


def build_steps() -> List[Step]:
    return [
        PrepareRootStep(),
        SkeletonStep(),
        FetchPackagesStep(),
        EnableAndMountStep(),
        InstallPackagesStep(),
        WriteSourcesStep(),
        SyncIndexStep(),
        NormalizePermissionsStep(),
    ]


def _run_shell(argv: Sequence[str], env: Mapping[str, str]) -> int:
    return subprocess.run(list(argv), env=dict(env)).returncode


class Lifecycle:
    def __init__(
        self,
        *,
        cfg: EnvConfig,
        store: FlagStore,
        layout: HostLayout,
        mounter: Mounter,
        loop: LoopDeviceAttacher,
        fsck: FilesystemChecker,
        installer: PackageInstaller,
        fetcher: VerifiedFetcher,
        shell_runner: ShellRunner = _run_shell,
        arch: Optional[str] = None,
    ):
        self.cfg = cfg
        self.store = store
        self.names = FlagNames(cfg.namespace)
        self.probe = ResourceProbe(store, self.names)
        self.layout = layout
        self.installer = installer
        self.fetcher = fetcher
        self.shell_runner = shell_runner
        self.arch = arch
        self.disk = DiskImageManager(
            probe=self.probe,
            mounter=mounter,
            loop=loop,
            fsck=fsck,
            loop_device=cfg.loop_device,
        )
        self.overlay = OverlayMountManager(probe=self.probe, layout=layout, mounter=mounter)

    # -- preconditions -----------------------------------------------------

    def _require_enabled(self, operation: str) -> None:
        if not self.probe.is_enabled():
            raise PreconditionViolation(f"{operation}: environment is not enabled; run bootstrap first")

    def _set(self, name: str, value: bool) -> None:
        self.store.set(name, from_bool(value))

    # -- building blocks (also used by provisioning steps) ----------------

    def enable(self) -> None:
        self._set(self.names.enabled, True)

    def attach_image(self) -> str:
        image = self.probe.require_diskimage()
        device = self.disk.attach(image, self.probe.require_rootdir())
        self._set(self.names.diskimage_mounted, True)
        return device

    def detach_image(self) -> None:
        image = self.probe.require_diskimage()
        if self.probe.is_ramdisk_mounted():
            logger.info("Overlay is mounted; unmounting it before detaching the image")
            self.unmount_overlay()
        self.disk.detach(image, self.probe.require_rootdir())
        self._set(self.names.diskimage_mounted, False)

    def mount_overlay(self) -> None:
        rootdir = self.probe.require_rootdir()
        if self.probe.diskimage() and not self.probe.is_diskimage_mounted():
            logger.info("Disk image not attached; attaching it first")
            self.attach_image()
        self.overlay.mount(rootdir)
        self._set(self.names.ramdisk_mounted, True)

    def unmount_overlay(self) -> None:
        self.overlay.unmount(self.probe.require_rootdir())
        self._set(self.names.ramdisk_mounted, False)

    # -- operations ----------------------------------------------------------

    def bootstrap(self) -> PipelineResult:
        if self.probe.is_enabled():
            raise PreconditionViolation("bootstrap: environment is already enabled; delete it first")
        rootdir = self.probe.require_rootdir()
        image = self.probe.diskimage()
        size = self.probe.diskimage_size()
        if image and not size and not Path(image).exists():
            raise ConfigurationMissing(f"{self.names.diskimage_size} is required to create {image}")

        ctx = ProvisionCtx(
            cfg=self.cfg,
            layout=self.layout,
            lifecycle=self,
            fetcher=self.fetcher,
            installer=self.installer,
            rootdir=Path(rootdir),
            diskimage=image,
            diskimage_size=size,
            arch=self.arch or detect_arch(),
        )
        result = run_pipeline(ctx=ctx, steps=build_steps())
        logger.info("Bootstrap complete: %s", ", ".join(result.ran_steps))
        return result

    def diskimage_mount(self) -> None:
        self._require_enabled("diskimage-mount")
        self.probe.require_diskimage()
        self.attach_image()

    def diskimage_unmount(self) -> None:
        self._require_enabled("diskimage-unmount")
        self.probe.require_diskimage()
        if not self.probe.is_diskimage_mounted():
            raise PreconditionViolation("diskimage-unmount: disk image is not mounted")
        self.detach_image()

    def mount(self) -> None:
        self._require_enabled("mount")
        if self.probe.is_ramdisk_mounted():
            raise PreconditionViolation("mount: overlay is already mounted")
        self.mount_overlay()

    def unmount(self) -> None:
        self._require_enabled("unmount")
        if not self.probe.is_ramdisk_mounted():
            raise PreconditionViolation("unmount: overlay is not mounted")
        self.unmount_overlay()

    def resize(self, size: Optional[str] = None) -> int:
        self._require_enabled("resize")
        image = self.probe.require_diskimage()
        new_size = size or self.probe.diskimage_size()
        if not new_size:
            raise ConfigurationMissing(f"resize: no size given and {self.names.diskimage_size} is not set")

        if self.probe.is_ramdisk_mounted():
            self.unmount_overlay()
        if self.probe.is_diskimage_mounted():
            self.detach_image()
        result = self.disk.resize(image, new_size)
        if size:
            self.store.set(self.names.diskimage_size, size)
        logger.info("Disk image left detached; run mount to use it again")
        return result

    def delete(self) -> None:
        if self.probe.is_ramdisk_mounted():
            self.unmount_overlay()
        image = self.probe.diskimage()
        if image and self.probe.is_diskimage_mounted():
            self.detach_image()

        rootdir = self.probe.rootdir()
        if image:
            if Path(image).exists():
                Path(image).unlink()
                logger.info("Removed disk image %s", image)
            if rootdir and Path(rootdir).is_dir() and not any(Path(rootdir).iterdir()):
                Path(rootdir).rmdir()
        elif rootdir and Path(rootdir).exists():
            shutil.rmtree(rootdir)
            logger.info("Removed environment root %s", rootdir)

        self._set(self.names.enabled, False)

    def enter(self, argv: Sequence[str] = ()) -> int:
        self._require_enabled("enter")
        if not self.probe.is_ramdisk_mounted():
            self.mount_overlay()
        env = dict(os.environ)
        env.update(
            {
                "HOME": self.cfg.enter_home,
                "PATH": self.cfg.enter_path,
                "SHELL": self.cfg.enter_shell[0],
                "TMPDIR": str(self.layout.tmp),
            }
        )
        env.setdefault("TERM", "xterm-256color")
        command = list(argv) or self.cfg.enter_shell
        logger.info("Entering environment: %s", " ".join(command))
        return self.shell_runner(command, env)

    def status(self) -> Dict[str, str]:
        return self.probe.snapshot()
