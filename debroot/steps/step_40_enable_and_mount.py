from __future__ import annotations

import logging

from ..pipeline import ProvisionCtx

logger = logging.getLogger(__name__)


class EnableAndMountStep:
    step_id = "40_enable_and_mount"

    def run(self, ctx: ProvisionCtx) -> None:
        # Maintainer scripts need /bin/sh before dash is unpacked.
        sh = ctx.rootdir / "usr/bin/sh"
        if not (sh.exists() or sh.is_symlink()):
            sh.parent.mkdir(parents=True, exist_ok=True)
            sh.symlink_to(ctx.layout.system_sh)

        ctx.lifecycle.enable()
        if not ctx.lifecycle.probe.is_ramdisk_mounted():
            ctx.lifecycle.mount_overlay()
