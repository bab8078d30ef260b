from __future__ import annotations

import logging

from ..pipeline import ProvisionCtx

logger = logging.getLogger(__name__)


class PrepareRootStep:
    step_id = "10_prepare_root"

    def run(self, ctx: ProvisionCtx) -> None:
        if ctx.diskimage:
            # The root must resolve into the image before anything is written.
            ctx.lifecycle.disk.ensure_created(ctx.diskimage, ctx.diskimage_size)
            if not ctx.lifecycle.probe.is_diskimage_mounted():
                ctx.lifecycle.attach_image()
        else:
            ctx.rootdir.mkdir(parents=True, exist_ok=True)

        logger.info("Environment root ready at %s", ctx.rootdir)
