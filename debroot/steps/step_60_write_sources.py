from __future__ import annotations

import logging
from datetime import datetime, timezone

from ..lib.pkg import write_sources_list
from ..pipeline import ProvisionCtx

logger = logging.getLogger(__name__)


class WriteSourcesStep:
    step_id = "60_write_sources"

    def run(self, ctx: ProvisionCtx) -> None:
        release = ctx.rootdir / "etc/debroot-release"
        release.parent.mkdir(parents=True, exist_ok=True)
        release.write_text(
            "NAME=debroot\n"
            f"SUITE={ctx.cfg.debian_suite}\n"
            f"ARCH={ctx.arch}\n"
            f"BOOTSTRAPPED={datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')}\n",
            encoding="utf-8",
        )

        write_sources_list(
            str(ctx.rootdir),
            ctx.cfg.debian_mirror,
            suite=ctx.cfg.debian_suite,
            component=ctx.cfg.debian_component,
        )
