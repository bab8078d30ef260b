from __future__ import annotations

import logging

from ..errors import DebrootError, PackageInstallFailure
from ..pipeline import ProvisionCtx

logger = logging.getLogger(__name__)


class InstallPackagesStep:
    step_id = "50_install_packages"

    def run(self, ctx: ProvisionCtx) -> None:
        # Manifest order is the dependency order; never reorder here.
        for local in ctx.fetched:
            live = ctx.layout.live_archives / local.name
            try:
                ctx.installer.install(live)
            except DebrootError as e:
                raise PackageInstallFailure(
                    f"Installing {local.name} failed; run delete and bootstrap again: {e}"
                ) from e
            logger.info("Installed %s", local.name)
