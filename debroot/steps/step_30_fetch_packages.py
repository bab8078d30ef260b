from __future__ import annotations

import logging

from ..errors import ConfigurationMissing
from ..lib.manifests import load_package_manifest
from ..pipeline import ProvisionCtx

logger = logging.getLogger(__name__)


class FetchPackagesStep:
    step_id = "30_fetch_packages"

    def run(self, ctx: ProvisionCtx) -> None:
        entries = load_package_manifest(ctx.cfg.packages_manifest)
        archives = ctx.rootdir / "var/cache/apt/archives"
        base = ctx.cfg.packages_base_url

        unpinned = [e.filename(ctx.arch) for e in entries if not e.checksum(ctx.arch)]
        if unpinned:
            if not ctx.cfg.allow_unverified_packages:
                raise ConfigurationMissing(
                    f"No sha256 for {ctx.arch} in the package manifest: {', '.join(unpinned)}; "
                    "pin digests or set packages.allow_unverified"
                )
            logger.warning("packages.allow_unverified is set; %d package(s) will not be verified", len(unpinned))

        ctx.fetched = []
        for entry in entries:
            url = f"{base}/{entry.url_path(ctx.arch)}"
            dest = archives / entry.filename(ctx.arch)
            ctx.fetched.append(ctx.fetcher.fetch(url, dest, entry.checksum(ctx.arch)))

        logger.info("Fetched %d package(s) for %s", len(ctx.fetched), ctx.arch)
