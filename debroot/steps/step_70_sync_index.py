from __future__ import annotations

import logging

from ..errors import ConfigurationMissing
from ..pipeline import ProvisionCtx

logger = logging.getLogger(__name__)

TRUSTED_KEYS = "etc/apt/trusted.gpg.d"
KEY_SUFFIXES = {".asc", ".gpg"}


class SyncIndexStep:
    """Install the repository key, then refresh the package index.

    The key comes from repository.key_url (pinned by repository.key_sha256)
    or from the keyrings debian-archive-keyring placed in trusted.gpg.d.
    Without either, apt would fetch an index it cannot authenticate.
    """

    step_id = "70_sync_index"

    def run(self, ctx: ProvisionCtx) -> None:
        trusted = ctx.rootdir / TRUSTED_KEYS
        key_url = ctx.cfg.repository_key_url
        if key_url:
            if not ctx.cfg.repository_key_sha256:
                raise ConfigurationMissing("repository.key_url is set but repository.key_sha256 is not")
            key = trusted / "debroot.asc"
            ctx.fetcher.fetch(key_url, key, ctx.cfg.repository_key_sha256)
            key.chmod(0o644)

        keys = sorted(p.name for p in trusted.iterdir() if p.suffix in KEY_SUFFIXES) if trusted.is_dir() else []
        if not keys:
            raise ConfigurationMissing(
                f"No repository signing key in {trusted}; install debian-archive-keyring or set repository.key_url"
            )
        logger.info("Trusted repository keys: %s", ", ".join(keys))

        ctx.installer.update()
        logger.info("Package index synchronized")
