"""debroot: a Debian overlay environment on top of a read-only host.

Core design goals:
- Flag-driven lifecycle (bootstrap, mount, unmount, resize, delete)
- Idempotent, order-safe transitions
- All-or-nothing overlay mounts with rollback
- Verified package downloads
- Centralized logging
"""

__all__ = []
