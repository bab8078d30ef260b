from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, List, Protocol, Sequence

from .config import EnvConfig
from .lib.env import HostLayout
from .lib.fetch import VerifiedFetcher
from .lib.pkg import PackageInstaller

if TYPE_CHECKING:
    from .lifecycle import Lifecycle

logger = logging.getLogger(__name__)


@dataclass
class ProvisionCtx:
    cfg: EnvConfig
    layout: HostLayout
    lifecycle: "Lifecycle"
    fetcher: VerifiedFetcher
    installer: PackageInstaller
    rootdir: Path
    diskimage: str = ""
    diskimage_size: str = ""
    arch: str = ""
    fetched: List[Path] = field(default_factory=list)


class Step(Protocol):
    """A single provisioning step."""

    step_id: str

    def run(self, ctx: ProvisionCtx) -> None:
        ...


@dataclass(frozen=True)
class PipelineResult:
    ran_steps: List[str]


def run_pipeline(*, ctx: ProvisionCtx, steps: Sequence[Step]) -> PipelineResult:
    """Run steps in order. The first failure aborts; there is no resume."""

    ran: List[str] = []
    for step in steps:
        logger.info("Running step %s", step.step_id)
        try:
            step.run(ctx)
        except Exception:
            logger.error("Step %s failed; completed: %s", step.step_id, ", ".join(ran) or "none")
            raise
        ran.append(step.step_id)

    return PipelineResult(ran_steps=ran)
