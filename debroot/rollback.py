from __future__ import annotations

import logging
from dataclasses import dataclass
from types import TracebackType
from typing import Callable, List, Optional, Type

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MountOperation:
    """A host mutation paired with the action that undoes it."""

    description: str
    apply: Callable[[], None]
    revert: Callable[[], None]


class RollbackStack:
    """Apply operations in order; on error revert the applied ones in reverse.

    Usage:

        with RollbackStack() as stack:
            stack.push(op1)
            stack.push(op2)
            stack.commit()

    Leaving the block with an exception reverts everything pushed so far
    (unless commit() was called) and lets the exception propagate. A failing
    revert is logged and the remaining reverts still run.
    """

    def __init__(self) -> None:
        self._applied: List[MountOperation] = []

    @property
    def applied(self) -> List[str]:
        return [op.description for op in self._applied]

    def push(self, op: MountOperation) -> None:
        logger.debug("apply: %s", op.description)
        op.apply()
        self._applied.append(op)

    def commit(self) -> None:
        self._applied.clear()

    def rollback(self) -> None:
        while self._applied:
            op = self._applied.pop()
            logger.info("rollback: %s", op.description)
            try:
                op.revert()
            except Exception:  # noqa: BLE001 - keep unwinding the rest
                logger.exception("rollback step failed: %s", op.description)

    def __enter__(self) -> "RollbackStack":
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        if exc_type is not None:
            self.rollback()
