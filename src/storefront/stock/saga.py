"""Compensating sequence for multi-step stock changes.

Reserving several order lines, or applying every line of a voucher, is not one
database transaction. Each step that succeeds registers its inverse; if a later
step fails, the registered inverses run newest-first and the original error is
re-raised::

    with CompensatingSequence("place_order") as sequence:
        for line in lines:
            sequence.apply(
                partial(ledger.reserve, line.product_id, line.quantity),
                ledger.undo,
            )
"""

from collections.abc import Callable
from functools import partial
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


class CompensatingSequence:
    def __init__(self, name: str, **context: Any) -> None:
        self.name = name
        self.context = context
        self._compensations: list[Callable[[], Any]] = []

    def __enter__(self) -> "CompensatingSequence":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc is not None:
            self.compensate(exc)
        return False

    def apply(self, action: Callable[[], Any], compensation: Callable[[Any], Any] | None = None) -> Any:
        """Run ``action``; on success remember ``compensation(result)`` for rollback."""
        result = action()
        if compensation is not None:
            self._compensations.append(partial(compensation, result))
        return result

    @property
    def completed_steps(self) -> int:
        return len(self._compensations)

    def compensate(self, error: BaseException) -> None:
        logger.warning(
            "compensating_sequence_rolling_back",
            sequence=self.name,
            steps=len(self._compensations),
            error=str(error),
            **self.context,
        )
        while self._compensations:
            undo = self._compensations.pop()
            try:
                undo()
            except Exception as undo_error:
                # The original error is what the caller must see
                logger.error(
                    "compensation_step_failed",
                    sequence=self.name,
                    error=str(undo_error),
                    exc_info=undo_error,
                    **self.context,
                )
