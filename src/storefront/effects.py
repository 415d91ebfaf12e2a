"""Best-effort follow-up steps that run after a primary change is committed.

Ledger entries, stock vouchers and history records are attempted once each
after the order or voucher has been saved. A failure is wrapped in
``DownstreamFailure``, logged, and does not undo the committed change.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

import structlog

from storefront.errors import DownstreamFailure

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SideEffect:
    name: str
    action: Callable[[], Any]

    def attempt(self) -> Any:
        try:
            return self.action()
        except DownstreamFailure:
            raise
        except Exception as exc:
            raise DownstreamFailure(self.name, exc) from exc


def run_side_effects(effects: Iterable[SideEffect], **context: Any) -> None:
    """Attempt each effect in order; failures are logged, never raised."""
    failed = []
    attempted = 0
    for effect in effects:
        attempted += 1
        try:
            effect.attempt()
        except DownstreamFailure as failure:
            logger.error(
                "side_effect_failed",
                effect=failure.effect,
                error=str(failure.cause),
                exc_info=failure,
                **context,
            )
            failed.append(effect.name)
        else:
            logger.info("side_effect_completed", effect=effect.name, **context)

    if failed:
        logger.warning("side_effects_incomplete", attempted=attempted, failed=failed, **context)
