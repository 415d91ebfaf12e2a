"""Inventory ledger: the only path through which stock counters change.

Order and voucher services call these functions rather than the store
directly, so every movement is logged in one place.
"""

from collections.abc import Iterable
from functools import partial

import structlog

from storefront.stock import get_stock_store
from storefront.stock.port import StockMovement
from storefront.stock.saga import CompensatingSequence

logger = structlog.get_logger(__name__)


def reserve(product_id: str, quantity: int) -> StockMovement:
    """Atomically take ``quantity`` units; raises InsufficientStock or NotFound."""
    movement = get_stock_store().reserve(product_id, quantity)
    logger.info(
        "stock_reserved",
        product_id=movement.product_id,
        quantity=quantity,
        quantity_after=movement.quantity_after,
    )
    return movement


def release(product_id: str, quantity: int) -> StockMovement:
    movement = get_stock_store().release(product_id, quantity)
    logger.info(
        "stock_released",
        product_id=movement.product_id,
        quantity=quantity,
        quantity_after=movement.quantity_after,
    )
    return movement


def undo(movement: StockMovement) -> StockMovement:
    """Apply the inverse of ``movement``."""
    if movement.quantity_change < 0:
        return release(movement.product_id, -movement.quantity_change)
    return reserve(movement.product_id, movement.quantity_change)


def reserve_all(lines: Iterable[tuple[str, int]], sequence: CompensatingSequence | None = None) -> list[StockMovement]:
    """Reserve every ``(product_id, quantity)`` line, or none of them.

    With ``sequence`` the reservations join an enclosing compensating sequence,
    so a failure later in that sequence releases them as well.
    """
    if sequence is None:
        with CompensatingSequence("reserve_all") as own:
            return reserve_all(lines, sequence=own)
    return [sequence.apply(partial(reserve, product_id, quantity), undo) for product_id, quantity in lines]


def release_all(lines: Iterable[tuple[str, int]]) -> list[StockMovement]:
    """Release every ``(product_id, quantity)`` line; the first failure propagates."""
    return [release(product_id, quantity) for product_id, quantity in lines]
