"""Stock voucher workflow: draft, edit, approve, reject, cancel and delete vouchers.

Approval is the only step that touches stock. Its line items are applied
through the inventory ledger as a compensating sequence that also wraps the
approval command: if any line fails, or the approval cannot be saved because
the voucher was decided concurrently, the lines already applied are undone and
the voucher stays as it was. History entries and the ledger transaction are
recorded after the approval is saved, as best-effort follow-up steps.
"""

import json
from collections import defaultdict
from functools import partial

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from storefront.accounting import recorder
from storefront.effects import SideEffect, run_side_effects
from storefront.errors import InsufficientStock, InvalidTransition, NotFound
from storefront.stock import get_stock_store, ledger
from storefront.stock.port import StockMovement
from storefront.stock.saga import CompensatingSequence
from storefront.voucher.history import RecordStockMovement
from storefront.voucher.management import (
    ApproveStockVoucher,
    CancelStockVoucher,
    CreateStockVoucher,
    DeleteStockVoucher,
    RejectStockVoucher,
    UpdateStockVoucher,
)
from storefront.voucher.voucher import StockVoucher, VoucherSource, VoucherStatus, VoucherType

logger = structlog.get_logger(__name__)


def _normalize_items(items, check_availability=False):
    """Validate raw line items and fill in catalog snapshots."""
    if not items:
        raise ValidationError({"items": ["A voucher needs at least one item"]})

    store = get_stock_store()
    normalized = []
    requested = defaultdict(int)
    for line in items:
        product_id = line.get("product_id")
        if not product_id:
            raise ValidationError({"product_id": ["Product is required for every item"]})
        quantity = line.get("quantity")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError({"quantity": [f"Invalid quantity for product {product_id}"]})

        stock_item = store.get(product_id)
        cost_price = line.get("cost_price")
        normalized.append(
            {
                "product_id": str(product_id),
                "product_name": line.get("product_name") or stock_item.name,
                "quantity": quantity,
                "unit": line.get("unit") or stock_item.unit,
                "cost_price": stock_item.cost_price if cost_price is None else cost_price,
                "note": line.get("note"),
            }
        )
        requested[str(product_id)] += quantity

    # Advisory only: approval re-checks atomically
    if check_availability:
        for product_id, quantity in requested.items():
            available = store.quantity_of(product_id)
            if available < quantity:
                raise InsufficientStock(product_id, quantity, available)

    return normalized


def _catalog_snapshot(product_id):
    store = get_stock_store()
    if store.exists(product_id):
        return store.get(product_id)
    return None


def _process(command, voucher_id=None):
    try:
        return current_domain.process(command, asynchronous=False)
    except ObjectNotFoundError as exc:
        raise NotFound("StockVoucher", voucher_id) from exc


def _create(created_by=None, **fields):
    voucher_id = _process(CreateStockVoucher(created_by=created_by, **fields))
    return get_voucher(voucher_id)


def create_voucher(voucher_type, reason, items, created_by=None, notes=None, related_order_id=None):
    """Draft a manual voucher after validating its items against the catalog."""
    if voucher_type not in {t.value for t in VoucherType}:
        raise ValidationError({"voucher_type": [f"Unknown voucher type: {voucher_type}"]})

    items_data = _normalize_items(items, check_availability=voucher_type == VoucherType.EXPORT.value)
    voucher = _create(
        voucher_type=voucher_type,
        reason=reason,
        items=json.dumps(items_data),
        notes=notes,
        related_order_id=related_order_id,
        created_by=created_by,
    )
    logger.info(
        "voucher_created",
        voucher_id=str(voucher.id),
        voucher_number=voucher.voucher_number,
        voucher_type=voucher_type,
        items=len(items_data),
    )
    return voucher


def create_export_voucher_from_order(order, created_by=None):
    """Document the goods a completed order took out of stock.

    The order reserved these units when it was placed, so the voucher is
    marked as settled and approving it does not deduct them again.
    """
    items_data = []
    for item in order.items or []:
        snapshot = _catalog_snapshot(item.product_id)
        items_data.append(
            {
                "product_id": str(item.product_id),
                "product_name": item.name,
                "quantity": item.quantity,
                "unit": snapshot.unit if snapshot else "unit",
                "cost_price": snapshot.cost_price if snapshot else 0.0,
            }
        )
    voucher = _create(
        voucher_type=VoucherType.EXPORT.value,
        reason=f"Order {order.id} completed",
        items=json.dumps(items_data),
        source=VoucherSource.ORDER_COMPLETION.value,
        related_order_id=str(order.id),
        settled_by_order=True,
        created_by=created_by,
    )
    logger.info("order_export_voucher_created", voucher_id=str(voucher.id), order_id=str(order.id))
    return voucher


def create_import_voucher_from_refund(order, reason=None, created_by=None):
    """Draft the restock of a refunded order; stock returns when it is approved."""
    items_data = []
    for item in order.items or []:
        snapshot = _catalog_snapshot(item.product_id)
        cost_price = snapshot.cost_price if snapshot and snapshot.cost_price else item.price
        items_data.append(
            {
                "product_id": str(item.product_id),
                "product_name": item.name,
                "quantity": item.quantity,
                "unit": snapshot.unit if snapshot else "unit",
                "cost_price": cost_price,
            }
        )
    voucher = _create(
        voucher_type=VoucherType.IMPORT.value,
        reason=reason or f"Restock from refunded order {order.id}",
        items=json.dumps(items_data),
        source=VoucherSource.ORDER_REFUND.value,
        related_order_id=str(order.id),
        created_by=created_by,
    )
    logger.info("refund_import_voucher_created", voucher_id=str(voucher.id), order_id=str(order.id))
    return voucher


def get_voucher(voucher_id):
    try:
        return current_domain.repository_for(StockVoucher).get(str(voucher_id))
    except ObjectNotFoundError as exc:
        raise NotFound("StockVoucher", voucher_id) from exc


def update_voucher(voucher_id, reason=None, notes=None, items=None):
    voucher = get_voucher(voucher_id)
    items_json = None
    if items is not None:
        items_data = _normalize_items(
            items,
            check_availability=voucher.voucher_type == VoucherType.EXPORT.value,
        )
        items_json = json.dumps(items_data)
    _process(
        UpdateStockVoucher(voucher_id=str(voucher.id), reason=reason, notes=notes, items=items_json),
        voucher_id,
    )
    logger.info("voucher_updated", voucher_id=str(voucher.id))
    return get_voucher(voucher_id)


def _record_history(movement, voucher, item, performed_by):
    return current_domain.process(
        RecordStockMovement(
            product_id=movement.product_id,
            product_name=item.product_name,
            movement_type=voucher.voucher_type,
            quantity_before=movement.quantity_before,
            quantity_after=movement.quantity_after,
            reason=voucher.reason,
            voucher_id=str(voucher.id),
            voucher_number=voucher.voucher_number,
            related_order_id=voucher.related_order_id,
            performed_by=performed_by,
            note=item.note,
        ),
        asynchronous=False,
    )


def _record_settled_history(voucher, item, later_quantity, performed_by):
    """History for a line whose units the order already took.

    ``later_quantity`` counts the units of the same product on later lines,
    so repeated lines chain their before/after values.
    """
    after = get_stock_store().quantity_of(str(item.product_id)) + later_quantity
    movement = StockMovement(
        product_id=str(item.product_id),
        quantity_before=after + item.quantity,
        quantity_after=after,
    )
    return _record_history(movement, voucher, item, performed_by)


def _history_effects(voucher, moved, approved_by):
    if voucher.moves_stock_on_approval():
        return [
            SideEffect(
                f"record_stock_history:{item.product_id}",
                partial(_record_history, movement, voucher, item, approved_by),
            )
            for item, movement in moved
        ]

    effects = []
    later = defaultdict(int)
    for item in reversed(voucher.items or []):
        effects.append(
            SideEffect(
                f"record_stock_history:{item.product_id}",
                partial(_record_settled_history, voucher, item, later[str(item.product_id)], approved_by),
            )
        )
        later[str(item.product_id)] += item.quantity
    effects.reverse()
    return effects


def approve_voucher(voucher_id, approved_by=None):
    """Approve a pending voucher and apply its stock movements.

    Raises:
        InvalidTransition: The voucher is not pending, including when a
            concurrent approval committed first. Lines applied are undone.
        InsufficientStock: An export line exceeds the stock available at
            approval time. Lines applied before it are undone.
    """
    voucher = get_voucher(voucher_id)
    if not voucher.is_pending():
        raise InvalidTransition("StockVoucher", voucher.status, VoucherStatus.APPROVED.value)

    moved = []
    with CompensatingSequence("approve_voucher", voucher_id=str(voucher.id)) as sequence:
        if voucher.moves_stock_on_approval():
            lines = [(str(item.product_id), item.quantity) for item in voucher.items]
            if voucher.voucher_type == VoucherType.EXPORT.value:
                movements = ledger.reserve_all(lines, sequence=sequence)
            else:
                movements = [
                    sequence.apply(partial(ledger.release, product_id, quantity), ledger.undo)
                    for product_id, quantity in lines
                ]
            moved = list(zip(voucher.items, movements, strict=True))
        _process(ApproveStockVoucher(voucher_id=str(voucher.id), approved_by=approved_by), voucher_id)

    voucher = get_voucher(voucher_id)
    logger.info(
        "voucher_approved",
        voucher_id=str(voucher.id),
        voucher_number=voucher.voucher_number,
        voucher_type=voucher.voucher_type,
        lines_moved=len(moved),
    )

    effects = _history_effects(voucher, moved, approved_by)
    if voucher.voucher_type == VoucherType.IMPORT.value:
        record = SideEffect("record_voucher_import", partial(recorder.record_voucher_import, voucher, approved_by))
    else:
        record = SideEffect("record_voucher_export", partial(recorder.record_voucher_export, voucher, approved_by))
    effects.append(record)
    run_side_effects(effects, voucher_id=str(voucher.id))

    return voucher


def reject_voucher(voucher_id, rejected_by=None, rejection_reason=None):
    _process(
        RejectStockVoucher(
            voucher_id=str(voucher_id),
            rejected_by=rejected_by,
            rejection_reason=rejection_reason,
        ),
        voucher_id,
    )
    logger.info("voucher_rejected", voucher_id=str(voucher_id), rejected_by=rejected_by)
    return get_voucher(voucher_id)


def cancel_voucher(voucher_id, cancelled_by=None):
    _process(CancelStockVoucher(voucher_id=str(voucher_id), cancelled_by=cancelled_by), voucher_id)
    logger.info("voucher_cancelled", voucher_id=str(voucher_id), cancelled_by=cancelled_by)
    return get_voucher(voucher_id)


def delete_voucher(voucher_id, deleted_by=None):
    """Remove a pending draft. Decided vouchers raise InvalidTransition."""
    _process(DeleteStockVoucher(voucher_id=str(voucher_id), deleted_by=deleted_by), voucher_id)
    logger.info("voucher_deleted", voucher_id=str(voucher_id), deleted_by=deleted_by)


def list_vouchers(voucher_type=None, status=None, source=None):
    """Vouchers matching the filters, newest first."""
    filters = {}
    if voucher_type is not None:
        filters["voucher_type"] = voucher_type
    if status is not None:
        filters["status"] = status
    if source is not None:
        filters["source"] = source

    query = current_domain.repository_for(StockVoucher)._dao.query
    if filters:
        query = query.filter(**filters)
    return sorted(query.all().items, key=lambda v: v.created_at, reverse=True)


def vouchers_for_order(order_id):
    return [
        voucher
        for voucher in list_vouchers()
        if voucher.related_order_id is not None and str(voucher.related_order_id) == str(order_id)
    ]


def pending_vouchers():
    return list_vouchers(status=VoucherStatus.PENDING.value)
