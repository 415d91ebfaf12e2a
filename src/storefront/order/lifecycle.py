"""Order lifecycle service: places orders and drives their status changes.

Each write is a command processed by the domain, so the aggregate decides
(raising before anything is mutated) and its unit of work commits the order.
Stock and follow-up steps live outside that unit of work. Reservations for a
new order are taken before the order is saved and released again if the save
fails. Releasing stock on cancellation happens after the status change is
committed and errors propagate. Ledger entries and stock vouchers are follow-up
steps that are attempted once and only logged when they fail.
"""

import json
from functools import partial

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from storefront.accounting import recorder
from storefront.effects import SideEffect, run_side_effects
from storefront.errors import NotFound
from storefront.order.order import Order, OrderEffect, OrderStatus
from storefront.order.payment import MarkOrderPaid
from storefront.order.placement import PlaceOrder
from storefront.order.status import ChangeOrderStatus, LinkedRecord, LinkOrderRecord
from storefront.stock import get_stock_store, ledger
from storefront.stock.saga import CompensatingSequence
from storefront.voucher import workflow as voucher_workflow

logger = structlog.get_logger(__name__)


def _repository():
    return current_domain.repository_for(Order)


def _process(command, order_id):
    try:
        return current_domain.process(command, asynchronous=False)
    except ObjectNotFoundError as exc:
        raise NotFound("Order", order_id) from exc


def get_order(order_id) -> Order:
    try:
        return _repository().get(str(order_id))
    except ObjectNotFoundError as exc:
        raise NotFound("Order", order_id) from exc


def orders_for_user(user_id) -> list[Order]:
    """A customer's orders, newest first."""
    orders = _repository()._dao.query.filter(user_id=str(user_id)).all().items
    return sorted(orders, key=lambda order: order.created_at, reverse=True)


# ---------------------------------------------------------------------------
# Placement
# ---------------------------------------------------------------------------
def _normalize_lines(items):
    if not items:
        raise ValidationError({"items": ["An order needs at least one item"]})

    lines = []
    for line in items:
        product_id = line.get("product_id")
        if not product_id:
            raise ValidationError({"product_id": ["Product is required for every item"]})
        quantity = line.get("quantity")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError({"quantity": [f"Invalid quantity for product {product_id}"]})
        price = line.get("price", 0.0)
        if not isinstance(price, int | float) or price < 0:
            raise ValidationError({"price": [f"Invalid price for product {product_id}"]})
        lines.append(
            {
                "product_id": str(product_id),
                "name": line.get("name"),
                "quantity": quantity,
                "price": float(price),
            }
        )
    return lines


def place_order(user_id, items, payment_method, shipping_address, total_price=None) -> Order:
    """Reserve stock for every line and persist a pending order.

    Either every line is reserved and the order is saved, or nothing is: a
    failure on any line (``NotFound``, ``InsufficientStock``) or on the save
    releases the lines reserved before it and re-raises.
    """
    lines = _normalize_lines(items)
    store = get_stock_store()

    with CompensatingSequence("place_order", user_id=str(user_id)) as sequence:
        ledger.reserve_all([(line["product_id"], line["quantity"]) for line in lines], sequence=sequence)
        for line in lines:
            if not line["name"]:
                line["name"] = store.get(line["product_id"]).name

        order_id = current_domain.process(
            PlaceOrder(
                user_id=str(user_id),
                items=json.dumps(lines),
                payment_method=payment_method,
                shipping_address=json.dumps(shipping_address),
                total_price=total_price,
            ),
            asynchronous=False,
        )

    order = get_order(order_id)
    logger.info(
        "order_placed",
        order_id=order_id,
        user_id=str(user_id),
        items=len(lines),
        total_price=order.total_price,
    )
    return order


# ---------------------------------------------------------------------------
# Follow-up steps
# ---------------------------------------------------------------------------
def _link(order_id, record_type, record_id):
    current_domain.process(
        LinkOrderRecord(order_id=order_id, record_type=record_type.value, record_id=record_id),
        asynchronous=False,
    )


def _record_payment(order_id, recorded_by):
    order = get_order(order_id)
    if order.payment_transaction_id is not None:
        return None
    transaction = recorder.record_order_payment(order, recorded_by=recorded_by)
    _link(order_id, LinkedRecord.PAYMENT_TRANSACTION, str(transaction.id))
    return transaction


def _create_export_voucher(order_id, created_by):
    order = get_order(order_id)
    if order.export_voucher_id is not None:
        return None
    voucher = voucher_workflow.create_export_voucher_from_order(order, created_by=created_by)
    _link(order_id, LinkedRecord.EXPORT_VOUCHER, str(voucher.id))
    return voucher


def _record_refund(order_id, recorded_by):
    order = get_order(order_id)
    reason = order.refund_info.refund_reason if order.refund_info else None
    transaction = recorder.record_order_refund(order, reason=reason, recorded_by=recorded_by)
    _link(order_id, LinkedRecord.REFUND_TRANSACTION, str(transaction.id))
    return transaction


def _create_import_voucher(order_id, created_by):
    order = get_order(order_id)
    if order.import_voucher_id is not None:
        return None
    reason = order.refund_info.refund_reason if order.refund_info else None
    voucher = voucher_workflow.create_import_voucher_from_refund(
        order,
        reason=f"Restock from refunded order {order.id}" + (f": {reason}" if reason else ""),
        created_by=created_by,
    )
    _link(order_id, LinkedRecord.IMPORT_VOUCHER, str(voucher.id))
    return voucher


_EFFECT_STEPS = {
    OrderEffect.RECORD_PAYMENT: _record_payment,
    OrderEffect.CREATE_EXPORT_VOUCHER: _create_export_voucher,
    OrderEffect.RECORD_REFUND: _record_refund,
    OrderEffect.CREATE_IMPORT_VOUCHER: _create_import_voucher,
}


def _run_effects(order_id, effects, actor):
    run_side_effects(
        [SideEffect(effect.value, partial(_EFFECT_STEPS[effect], order_id, actor)) for effect in effects],
        order_id=order_id,
    )


# ---------------------------------------------------------------------------
# Payment and status changes
# ---------------------------------------------------------------------------
def mark_paid(order_id, payment_result=None, updated_by=None) -> Order:
    """Record payment without changing status.

    Income is recorded only the first time an order is paid; repeating the
    call just refreshes the payment metadata.
    """
    order_id = str(order_id)
    first_payment = _process(
        MarkOrderPaid(
            order_id=order_id,
            payment_result=json.dumps(payment_result) if payment_result is not None else None,
        ),
        order_id,
    )
    logger.info("order_paid", order_id=order_id, first_payment=first_payment)

    if first_payment:
        _run_effects(order_id, (OrderEffect.RECORD_PAYMENT,), updated_by)
    return get_order(order_id)


def update_status(order_id, status, updated_by=None, reason=None, notes=None, restock=False) -> Order:
    """Move an order along the transition table.

    Raises:
        NotFound: No such order.
        ValidationError: ``status`` is not an order status.
        InvalidTransition: The edge is not allowed; nothing is changed.
    """
    order_id = str(order_id)
    if not isinstance(status, str | OrderStatus):
        raise ValidationError({"status": [f"Unknown order status: {status}"]})
    transition = _process(
        ChangeOrderStatus(
            order_id=order_id,
            status=status.value if isinstance(status, OrderStatus) else status,
            reason=reason,
            notes=notes,
            restock=bool(restock),
        ),
        order_id,
    )
    if not transition.changed:
        logger.info("order_transition_skipped", order_id=order_id, status=transition.current.value)
        return get_order(order_id)

    logger.info(
        "order_status_changed",
        order_id=order_id,
        previous=transition.previous.value,
        current=transition.current.value,
        updated_by=updated_by,
    )

    order = get_order(order_id)
    if transition.releases_stock:
        ledger.release_all(order.reserved_lines())

    if transition.effects:
        _run_effects(order_id, transition.effects, updated_by)
        return get_order(order_id)
    return order


def start_processing(order_id, updated_by=None) -> Order:
    return update_status(order_id, OrderStatus.PROCESSING.value, updated_by=updated_by)


def complete_order(order_id, updated_by=None) -> Order:
    return update_status(order_id, OrderStatus.COMPLETED.value, updated_by=updated_by)


def cancel_order(order_id, cancelled_by=None) -> Order:
    """Cancel an order and return its stock; cancelling twice is a no-op."""
    return update_status(order_id, OrderStatus.CANCELLED.value, updated_by=cancelled_by)


def request_refund(order_id, reason=None, notes=None, requested_by=None) -> Order:
    return update_status(
        order_id,
        OrderStatus.REFUND_REQUESTED.value,
        updated_by=requested_by,
        reason=reason,
        notes=notes,
    )


def refund_order(order_id, reason=None, notes=None, restock=False, refunded_by=None) -> Order:
    """Refund an order awaiting refund.

    With ``restock`` an import voucher is drafted for the order's items; the
    stock comes back when that voucher is approved, not here.
    """
    return update_status(
        order_id,
        OrderStatus.REFUNDED.value,
        updated_by=refunded_by,
        reason=reason,
        notes=notes,
        restock=restock,
    )
