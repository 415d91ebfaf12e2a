"""Order aggregate (CQRS): the core of the storefront.

Stock for every line is reserved when the order is placed and released again
only on cancellation. Status changes go through a single transition table
that maps ``(current, target)`` to the rule for that edge: whether the order
must be paid, whether stock is released, and which follow-up steps (ledger
entries, stock vouchers) the lifecycle service should attempt afterwards.

State Machine::

    PENDING → PROCESSING → COMPLETED
    PENDING/PROCESSING/REFUND_REQUESTED → CANCELLED
    PENDING/PROCESSING/COMPLETED → REFUND_REQUESTED → REFUNDED
    REFUND_REQUESTED → COMPLETED  (refund declined)

``PROCESSING``, ``COMPLETED`` and ``CANCELLED`` accept a repeat of their own
status as a no-op.
"""

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, HasMany, Identifier, Integer, String, ValueObject

from storefront.domain import storefront
from storefront.errors import InvalidTransition
from storefront.order.events import (
    OrderCancelled,
    OrderCompleted,
    OrderPaid,
    OrderPlaced,
    OrderProcessing,
    OrderRefunded,
    RefundRequested,
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    REFUND_REQUESTED = "refund_requested"
    REFUNDED = "refunded"


class PaymentMethod(Enum):
    COD = "cod"
    VNPAY = "vnpay"
    BANK_TRANSFER = "bank_transfer"
    OTHER = "other"


class OrderEffect(Enum):
    RECORD_PAYMENT = "record_payment"
    CREATE_EXPORT_VOUCHER = "create_export_voucher"
    RECORD_REFUND = "record_refund"
    CREATE_IMPORT_VOUCHER = "create_import_voucher"


# ---------------------------------------------------------------------------
# Transition table
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class TransitionRule:
    requires_paid: bool = False
    releases_stock: bool = False
    no_op: bool = False
    # Goods already handed over cannot be put back on the shelf by cancelling
    forbidden_after_completion: bool = False
    effects: tuple[OrderEffect, ...] = ()


@dataclass(frozen=True)
class Transition:
    """What a status change did, and what the lifecycle service must do next."""

    previous: OrderStatus
    current: OrderStatus
    changed: bool
    releases_stock: bool = False
    effects: tuple[OrderEffect, ...] = ()


_NO_OP = TransitionRule(no_op=True)
_COMPLETE = TransitionRule(effects=(OrderEffect.CREATE_EXPORT_VOUCHER,))
_CANCEL = TransitionRule(releases_stock=True)
_REQUEST_REFUND = TransitionRule(requires_paid=True)

_TRANSITIONS = {
    (OrderStatus.PENDING, OrderStatus.PROCESSING): TransitionRule(
        requires_paid=True,
        effects=(OrderEffect.RECORD_PAYMENT,),
    ),
    (OrderStatus.PROCESSING, OrderStatus.PROCESSING): _NO_OP,
    (OrderStatus.PENDING, OrderStatus.COMPLETED): _COMPLETE,
    (OrderStatus.PROCESSING, OrderStatus.COMPLETED): _COMPLETE,
    (OrderStatus.REFUND_REQUESTED, OrderStatus.COMPLETED): _COMPLETE,
    (OrderStatus.COMPLETED, OrderStatus.COMPLETED): _NO_OP,
    (OrderStatus.PENDING, OrderStatus.CANCELLED): _CANCEL,
    (OrderStatus.PROCESSING, OrderStatus.CANCELLED): _CANCEL,
    (OrderStatus.REFUND_REQUESTED, OrderStatus.CANCELLED): TransitionRule(
        releases_stock=True,
        forbidden_after_completion=True,
    ),
    (OrderStatus.CANCELLED, OrderStatus.CANCELLED): _NO_OP,
    (OrderStatus.PENDING, OrderStatus.REFUND_REQUESTED): _REQUEST_REFUND,
    (OrderStatus.PROCESSING, OrderStatus.REFUND_REQUESTED): _REQUEST_REFUND,
    (OrderStatus.COMPLETED, OrderStatus.REFUND_REQUESTED): _REQUEST_REFUND,
    (OrderStatus.REFUND_REQUESTED, OrderStatus.REFUNDED): TransitionRule(
        requires_paid=True,
        effects=(OrderEffect.RECORD_REFUND, OrderEffect.CREATE_IMPORT_VOUCHER),
    ),
}

_UNPAYABLE_STATES = {OrderStatus.CANCELLED, OrderStatus.REFUNDED}


def transition_rule(current: OrderStatus, target: OrderStatus) -> TransitionRule | None:
    return _TRANSITIONS.get((current, target))


def parse_status(value) -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(value)
    except ValueError:
        raise ValidationError({"status": [f"Unknown order status: {value}"]}) from None


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@storefront.value_object(part_of="Order")
class ShippingAddress:
    """Delivery address captured when the order was placed.

    A snapshot: later edits to the customer's address book do not change it.
    """

    full_name = String(required=True, max_length=255)
    phone = String(required=True, max_length=30)
    province_name = String(max_length=100)
    district_name = String(max_length=100)
    ward_name = String(max_length=100)
    street_address = String(max_length=255)
    full_address = String(max_length=500)


@storefront.value_object(part_of="Order")
class PaymentResult:
    """Metadata reported by the payment provider."""

    payment_id = String(max_length=255)
    status = String(max_length=50)
    update_time = String(max_length=50)
    email_address = String(max_length=255)


@storefront.value_object(part_of="Order")
class RefundInfo:
    refund_reason = String(max_length=500)
    refund_date = DateTime()
    refund_transaction_id = String(max_length=255)
    notes = String(max_length=1000)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@storefront.entity(part_of="Order")
class OrderItem:
    """A line item with the name and unit price captured at order time."""

    product_id = Identifier(required=True)
    name = String(required=True, max_length=255)
    quantity = Integer(required=True, min_value=1)
    price = Float(min_value=0.0, default=0.0)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@storefront.aggregate
class Order:
    user_id = Identifier(required=True)
    items = HasMany(OrderItem)
    shipping_address = ValueObject(ShippingAddress)
    payment_method = String(required=True, choices=PaymentMethod)
    total_price = Float(min_value=0.0, default=0.0)
    status = String(
        choices=OrderStatus,
        default=OrderStatus.PENDING.value,
    )
    is_paid = Boolean(default=False)
    paid_at = DateTime()
    payment_result = ValueObject(PaymentResult)
    refund_info = ValueObject(RefundInfo)
    restock_requested = Boolean(default=False)

    # Idempotency markers for the follow-up steps of each transition
    payment_transaction_id = Identifier()
    export_voucher_id = Identifier()
    import_voucher_id = Identifier()
    stock_released = Boolean(default=False)

    completed_at = DateTime()
    cancelled_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def place(cls, user_id, items_data, payment_method, shipping_address, total_price=None):
        """Create a pending order for lines whose stock is already reserved.

        Args:
            user_id: The customer placing the order.
            items_data: List of dicts with product_id, name, quantity, price.
            payment_method: One of ``PaymentMethod``.
            shipping_address: Dict (or ShippingAddress) snapshot.
            total_price: Defaults to the sum of price * quantity.
        """
        if not items_data:
            raise ValidationError({"items": ["An order needs at least one item"]})
        if total_price is None:
            total_price = sum(item["price"] * item["quantity"] for item in items_data)

        now = datetime.now(UTC)
        order = cls(
            user_id=user_id,
            payment_method=payment_method,
            shipping_address=(
                ShippingAddress(**shipping_address) if isinstance(shipping_address, dict) else shipping_address
            ),
            total_price=round(float(total_price), 2),
            status=OrderStatus.PENDING.value,
            created_at=now,
            updated_at=now,
        )
        for item_data in items_data:
            order.add_items(OrderItem(**item_data))
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                user_id=str(user_id),
                items=json.dumps(items_data),
                payment_method=payment_method,
                total_price=order.total_price,
                placed_at=now,
            )
        )
        return order

    def reserved_lines(self):
        """``(product_id, quantity)`` for every line, in order."""
        return [(str(item.product_id), item.quantity) for item in self.items or []]

    # -------------------------------------------------------------------
    # Payment
    # -------------------------------------------------------------------
    def mark_paid(self, payment_result=None):
        """Record payment. Returns True only for the first successful payment."""
        current = OrderStatus(self.status)
        if current in _UNPAYABLE_STATES:
            raise InvalidTransition("Order", current.value, "paid", reason=f"order is {current.value}")

        was_paid = self.is_paid
        now = datetime.now(UTC)
        if payment_result is not None:
            self.payment_result = (
                PaymentResult(**payment_result) if isinstance(payment_result, dict) else payment_result
            )
        self.updated_at = now
        if was_paid:
            return False

        self.is_paid = True
        self.paid_at = now
        self.raise_(
            OrderPaid(
                order_id=str(self.id),
                payment_method=self.payment_method,
                total_price=self.total_price,
                payment_reference=self.payment_result.payment_id if self.payment_result else None,
                paid_at=now,
            )
        )
        return True

    def link_payment_transaction(self, transaction_id):
        self.payment_transaction_id = transaction_id
        self.updated_at = datetime.now(UTC)

    # -------------------------------------------------------------------
    # Status transitions
    # -------------------------------------------------------------------
    def transition_to(self, target, reason=None, notes=None, restock=False):
        """Apply the status change described by the transition table.

        Raises InvalidTransition for any edge not in the table, and for edges
        whose preconditions fail; the order is left untouched in both cases.
        """
        current = OrderStatus(self.status)
        target = parse_status(target)
        rule = transition_rule(current, target)
        if rule is None:
            raise InvalidTransition("Order", current.value, target.value)
        if rule.no_op:
            return Transition(previous=current, current=current, changed=False)
        if rule.requires_paid and not self.is_paid:
            raise InvalidTransition("Order", current.value, target.value, reason="order has not been paid")
        if rule.forbidden_after_completion and self.completed_at is not None:
            raise InvalidTransition("Order", current.value, target.value, reason="order was already completed")

        now = datetime.now(UTC)
        self.status = target.value
        self.updated_at = now

        if target == OrderStatus.PROCESSING:
            self.raise_(OrderProcessing(order_id=str(self.id), changed_at=now))
        elif target == OrderStatus.COMPLETED:
            self.completed_at = now
            self.raise_(OrderCompleted(order_id=str(self.id), changed_at=now))
        elif target == OrderStatus.CANCELLED:
            self.cancelled_at = now
            self.raise_(
                OrderCancelled(
                    order_id=str(self.id),
                    items=json.dumps(self.reserved_lines()),
                    changed_at=now,
                )
            )
        elif target == OrderStatus.REFUND_REQUESTED:
            self.refund_info = RefundInfo(refund_reason=reason, notes=notes)
            self.raise_(RefundRequested(order_id=str(self.id), reason=reason, changed_at=now))
        elif target == OrderStatus.REFUNDED:
            previous = self.refund_info
            self.refund_info = RefundInfo(
                refund_reason=reason or (previous.refund_reason if previous else None),
                refund_date=now,
                notes=notes or (previous.notes if previous else None),
            )
            self.restock_requested = bool(restock)
            self.raise_(
                OrderRefunded(
                    order_id=str(self.id),
                    total_price=self.total_price,
                    reason=self.refund_info.refund_reason,
                    restock=self.restock_requested,
                    changed_at=now,
                )
            )

        releases_stock = rule.releases_stock and not self.stock_released
        if releases_stock:
            self.stock_released = True

        return Transition(
            previous=current,
            current=target,
            changed=True,
            releases_stock=releases_stock,
            effects=tuple(effect for effect in rule.effects if self._effect_pending(effect)),
        )

    def _effect_pending(self, effect):
        if effect == OrderEffect.RECORD_PAYMENT:
            return self.payment_transaction_id is None
        if effect == OrderEffect.CREATE_EXPORT_VOUCHER:
            return self.export_voucher_id is None
        if effect == OrderEffect.RECORD_REFUND:
            return self.refund_info is None or self.refund_info.refund_transaction_id is None
        if effect == OrderEffect.CREATE_IMPORT_VOUCHER:
            return self.restock_requested and self.import_voucher_id is None
        return True

    def link_export_voucher(self, voucher_id):
        self.export_voucher_id = voucher_id
        self.updated_at = datetime.now(UTC)

    def link_import_voucher(self, voucher_id):
        self.import_voucher_id = voucher_id
        self.updated_at = datetime.now(UTC)

    def link_refund_transaction(self, transaction_id):
        info = self.refund_info
        self.refund_info = RefundInfo(
            refund_reason=info.refund_reason if info else None,
            refund_date=info.refund_date if info else None,
            refund_transaction_id=transaction_id,
            notes=info.notes if info else None,
        )
        self.updated_at = datetime.now(UTC)
