"""StockVoucher aggregate (CQRS): a documented request to move stock in or out.

Voucher state machine::

    PENDING → APPROVED    (the only transition that moves stock)
    PENDING → REJECTED
    PENDING → CANCELLED

Every non-pending state is terminal. A voucher's reason, notes and items can
only be edited while it is pending.
"""

import json
from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, HasMany, Identifier, Integer, String

from storefront.domain import storefront
from storefront.errors import InvalidTransition
from storefront.voucher.events import (
    StockVoucherApproved,
    StockVoucherCancelled,
    StockVoucherCreated,
    StockVoucherRejected,
    StockVoucherUpdated,
)


class VoucherType(Enum):
    IMPORT = "import"
    EXPORT = "export"


class VoucherStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class VoucherSource(Enum):
    MANUAL = "manual"
    ORDER_COMPLETION = "order_completion"
    ORDER_REFUND = "order_refund"


_VALID_TRANSITIONS = {
    VoucherStatus.PENDING: {
        VoucherStatus.APPROVED,
        VoucherStatus.REJECTED,
        VoucherStatus.CANCELLED,
    },
    VoucherStatus.APPROVED: set(),  # Terminal
    VoucherStatus.REJECTED: set(),  # Terminal
    VoucherStatus.CANCELLED: set(),  # Terminal
}

_NUMBER_PREFIXES = {
    VoucherType.IMPORT.value: "IMP",
    VoucherType.EXPORT.value: "EXP",
}


def generate_voucher_number(voucher_type: str, at: datetime | None = None) -> str:
    at = at or datetime.now(UTC)
    return f"{_NUMBER_PREFIXES[voucher_type]}-{at:%Y%m%d}-{uuid4().hex[:6].upper()}"


@storefront.entity(part_of="StockVoucher")
class VoucherItem:
    """One product line of a voucher, with its catalog snapshot."""

    product_id = Identifier(required=True)
    product_name = String(required=True, max_length=255)
    quantity = Integer(required=True, min_value=1)
    unit = String(max_length=50, default="unit")
    cost_price = Float(min_value=0.0, default=0.0)
    note = String(max_length=500)


@storefront.aggregate
class StockVoucher:
    voucher_number = String(required=True, max_length=50)
    voucher_type = String(required=True, choices=VoucherType)
    reason = String(required=True, max_length=500)
    notes = String(max_length=1000)
    items = HasMany(VoucherItem)
    status = String(
        choices=VoucherStatus,
        default=VoucherStatus.PENDING.value,
    )
    source = String(
        choices=VoucherSource,
        default=VoucherSource.MANUAL.value,
    )
    related_order_id = Identifier()
    # Order-generated exports describe stock the order already reserved
    settled_by_order = Boolean(default=False)
    total_value = Float(default=0.0)
    created_by = String(max_length=255)
    approved_by = String(max_length=255)
    approved_at = DateTime()
    rejected_by = String(max_length=255)
    rejected_at = DateTime()
    rejection_reason = String(max_length=500)
    cancelled_by = String(max_length=255)
    cancelled_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def create(
        cls,
        voucher_type,
        reason,
        items_data,
        source=VoucherSource.MANUAL.value,
        notes=None,
        related_order_id=None,
        settled_by_order=False,
        created_by=None,
    ):
        """Draft a pending voucher.

        Args:
            voucher_type: "import" or "export".
            reason: Why stock is moving; recorded on every history entry.
            items_data: List of dicts with product_id, product_name, quantity,
                        unit, cost_price and an optional note.
            source: Which workflow produced the voucher.
        """
        if voucher_type not in _NUMBER_PREFIXES:
            raise ValidationError({"voucher_type": [f"Unknown voucher type: {voucher_type}"]})
        if not items_data:
            raise ValidationError({"items": ["A voucher needs at least one item"]})

        now = datetime.now(UTC)
        voucher = cls(
            voucher_number=generate_voucher_number(voucher_type, now),
            voucher_type=voucher_type,
            reason=reason,
            notes=notes,
            source=source,
            related_order_id=related_order_id,
            settled_by_order=settled_by_order,
            total_value=_total_value(items_data),
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        for item_data in items_data:
            voucher.add_items(VoucherItem(**item_data))
        voucher.raise_(
            StockVoucherCreated(
                voucher_id=str(voucher.id),
                voucher_number=voucher.voucher_number,
                voucher_type=voucher_type,
                source=voucher.source,
                reason=reason,
                items=json.dumps(items_data),
                total_value=voucher.total_value,
                related_order_id=related_order_id,
                created_by=created_by,
                created_at=now,
            )
        )
        return voucher

    def _assert_can_transition(self, target):
        current = VoucherStatus(self.status)
        if target not in _VALID_TRANSITIONS[current]:
            raise InvalidTransition("StockVoucher", current.value, target.value)

    def is_pending(self):
        return self.status == VoucherStatus.PENDING.value

    def update_details(self, reason=None, notes=None, items_data=None):
        """Edit a pending voucher. Omitted arguments keep their current values."""
        if not self.is_pending():
            raise InvalidTransition(
                "StockVoucher",
                self.status,
                VoucherStatus.PENDING.value,
                reason="only pending vouchers can be edited",
            )
        if items_data is not None:
            if not items_data:
                raise ValidationError({"items": ["A voucher needs at least one item"]})
            for item in list(self.items or []):
                self.remove_items(item)
            for item in items_data:
                self.add_items(VoucherItem(**item))
            self.total_value = _total_value(items_data)
        if reason is not None:
            self.reason = reason
        if notes is not None:
            self.notes = notes
        self.updated_at = datetime.now(UTC)
        self.raise_(
            StockVoucherUpdated(
                voucher_id=str(self.id),
                reason=self.reason,
                items=json.dumps(self.items_data()),
                total_value=self.total_value,
                updated_at=self.updated_at,
            )
        )

    def approve(self, approved_by=None):
        self._assert_can_transition(VoucherStatus.APPROVED)
        now = datetime.now(UTC)
        self.status = VoucherStatus.APPROVED.value
        self.approved_by = approved_by
        self.approved_at = now
        self.updated_at = now
        self.raise_(
            StockVoucherApproved(
                voucher_id=str(self.id),
                voucher_number=self.voucher_number,
                voucher_type=self.voucher_type,
                approved_by=approved_by,
                approved_at=now,
            )
        )

    def reject(self, rejected_by=None, rejection_reason=None):
        self._assert_can_transition(VoucherStatus.REJECTED)
        now = datetime.now(UTC)
        self.status = VoucherStatus.REJECTED.value
        self.rejected_by = rejected_by
        self.rejected_at = now
        self.rejection_reason = rejection_reason
        self.updated_at = now
        self.raise_(
            StockVoucherRejected(
                voucher_id=str(self.id),
                rejected_by=rejected_by,
                rejection_reason=rejection_reason,
                rejected_at=now,
            )
        )

    def cancel(self, cancelled_by=None):
        self._assert_can_transition(VoucherStatus.CANCELLED)
        now = datetime.now(UTC)
        self.status = VoucherStatus.CANCELLED.value
        self.cancelled_by = cancelled_by
        self.cancelled_at = now
        self.updated_at = now
        self.raise_(
            StockVoucherCancelled(
                voucher_id=str(self.id),
                cancelled_by=cancelled_by,
                cancelled_at=now,
            )
        )

    def ensure_deletable(self):
        """Only drafts can be deleted; decided vouchers stay on record."""
        if not self.is_pending():
            raise InvalidTransition(
                "StockVoucher",
                self.status,
                "deleted",
                reason="only pending vouchers can be deleted",
            )

    def moves_stock_on_approval(self):
        return not self.settled_by_order

    def items_data(self):
        return [
            {
                "product_id": str(item.product_id),
                "product_name": item.product_name,
                "quantity": item.quantity,
                "unit": item.unit,
                "cost_price": item.cost_price,
                "note": item.note,
            }
            for item in self.items or []
        ]


def _total_value(items_data):
    return round(sum((item.get("cost_price") or 0.0) * item["quantity"] for item in items_data), 2)
