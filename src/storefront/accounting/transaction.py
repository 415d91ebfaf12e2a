"""Transaction aggregate (CQRS): an append-only income/expense ledger entry.

Entries are created automatically by order payments, refunds and approved
stock vouchers. They are never edited or deleted; a correction is a new entry.
"""

from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from protean.fields import Boolean, DateTime, Float, Identifier, String

from storefront.accounting.events import TransactionRecorded
from storefront.domain import storefront


class TransactionType(Enum):
    INCOME = "income"
    EXPENSE = "expense"


class TransactionCategory(Enum):
    ORDER_PAYMENT = "order_payment"
    ORDER_REFUND = "order_refund"
    STOCK_IMPORT = "stock_import"
    STOCK_EXPORT = "stock_export"


def generate_transaction_number(at: datetime | None = None) -> str:
    at = at or datetime.now(UTC)
    return f"TXN-{at:%Y%m%d}-{uuid4().hex[:6].upper()}"


@storefront.aggregate
class Transaction:
    transaction_number = String(required=True, max_length=50)
    transaction_type = String(required=True, choices=TransactionType)
    category = String(required=True, choices=TransactionCategory)
    amount = Float(min_value=0.0, default=0.0)
    payment_method = String(max_length=50)
    description = String(max_length=500)
    related_order_id = Identifier()
    related_voucher_id = Identifier()
    created_by = String(max_length=255)
    auto_created = Boolean(default=True)
    transaction_date = DateTime()

    @classmethod
    def record(
        cls,
        transaction_type,
        category,
        amount,
        description=None,
        payment_method=None,
        related_order_id=None,
        related_voucher_id=None,
        created_by=None,
    ):
        now = datetime.now(UTC)
        transaction = cls(
            transaction_number=generate_transaction_number(now),
            transaction_type=transaction_type,
            category=category,
            amount=round(float(amount), 2),
            description=description,
            payment_method=payment_method,
            related_order_id=related_order_id,
            related_voucher_id=related_voucher_id,
            created_by=created_by,
            auto_created=True,
            transaction_date=now,
        )
        transaction.raise_(
            TransactionRecorded(
                transaction_id=str(transaction.id),
                transaction_number=transaction.transaction_number,
                transaction_type=transaction.transaction_type,
                category=transaction.category,
                amount=transaction.amount,
                related_order_id=related_order_id,
                related_voucher_id=related_voucher_id,
                recorded_at=now,
            )
        )
        return transaction
