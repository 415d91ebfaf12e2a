"""Transaction recorder: appends income/expense entries for business events.

The order engine and the voucher workflow call these functions as follow-up
steps after their own change is committed. There is no deduplication here;
callers guard against recording the same event twice.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from storefront.accounting.recording import RecordTransaction
from storefront.accounting.transaction import Transaction, TransactionCategory, TransactionType
from storefront.errors import DownstreamFailure, NotFound

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class TransactionSummary:
    total_income: float = 0.0
    total_expense: float = 0.0
    count: int = 0
    by_category: dict[str, float] = field(default_factory=dict)

    @property
    def net(self) -> float:
        return round(self.total_income - self.total_expense, 2)


def _append(effect: str, **fields) -> Transaction:
    try:
        transaction_id = current_domain.process(RecordTransaction(**fields), asynchronous=False)
        transaction = current_domain.repository_for(Transaction).get(transaction_id)
    except Exception as exc:
        raise DownstreamFailure(effect, exc) from exc
    logger.info(
        "transaction_recorded",
        transaction_id=str(transaction.id),
        transaction_number=transaction.transaction_number,
        transaction_type=transaction.transaction_type,
        category=transaction.category,
        amount=transaction.amount,
    )
    return transaction


def record_order_payment(order, recorded_by=None) -> Transaction:
    """Income for a paid order."""
    return _append(
        "record_order_payment",
        transaction_type=TransactionType.INCOME.value,
        category=TransactionCategory.ORDER_PAYMENT.value,
        amount=order.total_price,
        description=f"Payment received for order {order.id}",
        payment_method=order.payment_method,
        related_order_id=str(order.id),
        created_by=recorded_by,
    )


def record_order_refund(order, reason=None, recorded_by=None) -> Transaction:
    """Expense for money returned to the customer."""
    description = f"Refund for order {order.id}"
    if reason:
        description += f": {reason}"
    return _append(
        "record_order_refund",
        transaction_type=TransactionType.EXPENSE.value,
        category=TransactionCategory.ORDER_REFUND.value,
        amount=order.total_price,
        description=description[:500],
        payment_method=order.payment_method,
        related_order_id=str(order.id),
        created_by=recorded_by,
    )


def record_voucher_import(voucher, recorded_by=None) -> Transaction:
    """Expense for goods received, valued at the voucher's total."""
    return _append(
        "record_voucher_import",
        transaction_type=TransactionType.EXPENSE.value,
        category=TransactionCategory.STOCK_IMPORT.value,
        amount=voucher.total_value or 0.0,
        description=f"Stock import {voucher.voucher_number}: {voucher.reason}"[:500],
        related_order_id=voucher.related_order_id,
        related_voucher_id=str(voucher.id),
        created_by=recorded_by,
    )


def record_voucher_export(voucher, recorded_by=None) -> Transaction:
    """Expense for goods leaving stock, valued at their cost basis."""
    cost_basis = sum((item.cost_price or 0.0) * item.quantity for item in voucher.items or [])
    return _append(
        "record_voucher_export",
        transaction_type=TransactionType.EXPENSE.value,
        category=TransactionCategory.STOCK_EXPORT.value,
        amount=round(cost_basis, 2),
        description=f"Stock export {voucher.voucher_number}: {voucher.reason}"[:500],
        related_order_id=voucher.related_order_id,
        related_voucher_id=str(voucher.id),
        created_by=recorded_by,
    )


def get_transaction(transaction_id) -> Transaction:
    try:
        return current_domain.repository_for(Transaction).get(str(transaction_id))
    except ObjectNotFoundError as exc:
        raise NotFound("Transaction", transaction_id) from exc


def transactions_for(related_order_id=None, related_voucher_id=None, category=None) -> list[Transaction]:
    """Ledger entries matching the given filters, oldest first."""
    filters = {}
    if related_order_id is not None:
        filters["related_order_id"] = str(related_order_id)
    if related_voucher_id is not None:
        filters["related_voucher_id"] = str(related_voucher_id)
    if category is not None:
        filters["category"] = category

    query = current_domain.repository_for(Transaction)._dao.query
    if filters:
        query = query.filter(**filters)
    return sorted(query.all().items, key=lambda t: t.transaction_date)


def transaction_summary(start: datetime | None = None, end: datetime | None = None) -> TransactionSummary:
    """Totals for entries dated within ``[start, end]``."""
    income = expense = 0.0
    count = 0
    by_category = defaultdict(float)
    for transaction in transactions_for():
        if start is not None and transaction.transaction_date < start:
            continue
        if end is not None and transaction.transaction_date > end:
            continue
        count += 1
        by_category[transaction.category] += transaction.amount
        if transaction.transaction_type == TransactionType.INCOME.value:
            income += transaction.amount
        else:
            expense += transaction.amount

    return TransactionSummary(
        total_income=round(income, 2),
        total_expense=round(expense, 2),
        count=count,
        by_category={category: round(amount, 2) for category, amount in by_category.items()},
    )
