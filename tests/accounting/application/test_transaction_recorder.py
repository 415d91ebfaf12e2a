"""Tests for the transaction recorder and ledger queries."""

from datetime import UTC, datetime, timedelta
from types import SimpleNamespace

import pytest
from storefront.accounting import recorder
from storefront.accounting.transaction import TransactionCategory, TransactionType
from storefront.errors import DownstreamFailure, NotFound


def _order(order_id="ord-001", total_price=250.0):
    return SimpleNamespace(id=order_id, total_price=total_price, payment_method="cod")


def _voucher(voucher_id="vch-001", voucher_type="import", items=None, total_value=40.0, related_order_id=None):
    return SimpleNamespace(
        id=voucher_id,
        voucher_number="IMP-20260101-ABCDEF",
        voucher_type=voucher_type,
        reason="Restock",
        total_value=total_value,
        related_order_id=related_order_id,
        items=items or [],
    )


class TestRecordOrderEntries:
    def test_payment_is_income(self):
        transaction = recorder.record_order_payment(_order(), recorded_by="admin")
        assert transaction.transaction_type == TransactionType.INCOME.value
        assert transaction.category == TransactionCategory.ORDER_PAYMENT.value
        assert transaction.amount == 250.0
        assert transaction.payment_method == "cod"
        assert transaction.created_by == "admin"

    def test_refund_is_expense_with_reason(self):
        transaction = recorder.record_order_refund(_order(), reason="Damaged in transit")
        assert transaction.transaction_type == TransactionType.EXPENSE.value
        assert transaction.category == TransactionCategory.ORDER_REFUND.value
        assert "Damaged in transit" in transaction.description

    def test_entries_are_persisted(self):
        recorder.record_order_payment(_order())
        recorder.record_order_refund(_order())
        assert len(recorder.transactions_for(related_order_id="ord-001")) == 2

    def test_no_deduplication(self):
        recorder.record_order_payment(_order())
        recorder.record_order_payment(_order())
        assert len(recorder.transactions_for(related_order_id="ord-001")) == 2


class TestRecordVoucherEntries:
    def test_import_records_total_value_as_expense(self):
        transaction = recorder.record_voucher_import(_voucher(total_value=80.0))
        assert transaction.transaction_type == TransactionType.EXPENSE.value
        assert transaction.category == TransactionCategory.STOCK_IMPORT.value
        assert transaction.amount == 80.0
        assert transaction.related_voucher_id == "vch-001"

    def test_export_records_cost_basis(self):
        items = [
            SimpleNamespace(cost_price=2.5, quantity=4),
            SimpleNamespace(cost_price=10.0, quantity=1),
        ]
        transaction = recorder.record_voucher_export(_voucher(voucher_type="export", items=items))
        assert transaction.category == TransactionCategory.STOCK_EXPORT.value
        assert transaction.amount == 20.0

    def test_voucher_entries_keep_order_link(self):
        transaction = recorder.record_voucher_import(_voucher(related_order_id="ord-009"))
        assert transaction.related_order_id == "ord-009"


class _BrokenDomain:
    def process(self, command, asynchronous=None):
        raise RuntimeError("database unavailable")


class TestPersistenceFailures:
    def test_failed_write_raises_downstream_failure(self, monkeypatch):
        monkeypatch.setattr(recorder, "current_domain", _BrokenDomain())
        with pytest.raises(DownstreamFailure) as exc:
            recorder.record_order_payment(_order())
        assert exc.value.effect == "record_order_payment"
        assert isinstance(exc.value.cause, RuntimeError)


class TestTransactionSummary:
    def test_totals_and_breakdown(self):
        recorder.record_order_payment(_order(total_price=300.0))
        recorder.record_order_payment(_order(order_id="ord-002", total_price=200.0))
        recorder.record_order_refund(_order(total_price=300.0))
        recorder.record_voucher_import(_voucher(total_value=50.0))

        summary = recorder.transaction_summary()
        assert summary.total_income == 500.0
        assert summary.total_expense == 350.0
        assert summary.net == 150.0
        assert summary.count == 4
        assert summary.by_category == {
            "order_payment": 500.0,
            "order_refund": 300.0,
            "stock_import": 50.0,
        }

    def test_date_range_filters_entries(self):
        recorder.record_order_payment(_order())
        future = datetime.now(UTC) + timedelta(days=1)
        assert recorder.transaction_summary(start=future).count == 0
        assert recorder.transaction_summary(end=future).count == 1

    def test_empty_ledger(self):
        summary = recorder.transaction_summary()
        assert summary.count == 0
        assert summary.net == 0.0
        assert summary.by_category == {}

    def test_filter_by_category(self):
        recorder.record_order_payment(_order())
        recorder.record_voucher_import(_voucher())
        imports = recorder.transactions_for(category=TransactionCategory.STOCK_IMPORT.value)
        assert [t.related_voucher_id for t in imports] == ["vch-001"]


class TestTransactionLookup:
    def test_get_by_id(self):
        recorded = recorder.record_order_refund(_order(), reason="Wrong size")
        fetched = recorder.get_transaction(recorded.id)
        assert fetched.transaction_number == recorded.transaction_number
        assert fetched.description == "Refund for order ord-001: Wrong size"

    def test_unknown_id(self):
        with pytest.raises(NotFound):
            recorder.get_transaction("no-such-transaction")
