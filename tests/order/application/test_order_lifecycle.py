"""Tests for order payment and status changes, with their ledger and voucher effects."""

import pytest
from protean.exceptions import ValidationError
from storefront.accounting import recorder
from storefront.accounting.transaction import TransactionCategory, TransactionType
from storefront.errors import InvalidTransition
from storefront.order import lifecycle
from storefront.order.order import OrderStatus
from storefront.voucher import workflow
from storefront.voucher.history import stock_history
from storefront.voucher.voucher import VoucherSource, VoucherStatus, VoucherType
from structlog.testing import capture_logs

SHIPPING = {"full_name": "Minh Nguyen", "phone": "0912345678", "full_address": "12 Kim Ma, Ha Noi"}


@pytest.fixture(autouse=True)
def products(stock_item):
    stock_item("prod-a", 10, name="Lamp", cost_price=7.0)
    stock_item("prod-b", 5, name="Bulb", cost_price=1.0)


@pytest.fixture
def order():
    return lifecycle.place_order(
        "user-001",
        [
            {"product_id": "prod-a", "quantity": 1, "price": 25.0},
            {"product_id": "prod-b", "quantity": 3, "price": 5.0},
        ],
        "vnpay",
        SHIPPING,
    )


def _payments(order_id):
    return recorder.transactions_for(
        related_order_id=order_id,
        category=TransactionCategory.ORDER_PAYMENT.value,
    )


class TestMarkPaid:
    def test_records_income_once(self, order):
        lifecycle.mark_paid(order.id, {"payment_id": "VNP-1", "status": "00"})
        lifecycle.mark_paid(order.id, {"payment_id": "VNP-1", "status": "00"})

        payments = _payments(order.id)
        assert len(payments) == 1
        assert payments[0].transaction_type == TransactionType.INCOME.value
        assert payments[0].amount == 40.0

    def test_links_payment_transaction(self, order):
        paid = lifecycle.mark_paid(order.id)
        assert paid.is_paid is True
        assert paid.status == OrderStatus.PENDING.value
        assert paid.payment_transaction_id == _payments(order.id)[0].id

    def test_processing_after_payment_does_not_record_again(self, order):
        lifecycle.mark_paid(order.id)
        lifecycle.start_processing(order.id)
        lifecycle.start_processing(order.id)
        assert len(_payments(order.id)) == 1

    def test_processing_records_payment_if_missing(self, order, monkeypatch):
        original = recorder.record_order_payment

        def offline(*args, **kwargs):
            raise RuntimeError("ledger offline")

        monkeypatch.setattr(recorder, "record_order_payment", offline)
        lifecycle.mark_paid(order.id)
        assert _payments(order.id) == []

        monkeypatch.setattr(recorder, "record_order_payment", original)
        processing = lifecycle.start_processing(order.id)
        assert processing.status == OrderStatus.PROCESSING.value
        assert len(_payments(order.id)) == 1

    def test_cancelled_order_cannot_be_paid(self, order):
        lifecycle.cancel_order(order.id)
        with pytest.raises(InvalidTransition):
            lifecycle.mark_paid(order.id)


class TestProcessing:
    def test_unpaid_order_cannot_be_processed(self, order):
        with pytest.raises(InvalidTransition):
            lifecycle.start_processing(order.id)
        assert lifecycle.get_order(order.id).status == OrderStatus.PENDING.value

    def test_unknown_status(self, order):
        with pytest.raises(ValidationError):
            lifecycle.update_status(order.id, "shipped")


class TestCompletion:
    def test_creates_one_settled_export_voucher(self, order, stock):
        lifecycle.mark_paid(order.id)
        lifecycle.start_processing(order.id)
        completed = lifecycle.complete_order(order.id)
        lifecycle.complete_order(order.id)

        vouchers = workflow.vouchers_for_order(order.id)
        assert len(vouchers) == 1
        voucher = vouchers[0]
        assert voucher.voucher_type == VoucherType.EXPORT.value
        assert voucher.source == VoucherSource.ORDER_COMPLETION.value
        assert voucher.status == VoucherStatus.PENDING.value
        assert completed.export_voucher_id == voucher.id
        assert stock.quantity_of("prod-a") == 9
        assert stock.quantity_of("prod-b") == 2

    def test_approving_completion_voucher_keeps_stock(self, order, stock):
        completed = lifecycle.complete_order(order.id)
        workflow.approve_voucher(completed.export_voucher_id)
        assert stock.quantity_of("prod-a") == 9
        assert stock.quantity_of("prod-b") == 2

    def test_approving_completion_voucher_writes_shipment_history(self, order, stock):
        completed = lifecycle.complete_order(order.id)
        voucher = workflow.approve_voucher(completed.export_voucher_id, approved_by="warehouse")

        history = stock_history(voucher_id=voucher.id)
        assert len(history) == len(voucher.items)
        by_product = {entry.product_id: entry for entry in history}
        assert (by_product["prod-a"].quantity_before, by_product["prod-a"].quantity_after) == (10, 9)
        assert (by_product["prod-b"].quantity_before, by_product["prod-b"].quantity_after) == (5, 2)
        assert all(entry.related_order_id == order.id for entry in history)

    def test_completed_order_cannot_be_cancelled(self, order, stock):
        lifecycle.complete_order(order.id)
        with pytest.raises(InvalidTransition):
            lifecycle.cancel_order(order.id)
        assert lifecycle.get_order(order.id).status == OrderStatus.COMPLETED.value
        assert stock.quantity_of("prod-a") == 9

    def test_voucher_failure_does_not_undo_completion(self, order, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("voucher store offline")

        monkeypatch.setattr(workflow, "create_export_voucher_from_order", broken)
        with capture_logs() as logs:
            completed = lifecycle.complete_order(order.id)

        assert completed.status == OrderStatus.COMPLETED.value
        assert lifecycle.get_order(order.id).status == OrderStatus.COMPLETED.value
        assert completed.export_voucher_id is None
        assert [entry["effect"] for entry in logs if entry["event"] == "side_effect_failed"] == [
            "create_export_voucher"
        ]


class TestCancellation:
    def test_releases_every_line(self, order, stock):
        cancelled = lifecycle.cancel_order(order.id)
        assert cancelled.status == OrderStatus.CANCELLED.value
        assert cancelled.stock_released is True
        assert stock.quantity_of("prod-a") == 10
        assert stock.quantity_of("prod-b") == 5

    def test_cancelling_twice_releases_once(self, order, stock):
        lifecycle.cancel_order(order.id)
        lifecycle.cancel_order(order.id)
        assert stock.quantity_of("prod-a") == 10
        assert stock.quantity_of("prod-b") == 5

    def test_paid_processing_order_can_be_cancelled(self, order, stock):
        lifecycle.mark_paid(order.id)
        lifecycle.start_processing(order.id)
        lifecycle.cancel_order(order.id)
        assert stock.quantity_of("prod-b") == 5

    def test_cancelled_order_is_terminal(self, order):
        lifecycle.cancel_order(order.id)
        for target in ("pending", "processing", "completed", "refund_requested", "refunded"):
            with pytest.raises(InvalidTransition):
                lifecycle.update_status(order.id, target)


class TestRefunds:
    def _paid_completed(self, order):
        lifecycle.mark_paid(order.id)
        lifecycle.start_processing(order.id)
        lifecycle.complete_order(order.id)

    def test_refund_requires_refund_request(self, order):
        self._paid_completed(order)
        with pytest.raises(InvalidTransition):
            lifecycle.refund_order(order.id, reason="Broken")

    def test_unpaid_order_cannot_request_refund(self, order):
        with pytest.raises(InvalidTransition):
            lifecycle.request_refund(order.id, reason="Changed my mind")

    def test_refund_records_expense(self, order, stock):
        self._paid_completed(order)
        lifecycle.request_refund(order.id, reason="Arrived broken")
        refunded = lifecycle.refund_order(order.id, notes="Photo evidence received")

        assert refunded.status == OrderStatus.REFUNDED.value
        assert refunded.refund_info.refund_reason == "Arrived broken"
        (refund,) = recorder.transactions_for(
            related_order_id=order.id,
            category=TransactionCategory.ORDER_REFUND.value,
        )
        assert refund.transaction_type == TransactionType.EXPENSE.value
        assert refund.amount == 40.0
        assert refunded.refund_info.refund_transaction_id == refund.id
        assert refunded.import_voucher_id is None
        assert stock.quantity_of("prod-a") == 9

    def test_restock_goes_through_import_voucher(self, order, stock):
        self._paid_completed(order)
        lifecycle.request_refund(order.id, reason="Wrong colour")
        refunded = lifecycle.refund_order(order.id, restock=True)

        voucher = workflow.get_voucher(refunded.import_voucher_id)
        assert voucher.voucher_type == VoucherType.IMPORT.value
        assert voucher.source == VoucherSource.ORDER_REFUND.value
        assert voucher.status == VoucherStatus.PENDING.value
        assert stock.quantity_of("prod-a") == 9

        workflow.approve_voucher(voucher.id)
        assert stock.quantity_of("prod-a") == 10
        assert stock.quantity_of("prod-b") == 5

    def test_refunded_order_is_terminal(self, order):
        self._paid_completed(order)
        lifecycle.request_refund(order.id)
        lifecycle.refund_order(order.id)
        with pytest.raises(InvalidTransition):
            lifecycle.refund_order(order.id)
        assert len(recorder.transactions_for(category=TransactionCategory.ORDER_REFUND.value)) == 1

    def test_declined_refund_returns_to_completed_without_new_voucher(self, order):
        self._paid_completed(order)
        lifecycle.request_refund(order.id, reason="Not as described")
        restored = lifecycle.complete_order(order.id)
        assert restored.status == OrderStatus.COMPLETED.value
        assert len(workflow.vouchers_for_order(order.id)) == 1


class TestLedgerTotals:
    def test_full_cycle_summary(self, order):
        lifecycle.mark_paid(order.id)
        lifecycle.start_processing(order.id)
        lifecycle.complete_order(order.id)
        lifecycle.request_refund(order.id)
        lifecycle.refund_order(order.id)

        summary = recorder.transaction_summary()
        assert summary.total_income == 40.0
        assert summary.total_expense == 40.0
        assert summary.net == 0.0
