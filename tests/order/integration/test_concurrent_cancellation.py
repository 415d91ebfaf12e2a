"""Two operators cancelling the same order at once return its stock once."""

import threading

import pytest
from protean.exceptions import ExpectedVersionError
from storefront.domain import storefront
from storefront.order import lifecycle
from storefront.order.order import OrderStatus
from storefront.stock import set_stock_store
from storefront.stock.port import StockItem
from storefront.stock.sql_adapter import SqlStockStore

SHIPPING = {"full_name": "Race Tester", "phone": "0000000000"}


@pytest.fixture
def sql_stock(tmp_path):
    store = SqlStockStore.from_uri(f"sqlite:///{tmp_path / 'stock.db'}")
    store.create_schema()
    store.add_item(StockItem(product_id="prod-x", name="Limited Print", quantity=5))
    store.add_item(StockItem(product_id="prod-y", name="Frame", quantity=10))
    set_stock_store(store)
    yield store
    store.engine.dispose()


def _cancel_in_thread(order_id, operator, outcomes, barrier):
    with storefront.domain_context():
        barrier.wait()
        try:
            outcomes[operator] = lifecycle.cancel_order(order_id, cancelled_by=operator)
        except ExpectedVersionError as exc:
            outcomes[operator] = exc


class TestConcurrentCancellation:
    def test_stock_is_released_exactly_once(self, storefront_bed, sql_stock):
        order = lifecycle.place_order(
            "user-a",
            [
                {"product_id": "prod-x", "quantity": 3, "price": 100.0},
                {"product_id": "prod-y", "quantity": 4, "price": 20.0},
            ],
            "cod",
            SHIPPING,
        )
        assert sql_stock.quantity_of("prod-x") == 2

        outcomes = {}
        barrier = threading.Barrier(2)
        threads = [
            threading.Thread(target=_cancel_in_thread, args=(order.id, operator, outcomes, barrier))
            for operator in ("operator-a", "operator-b")
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(outcomes) == 2
        assert sql_stock.quantity_of("prod-x") == 5
        assert sql_stock.quantity_of("prod-y") == 10

        stored = lifecycle.get_order(order.id)
        assert stored.status == OrderStatus.CANCELLED.value
        assert stored.stock_released is True
