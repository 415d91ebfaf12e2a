"""In-process stock store for development and testing.

Every check-and-write happens under one lock acquisition, which is what makes
``reserve`` atomic for threads sharing the store.
"""

import threading
from dataclasses import replace

from storefront.errors import InsufficientStock, NotFound
from storefront.stock.port import StockItem, StockMovement, StockStore


class MemoryStockStore(StockStore):
    def __init__(self) -> None:
        self._items: dict[str, StockItem] = {}
        self._lock = threading.Lock()

    def _add_item(self, item: StockItem) -> StockItem:
        with self._lock:
            self._items[str(item.product_id)] = item
        return item

    def _find(self, product_id: str) -> StockItem | None:
        with self._lock:
            return self._items.get(product_id)

    def _reserve(self, product_id: str, quantity: int) -> StockMovement:
        with self._lock:
            item = self._items.get(product_id)
            if item is None:
                raise NotFound("Product", product_id)
            if item.quantity < quantity:
                raise InsufficientStock(product_id, quantity, item.quantity)
            self._items[product_id] = replace(item, quantity=item.quantity - quantity)
            return StockMovement(product_id, item.quantity, item.quantity - quantity)

    def _release(self, product_id: str, quantity: int) -> StockMovement:
        with self._lock:
            item = self._items.get(product_id)
            if item is None:
                raise NotFound("Product", product_id)
            self._items[product_id] = replace(item, quantity=item.quantity + quantity)
            return StockMovement(product_id, item.quantity, item.quantity + quantity)
