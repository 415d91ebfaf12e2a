"""Stock store port (abstract interface).

Defines the contract every stock counter backend must honour. ``reserve`` is
the single operation that needs storage-level atomicity: the availability
check and the decrement must happen as one indivisible step, so that two
concurrent reservations can never both succeed against the same units.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from protean.exceptions import ValidationError

from storefront.errors import NotFound


@dataclass(frozen=True)
class StockItem:
    """Snapshot of a product's stock counter."""

    product_id: str
    name: str
    quantity: int
    unit: str = "unit"
    cost_price: float = 0.0


@dataclass(frozen=True)
class StockMovement:
    """Before/after view of a single counter mutation."""

    product_id: str
    quantity_before: int
    quantity_after: int

    @property
    def quantity_change(self) -> int:
        return self.quantity_after - self.quantity_before


def _check_quantity(quantity) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError({"quantity": ["Quantity must be a positive whole number"]})


class StockStore(ABC):
    """Abstract stock counter store.

    Counters are created through ``add_item`` and mutated only through
    ``reserve`` and ``release``; there is no way to set a
    quantity directly.
    """

    def reserve(self, product_id: str, quantity: int) -> StockMovement:
        """Take ``quantity`` units, failing with InsufficientStock if fewer are available."""
        _check_quantity(quantity)
        return self._reserve(str(product_id), quantity)

    def release(self, product_id: str, quantity: int) -> StockMovement:
        """Return ``quantity`` units to the counter."""
        _check_quantity(quantity)
        return self._release(str(product_id), quantity)

    def add_item(self, item: StockItem) -> StockItem:
        if item.quantity < 0:
            raise ValidationError({"quantity": ["Stock quantity cannot be negative"]})
        if item.cost_price < 0:
            raise ValidationError({"cost_price": ["Cost price cannot be negative"]})
        if self.exists(item.product_id):
            raise ValidationError({"product_id": [f"Product {item.product_id} is already stocked"]})
        return self._add_item(item)

    def quantity_of(self, product_id: str) -> int:
        return self.get(product_id).quantity

    def exists(self, product_id: str) -> bool:
        return self._find(str(product_id)) is not None

    def get(self, product_id: str) -> StockItem:
        """Return a read-only snapshot of the counter, raising NotFound if absent."""
        item = self._find(str(product_id))
        if item is None:
            raise NotFound("Product", product_id)
        return item

    @abstractmethod
    def _add_item(self, item: StockItem) -> StockItem: ...

    @abstractmethod
    def _find(self, product_id: str) -> StockItem | None: ...

    @abstractmethod
    def _reserve(self, product_id: str, quantity: int) -> StockMovement: ...

    @abstractmethod
    def _release(self, product_id: str, quantity: int) -> StockMovement: ...
