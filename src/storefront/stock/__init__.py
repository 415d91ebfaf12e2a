"""Stock store factory.

Provides get_stock_store() / set_stock_store() to swap implementations:
- MemoryStockStore for development and testing (default)
- SqlStockStore for a shared database, selected with STOCK_STORE_ADAPTER=sql

Configuration:
    STOCK_STORE_ADAPTER: "memory" or "sql"
    STOCK_DATABASE_URI: SQLAlchemy URI used by the sql adapter
"""

import os

from storefront.stock.memory_adapter import MemoryStockStore
from storefront.stock.port import StockItem, StockMovement, StockStore
from storefront.stock.sql_adapter import SqlStockStore

__all__ = [
    "StockItem",
    "StockMovement",
    "StockStore",
    "get_stock_store",
    "reset_stock_store",
    "set_stock_store",
]

DEFAULT_DATABASE_URI = "sqlite:///storefront_stock.db"

_current_store: StockStore | None = None


def _build_store() -> StockStore:
    adapter = os.getenv("STOCK_STORE_ADAPTER", "memory").lower()
    if adapter == "sql":
        return SqlStockStore.from_uri(os.getenv("STOCK_DATABASE_URI", DEFAULT_DATABASE_URI))
    if adapter == "memory":
        return MemoryStockStore()
    raise ValueError(f"Unknown stock store adapter: {adapter}")


def get_stock_store() -> StockStore:
    """Return the current stock store, building it from the environment on first use."""
    global _current_store
    if _current_store is None:
        _current_store = _build_store()
    return _current_store


def set_stock_store(store: StockStore) -> None:
    """Override the active stock store (useful for tests)."""
    global _current_store
    _current_store = store


def reset_stock_store() -> None:
    """Reset to the environment-configured store."""
    global _current_store
    _current_store = None
