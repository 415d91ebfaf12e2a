"""Tests for creating and dropping the storefront's SQL schemas."""

from sqlalchemy import inspect
from storefront.domain import storefront
from storefront.stock import set_stock_store
from storefront.stock.sql_adapter import SqlStockStore
from storefront.utils.db import drop_db, setup_db


class TestDatabaseSetup:
    def test_memory_configuration_creates_nothing(self):
        assert setup_db(storefront) == []
        assert drop_db(storefront) == []

    def test_sql_stock_store_schema(self, tmp_path):
        store = SqlStockStore.from_uri(f"sqlite:///{tmp_path / 'stock.db'}")
        set_stock_store(store)

        assert setup_db(storefront) == ["stock_items"]
        assert "stock_items" in inspect(store.engine).get_table_names()

        assert drop_db(storefront) == ["stock_items"]
        assert "stock_items" not in inspect(store.engine).get_table_names()
        store.engine.dispose()
