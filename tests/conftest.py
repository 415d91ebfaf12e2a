import os
from pathlib import Path

import pytest
from protean.integrations.pytest import DomainFixture


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    os.environ["PROTEAN_ENV"] = session.config.option.env


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        test_path = str(Path(item.fspath))

        if "/domain/" in test_path:
            item.add_marker(pytest.mark.domain)
        elif "/application/" in test_path:
            item.add_marker(pytest.mark.application)
        elif "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)


@pytest.fixture(scope="session")
def storefront_bed():
    from storefront.domain import storefront

    bed = DomainFixture(storefront)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(storefront_bed):
    """Run every test inside the domain with a fresh stock store and empty repositories."""
    from protean import current_domain

    from storefront.stock import reset_stock_store, set_stock_store
    from storefront.stock.memory_adapter import MemoryStockStore

    with storefront_bed.domain_context():
        set_stock_store(MemoryStockStore())
        yield
        for _, provider in current_domain.providers.items():
            provider._data_reset()
        current_domain.event_store.store._data_reset()
        reset_stock_store()


@pytest.fixture
def stock(_ctx):
    from storefront.stock import get_stock_store

    return get_stock_store()


@pytest.fixture
def stock_item(stock):
    """Factory fixture that registers a product counter in the active stock store."""
    from storefront.stock.port import StockItem

    def _add(product_id, quantity, name=None, cost_price=0.0, unit="unit"):
        return stock.add_item(
            StockItem(
                product_id=product_id,
                name=name or f"Product {product_id}",
                quantity=quantity,
                unit=unit,
                cost_price=cost_price,
            )
        )

    return _add
