from protean.domain import Domain
from sqlalchemy import create_engine

from storefront.stock import get_stock_store
from storefront.stock.sql_adapter import SqlStockStore


def _sql_providers(domain: Domain):
    for _, provider in domain.providers.items():
        if provider.conn_info["provider"] in ("sqlite", "postgresql"):
            yield provider


def setup_db(domain: Domain) -> list[str]:
    """Create every SQL schema the domain uses. Returns what was created."""
    created = []
    with domain.domain_context():
        for provider in _sql_providers(domain):
            engine = create_engine(provider.conn_info["database_uri"])

            # Accessing _dao registers each aggregate's model with the provider's metadata
            for _, aggregate_record in domain.registry.aggregates.items():
                if aggregate_record.cls.meta_.provider == provider.name:
                    domain.repository_for(aggregate_record.cls)._dao  # noqa: B018

            for _, entity_record in domain.registry.entities.items():
                if entity_record.cls.meta_.provider == provider.name:
                    domain.repository_for(entity_record.cls)._dao  # noqa: B018

            provider._metadata.create_all(engine)
            created.append(provider.name)

    store = get_stock_store()
    if isinstance(store, SqlStockStore):
        store.create_schema()
        created.append("stock_items")
    return created


def drop_db(domain: Domain) -> list[str]:
    """Drop every SQL schema the domain uses. Returns what was dropped."""
    dropped = []
    with domain.domain_context():
        for provider in _sql_providers(domain):
            engine = create_engine(provider.conn_info["database_uri"])
            provider._metadata.drop_all(engine)
            dropped.append(provider.name)

    store = get_stock_store()
    if isinstance(store, SqlStockStore):
        store.drop_schema()
        dropped.append("stock_items")
    return dropped
