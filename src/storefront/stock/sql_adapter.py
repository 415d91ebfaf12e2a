"""SQL stock store backed by SQLAlchemy Core.

``reserve`` is a single conditional UPDATE, so the database row lock is the
only synchronisation needed between concurrent callers, in one process or
many::

    UPDATE stock_items SET quantity = quantity - :n
    WHERE product_id = :id AND quantity >= :n

A zero rowcount means the reservation failed and nothing was written.
"""

from sqlalchemy import (
    CheckConstraint,
    Column,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    insert,
    select,
    update,
)
from sqlalchemy.engine import Connection, Engine

from storefront.errors import InsufficientStock, NotFound
from storefront.stock.port import StockItem, StockMovement, StockStore

metadata = MetaData()

stock_items = Table(
    "stock_items",
    metadata,
    Column("product_id", String(64), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("quantity", Integer, nullable=False, default=0),
    Column("unit", String(50), nullable=False, default="unit"),
    Column("cost_price", Float, nullable=False, default=0.0),
    CheckConstraint("quantity >= 0", name="ck_stock_items_quantity_non_negative"),
)


class SqlStockStore(StockStore):
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    @classmethod
    def from_uri(cls, database_uri: str) -> "SqlStockStore":
        connect_args = {}
        if database_uri.startswith("sqlite"):
            # Writers queue on SQLite's database lock instead of failing immediately
            connect_args = {"check_same_thread": False, "timeout": 30}
        return cls(create_engine(database_uri, connect_args=connect_args))

    def create_schema(self) -> None:
        metadata.create_all(self.engine)

    def drop_schema(self) -> None:
        metadata.drop_all(self.engine)

    def _add_item(self, item: StockItem) -> StockItem:
        with self.engine.begin() as conn:
            conn.execute(
                insert(stock_items).values(
                    product_id=str(item.product_id),
                    name=item.name,
                    quantity=item.quantity,
                    unit=item.unit,
                    cost_price=item.cost_price,
                )
            )
        return item

    def _find(self, product_id: str) -> StockItem | None:
        with self.engine.connect() as conn:
            row = conn.execute(select(stock_items).where(stock_items.c.product_id == product_id)).first()
        if row is None:
            return None
        return StockItem(
            product_id=row.product_id,
            name=row.name,
            quantity=row.quantity,
            unit=row.unit,
            cost_price=row.cost_price,
        )

    def _reserve(self, product_id: str, quantity: int) -> StockMovement:
        with self.engine.begin() as conn:
            result = conn.execute(
                update(stock_items)
                .where(
                    stock_items.c.product_id == product_id,
                    stock_items.c.quantity >= quantity,
                )
                .values(quantity=stock_items.c.quantity - quantity)
            )
            current = self._current_quantity(conn, product_id)
            if result.rowcount == 0:
                if current is None:
                    raise NotFound("Product", product_id)
                raise InsufficientStock(product_id, quantity, current)
        return StockMovement(product_id, current + quantity, current)

    def _release(self, product_id: str, quantity: int) -> StockMovement:
        with self.engine.begin() as conn:
            result = conn.execute(
                update(stock_items)
                .where(stock_items.c.product_id == product_id)
                .values(quantity=stock_items.c.quantity + quantity)
            )
            if result.rowcount == 0:
                raise NotFound("Product", product_id)
            current = self._current_quantity(conn, product_id)
        return StockMovement(product_id, current - quantity, current)

    @staticmethod
    def _current_quantity(conn: Connection, product_id: str) -> int | None:
        return conn.execute(
            select(stock_items.c.quantity).where(stock_items.c.product_id == product_id)
        ).scalar_one_or_none()
