"""StockHistoryEntry aggregate (CQRS): write-once audit record of a stock movement.

One entry is written per line item of an approved voucher, capturing the
counter before and after the change. For vouchers settled by an order the
movement is the order's own reservation, so the entry documents the shipment
without the voucher moving stock a second time.
"""

from datetime import UTC, datetime

from protean import handle
from protean.fields import DateTime, Identifier, Integer, String
from protean.utils.globals import current_domain

from storefront.domain import storefront


@storefront.aggregate
class StockHistoryEntry:
    product_id = Identifier(required=True)
    product_name = String(max_length=255)
    movement_type = String(required=True, max_length=20)
    # Not required: a counter may legitimately read zero
    quantity_before = Integer(default=0)
    quantity_change = Integer(default=0)
    quantity_after = Integer(default=0)
    reason = String(max_length=500)
    voucher_id = Identifier()
    voucher_number = String(max_length=50)
    related_order_id = Identifier()
    performed_by = String(max_length=255)
    note = String(max_length=500)
    recorded_at = DateTime()


@storefront.command(part_of="StockHistoryEntry")
class RecordStockMovement:
    product_id = Identifier(required=True)
    product_name = String(max_length=255)
    movement_type = String(required=True, max_length=20)
    quantity_before = Integer(default=0)
    quantity_after = Integer(default=0)
    reason = String(max_length=500)
    voucher_id = Identifier()
    voucher_number = String(max_length=50)
    related_order_id = Identifier()
    performed_by = String(max_length=255)
    note = String(max_length=500)


@storefront.command_handler(part_of=StockHistoryEntry)
class StockHistoryHandler:
    @handle(RecordStockMovement)
    def record_stock_movement(self, command):
        entry = StockHistoryEntry(
            product_id=command.product_id,
            product_name=command.product_name,
            movement_type=command.movement_type,
            quantity_before=command.quantity_before,
            quantity_change=command.quantity_after - command.quantity_before,
            quantity_after=command.quantity_after,
            reason=command.reason,
            voucher_id=command.voucher_id,
            voucher_number=command.voucher_number,
            related_order_id=command.related_order_id,
            performed_by=command.performed_by,
            note=command.note,
            recorded_at=datetime.now(UTC),
        )
        current_domain.repository_for(StockHistoryEntry).add(entry)
        return str(entry.id)


def stock_history(product_id=None, voucher_id=None, movement_type=None) -> list[StockHistoryEntry]:
    """History entries matching the filters, oldest first."""
    filters = {}
    if product_id is not None:
        filters["product_id"] = str(product_id)
    if voucher_id is not None:
        filters["voucher_id"] = str(voucher_id)
    if movement_type is not None:
        filters["movement_type"] = movement_type

    query = current_domain.repository_for(StockHistoryEntry)._dao.query
    if filters:
        query = query.filter(**filters)
    return sorted(query.all().items, key=lambda entry: entry.recorded_at)
