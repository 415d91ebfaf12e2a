"""Domain events for the Order aggregate."""

from protean.fields import Boolean, DateTime, Float, Identifier, String, Text

from storefront.domain import storefront


@storefront.event(part_of="Order")
class OrderPlaced:
    """An order was placed and its stock reserved."""

    __version__ = 1

    order_id = Identifier(required=True)
    user_id = Identifier(required=True)
    items = Text(required=True)  # JSON-serialized line items
    payment_method = String(required=True)
    total_price = Float()
    placed_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderPaid:
    """Payment for an order was confirmed."""

    __version__ = 1

    order_id = Identifier(required=True)
    payment_method = String()
    total_price = Float()
    payment_reference = String()
    paid_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderProcessing:
    """A paid order moved into processing."""

    __version__ = 1

    order_id = Identifier(required=True)
    changed_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderCompleted:
    """An order was completed; its goods have left the store."""

    __version__ = 1

    order_id = Identifier(required=True)
    changed_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderCancelled:
    """An order was cancelled and its reserved stock released."""

    __version__ = 1

    order_id = Identifier(required=True)
    items = Text(required=True)  # JSON-serialized released lines
    changed_at = DateTime(required=True)


@storefront.event(part_of="Order")
class RefundRequested:
    """The customer asked for a paid order to be refunded."""

    __version__ = 1

    order_id = Identifier(required=True)
    reason = String()
    changed_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderRefunded:
    """Money for an order was returned to the customer."""

    __version__ = 1

    order_id = Identifier(required=True)
    total_price = Float()
    reason = String()
    restock = Boolean(default=False)
    changed_at = DateTime(required=True)
