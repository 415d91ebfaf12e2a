"""Domain events for the StockVoucher aggregate."""

from protean.fields import DateTime, Float, Identifier, String, Text

from storefront.domain import storefront


@storefront.event(part_of="StockVoucher")
class StockVoucherCreated:
    """A stock voucher was drafted and awaits approval."""

    __version__ = 1

    voucher_id = Identifier(required=True)
    voucher_number = String(required=True)
    voucher_type = String(required=True)
    source = String(required=True)
    reason = String(required=True)
    items = Text(required=True)  # JSON-serialized line items
    total_value = Float()
    related_order_id = Identifier()
    created_by = String()
    created_at = DateTime(required=True)


@storefront.event(part_of="StockVoucher")
class StockVoucherUpdated:
    """A pending voucher's reason, notes or items were edited."""

    __version__ = 1

    voucher_id = Identifier(required=True)
    reason = String(required=True)
    items = Text(required=True)
    total_value = Float()
    updated_at = DateTime(required=True)


@storefront.event(part_of="StockVoucher")
class StockVoucherApproved:
    """A voucher was approved and its stock movements applied."""

    __version__ = 1

    voucher_id = Identifier(required=True)
    voucher_number = String(required=True)
    voucher_type = String(required=True)
    approved_by = String()
    approved_at = DateTime(required=True)


@storefront.event(part_of="StockVoucher")
class StockVoucherRejected:
    """A pending voucher was rejected without touching stock."""

    __version__ = 1

    voucher_id = Identifier(required=True)
    rejected_by = String()
    rejection_reason = String()
    rejected_at = DateTime(required=True)


@storefront.event(part_of="StockVoucher")
class StockVoucherCancelled:
    """A pending voucher was withdrawn."""

    __version__ = 1

    voucher_id = Identifier(required=True)
    cancelled_by = String()
    cancelled_at = DateTime(required=True)
