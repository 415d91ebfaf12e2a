"""Domain events for the Transaction aggregate."""

from protean.fields import DateTime, Float, Identifier, String

from storefront.domain import storefront


@storefront.event(part_of="Transaction")
class TransactionRecorded:
    """An income or expense entry was appended to the ledger."""

    __version__ = 1

    transaction_id = Identifier(required=True)
    transaction_number = String(required=True)
    transaction_type = String(required=True)
    category = String(required=True)
    amount = Float()
    related_order_id = Identifier()
    related_voucher_id = Identifier()
    recorded_at = DateTime(required=True)
