"""Ledger entries: command and handler."""

from protean import handle
from protean.fields import Float, Identifier, String
from protean.utils.globals import current_domain

from storefront.accounting.transaction import Transaction, TransactionCategory, TransactionType
from storefront.domain import storefront


@storefront.command(part_of="Transaction")
class RecordTransaction:
    transaction_type = String(required=True, choices=TransactionType)
    category = String(required=True, choices=TransactionCategory)
    amount = Float(required=True, min_value=0.0)
    description = String(max_length=500)
    payment_method = String(max_length=50)
    related_order_id = Identifier()
    related_voucher_id = Identifier()
    created_by = String(max_length=255)


@storefront.command_handler(part_of=Transaction)
class TransactionHandler:
    @handle(RecordTransaction)
    def record_transaction(self, command):
        transaction = Transaction.record(
            transaction_type=command.transaction_type,
            category=command.category,
            amount=command.amount,
            description=command.description,
            payment_method=command.payment_method,
            related_order_id=command.related_order_id,
            related_voucher_id=command.related_voucher_id,
            created_by=command.created_by,
        )
        current_domain.repository_for(Transaction).add(transaction)
        return str(transaction.id)
