"""Order status changes and follow-up record links: commands and handler."""

from enum import Enum

from protean import handle
from protean.fields import Boolean, Identifier, String
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.order.order import Order


class LinkedRecord(Enum):
    PAYMENT_TRANSACTION = "payment_transaction"
    REFUND_TRANSACTION = "refund_transaction"
    EXPORT_VOUCHER = "export_voucher"
    IMPORT_VOUCHER = "import_voucher"


@storefront.command(part_of="Order")
class ChangeOrderStatus:
    order_id = Identifier(required=True)
    status = String(required=True, max_length=30)
    reason = String(max_length=500)
    notes = String(max_length=1000)
    restock = Boolean(default=False)


@storefront.command(part_of="Order")
class LinkOrderRecord:
    order_id = Identifier(required=True)
    record_type = String(required=True, choices=LinkedRecord)
    record_id = Identifier(required=True)


@storefront.command_handler(part_of=Order)
class OrderStatusHandler:
    @handle(ChangeOrderStatus)
    def change_order_status(self, command):
        """Returns the ``Transition`` the order applied."""
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        transition = order.transition_to(
            command.status,
            reason=command.reason,
            notes=command.notes,
            restock=command.restock,
        )
        if transition.changed:
            repo.add(order)
        return transition

    @handle(LinkOrderRecord)
    def link_order_record(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        record_type = LinkedRecord(command.record_type)
        if record_type == LinkedRecord.PAYMENT_TRANSACTION:
            order.link_payment_transaction(command.record_id)
        elif record_type == LinkedRecord.REFUND_TRANSACTION:
            order.link_refund_transaction(command.record_id)
        elif record_type == LinkedRecord.EXPORT_VOUCHER:
            order.link_export_voucher(command.record_id)
        else:
            order.link_import_voucher(command.record_id)
        repo.add(order)
