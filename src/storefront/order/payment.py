"""Order payment: command and handler."""

import json

from protean import handle
from protean.fields import Identifier, Text
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.order.order import Order


@storefront.command(part_of="Order")
class MarkOrderPaid:
    order_id = Identifier(required=True)
    payment_result = Text()  # JSON: provider metadata


@storefront.command_handler(part_of=Order)
class OrderPaymentHandler:
    @handle(MarkOrderPaid)
    def mark_order_paid(self, command):
        """Returns True only for the order's first payment."""
        payment_result = command.payment_result
        if isinstance(payment_result, str):
            payment_result = json.loads(payment_result)

        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        first_payment = order.mark_paid(payment_result)
        repo.add(order)
        return first_payment
