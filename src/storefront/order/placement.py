"""Order placement: command and handler."""

import json

from protean import handle
from protean.fields import Float, Identifier, String, Text
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.order.order import Order, PaymentMethod


@storefront.command(part_of="Order")
class PlaceOrder:
    user_id = Identifier(required=True)
    items = Text(required=True)  # JSON: list of line dicts, stock already reserved
    payment_method = String(required=True, choices=PaymentMethod)
    shipping_address = Text(required=True)  # JSON: address dict
    total_price = Float()  # Optional; defaults to the sum of the lines


@storefront.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        items_data = json.loads(command.items) if isinstance(command.items, str) else command.items
        shipping_address = (
            json.loads(command.shipping_address)
            if isinstance(command.shipping_address, str)
            else command.shipping_address
        )

        order = Order.place(
            user_id=command.user_id,
            items_data=items_data,
            payment_method=command.payment_method,
            shipping_address=shipping_address,
            total_price=command.total_price,
        )
        current_domain.repository_for(Order).add(order)
        return str(order.id)
