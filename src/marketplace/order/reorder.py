"""Reorder — copy a past order's items back into a cart."""

from protean import handle
from protean.fields import Identifier
from protean.utils.globals import current_domain

from marketplace.cart.cart import ShoppingCart
from marketplace.domain import marketplace
from marketplace.order.order import Order


@marketplace.command(part_of="ShoppingCart")
class Reorder:
    order_id = Identifier(required=True)
    cart_id = Identifier()  # Optional, a new cart is created when omitted


@marketplace.command_handler(part_of=ShoppingCart)
class ReorderHandler:
    @handle(Reorder)
    def reorder(self, command):
        order = current_domain.repository_for(Order).get(command.order_id)
        repo = current_domain.repository_for(ShoppingCart)
        if command.cart_id:
            cart = repo.get(command.cart_id)
        else:
            cart = ShoppingCart.create(customer_id=str(order.customer_id))

        cart.add_from_order([item.as_cart_line(order.vendor_id) for item in order.items])
        repo.add(cart)
        return str(cart.id)
