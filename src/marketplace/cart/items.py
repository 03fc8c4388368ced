"""Cart management — commands and handler."""

import json

from protean import handle
from protean.fields import Boolean, Float, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from marketplace.cart.cart import ShoppingCart
from marketplace.domain import marketplace


@marketplace.command(part_of="ShoppingCart")
class CreateCart:
    customer_id = Identifier()


@marketplace.command(part_of="ShoppingCart")
class AddCartItem:
    cart_id = Identifier(required=True)
    product_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    title = String(max_length=255)
    unit_price = Float(required=True, min_value=0.0)
    compare_at_price = Float(min_value=0.0)
    quantity = Integer(required=True, min_value=1)


@marketplace.command(part_of="ShoppingCart")
class UpdateCartItemQuantity:
    cart_id = Identifier(required=True)
    line_id = Identifier(required=True)
    new_quantity = Integer(required=True)  # zero or less removes the line


@marketplace.command(part_of="ShoppingCart")
class RemoveCartItem:
    cart_id = Identifier(required=True)
    line_id = Identifier(required=True)


@marketplace.command(part_of="ShoppingCart")
class ClearCart:
    cart_id = Identifier(required=True)
    vendor_ids = Text()  # JSON list; omitted clears every vendor


@marketplace.command(part_of="ShoppingCart")
class MarkItemAvailability:
    cart_id = Identifier(required=True)
    line_id = Identifier(required=True)
    available = Boolean(required=True)


@marketplace.command(part_of="ShoppingCart")
class RestoreCart:
    cart_id = Identifier(required=True)
    lines = Text(required=True)  # JSON snapshot from ShoppingCart.snapshot_lines()
    reason = Text()


@marketplace.command_handler(part_of=ShoppingCart)
class ManageCartHandler:
    @handle(CreateCart)
    def create_cart(self, command):
        cart = ShoppingCart.create(customer_id=command.customer_id)
        current_domain.repository_for(ShoppingCart).add(cart)
        return str(cart.id)

    @handle(AddCartItem)
    def add_item(self, command):
        repo = current_domain.repository_for(ShoppingCart)
        cart = repo.get(command.cart_id)
        line = cart.add_item(
            product_id=command.product_id,
            vendor_id=command.vendor_id,
            unit_price=command.unit_price,
            quantity=command.quantity,
            title=command.title,
            compare_at_price=command.compare_at_price,
        )
        repo.add(cart)
        return str(line.id)

    @handle(UpdateCartItemQuantity)
    def update_quantity(self, command):
        repo = current_domain.repository_for(ShoppingCart)
        cart = repo.get(command.cart_id)
        cart.update_quantity(command.line_id, command.new_quantity)
        repo.add(cart)

    @handle(RemoveCartItem)
    def remove_item(self, command):
        repo = current_domain.repository_for(ShoppingCart)
        cart = repo.get(command.cart_id)
        cart.remove_item(command.line_id)
        repo.add(cart)

    @handle(ClearCart)
    def clear(self, command):
        repo = current_domain.repository_for(ShoppingCart)
        cart = repo.get(command.cart_id)
        vendor_ids = json.loads(command.vendor_ids) if command.vendor_ids else None
        cart.clear(vendor_ids=vendor_ids)
        repo.add(cart)

    @handle(MarkItemAvailability)
    def mark_availability(self, command):
        repo = current_domain.repository_for(ShoppingCart)
        cart = repo.get(command.cart_id)
        cart.mark_availability(command.line_id, command.available)
        repo.add(cart)

    @handle(RestoreCart)
    def restore(self, command):
        repo = current_domain.repository_for(ShoppingCart)
        cart = repo.get(command.cart_id)
        cart.restore_lines(json.loads(command.lines), reason=command.reason)
        repo.add(cart)
