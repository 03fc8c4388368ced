"""Domain events for the ShoppingCart aggregate."""

from protean.fields import Boolean, DateTime, Float, Identifier, Integer, Text

from marketplace.domain import marketplace


@marketplace.event(part_of="ShoppingCart")
class CartCreated:
    """A new shopping cart was opened."""

    __version__ = 1

    cart_id = Identifier(required=True)
    customer_id = Identifier()
    created_at = DateTime(required=True)


@marketplace.event(part_of="ShoppingCart")
class CartItemAdded:
    """A product was added to the cart, or merged into an existing line."""

    __version__ = 1

    cart_id = Identifier(required=True)
    line_id = Identifier(required=True)
    product_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    unit_price = Float(required=True)
    quantity = Integer(required=True)


@marketplace.event(part_of="ShoppingCart")
class CartQuantityUpdated:
    """The quantity of a cart line changed."""

    __version__ = 1

    cart_id = Identifier(required=True)
    line_id = Identifier(required=True)
    previous_quantity = Integer(required=True)
    new_quantity = Integer(required=True)


@marketplace.event(part_of="ShoppingCart")
class CartItemRemoved:
    """A line was removed from the cart."""

    __version__ = 1

    cart_id = Identifier(required=True)
    line_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    vendor_group_removed = Boolean(default=False)


@marketplace.event(part_of="ShoppingCart")
class CartCleared:
    """Lines were cleared from the cart, either all of them or a set of vendors."""

    __version__ = 1

    cart_id = Identifier(required=True)
    vendor_ids = Text()  # JSON list; empty means every vendor
    line_count = Integer(required=True)


@marketplace.event(part_of="ShoppingCart")
class CartItemAvailabilityChanged:
    """A cart line became available or unavailable."""

    __version__ = 1

    cart_id = Identifier(required=True)
    line_id = Identifier(required=True)
    available = Boolean(required=True)


@marketplace.event(part_of="ShoppingCart")
class CartRestored:
    """The cart lines were rolled back to an earlier snapshot."""

    __version__ = 1

    cart_id = Identifier(required=True)
    line_count = Integer(required=True)
    reason = Text()
