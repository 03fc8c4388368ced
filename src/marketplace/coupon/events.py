"""Domain events for the Coupon aggregate."""

from protean.fields import DateTime, Float, Identifier, String

from marketplace.domain import marketplace


@marketplace.event(part_of="Coupon")
class CouponCreated:
    """A coupon code was made available to shoppers."""

    __version__ = 1

    coupon_id = Identifier(required=True)
    code = String(required=True)
    kind = String(required=True)
    value = Float(required=True)
    min_subtotal = Float()
    max_discount = Float()
    vendor_id = Identifier()
    expires_at = DateTime()


@marketplace.event(part_of="Coupon")
class CouponDeactivated:
    """A coupon code was withdrawn; it no longer validates."""

    __version__ = 1

    coupon_id = Identifier(required=True)
    code = String(required=True)
    deactivated_at = DateTime(required=True)
