"""Coupon management — commands and handler."""

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Identifier, String
from protean.utils.globals import current_domain

from marketplace.coupon.coupon import Coupon, normalize_code
from marketplace.domain import marketplace


@marketplace.command(part_of="Coupon")
class CreateCoupon:
    code = String(required=True, max_length=50)
    kind = String(required=True, max_length=20)
    value = Float(required=True, min_value=0.0)
    min_subtotal = Float(min_value=0.0)
    max_discount = Float(min_value=0.0)
    vendor_id = Identifier()
    expires_at = DateTime()


@marketplace.command(part_of="Coupon")
class DeactivateCoupon:
    code = String(required=True, max_length=50)


def find_coupon(code):
    """Return the coupon registered under ``code``, or ``None``."""
    results = current_domain.repository_for(Coupon)._dao.query.filter(code=normalize_code(code)).all()
    return results.items[0] if results.items else None


@marketplace.command_handler(part_of=Coupon)
class ManageCouponsHandler:
    @handle(CreateCoupon)
    def create_coupon(self, command):
        if find_coupon(command.code) is not None:
            raise ValidationError({"code": [f"Coupon {normalize_code(command.code)} already exists"]})

        coupon = Coupon.create(
            code=command.code,
            kind=command.kind,
            value=command.value,
            min_subtotal=command.min_subtotal,
            max_discount=command.max_discount,
            vendor_id=command.vendor_id,
            expires_at=command.expires_at,
        )
        current_domain.repository_for(Coupon).add(coupon)
        return str(coupon.id)

    @handle(DeactivateCoupon)
    def deactivate_coupon(self, command):
        coupon = find_coupon(command.code)
        if coupon is None:
            raise ValidationError({"code": [f"Coupon {normalize_code(command.code)} does not exist"]})
        coupon.deactivate()
        current_domain.repository_for(Coupon).add(coupon)
