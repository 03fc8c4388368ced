"""Coupon aggregate (CQRS): a discount code shoppers can apply at checkout.

Coupons come in three kinds. A percentage coupon takes ``value``% off the
eligible merchandise (optionally capped by ``max_discount``), a fixed coupon
takes ``value`` off, and a free-delivery coupon waives the delivery fee.
Coupons may be restricted to a single vendor and may require a minimum
merchandise total.
"""

from datetime import UTC, datetime

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Identifier, String

from marketplace.coupon.events import CouponCreated, CouponDeactivated
from marketplace.domain import marketplace
from marketplace.pricing import DiscountDescriptor, DiscountKind


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


@marketplace.aggregate
class Coupon:
    code = String(required=True, max_length=50, unique=True)
    kind = String(choices=DiscountKind, required=True)
    value = Float(required=True, min_value=0.0)
    min_subtotal = Float(min_value=0.0)
    max_discount = Float(min_value=0.0)
    vendor_id = Identifier()
    expires_at = DateTime()
    is_active = Boolean(default=True)
    created_at = DateTime()

    @invariant.post
    def percentage_cannot_exceed_one_hundred(self):
        if self.kind == DiscountKind.PERCENTAGE.value and self.value is not None and self.value > 100:
            raise ValidationError({"value": ["Percentage coupons cannot exceed 100%"]})

    @classmethod
    def create(
        cls,
        code,
        kind,
        value,
        min_subtotal=None,
        max_discount=None,
        vendor_id=None,
        expires_at=None,
    ):
        coupon = cls(
            code=normalize_code(code),
            kind=kind,
            value=value,
            min_subtotal=min_subtotal,
            max_discount=max_discount,
            vendor_id=vendor_id,
            expires_at=expires_at,
            is_active=True,
            created_at=datetime.now(UTC),
        )
        coupon.raise_(
            CouponCreated(
                coupon_id=str(coupon.id),
                code=coupon.code,
                kind=coupon.kind,
                value=coupon.value,
                min_subtotal=coupon.min_subtotal,
                max_discount=coupon.max_discount,
                vendor_id=coupon.vendor_id,
                expires_at=coupon.expires_at,
            )
        )
        return coupon

    def deactivate(self):
        if not self.is_active:
            raise ValidationError({"code": [f"Coupon {self.code} is already inactive"]})
        self.is_active = False
        self.raise_(
            CouponDeactivated(
                coupon_id=str(self.id),
                code=self.code,
                deactivated_at=datetime.now(UTC),
            )
        )

    def is_expired(self, now=None):
        if self.expires_at is None:
            return False
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=UTC)
        return expires_at <= (now or datetime.now(UTC))

    def descriptor(self) -> DiscountDescriptor:
        return DiscountDescriptor(
            code=self.code,
            kind=DiscountKind(self.kind),
            value=self.value,
            vendor_id=str(self.vendor_id) if self.vendor_id else None,
            max_discount=self.max_discount,
        )
