"""Coupon validation against a cart snapshot.

``CouponValidator.validate`` answers with ``Accepted`` carrying the discount
descriptor pricing needs, or ``Rejected`` carrying one of the enumerated
reasons. The same rules run again on every cart change while a checkout holds
the coupon (see ``revalidate``).
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

import structlog

from marketplace.coupon.coupon import normalize_code
from marketplace.coupon.management import find_coupon
from marketplace.pricing import DiscountDescriptor
from marketplace.pricing.money import to_cents
from marketplace.pricing.policy import eligible_merchandise_cents, merchandise_by_vendor

logger = structlog.get_logger(__name__)


class RejectionReason(Enum):
    NOT_FOUND = "NotFound"
    EXPIRED = "Expired"
    BELOW_MINIMUM_SUBTOTAL = "BelowMinimumSubtotal"
    ALREADY_APPLIED = "AlreadyApplied"
    VENDOR_NOT_ELIGIBLE = "VendorNotEligible"


@dataclass(frozen=True)
class Accepted:
    descriptor: DiscountDescriptor
    accepted: bool = True


@dataclass(frozen=True)
class Rejected:
    reason: RejectionReason
    accepted: bool = False

    @property
    def notice(self) -> str:
        return f"coupon removed: {self.reason.value}"


class CouponValidator:
    """Validates coupon codes; ``lookup`` maps a normalized code to a coupon or ``None``."""

    def __init__(self, lookup=None):
        self._lookup = lookup or find_coupon

    def validate(self, code, lines, applied_code=None, now=None):
        normalized = normalize_code(code)
        if applied_code and normalize_code(applied_code) == normalized:
            return Rejected(RejectionReason.ALREADY_APPLIED)
        return self._check(normalized, lines, now)

    def revalidate(self, descriptor: DiscountDescriptor, lines, now=None):
        """Re-run the rules for an already applied coupon after the cart changed."""
        return self._check(normalize_code(descriptor.code), lines, now)

    def _check(self, code, lines, now):
        coupon = self._lookup(code)
        if coupon is None or not coupon.is_active:
            return Rejected(RejectionReason.NOT_FOUND)

        if coupon.is_expired(now or datetime.now(UTC)):
            return Rejected(RejectionReason.EXPIRED)

        descriptor = coupon.descriptor()
        merchandise = merchandise_by_vendor(lines)
        if descriptor.vendor_id and descriptor.vendor_id not in merchandise:
            return Rejected(RejectionReason.VENDOR_NOT_ELIGIBLE)

        if coupon.min_subtotal and eligible_merchandise_cents(descriptor, merchandise) < to_cents(coupon.min_subtotal):
            return Rejected(RejectionReason.BELOW_MINIMUM_SUBTOTAL)

        logger.debug("Coupon accepted", code=code, kind=descriptor.kind.value)
        return Accepted(descriptor)
