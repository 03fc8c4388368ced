"""Tests for the Coupon aggregate and CouponValidator."""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import pytest
from marketplace.coupon.coupon import Coupon, normalize_code
from marketplace.coupon.events import CouponCreated, CouponDeactivated
from marketplace.coupon.validation import Accepted, CouponValidator, Rejected, RejectionReason
from marketplace.pricing import DiscountKind
from protean.exceptions import ValidationError


@dataclass
class Line:
    vendor_id: str
    unit_price: float
    quantity: int = 1
    compare_at_price: float | None = None
    available: bool = True


LINES = [Line("vendor-a", 100.0, 2), Line("vendor-b", 130.0, 1)]


def _validator(*coupons):
    catalog = {coupon.code: coupon for coupon in coupons}
    return CouponValidator(lookup=catalog.get)


class TestCouponAggregate:
    def test_code_is_normalized(self):
        coupon = Coupon.create(code="  save10 ", kind="Percentage", value=10)
        assert coupon.code == "SAVE10"
        assert isinstance(coupon._events[-1], CouponCreated)

    def test_percentage_above_hundred_is_rejected(self):
        with pytest.raises(ValidationError):
            Coupon.create(code="TOOMUCH", kind="Percentage", value=120)

    def test_fixed_coupon_may_exceed_hundred(self):
        assert Coupon.create(code="BIGFIXED", kind="Fixed", value=150).value == 150

    def test_deactivate(self):
        coupon = Coupon.create(code="SAVE10", kind="Percentage", value=10)
        coupon.deactivate()

        assert coupon.is_active is False
        assert isinstance(coupon._events[-1], CouponDeactivated)

    def test_deactivate_twice_is_rejected(self):
        coupon = Coupon.create(code="SAVE10", kind="Percentage", value=10)
        coupon.deactivate()
        with pytest.raises(ValidationError):
            coupon.deactivate()

    def test_expiry(self):
        now = datetime.now(UTC)
        coupon = Coupon.create(code="OLD", kind="Fixed", value=5, expires_at=now - timedelta(days=1))

        assert coupon.is_expired(now) is True
        assert Coupon.create(code="NEW", kind="Fixed", value=5).is_expired(now) is False

    def test_descriptor(self):
        coupon = Coupon.create(code="ALO", kind="Percentage", value=15, vendor_id="vendor-b", max_discount=50)
        descriptor = coupon.descriptor()

        assert descriptor.kind is DiscountKind.PERCENTAGE
        assert descriptor.vendor_id == "vendor-b"
        assert descriptor.max_discount == 50

    def test_normalize_code_handles_none(self):
        assert normalize_code(None) == ""


class TestCouponValidator:
    def test_valid_coupon_is_accepted(self):
        outcome = _validator(Coupon.create(code="SAVE10", kind="Percentage", value=10)).validate("save10", LINES)

        assert isinstance(outcome, Accepted)
        assert outcome.descriptor.code == "SAVE10"

    def test_unknown_code(self):
        outcome = _validator().validate("NOPE", LINES)

        assert isinstance(outcome, Rejected)
        assert outcome.reason is RejectionReason.NOT_FOUND

    def test_inactive_coupon_is_not_found(self):
        coupon = Coupon.create(code="SAVE10", kind="Percentage", value=10)
        coupon.deactivate()
        assert _validator(coupon).validate("SAVE10", LINES).reason is RejectionReason.NOT_FOUND

    def test_expired(self):
        coupon = Coupon.create(
            code="OLD", kind="Fixed", value=5, expires_at=datetime.now(UTC) - timedelta(minutes=1)
        )
        assert _validator(coupon).validate("OLD", LINES).reason is RejectionReason.EXPIRED

    def test_below_minimum_subtotal(self):
        coupon = Coupon.create(code="BIGSPEND", kind="Fixed", value=50, min_subtotal=400)
        outcome = _validator(coupon).validate("BIGSPEND", LINES)

        assert outcome.reason is RejectionReason.BELOW_MINIMUM_SUBTOTAL
        assert outcome.notice == "coupon removed: BelowMinimumSubtotal"

    def test_minimum_subtotal_is_inclusive(self):
        coupon = Coupon.create(code="EXACT", kind="Fixed", value=50, min_subtotal=330)
        assert _validator(coupon).validate("EXACT", LINES).accepted is True

    def test_already_applied(self):
        coupon = Coupon.create(code="SAVE10", kind="Percentage", value=10)
        outcome = _validator(coupon).validate("SAVE10", LINES, applied_code="save10")
        assert outcome.reason is RejectionReason.ALREADY_APPLIED

    def test_vendor_not_in_cart(self):
        coupon = Coupon.create(code="CONLY", kind="Fixed", value=5, vendor_id="vendor-c")
        assert _validator(coupon).validate("CONLY", LINES).reason is RejectionReason.VENDOR_NOT_ELIGIBLE

    def test_vendor_minimum_uses_that_vendors_merchandise(self):
        coupon = Coupon.create(code="BONLY", kind="Fixed", value=5, vendor_id="vendor-b", min_subtotal=150)
        assert _validator(coupon).validate("BONLY", LINES).reason is RejectionReason.BELOW_MINIMUM_SUBTOTAL

    def test_unavailable_lines_do_not_count(self):
        coupon = Coupon.create(code="EXACT", kind="Fixed", value=50, min_subtotal=330)
        lines = [Line("vendor-a", 100.0, 2), Line("vendor-b", 130.0, 1, available=False)]
        assert _validator(coupon).validate("EXACT", lines).reason is RejectionReason.BELOW_MINIMUM_SUBTOTAL

    def test_revalidate_ignores_already_applied(self):
        coupon = Coupon.create(code="SAVE10", kind="Percentage", value=10)
        assert _validator(coupon).revalidate(coupon.descriptor(), LINES).accepted is True
