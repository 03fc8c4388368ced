"""Tests for the pricing policy: breakdowns, delivery rules and coupons."""

from dataclasses import dataclass

import pytest
from marketplace.errors import InvariantViolation
from marketplace.pricing import (
    DeliveryRule,
    DeliveryScope,
    DeliveryTerms,
    DiscountDescriptor,
    DiscountKind,
    PriceBreakdown,
    compute_breakdown,
    rule_from_settings,
)
from marketplace.pricing.money import percent_of, to_amount, to_cents


@dataclass
class Line:
    vendor_id: str
    unit_price: float
    quantity: int = 1
    compare_at_price: float | None = None
    available: bool = True


CART_RULE = DeliveryRule(default=DeliveryTerms(flat_fee=100.0, free_threshold=500.0))


def _standard_lines():
    return [Line("vendor-a", 100.0, 2), Line("vendor-b", 130.0, 1)]


class TestMoney:
    def test_to_cents_rounds_half_up(self):
        assert to_cents(0.125) == 13
        assert to_cents(19.99) == 1999

    def test_to_cents_of_none_is_zero(self):
        assert to_cents(None) == 0

    def test_to_amount(self):
        assert to_amount(1999) == 19.99

    def test_percent_of(self):
        assert percent_of(33000, 10) == 3300
        assert percent_of(999, 15) == 150


class TestPriceBreakdown:
    def test_consistent_breakdown_is_accepted(self):
        breakdown = PriceBreakdown(
            subtotal=330.0, item_discount_total=0.0, coupon_discount=33.0, delivery_fee=100.0, total=397.0
        )
        assert breakdown.merchandise_total == 330.0

    def test_total_mismatch_is_an_invariant_violation(self):
        with pytest.raises(InvariantViolation):
            PriceBreakdown(subtotal=100.0, delivery_fee=10.0, total=100.0)

    def test_negative_component_is_an_invariant_violation(self):
        with pytest.raises(InvariantViolation) as exc:
            PriceBreakdown(subtotal=100.0, coupon_discount=-5.0, total=105.0)
        assert "coupon_discount" in exc.value.message

    def test_from_cents_derives_total(self):
        breakdown = PriceBreakdown.from_cents(10000, 1000, 500, 250)
        assert breakdown.total == 87.5


class TestComputeBreakdown:
    def test_standard_two_vendor_cart(self):
        breakdown = compute_breakdown(_standard_lines(), delivery_rule=CART_RULE)

        assert breakdown.subtotal == 330.0
        assert breakdown.item_discount_total == 0.0
        assert breakdown.coupon_discount == 0.0
        assert breakdown.delivery_fee == 100.0
        assert breakdown.total == 430.0

    def test_percentage_coupon(self):
        coupon = DiscountDescriptor(code="SAVE10", kind=DiscountKind.PERCENTAGE, value=10)
        breakdown = compute_breakdown(_standard_lines(), coupon=coupon, delivery_rule=CART_RULE)

        assert breakdown.coupon_discount == 33.0
        assert breakdown.total == 397.0

    def test_percentage_coupon_respects_max_discount(self):
        coupon = DiscountDescriptor(code="BIG", kind=DiscountKind.PERCENTAGE, value=50, max_discount=20.0)
        breakdown = compute_breakdown(_standard_lines(), coupon=coupon, delivery_rule=CART_RULE)
        assert breakdown.coupon_discount == 20.0

    def test_fixed_coupon_cannot_push_total_below_zero(self):
        coupon = DiscountDescriptor(code="HUGE", kind=DiscountKind.FIXED, value=10_000)
        breakdown = compute_breakdown([Line("vendor-a", 20.0)], coupon=coupon, delivery_rule=CART_RULE)

        assert breakdown.coupon_discount == 120.0
        assert breakdown.total == 0.0

    def test_free_delivery_coupon_discounts_the_fee(self):
        coupon = DiscountDescriptor(code="SHIPFREE", kind=DiscountKind.FREE_DELIVERY, value=0)
        breakdown = compute_breakdown(_standard_lines(), coupon=coupon, delivery_rule=CART_RULE)

        assert breakdown.delivery_fee == 100.0
        assert breakdown.coupon_discount == 100.0
        assert breakdown.total == 330.0

    def test_vendor_scoped_percentage_applies_to_that_vendor_only(self):
        coupon = DiscountDescriptor(code="ALO", kind=DiscountKind.PERCENTAGE, value=10, vendor_id="vendor-b")
        breakdown = compute_breakdown(_standard_lines(), coupon=coupon, delivery_rule=CART_RULE)
        assert breakdown.coupon_discount == 13.0

    def test_compare_at_price_counts_as_item_discount(self):
        lines = [Line("vendor-a", 80.0, 2, compare_at_price=100.0)]
        breakdown = compute_breakdown(lines, delivery_rule=CART_RULE)

        assert breakdown.subtotal == 160.0
        assert breakdown.item_discount_total == 40.0
        assert breakdown.merchandise_total == 160.0
        assert breakdown.delivery_fee == 100.0
        assert breakdown.total == 220.0

    def test_total_follows_the_breakdown_identity(self):
        lines = [Line("vendor-a", 80.0, 2, compare_at_price=100.0), Line("vendor-b", 130.0)]
        coupon = DiscountDescriptor(code="SAVE10", kind=DiscountKind.PERCENTAGE, value=10)
        breakdown = compute_breakdown(lines, coupon=coupon, delivery_rule=CART_RULE)

        assert breakdown.subtotal == 290.0
        assert breakdown.coupon_discount == 29.0
        assert breakdown.total == 321.0

    def test_item_discounts_limit_the_coupon(self):
        coupon = DiscountDescriptor(code="HUGE", kind=DiscountKind.FIXED, value=10_000)
        lines = [Line("vendor-a", 80.0, 2, compare_at_price=100.0)]
        breakdown = compute_breakdown(lines, coupon=coupon, delivery_rule=CART_RULE)

        assert breakdown.coupon_discount == 220.0
        assert breakdown.total == 0.0

    def test_savings_above_the_price_clamp_the_total_at_zero(self):
        lines = [Line("vendor-a", 10.0, 1, compare_at_price=200.0)]
        breakdown = compute_breakdown(lines, delivery_rule=CART_RULE)

        assert breakdown.item_discount_total == 190.0
        assert breakdown.total == 0.0

    def test_compare_at_price_below_unit_price_is_ignored(self):
        breakdown = compute_breakdown([Line("vendor-a", 80.0, 1, compare_at_price=50.0)], delivery_rule=CART_RULE)
        assert breakdown.item_discount_total == 0.0
        assert breakdown.subtotal == 80.0

    def test_unavailable_lines_are_not_priced(self):
        lines = _standard_lines() + [Line("vendor-c", 999.0, available=False)]
        breakdown = compute_breakdown(lines, delivery_rule=CART_RULE)
        assert breakdown.subtotal == 330.0

    def test_empty_cart_costs_nothing(self):
        breakdown = compute_breakdown([], delivery_rule=CART_RULE)
        assert breakdown == PriceBreakdown()

    def test_free_delivery_at_threshold(self):
        breakdown = compute_breakdown([Line("vendor-a", 250.0, 2)], delivery_rule=CART_RULE)
        assert breakdown.delivery_fee == 0.0
        assert breakdown.total == 500.0

    def test_threshold_uses_merchandise_after_item_discounts(self):
        lines = [Line("vendor-a", 450.0, 1, compare_at_price=550.0)]
        breakdown = compute_breakdown(lines, delivery_rule=CART_RULE)
        assert breakdown.delivery_fee == 100.0


class TestDeliveryRule:
    def test_per_vendor_scope_charges_each_group(self):
        rule = DeliveryRule(
            default=DeliveryTerms(flat_fee=100.0, free_threshold=500.0),
            scope=DeliveryScope.VENDOR,
            vendor_terms={"vendor-b": DeliveryTerms(flat_fee=25.0, free_threshold=100.0)},
        )
        breakdown = compute_breakdown(_standard_lines(), delivery_rule=rule)

        # vendor-b passes its own threshold, vendor-a pays the default fee
        assert breakdown.delivery_fee == 100.0
        assert rule.fees_by_vendor({"vendor-a": 20000, "vendor-b": 13000}) == {"vendor-a": 10000, "vendor-b": 0}

    def test_cart_scope_has_no_per_vendor_fees(self):
        assert CART_RULE.fees_by_vendor({"vendor-a": 100}) is None

    def test_terms_without_threshold_always_charge(self):
        assert DeliveryTerms(flat_fee=7.5).fee_cents(1_000_000) == 750

    def test_rule_from_settings_uses_domain_config(self):
        rule = rule_from_settings()
        assert rule.default == DeliveryTerms(flat_fee=100.0, free_threshold=500.0)
        assert rule.scope is DeliveryScope.CART


class TestDiscountDescriptor:
    def test_dict_conversion_keeps_kind_value(self):
        descriptor = DiscountDescriptor(code="SAVE10", kind=DiscountKind.PERCENTAGE, value=10.0)
        data = descriptor.to_dict()

        assert data["kind"] == "Percentage"
        assert DiscountDescriptor.from_dict(data) == descriptor
