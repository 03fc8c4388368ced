"""Tests for splitting a cart breakdown across vendor groups."""

from dataclasses import dataclass

from marketplace.checkout.allocation import FeeAllocation, allocate, largest_remainder, split_fee
from marketplace.pricing import (
    DeliveryRule,
    DeliveryScope,
    DeliveryTerms,
    DiscountDescriptor,
    DiscountKind,
    compute_breakdown,
)
from marketplace.pricing.money import to_cents


@dataclass
class Line:
    vendor_id: str
    unit_price: float
    quantity: int = 1
    compare_at_price: float | None = None
    available: bool = True


CART_RULE = DeliveryRule(default=DeliveryTerms(flat_fee=100.0, free_threshold=500.0))
SAVE10 = DiscountDescriptor(code="SAVE10", kind=DiscountKind.PERCENTAGE, value=10)


def _standard_lines():
    return [Line("vendor-a", 100.0, 2), Line("vendor-b", 130.0, 1)]


def _by_vendor(allocations):
    return {allocation.vendor_id: allocation.breakdown for allocation in allocations}


def _assert_sums_to_cart(lines, coupon, rule, strategy=FeeAllocation.PROPORTIONAL):
    cart = compute_breakdown(lines, coupon=coupon, delivery_rule=rule)
    groups = [a.breakdown for a in allocate(lines, coupon, rule, strategy)]
    for part in ("subtotal", "item_discount_total", "coupon_discount", "delivery_fee", "total"):
        assert sum(to_cents(getattr(g, part)) for g in groups) == to_cents(getattr(cart, part)), part


class TestLargestRemainder:
    def test_shares_always_sum_to_total(self):
        shares = largest_remainder(100, [1, 1, 1])
        assert sum(shares) == 100
        assert sorted(shares) == [33, 33, 34]

    def test_ties_go_to_the_earlier_weight(self):
        assert largest_remainder(100, [1, 1, 1]) == [34, 33, 33]

    def test_zero_weights_split_evenly(self):
        assert largest_remainder(10, [0, 0]) == [5, 5]

    def test_no_weights(self):
        assert largest_remainder(10, []) == []


class TestSplitFee:
    merchandise = {"vendor-a": 20000, "vendor-b": 13000}

    def test_proportional(self):
        assert split_fee(10000, self.merchandise, FeeAllocation.PROPORTIONAL) == {"vendor-a": 6061, "vendor-b": 3939}

    def test_equal(self):
        assert split_fee(10000, self.merchandise, FeeAllocation.EQUAL) == {"vendor-a": 5000, "vendor-b": 5000}

    def test_largest(self):
        assert split_fee(10000, self.merchandise, FeeAllocation.LARGEST) == {"vendor-a": 10000, "vendor-b": 0}


class TestAllocate:
    def test_standard_cart_with_coupon(self):
        groups = _by_vendor(allocate(_standard_lines(), SAVE10, CART_RULE))

        assert list(groups) == ["vendor-a", "vendor-b"]
        assert groups["vendor-a"].subtotal == 200.0
        assert groups["vendor-a"].coupon_discount == 20.0
        assert groups["vendor-a"].delivery_fee == 60.61
        assert groups["vendor-a"].total == 240.61
        assert groups["vendor-b"].coupon_discount == 13.0
        assert groups["vendor-b"].delivery_fee == 39.39
        assert groups["vendor-b"].total == 156.39

    def test_group_totals_add_up_to_the_cart(self):
        _assert_sums_to_cart(_standard_lines(), SAVE10, CART_RULE)

    def test_group_subtotal_is_at_unit_prices(self):
        lines = [Line("vendor-a", 80.0, 2, compare_at_price=100.0), Line("vendor-b", 130.0)]
        groups = _by_vendor(allocate(lines, None, CART_RULE))

        assert groups["vendor-a"].subtotal == 160.0
        assert groups["vendor-a"].item_discount_total == 40.0
        _assert_sums_to_cart(lines, None, CART_RULE)

    def test_uneven_amounts_still_add_up(self):
        lines = [Line("v1", 33.33, 1), Line("v2", 33.33, 2), Line("v3", 0.01, 7, compare_at_price=0.02)]
        coupon = DiscountDescriptor(code="X", kind=DiscountKind.FIXED, value=17.77)
        for strategy in FeeAllocation:
            _assert_sums_to_cart(lines, coupon, CART_RULE, strategy)

    def test_vendor_scoped_coupon_stays_with_its_vendor(self):
        coupon = DiscountDescriptor(code="BONLY", kind=DiscountKind.FIXED, value=30, vendor_id="vendor-b")
        groups = _by_vendor(allocate(_standard_lines(), coupon, CART_RULE))

        assert groups["vendor-a"].coupon_discount == 0.0
        assert groups["vendor-b"].coupon_discount == 30.0

    def test_free_delivery_follows_the_fee_split(self):
        coupon = DiscountDescriptor(code="SHIPFREE", kind=DiscountKind.FREE_DELIVERY, value=0)
        groups = _by_vendor(allocate(_standard_lines(), coupon, CART_RULE))

        for breakdown in groups.values():
            assert breakdown.coupon_discount == breakdown.delivery_fee

    def test_per_vendor_rule_keeps_each_groups_own_fee(self):
        rule = DeliveryRule(
            default=DeliveryTerms(flat_fee=100.0, free_threshold=500.0),
            scope=DeliveryScope.VENDOR,
            vendor_terms={"vendor-b": DeliveryTerms(flat_fee=15.0)},
        )
        groups = _by_vendor(allocate(_standard_lines(), None, rule))

        assert groups["vendor-a"].delivery_fee == 100.0
        assert groups["vendor-b"].delivery_fee == 15.0

    def test_unavailable_only_group_is_left_out(self):
        lines = _standard_lines() + [Line("vendor-c", 10.0, available=False)]
        assert [a.vendor_id for a in allocate(lines, None, CART_RULE)] == ["vendor-a", "vendor-b"]

    def test_empty_cart_has_no_groups(self):
        assert allocate([], None, CART_RULE) == []
