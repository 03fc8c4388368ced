"""Splitting a cart's PriceBreakdown across its vendor groups.

Line-derived amounts (subtotal, item discounts) belong to the group whose
lines produced them. The delivery fee and the coupon discount are shared
amounts and are split as follows:

* Delivery fee, per-vendor rule: each group keeps the fee its own terms
  produced.
* Delivery fee, cart-wide rule: split by the configured ``FeeAllocation``
  strategy, ``proportional`` to merchandise (default), ``equal`` or
  ``largest`` (all of it to the group with the most merchandise).
* Coupon: a vendor-scoped percentage or fixed coupon goes entirely to its
  vendor. Free delivery follows the fee split. Percentage coupons split by
  merchandise and fixed coupons by what each group would otherwise pay
  (merchandise less item discounts plus fee).

Splits use the largest-remainder method on integer cents, so the group
breakdowns always add up to the cart breakdown to the cent.
"""

from dataclasses import dataclass
from enum import Enum

from marketplace.pricing import DiscountDescriptor, DiscountKind, PriceBreakdown
from marketplace.pricing.delivery import DeliveryRule
from marketplace.pricing.policy import coupon_discount_cents, item_discounts_by_vendor, merchandise_by_vendor


class FeeAllocation(Enum):
    PROPORTIONAL = "proportional"
    EQUAL = "equal"
    LARGEST = "largest"


@dataclass(frozen=True)
class GroupAllocation:
    vendor_id: str
    breakdown: PriceBreakdown


def largest_remainder(total: int, weights: list[int]) -> list[int]:
    """Split ``total`` cents proportionally to ``weights``; shares sum to ``total``."""
    if not weights:
        return []
    if sum(weights) <= 0:
        weights = [1] * len(weights)

    weight_sum = sum(weights)
    shares = [total * w // weight_sum for w in weights]
    remainders = [(total * w % weight_sum, -index) for index, w in enumerate(weights)]
    leftover = total - sum(shares)
    for _, negative_index in sorted(remainders, reverse=True)[:leftover]:
        shares[-negative_index] += 1
    return shares


def split_fee(fee: int, merchandise: dict[str, int], strategy: FeeAllocation) -> dict[str, int]:
    vendors = list(merchandise)
    if strategy is FeeAllocation.EQUAL:
        shares = largest_remainder(fee, [1] * len(vendors))
    elif strategy is FeeAllocation.LARGEST:
        largest = max(vendors, key=lambda v: merchandise[v])
        shares = [fee if v == largest else 0 for v in vendors]
    else:
        shares = largest_remainder(fee, [merchandise[v] for v in vendors])
    return dict(zip(vendors, shares, strict=True))


def _coupon_weights(coupon, vendors, merchandise, item_discounts, fees, scoped_fees) -> list[int]:
    if coupon.kind is DiscountKind.FREE_DELIVERY:
        if coupon.vendor_id and scoped_fees is not None:
            return [fees[v] if v == coupon.vendor_id else 0 for v in vendors]
        return [fees[v] for v in vendors]
    if coupon.vendor_id:
        return [1 if v == coupon.vendor_id else 0 for v in vendors]
    if coupon.kind is DiscountKind.PERCENTAGE:
        return [merchandise[v] for v in vendors]
    return [max(0, merchandise[v] - item_discounts[v] + fees[v]) for v in vendors]


def allocate(
    lines,
    coupon: DiscountDescriptor | None,
    delivery_rule: DeliveryRule,
    strategy: FeeAllocation = FeeAllocation.PROPORTIONAL,
) -> list[GroupAllocation]:
    """One breakdown per vendor group with available lines, in first-seen order."""
    priced = [line for line in lines if line.available]

    merchandise = merchandise_by_vendor(priced)
    item_discounts = item_discounts_by_vendor(priced)

    vendors = list(merchandise)
    if not vendors:
        return []

    scoped_fees = delivery_rule.fees_by_vendor(merchandise)
    total_fee = delivery_rule.fee_cents(merchandise)
    fees = scoped_fees if scoped_fees is not None else split_fee(total_fee, merchandise, strategy)

    discount = coupon_discount_cents(coupon, merchandise, scoped_fees, total_fee, item_discounts)
    if discount:
        weights = _coupon_weights(coupon, vendors, merchandise, item_discounts, fees, scoped_fees)
        discounts = dict(zip(vendors, largest_remainder(discount, weights), strict=True))
    else:
        discounts = dict.fromkeys(vendors, 0)

    return [
        GroupAllocation(
            vendor_id=vendor_id,
            breakdown=PriceBreakdown.from_cents(
                merchandise[vendor_id],
                item_discounts[vendor_id],
                discounts[vendor_id],
                fees[vendor_id],
            ),
        )
        for vendor_id in vendors
    ]
