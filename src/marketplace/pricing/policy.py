"""Pricing policy: pure functions turning cart lines into a PriceBreakdown.

Lines are any objects exposing ``vendor_id``, ``unit_price``,
``compare_at_price``, ``quantity`` and ``available``. Cart line entities,
order items and plain dataclasses all qualify. Only available lines are
priced.

Amounts are accumulated in integer cents and rounded back to two decimals
at the edges, so a breakdown always satisfies

    total == max(0, subtotal - item_discount_total - coupon_discount + delivery_fee)

``subtotal`` is what the lines cost at their unit prices. ``item_discount_total``
is the saving against the compare-at prices and is deducted again in the total.
"""

from dataclasses import asdict, dataclass
from enum import Enum

from marketplace.errors import InvariantViolation
from marketplace.pricing.delivery import DeliveryRule
from marketplace.pricing.money import percent_of, to_amount, to_cents


class DiscountKind(Enum):
    PERCENTAGE = "Percentage"
    FIXED = "Fixed"
    FREE_DELIVERY = "FreeDelivery"


@dataclass(frozen=True)
class DiscountDescriptor:
    """An accepted coupon, reduced to what pricing needs."""

    code: str
    kind: DiscountKind
    value: float
    vendor_id: str | None = None
    max_discount: float | None = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["kind"] = self.kind.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "DiscountDescriptor":
        return cls(
            code=data["code"],
            kind=DiscountKind(data["kind"]),
            value=float(data["value"]),
            vendor_id=data.get("vendor_id"),
            max_discount=data.get("max_discount"),
        )


@dataclass(frozen=True)
class PriceBreakdown:
    subtotal: float = 0.0
    item_discount_total: float = 0.0
    coupon_discount: float = 0.0
    delivery_fee: float = 0.0
    total: float = 0.0

    def __post_init__(self):
        parts = {
            "subtotal": self.subtotal,
            "item_discount_total": self.item_discount_total,
            "coupon_discount": self.coupon_discount,
            "delivery_fee": self.delivery_fee,
        }
        negative = [name for name, amount in parts.items() if amount < 0]
        if negative:
            raise InvariantViolation(f"Negative price components: {', '.join(negative)}", breakdown=asdict(self))
        if self.total < 0:
            raise InvariantViolation("Total must not be negative", breakdown=asdict(self))

        expected = max(
            0,
            to_cents(self.subtotal)
            - to_cents(self.item_discount_total)
            - to_cents(self.coupon_discount)
            + to_cents(self.delivery_fee),
        )
        if to_cents(self.total) != expected:
            raise InvariantViolation(
                f"Total {self.total} does not match its components ({to_amount(expected)})",
                breakdown=asdict(self),
            )

    @property
    def merchandise_total(self) -> float:
        """Goods at the prices charged; delivery fees and coupon minimums are measured on it."""
        return self.subtotal

    @classmethod
    def from_cents(cls, subtotal: int, item_discount: int, coupon: int, fee: int) -> "PriceBreakdown":
        return cls(
            subtotal=to_amount(subtotal),
            item_discount_total=to_amount(item_discount),
            coupon_discount=to_amount(coupon),
            delivery_fee=to_amount(fee),
            total=to_amount(max(0, subtotal - item_discount - coupon + fee)),
        )

    def to_dict(self) -> dict:
        return asdict(self)


EMPTY_BREAKDOWN = PriceBreakdown()


# ---------------------------------------------------------------------------
# Line arithmetic
# ---------------------------------------------------------------------------
def _priced(lines):
    return [line for line in lines if line.available]


def list_price_cents(line) -> int:
    """Per-unit list price: the compare-at price when it beats the unit price."""
    unit = to_cents(line.unit_price)
    compare = to_cents(line.compare_at_price) if line.compare_at_price is not None else 0
    return max(unit, compare)


def item_discount_cents(line) -> int:
    return (list_price_cents(line) - to_cents(line.unit_price)) * line.quantity


def line_total_cents(line) -> int:
    return to_cents(line.unit_price) * line.quantity


def _by_vendor(lines, amount) -> dict[str, int]:
    totals: dict[str, int] = {}
    for line in _priced(lines):
        vendor_id = str(line.vendor_id)
        totals[vendor_id] = totals.get(vendor_id, 0) + amount(line)
    return totals


def merchandise_by_vendor(lines) -> dict[str, int]:
    """Merchandise cents per vendor over available lines, in first-seen order."""
    return _by_vendor(lines, line_total_cents)


def item_discounts_by_vendor(lines) -> dict[str, int]:
    return _by_vendor(lines, item_discount_cents)


# ---------------------------------------------------------------------------
# Coupons
# ---------------------------------------------------------------------------
def eligible_merchandise_cents(coupon: DiscountDescriptor, merchandise: dict[str, int]) -> int:
    if coupon.vendor_id:
        return merchandise.get(str(coupon.vendor_id), 0)
    return sum(merchandise.values())


def coupon_discount_cents(
    coupon: DiscountDescriptor | None,
    merchandise: dict[str, int],
    fees_by_vendor: dict[str, int] | None,
    delivery_fee: int,
    item_discounts: dict[str, int] | None = None,
) -> int:
    """Raw coupon discount in cents, capped so the total cannot go negative."""
    item_discounts = item_discounts or {}
    if coupon is None:
        return 0

    eligible = eligible_merchandise_cents(coupon, merchandise)
    if coupon.kind is DiscountKind.PERCENTAGE:
        discount = percent_of(eligible, coupon.value)
        if coupon.max_discount is not None:
            discount = min(discount, to_cents(coupon.max_discount))
    elif coupon.kind is DiscountKind.FIXED:
        discount = to_cents(coupon.value)
    else:
        if coupon.vendor_id and fees_by_vendor is not None:
            discount = fees_by_vendor.get(str(coupon.vendor_id), 0)
        else:
            discount = delivery_fee
        return max(0, min(discount, delivery_fee))

    if coupon.vendor_id:
        vendor_fee = fees_by_vendor.get(str(coupon.vendor_id), 0) if fees_by_vendor is not None else 0
        vendor_room = eligible - item_discounts.get(str(coupon.vendor_id), 0) + vendor_fee
        return max(0, min(discount, vendor_room))
    return max(0, min(discount, sum(merchandise.values()) - sum(item_discounts.values()) + delivery_fee))


# ---------------------------------------------------------------------------
# Breakdown
# ---------------------------------------------------------------------------
def compute_breakdown(lines, coupon: DiscountDescriptor | None = None, delivery_rule: DeliveryRule = None):
    """Price ``lines`` under ``delivery_rule`` with an optional accepted coupon.

    The delivery fee is a step function of the subtotal, where unit prices
    already carry the item discounts, and is evaluated before the coupon.
    """
    priced = _priced(lines)
    merchandise = merchandise_by_vendor(priced)
    item_discounts = item_discounts_by_vendor(priced)
    subtotal = sum(merchandise.values())
    item_discount = sum(item_discounts.values())

    fee = delivery_rule.fee_cents(merchandise) if delivery_rule is not None else 0
    fees_by_vendor = delivery_rule.fees_by_vendor(merchandise) if delivery_rule is not None else None

    discount = coupon_discount_cents(coupon, merchandise, fees_by_vendor, fee, item_discounts)
    return PriceBreakdown.from_cents(subtotal, item_discount, discount, fee)
