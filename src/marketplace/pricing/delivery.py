"""Delivery fee rules.

A fee is a step function of the merchandise total, the lines at their unit
prices: free at or above a threshold, otherwise a flat fee. The rule is
applied either once for the whole cart or once per vendor group.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum

from marketplace.config import settings
from marketplace.pricing.money import to_cents


class DeliveryScope(Enum):
    CART = "cart"
    VENDOR = "vendor"


@dataclass(frozen=True)
class DeliveryTerms:
    flat_fee: float
    free_threshold: float | None = None

    def fee_cents(self, merchandise_cents: int) -> int:
        if merchandise_cents <= 0:
            return 0
        if self.free_threshold is not None and merchandise_cents >= to_cents(self.free_threshold):
            return 0
        return to_cents(self.flat_fee)


@dataclass(frozen=True)
class DeliveryRule:
    default: DeliveryTerms
    scope: DeliveryScope = DeliveryScope.CART
    vendor_terms: Mapping[str, DeliveryTerms] = field(default_factory=dict)

    def terms_for(self, vendor_id: str) -> DeliveryTerms:
        return self.vendor_terms.get(str(vendor_id), self.default)

    def fees_by_vendor(self, merchandise_by_vendor: Mapping[str, int]) -> dict[str, int] | None:
        """Per-group fees in cents, or ``None`` when the rule is cart-wide."""
        if self.scope is not DeliveryScope.VENDOR:
            return None
        return {
            vendor_id: self.terms_for(vendor_id).fee_cents(cents) for vendor_id, cents in merchandise_by_vendor.items()
        }

    def fee_cents(self, merchandise_by_vendor: Mapping[str, int]) -> int:
        per_vendor = self.fees_by_vendor(merchandise_by_vendor)
        if per_vendor is not None:
            return sum(per_vendor.values())
        return self.default.fee_cents(sum(merchandise_by_vendor.values()))


def rule_from_settings(vendor_terms: Mapping[str, DeliveryTerms] | None = None) -> DeliveryRule:
    """Build the active rule from domain settings plus optional vendor overrides."""
    active = settings()
    return DeliveryRule(
        default=DeliveryTerms(
            flat_fee=active.delivery_fee,
            free_threshold=active.free_delivery_threshold,
        ),
        scope=DeliveryScope(active.delivery_scope),
        vendor_terms=dict(vendor_terms or {}),
    )
