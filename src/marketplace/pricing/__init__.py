"""Pure pricing: breakdowns, delivery rules and discount descriptors."""

from marketplace.pricing.delivery import DeliveryRule, DeliveryScope, DeliveryTerms, rule_from_settings
from marketplace.pricing.policy import (
    EMPTY_BREAKDOWN,
    DiscountDescriptor,
    DiscountKind,
    PriceBreakdown,
    compute_breakdown,
)

__all__ = [
    "EMPTY_BREAKDOWN",
    "DeliveryRule",
    "DeliveryScope",
    "DeliveryTerms",
    "DiscountDescriptor",
    "DiscountKind",
    "PriceBreakdown",
    "compute_breakdown",
    "rule_from_settings",
]
