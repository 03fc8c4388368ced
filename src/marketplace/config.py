"""Business settings read from the ``[custom]`` table of the domain config."""

from dataclasses import dataclass

from protean.utils.globals import current_domain

_DEFAULTS = {
    "CURRENCY": "USD",
    "FREE_DELIVERY_THRESHOLD": 500.0,
    "DELIVERY_FEE": 100.0,
    "DELIVERY_SCOPE": "cart",
    "FEE_ALLOCATION": "proportional",
    "MAX_PAYMENT_ATTEMPTS": 3,
    "REMOTE_TIMEOUT": 10.0,
    "ORDER_NUMBER_PREFIX": "MP",
}


@dataclass(frozen=True)
class Settings:
    currency: str
    free_delivery_threshold: float
    delivery_fee: float
    delivery_scope: str
    fee_allocation: str
    max_payment_attempts: int
    remote_timeout: float
    order_number_prefix: str


def settings() -> Settings:
    """Return the active settings, falling back to defaults for missing keys."""
    values = dict(_DEFAULTS)
    values.update(current_domain.config.get("custom", {}) or {})
    return Settings(
        currency=str(values["CURRENCY"]),
        free_delivery_threshold=float(values["FREE_DELIVERY_THRESHOLD"]),
        delivery_fee=float(values["DELIVERY_FEE"]),
        delivery_scope=str(values["DELIVERY_SCOPE"]),
        fee_allocation=str(values["FEE_ALLOCATION"]),
        max_payment_attempts=int(values["MAX_PAYMENT_ATTEMPTS"]),
        remote_timeout=float(values["REMOTE_TIMEOUT"]),
        order_number_prefix=str(values["ORDER_NUMBER_PREFIX"]),
    )
