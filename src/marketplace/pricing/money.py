"""Conversions between float amounts and integer cents."""

from decimal import ROUND_HALF_UP, Decimal


def to_cents(amount) -> int:
    if amount is None:
        return 0
    return int(Decimal(str(amount)).scaleb(2).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def to_amount(cents: int) -> float:
    return round(cents / 100, 2)


def percent_of(cents: int, percent) -> int:
    """``percent``% of ``cents``, rounded half up to a whole cent."""
    share = Decimal(cents) * Decimal(str(percent)) / Decimal(100)
    return int(share.quantize(Decimal(1), rounding=ROUND_HALF_UP))
