"""Integer minor-unit arithmetic shared by pricing and the wallet ledger."""

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

Number = Union[int, float, str, Decimal]


def round_to_minor_units(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def price_for_duration(price_per_hour: int, duration_minutes: int) -> int:
    """Lesson price for ``duration_minutes`` at an hourly rate, in minor units."""
    return round_to_minor_units(Decimal(price_per_hour) * Decimal(duration_minutes) / Decimal(60))


def commission_for(amount: int, rate: Number) -> int:
    # str() keeps 0.15 exact instead of inheriting float noise
    return round_to_minor_units(Decimal(amount) * Decimal(str(rate)))
