"""Refill estimation and calendar helpers."""

from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Sequence

from ..core.errors import require_non_negative_int
from ..core.models import FillRecord

DEFAULT_DAYS_SUPPLY = 30

# October, November, December
Q4_MONTHS = (10, 11, 12)


def is_q4(as_of: date) -> bool:
    """True from October 1 through December 31."""
    return as_of.month in Q4_MONTHS


def days_to_year_end(as_of: date, measurement_year: Optional[int] = None) -> int:
    """Calendar days after ``as_of`` through December 31, never negative.

    Args:
        as_of: Reference date
        measurement_year: Year whose December 31 is the target; defaults to the year of ``as_of``
    """
    year = as_of.year if measurement_year is None else measurement_year
    return max(0, (date(year, 12, 31) - as_of).days)


def typical_days_supply(fills: Sequence[FillRecord], default: int = DEFAULT_DAYS_SUPPLY) -> int:
    """Mean days supply of the fills, rounded half up; ``default`` with no fills."""
    if not fills:
        return default
    mean = Decimal(sum(fill.days_supply for fill in fills)) / Decimal(len(fills))
    rounded = int(mean.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return rounded if rounded > 0 else default


def coverage_shortfall(days_remaining: int, supply_on_hand: int) -> int:
    """Days between running out and year end, 0 when supply reaches year end."""
    return max(0, days_remaining - supply_on_hand)


def estimate_refills_needed(days_remaining: int, supply_on_hand: int, days_per_refill: int) -> int:
    """Refills needed to cover the shortfall, rounded up.

    This is not the number of refills left on the prescription.
    """
    require_non_negative_int("days_remaining", days_remaining)
    require_non_negative_int("supply_on_hand", supply_on_hand)
    if days_per_refill <= 0:
        days_per_refill = DEFAULT_DAYS_SUPPLY

    shortfall = coverage_shortfall(days_remaining, supply_on_hand)
    if shortfall == 0:
        return 0
    return -(-shortfall // days_per_refill)
