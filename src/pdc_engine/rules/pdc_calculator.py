"""Proportion of Days Covered calculation.

Formulas:

* PDC = covered days / observed days x 100
* Gap days allowed = floor(measurement days x 20%)
* Gap days remaining = allowed - (observed days - covered days)
* Status quo = (covered + min(supply on hand, days remaining)) / measurement days x 100
* Perfect = (covered + days remaining) / measurement days x 100

The observed window runs from the first fill in the measurement year
through min(as-of, December 31). Measurement days run from the same first
fill through December 31; once the year is closed the two are equal.
Percentages are rounded half up to one decimal with Decimal arithmetic.
"""

from datetime import date, timedelta
from decimal import Context, Decimal, ROUND_FLOOR, ROUND_HALF_UP
from typing import Any, Iterable, List, Optional

import structlog

from ..core.errors import InvalidArgumentError, require_date, require_measurement_year, require_non_negative_int
from ..core.models import FillRecord, PDCResult, TreatmentPeriod
from ..ingestion.fill_normalizer import normalize_fills
from .coverage import calculate_covered_days, days_covered_after
from .refills import DEFAULT_DAYS_SUPPLY, estimate_refills_needed, typical_days_supply

logger = structlog.get_logger()

PDC_TARGET = Decimal("80")
GAP_DAYS_ALLOWED_FRACTION = Decimal("0.20")
MINIMUM_FILLS = 2

_ONE_DECIMAL = Decimal("0.1")
_HUNDRED = Decimal("100")
_DECIMAL_CONTEXT = Context(prec=28, rounding=ROUND_HALF_UP)


def percentage(days: int, denominator: int) -> float:
    """days / denominator as a percentage, one decimal, capped at 100."""
    if denominator <= 0:
        return 0.0
    ratio = _DECIMAL_CONTEXT.divide(_DECIMAL_CONTEXT.multiply(Decimal(days), _HUNDRED), Decimal(denominator))
    value = min(ratio.quantize(_ONE_DECIMAL, rounding=ROUND_HALF_UP), _HUNDRED)
    return float(value)


def gap_days_allowed(measurement_days: int) -> int:
    """floor(measurement_days x 20%)."""
    allowed = (Decimal(measurement_days) * GAP_DAYS_ALLOWED_FRACTION).to_integral_value(rounding=ROUND_FLOOR)
    return int(allowed)


def days_to_runout(last_fill: FillRecord, as_of: date) -> int:
    """(last fill date + days supply) - as-of; zero or negative means out of medication."""
    return (last_fill.fill_date + timedelta(days=last_fill.days_supply) - as_of).days


def fills_in_window(fills: Iterable[FillRecord], measurement_year: int, as_of: date) -> List[FillRecord]:
    """Fills dispensed inside the measurement year and not after the as-of date."""
    require_measurement_year(measurement_year)
    window_start = date(measurement_year, 1, 1)
    window_end = min(as_of, date(measurement_year, 12, 31))
    return [fill for fill in fills if window_start <= fill.fill_date <= window_end]


def compute_adherence(
    fills: Iterable[Any],
    measurement_year: int,
    as_of: date,
    current_supply_on_hand: Optional[int] = None,
    remaining_refills: Optional[int] = None,
    standard_days_supply: int = DEFAULT_DAYS_SUPPLY,
) -> PDCResult:
    """Compute PDC, gap-day budget and projections for one patient and medication group.

    Args:
        fills: Raw dispense records or FillRecords for one patient and measure
        measurement_year: Calendar year being measured
        as_of: Date the calculation is made for; nothing later is read
        current_supply_on_hand: Days of medication on hand; derived from the
            fills when None
        remaining_refills: Refills left on the prescription; only validated
            here, classification consumes it
        standard_days_supply: Days per refill when the fills give no pattern

    Returns:
        PDCResult, zeroed when fewer than two valid fills fall in the window

    Raises:
        InvalidArgumentError: negative supply or refills, a year outside
            the supported date range, or an as-of date before the
            measurement year starts
    """
    require_measurement_year(measurement_year)
    as_of = require_date("as_of", as_of)
    if as_of < date(measurement_year, 1, 1):
        raise InvalidArgumentError(f"as_of {as_of.isoformat()} is before measurement year {measurement_year}")
    if current_supply_on_hand is not None:
        require_non_negative_int("current_supply_on_hand", current_supply_on_hand)
    if remaining_refills is not None:
        require_non_negative_int("remaining_refills", remaining_refills)

    window_fills = fills_in_window(normalize_fills(fills), measurement_year, as_of)
    if len(window_fills) < MINIMUM_FILLS:
        logger.debug("pdc_zeroed", fill_count=len(window_fills))
        return PDCResult.zeroed(fill_count=len(window_fills))

    year_end = date(measurement_year, 12, 31)
    first_fill = window_fills[0]
    last_fill = window_fills[-1]

    period = TreatmentPeriod(start=first_fill.fill_date, end=min(as_of, year_end))
    treatment_days = period.length_days
    measurement_days = (year_end - first_fill.fill_date).days + 1
    days_remaining = max(0, (year_end - period.end).days)

    covered_days = calculate_covered_days(window_fills, period.end)

    runout = days_to_runout(last_fill, as_of)
    if current_supply_on_hand is None:
        current_supply = days_covered_after(window_fills, as_of)
    else:
        current_supply = current_supply_on_hand

    gap_used = treatment_days - covered_days
    gap_allowed = gap_days_allowed(measurement_days)

    result = PDCResult(
        pdc=percentage(covered_days, treatment_days),
        covered_days=covered_days,
        treatment_days=treatment_days,
        gap_days_used=gap_used,
        gap_days_allowed=gap_allowed,
        gap_days_remaining=gap_allowed - gap_used,
        pdc_status_quo=percentage(covered_days + min(current_supply, days_remaining), measurement_days),
        pdc_perfect=percentage(covered_days + days_remaining, measurement_days),
        days_to_runout=runout,
        current_supply=current_supply,
        refills_needed=estimate_refills_needed(
            days_remaining,
            current_supply,
            typical_days_supply(window_fills, standard_days_supply),
        ),
        fill_count=len(window_fills),
        measurement_days=measurement_days,
        days_remaining_in_period=days_remaining,
        period=period,
        last_fill_date=last_fill.fill_date,
    )

    logger.debug(
        "pdc_calculated",
        pdc=result.pdc,
        covered_days=covered_days,
        treatment_days=treatment_days,
        gap_days_remaining=result.gap_days_remaining,
    )
    return result
