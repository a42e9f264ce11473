"""Fragility tier classification.

Rules are evaluated in the order of ``TIER_RULES`` and the first one that
returns a result wins:

1. compliant      pdc_status_quo >= 80, regardless of anything else
2. unsalvageable  pdc_perfect < 80 or gap_days_remaining < 0
3. no_refills     remaining_refills == 0 -> F5_SAFE
4. delay_budget   gap_days_remaining / remaining_refills mapped to F1..F5

Q4 tightening then promotes F2..F5 by exactly one level when fewer than
60 days remain in the year and at most 5 gap days remain.
"""

from dataclasses import replace
from decimal import Decimal
from typing import Callable, Dict, Optional, Tuple

import structlog

from ..core.models import FragilityFlags, FragilityInput, FragilityResult, FragilityTier
from .pdc_calculator import PDC_TARGET

logger = structlog.get_logger()

# Inclusive upper bounds; a budget of exactly 2.0 is F1, exactly 5.0 is F2
DELAY_BUDGET_TIERS: Tuple[Tuple[int, FragilityTier], ...] = (
    (2, FragilityTier.F1_IMMINENT),
    (5, FragilityTier.F2_FRAGILE),
    (10, FragilityTier.F3_MODERATE),
    (20, FragilityTier.F4_COMFORTABLE),
)

Q4_DAYS_TO_YEAR_END_THRESHOLD = 60  # strictly less than
Q4_GAP_DAYS_THRESHOLD = 5  # less than or equal

Q4_TIER_PROMOTION: Dict[FragilityTier, FragilityTier] = {
    FragilityTier.F5_SAFE: FragilityTier.F4_COMFORTABLE,
    FragilityTier.F4_COMFORTABLE: FragilityTier.F3_MODERATE,
    FragilityTier.F3_MODERATE: FragilityTier.F2_FRAGILE,
    FragilityTier.F2_FRAGILE: FragilityTier.F1_IMMINENT,
}

CONTACT_WINDOWS: Dict[FragilityTier, str] = {
    FragilityTier.F1_IMMINENT: "24 hours",
    FragilityTier.F2_FRAGILE: "48 hours",
    FragilityTier.F3_MODERATE: "1 week",
    FragilityTier.F4_COMFORTABLE: "2 weeks",
    FragilityTier.F5_SAFE: "Monthly",
    FragilityTier.COMPLIANT: "Monitor only",
    FragilityTier.T5_UNSALVAGEABLE: "Special handling required",
}

TIER_ACTIONS: Dict[FragilityTier, str] = {
    FragilityTier.F1_IMMINENT: "Immediate outreach required",
    FragilityTier.F2_FRAGILE: "Urgent outreach recommended",
    FragilityTier.F3_MODERATE: "Standard outreach",
    FragilityTier.F4_COMFORTABLE: "Monitor and schedule",
    FragilityTier.F5_SAFE: "Routine monitoring",
    FragilityTier.COMPLIANT: "No action needed - monitor only",
    FragilityTier.T5_UNSALVAGEABLE: "Special handling - cannot reach 80%",
}

# Lower is more urgent; T5 sorts first as a lost cause
TIER_LEVELS: Dict[FragilityTier, int] = {
    FragilityTier.T5_UNSALVAGEABLE: 0,
    FragilityTier.F1_IMMINENT: 1,
    FragilityTier.F2_FRAGILE: 2,
    FragilityTier.F3_MODERATE: 3,
    FragilityTier.F4_COMFORTABLE: 4,
    FragilityTier.F5_SAFE: 5,
    FragilityTier.COMPLIANT: 6,
}


def _build_result(
    tier: FragilityTier,
    rule: str,
    fragility_input: FragilityInput,
    delay_budget: Optional[float] = None,
    is_compliant: bool = False,
    is_unsalvageable: bool = False,
) -> FragilityResult:
    return FragilityResult(
        tier=tier,
        delay_budget_per_refill=delay_budget,
        contact_window=CONTACT_WINDOWS[tier],
        action=TIER_ACTIONS[tier],
        tier_level=TIER_LEVELS[tier],
        flags=FragilityFlags(
            is_compliant=is_compliant,
            is_unsalvageable=is_unsalvageable,
            is_out_of_meds=fragility_input.is_out_of_meds,
        ),
        rule=rule,
    )


def _compliant_rule(fragility_input: FragilityInput) -> Optional[FragilityResult]:
    if Decimal(str(fragility_input.pdc_result.pdc_status_quo)) >= PDC_TARGET:
        return _build_result(FragilityTier.COMPLIANT, "compliant", fragility_input, is_compliant=True)
    return None


def _unsalvageable_rule(fragility_input: FragilityInput) -> Optional[FragilityResult]:
    pdc_result = fragility_input.pdc_result
    if Decimal(str(pdc_result.pdc_perfect)) < PDC_TARGET or pdc_result.gap_days_remaining < 0:
        return _build_result(FragilityTier.T5_UNSALVAGEABLE, "unsalvageable", fragility_input, is_unsalvageable=True)
    return None


def _no_refills_rule(fragility_input: FragilityInput) -> Optional[FragilityResult]:
    if fragility_input.remaining_refills == 0:
        return _build_result(FragilityTier.F5_SAFE, "no_refills", fragility_input)
    return None


def _delay_budget_rule(fragility_input: FragilityInput) -> FragilityResult:
    budget = calculate_delay_budget(fragility_input.pdc_result.gap_days_remaining, fragility_input.remaining_refills)
    return _build_result(tier_for_delay_budget(budget), "delay_budget", fragility_input, delay_budget=budget)


# Order is load-bearing; tests pin it.
TIER_RULES: Tuple[Tuple[str, Callable[[FragilityInput], Optional[FragilityResult]]], ...] = (
    ("compliant", _compliant_rule),
    ("unsalvageable", _unsalvageable_rule),
    ("no_refills", _no_refills_rule),
    ("delay_budget", _delay_budget_rule),
)


def calculate_delay_budget(gap_days_remaining: int, remaining_refills: int) -> float:
    """Gap days remaining per remaining refill."""
    if remaining_refills <= 0:
        raise ValueError("delay budget is undefined without remaining refills")
    return gap_days_remaining / remaining_refills


def tier_for_delay_budget(delay_budget: float) -> FragilityTier:
    """Map a delay budget to F1..F5; bounds are inclusive on the more urgent tier."""
    for upper_bound, tier in DELAY_BUDGET_TIERS:
        if delay_budget <= upper_bound:
            return tier
    return FragilityTier.F5_SAFE


def apply_q4_tightening(result: FragilityResult, days_to_year_end: int, gap_days_remaining: int) -> FragilityResult:
    """Promote the tier one level near year end; returns a new result or ``result`` unchanged."""
    promoted = Q4_TIER_PROMOTION.get(result.tier)
    if promoted is None:
        return result
    if days_to_year_end >= Q4_DAYS_TO_YEAR_END_THRESHOLD or gap_days_remaining > Q4_GAP_DAYS_THRESHOLD:
        return result

    return replace(
        result,
        tier=promoted,
        contact_window=CONTACT_WINDOWS[promoted],
        action=TIER_ACTIONS[promoted],
        tier_level=TIER_LEVELS[promoted],
        flags=replace(result.flags, is_q4_tightened=True),
    )


def classify_fragility(fragility_input: FragilityInput) -> FragilityResult:
    """Run the ordered tier rules, then Q4 tightening."""
    result = None
    for _, rule in TIER_RULES:
        result = rule(fragility_input)
        if result is not None:
            break

    tightened = apply_q4_tightening(
        result,
        fragility_input.days_to_year_end,
        fragility_input.pdc_result.gap_days_remaining,
    )
    logger.debug(
        "fragility_classified",
        rule=result.rule,
        base_tier=result.tier.value,
        tier=tightened.tier.value,
        q4_tightened=tightened.flags.is_q4_tightened,
    )
    return tightened
