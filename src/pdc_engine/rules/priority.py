"""Outreach priority scoring."""

from typing import Dict, Tuple

from ..core.models import AppliedBonuses, ContextFlags, FragilityTier, PriorityScoreResult, UrgencyLevel

PRIORITY_BASE_SCORES: Dict[FragilityTier, int] = {
    FragilityTier.F1_IMMINENT: 100,
    FragilityTier.F2_FRAGILE: 80,
    FragilityTier.F3_MODERATE: 60,
    FragilityTier.F4_COMFORTABLE: 40,
    FragilityTier.F5_SAFE: 20,
    FragilityTier.COMPLIANT: 0,
    FragilityTier.T5_UNSALVAGEABLE: 0,
}

OUT_OF_MEDICATION_BONUS = 30
Q4_BONUS = 25
MULTIPLE_MEASURES_BONUS = 15
NEW_PATIENT_BONUS = 10

MULTIPLE_MEASURES_MINIMUM = 2

# F1 + every bonus
MAX_PRIORITY_SCORE = 180

# Checked top-down against the final score
URGENCY_THRESHOLDS: Tuple[Tuple[int, UrgencyLevel], ...] = (
    (150, UrgencyLevel.EXTREME),
    (100, UrgencyLevel.HIGH),
    (50, UrgencyLevel.MODERATE),
)


def urgency_for_score(priority_score: int) -> UrgencyLevel:
    """EXTREME >= 150, HIGH >= 100, MODERATE >= 50, else LOW."""
    for threshold, level in URGENCY_THRESHOLDS:
        if priority_score >= threshold:
            return level
    return UrgencyLevel.LOW


def score_priority(tier: FragilityTier, context: ContextFlags) -> PriorityScoreResult:
    """Base score for the tier plus every bonus the context earns."""
    base = PRIORITY_BASE_SCORES[tier]
    bonuses = AppliedBonuses(
        out_of_meds=OUT_OF_MEDICATION_BONUS if context.is_out_of_meds else 0,
        q4=Q4_BONUS if context.is_q4 else 0,
        multiple_measures=MULTIPLE_MEASURES_BONUS if context.measure_count >= MULTIPLE_MEASURES_MINIMUM else 0,
        new_patient=NEW_PATIENT_BONUS if context.is_new_patient else 0,
    )
    score = base + bonuses.total
    return PriorityScoreResult(
        priority_score=score,
        urgency_level=urgency_for_score(score),
        base_score=base,
        applied_bonuses=bonuses,
    )
