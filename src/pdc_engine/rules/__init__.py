"""Adherence rules: coverage merging, PDC, fragility tiers and priority."""

from .coverage import MergeStep, calculate_covered_days, merge_intervals
from .fragility import apply_q4_tightening, classify_fragility, tier_for_delay_budget
from .pdc_calculator import compute_adherence
from .priority import score_priority, urgency_for_score
from .refills import days_to_year_end, is_q4

__all__ = [
    "MergeStep",
    "apply_q4_tightening",
    "calculate_covered_days",
    "classify_fragility",
    "compute_adherence",
    "days_to_year_end",
    "is_q4",
    "merge_intervals",
    "score_priority",
    "tier_for_delay_budget",
    "urgency_for_score",
]
