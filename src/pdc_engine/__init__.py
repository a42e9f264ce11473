"""pdc-engine: medication adherence (Proportion of Days Covered) engine.

This package merges medication fill coverage, computes PDC with its
year-end projections and gap-day budget, classifies outreach fragility
tiers and derives priority scores. Every stage is a pure function of its
inputs, including the explicitly passed as-of date.
"""

__version__ = "0.1.0"
__author__ = "pdc-engine Team"

from .core.config import Config
from .core.errors import InvalidArgumentError, PDCEngineError
from .core.models import ContextFlags, FillRecord, FragilityTier, PDCResult, UrgencyLevel
from .core.pipeline import AdherenceEngine, classify
from .rules.pdc_calculator import compute_adherence

__all__ = [
    "AdherenceEngine",
    "Config",
    "ContextFlags",
    "FillRecord",
    "FragilityTier",
    "InvalidArgumentError",
    "PDCEngineError",
    "PDCResult",
    "UrgencyLevel",
    "classify",
    "compute_adherence",
]
