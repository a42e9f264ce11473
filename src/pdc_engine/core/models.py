"""Value objects passed between the pipeline stages.

Every object here is frozen. A stage builds a new object instead of
mutating the one it was given.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Optional, Tuple

from .errors import InvalidArgumentError, require_bool, require_non_negative_int


class FragilityTier(Enum):
    """Outreach urgency tiers."""
    COMPLIANT = "COMPLIANT"
    F1_IMMINENT = "F1_IMMINENT"
    F2_FRAGILE = "F2_FRAGILE"
    F3_MODERATE = "F3_MODERATE"
    F4_COMFORTABLE = "F4_COMFORTABLE"
    F5_SAFE = "F5_SAFE"
    T5_UNSALVAGEABLE = "T5_UNSALVAGEABLE"


class UrgencyLevel(Enum):
    """Urgency buckets derived from the priority score."""
    EXTREME = "EXTREME"
    HIGH = "HIGH"
    MODERATE = "MODERATE"
    LOW = "LOW"


class Measure(Enum):
    """Medication adherence measures."""
    MAC = "MAC"  # cholesterol (statins)
    MAD = "MAD"  # diabetes
    MAH = "MAH"  # hypertension (RAS antagonists)


@dataclass(frozen=True)
class FillRecord:
    """A single validated dispense event."""
    fill_date: date
    days_supply: int
    medication_key: str = ""

    def __post_init__(self):
        if not isinstance(self.fill_date, date):
            raise InvalidArgumentError(f"fill_date must be a date, got {self.fill_date!r}")
        if isinstance(self.days_supply, bool) or not isinstance(self.days_supply, int) or self.days_supply <= 0:
            raise InvalidArgumentError(f"days_supply must be a positive integer, got {self.days_supply!r}")

    @property
    def last_covered_date(self) -> date:
        """Last calendar day this fill covers on its own."""
        return self.fill_date + timedelta(days=self.days_supply - 1)


@dataclass(frozen=True)
class CoverageInterval:
    """A maximal contiguous covered span, both ends inclusive."""
    start: date
    end: date

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1


@dataclass(frozen=True)
class TreatmentPeriod:
    """Observed window: index date through min(as-of, December 31)."""
    start: date
    end: date

    @property
    def length_days(self) -> int:
        return max(1, (self.end - self.start).days + 1)


@dataclass(frozen=True)
class PDCResult:
    """Output of the PDC calculator.

    Attributes:
        pdc: Covered share of the observed window, percent, one decimal
        covered_days: Days covered at least once inside the observed window
        treatment_days: Inclusive length of the observed window
        gap_days_used: treatment_days - covered_days
        gap_days_allowed: floor(20% of the measurement window)
        gap_days_remaining: gap_days_allowed - gap_days_used, may be negative
        pdc_status_quo: Year-end projection if current supply runs out with no refill
        pdc_perfect: Year-end projection with continuous coverage from now on
        days_to_runout: (last fill date + supply) - as-of, negative once out
        current_supply: Days of supply on hand after the as-of date
        refills_needed: Estimated refills required to reach year end
        fill_count: Valid fills inside the measurement window
        measurement_days: Index date through December 31, inclusive
        days_remaining_in_period: Days after the as-of date through December 31
        period: Observed window, None for a zeroed result
        last_fill_date: Date of the most recent valid fill
    """
    pdc: float
    covered_days: int
    treatment_days: int
    gap_days_used: int
    gap_days_allowed: int
    gap_days_remaining: int
    pdc_status_quo: float
    pdc_perfect: float
    days_to_runout: int
    current_supply: int
    refills_needed: int
    fill_count: int = 0
    measurement_days: int = 0
    days_remaining_in_period: int = 0
    period: Optional[TreatmentPeriod] = None
    last_fill_date: Optional[date] = None

    @classmethod
    def zeroed(cls, fill_count: int = 0) -> "PDCResult":
        """Result for fewer than two valid fills."""
        return cls(
            pdc=0.0,
            covered_days=0,
            treatment_days=0,
            gap_days_used=0,
            gap_days_allowed=0,
            gap_days_remaining=0,
            pdc_status_quo=0.0,
            pdc_perfect=0.0,
            days_to_runout=0,
            current_supply=0,
            refills_needed=0,
            fill_count=fill_count,
        )

    @property
    def is_zeroed(self) -> bool:
        return self.period is None

    @property
    def is_out_of_medication(self) -> bool:
        return not self.is_zeroed and self.days_to_runout <= 0


@dataclass(frozen=True)
class ContextFlags:
    """Caller-supplied context for classification and scoring."""
    is_out_of_meds: bool = False
    is_q4: bool = False
    measure_count: int = 1
    is_new_patient: bool = False

    def __post_init__(self):
        require_bool("is_out_of_meds", self.is_out_of_meds)
        require_bool("is_q4", self.is_q4)
        require_non_negative_int("measure_count", self.measure_count)
        require_bool("is_new_patient", self.is_new_patient)


@dataclass(frozen=True)
class FragilityInput:
    """Everything the fragility classifier looks at."""
    pdc_result: PDCResult
    remaining_refills: int
    days_to_year_end: int
    is_out_of_meds: bool = False

    def __post_init__(self):
        if not isinstance(self.pdc_result, PDCResult):
            raise InvalidArgumentError(f"pdc_result must be a PDCResult, got {type(self.pdc_result).__name__}")
        require_non_negative_int("remaining_refills", self.remaining_refills)
        require_non_negative_int("days_to_year_end", self.days_to_year_end)
        require_bool("is_out_of_meds", self.is_out_of_meds)


@dataclass(frozen=True)
class FragilityFlags:
    """Which classification rules fired."""
    is_compliant: bool = False
    is_unsalvageable: bool = False
    is_out_of_meds: bool = False
    is_q4_tightened: bool = False


@dataclass(frozen=True)
class FragilityResult:
    """Output of the fragility classifier.

    ``delay_budget_per_refill`` is None for COMPLIANT, T5_UNSALVAGEABLE and
    the zero-refills case.
    """
    tier: FragilityTier
    delay_budget_per_refill: Optional[float]
    contact_window: str
    action: str
    tier_level: int
    flags: FragilityFlags = field(default_factory=FragilityFlags)
    rule: str = ""


@dataclass(frozen=True)
class AppliedBonuses:
    """Contribution of each priority bonus, zero when it did not fire."""
    out_of_meds: int = 0
    q4: int = 0
    multiple_measures: int = 0
    new_patient: int = 0

    @property
    def total(self) -> int:
        return self.out_of_meds + self.q4 + self.multiple_measures + self.new_patient


@dataclass(frozen=True)
class PriorityScoreResult:
    """Output of the priority scorer."""
    priority_score: int
    urgency_level: UrgencyLevel
    base_score: int
    applied_bonuses: AppliedBonuses


@dataclass(frozen=True)
class MeasureAdherence:
    """Full pipeline output for one patient and one measure."""
    measure: Optional[Measure]
    pdc_result: PDCResult
    fragility: FragilityResult
    priority: PriorityScoreResult
    remaining_refills: int
    context: ContextFlags


@dataclass(frozen=True)
class PatientAdherenceSummary:
    """Per-measure results for one patient."""
    patient_id: str
    measurement_year: int
    as_of: date
    measures: Tuple[MeasureAdherence, ...] = ()
    records_received: int = 0
    records_dropped: int = 0

    @property
    def top_priority(self) -> Optional[MeasureAdherence]:
        """Measure with the highest priority score, first one on ties."""
        best = None
        for result in self.measures:
            if best is None or result.priority.priority_score > best.priority.priority_score:
                best = result
        return best
