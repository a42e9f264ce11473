"""Adherence engine: the two public entry points and per-patient evaluation."""

from datetime import date
from typing import Any, Iterable, Mapping, Optional, Tuple, Union

import structlog

from .config import Config
from .errors import InvalidArgumentError, require_date, require_measurement_year, require_non_negative_int
from .models import (
    ContextFlags,
    FragilityInput,
    FragilityResult,
    Measure,
    MeasureAdherence,
    PatientAdherenceSummary,
    PDCResult,
    PriorityScoreResult,
)
from ..ingestion.fill_normalizer import FillNormalizer
from ..normalization.measures import MeasureClassifier
from ..rules.fragility import classify_fragility
from ..rules.pdc_calculator import compute_adherence as _compute_adherence, fills_in_window
from ..rules.priority import score_priority
from ..rules.refills import days_to_year_end, is_q4

logger = structlog.get_logger()


def classify(
    pdc_result: PDCResult,
    remaining_refills: int,
    days_to_year_end: int,
    context_flags: Union[ContextFlags, Mapping[str, Any]],
) -> Tuple[FragilityResult, PriorityScoreResult]:
    """Fragility tier and priority score for one PDC result.

    Raises:
        InvalidArgumentError: on a non-PDCResult, negative refills or
            days-to-year-end, or malformed context flags
    """
    if isinstance(context_flags, Mapping):
        try:
            context_flags = ContextFlags(**context_flags)
        except TypeError as e:
            raise InvalidArgumentError(f"invalid context flags: {e}") from e
    elif not isinstance(context_flags, ContextFlags):
        raise InvalidArgumentError(f"context_flags must be ContextFlags, got {type(context_flags).__name__}")

    fragility = classify_fragility(FragilityInput(
        pdc_result=pdc_result,
        remaining_refills=remaining_refills,
        days_to_year_end=days_to_year_end,
        is_out_of_meds=context_flags.is_out_of_meds,
    ))
    return fragility, score_priority(fragility.tier, context_flags)


class AdherenceEngine:
    """Deterministic adherence pipeline: normalize, merge, PDC, tier, priority.

    Holds only read-only configuration, so one instance can be shared
    across threads.
    """

    def __init__(self, config: Optional[Config] = None):
        """Initialize the engine with configuration."""
        self.config = config or Config()
        self.measure_classifier = MeasureClassifier(self.config.measures.value_sets)

    def compute_adherence(
        self,
        fills: Iterable[Any],
        measurement_year: int,
        as_of: date,
        current_supply_on_hand: Optional[int] = None,
        remaining_refills: Optional[int] = None,
    ) -> PDCResult:
        """PDC result for fills already scoped to one patient and measure."""
        return _compute_adherence(
            fills,
            measurement_year,
            as_of,
            current_supply_on_hand=current_supply_on_hand,
            remaining_refills=remaining_refills,
            standard_days_supply=self.config.refills.standard_days_supply,
        )

    def classify(
        self,
        pdc_result: PDCResult,
        remaining_refills: int,
        days_to_year_end: int,
        context_flags: Union[ContextFlags, Mapping[str, Any]],
    ) -> Tuple[FragilityResult, PriorityScoreResult]:
        """Fragility tier and priority score for one PDC result."""
        return classify(pdc_result, remaining_refills, days_to_year_end, context_flags)

    def is_new_patient(self, first_fill_date: Optional[date], as_of: date) -> bool:
        """First fill falls inside the configured new-patient window."""
        if first_fill_date is None:
            return False
        return 0 <= (as_of - first_fill_date).days <= self.config.refills.new_patient_window_days

    def assess(
        self,
        fills: Iterable[Any],
        measurement_year: int,
        as_of: date,
        measure: Optional[Measure] = None,
        measure_count: int = 1,
        is_new_patient: Optional[bool] = None,
        current_supply_on_hand: Optional[int] = None,
        remaining_refills: Optional[int] = None,
    ) -> MeasureAdherence:
        """Run both entry points for one measure, deriving the context flags.

        Remaining refills default to the estimated refills needed; the
        out-of-medication and Q4 flags come from the PDC result and as-of date.
        """
        as_of = require_date("as_of", as_of)
        require_non_negative_int("measure_count", measure_count)
        if remaining_refills is not None:
            require_non_negative_int("remaining_refills", remaining_refills)

        pdc_result = self.compute_adherence(
            fills,
            measurement_year,
            as_of,
            current_supply_on_hand=current_supply_on_hand,
            remaining_refills=remaining_refills,
        )
        refills = pdc_result.refills_needed if remaining_refills is None else remaining_refills

        if is_new_patient is None:
            first_fill_date = pdc_result.period.start if pdc_result.period else None
            is_new_patient = self.is_new_patient(first_fill_date, as_of)

        context = ContextFlags(
            is_out_of_meds=pdc_result.is_out_of_medication,
            is_q4=is_q4(as_of),
            measure_count=measure_count,
            is_new_patient=is_new_patient,
        )
        fragility, priority = self.classify(
            pdc_result,
            refills,
            days_to_year_end(as_of, measurement_year),
            context,
        )
        return MeasureAdherence(
            measure=measure,
            pdc_result=pdc_result,
            fragility=fragility,
            priority=priority,
            remaining_refills=refills,
            context=context,
        )

    def evaluate_patient(
        self,
        dispenses: Iterable[Any],
        measurement_year: int,
        as_of: date,
        patient_id: str = "",
    ) -> PatientAdherenceSummary:
        """Evaluate every measure a patient's dispenses count toward.

        Dispenses are normalized once and limited to the measurement year
        up to the as-of date. The remaining fills are grouped by measure
        through the configured value sets, and each group is assessed on its
        own. The multiple-measures bonus counts only measures with a fill in
        that window.
        """
        require_measurement_year(measurement_year)
        as_of = require_date("as_of", as_of)
        if as_of < date(measurement_year, 1, 1):
            raise InvalidArgumentError(f"as_of {as_of.isoformat()} is before measurement year {measurement_year}")
        dispenses = list(dispenses)

        normalizer = FillNormalizer()
        fills = normalizer.normalize(dispenses)
        grouped = self.measure_classifier.group_fills(fills_in_window(fills, measurement_year, as_of))

        results = tuple(
            self.assess(
                measure_fills,
                measurement_year,
                as_of,
                measure=measure,
                measure_count=len(grouped),
            )
            for measure, measure_fills in grouped.items()
        )

        summary = PatientAdherenceSummary(
            patient_id=patient_id,
            measurement_year=measurement_year,
            as_of=as_of,
            measures=results,
            records_received=len(dispenses),
            records_dropped=len(dispenses) - len(fills),
        )
        top = summary.top_priority
        logger.info(
            "patient_evaluated",
            patient_id=patient_id,
            measures=[result.measure.value for result in results],
            top_tier=top.fragility.tier.value if top else None,
            top_priority=top.priority.priority_score if top else None,
            records_dropped=summary.records_dropped,
        )
        return summary
