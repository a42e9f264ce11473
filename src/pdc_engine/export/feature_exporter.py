"""Flatten adherence results into tables for the persistence layer."""

from pathlib import Path
from typing import Any, Dict, Iterable, List, Union

import pandas as pd
import structlog

from ..core.models import MeasureAdherence, PatientAdherenceSummary

logger = structlog.get_logger()

RESULT_COLUMNS = [
    "patient_id",
    "measurement_year",
    "as_of",
    "measure",
    "pdc",
    "pdc_status_quo",
    "pdc_perfect",
    "covered_days",
    "treatment_days",
    "measurement_days",
    "gap_days_used",
    "gap_days_allowed",
    "gap_days_remaining",
    "days_to_runout",
    "current_supply",
    "refills_needed",
    "remaining_refills",
    "fill_count",
    "period_start",
    "period_end",
    "tier",
    "tier_level",
    "delay_budget_per_refill",
    "contact_window",
    "q4_tightened",
    "priority_score",
    "urgency_level",
    "bonus_out_of_meds",
    "bonus_q4",
    "bonus_multiple_measures",
    "bonus_new_patient",
]


def _measure_row(summary: PatientAdherenceSummary, result: MeasureAdherence) -> Dict[str, Any]:
    pdc = result.pdc_result
    bonuses = result.priority.applied_bonuses
    return {
        "patient_id": summary.patient_id,
        "measurement_year": summary.measurement_year,
        "as_of": summary.as_of.isoformat(),
        "measure": result.measure.value if result.measure else None,
        "pdc": pdc.pdc,
        "pdc_status_quo": pdc.pdc_status_quo,
        "pdc_perfect": pdc.pdc_perfect,
        "covered_days": pdc.covered_days,
        "treatment_days": pdc.treatment_days,
        "measurement_days": pdc.measurement_days,
        "gap_days_used": pdc.gap_days_used,
        "gap_days_allowed": pdc.gap_days_allowed,
        "gap_days_remaining": pdc.gap_days_remaining,
        "days_to_runout": pdc.days_to_runout,
        "current_supply": pdc.current_supply,
        "refills_needed": pdc.refills_needed,
        "remaining_refills": result.remaining_refills,
        "fill_count": pdc.fill_count,
        "period_start": pdc.period.start.isoformat() if pdc.period else None,
        "period_end": pdc.period.end.isoformat() if pdc.period else None,
        "tier": result.fragility.tier.value,
        "tier_level": result.fragility.tier_level,
        "delay_budget_per_refill": result.fragility.delay_budget_per_refill,
        "contact_window": result.fragility.contact_window,
        "q4_tightened": result.fragility.flags.is_q4_tightened,
        "priority_score": result.priority.priority_score,
        "urgency_level": result.priority.urgency_level.value,
        "bonus_out_of_meds": bonuses.out_of_meds,
        "bonus_q4": bonuses.q4,
        "bonus_multiple_measures": bonuses.multiple_measures,
        "bonus_new_patient": bonuses.new_patient,
    }


def results_to_frame(
    summaries: Union[PatientAdherenceSummary, Iterable[PatientAdherenceSummary]],
) -> pd.DataFrame:
    """One row per patient and measure, in input order."""
    if isinstance(summaries, PatientAdherenceSummary):
        summaries = [summaries]

    rows: List[Dict[str, Any]] = [
        _measure_row(summary, result)
        for summary in summaries
        for result in summary.measures
    ]
    return pd.DataFrame(rows, columns=RESULT_COLUMNS)


def export_results(frame: pd.DataFrame, output_path: Union[str, Path]) -> Path:
    """Write the frame as CSV or JSON, chosen by file suffix."""
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    if path.suffix == ".csv":
        frame.to_csv(path, index=False)
    elif path.suffix == ".json":
        frame.to_json(path, orient="records", indent=2)
    else:
        raise ValueError(f"Unsupported export format: {path.suffix or '(none)'}")

    logger.info(f"Exported {len(frame)} result rows to {path}")
    return path
