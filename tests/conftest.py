"""Test fixtures and configuration for pytest."""

import pytest
import tempfile
from dataclasses import replace
from datetime import date
from pathlib import Path

from pdc_engine.core.models import FillRecord, PDCResult, TreatmentPeriod

ATORVASTATIN = "83367"
LISINOPRIL = "310965"


def make_dispense(when, days, code=ATORVASTATIN, status="completed"):
    """FHIR MedicationDispense resource as plain JSON."""
    return {
        "resourceType": "MedicationDispense",
        "status": status,
        "medicationCodeableConcept": {
            "coding": [{
                "system": "http://www.nlm.nih.gov/research/umls/rxnorm",
                "code": code,
            }]
        },
        "whenHandedOver": when,
        "daysSupply": {"value": days, "unit": "days"},
    }


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def dispense():
    """Factory for FHIR MedicationDispense records."""
    return make_dispense


@pytest.fixture
def as_of():
    """Mid-November calculation date, inside Q4 with 45 days left in 2025."""
    return date(2025, 11, 16)


@pytest.fixture
def midyear_fills():
    """Three statin fills with a late third refill.

    Through 2025-11-16: 251 covered of 320 observed days, 4 gap days left.
    """
    return [
        FillRecord(date(2025, 1, 1), 90, ATORVASTATIN),
        FillRecord(date(2025, 4, 20), 90, ATORVASTATIN),
        FillRecord(date(2025, 8, 15), 71, ATORVASTATIN),
    ]


@pytest.fixture
def full_year_fills():
    """Four 90-day fills across 2025, 343 days covered by December 31."""
    return [
        FillRecord(date(2025, 1, 1), 90),
        FillRecord(date(2025, 4, 1), 90),
        FillRecord(date(2025, 7, 15), 90),
        FillRecord(date(2025, 10, 20), 90),
    ]


@pytest.fixture
def patient_dispenses():
    """Statin and ACE inhibitor dispenses plus one cancelled and one unrelated record."""
    return [
        make_dispense("2025-01-01T09:30:00Z", 90, ATORVASTATIN),
        make_dispense("2025-01-01", 180, LISINOPRIL),
        make_dispense("2025-04-20", 90, ATORVASTATIN),
        make_dispense("2025-06-30", 180, LISINOPRIL),
        make_dispense("2025-08-15", 71, ATORVASTATIN),
        make_dispense("2025-09-01", 30, ATORVASTATIN, status="cancelled"),
        make_dispense("2025-09-10", 30, "161"),
    ]


@pytest.fixture
def sample_fhir_bundle(patient_dispenses):
    """Sample FHIR bundle for testing."""
    return {
        "resourceType": "Bundle",
        "id": "test-bundle",
        "type": "collection",
        "entry": [
            {
                "resource": {
                    "resourceType": "Patient",
                    "id": "test-patient",
                    "birthDate": "1950-01-01"
                }
            },
        ] + [{"resource": dispense} for dispense in patient_dispenses]
    }


@pytest.fixture
def make_pdc_result():
    """Factory for PDC results with sensible defaults and per-test overrides."""
    base = PDCResult(
        pdc=72.0,
        covered_days=230,
        treatment_days=320,
        gap_days_used=90,
        gap_days_allowed=73,
        gap_days_remaining=10,
        pdc_status_quo=75.0,
        pdc_perfect=85.0,
        days_to_runout=5,
        current_supply=5,
        refills_needed=2,
        fill_count=4,
        measurement_days=365,
        days_remaining_in_period=45,
        period=TreatmentPeriod(date(2025, 1, 1), date(2025, 11, 16)),
        last_fill_date=date(2025, 10, 21),
    )

    def _make(**overrides):
        return replace(base, **overrides)

    return _make


@pytest.fixture
def sample_config():
    """Sample configuration for testing."""
    from pdc_engine.core.config import Config

    config = Config()
    config.refills.standard_days_supply = 30
    config.refills.new_patient_window_days = 90
    return config
