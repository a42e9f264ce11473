"""Test PDC calculation."""

import copy
import pytest
from datetime import date, datetime
from pdc_engine.core.errors import InvalidArgumentError
from pdc_engine.core.models import FillRecord, PDCResult, TreatmentPeriod
from pdc_engine.rules.pdc_calculator import (
    compute_adherence,
    days_to_runout,
    fills_in_window,
    gap_days_allowed,
    percentage,
)


class TestPercentage:
    """Test percentage rounding."""

    def test_rounds_half_up(self):
        """Halves round away from zero, not to even."""
        assert percentage(1, 16) == 6.3
        assert percentage(1, 8) == 12.5
        assert percentage(2, 3) == 66.7
        assert percentage(251, 320) == 78.4

    def test_caps_at_one_hundred(self):
        """Ratios above 1 are reported as 100."""
        assert percentage(400, 365) == 100.0

    def test_zero_denominator(self):
        """An empty window gives 0 instead of dividing by zero."""
        assert percentage(10, 0) == 0.0

    def test_gap_days_allowed(self):
        """Allowed gap days are 20% of the window, floored."""
        assert gap_days_allowed(365) == 73
        assert gap_days_allowed(351) == 70
        assert gap_days_allowed(184) == 36
        assert gap_days_allowed(4) == 0


class TestComputeAdherence:
    """Test compute_adherence."""

    def test_midyear_patient(self, midyear_fills, as_of):
        """Late third refill in mid-November: below target but salvageable."""
        result = compute_adherence(midyear_fills, 2025, as_of)

        assert result.covered_days == 251
        assert result.treatment_days == 320
        assert result.measurement_days == 365
        assert result.pdc == 78.4
        assert result.gap_days_allowed == 73
        assert result.gap_days_used == 69
        assert result.gap_days_remaining == 4
        assert result.pdc_status_quo == 68.8
        assert result.pdc_perfect == 81.1
        assert result.days_remaining_in_period == 45
        assert result.current_supply == 0
        assert result.days_to_runout == -22
        assert result.refills_needed == 1
        assert result.fill_count == 3
        assert result.period == TreatmentPeriod(date(2025, 1, 1), date(2025, 11, 16))
        assert result.last_fill_date == date(2025, 8, 15)
        assert result.is_out_of_medication

    def test_closed_year(self, full_year_fills):
        """After December 31 the observed and measurement windows coincide."""
        result = compute_adherence(full_year_fills, 2025, date(2026, 1, 15))

        assert result.covered_days == 343
        assert result.treatment_days == 365
        assert result.measurement_days == 365
        assert result.pdc == 94.0
        assert result.gap_days_used == 22
        assert result.gap_days_remaining == 51
        assert result.days_remaining_in_period == 0
        assert result.pdc_status_quo == result.pdc_perfect == result.pdc
        assert result.days_to_runout == 3
        assert result.current_supply == 2
        assert result.refills_needed == 0
        assert not result.is_out_of_medication

    def test_measurement_window_starts_at_first_fill(self):
        """A mid-year start is measured from the first fill, not January 1."""
        fills = [FillRecord(date(2025, 7, 1), 30), FillRecord(date(2025, 7, 31), 30)]

        result = compute_adherence(fills, 2025, date(2025, 8, 29))

        assert result.treatment_days == 60
        assert result.covered_days == 60
        assert result.pdc == 100.0
        assert result.measurement_days == 184
        assert result.gap_days_allowed == 36
        assert result.gap_days_remaining == 36
        assert result.days_remaining_in_period == 124
        assert result.pdc_status_quo == 32.6
        assert result.pdc_perfect == 100.0

    def test_explicit_supply_on_hand(self, midyear_fills, as_of):
        """Supply on hand feeds the status quo projection."""
        result = compute_adherence(midyear_fills, 2025, as_of, current_supply_on_hand=30)

        assert result.current_supply == 30
        assert result.pdc_status_quo == 77.0
        assert result.pdc_perfect == 81.1
        assert result.refills_needed == 1

    def test_supply_beyond_year_end_is_capped(self, midyear_fills, as_of):
        """Supply past December 31 does not count toward the projection."""
        result = compute_adherence(midyear_fills, 2025, as_of, current_supply_on_hand=100)

        assert result.pdc_status_quo == result.pdc_perfect == 81.1
        assert result.refills_needed == 0

    def test_unsalvageable_gap(self):
        """Gap days remaining go negative once the allowance is spent."""
        fills = [FillRecord(date(2025, 1, 1), 30), FillRecord(date(2025, 6, 1), 30)]

        result = compute_adherence(fills, 2025, date(2025, 12, 31))

        assert result.covered_days == 60
        assert result.pdc == 16.4
        assert result.gap_days_remaining == 73 - 305

    @pytest.mark.parametrize("fills", [
        [],
        [FillRecord(date(2025, 3, 1), 90)],
        [FillRecord(date(2025, 3, 1), 90), {"fill_date": "2025-06-01", "days_supply": 0}],
    ])
    def test_fewer_than_two_fills_is_zeroed(self, fills, as_of):
        """Fewer than two valid fills give an all-zero result."""
        result = compute_adherence(fills, 2025, as_of)

        assert result.is_zeroed
        assert result == PDCResult.zeroed(fill_count=len([f for f in fills if isinstance(f, FillRecord)]))
        assert result.pdc == result.pdc_status_quo == result.pdc_perfect == 0.0
        assert result.gap_days_remaining == 0
        assert not result.is_out_of_medication

    def test_fills_outside_window_are_ignored(self, as_of):
        """Prior-year fills and fills after the as-of date are not read."""
        fills = [
            FillRecord(date(2024, 12, 15), 90),
            FillRecord(date(2025, 1, 1), 90),
            FillRecord(date(2025, 4, 20), 90),
            FillRecord(date(2025, 12, 1), 90),
        ]

        result = compute_adherence(fills, 2025, as_of)

        assert result.fill_count == 2
        assert result.period.start == date(2025, 1, 1)
        assert result.covered_days == 180
        assert fills_in_window(fills, 2025, as_of) == fills[1:3]

    def test_raw_dispenses_accepted(self, patient_dispenses, as_of):
        """FHIR dispenses are normalized before calculation."""
        statin = [d for d in patient_dispenses
                  if d["medicationCodeableConcept"]["coding"][0]["code"] == "83367"]

        result = compute_adherence(statin, 2025, as_of)

        assert result.fill_count == 3
        assert result.pdc == 78.4

    def test_does_not_mutate_input(self, patient_dispenses, as_of):
        """Input records are not modified."""
        snapshot = copy.deepcopy(patient_dispenses)
        compute_adherence(patient_dispenses, 2025, as_of)
        assert patient_dispenses == snapshot

    def test_idempotent(self, midyear_fills, as_of):
        """Same inputs give identical results."""
        first = compute_adherence(midyear_fills, 2025, as_of)
        second = compute_adherence(list(reversed(midyear_fills)), 2025, as_of)
        assert first == second
        assert repr(first) == repr(second)

    def test_datetime_as_of(self, midyear_fills):
        """A datetime as-of date is truncated to its date."""
        result = compute_adherence(midyear_fills, 2025, datetime(2025, 11, 16, 18, 30))
        assert result.treatment_days == 320

    def test_days_to_runout(self):
        """Runout is the first uncovered day relative to the as-of date."""
        fill = FillRecord(date(2025, 10, 1), 30)
        assert days_to_runout(fill, date(2025, 10, 21)) == 10
        assert days_to_runout(fill, date(2025, 10, 31)) == 0
        assert days_to_runout(fill, date(2025, 11, 5)) == -5


class TestInvalidArguments:
    """Impossible inputs raise instead of producing a result."""

    def test_negative_supply(self, midyear_fills, as_of):
        with pytest.raises(InvalidArgumentError):
            compute_adherence(midyear_fills, 2025, as_of, current_supply_on_hand=-1)

    def test_negative_refills(self, midyear_fills, as_of):
        with pytest.raises(InvalidArgumentError):
            compute_adherence(midyear_fills, 2025, as_of, remaining_refills=-2)

    def test_as_of_before_year(self, midyear_fills):
        with pytest.raises(InvalidArgumentError):
            compute_adherence(midyear_fills, 2025, date(2024, 12, 31))

    @pytest.mark.parametrize("as_of", ["2025-11-16", None, 20251116])
    def test_non_date_as_of(self, midyear_fills, as_of):
        with pytest.raises(InvalidArgumentError):
            compute_adherence(midyear_fills, 2025, as_of)

    @pytest.mark.parametrize("year", ["2025", 2025.0, True])
    def test_non_integer_year(self, midyear_fills, as_of, year):
        with pytest.raises(InvalidArgumentError):
            compute_adherence(midyear_fills, year, as_of)

    @pytest.mark.parametrize("year", [0, -1, 10000])
    def test_year_out_of_date_range(self, midyear_fills, as_of, year):
        with pytest.raises(InvalidArgumentError):
            compute_adherence(midyear_fills, year, as_of)

    def test_window_rejects_year_out_of_date_range(self, midyear_fills, as_of):
        with pytest.raises(InvalidArgumentError):
            fills_in_window(midyear_fills, 0, as_of)

    def test_invalid_argument_is_value_error(self, midyear_fills, as_of):
        """Callers catching ValueError also see engine argument errors."""
        with pytest.raises(ValueError):
            compute_adherence(midyear_fills, 2025, as_of, current_supply_on_hand=1.5)
