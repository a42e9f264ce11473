"""Test coverage interval merging."""

from datetime import date
from pdc_engine.core.models import CoverageInterval, FillRecord
from pdc_engine.rules.coverage import calculate_covered_days, days_covered_after, merge_intervals

YEAR_END = date(2025, 12, 31)


class TestMergeIntervals:
    """Test merge_intervals and calculate_covered_days."""

    def test_overlapping_fill_shifts_forward(self):
        """Early refill: days 90-179 then days 150-239 give 150 distinct days."""
        fills = [
            FillRecord(date(2025, 3, 31), 90),
            FillRecord(date(2025, 5, 30), 90),
        ]

        intervals, steps = merge_intervals(fills, YEAR_END)

        assert calculate_covered_days(fills, YEAR_END) == 150
        assert [step.new_days for step in steps] == [90, 60]
        assert [step.overlapped for step in steps] == [False, True]
        assert intervals == [CoverageInterval(date(2025, 3, 31), date(2025, 8, 27))]

    def test_contained_fill_adds_nothing(self):
        """A fill entirely inside earlier coverage contributes zero days."""
        fills = [
            FillRecord(date(2025, 1, 1), 90),
            FillRecord(date(2025, 1, 10), 30),
        ]

        intervals, steps = merge_intervals(fills, YEAR_END)

        assert calculate_covered_days(fills, YEAR_END) == 90
        assert steps[1].new_days == 0
        assert steps[1].cursor == date(2025, 3, 31)
        assert intervals == [CoverageInterval(date(2025, 1, 1), date(2025, 3, 31))]

    def test_adjacent_fill_contributes_fully(self):
        """A fill starting the day after coverage ends extends the interval."""
        fills = [
            FillRecord(date(2025, 1, 1), 30),
            FillRecord(date(2025, 1, 31), 30),
        ]

        intervals, steps = merge_intervals(fills, YEAR_END)

        assert sum(step.new_days for step in steps) == 60
        assert not steps[1].overlapped
        assert intervals == [CoverageInterval(date(2025, 1, 1), date(2025, 3, 1))]

    def test_gap_creates_separate_intervals(self):
        """Non-contiguous fills stay as separate intervals."""
        fills = [
            FillRecord(date(2025, 1, 1), 30),
            FillRecord(date(2025, 3, 1), 30),
        ]

        intervals, _ = merge_intervals(fills, YEAR_END)

        assert intervals == [
            CoverageInterval(date(2025, 1, 1), date(2025, 1, 30)),
            CoverageInterval(date(2025, 3, 1), date(2025, 3, 30)),
        ]
        assert sum(interval.days for interval in intervals) == 60

    def test_truncates_at_period_end(self):
        """Supply past the period end is not counted."""
        fills = [FillRecord(date(2025, 12, 1), 90)]
        assert calculate_covered_days(fills, YEAR_END) == 31

    def test_fill_after_period_end_adds_nothing(self):
        """A fill starting after the period end contributes zero days."""
        fills = [
            FillRecord(date(2025, 10, 1), 30),
            FillRecord(date(2025, 11, 20), 30),
        ]

        _, steps = merge_intervals(fills, date(2025, 11, 16))

        assert [step.new_days for step in steps] == [30, 0]

    def test_unsorted_input_is_sorted(self):
        """Input order does not change the result."""
        fills = [
            FillRecord(date(2025, 5, 30), 90),
            FillRecord(date(2025, 3, 31), 90),
        ]
        assert calculate_covered_days(fills, YEAR_END) == 150

    def test_covered_days_never_exceed_period(self):
        """Heavy stockpiling cannot push coverage past the period length."""
        fills = [FillRecord(date(2025, 1, 1), 90) for _ in range(6)]
        assert calculate_covered_days(fills, YEAR_END) == 90

        fills = [FillRecord(date(2025, 1, 1), 400), FillRecord(date(2025, 6, 1), 400)]
        assert calculate_covered_days(fills, YEAR_END) == 365

    def test_empty_fills(self):
        """No fills, no coverage."""
        assert merge_intervals([], YEAR_END) == ([], [])
        assert calculate_covered_days([], YEAR_END) == 0


class TestDaysCoveredAfter:
    """Test supply-on-hand derivation."""

    def test_single_fill(self):
        """A 30-day fill on January 1 leaves 20 days after January 10."""
        fills = [FillRecord(date(2025, 1, 1), 30)]
        assert days_covered_after(fills, date(2025, 1, 10)) == 20

    def test_overlapping_supply_counted_once(self):
        """Days covered by two fills after the as-of date count once."""
        fills = [
            FillRecord(date(2025, 1, 1), 30),
            FillRecord(date(2025, 1, 20), 30),
        ]
        # Coverage runs January 1 through February 18
        assert days_covered_after(fills, date(2025, 1, 25)) == 24

    def test_runs_past_year_end(self):
        """Supply after the as-of date is not capped at December 31."""
        fills = [FillRecord(date(2025, 12, 1), 90)]
        assert days_covered_after(fills, date(2025, 12, 31)) == 59

    def test_out_of_medication(self):
        """Nothing covered after the as-of date gives zero."""
        fills = [FillRecord(date(2025, 1, 1), 30)]
        assert days_covered_after(fills, date(2025, 3, 1)) == 0
        assert days_covered_after([], date(2025, 3, 1)) == 0
