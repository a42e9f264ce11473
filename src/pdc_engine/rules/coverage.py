"""Coverage interval merging.

Each covered day is counted at most once, no matter how many fills cover
it. Fills are walked in date order with a cursor on the last covered day:

* a fill starting after the cursor adds its whole supply
* a fill starting on or before the cursor adds only the days past it
* a fill ending on or before the cursor adds nothing

Coverage is truncated at ``period_end``.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from operator import attrgetter
from typing import Iterable, List, Optional, Tuple

from ..core.models import CoverageInterval, FillRecord

ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class MergeStep:
    """What one fill contributed during the merge."""
    fill: FillRecord
    new_days: int
    overlapped: bool
    cursor: Optional[date]


def merge_intervals(
    fills: Iterable[FillRecord],
    period_end: date,
) -> Tuple[List[CoverageInterval], List[MergeStep]]:
    """Merge fills into non-overlapping intervals ending no later than ``period_end``.

    Args:
        fills: Valid fills; sorted here by date (stable) if they are not already
        period_end: Last day that may count as covered

    Returns:
        Sorted, non-overlapping intervals and one MergeStep per fill
    """
    intervals: List[CoverageInterval] = []
    steps: List[MergeStep] = []
    cursor: Optional[date] = None

    for fill in sorted(fills, key=attrgetter("fill_date")):
        overlapped = cursor is not None and fill.fill_date <= cursor
        new_start = cursor + ONE_DAY if overlapped else fill.fill_date
        new_end = min(fill.last_covered_date, period_end)

        new_days = 0
        if new_end >= new_start:
            new_days = (new_end - new_start).days + 1
            cursor = new_end
            if intervals and intervals[-1].end + ONE_DAY == new_start:
                intervals[-1] = CoverageInterval(intervals[-1].start, new_end)
            else:
                intervals.append(CoverageInterval(new_start, new_end))

        steps.append(MergeStep(fill=fill, new_days=new_days, overlapped=overlapped, cursor=cursor))

    return intervals, steps


def calculate_covered_days(fills: Iterable[FillRecord], period_end: date) -> int:
    """Total distinct covered days through ``period_end``."""
    _, steps = merge_intervals(fills, period_end)
    return sum(step.new_days for step in steps)


def days_covered_after(fills: Iterable[FillRecord], as_of: date) -> int:
    """Distinct days strictly after ``as_of`` that existing fills already cover."""
    fills = list(fills)
    if not fills:
        return 0
    horizon = max(fill.last_covered_date for fill in fills)
    intervals, _ = merge_intervals(fills, horizon)

    total = 0
    for interval in intervals:
        start = max(interval.start, as_of + ONE_DAY)
        if interval.end >= start:
            total += (interval.end - start).days + 1
    return total
