"""
Window Planner

Splits one calendar day into contiguous, non-overlapping query windows.
"""

import math
from datetime import date, datetime, time, timedelta, timezone

from utils.schemas import TimeWindow

ONE_MS = timedelta(milliseconds=1)


def plan_windows(day: date, interval_hours: int) -> list[TimeWindow]:
    """
    Derive the windows covering [00:00:00.000, 23:59:59.999] UTC of a day.

    Every window but the last ends one millisecond before the next one
    starts. The last window always ends at 23:59:59.999, absorbing the
    remainder when interval_hours does not divide 24.

    Args:
        day: Calendar day to cover
        interval_hours: Window size in hours, 1..24

    Returns:
        ceil(24 / interval_hours) windows, ordered by start

    Raises:
        ValueError: If interval_hours is outside 1..24
    """
    if not 1 <= interval_hours <= 24:
        raise ValueError(f"interval_hours must be between 1 and 24, got {interval_hours}")

    day_start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    day_end = day_start + timedelta(days=1) - ONE_MS
    step = timedelta(hours=interval_hours)
    count = math.ceil(24 / interval_hours)

    windows = []
    for i in range(count):
        start = day_start + step * i
        end = day_end if i == count - 1 else start + step - ONE_MS
        windows.append(TimeWindow(sequence=i + 1, start=start, end=end))

    return windows
