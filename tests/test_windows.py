from datetime import datetime, timedelta, timezone

import pytest

from apps.backup.windows import plan_windows
from tests.conftest import DAY

DAY_START = datetime(2026, 10, 18, tzinfo=timezone.utc)
DAY_END = datetime(2026, 10, 18, 23, 59, 59, 999000, tzinfo=timezone.utc)
ONE_MS = timedelta(milliseconds=1)


@pytest.mark.parametrize("interval", [1, 2, 3, 4, 6, 8, 12, 24])
def test_divisors_of_24_cover_the_day_without_gaps(interval):
    windows = plan_windows(DAY, interval)

    assert len(windows) == 24 // interval
    assert windows[0].start == DAY_START
    assert windows[-1].end == DAY_END
    for prev, nxt in zip(windows, windows[1:]):
        assert nxt.start - prev.end == ONE_MS
    for window in windows:
        assert window.end - window.start == timedelta(hours=interval) - ONE_MS


def test_sequence_numbers_are_one_based_and_ordered():
    windows = plan_windows(DAY, 6)
    assert [w.sequence for w in windows] == [1, 2, 3, 4]


def test_non_divisor_last_window_ends_at_end_of_day():
    windows = plan_windows(DAY, 5)

    assert len(windows) == 5
    assert windows[-1].start == DAY_START + timedelta(hours=20)
    assert windows[-1].end == DAY_END
    assert windows[-2].end == DAY_START + timedelta(hours=20) - ONE_MS


def test_seven_hour_interval_absorbs_remainder():
    windows = plan_windows(DAY, 7)

    assert len(windows) == 4
    assert windows[-1].start == DAY_START + timedelta(hours=21)
    assert windows[-1].end == DAY_END


def test_planning_is_idempotent():
    assert plan_windows(DAY, 4) == plan_windows(DAY, 4)


@pytest.mark.parametrize("interval", [0, -1, 25])
def test_degenerate_interval_is_rejected(interval):
    with pytest.raises(ValueError):
        plan_windows(DAY, interval)


def test_range_query_uses_inclusive_millisecond_bounds():
    first = plan_windows(DAY, 2)[0]

    assert first.range_query("@timestamp") == {
        "range": {
            "@timestamp": {
                "gte": "2026-10-18T00:00:00.000Z",
                "lte": "2026-10-18T01:59:59.999Z",
            }
        }
    }
