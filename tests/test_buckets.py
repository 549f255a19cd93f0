from datetime import date, datetime, timezone

import pytest

from usage_report.app.services.buckets import (
    ReportWindow,
    date_from_parts,
    date_key,
    day_offset,
    to_local_date,
    window_days,
)


def test_date_key_matches_log_encoding() -> None:
    assert date_key(date(2024, 3, 1)) == 20240301
    assert date_key(date(1999, 12, 31)) == 19991231


def test_day_offset_counts_whole_days_from_start() -> None:
    start = date(2024, 2, 27)
    assert day_offset(date(2024, 2, 27), start) == 0
    # 2024 is a leap year
    assert day_offset(date(2024, 3, 1), start) == 3
    assert day_offset(date_from_parts(2024, 3, 31), start) == 33


def test_window_days_is_inclusive_column_count_minus_one() -> None:
    window = ReportWindow(date(2024, 3, 1), date(2024, 3, 3))
    assert window_days(window.start, window.end) == 2
    assert list(window.offsets()) == [0, 1, 2]
    assert window.dates() == [date(2024, 3, 1), date(2024, 3, 2), date(2024, 3, 3)]
    assert (window.min_key, window.max_key) == (20240301, 20240303)


def test_single_day_window() -> None:
    window = ReportWindow(date(2024, 3, 1), date(2024, 3, 1))
    assert window.days == 0
    assert list(window.offsets()) == [0]


def test_window_rejects_reversed_range() -> None:
    with pytest.raises(ValueError):
        ReportWindow(date(2024, 3, 2), date(2024, 3, 1))


def test_to_local_date_uses_report_timezone() -> None:
    ts = int(datetime(2024, 3, 1, 0, 30, tzinfo=timezone.utc).timestamp())
    assert to_local_date(ts, "UTC") == date(2024, 3, 1)
    assert to_local_date(ts, "America/New_York") == date(2024, 2, 29)


def test_window_from_timestamps() -> None:
    start = int(datetime(2024, 3, 1, 10, tzinfo=timezone.utc).timestamp())
    end = int(datetime(2024, 3, 5, 23, tzinfo=timezone.utc).timestamp())
    window = ReportWindow.from_timestamps(start, end, "UTC")
    assert window == ReportWindow(date(2024, 3, 1), date(2024, 3, 5))
    assert window.days == 4


def test_last_days_ends_on_given_day() -> None:
    window = ReportWindow.last_days(7, end=date(2024, 3, 7))
    assert window.start == date(2024, 3, 1)
    assert window.days == 6
