from datetime import date

from usage_report.app.services.aggregate import aggregate_usage, max_amount
from usage_report.app.services.buckets import ReportWindow

WINDOW = ReportWindow(date(2024, 3, 1), date(2024, 3, 4))


def _row(ctx, day, amount, userid=None):
    row = {"contextid": ctx, "yearcreated": 2024, "monthcreated": 3, "daycreated": day, "amount": amount}
    if userid is not None:
        row["userid"] = userid
    return row


def test_missing_days_are_zero_filled_and_sorted() -> None:
    rows = [_row(12, 3, 4), _row(5, 2, 1), _row(12, 1, 7)]
    data = aggregate_usage(rows, WINDOW)
    assert list(data) == [5, 12]
    assert data[5] == {0: 0, 1: 1, 2: 0, 3: 0}
    assert list(data[12].items()) == [(0, 7), (1, 0), (2, 4), (3, 0)]


def test_rows_for_missing_contexts_are_dropped() -> None:
    rows = [_row(5, 1, 2), _row(6, 1, 3)]
    data = aggregate_usage(rows, WINDOW, valid_context_ids={5})
    assert list(data) == [5]


def test_per_user_matrix() -> None:
    rows = [_row(5, 1, 2, userid=9), _row(5, 4, 1, userid=3), _row(8, 2, 6, userid=9)]
    data = aggregate_usage(rows, WINDOW, deanonymize=True)
    assert list(data[5]) == [3, 9]
    assert data[5][3] == {0: 0, 1: 0, 2: 0, 3: 1}
    assert data[5][9] == {0: 2, 1: 0, 2: 0, 3: 0}
    assert data[8] == {9: {0: 0, 1: 6, 2: 0, 3: 0}}


def test_null_amount_counts_as_zero() -> None:
    data = aggregate_usage([_row(5, 1, None)], WINDOW)
    assert data[5][0] == 0


def test_empty_input() -> None:
    assert aggregate_usage([], WINDOW) == {}
    assert max_amount({}) == 0


def test_max_amount() -> None:
    data = aggregate_usage([_row(5, 1, 2), _row(6, 3, 11)], WINDOW)
    assert max_amount(data) == 11
