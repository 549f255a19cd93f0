"""Day bucketing for the usage report.

The usage log stores its date as three integer columns (yearcreated,
monthcreated, daycreated). Reports are keyed by day-offset: the number of
whole days between a row's date and the first day of the reporting window.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo


def _tz(tz) -> ZoneInfo | timezone:
    if tz is None:
        return timezone.utc
    if isinstance(tz, str):
        return ZoneInfo(tz)
    return tz


def to_local_date(value, tz=None) -> date:
    """Calendar date of a UNIX timestamp or datetime in the report timezone.

    Naive datetimes are taken as already local; plain dates pass through.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.date()
        return value.astimezone(_tz(tz)).date()
    if isinstance(value, date):
        return value
    return datetime.fromtimestamp(int(value), _tz(tz)).date()


def today(tz=None) -> date:
    return datetime.now(_tz(tz)).date()


def date_key(d: date) -> int:
    return d.year * 10000 + d.month * 100 + d.day


def date_from_parts(year, month, day) -> date:
    return date(int(year), int(month), int(day))


def day_offset(d: date, start: date) -> int:
    return abs((d - start).days)


def window_days(start: date, end: date) -> int:
    return abs((end - start).days)


@dataclass(frozen=True)
class ReportWindow:
    """Inclusive range of calendar days covered by a report."""

    start: date
    end: date

    def __post_init__(self):
        if self.start > self.end:
            raise ValueError(f"window start {self.start} is after end {self.end}")

    @classmethod
    def from_timestamps(cls, start_ts: int, end_ts: int, tz=None) -> "ReportWindow":
        return cls(to_local_date(start_ts, tz), to_local_date(end_ts, tz))

    @classmethod
    def last_days(cls, days: int, tz=None, end: date | None = None) -> "ReportWindow":
        end = end or today(tz)
        return cls(end - timedelta(days=max(days, 1) - 1), end)

    @property
    def days(self) -> int:
        return window_days(self.start, self.end)

    @property
    def min_key(self) -> int:
        return date_key(self.start)

    @property
    def max_key(self) -> int:
        return date_key(self.end)

    def offsets(self) -> range:
        return range(self.days + 1)

    def dates(self) -> list[date]:
        return [self.start + timedelta(days=i) for i in self.offsets()]

    def offset_of(self, year, month, day) -> int:
        return day_offset(date_from_parts(year, month, day), self.start)
