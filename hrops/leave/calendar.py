"""Holiday calendar and business-day counting.

Holidays are matched by calendar day: every date, datetime or ISO string
is normalized to its ``YYYY-MM-DD`` form before comparison, so the time of
day (and any tz offset attached to it) never affects the outcome.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Iterable, Iterator, Union

DateLike = Union[date, datetime, str]

# date.weekday(): Saturday=5, Sunday=6
WEEKEND_DAYS = frozenset({5, 6})


def _as_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip()[:10])


def day_key(value: DateLike) -> str:
    """Return the normalized calendar-day string for *value*."""
    return _as_date(value).isoformat()


class HolidayCalendar:
    """Read-only, ordered set of holiday dates for one deployment."""

    __slots__ = ("_days",)

    def __init__(self, days: Iterable[DateLike] = ()) -> None:
        self._days: tuple[str, ...] = tuple(sorted({day_key(d) for d in days}))

    @classmethod
    def from_strings(cls, values: Iterable[str]) -> "HolidayCalendar":
        return cls(v for v in values if v and str(v).strip())

    def __contains__(self, value: object) -> bool:
        if not isinstance(value, (date, datetime, str)):
            return False
        return day_key(value) in self._days

    def __iter__(self) -> Iterator[date]:
        return (date.fromisoformat(d) for d in self._days)

    def __len__(self) -> int:
        return len(self._days)

    def __repr__(self) -> str:
        return f"<HolidayCalendar {len(self._days)} days>"


def count_working_days(
    start: DateLike,
    end: DateLike,
    holidays: Union[HolidayCalendar, Iterable[DateLike], None] = None,
) -> int:
    """Count business days in the inclusive range ``[start, end]``.

    A day counts unless it is a Saturday, a Sunday, or listed in
    *holidays*. Returns 0 when ``end`` precedes ``start``. Half-day
    requests never reach this function; callers resolve them to 0.5.
    """
    if holidays is None:
        calendar = HolidayCalendar()
    elif isinstance(holidays, HolidayCalendar):
        calendar = holidays
    else:
        calendar = HolidayCalendar(holidays)

    current = _as_date(start)
    last = _as_date(end)
    count = 0
    while current <= last:
        if current.weekday() not in WEEKEND_DAYS and current not in calendar:
            count += 1
        current += timedelta(days=1)
    return count
