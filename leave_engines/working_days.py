"""
leave_engines.working_days -- working-day arithmetic over a holiday calendar.

Responsibility:
    Count the working days in an inclusive date range: calendar days that
    are neither a weekend day nor a listed public holiday.  Holidays are
    either fixed (one specific date) or recurring (same month/day every
    year).

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The calendar is built
    from configuration by ``leave_config`` and passed in.

Invariants enforced:
    - 0 <= count_working_days(start, end) <= (end - start).days + 1.
    - A holiday falling on a weekend is not subtracted twice.

Failure modes:
    - ValueError when ``start > end``.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import date, timedelta

from leave_engines.tracer import traced_engine

SATURDAY = 5
SUNDAY = 6


@dataclass(frozen=True)
class Holiday:
    name: str
    day: date
    recurring: bool = False


@dataclass(frozen=True)
class HolidayCalendar:
    """Public holidays plus the weekday numbers that count as weekend.

    Weekday numbers follow ``date.weekday()`` (Monday == 0).
    """

    holidays: tuple[Holiday, ...] = ()
    weekend_days: frozenset[int] = frozenset({SATURDAY, SUNDAY})
    _fixed: frozenset[date] = field(init=False, repr=False, compare=False)
    _recurring: frozenset[tuple[int, int]] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "_fixed",
            frozenset(h.day for h in self.holidays if not h.recurring),
        )
        object.__setattr__(
            self, "_recurring",
            frozenset((h.day.month, h.day.day) for h in self.holidays if h.recurring),
        )

    def is_holiday(self, day: date) -> bool:
        return day in self._fixed or (day.month, day.day) in self._recurring

    def is_weekend(self, day: date) -> bool:
        return day.weekday() in self.weekend_days

    def is_working_day(self, day: date) -> bool:
        return not self.is_weekend(day) and not self.is_holiday(day)

    def holidays_between(self, start: date, end: date) -> list[date]:
        """Holiday dates inside [start, end], in order."""
        return [d for d in iter_days(start, end) if self.is_holiday(d)]


def iter_days(start: date, end: date) -> Iterator[date]:
    """Every calendar date in the inclusive range."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def span_days(start: date, end: date) -> int:
    """Calendar length of the inclusive range."""
    return (end - start).days + 1


@traced_engine("working_days", "1.0", fingerprint_fields=("start", "end"))
def count_working_days(*, start: date, end: date, calendar: HolidayCalendar) -> int:
    if start > end:
        raise ValueError(f"start {start} is after end {end}")
    return sum(1 for d in iter_days(start, end) if calendar.is_working_day(d))


def working_dates(start: date, end: date, calendar: HolidayCalendar) -> list[date]:
    if start > end:
        raise ValueError(f"start {start} is after end {end}")
    return [d for d in iter_days(start, end) if calendar.is_working_day(d)]


class WorkingDayCalculator:
    """Binds a calendar so the entity store can count without knowing it.

    Satisfies ``leave_kernel.domain.leave.WorkingDayCounter``.
    """

    def __init__(self, calendar: HolidayCalendar):
        self._calendar = calendar

    @property
    def calendar(self) -> HolidayCalendar:
        return self._calendar

    def count(self, start: date, end: date) -> int:
        return count_working_days(start=start, end=end, calendar=self._calendar)

    @classmethod
    def from_holidays(cls, holidays: Iterable[Holiday]) -> WorkingDayCalculator:
        return cls(HolidayCalendar(holidays=tuple(holidays)))
