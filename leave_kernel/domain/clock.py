"""
Clock -- injectable time source.

Responsibility:
    Services never call ``datetime.now()`` directly; they receive a Clock.
    Audit timestamps, ledger ``last_updated`` values and request
    ``created_at`` / ``last_updated`` all come from the injected instance.

Architecture position:
    Kernel > Domain.  SystemClock is the only I/O boundary for time.

Failure modes:
    None.  DeterministicClock never runs out.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Guarantees:
        - ``now()`` returns a timezone-aware UTC ``datetime``.
        - ``today()`` is the calendar date of ``now()``.
    """

    @abstractmethod
    def now(self) -> datetime:
        ...

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    """Production clock backed by the system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Contract:
        ``now()`` returns the same value on repeated calls until ``advance()``,
        ``tick()`` or ``set_time()`` is called.  Workflow tests that need
        distinct audit timestamps use ``auto_tick=True`` so every reading
        moves the clock forward one second.
    """

    def __init__(self, fixed_time: datetime | None = None, auto_tick: bool = False):
        self._fixed_time = fixed_time or datetime(
            2024, 1, 8, 9, 0, 0, tzinfo=timezone.utc
        )
        self._advance_seconds = 0
        self._auto_tick = auto_tick

    def now(self) -> datetime:
        current = self._fixed_time + timedelta(seconds=self._advance_seconds)
        if self._auto_tick:
            self._advance_seconds += 1
        return current

    def set_time(self, time: datetime) -> None:
        self._fixed_time = time
        self._advance_seconds = 0

    def advance(self, seconds: int = 1) -> None:
        self._advance_seconds += seconds

    def tick(self) -> datetime:
        """Advance by 1 second and return the new time."""
        self.advance(1)
        return self._fixed_time + timedelta(seconds=self._advance_seconds)
