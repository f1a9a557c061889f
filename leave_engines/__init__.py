"""
Module: leave_engines
Responsibility:
    Pure calculation engines for the leave kernel: transition-table
    interpretation, status derivation and working-day counting.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import leave_kernel/domain, sibling engine modules and
    leave_kernel.logging_config (decision tracing).
    MUST NOT import leave_services or leave_config.

Invariants enforced:
    - Purity: engines never read the clock; dates are passed in.
    - Determinism: identical inputs always produce identical outputs.
"""

from leave_engines.working_days import (
    Holiday,
    HolidayCalendar,
    WorkingDayCalculator,
    count_working_days,
    working_dates,
)
from leave_engines.workflow import (
    allowed_actions,
    authorize,
    derive_status,
    next_responsible,
    outstanding_debit,
    requires_comment,
    resolve_transition,
)

__all__ = [
    "Holiday",
    "HolidayCalendar",
    "WorkingDayCalculator",
    "allowed_actions",
    "authorize",
    "count_working_days",
    "derive_status",
    "next_responsible",
    "outstanding_debit",
    "requires_comment",
    "resolve_transition",
    "working_dates",
]
