"""
Quota ledger value objects.

``QuotaBalance`` is the read model of one (employee, year, leave type)
ledger row.  ``QuotaAdjustment`` is the compliance record kept for every
explicit adjustment, separate from the workflow log.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

from leave_kernel.domain.leave import LeaveType


@dataclass(frozen=True)
class QuotaBalance:
    employee_id: str
    year: int
    leave_type: LeaveType
    total_days: int
    used_days: int
    remaining_days: int
    last_updated: datetime

    def covers(self, days: int) -> bool:
        return self.remaining_days - days >= 0


class AdjustmentKind(str, Enum):
    ALLOTMENT = "allotment"
    RELEASE = "release"


@dataclass(frozen=True)
class QuotaAdjustment:
    """One explicit change to a ledger entry.

    ``ALLOTMENT`` records moved ``total_days``; ``RELEASE`` records returned
    days held by a rejected request to ``used_days``.  ``delta`` is the
    change in ``remaining_days`` either way.
    """

    id: UUID
    employee_id: str
    year: int
    leave_type: LeaveType
    delta: int
    reason: str
    actor_id: str
    created_at: datetime
    total_after: int
    remaining_after: int
    request_id: UUID | None = None
    kind: AdjustmentKind = AdjustmentKind.ALLOTMENT
