"""
Module: leave_kernel.selectors.leave_selector
Responsibility: Read-only reporting over leave requests: dashboard
    statistics per period, and pending workload per queue.
Architecture position: Kernel > Selectors.  Read-only.

Invariants enforced:
    - A request belongs to a period when its start_date falls inside it.
    - pending = total - approved - rejected.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from sqlalchemy import func, select

from leave_kernel.domain.leave import PENDING_STATUSES, LeaveStatus
from leave_kernel.models.leave_request import LeaveRequestModel
from leave_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class LeaveStatistics:
    period_start: date
    period_end: date
    total: int
    approved: int
    rejected: int
    pending: int
    by_type: dict[str, int] = field(default_factory=dict)
    by_department: dict[str, int] = field(default_factory=dict)
    approved_days: int = 0


class LeaveSelector(BaseSelector):
    """Aggregate queries over ``leave_requests``."""

    def statistics(
        self,
        period_start: date,
        period_end: date,
        department: str | None = None,
    ) -> LeaveStatistics:
        if period_start > period_end:
            raise ValueError(f"period start {period_start} is after end {period_end}")

        filters = [
            LeaveRequestModel.start_date >= period_start,
            LeaveRequestModel.start_date <= period_end,
        ]
        if department is not None:
            filters.append(LeaveRequestModel.department == department)

        by_status = dict(
            self.session.execute(
                select(LeaveRequestModel.status, func.count())
                .where(*filters)
                .group_by(LeaveRequestModel.status)
            ).all()
        )
        by_type = dict(
            self.session.execute(
                select(LeaveRequestModel.leave_type, func.count())
                .where(*filters)
                .group_by(LeaveRequestModel.leave_type)
            ).all()
        )
        by_department = dict(
            self.session.execute(
                select(LeaveRequestModel.department, func.count())
                .where(*filters)
                .group_by(LeaveRequestModel.department)
            ).all()
        )
        approved_days = self.session.execute(
            select(func.coalesce(func.sum(LeaveRequestModel.working_days), 0))
            .where(*filters)
            .where(LeaveRequestModel.status == LeaveStatus.APPROVED.value)
        ).scalar_one()

        total = sum(by_status.values())
        approved = by_status.get(LeaveStatus.APPROVED.value, 0)
        rejected = by_status.get(LeaveStatus.REJECTED.value, 0)
        return LeaveStatistics(
            period_start=period_start,
            period_end=period_end,
            total=total,
            approved=approved,
            rejected=rejected,
            pending=total - approved - rejected,
            by_type=by_type,
            by_department=by_department,
            approved_days=int(approved_days),
        )

    def pending_by_status(self) -> dict[LeaveStatus, int]:
        """Open requests per status; statuses with none are omitted."""
        rows = self.session.execute(
            select(LeaveRequestModel.status, func.count())
            .where(LeaveRequestModel.status.in_([s.value for s in PENDING_STATUSES]))
            .group_by(LeaveRequestModel.status)
        ).all()
        return {LeaveStatus(status): count for status, count in rows}
