"""Tests for LeaveSelector dashboard statistics (leave_kernel/selectors/leave_selector.py)."""

from __future__ import annotations

from datetime import date

import pytest

from leave_kernel.domain.leave import Actor, LeaveStatus, Role
from leave_kernel.domain.workflow import WorkflowAction
from leave_kernel.selectors.leave_selector import LeaveSelector

YEAR_START = date(2024, 1, 1)
YEAR_END = date(2024, 12, 31)


@pytest.fixture
def populated(workflow_engine, make_new_request, employee, drive):
    """Approved, rejected and pending requests in 2024, plus one in 2025."""
    approved = workflow_engine.submit(make_new_request(), employee)
    drive(
        approved.id,
        WorkflowAction.MANAGER_APPROVAL, WorkflowAction.DGPEC_APPROVAL, WorkflowAction.DG_APPROVAL,
    )

    rejected = workflow_engine.submit(
        make_new_request(start_date=date(2024, 2, 5), end_date=date(2024, 2, 6)), employee,
    )
    drive(rejected.id, WorkflowAction.MANAGER_REJECTION, comment="inventaire")

    it_employee = Actor("emp-010", "Yao Kouassi", Role.EMPLOYEE, department="it")
    workflow_engine.submit(
        make_new_request(
            requester_id=it_employee.user_id,
            requester_name=it_employee.display_name,
            department="it",
            start_date=date(2024, 3, 4),
            end_date=date(2024, 3, 8),
        ),
        it_employee,
    )

    workflow_engine.submit(
        make_new_request(start_date=date(2025, 1, 13), end_date=date(2025, 1, 17)), employee,
    )


class TestStatistics:

    def test_year_totals(self, workflow_engine, populated):
        stats = workflow_engine.statistics(YEAR_START, YEAR_END)

        assert (stats.total, stats.approved, stats.rejected, stats.pending) == (3, 1, 1, 1)
        assert stats.approved_days == 5
        assert stats.by_type == {"annual": 3}
        assert stats.by_department == {"finance": 2, "it": 1}

    def test_department_filter(self, workflow_engine, populated):
        stats = workflow_engine.statistics(YEAR_START, YEAR_END, department="it")
        assert (stats.total, stats.pending) == (1, 1)

    def test_period_uses_start_date(self, workflow_engine, populated):
        stats = workflow_engine.statistics(date(2024, 2, 1), date(2024, 2, 29))
        assert (stats.total, stats.rejected) == (1, 1)

    def test_empty_period(self, workflow_engine):
        stats = workflow_engine.statistics(YEAR_START, YEAR_END)
        assert (stats.total, stats.pending, stats.approved_days) == (0, 0, 0)

    def test_inverted_period(self, workflow_engine):
        with pytest.raises(ValueError):
            workflow_engine.statistics(YEAR_END, YEAR_START)


class TestPendingWorkload:

    def test_pending_by_status(self, session_factory, populated):
        session = session_factory()
        try:
            pending = LeaveSelector(session).pending_by_status()
        finally:
            session.close()

        assert pending == {LeaveStatus.SUBMITTED: 2}
