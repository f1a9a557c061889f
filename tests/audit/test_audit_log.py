"""
Tests for the append-only workflow log (leave_kernel/services/audit_log.py).

Covers:
- append(): dense seq, non-decreasing timestamps, metadata round trip
- list_for(): ascending order, empty history
- find_by_idempotency_key() and the unique key constraint
- Storage errors other than constraint conflicts become AuditPersistenceError
- ORM immutability: updates and deletes are blocked at flush time
- Quota adjustment records are equally immutable
"""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError

from leave_kernel.domain.clock import DeterministicClock
from leave_kernel.domain.leave import LeaveStatus, LeaveType
from leave_kernel.domain.workflow import WorkflowAction
from leave_kernel.exceptions import AuditPersistenceError, ImmutabilityViolationError
from leave_kernel.models.quota import QuotaAdjustmentModel
from leave_kernel.models.workflow_log import WorkflowLogModel
from leave_kernel.services.audit_log import AuditLog


@pytest.fixture
def request_id(store, make_new_request):
    return store.create(make_new_request()).id


def _append(audit_log, request_id, actor, action, status, **kwargs):
    return audit_log.append(
        request_id=request_id,
        action=action,
        actor=actor,
        resulting_status=status,
        **kwargs,
    )


class TestAppend:

    def test_entries_are_numbered_and_ordered(self, audit_log, request_id, employee, manager):
        first = _append(audit_log, request_id, employee, WorkflowAction.SUBMISSION, LeaveStatus.SUBMITTED)
        second = _append(
            audit_log, request_id, manager, WorkflowAction.MANAGER_APPROVAL,
            LeaveStatus.PENDING_DGPEC, comment="ok",
        )

        assert (first.seq, second.seq) == (1, 2)
        assert second.timestamp > first.timestamp
        assert audit_log.list_for(request_id) == [first, second]
        assert audit_log.count_for(request_id) == 2

    def test_entry_fields(self, audit_log, request_id, manager):
        entry = _append(
            audit_log, request_id, manager, WorkflowAction.MANAGER_REJECTION,
            LeaveStatus.REJECTED, comment="période chargée", metadata={"note": "Q1 close"},
        )

        assert entry.actor_id == manager.user_id
        assert entry.actor_name == manager.display_name
        assert entry.actor_role == manager.role
        assert entry.comment == "période chargée"
        assert entry.metadata == {"note": "Q1 close"}
        assert entry.resulting_status == LeaveStatus.REJECTED

    def test_timestamps_never_go_backwards(self, session, request_id, employee, manager):
        clock = DeterministicClock(datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc))
        audit = AuditLog(session, clock)
        first = _append(audit, request_id, employee, WorkflowAction.SUBMISSION, LeaveStatus.SUBMITTED)

        clock.set_time(datetime(2024, 1, 9, 8, 0, tzinfo=timezone.utc))
        second = _append(
            audit, request_id, manager, WorkflowAction.MANAGER_APPROVAL, LeaveStatus.PENDING_DGPEC,
        )

        assert second.timestamp == first.timestamp
        assert [e.seq for e in audit.list_for(request_id)] == [1, 2]

    def test_empty_history(self, audit_log):
        assert audit_log.list_for(uuid4()) == []

    def test_list_by_actor(self, audit_log, request_id, employee, manager):
        _append(audit_log, request_id, employee, WorkflowAction.SUBMISSION, LeaveStatus.SUBMITTED)
        decision = _append(
            audit_log, request_id, manager, WorkflowAction.MANAGER_APPROVAL, LeaveStatus.PENDING_DGPEC,
        )
        assert audit_log.list_by_actor(manager.user_id) == [decision]


class TestIdempotencyKey:

    def test_lookup(self, audit_log, request_id, manager):
        key = f"{request_id}:manager_approval:n-1"
        entry = _append(
            audit_log, request_id, manager, WorkflowAction.MANAGER_APPROVAL,
            LeaveStatus.PENDING_DGPEC, idempotency_key=key,
        )
        assert audit_log.find_by_idempotency_key(key) == entry
        assert audit_log.find_by_idempotency_key("missing") is None

    def test_duplicate_key_is_rejected(self, audit_log, request_id, manager, dgpec):
        key = f"{request_id}:x:n-1"
        _append(
            audit_log, request_id, manager, WorkflowAction.MANAGER_APPROVAL,
            LeaveStatus.PENDING_DGPEC, idempotency_key=key,
        )
        with pytest.raises(IntegrityError):
            _append(
                audit_log, request_id, dgpec, WorkflowAction.DGPEC_APPROVAL,
                LeaveStatus.PENDING_DG, idempotency_key=key,
            )


class TestStorageFailures:

    def test_storage_error_is_wrapped_and_chained(self, monkeypatch, session, audit_log, request_id, employee):
        real_flush = session.flush

        def failing_flush(*args, **kwargs):
            if any(isinstance(obj, WorkflowLogModel) for obj in session.new):
                raise OperationalError("INSERT INTO workflow_log", {}, Exception("disk I/O error"))
            return real_flush(*args, **kwargs)

        with monkeypatch.context() as m:
            m.setattr(session, "flush", failing_flush)
            with pytest.raises(AuditPersistenceError) as exc_info:
                _append(audit_log, request_id, employee, WorkflowAction.SUBMISSION, LeaveStatus.SUBMITTED)
        session.rollback()

        err = exc_info.value
        assert err.request_id == str(request_id)
        assert err.action == "submission"
        assert isinstance(err.__cause__, OperationalError)


class TestImmutability:

    def test_log_entry_update_is_blocked(self, session, audit_log, request_id, employee):
        entry = _append(audit_log, request_id, employee, WorkflowAction.SUBMISSION, LeaveStatus.SUBMITTED)
        model = session.get(WorkflowLogModel, entry.id)
        model.comment = "rewritten"

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.code == "IMMUTABILITY_VIOLATION"

    def test_log_entry_delete_is_blocked(self, session, audit_log, request_id, employee):
        entry = _append(audit_log, request_id, employee, WorkflowAction.SUBMISSION, LeaveStatus.SUBMITTED)
        session.delete(session.get(WorkflowLogModel, entry.id))

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_quota_adjustment_update_is_blocked(self, session, quota_ledger):
        quota_ledger.adjust("emp-001", 2024, LeaveType.ANNUAL, 2, "ancienneté", actor_id="dgpec-001")
        record = session.execute(select(QuotaAdjustmentModel)).scalar_one()
        record.reason = "something else"

        with pytest.raises(ImmutabilityViolationError):
            session.flush()
