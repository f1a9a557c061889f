"""
Pytest fixtures for the leave kernel test suite.

Provides:
- In-memory SQLite engine with a fresh schema per test
- Kernel services bound to one session (caller-owned transaction)
- A LeaveWorkflowEngine wired to a recording dispatcher
- Actors for every role and a deterministic, auto-ticking clock
- Captured structured logs
"""

import dataclasses
import json
import logging
import threading
from datetime import date
from io import StringIO

import pytest
from sqlalchemy.orm import sessionmaker

from leave_config import DEFAULT_CONFIG_PATH, get_active_config
from leave_config.schema import QuotaPolicy
from leave_engines.working_days import WorkingDayCalculator
from leave_kernel.db.engine import build_engine, create_tables, drop_tables
from leave_kernel.domain.clock import DeterministicClock
from leave_kernel.domain.leave import (
    QUOTA_OVERRIDE_PRIVILEGE,
    Actor,
    Attachment,
    LeaveType,
    NewLeaveRequest,
    Role,
)
from leave_kernel.domain.workflow import WorkflowAction
from leave_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from leave_kernel.services.audit_log import AuditLog
from leave_kernel.services.leave_request_store import LeaveRequestStore
from leave_kernel.services.quota_ledger import QuotaLedger
from leave_services.workflow_engine import LeaveWorkflowEngine


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture leave_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, workflow_engine):
            workflow_engine.submit(...)
            logs = captured_logs()
            assert any(r["message"] == "leave_request_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("leave_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Configuration
# =============================================================================


@pytest.fixture
def leave_config(monkeypatch):
    """The bundled policy, unaffected by the caller's environment."""
    monkeypatch.delenv("LEAVE_CONFIG_PATH", raising=False)
    monkeypatch.delenv("LEAVE_DATABASE_URL", raising=False)
    return get_active_config(DEFAULT_CONFIG_PATH)


@pytest.fixture
def override_config(leave_config):
    """Bundled policy with the privileged quota override switched on."""
    return dataclasses.replace(leave_config, quota=QuotaPolicy(allow_override=True))


@pytest.fixture
def working_days(leave_config):
    return WorkingDayCalculator(leave_config.calendar)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def db_engine():
    engine = build_engine("sqlite://")
    create_tables(engine)
    yield engine
    drop_tables(engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    """A session whose transaction the test owns; rolled back afterwards."""
    s = session_factory()
    yield s
    s.rollback()
    s.close()


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(auto_tick=True)


# =============================================================================
# Kernel services
# =============================================================================


@pytest.fixture
def store(session, working_days, leave_config, deterministic_clock):
    return LeaveRequestStore(session, working_days, leave_config.leave_types, deterministic_clock)


@pytest.fixture
def quota_ledger(session, leave_config, deterministic_clock):
    return QuotaLedger(session, leave_config.leave_types, deterministic_clock)


@pytest.fixture
def audit_log(session, deterministic_clock):
    return AuditLog(session, deterministic_clock)


# =============================================================================
# Actors
# =============================================================================


@pytest.fixture
def employee():
    return Actor("emp-001", "Awa Kone", Role.EMPLOYEE, department="finance")


@pytest.fixture
def other_employee():
    return Actor("emp-002", "Koffi Yao", Role.EMPLOYEE, department="finance")


@pytest.fixture
def manager():
    return Actor("mgr-001", "Mariam Traore", Role.MANAGER, department="finance")


@pytest.fixture
def foreign_manager():
    return Actor("mgr-002", "Serge Bamba", Role.MANAGER, department="it")


@pytest.fixture
def dgpec():
    return Actor("dgpec-001", "Aminata Diallo", Role.DGPEC, department="hr")


@pytest.fixture
def privileged_dgpec():
    return Actor(
        "dgpec-002",
        "Jean Kouadio",
        Role.DGPEC,
        department="hr",
        privileges=frozenset({QUOTA_OVERRIDE_PRIVILEGE}),
    )


@pytest.fixture
def dg():
    return Actor("dg-001", "Fatou Ouattara", Role.DG, department="direction")


# =============================================================================
# Requests
# =============================================================================


@pytest.fixture
def make_new_request(employee):
    """Factory for ``NewLeaveRequest``; defaults to Mon 15 - Fri 19 Jan 2024."""

    def _make(**overrides) -> NewLeaveRequest:
        values = dict(
            requester_id=employee.user_id,
            requester_name=employee.display_name,
            department=employee.department,
            leave_type=LeaveType.ANNUAL,
            start_date=date(2024, 1, 15),
            end_date=date(2024, 1, 19),
        )
        values.update(overrides)
        return NewLeaveRequest(**values)

    return _make


@pytest.fixture
def medical_certificate():
    return Attachment(
        name="certificat.pdf",
        url="https://files.example.org/leave/certificat.pdf",
        mime_type="application/pdf",
    )


# =============================================================================
# Workflow engine
# =============================================================================


class RecordingDispatcher:
    """NotificationDispatcher that keeps every message it is given."""

    def __init__(self):
        self.sent: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    def send(self, user_id: str, message: str) -> None:
        with self._lock:
            self.sent.append((user_id, message))

    @property
    def recipients(self) -> list[str]:
        return [user_id for user_id, _ in self.sent]


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def workflow_engine(session_factory, leave_config, dispatcher, deterministic_clock):
    engine = LeaveWorkflowEngine(
        session_factory, leave_config, dispatcher=dispatcher, clock=deterministic_clock,
    )
    yield engine
    engine.close()


@pytest.fixture
def submitted(workflow_engine, make_new_request, employee):
    """A five-working-day annual request, freshly submitted."""
    return workflow_engine.submit(make_new_request(), employee)


@pytest.fixture
def drive(workflow_engine, manager, dgpec, dg):
    """Run the default reviewer for each action in order; returns the last result."""
    actors = {Role.MANAGER: manager, Role.DGPEC: dgpec, Role.DG: dg}

    def _drive(request_id, *actions: WorkflowAction, comment: str = "ok"):
        result = None
        for action in actions:
            role = {
                "manager": Role.MANAGER,
                "dgpec": Role.DGPEC,
                "dg": Role.DG,
            }[action.value.split("_")[0]]
            result = workflow_engine.attempt_transition(
                request_id, action, actors[role], comment=comment,
            )
        return result

    return _drive
