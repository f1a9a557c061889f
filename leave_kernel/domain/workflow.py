"""
Leave workflow types (``leave_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for the leave approval state machine: the action
vocabulary, the capability-indexed transition table
(status x action -> required role -> resulting status), and the audit
log entry / transition result records.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  The pure
functions that interpret this table live in ``leave_engines.workflow``.

Invariants enforced
-------------------
* ``TRANSITIONS`` is the only definition of legal moves.  Terminal
  statuses have no outgoing entries.
* ``SUBMISSION`` is never in the table: it is the creation entry and is
  legal only as the first record of a request's log.
* Every rejection action requires a non-empty comment.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from leave_kernel.domain.leave import LeaveRequest, LeaveStatus, Role
from leave_kernel.domain.quota import QuotaBalance


class WorkflowAction(str, Enum):
    """Actions recorded in the workflow log."""

    SUBMISSION = "submission"
    MANAGER_APPROVAL = "manager_approval"
    MANAGER_REJECTION = "manager_rejection"
    DGPEC_APPROVAL = "dgpec_approval"
    DGPEC_REJECTION = "dgpec_rejection"
    DGPEC_QUOTA_ADJUSTMENT = "dgpec_quota_adjustment"
    DG_APPROVAL = "dg_approval"
    DG_REJECTION = "dg_rejection"
    DG_RETURN_TO_DGPEC = "dg_return_to_dgpec"


INITIAL_STATUS = LeaveStatus.SUBMITTED

REJECTION_ACTIONS: frozenset[WorkflowAction] = frozenset({
    WorkflowAction.MANAGER_REJECTION,
    WorkflowAction.DGPEC_REJECTION,
    WorkflowAction.DG_REJECTION,
})

# Returning a file to DGPEC must explain what needs another look.
COMMENT_REQUIRED_ACTIONS: frozenset[WorkflowAction] = REJECTION_ACTIONS | {
    WorkflowAction.DG_RETURN_TO_DGPEC,
}


@dataclass(frozen=True)
class Transition:
    """One row of the transition table."""

    from_status: LeaveStatus
    action: WorkflowAction
    required_role: Role
    to_status: LeaveStatus

    @property
    def changes_status(self) -> bool:
        return self.from_status != self.to_status


def _row(
    from_status: LeaveStatus,
    action: WorkflowAction,
    role: Role,
    to_status: LeaveStatus,
) -> tuple[tuple[LeaveStatus, WorkflowAction], Transition]:
    return (from_status, action), Transition(from_status, action, role, to_status)


TRANSITIONS: dict[tuple[LeaveStatus, WorkflowAction], Transition] = dict([
    _row(LeaveStatus.SUBMITTED, WorkflowAction.MANAGER_APPROVAL,
         Role.MANAGER, LeaveStatus.PENDING_DGPEC),
    _row(LeaveStatus.SUBMITTED, WorkflowAction.MANAGER_REJECTION,
         Role.MANAGER, LeaveStatus.REJECTED),
    _row(LeaveStatus.PENDING_DGPEC, WorkflowAction.DGPEC_APPROVAL,
         Role.DGPEC, LeaveStatus.PENDING_DG),
    _row(LeaveStatus.PENDING_DGPEC, WorkflowAction.DGPEC_REJECTION,
         Role.DGPEC, LeaveStatus.REJECTED),
    _row(LeaveStatus.PENDING_DGPEC, WorkflowAction.DGPEC_QUOTA_ADJUSTMENT,
         Role.DGPEC, LeaveStatus.PENDING_DGPEC),
    _row(LeaveStatus.PENDING_DG, WorkflowAction.DG_APPROVAL,
         Role.DG, LeaveStatus.APPROVED),
    _row(LeaveStatus.PENDING_DG, WorkflowAction.DG_REJECTION,
         Role.DG, LeaveStatus.REJECTED),
    _row(LeaveStatus.PENDING_DG, WorkflowAction.DG_RETURN_TO_DGPEC,
         Role.DG, LeaveStatus.PENDING_DGPEC),
])

# Role each action belongs to, independent of the current status.
ACTION_ROLES: dict[WorkflowAction, Role] = {
    t.action: t.required_role for t in TRANSITIONS.values()
}
ACTION_ROLES[WorkflowAction.SUBMISSION] = Role.EMPLOYEE


@dataclass(frozen=True)
class WorkflowLogEntry:
    """Immutable audit record of one workflow action.

    ``seq`` is the 1-based position in the request's log; entries are
    ordered by ``(timestamp, seq)``.
    """

    id: UUID
    request_id: UUID
    seq: int
    action: WorkflowAction
    actor_id: str
    actor_name: str
    actor_role: Role
    timestamp: datetime
    resulting_status: LeaveStatus
    comment: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    idempotency_key: str | None = None


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of a successful ``attempt_transition``.

    ``replayed`` is True when the idempotency key matched an earlier
    attempt and nothing was written.  ``status`` is the status the entry
    produced; on a replay ``request`` is the live row and may have moved on.
    """

    request: LeaveRequest
    entry: WorkflowLogEntry
    replayed: bool = False
    quota: QuotaBalance | None = None

    @property
    def status(self) -> LeaveStatus:
        return self.entry.resulting_status
