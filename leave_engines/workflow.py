"""
leave_engines.workflow -- pure interpretation of the leave transition table.

Responsibility:
    Decide whether an actor may perform an action, look up the transition
    for (status, action), fold an ordered action sequence into the current
    status, and compute the quota days a request currently holds.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import leave_kernel/domain types.

Invariants enforced:
    - The status of a request is ``derive_status`` of its ordered log; an
      empty log yields ``submitted``.
    - Role gating is checked against the action's owning role before the
      state check, so a wrong-role actor always gets an authorization
      failure, never a state failure.
    - Purity: no clock, no database.

Failure modes:
    - ``derive_status`` raises ValueError on a sequence the table cannot
      produce (corrupted log).
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from leave_kernel.domain.collaborators import manager_mailbox, role_mailbox
from leave_kernel.domain.leave import (
    TERMINAL_STATUSES,
    Actor,
    LeaveStatus,
    Role,
)
from leave_kernel.domain.workflow import (
    ACTION_ROLES,
    COMMENT_REQUIRED_ACTIONS,
    INITIAL_STATUS,
    TRANSITIONS,
    Transition,
    WorkflowAction,
    WorkflowLogEntry,
)

# Metadata keys written on log entries that move quota.
DEBIT_KEY = "quota_debited_days"
RELEASE_KEY = "quota_released_days"

# Stored statuses no transition produces, mapped to the stage they stand for.
STATUS_ALIASES: dict[LeaveStatus, LeaveStatus] = {
    LeaveStatus.PENDING_MANAGER: LeaveStatus.SUBMITTED,
    LeaveStatus.RETURNED_TO_DGPEC: LeaveStatus.PENDING_DGPEC,
}


@dataclass(frozen=True)
class AuthorizationCheck:
    """Result of ``authorize``. ``reason`` is set when denied."""

    allowed: bool
    required_role: Role | None = None
    reason: str = ""


def normalize_status(status: LeaveStatus) -> LeaveStatus:
    return STATUS_ALIASES.get(status, status)


def authorize(
    action: WorkflowAction,
    actor: Actor,
    request_department: str,
) -> AuthorizationCheck:
    """Check that ``actor`` owns ``action``.

    Managers may only act on requests from their own department.
    """
    required = ACTION_ROLES[action]
    if actor.role != required:
        return AuthorizationCheck(
            allowed=False,
            required_role=required,
            reason=f"requires role {required.value}",
        )
    if required == Role.MANAGER and actor.department != request_department:
        return AuthorizationCheck(
            allowed=False,
            required_role=required,
            reason=(
                f"manager of department {actor.department!r} cannot act on "
                f"requests from {request_department!r}"
            ),
        )
    return AuthorizationCheck(allowed=True, required_role=required)


def resolve_transition(
    status: LeaveStatus,
    action: WorkflowAction,
) -> Transition | None:
    """Transition for (status, action), or None when not defined."""
    return TRANSITIONS.get((normalize_status(status), action))


def allowed_actions(status: LeaveStatus, role: Role) -> tuple[WorkflowAction, ...]:
    """Actions ``role`` may take on a request in ``status``, in table order."""
    current = normalize_status(status)
    return tuple(
        t.action
        for (from_status, _), t in TRANSITIONS.items()
        if from_status == current and t.required_role == role
    )


def requires_comment(action: WorkflowAction) -> bool:
    return action in COMMENT_REQUIRED_ACTIONS


def derive_status(actions: Iterable[WorkflowAction]) -> LeaveStatus:
    """Fold an ordered action sequence into the current status.

    A leading ``submission`` entry is accepted and leaves the status at
    ``submitted``; anywhere else it is a corrupted log.
    """
    status = INITIAL_STATUS
    for position, action in enumerate(actions):
        if action == WorkflowAction.SUBMISSION:
            if position != 0:
                raise ValueError(f"submission at position {position}")
            continue
        if status in TERMINAL_STATUSES:
            raise ValueError(f"{action.value} after terminal status {status.value}")
        transition = TRANSITIONS.get((status, action))
        if transition is None:
            raise ValueError(f"{action.value} is not defined for {status.value}")
        status = transition.to_status
    return status


def status_trail(actions: Sequence[WorkflowAction]) -> list[LeaveStatus]:
    """Status after each prefix of ``actions`` (one element per action)."""
    return [derive_status(actions[: i + 1]) for i in range(len(actions))]


def outstanding_debit(entries: Iterable[WorkflowLogEntry]) -> int:
    """Days this request currently holds against the quota ledger."""
    held = 0
    for entry in entries:
        held += int(entry.metadata.get(DEBIT_KEY, 0))
        held -= int(entry.metadata.get(RELEASE_KEY, 0))
    return held


def next_responsible(
    to_status: LeaveStatus,
    requester_id: str,
    department: str,
) -> str:
    """Mailbox of whoever must act next; the requester once terminal."""
    if to_status in TERMINAL_STATUSES:
        return requester_id
    stage = normalize_status(to_status)
    if stage == LeaveStatus.SUBMITTED:
        return manager_mailbox(department)
    if stage == LeaveStatus.PENDING_DGPEC:
        return role_mailbox(Role.DGPEC)
    return role_mailbox(Role.DG)
