"""
Pure domain layer: enums, frozen DTOs, the transition table and the
collaborator protocols.  No ORM, database or clock reads.
"""

from leave_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from leave_kernel.domain.collaborators import (
    IdentityProvider,
    NotificationDispatcher,
    resolve_actor,
)
from leave_kernel.domain.leave import (
    Actor,
    Attachment,
    LeaveRequest,
    LeaveStatus,
    LeaveType,
    LeaveTypePolicy,
    NewLeaveRequest,
    Role,
)
from leave_kernel.domain.quota import QuotaAdjustment, QuotaBalance
from leave_kernel.domain.workflow import (
    TRANSITIONS,
    Transition,
    TransitionResult,
    WorkflowAction,
    WorkflowLogEntry,
)

__all__ = [
    "Actor",
    "Attachment",
    "Clock",
    "DeterministicClock",
    "IdentityProvider",
    "LeaveRequest",
    "LeaveStatus",
    "LeaveType",
    "LeaveTypePolicy",
    "NewLeaveRequest",
    "NotificationDispatcher",
    "QuotaAdjustment",
    "QuotaBalance",
    "Role",
    "SystemClock",
    "TRANSITIONS",
    "Transition",
    "TransitionResult",
    "WorkflowAction",
    "WorkflowLogEntry",
    "resolve_actor",
]
