"""
Leave request domain types (``leave_kernel.domain.leave``).

Responsibility
--------------
Pure value objects for leave requests: the leave-type, status and role
enumerations, attachment references, the acting user, leave-type policy
and the request DTO returned by the store and the workflow engine.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/``, ``services/`` or outer layers.

Invariants enforced
-------------------
* ``start_date <= end_date`` on every ``NewLeaveRequest`` (checked by the
  store, not by the dataclass, so the caller receives a ValidationError).
* Attachment order is preserved (tuples, never sets).
* ``LeaveRequest.status`` is a cache of the workflow log fold.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Protocol
from uuid import UUID


class LeaveType(str, Enum):
    """Kinds of leave an employee may request."""

    ANNUAL = "annual"
    SICK = "sick"
    BEREAVEMENT = "bereavement"
    FAMILY_EVENT = "family_event"
    OTHER = "other"


class LeaveStatus(str, Enum):
    """Workflow stage of a leave request.

    ``PENDING_MANAGER`` and ``RETURNED_TO_DGPEC`` are part of the stored
    vocabulary but no transition produces them; listings treat them as
    aliases of ``SUBMITTED`` and ``PENDING_DGPEC`` respectively.
    """

    SUBMITTED = "submitted"
    PENDING_MANAGER = "pending_manager"
    PENDING_DGPEC = "pending_dgpec"
    PENDING_DG = "pending_dg"
    APPROVED = "approved"
    REJECTED = "rejected"
    RETURNED_TO_DGPEC = "returned_to_dgpec"


TERMINAL_STATUSES: frozenset[LeaveStatus] = frozenset({
    LeaveStatus.APPROVED,
    LeaveStatus.REJECTED,
})

PENDING_STATUSES: frozenset[LeaveStatus] = frozenset(LeaveStatus) - TERMINAL_STATUSES


class Role(str, Enum):
    """Organisational role asserted by the identity provider."""

    EMPLOYEE = "employee"
    MANAGER = "manager"
    DGPEC = "dgpec"
    DG = "dg"


# Privilege that lets a DGPEC actor approve past the remaining quota.
QUOTA_OVERRIDE_PRIVILEGE = "quota_override"


@dataclass(frozen=True)
class Attachment:
    """Reference to a supporting document held by the file store."""

    name: str
    url: str
    mime_type: str


@dataclass(frozen=True)
class Actor:
    """The authenticated user performing an operation.

    Contract: produced by an ``IdentityProvider``; the role is trusted as
    asserted.  ``department`` is required for managers, who may only act
    on requests from their own department.
    """

    user_id: str
    display_name: str
    role: Role
    department: str | None = None
    privileges: frozenset[str] = frozenset()

    def has_privilege(self, privilege: str) -> bool:
        return privilege in self.privileges


@dataclass(frozen=True)
class LeaveTypePolicy:
    """Per-leave-type rules loaded from configuration.

    ``base_allotment`` is the yearly quota a ledger entry is opened with.
    ``None`` means the type is not quota-tracked and approvals never debit.
    ``max_days`` caps the working days of a single request.
    """

    leave_type: LeaveType
    label: str
    requires_attachment: bool = False
    requires_reason: bool = False
    max_days: int | None = None
    base_allotment: int | None = None

    @property
    def is_quota_tracked(self) -> bool:
        return self.base_allotment is not None


@dataclass(frozen=True)
class NewLeaveRequest:
    """Input to ``LeaveRequestStore.create``."""

    requester_id: str
    requester_name: str
    department: str
    leave_type: LeaveType
    start_date: date
    end_date: date
    reason: str | None = None
    attachments: tuple[Attachment, ...] = ()


@dataclass(frozen=True)
class LeaveRequest:
    """Immutable snapshot of a persisted leave request.

    ``version`` is the workflow log length; ``revision`` counts date edits.
    """

    id: UUID
    requester_id: str
    requester_name: str
    department: str
    leave_type: LeaveType
    start_date: date
    end_date: date
    working_days: int
    status: LeaveStatus
    created_at: datetime
    last_updated: datetime
    reason: str | None = None
    attachments: tuple[Attachment, ...] = field(default_factory=tuple)
    version: int = 0
    revision: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def quota_year(self) -> int:
        """Ledger year debited on approval (the year the leave starts)."""
        return self.start_date.year


class WorkingDayCounter(Protocol):
    """Counts working days in an inclusive date range."""

    def count(self, start: date, end: date) -> int:
        ...
