"""
leave_kernel.services.leave_request_store -- leave request persistence.

Responsibility:
    Create leave requests, look them up by id / requester / status /
    department / role, and write the cached status on behalf of the
    workflow engine.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.
    Working days are counted through an injected ``WorkingDayCounter`` so
    the kernel never reads configuration.

Invariants enforced:
    - start_date <= end_date; working_days recomputed whenever the dates
      change.
    - Leave-type policy: mandatory attachment / reason, max working days.
    - ``status`` is only written by ``_apply_transition``, which only the
      workflow engine calls.

Failure modes:
    - ValidationError on bad date range, missing attachment or reason,
      span above the type's maximum.
    - LeaveRequestNotFoundError for unknown ids.
    - InvalidStateError when editing dates after the manager has acted.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from leave_kernel.domain.clock import Clock
from leave_kernel.domain.leave import (
    LeaveRequest,
    LeaveStatus,
    LeaveType,
    LeaveTypePolicy,
    NewLeaveRequest,
    Role,
    WorkingDayCounter,
)
from leave_kernel.exceptions import (
    InvalidStateError,
    LeaveRequestNotFoundError,
    ValidationError,
)
from leave_kernel.logging_config import get_logger
from leave_kernel.models.leave_request import LeaveAttachmentModel, LeaveRequestModel
from leave_kernel.services.base import BaseService

logger = get_logger("services.leave_request_store")

# Statuses each reviewing role works from.  Unproduced aliases are
# included so legacy rows still surface.
ROLE_QUEUES: dict[Role, frozenset[LeaveStatus]] = {
    Role.MANAGER: frozenset({LeaveStatus.SUBMITTED, LeaveStatus.PENDING_MANAGER}),
    Role.DGPEC: frozenset({LeaveStatus.PENDING_DGPEC, LeaveStatus.RETURNED_TO_DGPEC}),
    Role.DG: frozenset({LeaveStatus.PENDING_DG}),
}


class LeaveRequestStore(BaseService):
    """
    Contract:
        Returns frozen ``LeaveRequest`` DTOs; ORM instances never leave the
        service.

    Guarantees:
        - New requests start at ``submitted`` with version 0; the engine's
          submission entry raises it to 1.
        - Listings are ordered by creation time, oldest first.
    """

    def __init__(
        self,
        session: Session,
        working_days: WorkingDayCounter,
        policies: Mapping[LeaveType, LeaveTypePolicy] | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self._working_days = working_days
        self._policies = dict(policies or {})

    def policy_for(self, leave_type: LeaveType) -> LeaveTypePolicy:
        return self._policies.get(
            leave_type, LeaveTypePolicy(leave_type=leave_type, label=leave_type.value),
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, new_request: NewLeaveRequest) -> LeaveRequest:
        """Validate and persist a new request in status ``submitted``."""
        working_days = self._validate(new_request)
        now = self.clock.now()

        model = LeaveRequestModel(
            requester_id=new_request.requester_id,
            requester_name=new_request.requester_name,
            department=new_request.department,
            leave_type=new_request.leave_type.value,
            start_date=new_request.start_date,
            end_date=new_request.end_date,
            working_days=working_days,
            reason=new_request.reason,
            status=LeaveStatus.SUBMITTED.value,
            created_at=now,
            last_updated=now,
            version=0,
            revision=0,
        )
        model.attachments = [
            LeaveAttachmentModel.from_dto(a, position)
            for position, a in enumerate(new_request.attachments)
        ]
        self.session.add(model)
        self.session.flush()

        logger.info(
            "leave_request_created",
            extra={
                "request_id": str(model.id),
                "requester_id": model.requester_id,
                "leave_type": model.leave_type,
                "working_days": working_days,
            },
        )
        return model.to_dto()

    def update_dates(self, request_id: UUID, start_date: date, end_date: date) -> LeaveRequest:
        """Change the leave dates while nobody has reviewed the request yet."""
        model = self._load(request_id)
        if model.status not in (LeaveStatus.SUBMITTED.value, LeaveStatus.PENDING_MANAGER.value):
            raise InvalidStateError(str(request_id), model.status, "update_dates")

        working_days = self._count(start_date, end_date)
        self._check_max_days(LeaveType(model.leave_type), working_days)

        model.start_date = start_date
        model.end_date = end_date
        model.working_days = working_days
        model.revision += 1
        model.last_updated = self.clock.now()
        self.session.flush()

        logger.info(
            "leave_request_dates_updated",
            extra={
                "request_id": str(request_id),
                "working_days": working_days,
                "revision": model.revision,
            },
        )
        return model.to_dto()

    def _apply_transition(
        self,
        request_id: UUID,
        new_status: LeaveStatus,
        version: int,
    ) -> LeaveRequest:
        """Write the cached status. Called only by the workflow engine."""
        model = self._load(request_id)
        model.status = new_status.value
        model.version = version
        model.last_updated = self.clock.now()
        self.session.flush()
        return model.to_dto()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, request_id: UUID) -> LeaveRequest:
        return self._load(request_id).to_dto()

    def lock_for_transition(self, request_id: UUID) -> LeaveRequest:
        """Re-read the request under a row lock for the rest of the transaction."""
        return self._load(request_id, for_update=True).to_dto()

    def list_by_role(
        self,
        role: Role,
        actor_id: str,
        department: str | None = None,
        all_departments: bool = False,
    ) -> list[LeaveRequest]:
        """Requests visible to ``role``.

        Employees see their own requests in any status.  Managers see
        their department's requests awaiting a manager decision; a manager
        without a department sees nothing.  ``all_departments`` lifts the
        department filter for administrative reads and is never derived
        from an actor.  DGPEC and DG see every request in their queue.
        """
        if role == Role.EMPLOYEE:
            return self.list_by_requester(actor_id)

        stmt = select(LeaveRequestModel).where(
            LeaveRequestModel.status.in_([s.value for s in ROLE_QUEUES[role]])
        )
        if role == Role.MANAGER and not all_departments:
            if department is None:
                return []
            stmt = stmt.where(LeaveRequestModel.department == department)
        return self._run(stmt)

    def list_by_requester(self, requester_id: str) -> list[LeaveRequest]:
        return self._run(
            select(LeaveRequestModel).where(LeaveRequestModel.requester_id == requester_id)
        )

    def list_by_status(self, *statuses: LeaveStatus) -> list[LeaveRequest]:
        return self._run(
            select(LeaveRequestModel).where(
                LeaveRequestModel.status.in_([s.value for s in statuses])
            )
        )

    def list_by_department(self, department: str) -> list[LeaveRequest]:
        return self._run(
            select(LeaveRequestModel).where(LeaveRequestModel.department == department)
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load(self, request_id: UUID, for_update: bool = False) -> LeaveRequestModel:
        stmt = select(LeaveRequestModel).where(LeaveRequestModel.id == request_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        model = self.session.execute(stmt).scalar_one_or_none()
        if model is None:
            raise LeaveRequestNotFoundError(str(request_id))
        return model

    def _run(self, stmt) -> list[LeaveRequest]:
        stmt = stmt.order_by(LeaveRequestModel.created_at, LeaveRequestModel.id)
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]

    def _count(self, start_date: date, end_date: date) -> int:
        if start_date > end_date:
            raise ValidationError(
                "end_date", f"start date {start_date} is after end date {end_date}",
            )
        return self._working_days.count(start_date, end_date)

    def _check_max_days(self, leave_type: LeaveType, working_days: int) -> None:
        policy = self.policy_for(leave_type)
        if policy.max_days is not None and working_days > policy.max_days:
            raise ValidationError(
                "end_date",
                f"{policy.label} is limited to {policy.max_days} working days, "
                f"requested {working_days}",
            )

    def _validate(self, new_request: NewLeaveRequest) -> int:
        policy = self.policy_for(new_request.leave_type)

        if policy.requires_attachment and not new_request.attachments:
            raise ValidationError(
                "attachments", f"{policy.label} requires a supporting document",
            )
        if policy.requires_reason and not (new_request.reason or "").strip():
            raise ValidationError("reason", f"{policy.label} requires a reason")
        _check_attachments(new_request.attachments)

        working_days = self._count(new_request.start_date, new_request.end_date)
        self._check_max_days(new_request.leave_type, working_days)
        return working_days


def _check_attachments(attachments: Iterable) -> None:
    for position, attachment in enumerate(attachments):
        if not attachment.url or not attachment.name:
            raise ValidationError(
                "attachments", f"attachment #{position + 1} needs a name and a url",
            )
