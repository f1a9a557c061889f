"""
Module: leave_kernel.models.workflow_log
Responsibility: ORM persistence for the append-only workflow audit log.

Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - Append-only: UPDATE/DELETE are blocked by the listeners registered in
      db/immutability.py.
    - UNIQUE(request_id, seq): two writers racing to append the same next
      entry cannot both succeed.
    - UNIQUE(idempotency_key): a retried attempt never produces a second
      entry.

Failure modes:
    - IntegrityError on duplicate (request_id, seq) or idempotency_key.
    - ImmutabilityViolationError on UPDATE/DELETE.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from leave_kernel.db.base import Base, UUIDString
from leave_kernel.domain.leave import LeaveStatus, Role
from leave_kernel.domain.workflow import WorkflowAction

if TYPE_CHECKING:
    from leave_kernel.domain.workflow import WorkflowLogEntry


class WorkflowLogModel(Base):
    """One immutable workflow action."""

    __tablename__ = "workflow_log"

    __table_args__ = (
        UniqueConstraint("request_id", "seq", name="uq_workflow_log_request_seq"),
        UniqueConstraint("idempotency_key", name="uq_workflow_log_idempotency_key"),
        Index("ix_workflow_log_request_order", "request_id", "occurred_at", "seq"),
        Index("ix_workflow_log_actor", "actor_id", "occurred_at"),
    )

    request_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("leave_requests.id"), nullable=False,
    )
    seq: Mapped[int] = mapped_column(nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_id: Mapped[str] = mapped_column(String(100), nullable=False)
    actor_name: Mapped[str] = mapped_column(String(200), nullable=False)
    actor_role: Mapped[str] = mapped_column(String(30), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)
    resulting_status: Mapped[str] = mapped_column(String(30), nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    # "metadata" is reserved on declarative classes.
    payload: Mapped[dict[str, Any]] = mapped_column(
        "metadata", nullable=False, default=dict,
    )
    idempotency_key: Mapped[str | None] = mapped_column(String(300), nullable=True)

    def __repr__(self) -> str:
        return f"<WorkflowLog {self.request_id}#{self.seq} {self.action}>"

    def to_dto(self) -> WorkflowLogEntry:
        from leave_kernel.domain.workflow import WorkflowLogEntry as EntryDTO

        return EntryDTO(
            id=self.id,
            request_id=self.request_id,
            seq=self.seq,
            action=WorkflowAction(self.action),
            actor_id=self.actor_id,
            actor_name=self.actor_name,
            actor_role=Role(self.actor_role),
            timestamp=self.occurred_at,
            resulting_status=LeaveStatus(self.resulting_status),
            comment=self.comment,
            metadata=dict(self.payload or {}),
            idempotency_key=self.idempotency_key,
        )
