"""
leave_kernel.services.audit_log -- append-only workflow log.

Responsibility:
    Append workflow log entries and read a request's history in order.
    The ordered history is the source of truth for a request's status.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - Append-only: this service exposes no update or delete, and the ORM
      listeners in db/immutability.py block them at flush time.
    - Entries of a request are ordered by (timestamp, seq).  An appended
      entry never carries a timestamp earlier than its predecessor, so the
      two orderings always agree.
    - seq is dense and 1-based per request; UNIQUE(request_id, seq) rejects
      a concurrent writer that computed the same next position.

Failure modes:
    - IntegrityError propagates unchanged (duplicate seq or idempotency
      key); the workflow engine maps it to ConflictError.
    - Any other storage error is raised as AuditPersistenceError; the
      enclosing transaction is rolled back by the caller.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from leave_kernel.domain.leave import Actor, LeaveStatus
from leave_kernel.domain.workflow import WorkflowAction, WorkflowLogEntry
from leave_kernel.exceptions import AuditPersistenceError
from leave_kernel.logging_config import get_logger
from leave_kernel.models.workflow_log import WorkflowLogModel
from leave_kernel.services.base import BaseService

logger = get_logger("services.audit_log")


class AuditLog(BaseService):
    """Append and read workflow log entries."""

    def append(
        self,
        *,
        request_id: UUID,
        action: WorkflowAction,
        actor: Actor,
        resulting_status: LeaveStatus,
        comment: str | None = None,
        metadata: dict[str, Any] | None = None,
        idempotency_key: str | None = None,
    ) -> WorkflowLogEntry:
        last = self._last(request_id)
        timestamp = self.clock.now()
        if last is not None and timestamp < last.occurred_at:
            timestamp = last.occurred_at
        seq = 1 if last is None else last.seq + 1

        model = WorkflowLogModel(
            request_id=request_id,
            seq=seq,
            action=action.value,
            actor_id=actor.user_id,
            actor_name=actor.display_name,
            actor_role=actor.role.value,
            occurred_at=timestamp,
            resulting_status=resulting_status.value,
            comment=comment,
            payload=dict(metadata or {}),
            idempotency_key=idempotency_key,
        )
        self.session.add(model)
        try:
            self.session.flush()
        except IntegrityError:
            raise
        except SQLAlchemyError as exc:
            logger.error(
                "audit_append_failed",
                extra={"request_id": str(request_id), "workflow_action": action.value},
                exc_info=True,
            )
            raise AuditPersistenceError(str(request_id), action.value, exc) from exc

        logger.info(
            "audit_entry_appended",
            extra={
                "request_id": str(request_id),
                "seq": seq,
                "workflow_action": action.value,
                "actor_id": actor.user_id,
                "resulting_status": resulting_status.value,
            },
        )
        return model.to_dto()

    def list_for(self, request_id: UUID) -> list[WorkflowLogEntry]:
        """Entries for ``request_id`` in order; empty when none exist."""
        stmt = (
            select(WorkflowLogModel)
            .where(WorkflowLogModel.request_id == request_id)
            .order_by(WorkflowLogModel.occurred_at, WorkflowLogModel.seq)
        )
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]

    def count_for(self, request_id: UUID) -> int:
        stmt = select(func.count()).select_from(WorkflowLogModel).where(
            WorkflowLogModel.request_id == request_id
        )
        return self.session.execute(stmt).scalar_one()

    def find_by_idempotency_key(self, key: str) -> WorkflowLogEntry | None:
        model = self.session.execute(
            select(WorkflowLogModel).where(WorkflowLogModel.idempotency_key == key)
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def list_by_actor(self, actor_id: str, since: datetime | None = None) -> list[WorkflowLogEntry]:
        """Decisions taken by one user, oldest first."""
        stmt = select(WorkflowLogModel).where(WorkflowLogModel.actor_id == actor_id)
        if since is not None:
            stmt = stmt.where(WorkflowLogModel.occurred_at >= since)
        stmt = stmt.order_by(WorkflowLogModel.occurred_at, WorkflowLogModel.seq)
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]

    def _last(self, request_id: UUID) -> WorkflowLogModel | None:
        stmt = (
            select(WorkflowLogModel)
            .where(WorkflowLogModel.request_id == request_id)
            .order_by(WorkflowLogModel.seq.desc())
            .limit(1)
        )
        return self.session.execute(stmt).scalar_one_or_none()
