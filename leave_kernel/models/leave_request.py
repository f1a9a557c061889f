"""
Module: leave_kernel.models.leave_request
Responsibility: ORM persistence for leave requests and their attachment
    references.

Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - start_date <= end_date and working_days >= 0 (DB check constraints).
    - status and leave_type restricted to the domain vocabularies.
    - version is the number of workflow log entries for the request and is
      the mapper's version counter: an UPDATE issued from a stale read
      matches zero rows and raises StaleDataError.
    - revision counts date edits; it is independent of version so the
      log length stays the version counter.
    - Attachment order is preserved through UNIQUE(request_id, position).

Failure modes:
    - IntegrityError on check-constraint violation.
    - StaleDataError when a concurrent transition already bumped version.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leave_kernel.db.base import Base, UUIDString
from leave_kernel.domain.leave import LeaveStatus, LeaveType

if TYPE_CHECKING:
    from leave_kernel.domain.leave import Attachment, LeaveRequest


def _sql_in(values) -> str:
    return ", ".join(f"'{v.value}'" for v in values)


class LeaveRequestModel(Base):
    """Persistent leave request.

    Contract:
        ``status`` is a cache of the workflow log fold and is written only
        by ``LeaveRequestStore._apply_transition``.

    Guarantees:
        - version increases by exactly one per appended log entry.
    """

    __tablename__ = "leave_requests"

    __table_args__ = (
        CheckConstraint("start_date <= end_date", name="ck_leave_requests_date_range"),
        CheckConstraint("working_days >= 0", name="ck_leave_requests_working_days"),
        CheckConstraint(
            f"status IN ({_sql_in(LeaveStatus)})",
            name="ck_leave_requests_valid_status",
        ),
        CheckConstraint(
            f"leave_type IN ({_sql_in(LeaveType)})",
            name="ck_leave_requests_valid_type",
        ),
        Index("ix_leave_requests_requester", "requester_id", "created_at"),
        Index("ix_leave_requests_department_status", "department", "status"),
        Index("ix_leave_requests_status", "status", "created_at"),
    )

    requester_id: Mapped[str] = mapped_column(String(100), nullable=False)
    requester_name: Mapped[str] = mapped_column(String(200), nullable=False)
    department: Mapped[str] = mapped_column(String(100), nullable=False)
    leave_type: Mapped[str] = mapped_column(String(30), nullable=False)
    start_date: Mapped[date] = mapped_column(nullable=False)
    end_date: Mapped[date] = mapped_column(nullable=False)
    working_days: Mapped[int] = mapped_column(nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=LeaveStatus.SUBMITTED.value,
    )
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    last_updated: Mapped[datetime] = mapped_column(nullable=False)
    version: Mapped[int] = mapped_column(nullable=False, default=0)
    revision: Mapped[int] = mapped_column(nullable=False, default=0)

    attachments: Mapped[list["LeaveAttachmentModel"]] = relationship(
        "LeaveAttachmentModel",
        back_populates="request",
        order_by="LeaveAttachmentModel.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {
        "version_id_col": version,
        "version_id_generator": False,
    }

    def __repr__(self) -> str:
        return (
            f"<LeaveRequest {self.id} {self.leave_type} "
            f"{self.start_date}..{self.end_date} status={self.status}>"
        )

    def to_dto(self) -> LeaveRequest:
        from leave_kernel.domain.leave import LeaveRequest as LeaveRequestDTO

        return LeaveRequestDTO(
            id=self.id,
            requester_id=self.requester_id,
            requester_name=self.requester_name,
            department=self.department,
            leave_type=LeaveType(self.leave_type),
            start_date=self.start_date,
            end_date=self.end_date,
            working_days=self.working_days,
            status=LeaveStatus(self.status),
            created_at=self.created_at,
            last_updated=self.last_updated,
            reason=self.reason,
            attachments=tuple(a.to_dto() for a in self.attachments),
            version=self.version,
            revision=self.revision,
        )


class LeaveAttachmentModel(Base):
    """Reference to a supporting document. The file itself lives elsewhere."""

    __tablename__ = "leave_attachments"

    __table_args__ = (
        UniqueConstraint("request_id", "position", name="uq_leave_attachments_position"),
    )

    request_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("leave_requests.id"), nullable=False,
    )
    position: Mapped[int] = mapped_column(nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)

    request: Mapped[LeaveRequestModel] = relationship(
        "LeaveRequestModel", back_populates="attachments",
    )

    def to_dto(self) -> Attachment:
        from leave_kernel.domain.leave import Attachment as AttachmentDTO

        return AttachmentDTO(name=self.name, url=self.url, mime_type=self.mime_type)

    @classmethod
    def from_dto(cls, dto: Attachment, position: int) -> LeaveAttachmentModel:
        return cls(position=position, name=dto.name, url=dto.url, mime_type=dto.mime_type)
