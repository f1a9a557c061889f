"""
Module: leave_kernel.models.quota
Responsibility: ORM persistence for quota ledger entries and the
    append-only adjustment history.

Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - UNIQUE(employee_id, year, leave_type): one ledger row per key.
    - remaining_days = total_days - used_days (DB check constraint).
    - used_days >= 0.
    - Adjustment rows are append-only (db/immutability.py).
    - Adjustment kind is "allotment" (total_days moved) or "release"
      (used_days returned); delta is always the change in remaining_days.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from leave_kernel.db.base import Base, UUIDString
from leave_kernel.domain.leave import LeaveType

if TYPE_CHECKING:
    from leave_kernel.domain.quota import QuotaAdjustment, QuotaBalance


class QuotaLedgerModel(Base):
    """Balance for one (employee, year, leave type)."""

    __tablename__ = "quota_ledger"

    __table_args__ = (
        UniqueConstraint(
            "employee_id", "year", "leave_type",
            name="uq_quota_ledger_key",
        ),
        CheckConstraint(
            "remaining_days = total_days - used_days",
            name="ck_quota_ledger_remaining",
        ),
        CheckConstraint("used_days >= 0", name="ck_quota_ledger_used"),
    )

    employee_id: Mapped[str] = mapped_column(String(100), nullable=False)
    year: Mapped[int] = mapped_column(nullable=False)
    leave_type: Mapped[str] = mapped_column(String(30), nullable=False)
    total_days: Mapped[int] = mapped_column(nullable=False)
    used_days: Mapped[int] = mapped_column(nullable=False, default=0)
    remaining_days: Mapped[int] = mapped_column(nullable=False)
    last_updated: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return (
            f"<QuotaLedger {self.employee_id} {self.leave_type} {self.year} "
            f"{self.used_days}/{self.total_days}>"
        )

    def to_dto(self) -> QuotaBalance:
        from leave_kernel.domain.quota import QuotaBalance as BalanceDTO

        return BalanceDTO(
            employee_id=self.employee_id,
            year=self.year,
            leave_type=LeaveType(self.leave_type),
            total_days=self.total_days,
            used_days=self.used_days,
            remaining_days=self.remaining_days,
            last_updated=self.last_updated,
        )


class QuotaAdjustmentModel(Base):
    """Compliance record of one explicit adjustment. Append-only."""

    __tablename__ = "quota_adjustments"

    __table_args__ = (
        Index("ix_quota_adjustments_employee", "employee_id", "year", "created_at"),
        CheckConstraint("length(reason) > 0", name="ck_quota_adjustments_reason"),
        CheckConstraint(
            "kind IN ('allotment', 'release')", name="ck_quota_adjustments_kind",
        ),
    )

    employee_id: Mapped[str] = mapped_column(String(100), nullable=False)
    year: Mapped[int] = mapped_column(nullable=False)
    leave_type: Mapped[str] = mapped_column(String(30), nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False, default="allotment")
    delta: Mapped[int] = mapped_column(nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    actor_id: Mapped[str] = mapped_column(String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    total_after: Mapped[int] = mapped_column(nullable=False)
    remaining_after: Mapped[int] = mapped_column(nullable=False)
    request_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def to_dto(self) -> QuotaAdjustment:
        from leave_kernel.domain.quota import AdjustmentKind
        from leave_kernel.domain.quota import QuotaAdjustment as AdjustmentDTO

        return AdjustmentDTO(
            id=self.id,
            employee_id=self.employee_id,
            year=self.year,
            leave_type=LeaveType(self.leave_type),
            delta=self.delta,
            reason=self.reason,
            actor_id=self.actor_id,
            created_at=self.created_at,
            total_after=self.total_after,
            remaining_after=self.remaining_after,
            request_id=self.request_id,
            kind=AdjustmentKind(self.kind),
        )
