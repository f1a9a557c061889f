"""
leave_kernel.services.quota_ledger -- per-employee leave balances.

Responsibility:
    Track (employee, year, leave type) balances: lazy creation with the
    type's base allotment, debits on approval, and explicit adjustments
    with a mandatory reason recorded in an append-only history.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - remaining_days = total_days - used_days after every mutation (also a
      DB check constraint).
    - used_days grows through ``debit`` and shrinks only through ``release``
      of days a rejected request was holding; ``adjust`` moves total_days.
    - remaining_days >= 0 unless the caller passes an explicit override.
    - Every adjustment or release leaves a QuotaAdjustment record carrying
      the reason.

Failure modes:
    - QuotaExceededError when a debit or negative adjustment would underflow.
    - QuotaEntryNotFoundError for leave types without a base allotment.
    - ValidationError for empty reasons and out-of-range day counts.

Audit relevance:
    The adjustment history is the compliance log for balance changes and is
    kept apart from the workflow log.
"""

from __future__ import annotations

from collections.abc import Mapping
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from leave_kernel.domain.clock import Clock
from leave_kernel.domain.leave import LeaveType, LeaveTypePolicy
from leave_kernel.domain.quota import AdjustmentKind, QuotaAdjustment, QuotaBalance
from leave_kernel.exceptions import (
    QuotaEntryNotFoundError,
    QuotaExceededError,
    ValidationError,
)
from leave_kernel.logging_config import get_logger
from leave_kernel.models.quota import QuotaAdjustmentModel, QuotaLedgerModel
from leave_kernel.services.base import BaseService

logger = get_logger("services.quota_ledger")


class QuotaLedger(BaseService):
    """
    Contract:
        Reads and writes go through a row-locked select of the ledger row
        (``FOR UPDATE`` on PostgreSQL) so concurrent debits serialize.

    Guarantees:
        - First use creates the row with ``base_allotment`` and zero used,
          tolerating a concurrent creator (INSERT ... ON CONFLICT DO NOTHING).
    """

    def __init__(
        self,
        session: Session,
        policies: Mapping[LeaveType, LeaveTypePolicy] | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self._policies = dict(policies or {})

    def is_tracked(self, leave_type: LeaveType) -> bool:
        policy = self._policies.get(leave_type)
        return policy is not None and policy.is_quota_tracked

    def get_balance(self, employee_id: str, year: int, leave_type: LeaveType) -> QuotaBalance:
        return self._load_or_create(employee_id, year, leave_type).to_dto()

    def debit(
        self,
        employee_id: str,
        year: int,
        leave_type: LeaveType,
        days: int,
        override: bool = False,
    ) -> QuotaBalance:
        """Consume ``days`` from the balance.

        With ``override`` the balance may go negative; the caller is
        responsible for having authorized that.
        """
        if days < 0:
            raise ValidationError("days", f"debit must be non-negative, got {days}")

        row = self._load_or_create(employee_id, year, leave_type, for_update=True)
        if row.remaining_days - days < 0 and not override:
            logger.info(
                "quota_debit_refused",
                extra={
                    "employee_id": employee_id,
                    "leave_type": leave_type.value,
                    "year": year,
                    "remaining_days": row.remaining_days,
                    "requested_days": days,
                },
            )
            raise QuotaExceededError(
                employee_id=employee_id,
                leave_type=leave_type.value,
                year=year,
                remaining_days=row.remaining_days,
                requested_days=days,
            )

        row.used_days += days
        row.remaining_days = row.total_days - row.used_days
        row.last_updated = self.clock.now()
        self.session.flush()

        logger.info(
            "quota_debited",
            extra={
                "employee_id": employee_id,
                "leave_type": leave_type.value,
                "year": year,
                "days": days,
                "remaining_days": row.remaining_days,
                "override": override,
            },
        )
        return row.to_dto()

    def adjust(
        self,
        employee_id: str,
        year: int,
        leave_type: LeaveType,
        delta: int,
        reason: str,
        actor_id: str,
        request_id: UUID | None = None,
        allow_negative: bool = False,
    ) -> QuotaBalance:
        """Change total_days by ``delta`` and record why."""
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("reason", "a quota adjustment requires a reason")

        row = self._load_or_create(employee_id, year, leave_type, for_update=True)
        new_total = row.total_days + delta
        new_remaining = new_total - row.used_days
        if new_total < 0:
            raise ValidationError(
                "delta", f"total would become {new_total}; totals cannot be negative",
            )
        if new_remaining < 0 and not allow_negative:
            raise QuotaExceededError(
                employee_id=employee_id,
                leave_type=leave_type.value,
                year=year,
                remaining_days=row.remaining_days,
                requested_days=-delta,
            )

        now = self.clock.now()
        row.total_days = new_total
        row.remaining_days = new_remaining
        row.last_updated = now
        self.session.add(
            QuotaAdjustmentModel(
                employee_id=employee_id,
                year=year,
                leave_type=leave_type.value,
                kind=AdjustmentKind.ALLOTMENT.value,
                delta=delta,
                reason=reason,
                actor_id=actor_id,
                created_at=now,
                total_after=new_total,
                remaining_after=new_remaining,
                request_id=request_id,
            )
        )
        self.session.flush()

        logger.info(
            "quota_adjusted",
            extra={
                "employee_id": employee_id,
                "leave_type": leave_type.value,
                "year": year,
                "delta": delta,
                "total_days": new_total,
                "remaining_days": new_remaining,
                "adjusted_by": actor_id,
            },
        )
        return row.to_dto()

    def release(
        self,
        employee_id: str,
        year: int,
        leave_type: LeaveType,
        days: int,
        reason: str,
        actor_id: str,
        request_id: UUID | None = None,
    ) -> QuotaBalance:
        """Give back ``days`` an earlier debit took; the allotment is untouched."""
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("reason", "a quota release requires a reason")

        row = self._load_or_create(employee_id, year, leave_type, for_update=True)
        if days <= 0 or days > row.used_days:
            raise ValidationError(
                "days", f"release must be between 1 and {row.used_days}, got {days}",
            )

        now = self.clock.now()
        row.used_days -= days
        row.remaining_days = row.total_days - row.used_days
        row.last_updated = now
        self.session.add(
            QuotaAdjustmentModel(
                employee_id=employee_id,
                year=year,
                leave_type=leave_type.value,
                kind=AdjustmentKind.RELEASE.value,
                delta=days,
                reason=reason,
                actor_id=actor_id,
                created_at=now,
                total_after=row.total_days,
                remaining_after=row.remaining_days,
                request_id=request_id,
            )
        )
        self.session.flush()

        logger.info(
            "quota_released",
            extra={
                "employee_id": employee_id,
                "leave_type": leave_type.value,
                "year": year,
                "days": days,
                "used_days": row.used_days,
                "remaining_days": row.remaining_days,
            },
        )
        return row.to_dto()

    def list_adjustments(
        self,
        employee_id: str,
        year: int | None = None,
    ) -> list[QuotaAdjustment]:
        stmt = select(QuotaAdjustmentModel).where(
            QuotaAdjustmentModel.employee_id == employee_id
        )
        if year is not None:
            stmt = stmt.where(QuotaAdjustmentModel.year == year)
        stmt = stmt.order_by(QuotaAdjustmentModel.created_at, QuotaAdjustmentModel.id)
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]

    def list_balances(self, employee_id: str, year: int) -> list[QuotaBalance]:
        """Existing ledger rows for the employee; does not create any."""
        stmt = (
            select(QuotaLedgerModel)
            .where(QuotaLedgerModel.employee_id == employee_id)
            .where(QuotaLedgerModel.year == year)
            .order_by(QuotaLedgerModel.leave_type)
        )
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]

    # ------------------------------------------------------------------

    def _select(self, employee_id: str, year: int, leave_type: LeaveType, for_update: bool):
        stmt = select(QuotaLedgerModel).where(
            QuotaLedgerModel.employee_id == employee_id,
            QuotaLedgerModel.year == year,
            QuotaLedgerModel.leave_type == leave_type.value,
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.session.execute(stmt).scalar_one_or_none()

    def _load_or_create(
        self,
        employee_id: str,
        year: int,
        leave_type: LeaveType,
        for_update: bool = False,
    ) -> QuotaLedgerModel:
        row = self._select(employee_id, year, leave_type, for_update)
        if row is not None:
            return row

        policy = self._policies.get(leave_type)
        if policy is None or not policy.is_quota_tracked:
            raise QuotaEntryNotFoundError(employee_id, year, leave_type.value)

        # A concurrent first use may insert the same key; the loser's insert
        # is a no-op and the select below returns the winner's row.
        insert = pg_insert if self.session.get_bind().dialect.name == "postgresql" else sqlite_insert
        self.session.execute(
            insert(QuotaLedgerModel)
            .values(
                employee_id=employee_id,
                year=year,
                leave_type=leave_type.value,
                total_days=policy.base_allotment,
                used_days=0,
                remaining_days=policy.base_allotment,
                last_updated=self.clock.now(),
            )
            .on_conflict_do_nothing(index_elements=["employee_id", "year", "leave_type"])
        )
        logger.info(
            "quota_entry_opened",
            extra={
                "employee_id": employee_id,
                "leave_type": leave_type.value,
                "year": year,
                "base_allotment": policy.base_allotment,
            },
        )
        return self._select(employee_id, year, leave_type, for_update=True)
