"""
leave_services.workflow_engine -- leave approval transition execution.

Responsibility:
    Executes workflow transitions on leave requests.  Thin coordinator --
    delegates rule evaluation to the pure ``leave_engines.workflow``
    functions, persistence to the kernel services (store, audit log, quota
    ledger) and delivery to the ``NotificationGateway``.

Architecture position:
    Services layer.  May import from leave_engines/, leave_config/ and
    leave_kernel/ (domain, services, selectors, db).

Invariants enforced:
    - One transaction per attempt: the audit entry, the cached status and
      any quota movement commit together or not at all.
    - The cached ``status`` always equals ``derive_status`` of the log, and
      ``version`` equals the log length.
    - Role check precedes the state check.
    - At most one transition per request is in flight in this process
      (striped lock); across processes the row lock, the version column and
      UNIQUE(request_id, seq) turn a lost race into ConflictError.
    - A request holds at most one quota debit at a time.
    - Exactly one notification per committed, non-replayed transition.

Failure modes:
    - AuthorizationError, InvalidStateError, ValidationError,
      QuotaExceededError, NotFoundError, ConflictError propagate after
      rollback.
    - Notification failures are logged by the gateway and never propagate.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from leave_config.schema import LeavePolicyConfig
from leave_engines.working_days import WorkingDayCalculator
from leave_engines.workflow import (
    DEBIT_KEY,
    RELEASE_KEY,
    allowed_actions,
    authorize,
    derive_status,
    outstanding_debit,
    requires_comment,
    resolve_transition,
)
from leave_kernel.db.engine import session_scope
from leave_kernel.domain.clock import Clock, SystemClock
from leave_kernel.domain.collaborators import NotificationDispatcher
from leave_kernel.domain.leave import (
    QUOTA_OVERRIDE_PRIVILEGE,
    Actor,
    LeaveRequest,
    LeaveStatus,
    LeaveType,
    NewLeaveRequest,
    Role,
)
from leave_kernel.domain.quota import QuotaAdjustment, QuotaBalance
from leave_kernel.domain.workflow import (
    Transition,
    TransitionResult,
    WorkflowAction,
    WorkflowLogEntry,
)
from leave_kernel.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidStateError,
    LeaveKernelError,
    MissingCommentError,
    ValidationError,
)
from leave_kernel.logging_config import LogContext, get_logger
from leave_kernel.selectors.leave_selector import LeaveSelector, LeaveStatistics
from leave_kernel.services.audit_log import AuditLog
from leave_kernel.services.leave_request_store import LeaveRequestStore
from leave_kernel.services.quota_ledger import QuotaLedger
from leave_kernel.utils.idempotency import transition_idempotency_key
from leave_services.notifications import LoggingNotificationDispatcher, NotificationGateway

logger = get_logger("services.workflow_engine")

# Trace message and outcome codes for structured logging
TRACE_TYPE_WORKFLOW_TRANSITION = "WORKFLOW_TRANSITION"
OUTCOME_SUCCESS = "success"
OUTCOME_REPLAYED = "replayed"

_RESERVED_METADATA_KEYS = frozenset({DEBIT_KEY, RELEASE_KEY})


def _emit_workflow_trace(
    action: WorkflowAction,
    request_id: UUID | None,
    outcome: str,
    reason: str,
    started: float,
    to_state: LeaveStatus | None = None,
    seq: int | None = None,
) -> None:
    """Emit one structured record per attempt, whatever its outcome."""
    record: dict[str, Any] = {
        "trace_type": TRACE_TYPE_WORKFLOW_TRANSITION,
        "workflow_action": action.value,
        "outcome": outcome,
        "reason": reason,
        "duration_ms": round((time.monotonic() - started) * 1000, 3),
    }
    if request_id is not None:
        record["request_id"] = str(request_id)
    if to_state is not None:
        record["to_state"] = to_state.value
    if seq is not None:
        record["seq"] = seq
    logger.info("workflow_transition", extra=record)


def _check_revision(request: LeaveRequest, expected_revision: int | None) -> None:
    if expected_revision is not None and expected_revision != request.revision:
        raise ConflictError(
            str(request.id),
            "request dates changed since it was read",
            expected_revision=expected_revision,
            actual_revision=request.revision,
        )


class RequestLockRegistry:
    """Striped in-process locks keyed by request id.

    Two requests may share a stripe; they then serialize, which costs
    latency but never correctness.
    """

    def __init__(self, stripes: int = 64):
        if stripes < 1:
            raise ValueError("stripes must be >= 1")
        self._locks = tuple(threading.Lock() for _ in range(stripes))

    def _lock_for(self, request_id: UUID) -> threading.Lock:
        return self._locks[hash(request_id) % len(self._locks)]

    @contextmanager
    def hold(self, request_id: UUID, timeout: float) -> Iterator[None]:
        lock = self._lock_for(request_id)
        if not lock.acquire(timeout=timeout):
            raise ConflictError(
                str(request_id),
                f"another transition is still in progress after {timeout}s",
            )
        try:
            yield
        finally:
            lock.release()


class LeaveWorkflowEngine:
    """Runs the leave approval workflow.

    Each public write opens its own transaction through ``session_scope``;
    callers pass actors and ids, never sessions.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        config: LeavePolicyConfig,
        dispatcher: NotificationDispatcher | None = None,
        clock: Clock | None = None,
        lock_registry: RequestLockRegistry | None = None,
        lock_timeout_seconds: float = 10.0,
    ) -> None:
        self._session_factory = session_factory
        self._config = config
        self._clock = clock or SystemClock()
        self._working_days = WorkingDayCalculator(config.calendar)
        self._locks = lock_registry or RequestLockRegistry()
        self._lock_timeout = lock_timeout_seconds
        self._notifier = NotificationGateway(
            dispatcher or LoggingNotificationDispatcher(),
            timeout_seconds=config.notifications.timeout_seconds,
            enabled=config.notifications.enabled,
        )

    @property
    def config(self) -> LeavePolicyConfig:
        return self._config

    # ------------------------------------------------------------------
    # Kernel services bound to one session
    # ------------------------------------------------------------------

    def _store(self, session: Session) -> LeaveRequestStore:
        return LeaveRequestStore(session, self._working_days, self._config.leave_types, self._clock)

    def _audit(self, session: Session) -> AuditLog:
        return AuditLog(session, self._clock)

    def _ledger(self, session: Session) -> QuotaLedger:
        return QuotaLedger(session, self._config.leave_types, self._clock)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def submit(self, new_request: NewLeaveRequest, actor: Actor) -> LeaveRequest:
        """Create a request and record its ``submission`` entry.

        Any role may request leave for itself; nobody may submit for
        somebody else.
        """
        action = WorkflowAction.SUBMISSION
        if actor.user_id != new_request.requester_id:
            raise AuthorizationError(
                actor.user_id,
                actor.role.value,
                action.value,
                reason="leave can only be requested by the employee taking it",
            )

        started = time.monotonic()
        with LogContext.bind(actor_id=actor.user_id, action=action.value):
            try:
                with session_scope(self._session_factory) as session:
                    store = self._store(session)
                    request = store.create(new_request)
                    entry = self._audit(session).append(
                        request_id=request.id,
                        action=action,
                        actor=actor,
                        resulting_status=LeaveStatus.SUBMITTED,
                        metadata={"working_days": request.working_days},
                    )
                    request = store._apply_transition(request.id, LeaveStatus.SUBMITTED, entry.seq)
            except LeaveKernelError as exc:
                _emit_workflow_trace(action, None, exc.code, str(exc), started)
                raise
            _emit_workflow_trace(
                action, request.id, OUTCOME_SUCCESS, "", started,
                to_state=request.status, seq=entry.seq,
            )

        self._notifier.notify_entry(request, entry)
        return request

    def attempt_transition(
        self,
        request_id: UUID,
        action: WorkflowAction,
        actor: Actor,
        comment: str | None = None,
        metadata: dict[str, Any] | None = None,
        nonce: str | None = None,
        expected_version: int | None = None,
        expected_revision: int | None = None,
    ) -> TransitionResult:
        """Apply ``action`` to the request on behalf of ``actor``.

        ``nonce`` makes the call idempotent: a retry with the same nonce
        returns the recorded result (``replayed=True``) and writes nothing.
        ``expected_version`` is the log length the caller last saw and
        ``expected_revision`` the date-edit count; a different current value
        fails with ConflictError.
        """
        key = transition_idempotency_key(request_id, action.value, nonce) if nonce else None
        started = time.monotonic()

        with LogContext.bind(request_id=str(request_id), actor_id=actor.user_id, action=action.value):
            try:
                result = self._attempt(
                    request_id, action, actor, comment, metadata, key,
                    expected_version, expected_revision,
                )
            except LeaveKernelError as exc:
                _emit_workflow_trace(action, request_id, exc.code, str(exc), started)
                raise
            _emit_workflow_trace(
                action,
                request_id,
                OUTCOME_REPLAYED if result.replayed else OUTCOME_SUCCESS,
                "",
                started,
                to_state=result.status,
                seq=result.entry.seq,
            )

        if not result.replayed:
            self._notifier.notify_entry(result.request, result.entry)
        return result

    def adjust_quota(
        self,
        actor: Actor,
        employee_id: str,
        year: int,
        leave_type: LeaveType,
        delta: int,
        reason: str,
    ) -> QuotaBalance:
        """Adjust a balance outside any request (e.g. a new-year correction)."""
        if actor.role != Role.DGPEC:
            raise AuthorizationError(
                actor.user_id,
                actor.role.value,
                "quota_adjustment",
                required_role=Role.DGPEC.value,
            )
        with session_scope(self._session_factory) as session:
            return self._ledger(session).adjust(
                employee_id, year, leave_type, delta, reason, actor_id=actor.user_id,
            )

    def update_dates(
        self,
        request_id: UUID,
        actor: Actor,
        start_date: date,
        end_date: date,
        expected_revision: int | None = None,
    ) -> LeaveRequest:
        """Let the requester move their leave before the manager decides.

        Each edit bumps ``revision``; ``expected_revision`` guards against
        overwriting an edit the caller has not seen.
        """
        with self._locks.hold(request_id, self._lock_timeout):
            with session_scope(self._session_factory) as session:
                store = self._store(session)
                request = store.lock_for_transition(request_id)
                if request.requester_id != actor.user_id:
                    raise AuthorizationError(
                        actor.user_id,
                        actor.role.value,
                        "update_dates",
                        reason="only the requester may change the dates",
                    )
                _check_revision(request, expected_revision)
                return store.update_dates(request_id, start_date, end_date)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, request_id: UUID) -> LeaveRequest:
        with session_scope(self._session_factory) as session:
            return self._store(session).get(request_id)

    def current_state(self, request_id: UUID) -> LeaveStatus:
        """Status replayed from the audit log, ignoring the cached column."""
        return derive_status(entry.action for entry in self.history(request_id))

    def history(self, request_id: UUID) -> tuple[WorkflowLogEntry, ...]:
        with session_scope(self._session_factory) as session:
            self._store(session).get(request_id)
            return tuple(self._audit(session).list_for(request_id))

    def list_by_role(self, actor: Actor) -> list[LeaveRequest]:
        """The queue ``actor`` works from; managers only see their department."""
        department = actor.department if actor.role == Role.MANAGER else None
        if actor.role == Role.MANAGER and department is None:
            logger.warning("manager_without_department", extra={"actor_id": actor.user_id})
            return []
        with session_scope(self._session_factory) as session:
            return self._store(session).list_by_role(actor.role, actor.user_id, department)

    def allowed_actions(self, request_id: UUID, actor: Actor) -> tuple[WorkflowAction, ...]:
        request = self.get(request_id)
        return tuple(
            action
            for action in allowed_actions(request.status, actor.role)
            if authorize(action, actor, request.department).allowed
        )

    def get_balance(self, employee_id: str, year: int, leave_type: LeaveType) -> QuotaBalance:
        with session_scope(self._session_factory) as session:
            return self._ledger(session).get_balance(employee_id, year, leave_type)

    def list_adjustments(self, employee_id: str, year: int | None = None) -> list[QuotaAdjustment]:
        with session_scope(self._session_factory) as session:
            return self._ledger(session).list_adjustments(employee_id, year)

    def statistics(
        self,
        period_start: date,
        period_end: date,
        department: str | None = None,
    ) -> LeaveStatistics:
        with session_scope(self._session_factory) as session:
            return LeaveSelector(session).statistics(period_start, period_end, department)

    def close(self) -> None:
        self._notifier.close()

    # ------------------------------------------------------------------
    # Transition internals
    # ------------------------------------------------------------------

    def _attempt(
        self,
        request_id: UUID,
        action: WorkflowAction,
        actor: Actor,
        comment: str | None,
        metadata: dict[str, Any] | None,
        key: str | None,
        expected_version: int | None,
        expected_revision: int | None,
    ) -> TransitionResult:
        try:
            with self._locks.hold(request_id, self._lock_timeout):
                with session_scope(self._session_factory) as session:
                    return self._apply(
                        session, request_id, action, actor, comment, metadata, key,
                        expected_version, expected_revision,
                    )
        except StaleDataError as exc:
            raise ConflictError(
                str(request_id), "request was modified by a concurrent transition",
            ) from exc
        except IntegrityError as exc:
            # Another writer took this log position, or recorded the same
            # idempotency key first; the latter is a retry to answer.
            if key is not None:
                with session_scope(self._session_factory) as session:
                    replay = self._replay_if_recorded(session, request_id, key, actor)
                if replay is not None:
                    return replay
            raise ConflictError(
                str(request_id), "a concurrent transition was recorded first",
            ) from exc

    def _apply(
        self,
        session: Session,
        request_id: UUID,
        action: WorkflowAction,
        actor: Actor,
        comment: str | None,
        metadata: dict[str, Any] | None,
        key: str | None,
        expected_version: int | None,
        expected_revision: int | None,
    ) -> TransitionResult:
        if key is not None:
            replay = self._replay_if_recorded(session, request_id, key, actor)
            if replay is not None:
                return replay

        store = self._store(session)
        audit = self._audit(session)
        request = store.lock_for_transition(request_id)

        check = authorize(action, actor, request.department)
        if not check.allowed:
            raise AuthorizationError(
                actor.user_id,
                actor.role.value,
                action.value,
                required_role=check.required_role.value if check.required_role else None,
                reason=check.reason,
            )
        if expected_version is not None and expected_version != request.version:
            raise ConflictError(
                str(request_id),
                "request changed since it was read",
                expected_version=expected_version,
                actual_version=request.version,
            )
        _check_revision(request, expected_revision)
        transition = resolve_transition(request.status, action)
        if transition is None:
            raise InvalidStateError(str(request_id), request.status.value, action.value)
        if requires_comment(action) and not (comment or "").strip():
            raise MissingCommentError(action.value)

        payload = {
            k: v for k, v in (metadata or {}).items() if k not in _RESERVED_METADATA_KEYS
        }
        quota = self._apply_quota_effects(request, transition, actor, comment, payload, audit, session)

        entry = audit.append(
            request_id=request.id,
            action=action,
            actor=actor,
            resulting_status=transition.to_status,
            comment=comment,
            metadata=payload,
            idempotency_key=key,
        )
        updated = store._apply_transition(request.id, transition.to_status, entry.seq)

        logger.info(
            "workflow_transition_applied",
            extra={
                "from_status": request.status.value,
                "to_status": updated.status.value,
                "seq": entry.seq,
            },
        )
        return TransitionResult(request=updated, entry=entry, quota=quota)

    def _apply_quota_effects(
        self,
        request: LeaveRequest,
        transition: Transition,
        actor: Actor,
        comment: str | None,
        payload: dict[str, Any],
        audit: AuditLog,
        session: Session,
    ) -> QuotaBalance | None:
        """Move quota for ``transition`` and record the movement in ``payload``."""
        ledger = self._ledger(session)
        year = request.quota_year

        if transition.action == WorkflowAction.DGPEC_QUOTA_ADJUSTMENT:
            delta = payload.get("delta")
            if not isinstance(delta, int) or isinstance(delta, bool):
                raise ValidationError("delta", f"metadata.delta must be an integer, got {delta!r}")
            reason = str(payload.get("reason") or comment or "").strip()
            if not reason:
                raise ValidationError("reason", "a quota adjustment requires a reason")
            payload["reason"] = reason
            return ledger.adjust(
                request.requester_id,
                year,
                request.leave_type,
                delta,
                reason,
                actor_id=actor.user_id,
                request_id=request.id,
                allow_negative=self._override_requested(payload, actor, transition.action),
            )

        if not ledger.is_tracked(request.leave_type):
            return None

        if transition.action == WorkflowAction.DGPEC_APPROVAL:
            if outstanding_debit(audit.list_for(request.id)) > 0:
                # Back from DG: the days are still held from the first approval.
                return ledger.get_balance(request.requester_id, year, request.leave_type)
            balance = ledger.debit(
                request.requester_id,
                year,
                request.leave_type,
                request.working_days,
                override=self._override_requested(payload, actor, transition.action),
            )
            payload[DEBIT_KEY] = request.working_days
            return balance

        if (
            transition.to_status == LeaveStatus.REJECTED
            and self._config.quota.release_on_final_rejection
        ):
            held = outstanding_debit(audit.list_for(request.id))
            if held > 0:
                balance = ledger.release(
                    request.requester_id,
                    year,
                    request.leave_type,
                    held,
                    f"release of {held} day(s) held by rejected leave request {request.id}",
                    actor_id=actor.user_id,
                    request_id=request.id,
                )
                payload[RELEASE_KEY] = held
                return balance
        return None

    def _override_requested(
        self,
        payload: dict[str, Any],
        actor: Actor,
        action: WorkflowAction,
    ) -> bool:
        """True when the caller asked for, and may use, a quota override."""
        if not payload.get("override"):
            return False
        if not self._config.quota.allow_override:
            raise AuthorizationError(
                actor.user_id,
                actor.role.value,
                action.value,
                reason="quota override is disabled by policy",
            )
        if not actor.has_privilege(QUOTA_OVERRIDE_PRIVILEGE):
            raise AuthorizationError(
                actor.user_id,
                actor.role.value,
                action.value,
                reason=f"quota override requires the {QUOTA_OVERRIDE_PRIVILEGE} privilege",
            )
        logger.warning("quota_override_used", extra={"workflow_action": action.value})
        return True

    def _replay_if_recorded(
        self,
        session: Session,
        request_id: UUID,
        key: str,
        actor: Actor,
    ) -> TransitionResult | None:
        prior = self._audit(session).find_by_idempotency_key(key)
        if prior is None:
            return None
        if prior.actor_id != actor.user_id:
            raise ConflictError(str(request_id), "idempotency key was used by another actor")
        logger.info("workflow_transition_replayed", extra={"seq": prior.seq})
        return TransitionResult(
            request=self._store(session).get(request_id),
            entry=prior,
            replayed=True,
        )
