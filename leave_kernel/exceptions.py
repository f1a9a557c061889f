"""
Typed exception hierarchy for the leave kernel.

Every error the kernel raises is a subclass of LeaveKernelError and carries:
  1. A class-level ``code`` (machine-readable, stable across releases)
  2. Structured attributes describing the failure (never parse messages)

Callers surface these as 4xx-equivalent outcomes. Audit log write failures
are wrapped in AuditPersistenceError (chained to the SQLAlchemy error),
except unique-constraint collisions, which the workflow engine reports as
ConflictError. Other storage failures propagate as SQLAlchemy errors. The
enclosing transaction has been rolled back before any of them reach a caller.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LeaveKernelError (base)
    |
    +-- AuthorizationError
    +-- ValidationError
    |   +-- MissingCommentError
    +-- WorkflowError
    |   +-- InvalidStateError
    +-- QuotaError
    |   +-- QuotaExceededError
    +-- NotFoundError
    |   +-- LeaveRequestNotFoundError
    |   +-- QuotaEntryNotFoundError
    +-- ConcurrencyError
    |   +-- ConflictError
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    +-- AuditError
        +-- AuditPersistenceError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                    | When Raised
----------------|-------------------------|-----------------------------------
Authorization   | UNAUTHORIZED_ACTION     | Actor role/department not allowed
Validation      | VALIDATION_FAILED       | Bad date range, missing attachment
                | COMMENT_REQUIRED        | Rejection without a comment
Workflow        | INVALID_STATE           | Action not defined for the status
Quota           | QUOTA_EXCEEDED          | Debit would leave remaining < 0
Not found       | LEAVE_REQUEST_NOT_FOUND | Unknown request id
                | QUOTA_ENTRY_NOT_FOUND   | Untracked leave type / employee
Concurrency     | CONFLICT                | Concurrent transition lost the race
Immutability    | IMMUTABILITY_VIOLATION  | Update/delete of an audit record
Audit           | AUDIT_PERSISTENCE_FAILED| Audit append could not be stored

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        engine.attempt_transition(request_id, action, actor, comment="ok")
    except QuotaExceededError as e:
        show_override_prompt(remaining=e.remaining_days, requested=e.requested_days)
    except ConflictError:
        reload_and_retry()
"""

from typing import Any


class LeaveKernelError(Exception):
    """
    Base exception for all leave kernel errors.

    All subclasses must define a ``code`` class attribute.
    """

    code: str = "LEAVE_KERNEL_ERROR"


# Authorization


class AuthorizationError(LeaveKernelError):
    """Actor is not allowed to perform the action."""

    code: str = "UNAUTHORIZED_ACTION"

    def __init__(
        self,
        actor_id: str,
        actor_role: str,
        action: str,
        required_role: str | None = None,
        reason: str | None = None,
    ):
        self.actor_id = actor_id
        self.actor_role = actor_role
        self.action = action
        self.required_role = required_role
        self.reason = reason
        detail = reason or f"requires role {required_role}"
        super().__init__(
            f"Actor {actor_id} ({actor_role}) may not perform {action}: {detail}"
        )


# Validation


class ValidationError(LeaveKernelError):
    """Input failed validation (missing field, bad date range, ...)."""

    code: str = "VALIDATION_FAILED"

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"Invalid {field}: {message}")


class MissingCommentError(ValidationError):
    """An action that requires a comment was attempted without one."""

    code: str = "COMMENT_REQUIRED"

    def __init__(self, action: str):
        self.action = action
        super().__init__("comment", f"a non-empty comment is required for {action}")


# Workflow


class WorkflowError(LeaveKernelError):
    """Base exception for workflow errors."""

    code: str = "WORKFLOW_ERROR"


class InvalidStateError(WorkflowError):
    """Action is not defined for the request's current status."""

    code: str = "INVALID_STATE"

    def __init__(self, request_id: str, current_status: str, action: str):
        self.request_id = request_id
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Action {action} is not allowed for request {request_id} "
            f"in status {current_status}"
        )


# Quota


class QuotaError(LeaveKernelError):
    """Base exception for quota ledger errors."""

    code: str = "QUOTA_ERROR"


class QuotaExceededError(QuotaError):
    """
    Debit would leave the ledger entry with a negative remaining balance.

    Carries the current balance so an approver can decide on an override.
    """

    code: str = "QUOTA_EXCEEDED"

    def __init__(
        self,
        employee_id: str,
        leave_type: str,
        year: int,
        remaining_days: int,
        requested_days: int,
    ):
        self.employee_id = employee_id
        self.leave_type = leave_type
        self.year = year
        self.remaining_days = remaining_days
        self.requested_days = requested_days
        super().__init__(
            f"Quota exceeded for {employee_id} ({leave_type} {year}): "
            f"requested {requested_days}, remaining {remaining_days}"
        )


# Not found


class NotFoundError(LeaveKernelError):
    """Base exception for unknown identifiers."""

    code: str = "NOT_FOUND"


class LeaveRequestNotFoundError(NotFoundError):
    """Leave request with given ID was not found."""

    code: str = "LEAVE_REQUEST_NOT_FOUND"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Leave request not found: {request_id}")


class QuotaEntryNotFoundError(NotFoundError):
    """No ledger entry exists and none can be created for the leave type."""

    code: str = "QUOTA_ENTRY_NOT_FOUND"

    def __init__(self, employee_id: str, year: int, leave_type: str):
        self.employee_id = employee_id
        self.year = year
        self.leave_type = leave_type
        super().__init__(
            f"No quota ledger entry for {employee_id} ({leave_type} {year})"
        )


# Concurrency


class ConcurrencyError(LeaveKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConflictError(ConcurrencyError):
    """
    A concurrent transition on the same request won the race.

    Safe to retry after reloading the request.
    """

    code: str = "CONFLICT"

    def __init__(
        self,
        request_id: str,
        reason: str,
        expected_version: int | None = None,
        actual_version: int | None = None,
        expected_revision: int | None = None,
        actual_revision: int | None = None,
    ):
        self.request_id = request_id
        self.reason = reason
        self.expected_version = expected_version
        self.actual_version = actual_version
        self.expected_revision = expected_revision
        self.actual_revision = actual_revision
        super().__init__(f"Conflict on leave request {request_id}: {reason}")


# Immutability


class ImmutabilityError(LeaveKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Workflow log entries and quota adjustments are append-only.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Audit


class AuditError(LeaveKernelError):
    """Base exception for audit log errors."""

    code: str = "AUDIT_ERROR"


class AuditPersistenceError(AuditError):
    """The audit entry could not be stored; the transition is rolled back."""

    code: str = "AUDIT_PERSISTENCE_FAILED"

    def __init__(self, request_id: str, action: str, cause: Any = None):
        self.request_id = request_id
        self.action = action
        self.cause = str(cause) if cause is not None else None
        super().__init__(
            f"Failed to persist audit entry {action} for request {request_id}"
        )
