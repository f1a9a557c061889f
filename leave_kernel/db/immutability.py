"""
ORM-level append-only enforcement.

Workflow log entries and quota adjustments are compliance records: once
written they are never modified or removed.  SQLAlchemy fires
``before_update`` / ``before_delete`` mapper events before any SQL is sent;
the listeners below turn such an attempt into ImmutabilityViolationError
and the flush is aborted.

    session.flush()
         |
         v
    [before_update / before_delete] --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Protected entities
------------------

Entity            | When immutable
------------------|----------------
WorkflowLog       | Always (from creation)
QuotaAdjustment   | Always (from creation)

Usage
-----
``create_tables()`` registers the listeners; tests that need to bypass
them (to prove detection elsewhere) call
``unregister_immutability_listeners()`` and re-register afterwards.
"""

from sqlalchemy import event

from leave_kernel.exceptions import ImmutabilityViolationError
from leave_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _block(target, entity_type: str, operation: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    verb = "modified" if operation == "UPDATE" else "deleted"
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=f"{entity_type} records are append-only and cannot be {verb}",
    )


def _check_workflow_log_update(mapper, connection, target):
    _block(target, "WorkflowLog", "UPDATE")


def _check_workflow_log_delete(mapper, connection, target):
    _block(target, "WorkflowLog", "DELETE")


def _check_quota_adjustment_update(mapper, connection, target):
    _block(target, "QuotaAdjustment", "UPDATE")


def _check_quota_adjustment_delete(mapper, connection, target):
    _block(target, "QuotaAdjustment", "DELETE")


def _listeners():
    from leave_kernel.models.quota import QuotaAdjustmentModel
    from leave_kernel.models.workflow_log import WorkflowLogModel

    return (
        (WorkflowLogModel, "before_update", _check_workflow_log_update),
        (WorkflowLogModel, "before_delete", _check_workflow_log_delete),
        (QuotaAdjustmentModel, "before_update", _check_quota_adjustment_update),
        (QuotaAdjustmentModel, "before_delete", _check_quota_adjustment_delete),
    )


def register_immutability_listeners() -> None:
    """Register all append-only listeners. Safe to call more than once."""
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """
    Remove the append-only listeners.

    WARNING: Only use this in tests.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
