"""
leave_services.notifications -- bounded, fire-and-forget notification delivery.

Responsibility:
    Compose the message for a workflow log entry, pick its recipient and
    hand it to the host application's ``NotificationDispatcher`` with a
    bounded wait.

Architecture position:
    Services layer.  Called by the workflow engine after the transition
    has committed, so delivery can never roll a transition back.

Invariants enforced:
    - ``notify`` never raises.  Dispatcher exceptions and timeouts are
      logged at WARNING and reported as ``False``.
    - No call waits longer than ``timeout_seconds`` for a dispatcher.

Failure modes:
    - A dispatcher that hangs keeps one worker thread busy; the engine has
      already moved on.
"""

from __future__ import annotations

from concurrent import futures

from leave_engines.workflow import next_responsible
from leave_kernel.domain.collaborators import NotificationDispatcher
from leave_kernel.domain.leave import LeaveRequest, LeaveStatus
from leave_kernel.domain.workflow import WorkflowAction, WorkflowLogEntry
from leave_kernel.logging_config import get_logger

logger = get_logger("services.notifications")


class LoggingNotificationDispatcher:
    """Default dispatcher: writes each message to the structured log."""

    def send(self, user_id: str, message: str) -> None:
        logger.info(
            "notification_delivered",
            extra={"recipient": user_id, "notification": message},
        )


def recipient_for(request: LeaveRequest, entry: WorkflowLogEntry) -> str:
    """Who hears about ``entry``.

    Quota adjustments go to the requester whose balance moved; every other
    action goes to whoever must act next, or the requester once terminal.
    """
    if entry.action == WorkflowAction.DGPEC_QUOTA_ADJUSTMENT:
        return request.requester_id
    return next_responsible(entry.resulting_status, request.requester_id, request.department)


def compose_message(request: LeaveRequest, entry: WorkflowLogEntry) -> str:
    period = f"{request.start_date.isoformat()} to {request.end_date.isoformat()}"
    summary = (
        f"{request.leave_type.value} leave for {request.requester_name} "
        f"({period}, {request.working_days} working days)"
    )
    by = f"{entry.actor_name} ({entry.actor_role.value})"

    if entry.action == WorkflowAction.SUBMISSION:
        return f"New request: {summary} awaits manager review."
    if entry.action == WorkflowAction.DGPEC_QUOTA_ADJUSTMENT:
        delta = entry.metadata.get("delta")
        reason = entry.metadata.get("reason") or entry.comment
        return f"Your {request.leave_type.value} quota was adjusted by {delta} day(s) by {by}: {reason}"
    if entry.resulting_status == LeaveStatus.REJECTED:
        return f"Your {summary} was rejected by {by}: {entry.comment}"
    if entry.resulting_status == LeaveStatus.APPROVED:
        return f"Your {summary} was approved by {by}."
    if entry.action == WorkflowAction.DG_RETURN_TO_DGPEC:
        return f"Returned for review: {summary}, by {by}: {entry.comment}"
    return f"Awaiting your decision: {summary}, approved by {by}."


class NotificationGateway:
    """
    Contract:
        Wraps a dispatcher so the workflow engine can notify without caring
        whether delivery works.

    Guarantees:
        - ``notify`` returns within ``timeout_seconds`` (plus scheduling).
        - Returns True only when the dispatcher returned normally.

    Non-goals:
        No retry or outbox; a failed notification is only logged.
    """

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        timeout_seconds: float = 5.0,
        enabled: bool = True,
        max_workers: int = 4,
    ):
        self._dispatcher = dispatcher
        self._timeout = timeout_seconds
        self._enabled = enabled
        self._executor = futures.ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="leave-notify",
        )

    def notify(self, recipient: str, message: str) -> bool:
        if not self._enabled:
            logger.debug("notification_skipped", extra={"recipient": recipient})
            return False

        future = self._executor.submit(self._dispatcher.send, recipient, message)
        try:
            future.result(timeout=self._timeout)
        except futures.TimeoutError:
            future.cancel()
            logger.warning(
                "notification_timed_out",
                extra={"recipient": recipient, "timeout_seconds": self._timeout},
            )
            return False
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "notification_failed",
                extra={"recipient": recipient, "error": str(exc)},
                exc_info=True,
            )
            return False

        logger.debug("notification_sent", extra={"recipient": recipient})
        return True

    def notify_entry(self, request: LeaveRequest, entry: WorkflowLogEntry) -> bool:
        """Send the single notification owed for a committed log entry."""
        return self.notify(recipient_for(request, entry), compose_message(request, entry))

    def close(self) -> None:
        self._executor.shutdown(wait=False)
