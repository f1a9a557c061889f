"""
leave_services -- application-facing workflow coordination.

Wires configuration, pure engines and kernel services into a
``LeaveWorkflowEngine``.  Hosting applications (HTTP or RPC layers) talk
to this package only.
"""

from leave_config import get_active_config
from leave_config.schema import LeavePolicyConfig
from leave_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url
from leave_kernel.domain.clock import Clock
from leave_kernel.domain.collaborators import NotificationDispatcher
from leave_services.notifications import (
    LoggingNotificationDispatcher,
    NotificationGateway,
    compose_message,
    recipient_for,
)
from leave_services.workflow_engine import LeaveWorkflowEngine, RequestLockRegistry


def create_workflow_engine(
    config: LeavePolicyConfig | None = None,
    dispatcher: NotificationDispatcher | None = None,
    clock: Clock | None = None,
) -> LeaveWorkflowEngine:
    """Build a ready engine from the active configuration.

    Initializes the module-level database engine from
    ``config.persistence`` and creates missing tables.
    """
    config = config or get_active_config()
    settings = config.persistence
    init_engine_from_url(
        settings.database_url,
        echo=settings.echo,
        pool_size=settings.pool_size,
        statement_timeout_seconds=settings.statement_timeout_seconds,
    )
    create_tables()
    return LeaveWorkflowEngine(get_session_factory(), config, dispatcher=dispatcher, clock=clock)


__all__ = [
    "LeaveWorkflowEngine",
    "LoggingNotificationDispatcher",
    "NotificationGateway",
    "RequestLockRegistry",
    "compose_message",
    "create_workflow_engine",
    "recipient_for",
]
