"""SQLAlchemy ORM models. Importing this package registers every table."""

from leave_kernel.models.leave_request import LeaveAttachmentModel, LeaveRequestModel
from leave_kernel.models.quota import QuotaAdjustmentModel, QuotaLedgerModel
from leave_kernel.models.workflow_log import WorkflowLogModel

__all__ = [
    "LeaveAttachmentModel",
    "LeaveRequestModel",
    "QuotaAdjustmentModel",
    "QuotaLedgerModel",
    "WorkflowLogModel",
]
