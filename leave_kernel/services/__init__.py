"""Flush-only kernel services. Callers own the transaction."""

from leave_kernel.services.audit_log import AuditLog
from leave_kernel.services.leave_request_store import LeaveRequestStore
from leave_kernel.services.quota_ledger import QuotaLedger

__all__ = ["AuditLog", "LeaveRequestStore", "QuotaLedger"]
