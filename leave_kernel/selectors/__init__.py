"""Read-only selectors."""

from leave_kernel.selectors.leave_selector import LeaveSelector, LeaveStatistics

__all__ = ["LeaveSelector", "LeaveStatistics"]
