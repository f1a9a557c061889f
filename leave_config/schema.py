"""
Leave policy configuration schema.

YAML files are parsed by ``leave_config.loader`` into these frozen types.
``LeavePolicyConfig`` is the only artifact the rest of the system sees.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from leave_engines.working_days import Holiday, HolidayCalendar
from leave_kernel.domain.leave import LeaveType, LeaveTypePolicy


@dataclass(frozen=True)
class QuotaPolicy:
    """Quota behaviour on approval.

    ``allow_override`` enables the privileged override path: a DGPEC actor
    holding the ``quota_override`` privilege may approve past the remaining
    balance by sending ``override: true`` in the transition metadata.
    When False every shortfall is a hard block.
    """

    allow_override: bool = False
    release_on_final_rejection: bool = True


@dataclass(frozen=True)
class NotificationSettings:
    timeout_seconds: float = 5.0
    enabled: bool = True


@dataclass(frozen=True)
class PersistenceSettings:
    database_url: str = "sqlite://"
    echo: bool = False
    pool_size: int = 10
    statement_timeout_seconds: int = 30


@dataclass(frozen=True)
class LeavePolicyConfig:
    """Runtime configuration for the leave workflow."""

    config_id: str
    version: int
    leave_types: dict[LeaveType, LeaveTypePolicy]
    calendar: HolidayCalendar
    quota: QuotaPolicy = field(default_factory=QuotaPolicy)
    notifications: NotificationSettings = field(default_factory=NotificationSettings)
    persistence: PersistenceSettings = field(default_factory=PersistenceSettings)
    checksum: str = ""

    def policy_for(self, leave_type: LeaveType) -> LeaveTypePolicy:
        return self.leave_types[leave_type]

    @property
    def holidays(self) -> tuple[Holiday, ...]:
        return self.calendar.holidays
