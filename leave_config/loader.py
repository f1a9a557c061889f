"""
Configuration loader (``leave_config.loader``).

Responsibility
--------------
Load a YAML policy file and parse it into the frozen types of
``leave_config.schema``.  Runtime code goes through
``leave_config.get_active_config()``; this module is its implementation.

Invariants enforced
-------------------
* Every leave type in ``LeaveType`` has a policy.  Types missing from the
  file get a permissive default (no attachment, no allotment).
* Unknown leave-type keys are rejected, never ignored.
* ``compute_checksum`` is deterministic for identical input and
  ignores the ``persistence`` section.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys / bad values  -> ``ValueError``.
"""

from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Any

import yaml

from leave_config.schema import (
    LeavePolicyConfig,
    NotificationSettings,
    PersistenceSettings,
    QuotaPolicy,
)
from leave_engines.working_days import Holiday, HolidayCalendar
from leave_kernel.domain.leave import LeaveType, LeaveTypePolicy
from leave_kernel.utils.hashing import hash_payload

_WEEKDAYS = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}

# Leap year so 02-29 parses as a recurring date.
_RECURRING_ANCHOR_YEAR = 2000


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load one YAML file; an empty file yields an empty dict."""
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def parse_date(value: Any) -> date:
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def parse_month_day(value: Any) -> date:
    """Parse "MM-DD" into a date anchored in a leap year."""
    if not isinstance(value, str) or len(value.split("-")) != 2:
        raise ValueError(f"Recurring holiday date must be 'MM-DD', got {value!r}")
    month, day = (int(p) for p in value.split("-"))
    return date(_RECURRING_ANCHOR_YEAR, month, day)


def parse_leave_types(data: dict[str, Any]) -> dict[LeaveType, LeaveTypePolicy]:
    known = {t.value for t in LeaveType}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown leave types in configuration: {sorted(unknown)}")

    policies: dict[LeaveType, LeaveTypePolicy] = {}
    for leave_type in LeaveType:
        raw = data.get(leave_type.value) or {}
        allotment = raw.get("base_allotment")
        max_days = raw.get("max_days")
        if allotment is not None and int(allotment) < 0:
            raise ValueError(f"{leave_type.value}: base_allotment must be >= 0")
        policies[leave_type] = LeaveTypePolicy(
            leave_type=leave_type,
            label=raw.get("label", leave_type.value),
            requires_attachment=bool(raw.get("requires_attachment", False)),
            requires_reason=bool(raw.get("requires_reason", False)),
            max_days=int(max_days) if max_days is not None else None,
            base_allotment=int(allotment) if allotment is not None else None,
        )
    return policies


def parse_calendar(data: dict[str, Any]) -> HolidayCalendar:
    weekend_names = data.get("weekend_days", ["saturday", "sunday"])
    try:
        weekend = frozenset(_WEEKDAYS[name.lower()] for name in weekend_names)
    except KeyError as exc:
        raise ValueError(f"Unknown weekday in weekend_days: {exc.args[0]!r}") from None

    holidays = [
        Holiday(name=item["name"], day=parse_month_day(item["date"]), recurring=True)
        for item in data.get("recurring_holidays", [])
    ]
    holidays.extend(
        Holiday(name=item["name"], day=parse_date(item["date"]))
        for item in data.get("holidays", [])
    )
    return HolidayCalendar(holidays=tuple(holidays), weekend_days=weekend)


def parse_quota(data: dict[str, Any]) -> QuotaPolicy:
    return QuotaPolicy(
        allow_override=bool(data.get("allow_override", False)),
        release_on_final_rejection=bool(data.get("release_on_final_rejection", True)),
    )


def parse_notifications(data: dict[str, Any]) -> NotificationSettings:
    timeout = float(data.get("timeout_seconds", 5.0))
    if timeout <= 0:
        raise ValueError("notifications.timeout_seconds must be positive")
    return NotificationSettings(
        timeout_seconds=timeout,
        enabled=bool(data.get("enabled", True)),
    )


def parse_persistence(data: dict[str, Any]) -> PersistenceSettings:
    return PersistenceSettings(
        database_url=data.get("database_url", "sqlite://"),
        echo=bool(data.get("echo", False)),
        pool_size=int(data.get("pool_size", 10)),
        statement_timeout_seconds=int(data.get("statement_timeout_seconds", 30)),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of the policy sections.

    ``persistence`` is left out: the environment may override it after
    loading.
    """
    return hash_payload({k: v for k, v in data.items() if k != "persistence"})


def parse_config(data: dict[str, Any]) -> LeavePolicyConfig:
    return LeavePolicyConfig(
        config_id=data.get("config_id", "unnamed"),
        version=int(data.get("version", 1)),
        leave_types=parse_leave_types(data.get("leave_types") or {}),
        calendar=parse_calendar(data.get("calendar") or {}),
        quota=parse_quota(data.get("quota") or {}),
        notifications=parse_notifications(data.get("notifications") or {}),
        persistence=parse_persistence(data.get("persistence") or {}),
        checksum=compute_checksum(data),
    )


def load_config(path: Path) -> LeavePolicyConfig:
    return parse_config(load_yaml_file(path))
