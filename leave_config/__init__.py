"""
leave_config -- single public entrypoint for leave workflow configuration.

Responsibility:
    ``get_active_config()`` is the only way to obtain configuration at
    runtime.  No other component reads configuration files or environment
    variables.

Architecture position:
    Configuration layer.  Sits above ``leave_kernel`` and ``leave_engines``
    and below ``leave_services``.  The kernel never imports from here; the
    services layer hands the parsed policies to kernel services.

Resolution order:
    1. ``path`` argument
    2. ``LEAVE_CONFIG_PATH`` environment variable
    3. the bundled ``defaults/leave_policy.yaml``
    ``LEAVE_DATABASE_URL``, when set, overrides ``persistence.database_url``.

Failure modes:
    - ``FileNotFoundError`` -- the resolved path does not exist.
    - ``ValueError`` -- unknown leave types, weekdays or bad values.

Audit relevance:
    Every call emits a ``LEAVE_CONFIG_TRACE`` log entry with the config id,
    version and checksum, tying each decision to the policy that governed it.
"""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path

from leave_config.loader import load_config
from leave_config.schema import (
    LeavePolicyConfig,
    NotificationSettings,
    PersistenceSettings,
    QuotaPolicy,
)
from leave_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults" / "leave_policy.yaml"
CONFIG_PATH_ENV = "LEAVE_CONFIG_PATH"
DATABASE_URL_ENV = "LEAVE_DATABASE_URL"


def get_active_config(path: Path | str | None = None) -> LeavePolicyConfig:
    """The ONLY public configuration entrypoint.

    Non-goals:
        Does not cache; callers hold the returned config for their lifetime.
    """
    resolved = Path(path or os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)
    config = load_config(resolved)

    database_url = os.environ.get(DATABASE_URL_ENV)
    if database_url:
        config = dataclasses.replace(
            config,
            persistence=dataclasses.replace(config.persistence, database_url=database_url),
        )

    _logger.info(
        "LEAVE_CONFIG_TRACE",
        extra={
            "trace_type": "LEAVE_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "source": str(resolved),
            "leave_type_count": len(config.leave_types),
            "holiday_count": len(config.calendar.holidays),
            "allow_quota_override": config.quota.allow_override,
        },
    )
    return config


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "LeavePolicyConfig",
    "NotificationSettings",
    "PersistenceSettings",
    "QuotaPolicy",
    "get_active_config",
]
