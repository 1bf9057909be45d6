"""Bootstrap configuration helpers (pre-settings).

Telemetry needs a log level before the settings singleton can be imported,
so this module stays free of telemetry imports.
"""

from __future__ import annotations

import os
from pathlib import Path

from crm_agent.config.validators import resolve_path, validate_log_format, validate_log_level


def get_bootstrap_log_level(default: str = "INFO") -> str:
    """Get logging level from environment without importing settings.

    Args:
        default: Default log level if not set or invalid.

    Returns:
        Uppercased, validated log level string.
    """
    value = os.getenv("APP_LOG_LEVEL", default)
    try:
        return validate_log_level(value)
    except ValueError:
        return validate_log_level(default)


def get_bootstrap_log_dir() -> Path:
    """Get the log directory from environment without importing settings.

    Returns:
        Absolute log directory (CRM_AGENT_LOG_DIR or telemetry/logs).
    """
    return resolve_path(os.getenv("CRM_AGENT_LOG_DIR", "telemetry/logs"))


def get_bootstrap_log_format(default: str = "console") -> str:
    """Get the stderr log format from environment without importing settings.

    Args:
        default: Format used when APP_LOG_FORMAT is unset or invalid.

    Returns:
        "json" or "console".
    """
    value = os.getenv("APP_LOG_FORMAT", default)
    try:
        return validate_log_format(value)
    except ValueError:
        return validate_log_format(default)
