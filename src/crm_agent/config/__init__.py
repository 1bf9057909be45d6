"""Unified configuration management for the CRM agent.

Settings are built lazily: importing this package does not read the
environment until get_settings() is first called.
"""

from crm_agent.config.env_loader import Environment, get_environment, load_env_files
from crm_agent.config.settings import AppConfig, get_settings, load_app_config, reset_settings

__all__ = [
    "AppConfig",
    "Environment",
    "get_environment",
    "get_settings",
    "load_app_config",
    "load_env_files",
    "reset_settings",
]
