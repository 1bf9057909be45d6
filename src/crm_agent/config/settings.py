"""Application configuration settings.

This module provides the AppConfig class and settings singleton.
"""

from pathlib import Path

import structlog
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from crm_agent.config.env_loader import Environment, get_environment, load_env_files
from crm_agent.config.validators import (
    resolve_path,
    validate_log_format,
    validate_log_level,
    validate_slug,
)

log = structlog.get_logger(__name__)


class AppConfig(BaseSettings):
    """Unified application configuration.

    Values come from environment variables (CRM_AGENT_ prefix), the .env
    files loaded by env_loader, and the defaults below.
    """

    model_config = SettingsConfigDict(
        # .env files are loaded manually by env_loader to honour priority order
        env_prefix="CRM_AGENT_",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Environment
    environment: Environment = Field(
        default_factory=get_environment, description="Current environment"
    )
    debug: bool = Field(default=False, alias="APP_DEBUG", description="Debug mode flag")

    # Telemetry
    log_dir: Path = Field(default=Path("telemetry/logs"), description="Log directory path")
    log_level: str = Field(
        default="INFO",
        alias="APP_LOG_LEVEL",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    log_format: str = Field(
        default="console",
        alias="APP_LOG_FORMAT",
        description="stderr log format (json or console); the file is always JSON",
    )

    # Claude API
    anthropic_api_key: str | None = Field(default=None, description="Anthropic API key for Claude")
    claude_model: str = Field(default="claude-sonnet-4-20250514", description="Claude model name")
    claude_max_tokens: int = Field(default=4000, ge=1, description="Maximum tokens per response")
    claude_temperature: float = Field(default=0.1, ge=0.0, le=1.0, description="Sampling temperature")
    claude_timeout_seconds: float = Field(default=120.0, gt=0, description="Request timeout")

    # Attio CRM
    attio_api_key: str | None = Field(default=None, description="Attio API bearer token")
    attio_base_url: str = Field(
        default="https://api.attio.com/v2", description="Attio REST API base URL"
    )
    attio_app_url: str = Field(
        default="https://app.attio.com", description="Attio web app URL (for record links)"
    )
    attio_workspace_slug: str = Field(
        default="textql-data", description="Workspace slug used in record links"
    )
    attio_timeout_seconds: float = Field(default=30.0, gt=0, description="CRM request timeout")
    attio_max_retries: int = Field(
        default=2, ge=0, description="Retries for timeouts, 429 and 5xx responses"
    )

    # Slack
    slack_workspace: str | None = Field(
        default="textql", description="Slack workspace subdomain for thread permalinks"
    )

    # Orchestrator
    orchestrator_max_continuations: int = Field(
        default=3,
        ge=0,
        description="Maximum follow-up LLM round-trips per user request",
    )
    orchestrator_max_search_attempts: int = Field(
        default=2,
        ge=1,
        description="Search attempts allowed before spelling-variant retries stop",
    )
    orchestrator_default_preview: bool = Field(
        default=True, description="Pause mutating tool calls for approval by default"
    )

    # Conversation log
    conversation_log_enabled: bool = Field(
        default=True, description="Persist a record of every run"
    )
    conversation_log_dir: Path = Field(
        default=Path("telemetry/conversations"), description="Conversation record directory"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        return validate_log_level(v)

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        return validate_log_format(v)

    @field_validator("attio_workspace_slug", "slack_workspace")
    @classmethod
    def validate_workspace(cls, v: str | None) -> str | None:
        """Strip workspace identifiers and reject path separators."""
        return validate_slug(v)

    @field_validator("attio_base_url", "attio_app_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize URLs so paths can be appended directly."""
        return v.rstrip("/")

    @field_validator("log_dir", "conversation_log_dir", mode="before")
    @classmethod
    def resolve_paths(cls, v: Path | str) -> Path:
        """Resolve relative paths to absolute."""
        return resolve_path(v)


_settings: AppConfig | None = None


def load_app_config() -> AppConfig:
    """Load and validate application configuration.

    Loads .env files in priority order, then builds AppConfig from the
    environment.

    Returns:
        Validated AppConfig instance.

    Raises:
        ValidationError: If configuration validation fails.
    """
    log.info("loading_app_config", environment=get_environment().value)

    load_env_files()

    try:
        config = AppConfig()
        log.info(
            "app_config_loaded",
            environment=config.environment.value,
            debug=config.debug,
            log_level=config.log_level,
            claude_model=config.claude_model,
            attio_configured=config.attio_api_key is not None,
        )
        return config
    except Exception as e:
        log.error("app_config_load_failed", error=str(e), error_type=type(e).__name__)
        raise


def get_settings() -> AppConfig:
    """Get the application settings singleton.

    Returns:
        AppConfig instance (singleton pattern).
    """
    global _settings
    if _settings is None:
        _settings = load_app_config()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next get_settings() reloads them."""
    global _settings
    _settings = None
