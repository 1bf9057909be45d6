"""Custom Pydantic validators for configuration.

Shared between AppConfig field validators and the bootstrap helpers that run
before settings exist.
"""

from pathlib import Path

_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
_VALID_LOG_FORMATS = {"json", "console"}


def validate_log_level(value: str) -> str:
    """Validate log level is one of the standard levels.

    Args:
        value: Log level string.

    Returns:
        Uppercased log level.

    Raises:
        ValueError: If log level is not valid.
    """
    if value.upper() not in _VALID_LOG_LEVELS:
        raise ValueError(f"log_level must be one of {sorted(_VALID_LOG_LEVELS)}, got {value}")
    return value.upper()


def validate_log_format(value: str) -> str:
    """Validate log format is 'json' or 'console'.

    Args:
        value: Log format string.

    Returns:
        Lowercased log format.

    Raises:
        ValueError: If log format is not valid.
    """
    if value.lower() not in _VALID_LOG_FORMATS:
        raise ValueError(f"log_format must be one of {sorted(_VALID_LOG_FORMATS)}, got {value}")
    return value.lower()


def validate_slug(value: str | None) -> str | None:
    """Normalize a workspace slug (no slashes, no surrounding whitespace).

    Args:
        value: Raw slug or None.

    Returns:
        Cleaned slug, or None when empty.

    Raises:
        ValueError: If the slug contains a path separator.
    """
    if value is None:
        return None
    cleaned = value.strip()
    if not cleaned:
        return None
    if "/" in cleaned:
        raise ValueError(f"workspace slug must not contain '/', got {value}")
    return cleaned


def resolve_path(value: Path | str) -> Path:
    """Resolve relative paths against the project root.

    Args:
        value: Path value (string or Path).

    Returns:
        Absolute Path.
    """
    path = Path(value) if isinstance(value, str) else value

    if not path.is_absolute():
        # src/crm_agent/config -> project root
        project_root = Path(__file__).parent.parent.parent.parent
        return (project_root / path).resolve()
    return path.resolve()
