"""Environment variable file loader with priority-based loading."""

import os
from enum import Enum
from pathlib import Path

from dotenv import load_dotenv

from crm_agent.telemetry import get_logger

log = get_logger(__name__)


class Environment(str, Enum):
    """Application environment types."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TEST = "test"


def get_environment() -> Environment:
    """Detect current environment from the APP_ENV environment variable.

    Environment detection happens before settings are loaded, so this reads
    os.environ directly.

    Returns:
        Environment enum value (DEVELOPMENT when unset or unknown).
    """
    app_env = os.getenv("APP_ENV", "").lower()

    if app_env in ("production", "prod"):
        return Environment.PRODUCTION
    elif app_env in ("staging", "stage"):
        return Environment.STAGING
    elif app_env == "test":
        return Environment.TEST
    return Environment.DEVELOPMENT


def load_env_files(project_root: Path | None = None) -> list[str]:
    """Load .env files in priority order.

    Later files override earlier ones; variables already present in the
    process environment always win.

    1. `.env`
    2. `.env.local`
    3. `.env.{environment}`
    4. `.env.{environment}.local`

    Args:
        project_root: Directory holding the .env files. Defaults to the
            repository root.

    Returns:
        Relative names of the files that were loaded.
    """
    if project_root is None:
        project_root = Path(__file__).parent.parent.parent.parent

    env_name = get_environment().value
    candidates = [
        project_root / ".env",
        project_root / ".env.local",
        project_root / f".env.{env_name}",
        project_root / f".env.{env_name}.local",
    ]

    # Load highest priority first: with override=False the first value set wins.
    loaded: list[str] = []
    for env_file in reversed(candidates):
        if env_file.exists():
            load_dotenv(env_file, override=False)
            loaded.append(env_file.name)

    if loaded:
        log.info("env_files_loaded", environment=env_name, files=loaded)
    else:
        log.debug("no_env_files_found", environment=env_name, project_root=str(project_root))

    return loaded
