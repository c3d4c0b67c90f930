"""Configuration management for cronlock."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError

from cronlock.errors import ConfigError

CRONLOCK_DIR = Path.home() / ".cronlock"
CONFIG_FILE = CRONLOCK_DIR / "config.yaml"

# Environment variable -> settings field
ENV_OVERRIDES = {
    "CRONLOCK_DATABASE_URL": "database_url",
    "CRONLOCK_JOBS_FILE": "jobs_file",
    "CRONLOCK_LOG_LEVEL": "log_level",
}


class CronlockSettings(BaseModel):
    """Settings for a cronlock process."""

    database_url: str = Field(
        default=f"sqlite:///{CRONLOCK_DIR / 'cronlock.db'}",
        description="SQLAlchemy URL or SQLite path of the shared store",
    )
    jobs_file: Path | None = Field(default=None, description="YAML file of job definitions")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    event_retention_days: int = Field(default=30, ge=1, description="Days of events kept by prune")
    command_timeout: float | None = Field(
        default=None, gt=0, description="Seconds a job command may run"
    )


def load_config_file(path: Path | None = None) -> dict[str, Any]:
    """Load the cronlock configuration file.

    Args:
        path: Config file to read. Defaults to ~/.cronlock/config.yaml.

    Returns:
        Configuration dictionary, empty if the file doesn't exist.

    Raises:
        ConfigError: If the file is not valid YAML or not a mapping.
    """
    config_path = path or CONFIG_FILE
    if not config_path.exists():
        return {}

    try:
        with open(config_path) as f:
            config = yaml.safe_load(f)
    except (yaml.YAMLError, OSError) as e:
        raise ConfigError(f"Failed to read config {config_path}: {e}") from e

    if config is None:
        return {}
    if not isinstance(config, dict):
        raise ConfigError(f"Config {config_path} must be a mapping")
    return config


def get_settings(path: Path | None = None) -> CronlockSettings:
    """Build settings from the config file and environment.

    Checks in order of priority:
    1. CRONLOCK_* environment variables
    2. cronlock config file (~/.cronlock/config.yaml)
    3. Built-in defaults

    Args:
        path: Optional config file overriding the default location.

    Returns:
        Validated settings.

    Raises:
        ConfigError: If the resulting settings are invalid.
    """
    data = load_config_file(path)

    for env_var, key in ENV_OVERRIDES.items():
        if value := os.environ.get(env_var):
            data[key] = value

    try:
        return CronlockSettings.model_validate(data)
    except ValidationError as e:
        errors = [
            f"  {'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        ]
        raise ConfigError("Invalid configuration:\n" + "\n".join(errors)) from e
