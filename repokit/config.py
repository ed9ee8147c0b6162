"""Configuration for repokit.

Settings are read from ``REPOKIT_*`` environment variables (and an optional
``.env`` file) through pydantic-settings. Every component also accepts an
explicit settings instance so tests and applications can bypass the
environment entirely.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")


class DataAccessSettings(BaseSettings):
    """Data access configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="REPOKIT_",
        env_file=".env",
        extra="ignore",
    )

    # Lookup settings
    treat_lookup_faults_as_not_found: bool = Field(
        default=True,
        description="Report storage faults during lookup by key as 'not found'",
    )

    # Transaction settings
    commit_timeout: float | None = Field(
        default=30.0,
        gt=0,
        description="Default timeout for asynchronous commits in seconds",
    )
    probe_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Default timeout for connectivity probes in seconds",
    )

    # Storage engine settings
    database_url: str = Field(
        default="sqlite:///repokit.db",
        description="SQLAlchemy database URL",
    )
    echo: bool = False

    # Logging settings
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in _LOG_LEVELS:
            msg = f"log_level must be one of {', '.join(_LOG_LEVELS)}"
            raise ValueError(msg)
        return level


@lru_cache
def get_settings() -> DataAccessSettings:
    """Return the process-wide settings, loaded once from the environment."""
    return DataAccessSettings()
