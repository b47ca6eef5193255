"""Settings for the cronspine scheduler.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.
    A scheduler is usually deployed as a long-running process, so every knob
    is readable from ``CRONSPINE_*`` environment variables or a ``.env`` file.

    - **Pydantic validation:** Type-checked at startup, not at first fire
    - **Environment-driven:** ``CRONSPINE_DATABASE_URL`` etc.
    - **Sensible defaults:** SQLite under ``~/.cronspine`` works out of the box

Examples:
    >>> from cronspine.core.settings import SchedulerSettings
    >>> settings = SchedulerSettings(database_url="sqlite:///:memory:")
    >>> settings.timezone
    'UTC'

Tags:
    settings, configuration, pydantic, environment, cronspine

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class SchedulerSettings(BaseSettings):
    """Settings for the schedule store, the timer engine and logging.

    Fields
    ──────
    database_url              : SQLAlchemy URL of the schedule store
    echo_sql                  : Echo SQL statements (debugging)
    statement_timeout_seconds : Driver-level timeout for store I/O
    timezone                  : Timezone cron specs are evaluated in
    recover_on_start          : Replay persisted schedules on ``serve``
    max_workers               : Thread pool size for firing triggers
    misfire_grace_seconds     : How late a fire may still run
    log_level                 : Structlog log level
    log_json                  : JSON logs (None = auto-detect from TTY)
    data_dir                  : Directory for the default SQLite file
    """

    model_config = SettingsConfigDict(
        env_prefix="CRONSPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Storage ──────────────────────────────────────────────────
    data_dir: Path = Field(
        default_factory=lambda: Path.home() / ".cronspine",
        description="Directory for the default SQLite database",
    )
    database_url: str | None = Field(
        default=None,
        description="SQLAlchemy URL; defaults to sqlite under data_dir",
    )
    echo_sql: bool = False
    statement_timeout_seconds: float = Field(default=30.0, gt=0)

    # ── Engine ───────────────────────────────────────────────────
    timezone: str = "UTC"
    recover_on_start: bool = True
    max_workers: int = Field(default=10, ge=1)
    misfire_grace_seconds: int = Field(default=60, ge=1)

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool | None = None

    @field_validator("timezone")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown timezone: {value}") from exc
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(_LOG_LEVELS)}")
        return level

    @property
    def resolved_database_url(self) -> str:
        """The configured URL, or a SQLite file inside ``data_dir``."""
        if self.database_url:
            return self.database_url
        return f"sqlite:///{self.data_dir / 'cronspine.db'}"


def load_settings(**overrides) -> SchedulerSettings:
    """Build settings, converting pydantic validation failures to ConfigError."""
    from pydantic import ValidationError as PydanticValidationError

    from cronspine.core.errors import ConfigError

    try:
        return SchedulerSettings(**overrides)
    except PydanticValidationError as exc:
        raise ConfigError(f"invalid settings: {exc}", cause=exc) from exc


__all__ = ["SchedulerSettings", "load_settings"]
