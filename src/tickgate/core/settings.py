"""
Worker settings loaded from the environment.

All fields can be set via ``TICKGATE_*`` environment variables or a ``.env``
file, e.g. ``TICKGATE_REDIS_URL=redis://cache:6379/2``.

Fields
──────
redis_url              : Shared backend holding last-run records, locks and the queue
namespace              : Prefix of every schedule key (``<namespace>::<task_key>::...``)
queue_key              : Redis list that receives enqueued task descriptors
poll_interval_seconds  : Delay between poller ticks
lock_ttl_seconds       : Expiry of a schedule lock held by a crashed worker
log_level / log_json   : structlog configuration
service_name           : ``service.name`` field on every log line
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tickgate.core.errors import ConfigError

DEFAULT_NAMESPACE = "TaskSchedule"

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class TickgateSettings(BaseSettings):
    """Settings shared by every worker polling the same backend."""

    model_config = SettingsConfigDict(
        env_prefix="TICKGATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Backend ──────────────────────────────────────────────────
    redis_url: str = "redis://localhost:6379/0"
    namespace: str = Field(default=DEFAULT_NAMESPACE, min_length=1)
    queue_key: str = Field(default="tickgate:tasks", min_length=1)

    # ── Polling ──────────────────────────────────────────────────
    poll_interval_seconds: float = Field(default=1.0, gt=0)
    lock_ttl_seconds: int = Field(default=300, gt=0)

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool | None = None
    service_name: str = "tickgate"

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(_LOG_LEVELS)}")
        return level


def load_settings(**overrides: Any) -> TickgateSettings:
    """Build settings from the environment plus explicit overrides.

    Raises:
        ConfigError: If any value fails validation.
    """
    try:
        return TickgateSettings(**overrides)
    except ValidationError as e:
        raise ConfigError(f"Invalid tickgate settings: {e.error_count()} error(s)", cause=e) from e


@lru_cache(maxsize=1)
def get_settings() -> TickgateSettings:
    """Return the process-wide settings instance."""
    return load_settings()
