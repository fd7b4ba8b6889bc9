"""
Centralized settings for the jobspine worker engine.

All fields can be set via ``JOBSPINE_*`` environment variables (e.g.
``JOBSPINE_WORKER_CONCURRENCY=8``) or a ``.env`` file in the working
directory. Unknown variables are ignored.

    ┌──────────────────────────────┬────────────────────────────┐
    │ field                        │ default                    │
    ├──────────────────────────────┼────────────────────────────┤
    │ redis_url                    │ redis://localhost:6379/0   │
    │ database_url                 │ sqlite:///jobspine.db      │
    │ worker_concurrency           │ 5                          │
    │ worker_queue_name            │ engine_jobs                │
    │ heartbeat_interval_seconds   │ 10                         │
    │ liveness_threshold_seconds   │ 30                         │
    │ poll_timeout_seconds         │ 5                          │
    │ default_max_retries          │ 3                          │
    └──────────────────────────────┴────────────────────────────┘

Tags:
    configuration, settings, pydantic, environment, jobspine
"""

from __future__ import annotations

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class WorkerSettings(BaseSettings):
    """jobspine configuration."""

    model_config = SettingsConfigDict(
        env_prefix="JOBSPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Broker / liveness ────────────────────────────────────────
    redis_url: str = Field(default="redis://localhost:6379/0")

    # ── Database ─────────────────────────────────────────────────
    database_url: str = Field(default="sqlite:///jobspine.db")
    database_echo: bool = Field(default=False)

    # ── Worker pool ──────────────────────────────────────────────
    worker_concurrency: int = Field(default=5, ge=1, description="Worker loops per process")
    worker_queue_name: str = Field(default="engine_jobs", min_length=1)
    poll_timeout_seconds: float = Field(default=5.0, gt=0, description="Blocking dequeue timeout")
    default_max_retries: int = Field(default=3, ge=0)

    # ── Heartbeat ────────────────────────────────────────────────
    heartbeat_interval_seconds: float = Field(default=10.0, gt=0)
    liveness_threshold_seconds: float = Field(default=30.0, gt=0)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console", pattern="^(console|json)$")

    @model_validator(mode="after")
    def _check_heartbeat_window(self) -> WorkerSettings:
        if self.heartbeat_interval_seconds >= self.liveness_threshold_seconds:
            raise ValueError(
                "heartbeat_interval_seconds must be smaller than liveness_threshold_seconds"
            )
        return self

    @property
    def heartbeat_ttl_seconds(self) -> float:
        """Expiry applied to the shared heartbeat container on every beat."""
        return self.liveness_threshold_seconds * 2


_settings_cache: dict[str, WorkerSettings] = {}


def get_settings(*, _force_reload: bool = False) -> WorkerSettings:
    """Load, validate, and cache the process settings."""
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]
    settings = WorkerSettings()
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()
