"""
Process configuration via pydantic-settings.

All settings are loaded from COUNCIL_* environment variables (or a .env file
in dev). Routing behaviour itself lives in the routing config document
(council.routing.config); these settings only tune the machinery around it:
circuit breaker thresholds, probe timeouts, retention and file locations.
"""

from __future__ import annotations

from enum import StrEnum
from functools import lru_cache
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(StrEnum):
    DEV = "dev"
    PROD = "prod"
    TEST = "test"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="COUNCIL_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ------------------------------------------------------------------ #
    # Application
    # ------------------------------------------------------------------ #
    environment: Environment = Environment.DEV
    log_level: str = Field(default="INFO", description="Minimum log level")
    json_logs: bool = Field(
        default=False,
        description="Render logs as JSON (production) instead of console output",
    )

    # ------------------------------------------------------------------ #
    # Storage
    # ------------------------------------------------------------------ #
    home_dir: Path = Field(
        default=Path(".council"),
        description="Directory holding the routing config and metrics files",
    )
    config_filename: str = "council.yaml"
    metrics_filename: str = "council-metrics.json"
    metrics_max_history: int = Field(
        default=1000,
        description="Maximum number of task records kept in metrics history",
    )

    # ------------------------------------------------------------------ #
    # Circuit breaker
    # ------------------------------------------------------------------ #
    breaker_failure_threshold: int = Field(
        default=5,
        description="Consecutive failures before a provider circuit opens",
    )
    breaker_reset_timeout_seconds: float = Field(
        default=30.0,
        description="Time an open circuit waits before a half-open probe",
    )
    rate_limit_threshold: int = Field(
        default=5,
        description="Rate-limit hits within the window that open a circuit",
    )
    rate_limit_window_seconds: float = 60.0

    # ------------------------------------------------------------------ #
    # Health probing
    # ------------------------------------------------------------------ #
    recovery_interval_seconds: float = Field(
        default=300.0,
        description="Interval of the background recovery sweep",
    )
    health_check_timeout_seconds: float = 10.0

    # ------------------------------------------------------------------ #
    # Patterns
    # ------------------------------------------------------------------ #
    ensemble_default_timeout_seconds: float = Field(
        default=60.0,
        description="Shared ensemble deadline used when a config sets none",
    )

    @model_validator(mode="after")
    def _validate_positive(self) -> Settings:
        """Reject thresholds and timeouts that would disable the machinery."""
        errors: list[str] = []
        for name in (
            "metrics_max_history",
            "breaker_failure_threshold",
            "rate_limit_threshold",
        ):
            if getattr(self, name) < 1:
                errors.append(f"{name} must be >= 1")
        for name in (
            "breaker_reset_timeout_seconds",
            "rate_limit_window_seconds",
            "recovery_interval_seconds",
            "health_check_timeout_seconds",
            "ensemble_default_timeout_seconds",
        ):
            if getattr(self, name) <= 0:
                errors.append(f"{name} must be positive")
        if errors:
            raise ValueError("; ".join(errors))
        return self

    @property
    def config_path(self) -> Path:
        return self.home_dir / self.config_filename

    @property
    def metrics_path(self) -> Path:
        return self.home_dir / self.metrics_filename

    @property
    def is_dev(self) -> bool:
        return self.environment in (Environment.DEV, Environment.TEST)

    @property
    def is_prod(self) -> bool:
        return self.environment == Environment.PROD


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings singleton."""
    return Settings()
