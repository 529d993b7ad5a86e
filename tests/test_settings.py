"""Tests for process settings loaded from COUNCIL_* environment variables."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from council.config import Environment, Settings, get_settings


def test_defaults():
    settings = Settings(_env_file=None)

    assert settings.environment == Environment.DEV
    assert settings.breaker_failure_threshold == 5
    assert settings.breaker_reset_timeout_seconds == 30.0
    assert settings.rate_limit_threshold == 5
    assert settings.rate_limit_window_seconds == 60.0
    assert settings.recovery_interval_seconds == 300.0
    assert settings.metrics_max_history == 1000
    assert settings.config_path == Path(".council") / "council.yaml"
    assert settings.metrics_path == Path(".council") / "council-metrics.json"
    assert settings.is_dev is True
    assert settings.is_prod is False


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("COUNCIL_ENVIRONMENT", "prod")
    monkeypatch.setenv("COUNCIL_BREAKER_FAILURE_THRESHOLD", "7")
    monkeypatch.setenv("COUNCIL_HOME_DIR", str(tmp_path))
    monkeypatch.setenv("COUNCIL_JSON_LOGS", "true")

    settings = Settings(_env_file=None)

    assert settings.is_prod is True
    assert settings.breaker_failure_threshold == 7
    assert settings.json_logs is True
    assert settings.config_path == tmp_path / "council.yaml"


@pytest.mark.parametrize(
    "field",
    [
        "breaker_failure_threshold",
        "rate_limit_threshold",
        "metrics_max_history",
        "breaker_reset_timeout_seconds",
        "recovery_interval_seconds",
        "ensemble_default_timeout_seconds",
    ],
)
def test_non_positive_values_rejected(field):
    with pytest.raises(ValidationError) as exc_info:
        Settings(_env_file=None, **{field: 0})
    assert field in str(exc_info.value)


def test_get_settings_is_cached():
    get_settings.cache_clear()
    assert get_settings() is get_settings()
    get_settings.cache_clear()
