"""
Shared test fixtures for pytest.

Provides common fakes and test data for all test modules:
- settings: Test environment configuration with tight breaker thresholds
- routing_config / router: Default routing matrix and a Router over it
- clock: Manually advanced monotonic clock for breaker timing
- metrics_store: File-backed MetricsStore in a temp directory
- executor: Scriptable ModelExecutor fake
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterator

import pytest

from council.config import Environment, Settings, get_settings
from council.patterns.base import ModelResponse
from council.routing.config import RoutingConfig, default_routing_config
from council.routing.metrics import MetricsStore
from council.routing.router import Router
from council.telemetry.logging import clear_context


# ------------------------------------------------------------------ #
# Session-scoped: clear settings cache between test sessions
# ------------------------------------------------------------------ #


@pytest.fixture(autouse=True, scope="session")
def _clear_settings_cache() -> Iterator[None]:
    """Clear the lru_cache on get_settings so test overrides take effect."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def _clear_log_context() -> Iterator[None]:
    yield
    clear_context()


# ------------------------------------------------------------------ #
# Fakes
# ------------------------------------------------------------------ #


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeExecutor:
    """ModelExecutor fake scripted per model.

    Each script entry is a string (successful output), a ModelResponse
    (returned as-is), or an exception (raised). ``delays`` makes a model
    sleep before answering. Unscripted models fail.
    """

    def __init__(
        self,
        script: dict[str, object] | None = None,
        *,
        delays: dict[str, float] | None = None,
        cost: float = 0.0,
    ) -> None:
        self.script = dict(script or {})
        self.delays = dict(delays or {})
        self.cost = cost
        self.calls: list[tuple[str, str]] = []

    async def execute(self, model: str, prompt: str) -> ModelResponse:
        self.calls.append((model, prompt))
        delay = self.delays.get(model)
        if delay:
            await asyncio.sleep(delay)

        outcome = self.script.get(model)
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, ModelResponse):
            return outcome
        if outcome is None:
            return ModelResponse.failure(model, f"no script for {model}", duration=0.01)
        return ModelResponse(
            model=model,
            output=str(outcome),
            duration=0.01,
            tokens=100,
            cost=self.cost,
            success=True,
        )


# ------------------------------------------------------------------ #
# Fixtures
# ------------------------------------------------------------------ #


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings for tests: temp home, small thresholds, short timeouts."""
    return Settings(
        environment=Environment.TEST,
        home_dir=tmp_path,
        breaker_failure_threshold=3,
        breaker_reset_timeout_seconds=30.0,
        rate_limit_threshold=3,
        rate_limit_window_seconds=60.0,
        recovery_interval_seconds=0.05,
        health_check_timeout_seconds=1.0,
        ensemble_default_timeout_seconds=1.0,
    )


@pytest.fixture
def routing_config() -> RoutingConfig:
    return default_routing_config()


@pytest.fixture
def router(routing_config: RoutingConfig) -> Router:
    return Router(routing_config)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def metrics_store(tmp_path) -> MetricsStore:
    return MetricsStore(tmp_path / "council-metrics.json", max_history=50)


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()
