"""Execution capability consumed by the pattern executors.

The council never talks to a backend itself. Callers supply a
``ModelExecutor`` that runs one prompt against one model and reports a
structured ``ModelResponse``; executors report every call to an optional
``OutcomeRecorder`` so circuit breakers and metrics see each outcome.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import structlog

from council.exceptions import MetricsPersistenceError
from council.routing.metrics import MetricsStore, TaskMetric
from council.routing.providers import model_provider

if TYPE_CHECKING:
    from council.routing.fallback import FallbackManager

log = structlog.get_logger(__name__)


@dataclass
class ModelResponse:
    """Structured outcome of one model call.

    Attributes:
        model: Model that produced the response
        output: Raw text output
        duration: Wall-clock seconds spent on the call
        tokens: Total tokens consumed
        cost: Cost in dollars
        success: Whether the call produced a usable output
        error: Error text when unsuccessful
        confidence: Model's self-reported confidence (0-1, 0 when unknown)
    """

    model: str
    output: str = ""
    duration: float = 0.0
    tokens: int = 0
    cost: float = 0.0
    success: bool = False
    error: str = ""
    confidence: float = 0.0

    @classmethod
    def failure(cls, model: str, error: str, *, duration: float = 0.0) -> ModelResponse:
        return cls(model=model, success=False, error=error, duration=duration)


@runtime_checkable
class ModelExecutor(Protocol):
    """Runs a prompt against a model. Implemented outside the council."""

    async def execute(self, model: str, prompt: str) -> ModelResponse: ...


class OutcomeRecorder:
    """Feeds call outcomes into circuit breakers and the metrics store.

    Either sink is optional. Metrics persistence failures are logged and do
    not interrupt the pattern that produced the outcome.
    """

    def __init__(
        self,
        fallback_manager: FallbackManager | None = None,
        metrics: MetricsStore | None = None,
    ) -> None:
        self._fallback_manager = fallback_manager
        self._metrics = metrics

    def record(
        self,
        response: ModelResponse,
        *,
        role: str = "",
        complexity: str = "",
        is_fallback: bool = False,
        provider: str | None = None,
    ) -> None:
        provider = provider or model_provider(response.model)

        if self._fallback_manager is not None:
            self._fallback_manager.record_request_outcome(
                provider,
                response.success,
                response.error or None,
            )

        if self._metrics is None:
            return

        completed_at = datetime.now(UTC)
        metric = TaskMetric(
            role=role,
            model=response.model,
            provider=provider,
            started_at=completed_at - timedelta(seconds=response.duration),
            completed_at=completed_at,
            duration=response.duration,
            tokens=response.tokens,
            cost=response.cost,
            success=response.success,
            error=response.error,
            complexity=complexity,
            fallback=is_fallback,
        )
        try:
            self._metrics.record_task(metric)
        except MetricsPersistenceError as exc:
            log.error(
                "outcome_recorder.metrics_write_failed",
                model=response.model,
                error=str(exc),
            )
