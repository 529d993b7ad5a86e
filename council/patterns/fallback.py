"""Fallback pattern: try models in order until one succeeds.

Unlike the FallbackManager, which decides *which* model to route to, this
executor actually runs the prompt and moves down the list on failure:
1. Try the first model
2. On failure (error response or raised exception), try the next
3. If every model fails, return an unsuccessful result with all errors

Provider failures never raise out of ``execute``.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field

import structlog

from council.patterns.base import ModelExecutor, ModelResponse, OutcomeRecorder

log = structlog.get_logger(__name__)


@dataclass
class FallbackResult:
    """Outcome of a fallback run.

    Attributes:
        response: The successful response, or the last failure
        attempts: Every response in the order it was tried
        success: Whether any model succeeded
        error: Aggregated errors when every model failed
    """

    response: ModelResponse | None = None
    attempts: list[ModelResponse] = field(default_factory=list)
    success: bool = False
    error: str = ""


class FallbackExecutor:
    """Executes a prompt against an ordered list of models."""

    def __init__(
        self,
        executor: ModelExecutor,
        models: list[str],
        *,
        recorder: OutcomeRecorder | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            executor: Capability that runs one prompt against one model
            models: Models in preference order; duplicates are tried once
            recorder: Optional sink for per-call outcomes
        """
        if not models:
            raise ValueError("FallbackExecutor requires at least one model")

        self._executor = executor
        self._models = list(dict.fromkeys(models))
        self._recorder = recorder

    @property
    def models(self) -> list[str]:
        return list(self._models)

    async def _attempt(self, model: str, prompt: str) -> ModelResponse:
        start = time.perf_counter()
        try:
            response = await self._executor.execute(model, prompt)
        except Exception as exc:
            response = ModelResponse.failure(
                model,
                str(exc) or type(exc).__name__,
                duration=time.perf_counter() - start,
            )
        response.model = model
        if not response.duration:
            response.duration = time.perf_counter() - start
        return response

    async def execute(self, prompt: str) -> FallbackResult:
        """Run the prompt, falling back through the model list on failure."""
        result = FallbackResult()

        for index, model in enumerate(self._models):
            response = await self._attempt(model, prompt)
            result.attempts.append(response)
            result.response = response

            if self._recorder is not None:
                self._recorder.record(response, is_fallback=index > 0)

            if response.success:
                result.success = True
                log.info(
                    "fallback_executor.model_succeeded",
                    model=model,
                    attempt=index + 1,
                    fallback_occurred=index > 0,
                )
                return result

            log.warning(
                "fallback_executor.model_failed",
                model=model,
                error=response.error,
                remaining_models=len(self._models) - index - 1,
            )

        result.error = "all models failed: " + "; ".join(
            f"{attempt.model}: {attempt.error or 'unsuccessful'}" for attempt in result.attempts
        )
        log.error(
            "fallback_executor.all_models_failed",
            models=self._models,
            errors=[attempt.error for attempt in result.attempts],
        )
        return result
