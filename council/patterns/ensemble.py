"""Ensemble executor: parallel fan-out with voting.

Runs the same prompt against several models concurrently under a single
shared deadline, then combines the successful outputs with a voting
strategy. Outputs are normalised before comparison (lower-cased,
whitespace-collapsed, filler prefixes such as "here is" stripped).

Voting strategies:
- majority: largest group of identical outputs wins
- consensus: unanimous agreement scores 1.0, otherwise majority
- weighted: groups weighted by summed confidence (0.5 when unreported)
- best: highest quality score wins; agreement reflects the score gap

Insufficient responses and agreement below threshold are reported as an
unsuccessful EnsembleResult, never raised.
"""

from __future__ import annotations

import asyncio
import math
import time
from dataclasses import dataclass, field
from enum import StrEnum

import structlog

from council.config import Settings
from council.patterns.base import ModelExecutor, ModelResponse, OutcomeRecorder

log = structlog.get_logger(__name__)

DEFAULT_CONFIDENCE = 0.5

_FILLER_PREFIXES = (
    "here is",
    "here's",
    "the answer is",
    "i think",
    "based on",
    "let me",
    "sure,",
    "certainly,",
)

_STRUCTURE_MARKERS = ("# ", "## ", "- ", "* ", "```", "1. ")


class VotingStrategy(StrEnum):
    """How ensemble outputs are combined."""

    MAJORITY = "majority"
    CONSENSUS = "consensus"
    WEIGHTED = "weighted"
    BEST = "best"


@dataclass
class EnsembleConfig:
    """Ensemble settings.

    Attributes:
        models: Participating models
        voting_strategy: How outputs are combined
        threshold: Minimum agreement (0-1) for a successful result
        timeout: Shared deadline in seconds; None uses the settings default
        min_responses: Successful responses required; 0 means a majority of models
    """

    models: list[str] = field(default_factory=list)
    voting_strategy: VotingStrategy = VotingStrategy.MAJORITY
    threshold: float = 0.0
    timeout: float | None = None
    min_responses: int = 0

    def required_responses(self) -> int:
        if self.min_responses > 0:
            return self.min_responses
        return len(self.models) // 2 + 1


@dataclass
class EnsembleResult:
    responses: list[ModelResponse] = field(default_factory=list)
    winner: str = ""
    winner_output: str = ""
    votes: dict[str, int] = field(default_factory=dict)
    agreement: float = 0.0
    duration: float = 0.0
    success: bool = False
    error: str = ""


# ------------------------------------------------------------------ #
# Output analysis
# ------------------------------------------------------------------ #


def normalize_output(text: str) -> str:
    """Normalise an output for equality comparison between models."""
    normalised = " ".join(text.lower().split())
    for prefix in _FILLER_PREFIXES:
        if normalised.startswith(prefix):
            normalised = normalised[len(prefix):]
    return normalised.strip()


def has_structured_output(text: str) -> bool:
    """True if the text contains markdown headers, lists or code fences."""
    return any(marker in text for marker in _STRUCTURE_MARKERS)


def score_response(response: ModelResponse) -> float:
    """Quality score used by the "best" strategy (0.0-1.0)."""
    score = 0.0

    if response.confidence > 0:
        score += response.confidence * 0.3

    length = len(response.output)
    if 100 < length < 5000:
        score += 0.2
    elif 50 <= length <= 10000:
        score += 0.1

    if 0 < response.duration < 5:
        score += 0.2
    elif response.duration < 15:
        score += 0.1

    if 0 < response.cost < 0.01:
        score += 0.2
    elif response.cost < 0.05:
        score += 0.1

    if has_structured_output(response.output):
        score += 0.1

    return score


# ------------------------------------------------------------------ #
# Voting
# ------------------------------------------------------------------ #
# Every strategy breaks ties on content (normalised output, then model
# name) rather than arrival order, so results are independent of the
# order responses came back in.


def _group(responses: list[ModelResponse]) -> dict[str, list[ModelResponse]]:
    groups: dict[str, list[ModelResponse]] = {}
    for response in responses:
        if response.success:
            groups.setdefault(normalize_output(response.output), []).append(response)
    return groups


def _representative(group: list[ModelResponse]) -> ModelResponse:
    return min(group, key=lambda r: (r.model, r.output))


def vote_majority(responses: list[ModelResponse]) -> tuple[ModelResponse | None, float]:
    groups = _group(responses)
    if not groups:
        return None, 0.0
    key = min(groups, key=lambda k: (-len(groups[k]), k))
    successful = sum(len(group) for group in groups.values())
    return _representative(groups[key]), len(groups[key]) / successful


def vote_consensus(responses: list[ModelResponse]) -> tuple[ModelResponse | None, float]:
    groups = _group(responses)
    if len(groups) == 1:
        (group,) = groups.values()
        return _representative(group), 1.0
    return vote_majority(responses)


def vote_weighted(responses: list[ModelResponse]) -> tuple[ModelResponse | None, float]:
    groups = _group(responses)
    if not groups:
        return None, 0.0
    weights = {
        key: math.fsum(r.confidence if r.confidence > 0 else DEFAULT_CONFIDENCE for r in group)
        for key, group in groups.items()
    }
    key = min(weights, key=lambda k: (-weights[k], k))
    total = math.fsum(weights.values())
    return _representative(groups[key]), weights[key] / total


def vote_best(responses: list[ModelResponse]) -> tuple[ModelResponse | None, float]:
    scored = sorted(
        ((score_response(r), r) for r in responses if r.success),
        key=lambda item: (-item[0], item[1].model, item[1].output),
    )
    if not scored:
        return None, 0.0
    if len(scored) == 1:
        return scored[0][1], 1.0
    gap = scored[0][0] - scored[1][0]
    return scored[0][1], min(1.0, 0.5 + gap * 0.5)


def vote(
    strategy: VotingStrategy,
    responses: list[ModelResponse],
) -> tuple[ModelResponse | None, float]:
    """Select the winning response and its agreement score."""
    if strategy == VotingStrategy.CONSENSUS:
        return vote_consensus(responses)
    if strategy == VotingStrategy.WEIGHTED:
        return vote_weighted(responses)
    if strategy == VotingStrategy.BEST:
        return vote_best(responses)
    return vote_majority(responses)


# ------------------------------------------------------------------ #
# Executor
# ------------------------------------------------------------------ #


class EnsembleExecutor:
    """Runs an ensemble of models in parallel and votes on their outputs."""

    def __init__(
        self,
        executor: ModelExecutor,
        config: EnsembleConfig,
        *,
        recorder: OutcomeRecorder | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._executor = executor
        self._config = config
        self._recorder = recorder
        self._settings = settings or Settings()

    @property
    def timeout(self) -> float:
        return self._config.timeout or self._settings.ensemble_default_timeout_seconds

    async def _call(self, model: str, prompt: str) -> ModelResponse:
        """Run one participant, converting transport errors into a failure response."""
        start = time.perf_counter()
        try:
            response = await self._executor.execute(model, prompt)
        except Exception as exc:
            log.warning(
                "ensemble.participant_raised",
                model=model,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            response = ModelResponse.failure(
                model,
                str(exc) or type(exc).__name__,
                duration=time.perf_counter() - start,
            )
        response.model = model
        if not response.duration:
            response.duration = time.perf_counter() - start
        if self._recorder is not None:
            self._recorder.record(response)
        return response

    async def execute(self, prompt: str) -> EnsembleResult:
        """Fan the prompt out, wait for the shared deadline, then vote."""
        result = EnsembleResult()
        start = time.perf_counter()
        timeout = self.timeout

        tasks = [asyncio.create_task(self._call(model, prompt)) for model in self._config.models]
        if tasks:
            _, pending = await asyncio.wait(tasks, timeout=timeout)
        else:
            pending = set()

        for model, task in zip(self._config.models, tasks):
            if task in pending:
                # Late results are dropped; cancellation is not awaited.
                task.cancel()
                response = ModelResponse.failure(
                    model,
                    f"timed out after {timeout:.1f}s",
                    duration=timeout,
                )
                if self._recorder is not None:
                    self._recorder.record(response)
            else:
                response = task.result()
            result.responses.append(response)

        result.duration = time.perf_counter() - start

        successful = [r for r in result.responses if r.success]
        for response in successful:
            key = normalize_output(response.output)
            result.votes[key] = result.votes.get(key, 0) + 1

        required = self._config.required_responses()
        if len(successful) < required:
            result.error = f"insufficient responses: got {len(successful)}, need {required}"
            log.warning(
                "ensemble.insufficient_responses",
                models=self._config.models,
                successful=len(successful),
                required=required,
                timed_out=len(pending),
            )
            return result

        winner, agreement = vote(self._config.voting_strategy, result.responses)
        if winner is None:
            result.error = "no successful responses"
            return result
        result.winner = winner.model
        result.winner_output = winner.output
        result.agreement = agreement

        threshold = self._config.threshold
        if agreement < threshold:
            result.error = f"agreement {agreement:.2f} below threshold {threshold:.2f}"
            log.warning(
                "ensemble.below_threshold",
                strategy=str(self._config.voting_strategy),
                agreement=agreement,
                threshold=threshold,
                winner=winner.model,
            )
            return result

        result.success = True
        log.info(
            "ensemble.completed",
            strategy=str(self._config.voting_strategy),
            winner=winner.model,
            agreement=round(agreement, 3),
            responses=len(successful),
            duration=round(result.duration, 3),
        )
        return result
