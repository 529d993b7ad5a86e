"""Metrics store for task outcomes by role, model and provider.

The MetricsStore records one TaskMetric per backend execution and keeps
running aggregates over that stream:

Aggregates tracked:
- By role: task counts, success/failure tallies, duration/tokens/cost, model usage
- By model: the same totals plus role usage
- By provider: counts, cost, latency, rate-limit hits, availability

Task history is capped (oldest evicted first). Aggregates are caches over
the TaskMetric stream and can be rebuilt by replaying it
(``MetricsStore.rebuild_from_history``). When a path is configured the
whole document is written atomically after every mutation.
"""

from __future__ import annotations

import os
import tempfile
import threading
import uuid
from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from council.exceptions import MetricsPersistenceError

log = structlog.get_logger(__name__)

CURRENT_METRICS_VERSION = 1
METRICS_FILENAME = "council-metrics.json"
MAX_TASK_HISTORY = 1000

# Flagship-tier price used as the savings baseline: $75 per 1M tokens.
# Deliberately applied per 1K tokens, not per token.
FLAGSHIP_COST_PER_1K_TOKENS = 0.075


def _now() -> datetime:
    return datetime.now(UTC)


class TaskMetric(BaseModel):
    """Immutable record of a single task execution."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    role: str = ""
    model: str
    provider: str = ""
    started_at: datetime = Field(default_factory=_now)
    completed_at: datetime | None = None
    duration: float = 0.0  # seconds
    tokens: int = 0
    cost: float = 0.0
    success: bool
    error: str = ""
    complexity: str = ""
    fallback: bool = False


class RoleMetrics(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    role: str
    total_tasks: int = 0
    completed_tasks: int = 0
    failed_tasks: int = 0
    total_duration: float = 0.0
    total_tokens: int = 0
    total_cost: float = 0.0
    model_usage: dict[str, int] = Field(default_factory=dict)
    avg_duration: float = 0.0
    success_rate: float = 0.0


class ModelMetrics(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model: str
    provider: str = ""
    total_tasks: int = 0
    completed_tasks: int = 0
    failed_tasks: int = 0
    total_duration: float = 0.0
    total_tokens: int = 0
    total_cost: float = 0.0
    avg_duration: float = 0.0
    success_rate: float = 0.0
    role_usage: dict[str, int] = Field(default_factory=dict)


class ProviderMetrics(BaseModel):
    provider: str
    total_tasks: int = 0
    completed_tasks: int = 0
    failed_tasks: int = 0
    total_duration: float = 0.0
    total_cost: float = 0.0
    rate_limit_hits: int = 0
    avg_latency: float = 0.0
    availability: float = 0.0


class MetricsDocument(BaseModel):
    """Persisted metrics document."""

    version: int = CURRENT_METRICS_VERSION
    updated_at: datetime | None = None
    by_role: dict[str, RoleMetrics] = Field(default_factory=dict)
    by_model: dict[str, ModelMetrics] = Field(default_factory=dict)
    by_provider: dict[str, ProviderMetrics] = Field(default_factory=dict)
    task_history: list[TaskMetric] = Field(default_factory=list)


class MetricsSummary(BaseModel):
    """Cross-cutting view over all recorded tasks."""

    total_tasks: int = 0
    completed_tasks: int = 0
    total_cost: float = 0.0
    avg_success_rate: float = 0.0
    top_model: str = ""
    top_provider: str = ""
    cost_savings_percent: float = 0.0


class ModelComparison(BaseModel):
    """Differences between two models, computed as ``model_a - model_b``."""

    model_a: str
    model_b: str
    task_diff: int
    success_diff: float
    duration_diff: float
    cost_diff: float


def _apply_task(document: MetricsDocument, task: TaskMetric) -> None:
    """Fold one task into the aggregate maps."""
    role = document.by_role.get(task.role)
    if role is None:
        role = document.by_role[task.role] = RoleMetrics(role=task.role)
    role.total_tasks += 1
    if task.success:
        role.completed_tasks += 1
    else:
        role.failed_tasks += 1
    role.total_duration += task.duration
    role.total_tokens += task.tokens
    role.total_cost += task.cost
    role.model_usage[task.model] = role.model_usage.get(task.model, 0) + 1
    role.avg_duration = role.total_duration / role.total_tasks
    role.success_rate = role.completed_tasks / role.total_tasks

    model = document.by_model.get(task.model)
    if model is None:
        model = document.by_model[task.model] = ModelMetrics(model=task.model, provider=task.provider)
    model.total_tasks += 1
    if task.success:
        model.completed_tasks += 1
    else:
        model.failed_tasks += 1
    model.total_duration += task.duration
    model.total_tokens += task.tokens
    model.total_cost += task.cost
    model.role_usage[task.role] = model.role_usage.get(task.role, 0) + 1
    model.avg_duration = model.total_duration / model.total_tasks
    model.success_rate = model.completed_tasks / model.total_tasks

    provider = document.by_provider.get(task.provider)
    if provider is None:
        provider = document.by_provider[task.provider] = ProviderMetrics(provider=task.provider)
    provider.total_tasks += 1
    if task.success:
        provider.completed_tasks += 1
    else:
        provider.failed_tasks += 1
    provider.total_duration += task.duration
    provider.total_cost += task.cost
    provider.avg_latency = provider.total_duration / provider.total_tasks
    provider.availability = provider.completed_tasks / provider.total_tasks


class MetricsStore:
    """Durable aggregation of task outcomes.

    All mutation goes through ``record_task``, ``record_rate_limit`` and
    ``reset``; every reader receives an independent copy. A single lock
    guards the document, so readers never observe a partially applied task.
    """

    def __init__(
        self,
        path: Path | str | None = None,
        *,
        max_history: int = MAX_TASK_HISTORY,
    ) -> None:
        """Initialize the store, loading persisted metrics if present.

        Args:
            path: JSON file to persist to. None keeps metrics in memory only.
            max_history: Maximum number of TaskMetric records retained

        Raises:
            MetricsPersistenceError: If an existing metrics file is malformed
        """
        if max_history < 1:
            raise ValueError("max_history must be >= 1")

        self._lock = threading.RLock()
        self._path = Path(path) if path is not None else None
        self._max_history = max_history
        self._document = MetricsDocument()

        if self._path is not None:
            self._load(self._path)

        log.info(
            "metrics_store.initialized",
            path=str(self._path) if self._path else None,
            max_history=max_history,
            history=len(self._document.task_history),
        )

    @property
    def path(self) -> Path | None:
        return self._path

    # ------------------------------------------------------------------ #
    # Persistence
    # ------------------------------------------------------------------ #

    def _load(self, path: Path) -> None:
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return
        except OSError as exc:
            raise MetricsPersistenceError(f"reading metrics: {exc}") from exc

        try:
            document = MetricsDocument.model_validate_json(raw)
        except ValidationError as exc:
            raise MetricsPersistenceError(f"parsing metrics {path}: {exc}") from exc

        if len(document.task_history) > self._max_history:
            document.task_history = document.task_history[-self._max_history :]
        self._document = document

    def _save(self) -> None:
        """Write the document atomically. Caller holds the lock."""
        if self._path is None:
            return

        payload = self._document.model_dump_json(indent=2)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(payload)
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            log.error("metrics_store.save_failed", path=str(self._path), error=str(exc))
            raise MetricsPersistenceError(f"writing metrics: {exc}") from exc

    # ------------------------------------------------------------------ #
    # Mutation
    # ------------------------------------------------------------------ #

    def record_task(self, task: TaskMetric) -> None:
        """Record a task execution and persist.

        Raises:
            MetricsPersistenceError: If the metrics file cannot be written
        """
        with self._lock:
            _apply_task(self._document, task)
            history = self._document.task_history
            history.append(task)
            if len(history) > self._max_history:
                del history[: len(history) - self._max_history]
            self._document.updated_at = _now()
            self._save()

        log.debug(
            "metrics_store.task_recorded",
            role=task.role,
            model=task.model,
            provider=task.provider,
            success=task.success,
            duration=task.duration,
            cost=task.cost,
        )

    def record_rate_limit(self, provider: str) -> None:
        """Count a rate-limit hit against a provider."""
        with self._lock:
            metrics = self._document.by_provider.get(provider)
            if metrics is None:
                metrics = self._document.by_provider[provider] = ProviderMetrics(provider=provider)
            metrics.rate_limit_hits += 1
            self._document.updated_at = _now()
            self._save()

        log.debug("metrics_store.rate_limit_recorded", provider=provider)

    def reset(self) -> None:
        """Clear all metrics."""
        with self._lock:
            self._document = MetricsDocument(updated_at=_now())
            self._save()
        log.info("metrics_store.reset")

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    def get_metrics(self) -> MetricsDocument:
        with self._lock:
            return self._document.model_copy(deep=True)

    def role_metrics(self, role: str) -> RoleMetrics | None:
        with self._lock:
            metrics = self._document.by_role.get(role)
            return metrics.model_copy(deep=True) if metrics is not None else None

    def model_metrics(self, model: str) -> ModelMetrics | None:
        with self._lock:
            metrics = self._document.by_model.get(model)
            return metrics.model_copy(deep=True) if metrics is not None else None

    def provider_metrics(self, provider: str) -> ProviderMetrics | None:
        with self._lock:
            metrics = self._document.by_provider.get(provider)
            return metrics.model_copy(deep=True) if metrics is not None else None

    def recent_tasks(self, n: int) -> list[TaskMetric]:
        """Return up to ``n`` most recent tasks, oldest first."""
        if n <= 0:
            return []
        with self._lock:
            return list(self._document.task_history[-n:])

    def summary(self) -> MetricsSummary:
        """Derive a high-level summary across all roles, models and providers."""
        with self._lock:
            document = self._document
            summary = MetricsSummary()
            total_tokens = 0
            for role in document.by_role.values():
                summary.total_tasks += role.total_tasks
                summary.completed_tasks += role.completed_tasks
                summary.total_cost += role.total_cost
                total_tokens += role.total_tokens

            if summary.total_tasks > 0:
                summary.avg_success_rate = summary.completed_tasks / summary.total_tasks

            summary.top_model = _top_by_tasks(
                (name, m.total_tasks) for name, m in document.by_model.items()
            )
            summary.top_provider = _top_by_tasks(
                (name, p.total_tasks) for name, p in document.by_provider.items()
            )

            baseline_cost = total_tokens / 1000 * FLAGSHIP_COST_PER_1K_TOKENS
            if baseline_cost > 0:
                summary.cost_savings_percent = (1 - summary.total_cost / baseline_cost) * 100

        return summary

    def compare_models(self, model_a: str, model_b: str) -> ModelComparison | None:
        """Compare two models; None when either has no recorded data."""
        with self._lock:
            a = self._document.by_model.get(model_a)
            b = self._document.by_model.get(model_b)
            if a is None or b is None:
                return None
            return ModelComparison(
                model_a=model_a,
                model_b=model_b,
                task_diff=a.total_tasks - b.total_tasks,
                success_diff=a.success_rate - b.success_rate,
                duration_diff=a.avg_duration - b.avg_duration,
                cost_diff=a.total_cost - b.total_cost,
            )

    def model_ranking(self) -> list[str]:
        """Models ordered by success rate (descending), ties by name."""
        with self._lock:
            ranked = sorted(
                self._document.by_model.values(),
                key=lambda m: (-m.success_rate, m.model),
            )
            return [m.model for m in ranked]

    @staticmethod
    def rebuild_from_history(history: Iterable[TaskMetric]) -> MetricsDocument:
        """Replay a TaskMetric stream into freshly computed aggregates."""
        document = MetricsDocument()
        for task in history:
            _apply_task(document, task)
            document.task_history.append(task)
        return document


def _top_by_tasks(items: Iterable[tuple[str, int]]) -> str:
    best_name = ""
    best_count = 0
    for name, count in sorted(items):
        if count > best_count:
            best_name, best_count = name, count
    return best_name
