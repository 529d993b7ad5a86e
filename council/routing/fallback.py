"""Fallback manager: per-provider circuit breakers and health probing.

The FallbackManager wraps the Router with live provider health. Each
configured provider gets a circuit breaker:

State machine:
- closed → open: threshold-th consecutive failure, or too many rate-limit
  hits inside the trailing window
- open → half-open: once reset_timeout has elapsed (lazy, on sweep)
- half-open → closed: a probe or live request succeeds
- half-open → open: a probe or live request fails

Open providers are added to the request's exclusion list before the Router
is consulted, so the Router never needs breaker awareness. Half-open
providers stay routable so that a live request can act as the probe.

Health probes send HEAD to a provider's well-known endpoint. 200/401/403
prove reachability, 429 is a rate limit, anything else (or a transport
error) is a failure.
"""

from __future__ import annotations

import asyncio
import dataclasses
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

import httpx
import structlog

from council.config import Settings
from council.exceptions import MetricsPersistenceError, UnknownProviderError
from council.infra.recovery import RecoveryLoop
from council.routing.config import RoutingConfig
from council.routing.metrics import MetricsStore
from council.routing.providers import HEALTH_ENDPOINTS
from council.routing.router import RouteRequest, RouteResult, Router
from council.telemetry.logging import bind_route_context

log = structlog.get_logger(__name__)

_REACHABLE_STATUS = frozenset({200, 401, 403})
_RATE_LIMIT_STATUS = 429
_RATE_LIMIT_MARKERS = ("rate limit", "rate_limit", "ratelimit", "429", "too many requests")


class CircuitState(StrEnum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


@dataclass
class CircuitBreaker:
    """Failure-tracking state for one provider.

    Timestamps come from the owning manager's clock (monotonic seconds).
    Transitions are the only mutation path; the return value of each
    ``record_*`` method tells the owner whether routing status must change.
    """

    threshold: int = 5
    reset_timeout: float = 30.0
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    last_failure: float | None = None
    last_success: float | None = None
    opened_at: float | None = None

    def trip(self, now: float) -> None:
        self.state = CircuitState.OPEN
        self.opened_at = now

    def record_failure(self, now: float) -> bool:
        """Count a failure. Returns True if the circuit opened."""
        self.failure_count += 1
        self.last_failure = now
        if self.state == CircuitState.HALF_OPEN or (
            self.state == CircuitState.CLOSED and self.failure_count >= self.threshold
        ):
            self.trip(now)
            return True
        return False

    def record_success(self, now: float) -> bool:
        """Count a success. Returns True if a half-open circuit closed."""
        self.last_success = now
        if self.state == CircuitState.HALF_OPEN:
            self.state = CircuitState.CLOSED
            self.failure_count = 0
            self.opened_at = None
            return True
        if self.state == CircuitState.CLOSED:
            self.failure_count = 0
        return False

    def should_attempt_reset(self, now: float) -> bool:
        return (
            self.state == CircuitState.OPEN
            and self.opened_at is not None
            and now - self.opened_at >= self.reset_timeout
        )


@dataclass
class ProviderHealth:
    """Result of a health probe against one provider."""

    provider: str
    available: bool
    last_checked: datetime
    response_time_ms: float | None = None
    failure_count: int = 0
    circuit_state: CircuitState = CircuitState.CLOSED
    rate_limit_hits: int = 0
    status_code: int | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "provider": self.provider,
            "available": self.available,
            "last_checked": self.last_checked.isoformat(),
            "response_time_ms": self.response_time_ms,
            "failure_count": self.failure_count,
            "circuit_state": str(self.circuit_state),
            "rate_limit_hits": self.rate_limit_hits,
            "status_code": self.status_code,
            "error": self.error,
        }


def is_rate_limit_error(error: BaseException | str | None) -> bool:
    """Return True if an error indicates rate limiting rather than failure."""
    if error is None:
        return False
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code == _RATE_LIMIT_STATUS
    text = str(error).lower()
    return any(marker in text for marker in _RATE_LIMIT_MARKERS)


class FallbackManager:
    """Maintains provider circuit breakers around a Router.

    All breaker state and health-check bookkeeping share one lock. Probes
    run outside the lock; only their recorded outcomes take it.
    """

    def __init__(
        self,
        router: Router,
        *,
        settings: Settings | None = None,
        metrics: MetricsStore | None = None,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize fallback manager with one closed breaker per provider.

        Args:
            router: Router to delegate routing decisions to
            settings: Breaker thresholds and probe timings. Defaults to Settings().
            metrics: Optional store that receives rate-limit hits
            http_client: Optional shared client for health probes
            clock: Monotonic time source (injectable for tests)
        """
        self._router = router
        self._settings = settings or Settings()
        self._metrics = metrics
        self._http_client = http_client
        self._clock = clock

        self._lock = threading.RLock()
        self._breakers: dict[str, CircuitBreaker] = {}
        self._rate_limit_window: dict[str, deque[float]] = {}
        self._health_checks: dict[str, datetime] = {}
        self._recovery: RecoveryLoop | None = None

        for provider in router.config.providers:
            self._breakers[provider] = self._new_breaker()

        log.info(
            "fallback_manager.initialized",
            providers=sorted(self._breakers),
            threshold=self._settings.breaker_failure_threshold,
            reset_timeout=self._settings.breaker_reset_timeout_seconds,
        )

    def _new_breaker(self) -> CircuitBreaker:
        return CircuitBreaker(
            threshold=self._settings.breaker_failure_threshold,
            reset_timeout=self._settings.breaker_reset_timeout_seconds,
        )

    @property
    def router(self) -> Router:
        return self._router

    def _configured_enabled(self, provider: str) -> bool:
        """Whether the routing config allows the provider at all."""
        providers = self._router.config.providers
        return providers[provider].enabled if provider in providers else True

    # ------------------------------------------------------------------ #
    # Outcome recording
    # ------------------------------------------------------------------ #

    def record_success(self, provider: str) -> None:
        with self._lock:
            breaker = self._breakers.get(provider)
            if breaker is None:
                return
            closed = breaker.record_success(self._clock())
            if closed:
                self._router.set_provider_status(provider, self._configured_enabled(provider))
        if closed:
            log.info("fallback_manager.circuit_closed", provider=provider)

    def record_failure(self, provider: str) -> None:
        with self._lock:
            breaker = self._breakers.get(provider)
            if breaker is None:
                return
            opened = breaker.record_failure(self._clock())
            failure_count = breaker.failure_count
            if opened:
                self._router.set_provider_status(provider, False)
        if opened:
            log.warning(
                "fallback_manager.circuit_opened",
                provider=provider,
                reason="failures",
                failure_count=failure_count,
            )
        else:
            log.debug("fallback_manager.failure_recorded", provider=provider, failure_count=failure_count)

    def record_rate_limit(self, provider: str) -> None:
        """Record a rate-limit hit; enough hits in the window open the circuit."""
        opened = False
        with self._lock:
            now = self._clock()
            window = self._rate_limit_window.setdefault(provider, deque())
            window.append(now)
            cutoff = now - self._settings.rate_limit_window_seconds
            while window and window[0] <= cutoff:
                window.popleft()
            hits = len(window)

            breaker = self._breakers.get(provider)
            if (
                breaker is not None
                and hits >= self._settings.rate_limit_threshold
                and breaker.state != CircuitState.OPEN
            ):
                breaker.trip(now)
                self._router.set_provider_status(provider, False)
                opened = True

        if opened:
            log.warning(
                "fallback_manager.circuit_opened",
                provider=provider,
                reason="rate_limited",
                rate_limit_hits=hits,
            )
        else:
            log.info("fallback_manager.rate_limit_recorded", provider=provider, hits=hits)

        if self._metrics is not None:
            try:
                self._metrics.record_rate_limit(provider)
            except MetricsPersistenceError as exc:
                log.error("fallback_manager.metrics_write_failed", provider=provider, error=str(exc))

    def record_request_outcome(
        self,
        provider: str,
        success: bool,
        error: BaseException | str | None = None,
    ) -> None:
        """Feed the outcome of a real backend call into the provider's breaker.

        Every caller that executes against a backend must invoke this after
        the call completes.
        """
        if success:
            self.record_success(provider)
        elif is_rate_limit_error(error):
            self.record_rate_limit(provider)
        else:
            self.record_failure(provider)

    # ------------------------------------------------------------------ #
    # Health probing
    # ------------------------------------------------------------------ #

    async def check_health(self, provider: str) -> ProviderHealth:
        """Probe a provider's well-known endpoint and record the outcome.

        Raises:
            UnknownProviderError: If the provider has no known endpoint
        """
        endpoint = HEALTH_ENDPOINTS.get(provider)
        if endpoint is None:
            raise UnknownProviderError(provider)

        timeout = self._settings.health_check_timeout_seconds
        health = ProviderHealth(
            provider=provider,
            available=False,
            last_checked=datetime.now(UTC),
        )

        start = time.perf_counter()
        try:
            if self._http_client is not None:
                response = await self._http_client.head(endpoint, timeout=timeout)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.head(endpoint, timeout=timeout)
        except httpx.HTTPError as exc:
            health.response_time_ms = round((time.perf_counter() - start) * 1000, 2)
            health.error = str(exc) or type(exc).__name__
            log.warning("fallback_manager.probe_failed", provider=provider, error=health.error)
            self.record_failure(provider)
        else:
            health.response_time_ms = round((time.perf_counter() - start) * 1000, 2)
            health.status_code = response.status_code
            if response.status_code in _REACHABLE_STATUS:
                health.available = True
                self.record_success(provider)
            elif response.status_code == _RATE_LIMIT_STATUS:
                health.rate_limit_hits = 1
                health.error = "rate limited"
                self.record_rate_limit(provider)
            else:
                health.error = f"unexpected status {response.status_code}"
                self.record_failure(provider)

        with self._lock:
            self._health_checks[provider] = health.last_checked
            breaker = self._breakers.get(provider)
            if breaker is not None:
                health.circuit_state = breaker.state
                health.failure_count = breaker.failure_count

        log.info(
            "fallback_manager.health_checked",
            provider=provider,
            available=health.available,
            status_code=health.status_code,
            response_time_ms=health.response_time_ms,
            circuit_state=str(health.circuit_state),
        )
        return health

    def promote_eligible(self) -> list[str]:
        """Move open circuits whose reset timeout elapsed to half-open."""
        promoted: list[str] = []
        with self._lock:
            now = self._clock()
            for provider, breaker in self._breakers.items():
                if breaker.should_attempt_reset(now):
                    breaker.state = CircuitState.HALF_OPEN
                    self._router.set_provider_status(provider, self._configured_enabled(provider))
                    promoted.append(provider)
        for provider in promoted:
            log.info("fallback_manager.circuit_half_open", provider=provider)
        return promoted

    async def maybe_recover(self) -> list[str]:
        """Promote eligible circuits and probe them immediately.

        Returns:
            Providers that were probed this sweep
        """
        promoted = self.promote_eligible()
        if not promoted:
            return []

        results = await asyncio.gather(
            *(self.check_health(provider) for provider in promoted),
            return_exceptions=True,
        )

        for provider, result in zip(promoted, results):
            if isinstance(result, UnknownProviderError):
                # No endpoint to probe; the next live request decides.
                log.info("fallback_manager.probe_skipped", provider=provider)
                continue
            if isinstance(result, BaseException):
                log.error(
                    "fallback_manager.probe_error",
                    provider=provider,
                    error=str(result),
                    error_type=type(result).__name__,
                )
                self._reopen(provider)
                continue
            if not result.available:
                self._reopen(provider)

        return promoted

    def _reopen(self, provider: str) -> None:
        with self._lock:
            breaker = self._breakers.get(provider)
            if breaker is None:
                return
            # Re-stamp even if already open so the reset timeout restarts.
            breaker.trip(self._clock())
            self._router.set_provider_status(provider, False)
        log.warning("fallback_manager.circuit_reopened", provider=provider)

    async def all_health(self) -> dict[str, ProviderHealth]:
        """Probe every configured provider with a known endpoint concurrently."""
        with self._lock:
            providers = sorted(p for p in self._breakers if p in HEALTH_ENDPOINTS)
        results = await asyncio.gather(
            *(self.check_health(provider) for provider in providers),
            return_exceptions=True,
        )

        report: dict[str, ProviderHealth] = {}
        for provider, result in zip(providers, results):
            if isinstance(result, BaseException):
                with self._lock:
                    breaker = self._breakers[provider]
                    state, failures = breaker.state, breaker.failure_count
                report[provider] = ProviderHealth(
                    provider=provider,
                    available=False,
                    last_checked=datetime.now(UTC),
                    failure_count=failures,
                    circuit_state=state,
                    error=str(result),
                )
            else:
                report[provider] = result
        return report

    def last_health_check(self, provider: str) -> datetime | None:
        with self._lock:
            return self._health_checks.get(provider)

    # ------------------------------------------------------------------ #
    # Breaker views
    # ------------------------------------------------------------------ #

    def available_providers(self) -> list[str]:
        """Providers whose circuit is closed or half-open."""
        with self._lock:
            return sorted(
                provider
                for provider, breaker in self._breakers.items()
                if breaker.state != CircuitState.OPEN
            )

    def open_providers(self) -> list[str]:
        with self._lock:
            return sorted(
                provider
                for provider, breaker in self._breakers.items()
                if breaker.state == CircuitState.OPEN
            )

    def breaker(self, provider: str) -> CircuitBreaker | None:
        """Return a snapshot copy of a provider's breaker."""
        with self._lock:
            breaker = self._breakers.get(provider)
            return dataclasses.replace(breaker) if breaker is not None else None

    def snapshot(self) -> dict[str, CircuitBreaker]:
        with self._lock:
            return {provider: dataclasses.replace(b) for provider, b in self._breakers.items()}

    # ------------------------------------------------------------------ #
    # Routing
    # ------------------------------------------------------------------ #

    def route_with_fallback(self, request: RouteRequest) -> RouteResult:
        """Route a request, excluding providers whose circuit is open.

        The caller's request is not mutated.
        """
        excluded = list(request.exclude_providers)
        for provider in self.open_providers():
            if provider not in excluded:
                excluded.append(provider)
        result = self._router.route(dataclasses.replace(request, exclude_providers=excluded))
        bind_route_context(request.role, model=result.model)
        return result

    def reload_config(self, config: RoutingConfig) -> None:
        """Reload the router and align breakers with the new provider set."""
        self._router.reload_config(config)
        with self._lock:
            for provider in list(self._breakers):
                if provider not in config.providers:
                    del self._breakers[provider]
                    self._rate_limit_window.pop(provider, None)
            for provider in config.providers:
                if provider not in self._breakers:
                    self._breakers[provider] = self._new_breaker()
                elif self._breakers[provider].state == CircuitState.OPEN:
                    self._router.set_provider_status(provider, False)

    def reset(self) -> None:
        """Close every circuit and restore configured provider availability."""
        with self._lock:
            for provider, breaker in self._breakers.items():
                breaker.state = CircuitState.CLOSED
                breaker.failure_count = 0
                breaker.opened_at = None
                self._router.set_provider_status(provider, self._configured_enabled(provider))
            self._rate_limit_window.clear()
        log.info("fallback_manager.reset")

    # ------------------------------------------------------------------ #
    # Background recovery
    # ------------------------------------------------------------------ #

    def start_background_recovery(self) -> RecoveryLoop:
        """Start the periodic recovery sweep on the running event loop."""
        if self._recovery is None:
            self._recovery = RecoveryLoop(
                self.maybe_recover,
                interval=self._settings.recovery_interval_seconds,
                name="circuit_recovery",
            )
        self._recovery.start()
        return self._recovery

    async def stop_background_recovery(self) -> None:
        if self._recovery is not None:
            await self._recovery.stop()

    @property
    def recovery_running(self) -> bool:
        return self._recovery is not None and self._recovery.running
