"""Model router - role and complexity based model selection with fallback.

The router picks a model for a unit of work based on:
- An explicit user override (unless it is "auto" or unavailable)
- The role's complexity tiers, when complexity routing is enabled
- The role's flat model, or the global default for unconfigured roles
- The role's ordered fallback chain
- An emergency scan of every enabled provider, by descending priority

The router has no I/O and no knowledge of circuit breakers; live health is
expressed through ``exclude_providers`` and ``set_provider_status``.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field

import structlog

from council.exceptions import NoModelAvailableError
from council.routing.complexity import (
    ComplexityLevel,
    TaskSignal,
    assess_complexity,
    signal_for_level,
)
from council.routing.config import AUTO_MODEL, RoutingConfig, default_routing_config
from council.routing.providers import model_provider

log = structlog.get_logger(__name__)

OVERRIDE_RATIONALE = "User-specified model preference"
ROLE_RATIONALE = "Role-based model selection"
EMERGENCY_REASON = "All preferred models unavailable, using emergency fallback"


@dataclass
class RouteRequest:
    """A request for a routing decision.

    Attributes:
        role: Logical role making the request
        task: Optional task facts for complexity assessment
        preferred_model: Optional model override ("" or "auto" means none)
        exclude_providers: Providers that must not be selected
    """

    role: str
    task: TaskSignal | None = None
    preferred_model: str = ""
    exclude_providers: list[str] = field(default_factory=list)


@dataclass
class RouteResult:
    """A routing decision."""

    model: str
    provider: str
    rationale: str
    complexity: ComplexityLevel = ComplexityLevel.MEDIUM
    is_fallback: bool = False
    fallback_reason: str = ""


class Router:
    """Selects the model that fulfils a request for a role.

    Thread-safe: decisions and status updates are serialised on one lock so
    a route never observes a half-applied config reload.
    """

    def __init__(self, config: RoutingConfig | None = None) -> None:
        """Initialize router with a routing configuration.

        Args:
            config: Routing configuration. If None, uses the built-in default.
        """
        self._lock = threading.RLock()
        self._config = config if config is not None else default_routing_config()
        self._provider_status: dict[str, bool] = {}
        self._seed_provider_status()

        log.info(
            "router.initialized",
            roles=sorted(self._config.roles),
            providers=self._provider_status,
        )

    def _seed_provider_status(self) -> None:
        for name, provider in self._config.providers.items():
            self._provider_status.setdefault(name, provider.enabled)

    # ------------------------------------------------------------------ #
    # Routing
    # ------------------------------------------------------------------ #

    def route(self, request: RouteRequest) -> RouteResult:
        """Select the model for a request.

        Returns:
            RouteResult describing the selected model and why

        Raises:
            NoModelAvailableError: If no provider can serve the role
        """
        with self._lock:
            config = self._config
            excluded = list(request.exclude_providers)
            complexity = assess_complexity(request.task)

            override_reason = ""
            preferred = request.preferred_model
            if preferred and preferred != AUTO_MODEL:
                if self._is_available(preferred, excluded):
                    result = RouteResult(
                        model=preferred,
                        provider=model_provider(preferred),
                        rationale=OVERRIDE_RATIONALE,
                        complexity=complexity,
                    )
                    self._log_selection(request, result)
                    return result
                override_reason = f"Preferred model {preferred} unavailable"
                log.info(
                    "router.override_unavailable",
                    role=request.role,
                    preferred_model=preferred,
                )

            if config.supports_complexity_routing(request.role):
                model = config.model_for_complexity(request.role, complexity)
                rationale = f"Complexity-based routing: {complexity.label} task"
            else:
                model = config.model_for_role(request.role)
                rationale = config.rationale_for_role(request.role) or ROLE_RATIONALE

            provider = self._provider_for(model, request.role)
            if self._is_available(model, excluded, provider=provider):
                result = RouteResult(
                    model=model,
                    provider=provider,
                    rationale=rationale,
                    complexity=complexity,
                    is_fallback=bool(override_reason),
                    fallback_reason=override_reason,
                )
                self._log_selection(request, result)
                return result

            for candidate in config.fallback_chain(request.role):
                if self._is_available(candidate, excluded):
                    result = RouteResult(
                        model=candidate,
                        provider=model_provider(candidate),
                        rationale=rationale,
                        complexity=complexity,
                        is_fallback=True,
                        fallback_reason=override_reason or f"Primary model {model} unavailable",
                    )
                    self._log_selection(request, result)
                    return result

            for name, provider_config in config.providers_by_priority():
                if not provider_config.enabled or name in excluded:
                    continue
                if not self._provider_status.get(name, provider_config.enabled):
                    continue
                if not provider_config.models:
                    continue
                result = RouteResult(
                    model=provider_config.models[0],
                    provider=name,
                    rationale=rationale,
                    complexity=complexity,
                    is_fallback=True,
                    fallback_reason=EMERGENCY_REASON,
                )
                log.warning(
                    "router.emergency_fallback",
                    role=request.role,
                    primary_model=model,
                    model=result.model,
                    provider=name,
                )
                return result

            log.error(
                "router.no_model_available",
                role=request.role,
                excluded_providers=excluded,
            )
            raise NoModelAvailableError(request.role, excluded)

    def _log_selection(self, request: RouteRequest, result: RouteResult) -> None:
        log.info(
            "router.route_selected",
            role=request.role,
            model=result.model,
            provider=result.provider,
            complexity=result.complexity.label,
            is_fallback=result.is_fallback,
            fallback_reason=result.fallback_reason or None,
        )

    def _provider_for(self, model: str, role: str) -> str:
        override = self._config.provider_override(role)
        if override and model == self._config.model_for_role(role):
            return override
        return model_provider(model)

    def _is_available(
        self,
        model: str,
        excluded: list[str],
        *,
        provider: str | None = None,
    ) -> bool:
        provider = provider or model_provider(model)
        if provider in excluded:
            return False
        # Providers we have never heard of (including "unknown") stay available.
        return self._provider_status.get(provider, True)

    # ------------------------------------------------------------------ #
    # Availability and configuration
    # ------------------------------------------------------------------ #

    def provider_for(self, model: str, role: str = "") -> str:
        """Return the provider serving ``model`` for ``role``."""
        with self._lock:
            return self._provider_for(model, role)

    def is_model_available(self, model: str, exclude_providers: list[str] | None = None) -> bool:
        with self._lock:
            return self._is_available(model, list(exclude_providers or []))

    def set_provider_status(self, provider: str, available: bool) -> None:
        """Mark a provider as reachable or down."""
        with self._lock:
            previous = self._provider_status.get(provider)
            self._provider_status[provider] = available
        if previous != available:
            log.info("router.provider_status_changed", provider=provider, available=available)

    def provider_status(self, provider: str) -> bool:
        with self._lock:
            return self._provider_status.get(provider, False)

    def reload_config(self, config: RoutingConfig) -> None:
        """Swap in a new configuration, keeping known provider status."""
        with self._lock:
            self._config = config
            self._provider_status = {
                name: self._provider_status.get(name, provider.enabled) and provider.enabled
                for name, provider in config.providers.items()
            }
        log.info(
            "router.config_reloaded",
            roles=sorted(config.roles),
            providers=sorted(config.providers),
        )

    @property
    def config(self) -> RoutingConfig:
        with self._lock:
            return self._config


def quick_route(role: str) -> str:
    """Route a role against the default configuration and return the model."""
    return Router(default_routing_config()).route(RouteRequest(role=role)).model


def route_with_complexity(role: str, level: ComplexityLevel) -> str:
    """Route a role at an explicit complexity level against the default config."""
    router = Router(default_routing_config())
    return router.route(RouteRequest(role=role, task=signal_for_level(level))).model
