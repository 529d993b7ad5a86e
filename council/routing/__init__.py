"""Role and complexity based model routing with provider failover.

This package selects a model for each unit of agent work and keeps that
selection resilient:
- Router: role/complexity lookup with fallback chains and emergency selection
- FallbackManager: per-provider circuit breakers, health probes, recovery
- MetricsStore: durable per-task, per-role, per-model and per-provider stats
- Profiles: shareable, named routing configurations
"""

from __future__ import annotations

from council.routing.complexity import ComplexityLevel, TaskSignal, assess_complexity
from council.routing.config import (
    ComplexityConfig,
    DefaultConfig,
    ProviderConfig,
    RoleConfig,
    RoutingConfig,
    default_routing_config,
    load_or_create,
    load_routing_config,
    save_routing_config,
)
from council.routing.fallback import CircuitBreaker, CircuitState, FallbackManager, ProviderHealth
from council.routing.metrics import MetricsStore, MetricsSummary, ModelComparison, TaskMetric
from council.routing.profiles import Profile, ProfileMetrics
from council.routing.providers import model_provider
from council.routing.router import RouteRequest, RouteResult, Router

__all__ = [
    "CircuitBreaker",
    "CircuitState",
    "ComplexityConfig",
    "ComplexityLevel",
    "DefaultConfig",
    "FallbackManager",
    "MetricsStore",
    "MetricsSummary",
    "ModelComparison",
    "Profile",
    "ProfileMetrics",
    "ProviderConfig",
    "ProviderHealth",
    "RoleConfig",
    "RouteRequest",
    "RouteResult",
    "Router",
    "RoutingConfig",
    "TaskMetric",
    "TaskSignal",
    "assess_complexity",
    "default_routing_config",
    "load_or_create",
    "load_routing_config",
    "model_provider",
    "save_routing_config",
]
