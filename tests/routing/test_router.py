"""Tests for Router model selection.

Tests cover:
- Complexity-tiered selection vs flat per-role selection
- User overrides (honoured, "auto", unavailable)
- Ordered fallback chains and emergency provider selection
- NoModelAvailableError when every provider is excluded
- Provider status updates and config reloads
"""

from __future__ import annotations

import pytest

from council.exceptions import NoModelAvailableError
from council.routing.complexity import ComplexityLevel, TaskSignal, signal_for_level
from council.routing.config import (
    DefaultConfig,
    ProviderConfig,
    RoleConfig,
    RoutingConfig,
    default_routing_config,
)
from council.routing.router import (
    EMERGENCY_REASON,
    OVERRIDE_RATIONALE,
    ROLE_RATIONALE,
    RouteRequest,
    Router,
    quick_route,
    route_with_complexity,
)


# ------------------------------------------------------------------ #
# Complexity routing
# ------------------------------------------------------------------ #


@pytest.mark.parametrize(
    ("level", "expected_model"),
    [
        (ComplexityLevel.HIGH, "opus-4.5"),
        (ComplexityLevel.MEDIUM, "sonnet-4.5"),
        (ComplexityLevel.LOW, "gemini-3-flash"),
    ],
)
def test_implementer_routes_by_complexity(router, level, expected_model):
    result = router.route(RouteRequest(role="implementer", task=signal_for_level(level)))

    assert result.model == expected_model
    assert result.complexity == level
    assert result.rationale == f"Complexity-based routing: {level.label} task"
    assert result.is_fallback is False


def test_missing_task_routes_as_medium(router):
    result = router.route(RouteRequest(role="implementer"))

    assert result.model == "sonnet-4.5"
    assert result.complexity == ComplexityLevel.MEDIUM


def test_blank_tier_falls_back_to_flat_model():
    config = default_routing_config()
    config.roles["implementer"].complexity.low = ""
    router = Router(config)

    result = router.route(
        RouteRequest(role="implementer", task=signal_for_level(ComplexityLevel.LOW))
    )
    assert result.model == "sonnet-4.5"


@pytest.mark.parametrize("role", ["coordinator", "reviewer", "monitor", "lifecycle"])
def test_flat_roles_ignore_task_signal(router, role):
    """Roles without complexity routing always get their configured model."""
    expected = router.config.roles[role].model
    for level in ComplexityLevel:
        result = router.route(RouteRequest(role=role, task=signal_for_level(level)))
        assert result.model == expected
        assert result.rationale == router.config.roles[role].rationale


def test_complexity_triple_without_flag_is_flat():
    config = default_routing_config()
    config.roles["implementer"].complexity_routing = False
    router = Router(config)

    result = router.route(
        RouteRequest(role="implementer", task=signal_for_level(ComplexityLevel.HIGH))
    )
    assert result.model == "sonnet-4.5"


def test_unknown_role_uses_defaults(router):
    result = router.route(RouteRequest(role="auditor"))

    assert result.model == "sonnet-4.5"
    assert result.provider == "anthropic"
    assert result.rationale == ROLE_RATIONALE


# ------------------------------------------------------------------ #
# Overrides
# ------------------------------------------------------------------ #


def test_preferred_model_is_honoured(router):
    result = router.route(RouteRequest(role="implementer", preferred_model="gpt-5.2"))

    assert result.model == "gpt-5.2"
    assert result.provider == "openai"
    assert result.rationale == OVERRIDE_RATIONALE
    assert result.is_fallback is False


def test_auto_preference_is_ignored(router):
    result = router.route(RouteRequest(role="coordinator", preferred_model="auto"))

    assert result.model == "opus-4.5-thinking"
    assert result.rationale != OVERRIDE_RATIONALE


def test_unavailable_preference_is_reported_as_fallback(router):
    result = router.route(
        RouteRequest(role="implementer", preferred_model="gpt-5.2", exclude_providers=["openai"])
    )

    assert result.model == "sonnet-4.5"
    assert result.is_fallback is True
    assert result.fallback_reason == "Preferred model gpt-5.2 unavailable"


# ------------------------------------------------------------------ #
# Fallback
# ------------------------------------------------------------------ #


def test_fallback_chain_used_in_order(router):
    result = router.route(RouteRequest(role="reviewer", exclude_providers=["openai"]))

    assert result.model == "opus-4.5"
    assert result.provider == "anthropic"
    assert result.is_fallback is True
    assert result.fallback_reason == "Primary model gpt-5.2-high unavailable"


def test_fallback_skips_unavailable_candidates(router):
    router.set_provider_status("anthropic", False)

    result = router.route(RouteRequest(role="coordinator"))

    # opus-4.5-thinking and sonnet-4.5 are anthropic; gpt-5.2-high is next
    assert result.model == "gpt-5.2-high"
    assert result.is_fallback is True


def test_emergency_fallback_picks_highest_priority_provider(router):
    result = router.route(
        RouteRequest(role="coordinator", exclude_providers=["anthropic", "openai"])
    )

    assert result.model == "gemini-3-pro"
    assert result.provider == "google"
    assert result.is_fallback is True
    assert result.fallback_reason == EMERGENCY_REASON
    assert "emergency fallback" in result.fallback_reason


def test_emergency_fallback_respects_priority_order():
    config = RoutingConfig(
        roles={"solo": RoleConfig(model="grok-4")},
        providers={
            "google": ProviderConfig(priority=10, models=["gemini-3-flash"]),
            "openai": ProviderConfig(priority=50, models=["gpt-5.2"]),
            "anthropic": ProviderConfig(priority=50, models=["sonnet-4.5"]),
        },
    )
    router = Router(config)

    result = router.route(RouteRequest(role="solo", exclude_providers=["xai"]))

    # openai and anthropic tie on priority; configuration order breaks the tie
    assert result.model == "gpt-5.2"


def test_emergency_fallback_skips_disabled_providers():
    config = RoutingConfig(
        roles={"solo": RoleConfig(model="sonnet-4.5")},
        providers={
            "anthropic": ProviderConfig(priority=100, models=["sonnet-4.5"]),
            "openai": ProviderConfig(enabled=False, priority=90, models=["gpt-5.2"]),
            "google": ProviderConfig(priority=10, models=["gemini-3-flash"]),
        },
    )
    router = Router(config)

    result = router.route(RouteRequest(role="solo", exclude_providers=["anthropic"]))
    assert result.model == "gemini-3-flash"


def test_no_model_available_when_everything_excluded(router):
    with pytest.raises(NoModelAvailableError) as exc_info:
        router.route(
            RouteRequest(role="coordinator", exclude_providers=["anthropic", "openai", "google"])
        )

    assert exc_info.value.role == "coordinator"
    assert "coordinator" in str(exc_info.value)
    assert sorted(exc_info.value.excluded_providers) == ["anthropic", "google", "openai"]


def test_no_model_available_when_no_provider_enabled():
    config = RoutingConfig(
        roles={"solo": RoleConfig(model="sonnet-4.5")},
        providers={"anthropic": ProviderConfig(enabled=False, models=["sonnet-4.5"])},
    )
    router = Router(config)

    with pytest.raises(NoModelAvailableError):
        router.route(RouteRequest(role="solo"))


def test_unrecognised_provider_models_stay_routable(router):
    result = router.route(RouteRequest(role="crew"))

    assert result.model == "auto"
    assert result.provider == "unknown"


def test_role_provider_override_applies_to_flat_model():
    config = RoutingConfig(
        roles={
            "local": RoleConfig(model="llama-70b", provider="anthropic", fallback=["gpt-5.2"]),
        },
        defaults=DefaultConfig(model="sonnet-4.5"),
    )
    router = Router(config)

    assert router.route(RouteRequest(role="local")).provider == "anthropic"

    result = router.route(RouteRequest(role="local", exclude_providers=["anthropic"]))
    assert result.model == "gpt-5.2"


def test_request_is_not_mutated(router):
    request = RouteRequest(role="reviewer", exclude_providers=["openai"])
    router.route(request)
    assert request.exclude_providers == ["openai"]


# ------------------------------------------------------------------ #
# Status and reloads
# ------------------------------------------------------------------ #


def test_provider_status_seeded_from_enabled_flag():
    config = default_routing_config()
    config.providers["google"].enabled = False
    router = Router(config)

    assert router.provider_status("anthropic") is True
    assert router.provider_status("google") is False
    assert router.is_model_available("gemini-3-flash") is False


def test_reload_preserves_known_status(router):
    router.set_provider_status("google", False)

    router.reload_config(default_routing_config())

    assert router.provider_status("google") is False
    assert router.provider_status("anthropic") is True


def test_reload_switches_routing(router):
    config = default_routing_config()
    config.roles["reviewer"].model = "sonnet-4.5"

    router.reload_config(config)

    assert router.route(RouteRequest(role="reviewer")).model == "sonnet-4.5"


def test_module_helpers_use_default_config():
    assert quick_route("coordinator") == "opus-4.5-thinking"
    assert route_with_complexity("implementer", ComplexityLevel.LOW) == "gemini-3-flash"
    assert route_with_complexity("reviewer", ComplexityLevel.HIGH) == "gpt-5.2-high"


def test_high_signal_from_raw_facts(router):
    task = TaskSignal(files_affected=15, lines_changed=800, is_architectural=True)
    assert router.route(RouteRequest(role="implementer", task=task)).model == "opus-4.5"
