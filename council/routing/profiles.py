"""Shareable routing profiles.

A profile wraps a RoutingConfig with discovery metadata (author, tags,
use case) so teams can exchange tuned role/model matrices. Profiles are
serialised as JSON; importing accepts a local path or an http(s) URL.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path

import httpx
import structlog
from pydantic import BaseModel, Field, ValidationError

from council.exceptions import ProfileError
from council.routing.config import (
    CONFIG_FILENAME,
    ComplexityConfig,
    DefaultConfig,
    ProviderConfig,
    RoleConfig,
    RoutingConfig,
    config_path,
    save_routing_config,
)

log = structlog.get_logger(__name__)

PROFILE_FETCH_TIMEOUT_SECONDS = 15.0
DEFAULT_PROFILE_VERSION = "1.0.0"
BUILTIN_AUTHOR = "council"


class ProfileMetrics(BaseModel):
    """Performance data reported alongside a shared profile."""

    total_tasks: int = 0
    success_rate: float = 0.0
    avg_cost_per_task: float = 0.0
    cost_savings_percent: float = 0.0
    reported_issues: int = 0
    community_rating: float = 0.0


class Profile(BaseModel):
    name: str = ""
    description: str = ""
    author: str = ""
    version: str = DEFAULT_PROFILE_VERSION
    created_at: datetime | None = None
    updated_at: datetime | None = None
    tags: list[str] = Field(default_factory=list)
    use_case: str = ""
    config: RoutingConfig | None = None
    metrics: ProfileMetrics | None = None


def _single_provider(enabled: str, models: list[str]) -> dict[str, ProviderConfig]:
    providers = {
        name: ProviderConfig(enabled=False) for name in ("anthropic", "openai", "google")
    }
    providers[enabled] = ProviderConfig(enabled=True, priority=100, models=models)
    return providers


PREDEFINED_PROFILES: dict[str, Profile] = {
    "cost-optimized": Profile(
        name="cost-optimized",
        description="Minimize costs by using cheaper models where possible",
        author=BUILTIN_AUTHOR,
        tags=["cost", "budget", "efficient"],
        use_case="Teams on a budget who want to maximize output per dollar",
        config=RoutingConfig(
            roles={
                "coordinator": RoleConfig(
                    model="sonnet-4.5",
                    fallback=["gpt-5.2", "gemini-3-flash"],
                    rationale="Sonnet provides good coordination at lower cost than Opus",
                ),
                "implementer": RoleConfig(
                    model="gemini-3-flash",
                    fallback=["gpt-5.2", "sonnet-4.5"],
                    rationale="Flash handles routine coding tasks effectively",
                    complexity_routing=True,
                    complexity=ComplexityConfig(
                        high="sonnet-4.5", medium="gpt-5.2", low="gemini-3-flash"
                    ),
                ),
                "reviewer": RoleConfig(
                    model="gpt-5.2",
                    fallback=["sonnet-4.5"],
                    rationale="GPT provides solid code review at moderate cost",
                ),
                "monitor": RoleConfig(
                    model="gemini-3-flash",
                    fallback=["gpt-5.2"],
                    rationale="Flash is extremely cost-effective for monitoring",
                ),
            },
            defaults=DefaultConfig(model="gemini-3-flash", fallback=["gpt-5.2", "sonnet-4.5"]),
        ),
    ),
    "quality-focused": Profile(
        name="quality-focused",
        description="Maximize output quality using flagship models",
        author=BUILTIN_AUTHOR,
        tags=["quality", "enterprise", "flagship"],
        use_case="Critical projects where quality matters more than cost",
        config=RoutingConfig(
            roles={
                "coordinator": RoleConfig(
                    model="opus-4.5-thinking",
                    fallback=["gpt-5.2-high", "sonnet-4.5"],
                    rationale="Extended thinking for complex strategic decisions",
                ),
                "implementer": RoleConfig(
                    model="sonnet-4.5",
                    fallback=["opus-4.5", "gpt-5.2-high"],
                    rationale="Best-in-class coding with flagship fallbacks",
                    complexity_routing=True,
                    complexity=ComplexityConfig(
                        high="opus-4.5-thinking", medium="sonnet-4.5", low="sonnet-4.5"
                    ),
                ),
                "reviewer": RoleConfig(
                    model="opus-4.5",
                    fallback=["gpt-5.2-high", "sonnet-4.5"],
                    rationale="Flagship model for thorough code review",
                ),
                "monitor": RoleConfig(
                    model="sonnet-4.5",
                    fallback=["gpt-5.2"],
                    rationale="More capable monitoring for complex systems",
                ),
            },
            defaults=DefaultConfig(model="sonnet-4.5", fallback=["opus-4.5", "gpt-5.2-high"]),
        ),
    ),
    "balanced": Profile(
        name="balanced",
        description="Balance between cost and quality (recommended default)",
        author=BUILTIN_AUTHOR,
        tags=["balanced", "default", "recommended"],
        use_case="General purpose configuration suitable for most teams",
        config=RoutingConfig(
            roles={
                "coordinator": RoleConfig(
                    model="opus-4.5-thinking",
                    fallback=["sonnet-4.5", "gpt-5.2-high"],
                    rationale="Strategic coordination warrants extended thinking",
                ),
                "implementer": RoleConfig(
                    model="sonnet-4.5",
                    fallback=["gpt-5.2", "gemini-3-flash"],
                    rationale="Best coding model for primary work",
                    complexity_routing=True,
                    complexity=ComplexityConfig(
                        high="opus-4.5", medium="sonnet-4.5", low="gemini-3-flash"
                    ),
                ),
                "reviewer": RoleConfig(
                    model="gpt-5.2-high",
                    fallback=["opus-4.5", "sonnet-4.5"],
                    rationale="Different model family for diverse review perspective",
                ),
                "monitor": RoleConfig(
                    model="gemini-3-flash",
                    fallback=["sonnet-4.5"],
                    rationale="Cost-effective monitoring with capable fallback",
                ),
            },
            defaults=DefaultConfig(model="sonnet-4.5", fallback=["gpt-5.2", "gemini-3-flash"]),
        ),
    ),
    "anthropic-only": Profile(
        name="anthropic-only",
        description="Use only Anthropic models (single-provider setup)",
        author=BUILTIN_AUTHOR,
        tags=["anthropic", "single-provider", "claude"],
        use_case="Teams with Anthropic API access only",
        config=RoutingConfig(
            roles={
                "coordinator": RoleConfig(
                    model="opus-4.5-thinking",
                    fallback=["sonnet-4.5", "haiku-3.5"],
                    rationale="Flagship Claude for coordination",
                ),
                "implementer": RoleConfig(
                    model="sonnet-4.5",
                    fallback=["opus-4.5", "haiku-3.5"],
                    rationale="Sonnet is the strongest Anthropic model for coding",
                    complexity_routing=True,
                    complexity=ComplexityConfig(
                        high="opus-4.5", medium="sonnet-4.5", low="haiku-3.5"
                    ),
                ),
                "reviewer": RoleConfig(
                    model="opus-4.5",
                    fallback=["sonnet-4.5"],
                    rationale="Opus for thorough review",
                ),
                "monitor": RoleConfig(
                    model="haiku-3.5",
                    fallback=["sonnet-4.5"],
                    rationale="Haiku is fast and cheap for monitoring",
                ),
            },
            defaults=DefaultConfig(model="sonnet-4.5", fallback=["opus-4.5", "haiku-3.5"]),
            providers=_single_provider("anthropic", ["sonnet-4.5", "opus-4.5", "haiku-3.5"]),
        ),
    ),
    "openai-only": Profile(
        name="openai-only",
        description="Use only OpenAI models (single-provider setup)",
        author=BUILTIN_AUTHOR,
        tags=["openai", "single-provider", "gpt"],
        use_case="Teams with OpenAI API access only",
        config=RoutingConfig(
            roles={
                "coordinator": RoleConfig(
                    model="gpt-5.2-high",
                    fallback=["gpt-5.2", "gpt-4.1"],
                    rationale="High-capacity GPT for coordination",
                ),
                "implementer": RoleConfig(
                    model="gpt-5.2",
                    fallback=["gpt-5.2-high", "gpt-4.1"],
                    rationale="GPT-5.2 handles coding well",
                    complexity_routing=True,
                    complexity=ComplexityConfig(
                        high="gpt-5.2-high", medium="gpt-5.2", low="gpt-4.1"
                    ),
                ),
                "reviewer": RoleConfig(
                    model="gpt-5.2-high",
                    fallback=["gpt-5.2"],
                    rationale="High-capacity for thorough review",
                ),
                "monitor": RoleConfig(
                    model="gpt-4.1",
                    fallback=["gpt-5.2"],
                    rationale="Efficient monitoring with a smaller GPT",
                ),
            },
            defaults=DefaultConfig(model="gpt-5.2", fallback=["gpt-5.2-high", "gpt-4.1"]),
            providers=_single_provider("openai", ["gpt-5.2", "gpt-5.2-high", "gpt-4.1"]),
        ),
    ),
    "google-only": Profile(
        name="google-only",
        description="Use only Google models (single-provider setup)",
        author=BUILTIN_AUTHOR,
        tags=["google", "single-provider", "gemini"],
        use_case="Teams with Google AI access only",
        config=RoutingConfig(
            roles={
                "coordinator": RoleConfig(
                    model="gemini-3-ultra",
                    fallback=["gemini-3-pro", "gemini-3-flash"],
                    rationale="Ultra for strategic coordination",
                ),
                "implementer": RoleConfig(
                    model="gemini-3-pro",
                    fallback=["gemini-3-ultra", "gemini-3-flash"],
                    rationale="Pro balances capability and cost",
                    complexity_routing=True,
                    complexity=ComplexityConfig(
                        high="gemini-3-ultra", medium="gemini-3-pro", low="gemini-3-flash"
                    ),
                ),
                "reviewer": RoleConfig(
                    model="gemini-3-pro",
                    fallback=["gemini-3-ultra"],
                    rationale="Pro for code review",
                ),
                "monitor": RoleConfig(
                    model="gemini-3-flash",
                    fallback=["gemini-3-pro"],
                    rationale="Flash is extremely fast and cheap",
                ),
            },
            defaults=DefaultConfig(
                model="gemini-3-flash", fallback=["gemini-3-pro", "gemini-3-ultra"]
            ),
            providers=_single_provider(
                "google", ["gemini-3-flash", "gemini-3-pro", "gemini-3-ultra"]
            ),
        ),
    ),
}


# ------------------------------------------------------------------ #
# Export / import
# ------------------------------------------------------------------ #


def export_profile(
    config: RoutingConfig,
    name: str,
    description: str = "",
    author: str = "",
) -> Profile:
    """Wrap a routing config as a shareable profile."""
    now = datetime.now(UTC)
    return Profile(
        name=name,
        description=description,
        author=author,
        created_at=now,
        updated_at=now,
        config=config.model_copy(deep=True),
    )


def export_profile_to_file(profile: Profile, path: Path | str) -> None:
    """Write a profile as indented JSON, creating parent directories.

    Raises:
        ProfileError: If the file cannot be written
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(profile.model_dump_json(indent=2, exclude_none=True), encoding="utf-8")
    except OSError as exc:
        raise ProfileError(f"writing profile: {exc}") from exc

    log.info("profiles.exported", name=profile.name, path=str(path))


def _is_http_url(location: str) -> bool:
    return location.startswith(("http://", "https://"))


async def _fetch_profile(url: str, client: httpx.AsyncClient | None) -> bytes:
    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(timeout=PROFILE_FETCH_TIMEOUT_SECONDS)
    try:
        response = await client.get(url)
    except httpx.HTTPError as exc:
        raise ProfileError(f"fetching profile: {exc}") from exc
    finally:
        if owns_client:
            await client.aclose()

    if response.status_code != httpx.codes.OK:
        raise ProfileError(
            f"fetching profile: {response.status_code} {response.reason_phrase}".rstrip()
        )
    return response.content


async def import_profile(
    location: Path | str,
    *,
    client: httpx.AsyncClient | None = None,
) -> Profile:
    """Load a profile from a JSON file or an http(s) URL.

    Args:
        location: Local path or URL
        client: Optional HTTP client; a short-lived one is created otherwise

    Raises:
        ProfileError: If the profile cannot be fetched, read or parsed
    """
    location = str(location)
    if _is_http_url(location):
        data = await _fetch_profile(location, client)
    else:
        try:
            data = Path(location).read_bytes()
        except OSError as exc:
            raise ProfileError(f"reading profile: {exc}") from exc

    try:
        profile = Profile.model_validate(json.loads(data))
    except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as exc:
        raise ProfileError(f"parsing profile: {exc}") from exc

    log.info("profiles.imported", name=profile.name, source=location)
    return profile


def apply_profile(
    profile: Profile,
    home_dir: Path | str,
    filename: str = CONFIG_FILENAME,
) -> Path:
    """Save a profile's routing config as the active config under ``home_dir``.

    Returns:
        Path the configuration was written to

    Raises:
        ProfileError: If the profile carries no configuration
        ConfigError: If the configuration cannot be written
    """
    if profile.config is None:
        raise ProfileError("profile has no configuration")

    target = config_path(home_dir, filename)
    save_routing_config(target, profile.config)
    log.info("profiles.applied", name=profile.name, path=str(target))
    return target


# ------------------------------------------------------------------ #
# Discovery
# ------------------------------------------------------------------ #


def get_profile(name: str) -> Profile | None:
    profile = PREDEFINED_PROFILES.get(name)
    return profile.model_copy(deep=True) if profile is not None else None


def list_profiles() -> list[str]:
    return sorted(PREDEFINED_PROFILES)


def search_profiles(tag: str) -> list[Profile]:
    """Predefined profiles with a tag containing ``tag`` (case-insensitive), by name."""
    needle = tag.lower()
    return [
        PREDEFINED_PROFILES[name].model_copy(deep=True)
        for name in list_profiles()
        if any(needle in candidate.lower() for candidate in PREDEFINED_PROFILES[name].tags)
    ]


def validate_profile(profile: Profile) -> list[str]:
    """Return human-readable problems with a profile; empty means valid."""
    issues: list[str] = []

    if not profile.name:
        issues.append("profile name is required")

    if profile.config is None:
        issues.append("profile configuration is required")
        return issues

    for role, role_config in sorted(profile.config.roles.items()):
        if not role_config.model:
            issues.append(f"role {role!r} has no model specified")

    defaults = profile.config.defaults
    if defaults is None:
        issues.append("profile should have default configuration")
    elif not defaults.model:
        issues.append("default model is required")

    return issues
