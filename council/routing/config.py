"""Routing configuration model: roles, providers, defaults and complexity tiers.

The configuration document is versioned and format-agnostic. The loader
accepts TOML, YAML or JSON and normalises absent maps to empty; the saver
writes YAML (human-editable) or JSON depending on the target extension.

Document shape:
    version: 1
    roles:
      implementer:
        model: sonnet-4.5
        fallback: [gpt-5.2, gemini-3-flash]
        complexity_routing: true
        complexity: {high: opus-4.5, medium: sonnet-4.5, low: gemini-3-flash}
    defaults:
      model: sonnet-4.5
      fallback: [gpt-5.2]
    providers:
      anthropic: {enabled: true, priority: 100, rate_limit: 60, models: [...]}
"""

from __future__ import annotations

import json
import os
import tempfile
import tomllib
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from council.exceptions import ConfigError
from council.routing.complexity import ComplexityLevel

log = structlog.get_logger(__name__)

CURRENT_CONFIG_VERSION = 1
CONFIG_FILENAME = "council.yaml"
AUTO_MODEL = "auto"


class ComplexityConfig(BaseModel):
    """Models for each complexity tier. Blank entries are treated as unset."""

    high: str = ""
    medium: str = ""
    low: str = ""

    def for_level(self, level: ComplexityLevel) -> str:
        return {
            ComplexityLevel.HIGH: self.high,
            ComplexityLevel.MEDIUM: self.medium,
            ComplexityLevel.LOW: self.low,
        }[level]


class RoleConfig(BaseModel):
    """Model selection policy for one role.

    Attributes:
        model: Preferred model for the role
        fallback: Models tried in order when the preferred one is unavailable
        rationale: Free-text explanation, reported but not used for logic
        complexity_routing: Select by complexity tier when a triple is present
        complexity: Per-tier models
        provider: Overrides provider inference for the flat model
    """

    model: str = ""
    fallback: list[str] = Field(default_factory=list)
    rationale: str = ""
    complexity_routing: bool = False
    complexity: ComplexityConfig | None = None
    provider: str = ""


class DefaultConfig(BaseModel):
    """Policy applied to roles with no explicit configuration."""

    model: str = ""
    provider: str = ""
    fallback: list[str] = Field(default_factory=list)


class ProviderConfig(BaseModel):
    """Availability and selection hints for one provider.

    Attributes:
        enabled: Whether the provider may be routed to at all
        rate_limit: Advisory requests per minute
        priority: Higher is preferred for emergency selection
        models: Models advertised by the provider, in preference order
    """

    enabled: bool = True
    rate_limit: int = 0
    priority: int = 0
    models: list[str] = Field(default_factory=list)


class RoutingConfig(BaseModel):
    """Top-level routing configuration document."""

    model_config = ConfigDict(protected_namespaces=())

    version: int = CURRENT_CONFIG_VERSION
    roles: dict[str, RoleConfig] = Field(default_factory=dict)
    defaults: DefaultConfig | None = None
    providers: dict[str, ProviderConfig] = Field(default_factory=dict)

    @field_validator("version", mode="before")
    @classmethod
    def _default_version(cls, value: Any) -> Any:
        if value in (None, 0):
            return CURRENT_CONFIG_VERSION
        return value

    @field_validator("roles", "providers", mode="before")
    @classmethod
    def _normalise_map(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, dict):
            # A bare "crew:" key in YAML yields None; treat it as an empty entry.
            return {key: ({} if entry is None else entry) for key, entry in value.items()}
        return value

    # ------------------------------------------------------------------ #
    # Accessors
    # ------------------------------------------------------------------ #

    def model_for_role(self, role: str) -> str:
        """Return the flat model for a role, the default model, or "auto"."""
        role_config = self.roles.get(role)
        if role_config is not None and role_config.model:
            return role_config.model
        if self.defaults is not None and self.defaults.model:
            return self.defaults.model
        return AUTO_MODEL

    def fallback_chain(self, role: str) -> list[str]:
        """Return the ordered fallback models for a role."""
        role_config = self.roles.get(role)
        if role_config is not None and role_config.fallback:
            return list(role_config.fallback)
        if self.defaults is not None:
            return list(self.defaults.fallback)
        return []

    def rationale_for_role(self, role: str) -> str:
        role_config = self.roles.get(role)
        return role_config.rationale if role_config is not None else ""

    def provider_override(self, role: str) -> str:
        """Return an explicit provider for a role's flat model, if configured."""
        role_config = self.roles.get(role)
        if role_config is not None and role_config.provider:
            return role_config.provider
        if role_config is None and self.defaults is not None:
            return self.defaults.provider
        return ""

    def supports_complexity_routing(self, role: str) -> bool:
        role_config = self.roles.get(role)
        return (
            role_config is not None
            and role_config.complexity_routing
            and role_config.complexity is not None
        )

    def model_for_complexity(self, role: str, level: ComplexityLevel) -> str:
        """Return the tier model for a role, falling back to its flat model."""
        role_config = self.roles.get(role)
        tiers = role_config.complexity if role_config and role_config.complexity_routing else None
        if tiers is None:
            return self.model_for_role(role)
        return tiers.for_level(level) or self.model_for_role(role)

    def providers_by_priority(self) -> list[tuple[str, ProviderConfig]]:
        """Providers in descending priority; ties keep configuration order."""
        ordered = list(self.providers.items())
        # sorted() is stable, so equal priorities retain insertion order
        return sorted(ordered, key=lambda item: -item[1].priority)


def default_routing_config() -> RoutingConfig:
    """Return the built-in role/model matrix."""
    return RoutingConfig(
        version=CURRENT_CONFIG_VERSION,
        roles={
            "coordinator": RoleConfig(
                model="opus-4.5-thinking",
                fallback=["sonnet-4.5", "gpt-5.2-high"],
                rationale="Strategic coordination requires sustained reasoning",
            ),
            "implementer": RoleConfig(
                model="sonnet-4.5",
                fallback=["gpt-5.2", "gemini-3-flash"],
                rationale="Best coding model for multi-file tasks",
                complexity_routing=True,
                complexity=ComplexityConfig(
                    high="opus-4.5",
                    medium="sonnet-4.5",
                    low="gemini-3-flash",
                ),
            ),
            "reviewer": RoleConfig(
                model="gpt-5.2-high",
                fallback=["opus-4.5", "sonnet-4.5"],
                rationale="Different model family provides fresh perspective on code review",
            ),
            "monitor": RoleConfig(
                model="gemini-3-flash",
                fallback=["sonnet-4.5", "gpt-5.2"],
                rationale="Fast, cost-effective monitoring",
            ),
            "lifecycle": RoleConfig(
                model="gemini-3-flash",
                fallback=["sonnet-4.5"],
                rationale="Lightweight lifecycle management",
            ),
            "crew": RoleConfig(
                model=AUTO_MODEL,
                rationale="User preference for interactive work",
            ),
        },
        defaults=DefaultConfig(
            model="sonnet-4.5",
            fallback=["gpt-5.2", "gemini-3-flash"],
        ),
        providers={
            "anthropic": ProviderConfig(
                enabled=True,
                priority=100,
                rate_limit=60,
                models=["opus-4.5-thinking", "opus-4.5", "sonnet-4.5", "sonnet-4.5-thinking"],
            ),
            "openai": ProviderConfig(
                enabled=True,
                priority=90,
                rate_limit=60,
                models=["gpt-5.2", "gpt-5.2-high", "gpt-5.1-codex-max", "o4-mini"],
            ),
            "google": ProviderConfig(
                enabled=True,
                priority=80,
                rate_limit=60,
                models=["gemini-3-pro", "gemini-3-flash"],
            ),
        },
    )


# ------------------------------------------------------------------ #
# Persistence
# ------------------------------------------------------------------ #


def _parse_document(text: str, suffix: str, path: Path) -> Any:
    if suffix == ".toml":
        return tomllib.loads(text)
    if suffix in (".yaml", ".yml"):
        return yaml.safe_load(text)
    if suffix == ".json":
        return json.loads(text)

    # Unknown extension: YAML first (a superset of most JSON), then JSON.
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError:
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigError("parsing config (tried YAML and JSON)", path=path) from exc


def load_routing_config(path: Path | str) -> RoutingConfig:
    """Load a routing config document.

    A nonexistent file yields the default configuration rather than an error.

    Raises:
        ConfigError: If the file cannot be read, parsed or validated
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        log.info("routing_config.missing_using_default", path=str(path))
        return default_routing_config()
    except OSError as exc:
        raise ConfigError(f"reading config file: {exc}", path=path) from exc

    try:
        data = _parse_document(text, path.suffix.lower(), path)
    except (tomllib.TOMLDecodeError, yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ConfigError(f"parsing config: {exc}", path=path) from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError("config document must be a mapping", path=path)

    try:
        config = RoutingConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"invalid config: {exc}", path=path) from exc

    log.info(
        "routing_config.loaded",
        path=str(path),
        version=config.version,
        roles=len(config.roles),
        providers=len(config.providers),
    )
    return config


def _atomic_write(path: Path, payload: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(payload)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def save_routing_config(path: Path | str, config: RoutingConfig) -> None:
    """Write a routing config document atomically.

    YAML is written for human editing; a ``.json`` target gets JSON.

    Raises:
        ConfigError: If the target is TOML or the file cannot be written
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == ".toml":
        raise ConfigError("TOML is a read-only input format; save as .yaml or .json", path=path)

    data = config.model_dump(mode="json", exclude_none=True)
    if suffix == ".json":
        payload = json.dumps(data, indent=2) + "\n"
    else:
        payload = yaml.safe_dump(data, sort_keys=False, default_flow_style=False)

    try:
        _atomic_write(path, payload)
    except OSError as exc:
        raise ConfigError(f"writing config file: {exc}", path=path) from exc

    log.info("routing_config.saved", path=str(path))


def config_path(home_dir: Path | str, filename: str = CONFIG_FILENAME) -> Path:
    return Path(home_dir) / filename


def alternate_config_path(home_dir: Path | str, filename: str = CONFIG_FILENAME) -> Path:
    return Path(home_dir) / "settings" / filename


def load_or_create(home_dir: Path | str, filename: str = CONFIG_FILENAME) -> RoutingConfig:
    """Load the config from the home directory, creating the default if absent.

    Lookup order: ``<home>/<filename>``, then ``<home>/settings/<filename>``.
    When neither exists the default config is written to the primary path.
    """
    primary = config_path(home_dir, filename)
    if primary.exists():
        return load_routing_config(primary)

    alternate = alternate_config_path(home_dir, filename)
    if alternate.exists():
        return load_routing_config(alternate)

    config = default_routing_config()
    save_routing_config(primary, config)
    log.info("routing_config.created_default", path=str(primary))
    return config
