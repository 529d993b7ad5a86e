"""Exception hierarchy for the council routing core.

Only irrecoverable conditions are raised. Provider failures, ensemble
insufficiency and chain step failures are reported through result objects
and circuit breakers instead.
"""

from __future__ import annotations

from pathlib import Path


class CouncilError(Exception):
    """Base class for all council errors."""


class ConfigError(CouncilError):
    """Persisted routing configuration could not be read, parsed or written."""

    def __init__(self, message: str, *, path: Path | str | None = None) -> None:
        self.path = Path(path) if path is not None else None
        if self.path is not None:
            message = f"{message} ({self.path})"
        super().__init__(message)


class NoModelAvailableError(CouncilError):
    """Routing exhausted every candidate for a role.

    Never retried internally; the caller decides whether to try again later.
    """

    def __init__(self, role: str, excluded_providers: list[str] | None = None) -> None:
        self.role = role
        self.excluded_providers = list(excluded_providers or [])
        message = f"no available models for role {role!r}"
        if self.excluded_providers:
            message += f" (excluded providers: {', '.join(sorted(self.excluded_providers))})"
        super().__init__(message)


class UnknownProviderError(CouncilError):
    """A health probe was requested for a provider with no known endpoint."""

    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(f"unknown provider: {provider}")


class MetricsPersistenceError(CouncilError):
    """Metrics could not be loaded from or written to disk."""


class ProfileError(CouncilError):
    """A configuration profile is invalid or could not be fetched."""
