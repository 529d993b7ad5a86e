"""Telemetry package: structured logging with per-request routing context."""

from __future__ import annotations

from council.telemetry.logging import (
    bind_route_context,
    clear_context,
    configure_from_settings,
    configure_logging,
)

__all__ = [
    "bind_route_context",
    "clear_context",
    "configure_from_settings",
    "configure_logging",
]
