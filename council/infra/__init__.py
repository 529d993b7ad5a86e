"""Runtime infrastructure shared by the routing components."""

from __future__ import annotations

from council.infra.recovery import RecoveryLoop

__all__ = ["RecoveryLoop"]
