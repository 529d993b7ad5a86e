"""Multi-model execution patterns: chain, ensemble and fallback."""

from __future__ import annotations

from council.patterns.base import ModelExecutor, ModelResponse, OutcomeRecorder
from council.patterns.chain import ChainConfig, ChainExecutor, ChainResult, ChainStep, StepResult
from council.patterns.ensemble import (
    EnsembleConfig,
    EnsembleExecutor,
    EnsembleResult,
    VotingStrategy,
)
from council.patterns.fallback import FallbackExecutor, FallbackResult
from council.patterns.presets import Pattern, get_chain, get_ensemble

__all__ = [
    "ChainConfig",
    "ChainExecutor",
    "ChainResult",
    "ChainStep",
    "EnsembleConfig",
    "EnsembleExecutor",
    "EnsembleResult",
    "FallbackExecutor",
    "FallbackResult",
    "ModelExecutor",
    "ModelResponse",
    "OutcomeRecorder",
    "Pattern",
    "StepResult",
    "VotingStrategy",
    "get_chain",
    "get_ensemble",
]
