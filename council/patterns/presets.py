"""Named orchestration patterns and ready-made chain/ensemble configurations."""

from __future__ import annotations

import copy
from enum import StrEnum

from council.patterns.chain import ChainConfig, ChainStep
from council.patterns.ensemble import EnsembleConfig, VotingStrategy


class Pattern(StrEnum):
    """Orchestration patterns for multi-model execution."""

    SINGLE = "single"
    CHAIN = "chain"
    ENSEMBLE = "ensemble"
    FALLBACK = "fallback"
    SPECIALIST = "specialist"


PREDEFINED_CHAINS: dict[str, ChainConfig] = {
    # Draft review, deep analysis, concise summary
    "code-review": ChainConfig(
        pass_context=True,
        stop_on_error=False,
        steps=[
            ChainStep(
                name="initial-review",
                model="sonnet-4.5",
                role="reviewer",
                prompt="Review this code for issues:\n\n{{input}}",
            ),
            ChainStep(
                name="deep-analysis",
                model="opus-4.5-thinking",
                role="reviewer",
                prompt="Based on this initial review, provide a detailed analysis:\n\n{{input}}",
            ),
            ChainStep(
                name="final-summary",
                model="gpt-5.2",
                role="reviewer",
                prompt="Summarize the code review findings concisely:\n\n{{input}}",
            ),
        ],
    ),
    "architecture": ChainConfig(
        pass_context=True,
        stop_on_error=True,
        steps=[
            ChainStep(
                name="gather-requirements",
                model="gemini-3-flash",
                prompt="Extract the key requirements from:\n\n{{input}}",
            ),
            ChainStep(
                name="design-options",
                model="opus-4.5-thinking",
                prompt="Based on these requirements, propose 3 architecture options:\n\n{{input}}",
            ),
            ChainStep(
                name="evaluate-tradeoffs",
                model="sonnet-4.5",
                prompt="Evaluate the tradeoffs of each architecture option:\n\n{{input}}",
            ),
            ChainStep(
                name="recommend",
                model="gpt-5.2",
                prompt="Based on the analysis, recommend the best architecture:\n\n{{input}}",
            ),
        ],
    ),
    "bug-fix": ChainConfig(
        pass_context=True,
        stop_on_error=False,
        steps=[
            ChainStep(
                name="diagnose",
                model="sonnet-4.5",
                role="implementer",
                prompt="Diagnose the root cause of this bug:\n\n{{input}}",
            ),
            ChainStep(
                name="propose-fix",
                model="gpt-5.2",
                role="implementer",
                prompt="Based on this diagnosis, propose a fix:\n\n{{input}}",
                transform="extract_code",
            ),
            ChainStep(
                name="verify-fix",
                model="gemini-3-flash",
                role="monitor",
                prompt="Verify this proposed fix addresses the bug:\n\n{{input}}",
            ),
        ],
    ),
}

PREDEFINED_ENSEMBLES: dict[str, EnsembleConfig] = {
    "critical-decision": EnsembleConfig(
        models=["opus-4.5-thinking", "gpt-5.2", "sonnet-4.5"],
        voting_strategy=VotingStrategy.CONSENSUS,
        threshold=0.66,
        timeout=120.0,
        min_responses=2,
    ),
    "fast-consensus": EnsembleConfig(
        models=["sonnet-4.5", "gpt-5.2", "gemini-3-flash"],
        voting_strategy=VotingStrategy.MAJORITY,
        threshold=0.5,
        timeout=30.0,
        min_responses=2,
    ),
    # No threshold: "best" agreement only reflects the score gap
    "quality": EnsembleConfig(
        models=["opus-4.5-thinking", "gpt-5.2"],
        voting_strategy=VotingStrategy.BEST,
        threshold=0.0,
        timeout=90.0,
        min_responses=1,
    ),
}


def get_chain(name: str) -> ChainConfig | None:
    """Return a private copy of a predefined chain, or None if unknown."""
    chain = PREDEFINED_CHAINS.get(name)
    return copy.deepcopy(chain) if chain is not None else None


def get_ensemble(name: str) -> EnsembleConfig | None:
    """Return a private copy of a predefined ensemble, or None if unknown."""
    ensemble = PREDEFINED_ENSEMBLES.get(name)
    return copy.deepcopy(ensemble) if ensemble is not None else None
