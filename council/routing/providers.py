"""Provider inference and well-known health endpoints.

Model identifiers carry their vendor in their naming family
("sonnet-4.5" is Anthropic, "gpt-5.2" is OpenAI). Inference is a pure
prefix match so that routing never needs a model catalog lookup.
"""

from __future__ import annotations

ANTHROPIC = "anthropic"
OPENAI = "openai"
GOOGLE = "google"
XAI = "xai"
UNKNOWN_PROVIDER = "unknown"

# Ordered; first matching family wins.
_PREFIX_FAMILIES: tuple[tuple[str, tuple[str, ...]], ...] = (
    (ANTHROPIC, ("opus-", "sonnet-", "haiku-", "claude-")),
    (OPENAI, ("gpt-", "o4-", "o3-", "o1-")),
    (GOOGLE, ("gemini-",)),
    (XAI, ("grok-",)),
)

# 401/403 from these prove reachability without credentials.
HEALTH_ENDPOINTS: dict[str, str] = {
    ANTHROPIC: "https://api.anthropic.com/v1/messages",
    OPENAI: "https://api.openai.com/v1/models",
    GOOGLE: "https://generativelanguage.googleapis.com/v1/models",
}


def model_provider(model: str) -> str:
    """Infer the provider for a model identifier.

    Args:
        model: Model identifier (e.g., "opus-4.5-thinking")

    Returns:
        Provider name, or "unknown" for unrecognised naming families
    """
    if model == "grok":
        return XAI
    for provider, prefixes in _PREFIX_FAMILIES:
        if model.startswith(prefixes):
            return provider
    return UNKNOWN_PROVIDER
