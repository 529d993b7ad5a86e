"""Tests for the sequential ChainExecutor.

Tests cover:
- Prompt rendering ({{input}}, {{original}}) and output transforms
- Continue-on-error: the failed step's input flows to the next step
- Stop-on-error: later steps never run
- Aggregated duration/cost and outcome recording
"""

from __future__ import annotations

import pytest
from conftest import FakeExecutor

from council.patterns.base import ModelResponse, OutcomeRecorder
from council.patterns.chain import (
    ChainConfig,
    ChainExecutor,
    ChainStep,
    apply_transform,
    extract_code_blocks,
)
from council.routing.fallback import FallbackManager
from council.routing.metrics import MetricsStore


def _three_steps(**kwargs) -> ChainConfig:
    return ChainConfig(
        steps=[
            ChainStep(name="draft", model="sonnet-4.5", prompt="Draft: {{input}}"),
            ChainStep(name="review", model="gpt-5.2", prompt="Review: {{input}}"),
            ChainStep(name="summary", model="gemini-3-flash", prompt="Summarize: {{input}}"),
        ],
        **kwargs,
    )


# ------------------------------------------------------------------ #
# Transforms
# ------------------------------------------------------------------ #


def test_extract_code_blocks_joins_fences():
    text = "Intro\n```python\nx = 1\n```\nmiddle\n```\ny = 2\nz = 3\n```\ntrailer"
    assert extract_code_blocks(text) == "x = 1\n\ny = 2\nz = 3"


def test_extract_code_blocks_without_fences():
    assert extract_code_blocks("no code here") == ""


@pytest.mark.parametrize(
    ("transform", "expected"),
    [
        ("first_line", "  line one  "),
        ("trim", "line one  \nline two"),
        ("", "  line one  \nline two"),
        (None, "  line one  \nline two"),
        ("unknown", "  line one  \nline two"),
    ],
)
def test_apply_transform(transform, expected):
    assert apply_transform("  line one  \nline two", transform) == expected


# ------------------------------------------------------------------ #
# Execution
# ------------------------------------------------------------------ #


@pytest.mark.asyncio
async def test_all_steps_succeed():
    executor = FakeExecutor(
        {"sonnet-4.5": "draft-out", "gpt-5.2": "review-out", "gemini-3-flash": "final"},
        cost=0.25,
    )

    result = await ChainExecutor(executor, _three_steps()).execute("the code")

    assert result.success is True
    assert result.final_output == "final"
    assert result.failed_step is None
    assert [step.input for step in result.steps] == ["the code", "draft-out", "review-out"]
    assert [prompt for _, prompt in executor.calls] == [
        "Draft: the code",
        "Review: draft-out",
        "Summarize: review-out",
    ]
    assert result.total_cost == pytest.approx(0.75)
    assert result.total_duration == pytest.approx(sum(s.duration for s in result.steps))


@pytest.mark.asyncio
async def test_failed_middle_step_continues_with_unmodified_input():
    executor = FakeExecutor(
        {
            "sonnet-4.5": "draft-out",
            "gpt-5.2": ModelResponse.failure("gpt-5.2", "upstream 500", duration=0.5),
            "gemini-3-flash": "final",
        }
    )

    result = await ChainExecutor(executor, _three_steps(stop_on_error=False)).execute("x")

    assert len(result.steps) == 3
    assert result.steps[1].success is False
    # the third step receives the second step's own input
    assert result.steps[2].input == "draft-out"
    assert executor.calls[2] == ("gemini-3-flash", "Summarize: draft-out")
    assert result.final_output == "final"
    assert result.success is False
    assert result.failed_step == "review"
    assert result.error == "step 2 (review) failed: upstream 500"


@pytest.mark.asyncio
async def test_stop_on_error_halts_chain():
    executor = FakeExecutor(
        {"sonnet-4.5": RuntimeError("connection refused"), "gpt-5.2": "never", "gemini-3-flash": "x"}
    )

    result = await ChainExecutor(executor, _three_steps(stop_on_error=True)).execute("x")

    assert len(result.steps) == 1
    assert len(executor.calls) == 1
    assert result.success is False
    assert result.final_output == ""
    assert result.failed_step == "draft"
    assert result.error == "step 1 (draft) failed: connection refused"


@pytest.mark.asyncio
async def test_failed_step_cost_still_counted():
    executor = FakeExecutor(
        {
            "sonnet-4.5": ModelResponse(model="sonnet-4.5", error="refused", cost=0.1),
            "gpt-5.2": "ok",
        }
    )
    config = ChainConfig(
        steps=[
            ChainStep(name="a", model="sonnet-4.5"),
            ChainStep(name="b", model="gpt-5.2"),
        ]
    )

    result = await ChainExecutor(executor, config).execute("x")

    assert result.total_cost == pytest.approx(0.1)


@pytest.mark.asyncio
async def test_empty_prompt_sends_raw_input():
    executor = FakeExecutor({"sonnet-4.5": "out"})
    config = ChainConfig(steps=[ChainStep(name="raw", model="sonnet-4.5")])

    await ChainExecutor(executor, config).execute("raw input")

    assert executor.calls == [("sonnet-4.5", "raw input")]


@pytest.mark.parametrize(("pass_context", "expected"), [(True, "ctx=start"), (False, "ctx=")])
@pytest.mark.asyncio
async def test_original_token_follows_pass_context(pass_context, expected):
    executor = FakeExecutor({"sonnet-4.5": "first", "gpt-5.2": "second"})
    config = ChainConfig(
        pass_context=pass_context,
        steps=[
            ChainStep(name="a", model="sonnet-4.5"),
            ChainStep(name="b", model="gpt-5.2", prompt="ctx={{original}}"),
        ],
    )

    await ChainExecutor(executor, config).execute("start")

    assert executor.calls[1] == ("gpt-5.2", expected)


@pytest.mark.asyncio
async def test_transform_feeds_next_step():
    executor = FakeExecutor(
        {"gpt-5.2": "Fix:\n```go\nreturn nil\n```\nDone.", "gemini-3-flash": "verified"}
    )
    config = ChainConfig(
        steps=[
            ChainStep(name="fix", model="gpt-5.2", transform="extract_code"),
            ChainStep(name="verify", model="gemini-3-flash", prompt="Check {{input}}"),
        ]
    )

    result = await ChainExecutor(executor, config).execute("bug")

    assert executor.calls[1] == ("gemini-3-flash", "Check return nil")
    assert result.steps[0].output.startswith("Fix:")


@pytest.mark.asyncio
async def test_empty_chain_returns_input():
    result = await ChainExecutor(FakeExecutor(), ChainConfig()).execute("unchanged")

    assert result.success is True
    assert result.final_output == "unchanged"


@pytest.mark.asyncio
async def test_steps_are_recorded_with_role():
    store = MetricsStore()
    executor = FakeExecutor({"sonnet-4.5": "a", "gpt-5.2": "b"})
    config = ChainConfig(
        steps=[
            ChainStep(name="a", model="sonnet-4.5", role="implementer"),
            ChainStep(name="b", model="gpt-5.2", role="reviewer"),
        ]
    )

    await ChainExecutor(executor, config, recorder=OutcomeRecorder(metrics=store)).execute("x")

    assert store.role_metrics("implementer").model_usage == {"sonnet-4.5": 1}
    assert store.role_metrics("reviewer").model_usage == {"gpt-5.2": 1}
    assert store.provider_metrics("openai").total_tasks == 1


@pytest.mark.asyncio
async def test_outcomes_use_step_model_when_backend_omits_it(router, settings, clock):
    store = MetricsStore()
    manager = FallbackManager(router, settings=settings, clock=clock)
    executor = FakeExecutor({"sonnet-4.5": ModelResponse(model="", error="overloaded")})
    config = ChainConfig(steps=[ChainStep(name="only", model="sonnet-4.5")])
    recorder = OutcomeRecorder(fallback_manager=manager, metrics=store)

    result = await ChainExecutor(executor, config, recorder=recorder).execute("x")

    assert result.success is False
    assert list(store.get_metrics().by_model) == ["sonnet-4.5"]
    assert store.model_metrics("sonnet-4.5").provider == "anthropic"
    assert manager.breaker("anthropic").failure_count == 1
