"""Chain executor: a sequential pipeline of model calls.

Each step renders its prompt template against the current input, runs it,
and (on success) passes its optionally transformed output on as the next
step's input. Steps run strictly in order.

Template tokens:
- ``{{input}}``: the current input (previous step's transformed output)
- ``{{original}}``: the chain's initial input when ``pass_context`` is set,
  otherwise replaced with an empty string

Failure policy:
- ``stop_on_error``: halt at the failing step and report it
- otherwise: continue, feeding the next step the unmodified current input;
  overall success is still False
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field

import structlog

from council.patterns.base import ModelExecutor, ModelResponse, OutcomeRecorder

log = structlog.get_logger(__name__)

INPUT_TOKEN = "{{input}}"
ORIGINAL_TOKEN = "{{original}}"


@dataclass
class ChainStep:
    """One step in a chain.

    Attributes:
        name: Step identifier used in results and errors
        model: Model to execute the step against
        prompt: Prompt template; empty means "send the raw input"
        transform: Named output transform (extract_code, first_line, trim)
        role: Role the step acts as, recorded with its metrics
    """

    name: str
    model: str
    prompt: str = ""
    transform: str = ""
    role: str = ""


@dataclass
class ChainConfig:
    steps: list[ChainStep] = field(default_factory=list)
    pass_context: bool = True
    stop_on_error: bool = False


@dataclass
class StepResult:
    name: str
    model: str
    input: str
    output: str = ""
    duration: float = 0.0
    cost: float = 0.0
    success: bool = False
    error: str = ""


@dataclass
class ChainResult:
    steps: list[StepResult] = field(default_factory=list)
    final_output: str = ""
    total_duration: float = 0.0
    total_cost: float = 0.0
    success: bool = False
    error: str = ""
    failed_step: str | None = None


def extract_code_blocks(text: str) -> str:
    """Concatenate the bodies of fenced code blocks, separated by blank lines."""
    blocks: list[str] = []
    current: list[str] = []
    in_block = False

    for line in text.split("\n"):
        if line.startswith("```"):
            if in_block:
                blocks.append("\n".join(current))
                current = []
            in_block = not in_block
            continue
        if in_block:
            current.append(line)

    return "\n\n".join(blocks)


def apply_transform(output: str, transform: str | None) -> str:
    """Apply a named transform; unknown or absent names are the identity."""
    if transform == "extract_code":
        return extract_code_blocks(output)
    if transform == "first_line":
        return output.split("\n", 1)[0]
    if transform == "trim":
        return output.strip()
    return output


class ChainExecutor:
    """Runs a chain of models over an initial input."""

    def __init__(
        self,
        executor: ModelExecutor,
        config: ChainConfig,
        *,
        recorder: OutcomeRecorder | None = None,
    ) -> None:
        self._executor = executor
        self._config = config
        self._recorder = recorder

    def _render_prompt(self, step: ChainStep, current_input: str, initial_input: str) -> str:
        if not step.prompt:
            return current_input
        original = initial_input if self._config.pass_context else ""
        return step.prompt.replace(INPUT_TOKEN, current_input).replace(ORIGINAL_TOKEN, original)

    async def _run_step(self, step: ChainStep, prompt: str) -> ModelResponse:
        start = time.perf_counter()
        try:
            response = await self._executor.execute(step.model, prompt)
        except Exception as exc:
            log.warning(
                "chain.step_raised",
                step=step.name,
                model=step.model,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            response = ModelResponse.failure(
                step.model,
                str(exc) or type(exc).__name__,
                duration=time.perf_counter() - start,
            )
        response.model = step.model
        if not response.duration:
            response.duration = time.perf_counter() - start
        if self._recorder is not None:
            self._recorder.record(response, role=step.role)
        return response

    async def execute(self, initial_input: str) -> ChainResult:
        """Run every step in order and return the combined result."""
        result = ChainResult()
        current_input = initial_input

        log.info(
            "chain.started",
            steps=[step.name for step in self._config.steps],
            stop_on_error=self._config.stop_on_error,
        )

        for index, step in enumerate(self._config.steps, start=1):
            prompt = self._render_prompt(step, current_input, initial_input)
            response = await self._run_step(step, prompt)

            step_result = StepResult(
                name=step.name,
                model=step.model,
                input=current_input,
                output=response.output,
                duration=response.duration,
                cost=response.cost,
                success=response.success,
                error="" if response.success else (response.error or "step failed"),
            )
            result.steps.append(step_result)
            result.total_duration += step_result.duration
            result.total_cost += step_result.cost

            if not step_result.success:
                log.warning(
                    "chain.step_failed",
                    step=step.name,
                    index=index,
                    model=step.model,
                    error=step_result.error,
                )
                if result.failed_step is None:
                    result.failed_step = step.name
                    result.error = f"step {index} ({step.name}) failed: {step_result.error}"
                if self._config.stop_on_error:
                    result.success = False
                    return result
                continue

            current_input = apply_transform(response.output, step.transform)

        result.final_output = current_input
        result.success = result.failed_step is None

        log.info(
            "chain.completed",
            success=result.success,
            steps=len(result.steps),
            total_duration=round(result.total_duration, 3),
            total_cost=result.total_cost,
        )
        return result
