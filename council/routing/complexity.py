"""Task complexity assessment for role-based model routing.

Complexity is derived from a TaskSignal with an additive integer score:

Factors scored:
- Files affected: +1 at 2, +2 at 5, +3 at 10 or more
- Lines changed: +1 at 50, +2 at 200, +3 at 500 or more
- Architectural change: +3
- Tests required: +1

Score → level mapping:
- 6 or more: HIGH
- 3 to 5: MEDIUM
- below 3: LOW

Absent a signal the task is treated as MEDIUM.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

import structlog

log = structlog.get_logger(__name__)


class ComplexityLevel(IntEnum):
    """Totally ordered task complexity tiers."""

    LOW = 0
    MEDIUM = 1
    HIGH = 2

    @property
    def label(self) -> str:
        return self.name.lower()

    def __str__(self) -> str:
        return self.label

    @classmethod
    def parse(cls, text: str | None) -> ComplexityLevel:
        """Parse a level label, defaulting to MEDIUM for anything unrecognised."""
        try:
            return cls[(text or "").strip().upper()]
        except KeyError:
            return cls.MEDIUM


@dataclass(frozen=True)
class TaskSignal:
    """Observable facts about a task, used to estimate its complexity.

    Attributes:
        files_affected: Number of files the task will touch
        lines_changed: Estimated lines of code changed
        is_architectural: Whether the change affects architecture
        has_tests: Whether tests need to be written
        description: Free-text description (not scored)
    """

    files_affected: int = 0
    lines_changed: int = 0
    is_architectural: bool = False
    has_tests: bool = False
    description: str = ""


# (threshold, points), checked highest first
_FILE_STEPS = ((10, 3), (5, 2), (2, 1))
_LINE_STEPS = ((500, 3), (200, 2), (50, 1))

HIGH_THRESHOLD = 6
MEDIUM_THRESHOLD = 3


def _step_points(value: int, steps: tuple[tuple[int, int], ...]) -> int:
    for threshold, points in steps:
        if value >= threshold:
            return points
    return 0


def complexity_score(signal: TaskSignal) -> int:
    """Compute the additive complexity score for a task signal."""
    score = _step_points(signal.files_affected, _FILE_STEPS)
    score += _step_points(signal.lines_changed, _LINE_STEPS)
    if signal.is_architectural:
        score += 3
    if signal.has_tests:
        score += 1
    return score


def assess_complexity(signal: TaskSignal | None) -> ComplexityLevel:
    """Classify a task signal into a complexity level.

    Args:
        signal: Task facts, or None when nothing is known about the task

    Returns:
        ComplexityLevel for the task (MEDIUM when signal is None)
    """
    if signal is None:
        return ComplexityLevel.MEDIUM

    score = complexity_score(signal)
    if score >= HIGH_THRESHOLD:
        level = ComplexityLevel.HIGH
    elif score >= MEDIUM_THRESHOLD:
        level = ComplexityLevel.MEDIUM
    else:
        level = ComplexityLevel.LOW

    log.debug(
        "complexity.assessed",
        score=score,
        level=level.label,
        files_affected=signal.files_affected,
        lines_changed=signal.lines_changed,
    )
    return level


def signal_for_level(level: ComplexityLevel) -> TaskSignal:
    """Return a representative signal that assesses to the given level."""
    if level == ComplexityLevel.HIGH:
        return TaskSignal(
            files_affected=10,
            lines_changed=600,
            is_architectural=True,
            has_tests=True,
        )
    if level == ComplexityLevel.LOW:
        return TaskSignal(files_affected=1, lines_changed=10)
    return TaskSignal(files_affected=5, lines_changed=200, has_tests=True)
