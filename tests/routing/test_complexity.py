"""Tests for task complexity assessment.

Tests cover:
- Score → level thresholds
- Missing signal defaults to MEDIUM
- Monotonicity: growing any factor never lowers the level
- Level parsing and representative signals
"""

from __future__ import annotations

import itertools

import pytest

from council.routing.complexity import (
    ComplexityLevel,
    TaskSignal,
    assess_complexity,
    complexity_score,
    signal_for_level,
)


def test_no_signal_is_medium():
    assert assess_complexity(None) == ComplexityLevel.MEDIUM


def test_trivial_task_is_low():
    assert assess_complexity(TaskSignal(files_affected=1, lines_changed=10)) == ComplexityLevel.LOW


@pytest.mark.parametrize(
    ("signal", "expected_score"),
    [
        (TaskSignal(), 0),
        (TaskSignal(files_affected=2), 1),
        (TaskSignal(files_affected=5), 2),
        (TaskSignal(files_affected=10), 3),
        (TaskSignal(lines_changed=50), 1),
        (TaskSignal(lines_changed=200), 2),
        (TaskSignal(lines_changed=500), 3),
        (TaskSignal(is_architectural=True), 3),
        (TaskSignal(has_tests=True), 1),
        (TaskSignal(files_affected=12, lines_changed=900, is_architectural=True, has_tests=True), 10),
    ],
)
def test_complexity_score_steps(signal, expected_score):
    assert complexity_score(signal) == expected_score


def test_thresholds_map_to_levels():
    # score 2 → low, 3 → medium, 5 → medium, 6 → high
    assert assess_complexity(TaskSignal(files_affected=5)) == ComplexityLevel.LOW
    assert assess_complexity(TaskSignal(is_architectural=True)) == ComplexityLevel.MEDIUM
    assert assess_complexity(TaskSignal(files_affected=5, is_architectural=True)) == ComplexityLevel.MEDIUM
    assert (
        assess_complexity(TaskSignal(files_affected=10, is_architectural=True))
        == ComplexityLevel.HIGH
    )


def test_description_is_not_scored():
    plain = TaskSignal(files_affected=3)
    described = TaskSignal(files_affected=3, description="rewrite the whole architecture")
    assert complexity_score(plain) == complexity_score(described)


def test_classification_is_monotonic():
    """Increasing any single factor never decreases the assessed level."""
    files = [0, 1, 2, 4, 5, 9, 10, 50]
    lines = [0, 49, 50, 199, 200, 499, 500, 5000]
    flags = [False, True]

    for f, ln, arch, tests in itertools.product(files, lines, flags, flags):
        base = assess_complexity(
            TaskSignal(files_affected=f, lines_changed=ln, is_architectural=arch, has_tests=tests)
        )
        grown = [
            TaskSignal(files_affected=f + 5, lines_changed=ln, is_architectural=arch, has_tests=tests),
            TaskSignal(files_affected=f, lines_changed=ln + 100, is_architectural=arch, has_tests=tests),
            TaskSignal(files_affected=f, lines_changed=ln, is_architectural=True, has_tests=tests),
            TaskSignal(files_affected=f, lines_changed=ln, is_architectural=arch, has_tests=True),
        ]
        for signal in grown:
            assert assess_complexity(signal) >= base


@pytest.mark.parametrize("level", list(ComplexityLevel))
def test_signal_for_level_round_trips(level):
    assert assess_complexity(signal_for_level(level)) == level


def test_levels_are_ordered_and_labelled():
    assert ComplexityLevel.LOW < ComplexityLevel.MEDIUM < ComplexityLevel.HIGH
    assert str(ComplexityLevel.HIGH) == "high"
    assert ComplexityLevel.LOW.label == "low"


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("high", ComplexityLevel.HIGH),
        (" LOW ", ComplexityLevel.LOW),
        ("medium", ComplexityLevel.MEDIUM),
        ("extreme", ComplexityLevel.MEDIUM),
        (None, ComplexityLevel.MEDIUM),
    ],
)
def test_parse_level(text, expected):
    assert ComplexityLevel.parse(text) == expected
