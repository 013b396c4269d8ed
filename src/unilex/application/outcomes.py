"""
Outcome aggregation over session items.

Pure functions: tallies are recomputed from the current item list on demand
instead of being kept in sync as mutable counters.
"""

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from unilex.domain.session.models import Item
from unilex.domain.srs.models import Outcome


@dataclass(frozen=True)
class OutcomeCounts:
    correct: int = 0
    incorrect: int = 0

    @property
    def answered(self) -> int:
        return self.correct + self.incorrect

    @property
    def accuracy(self) -> float:
        return accuracy(self)


def compute_outcomes(items: Iterable[Item]) -> OutcomeCounts:
    """
    Count items by the outcome of their most recent attempt.

    Items with no history are excluded from both counts, so the result does
    not depend on item order.
    """
    correct = 0
    incorrect = 0
    for item in items:
        last = item.last_attempt
        if last is None:
            continue
        if last.outcome is Outcome.CORRECT:
            correct += 1
        else:
            incorrect += 1
    return OutcomeCounts(correct=correct, incorrect=incorrect)


def accuracy(counts: OutcomeCounts) -> float:
    """correct / (correct + incorrect), with 0/0 -> 0."""
    if counts.answered == 0:
        return 0.0
    return counts.correct / counts.answered


def missed_items(items: Iterable[Item]) -> list[Item]:
    """Items whose last attempt was incorrect, in their original order."""
    return [
        item
        for item in items
        if item.last_attempt is not None and item.last_attempt.outcome is Outcome.INCORRECT
    ]


def average_duration_seconds(durations: Sequence[float]) -> float:
    if not durations:
        return 0.0
    return sum(durations) / len(durations)


def format_accuracy(fraction: float) -> str:
    if not math.isfinite(fraction):
        fraction = 0.0
    return f"{round(max(0.0, min(1.0, fraction)) * 100)}%"


def format_seconds(seconds: float) -> str:
    return f"{round(seconds)}s"
