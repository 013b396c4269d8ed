"""
Domain models for spaced-repetition bookkeeping.

These are pure data structures with no I/O or external dependencies.
They are owned by the Vocabulary Store, not by any one session.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Literal


class Outcome(str, Enum):
    CORRECT = "correct"
    INCORRECT = "incorrect"


class ActivityType(str, Enum):
    """
    Recognition = passive recall (flashcards).
    Production = active recall (translation, writing).
    """

    RECOGNITION = "recognition"
    PRODUCTION = "production"


@dataclass(frozen=True)
class SchedulerState:
    """
    Spaced-repetition state for one vocabulary entry.

    Attributes:
        streak: Consecutive successful reviews.
        interval_hours: Current review interval.
        ease_factor: SM-2 growth factor (always > 0).
        due_at: When the entry should next be reviewed.
        last_reviewed_at: Last graded review, None if never graded.
        algorithm: "sm2" for graded updates, "priority" when forced by a flag.
    """

    streak: int
    interval_hours: float
    ease_factor: float
    due_at: datetime
    last_reviewed_at: datetime | None = None
    algorithm: Literal["sm2", "priority"] = "sm2"


@dataclass(frozen=True)
class ActivityCounts:
    correct_count: int = 0
    incorrect_count: int = 0
    last_attempt_at: datetime | None = None

    @property
    def total(self) -> int:
        return self.correct_count + self.incorrect_count

    @property
    def accuracy(self) -> float | None:
        if self.total == 0:
            return None
        return self.correct_count / self.total


@dataclass(frozen=True)
class PerformanceData:
    """
    Aggregate performance counters, tallied per activity type.

    Accumulated independently of the scheduler state so mastery can be
    estimated without full scheduling history.
    """

    recognition: ActivityCounts = field(default_factory=ActivityCounts)
    production: ActivityCounts = field(default_factory=ActivityCounts)

    def for_activity(self, activity: ActivityType) -> ActivityCounts:
        if activity is ActivityType.RECOGNITION:
            return self.recognition
        return self.production


@dataclass(frozen=True)
class DueEntry:
    """A (vocab_id, due_at) pair captured while grading."""

    vocab_id: str
    due_at: datetime
