"""
Domain models for practice sessions.

These are pure data structures with no I/O. Records are frozen and use tuples
for their collections, so every transition produces a new record and the
previous one stays valid as a snapshot.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any

from unilex.domain.srs.models import ActivityType, DueEntry, Outcome, PerformanceData, SchedulerState


class ItemKind(str, Enum):
    FLASHCARD = "flashcard"
    TRANSLATION = "translation"

    @property
    def activity(self) -> ActivityType:
        if self is ItemKind.FLASHCARD:
            return ActivityType.RECOGNITION
        return ActivityType.PRODUCTION


class ReviewMode(str, Enum):
    REVIEW_ONLY = "review_only"
    MIXED = "mixed"
    NEW_ONLY = "new_only"


class PresentationSide(str, Enum):
    TERM = "term"
    DEFINITION = "definition"


class SessionState(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


@dataclass(frozen=True)
class Attempt:
    """
    A single graded attempt at an item.

    Attributes:
        attempt_id: Unique id of the attempt.
        outcome: Binary outcome used for tallies and scheduling.
        score: Graded score in [0, 1] (1.0/0.0 for flashcards).
        graded_at: When the attempt was graded.
        answer: Learner answer text, if any.
        error_tags: Error categories reported by the grader.
        feedback: Opaque feedback payload from the content generator.
        elapsed_seconds: Time the learner spent on the item.
    """

    attempt_id: str
    outcome: Outcome
    score: float
    graded_at: datetime
    answer: str | None = None
    error_tags: tuple[str, ...] = ()
    feedback: str | None = None
    elapsed_seconds: float = 0.0


@dataclass(frozen=True)
class Grade:
    """
    Caller-supplied grading input for one item.

    Flashcards pass `correct`; translation prompts usually pass `score` and
    let the outcome be derived from it.
    """

    correct: bool | None = None
    score: float | None = None
    answer: str | None = None
    error_tags: tuple[str, ...] = ()
    feedback: str | None = None
    elapsed_seconds: float = 0.0


@dataclass(frozen=True)
class Item:
    """A flashcard or translation prompt with append-only attempt history."""

    item_id: str
    kind: ItemKind
    prompt: str
    answer: str
    vocab_id: str | None = None
    example: str | None = None
    rubric: dict[str, Any] | None = None
    history: tuple[Attempt, ...] = ()
    is_flagged: bool = False

    @property
    def last_attempt(self) -> Attempt | None:
        return self.history[-1] if self.history else None

    def with_attempt(self, attempt: Attempt) -> "Item":
        return replace(self, history=self.history + (attempt,))

    def without_last_attempt(self) -> "Item":
        return replace(self, history=self.history[:-1])

    def with_flag(self, flagged: bool) -> "Item":
        return replace(self, is_flagged=flagged)

    def reset(self) -> "Item":
        return replace(self, history=())


@dataclass(frozen=True)
class SessionConfig:
    target_language: str
    native_language: str
    difficulty: str = "intermediate"
    review_mode: ReviewMode = ReviewMode.MIXED
    question_count: int = 10
    topic_tags: tuple[str, ...] = ()
    presentation_side: PresentationSide = PresentationSide.TERM
    style_preset: str = "balanced"


@dataclass(frozen=True)
class Progress:
    current_index: int
    is_complete: bool
    last_opened_at: datetime

    def clamped(self, item_count: int) -> "Progress":
        """
        Enforce 0 <= current_index <= item_count and
        is_complete => current_index == item_count.
        """
        index = min(max(self.current_index, 0), item_count)
        if self.is_complete:
            index = item_count
        if index == self.current_index:
            return self
        return replace(self, current_index=index)


@dataclass(frozen=True)
class ItemInsight:
    item_id: str
    prompt: str
    score: float


@dataclass(frozen=True)
class Recap:
    """
    End-of-session summary.

    Created once when the session completes; cleared again if undo rolls back
    the final item.
    """

    accuracy: float
    per_item_durations_seconds: tuple[float, ...]
    recommended_actions: tuple[str, ...]
    due_queue: tuple[DueEntry, ...]
    correct_count: int = 0
    incorrect_count: int = 0
    average_duration_seconds: float = 0.0
    flagged_item_ids: tuple[str, ...] = ()
    strengths: tuple[ItemInsight, ...] = ()
    focus_areas: tuple[ItemInsight, ...] = ()


@dataclass(frozen=True)
class Session:
    session_id: str
    profile_id: str
    created_at: datetime
    config: SessionConfig
    items: tuple[Item, ...]
    progress: Progress
    recap: Recap | None = None

    @property
    def state(self) -> SessionState:
        if self.progress.is_complete:
            return SessionState.COMPLETE
        if self.progress.current_index == 0 and not any(i.history for i in self.items):
            return SessionState.NOT_STARTED
        return SessionState.IN_PROGRESS

    @property
    def current_item(self) -> Item | None:
        if self.progress.is_complete:
            return None
        index = self.progress.current_index
        if 0 <= index < len(self.items):
            return self.items[index]
        return None

    def index_of(self, item_id: str) -> int | None:
        for index, item in enumerate(self.items):
            if item.item_id == item_id:
                return index
        return None

    def with_item(self, index: int, item: Item) -> "Session":
        items = self.items[:index] + (item,) + self.items[index + 1 :]
        return replace(self, items=items)


@dataclass(frozen=True)
class VocabCandidate:
    """
    A vocabulary entry (or externally generated prompt) offered to `create`.

    `vocab_id` is None for prompts not linked to the vocabulary bank.
    """

    term: str
    definition: str
    vocab_id: str | None = None
    example: str | None = None
    kind: ItemKind = ItemKind.FLASHCARD
    rubric: dict[str, Any] | None = None
    created_at: datetime | None = None
    scheduler: SchedulerState | None = None

    @property
    def is_new(self) -> bool:
        return self.scheduler is None or self.scheduler.last_reviewed_at is None


@dataclass(frozen=True)
class VocabSnapshot:
    """Scheduler and performance state of one vocabulary entry (None = absent)."""

    vocab_id: str
    scheduler: SchedulerState | None
    performance: PerformanceData | None


@dataclass(frozen=True)
class UndoEntry:
    """
    Everything needed to reverse one grading transaction.

    Transient: never persisted, cleared whenever a session is (re)opened.
    """

    item_id: str
    progress_before: Progress
    vocab_before: VocabSnapshot | None = None
    due_capture_before: DueEntry | None = None
