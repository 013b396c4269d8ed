"""
Spaced-repetition scheduler.

This is a pure computation module with no I/O: every function is
deterministic given its inputs and the supplied `now`, and never mutates
the prior state it is handed.
"""

import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from unilex.domain import constants
from unilex.domain.session.models import ItemKind
from unilex.domain.srs.models import (
    ActivityCounts,
    ActivityType,
    Outcome,
    PerformanceData,
    SchedulerState,
)


@dataclass(frozen=True)
class SchedulerPolicy:
    """
    Tunable bounds for the SM-2 update.

    All thresholds are optional overrides of the defaults in
    `unilex.domain.constants`.
    """

    initial_ease: float = constants.INITIAL_EASE_FACTOR
    min_ease: float = constants.MIN_EASE_FACTOR
    max_ease: float = constants.MAX_EASE_FACTOR
    min_ease_gain: float = constants.MIN_EASE_GAIN
    min_interval_hours: float = constants.MIN_INTERVAL_HOURS
    second_interval_hours: float = constants.SECOND_INTERVAL_HOURS
    max_interval_hours: float = constants.MAX_INTERVAL_HOURS
    priority_interval_hours: float = constants.PRIORITY_INTERVAL_HOURS


DEFAULT_POLICY = SchedulerPolicy()


def quality_for(kind: ItemKind, outcome: Outcome, score: float | None = None) -> int:
    """
    Map an attempt to an SM-2 quality score (0-5).

    Recognition (flashcards): correct -> 4, incorrect -> 2.
    Production (translation): graduated by score, so a strong production
    answer accelerates scheduling more than a recognition swipe.
    """
    correct = outcome is Outcome.CORRECT
    if kind.activity is ActivityType.RECOGNITION or score is None:
        return 4 if correct else 2

    if score >= 0.9:
        return 5
    if score >= 0.7:
        return 4
    if score >= 0.5:
        return 3
    if score >= 0.3:
        return 2
    return 1


def _ease_delta(quality: int) -> float:
    offset = 5 - quality
    return 0.1 - offset * (0.08 + offset * 0.02)


def next_state(
    prior: SchedulerState | None,
    outcome: Outcome,
    *,
    now: datetime,
    quality: int | None = None,
    policy: SchedulerPolicy = DEFAULT_POLICY,
) -> SchedulerState:
    """
    Compute the next review state from a prior state and a graded outcome.

    Args:
        prior: Previous state, or None for the first graded attempt.
        outcome: Correct or incorrect.
        now: Review timestamp.
        quality: Optional SM-2 quality (0-5); defaults to 4 / 2 by outcome.
        policy: Bounds for ease and interval.

    Returns:
        A new SchedulerState; `prior` is left untouched.
    """
    if quality is None:
        quality = 4 if outcome is Outcome.CORRECT else 2

    prev_streak = prior.streak if prior else 0
    prev_interval = prior.interval_hours if prior else 0.0
    prev_ease = prior.ease_factor if prior else policy.initial_ease

    delta = _ease_delta(quality)

    if outcome is Outcome.CORRECT:
        streak = prev_streak + 1
        ease = min(policy.max_ease, max(policy.min_ease, prev_ease + max(delta, policy.min_ease_gain)))
        if prev_streak == 0:
            computed = policy.min_interval_hours
        elif prev_streak == 1:
            computed = policy.second_interval_hours
        elif prev_interval > 0:
            computed = max(policy.min_interval_hours, float(round(prev_interval * ease)))
        else:
            computed = policy.min_interval_hours
        # Growth is monotonic on success, even when the cap is below the prior value.
        interval = max(prev_interval, min(computed, policy.max_interval_hours))
    else:
        streak = 0
        ease = max(policy.min_ease, min(policy.max_ease, prev_ease + delta))
        interval = policy.min_interval_hours

    return SchedulerState(
        streak=streak,
        interval_hours=interval,
        ease_factor=round(ease, 4),
        due_at=now + timedelta(hours=interval),
        last_reviewed_at=now,
        algorithm="sm2",
    )


def prioritize(
    prior: SchedulerState | None,
    *,
    now: datetime,
    policy: SchedulerPolicy = DEFAULT_POLICY,
) -> SchedulerState:
    """
    Force a short fixed due interval for an explicitly flagged entry.

    Bypasses the growth curve: streak, ease factor and last review time are
    carried over unchanged. Flagging is not a graded outcome.
    """
    interval = policy.priority_interval_hours
    return SchedulerState(
        streak=prior.streak if prior else 0,
        interval_hours=interval,
        ease_factor=prior.ease_factor if prior else policy.initial_ease,
        due_at=now + timedelta(hours=interval),
        last_reviewed_at=prior.last_reviewed_at if prior else None,
        algorithm="priority",
    )


def record_performance(
    prior: PerformanceData | None,
    activity: ActivityType,
    outcome: Outcome,
    *,
    now: datetime,
) -> PerformanceData:
    """Increment the counters for the matching activity type."""
    base = prior or PerformanceData()
    counts = base.for_activity(activity)
    correct = outcome is Outcome.CORRECT
    updated = ActivityCounts(
        correct_count=counts.correct_count + (1 if correct else 0),
        incorrect_count=counts.incorrect_count + (0 if correct else 1),
        last_attempt_at=now,
    )
    if activity is ActivityType.RECOGNITION:
        return replace(base, recognition=updated)
    return replace(base, production=updated)


def mastery_level(performance: PerformanceData | None) -> float | None:
    """
    Weighted accuracy: 40% recognition, 60% production.

    If only one activity type has data, that accuracy is used exclusively.
    Returns None when there is no practice data at all.
    """
    if performance is None:
        return None

    recognition = performance.recognition.accuracy
    production = performance.production.accuracy

    if recognition is None and production is None:
        return None
    if recognition is None:
        return production
    if production is None:
        return recognition
    return recognition * constants.RECOGNITION_WEIGHT + production * constants.PRODUCTION_WEIGHT


def is_mastered(performance: PerformanceData | None, scheduler: SchedulerState | None) -> bool:
    mastery = mastery_level(performance)
    if mastery is None or mastery < constants.MASTERY_THRESHOLD:
        return False

    assert performance is not None
    total_correct = performance.recognition.correct_count + performance.production.correct_count
    if total_correct < constants.MASTERY_MIN_CORRECT:
        return False

    streak = scheduler.streak if scheduler else 0
    return streak >= constants.MASTERY_MIN_STREAK


def days_until_due(state: SchedulerState | None, now: datetime) -> float | None:
    """Days until the entry is due (negative if overdue), rounded to one decimal."""
    if state is None:
        return None
    days = (state.due_at - now).total_seconds() / 86400.0
    return math.floor(days * 10 + 0.5) / 10


def is_due(state: SchedulerState | None, now: datetime) -> bool:
    if state is None:
        return False
    return now >= state.due_at
