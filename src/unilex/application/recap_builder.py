"""
Recap builder for completed sessions.

This is a pure computation module with no I/O. Calling `build_recap` twice
on the same items and duration samples yields equal recaps.
"""

import math
from collections.abc import Mapping, Sequence
from datetime import datetime

from unilex.domain import constants
from unilex.domain.session.models import Item, ItemInsight, Recap
from unilex.domain.srs.models import DueEntry

from .outcomes import average_duration_seconds, compute_outcomes

INCREASE_DIFFICULTY = "Switch to comprehension or increase difficulty."
REPEAT_SET = "Repeat this set to reinforce tricky items."
REVIEW_MISSED = "Review the missed items."


def normalize_durations(items: Sequence[Item], durations: Sequence[float] | None) -> tuple[float, ...]:
    """
    One duration per item.

    Without caller samples, each item's last attempt `elapsed_seconds` is used.
    Missing, negative or non-finite samples become 0.
    """
    normalized: list[float] = []
    for index, item in enumerate(items):
        if durations is None:
            last = item.last_attempt
            value = last.elapsed_seconds if last else 0.0
        else:
            value = durations[index] if index < len(durations) else 0.0

        if not isinstance(value, (int, float)) or not math.isfinite(value) or value < 0:
            value = 0.0
        normalized.append(float(value))
    return tuple(normalized)


def recommend_actions(accuracy: float, incorrect: int, threshold: float) -> tuple[str, ...]:
    actions = [INCREASE_DIFFICULTY if accuracy >= threshold else REPEAT_SET]
    if incorrect > 0:
        actions.append(REVIEW_MISSED)
    return tuple(actions)


def _insights(items: Sequence[Item]) -> tuple[tuple[ItemInsight, ...], tuple[ItemInsight, ...]]:
    enriched = [
        ItemInsight(
            item_id=item.item_id,
            prompt=item.prompt,
            score=item.last_attempt.score if item.last_attempt else 0.0,
        )
        for item in items
    ]
    if not enriched:
        return (), ()

    # sorted() is stable, so ties keep item order
    strengths = sorted(
        (e for e in enriched if e.score >= constants.STRENGTH_SCORE),
        key=lambda e: -e.score,
    )[: constants.MAX_INSIGHTS]
    focus = sorted(
        (e for e in enriched if e.score < constants.FOCUS_SCORE),
        key=lambda e: e.score,
    )[: constants.MAX_INSIGHTS]

    return (
        tuple(strengths) if strengths else (enriched[0],),
        tuple(focus) if focus else (enriched[-1],),
    )


def build_recap(
    items: Sequence[Item],
    due_captures: Mapping[str, datetime] | Sequence[DueEntry],
    durations: Sequence[float] | None = None,
    *,
    threshold: float = constants.RECAP_ACCURACY_THRESHOLD,
) -> Recap:
    """
    Derive the end-of-session summary from the item list.

    Args:
        items: Session items with their attempt history.
        due_captures: vocab_id -> due_at captured while grading, in capture order.
        durations: Optional per-item elapsed seconds supplied by the caller.
        threshold: Accuracy at or above which a harder set is recommended.
    """
    counts = compute_outcomes(items)
    per_item = normalize_durations(items, durations)

    if isinstance(due_captures, Mapping):
        due_queue = tuple(DueEntry(vocab_id=k, due_at=v) for k, v in due_captures.items())
    else:
        due_queue = tuple(due_captures)

    strengths, focus_areas = _insights(items)

    return Recap(
        accuracy=counts.accuracy,
        per_item_durations_seconds=per_item,
        recommended_actions=recommend_actions(counts.accuracy, counts.incorrect, threshold),
        due_queue=due_queue,
        correct_count=counts.correct,
        incorrect_count=counts.incorrect,
        average_duration_seconds=average_duration_seconds(per_item),
        flagged_item_ids=tuple(item.item_id for item in items if item.is_flagged),
        strengths=strengths,
        focus_areas=focus_areas,
    )
