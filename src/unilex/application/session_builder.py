"""
Session builder for practice sessions.

Builds the fixed item list of a new session by:
1. Partitioning the candidate pool into new and previously seen entries
2. Drawing per review mode (review-only, mixed, new-only)
3. Making sure the newest unreviewed bank entry gets practised
"""

import logging
import random
from collections.abc import Iterable
from datetime import datetime

from unilex.domain.errors import ContentError, InsufficientContent
from unilex.domain.session.models import (
    Item,
    PresentationSide,
    Progress,
    ReviewMode,
    Session,
    SessionConfig,
    VocabCandidate,
)

from .id_service import generate_item_id, generate_session_id

logger = logging.getLogger(__name__)


def _dedupe(candidates: Iterable[VocabCandidate]) -> list[VocabCandidate]:
    seen_ids: set[str] = set()
    unique: list[VocabCandidate] = []
    for candidate in candidates:
        if candidate.vocab_id is not None:
            if candidate.vocab_id in seen_ids:
                continue
            seen_ids.add(candidate.vocab_id)
        unique.append(candidate)
    return unique


def _due_key(candidate: VocabCandidate) -> float:
    if candidate.scheduler is None:
        return float("inf")
    return candidate.scheduler.due_at.timestamp()


def select_candidates(
    candidates: Iterable[VocabCandidate],
    review_mode: ReviewMode,
    count: int,
    rng: random.Random,
) -> list[VocabCandidate]:
    """
    Pick `count` candidates for the requested review mode.

    Raises:
        InsufficientContent: if the pool cannot satisfy the count and mode.
    """
    if count < 0:
        raise ContentError(f"question count must not be negative (got {count})")

    pool = _dedupe(candidates)
    rng.shuffle(pool)

    fresh = [c for c in pool if c.is_new]
    # Overdue entries first; shuffle order breaks ties
    seen = sorted((c for c in pool if not c.is_new), key=_due_key)

    if count == 0:
        return []

    if review_mode is ReviewMode.REVIEW_ONLY:
        if len(seen) < count:
            raise InsufficientContent(
                f"Only {len(seen)} previously reviewed items available. "
                "Reduce the question count or switch review mode.",
                available=len(seen),
                requested=count,
            )
        return seen[:count]

    if review_mode is ReviewMode.NEW_ONLY:
        if len(fresh) < count:
            raise InsufficientContent(
                f"Only {len(fresh)} new items available. "
                "Reduce the question count or add more words.",
                available=len(fresh),
                requested=count,
            )
        return fresh[:count]

    if len(pool) < count:
        raise InsufficientContent(
            f"Only {len(pool)} items available. Reduce the question count or add more words.",
            available=len(pool),
            requested=count,
        )

    half = max(1, count // 2)
    review_part = seen[:half]
    new_part = fresh[: count - len(review_part)]
    backfill = seen[len(review_part) : len(review_part) + count - len(review_part) - len(new_part)]
    return review_part + new_part + backfill


def ensure_latest_unreviewed(
    picked: list[VocabCandidate],
    candidates: Iterable[VocabCandidate],
    review_mode: ReviewMode,
) -> list[VocabCandidate]:
    """
    Make sure the most recently added, never-reviewed bank entry is included.

    Review-only sessions are left untouched. The entry replaces the first new
    (or unlinked) pick, otherwise the last slot.
    """
    if review_mode is ReviewMode.REVIEW_ONLY or not picked:
        return picked

    unreviewed = [
        c for c in candidates if c.vocab_id is not None and c.is_new and c.created_at is not None
    ]
    if not unreviewed:
        return picked

    latest = max(unreviewed, key=lambda c: c.created_at)  # type: ignore[arg-type,return-value]
    if any(c.vocab_id == latest.vocab_id for c in picked):
        return picked

    result = list(picked)
    for index, candidate in enumerate(result):
        if candidate.is_new or candidate.vocab_id is None:
            result[index] = latest
            return result
    result[-1] = latest
    return result


def to_item(candidate: VocabCandidate, side: PresentationSide) -> Item:
    if side is PresentationSide.TERM:
        prompt, answer = candidate.term, candidate.definition
    else:
        prompt, answer = candidate.definition, candidate.term

    return Item(
        item_id=generate_item_id(),
        kind=candidate.kind,
        prompt=prompt,
        answer=answer,
        vocab_id=candidate.vocab_id,
        example=candidate.example,
        rubric=dict(candidate.rubric) if candidate.rubric is not None else None,
    )


def build_session(
    config: SessionConfig,
    candidates: Iterable[VocabCandidate],
    *,
    profile_id: str,
    now: datetime,
    rng: random.Random | None = None,
) -> Session:
    """
    Build a new, unsaved session from a candidate pool.

    Raises:
        ContentError: if the pool cannot satisfy the request. Not retried.
    """
    rng = rng or random.Random()
    candidates = list(candidates)

    picked = select_candidates(candidates, config.review_mode, config.question_count, rng)
    picked = ensure_latest_unreviewed(picked, candidates, config.review_mode)

    items = tuple(to_item(c, config.presentation_side) for c in picked)
    logger.debug(
        f"[builder] mode={config.review_mode.value} requested={config.question_count} "
        f"pool={len(candidates)} picked={len(items)}"
    )

    return Session(
        session_id=generate_session_id(),
        profile_id=profile_id,
        created_at=now,
        config=config,
        items=items,
        progress=Progress(current_index=0, is_complete=len(items) == 0, last_opened_at=now),
        recap=None,
    )
