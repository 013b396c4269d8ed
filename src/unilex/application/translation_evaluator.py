"""
Local rubric scoring for translation answers.

A rubric is the item's opaque payload read as:

    must_include: tokens a full-credit answer contains
    reject: tokens that zero the score
    error_tags: pitfall tags reported on anything short of full credit
    expected: [{text, notes}] reference translations
    insight: one-line hint shown with feedback

Missing keys are treated as empty.
"""

from collections.abc import Mapping
from typing import Any

from unilex.domain.session.models import Grade

FULL_CREDIT_FEEDBACK = "Nice work! You captured the exact phrasing the tutor expected."


def _normalise(value: str) -> str:
    return value.strip().lower()


def _strings(rubric: Mapping[str, Any], key: str) -> list[str]:
    value = rubric.get(key) or []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


def evaluate_translation(
    answer: str, rubric: Mapping[str, Any], *, elapsed_seconds: float = 0.0
) -> Grade:
    """
    Score an answer against a rubric.

    A rejected token scores 0.0, all required tokens present scores 1.0,
    anything in between scores 0.5.
    """
    normalized = _normalise(answer)
    missing = [t for t in _strings(rubric, "must_include") if t.lower() not in normalized]
    rejected = any(t.lower() in normalized for t in _strings(rubric, "reject"))

    if rejected:
        score = 0.0
    elif not missing:
        score = 1.0
    else:
        score = 0.5

    insight = str(rubric.get("insight") or "").strip()
    if score == 1.0:
        feedback = FULL_CREDIT_FEEDBACK
    else:
        best = next(
            (
                e
                for e in rubric.get("expected") or []
                if isinstance(e, Mapping) and e.get("text")
                and _normalise(str(e["text"])) in normalized
            ),
            None,
        )
        if best is not None:
            feedback = f"Close! {best.get('notes') or ''} {insight}".strip()
        else:
            feedback = f"Review: {insight}" if insight else "Review the expected translation."

    return Grade(
        score=score,
        answer=answer,
        error_tags=tuple(_strings(rubric, "error_tags")) if score < 1.0 else (),
        feedback=feedback,
        elapsed_seconds=elapsed_seconds,
    )
