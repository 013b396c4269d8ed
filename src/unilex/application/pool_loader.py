"""
Candidate pool loader.

Reads vocabulary candidates from a YAML document of the form:

    cards:
      - id: vocab_001
        term: la mesa
        definition: the table
        example: La mesa es grande.
        kind: flashcard
        created_at: 2026-01-04T10:00:00Z
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml

from unilex.domain.errors import ContentError
from unilex.domain.session.models import ItemKind, VocabCandidate

logger = logging.getLogger(__name__)


def _parse_timestamp(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        moment = value
    else:
        try:
            moment = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def parse_candidates(meta: Any, source: str = "<pool>") -> list[VocabCandidate]:
    """Convert a parsed YAML document into candidates, skipping malformed cards."""
    if not isinstance(meta, dict):
        raise ContentError(f"{source}: expected a mapping with a 'cards' list")

    cards = meta.get("cards", [])
    if not isinstance(cards, list):
        raise ContentError(f"{source}: 'cards' must be a list")

    candidates: list[VocabCandidate] = []
    for index, card in enumerate(cards):
        if not isinstance(card, dict):
            logger.warning(f"[pool] {source}: card #{index} is not a mapping, skipped")
            continue

        term = card.get("term")
        definition = card.get("definition")
        if not term or not definition:
            logger.warning(f"[pool] {source}: card #{index} lacks term/definition, skipped")
            continue

        try:
            kind = ItemKind(card.get("kind", ItemKind.FLASHCARD.value))
        except ValueError:
            logger.warning(f"[pool] {source}: card #{index} has unknown kind {card.get('kind')!r}")
            continue

        rubric = card.get("rubric")
        candidates.append(
            VocabCandidate(
                term=str(term),
                definition=str(definition),
                vocab_id=str(card["id"]) if card.get("id") else None,
                example=str(card["example"]) if card.get("example") else None,
                kind=kind,
                rubric=rubric if isinstance(rubric, dict) else None,
                created_at=_parse_timestamp(card.get("created_at")),
            )
        )

    return candidates


def load_candidates(path: Path) -> list[VocabCandidate]:
    """
    Load a candidate pool from a YAML file.

    Raises:
        ContentError: if the file cannot be read or is not a card list.
    """
    try:
        meta = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise ContentError(f"Could not read candidate pool {path}: {e}") from e

    candidates = parse_candidates(meta or {}, source=path.name)
    logger.info(f"[pool] Loaded {len(candidates)} candidates from {path.name}")
    return candidates
