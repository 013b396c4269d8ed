from datetime import datetime, timezone

import pytest

from unilex.application.pool_loader import load_candidates, parse_candidates
from unilex.domain.errors import ContentError
from unilex.domain.session.models import ItemKind

POOL = """\
cards:
  - id: vocab_001
    term: la mesa
    definition: the table
    example: La mesa es grande.
    created_at: 2026-01-04T10:00:00Z
  - id: vocab_002
    term: el perro
    definition: the dog
    kind: translation
    rubric:
      focus: articles
  - term: only a term
  - just a string
  - term: el gato
    definition: the cat
    kind: essay
"""


def test_load_candidates(tmp_path):
    path = tmp_path / "pool.yaml"
    path.write_text(POOL, encoding="utf-8")

    candidates = load_candidates(path)

    assert [c.vocab_id for c in candidates] == ["vocab_001", "vocab_002"]
    first, second = candidates
    assert first.term == "la mesa"
    assert first.example == "La mesa es grande."
    assert first.kind is ItemKind.FLASHCARD
    assert first.created_at == datetime(2026, 1, 4, 10, 0, tzinfo=timezone.utc)
    assert first.is_new
    assert second.kind is ItemKind.TRANSLATION
    assert second.rubric == {"focus": "articles"}


def test_unlinked_card_has_no_vocab_id():
    candidates = parse_candidates({"cards": [{"term": "hola", "definition": "hello"}]})
    assert candidates[0].vocab_id is None


def test_timestamp_strings_are_parsed():
    candidates = parse_candidates(
        {"cards": [{"id": "v", "term": "t", "definition": "d", "created_at": "2026-02-01 08:00"}]}
    )
    assert candidates[0].created_at == datetime(2026, 2, 1, 8, 0, tzinfo=timezone.utc)


def test_missing_file(tmp_path):
    with pytest.raises(ContentError):
        load_candidates(tmp_path / "nope.yaml")


def test_invalid_yaml(tmp_path):
    path = tmp_path / "broken.yaml"
    path.write_text("cards: [unclosed", encoding="utf-8")
    with pytest.raises(ContentError):
        load_candidates(path)


def test_cards_must_be_a_list():
    with pytest.raises(ContentError):
        parse_candidates({"cards": {"term": "t"}})
    with pytest.raises(ContentError):
        parse_candidates(["not", "a", "mapping"])


def test_empty_file(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert load_candidates(path) == []
