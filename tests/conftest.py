import random
from datetime import datetime, timedelta, timezone

import pytest

from unilex.application.engine import SessionEngine
from unilex.domain.session.models import ItemKind, SessionConfig, VocabCandidate
from unilex.domain.srs.models import SchedulerState
from unilex.infrastructure.adapters.memory import (
    InMemorySessionRepository,
    InMemoryVocabularyStore,
)

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Deterministic clock; advance it explicitly between operations."""

    def __init__(self, start: datetime = NOW):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sessions():
    return InMemorySessionRepository()


@pytest.fixture
def vocabulary():
    return InMemoryVocabularyStore()


@pytest.fixture
def engine(sessions, vocabulary, clock):
    return SessionEngine(sessions, vocabulary, clock=clock, rng=random.Random(7))


@pytest.fixture
def session_config():
    def _make(count: int = 3, **kwargs) -> SessionConfig:
        return SessionConfig(
            target_language="es", native_language="en", question_count=count, **kwargs
        )

    return _make


@pytest.fixture
def make_candidates():
    """Factory for candidate pools: `new` fresh entries and `seen` reviewed ones."""

    def _make(
        new: int = 0,
        seen: int = 0,
        kind: ItemKind = ItemKind.FLASHCARD,
        prefix: str = "vocab",
    ) -> list[VocabCandidate]:
        pool = []
        for i in range(new):
            pool.append(
                VocabCandidate(
                    term=f"new term {i}",
                    definition=f"new definition {i}",
                    vocab_id=f"{prefix}_new_{i}",
                    kind=kind,
                )
            )
        for i in range(seen):
            pool.append(
                VocabCandidate(
                    term=f"seen term {i}",
                    definition=f"seen definition {i}",
                    vocab_id=f"{prefix}_seen_{i}",
                    kind=kind,
                    scheduler=SchedulerState(
                        streak=1,
                        interval_hours=24,
                        ease_factor=2.5,
                        due_at=NOW + timedelta(hours=i),
                        last_reviewed_at=NOW - timedelta(days=1),
                    ),
                )
            )
        return pool

    return _make


@pytest.fixture
def mock_home(tmp_path, monkeypatch):
    """Mocks Path.home() to point to a temp dir."""
    home = tmp_path / "home"
    home.mkdir()

    # Isolate config files and the default data dir
    monkeypatch.setenv("HOME", str(home))
    for var in ("UNILEX_BACKEND", "UNILEX_DATA_DIR", "UNILEX_PROFILE_ID"):
        monkeypatch.delenv(var, raising=False)
    return home
