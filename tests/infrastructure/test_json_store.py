import random
from datetime import datetime, timedelta, timezone

import pytest

from unilex.application.engine import SessionEngine
from unilex.domain.errors import PersistenceError
from unilex.domain.session.models import Grade, SessionState
from unilex.domain.srs.models import ActivityCounts, PerformanceData, SchedulerState
from unilex.infrastructure.adapters.json_store import (
    JsonSessionRepository,
    JsonVocabularyStore,
    atomic_write,
)

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def json_engine(tmp_path):
    def _make():
        return SessionEngine(
            JsonSessionRepository(tmp_path),
            JsonVocabularyStore(tmp_path),
            clock=lambda: NOW,
            rng=random.Random(1),
        )

    return _make


@pytest.mark.asyncio
async def test_session_survives_restart(json_engine, tmp_path, session_config, make_candidates):
    engine = json_engine()
    session = await engine.create(session_config(2), make_candidates(new=3), profile_id="p1")
    session = await engine.grade(session, session.items[0].item_id, Grade(correct=False, feedback="x"))
    session = await engine.toggle_flag(session, session.items[1].item_id)

    # A fresh engine over the same directory sees the committed state
    reopened = await json_engine().open(session.session_id)

    assert reopened.items == session.items
    assert reopened.config == session.config
    assert reopened.progress.current_index == 1
    assert reopened.state is SessionState.IN_PROGRESS
    assert (tmp_path / "sessions" / f"{session.session_id}.json").exists()


@pytest.mark.asyncio
async def test_completed_session_keeps_recap(json_engine, tmp_path, session_config, make_candidates):
    engine = json_engine()
    session = await engine.create(session_config(1), make_candidates(new=1), profile_id="p1")
    done = await engine.grade(session, session.items[0].item_id, Grade(correct=True))

    loaded = await JsonSessionRepository(tmp_path).load(done.session_id)

    assert loaded.recap == done.recap
    assert loaded == done


@pytest.mark.asyncio
async def test_load_missing_session(tmp_path):
    assert await JsonSessionRepository(tmp_path).load("ses_unknown") is None


@pytest.mark.asyncio
async def test_rejects_unsafe_ids(tmp_path):
    repo = JsonSessionRepository(tmp_path)
    with pytest.raises(PersistenceError):
        await repo.load("../etc/passwd")
    with pytest.raises(PersistenceError):
        await repo.load(".hidden")


@pytest.mark.asyncio
async def test_corrupted_session_raises(tmp_path):
    repo = JsonSessionRepository(tmp_path)
    repo.root.mkdir(parents=True)
    (repo.root / "ses_bad.json").write_text("{not json", encoding="utf-8")

    with pytest.raises(PersistenceError):
        await repo.load("ses_bad")


@pytest.mark.asyncio
async def test_list_ids(json_engine, tmp_path, session_config, make_candidates):
    assert JsonSessionRepository(tmp_path).list_ids() == []

    engine = json_engine()
    a = await engine.create(session_config(1), make_candidates(new=1), profile_id="p1")
    b = await engine.create(session_config(1), make_candidates(new=1), profile_id="p1")

    assert JsonSessionRepository(tmp_path).list_ids() == sorted([a.session_id, b.session_id])


@pytest.mark.asyncio
async def test_vocabulary_store_roundtrip(tmp_path):
    store = JsonVocabularyStore(tmp_path)
    state = SchedulerState(
        streak=2,
        interval_hours=144,
        ease_factor=2.54,
        due_at=NOW + timedelta(days=6),
        last_reviewed_at=NOW,
    )
    performance = PerformanceData(recognition=ActivityCounts(2, 1, NOW))

    assert await store.get_scheduler_state("v1") is None
    await store.set_scheduler_state("v1", state)
    await store.set_performance("v1", performance)

    other = JsonVocabularyStore(tmp_path)
    assert await other.get_scheduler_state("v1") == state
    assert await other.get_performance("v1") == performance
    assert other.scheduler_states() == {"v1": state}

    await other.clear_scheduler_state("v1")
    await other.clear_performance("v1")
    assert await store.get_scheduler_state("v1") is None
    assert await store.get_performance("v1") is None


@pytest.mark.asyncio
async def test_corrupted_vocabulary_raises(tmp_path):
    (tmp_path / "vocabulary.json").write_text("{broken", encoding="utf-8")
    with pytest.raises(PersistenceError):
        await JsonVocabularyStore(tmp_path).get_scheduler_state("v1")


def test_atomic_write_leaves_no_temp_files(tmp_path):
    target = tmp_path / "nested" / "doc.json"
    atomic_write(target, b"{}")
    atomic_write(target, b'{"a": 1}')

    assert target.read_bytes() == b'{"a": 1}'
    assert [p.name for p in target.parent.iterdir()] == ["doc.json"]
