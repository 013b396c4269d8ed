"""
JSON file adapters — Infrastructure implementations of the persistence ports.

Sessions are stored one document per file under `<data_dir>/sessions/`;
scheduler state and performance counters share `<data_dir>/vocabulary.json`.
Every write goes to a temporary file first and is moved into place, so a
crash never leaves a half-written record behind.
"""

import logging
import os
import re
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from unilex.domain.errors import PersistenceError
from unilex.domain.ports import SessionRepository, VocabularyStore
from unilex.domain.session.models import Session
from unilex.domain.srs.models import PerformanceData, SchedulerState

logger = logging.getLogger(__name__)

SAFE_ID_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


@dataclass
class VocabularyDocument:
    scheduler: dict[str, SchedulerState] = field(default_factory=dict)
    performance: dict[str, PerformanceData] = field(default_factory=dict)


_SESSION = TypeAdapter(Session)
_VOCABULARY = TypeAdapter(VocabularyDocument)


def atomic_write(path: Path, data: bytes) -> None:
    """Write `data` to `path` via a temp file in the same directory."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class JsonSessionRepository(SessionRepository):
    """Stores each session as `<data_dir>/sessions/<session_id>.json`."""

    def __init__(self, data_dir: Path):
        self.root = Path(data_dir) / "sessions"

    def _path(self, session_id: str) -> Path:
        if not SAFE_ID_RE.match(session_id) or session_id.startswith("."):
            raise PersistenceError(f"Invalid session id: {session_id!r}")
        return self.root / f"{session_id}.json"

    async def load(self, session_id: str) -> Session | None:
        path = self._path(session_id)
        if not path.exists():
            return None
        try:
            return _SESSION.validate_json(path.read_bytes())
        except (OSError, ValidationError) as e:
            logger.warning(f"Failed to load session {session_id}: {e}")
            raise PersistenceError(f"Could not load session {session_id}: {e}") from e

    async def save(self, session: Session) -> None:
        path = self._path(session.session_id)
        try:
            atomic_write(path, _SESSION.dump_json(session, indent=2))
        except OSError as e:
            logger.warning(f"Failed to save session {session.session_id}: {e}")
            raise PersistenceError(f"Could not save session {session.session_id}: {e}") from e

    def list_ids(self) -> list[str]:
        if not self.root.exists():
            return []
        return sorted(p.stem for p in self.root.glob("*.json"))


class JsonVocabularyStore(VocabularyStore):
    """
    Stores scheduler state and performance counters in one JSON document.

    Every call reads the latest document from disk; writes rewrite it whole.
    """

    def __init__(self, data_dir: Path):
        self.path = Path(data_dir) / "vocabulary.json"

    def _read(self) -> VocabularyDocument:
        if not self.path.exists():
            return VocabularyDocument()
        try:
            return _VOCABULARY.validate_json(self.path.read_bytes())
        except (OSError, ValidationError) as e:
            logger.warning(f"Failed to read vocabulary store {self.path}: {e}")
            raise PersistenceError(f"Could not read vocabulary store: {e}") from e

    def _write(self, doc: VocabularyDocument) -> None:
        try:
            atomic_write(self.path, _VOCABULARY.dump_json(doc, indent=2))
        except OSError as e:
            logger.warning(f"Failed to write vocabulary store {self.path}: {e}")
            raise PersistenceError(f"Could not write vocabulary store: {e}") from e

    async def get_scheduler_state(self, vocab_id: str) -> SchedulerState | None:
        return self._read().scheduler.get(vocab_id)

    async def set_scheduler_state(self, vocab_id: str, state: SchedulerState) -> None:
        doc = self._read()
        doc.scheduler[vocab_id] = state
        self._write(doc)

    async def clear_scheduler_state(self, vocab_id: str) -> None:
        doc = self._read()
        if doc.scheduler.pop(vocab_id, None) is not None:
            self._write(doc)

    async def get_performance(self, vocab_id: str) -> PerformanceData | None:
        return self._read().performance.get(vocab_id)

    async def set_performance(self, vocab_id: str, data: PerformanceData) -> None:
        doc = self._read()
        doc.performance[vocab_id] = data
        self._write(doc)

    async def clear_performance(self, vocab_id: str) -> None:
        doc = self._read()
        if doc.performance.pop(vocab_id, None) is not None:
            self._write(doc)

    def scheduler_states(self) -> dict[str, SchedulerState]:
        return dict(self._read().scheduler)
