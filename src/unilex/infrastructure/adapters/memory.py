"""
In-memory adapters — process-local implementations of the persistence ports.

Used by tests and by callers that embed the engine with their own storage.
Records are frozen dataclasses, so storing references is safe.
"""

from unilex.domain.ports import SessionRepository, VocabularyStore
from unilex.domain.session.models import Session
from unilex.domain.srs.models import PerformanceData, SchedulerState


class InMemorySessionRepository(SessionRepository):
    def __init__(self, sessions: dict[str, Session] | None = None):
        self.sessions: dict[str, Session] = dict(sessions or {})

    async def load(self, session_id: str) -> Session | None:
        return self.sessions.get(session_id)

    async def save(self, session: Session) -> None:
        self.sessions[session.session_id] = session

    def list_ids(self) -> list[str]:
        return sorted(self.sessions)


class InMemoryVocabularyStore(VocabularyStore):
    def __init__(self):
        self.scheduler: dict[str, SchedulerState] = {}
        self.performance: dict[str, PerformanceData] = {}

    async def get_scheduler_state(self, vocab_id: str) -> SchedulerState | None:
        return self.scheduler.get(vocab_id)

    async def set_scheduler_state(self, vocab_id: str, state: SchedulerState) -> None:
        self.scheduler[vocab_id] = state

    async def clear_scheduler_state(self, vocab_id: str) -> None:
        self.scheduler.pop(vocab_id, None)

    async def get_performance(self, vocab_id: str) -> PerformanceData | None:
        return self.performance.get(vocab_id)

    async def set_performance(self, vocab_id: str, data: PerformanceData) -> None:
        self.performance[vocab_id] = data

    async def clear_performance(self, vocab_id: str) -> None:
        self.performance.pop(vocab_id, None)

    def scheduler_states(self) -> dict[str, SchedulerState]:
        return dict(self.scheduler)
