"""
Ports (interfaces) for session and vocabulary persistence.

These define the contract that infrastructure adapters must implement.
The session engine depends on these abstractions, not concrete implementations.
Adapters signal failure by raising PersistenceError.
"""

from abc import ABC, abstractmethod

from .session.models import Session
from .srs.models import PerformanceData, SchedulerState


class SessionRepository(ABC):
    """
    Port for whole-record session persistence.

    Implementations:
        - InMemorySessionRepository: Process-local dictionary.
        - JsonSessionRepository: One JSON document per session on disk.
    """

    @abstractmethod
    async def load(self, session_id: str) -> Session | None:
        """
        Load a session by id.

        Returns:
            The stored Session, or None if no record exists.
        """
        pass

    @abstractmethod
    async def save(self, session: Session) -> None:
        """
        Persist the whole session record, replacing any previous version.
        """
        pass


class VocabularyStore(ABC):
    """
    Port for per-vocabulary scheduler state and performance counters.

    Entries are shared across sessions; the engine never assumes exclusive
    ownership of one.
    """

    @abstractmethod
    async def get_scheduler_state(self, vocab_id: str) -> SchedulerState | None:
        pass

    @abstractmethod
    async def set_scheduler_state(self, vocab_id: str, state: SchedulerState) -> None:
        pass

    @abstractmethod
    async def clear_scheduler_state(self, vocab_id: str) -> None:
        """Reset the entry's scheduler state to absent."""
        pass

    @abstractmethod
    async def get_performance(self, vocab_id: str) -> PerformanceData | None:
        pass

    @abstractmethod
    async def set_performance(self, vocab_id: str, data: PerformanceData) -> None:
        pass

    @abstractmethod
    async def clear_performance(self, vocab_id: str) -> None:
        """Reset the entry's performance counters to absent."""
        pass
