"""
Adapter Factory
Centralizes the logic for selecting persistence adapters and wiring the engine.
"""

from unilex.domain.ports import SessionRepository, VocabularyStore
from unilex.infrastructure.adapters.json_store import JsonSessionRepository, JsonVocabularyStore
from unilex.infrastructure.adapters.memory import (
    InMemorySessionRepository,
    InMemoryVocabularyStore,
)

from .config import AppConfig
from .engine import SessionEngine


def get_session_repository(config: AppConfig) -> SessionRepository:
    """
    Returns the SessionRepository implementation selected by config.backend.
    """
    if config.backend == "memory":
        return InMemorySessionRepository()
    return JsonSessionRepository(config.data_dir)


def get_vocabulary_store(config: AppConfig) -> VocabularyStore:
    """
    Returns the VocabularyStore implementation selected by config.backend.
    """
    if config.backend == "memory":
        return InMemoryVocabularyStore()
    return JsonVocabularyStore(config.data_dir)


def build_engine(
    config: AppConfig,
    sessions: SessionRepository | None = None,
    vocabulary: VocabularyStore | None = None,
) -> SessionEngine:
    return SessionEngine(
        sessions or get_session_repository(config),
        vocabulary or get_vocabulary_store(config),
        policy=config.scheduler_policy(),
        recap_threshold=config.recap_accuracy_threshold,
    )
