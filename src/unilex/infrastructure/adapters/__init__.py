# Infrastructure Adapters Package
from .json_store import JsonSessionRepository, JsonVocabularyStore
from .memory import InMemorySessionRepository, InMemoryVocabularyStore

__all__ = [
    "InMemorySessionRepository",
    "InMemoryVocabularyStore",
    "JsonSessionRepository",
    "JsonVocabularyStore",
]
