# Domain Session Package
from .models import (
    Attempt,
    Grade,
    Item,
    ItemInsight,
    ItemKind,
    PresentationSide,
    Progress,
    Recap,
    ReviewMode,
    Session,
    SessionConfig,
    SessionState,
    UndoEntry,
    VocabCandidate,
    VocabSnapshot,
)

__all__ = [
    "Attempt",
    "Grade",
    "Item",
    "ItemInsight",
    "ItemKind",
    "PresentationSide",
    "Progress",
    "Recap",
    "ReviewMode",
    "Session",
    "SessionConfig",
    "SessionState",
    "UndoEntry",
    "VocabCandidate",
    "VocabSnapshot",
]
