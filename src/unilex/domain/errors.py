"""Error taxonomy for the practice engine."""


class UnilexError(Exception):
    """Base class for all engine errors."""


class ContentError(UnilexError):
    """A session could not be built from the supplied content."""


class InsufficientContent(ContentError):
    """The candidate pool cannot satisfy the requested count and review mode."""

    def __init__(self, message: str, available: int = 0, requested: int = 0):
        super().__init__(message)
        self.available = available
        self.requested = requested


class PersistenceError(UnilexError):
    """A Session Repository or Vocabulary Store call failed."""


class InvalidOperation(UnilexError):
    """An operation was attempted against a session state that forbids it."""
