"""Exceptions raised by the shelflog core."""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .reading.models import ActiveReadingSession


class ShelflogError(Exception):
    """Base class for all shelflog errors."""


class PersistenceFailure(ShelflogError):
    """The store failed to flush or commit a unit of work."""

    def __init__(self, message: str, original: Optional[Exception] = None):
        super().__init__(message)
        self.original = original


class ConflictError(ShelflogError):
    """A live reading session already exists."""

    def __init__(self, existing: "ActiveReadingSession"):
        super().__init__(
            f"A reading session is already active for book {existing.book_id}. "
            "End it before starting another."
        )
        self.existing = existing


class BookNotFoundError(ShelflogError):
    """No book with the given ID."""

    def __init__(self, book_id: str):
        super().__init__(f"Book not found: {book_id}")
        self.book_id = book_id


class SessionNotFoundError(ShelflogError):
    """No ledger entry with the given ID."""

    def __init__(self, session_id: str):
        super().__init__(f"Reading session not found: {session_id}")
        self.session_id = session_id
