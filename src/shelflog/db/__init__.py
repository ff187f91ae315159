"""Database module for local SQLite storage."""

from .models import Book, ReadingSession
from .schemas import (
    BookCreate,
    BookResponse,
    BookUpdate,
    FinishChoice,
    ReadingSessionCreate,
    ReadingSessionResponse,
    ReadingStatus,
)
from .sqlite import Database, get_db

__all__ = [
    "Book",
    "ReadingSession",
    "BookCreate",
    "BookUpdate",
    "BookResponse",
    "FinishChoice",
    "ReadingSessionCreate",
    "ReadingSessionResponse",
    "ReadingStatus",
    "Database",
    "get_db",
]
