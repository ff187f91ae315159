"""SQLAlchemy ORM models for the local SQLite store.

Tables:
- books: Book records with status and page progress
- reading_sessions: The ledger of finished reading sessions
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import Boolean, ForeignKey, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ..utils import from_iso
from .schemas import ReadingStatus


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def generate_uuid() -> str:
    """Generate a UUID string for primary keys."""
    return str(uuid4())


def utc_timestamp() -> str:
    """Current UTC time as an ISO string."""
    return datetime.now(timezone.utc).isoformat()


class Book(Base):
    """Book model - identity, status and page progress."""

    __tablename__ = "books"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)

    title: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    author: Mapped[str] = mapped_column(String(500), nullable=False, index=True)

    # Progress
    total_pages: Mapped[Optional[int]] = mapped_column(Integer)
    current_page: Mapped[int] = mapped_column(Integer, default=0)
    saved_current_page: Mapped[Optional[int]] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(
        String(20), default=ReadingStatus.WANT_TO_READ.value, index=True
    )

    # Dates (ISO datetimes)
    date_added: Mapped[str] = mapped_column(String(32), default=utc_timestamp)
    date_started: Mapped[Optional[str]] = mapped_column(String(32))
    date_finished: Mapped[Optional[str]] = mapped_column(String(32))

    # Timestamps
    created_at: Mapped[str] = mapped_column(String(32), default=utc_timestamp)
    updated_at: Mapped[str] = mapped_column(
        String(32), default=utc_timestamp, onupdate=utc_timestamp
    )

    def __repr__(self) -> str:
        return f"<Book(id={self.id}, title='{self.title}', status={self.status})>"

    @property
    def reading_status(self) -> ReadingStatus:
        """Status as an enum member."""
        return ReadingStatus(self.status)

    @property
    def progress_percent(self) -> float:
        """Percentage of the book read, 0-100."""
        if not self.total_pages:
            return 0.0
        return min(100.0, max(0.0, self.current_page / self.total_pages * 100))


class ReadingSession(Base):
    """Reading session model - one finished entry in the ledger.

    Sessions point at their book by ID only; a book's sessions are found
    by query.
    """

    __tablename__ = "reading_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    book_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True
    )

    start_date: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    end_date: Mapped[Optional[str]] = mapped_column(String(32))
    start_page: Mapped[int] = mapped_column(Integer, default=0)
    end_page: Mapped[int] = mapped_column(Integer, default=0)
    duration_minutes: Mapped[int] = mapped_column(Integer, default=0)

    # Rewards
    xp_earned: Mapped[int] = mapped_column(Integer, default=0)
    xp_awarded: Mapped[bool] = mapped_column(Boolean, default=False)

    # Provenance
    is_auto_generated: Mapped[bool] = mapped_column(Boolean, default=False)
    counts_toward_stats: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    is_imported: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[str] = mapped_column(String(32), default=utc_timestamp)

    def __repr__(self) -> str:
        return (
            f"<ReadingSession(id={self.id}, book_id={self.book_id}, "
            f"pages={self.start_page}->{self.end_page})>"
        )

    @property
    def pages_read(self) -> int:
        """Pages covered; negative when progress was corrected downward."""
        return (self.end_page or 0) - (self.start_page or 0)

    @property
    def started_at(self) -> datetime:
        return from_iso(self.start_date)

    @property
    def ended_at(self) -> Optional[datetime]:
        return from_iso(self.end_date)

    @property
    def chronological_key(self) -> tuple[datetime, datetime, str]:
        """Sort key: end (or start) time, then start time, then insertion time."""
        started = self.started_at
        return (self.ended_at or started, started, self.created_at or "")
