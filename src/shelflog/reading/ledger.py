"""Session ledger - the durable record of finished reading sessions.

Appending never touches rewards; whoever appends is responsible for
running the gamification award path exactly once. Deleting rolls the
book's page back when the newest entry goes, and leaves it to the caller
to rebuild the profile afterwards.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db.models import Book, ReadingSession
from ..db.schemas import ReadingSessionCreate, ReadingStatus
from ..db.sqlite import Database, get_db
from ..errors import BookNotFoundError, SessionNotFoundError
from ..utils import calendar_day, clamp_page, to_iso

logger = logging.getLogger(__name__)


@dataclass
class DeleteResult:
    """Outcome of removing a ledger entry."""

    session: ReadingSession
    book: Optional[Book] = None
    rolled_back_page: Optional[int] = None  # None if the page was left alone
    status_reverted: bool = False  # finished -> currently_reading after rollback


class SessionLedger:
    """Stores, queries and deletes ledger entries."""

    def __init__(self, db: Optional[Database] = None):
        """Initialize the ledger.

        Args:
            db: Database instance
        """
        self.db = db or get_db()

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def append(
        self,
        entry: Union[ReadingSession, ReadingSessionCreate],
        session: Optional[Session] = None,
    ) -> ReadingSession:
        """Insert a finalized session.

        Args:
            entry: ORM instance or creation schema
            session: Open unit of work to join

        Returns:
            The stored ReadingSession
        """

        def _append(s: Session) -> ReadingSession:
            if isinstance(entry, ReadingSessionCreate):
                record = ReadingSession(
                    book_id=str(entry.book_id),
                    start_date=to_iso(entry.start_date),
                    end_date=to_iso(entry.end_date or entry.start_date),
                    start_page=entry.start_page,
                    end_page=entry.end_page,
                    duration_minutes=entry.duration_minutes,
                    xp_earned=entry.xp_earned,
                    is_auto_generated=entry.is_auto_generated,
                    counts_toward_stats=entry.counts_toward_stats,
                    is_imported=entry.is_imported,
                )
            else:
                record = entry

            if s.get(Book, record.book_id) is None:
                raise BookNotFoundError(record.book_id)

            s.add(record)
            s.flush()
            logger.info(
                "Ledger entry %s added for book %s (%d -> %d, %d min)",
                record.id,
                record.book_id,
                record.start_page,
                record.end_page,
                record.duration_minutes,
            )
            return record

        if session:
            return _append(session)
        else:
            with self.db.get_session() as s:
                return _append(s)

    def delete(self, session_id: str, session: Optional[Session] = None) -> DeleteResult:
        """Remove a ledger entry, rolling the book's page back if it was the newest.

        The profile still carries whatever the entry contributed; callers
        must run GamificationEngine.recalculate_stats afterwards.

        Args:
            session_id: ID of the entry to remove
            session: Open unit of work to join

        Returns:
            DeleteResult describing the rollback

        Raises:
            SessionNotFoundError: If no entry has that ID
        """

        def _delete(s: Session) -> DeleteResult:
            entry = s.get(ReadingSession, session_id)
            if not entry:
                raise SessionNotFoundError(session_id)

            newest_first = self.sessions_for_book(entry.book_id, s)
            was_latest = bool(newest_first) and newest_first[0].id == entry.id

            s.delete(entry)
            s.flush()

            result = DeleteResult(session=entry)
            book = s.get(Book, entry.book_id)
            result.book = book

            if was_latest and book is not None:
                remaining = newest_first[1:]
                previous_end = remaining[0].end_page if remaining else 0
                new_page = clamp_page(previous_end, book.total_pages)
                book.current_page = new_page
                result.rolled_back_page = new_page

                if (
                    book.reading_status == ReadingStatus.FINISHED
                    and book.total_pages
                    and new_page < book.total_pages
                ):
                    book.status = ReadingStatus.CURRENTLY_READING.value
                    book.date_finished = None
                    result.status_reverted = True

                s.flush()

            logger.info(
                "Ledger entry %s deleted (rolled back to page %s)",
                session_id,
                result.rolled_back_page,
            )
            return result

        if session:
            return _delete(session)
        else:
            with self.db.get_session() as s:
                return _delete(s)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get(self, session_id: str, session: Optional[Session] = None) -> Optional[ReadingSession]:
        """Get a ledger entry by ID."""

        def _get(s: Session) -> Optional[ReadingSession]:
            return s.get(ReadingSession, session_id)

        if session:
            return _get(session)
        else:
            with self.db.get_session() as s:
                return _get(s)

    def sessions_for_book(
        self, book_id: str, session: Optional[Session] = None
    ) -> list[ReadingSession]:
        """All entries for a book, newest first."""

        def _get(s: Session) -> list[ReadingSession]:
            stmt = select(ReadingSession).where(ReadingSession.book_id == book_id)
            entries = list(s.execute(stmt).scalars().all())
            return sorted(entries, key=lambda e: e.chronological_key, reverse=True)

        if session:
            return _get(session)
        else:
            with self.db.get_session() as s:
                return _get(s)

    def latest_for_book(
        self, book_id: str, session: Optional[Session] = None
    ) -> Optional[ReadingSession]:
        """Most recent entry for a book."""
        entries = self.sessions_for_book(book_id, session)
        return entries[0] if entries else None

    def has_sessions(self, book_id: str, session: Optional[Session] = None) -> bool:
        """Whether the book has any entry at all, tracked or not."""
        return bool(self.sessions_for_book(book_id, session))

    def has_tracked_sessions(self, book_id: str, session: Optional[Session] = None) -> bool:
        """Whether the book has an entry that counts toward stats."""
        return any(e.counts_toward_stats for e in self.sessions_for_book(book_id, session))

    def countable_sessions(self, session: Optional[Session] = None) -> list[ReadingSession]:
        """Entries that count toward stats across all books, oldest first."""

        def _get(s: Session) -> list[ReadingSession]:
            stmt = select(ReadingSession).where(ReadingSession.counts_toward_stats.is_(True))
            entries = list(s.execute(stmt).scalars().all())
            return sorted(entries, key=lambda e: (e.started_at, e.created_at or ""))

        if session:
            return _get(session)
        else:
            with self.db.get_session() as s:
                return _get(s)

    def total_countable_pages(self, session: Optional[Session] = None) -> int:
        """Pages across countable entries, never below zero."""
        return max(0, sum(e.pages_read for e in self.countable_sessions(session)))

    def total_countable_minutes(self, session: Optional[Session] = None) -> int:
        """Minutes across countable entries."""
        return sum(e.duration_minutes for e in self.countable_sessions(session))

    def totals_for_day(self, day: date, session: Optional[Session] = None) -> tuple[int, int]:
        """(pages, minutes) of countable entries started on a calendar day."""
        entries = [
            e for e in self.countable_sessions(session) if calendar_day(e.started_at) == day
        ]
        return (
            sum(e.pages_read for e in entries),
            sum(e.duration_minutes for e in entries),
        )
