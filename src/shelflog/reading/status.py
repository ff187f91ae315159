"""Reading status transitions.

Moving a book between want_to_read, currently_reading, finished and
did_not_finish saves and restores its page, stamps its dates, and decides
what to do when a book with no tracked reading is marked finished.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ..db.models import Book, ReadingSession
from ..db.schemas import FinishChoice, ReadingStatus
from ..db.sqlite import Database, get_db
from ..events import AchievementsUnlocked, Event, EventBus, StatusChanged
from ..gamification.engine import GamificationEngine
from ..utils import clamp_page, now, to_iso
from .ledger import SessionLedger
from .session import ActiveSessionManager

logger = logging.getLogger(__name__)

# Quick progress updates are credited two minutes per page
MINUTES_PER_PAGE = 2


class StatusChangeOutcome(str, Enum):
    """What change_status did."""

    UNCHANGED = "unchanged"  # Already in the target status
    APPLIED = "applied"
    NEEDS_FINISH_CHOICE = "needs_finish_choice"  # Nothing tracked; caller must pick


@dataclass
class StatusChangeResult:
    """Result of a status change request."""

    outcome: StatusChangeOutcome
    book: Book
    old_status: ReadingStatus
    new_status: ReadingStatus
    logged_session: Optional[ReadingSession] = None

    @property
    def applied(self) -> bool:
        return self.outcome == StatusChangeOutcome.APPLIED


Transition = Callable[
    [Session, Book, ReadingStatus, Optional[FinishChoice], datetime], StatusChangeResult
]


class ReadingStatusController:
    """Applies status transitions to books."""

    def __init__(
        self,
        db: Optional[Database] = None,
        ledger: Optional[SessionLedger] = None,
        engine: Optional[GamificationEngine] = None,
        sessions: Optional[ActiveSessionManager] = None,
        events: Optional[EventBus] = None,
    ):
        """Initialize the controller.

        Args:
            db: Database instance
            ledger: Session ledger
            engine: Gamification engine
            sessions: Live session manager (for the finish-log flow)
            events: Bus committed changes are published on
        """
        self.db = db or get_db()
        self.ledger = ledger or SessionLedger(self.db)
        self.engine = engine or GamificationEngine(self.db, self.ledger)
        self.events = events or EventBus()
        self.sessions = sessions or ActiveSessionManager(
            self.db, self.ledger, self.engine, self.events
        )

        self._transitions: dict[ReadingStatus, Transition] = {
            ReadingStatus.WANT_TO_READ: self._to_want_to_read,
            ReadingStatus.CURRENTLY_READING: self._to_currently_reading,
            ReadingStatus.FINISHED: self._to_finished,
            ReadingStatus.DID_NOT_FINISH: self._to_did_not_finish,
        }

    def change_status(
        self,
        book_id: str,
        target: ReadingStatus,
        finish_choice: Optional[FinishChoice] = None,
        at: Optional[datetime] = None,
    ) -> StatusChangeResult:
        """Move a book to a new reading status.

        Args:
            book_id: ID of the book
            target: Status to move to
            finish_choice: How to finish a book with no tracked sessions
            at: Time of the change (default: now)

        Returns:
            StatusChangeResult. NEEDS_FINISH_CHOICE means nothing was
            written; ask the reader, then call again with a finish_choice
            or use finish_with_session.

        Raises:
            BookNotFoundError: If the book doesn't exist
        """
        target = ReadingStatus(target)
        at = at or now()
        transition = self._transitions[target]
        events: list[Event] = []

        with self.db.get_session() as s:
            book = self.db.require_book(book_id, s)
            old_status = book.reading_status

            if old_status == target:
                return StatusChangeResult(StatusChangeOutcome.UNCHANGED, book, old_status, target)

            result = transition(s, book, old_status, finish_choice, at)

            if result.applied:
                book.status = target.value
                s.flush()
                logger.info("'%s': %s -> %s", book.title, old_status.value, target.value)
                events.append(StatusChanged(book=book, old_status=old_status, new_status=target))

                if target == ReadingStatus.FINISHED:
                    profile = self.engine.get_profile(s)
                    unlocked = self.engine.check_achievements(profile, session=s)
                    if unlocked:
                        events.append(AchievementsUnlocked(ids=unlocked, profile=profile))

        self.events.publish(*events)
        return result

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def _save_progress(self, book: Book) -> None:
        if book.current_page > 0:
            book.saved_current_page = book.current_page

    def _to_currently_reading(
        self,
        s: Session,
        book: Book,
        old_status: ReadingStatus,
        finish_choice: Optional[FinishChoice],
        at: datetime,
    ) -> StatusChangeResult:
        if not book.date_started:
            book.date_started = to_iso(at)
        if book.saved_current_page is not None:
            book.current_page = clamp_page(book.saved_current_page, book.total_pages)
            book.saved_current_page = None
        return StatusChangeResult(
            StatusChangeOutcome.APPLIED, book, old_status, ReadingStatus.CURRENTLY_READING
        )

    def _to_finished(
        self,
        s: Session,
        book: Book,
        old_status: ReadingStatus,
        finish_choice: Optional[FinishChoice],
        at: datetime,
    ) -> StatusChangeResult:
        if finish_choice is None and not self.ledger.has_tracked_sessions(book.id, s):
            return StatusChangeResult(
                StatusChangeOutcome.NEEDS_FINISH_CHOICE, book, old_status, ReadingStatus.FINISHED
            )

        self._save_progress(book)
        if book.total_pages:
            book.current_page = book.total_pages
        book.date_finished = to_iso(at)

        backfilled = None
        if (
            finish_choice == FinishChoice.UNTRACKED
            and not self.ledger.has_sessions(book.id, s)
            and book.current_page > 0
        ):
            # Keeps the page history without touching XP, streak or achievements
            backfilled = ReadingSession(
                book_id=book.id,
                start_date=to_iso(at),
                end_date=to_iso(at),
                start_page=0,
                end_page=book.current_page,
                duration_minutes=0,
                xp_earned=0,
                counts_toward_stats=False,
                is_imported=True,
            )
            self.ledger.append(backfilled, s)

        return StatusChangeResult(
            StatusChangeOutcome.APPLIED,
            book,
            old_status,
            ReadingStatus.FINISHED,
            logged_session=backfilled,
        )

    def _to_did_not_finish(
        self,
        s: Session,
        book: Book,
        old_status: ReadingStatus,
        finish_choice: Optional[FinishChoice],
        at: datetime,
    ) -> StatusChangeResult:
        self._save_progress(book)
        book.date_finished = to_iso(at)
        return StatusChangeResult(
            StatusChangeOutcome.APPLIED, book, old_status, ReadingStatus.DID_NOT_FINISH
        )

    def _to_want_to_read(
        self,
        s: Session,
        book: Book,
        old_status: ReadingStatus,
        finish_choice: Optional[FinishChoice],
        at: datetime,
    ) -> StatusChangeResult:
        if not self.ledger.has_tracked_sessions(book.id, s):
            book.saved_current_page = None
        elif old_status == ReadingStatus.CURRENTLY_READING:
            self._save_progress(book)
        book.current_page = 0
        return StatusChangeResult(
            StatusChangeOutcome.APPLIED, book, old_status, ReadingStatus.WANT_TO_READ
        )

    # -------------------------------------------------------------------------
    # Progress and finish-log
    # -------------------------------------------------------------------------

    def record_progress(
        self, book_id: str, new_page: int, at: Optional[datetime] = None
    ) -> Optional[ReadingSession]:
        """Set a book's page without a timer.

        The change is recorded as an auto-generated session credited two
        minutes per page read.

        Returns:
            The new ledger entry, or None if the page didn't change

        Raises:
            BookNotFoundError: If the book doesn't exist
        """
        at = at or now()
        entry = None
        events: list[Event] = []

        with self.db.get_session() as s:
            book = self.db.require_book(book_id, s)
            page = clamp_page(new_page, book.total_pages)
            if page != new_page:
                logger.warning("Page %d out of range for '%s', using %d", new_page, book.title, page)

            if page != book.current_page:
                pages = page - book.current_page
                entry = ReadingSession(
                    book_id=book.id,
                    start_date=to_iso(at),
                    end_date=to_iso(at),
                    start_page=book.current_page,
                    end_page=page,
                    duration_minutes=max(0, pages) * MINUTES_PER_PAGE,
                    is_auto_generated=True,
                )
                events = self.sessions.record_entry(s, book, entry)

        self.events.publish(*events)
        return entry

    def finish_with_session(
        self,
        book_id: str,
        end_page: Optional[int] = None,
        duration_minutes: int = 0,
        finished_at: Optional[datetime] = None,
        started_at: Optional[datetime] = None,
    ) -> StatusChangeResult:
        """Mark a book finished and log the whole read as one counting session.

        Any live session on the book is ended first.

        Args:
            book_id: ID of the book
            end_page: Last page read (default: total pages, else current page)
            duration_minutes: Reading time to credit
            finished_at: When the book was finished (default: now)
            started_at: When reading began; also stamped as date_started

        Returns:
            StatusChangeResult carrying the logged session

        Raises:
            BookNotFoundError: If the book doesn't exist
        """
        at = finished_at or now()
        with self.db.get_session() as s:
            book = self.db.require_book(book_id, s)
            old_status = book.reading_status
            ended_id = self.sessions.discard_for_book(book.id, s)

            final_page = end_page if end_page is not None else (book.total_pages or book.current_page)
            final_page = clamp_page(final_page, book.total_pages)

            # Status first so the finished book counts toward achievements
            book.status = ReadingStatus.FINISHED.value
            book.date_finished = to_iso(at)
            if started_at is not None:
                book.date_started = to_iso(started_at)
            book.saved_current_page = None

            entry = ReadingSession(
                book_id=book.id,
                start_date=to_iso(started_at or at),
                end_date=to_iso(at),
                start_page=0,
                end_page=final_page,
                duration_minutes=max(0, duration_minutes),
            )
            finish_events = self.sessions.record_entry(
                s, book, entry, ended_active_session_id=ended_id
            )
            book.current_page = book.total_pages or final_page
            s.flush()
            logger.info("'%s' finished with a %d-page session", book.title, final_page)

        events: list[Event] = []
        if old_status != ReadingStatus.FINISHED:
            events.append(
                StatusChanged(book=book, old_status=old_status, new_status=ReadingStatus.FINISHED)
            )
        events.extend(finish_events)
        self.events.publish(*events)

        return StatusChangeResult(
            StatusChangeOutcome.APPLIED,
            book,
            old_status,
            ReadingStatus.FINISHED,
            logged_session=entry,
        )
