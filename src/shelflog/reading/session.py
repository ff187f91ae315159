"""Live reading session management.

At most one timed session exists at a time, across every book. It is
stored as a row so a restart (or another device) picks it up where it
was left. Finishing it turns it into a ledger entry and runs the rewards.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..config import Config, get_config
from ..db.models import Book, ReadingSession
from ..db.schemas import ReadingStatus
from ..db.sqlite import Database, get_db
from ..errors import ConflictError
from ..events import (
    Event,
    EventBus,
    SessionCancelled,
    SessionFinished,
    SessionPageUpdated,
    SessionPaused,
    SessionResumed,
    SessionStarted,
    StatusChanged,
)
from ..gamification.engine import GamificationEngine
from ..utils import clamp_page, from_iso, now, to_iso
from .ledger import SessionLedger
from .models import MAX_SESSION_MINUTES, ActiveReadingSession
from .schemas import ActiveSessionSnapshot

logger = logging.getLogger(__name__)


class ActiveSessionManager:
    """Manages the live reading session."""

    def __init__(
        self,
        db: Optional[Database] = None,
        ledger: Optional[SessionLedger] = None,
        engine: Optional[GamificationEngine] = None,
        events: Optional[EventBus] = None,
        config: Optional[Config] = None,
    ):
        """Initialize session manager.

        Args:
            db: Database instance
            ledger: Ledger finished sessions are appended to
            engine: Gamification engine that rewards finished sessions
            events: Bus committed changes are published on
            config: Configuration (default source device, auto-end window)
        """
        self.db = db or get_db()
        self.ledger = ledger or SessionLedger(self.db)
        self.engine = engine or GamificationEngine(self.db, self.ledger)
        self.events = events or EventBus()
        self.config = config or get_config()

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def current(self, session: Optional[Session] = None) -> Optional[ActiveReadingSession]:
        """Get the live session, if any.

        More than one row means an earlier write went wrong. The most
        recently updated row wins and the others are deleted.
        """

        def _current(s: Session) -> Optional[ActiveReadingSession]:
            rows = list(s.execute(select(ActiveReadingSession)).scalars().all())
            if not rows:
                return None
            if len(rows) > 1:
                rows.sort(key=lambda r: r.last_updated_at, reverse=True)
                logger.error(
                    "Found %d live reading sessions; keeping %s and removing the rest",
                    len(rows),
                    rows[0].id,
                )
                for extra in rows[1:]:
                    s.delete(extra)
                s.flush()
            return rows[0]

        if session:
            return _current(session)
        else:
            with self.db.get_session() as s:
                return _current(s)

    def has_active_session(self) -> bool:
        """Check if there's a live reading session."""
        return self.current() is not None

    def snapshot(self, at: Optional[datetime] = None) -> Optional[ActiveSessionSnapshot]:
        """State of the live session at `at`, or None when idle."""
        at = at or now()
        with self.db.get_session() as s:
            active = self.current(s)
            if not active:
                return None
            book = s.get(Book, active.book_id)
            return ActiveSessionSnapshot(
                session_id=active.id,
                book_id=active.book_id,
                book_title=book.title if book else None,
                started_at=active.started_at,
                start_page=active.start_page,
                current_page=active.current_page,
                pages_read=active.pages_read,
                is_paused=active.is_paused,
                elapsed_seconds=active.elapsed_seconds(at),
                last_updated=active.last_updated_at,
                source_device=active.source_device,
            )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(
        self,
        book_id: str,
        at: Optional[datetime] = None,
        source_device: Optional[str] = None,
    ) -> ActiveReadingSession:
        """Start a live session anchored at the book's current page.

        Args:
            book_id: ID of the book being read
            at: Start time (default: now)
            source_device: Device label (default: configured source device)

        Returns:
            New ActiveReadingSession

        Raises:
            ConflictError: If a live session already exists, for any book
            BookNotFoundError: If the book doesn't exist
        """
        existing = self.current()
        if existing is not None:
            raise ConflictError(existing)

        at = at or now()
        with self.db.get_session() as s:
            book = self.db.require_book(book_id, s)
            active = self._open(s, book, at, source_device)

        self.events.publish(SessionStarted(active_session=active))
        return active

    def end_and_replace(
        self,
        book_id: str,
        at: Optional[datetime] = None,
        source_device: Optional[str] = None,
    ) -> tuple[Optional[ReadingSession], ActiveReadingSession]:
        """Finish whatever session is live, then start a new one.

        Both happen in one unit of work: if the new session can't be
        started the old one is left running.

        Returns:
            (ledger entry of the finished session or None, new live session)

        Raises:
            BookNotFoundError: If the book doesn't exist
        """
        at = at or now()
        with self.db.get_session() as s:
            book = self.db.require_book(book_id, s)
            finished, events = self._close(s, None, at)
            if finished is not None:
                logger.info("Replacing live session for book %s", finished.book_id)
            active = self._open(s, book, at, source_device)

        self.events.publish(*events, SessionStarted(active_session=active))
        return finished, active

    def _open(
        self, s: Session, book: Book, at: datetime, source_device: Optional[str]
    ) -> ActiveReadingSession:
        active = ActiveReadingSession(
            book_id=book.id,
            start_date=to_iso(at),
            start_page=book.current_page,
            current_page=book.current_page,
            is_paused=False,
            paused_at=None,
            total_paused_seconds=0.0,
            last_updated=to_iso(at),
            source_device=source_device or self.config.source_device,
        )
        s.add(active)
        s.flush()
        logger.info("Started session %s on '%s' at page %d", active.id, book.title, book.current_page)
        return active

    def update_page(
        self, new_page: int, at: Optional[datetime] = None
    ) -> Optional[ActiveReadingSession]:
        """Record the page reached so far. The timer is left alone.

        Returns:
            Updated session or None if no session is live
        """
        at = at or now()
        with self.db.get_session() as s:
            active = self.current(s)
            if not active:
                return None

            book = s.get(Book, active.book_id)
            page = clamp_page(new_page, book.total_pages if book else None)
            if page != new_page:
                logger.warning("Page %d out of range, using %d", new_page, page)

            active.current_page = page
            active.last_updated = to_iso(at)
            s.flush()

        self.events.publish(SessionPageUpdated(active_session=active, new_page=page))
        return active

    def pause(self, at: Optional[datetime] = None) -> Optional[ActiveReadingSession]:
        """Pause the live session. Pausing a paused session does nothing."""
        at = at or now()
        changed = False
        with self.db.get_session() as s:
            active = self.current(s)
            if not active:
                return None
            if not active.is_paused:
                active.is_paused = True
                active.paused_at = to_iso(at)
                active.last_updated = to_iso(at)
                changed = True

        if changed:
            logger.info("Paused session %s", active.id)
            self.events.publish(SessionPaused(active_session=active))
        return active

    def resume(self, at: Optional[datetime] = None) -> Optional[ActiveReadingSession]:
        """Resume a paused session. Resuming a running session does nothing."""
        at = at or now()
        changed = False
        with self.db.get_session() as s:
            active = self.current(s)
            if not active:
                return None
            if active.is_paused:
                paused_at = from_iso(active.paused_at)
                if paused_at is not None:
                    active.total_paused_seconds = (active.total_paused_seconds or 0.0) + max(
                        0.0, (at - paused_at).total_seconds()
                    )
                active.is_paused = False
                active.paused_at = None
                active.last_updated = to_iso(at)
                changed = True

        if changed:
            logger.info("Resumed session %s", active.id)
            self.events.publish(SessionResumed(active_session=active))
        return active

    def finish(
        self, end_page: Optional[int] = None, at: Optional[datetime] = None
    ) -> Optional[ReadingSession]:
        """Finish the live session and record it in the ledger.

        Args:
            end_page: Final page (default: the session's current page)
            at: Finish time (default: now)

        Returns:
            The new ledger entry, or None if no session is live
        """
        at = at or now()
        with self.db.get_session() as s:
            entry, events = self._close(s, end_page, at)

        self.events.publish(*events)
        return entry

    def _close(
        self, s: Session, end_page: Optional[int], at: datetime
    ) -> tuple[Optional[ReadingSession], list[Event]]:
        """Turn the live session into a ledger entry inside `s`."""
        active = self.current(s)
        if not active:
            return None, []

        book = self.db.require_book(active.book_id, s)
        final_page = active.current_page if end_page is None else end_page
        final_page = clamp_page(final_page, book.total_pages)

        entry = ReadingSession(
            book_id=book.id,
            start_date=active.start_date,
            end_date=to_iso(at),
            start_page=active.start_page,
            end_page=final_page,
            duration_minutes=active.duration_minutes(at),
        )
        ended_id = active.id
        s.delete(active)
        s.flush()
        events = self.record_entry(s, book, entry, ended_active_session_id=ended_id)
        return entry, events

    def cancel(self) -> bool:
        """Discard the live session without recording anything.

        Returns:
            True if a session was cancelled, False if none was live
        """
        ended_id = None
        with self.db.get_session() as s:
            active = self.current(s)
            if active:
                ended_id = active.id
                s.delete(active)

        if ended_id is None:
            return False

        logger.info("Cancelled session %s", ended_id)
        self.events.publish(SessionCancelled(ended_active_session_id=ended_id))
        return True

    def log_direct(
        self,
        book_id: str,
        start_page: int,
        end_page: int,
        duration_minutes: int,
        session_date: Optional[datetime] = None,
    ) -> ReadingSession:
        """Record an untimed session.

        A live session on the same book is ended; the logged values are
        the record of it.

        Args:
            book_id: ID of the book read
            start_page: Page the reading started at
            end_page: Page the reading ended at
            duration_minutes: Time spent reading
            session_date: When the reading happened (default: now)

        Returns:
            The new ledger entry

        Raises:
            BookNotFoundError: If the book doesn't exist
        """
        at = session_date or now()
        with self.db.get_session() as s:
            book = self.db.require_book(book_id, s)
            ended_id = self.discard_for_book(book.id, s)

            entry = ReadingSession(
                book_id=book.id,
                start_date=to_iso(at),
                end_date=to_iso(at),
                start_page=clamp_page(start_page, book.total_pages),
                end_page=clamp_page(end_page, book.total_pages),
                duration_minutes=max(0, min(duration_minutes, MAX_SESSION_MINUTES)),
            )
            events = self.record_entry(s, book, entry, ended_active_session_id=ended_id)

        self.events.publish(*events)
        return entry

    def cleanup_stale(self, at: Optional[datetime] = None) -> Optional[str]:
        """Discard a live session nobody has touched within the auto-end window.

        Returns:
            ID of the discarded session, or None
        """
        if not self.config.auto_end_enabled:
            return None

        at = at or now()
        ended_id = None
        with self.db.get_session() as s:
            active = self.current(s)
            if active and active.should_auto_end(self.config.auto_end_session_hours, at):
                logger.warning(
                    "Session %s idle since %s; discarding it",
                    active.id,
                    active.last_updated,
                )
                ended_id = active.id
                s.delete(active)

        if ended_id is not None:
            self.events.publish(SessionCancelled(ended_active_session_id=ended_id))
        return ended_id

    # -------------------------------------------------------------------------
    # Shared with the status controller
    # -------------------------------------------------------------------------

    def discard_for_book(self, book_id: str, session: Session) -> Optional[str]:
        """Delete the live session if it belongs to `book_id`; return its ID."""
        active = self.current(session)
        if active is None or active.book_id != book_id:
            return None
        ended_id = active.id
        session.delete(active)
        session.flush()
        return ended_id

    def record_entry(
        self,
        s: Session,
        book: Book,
        entry: ReadingSession,
        ended_active_session_id: Optional[str] = None,
    ) -> list[Event]:
        """Append a finished session and run the rewards for it.

        Moves the book's page to the entry's end page and promotes a
        want_to_read book to currently_reading. Runs inside the caller's
        unit of work.

        Returns:
            Events to publish after the commit
        """
        entry.xp_earned = self.engine.calculate_xp(entry)

        old_status = book.reading_status
        promoted = old_status == ReadingStatus.WANT_TO_READ
        if promoted:
            book.status = ReadingStatus.CURRENTLY_READING.value
            book.date_started = entry.start_date
            logger.info("'%s' moved to currently reading", book.title)

        book.current_page = clamp_page(entry.end_page, book.total_pages)

        self.ledger.append(entry, s)
        profile = self.engine.get_profile(s)
        award = self.engine.apply_session(entry, profile, s)

        events: list[Event] = [
            SessionFinished(finalized_session=entry, ended_active_session_id=ended_active_session_id)
        ]
        if promoted:
            events.append(
                StatusChanged(
                    book=book, old_status=old_status, new_status=ReadingStatus.CURRENTLY_READING
                )
            )
        events.extend(award.to_events(profile))
        return events
