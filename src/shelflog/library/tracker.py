"""Reading tracker - one entry point over the store, ledger, engine and controllers.

Wires a single Database and EventBus through every component, and owns the
operations that span them: deleting ledger entries and rebuilding stats.
"""

import logging
from typing import Optional

from ..config import Config, get_config
from ..db.models import Book
from ..db.schemas import BookCreate, BookUpdate, ReadingStatus
from ..db.sqlite import Database, get_db
from ..events import Event, EventBus, SessionDeleted, StatusChanged, StreakUpdated, XPAwarded
from ..gamification.engine import GamificationEngine
from ..gamification.models import GamificationProfile
from ..gamification.schemas import ProfileStats
from ..reading.ledger import DeleteResult, SessionLedger
from ..reading.session import ActiveSessionManager
from ..reading.status import ReadingStatusController

logger = logging.getLogger(__name__)


class ReadingTracker:
    """Facade over the reading components."""

    def __init__(
        self,
        db: Optional[Database] = None,
        events: Optional[EventBus] = None,
        config: Optional[Config] = None,
    ):
        """Initialize the tracker.

        Args:
            db: Database instance
            events: Event bus shared by every component
            config: Configuration
        """
        self.db = db or get_db()
        self.events = events or EventBus()
        self.config = config or get_config()

        self.ledger = SessionLedger(self.db)
        self.engine = GamificationEngine(self.db, self.ledger)
        self.sessions = ActiveSessionManager(
            self.db, self.ledger, self.engine, self.events, self.config
        )
        self.status = ReadingStatusController(
            self.db, self.ledger, self.engine, self.sessions, self.events
        )

    # -------------------------------------------------------------------------
    # Books
    # -------------------------------------------------------------------------

    def add_book(self, book: BookCreate) -> Book:
        """Add a book to the shelf."""
        created = self.db.create_book(book)
        logger.info("Added '%s' by %s", created.title, created.author)
        return created

    def update_book(self, book_id: str, update: BookUpdate) -> Optional[Book]:
        """Edit a book's title, author or page count."""
        return self.db.update_book(book_id, update)

    def find_book(self, query: str) -> Optional[Book]:
        """Find a book by exact ID, then by title/author search."""
        book = self.db.get_book(query)
        if book:
            return book
        matches = self.db.search_books(query, limit=1)
        return matches[0] if matches else None

    def books(self, status: Optional[ReadingStatus] = None) -> list[Book]:
        """All books, or only those with the given status."""
        if status is None:
            return self.db.get_all_books()
        return self.db.get_books_by_status(status)

    # -------------------------------------------------------------------------
    # Ledger maintenance
    # -------------------------------------------------------------------------

    def delete_session(self, session_id: str) -> DeleteResult:
        """Delete one ledger entry and rebuild stats.

        Raises:
            SessionNotFoundError: If no entry has that ID
        """
        return self.delete_sessions([session_id])[0]

    def delete_sessions(self, session_ids: list[str]) -> list[DeleteResult]:
        """Delete ledger entries, then rebuild stats once.

        Everything happens in one unit of work; if any ID is unknown nothing
        is deleted.

        Raises:
            SessionNotFoundError: If any entry doesn't exist
        """
        with self.db.get_session() as s:
            profile = self.engine.get_profile(s)
            before = (profile.total_xp, profile.current_streak_days)

            results = [self.ledger.delete(session_id, s) for session_id in session_ids]
            profile = self.engine.recalculate_stats(profile, s)

        events: list[Event] = []
        for result in results:
            events.append(
                SessionDeleted(session=result.session, rolled_back_page=result.rolled_back_page)
            )
            if result.status_reverted and result.book is not None:
                events.append(
                    StatusChanged(
                        book=result.book,
                        old_status=ReadingStatus.FINISHED,
                        new_status=ReadingStatus.CURRENTLY_READING,
                    )
                )
        events.extend(self._rebuild_events(profile, before))
        self.events.publish(*events)

        logger.info("Deleted %d reading session(s)", len(results))
        return results

    def recalculate_stats(self) -> GamificationProfile:
        """Rebuild XP, streaks and achievements from the ledger."""
        with self.db.get_session() as s:
            profile = self.engine.get_profile(s)
            before = (profile.total_xp, profile.current_streak_days)
            profile = self.engine.recalculate_stats(profile, s)

        self.events.publish(*self._rebuild_events(profile, before))
        return profile

    def _rebuild_events(
        self, profile: GamificationProfile, before: tuple[int, int]
    ) -> list[Event]:
        # amount is the net change, negative when XP was taken away
        xp_before, streak_before = before
        return [
            XPAwarded(amount=profile.total_xp - xp_before, profile=profile),
            StreakUpdated(current_streak_days=profile.current_streak_days, profile=profile),
        ]

    # -------------------------------------------------------------------------
    # Stats
    # -------------------------------------------------------------------------

    def get_stats(self) -> ProfileStats:
        """Profile and ledger summary, after lapsing a broken streak."""
        self.engine.refresh_streak()
        return self.engine.get_stats()


# Global tracker instance
_tracker: Optional[ReadingTracker] = None


def get_tracker(db: Optional[Database] = None) -> ReadingTracker:
    """Get or create the global tracker instance."""
    global _tracker
    if _tracker is None:
        _tracker = ReadingTracker(db)
    return _tracker


def reset_tracker() -> None:
    """Reset the global tracker instance. Used for testing."""
    global _tracker
    _tracker = None
