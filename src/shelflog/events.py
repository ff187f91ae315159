"""Events published after each committed change.

Replication and export collaborators (companion devices, live status
surfaces, home-screen snapshots) subscribe to these. Nothing here knows
about their transport.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional

if TYPE_CHECKING:
    from .db.models import Book, ReadingSession
    from .db.schemas import ReadingStatus
    from .gamification.achievements import AchievementID
    from .gamification.models import GamificationProfile
    from .reading.models import ActiveReadingSession

logger = logging.getLogger(__name__)


class Event:
    """Base class for published events."""

    pass


@dataclass
class StatusChanged(Event):
    book: "Book"
    old_status: "ReadingStatus"
    new_status: "ReadingStatus"


@dataclass
class SessionStarted(Event):
    active_session: "ActiveReadingSession"


@dataclass
class SessionPageUpdated(Event):
    active_session: "ActiveReadingSession"
    new_page: int


@dataclass
class SessionPaused(Event):
    active_session: "ActiveReadingSession"


@dataclass
class SessionResumed(Event):
    active_session: "ActiveReadingSession"


@dataclass
class SessionFinished(Event):
    """A ledger entry was finalized; ended_active_session_id is None for untimed logs."""

    finalized_session: "ReadingSession"
    ended_active_session_id: Optional[str]


@dataclass
class SessionCancelled(Event):
    ended_active_session_id: str


@dataclass
class SessionDeleted(Event):
    """rolled_back_page is None when the book's page was left alone."""

    session: "ReadingSession"
    rolled_back_page: Optional[int]


@dataclass
class XPAwarded(Event):
    amount: int
    profile: "GamificationProfile"


@dataclass
class StreakUpdated(Event):
    current_streak_days: int
    profile: "GamificationProfile"


@dataclass
class AchievementsUnlocked(Event):
    ids: list["AchievementID"]
    profile: "GamificationProfile"


Handler = Callable[[Event], None]


class EventBus:
    """Synchronous publish/subscribe hub."""

    def __init__(self):
        self._handlers: dict[Optional[type], list[Handler]] = defaultdict(list)

    def subscribe(self, handler: Handler, event_type: Optional[type] = None) -> None:
        """Register a handler for one event type, or for every event when None."""
        self._handlers[event_type].append(handler)

    def unsubscribe(self, handler: Handler, event_type: Optional[type] = None) -> None:
        """Remove a previously registered handler."""
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, *events: Event) -> None:
        """Deliver events in order.

        A handler that raises is logged and skipped; the change it reports
        is already committed.
        """
        for evt in events:
            for handler in [*self._handlers.get(type(evt), []), *self._handlers.get(None, [])]:
                try:
                    handler(evt)
                except Exception:
                    logger.exception(
                        "Event handler %r failed on %s", handler, type(evt).__name__
                    )
