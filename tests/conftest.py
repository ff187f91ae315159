"""Pytest configuration and shared fixtures.

This module provides fixtures for testing shelflog: an in-memory
database, a tracker wired to a recording event bus, and sample books.
"""

from pathlib import Path
from typing import Generator

import pytest

from shelflog.config import Config, reset_config
from shelflog.db.models import Book
from shelflog.db.schemas import BookCreate, ReadingStatus
from shelflog.db.sqlite import Database, reset_db
from shelflog.events import Event, EventBus
from shelflog.library.tracker import ReadingTracker, reset_tracker


class EventRecorder:
    """Subscriber that keeps every event it receives."""

    def __init__(self):
        self.events: list[Event] = []

    def __call__(self, event: Event) -> None:
        self.events.append(event)

    def of_type(self, event_type: type) -> list:
        return [e for e in self.events if isinstance(e, event_type)]

    def types(self) -> list[type]:
        return [type(e) for e in self.events]

    def clear(self) -> None:
        self.events.clear()


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture(scope="function")
def db() -> Generator[Database, None, None]:
    """Create an in-memory test database."""
    reset_db()
    reset_config()
    reset_tracker()

    database = Database(":memory:")
    database.create_tables()
    yield database

    reset_db()
    reset_tracker()


@pytest.fixture
def config(tmp_path: Path) -> Config:
    """Configuration for tests; the database path is unused by in-memory fixtures."""
    return Config(
        db_path=tmp_path / "shelflog.db",
        source_device="test-device",
        auto_end_session_hours=24,
        log_level="WARNING",
    )


@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest.fixture
def recorder(events: EventBus) -> EventRecorder:
    """Record everything published on the shared bus."""
    rec = EventRecorder()
    events.subscribe(rec)
    return rec


@pytest.fixture
def tracker(db: Database, events: EventBus, config: Config) -> ReadingTracker:
    return ReadingTracker(db, events, config)


# ============================================================================
# Sample Data Fixtures
# ============================================================================


@pytest.fixture
def book(tracker: ReadingTracker) -> Book:
    """A 300-page book in progress at page 50."""
    return tracker.add_book(
        BookCreate(
            title="Dune",
            author="Frank Herbert",
            total_pages=300,
            current_page=50,
            status=ReadingStatus.CURRENTLY_READING,
        )
    )


@pytest.fixture
def other_book(tracker: ReadingTracker) -> Book:
    """A second book in progress."""
    return tracker.add_book(
        BookCreate(
            title="The Left Hand of Darkness",
            author="Ursula K. Le Guin",
            total_pages=250,
            current_page=10,
            status=ReadingStatus.CURRENTLY_READING,
        )
    )


@pytest.fixture
def queued_book(tracker: ReadingTracker) -> Book:
    """A 200-page book nobody has started."""
    return tracker.add_book(
        BookCreate(title="Piranesi", author="Susanna Clarke", total_pages=200)
    )
