"""Tests for ActiveSessionManager."""

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from shelflog.db.schemas import ReadingStatus
from shelflog.errors import BookNotFoundError, ConflictError
from shelflog.events import (
    SessionCancelled,
    SessionFinished,
    SessionPageUpdated,
    SessionPaused,
    SessionResumed,
    SessionStarted,
    StatusChanged,
    StreakUpdated,
    XPAwarded,
)
from shelflog.library.tracker import ReadingTracker
from shelflog.reading.models import MAX_SESSION_MINUTES, ActiveReadingSession
from shelflog.utils import to_iso

T0 = datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)


def at(minutes: float) -> datetime:
    return T0 + timedelta(minutes=minutes)


@pytest.fixture
def manager(tracker):
    return tracker.sessions


class TestStart:
    """Tests for starting sessions."""

    def test_start_anchors_at_current_page(self, manager, book, recorder):
        """Test that a new session starts at the book's page."""
        active = manager.start(book.id, at=T0)

        assert active.book_id == book.id
        assert active.start_page == 50
        assert active.current_page == 50
        assert active.is_paused is False
        assert active.start_date == to_iso(T0)
        assert active.source_device == "test-device"
        assert recorder.types() == [SessionStarted]

    def test_start_custom_source_device(self, manager, book):
        """Test overriding the device label."""
        active = manager.start(book.id, at=T0, source_device="phone")
        assert active.source_device == "phone"

    def test_start_unknown_book(self, manager):
        """Test starting a session for a missing book."""
        with pytest.raises(BookNotFoundError):
            manager.start("no-such-book", at=T0)

    def test_second_start_conflicts(self, manager, book, other_book):
        """Test that only one live session may exist across all books."""
        first = manager.start(book.id, at=T0)

        with pytest.raises(ConflictError) as exc_info:
            manager.start(other_book.id, at=at(1))

        assert exc_info.value.existing.id == first.id
        assert exc_info.value.existing.book_id == book.id
        assert manager.current().id == first.id

    def test_second_start_same_book_conflicts(self, manager, book):
        """Test that restarting the same book also conflicts."""
        manager.start(book.id, at=T0)
        with pytest.raises(ConflictError):
            manager.start(book.id, at=at(1))

    def test_has_active_session(self, manager, book):
        """Test has_active_session before and after starting."""
        assert manager.has_active_session() is False
        manager.start(book.id, at=T0)
        assert manager.has_active_session() is True


class TestCurrent:
    """Tests for looking up the live session."""

    def test_current_none_when_idle(self, manager):
        """Test that no session is returned when idle."""
        assert manager.current() is None

    def test_duplicate_rows_keep_latest(self, manager, db, book, other_book):
        """Test that extra live rows are removed, keeping the freshest."""
        with db.get_session() as s:
            s.add(
                ActiveReadingSession(
                    book_id=book.id,
                    start_date=to_iso(T0),
                    last_updated=to_iso(at(5)),
                )
            )
            s.add(
                ActiveReadingSession(
                    book_id=other_book.id,
                    start_date=to_iso(T0),
                    last_updated=to_iso(at(30)),
                )
            )

        current = manager.current()

        assert current.book_id == other_book.id
        with db.get_session() as s:
            assert s.query(ActiveReadingSession).count() == 1


class TestUpdatePage:
    """Tests for page updates."""

    def test_update_page(self, manager, book, recorder):
        """Test recording a new page."""
        manager.start(book.id, at=T0)
        active = manager.update_page(80, at=at(5))

        assert active.current_page == 80
        assert active.last_updated == to_iso(at(5))
        assert manager.current().current_page == 80
        updated = recorder.of_type(SessionPageUpdated)
        assert len(updated) == 1
        assert updated[0].new_page == 80

    def test_update_page_clamps_to_total(self, manager, book):
        """Test that pages past the end are clamped."""
        manager.start(book.id, at=T0)
        assert manager.update_page(999, at=at(1)).current_page == 300

    def test_update_page_clamps_negative(self, manager, book):
        """Test that negative pages are clamped to zero."""
        manager.start(book.id, at=T0)
        assert manager.update_page(-5, at=at(1)).current_page == 0

    def test_update_page_leaves_timer_alone(self, manager, book):
        """Test that page updates don't change pause state or elapsed time."""
        manager.start(book.id, at=T0)
        manager.pause(at=at(10))
        active = manager.update_page(90, at=at(12))

        assert active.is_paused is True
        assert active.elapsed_seconds(at(20)) == 600

    def test_update_page_without_session(self, manager):
        """Test updating with no live session."""
        assert manager.update_page(10) is None


class TestPauseResume:
    """Tests for pausing and resuming."""

    def test_pause_and_resume(self, manager, book, recorder):
        """Test a pause/resume cycle adds to paused time."""
        manager.start(book.id, at=T0)
        paused = manager.pause(at=at(10))
        assert paused.is_paused is True
        assert paused.paused_at == to_iso(at(10))

        resumed = manager.resume(at=at(15))
        assert resumed.is_paused is False
        assert resumed.paused_at is None
        assert resumed.total_paused_seconds == 300
        assert recorder.types() == [SessionStarted, SessionPaused, SessionResumed]

    def test_pause_twice_is_noop(self, manager, book, recorder):
        """Test that pausing a paused session changes nothing."""
        manager.start(book.id, at=T0)
        manager.pause(at=at(10))
        again = manager.pause(at=at(12))

        assert again.paused_at == to_iso(at(10))
        assert len(recorder.of_type(SessionPaused)) == 1

    def test_resume_running_is_noop(self, manager, book, recorder):
        """Test that resuming a running session changes nothing."""
        manager.start(book.id, at=T0)
        active = manager.resume(at=at(5))

        assert active.total_paused_seconds == 0
        assert recorder.of_type(SessionResumed) == []

    def test_elapsed_preserved_across_pause(self, manager, book):
        """Test elapsed after resume equals time before pause plus time since resume."""
        manager.start(book.id, at=T0)
        before_pause = manager.current().elapsed_seconds(at(10))
        manager.pause(at=at(10))
        manager.resume(at=at(15))

        t2 = at(40)
        elapsed = manager.current().elapsed_seconds(t2)

        assert elapsed == before_pause + (t2 - at(15)).total_seconds()
        assert elapsed == 35 * 60

    def test_elapsed_frozen_while_paused(self, manager, book):
        """Test that elapsed time stops growing during a pause."""
        manager.start(book.id, at=T0)
        manager.pause(at=at(10))
        active = manager.current()

        assert active.elapsed_seconds(at(11)) == 600
        assert active.elapsed_seconds(at(90)) == 600

    def test_pause_without_session(self, manager):
        """Test pausing with no live session."""
        assert manager.pause() is None
        assert manager.resume() is None


class TestFinish:
    """Tests for finishing sessions."""

    def test_timed_session_with_pause(self, manager, tracker, db, book, recorder):
        """Test start, page update, pause, resume and finish end to end."""
        manager.start(book.id, at=T0)
        manager.update_page(80, at=at(5))
        manager.pause(at=at(10))
        manager.resume(at=at(15))
        entry = manager.finish(at=at(30))

        assert entry.start_page == 50
        assert entry.end_page == 80
        assert entry.duration_minutes == 25
        assert entry.xp_earned == 300
        assert entry.xp_awarded is True
        assert db.get_book(book.id).current_page == 80
        assert manager.current() is None
        assert tracker.engine.get_profile().total_xp == 300

        assert recorder.types() == [
            SessionStarted,
            SessionPageUpdated,
            SessionPaused,
            SessionResumed,
            SessionFinished,
            XPAwarded,
            StreakUpdated,
        ]

    def test_finish_event_carries_ids(self, manager, book, recorder):
        """Test that SessionFinished names the ended live session."""
        active = manager.start(book.id, at=T0)
        entry = manager.finish(at=at(20))

        finished = recorder.of_type(SessionFinished)[0]
        assert finished.finalized_session.id == entry.id
        assert finished.ended_active_session_id == active.id

    def test_finish_with_end_page(self, manager, db, book):
        """Test overriding the final page."""
        manager.start(book.id, at=T0)
        entry = manager.finish(end_page=120, at=at(20))

        assert entry.end_page == 120
        assert db.get_book(book.id).current_page == 120

    def test_finish_clamps_end_page(self, manager, db, book):
        """Test that a final page past the end is clamped."""
        manager.start(book.id, at=T0)
        entry = manager.finish(end_page=500, at=at(20))

        assert entry.end_page == 300
        assert db.get_book(book.id).current_page == 300

    def test_finish_minimum_one_minute(self, manager, book):
        """Test that very short sessions still count one minute."""
        manager.start(book.id, at=T0)
        entry = manager.finish(at=T0 + timedelta(seconds=20))
        assert entry.duration_minutes == 1

    def test_finish_duration_capped(self, manager, book):
        """Test that forgotten sessions are capped at seven days."""
        manager.start(book.id, at=T0)
        entry = manager.finish(at=T0 + timedelta(days=9))
        assert entry.duration_minutes == MAX_SESSION_MINUTES

    def test_finish_duration_bonus(self, manager, book):
        """Test that long sessions earn the duration bonus."""
        manager.start(book.id, at=T0)
        manager.update_page(60, at=at(30))
        entry = manager.finish(at=at(125))

        assert entry.duration_minutes == 125
        assert entry.xp_earned == 10 * 10 + 100

    def test_finish_promotes_want_to_read(self, manager, db, queued_book, recorder):
        """Test that finishing a session on a queued book starts it."""
        manager.start(queued_book.id, at=T0)
        manager.update_page(20, at=at(10))
        manager.finish(at=at(20))

        stored = db.get_book(queued_book.id)
        assert stored.reading_status == ReadingStatus.CURRENTLY_READING
        assert stored.date_started == to_iso(T0)
        changed = recorder.of_type(StatusChanged)
        assert len(changed) == 1
        assert changed[0].old_status == ReadingStatus.WANT_TO_READ
        assert changed[0].new_status == ReadingStatus.CURRENTLY_READING

    def test_finish_without_session(self, manager, recorder):
        """Test finishing with no live session."""
        assert manager.finish() is None
        assert recorder.events == []


class TestEndAndReplace:
    """Tests for resolving a conflict by replacing the live session."""

    def test_end_and_replace(self, manager, tracker, book, other_book):
        """Test that the old session is recorded and a new one started."""
        manager.start(book.id, at=T0)
        manager.update_page(60, at=at(10))

        finished, active = manager.end_and_replace(other_book.id, at=at(20))

        assert finished.book_id == book.id
        assert finished.end_page == 60
        assert active.book_id == other_book.id
        assert active.start_page == 10
        assert manager.current().id == active.id
        assert len(tracker.ledger.sessions_for_book(book.id)) == 1

    def test_end_and_replace_when_idle(self, manager, book):
        """Test that replacing with nothing live just starts."""
        finished, active = manager.end_and_replace(book.id, at=T0)

        assert finished is None
        assert active.book_id == book.id

    def test_end_and_replace_unknown_book_keeps_live_session(self, manager, tracker, book, recorder):
        """Test that a failed replacement leaves the running session untouched."""
        live = manager.start(book.id, at=T0)
        manager.update_page(70, at=at(10))
        recorder.clear()

        with pytest.raises(BookNotFoundError):
            manager.end_and_replace("no-such-book", at=at(20))

        current = manager.current()
        assert current.id == live.id
        assert current.current_page == 70
        assert tracker.ledger.sessions_for_book(book.id) == []
        assert tracker.engine.get_profile().total_xp == 0
        assert recorder.events == []

    def test_end_and_replace_publishes_both(self, manager, book, other_book, recorder):
        """Test that the finish events come before the new start."""
        manager.start(book.id, at=T0)
        recorder.clear()

        manager.end_and_replace(other_book.id, at=at(20))

        types = recorder.types()
        assert types[0] is SessionFinished
        assert types[-1] is SessionStarted


class TestCancel:
    """Tests for cancelling sessions."""

    def test_cancel(self, manager, tracker, book, recorder):
        """Test that cancelling discards the session without a record."""
        active = manager.start(book.id, at=T0)
        manager.update_page(90, at=at(5))

        assert manager.cancel() is True
        assert manager.current() is None
        assert tracker.ledger.sessions_for_book(book.id) == []
        assert tracker.engine.get_profile().total_xp == 0
        cancelled = recorder.of_type(SessionCancelled)
        assert cancelled[0].ended_active_session_id == active.id

    def test_cancel_without_session(self, manager):
        """Test cancelling with no live session."""
        assert manager.cancel() is False


class TestLogDirect:
    """Tests for untimed session logging."""

    def test_log_direct(self, manager, tracker, db, book, recorder):
        """Test logging a session without a timer."""
        entry = manager.log_direct(book.id, 50, 90, 45, session_date=T0)

        assert entry.pages_read == 40
        assert entry.duration_minutes == 45
        assert entry.xp_earned == 400
        assert entry.start_date == to_iso(T0)
        assert db.get_book(book.id).current_page == 90
        assert tracker.engine.get_profile().total_xp == 400
        finished = recorder.of_type(SessionFinished)[0]
        assert finished.ended_active_session_id is None

    def test_log_direct_clamps_pages(self, manager, book):
        """Test that logged pages are clamped to the book."""
        entry = manager.log_direct(book.id, -10, 1000, 30, session_date=T0)

        assert entry.start_page == 0
        assert entry.end_page == 300

    def test_log_direct_ends_live_session_for_same_book(self, manager, book, recorder):
        """Test that logging replaces a live session on the same book."""
        active = manager.start(book.id, at=T0)
        manager.log_direct(book.id, 50, 70, 20, session_date=at(30))

        assert manager.current() is None
        finished = recorder.of_type(SessionFinished)[0]
        assert finished.ended_active_session_id == active.id

    def test_log_direct_keeps_live_session_for_other_book(self, manager, book, other_book):
        """Test that a live session on another book is left running."""
        active = manager.start(other_book.id, at=T0)
        manager.log_direct(book.id, 50, 70, 20, session_date=at(30))

        assert manager.current().id == active.id

    def test_log_direct_unknown_book(self, manager):
        """Test logging for a missing book."""
        with pytest.raises(BookNotFoundError):
            manager.log_direct("missing", 0, 10, 5)

    def test_log_direct_restamps_start_date_on_promotion(self, manager, tracker, db, queued_book):
        """Test that picking a shelved book up again moves its start date."""
        tracker.status.change_status(queued_book.id, ReadingStatus.CURRENTLY_READING, at=T0)
        tracker.status.change_status(queued_book.id, ReadingStatus.WANT_TO_READ, at=T0)
        assert db.get_book(queued_book.id).date_started == to_iso(T0)

        later = T0 + timedelta(days=30)
        manager.log_direct(queued_book.id, 0, 15, 10, session_date=later)

        stored = db.get_book(queued_book.id)
        assert stored.reading_status == ReadingStatus.CURRENTLY_READING
        assert stored.date_started == to_iso(later)


class TestCleanupStale:
    """Tests for discarding abandoned sessions."""

    def test_stale_session_discarded(self, manager, book, recorder):
        """Test that a session idle past the window is removed."""
        active = manager.start(book.id, at=T0)

        ended = manager.cleanup_stale(at=T0 + timedelta(hours=25))

        assert ended == active.id
        assert manager.current() is None
        assert recorder.of_type(SessionCancelled)[0].ended_active_session_id == active.id

    def test_recent_session_kept(self, manager, book):
        """Test that a session inside the window is kept."""
        manager.start(book.id, at=T0)
        manager.update_page(60, at=T0 + timedelta(hours=20))

        assert manager.cleanup_stale(at=T0 + timedelta(hours=30)) is None
        assert manager.current() is not None

    def test_auto_end_disabled(self, db, events, config, book):
        """Test that a zero-hour window disables cleanup."""
        tracker = ReadingTracker(db, events, replace(config, auto_end_session_hours=0))
        tracker.sessions.start(book.id, at=T0)

        assert tracker.sessions.cleanup_stale(at=T0 + timedelta(days=30)) is None
        assert tracker.sessions.current() is not None


class TestSnapshot:
    """Tests for the live session snapshot."""

    def test_snapshot(self, manager, book):
        """Test the point-in-time view of a running session."""
        active = manager.start(book.id, at=T0)
        manager.update_page(70, at=at(5))

        snap = manager.snapshot(at=at(20))

        assert str(snap.session_id) == active.id
        assert str(snap.book_id) == book.id
        assert snap.book_title == "Dune"
        assert snap.start_page == 50
        assert snap.current_page == 70
        assert snap.pages_read == 20
        assert snap.elapsed_seconds == 1200
        assert snap.is_paused is False
        assert snap.source_device == "test-device"

    def test_snapshot_when_idle(self, manager):
        """Test that there is no snapshot without a live session."""
        assert manager.snapshot() is None
