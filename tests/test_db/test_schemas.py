"""Tests for Pydantic schemas."""

from datetime import datetime, timezone
from uuid import UUID

import pytest
from pydantic import ValidationError

from shelflog.db.schemas import (
    BookCreate,
    BookResponse,
    BookUpdate,
    ReadingSessionCreate,
    ReadingSessionResponse,
    ReadingStatus,
)

T0 = datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)


class TestBookCreate:
    """Tests for BookCreate schema."""

    def test_minimal(self):
        """Test creating with only required fields."""
        book = BookCreate(title="Solaris", author="Stanisław Lem")

        assert book.status == ReadingStatus.WANT_TO_READ
        assert book.current_page == 0
        assert book.total_pages is None

    def test_empty_title_rejected(self):
        with pytest.raises(ValidationError):
            BookCreate(title="", author="Someone")

    def test_zero_pages_rejected(self):
        with pytest.raises(ValidationError):
            BookCreate(title="Solaris", author="Stanisław Lem", total_pages=0)

    def test_negative_page_rejected(self):
        with pytest.raises(ValidationError):
            BookCreate(title="Solaris", author="Stanisław Lem", current_page=-1)

    def test_page_past_end_rejected(self):
        """Test that the current page can't exceed the page count."""
        with pytest.raises(ValidationError):
            BookCreate(title="Solaris", author="Stanisław Lem", total_pages=200, current_page=201)

    def test_status_from_value(self):
        book = BookCreate(title="Solaris", author="Stanisław Lem", status="finished")
        assert book.status == ReadingStatus.FINISHED


class TestBookUpdate:
    """Tests for BookUpdate schema."""

    def test_only_set_fields_dumped(self):
        update = BookUpdate(total_pages=120)
        assert update.model_dump(exclude_unset=True) == {"total_pages": 120}


class TestResponses:
    """Tests for response schemas built from ORM rows."""

    def test_book_response(self, db, book):
        response = BookResponse.model_validate(db.get_book(book.id))

        assert response.id == UUID(book.id)
        assert response.status == ReadingStatus.CURRENTLY_READING
        assert response.progress_percent == pytest.approx(50 / 300 * 100)

    def test_session_response(self, tracker, book):
        entry = tracker.sessions.log_direct(book.id, 50, 80, 20, session_date=T0)
        response = ReadingSessionResponse.model_validate(entry)

        assert response.pages_read == 30
        assert response.xp_earned == 300
        assert response.start_date == T0


class TestReadingSessionCreate:
    """Tests for ReadingSessionCreate schema."""

    def test_defaults(self):
        entry = ReadingSessionCreate(book_id=UUID(int=1), start_date=T0)

        assert entry.counts_toward_stats is True
        assert entry.is_auto_generated is False
        assert entry.xp_earned == 0

    def test_negative_duration_rejected(self):
        with pytest.raises(ValidationError):
            ReadingSessionCreate(book_id=UUID(int=1), start_date=T0, duration_minutes=-5)
