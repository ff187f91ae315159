"""SQLAlchemy model for the live reading session.

Tables:
- active_reading_sessions: The in-progress timed session (at most one)
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Float, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ..db.models import Base, generate_uuid, utc_timestamp
from ..utils import from_iso

# Cap for a single session; anything longer was left running by mistake
MAX_SESSION_MINUTES = 7 * 24 * 60


class ActiveReadingSession(Base):
    """Active reading session model - the live, timed session.

    Elapsed time is always recomputed from the stored absolute timestamps.
    """

    __tablename__ = "active_reading_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    book_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True
    )

    start_date: Mapped[str] = mapped_column(String(32), nullable=False)  # ISO datetime
    start_page: Mapped[int] = mapped_column(Integer, default=0)
    current_page: Mapped[int] = mapped_column(Integer, default=0)

    # Pause accounting
    is_paused: Mapped[bool] = mapped_column(Boolean, default=False)
    paused_at: Mapped[Optional[str]] = mapped_column(String(32))
    total_paused_seconds: Mapped[float] = mapped_column(Float, default=0.0)

    last_updated: Mapped[str] = mapped_column(String(32), default=utc_timestamp)
    source_device: Mapped[str] = mapped_column(String(50), default="cli")

    def __repr__(self) -> str:
        return (
            f"<ActiveReadingSession(id={self.id}, book_id={self.book_id}, "
            f"page={self.current_page}, paused={self.is_paused})>"
        )

    @property
    def started_at(self) -> datetime:
        return from_iso(self.start_date)

    @property
    def last_updated_at(self) -> datetime:
        return from_iso(self.last_updated)

    @property
    def pages_read(self) -> int:
        """Pages covered so far; negative if the reader went backwards."""
        return self.current_page - self.start_page

    def elapsed_seconds(self, at: datetime) -> float:
        """Active reading time at instant `at`, excluding paused time."""
        started = self.started_at
        if at < started:
            return 0.0

        paused = self.total_paused_seconds or 0.0
        if self.is_paused and self.paused_at:
            paused_at = from_iso(self.paused_at)
            if at >= paused_at:
                paused += (at - paused_at).total_seconds()

        return max(0.0, (at - started).total_seconds() - paused)

    def duration_minutes(self, at: datetime) -> int:
        """Whole minutes read, at least 1 and at most MAX_SESSION_MINUTES."""
        minutes = int(self.elapsed_seconds(at) // 60)
        return max(1, min(minutes, MAX_SESSION_MINUTES))

    def should_auto_end(self, inactivity_hours: int, at: datetime) -> bool:
        """Whether the session has gone untouched for longer than the threshold."""
        return (at - self.last_updated_at).total_seconds() > inactivity_hours * 3600
