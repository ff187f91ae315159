"""SQLAlchemy model for the reader's gamification profile.

Tables:
- gamification_profiles: XP, streak and achievement aggregates (one row)
"""

import json
from typing import Optional

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ..db.models import Base, generate_uuid, utc_timestamp
from .achievements import AchievementID

XP_PER_LEVEL = 1000


class GamificationProfile(Base):
    """Profile model - aggregates derived from the session ledger."""

    __tablename__ = "gamification_profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)

    total_xp: Mapped[int] = mapped_column(Integer, default=0)

    # Streak
    current_streak_days: Mapped[int] = mapped_column(Integer, default=0)
    longest_streak_days: Mapped[int] = mapped_column(Integer, default=0)
    last_session_date: Mapped[Optional[str]] = mapped_column(String(32))  # ISO datetime
    streaks_paused: Mapped[bool] = mapped_column(Boolean, default=False)

    unlocked_achievements: Mapped[Optional[str]] = mapped_column(Text)  # JSON array

    # Timestamps
    created_at: Mapped[str] = mapped_column(String(32), default=utc_timestamp)
    updated_at: Mapped[str] = mapped_column(
        String(32), default=utc_timestamp, onupdate=utc_timestamp
    )

    def __repr__(self) -> str:
        return (
            f"<GamificationProfile(xp={self.total_xp}, "
            f"streak={self.current_streak_days}/{self.longest_streak_days})>"
        )

    @property
    def level(self) -> int:
        """Every 1000 XP is one level; level 1 at 0 XP."""
        return max(0, self.total_xp or 0) // XP_PER_LEVEL + 1

    @property
    def xp_into_level(self) -> int:
        return max(0, self.total_xp or 0) % XP_PER_LEVEL

    def get_unlocked_achievements(self) -> set[AchievementID]:
        """Get unlocked achievements as a set."""
        if self.unlocked_achievements:
            return {AchievementID(value) for value in json.loads(self.unlocked_achievements)}
        return set()

    def set_unlocked_achievements(self, achievements: set[AchievementID]) -> None:
        """Set unlocked achievements from a set (stored sorted)."""
        values = sorted(a.value for a in achievements)
        self.unlocked_achievements = json.dumps(values) if values else None
