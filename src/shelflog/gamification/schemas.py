"""Pydantic schemas for gamification stats."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from .achievements import AchievementID


class ProfileStats(BaseModel):
    """Snapshot of the reader's rewards and totals."""

    total_xp: int
    level: int
    xp_into_level: int

    current_streak_days: int
    longest_streak_days: int
    last_session_date: Optional[datetime]
    streaks_paused: bool

    books_finished: int
    pages_read: int
    minutes_read: int
    sessions_count: int

    unlocked_achievements: list[AchievementID]
