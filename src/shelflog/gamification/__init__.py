"""XP, reading streaks and achievements."""

from .achievements import ACHIEVEMENT_NAMES, AchievementID
from .engine import AwardResult, GamificationEngine, calculate_xp
from .models import XP_PER_LEVEL, GamificationProfile
from .schemas import ProfileStats

__all__ = [
    "ACHIEVEMENT_NAMES",
    "AchievementID",
    "AwardResult",
    "GamificationEngine",
    "calculate_xp",
    "XP_PER_LEVEL",
    "GamificationProfile",
    "ProfileStats",
]
