"""Achievement definitions and unlock thresholds."""

from enum import Enum


class AchievementID(str, Enum):
    """Identifiers of every achievement a reader can unlock."""

    # Books finished
    FIRST_BOOK = "first_book"
    TEN_BOOKS = "ten_books"
    FIFTY_BOOKS = "fifty_books"
    HUNDRED_BOOKS = "hundred_books"

    # Pages read
    HUNDRED_PAGES = "hundred_pages"
    THOUSAND_PAGES = "thousand_pages"
    TEN_THOUSAND_PAGES = "ten_thousand_pages"

    # Streaks
    SEVEN_DAY_STREAK = "seven_day_streak"
    THIRTY_DAY_STREAK = "thirty_day_streak"
    HUNDRED_DAY_STREAK = "hundred_day_streak"

    # Levels
    LEVEL_FIVE = "level_five"
    LEVEL_TEN = "level_ten"
    LEVEL_TWENTY = "level_twenty"

    # Single-day feats
    HUNDRED_PAGES_IN_DAY = "hundred_pages_in_day"
    MARATHON_READER = "marathon_reader"


# (threshold, achievement) pairs, checked with >=
BOOK_MILESTONES = [
    (1, AchievementID.FIRST_BOOK),
    (10, AchievementID.TEN_BOOKS),
    (50, AchievementID.FIFTY_BOOKS),
    (100, AchievementID.HUNDRED_BOOKS),
]

PAGE_MILESTONES = [
    (100, AchievementID.HUNDRED_PAGES),
    (1000, AchievementID.THOUSAND_PAGES),
    (10000, AchievementID.TEN_THOUSAND_PAGES),
]

STREAK_MILESTONES = [
    (7, AchievementID.SEVEN_DAY_STREAK),
    (30, AchievementID.THIRTY_DAY_STREAK),
    (100, AchievementID.HUNDRED_DAY_STREAK),
]

LEVEL_MILESTONES = [
    (5, AchievementID.LEVEL_FIVE),
    (10, AchievementID.LEVEL_TEN),
    (20, AchievementID.LEVEL_TWENTY),
]

DAILY_PAGES_THRESHOLD = 100
DAILY_MINUTES_THRESHOLD = 180

# Display names
ACHIEVEMENT_NAMES = {
    AchievementID.FIRST_BOOK: "Chapter One",
    AchievementID.TEN_BOOKS: "Shelf Stacker",
    AchievementID.FIFTY_BOOKS: "Library Builder",
    AchievementID.HUNDRED_BOOKS: "Archive Legend",
    AchievementID.HUNDRED_PAGES: "Page Turner",
    AchievementID.THOUSAND_PAGES: "Page Voyager",
    AchievementID.TEN_THOUSAND_PAGES: "Page Titan",
    AchievementID.SEVEN_DAY_STREAK: "Weekly Flame",
    AchievementID.THIRTY_DAY_STREAK: "Monthly Blaze",
    AchievementID.HUNDRED_DAY_STREAK: "Iron Streak",
    AchievementID.LEVEL_FIVE: "Rising Reader",
    AchievementID.LEVEL_TEN: "Seasoned Reader",
    AchievementID.LEVEL_TWENTY: "Master Reader",
    AchievementID.HUNDRED_PAGES_IN_DAY: "Century Sprint",
    AchievementID.MARATHON_READER: "Long Haul",
}


def milestones_reached(value: int, milestones: list[tuple[int, AchievementID]]) -> list[AchievementID]:
    """Achievements whose threshold `value` meets or passes."""
    return [achievement for threshold, achievement in milestones if value >= threshold]
