"""Gamification engine - XP, streaks and achievements.

Everything here is a deterministic function of the session ledger and the
profile. Incremental updates (apply_session) and a full rebuild
(recalculate_stats) go through the same award_xp / update_streak /
check_achievements steps, so both paths agree.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..db.models import Book, ReadingSession
from ..db.schemas import ReadingStatus
from ..db.sqlite import Database, get_db
from ..events import AchievementsUnlocked, Event, StreakUpdated, XPAwarded
from ..reading.ledger import SessionLedger
from ..utils import calendar_day, from_iso, now, to_iso
from .achievements import (
    BOOK_MILESTONES,
    DAILY_MINUTES_THRESHOLD,
    DAILY_PAGES_THRESHOLD,
    LEVEL_MILESTONES,
    PAGE_MILESTONES,
    STREAK_MILESTONES,
    AchievementID,
    milestones_reached,
)
from .models import GamificationProfile
from .schemas import ProfileStats

logger = logging.getLogger(__name__)

XP_PER_PAGE = 10

# (minimum minutes, bonus XP), longest first
DURATION_BONUSES = [
    (180, 200),  # 3+ hours
    (120, 100),  # 2+ hours
    (60, 50),  # 1+ hour
]


def calculate_xp(pages_read: int, duration_minutes: int) -> int:
    """XP for a session: 10 per page read plus a bonus for long sessions.

    Negative page counts (corrections) earn nothing rather than costing XP.

    Example:
        >>> calculate_xp(30, 25)
        300
        >>> calculate_xp(30, 90)
        350
        >>> calculate_xp(0, 0)
        0
    """
    base = max(0, pages_read) * XP_PER_PAGE
    bonus = next((b for minutes, b in DURATION_BONUSES if duration_minutes >= minutes), 0)
    return base + bonus


@dataclass
class AwardResult:
    """What one pass through the award path changed."""

    xp_awarded: int = 0
    streak_changed: bool = False
    unlocked: list[AchievementID] = field(default_factory=list)

    def to_events(self, profile: GamificationProfile) -> list[Event]:
        """Events to publish once the change has been committed."""
        events: list[Event] = []
        if self.xp_awarded:
            events.append(XPAwarded(amount=self.xp_awarded, profile=profile))
        if self.streak_changed:
            events.append(
                StreakUpdated(current_streak_days=profile.current_streak_days, profile=profile)
            )
        if self.unlocked:
            events.append(AchievementsUnlocked(ids=list(self.unlocked), profile=profile))
        return events


class GamificationEngine:
    """Derives XP, streaks and achievements from reading sessions."""

    def __init__(self, db: Optional[Database] = None, ledger: Optional[SessionLedger] = None):
        """Initialize the engine.

        Args:
            db: Database instance
            ledger: Session ledger used for aggregates and rebuilds
        """
        self.db = db or get_db()
        self.ledger = ledger or SessionLedger(self.db)

    # -------------------------------------------------------------------------
    # Profile
    # -------------------------------------------------------------------------

    def get_profile(self, session: Optional[Session] = None) -> GamificationProfile:
        """Get the reader's profile, creating it on first use."""

        def _get(s: Session) -> GamificationProfile:
            stmt = select(GamificationProfile).order_by(GamificationProfile.created_at)
            profile = s.execute(stmt).scalars().first()
            if profile is None:
                profile = GamificationProfile(
                    total_xp=0,
                    current_streak_days=0,
                    longest_streak_days=0,
                    streaks_paused=False,
                )
                s.add(profile)
                s.flush()
                logger.info("Created gamification profile %s", profile.id)
            return profile

        if session:
            return _get(session)
        else:
            with self.db.get_session() as s:
                return _get(s)

    def set_streaks_paused(self, paused: bool) -> GamificationProfile:
        """Freeze or unfreeze streak tracking."""
        with self.db.get_session() as s:
            profile = self.get_profile(s)
            profile.streaks_paused = paused
            return profile

    # -------------------------------------------------------------------------
    # XP
    # -------------------------------------------------------------------------

    def calculate_xp(self, reading_session: ReadingSession) -> int:
        """XP a ledger entry is worth."""
        return calculate_xp(reading_session.pages_read, reading_session.duration_minutes)

    def award_xp(self, amount: int, profile: GamificationProfile) -> int:
        """Add XP to the profile and return the new total.

        This does not deduplicate; callers check and set the entry's
        xp_awarded flag.
        """
        profile.total_xp = max(0, (profile.total_xp or 0) + amount)
        return profile.total_xp

    # -------------------------------------------------------------------------
    # Streaks
    # -------------------------------------------------------------------------

    def update_streak(self, profile: GamificationProfile, session_date: datetime) -> bool:
        """Fold one session date into the streak.

        Next calendar day extends the streak, the same day leaves it alone,
        anything further resets it to 1. A date before the last recorded
        day is ignored.

        Returns:
            True if the current or longest streak changed
        """
        if profile.streaks_paused:
            return False

        before = (profile.current_streak_days, profile.longest_streak_days)
        last = from_iso(profile.last_session_date)
        current = profile.current_streak_days or 0

        if last is None:
            current = 1
        else:
            gap = (calendar_day(session_date) - calendar_day(last)).days
            if gap < 0:
                return False
            if gap == 0:
                current = max(current, 1)
            elif gap == 1:
                current += 1
            else:
                current = 1

        profile.current_streak_days = current
        profile.longest_streak_days = max(profile.longest_streak_days or 0, current)
        if last is None or session_date > last:
            profile.last_session_date = to_iso(session_date)

        return (profile.current_streak_days, profile.longest_streak_days) != before

    def refresh_streak(self, at: Optional[datetime] = None) -> bool:
        """Drop the current streak to 0 once a full day has passed without reading.

        Returns:
            True if the streak was reset
        """
        at = at or now()
        with self.db.get_session() as s:
            profile = self.get_profile(s)
            last = from_iso(profile.last_session_date)
            if profile.streaks_paused or last is None or not profile.current_streak_days:
                return False
            if (calendar_day(at) - calendar_day(last)).days <= 1:
                return False
            logger.info("Streak of %d days lapsed", profile.current_streak_days)
            profile.current_streak_days = 0
            return True

    # -------------------------------------------------------------------------
    # Achievements
    # -------------------------------------------------------------------------

    def check_achievements(
        self,
        profile: GamificationProfile,
        as_of: Optional[date] = None,
        session: Optional[Session] = None,
    ) -> list[AchievementID]:
        """Unlock every achievement whose threshold is met.

        Args:
            profile: Profile to update
            as_of: Calendar day for the single-day achievements (default: today)
            session: Open unit of work to join

        Returns:
            Achievements unlocked by this call, in definition order
        """

        def _check(s: Session) -> list[AchievementID]:
            s.flush()
            day = as_of or calendar_day(now())
            day_pages, day_minutes = self.ledger.totals_for_day(day, s)
            return self._unlock_reached(
                profile,
                books_finished=self._count_finished_books(s),
                total_pages=self.ledger.total_countable_pages(s),
                day_pages=day_pages,
                day_minutes=day_minutes,
            )

        if session:
            return _check(session)
        else:
            with self.db.get_session() as s:
                return _check(s)

    def _unlock_reached(
        self,
        profile: GamificationProfile,
        books_finished: int,
        total_pages: int,
        day_pages: int,
        day_minutes: int,
    ) -> list[AchievementID]:
        reached = set(milestones_reached(books_finished, BOOK_MILESTONES))
        reached.update(milestones_reached(total_pages, PAGE_MILESTONES))
        reached.update(milestones_reached(profile.level, LEVEL_MILESTONES))
        if not profile.streaks_paused:
            reached.update(
                milestones_reached(profile.current_streak_days or 0, STREAK_MILESTONES)
            )
        if day_pages >= DAILY_PAGES_THRESHOLD:
            reached.add(AchievementID.HUNDRED_PAGES_IN_DAY)
        if day_minutes >= DAILY_MINUTES_THRESHOLD:
            reached.add(AchievementID.MARATHON_READER)

        unlocked = profile.get_unlocked_achievements()
        new = reached - unlocked
        if not new:
            return []

        profile.set_unlocked_achievements(unlocked | new)
        ordered = [a for a in AchievementID if a in new]
        logger.info("Achievements unlocked: %s", ", ".join(a.value for a in ordered))
        return ordered

    def _count_finished_books(self, s: Session, tracked_only: bool = True) -> int:
        """Finished books; by default only those with reading that counts toward stats.

        A book finished without any tracked session earns no achievements.
        """
        stmt = select(func.count()).select_from(Book).where(
            Book.status == ReadingStatus.FINISHED.value
        )
        if tracked_only:
            tracked = select(ReadingSession.id).where(
                ReadingSession.book_id == Book.id,
                ReadingSession.counts_toward_stats.is_(True),
            )
            stmt = stmt.where(tracked.exists())
        return s.execute(stmt).scalar_one()

    # -------------------------------------------------------------------------
    # Award path
    # -------------------------------------------------------------------------

    def apply_session(
        self,
        entry: ReadingSession,
        profile: GamificationProfile,
        session: Optional[Session] = None,
    ) -> AwardResult:
        """Apply a ledger entry's rewards to the profile exactly once.

        XP is guarded by entry.xp_awarded; the streak and achievement steps
        are naturally idempotent. Entries that do not count toward stats
        change nothing.
        """

        def _apply(s: Session) -> AwardResult:
            result = AwardResult()
            if not entry.counts_toward_stats:
                return result

            if entry.xp_awarded:
                logger.debug("XP for session %s already awarded", entry.id)
            else:
                self.award_xp(entry.xp_earned, profile)
                entry.xp_awarded = True
                result.xp_awarded = entry.xp_earned

            started = entry.started_at
            if self._is_backdated(profile, started):
                return self._replay_for_backdated(entry, profile, s, result)

            result.streak_changed = self.update_streak(profile, started)
            result.unlocked = self.check_achievements(
                profile, as_of=calendar_day(started), session=s
            )
            s.flush()
            return result

        if session:
            return _apply(session)
        else:
            with self.db.get_session() as s:
                return _apply(s)

    def _is_backdated(self, profile: GamificationProfile, started: datetime) -> bool:
        last = from_iso(profile.last_session_date)
        if profile.streaks_paused or last is None:
            return False
        return calendar_day(started) < calendar_day(last)

    def _replay_for_backdated(
        self,
        entry: ReadingSession,
        profile: GamificationProfile,
        s: Session,
        result: AwardResult,
    ) -> AwardResult:
        """Rebuild from the ledger for a session dated before the last reading day.

        An earlier day can join or extend past streaks, which a forward-only
        streak update cannot see. XP already applied is replayed, not added again.
        """
        streak_before = (profile.current_streak_days, profile.longest_streak_days)
        unlocked_before = profile.get_unlocked_achievements()
        logger.info(
            "Session %s dated %s precedes last reading day; replaying history",
            entry.id,
            entry.start_date,
        )

        self.recalculate_stats(profile, s)

        result.streak_changed = (
            profile.current_streak_days,
            profile.longest_streak_days,
        ) != streak_before
        gained = profile.get_unlocked_achievements() - unlocked_before
        result.unlocked = [a for a in AchievementID if a in gained]
        return result

    # -------------------------------------------------------------------------
    # Rebuild
    # -------------------------------------------------------------------------

    def recalculate_stats(
        self,
        profile: Optional[GamificationProfile] = None,
        session: Optional[Session] = None,
    ) -> GamificationProfile:
        """Rebuild XP, streaks and achievements from the ledger.

        Resets the aggregates, then replays every countable session in
        chronological order. Run after deleting or importing sessions.
        Running it twice in a row gives the same profile.
        """

        def _recalculate(s: Session) -> GamificationProfile:
            p = profile
            if p is None:
                p = self.get_profile(s)
            elif p not in s:
                p = s.merge(p)

            s.flush()
            entries = self.ledger.countable_sessions(s)
            books_finished = self._count_finished_books(s)
            total_pages = max(0, sum(e.pages_read for e in entries))
            daily: dict[date, list[int]] = defaultdict(lambda: [0, 0])
            for e in entries:
                totals = daily[calendar_day(e.started_at)]
                totals[0] += e.pages_read
                totals[1] += e.duration_minutes

            p.total_xp = 0
            p.set_unlocked_achievements(set())
            if not p.streaks_paused:
                p.current_streak_days = 0
                p.longest_streak_days = 0
                p.last_session_date = None

            for e in entries:
                self.award_xp(e.xp_earned, p)
                e.xp_awarded = True
                self.update_streak(p, e.started_at)
                day_pages, day_minutes = daily[calendar_day(e.started_at)]
                self._unlock_reached(
                    p,
                    books_finished=books_finished,
                    total_pages=total_pages,
                    day_pages=day_pages,
                    day_minutes=day_minutes,
                )

            # Finished-book milestones hold even with an empty ledger
            self._unlock_reached(
                p, books_finished=books_finished, total_pages=total_pages, day_pages=0, day_minutes=0
            )

            s.flush()
            logger.info(
                "Stats recalculated from %d sessions: %d XP, streak %d (longest %d)",
                len(entries),
                p.total_xp,
                p.current_streak_days,
                p.longest_streak_days,
            )
            return p

        if session:
            return _recalculate(session)
        else:
            with self.db.get_session() as s:
                return _recalculate(s)

    # -------------------------------------------------------------------------
    # Stats
    # -------------------------------------------------------------------------

    def get_stats(self) -> ProfileStats:
        """Summary of the profile and ledger totals."""
        with self.db.get_session() as s:
            profile = self.get_profile(s)
            entries = self.ledger.countable_sessions(s)
            unlocked = profile.get_unlocked_achievements()
            return ProfileStats(
                total_xp=profile.total_xp,
                level=profile.level,
                xp_into_level=profile.xp_into_level,
                current_streak_days=profile.current_streak_days,
                longest_streak_days=profile.longest_streak_days,
                last_session_date=from_iso(profile.last_session_date),
                streaks_paused=profile.streaks_paused,
                books_finished=self._count_finished_books(s, tracked_only=False),
                pages_read=max(0, sum(e.pages_read for e in entries)),
                minutes_read=sum(e.duration_minutes for e in entries),
                sessions_count=len(entries),
                unlocked_achievements=[a for a in AchievementID if a in unlocked],
            )
