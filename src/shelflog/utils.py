"""Utility functions for shelflog."""

from datetime import date, datetime, timezone
from typing import Optional


def now() -> datetime:
    """Current time as a timezone-aware datetime in the local offset."""
    return datetime.now(timezone.utc).astimezone()


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """
    Serialize a datetime for storage.

    Naive datetimes are assumed to be UTC.

    Example:
        >>> to_iso(datetime(2025, 1, 15, 10, 30, tzinfo=timezone.utc))
        '2025-01-15T10:30:00+00:00'
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def from_iso(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a stored timestamp back into an aware datetime.

    Example:
        >>> from_iso("2025-01-15T10:30:00+00:00").hour
        10
    """
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def calendar_day(value: datetime) -> date:
    """Calendar day of a timestamp, read in its own UTC offset."""
    return value.date()


def clamp_page(page: int, total_pages: Optional[int]) -> int:
    """
    Clamp a page number to [0, total_pages], or [0, inf) when the total is unknown.

    Example:
        >>> clamp_page(350, 300)
        300
        >>> clamp_page(-4, None)
        0
        >>> clamp_page(1200, None)
        1200
    """
    upper = total_pages if total_pages and total_pages > 0 else None
    page = max(0, page)
    if upper is not None:
        page = min(page, upper)
    return page
