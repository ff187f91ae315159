"""Pydantic schemas for the live reading session."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class ActiveSessionSnapshot(BaseModel):
    """Point-in-time view of the live session.

    This is what live-status surfaces display and what a sync peer compares
    against its own copy to detect conflicts.
    """

    session_id: UUID
    book_id: UUID
    book_title: Optional[str] = None
    started_at: datetime
    start_page: int
    current_page: int
    pages_read: int
    is_paused: bool
    elapsed_seconds: float
    last_updated: datetime
    source_device: str

    model_config = {"from_attributes": True}
