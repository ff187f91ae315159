"""Pydantic schemas for data validation.

These schemas define the structure of books and reading sessions as they
enter and leave the store.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


class ReadingStatus(str, Enum):
    """Reading status of a book."""

    WANT_TO_READ = "want_to_read"
    CURRENTLY_READING = "currently_reading"
    FINISHED = "finished"
    DID_NOT_FINISH = "did_not_finish"  # DNF


class FinishChoice(str, Enum):
    """How to finish a book that has no tracked sessions."""

    UNTRACKED = "untracked"  # Mark finished, keep history out of stats


# ============================================================================
# Book Schemas
# ============================================================================


class BookCreate(BaseModel):
    """Schema for creating a new book."""

    title: str = Field(..., min_length=1, description="Book title")
    author: str = Field(..., min_length=1, description="Primary author")
    total_pages: Optional[int] = Field(None, gt=0)
    current_page: int = Field(0, ge=0)
    status: ReadingStatus = Field(default=ReadingStatus.WANT_TO_READ)
    date_started: Optional[datetime] = None
    date_finished: Optional[datetime] = None

    @model_validator(mode="after")
    def check_current_page(self) -> "BookCreate":
        """Current page may not run past the end of the book."""
        if self.total_pages is not None and self.current_page > self.total_pages:
            raise ValueError(
                f"current_page ({self.current_page}) exceeds total_pages ({self.total_pages})"
            )
        return self


class BookUpdate(BaseModel):
    """Schema for updating book metadata. All fields optional.

    Status and progress are not editable here; they go through the
    status controller and the session manager.
    """

    title: Optional[str] = Field(None, min_length=1)
    author: Optional[str] = Field(None, min_length=1)
    total_pages: Optional[int] = Field(None, gt=0)


class BookResponse(BaseModel):
    """Schema for book response."""

    id: UUID
    title: str
    author: str
    total_pages: Optional[int]
    current_page: int
    status: ReadingStatus
    saved_current_page: Optional[int]
    date_started: Optional[datetime]
    date_finished: Optional[datetime]
    progress_percent: float

    model_config = {"from_attributes": True}


# ============================================================================
# Reading Session Schemas
# ============================================================================


class ReadingSessionCreate(BaseModel):
    """Schema for creating a ledger entry."""

    book_id: UUID
    start_date: datetime
    end_date: Optional[datetime] = None
    start_page: int = Field(0, ge=0)
    end_page: int = Field(0, ge=0)
    duration_minutes: int = Field(0, ge=0)
    xp_earned: int = Field(0, ge=0)
    is_auto_generated: bool = False
    counts_toward_stats: bool = True
    is_imported: bool = False


class ReadingSessionResponse(BaseModel):
    """Schema for ledger entry response."""

    id: UUID
    book_id: UUID
    start_date: datetime
    end_date: Optional[datetime]
    start_page: int
    end_page: int
    pages_read: int
    duration_minutes: int
    xp_earned: int
    xp_awarded: bool
    is_auto_generated: bool
    counts_toward_stats: bool
    is_imported: bool

    model_config = {"from_attributes": True}
