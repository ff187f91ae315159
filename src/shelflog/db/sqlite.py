"""SQLite database operations.

Handles database connection, unit-of-work sessions, and book CRUD.
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine, event, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..errors import BookNotFoundError, PersistenceFailure
from ..utils import to_iso
from .models import Base, Book
from .schemas import BookCreate, BookUpdate, ReadingStatus

logger = logging.getLogger(__name__)


def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
    """SQLite leaves foreign keys off unless asked per connection."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Database connection and operations manager."""

    def __init__(self, db_path: Optional[str] = None):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file, or ":memory:". If None,
                     uses the configured path (SHELFLOG_DB_PATH).
        """
        if db_path is None:
            from ..config import get_config

            db_path = str(get_config().db_path)

        self.db_path = Path(db_path)
        self._is_memory = str(db_path) == ":memory:"

        if not self._is_memory:
            self._ensure_directory()

        # For in-memory databases, use StaticPool to reuse the same connection
        # so every session sees the same data
        if self._is_memory:
            self.engine = create_engine(
                "sqlite:///:memory:",
                echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(
                f"sqlite:///{self.db_path}",
                echo=False,
                connect_args={"check_same_thread": False},
            )
        event.listen(self.engine, "connect", _enable_foreign_keys)
        self.SessionLocal = sessionmaker(
            bind=self.engine, autocommit=False, autoflush=False, expire_on_commit=False
        )

    def _ensure_directory(self) -> None:
        """Ensure the database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def create_tables(self) -> None:
        """Create all database tables."""
        # Import feature models to register them with Base
        from ..gamification.models import GamificationProfile  # noqa: F401
        from ..reading.models import ActiveReadingSession  # noqa: F401

        Base.metadata.create_all(self.engine)

    def drop_tables(self) -> None:
        """Drop all database tables. Use with caution!"""
        Base.metadata.drop_all(self.engine)

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Get a unit-of-work session.

        Commits when the block exits cleanly, rolls back on any error and
        always closes. Store failures surface as PersistenceFailure.
        """
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("Store operation failed: %s", e)
            raise PersistenceFailure(f"Could not save changes: {e}", original=e) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ========================================================================
    # Book Operations
    # ========================================================================

    def create_book(self, book: BookCreate, session: Optional[Session] = None) -> Book:
        """Create a new book record."""

        def _create(s: Session) -> Book:
            db_book = Book(
                title=book.title,
                author=book.author,
                total_pages=book.total_pages,
                current_page=book.current_page,
                status=book.status.value,
                date_started=to_iso(book.date_started),
                date_finished=to_iso(book.date_finished),
            )
            s.add(db_book)
            s.flush()
            return db_book

        if session:
            return _create(session)
        else:
            with self.get_session() as s:
                return _create(s)

    def get_book(self, book_id: str, session: Optional[Session] = None) -> Optional[Book]:
        """Get a book by ID."""

        def _get(s: Session) -> Optional[Book]:
            return s.get(Book, book_id)

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                return _get(s)

    def require_book(self, book_id: str, session: Session) -> Book:
        """Get a book by ID inside an open session, or raise BookNotFoundError."""
        book = session.get(Book, book_id)
        if not book:
            raise BookNotFoundError(book_id)
        return book

    def get_books_by_status(
        self, status: ReadingStatus, session: Optional[Session] = None
    ) -> list[Book]:
        """Get all books with a given status."""

        def _get(s: Session) -> list[Book]:
            stmt = select(Book).where(Book.status == status.value).order_by(Book.title)
            return list(s.execute(stmt).scalars().all())

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                return _get(s)

    def search_books(
        self, query: str, limit: int = 20, session: Optional[Session] = None
    ) -> list[Book]:
        """Search books by title or author."""

        def _search(s: Session) -> list[Book]:
            pattern = f"%{query}%"
            stmt = (
                select(Book)
                .where((Book.title.ilike(pattern)) | (Book.author.ilike(pattern)))
                .order_by(Book.title)
                .limit(limit)
            )
            return list(s.execute(stmt).scalars().all())

        if session:
            return _search(session)
        else:
            with self.get_session() as s:
                return _search(s)

    def get_all_books(self, session: Optional[Session] = None) -> list[Book]:
        """Get all books."""

        def _get(s: Session) -> list[Book]:
            stmt = select(Book).order_by(Book.title)
            return list(s.execute(stmt).scalars().all())

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                return _get(s)

    def update_book(
        self, book_id: str, update: BookUpdate, session: Optional[Session] = None
    ) -> Optional[Book]:
        """Update book metadata.

        Lowering total_pages below the current page pulls the page down
        with it.
        """

        def _update(s: Session) -> Optional[Book]:
            book = s.get(Book, book_id)
            if not book:
                return None

            update_data = update.model_dump(exclude_unset=True)
            for field, value in update_data.items():
                setattr(book, field, value)

            if book.total_pages and book.current_page > book.total_pages:
                book.current_page = book.total_pages

            s.flush()
            return book

        if session:
            return _update(session)
        else:
            with self.get_session() as s:
                return _update(s)

    def delete_book(self, book_id: str, session: Optional[Session] = None) -> bool:
        """Delete a book record along with its sessions."""

        def _delete(s: Session) -> bool:
            book = s.get(Book, book_id)
            if not book:
                return False
            s.delete(book)
            s.flush()
            return True

        if session:
            return _delete(session)
        else:
            with self.get_session() as s:
                return _delete(s)


# Global database instance
_db: Optional[Database] = None


def get_db(db_path: Optional[str] = None) -> Database:
    """Get or create the global database instance."""
    global _db
    if _db is None:
        _db = Database(db_path)
        _db.create_tables()
    return _db


def reset_db() -> None:
    """Reset the global database instance. Used for testing."""
    global _db
    _db = None
