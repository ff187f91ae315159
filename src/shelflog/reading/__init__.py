"""Reading sessions: the ledger, the live session and status transitions.

The session manager and status controller depend on the gamification
engine; import them from their modules (reading.session, reading.status).
"""

from .ledger import DeleteResult, SessionLedger
from .models import MAX_SESSION_MINUTES, ActiveReadingSession
from .schemas import ActiveSessionSnapshot

__all__ = [
    "DeleteResult",
    "SessionLedger",
    "MAX_SESSION_MINUTES",
    "ActiveReadingSession",
    "ActiveSessionSnapshot",
]
