"""shelflog - reading status, session and reward tracking."""

__version__ = "0.1.0"
