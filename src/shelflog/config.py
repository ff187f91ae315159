"""Configuration management for shelflog.

Loads configuration from environment variables and provides defaults.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()


@dataclass
class Config:
    """Application configuration."""

    # Database
    db_path: Path

    # Active sessions
    source_device: str
    auto_end_session_hours: int  # 0 disables auto-end

    # Logging
    log_level: str

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        db_path_str = os.environ.get(
            "SHELFLOG_DB_PATH",
            str(Path.home() / ".shelflog" / "shelflog.db"),
        )
        db_path = Path(db_path_str).expanduser()

        return cls(
            db_path=db_path,
            source_device=os.environ.get("SHELFLOG_SOURCE_DEVICE", "cli"),
            auto_end_session_hours=int(os.environ.get("SHELFLOG_AUTO_END_HOURS", "24")),
            log_level=os.environ.get("SHELFLOG_LOG_LEVEL", "WARNING").upper(),
        )

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = []

        # Check database directory is writable
        if str(self.db_path) != ":memory:" and not self.db_path.parent.exists():
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except PermissionError:
                errors.append(f"Cannot create database directory: {self.db_path.parent}")

        if self.auto_end_session_hours < 0:
            errors.append("SHELFLOG_AUTO_END_HOURS must be 0 or positive")

        if not isinstance(logging.getLevelName(self.log_level), int):
            errors.append(f"Unknown log level: {self.log_level}")

        return errors

    @property
    def auto_end_enabled(self) -> bool:
        """Whether stale live sessions are discarded automatically."""
        return self.auto_end_session_hours > 0


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reset_config() -> None:
    """Reset the global config instance. Used for testing."""
    global _config
    _config = None
