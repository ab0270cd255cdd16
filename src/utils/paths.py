"""File path resolution using platformdirs.

REVIEWPULSE_DATA_DIR overrides the platform data directory, which is
useful for containers and tests:
  macOS: ~/Library/Application Support/reviewpulse/
  Linux: ~/.local/share/reviewpulse/
  Windows: %LOCALAPPDATA%/reviewpulse/
"""

import os
from pathlib import Path

import platformdirs

APP_NAME = "reviewpulse"


def get_data_dir() -> Path:
    """Return the directory for persistent data (DB, credential key)."""
    override = os.environ.get("REVIEWPULSE_DATA_DIR", "").strip()
    if override:
        return Path(override).expanduser()
    return Path(platformdirs.user_data_dir(APP_NAME, appauthor=False))


def get_default_db_path() -> Path:
    """Return the default SQLite database file path."""
    return get_data_dir() / "reviewpulse.db"


def ensure_dirs_exist() -> None:
    """Create all required directories if they don't exist."""
    get_data_dir().mkdir(parents=True, exist_ok=True)
