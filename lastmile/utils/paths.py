"""Filesystem path resolution using platformdirs.

``LASTMILE_DATA_DIR`` pins the data directory explicitly (containers, CI).
Otherwise paths resolve to the platform user data directory:
  macOS: ~/Library/Application Support/lastmile/
  Linux: ~/.local/share/lastmile/
"""

import os
from pathlib import Path

import platformdirs

APP_NAME = "lastmile"


def get_data_dir() -> Path:
    """Return the directory for persistent data (SQLite database, cache)."""
    override = os.environ.get("LASTMILE_DATA_DIR", "").strip()
    if override:
        return Path(override).expanduser()
    return Path(platformdirs.user_data_dir(APP_NAME, appauthor=False))


def get_default_db_path() -> Path:
    """Return the default SQLite database file path."""
    return get_data_dir() / "lastmile.db"


def ensure_dirs_exist() -> None:
    """Create the data directory if it doesn't exist."""
    get_data_dir().mkdir(parents=True, exist_ok=True)
