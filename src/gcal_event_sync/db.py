"""
SQLite property store for sync tokens and other small per-profile settings.
"""

import sqlite3
import time
from pathlib import Path

from gcal_event_sync.models import CalendarSyncError


class StateDatabase:
    """Key/value property store scoped to a profile name."""

    def __init__(self, db_path: Path, profile: str = "default"):
        self.db_path = db_path
        self.profile = profile
        self.conn: sqlite3.Connection | None = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def connect(self):
        """Initialize and connect to the state database."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self.conn = sqlite3.connect(str(self.db_path))
        except sqlite3.Error as e:
            raise CalendarSyncError(f"Cannot open state database {self.db_path}: {e}") from e
        self.conn.row_factory = sqlite3.Row  # Enable column access by name
        self._init_schema()

    def _init_schema(self):
        """Create the properties table if it doesn't exist."""
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS properties (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                profile TEXT NOT NULL,
                key TEXT NOT NULL,
                value TEXT NOT NULL,
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL,
                UNIQUE(profile, key)
            )
        """)
        self.conn.commit()

    # ------------------------------------------------------------------ #
    # Property access — all scoped to the current profile                 #
    # ------------------------------------------------------------------ #

    def get_property(self, key: str) -> str | None:
        """Return the stored value for key, or None when unset."""
        cursor = self.conn.execute(
            "SELECT value FROM properties WHERE profile = ? AND key = ? LIMIT 1",
            (self.profile, key),
        )
        row = cursor.fetchone()
        return row["value"] if row else None

    def set_property(self, key: str, value: str):
        """Insert or update a property, preserving its original created_at."""
        if value is None:
            raise CalendarSyncError(f"Refusing to store None for property {key!r}")
        timestamp = int(time.time())
        self.conn.execute(
            "INSERT INTO properties (profile, key, value, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?) "
            "ON CONFLICT(profile, key) DO UPDATE SET "
            "value = excluded.value, updated_at = excluded.updated_at",
            (self.profile, key, value, timestamp, timestamp),
        )

    def delete_property(self, key: str) -> bool:
        """Delete a property. Returns True when a row was removed."""
        cursor = self.conn.execute(
            "DELETE FROM properties WHERE profile = ? AND key = ?",
            (self.profile, key),
        )
        return cursor.rowcount > 0

    def list_properties(self, prefix: str = "") -> dict[str, str]:
        """Return all properties of this profile whose key starts with prefix."""
        cursor = self.conn.execute(
            "SELECT key, value FROM properties WHERE profile = ? AND key LIKE ? ESCAPE '\\' "
            "ORDER BY key",
            (self.profile, _escape_like(prefix) + "%"),
        )
        return {row["key"]: row["value"] for row in cursor.fetchall()}

    def clear_all(self):
        """Remove every property of this profile."""
        self.conn.execute("DELETE FROM properties WHERE profile = ?", (self.profile,))

    def commit(self):
        """Commit pending transactions."""
        if self.conn:
            self.conn.commit()

    def close(self):
        """Close the database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def query_status_all_profiles(db_path: Path) -> list:
    """
    Return every stored property across all profiles, for the status command.

    Each row exposes: profile, key, value, updated_at.
    Returns an empty list when the DB file does not exist or has no
    properties table yet.
    """
    if not db_path.exists():
        return []
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    try:
        tables = {
            row["name"]
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
        }
        if "properties" not in tables:
            return []
        cursor = conn.execute("""
            SELECT profile, key, value, updated_at
            FROM properties
            ORDER BY profile, key
        """)
        return cursor.fetchall()
    finally:
        conn.close()
