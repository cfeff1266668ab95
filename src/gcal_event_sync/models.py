"""
Pure data models — no Google API or sqlite imports.
"""

from dataclasses import dataclass
from dataclasses import field
from pathlib import Path

DEFAULT_STATE_DB = Path.home() / ".local/share/gcal-event-sync-state.db"
DEFAULT_CONFIG = Path.home() / ".config/gcal-event-sync.conf"
DEFAULT_CREDENTIALS = Path.home() / ".config/gcal-event-sync/credentials.json"
DEFAULT_TOKEN_FILE = Path.home() / ".config/gcal-event-sync/token.json"


class CalendarSyncError(Exception):
    """Base exception for calendar sync errors."""

    pass


class CalendarApiError(CalendarSyncError):
    """The calendar service rejected a request."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class SyncTokenExpiredError(CalendarSyncError):
    """The stored sync token is no longer accepted (HTTP 410 Gone)."""

    pass


@dataclass
class SyncConfig:
    """Configuration for a sync operation."""

    source_calendar_id: str
    state_db_path: Path
    target_calendar_ids: list[str] = field(default_factory=list)
    operation: str = "mirror"  # init, mirror, backup, add-owner or clear
    profile: str = "default"
    credentials_file: Path = DEFAULT_CREDENTIALS
    token_file: Path = DEFAULT_TOKEN_FILE
    busy: bool = False  # mirror as anonymous busy blocks
    bidirectional: bool = False
    keep_reminders: bool = False
    busy_summary: str = "Busy"
    owner_email: str | None = None
    owner_name: str | None = None
    clear_role: str = "mirror"
    baseline_days: int = 1
    force: bool = False  # init: replace an already stored sync token
    dry_run: bool = False
    verbose: bool = False
    yes: bool = False  # Auto-confirm without prompting


@dataclass
class SyncStats:
    """Statistics for sync operation."""

    added: int = 0
    modified: int = 0
    deleted: int = 0
    skipped: int = 0
    errors: int = 0
