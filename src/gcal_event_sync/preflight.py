"""
Preflight checks run before sync to catch common misconfigurations early.
"""

import logging
import sqlite3

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from gcal_event_sync.models import CalendarApiError
from gcal_event_sync.models import CalendarSyncError
from gcal_event_sync.models import SyncConfig

logger = logging.getLogger(__name__)

_AUTH_STATUSES = frozenset({401, 403})


def run_preflight_checks(cfg: SyncConfig, console: Console, client=None) -> bool:
    """Return True if sync may proceed; print issues and return False otherwise.

    When no client is given only the local checks run (credentials file and
    state database); calendar reachability needs an authenticated client.
    """
    issues: list[tuple[str, str, str]] = []  # (label, detail, hint)

    # 1. Credentials present
    if client is None and not cfg.credentials_file.exists():
        logger.error("Credentials file missing: %s", cfg.credentials_file)
        issues.append(
            (
                "Credentials",
                f"File not found: {cfg.credentials_file}",
                "Download an OAuth client or service-account key from the Google Cloud console",
            )
        )

    # 2. State DB parent dir writable + DB readable if it exists
    db_path = cfg.state_db_path
    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error("Cannot create state DB directory %s: %s", db_path.parent, e)
        issues.append(
            (
                "State database",
                f"{db_path}: {e}",
                f"Check permissions on {db_path.parent}",
            )
        )
    else:
        if db_path.exists():
            try:
                conn = sqlite3.connect(db_path)
                conn.execute("SELECT 1")
                # BEGIN IMMEDIATE needs a journal file next to the DB, which
                # catches read-only parent directories.
                conn.execute("BEGIN IMMEDIATE")
                conn.execute("ROLLBACK")
                conn.close()
            except sqlite3.Error as e:
                logger.error("State DB not readable/writable (%s): %s", db_path, e)
                issues.append(
                    (
                        "State database",
                        f"{db_path}: {e}",
                        f"Check permissions on {db_path.parent} "
                        f"(journal files must be creatable alongside the DB)",
                    )
                )

    # 3. Every calendar reachable
    if client is not None:
        calendars = [(cfg.source_calendar_id, "Source calendar")]
        calendars += [(cid, "Target calendar") for cid in cfg.target_calendar_ids]
        for calendar_id, label in calendars:
            try:
                client.get_calendar(calendar_id)
            except CalendarSyncError as e:
                logger.error("Cannot open %s (%s): %s", label, calendar_id, e)
                issues.append((label, f"{calendar_id}: {e}", _hint_for(e)))

    if issues:
        _print_issues(issues, console)
        return False

    return True


def _hint_for(e: CalendarSyncError) -> str:
    status = e.status if isinstance(e, CalendarApiError) else None
    if status in _AUTH_STATUSES:
        return "Share the calendar with the account (or service account) used for sync"
    if status == 404:
        return "Run: gcal-event-sync calendars  to list the ids you can use"
    return "Check your network connection and credentials"


def _print_issues(issues: list[tuple[str, str, str]], console: Console) -> None:
    body = Text()
    for i, (label, detail, hint) in enumerate(issues):
        if i:
            body.append("\n")
        body.append(f"  ✗  {label}: ", style="bold red")
        body.append(detail, style="bold red")
        body.append(f"\n       → {hint}", style="yellow")

    console.print(Panel(body, title="[bold red]Preflight checks failed[/bold red]"))
