"""
Source → backup calendar copies that outlive the source event.
"""

from gcal_event_sync.db import StateDatabase
from gcal_event_sync.models import CalendarSyncError
from gcal_event_sync.models import SyncConfig
from gcal_event_sync.models import SyncStats
from gcal_event_sync.transform import ROLE_BACKUP

from .feed import open_feed
from .mirror import commit_feed
from .mirror import copy_changes


def run_backup(
    config: SyncConfig,
    stats: SyncStats,
    logger,
    client,
    state_db: StateDatabase,
):
    """Back up changed source events into every target calendar."""
    if not config.target_calendar_ids:
        raise CalendarSyncError("No backup calendars configured")
    if config.source_calendar_id in config.target_calendar_ids:
        raise CalendarSyncError("The source calendar cannot be its own backup")

    feed = open_feed(config, logger, client, state_db, config.source_calendar_id, ROLE_BACKUP)
    errors_before = stats.errors
    for target_id in config.target_calendar_ids:
        copy_changes(config, stats, logger, client, feed, target_id, ROLE_BACKUP)
    commit_feed(config, stats, logger, feed, errors_before)
