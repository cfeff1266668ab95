"""
Clear operation — remove the copies this tool wrote into target calendars.
"""

from gcal_event_sync.db import StateDatabase
from gcal_event_sync.models import CalendarSyncError
from gcal_event_sync.models import SyncConfig
from gcal_event_sync.models import SyncStats

from .utils import delete_copies


def perform_clear(
    config: SyncConfig,
    stats: SyncStats,
    logger,
    client,
    state_db: StateDatabase,
):
    """Delete only events we created, found by their provenance markers.

    Other events in the target calendars are left untouched. Sync tokens are
    kept, so a later sync only copies events changed from then on.
    """
    if not config.target_calendar_ids:
        raise CalendarSyncError("No target calendars configured")

    role = config.clear_role
    logger.warning(f"CLEAR MODE: Removing {role} copies of {config.source_calendar_id}...")

    pairs = [(target_id, config.source_calendar_id) for target_id in config.target_calendar_ids]
    if config.bidirectional:
        pairs += [
            (config.source_calendar_id, target_id) for target_id in config.target_calendar_ids
        ]

    for calendar_id, copied_from in pairs:
        try:
            count = delete_copies(
                config, stats, logger, client, calendar_id, role, copied_from
            )
        except CalendarSyncError as e:
            logger.error(f"Failed to clear {role} copies from {calendar_id}: {e}")
            stats.errors += 1
            continue
        if count:
            logger.info(f"Removed {count} {role} copies from {calendar_id}")
        else:
            logger.info(f"No {role} copies found in {calendar_id} - calendar is clean")
