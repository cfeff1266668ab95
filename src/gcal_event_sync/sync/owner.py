"""
In-place update adding the calendar owner as attendee and organizer.
"""

from gcal_event_sync.db import StateDatabase
from gcal_event_sync.models import CalendarSyncError
from gcal_event_sync.models import SyncConfig
from gcal_event_sync.models import SyncStats
from gcal_event_sync.transform import OWNER_ADDED_KEY
from gcal_event_sync.transform import OWNER_ADDED_VALUE
from gcal_event_sync.transform import EventTransform

from .feed import open_feed
from .mirror import commit_feed
from .utils import event_label


def add_owner_to_event(
    config: SyncConfig,
    stats: SyncStats,
    logger,
    client,
    calendar_id: str,
    event: dict,
):
    """Add the owner to one event unless it is cancelled or already processed."""
    if EventTransform.is_cancelled(event):
        stats.skipped += 1
        return
    if EventTransform.has_private_property(event, OWNER_ADDED_KEY, OWNER_ADDED_VALUE):
        logger.debug(f"Owner already added: {event_label(event)}")
        stats.skipped += 1
        return

    name = config.owner_name or config.owner_email
    body = EventTransform.add_attendee_and_organizer(event, config.owner_email, name)
    body = EventTransform.add_private_property(body, OWNER_ADDED_KEY, OWNER_ADDED_VALUE)

    if config.dry_run:
        logger.info(f"[DRY RUN] Would add {config.owner_email} to {event_label(event)}")
        stats.modified += 1
        return

    client.update_event(calendar_id, event["id"], body)
    stats.modified += 1
    logger.debug(f"Added {config.owner_email} to {event_label(event)}")


def run_add_owner(
    config: SyncConfig,
    stats: SyncStats,
    logger,
    client,
    state_db: StateDatabase,
):
    """Add the owner to every changed event of the source calendar."""
    if not config.owner_email:
        raise CalendarSyncError("An owner email is required to add the owner to events")

    feed = open_feed(config, logger, client, state_db, config.source_calendar_id, None)
    events = feed.fetch_changes()
    logger.info(f"Processing {len(events)} changed event(s) in {config.source_calendar_id}")

    errors_before = stats.errors
    for event in events:
        try:
            add_owner_to_event(config, stats, logger, client, config.source_calendar_id, event)
        except CalendarSyncError as e:
            logger.error(f"Failed to add owner to {event_label(event)}: {e}")
            stats.errors += 1
    commit_feed(config, stats, logger, feed, errors_before)
