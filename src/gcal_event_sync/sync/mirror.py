"""
Source → target mirroring driven by the source calendar's change feed.
"""

from gcal_event_sync.db import StateDatabase
from gcal_event_sync.models import CalendarSyncError
from gcal_event_sync.models import SyncConfig
from gcal_event_sync.models import SyncStats
from gcal_event_sync.transform import ROLE_BACKUP
from gcal_event_sync.transform import ROLE_MIRROR
from gcal_event_sync.transform import EventTransform

from .feed import ChangeFeed
from .feed import open_feed
from .utils import build_copy
from .utils import delete_copies
from .utils import event_label
from .utils import write_copy


def copy_changes(
    config: SyncConfig,
    stats: SyncStats,
    logger,
    client,
    feed: ChangeFeed,
    target_calendar_id: str,
    role: str = ROLE_MIRROR,
):
    """Propagate every change of the feed's calendar into one target calendar."""
    source_calendar_id = feed.calendar_id
    events = feed.fetch_changes()
    logger.info(
        f"Processing {len(events)} changed event(s): "
        f"{source_calendar_id} → {target_calendar_id} ({role})"
    )

    for event in events:
        # Copies we wrote ourselves are never propagated again.
        if EventTransform.is_managed_event(event):
            logger.debug(f"Skipping managed event: {event_label(event)}")
            stats.skipped += 1
            continue

        if event.get("recurringEventId"):
            logger.debug(f"Skipping instance of recurring series: {event_label(event)}")
            stats.skipped += 1
            continue

        try:
            if EventTransform.is_cancelled(event):
                if role == ROLE_BACKUP:
                    logger.info(f"Source deleted, backup retained: {event_label(event)}")
                    stats.skipped += 1
                    continue
                delete_copies(
                    config, stats, logger, client,
                    target_calendar_id, role, source_calendar_id, event["id"],
                )
                continue

            body = build_copy(config, event, role, source_calendar_id)
            if config.verbose:
                logger.debug(f"Copy body: {body}")
            write_copy(
                config, stats, logger, client,
                target_calendar_id, event, body, role, source_calendar_id,
            )
        except CalendarSyncError as e:
            logger.error(f"Failed to {role} {event_label(event)}: {e}")
            stats.errors += 1


def commit_feed(config: SyncConfig, stats: SyncStats, logger, feed: ChangeFeed, errors_before: int):
    """Advance the feed's token unless the batch had errors or this is a dry run."""
    if config.dry_run:
        logger.debug(f"[DRY RUN] Sync token for {feed.calendar_id} not advanced")
        return
    if stats.errors > errors_before:
        logger.warning(
            f"Sync token for {feed.calendar_id} not advanced; "
            f"failed events will be retried on the next run"
        )
        return
    feed.commit()


def run_mirror(
    config: SyncConfig,
    stats: SyncStats,
    logger,
    client,
    state_db: StateDatabase,
):
    """Mirror the source calendar into every target (and back, when bidirectional)."""
    if not config.target_calendar_ids:
        raise CalendarSyncError("No target calendars configured")
    if config.source_calendar_id in config.target_calendar_ids:
        raise CalendarSyncError("The source calendar cannot also be a target")

    source_feed = open_feed(
        config, logger, client, state_db, config.source_calendar_id, ROLE_MIRROR
    )
    errors_before = stats.errors
    for target_id in config.target_calendar_ids:
        copy_changes(config, stats, logger, client, source_feed, target_id, ROLE_MIRROR)
    commit_feed(config, stats, logger, source_feed, errors_before)

    if not config.bidirectional:
        return

    for target_id in config.target_calendar_ids:
        target_feed = open_feed(config, logger, client, state_db, target_id, ROLE_MIRROR)
        errors_before = stats.errors
        copy_changes(
            config, stats, logger, client, target_feed, config.source_calendar_id, ROLE_MIRROR
        )
        commit_feed(config, stats, logger, target_feed, errors_before)
