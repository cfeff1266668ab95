"""
Helpers shared by the mirror, backup and clear operations.
"""

from gcal_event_sync.gcal_client import is_not_found_error
from gcal_event_sync.models import CalendarSyncError
from gcal_event_sync.models import SyncConfig
from gcal_event_sync.models import SyncStats
from gcal_event_sync.transform import ROLE_BACKUP
from gcal_event_sync.transform import EventTransform
from gcal_event_sync.transform import copy_lookup


def event_label(event: dict) -> str:
    """Short human-readable description for log lines."""
    start = event.get("start") or {}
    when = start.get("dateTime") or start.get("date") or "?"
    return f"'{event.get('summary') or '(no title)'}' at {when} [{event.get('id')}]"


def build_copy(config: SyncConfig, event: dict, role: str, source_calendar_id: str) -> dict:
    """
    Build the body written to a target calendar for a source event.

    Backups keep every detail; mirrors become busy blocks in busy mode.
    Attendees and organizer are always removed so no invitations go out.
    """
    if role != ROLE_BACKUP and config.busy:
        body = EventTransform.anonymize(event, config.busy_summary)
    else:
        body = EventTransform.strip_attendees_and_organizer(event)
    body = EventTransform.prepare_for_insert(body)
    if not config.keep_reminders:
        body = EventTransform.disable_reminders(body)
    return EventTransform.tag_copy(body, role, source_calendar_id, event["id"])


def write_copy(
    config: SyncConfig,
    stats: SyncStats,
    logger,
    client,
    target_calendar_id: str,
    event: dict,
    body: dict,
    role: str,
    source_calendar_id: str,
):
    """Update the existing copy of event in the target, or insert one if none exists."""
    existing = client.find_tagged_events(
        target_calendar_id, copy_lookup(role, source_calendar_id, event["id"])
    )
    label = event_label(event)

    if config.dry_run:
        action = "UPDATE" if existing else "CREATE"
        logger.info(f"[DRY RUN] Would {action} {role} of {label} in {target_calendar_id}")
        if existing:
            stats.modified += 1
        else:
            stats.added += 1
        return

    if not existing:
        created = client.insert_event(target_calendar_id, body)
        stats.added += 1
        logger.debug(f"Created {role} {created.get('id')} of {label} in {target_calendar_id}")
        return

    keep, *duplicates = existing
    client.update_event(target_calendar_id, keep["id"], body)
    stats.modified += 1
    logger.debug(f"Updated {role} {keep['id']} of {label} in {target_calendar_id}")

    for duplicate in duplicates:
        logger.warning(f"Removing duplicate {role} {duplicate['id']} of {label}")
        _delete_quietly(client, target_calendar_id, duplicate["id"])
        stats.deleted += 1


def delete_copies(
    config: SyncConfig,
    stats: SyncStats,
    logger,
    client,
    target_calendar_id: str,
    role: str,
    source_calendar_id: str,
    source_event_id: str | None = None,
) -> int:
    """Delete the copies of one source event (or of every event of a calendar)."""
    copies = client.find_tagged_events(
        target_calendar_id, copy_lookup(role, source_calendar_id, source_event_id)
    )
    for copy in copies:
        if config.dry_run:
            logger.info(
                f"[DRY RUN] Would DELETE {role} {event_label(copy)} from {target_calendar_id}"
            )
        else:
            _delete_quietly(client, target_calendar_id, copy["id"])
            logger.debug(f"Deleted {role} {copy['id']} from {target_calendar_id}")
        stats.deleted += 1
    return len(copies)


def _delete_quietly(client, calendar_id: str, event_id: str):
    """Delete an event, treating 'already gone' as success."""
    try:
        client.delete_event(calendar_id, event_id)
    except CalendarSyncError as e:
        if not is_not_found_error(e):
            raise
