"""
Shared pytest fixtures and event helpers.
"""

import logging

import pytest

from gcal_event_sync.db import StateDatabase
from gcal_event_sync.models import SyncConfig
from gcal_event_sync.models import SyncStats
from tests.fake_client import FakeCalendarClient

SOURCE_CAL_ID = "src"
TARGET_CAL_ID = "dst"
SECOND_TARGET_CAL_ID = "dst2"


def make_event(summary: str = "Test Event", start: str = "2026-03-01T10:00:00Z", **extra) -> dict:
    """Return a minimal timed event body as the Events API would store it."""
    event = {
        "summary": summary,
        "description": f"Details of {summary}",
        "location": "Room 1",
        "start": {"dateTime": start},
        "end": {"dateTime": start.replace("T10:", "T11:")},
        "organizer": {"email": "boss@example.com", "displayName": "Boss"},
        "attendees": [
            {"email": "boss@example.com", "responseStatus": "accepted"},
            {"email": "me@example.com", "responseStatus": "needsAction"},
        ],
        "reminders": {"useDefault": True},
    }
    event.update(extra)
    return event


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "test_state.db"


@pytest.fixture
def state_db(db_path):
    with StateDatabase(db_path) as db:
        yield db


@pytest.fixture
def client():
    return FakeCalendarClient((SOURCE_CAL_ID, TARGET_CAL_ID, SECOND_TARGET_CAL_ID))


@pytest.fixture
def sync_config(db_path):
    return SyncConfig(
        source_calendar_id=SOURCE_CAL_ID,
        target_calendar_ids=[TARGET_CAL_ID],
        state_db_path=db_path,
        dry_run=False,
        verbose=False,
    )


@pytest.fixture
def sync_logger():
    return logging.getLogger("test_sync")


@pytest.fixture
def sync_stats():
    return SyncStats()
