"""
Integration tests for mirroring.

All tests use FakeCalendarClient (in-memory) + a real SQLite StateDatabase so
the actual sync functions run end-to-end without a network connection.

Every scenario starts from a baseline taken before the events under test are
created, the way `gcal-event-sync init` prepares a fresh installation.
"""

import pytest

from gcal_event_sync.models import CalendarSyncError
from gcal_event_sync.models import SyncStats
from gcal_event_sync.sync.feed import initialize_feeds
from gcal_event_sync.sync.feed import sync_token_key
from gcal_event_sync.sync.mirror import run_mirror
from gcal_event_sync.transform import ROLE_KEY
from gcal_event_sync.transform import ROLE_MIRROR
from gcal_event_sync.transform import SOURCE_CALENDAR_KEY
from gcal_event_sync.transform import SOURCE_EVENT_KEY
from gcal_event_sync.transform import EventTransform
from tests.conftest import SECOND_TARGET_CAL_ID
from tests.conftest import SOURCE_CAL_ID
from tests.conftest import TARGET_CAL_ID
from tests.conftest import make_event

MIRROR_TOKEN_KEY = sync_token_key(SOURCE_CAL_ID, ROLE_MIRROR)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _init(config, logger, client, state_db):
    initialize_feeds(config, SyncStats(), logger, client, state_db)


def _run_mirror(config, logger, client, state_db) -> SyncStats:
    stats = SyncStats()
    client.reset_counters()
    run_mirror(config, stats, logger, client, state_db)
    return stats


def _private(event: dict) -> dict:
    return event["extendedProperties"]["private"]


# ---------------------------------------------------------------------------
# One-way mirroring
# ---------------------------------------------------------------------------


class TestOneWay:
    def test_new_event_creates_tagged_copy(self, sync_config, sync_logger, client, state_db):
        _init(sync_config, sync_logger, client, state_db)
        source = client.add_event(SOURCE_CAL_ID, make_event("Standup"))

        stats = _run_mirror(sync_config, sync_logger, client, state_db)

        assert stats.added == 1
        assert stats.errors == 0
        (mirror,) = client.live_events(TARGET_CAL_ID)
        assert mirror["summary"] == "Standup"
        assert mirror["description"] == "Details of Standup"
        assert "attendees" not in mirror
        assert "organizer" not in mirror
        assert mirror["reminders"] == {"useDefault": False, "overrides": []}
        assert _private(mirror) == {
            ROLE_KEY: ROLE_MIRROR,
            SOURCE_CALENDAR_KEY: SOURCE_CAL_ID,
            SOURCE_EVENT_KEY: source["id"],
        }

    def test_events_before_baseline_are_not_copied(
        self, sync_config, sync_logger, client, state_db
    ):
        client.add_event(SOURCE_CAL_ID, make_event("Old"))
        _init(sync_config, sync_logger, client, state_db)

        _run_mirror(sync_config, sync_logger, client, state_db)
        assert client.event_count(TARGET_CAL_ID) == 0

    def test_second_run_is_a_noop(self, sync_config, sync_logger, client, state_db):
        _init(sync_config, sync_logger, client, state_db)
        client.add_event(SOURCE_CAL_ID, make_event())
        _run_mirror(sync_config, sync_logger, client, state_db)

        stats = _run_mirror(sync_config, sync_logger, client, state_db)

        assert (stats.added, stats.modified, stats.deleted) == (0, 0, 0)
        assert client.inserts == client.updates == client.deletes == []

    def test_replayed_batch_updates_instead_of_duplicating(
        self, sync_config, sync_logger, client, state_db
    ):
        """Reprocessing the same changes (e.g. after a lost token) finds the existing copy."""
        _init(sync_config, sync_logger, client, state_db)
        baseline = state_db.get_property(MIRROR_TOKEN_KEY)
        client.add_event(SOURCE_CAL_ID, make_event())
        _run_mirror(sync_config, sync_logger, client, state_db)

        state_db.set_property(MIRROR_TOKEN_KEY, baseline)
        state_db.commit()
        stats = _run_mirror(sync_config, sync_logger, client, state_db)

        assert stats.added == 0
        assert stats.modified == 1
        assert client.event_count(TARGET_CAL_ID) == 1

    def test_edit_updates_existing_copy(self, sync_config, sync_logger, client, state_db):
        _init(sync_config, sync_logger, client, state_db)
        source = client.add_event(SOURCE_CAL_ID, make_event("Draft"))
        _run_mirror(sync_config, sync_logger, client, state_db)
        (mirror,) = client.live_events(TARGET_CAL_ID)

        client.edit_event(SOURCE_CAL_ID, source["id"], summary="Final")
        stats = _run_mirror(sync_config, sync_logger, client, state_db)

        assert stats.modified == 1
        assert client.updates == [(TARGET_CAL_ID, mirror["id"])]
        (updated,) = client.live_events(TARGET_CAL_ID)
        assert updated["summary"] == "Final"

    def test_delete_removes_copy(self, sync_config, sync_logger, client, state_db):
        _init(sync_config, sync_logger, client, state_db)
        source = client.add_event(SOURCE_CAL_ID, make_event())
        _run_mirror(sync_config, sync_logger, client, state_db)

        client.remove_event(SOURCE_CAL_ID, source["id"])
        stats = _run_mirror(sync_config, sync_logger, client, state_db)

        assert stats.deleted == 1
        assert client.event_count(TARGET_CAL_ID) == 0

    def test_delete_without_copy_is_harmless(self, sync_config, sync_logger, client, state_db):
        source = client.add_event(SOURCE_CAL_ID, make_event())
        _init(sync_config, sync_logger, client, state_db)
        client.remove_event(SOURCE_CAL_ID, source["id"])

        stats = _run_mirror(sync_config, sync_logger, client, state_db)
        assert stats.deleted == 0
        assert stats.errors == 0

    def test_unrelated_target_events_untouched(self, sync_config, sync_logger, client, state_db):
        _init(sync_config, sync_logger, client, state_db)
        own = client.add_event(TARGET_CAL_ID, make_event("Dentist"))
        source = client.add_event(SOURCE_CAL_ID, make_event())
        _run_mirror(sync_config, sync_logger, client, state_db)
        client.remove_event(SOURCE_CAL_ID, source["id"])
        _run_mirror(sync_config, sync_logger, client, state_db)

        assert [e["id"] for e in client.live_events(TARGET_CAL_ID)] == [own["id"]]

    def test_every_target_gets_a_copy(self, sync_config, sync_logger, client, state_db):
        sync_config.target_calendar_ids = [TARGET_CAL_ID, SECOND_TARGET_CAL_ID]
        _init(sync_config, sync_logger, client, state_db)
        client.add_event(SOURCE_CAL_ID, make_event())

        stats = _run_mirror(sync_config, sync_logger, client, state_db)

        assert stats.added == 2
        assert client.event_count(TARGET_CAL_ID) == 1
        assert client.event_count(SECOND_TARGET_CAL_ID) == 1


class TestSkippedEvents:
    def test_managed_source_events_are_not_copied(
        self, sync_config, sync_logger, client, state_db
    ):
        _init(sync_config, sync_logger, client, state_db)
        client.add_event(
            SOURCE_CAL_ID,
            EventTransform.tag_copy(make_event(), ROLE_MIRROR, "elsewhere", "ev9"),
        )

        stats = _run_mirror(sync_config, sync_logger, client, state_db)

        assert stats.skipped == 1
        assert client.event_count(TARGET_CAL_ID) == 0

    def test_recurring_instances_are_skipped(self, sync_config, sync_logger, client, state_db):
        _init(sync_config, sync_logger, client, state_db)
        client.add_event(SOURCE_CAL_ID, make_event("Weekly", recurringEventId="series1"))

        stats = _run_mirror(sync_config, sync_logger, client, state_db)

        assert stats.skipped == 1
        assert client.inserts == []


class TestCopyOptions:
    def test_busy_mode_hides_details(self, sync_config, sync_logger, client, state_db):
        sync_config.busy = True
        _init(sync_config, sync_logger, client, state_db)
        source = client.add_event(
            SOURCE_CAL_ID,
            make_event(
                "Salary review",
                attachments=[{"fileUrl": "https://drive.example.com/f/1"}],
                source={"url": "https://hr.example.com/review", "title": "HR"},
                colorId="11",
                extendedProperties={"private": {"note": "raise"}, "shared": {"ticket": "HR-7"}},
            ),
        )

        _run_mirror(sync_config, sync_logger, client, state_db)

        (mirror,) = client.live_events(TARGET_CAL_ID)
        assert mirror["summary"] == "Busy"
        assert "attachments" not in mirror
        assert "source" not in mirror
        assert "colorId" not in mirror
        assert "shared" not in mirror["extendedProperties"]
        assert set(_private(mirror)) == {ROLE_KEY, SOURCE_CALENDAR_KEY, SOURCE_EVENT_KEY}
        assert mirror["visibility"] == "private"
        assert "description" not in mirror
        assert "location" not in mirror
        assert mirror["start"] == source["start"]
        assert _private(mirror)[SOURCE_EVENT_KEY] == source["id"]

    def test_keep_reminders(self, sync_config, sync_logger, client, state_db):
        sync_config.keep_reminders = True
        _init(sync_config, sync_logger, client, state_db)
        client.add_event(SOURCE_CAL_ID, make_event())

        _run_mirror(sync_config, sync_logger, client, state_db)

        (mirror,) = client.live_events(TARGET_CAL_ID)
        assert mirror["reminders"] == {"useDefault": True}

    def test_duplicate_copies_are_collapsed(self, sync_config, sync_logger, client, state_db):
        _init(sync_config, sync_logger, client, state_db)
        source = client.add_event(SOURCE_CAL_ID, make_event("Review"))
        stale = EventTransform.tag_copy(
            make_event("stale"), ROLE_MIRROR, SOURCE_CAL_ID, source["id"]
        )
        client.add_event(TARGET_CAL_ID, stale)
        client.add_event(TARGET_CAL_ID, stale)

        stats = _run_mirror(sync_config, sync_logger, client, state_db)

        assert stats.modified == 1
        assert stats.deleted == 1
        (mirror,) = client.live_events(TARGET_CAL_ID)
        assert mirror["summary"] == "Review"


# ---------------------------------------------------------------------------
# Bidirectional mirroring
# ---------------------------------------------------------------------------


class TestBidirectional:
    def test_both_directions_without_cycles(self, sync_config, sync_logger, client, state_db):
        """Copies are never copied back, so a second run writes nothing."""
        sync_config.bidirectional = True
        _init(sync_config, sync_logger, client, state_db)
        client.add_event(SOURCE_CAL_ID, make_event("Work meeting"))
        client.add_event(TARGET_CAL_ID, make_event("Gym"))

        stats = _run_mirror(sync_config, sync_logger, client, state_db)

        assert stats.added == 2
        assert sorted(e["summary"] for e in client.live_events(SOURCE_CAL_ID)) == [
            "Gym", "Work meeting",
        ]
        assert sorted(e["summary"] for e in client.live_events(TARGET_CAL_ID)) == [
            "Gym", "Work meeting",
        ]

        second = _run_mirror(sync_config, sync_logger, client, state_db)
        assert second.added == second.modified == second.deleted == 0
        assert client.inserts == client.updates == []

    def test_reverse_delete_removes_copy_in_source(
        self, sync_config, sync_logger, client, state_db
    ):
        sync_config.bidirectional = True
        _init(sync_config, sync_logger, client, state_db)
        gym = client.add_event(TARGET_CAL_ID, make_event("Gym"))
        _run_mirror(sync_config, sync_logger, client, state_db)

        client.remove_event(TARGET_CAL_ID, gym["id"])
        _run_mirror(sync_config, sync_logger, client, state_db)

        assert client.event_count(SOURCE_CAL_ID) == 0


# ---------------------------------------------------------------------------
# Dry run, failures and validation
# ---------------------------------------------------------------------------


class TestTokenHandling:
    def test_dry_run_writes_nothing_and_keeps_token(
        self, sync_config, sync_logger, client, state_db
    ):
        _init(sync_config, sync_logger, client, state_db)
        baseline = state_db.get_property(MIRROR_TOKEN_KEY)
        client.add_event(SOURCE_CAL_ID, make_event())

        sync_config.dry_run = True
        stats = _run_mirror(sync_config, sync_logger, client, state_db)

        assert stats.added == 1
        assert client.inserts == []
        assert state_db.get_property(MIRROR_TOKEN_KEY) == baseline

    def test_failed_event_is_retried_next_run(self, sync_config, sync_logger, client, state_db):
        _init(sync_config, sync_logger, client, state_db)
        baseline = state_db.get_property(MIRROR_TOKEN_KEY)
        ok = client.add_event(SOURCE_CAL_ID, make_event("Fine"))
        bad = client.add_event(SOURCE_CAL_ID, make_event("Broken"))
        client.failing_ids.add(bad["id"])

        stats = _run_mirror(sync_config, sync_logger, client, state_db)

        assert stats.errors == 1
        assert stats.added == 1
        assert state_db.get_property(MIRROR_TOKEN_KEY) == baseline

        client.failing_ids.clear()
        retry = _run_mirror(sync_config, sync_logger, client, state_db)

        assert retry.errors == 0
        assert retry.added == 1
        assert retry.modified == 1
        sources = sorted(_private(e)[SOURCE_EVENT_KEY] for e in client.live_events(TARGET_CAL_ID))
        assert sources == sorted([ok["id"], bad["id"]])

    def test_expired_token_recovers_recent_events(
        self, sync_config, sync_logger, client, state_db
    ):
        _init(sync_config, sync_logger, client, state_db)
        client.add_event(SOURCE_CAL_ID, make_event("Recent"))
        client.expire_tokens(SOURCE_CAL_ID)

        stats = _run_mirror(sync_config, sync_logger, client, state_db)

        assert stats.added == 1
        assert client.event_count(TARGET_CAL_ID) == 1

    def test_dry_run_on_expired_token_leaves_recovery_to_real_run(
        self, sync_config, sync_logger, client, state_db
    ):
        """A dry run previews the recovery batch but must not consume it."""
        _init(sync_config, sync_logger, client, state_db)
        expired = state_db.get_property(MIRROR_TOKEN_KEY)
        client.add_event(SOURCE_CAL_ID, make_event("Recent"))
        client.expire_tokens(SOURCE_CAL_ID)

        sync_config.dry_run = True
        preview = _run_mirror(sync_config, sync_logger, client, state_db)

        assert preview.added == 1
        assert client.inserts == []
        assert state_db.get_property(MIRROR_TOKEN_KEY) == expired

        sync_config.dry_run = False
        real = _run_mirror(sync_config, sync_logger, client, state_db)

        assert real.added == 1
        assert client.event_count(TARGET_CAL_ID) == 1

    def test_dry_run_without_token_stores_no_baseline(
        self, sync_config, sync_logger, client, state_db
    ):
        sync_config.dry_run = True
        _run_mirror(sync_config, sync_logger, client, state_db)

        assert state_db.list_properties() == {}

    def test_source_as_target_rejected(self, sync_config, sync_logger, client, state_db):
        sync_config.target_calendar_ids = [SOURCE_CAL_ID]
        with pytest.raises(CalendarSyncError):
            _run_mirror(sync_config, sync_logger, client, state_db)

    def test_no_targets_rejected(self, sync_config, sync_logger, client, state_db):
        sync_config.target_calendar_ids = []
        with pytest.raises(CalendarSyncError):
            _run_mirror(sync_config, sync_logger, client, state_db)
