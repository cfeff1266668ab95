"""
Incremental change feed for one calendar, backed by a stored sync token.

Every operation reading a calendar keeps its own token, so mirror, backup
and add-owner each see every change of the calendar once.
"""

import logging
from datetime import datetime
from datetime import timedelta
from datetime import timezone

from gcal_event_sync.db import StateDatabase
from gcal_event_sync.models import SyncConfig
from gcal_event_sync.models import SyncTokenExpiredError
from gcal_event_sync.transform import ROLE_BACKUP
from gcal_event_sync.transform import ROLE_MIRROR

SYNC_TOKEN_KEY_PREFIX = "syncToken_"

# Token owners; add-owner (None) uses the plain syncToken_<calendarId> key.
TOKEN_CONSUMERS = (ROLE_MIRROR, ROLE_BACKUP, None)


def sync_token_key(calendar_id: str, consumer: str | None = None) -> str:
    if consumer:
        return f"{SYNC_TOKEN_KEY_PREFIX}{consumer}_{calendar_id}"
    return SYNC_TOKEN_KEY_PREFIX + calendar_id


def parse_sync_token_key(key: str) -> tuple[str | None, str]:
    """Split a token key into (consumer, calendar_id); consumer is None for add-owner."""
    rest = key[len(SYNC_TOKEN_KEY_PREFIX):]
    for consumer in TOKEN_CONSUMERS:
        if consumer and rest.startswith(consumer + "_"):
            return consumer, rest[len(consumer) + 1:]
    return None, rest


class ChangeFeed:
    """
    Delivers the events changed in a calendar since the last committed run.

    The sync token is read from the property store on first use. A freshly
    fetched token is only held as pending until commit(), so a failed batch is
    delivered again on the next run. In dry-run mode the store is never
    written; baselines taken on the way live in memory only.
    """

    def __init__(
        self,
        client,
        state_db: StateDatabase,
        calendar_id: str,
        consumer: str | None = None,
        baseline_days: int = 1,
        logger: logging.Logger | None = None,
        dry_run: bool = False,
    ):
        self.client = client
        self.state_db = state_db
        self.calendar_id = calendar_id
        self.consumer = consumer
        self.baseline_days = baseline_days
        self.logger = logger or logging.getLogger(__name__)
        self.dry_run = dry_run
        self._sync_token: str | None = None
        self._pending_token: str | None = None
        self._events: list[dict] | None = None

    @property
    def key(self) -> str:
        return sync_token_key(self.calendar_id, self.consumer)

    def initialize(self, force: bool = False) -> str:
        """Take a baseline token unless one is already stored (or force is set)."""
        if not force:
            stored = self.state_db.get_property(self.key)
            if stored:
                self.logger.debug(f"Sync token already stored: {self.key}")
                self._sync_token = stored
                return stored
        self._take_baseline()
        return self._sync_token

    def _take_baseline(self) -> list[dict]:
        """Store the token of a listing over the last baseline_days; return its events."""
        time_max = datetime.now(timezone.utc)
        time_min = time_max - timedelta(days=self.baseline_days)
        self.logger.info(f"Taking new sync baseline for {self.calendar_id}...")
        events, token = self.client.list_events_in_window(self.calendar_id, time_min, time_max)
        if not token:
            # Only happens with a misbehaving server; never store an empty token.
            raise SyncTokenExpiredError(
                f"Baseline listing for {self.calendar_id} returned no sync token"
            )
        self._sync_token = token
        if self.dry_run:
            self.logger.info(f"[DRY RUN] Baseline for {self.key} not stored")
            return events
        self.state_db.set_property(self.key, token)
        self.state_db.commit()
        return events

    @property
    def sync_token(self) -> str:
        if self._sync_token is None:
            self._sync_token = self.state_db.get_property(self.key)
            if self._sync_token is None:
                self._take_baseline()
        return self._sync_token

    @property
    def pending_token(self) -> str | None:
        return self._pending_token

    def fetch_changes(self) -> list[dict]:
        """Return events changed since the current token (cached per instance)."""
        if self._events is not None:
            return self._events

        token = self.sync_token
        try:
            events, next_token = self.client.list_changes(self.calendar_id, token)
        except SyncTokenExpiredError:
            self.logger.warning(
                f"Sync token for {self.calendar_id} expired; reprocessing the last "
                f"{self.baseline_days} day(s) of events from a new baseline"
            )
            if not self.dry_run:
                self.state_db.delete_property(self.key)
                self.state_db.commit()
            events = self._take_baseline()
            next_token = None

        self.logger.debug(f"{len(events)} changed event(s) in {self.calendar_id}")
        self._events = events
        self._pending_token = next_token
        return events

    def commit(self):
        """Persist the token fetched with the last batch of changes."""
        if self._pending_token is None or self.dry_run:
            return
        self.state_db.set_property(self.key, self._pending_token)
        self.state_db.commit()
        self._sync_token = self._pending_token
        self._pending_token = None

    def reset(self) -> bool:
        """Forget the stored token. Returns True if one was stored."""
        removed = self.state_db.delete_property(self.key)
        self.state_db.commit()
        self._sync_token = None
        self._pending_token = None
        self._events = None
        return removed


def open_feed(
    config: SyncConfig, logger, client, state_db: StateDatabase, calendar_id: str, consumer
) -> ChangeFeed:
    return ChangeFeed(
        client,
        state_db,
        calendar_id,
        consumer,
        baseline_days=config.baseline_days,
        logger=logger,
        dry_run=config.dry_run,
    )


def reset_tokens(state_db: StateDatabase, calendar_id: str) -> list[str]:
    """Forget every operation's token for calendar_id; return the removed keys."""
    removed = []
    for consumer in TOKEN_CONSUMERS:
        feed = ChangeFeed(None, state_db, calendar_id, consumer)
        if feed.reset():
            removed.append(feed.key)
    return removed


def initialize_feeds(config, stats, logger, client, state_db: StateDatabase):
    """Take sync baselines for every operation that reads the configured calendars."""
    feeds = [(config.source_calendar_id, consumer) for consumer in TOKEN_CONSUMERS]
    if config.bidirectional:
        feeds += [(target_id, ROLE_MIRROR) for target_id in config.target_calendar_ids]

    for calendar_id, consumer in feeds:
        key = sync_token_key(calendar_id, consumer)
        if config.dry_run:
            stored = state_db.get_property(key)
            state = "would keep stored token" if stored and not config.force else "would baseline"
            logger.info(f"[DRY RUN] {key}: {state}")
            continue
        open_feed(config, logger, client, state_db, calendar_id, consumer).initialize(
            force=config.force
        )
        logger.info(f"Sync token ready: {key}")
