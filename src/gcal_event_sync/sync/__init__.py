"""
CalendarSynchronizer — thin orchestrator that delegates to sync submodules.
"""

import logging

from gcal_event_sync.db import StateDatabase
from gcal_event_sync.gcal_client import GoogleCalendarClient
from gcal_event_sync.models import CalendarSyncError
from gcal_event_sync.models import SyncConfig
from gcal_event_sync.models import SyncStats
from gcal_event_sync.sync.backup import run_backup
from gcal_event_sync.sync.clear import perform_clear
from gcal_event_sync.sync.feed import initialize_feeds
from gcal_event_sync.sync.mirror import run_mirror
from gcal_event_sync.sync.owner import run_add_owner

_OPERATIONS = {
    "init": initialize_feeds,
    "mirror": run_mirror,
    "backup": run_backup,
    "add-owner": run_add_owner,
    "clear": perform_clear,
}


class CalendarSynchronizer:
    """Main synchronization engine."""

    def __init__(self, config: SyncConfig, client=None):
        self.config = config
        self.client = client
        self.logger = logging.getLogger(__name__)
        self.stats = SyncStats()

    def run(self) -> SyncStats:
        """Execute the configured operation."""
        operation = _OPERATIONS.get(self.config.operation)
        if operation is None:
            raise CalendarSyncError(f"Unknown operation: {self.config.operation}")

        if self.client is None:
            self.logger.info("Connecting to Google Calendar...")
            self.client = GoogleCalendarClient.from_files(
                self.config.credentials_file, self.config.token_file
            )

        with StateDatabase(self.config.state_db_path, self.config.profile) as state_db:
            operation(self.config, self.stats, self.logger, self.client, state_db)

        return self.stats
