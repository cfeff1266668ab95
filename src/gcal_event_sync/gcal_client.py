"""
Google Calendar API connectivity wrapper.
"""

import json
import logging
from datetime import datetime
from pathlib import Path

from google.auth.transport.requests import Request
from google.oauth2 import service_account
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from .models import CalendarApiError
from .models import CalendarSyncError
from .models import SyncTokenExpiredError

SCOPES = ["https://www.googleapis.com/auth/calendar"]

# Largest page size the Events API accepts.
MAX_RESULTS = 2500

_NOT_FOUND_STATUSES = (404, 410)

logger = logging.getLogger(__name__)


def _load_user_credentials(client_secrets_file: Path, token_file: Path) -> Credentials:
    creds = None
    if token_file.exists():
        try:
            creds = Credentials.from_authorized_user_file(str(token_file), SCOPES)
        except ValueError as e:
            logger.warning(f"Ignoring unreadable token cache {token_file}: {e}")
            creds = None
    if not creds or not creds.valid:
        if creds and creds.expired and creds.refresh_token:
            creds.refresh(Request())
        else:
            flow = InstalledAppFlow.from_client_secrets_file(str(client_secrets_file), SCOPES)
            creds = flow.run_local_server(port=0)
        token_file.parent.mkdir(parents=True, exist_ok=True)
        token_file.write_text(creds.to_json())
    return creds


def build_service(credentials_file: Path, token_file: Path):
    """
    Build a Calendar v3 service object.

    Service-account keys are used directly; OAuth client secrets go through
    the installed-app flow with the user token cached in token_file.
    """
    if not credentials_file.exists():
        raise CalendarSyncError(f"Credentials file not found: {credentials_file}")

    try:
        info = json.loads(credentials_file.read_text())
    except (OSError, ValueError) as e:
        raise CalendarSyncError(f"Cannot read credentials file {credentials_file}: {e}") from e

    if info.get("type") == "service_account":
        creds = service_account.Credentials.from_service_account_info(info, scopes=SCOPES)
    else:
        creds = _load_user_credentials(credentials_file, token_file)

    return build("calendar", "v3", credentials=creds, cache_discovery=False)


def is_not_found_error(e: Exception) -> bool:
    """Return True when the service reports that an event does not exist.

    Deleted events answer 410 Gone, unknown ids 404 Not Found; both mean the
    event is already out of the way.
    """
    return isinstance(e, CalendarApiError) and e.status in _NOT_FOUND_STATUSES


def _api_error(e: HttpError, action: str) -> CalendarApiError:
    status = getattr(e.resp, "status", None)
    try:
        status = int(status) if status is not None else None
    except (TypeError, ValueError):
        status = None
    return CalendarApiError(f"Failed to {action}: {e}", status=status)


def _rfc3339(value: datetime) -> str:
    if value.tzinfo is None:
        return value.isoformat() + "Z"
    return value.isoformat()


class GoogleCalendarClient:
    """Wrapper for Calendar API event operations."""

    def __init__(self, service):
        self.service = service

    @classmethod
    def from_files(cls, credentials_file: Path, token_file: Path) -> "GoogleCalendarClient":
        return cls(build_service(credentials_file, token_file))

    # ------------------------------------------------------------------ #
    # Listing                                                              #
    # ------------------------------------------------------------------ #

    def _collect_pages(self, calendar_id: str, params: dict) -> tuple[list[dict], str | None]:
        """Follow nextPageToken until the last page; return (items, nextSyncToken)."""
        items: list[dict] = []
        page_token = None
        while True:
            request = dict(params, calendarId=calendar_id, maxResults=MAX_RESULTS)
            if page_token:
                request["pageToken"] = page_token
            result = self.service.events().list(**request).execute()
            items.extend(result.get("items", []))
            page_token = result.get("nextPageToken")
            if not page_token:
                return items, result.get("nextSyncToken")

    def list_changes(self, calendar_id: str, sync_token: str) -> tuple[list[dict], str]:
        """
        Fetch everything changed since sync_token.

        Returns (events, next_sync_token). Deleted events come back with
        status 'cancelled'.

        Raises:
            SyncTokenExpiredError: the service answered 410 Gone; the caller
                must take a new baseline.
        """
        try:
            events, next_token = self._collect_pages(calendar_id, {"syncToken": sync_token})
        except HttpError as e:
            if getattr(e.resp, "status", None) == 410:
                raise SyncTokenExpiredError(
                    f"Sync token for calendar {calendar_id} has expired"
                ) from e
            raise _api_error(e, f"list changes of {calendar_id}") from e

        if not next_token:
            raise CalendarSyncError(
                f"Change listing for calendar {calendar_id} did not return nextSyncToken"
            )
        return events, next_token

    def list_events_in_window(
        self, calendar_id: str, time_min: datetime, time_max: datetime
    ) -> tuple[list[dict], str | None]:
        """List events overlapping [time_min, time_max]; returns (events, nextSyncToken)."""
        try:
            return self._collect_pages(
                calendar_id,
                {"timeMin": _rfc3339(time_min), "timeMax": _rfc3339(time_max)},
            )
        except HttpError as e:
            raise _api_error(e, f"list events of {calendar_id}") from e

    def find_tagged_events(self, calendar_id: str, properties: dict[str, str]) -> list[dict]:
        """Return live events whose private extended properties match every key=value."""
        params = {
            "privateExtendedProperty": [f"{key}={value}" for key, value in properties.items()],
            "showDeleted": False,
        }
        try:
            events, _ = self._collect_pages(calendar_id, params)
        except HttpError as e:
            raise _api_error(e, f"search tagged events in {calendar_id}") from e
        return events

    # ------------------------------------------------------------------ #
    # Single events                                                        #
    # ------------------------------------------------------------------ #

    def get_event(self, calendar_id: str, event_id: str) -> dict | None:
        """Retrieve a single event, or None if it does not exist."""
        try:
            return self.service.events().get(calendarId=calendar_id, eventId=event_id).execute()
        except HttpError as e:
            error = _api_error(e, f"get event {event_id}")
            if is_not_found_error(error):
                return None
            raise error from e

    def insert_event(self, calendar_id: str, body: dict) -> dict:
        """Create an event; returns the stored event (with its server id)."""
        try:
            return (
                self.service.events()
                .insert(calendarId=calendar_id, body=body, sendUpdates="none")
                .execute()
            )
        except HttpError as e:
            raise _api_error(e, f"create event in {calendar_id}") from e

    def update_event(self, calendar_id: str, event_id: str, body: dict) -> dict:
        """Replace an existing event."""
        try:
            return (
                self.service.events()
                .update(calendarId=calendar_id, eventId=event_id, body=body, sendUpdates="none")
                .execute()
            )
        except HttpError as e:
            raise _api_error(e, f"update event {event_id}") from e

    def delete_event(self, calendar_id: str, event_id: str):
        """Remove an event from the calendar."""
        try:
            self.service.events().delete(
                calendarId=calendar_id, eventId=event_id, sendUpdates="none"
            ).execute()
        except HttpError as e:
            raise _api_error(e, f"delete event {event_id}") from e

    # ------------------------------------------------------------------ #
    # Calendars                                                            #
    # ------------------------------------------------------------------ #

    def get_calendar(self, calendar_id: str) -> dict:
        """Return calendar metadata (summary, timeZone, ...)."""
        try:
            return self.service.calendars().get(calendarId=calendar_id).execute()
        except HttpError as e:
            raise _api_error(e, f"open calendar {calendar_id}") from e

    def list_calendars(self) -> list[dict]:
        """Return every calendar in the authenticated account's calendar list."""
        entries: list[dict] = []
        page_token = None
        try:
            while True:
                result = self.service.calendarList().list(pageToken=page_token).execute()
                entries.extend(result.get("items", []))
                page_token = result.get("nextPageToken")
                if not page_token:
                    return entries
        except HttpError as e:
            raise _api_error(e, "list calendars") from e


def get_calendar_display_info(client, calendar_id: str) -> tuple[str, str]:
    """
    Get human-readable information about a calendar.

    Returns:
        Tuple of (display_name, calendar_id)
    """
    try:
        calendar = client.get_calendar(calendar_id)
    except CalendarSyncError as e:
        return (f"Error: {e}", calendar_id)
    return (calendar.get("summary") or "Unnamed Calendar", calendar_id)
