"""
Event record transformations — copy, strip, anonymize and tag events.

Events are the JSON-like dicts returned by the Calendar Events API. Every
transformation returns a new record and leaves its input untouched.
"""

# Private extended-property keys written onto every copy this tool creates.
ROLE_KEY = "calendarSyncRole"
SOURCE_CALENDAR_KEY = "calendarSyncSourceCalendar"
SOURCE_EVENT_KEY = "calendarSyncSourceEvent"

ROLE_MIRROR = "mirror"
ROLE_BACKUP = "backup"

# Marker set on events updated in place by the add-owner operation.
OWNER_ADDED_KEY = "calendarSyncOwnerAdded"
OWNER_ADDED_VALUE = "ok"

# Fields assigned by the server or read-only on insert into another calendar.
_SERVER_FIELDS = (
    "id",
    "etag",
    "htmlLink",
    "iCalUID",
    "created",
    "updated",
    "creator",
    "organizer",
    "kind",
    "sequence",
    "hangoutLink",
    "conferenceData",
    # Instances of a series are written as standalone events.
    "recurringEventId",
    "originalStartTime",
)

# The only fields a busy block keeps from its source event.
_BUSY_FIELDS = (
    "id",
    "status",
    "start",
    "end",
    "endTimeUnspecified",
    "recurrence",
    "recurringEventId",
    "originalStartTime",
    "transparency",
    "reminders",
)


class EventTransform:
    """Stateless helpers operating on Calendar API event records."""

    @staticmethod
    def copy_event(event: dict) -> dict:
        """
        Return a copy of event, dropping keys with empty values.

        organizer, each attendee and the private/shared extended properties
        are copied one level deep; every other value is shared with the input.
        """
        copied: dict = {}
        for key, value in event.items():
            if not value:
                continue
            if key == "organizer":
                copied["organizer"] = dict(value)
            elif key == "attendees":
                copied["attendees"] = [dict(attendee) for attendee in value]
            elif key == "extendedProperties":
                props: dict = {}
                if value.get("private"):
                    props["private"] = dict(value["private"])
                if value.get("shared"):
                    props["shared"] = dict(value["shared"])
                copied["extendedProperties"] = props
            else:
                copied[key] = value
        return copied

    @classmethod
    def add_attendee_and_organizer(cls, event: dict, email: str, name: str) -> dict:
        """Add a user as accepted attendee, and as organizer when none is set."""
        result = cls.copy_event(event)
        attendees = result.setdefault("attendees", [])
        if not any(attendee.get("email") == email for attendee in attendees):
            attendees.append(
                {
                    "email": email,
                    "displayName": name,
                    "responseStatus": "accepted",
                }
            )
        if "organizer" not in result:
            result["organizer"] = {"email": email, "displayName": name}
        return result

    @classmethod
    def strip_attendees_and_organizer(cls, event: dict) -> dict:
        """Remove every attendee and the organizer."""
        result = cls.copy_event(event)
        result["attendees"] = []
        result["organizer"] = {}
        return result

    @classmethod
    def anonymize(cls, event: dict, summary: str = "Busy") -> dict:
        """Hide everything but the time slot behind a private busy block.

        Only the fields in _BUSY_FIELDS are carried over; attachments,
        conference links, colors and extended properties are all dropped.
        """
        result = cls.copy_event({key: event[key] for key in _BUSY_FIELDS if key in event})
        result["visibility"] = "private"
        result["summary"] = summary
        result["description"] = ""
        result["location"] = ""
        result["organizer"] = {
            "id": "",
            "email": "",
            "displayName": "",
            "self": False,
        }
        result["attendees"] = []
        return result

    @classmethod
    def add_private_property(cls, event: dict, key: str, value: str) -> dict:
        """Set a private extended property on a copy of event."""
        result = cls.copy_event(event)
        props = result.setdefault("extendedProperties", {})
        props.setdefault("private", {})[key] = value
        return result

    @staticmethod
    def get_private_property(event: dict, key: str) -> str | None:
        return ((event.get("extendedProperties") or {}).get("private") or {}).get(key)

    @classmethod
    def has_private_property(cls, event: dict, key: str, value: str | None = None) -> bool:
        """True when the marker is present (and equal to value, if given)."""
        current = cls.get_private_property(event, key)
        if current is None:
            return False
        return value is None or current == value

    @staticmethod
    def is_cancelled(event: dict) -> bool:
        return event.get("status") == "cancelled"

    @classmethod
    def is_managed_event(cls, event: dict) -> bool:
        """Check if an event was created by our sync tool."""
        return cls.has_private_property(event, ROLE_KEY)

    @classmethod
    def prepare_for_insert(cls, event: dict) -> dict:
        """Drop server-assigned fields so the body can go into another calendar."""
        result = cls.copy_event(event)
        for key in _SERVER_FIELDS:
            result.pop(key, None)
        return result

    @classmethod
    def disable_reminders(cls, event: dict) -> dict:
        result = cls.copy_event(event)
        result["reminders"] = {"useDefault": False, "overrides": []}
        return result

    @classmethod
    def tag_copy(
        cls, event: dict, role: str, source_calendar_id: str, source_event_id: str
    ) -> dict:
        """Add the provenance markers identifying a mirror or backup copy."""
        result = cls.add_private_property(event, ROLE_KEY, role)
        result = cls.add_private_property(result, SOURCE_CALENDAR_KEY, source_calendar_id)
        return cls.add_private_property(result, SOURCE_EVENT_KEY, source_event_id)


def copy_lookup(role: str, source_calendar_id: str, source_event_id: str | None = None) -> dict:
    """Marker filter matching copies of one source event (or of a whole calendar)."""
    props = {ROLE_KEY: role, SOURCE_CALENDAR_KEY: source_calendar_id}
    if source_event_id is not None:
        props[SOURCE_EVENT_KEY] = source_event_id
    return props
