"""
Debug/inspect tools for Google Calendar events.

Importable functions:
  list_calendars(client, console)  — render a Rich table of all calendars
  dump_event(event, console, show_raw=True)  — render one event in a Rich Panel
"""

import json

from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from gcal_event_sync.transform import EventTransform

_WRITABLE_ROLES = ("owner", "writer")


def list_calendars(client, console: Console) -> None:
    """Render every calendar of the account as a Rich table."""
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Summary", style="bold")
    table.add_column("Access")
    table.add_column("Time zone")
    table.add_column("Calendar ID", style="dim", overflow="fold")

    for entry in client.list_calendars():
        role = entry.get("accessRole", "unknown")
        if role in _WRITABLE_ROLES:
            mode = Text("Read-write", style="green")
        elif role == "reader":
            mode = Text("Read-only", style="yellow")
        else:
            mode = Text(role, style="red")
        name = entry.get("summaryOverride") or entry.get("summary") or "(unnamed)"
        if entry.get("primary"):
            name += " (primary)"
        table.add_row(name, mode, entry.get("timeZone", ""), entry.get("id", ""))

    console.print(table)


def _when(value: dict | None) -> str | None:
    if not value:
        return None
    return value.get("dateTime") or value.get("date")


def dump_event(event: dict, console: Console, show_raw: bool = True) -> None:
    """Render a single event as a Rich Panel."""
    summary = event.get("summary") or "(no summary)"
    lines = Text()

    def row(label: str, value) -> None:
        if value is None or value == "":
            return
        lines.append(f"  {label:<18}: ", style="bold cyan")
        lines.append(f"{value}\n")

    row("SUMMARY", summary)
    row("ID", event.get("id"))
    row("STATUS", event.get("status"))
    row("START", _when(event.get("start")))
    row("END", _when(event.get("end")))
    row("RECURRING EVENT", event.get("recurringEventId"))
    for rule in event.get("recurrence") or []:
        row("RECURRENCE", rule)
    row("VISIBILITY", event.get("visibility"))
    row("UPDATED", event.get("updated"))

    organizer = event.get("organizer") or {}
    row("ORGANIZER", organizer.get("email"))
    for attendee in event.get("attendees") or []:
        row("ATTENDEE", f"{attendee.get('email')}  ({attendee.get('responseStatus')})")

    private = (event.get("extendedProperties") or {}).get("private") or {}
    for key, value in sorted(private.items()):
        row(key, value)

    title = f"[bold]{summary}[/bold]"
    if EventTransform.is_managed_event(event):
        title += "  [magenta](managed)[/magenta]"
    console.print(Panel(lines, title=title, expand=False))

    if show_raw:
        raw = json.dumps(event, indent=2, ensure_ascii=False)
        console.print(Panel(
            Syntax(raw, "json", theme="monokai", word_wrap=True),
            title="Raw JSON",
            expand=False,
        ))
