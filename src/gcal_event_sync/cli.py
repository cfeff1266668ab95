"""
Command-line interface for Google Calendar event sync.
"""

import logging
from configparser import ConfigParser
from dataclasses import dataclass
from dataclasses import field
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from gcal_event_sync.db import StateDatabase
from gcal_event_sync.db import query_status_all_profiles
from gcal_event_sync.gcal_client import GoogleCalendarClient
from gcal_event_sync.gcal_client import get_calendar_display_info
from gcal_event_sync.models import DEFAULT_CONFIG
from gcal_event_sync.models import DEFAULT_CREDENTIALS
from gcal_event_sync.models import DEFAULT_STATE_DB
from gcal_event_sync.models import DEFAULT_TOKEN_FILE
from gcal_event_sync.models import CalendarSyncError
from gcal_event_sync.models import SyncConfig
from gcal_event_sync.sync import CalendarSynchronizer
from gcal_event_sync.sync.feed import SYNC_TOKEN_KEY_PREFIX
from gcal_event_sync.sync.feed import parse_sync_token_key
from gcal_event_sync.sync.feed import reset_tokens

# ---------------------------------------------------------------------------
# Typer app
# ---------------------------------------------------------------------------

app = typer.Typer(
    no_args_is_help=True,
    rich_markup_mode="rich",
    help="Mirror and back up Google Calendar events using incremental sync tokens.",
)

console = Console()


# ---------------------------------------------------------------------------
# Global state shared across subcommands
# ---------------------------------------------------------------------------


@dataclass
class _State:
    config_path: Path = field(default_factory=lambda: DEFAULT_CONFIG)
    state_db: Path = field(default_factory=lambda: DEFAULT_STATE_DB)
    verbose: bool = False


state = _State()


@app.callback()
def _global(
    config: Annotated[
        Path,
        typer.Option("--config", "-c", help=f"Config file path (default: {DEFAULT_CONFIG})"),
    ] = DEFAULT_CONFIG,
    state_db: Annotated[
        Path,
        typer.Option("--state-db", help=f"State DB path (default: {DEFAULT_STATE_DB})"),
    ] = DEFAULT_STATE_DB,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose debug output"),
    ] = False,
) -> None:
    state.config_path = config
    state.state_db = state_db
    state.verbose = verbose
    _setup_logging(verbose)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False, console=console)],
    )
    # The discovery client is chatty at DEBUG level.
    logging.getLogger("googleapiclient").setLevel(logging.WARNING)


def _load_config_file(config_path: Path) -> dict[str, str]:
    if not config_path.exists():
        return {}
    parser = ConfigParser()
    parser.read(config_path)
    if "calendar-sync" not in parser:
        return {}
    return dict(parser["calendar-sync"])


def _split_ids(value: str | None) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def _build_config(
    operation: str,
    source_calendar: str | None,
    target_calendars: list[str] | None,
    dry_run: bool = False,
    yes: bool = False,
    **options,
) -> SyncConfig:
    config_file = _load_config_file(state.config_path)
    source_id = source_calendar or config_file.get("source_calendar_id")
    target_ids = target_calendars or _split_ids(config_file.get("target_calendar_ids"))

    if not source_id:
        console.print(
            "[bold red]Error:[/] A source calendar ID must be provided via "
            "[cyan]--source[/] or in the config file."
        )
        raise typer.Exit(1)

    try:
        baseline_days = int(config_file.get("baseline_days", 1))
    except ValueError:
        raise typer.BadParameter("baseline_days in the config file must be an integer") from None

    for key in ("owner_email", "owner_name"):
        if options.get(key) is None:
            options[key] = config_file.get(key)

    return SyncConfig(
        source_calendar_id=source_id,
        target_calendar_ids=target_ids,
        state_db_path=state.state_db,
        operation=operation,
        profile=config_file.get("profile", "default"),
        credentials_file=Path(config_file.get("credentials_file", DEFAULT_CREDENTIALS)).expanduser(),
        token_file=Path(config_file.get("token_file", DEFAULT_TOKEN_FILE)).expanduser(),
        busy_summary=config_file.get("busy_summary", "Busy"),
        baseline_days=baseline_days,
        dry_run=dry_run,
        verbose=state.verbose,
        yes=yes,
        **options,
    )


def _connect(cfg: SyncConfig) -> GoogleCalendarClient:
    try:
        return GoogleCalendarClient.from_files(cfg.credentials_file, cfg.token_file)
    except CalendarSyncError as e:
        console.print(f"[bold red]Error:[/] {e}")
        raise typer.Exit(1) from None


_OPERATION_LABELS = {
    "init": Text("INIT (take sync baselines)", style="bold cyan"),
    "mirror": Text("MIRROR", style="bold green"),
    "backup": Text("BACKUP", style="bold green"),
    "add-owner": Text("ADD OWNER (update events in place)", style="bold yellow"),
    "clear": Text("CLEAR (remove copies, no resync)", style="bold red"),
}


def _run_operation(cfg: SyncConfig) -> None:
    """Core runner: connect, preflight, display panel, confirm, run, show results."""
    from gcal_event_sync.preflight import run_preflight_checks

    if not run_preflight_checks(cfg, console):
        raise typer.Exit(1)
    client = _connect(cfg)
    if not run_preflight_checks(cfg, console, client):
        raise typer.Exit(1)

    # -- Info panel ----------------------------------------------------------
    source_name, source_id = get_calendar_display_info(client, cfg.source_calendar_id)

    info = Text()
    info.append("  Source:    ", style="bold")
    info.append(f"{source_name}\n")
    info.append(f"             {source_id}\n", style="dim")
    for target in cfg.target_calendar_ids:
        target_name, target_id = get_calendar_display_info(client, target)
        info.append("  Target:    ", style="bold")
        info.append(f"{target_name}\n")
        info.append(f"             {target_id}\n", style="dim")
    if cfg.operation in ("mirror", "clear", "init"):
        info.append("  Direction: ", style="bold")
        info.append_text(
            Text.from_markup("[cyan]↔ Bidirectional[/]" if cfg.bidirectional else "[cyan]→ One-way[/]")
        )
        info.append("\n")
    info.append("  Operation: ")
    info.append_text(_OPERATION_LABELS[cfg.operation])
    if cfg.operation == "mirror" and cfg.busy:
        info.append("\n  Details:   ")
        info.append(f"hidden (shown as '{cfg.busy_summary}')", style="yellow")
    if cfg.operation == "add-owner":
        info.append("\n  Owner:     ")
        info.append(cfg.owner_email or "")
    if cfg.keep_reminders:
        info.append("\n  Reminders: ")
        info.append("preserved", style="yellow")
    if cfg.dry_run:
        info.append("\n  Mode:      ")
        info.append("DRY RUN", style="bold magenta")

    console.print(Panel(info, title="[bold]Google Calendar Event Sync[/bold]"))

    # -- Confirmation --------------------------------------------------------
    if not cfg.yes and not cfg.dry_run:
        typer.confirm("Proceed?", abort=True)

    # -- Run -----------------------------------------------------------------
    try:
        stats = CalendarSynchronizer(cfg, client).run()
    except CalendarSyncError as e:
        console.print(f"[bold red]Sync failed:[/] {e}")
        raise typer.Exit(1) from None
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted by user[/]")
        raise typer.Exit(130) from None
    except Exception as e:
        console.print_exception()
        console.print(f"[bold red]Unexpected error:[/] {e}")
        raise typer.Exit(1) from e

    # -- Results table -------------------------------------------------------
    results = Table.grid(padding=(0, 2))
    results.add_column(style="bold")
    results.add_column(justify="right")
    results.add_row("Added", str(stats.added))
    results.add_row("Modified", str(stats.modified))
    results.add_row("Deleted", str(stats.deleted))
    results.add_row("Skipped", str(stats.skipped))
    error_val = Text(str(stats.errors))
    if stats.errors == 0:
        error_val.append(" ✓", style="green")
    else:
        error_val.stylize("bold red")
    results.add_row("Errors", error_val)

    console.print(Panel(results, title="[bold]Results[/bold]", expand=False))

    if stats.errors:
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Shared options
# ---------------------------------------------------------------------------

_SOURCE_OPT = Annotated[
    str | None,
    typer.Option("--source", "-s", help="Source calendar ID (overrides config)"),
]
_TARGET_OPT = Annotated[
    list[str] | None,
    typer.Option("--target", "-t", help="Target calendar ID, repeatable (overrides config)"),
]
_BOTH = Annotated[
    bool, typer.Option("--both", help="Also mirror each target back into the source")
]
_DRY_RUN = Annotated[bool, typer.Option("--dry-run", "-n", help="Preview changes without applying")]
_YES = Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt")]
_KEEP_REMINDERS = Annotated[
    bool,
    typer.Option(
        "--keep-reminders",
        help=(
            "Preserve reminders on copied events "
            "(disabled by default to avoid duplicate notifications)"
        ),
    ),
]


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------


@app.command()
def init(
    source: _SOURCE_OPT = None,
    target: _TARGET_OPT = None,
    both: _BOTH = False,
    force: Annotated[
        bool, typer.Option("--force", help="Replace sync tokens that are already stored")
    ] = False,
    dry_run: _DRY_RUN = False,
) -> None:
    """Take sync baselines so later runs only see new changes.

    Run once before the first [bold]sync[/bold]; events older than the
    baseline are never copied.
    """
    _run_operation(
        _build_config(
            "init", source, target, dry_run=dry_run, yes=True, bidirectional=both, force=force
        )
    )


@app.command()
def sync(
    source: _SOURCE_OPT = None,
    target: _TARGET_OPT = None,
    both: _BOTH = False,
    busy: Annotated[
        bool,
        typer.Option("--busy", help="Copy events as private busy blocks without any details"),
    ] = False,
    keep_reminders: _KEEP_REMINDERS = False,
    dry_run: _DRY_RUN = False,
    yes: _YES = False,
) -> None:
    """Mirror changed source events into the target calendars."""
    _run_operation(
        _build_config(
            "mirror",
            source,
            target,
            dry_run=dry_run,
            yes=yes,
            bidirectional=both,
            busy=busy,
            keep_reminders=keep_reminders,
        )
    )


@app.command()
def backup(
    source: _SOURCE_OPT = None,
    target: _TARGET_OPT = None,
    keep_reminders: _KEEP_REMINDERS = False,
    dry_run: _DRY_RUN = False,
    yes: _YES = False,
) -> None:
    """Back up changed source events; backups survive deletion of the source event."""
    _run_operation(
        _build_config(
            "backup", source, target, dry_run=dry_run, yes=yes, keep_reminders=keep_reminders
        )
    )


@app.command("add-owner")
def add_owner(
    source: _SOURCE_OPT = None,
    email: Annotated[
        str | None, typer.Option("--email", "-e", help="Owner email (overrides config)")
    ] = None,
    name: Annotated[
        str | None, typer.Option("--name", help="Owner display name (overrides config)")
    ] = None,
    dry_run: _DRY_RUN = False,
    yes: _YES = False,
) -> None:
    """Add the owner as accepted attendee (and organizer) of changed events."""
    cfg = _build_config(
        "add-owner", source, [], dry_run=dry_run, yes=yes, owner_email=email, owner_name=name
    )
    if not cfg.owner_email:
        console.print(
            "[bold red]Error:[/] An owner email must be provided via "
            "[cyan]--email[/] or [cyan]owner_email[/] in the config file."
        )
        raise typer.Exit(1)
    cfg.target_calendar_ids = []  # events are updated in place
    _run_operation(cfg)


@app.command()
def clear(
    source: _SOURCE_OPT = None,
    target: _TARGET_OPT = None,
    both: _BOTH = False,
    backups: Annotated[
        bool, typer.Option("--backups", help="Remove backup copies instead of mirrors")
    ] = False,
    dry_run: _DRY_RUN = False,
    yes: _YES = False,
) -> None:
    """Remove copies written by this tool without re-syncing.

    Only events carrying this tool's markers are deleted; everything else in
    the target calendars is left alone.
    """
    _run_operation(
        _build_config(
            "clear",
            source,
            target,
            dry_run=dry_run,
            yes=yes,
            bidirectional=both,
            clear_role="backup" if backups else "mirror",
        )
    )


@app.command()
def reset(
    calendar_id: Annotated[
        str | None,
        typer.Argument(help="Calendar whose sync tokens to forget (default: configured source)"),
    ] = None,
    all_tokens: Annotated[
        bool, typer.Option("--all", help="Forget every sync token of the profile")
    ] = False,
) -> None:
    """Forget stored sync tokens; the next run takes a fresh baseline."""
    config_file = _load_config_file(state.config_path)
    profile = config_file.get("profile", "default")

    if all_tokens:
        with StateDatabase(state.state_db, profile) as state_db:
            state_db.clear_all()
            state_db.commit()
        console.print(f"[green]All sync tokens of profile[/] [cyan]{profile}[/] [green]removed.[/]")
        return

    calendar_id = calendar_id or config_file.get("source_calendar_id")
    if not calendar_id:
        console.print("[bold red]Error:[/] No calendar ID given and none configured.")
        raise typer.Exit(1)

    with StateDatabase(state.state_db, profile) as state_db:
        removed = reset_tokens(state_db, calendar_id)

    if removed:
        console.print(
            f"[green]Removed {len(removed)} sync token(s) for[/] [cyan]{calendar_id}[/]."
        )
    else:
        console.print(f"[yellow]No sync token stored for[/] [cyan]{calendar_id}[/].")


@app.command()
def status() -> None:
    """Show configuration and stored sync tokens."""
    from datetime import datetime

    # -- Configuration section -----------------------------------------------
    config_exists = state.config_path.exists()
    db_exists = state.state_db.exists()
    config_file = _load_config_file(state.config_path)

    cfg_info = Text()
    cfg_info.append("  Config:   ", style="bold")
    cfg_info.append(str(state.config_path) + " ")
    cfg_info.append(
        "✓" if config_exists else "(not found)", style="green" if config_exists else "red"
    )
    cfg_info.append("\n  State DB: ", style="bold")
    cfg_info.append(str(state.state_db) + " ")
    cfg_info.append("✓" if db_exists else "(not found)", style="green" if db_exists else "yellow")

    source_id = config_file.get("source_calendar_id")
    if source_id:
        cfg_info.append("\n\n  Source:   ", style="bold")
        cfg_info.append(source_id)
    for target_id in _split_ids(config_file.get("target_calendar_ids")):
        cfg_info.append("\n  Target:   ", style="bold")
        cfg_info.append(target_id)

    console.print(Panel(cfg_info, title="[bold]Google Calendar Event Sync — Status[/bold]"))

    # -- State DB section ----------------------------------------------------
    rows = query_status_all_profiles(state.state_db)
    token_rows = [row for row in rows if row["key"].startswith(SYNC_TOKEN_KEY_PREFIX)]

    if not token_rows:
        if not db_exists:
            console.print(
                "[yellow]No state database yet — run[/] "
                "[cyan]gcal-event-sync init[/] "
                "[yellow]to create it.[/]"
            )
        else:
            console.print("[yellow]No sync tokens stored yet.[/]")
        return

    table = Table(show_header=True, header_style="bold cyan", box=None, padding=(0, 2))
    table.add_column("Profile")
    table.add_column("Operation", no_wrap=True)
    table.add_column("Calendar", overflow="fold")
    table.add_column("Token")
    table.add_column("Last advanced")

    for row in token_rows:
        consumer, calendar_id = parse_sync_token_key(row["key"])
        token = row["value"]
        short = token[:12] + "…" if len(token) > 12 else token
        ts = row["updated_at"] or 0
        last = datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M:%S") if ts else "—"
        table.add_row(
            row["profile"], consumer or "add-owner", calendar_id, Text(short, style="dim"), last
        )

    console.print(Panel(table, title="[bold]Sync tokens[/bold]", expand=False))


@app.command()
def calendars() -> None:
    """List all calendars the configured account can see."""
    from gcal_event_sync.debug import list_calendars as _list_calendars

    config_file = _load_config_file(state.config_path)
    client = _connect(
        SyncConfig(
            source_calendar_id=config_file.get("source_calendar_id", ""),
            state_db_path=state.state_db,
            credentials_file=Path(
                config_file.get("credentials_file", DEFAULT_CREDENTIALS)
            ).expanduser(),
            token_file=Path(config_file.get("token_file", DEFAULT_TOKEN_FILE)).expanduser(),
        )
    )
    try:
        _list_calendars(client, console)
    except CalendarSyncError as e:
        console.print(f"[bold red]Error:[/] {e}")
        raise typer.Exit(1) from None


@app.command()
def inspect(
    calendar_id: Annotated[str, typer.Argument(help="Calendar ID to inspect")],
    days: Annotated[int, typer.Option("--days", help="Look back and ahead this many days")] = 7,
    title: Annotated[
        str | None, typer.Option(help="Filter by summary substring (case-insensitive)")
    ] = None,
    managed_only: Annotated[
        bool, typer.Option("--managed-only", help="Show only copies written by this tool")
    ] = False,
    no_raw: Annotated[bool, typer.Option("--no-raw", help="Omit the raw JSON block")] = False,
    event_id: Annotated[
        str | None, typer.Option("--event", help="Show only this event ID")
    ] = None,
) -> None:
    """Inspect / debug events in a calendar."""
    from datetime import datetime
    from datetime import timedelta
    from datetime import timezone

    from gcal_event_sync.debug import dump_event
    from gcal_event_sync.transform import EventTransform

    cfg = _build_config("mirror", calendar_id, [])
    client = _connect(cfg)

    name, _ = get_calendar_display_info(client, calendar_id)
    console.print(f"[bold]Calendar:[/] {name} [dim]({calendar_id})[/dim]")

    if event_id:
        try:
            event = client.get_event(calendar_id, event_id)
        except CalendarSyncError as e:
            console.print(f"[bold red]Error:[/] {e}")
            raise typer.Exit(1) from None
        if event is None:
            console.print(f"[yellow]No event {event_id} in this calendar.[/]")
            raise typer.Exit(1)
        dump_event(event, console, show_raw=not no_raw)
        return

    now = datetime.now(timezone.utc)
    try:
        events, _ = client.list_events_in_window(
            calendar_id, now - timedelta(days=days), now + timedelta(days=days)
        )
    except CalendarSyncError as e:
        console.print(f"[bold red]Error:[/] {e}")
        raise typer.Exit(1) from None
    console.print(f"[bold]Events:[/] {len(events)} within ±{days} days")

    title_filter = title.lower() if title else None
    count = 0
    for event in events:
        if title_filter and title_filter not in (event.get("summary") or "").lower():
            continue
        if managed_only and not EventTransform.is_managed_event(event):
            continue
        count += 1
        dump_event(event, console, show_raw=not no_raw)

    console.print(f"\n[bold]Matched {count} event(s)[/bold]")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    app()
