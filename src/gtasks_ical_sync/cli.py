"""
Command-line interface for Google Tasks ↔ iCalendar sync.
"""

import logging
from dataclasses import dataclass
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as package_version
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from gtasks_ical_sync.config import build_sync_config
from gtasks_ical_sync.config import config_search_path
from gtasks_ical_sync.config import load_config_files
from gtasks_ical_sync.db import query_status_all_lists
from gtasks_ical_sync.models import DEFAULT_CLIENT_SECRETS
from gtasks_ical_sync.models import DEFAULT_STATE_DB
from gtasks_ical_sync.models import DEFAULT_TOKEN_FILE
from gtasks_ical_sync.models import ConfigError
from gtasks_ical_sync.models import ConnectivityError
from gtasks_ical_sync.models import CredentialsError
from gtasks_ical_sync.models import SyncConfig
from gtasks_ical_sync.models import TaskSyncError
from gtasks_ical_sync.sync import TaskSynchronizer

# ---------------------------------------------------------------------------
# Typer app
# ---------------------------------------------------------------------------

app = typer.Typer(
    no_args_is_help=True,
    rich_markup_mode="rich",
    help="Synchronise a Google Tasks list with iCalendar VTODOs.",
)

console = Console()

EXIT_ERRORS = 1
EXIT_CONFIG = 2
EXIT_OFFLINE = 3
EXIT_CREDENTIALS = 4
EXIT_INTERRUPTED = 130


# ---------------------------------------------------------------------------
# Global state shared across subcommands
# ---------------------------------------------------------------------------


@dataclass
class _State:
    config_path: Path | None = None
    state_db: Path | None = None
    verbose: bool = False


state = _State()


def _version_callback(value: bool) -> None:
    if not value:
        return
    try:
        console.print(f"gtasks-ical-sync {package_version('gtasks-ical-sync')}")
    except PackageNotFoundError:
        console.print("gtasks-ical-sync (not installed)")
    raise typer.Exit()


@app.callback()
def _global(
    config: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Extra config file, read after the default ones"),
    ] = None,
    state_db: Annotated[
        Path | None,
        typer.Option("--state-db", help=f"State DB path (default: {DEFAULT_STATE_DB})"),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose debug output"),
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version", callback=_version_callback, is_eager=True, help="Show version and exit"
        ),
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


def _exit_code_for(e: TaskSyncError) -> int:
    if isinstance(e, ConfigError):
        return EXIT_CONFIG
    if isinstance(e, ConnectivityError):
        return EXIT_OFFLINE
    if isinstance(e, CredentialsError):
        return EXIT_CREDENTIALS
    return EXIT_ERRORS


def _fail(e: TaskSyncError, what: str = "Error") -> None:
    console.print(f"[bold red]{what}:[/] {e}")
    raise typer.Exit(_exit_code_for(e)) from None


def _load_files():
    try:
        return load_config_files(state.config_path)
    except ConfigError as e:
        _fail(e, "Configuration error")


def _split_sync_args(args: list[str] | None) -> tuple[str | None, Path | None]:
    """[LISTNAME-REGEX] FILE|DIRECTORY → (listname, path)."""
    args = args or []
    if len(args) > 2:
        raise typer.BadParameter("expected at most [LISTNAME-REGEX] FILE|DIRECTORY")
    if len(args) == 2:
        return args[0], Path(args[1])
    if len(args) == 1:
        return None, Path(args[0])
    return None, None


def _build_config(
    args: list[str] | None,
    download: bool,
    upload: bool,
    task_ids: list[str] | None,
    dry_run: bool,
    ipv4: bool,
) -> SyncConfig:
    if download and upload:
        raise typer.BadParameter("--download and --upload are mutually exclusive")

    listname, path = _split_sync_args(args)
    if download:
        direction = "to-local"
    elif upload:
        direction = "to-remote"
    else:
        direction = "both"

    file_config = _load_files()
    try:
        return build_sync_config(
            file_config,
            listname=listname,
            path=path,
            state_db=state.state_db,
            sync_direction=direction,
            task_ids=tuple(task_ids or ()),
            dry_run=dry_run,
            verbose=state.verbose,
            ipv4_only=ipv4,
        )
    except ConfigError as e:
        _fail(e, "Configuration error")


def _run_sync(cfg: SyncConfig, report: bool) -> None:
    """Core sync runner: display panel, run, show results."""
    from gtasks_ical_sync.preflight import run_preflight_checks

    code = run_preflight_checks(cfg, console)
    if code:
        raise typer.Exit(code)

    # -- Info panel ----------------------------------------------------------
    direction_label = {
        "both": "[cyan]↔ Bidirectional[/]",
        "to-local": "[cyan]→ Google Tasks → iCalendar[/]",
        "to-remote": "[cyan]← iCalendar → Google Tasks[/]",
    }[cfg.sync_direction]

    info = Text()
    info.append("  Task list: ", style="bold")
    info.append(f"{cfg.listname or '(default list)'}\n")
    info.append("  Local:     ", style="bold")
    info.append(f"{cfg.local_path}\n")
    info.append("  Direction: ", style="bold")
    info.append_text(Text.from_markup(direction_label))
    if cfg.task_ids:
        info.append("\n  Tasks:     ", style="bold")
        info.append(", ".join(cfg.task_ids))
    if cfg.dry_run:
        info.append("\n  Mode:      ")
        info.append("DRY RUN", style="bold magenta")

    console.print(Panel(info, title="[bold]Google Tasks Sync[/bold]"))

    # -- Run -----------------------------------------------------------------
    synchronizer = TaskSynchronizer(cfg)
    try:
        stats = synchronizer.run()
    except TaskSyncError as e:
        _fail(e, "Sync failed")
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted by user[/]")
        raise typer.Exit(EXIT_INTERRUPTED) from None
    except Exception as e:
        console.print_exception()
        console.print(f"[bold red]Unexpected error:[/] {e}")
        raise typer.Exit(EXIT_ERRORS) from e

    if report and synchronizer.result is not None:
        from gtasks_ical_sync.debug import render_reconcile_report

        render_reconcile_report(synchronizer.result, console)

    # -- Results table -------------------------------------------------------
    results = Table(show_header=True, header_style="bold cyan", box=None, padding=(0, 2))
    results.add_column("")
    results.add_column("Local", justify="right")
    results.add_column("Google", justify="right")
    results.add_row("Created", str(stats.local_created), str(stats.remote_created))
    results.add_row("Updated", str(stats.local_updated), str(stats.remote_updated))
    results.add_row("Deleted", str(stats.local_deleted), str(stats.remote_deleted))

    totals = Table.grid(padding=(0, 2))
    totals.add_column(style="bold")
    totals.add_column(justify="right")
    totals.add_row("Unchanged", str(stats.unchanged))
    if stats.warnings:
        totals.add_row("Warnings", Text(str(stats.warnings), style="yellow"))
    for label, value in (("Problems", stats.problems), ("Errors", stats.errors)):
        cell = Text(str(value))
        if value == 0:
            cell.append(" ✓", style="green")
        else:
            cell.stylize("bold red")
        totals.add_row(label, cell)

    console.print(Panel(results, title="[bold]Results[/bold]", expand=False))
    console.print(Panel(totals, expand=False))

    if stats.errors or stats.problems:
        raise typer.Exit(EXIT_ERRORS)


# ---------------------------------------------------------------------------
# Subcommand: sync
# ---------------------------------------------------------------------------


@app.command()
def sync(
    args: Annotated[
        list[str] | None,
        typer.Argument(
            metavar="[LISTNAME-REGEX] FILE|DIRECTORY",
            help="Task list title pattern and iCalendar file or directory "
            "(default: listname/path from the config file)",
            show_default=False,
        ),
    ] = None,
    download: Annotated[
        bool, typer.Option("--download", help="One-way: Google Tasks → iCalendar only")
    ] = False,
    upload: Annotated[
        bool, typer.Option("--upload", help="One-way: iCalendar → Google Tasks only")
    ] = False,
    task: Annotated[
        list[str] | None,
        typer.Option("--task", "-t", help="Only sync this task ID or UID (repeatable)"),
    ] = None,
    ipv4: Annotated[bool, typer.Option("--ipv4", help="Resolve hosts to IPv4 only")] = False,
    dry_run: Annotated[
        bool, typer.Option("--dry-run", "-n", help="Preview changes without applying")
    ] = False,
    report: Annotated[
        bool, typer.Option("--report", help="Print how every task was classified")
    ] = False,
) -> None:
    """Synchronise a task list with iCalendar todos (bidirectional by default)."""
    _run_sync(_build_config(args, download, upload, task, dry_run, ipv4), report)


# ---------------------------------------------------------------------------
# Subcommand: lists
# ---------------------------------------------------------------------------


@app.command()
def lists(
    ipv4: Annotated[bool, typer.Option("--ipv4", help="Resolve hosts to IPv4 only")] = False,
) -> None:
    """List the Google task lists of the account."""
    from gtasks_ical_sync.debug import list_task_lists
    from gtasks_ical_sync.gtasks_client import GoogleTasksClient
    from gtasks_ical_sync.gtasks_client import ipv4_only

    file_config = _load_files()
    try:
        with ipv4_only(ipv4 or file_config.get_bool("ipv4_only")):
            client = GoogleTasksClient.connect(
                file_config.get_path("client_secrets_file", DEFAULT_CLIENT_SECRETS),
                file_config.get_path("token_file", DEFAULT_TOKEN_FILE),
                retries=file_config.get_int("retries", 3),
                timeout=file_config.get_int("timeout", 30),
            )
            task_lists = client.fetch_remote_lists()
    except TaskSyncError as e:
        _fail(e)

    list_task_lists(task_lists, console)


# ---------------------------------------------------------------------------
# Subcommand: inspect
# ---------------------------------------------------------------------------


@app.command()
def inspect(
    path: Annotated[Path, typer.Argument(help="iCalendar file or directory to inspect")],
    title: Annotated[
        str | None, typer.Option(help="Filter by SUMMARY substring (case-insensitive)")
    ] = None,
    uid: Annotated[
        str | None, typer.Option(help="Filter by UID substring (case-insensitive)")
    ] = None,
    no_raw: Annotated[bool, typer.Option("--no-raw", help="Omit the raw iCal block")] = False,
) -> None:
    """Inspect / debug todos in an iCalendar file or directory."""
    from gtasks_ical_sync.debug import dump_todo
    from gtasks_ical_sync.ical_store import IcalTodoStore

    if not path.exists():
        console.print(f"[bold red]Error:[/] [cyan]{path}[/] not found.")
        raise typer.Exit(EXIT_CONFIG)

    title_filter = title.lower() if title else None
    uid_filter = uid.lower() if uid else None

    count = 0
    try:
        for file_path, vtodo in IcalTodoStore(path).components():
            if title_filter:
                summary = vtodo.get_summary() or ""
                if title_filter not in summary.lower():
                    continue
            if uid_filter and uid_filter not in (vtodo.get_uid() or "").lower():
                continue
            count += 1
            console.print(f"[dim]{file_path}[/dim]")
            dump_todo(vtodo, console, show_raw=not no_raw)
    except TaskSyncError as e:
        _fail(e)

    console.print(f"\n[bold]Matched {count} todo(s)[/bold]")


# ---------------------------------------------------------------------------
# Subcommand: status
# ---------------------------------------------------------------------------


@app.command()
def status() -> None:
    """Show configuration files in effect and a state database summary."""
    from datetime import datetime

    file_config = _load_files()
    db_path = state.state_db or file_config.get_path("state_db", DEFAULT_STATE_DB)
    db_exists = db_path.exists()

    # -- Configuration section -----------------------------------------------
    cfg_info = Text()
    for config_path in config_search_path(state.config_path):
        found = config_path in file_config.files_read
        cfg_info.append("  Config:   ", style="bold")
        cfg_info.append(str(config_path) + " ")
        cfg_info.append("✓" if found else "(not found)", style="green" if found else "dim")
        cfg_info.append("\n")
    cfg_info.append("  State DB: ", style="bold")
    cfg_info.append(str(db_path) + " ")
    cfg_info.append("✓" if db_exists else "(not found)", style="green" if db_exists else "yellow")
    for key, label in (("listname", "List:     "), ("path", "Local:    ")):
        value = file_config.get(key)
        if value:
            cfg_info.append(f"\n  {label}", style="bold")
            cfg_info.append(value)

    console.print(Panel(cfg_info, title="[bold]Google Tasks Sync — Status[/bold]"))

    # -- State DB section ----------------------------------------------------
    rows = query_status_all_lists(db_path)

    if not rows:
        if not db_exists:
            console.print(
                "[yellow]No state database yet — run[/] "
                "[cyan]gtasks-ical-sync sync[/] "
                "[yellow]to create it.[/]"
            )
        else:
            console.print("[yellow]State database is empty — no syncs recorded yet.[/]")
        return

    # Group rows by task list
    task_lists = {}
    for row in rows:
        task_lists.setdefault(row["tasklist_id"], []).append(row)

    for tasklist_id, list_rows in task_lists.items():
        table = Table(show_header=True, header_style="bold cyan", box=None, padding=(0, 2))
        table.add_column("Created on")
        table.add_column("Tracked", justify="right")
        table.add_column("Last sync")

        for row in list_rows:
            origin = "Google Tasks" if row["origin"] == "remote" else "iCalendar"
            ts = row["last_sync_at"] or 0
            last_sync_str = datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M:%S") if ts else "—"
            table.add_row(origin, str(row["count"]), last_sync_str)

        console.print(Panel(table, title=f"[bold]{tasklist_id}[/bold]", expand=False))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    app()
