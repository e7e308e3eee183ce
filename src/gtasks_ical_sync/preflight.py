"""
Preflight checks run before sync to catch common misconfigurations early.

Issues are grouped by kind so the caller can tell "offline" apart from
"misconfigured" and exit with the matching code.
"""

import logging
import socket
import sqlite3

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from gtasks_ical_sync.models import SyncConfig

logger = logging.getLogger(__name__)

TASKS_API_HOST = "tasks.googleapis.com"
TASKS_API_PORT = 443

# Issue kinds, in the order they decide the exit code.
CONFIG = "config"
CREDENTIALS = "credentials"
OFFLINE = "offline"

EXIT_CODES = {CONFIG: 2, OFFLINE: 3, CREDENTIALS: 4}

Issue = tuple[str, str, str, str]  # (kind, label, detail, hint)


def check_network(host: str = TASKS_API_HOST, port: int = TASKS_API_PORT, timeout: float = 5):
    """Return None when host:port accepts a TCP connection, else the error text."""
    try:
        conn = socket.create_connection((host, port), timeout=timeout)
    except OSError as e:
        return str(e) or e.__class__.__name__
    conn.close()
    return None


def collect_issues(cfg: SyncConfig, check_network_fn=check_network) -> list[Issue]:
    """Run every check and return the issues found (empty means go)."""
    issues: list[Issue] = []

    # 1. Local iCalendar file or directory
    local = cfg.local_path
    if local.exists() and not (local.is_dir() or local.is_file()):
        issues.append(
            (
                CONFIG,
                "Local todos",
                f"{local} is neither a file nor a directory",
                "Pass an .ics file or a directory",
            )
        )
    elif not local.exists() and not local.parent.is_dir():
        logger.error(f"Parent directory of {local} does not exist")
        issues.append(
            (
                CONFIG,
                "Local todos",
                f"{local.parent} does not exist",
                "Create the directory or fix the path",
            )
        )

    # 2. State DB parent dir writable + DB readable if it exists
    db_path = cfg.state_db_path
    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error(f"Cannot create state DB directory {db_path.parent}: {e}")
        issues.append(
            (
                CONFIG,
                "State database",
                f"{db_path}: {e}",
                f"Check permissions on {db_path.parent}",
            )
        )
    else:
        if db_path.exists():
            try:
                conn = sqlite3.connect(db_path)
                conn.execute("SELECT 1")
                # BEGIN IMMEDIATE takes the write lock and needs a journal file
                # next to the DB, so it also proves the directory is writable.
                conn.execute("BEGIN IMMEDIATE")
                conn.execute("ROLLBACK")
                conn.close()
            except sqlite3.Error as e:
                logger.error(f"State DB not readable/writable ({db_path}): {e}")
                issues.append(
                    (
                        CONFIG,
                        "State database",
                        f"{db_path}: {e}",
                        f"Check permissions on {db_path.parent} "
                        f"(journal files must be creatable alongside the DB)",
                    )
                )

    # 3. Something to authorize with
    if not cfg.token_file.exists() and not cfg.client_secrets_file.exists():
        logger.error(f"Neither {cfg.token_file} nor {cfg.client_secrets_file} exists")
        issues.append(
            (
                CREDENTIALS,
                "Google credentials",
                f"no token ({cfg.token_file}) and no client secrets ({cfg.client_secrets_file})",
                "Download OAuth client credentials from the Google Cloud Console",
            )
        )

    # 4. Network
    error = check_network_fn()
    if error:
        logger.error(f"Cannot reach {TASKS_API_HOST}:{TASKS_API_PORT}: {error}")
        issues.append(
            (
                OFFLINE,
                "Network",
                f"{TASKS_API_HOST}:{TASKS_API_PORT} unreachable: {error}",
                "Check the network connection (try --ipv4 if IPv6 is broken)",
            )
        )

    return issues


def exit_code_for(issues: list[Issue]) -> int:
    """Exit code for the most significant issue kind (config > offline > credentials)."""
    kinds = {kind for kind, *_ in issues}
    for kind in (CONFIG, OFFLINE, CREDENTIALS):
        if kind in kinds:
            return EXIT_CODES[kind]
    return 0


def run_preflight_checks(cfg: SyncConfig, console: Console, check_network_fn=check_network) -> int:
    """Return 0 if sync may proceed; print issues and return an exit code otherwise."""
    issues = collect_issues(cfg, check_network_fn)
    if issues:
        _print_issues(issues, console)
    return exit_code_for(issues)


def _print_issues(issues: list[Issue], console: Console) -> None:
    body = Text()
    for i, (_kind, label, detail, hint) in enumerate(issues):
        if i:
            body.append("\n")
        body.append(f"  ✗  {label}: ", style="bold red")
        body.append(detail, style="bold red")
        body.append(f"\n       → {hint}", style="yellow")

    console.print(Panel(body, title="[bold red]Preflight checks failed[/bold red]"))
