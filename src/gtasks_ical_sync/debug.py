"""
Debug/inspect tools for task lists, local todos and reconciliation results.

Importable functions:
  list_task_lists(lists, console)  : render a Rich table of Google task lists
  dump_todo(vtodo, console, show_raw=True)  : render one VTODO in a Rich Panel
  render_reconcile_report(result, console)  : render matched/unmatched/problems
"""

import gi

gi.require_version("ICalGLib", "3.0")
from gi.repository import ICalGLib

from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from gtasks_ical_sync.models import Authority
from gtasks_ical_sync.models import ReconcileResult
from gtasks_ical_sync.models import RemoteTaskList


def list_task_lists(lists: list[RemoteTaskList], console: Console) -> None:
    """Render the account's task lists as a Rich table."""
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Title", style="bold")
    table.add_column("Updated")
    table.add_column("ID", style="dim")

    for tl in lists:
        updated = tl.updated.strftime("%Y-%m-%d %H:%M:%S") if tl.updated else "—"
        table.add_row(tl.title or "(untitled)", updated, tl.id)

    console.print(table)


def fmt_prop(vtodo, kind, getter):
    prop = vtodo.get_first_property(kind)
    if not prop:
        return None
    try:
        return getter(prop)
    except (TypeError, ValueError):
        return prop.get_value_as_string()


def collect_multi(vtodo, kind, getter):
    """Collect all values for a repeating property (e.g. RELATED-TO, CATEGORIES)."""
    results = []
    prop = vtodo.get_first_property(kind)
    while prop:
        try:
            results.append(getter(prop))
        except (TypeError, ValueError):
            v = prop.get_value_as_string()
            if v:
                results.append(v)
        prop = vtodo.get_next_property(kind)
    return results


def dump_todo(vtodo, console: Console, show_raw: bool = True) -> None:
    """Render a single VTODO as a Rich Panel."""
    uid = vtodo.get_uid() or "(no UID)"
    summary = fmt_prop(vtodo, ICalGLib.PropertyKind.SUMMARY_PROPERTY,
                       lambda p: p.get_summary()) or "(no summary)"
    status = fmt_prop(vtodo, ICalGLib.PropertyKind.STATUS_PROPERTY,
                      lambda p: p.get_value_as_string())
    due = fmt_prop(vtodo, ICalGLib.PropertyKind.DUE_PROPERTY,
                   lambda p: p.get_value_as_string())
    completed = fmt_prop(vtodo, ICalGLib.PropertyKind.COMPLETED_PROPERTY,
                         lambda p: p.get_value_as_string())
    modified = fmt_prop(vtodo, ICalGLib.PropertyKind.LASTMODIFIED_PROPERTY,
                        lambda p: p.get_value_as_string())
    rrule = fmt_prop(vtodo, ICalGLib.PropertyKind.RRULE_PROPERTY,
                     lambda p: p.get_value_as_string())
    related = collect_multi(vtodo, ICalGLib.PropertyKind.RELATEDTO_PROPERTY,
                            lambda p: p.get_relatedto())

    lines = Text()

    def row(label: str, value) -> None:
        if value is None:
            return
        lines.append(f"  {label:<14}: ", style="bold cyan")
        lines.append(f"{value}\n")

    row("SUMMARY", summary)
    row("UID", uid)
    row("STATUS", status)
    row("DUE", due)
    row("COMPLETED", completed)
    row("LAST-MODIFIED", modified)
    if rrule:
        row("RRULE", rrule)
    for rel in related:
        row("RELATED-TO", rel)

    # X-properties (the Google bookkeeping lives here)
    x_prop = vtodo.get_first_property(ICalGLib.PropertyKind.X_PROPERTY)
    while x_prop:
        name = x_prop.get_x_name() or ""
        val = x_prop.get_x() or x_prop.get_value_as_string() or ""
        lines.append(f"  {name:<14}: ", style="bold cyan")
        lines.append(f"{val}\n")
        x_prop = vtodo.get_next_property(ICalGLib.PropertyKind.X_PROPERTY)

    console.print(Panel(lines, title=f"[bold]{summary}[/bold]", expand=False))

    if show_raw:
        raw = vtodo.as_ical_string()
        console.print(Panel(
            Syntax(raw, "ical", theme="monokai", word_wrap=True),
            title="Raw iCal",
            expand=False,
        ))


_AUTHORITY_STYLE = {
    Authority.REMOTE: "cyan",
    Authority.LOCAL: "green",
    Authority.IN_SYNC: "dim",
}


def render_reconcile_report(result: ReconcileResult, console: Console) -> None:
    """Render every classified record, one table row each."""
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Bucket", style="bold")
    table.add_column("Title")
    table.add_column("Remote ID", style="dim")
    table.add_column("Local UID", style="dim")
    table.add_column("Detail")

    for pair in result.matched:
        style = _AUTHORITY_STYLE[pair.authority]
        table.add_row(
            "matched",
            pair.unified.title,
            pair.remote.id,
            pair.local.uid or "",
            Text(f"{pair.authority.value} wins" if pair.authority is not Authority.IN_SYNC
                 else "in sync", style=style),
        )
    for remote in result.unmatched_remote:
        table.add_row("remote only", remote.title, remote.id, "", "")
    for local in result.unmatched_local:
        table.add_row("local only", local.summary, local.remote_id or "", local.uid or "", "")
    for problem in result.problems:
        style = "yellow" if not problem.excludes_records else "bold red"
        table.add_row(
            Text(problem.kind.value, style=style),
            (problem.remote.title if problem.remote else None)
            or (problem.local.summary if problem.local else ""),
            problem.remote.id if problem.remote else "",
            problem.local.uid or "" if problem.local else "",
            problem.reason,
        )

    console.print(Panel(table, title="[bold]Reconciliation[/bold]", expand=False))
