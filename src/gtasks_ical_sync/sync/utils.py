"""
Stateless helpers shared by the resolver and the sync runs.
"""

import hashlib
import json
import logging
from datetime import datetime
from enum import Enum

from gtasks_ical_sync.models import LocalTodo
from gtasks_ical_sync.models import RemoteTask
from gtasks_ical_sync.models import SyncRecord
from gtasks_ical_sync.models import UnifiedTask
from gtasks_ical_sync.rfc3339 import format_rfc3339
from gtasks_ical_sync.sync.matcher import referenced_remote_ids

_logger = logging.getLogger(__name__)

# Fields whose values follow whichever side wins a merge.  These are the
# fields both schemas can edit; everything else is owned by one side.
SYNCED_FIELDS = ("title", "description", "status", "due", "completed", "parent")


def _hash_value(value):
    # Second precision: iCalendar cannot store Google's milliseconds.
    if isinstance(value, datetime):
        return format_rfc3339(value.replace(microsecond=0))
    if isinstance(value, Enum):
        return value.value
    if value == "":
        return None
    return value


def compute_hash(task: UnifiedTask) -> str:
    """
    Generate SHA256 hash of the synced fields for change detection.

    Only SYNCED_FIELDS take part, so bookkeeping such as LAST-MODIFIED,
    SEQUENCE or the Google position token never registers as an edit.
    """
    payload = {name: _hash_value(getattr(task, name)) for name in SYNCED_FIELDS}
    normalized = json.dumps(payload, sort_keys=True, ensure_ascii=False)
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


def _references(local: LocalTodo, remote_ids: set[str], linked: dict[str, str]) -> set[str]:
    """Every Google Task ID the todo points at, through its UID, extension or record."""
    refs = {rid for rid in referenced_remote_ids(local, remote_ids) if rid}
    if local.uid in linked:
        refs.add(linked[local.uid])
    return refs


def split_by_list(
    local_todos: list[LocalTodo],
    tasklist_id: str,
    remote_tasks: list[RemoteTask],
    records: dict[str, SyncRecord],
) -> tuple[list[LocalTodo], list[LocalTodo]]:
    """Separate the todos of this task list from those linked to another one.

    X-GOOGLE-TASK-LIST decides when present.  Without it, a todo belongs here
    when it has a sync record in this list, points at a task in the fetched
    set, or points at no Google Task at all.  A todo pointing only at tasks
    this list does not know is left to the list it came from.
    """
    remote_ids = {t.id for t in remote_tasks if t.id}
    recorded_ids = set(records)
    linked = {record.local_uid: record.remote_id for record in records.values()}
    here: list[LocalTodo] = []
    elsewhere: list[LocalTodo] = []
    for local in local_todos:
        if local.remote_list:
            belongs = local.remote_list == tasklist_id
        else:
            refs = _references(local, remote_ids, linked)
            belongs = (
                not refs
                or local.uid in linked
                or bool(refs & remote_ids)
                or bool(refs & recorded_ids)
            )
        (here if belongs else elsewhere).append(local)
    if elsewhere:
        _logger.debug(f"Leaving {len(elsewhere)} todo(s) of other task lists alone")
    return here, elsewhere


def filter_scope(
    remote_tasks: list[RemoteTask],
    local_todos: list[LocalTodo],
    task_ids: tuple[str, ...] | list[str],
    records: dict[str, SyncRecord] | None = None,
) -> tuple[list[RemoteTask], list[LocalTodo]]:
    """Restrict both sets to the tasks named in task_ids and their counterparts.

    A name selects a remote task by ID and a local todo by UID, by the
    Google ID encoded in its UID, or by its X-GOOGLE-TASK-ID.  A selected
    todo brings in the task it points at (directly or through its sync
    record), and a selected task brings in every todo claiming it.  An
    empty selection keeps everything.
    """
    if not task_ids:
        return remote_tasks, local_todos
    wanted = set(task_ids)
    remote_ids = {t.id for t in remote_tasks if t.id}
    linked = {record.local_uid: record.remote_id for record in (records or {}).values()}

    refs = [_references(local, remote_ids, linked) for local in local_todos]
    selected_ids = set(wanted)
    for local, local_refs in zip(local_todos, refs):
        if local.uid in wanted or local_refs & wanted:
            selected_ids |= local_refs

    remote = [t for t in remote_tasks if t.id in selected_ids]
    local = [
        t
        for t, local_refs in zip(local_todos, refs)
        if t.uid in wanted or local_refs & selected_ids
    ]
    _logger.debug(
        f"Scope limited to {len(wanted)} task ID(s): {len(remote)} remote, {len(local)} local"
    )
    return remote, local
