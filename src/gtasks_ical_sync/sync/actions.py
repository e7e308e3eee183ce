"""
Write actions shared by the two-way and one-way sync runs.

Every action honours ``config.dry_run``, updates the run statistics and
records the resulting pair state.  A failed remote write is logged and
counted; it does not abort the run.
"""

import copy
from datetime import datetime
from datetime import timezone

from gtasks_ical_sync.db import StateDatabase
from gtasks_ical_sync.gtasks_client import GoogleTasksClient
from gtasks_ical_sync.mapping import is_remote_origin
from gtasks_ical_sync.mapping import local_to_unified
from gtasks_ical_sync.mapping import remote_to_unified
from gtasks_ical_sync.mapping import unified_to_local
from gtasks_ical_sync.mapping import unified_to_remote
from gtasks_ical_sync.models import Authority
from gtasks_ical_sync.models import LocalTodo
from gtasks_ical_sync.models import MatchedPair
from gtasks_ical_sync.models import ProblemEntry
from gtasks_ical_sync.models import RemoteTask
from gtasks_ical_sync.models import RemoteWriteError
from gtasks_ical_sync.models import SyncConfig
from gtasks_ical_sync.models import SyncRecord
from gtasks_ical_sync.models import SyncStats
from gtasks_ical_sync.sync.resolver import resolve
from gtasks_ical_sync.sync.utils import compute_hash


class LocalWorkingSet:
    """The local todos as they will be saved at the end of the run."""

    def __init__(self, todos: list[LocalTodo]):
        self.todos = list(todos)
        self.removed: list[LocalTodo] = []
        self.changed = False

    def _index(self, todo: LocalTodo) -> int:
        for i, existing in enumerate(self.todos):
            if existing is todo:
                return i
        raise ValueError(f"todo {todo.uid} is not in the working set")

    def add(self, todo: LocalTodo) -> None:
        self.todos.append(todo)
        self.changed = True

    def replace(self, old: LocalTodo, new: LocalTodo) -> None:
        self.todos[self._index(old)] = new
        self.changed = True

    def remove(self, todo: LocalTodo) -> None:
        del self.todos[self._index(todo)]
        self.removed.append(todo)
        self.changed = True


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def _label(title: str | None, ident: str | None) -> str:
    return f"'{title or '(untitled)'}' ({ident or 'no id'})"


def records_by_uid(records: dict[str, SyncRecord]) -> dict[str, SyncRecord]:
    return {record.local_uid: record for record in records.values()}


def record_pair(state_db: StateDatabase, remote: RemoteTask, local: LocalTodo, origin: str):
    """Store both sides as they are now, for the next run's change detection."""
    state_db.upsert(
        remote_id=remote.id,
        local_uid=local.uid,
        remote_updated=remote.updated,
        remote_hash=compute_hash(remote_to_unified(remote)),
        local_hash=compute_hash(local_to_unified(local)),
        origin=origin,
    )


def points_at_remote(local: LocalTodo, record: SyncRecord | None) -> bool:
    """True when the todo was linked to a Google Task that no longer exists."""
    return record is not None or is_remote_origin(local.uid)


# ---------------------------------------------------------------------------
# Problems
# ---------------------------------------------------------------------------


def report_problems(stats: SyncStats, logger, problems: list[ProblemEntry]):
    """Log every problem; decode problems are warnings, the rest block the record."""
    for problem in problems:
        message = f"[{problem.kind.value}] {problem.identifier}: {problem.reason}"
        if problem.excludes_records:
            logger.error(f"Skipped {message}")
            stats.problems += 1
        else:
            logger.warning(message)
            stats.warnings += 1


# ---------------------------------------------------------------------------
# Local side
# ---------------------------------------------------------------------------


def _content_changed(old: LocalTodo, new: LocalTodo) -> bool:
    candidate = copy.copy(new)
    candidate.extras = copy.copy(new.extras)
    candidate.extras.sequence = old.extras.sequence
    candidate.extras.dtstamp = old.extras.dtstamp
    candidate.remote_list = old.remote_list
    candidate.decode_issues = old.decode_issues
    return candidate != old


def _touch(old: LocalTodo, new: LocalTodo, tasklist_id: str) -> None:
    new.extras.sequence = (old.extras.sequence or 0) + 1
    new.extras.dtstamp = _now()
    new.remote_list = tasklist_id


def apply_to_local(
    config: SyncConfig,
    stats: SyncStats,
    logger,
    pair: MatchedPair,
    local_set: LocalWorkingSet,
    state_db: StateDatabase,
) -> None:
    """Rewrite the local todo from the unified record (remote won)."""
    remote, local = pair.remote, pair.local
    if remote.deleted:
        delete_local(config, stats, logger, local, local_set, state_db, remote_id=remote.id)
        return

    updated = unified_to_local(pair.unified, base=local)
    if not _content_changed(local, updated):
        stats.unchanged += 1
        if not config.dry_run:
            record_pair(state_db, remote, local, "remote")
        return

    if config.dry_run:
        logger.info(f"[DRY RUN] [REMOTE→LOCAL] Would UPDATE: {_label(updated.summary, local.uid)}")
        stats.local_updated += 1
        return

    _touch(local, updated, state_db.tasklist_id)
    local_set.replace(local, updated)
    record_pair(state_db, remote, updated, "remote")
    stats.local_updated += 1
    logger.debug(f"Updated local {local.uid} from remote {remote.id}")


def create_local(
    config: SyncConfig,
    stats: SyncStats,
    logger,
    remote: RemoteTask,
    local_set: LocalWorkingSet,
    state_db: StateDatabase,
) -> None:
    """Create a todo for a Google Task that has no local counterpart."""
    if remote.deleted:
        logger.debug(f"Skipping deleted remote task {remote.id}")
        return

    if config.dry_run:
        logger.info(f"[DRY RUN] [REMOTE→LOCAL] Would CREATE: {_label(remote.title, remote.id)}")
        stats.local_created += 1
        return

    todo = unified_to_local(remote_to_unified(remote))
    now = _now()
    todo.extras.dtstamp = now
    todo.extras.created = now
    todo.extras.sequence = 1
    todo.remote_list = state_db.tasklist_id
    local_set.add(todo)
    record_pair(state_db, remote, todo, "remote")
    stats.local_created += 1
    logger.debug(f"Created local {todo.uid} from remote {remote.id}")


def delete_local(
    config: SyncConfig,
    stats: SyncStats,
    logger,
    local: LocalTodo,
    local_set: LocalWorkingSet,
    state_db: StateDatabase,
    remote_id: str | None = None,
) -> None:
    """Remove a todo whose Google Task was deleted."""
    if config.dry_run:
        logger.info(f"[DRY RUN] [REMOTE→LOCAL] Would DELETE: {_label(local.summary, local.uid)}")
        stats.local_deleted += 1
        return

    local_set.remove(local)
    if remote_id:
        state_db.delete_by_remote_id(remote_id)
    if local.uid:
        state_db.delete_by_local_uid(local.uid)
    stats.local_deleted += 1
    logger.debug(f"Deleted local {local.uid}")


# ---------------------------------------------------------------------------
# Remote side
# ---------------------------------------------------------------------------


def _park_remote_fields(
    local: LocalTodo, stored: RemoteTask, local_set: LocalWorkingSet, tasklist_id: str
) -> LocalTodo:
    """Copy the Google-owned bookkeeping (ID, list, link, position) onto the todo."""
    refreshed = resolve(local, stored, None, prefer=Authority.LOCAL).unified
    updated = unified_to_local(refreshed, base=local)
    if _content_changed(local, updated) or local.remote_list != tasklist_id:
        _touch(local, updated, tasklist_id)
        local_set.replace(local, updated)
        return updated
    return local


def apply_to_remote(
    config: SyncConfig,
    stats: SyncStats,
    logger,
    client: GoogleTasksClient,
    pair: MatchedPair,
    local_set: LocalWorkingSet,
    state_db: StateDatabase,
    write_local: bool = True,
) -> None:
    """Push the unified record to Google (local won)."""
    remote, local = pair.remote, pair.local
    if remote.deleted:
        if write_local:
            delete_local(config, stats, logger, local, local_set, state_db, remote_id=remote.id)
        else:
            logger.warning(
                f"Remote task {remote.id} is deleted; "
                f"not re-creating {_label(local.summary, local.uid)}"
            )
            stats.warnings += 1
        return

    if compute_hash(pair.unified) == compute_hash(remote_to_unified(remote)):
        stats.unchanged += 1
        if not config.dry_run:
            record_pair(state_db, remote, local, "local")
        return

    if config.dry_run:
        logger.info(f"[DRY RUN] [LOCAL→REMOTE] Would UPDATE: {_label(pair.unified.title, remote.id)}")
        stats.remote_updated += 1
        return

    try:
        stored = client.push_remote_task(state_db.tasklist_id, unified_to_remote(pair.unified))
    except RemoteWriteError as e:
        logger.error(f"Failed to update remote {remote.id}: {e}")
        stats.errors += 1
        return

    if write_local:
        local = _park_remote_fields(local, stored, local_set, state_db.tasklist_id)
    record_pair(state_db, stored, local, "local")
    stats.remote_updated += 1
    logger.debug(f"Updated remote {remote.id} from local {local.uid}")


def create_remote(
    config: SyncConfig,
    stats: SyncStats,
    logger,
    client: GoogleTasksClient,
    local: LocalTodo,
    local_set: LocalWorkingSet,
    state_db: StateDatabase,
) -> None:
    """Insert a Google Task for a todo and park the assigned ID in the todo."""
    if is_remote_origin(local.uid):
        # The UID carries the old ID and never changes, so a new task could
        # not be linked back to this todo.
        logger.warning(
            f"Not re-creating {_label(local.summary, local.uid)}: "
            f"its Google Task no longer exists"
        )
        stats.warnings += 1
        return

    if config.dry_run:
        logger.info(f"[DRY RUN] [LOCAL→REMOTE] Would CREATE: {_label(local.summary, local.uid)}")
        stats.remote_created += 1
        return

    unified = local_to_unified(local)
    unified.remote_id = None
    try:
        stored = client.push_remote_task(state_db.tasklist_id, unified_to_remote(unified))
    except RemoteWriteError as e:
        logger.error(f"Failed to create remote task from {local.uid}: {e}")
        stats.errors += 1
        return

    local = _park_remote_fields(local, stored, local_set, state_db.tasklist_id)
    record_pair(state_db, stored, local, "local")
    stats.remote_created += 1
    logger.debug(f"Created remote {stored.id} from local {local.uid}")


def delete_remote(
    config: SyncConfig,
    stats: SyncStats,
    logger,
    client: GoogleTasksClient,
    remote: RemoteTask,
    state_db: StateDatabase,
) -> None:
    """Delete a Google Task whose todo was deleted locally."""
    if remote.deleted:
        # Already gone on Google's side.
        if not config.dry_run:
            state_db.delete_by_remote_id(remote.id)
        return

    if config.dry_run:
        logger.info(f"[DRY RUN] [LOCAL→REMOTE] Would DELETE: {_label(remote.title, remote.id)}")
        stats.remote_deleted += 1
        return

    try:
        client.delete_remote_task(state_db.tasklist_id, remote.id)
    except RemoteWriteError as e:
        logger.error(f"Failed to delete remote {remote.id}: {e}")
        stats.errors += 1
        return

    state_db.delete_by_remote_id(remote.id)
    stats.remote_deleted += 1
    logger.debug(f"Deleted remote {remote.id}")


def prune_stale_records(
    config: SyncConfig,
    logger,
    state_db: StateDatabase,
    records: dict[str, SyncRecord],
    remote_tasks: list[RemoteTask],
    local_todos: list[LocalTodo],
) -> None:
    """Drop records whose remote and local are both gone."""
    if config.dry_run:
        return
    remote_ids = {t.id for t in remote_tasks}
    local_uids = {t.uid for t in local_todos}
    for remote_id, record in records.items():
        if remote_id not in remote_ids and record.local_uid not in local_uids:
            logger.debug(f"Dropping stale sync record {remote_id} <-> {record.local_uid}")
            state_db.delete_by_remote_id(remote_id)
