"""
Merge policy for a matched Google Task / local todo pair.

Which side is authoritative is decided against the state recorded at the
last successful sync of the pair, not against file modification times:

- remote changed, local unchanged  -> remote wins
- local changed, remote unchanged  -> local wins
- neither changed                  -> in sync (local values kept)
- both changed                     -> MergeConflict, nothing is guessed

With no record (first contact) the newer of the remote ``updated`` and the
local LAST-MODIFIED wins; a todo without LAST-MODIFIED loses.
"""

import logging
from dataclasses import replace

from gtasks_ical_sync.mapping import is_remote_origin
from gtasks_ical_sync.mapping import local_to_unified
from gtasks_ical_sync.mapping import remote_to_unified
from gtasks_ical_sync.models import Authority
from gtasks_ical_sync.models import LocalTodo
from gtasks_ical_sync.models import MatchedPair
from gtasks_ical_sync.models import MergeConflict
from gtasks_ical_sync.models import Provenance
from gtasks_ical_sync.models import RemoteTask
from gtasks_ical_sync.models import SyncRecord
from gtasks_ical_sync.models import UnifiedTask
from gtasks_ical_sync.sync.utils import SYNCED_FIELDS
from gtasks_ical_sync.sync.utils import compute_hash

_logger = logging.getLogger(__name__)


def changes_since(
    local: LocalTodo, remote: RemoteTask, last_sync: SyncRecord
) -> tuple[bool, bool]:
    """Return (remote_changed, local_changed) relative to last_sync."""
    if remote.updated is not None and last_sync.remote_updated is not None:
        remote_changed = remote.updated > last_sync.remote_updated
    else:
        remote_changed = compute_hash(remote_to_unified(remote)) != last_sync.remote_hash
    local_changed = compute_hash(local_to_unified(local)) != last_sync.local_hash
    return remote_changed, local_changed


def _first_contact_authority(local: LocalTodo, remote: RemoteTask) -> Authority:
    if local.last_modified is None:
        return Authority.REMOTE
    if remote.updated is None:
        return Authority.LOCAL
    if local.last_modified > remote.updated:
        return Authority.LOCAL
    return Authority.REMOTE


def decide_authority(
    local: LocalTodo, remote: RemoteTask, last_sync: SyncRecord | None
) -> Authority:
    """Pick the authoritative side, raising MergeConflict on concurrent edits."""
    if last_sync is None:
        return _first_contact_authority(local, remote)

    remote_changed, local_changed = changes_since(local, remote, last_sync)
    if remote_changed and local_changed:
        raise MergeConflict(
            local.uid or remote.id,
            remote_updated=remote.updated,
            local_modified=local.last_modified,
            last_synced=last_sync.last_sync_at,
        )
    if remote_changed:
        return Authority.REMOTE
    if local_changed:
        return Authority.LOCAL
    return Authority.IN_SYNC


def merge(local: LocalTodo, remote: RemoteTask, authority: Authority) -> UnifiedTask:
    """Build the unified record for a pair once the authority is known.

    The synced fields come from the winner.  The Google ID, self link,
    position, flags and links are owned by Google and always come from the
    remote; the local-only properties always come from the todo.  The UID
    of an existing todo never changes.
    """
    local_view = local_to_unified(local)
    remote_view = remote_to_unified(remote)
    winner = remote_view if authority is Authority.REMOTE else local_view

    synced = {name: getattr(winner, name) for name in SYNCED_FIELDS}
    if is_remote_origin(local.uid):
        url, remote_url = remote.self_link, None
    else:
        url, remote_url = local.url, remote.self_link

    return replace(
        local_view,
        provenance=Provenance.MERGED,
        remote_id=remote.id,
        last_modified=winner.last_modified,
        url=url,
        remote_url=remote_url,
        position=remote.position,
        deleted=remote.deleted,
        hidden=remote.hidden,
        links=list(remote.links),
        **synced,
    )


def resolve(
    local: LocalTodo,
    remote: RemoteTask,
    last_sync: SyncRecord | None = None,
    prefer: Authority | None = None,
) -> MatchedPair:
    """Merge a matched pair into one UnifiedTask.

    ``prefer`` forces one side (download-only / upload-only runs) and skips
    conflict detection.  Raises MergeConflict when both sides changed.
    """
    authority = prefer if prefer is not None else decide_authority(local, remote, last_sync)
    unified = merge(local, remote, authority)
    _logger.debug(f"Resolved {unified.uid} <-> {remote.id}: {authority.value}")
    return MatchedPair(remote=remote, local=local, unified=unified, authority=authority)
