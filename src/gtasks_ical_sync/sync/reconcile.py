"""
Reconciliation engine: classify every Google Task and every local todo.

Pure and side-effect free.  Each input record ends up in exactly one place:
a matched pair, ``unmatched_remote``, ``unmatched_local``, or a problem
entry that excludes it.  Decode problems are reported alongside and do not
take the record out of its bucket.

Classification depends only on the identifiers in the two sets.  Output
order follows the local set for matched/unmatched_local and the remote set
for unmatched_remote.
"""

import logging
from collections import Counter
from collections.abc import Iterable
from collections.abc import Mapping

from gtasks_ical_sync.models import Authority
from gtasks_ical_sync.models import LocalTodo
from gtasks_ical_sync.models import MergeConflict
from gtasks_ical_sync.models import ProblemEntry
from gtasks_ical_sync.models import ProblemKind
from gtasks_ical_sync.models import ReconcileResult
from gtasks_ical_sync.models import RemoteTask
from gtasks_ical_sync.models import SyncRecord
from gtasks_ical_sync.sync.matcher import IdentityMatcher
from gtasks_ical_sync.sync.matcher import identify
from gtasks_ical_sync.sync.resolver import resolve

_logger = logging.getLogger(__name__)


def _decode_problems(identifier: str, issues, remote=None, local=None) -> list[ProblemEntry]:
    return [
        ProblemEntry(
            identifier=identifier,
            kind=ProblemKind.DECODE_ERROR,
            reason=f"{issue.field}: {issue.message} ({issue.value!r})",
            remote=remote,
            local=local,
        )
        for issue in issues
    ]


def _local_key(local: LocalTodo) -> str:
    return local.uid or local.remote_id or "(no UID)"


def reconcile(
    remote_tasks: Iterable[RemoteTask],
    local_todos: Iterable[LocalTodo],
    sync_records: Mapping[str, SyncRecord] | None = None,
    prefer: Authority | None = None,
) -> ReconcileResult:
    """Classify both sets into matched / unmatched / problem buckets.

    ``sync_records`` maps Google Task IDs to the state of the last sync and
    feeds the merge policy.  ``prefer`` forces the authoritative side for
    one-way runs.
    """
    remote_tasks = list(remote_tasks)
    local_todos = list(local_todos)
    sync_records = sync_records or {}
    result = ReconcileResult()

    # Remote lookup keyed by ID.  An ID seen more than once is ambiguous and
    # every task carrying it is reported rather than picking one.
    remote_counts = Counter(t.id for t in remote_tasks if t.id)
    duplicate_remote_ids = {rid for rid, n in remote_counts.items() if n > 1}
    remote_index = {t.id: t for t in remote_tasks if t.id and t.id not in duplicate_remote_ids}
    known_remote_ids = set(remote_counts)

    local_counts = Counter(t.uid for t in local_todos if t.uid)
    duplicate_uids = {uid for uid, n in local_counts.items() if n > 1}
    if duplicate_remote_ids or duplicate_uids:
        _logger.warning(
            f"Duplicate identifiers: {len(duplicate_remote_ids)} remote, "
            f"{len(duplicate_uids)} local"
        )

    matcher = IdentityMatcher(
        (t for t in local_todos if t.uid not in duplicate_uids), known_remote_ids
    )

    claimed: set[str] = set()
    flagged: dict[str, str] = {}

    for local in local_todos:
        key = _local_key(local)
        result.problems.extend(_decode_problems(key, local.decode_issues, local=local))

        if local.uid in duplicate_uids:
            identity = identify(local, known_remote_ids)
            for rid in (identity.remote_id, *identity.conflict):
                if rid in known_remote_ids:
                    flagged.setdefault(rid, f"referenced by duplicate UID {local.uid}")
            result.problems.append(
                ProblemEntry(
                    identifier=key,
                    kind=ProblemKind.DUPLICATE_ID,
                    reason=f"UID appears {local_counts[local.uid]} times in the local set",
                    local=local,
                )
            )
            continue

        identity = matcher.identity_of(local)
        if identity.conflict:
            uid_ref, ext_ref = identity.conflict
            for rid in identity.conflict:
                if rid in known_remote_ids:
                    flagged.setdefault(rid, f"referenced by conflicting todo {key}")
            result.problems.append(
                ProblemEntry(
                    identifier=key,
                    kind=ProblemKind.IDENTITY_CONFLICT,
                    reason=f"UID refers to {uid_ref} but X-GOOGLE-TASK-ID is {ext_ref}",
                    local=local,
                )
            )
            continue

        rid = identity.remote_id
        if rid is None or rid not in known_remote_ids:
            result.unmatched_local.append(local)
            continue

        if rid in duplicate_remote_ids:
            result.problems.append(
                ProblemEntry(
                    identifier=key,
                    kind=ProblemKind.DUPLICATE_ID,
                    reason=f"refers to remote ID {rid}, which appears "
                    f"{remote_counts[rid]} times in the remote set",
                    local=local,
                )
            )
            continue

        claimants = matcher.claimants(rid)
        if len(claimants) > 1:
            flagged.setdefault(rid, f"claimed by {len(claimants)} local todos")
            result.problems.append(
                ProblemEntry(
                    identifier=key,
                    kind=ProblemKind.IDENTITY_CONFLICT,
                    reason=f"remote ID {rid} is claimed by {len(claimants)} local todos",
                    local=local,
                )
            )
            continue

        remote = remote_index[rid]
        claimed.add(rid)
        try:
            pair = resolve(local, remote, sync_records.get(rid), prefer=prefer)
        except MergeConflict as e:
            result.problems.append(
                ProblemEntry(
                    identifier=key,
                    kind=ProblemKind.MERGE_CONFLICT,
                    reason=str(e),
                    remote=remote,
                    local=local,
                    remote_updated=e.remote_updated,
                    local_modified=e.local_modified,
                )
            )
            continue
        result.matched.append(pair)

    for remote in remote_tasks:
        result.problems.extend(
            _decode_problems(remote.id or "(no ID)", remote.decode_issues, remote=remote)
        )
        if not remote.id:
            result.problems.append(
                ProblemEntry(
                    identifier=remote.title or "(untitled)",
                    kind=ProblemKind.MISSING_ID,
                    reason="remote task has no ID",
                    remote=remote,
                )
            )
            continue
        if remote.id in duplicate_remote_ids:
            result.problems.append(
                ProblemEntry(
                    identifier=remote.id,
                    kind=ProblemKind.DUPLICATE_ID,
                    reason=f"ID appears {remote_counts[remote.id]} times in the remote set",
                    remote=remote,
                )
            )
            continue
        if remote.id in claimed:
            continue
        if remote.id in flagged:
            result.problems.append(
                ProblemEntry(
                    identifier=remote.id,
                    kind=ProblemKind.IDENTITY_CONFLICT,
                    reason=flagged[remote.id],
                    remote=remote,
                )
            )
            continue
        result.unmatched_remote.append(remote)

    _logger.debug(
        f"Reconciled: {len(result.matched)} matched, "
        f"{len(result.unmatched_remote)} remote-only, "
        f"{len(result.unmatched_local)} local-only, "
        f"{len(result.problems)} problem(s)"
    )
    return result
