"""
Bidirectional sync.
"""

from gtasks_ical_sync.db import StateDatabase
from gtasks_ical_sync.gtasks_client import GoogleTasksClient
from gtasks_ical_sync.models import Authority
from gtasks_ical_sync.models import ReconcileResult
from gtasks_ical_sync.models import SyncConfig
from gtasks_ical_sync.models import SyncRecord
from gtasks_ical_sync.models import SyncStats
from gtasks_ical_sync.sync.actions import LocalWorkingSet
from gtasks_ical_sync.sync.actions import apply_to_local
from gtasks_ical_sync.sync.actions import apply_to_remote
from gtasks_ical_sync.sync.actions import create_local
from gtasks_ical_sync.sync.actions import create_remote
from gtasks_ical_sync.sync.actions import delete_local
from gtasks_ical_sync.sync.actions import delete_remote
from gtasks_ical_sync.sync.actions import points_at_remote
from gtasks_ical_sync.sync.actions import record_pair
from gtasks_ical_sync.sync.actions import records_by_uid
from gtasks_ical_sync.sync.actions import report_problems


def run_two_way(
    config: SyncConfig,
    stats: SyncStats,
    logger,
    client: GoogleTasksClient,
    local_set: LocalWorkingSet,
    state_db: StateDatabase,
    result: ReconcileResult,
    records: dict[str, SyncRecord],
):
    """Apply a reconciliation result to both sides."""
    report_problems(stats, logger, result.problems)
    by_uid = records_by_uid(records)

    logger.info(
        f"Processing {len(result.matched)} matched pair(s), "
        f"{len(result.unmatched_remote)} remote-only, "
        f"{len(result.unmatched_local)} local-only task(s)..."
    )

    # Phase 1: matched pairs, the winner's values flow to the other side
    for pair in result.matched:
        if pair.authority is Authority.REMOTE:
            apply_to_local(config, stats, logger, pair, local_set, state_db)
        elif pair.authority is Authority.LOCAL:
            apply_to_remote(config, stats, logger, client, pair, local_set, state_db)
        else:
            stats.unchanged += 1
            if not config.dry_run:
                previous = records.get(pair.remote.id)
                origin = previous.origin if previous else "remote"
                record_pair(state_db, pair.remote, pair.local, origin)

    # Phase 2: Google Tasks without a todo; a record means the todo was deleted
    for remote in result.unmatched_remote:
        if remote.id in records:
            delete_remote(config, stats, logger, client, remote, state_db)
        else:
            create_local(config, stats, logger, remote, local_set, state_db)

    # Phase 3: todos without a Google Task; a link means the task was deleted
    for local in result.unmatched_local:
        record = by_uid.get(local.uid) if local.uid else None
        if points_at_remote(local, record):
            delete_local(
                config,
                stats,
                logger,
                local,
                local_set,
                state_db,
                remote_id=record.remote_id if record else None,
            )
        else:
            create_remote(config, stats, logger, client, local, local_set, state_db)
