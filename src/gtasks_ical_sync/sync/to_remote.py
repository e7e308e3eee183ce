"""
One-way sync: local iCalendar → Google Tasks (upload).
"""

from gtasks_ical_sync.db import StateDatabase
from gtasks_ical_sync.gtasks_client import GoogleTasksClient
from gtasks_ical_sync.models import ReconcileResult
from gtasks_ical_sync.models import SyncConfig
from gtasks_ical_sync.models import SyncRecord
from gtasks_ical_sync.models import SyncStats
from gtasks_ical_sync.sync.actions import LocalWorkingSet
from gtasks_ical_sync.sync.actions import apply_to_remote
from gtasks_ical_sync.sync.actions import create_remote
from gtasks_ical_sync.sync.actions import delete_remote
from gtasks_ical_sync.sync.actions import records_by_uid
from gtasks_ical_sync.sync.actions import report_problems


def run_one_way_to_remote(
    config: SyncConfig,
    stats: SyncStats,
    logger,
    client: GoogleTasksClient,
    local_set: LocalWorkingSet,
    state_db: StateDatabase,
    result: ReconcileResult,
    records: dict[str, SyncRecord],
):
    """Make Google match the local side.

    Local field values are never changed; only the X-GOOGLE-TASK-ID of a
    newly inserted task is stored so the pair stays linked.
    """
    report_problems(stats, logger, result.problems)
    by_uid = records_by_uid(records)

    logger.info(
        f"Uploading: {len(result.matched)} matched, "
        f"{len(result.unmatched_local)} new, "
        f"{len(result.unmatched_remote)} remote-only task(s)..."
    )

    for pair in result.matched:
        apply_to_remote(
            config, stats, logger, client, pair, local_set, state_db, write_local=False
        )

    for local in result.unmatched_local:
        record = by_uid.get(local.uid) if local.uid else None
        if record is not None:
            logger.info(
                f"Google Task {record.remote_id} of {local.uid} was deleted; re-creating it"
            )
        create_remote(config, stats, logger, client, local, local_set, state_db)

    for remote in result.unmatched_remote:
        if remote.id in records:
            delete_remote(config, stats, logger, client, remote, state_db)
        else:
            logger.debug(f"Leaving remote-only task {remote.id} alone (upload only)")
