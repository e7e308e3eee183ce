"""
One-way sync: Google Tasks → local iCalendar (download).
"""

from gtasks_ical_sync.db import StateDatabase
from gtasks_ical_sync.models import ReconcileResult
from gtasks_ical_sync.models import SyncConfig
from gtasks_ical_sync.models import SyncRecord
from gtasks_ical_sync.models import SyncStats
from gtasks_ical_sync.sync.actions import LocalWorkingSet
from gtasks_ical_sync.sync.actions import apply_to_local
from gtasks_ical_sync.sync.actions import create_local
from gtasks_ical_sync.sync.actions import delete_local
from gtasks_ical_sync.sync.actions import points_at_remote
from gtasks_ical_sync.sync.actions import records_by_uid
from gtasks_ical_sync.sync.actions import report_problems


def run_one_way_to_local(
    config: SyncConfig,
    stats: SyncStats,
    logger,
    local_set: LocalWorkingSet,
    state_db: StateDatabase,
    result: ReconcileResult,
    records: dict[str, SyncRecord],
):
    """Make the local side match Google; Google is never written."""
    report_problems(stats, logger, result.problems)
    by_uid = records_by_uid(records)

    logger.info(
        f"Downloading: {len(result.matched)} matched, "
        f"{len(result.unmatched_remote)} new, "
        f"{len(result.unmatched_local)} local-only task(s)..."
    )

    for pair in result.matched:
        apply_to_local(config, stats, logger, pair, local_set, state_db)

    # A todo deleted locally comes back: Google is authoritative here.
    for remote in result.unmatched_remote:
        create_local(config, stats, logger, remote, local_set, state_db)

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
            logger.debug(f"Leaving local-only todo {local.uid} alone (download only)")
