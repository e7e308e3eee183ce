"""
SQLite state persistence for task sync tracking.

One row per synced pair: the Google Task ID, the local UID, and the state
of both sides as of the last successful sync.  The merge policy compares
against these rows to tell which side changed.
"""

import logging
import sqlite3
import time
from datetime import datetime
from datetime import timezone
from pathlib import Path

from gtasks_ical_sync.models import SyncRecord
from gtasks_ical_sync.rfc3339 import format_rfc3339
from gtasks_ical_sync.rfc3339 import parse_rfc3339


def _row_to_record(row: sqlite3.Row) -> SyncRecord:
    remote_updated = parse_rfc3339(row["remote_updated"]) if row["remote_updated"] else None
    return SyncRecord(
        tasklist_id=row["tasklist_id"],
        remote_id=row["remote_id"],
        local_uid=row["local_uid"],
        remote_updated=remote_updated,
        remote_hash=row["remote_hash"],
        local_hash=row["local_hash"],
        origin=row["origin"],
        last_sync_at=datetime.fromtimestamp(row["last_sync_at"], tz=timezone.utc),
    )


class StateDatabase:
    """Manages SQLite state database for sync tracking."""

    def __init__(self, db_path: Path, tasklist_id: str):
        self.db_path = db_path
        self.tasklist_id = tasklist_id
        self.conn: sqlite3.Connection | None = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def connect(self):
        """Initialize and connect to the state database."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(self.db_path))
        self.conn.row_factory = sqlite3.Row  # Enable column access by name
        self._init_schema()

    def _init_schema(self):
        """Create the sync_state table if it doesn't exist."""
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS sync_state (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                tasklist_id TEXT NOT NULL,
                remote_id TEXT NOT NULL,
                local_uid TEXT NOT NULL,
                remote_updated TEXT,
                remote_hash TEXT NOT NULL,
                local_hash TEXT NOT NULL,
                origin TEXT NOT NULL,
                created_at INTEGER NOT NULL,
                last_sync_at INTEGER NOT NULL,
                UNIQUE(tasklist_id, remote_id),
                UNIQUE(tasklist_id, local_uid)
            )
        """)
        self.conn.commit()

    # ------------------------------------------------------------------ #
    # Query methods — all scoped to the current task list                 #
    # ------------------------------------------------------------------ #

    def get_all_records(self) -> dict[str, SyncRecord]:
        """All sync records for this task list, keyed by Google Task ID."""
        cursor = self.conn.execute(
            "SELECT * FROM sync_state WHERE tasklist_id = ?", (self.tasklist_id,)
        )
        return {row["remote_id"]: _row_to_record(row) for row in cursor.fetchall()}

    def upsert(
        self,
        remote_id: str,
        local_uid: str,
        remote_updated: datetime | None,
        remote_hash: str,
        local_hash: str,
        origin: str,
    ):
        """Record the state of a pair after it was synced.

        ``created_at`` survives updates.  A stale row that mapped the same
        local UID to another Google Task is dropped first.
        """
        timestamp = int(time.time())
        updated_text = format_rfc3339(remote_updated) if remote_updated else None
        self.conn.execute(
            "DELETE FROM sync_state WHERE tasklist_id = ? AND local_uid = ? AND remote_id != ?",
            (self.tasklist_id, local_uid, remote_id),
        )
        self.conn.execute(
            "INSERT INTO sync_state "
            "(tasklist_id, remote_id, local_uid, remote_updated, "
            " remote_hash, local_hash, origin, created_at, last_sync_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(tasklist_id, remote_id) DO UPDATE SET "
            " local_uid = excluded.local_uid, "
            " remote_updated = excluded.remote_updated, "
            " remote_hash = excluded.remote_hash, "
            " local_hash = excluded.local_hash, "
            " origin = excluded.origin, "
            " last_sync_at = excluded.last_sync_at",
            (
                self.tasklist_id,
                remote_id,
                local_uid,
                updated_text,
                remote_hash,
                local_hash,
                origin,
                timestamp,
                timestamp,
            ),
        )

    def delete_by_remote_id(self, remote_id: str):
        self.conn.execute(
            "DELETE FROM sync_state WHERE tasklist_id = ? AND remote_id = ?",
            (self.tasklist_id, remote_id),
        )

    def delete_by_local_uid(self, local_uid: str):
        self.conn.execute(
            "DELETE FROM sync_state WHERE tasklist_id = ? AND local_uid = ?",
            (self.tasklist_id, local_uid),
        )

    def commit(self):
        """Commit pending transactions."""
        if self.conn:
            self.conn.commit()

    def close(self):
        """Close the database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None


def query_status_all_lists(db_path: Path) -> list:
    """
    Return aggregate rows for every task list recorded in the database.

    Each row exposes: tasklist_id, origin, count, last_sync_at.
    Returns an empty list when the DB file does not exist or has no
    sync_state table yet.
    """
    if not db_path.exists():
        return []
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    try:
        columns = {row["name"] for row in conn.execute("PRAGMA table_info(sync_state)")}
        if "tasklist_id" not in columns:
            logging.getLogger(__name__).debug(f"No sync_state table in {db_path}")
            return []
        cursor = conn.execute("""
            SELECT
                tasklist_id,
                origin,
                COUNT(*)          AS count,
                MAX(last_sync_at) AS last_sync_at
            FROM sync_state
            GROUP BY tasklist_id, origin
            ORDER BY tasklist_id, origin
        """)
        return cursor.fetchall()
    finally:
        conn.close()
