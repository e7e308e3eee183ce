"""
Unit tests for StateDatabase: record round trip, upsert semantics and the
per-task-list scoping.
"""

import time

from gtasks_ical_sync.db import StateDatabase
from gtasks_ical_sync.db import query_status_all_lists
from tests.conftest import TASKLIST_ID
from tests.conftest import utc


def _upsert(db, remote_id, local_uid, remote_hash="rh", local_hash="lh", origin="remote"):
    db.upsert(
        remote_id=remote_id,
        local_uid=local_uid,
        remote_updated=utc(2026, 3, 1, 10, 0),
        remote_hash=remote_hash,
        local_hash=local_hash,
        origin=origin,
    )


class TestRecords:
    def test_round_trip(self, state_db):
        _upsert(state_db, "r1", "r1@google.com")
        state_db.commit()

        record = state_db.get_all_records()["r1"]
        assert record.tasklist_id == TASKLIST_ID
        assert record.local_uid == "r1@google.com"
        assert record.remote_updated == utc(2026, 3, 1, 10, 0)
        assert record.remote_hash == "rh"
        assert record.local_hash == "lh"
        assert record.origin == "remote"
        assert record.last_sync_at is not None

    def test_missing_updated_stays_missing(self, state_db):
        state_db.upsert("r1", "u1", None, "rh", "lh", "local")
        assert state_db.get_all_records()["r1"].remote_updated is None

    def test_get_all_records_keyed_by_remote_id(self, state_db):
        _upsert(state_db, "r1", "u1")
        _upsert(state_db, "r2", "u2", origin="local")
        records = state_db.get_all_records()
        assert set(records) == {"r1", "r2"}
        assert records["r2"].origin == "local"

    def test_delete(self, state_db):
        _upsert(state_db, "r1", "u1")
        _upsert(state_db, "r2", "u2")
        state_db.delete_by_remote_id("r1")
        state_db.delete_by_local_uid("u2")
        assert state_db.get_all_records() == {}

    def test_records_are_scoped_to_the_task_list(self, db_path, state_db):
        _upsert(state_db, "r1", "u1")
        state_db.commit()
        with StateDatabase(db_path, "other-list") as other:
            assert other.get_all_records() == {}
            _upsert(other, "r1", "u1")
            other.delete_by_remote_id("r1")
            other.commit()
        assert set(state_db.get_all_records()) == {"r1"}

    def test_uncommitted_changes_are_discarded_on_close(self, db_path):
        with StateDatabase(db_path, TASKLIST_ID) as db:
            _upsert(db, "r1", "u1")
        with StateDatabase(db_path, TASKLIST_ID) as db:
            assert db.get_all_records() == {}


class TestUpsertSemantics:
    def test_upsert_on_conflict_updates_not_errors(self, state_db):
        _upsert(state_db, "r1", "u1", remote_hash="old")
        state_db.commit()
        _upsert(state_db, "r1", "u1", remote_hash="new")
        state_db.commit()

        records = state_db.get_all_records()
        assert len(records) == 1, "Expected exactly one row after upsert"
        assert records["r1"].remote_hash == "new"

    def test_relinking_a_uid_drops_the_stale_row(self, state_db):
        """A todo whose Google Task was re-created points at the new ID only."""
        _upsert(state_db, "r-old", "local-a")
        _upsert(state_db, "r-new", "local-a")
        state_db.commit()

        assert set(state_db.get_all_records()) == {"r-new"}
        assert state_db.get_all_records()["r-new"].local_uid == "local-a"

    def test_upsert_preserves_created_at(self, state_db):
        _upsert(state_db, "r1", "u1")
        state_db.commit()
        row = state_db.conn.execute("SELECT created_at, last_sync_at FROM sync_state").fetchone()
        original_created_at = row["created_at"]

        time.sleep(1.01)  # Ensure a different timestamp is possible

        _upsert(state_db, "r1", "u1", remote_hash="h2")
        state_db.commit()
        row = state_db.conn.execute("SELECT created_at, last_sync_at FROM sync_state").fetchone()
        assert row["created_at"] == original_created_at
        assert row["last_sync_at"] > original_created_at


class TestStatusQuery:
    def test_missing_database(self, tmp_path):
        assert query_status_all_lists(tmp_path / "nope.db") == []

    def test_empty_file_without_table(self, tmp_path):
        db_file = tmp_path / "empty.db"
        db_file.touch()
        assert query_status_all_lists(db_file) == []

    def test_counts_per_list_and_origin(self, db_path, state_db):
        _upsert(state_db, "r1", "u1", origin="remote")
        _upsert(state_db, "r2", "u2", origin="remote")
        _upsert(state_db, "r3", "u3", origin="local")
        state_db.commit()
        with StateDatabase(db_path, "another") as other:
            _upsert(other, "r1", "u1", origin="local")
            other.commit()

        rows = [
            (row["tasklist_id"], row["origin"], row["count"])
            for row in query_status_all_lists(db_path)
        ]
        assert rows == [
            ("another", "local", 1),
            (TASKLIST_ID, "local", 1),
            (TASKLIST_ID, "remote", 2),
        ]
