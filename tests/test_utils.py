"""
Unit tests for sync/utils.py and rfc3339.py.
"""

from dataclasses import replace
from datetime import timedelta
from datetime import timezone

import pytest

from gtasks_ical_sync.mapping import local_to_unified
from gtasks_ical_sync.mapping import remote_to_unified
from gtasks_ical_sync.rfc3339 import format_rfc3339
from gtasks_ical_sync.rfc3339 import parse_rfc3339
from gtasks_ical_sync.sync.utils import compute_hash
from gtasks_ical_sync.sync.utils import filter_scope
from gtasks_ical_sync.sync.utils import split_by_list
from gtasks_ical_sync.models import SyncRecord
from tests.conftest import TASKLIST_ID
from tests.conftest import make_local_todo
from tests.conftest import make_remote_task
from tests.conftest import utc


class TestRfc3339:
    def test_parse_zulu_with_millis(self):
        assert parse_rfc3339("2012-10-01T10:00:00.000Z") == utc(2012, 10, 1, 10, 0)

    def test_parse_offset(self):
        value = parse_rfc3339("2012-10-01T12:00:00+02:00")
        assert value.astimezone(timezone.utc) == utc(2012, 10, 1, 10, 0)

    def test_parse_naive_is_utc(self):
        assert parse_rfc3339("2012-10-01T10:00:00").tzinfo == timezone.utc

    def test_parse_garbage_raises(self):
        with pytest.raises(ValueError):
            parse_rfc3339("next tuesday")

    def test_format(self):
        assert format_rfc3339(utc(2012, 10, 1, 10, 0)) == "2012-10-01T10:00:00.000Z"

    def test_format_converts_to_utc(self):
        value = utc(2012, 10, 1, 10, 0).astimezone(timezone(timedelta(hours=2)))
        assert format_rfc3339(value) == "2012-10-01T10:00:00.000Z"


class TestComputeHash:
    def test_same_content_from_both_sides_hashes_equal(self):
        remote = make_remote_task("r1", "Buy milk", notes="2 litres", due=utc(2026, 3, 5))
        local = make_local_todo(
            "r1@google.com", "Buy milk", description="2 litres", due=utc(2026, 3, 5)
        )
        assert compute_hash(remote_to_unified(remote)) == compute_hash(local_to_unified(local))

    def test_bookkeeping_does_not_count(self):
        local = make_local_todo("x", "Title")
        other = replace(local, last_modified=utc(2030, 1, 1), url="https://elsewhere")
        other.extras = replace(local.extras, sequence=9)
        assert compute_hash(local_to_unified(local)) == compute_hash(local_to_unified(other))

    def test_synced_fields_count(self):
        local = make_local_todo("x", "Title")
        assert compute_hash(local_to_unified(local)) != compute_hash(
            local_to_unified(replace(local, summary="Other"))
        )

    def test_subsecond_precision_is_ignored(self):
        # iCalendar cannot store Google's milliseconds.
        a = make_remote_task("r1", due=utc(2026, 3, 5, 10, 0, 0))
        b = replace(a, due=a.due.replace(microsecond=123000))
        assert compute_hash(remote_to_unified(a)) == compute_hash(remote_to_unified(b))

    def test_empty_notes_equal_missing_notes(self):
        a = make_remote_task("r1", notes="")
        b = make_remote_task("r1", notes=None)
        assert compute_hash(remote_to_unified(a)) == compute_hash(remote_to_unified(b))


class TestFilterScope:
    def test_empty_selection_keeps_everything(self):
        remote = [make_remote_task("r1")]
        local = [make_local_todo("a")]
        assert filter_scope(remote, local, ()) == (remote, local)

    def test_selection_by_id_uid_and_extension(self):
        remote = [make_remote_task("r1"), make_remote_task("r2"), make_remote_task("r3")]
        local = [
            make_local_todo("r1@google.com"),
            make_local_todo("local-a", remote_id="r2"),
            make_local_todo("local-b"),
            make_local_todo("r3@google.com"),
        ]
        kept_remote, kept_local = filter_scope(remote, local, ("r1", "r2", "local-b"))
        assert [t.id for t in kept_remote] == ["r1", "r2"]
        assert [t.uid for t in kept_local] == ["r1@google.com", "local-a", "local-b"]

    def test_selected_todo_brings_in_its_task(self):
        remote = [make_remote_task("r1"), make_remote_task("gt-1")]
        local = [make_local_todo("r1@google.com"), make_local_todo("local-1", remote_id="gt-1")]

        kept_remote, kept_local = filter_scope(remote, local, ("local-1",))
        assert [t.id for t in kept_remote] == ["gt-1"]
        assert [t.uid for t in kept_local] == ["local-1"]

        kept_remote, kept_local = filter_scope(remote, local, ("r1@google.com",))
        assert [t.id for t in kept_remote] == ["r1"]
        assert [t.uid for t in kept_local] == ["r1@google.com"]

    def test_selected_todo_brings_in_the_task_of_its_record(self):
        remote = [make_remote_task("gt-1"), make_remote_task("r2")]
        local = [make_local_todo("local-1")]
        records = {"gt-1": _record("gt-1", "local-1")}

        kept_remote, kept_local = filter_scope(remote, local, ("local-1",), records)
        assert [t.id for t in kept_remote] == ["gt-1"]
        assert [t.uid for t in kept_local] == ["local-1"]

    def test_selected_task_brings_in_every_claimant(self):
        remote = [make_remote_task("r1"), make_remote_task("r2")]
        local = [
            make_local_todo("r1@google.com"),
            make_local_todo("copy", remote_id="r1"),
            make_local_todo("r2@google.com"),
        ]
        kept_remote, kept_local = filter_scope(remote, local, ("r1",))
        assert [t.id for t in kept_remote] == ["r1"]
        assert [t.uid for t in kept_local] == ["r1@google.com", "copy"]


def _record(remote_id, local_uid, tasklist_id=TASKLIST_ID):
    return SyncRecord(
        tasklist_id=tasklist_id,
        remote_id=remote_id,
        local_uid=local_uid,
        remote_updated=None,
        remote_hash="rh",
        local_hash="lh",
        origin="local",
    )


class TestSplitByList:
    def _uids(self, todos):
        return [t.uid for t in todos]

    def test_list_property_decides(self):
        local = [
            make_local_todo("a@google.com", remote_list=TASKLIST_ID),
            make_local_todo("b@google.com", remote_list="work-list"),
            make_local_todo("c", remote_id="x", remote_list="work-list"),
        ]
        here, elsewhere = split_by_list(local, TASKLIST_ID, [make_remote_task("b")], {})
        assert self._uids(here) == ["a@google.com"]
        assert self._uids(elsewhere) == ["b@google.com", "c"]

    def test_unlinked_todo_belongs_to_any_list(self):
        here, elsewhere = split_by_list([make_local_todo("new")], TASKLIST_ID, [], {})
        assert self._uids(here) == ["new"]
        assert elsewhere == []

    def test_unstamped_todo_follows_fetched_tasks_and_records(self):
        local = [
            make_local_todo("r1@google.com"),
            make_local_todo("local-1", remote_id="gone"),
            make_local_todo("local-2"),
            make_local_todo("w1@google.com"),
        ]
        records = {"gone": _record("gone", "local-1"), "r9": _record("r9", "local-2")}
        here, elsewhere = split_by_list(local, TASKLIST_ID, [make_remote_task("r1")], records)
        assert self._uids(here) == ["r1@google.com", "local-1", "local-2"]
        assert self._uids(elsewhere) == ["w1@google.com"]
