"""
Unit tests for the reconciliation engine.

Every input record must land in exactly one place: a matched pair, one of
the unmatched lists, or an excluding problem entry.
"""

from collections import Counter
from dataclasses import replace

from gtasks_ical_sync.mapping import local_to_unified
from gtasks_ical_sync.mapping import remote_to_unified
from gtasks_ical_sync.models import Authority
from gtasks_ical_sync.models import DecodeIssue
from gtasks_ical_sync.models import ProblemKind
from gtasks_ical_sync.models import SyncRecord
from gtasks_ical_sync.sync.reconcile import reconcile
from gtasks_ical_sync.sync.utils import compute_hash
from tests.conftest import TASKLIST_ID
from tests.conftest import make_local_todo
from tests.conftest import make_remote_task
from tests.conftest import utc

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _placements(result, remote_tasks, local_todos) -> Counter:
    """How many buckets each input record (by identity) ended up in."""
    seen = Counter()
    for pair in result.matched:
        seen[id(pair.remote)] += 1
        seen[id(pair.local)] += 1
    for remote in result.unmatched_remote:
        seen[id(remote)] += 1
    for local in result.unmatched_local:
        seen[id(local)] += 1
    for problem in result.blocking_problems:
        if problem.remote is not None:
            seen[id(problem.remote)] += 1
        if problem.local is not None:
            seen[id(problem.local)] += 1
    return seen


def _assert_exactly_once(result, remote_tasks, local_todos):
    seen = _placements(result, remote_tasks, local_todos)
    for record in [*remote_tasks, *local_todos]:
        assert seen[id(record)] >= 1, f"{record} was dropped"
    # A record may appear in several problem entries, but never in a bucket
    # and a problem at the same time.
    bucketed = Counter()
    for pair in result.matched:
        bucketed[id(pair.remote)] += 1
        bucketed[id(pair.local)] += 1
    for record in [*result.unmatched_remote, *result.unmatched_local]:
        bucketed[id(record)] += 1
    problem_ids = {
        id(r) for p in result.blocking_problems for r in (p.remote, p.local) if r is not None
    }
    for record in [*remote_tasks, *local_todos]:
        assert bucketed[id(record)] <= 1
        assert not (bucketed[id(record)] and id(record) in problem_ids)


def _classification(result):
    return (
        sorted((p.remote.id, p.local.uid, p.authority.value) for p in result.matched),
        sorted(t.id for t in result.unmatched_remote),
        sorted(t.uid for t in result.unmatched_local),
        sorted((p.identifier, p.kind.value) for p in result.problems),
    )


def _kinds(result):
    return Counter(p.kind for p in result.problems)


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def test_disjoint_sets_are_all_unmatched():
    remote = [make_remote_task("r1"), make_remote_task("r2")]
    local = [make_local_todo("local-a"), make_local_todo("local-b")]
    result = reconcile(remote, local)
    assert result.matched == []
    assert result.unmatched_remote == remote
    assert result.unmatched_local == local
    assert result.problems == []


def test_uid_equal_to_remote_id_matches_once():
    remote = [make_remote_task("r1"), make_remote_task("r2")]
    local = [make_local_todo("r1")]
    result = reconcile(remote, local)
    assert [(p.remote.id, p.local.uid) for p in result.matched] == [("r1", "r1")]
    assert result.unmatched_remote == [remote[1]]
    assert result.unmatched_local == []
    _assert_exactly_once(result, remote, local)


def test_buy_milk_scenario():
    remote = [make_remote_task("r1", "Buy milk", updated=utc(2012, 10, 1, 10, 0))]
    local = [make_local_todo("r1@google.com", "Buy milk", last_modified=utc(2012, 10, 1, 9, 0))]
    result = reconcile(remote, local)
    assert len(result.matched) == 1
    pair = result.matched[0]
    assert pair.authority is Authority.REMOTE
    assert pair.unified.title == "Buy milk"
    assert result.unified_tasks == [pair.unified]


def test_local_only_todo_is_unmatched_local():
    local = [make_local_todo("local-abc")]
    result = reconcile([make_remote_task("r9")], local)
    assert result.unmatched_local == local
    assert result.matched == []
    assert result.problems == []


def test_todo_pointing_at_missing_remote_is_unmatched_local():
    local = [make_local_todo("gone@google.com"), make_local_todo("local-x", remote_id="gone2")]
    result = reconcile([], local)
    assert result.unmatched_local == local


def test_extension_property_matches():
    remote = [make_remote_task("gt-1")]
    local = [make_local_todo("local-a", remote_id="gt-1")]
    result = reconcile(remote, local)
    assert [(p.remote.id, p.local.uid) for p in result.matched] == [("gt-1", "local-a")]


def test_reconcile_is_idempotent_and_order_independent():
    remote = [make_remote_task(f"r{i}") for i in range(5)]
    local = [
        make_local_todo("r0@google.com"),
        make_local_todo("r1"),
        make_local_todo("local-a", remote_id="r2"),
        make_local_todo("local-b"),
        make_local_todo("r3@google.com", remote_id="r4"),
    ]
    first = reconcile(remote, local)
    second = reconcile(remote, local)
    reversed_ = reconcile(list(reversed(remote)), list(reversed(local)))
    assert _classification(first) == _classification(second)
    assert _classification(first) == _classification(reversed_)
    _assert_exactly_once(first, remote, local)


def test_output_order_follows_inputs():
    remote = [make_remote_task("r3"), make_remote_task("r1"), make_remote_task("r2")]
    local = [make_local_todo("r2@google.com"), make_local_todo("local-z"), make_local_todo("r3")]
    result = reconcile(remote, local)
    assert [p.remote.id for p in result.matched] == ["r2", "r3"]
    assert [t.id for t in result.unmatched_remote] == ["r1"]


# ---------------------------------------------------------------------------
# Problems
# ---------------------------------------------------------------------------


def test_identity_conflict_excludes_todo_and_both_remotes():
    remote = [make_remote_task("r1"), make_remote_task("r2")]
    local = [make_local_todo("r1@google.com", remote_id="r2")]
    result = reconcile(remote, local)
    assert result.matched == []
    assert result.unmatched_remote == []
    assert result.unmatched_local == []
    assert _kinds(result) == Counter({ProblemKind.IDENTITY_CONFLICT: 3})
    _assert_exactly_once(result, remote, local)


def test_two_todos_claiming_one_remote():
    remote = [make_remote_task("r1"), make_remote_task("r2")]
    local = [make_local_todo("r1@google.com"), make_local_todo("local-a", remote_id="r1")]
    result = reconcile(remote, local)
    assert result.matched == []
    assert result.unmatched_remote == [remote[1]]
    identifiers = {p.identifier for p in result.problems}
    assert identifiers == {"r1@google.com", "local-a", "r1"}
    assert all(p.kind is ProblemKind.IDENTITY_CONFLICT for p in result.problems)
    _assert_exactly_once(result, remote, local)


def test_duplicate_remote_ids():
    remote = [make_remote_task("r1", "a"), make_remote_task("r1", "b"), make_remote_task("r2")]
    local = [make_local_todo("r1@google.com")]
    result = reconcile(remote, local)
    assert result.matched == []
    assert result.unmatched_remote == [remote[2]]
    assert _kinds(result) == Counter({ProblemKind.DUPLICATE_ID: 3})
    _assert_exactly_once(result, remote, local)


def test_duplicate_local_uids_flag_the_remote():
    remote = [make_remote_task("r1")]
    local = [make_local_todo("r1@google.com", "a"), make_local_todo("r1@google.com", "b")]
    result = reconcile(remote, local)
    assert result.matched == []
    assert result.unmatched_remote == []
    assert _kinds(result) == Counter(
        {ProblemKind.DUPLICATE_ID: 2, ProblemKind.IDENTITY_CONFLICT: 1}
    )
    _assert_exactly_once(result, remote, local)


def test_remote_without_id():
    remote = [make_remote_task("", "Nameless")]
    result = reconcile(remote, [])
    assert result.unmatched_remote == []
    assert [(p.identifier, p.kind) for p in result.problems] == [
        ("Nameless", ProblemKind.MISSING_ID)
    ]


def test_decode_issues_do_not_exclude_records():
    issue = DecodeIssue(field="due", value="yesterday", message="bad timestamp")
    remote = [make_remote_task("r1", decode_issues=(issue,))]
    local = [make_local_todo("local-a", decode_issues=[issue])]
    result = reconcile(remote, local)
    assert result.unmatched_remote == remote
    assert result.unmatched_local == local
    assert _kinds(result) == Counter({ProblemKind.DECODE_ERROR: 2})
    assert result.blocking_problems == []
    assert "yesterday" in result.problems[0].reason


def test_merge_conflict_is_reported_not_resolved():
    remote = make_remote_task("r1", "Buy milk", updated=utc(2026, 3, 1, 10, 0))
    local = make_local_todo("r1@google.com", "Buy milk")
    record = SyncRecord(
        tasklist_id=TASKLIST_ID,
        remote_id="r1",
        local_uid=local.uid,
        remote_updated=remote.updated,
        remote_hash=compute_hash(remote_to_unified(remote)),
        local_hash=compute_hash(local_to_unified(local)),
        origin="remote",
    )
    remote = replace(remote, title="Remote edit", updated=utc(2026, 3, 2, 8, 0))
    local = replace(local, summary="Local edit", last_modified=utc(2026, 3, 2, 9, 0))

    result = reconcile([remote], [local], {"r1": record})

    assert result.matched == []
    assert result.unmatched_remote == []
    assert result.unmatched_local == []
    (problem,) = result.problems
    assert problem.kind is ProblemKind.MERGE_CONFLICT
    assert problem.remote is remote
    assert problem.local is local
    assert problem.remote_updated == utc(2026, 3, 2, 8, 0)
    assert problem.local_modified == utc(2026, 3, 2, 9, 0)


def test_prefer_forces_authority():
    remote = [make_remote_task("r1", updated=utc(2020, 1, 1))]
    local = [make_local_todo("r1@google.com", last_modified=utc(2030, 1, 1))]
    result = reconcile(remote, local, prefer=Authority.REMOTE)
    assert result.matched[0].authority is Authority.REMOTE
