"""
Shared pytest fixtures and task/todo builders.
"""

import logging
from datetime import datetime
from datetime import timezone

import pytest

from gtasks_ical_sync.db import StateDatabase
from gtasks_ical_sync.models import LocalTodo
from gtasks_ical_sync.models import RemoteTask
from gtasks_ical_sync.models import SyncConfig
from gtasks_ical_sync.models import SyncStats
from gtasks_ical_sync.models import TaskStatus

TASKLIST_ID = "tasklist-test"
T0 = datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def make_remote_task(task_id: str, title: str = "Remote Task", **kwargs) -> RemoteTask:
    """Return a RemoteTask as Google would hand it out."""
    kwargs.setdefault("updated", T0)
    kwargs.setdefault("status", TaskStatus.NEEDS_ACTION)
    return RemoteTask(id=task_id, title=title, **kwargs)


def make_local_todo(uid: str | None, summary: str = "Local Todo", **kwargs) -> LocalTodo:
    """Return a LocalTodo as the iCalendar store would hand it out."""
    kwargs.setdefault("last_modified", T0)
    kwargs.setdefault("status", TaskStatus.NEEDS_ACTION)
    return LocalTodo(uid=uid, summary=summary, **kwargs)


def make_vtodo(uid: str, summary: str = "Test Todo", extra: str = "") -> str:
    """Return a minimal VTODO iCal string (no VCALENDAR wrapper)."""
    return (
        f"BEGIN:VTODO\r\n"
        f"UID:{uid}\r\n"
        f"DTSTAMP:20260224T000000Z\r\n"
        f"SUMMARY:{summary}\r\n"
        f"{extra}"
        f"END:VTODO\r\n"
    )


def make_vcalendar(*components: str) -> str:
    return (
        "BEGIN:VCALENDAR\r\n"
        "VERSION:2.0\r\n"
        "PRODID:-//test//EN\r\n" + "".join(components) + "END:VCALENDAR\r\n"
    )


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "test_state.db"


@pytest.fixture
def state_db(db_path):
    with StateDatabase(db_path, TASKLIST_ID) as db:
        yield db


@pytest.fixture
def sync_config(tmp_path, db_path):
    return SyncConfig(
        local_path=tmp_path / "tasks.ics",
        state_db_path=db_path,
        client_secrets_file=tmp_path / "credentials.json",
        token_file=tmp_path / "token.json",
        dry_run=False,
        verbose=False,
    )


@pytest.fixture
def sync_logger():
    return logging.getLogger("test_sync")


@pytest.fixture
def sync_stats():
    return SyncStats()


@pytest.fixture
def isolated_config(tmp_path, monkeypatch):
    """Point the system and user config files at paths that do not exist."""
    monkeypatch.setattr("gtasks_ical_sync.config.SYSTEM_CONFIG", tmp_path / "etc.conf")
    monkeypatch.setattr("gtasks_ical_sync.config.DEFAULT_CONFIG", tmp_path / "user.conf")
    return tmp_path
