"""
Google Tasks API client: fetch task lists and tasks, push changes back.

Thin wrapper around the discovery-based ``tasks v1`` service.  Reads are
retried (``num_retries``); writes are not, since an insert that timed out
may still have been applied.
"""

import contextlib
import logging
import re
import socket
from pathlib import Path

import httplib2
from google.auth.exceptions import RefreshError
from google.auth.exceptions import TransportError
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from gtasks_ical_sync.auth import load_credentials
from gtasks_ical_sync.mapping import google_string_to_status
from gtasks_ical_sync.mapping import status_to_google_string
from gtasks_ical_sync.models import ConfigError
from gtasks_ical_sync.models import ConnectivityError
from gtasks_ical_sync.models import CredentialsError
from gtasks_ical_sync.models import DecodeIssue
from gtasks_ical_sync.models import RemoteFetchError
from gtasks_ical_sync.models import RemoteTask
from gtasks_ical_sync.models import RemoteTaskList
from gtasks_ical_sync.models import RemoteWriteError
from gtasks_ical_sync.models import TaskLink
from gtasks_ical_sync.models import TaskStatus
from gtasks_ical_sync.rfc3339 import format_rfc3339
from gtasks_ical_sync.rfc3339 import parse_rfc3339

DEFAULT_TASKLIST = "@default"
PAGE_SIZE = 100


# ---------------------------------------------------------------------------
# Wire format
# ---------------------------------------------------------------------------


def decode_remote_task(item: dict) -> RemoteTask:
    """Build a RemoteTask from a Tasks API resource.

    Undecodable values are dropped and recorded as decode issues.
    """
    issues: list[DecodeIssue] = []

    def timestamp(name: str):
        value = item.get(name)
        if not value:
            return None
        try:
            return parse_rfc3339(value)
        except ValueError as e:
            issues.append(DecodeIssue(field=name, value=str(value), message=str(e)))
            return None

    status = google_string_to_status(item.get("status"))
    if status is None:
        if item.get("status"):
            issues.append(
                DecodeIssue(field="status", value=str(item["status"]), message="unknown status")
            )
        status = TaskStatus.COMPLETED if item.get("completed") else TaskStatus.NEEDS_ACTION

    links = tuple(
        TaskLink(type=link.get("type"), description=link.get("description"), link=link.get("link"))
        for link in item.get("links") or ()
    )
    return RemoteTask(
        id=item.get("id") or "",
        title=item.get("title") or "",
        notes=item.get("notes"),
        status=status,
        due=timestamp("due"),
        completed=timestamp("completed"),
        updated=timestamp("updated"),
        parent=item.get("parent"),
        position=item.get("position"),
        self_link=item.get("selfLink"),
        etag=item.get("etag"),
        deleted=bool(item.get("deleted", False)),
        hidden=bool(item.get("hidden", False)),
        links=links,
        decode_issues=tuple(issues),
    )


def encode_remote_task(task: RemoteTask) -> dict:
    """Request body for insert/update.  Server-owned fields are left out."""
    status = status_to_google_string(task.status)
    body = {
        "title": task.title,
        "notes": task.notes,
        "status": status,
        "due": format_rfc3339(task.due) if task.due else None,
        # Google rejects a completion time on an open task.
        "completed": (
            format_rfc3339(task.completed) if task.completed and status == "completed" else None
        ),
    }
    if task.id:
        body["id"] = task.id
    if task.links:
        body["links"] = [
            {"type": link.type, "description": link.description, "link": link.link}
            for link in task.links
        ]
    return body


def decode_task_list(item: dict) -> RemoteTaskList:
    updated = item.get("updated")
    try:
        updated = parse_rfc3339(updated) if updated else None
    except ValueError:
        updated = None
    return RemoteTaskList(
        id=item.get("id") or "",
        title=item.get("title") or "",
        updated=updated,
        self_link=item.get("selfLink"),
    )


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------


@contextlib.contextmanager
def ipv4_only(enabled: bool = True):
    """Restrict name resolution to IPv4 for the duration of the block.

    This swaps ``socket.getaddrinfo`` for the whole process, so it is not
    thread-safe: other threads resolving names meanwhile get IPv4 only too.
    """
    if not enabled:
        yield
        return
    original = socket.getaddrinfo

    def getaddrinfo_v4(host, port, family=0, *args, **kwargs):
        return original(host, port, socket.AF_INET, *args, **kwargs)

    socket.getaddrinfo = getaddrinfo_v4
    try:
        yield
    finally:
        socket.getaddrinfo = original


def _is_credentials_status(e: HttpError) -> bool:
    return getattr(e.resp, "status", None) in (401, 403)


def _classify(e: Exception, what: str, write: bool = False) -> Exception:
    """Map a transport/API exception onto the sync error hierarchy."""
    if isinstance(e, RefreshError):
        return CredentialsError(f"{what}: credentials rejected: {e}")
    if isinstance(e, HttpError):
        if _is_credentials_status(e):
            return CredentialsError(f"{what}: access denied ({e.resp.status}): {e}")
        cls = RemoteWriteError if write else RemoteFetchError
        return cls(f"{what}: {e}")
    if isinstance(e, (httplib2.HttpLib2Error, TransportError, OSError)):
        return ConnectivityError(f"{what}: cannot reach Google Tasks: {e}")
    return e


class GoogleTasksClient:
    """Google Tasks operations on top of a ``tasks v1`` service object."""

    def __init__(self, service, retries: int = 3):
        self.service = service
        self.retries = retries
        self.logger = logging.getLogger(__name__)

    @classmethod
    def connect(
        cls,
        client_secrets_file: Path,
        token_file: Path,
        retries: int = 3,
        timeout: int = 30,
        interactive: bool = True,
    ) -> "GoogleTasksClient":
        """Authorize and build the API service."""
        creds = load_credentials(client_secrets_file, token_file, interactive=interactive)
        http = AuthorizedHttp(creds, http=httplib2.Http(timeout=timeout))
        try:
            service = build("tasks", "v1", http=http, cache_discovery=False)
        except (HttpError, RefreshError, TransportError, httplib2.HttpLib2Error, OSError) as e:
            raise _classify(e, "Building Google Tasks service") from e
        return cls(service, retries=retries)

    def _execute(self, request, what: str, write: bool = False):
        try:
            if write:
                return request.execute()
            return request.execute(num_retries=self.retries)
        except (HttpError, RefreshError, TransportError, httplib2.HttpLib2Error, OSError) as e:
            raise _classify(e, what, write=write) from e

    # ------------------------------------------------------------------ #
    # Task lists                                                          #
    # ------------------------------------------------------------------ #

    def fetch_remote_lists(self) -> list[RemoteTaskList]:
        """All task lists of the account, across pages."""
        lists: list[RemoteTaskList] = []
        page_token = None
        while True:
            request = self.service.tasklists().list(maxResults=PAGE_SIZE, pageToken=page_token)
            response = self._execute(request, "Listing task lists")
            lists.extend(decode_task_list(item) for item in response.get("items", []))
            page_token = response.get("nextPageToken")
            if not page_token:
                break
        self.logger.debug(f"Found {len(lists)} task list(s)")
        return lists

    def find_task_list(self, pattern: str | None) -> RemoteTaskList:
        """Select the task list whose title matches ``pattern``.

        No pattern selects the default list.  Raises ConfigError when the
        pattern is invalid or does not select exactly one list.
        """
        if not pattern:
            response = self._execute(
                self.service.tasklists().get(tasklist=DEFAULT_TASKLIST), "Fetching default list"
            )
            return decode_task_list(response)
        try:
            regex = re.compile(pattern, re.IGNORECASE)
        except re.error as e:
            raise ConfigError(f"Invalid task list pattern {pattern!r}: {e}") from e
        matches = [tl for tl in self.fetch_remote_lists() if regex.search(tl.title)]
        if not matches:
            raise ConfigError(f"No task list matches {pattern!r}")
        if len(matches) > 1:
            titles = ", ".join(repr(tl.title) for tl in matches)
            raise ConfigError(f"Task list pattern {pattern!r} is ambiguous: {titles}")
        return matches[0]

    # ------------------------------------------------------------------ #
    # Tasks                                                               #
    # ------------------------------------------------------------------ #

    def fetch_remote_tasks(
        self, tasklist_id: str, page_token: str | None = None
    ) -> tuple[list[RemoteTask], str | None]:
        """One page of tasks, including completed, hidden and deleted ones.

        Returns (tasks, next_page_token).
        """
        request = self.service.tasks().list(
            tasklist=tasklist_id,
            maxResults=PAGE_SIZE,
            pageToken=page_token,
            showCompleted=True,
            showDeleted=True,
            showHidden=True,
        )
        response = self._execute(request, f"Fetching tasks of {tasklist_id}")
        tasks = [decode_remote_task(item) for item in response.get("items", [])]
        return tasks, response.get("nextPageToken")

    def fetch_all_remote_tasks(self, tasklist_id: str) -> list[RemoteTask]:
        """The complete task set of a list.

        Any failed page aborts the fetch; a partial set is never returned,
        since missing tasks would read as deletions.
        """
        tasks: list[RemoteTask] = []
        page_token = None
        pages = 0
        while True:
            page, page_token = self.fetch_remote_tasks(tasklist_id, page_token)
            tasks.extend(page)
            pages += 1
            if not page_token:
                break
        self.logger.debug(f"Fetched {len(tasks)} task(s) in {pages} page(s)")
        return tasks

    def push_remote_task(self, tasklist_id: str, task: RemoteTask) -> RemoteTask:
        """Insert a task without an ID, update one with an ID.

        For an existing task whose parent changed, the task is moved too.
        Returns the task as stored by Google.
        """
        body = encode_remote_task(task)
        tasks = self.service.tasks()
        if not task.id:
            kwargs = {"tasklist": tasklist_id, "body": body}
            if task.parent:
                kwargs["parent"] = task.parent
            response = self._execute(tasks.insert(**kwargs), "Creating task", write=True)
            return decode_remote_task(response)

        response = self._execute(
            tasks.update(tasklist=tasklist_id, task=task.id, body=body),
            f"Updating task {task.id}",
            write=True,
        )
        stored = decode_remote_task(response)
        if stored.parent != task.parent:
            kwargs = {"tasklist": tasklist_id, "task": task.id}
            if task.parent:
                kwargs["parent"] = task.parent
            response = self._execute(tasks.move(**kwargs), f"Moving task {task.id}", write=True)
            stored = decode_remote_task(response)
        return stored

    def delete_remote_task(self, tasklist_id: str, task_id: str) -> None:
        self._execute(
            self.service.tasks().delete(tasklist=tasklist_id, task=task_id),
            f"Deleting task {task_id}",
            write=True,
        )
