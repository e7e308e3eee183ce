"""
Field mapping between Google Tasks, iCalendar VTODOs and the unified record.

The fields are mapped as follows (fields marked with an asterisk may occur
more than once):

    Google Task          VTODO / UnifiedTask
    -----------------    -----------------------------------------------
    id                   uid, or X-GOOGLE-TASK-ID when the todo came first
    title                summary
    notes                description
    status               status
    due                  due
    completed            completed
    updated              last-modified
    selfLink             url, or X-GOOGLE-TASK-URL when the todo came first
    parent               related-to / X-GOOGLE-TASK-PARENT
    position             X-GOOGLE-TASK-POSITION
    deleted              X-GOOGLE-TASK-DELETED
    hidden               X-GOOGLE-TASK-HIDDEN
    links.type*          X-GOOGLE-TASK-LINKTYPES*
    links.description*   X-GOOGLE-TASK-LINKDESCRIPTIONS*
    links.link*          X-GOOGLE-TASK-LINKS*

A Google Task ID cannot be chosen by the client, so a todo created locally
keeps its own UID and parks the ID in X-GOOGLE-TASK-ID once it is known.
A todo created from a Google Task gets the UID ``<id>@google.com``.
Once linked, a todo records the ID of its task list in X-GOOGLE-TASK-LIST,
so one calendar can be synced against several lists.

Every VTODO property without a Google counterpart lives in LocalExtras and
is copied through untouched.
"""

import copy

from gtasks_ical_sync.models import GOOGLE_UID_SUFFIX
from gtasks_ical_sync.models import LocalExtras
from gtasks_ical_sync.models import LocalTodo
from gtasks_ical_sync.models import Provenance
from gtasks_ical_sync.models import RemoteTask
from gtasks_ical_sync.models import TaskStatus
from gtasks_ical_sync.models import UnifiedTask

_GOOGLE_STATUS = {
    "needsAction": TaskStatus.NEEDS_ACTION,
    "completed": TaskStatus.COMPLETED,
}

# Google only knows two states.  In-process work is still open; a cancelled
# todo is finished as far as the task list is concerned.
_STATUS_TO_GOOGLE = {
    TaskStatus.NEEDS_ACTION: "needsAction",
    TaskStatus.IN_PROCESS: "needsAction",
    TaskStatus.COMPLETED: "completed",
    TaskStatus.CANCELLED: "completed",
}


def google_string_to_status(value: str | None) -> TaskStatus | None:
    """Return the status for a Google status string, or None if unknown."""
    return _GOOGLE_STATUS.get(value or "")


def status_to_google_string(status: TaskStatus) -> str:
    return _STATUS_TO_GOOGLE[status]


def remote_id_from_uid(uid: str | None) -> str | None:
    """Return the Google Task ID encoded in a remote-origin UID, else None."""
    if uid and uid.endswith(GOOGLE_UID_SUFFIX) and len(uid) > len(GOOGLE_UID_SUFFIX):
        return uid[: -len(GOOGLE_UID_SUFFIX)]
    return None


def synthesize_uid(remote_id: str) -> str:
    """UID for a todo created from a Google Task."""
    return f"{remote_id}{GOOGLE_UID_SUFFIX}"


def is_remote_origin(uid: str | None) -> bool:
    """True when the UID was synthesized from a Google Task ID."""
    return remote_id_from_uid(uid) is not None


def remote_to_unified(remote: RemoteTask) -> UnifiedTask:
    """Convert a Google Task into a unified record (synthesized-from-remote)."""
    return UnifiedTask(
        uid=synthesize_uid(remote.id),
        provenance=Provenance.REMOTE,
        remote_id=remote.id,
        title=remote.title,
        description=remote.notes,
        status=remote.status,
        due=remote.due,
        completed=remote.completed,
        last_modified=remote.updated,
        url=remote.self_link,
        remote_url=None,
        parent=remote.parent,
        position=remote.position,
        deleted=remote.deleted,
        hidden=remote.hidden,
        links=list(remote.links),
    )


def local_to_unified(local: LocalTodo) -> UnifiedTask:
    """Convert a VTODO into a unified record (synthesized-from-local).

    The remote correspondence is whatever the todo itself records: the ID
    inside a remote-origin UID, or X-GOOGLE-TASK-ID.
    """
    uid = local.uid or ""
    return UnifiedTask(
        uid=uid,
        provenance=Provenance.LOCAL,
        remote_id=local.remote_id or remote_id_from_uid(uid),
        title=local.summary,
        description=local.description,
        status=local.status or TaskStatus.NEEDS_ACTION,
        due=local.due,
        completed=local.completed,
        last_modified=local.last_modified,
        url=local.url,
        remote_url=local.remote_url,
        parent=local.remote_parent,
        position=local.remote_position,
        deleted=local.remote_deleted,
        hidden=local.remote_hidden,
        links=list(local.remote_links),
        extras=copy.deepcopy(local.extras),
    )


def unified_to_remote(task: UnifiedTask) -> RemoteTask:
    """Project a unified record back onto the Google Task schema."""
    if is_remote_origin(task.uid):
        self_link = task.url
    else:
        self_link = task.remote_url
    return RemoteTask(
        id=task.remote_id or "",
        title=task.title,
        notes=task.description,
        status=task.status,
        due=task.due,
        completed=task.completed,
        updated=task.last_modified,
        parent=task.parent,
        position=task.position,
        self_link=self_link,
        deleted=task.deleted,
        hidden=task.hidden,
        links=tuple(task.links),
    )


def unified_to_local(task: UnifiedTask, base: LocalTodo | None = None) -> LocalTodo:
    """Project a unified record onto a VTODO.

    ``base`` is the todo being replaced, if any; its file location is kept.
    A remote-origin UID carries the Google ID itself, so the X-GOOGLE-TASK-ID
    and X-GOOGLE-TASK-URL extensions are only written for local-origin UIDs.
    """
    remote_origin = is_remote_origin(task.uid)
    extras = copy.deepcopy(task.extras) if task.extras is not None else LocalExtras()
    if task.parent and task.parent not in extras.related_to:
        extras.related_to.insert(0, task.parent)
    if base is not None and base.remote_parent and base.remote_parent != task.parent:
        extras.related_to = [r for r in extras.related_to if r != base.remote_parent]
    return LocalTodo(
        uid=task.uid,
        summary=task.title,
        description=task.description,
        status=task.status,
        due=task.due,
        completed=task.completed,
        last_modified=task.last_modified,
        url=task.url,
        remote_id=None if remote_origin else task.remote_id,
        remote_list=base.remote_list if base is not None else None,
        remote_url=None if remote_origin else task.remote_url,
        remote_parent=task.parent,
        remote_position=task.position,
        remote_deleted=task.deleted,
        remote_hidden=task.hidden,
        remote_links=list(task.links),
        extras=extras,
        source_path=base.source_path if base is not None else None,
    )

