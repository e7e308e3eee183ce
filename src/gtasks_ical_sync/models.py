"""
Pure data models; no network, sqlite or libical imports.
"""

from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from enum import Enum
from pathlib import Path

DEFAULT_STATE_DB = Path.home() / ".local/share/gtasks-ical-sync-state.db"
DEFAULT_CONFIG = Path.home() / ".config/gtasks-ical-sync.conf"
SYSTEM_CONFIG = Path("/etc/gtasks-ical-sync.conf")
DEFAULT_CLIENT_SECRETS = Path.home() / ".config/gtasks-ical-sync/credentials.json"
DEFAULT_TOKEN_FILE = Path.home() / ".config/gtasks-ical-sync/token.json"

# Suffix appended to a Google Task ID when it becomes a local UID, marking
# where the identifier came from.
GOOGLE_UID_SUFFIX = "@google.com"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class TaskSyncError(Exception):
    """Base exception for task sync errors."""

    pass


class ConfigError(TaskSyncError):
    """Configuration files or options are invalid or incomplete."""


class CredentialsError(TaskSyncError):
    """Google rejected the credentials, or none are available."""


class ConnectivityError(TaskSyncError):
    """The Google Tasks service could not be reached at all."""


class RemoteFetchError(TaskSyncError):
    """A read from Google Tasks failed after all retries."""


class RemoteWriteError(TaskSyncError):
    """An insert/update/delete against Google Tasks failed."""


class LocalStoreError(TaskSyncError):
    """An iCalendar file could not be read or written."""


class MergeConflict(TaskSyncError):
    """Both sides of a matched pair changed since the last sync."""

    def __init__(
        self,
        identifier: str,
        remote_updated: datetime | None,
        local_modified: datetime | None,
        last_synced: datetime | None,
    ):
        self.identifier = identifier
        self.remote_updated = remote_updated
        self.local_modified = local_modified
        self.last_synced = last_synced
        super().__init__(
            f"{identifier}: both sides changed since last sync "
            f"(remote updated {_fmt(remote_updated)}, local modified {_fmt(local_modified)}, "
            f"last synced {_fmt(last_synced)})"
        )


def _fmt(value: datetime | None) -> str:
    return value.isoformat() if value else "unknown"


# ---------------------------------------------------------------------------
# Shared vocabulary
# ---------------------------------------------------------------------------


class TaskStatus(str, Enum):
    NEEDS_ACTION = "needs-action"
    COMPLETED = "completed"
    IN_PROCESS = "in-process"
    CANCELLED = "cancelled"


class Provenance(str, Enum):
    """Where a UnifiedTask was synthesized from."""

    REMOTE = "remote"
    LOCAL = "local"
    MERGED = "merged"


class Authority(str, Enum):
    """Which side supplied the field values of a merged pair."""

    REMOTE = "remote"
    LOCAL = "local"
    IN_SYNC = "in-sync"


class ProblemKind(str, Enum):
    IDENTITY_CONFLICT = "identity-conflict"
    MERGE_CONFLICT = "merge-conflict"
    DUPLICATE_ID = "duplicate-id"
    MISSING_ID = "missing-id"
    DECODE_ERROR = "decode-error"


@dataclass(frozen=True)
class DecodeIssue:
    """A field value that could not be decoded and was treated as absent."""

    field: str
    value: str
    message: str


@dataclass(frozen=True)
class TaskLink:
    type: str | None = None
    description: str | None = None
    link: str | None = None


@dataclass(frozen=True)
class GeoLocation:
    latitude: float
    longitude: float


# ---------------------------------------------------------------------------
# Remote side (Google Tasks)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RemoteTaskList:
    id: str
    title: str
    updated: datetime | None = None
    self_link: str | None = None


@dataclass(frozen=True)
class RemoteTask:
    """A task as fetched from Google Tasks; read-only for the whole run."""

    id: str
    title: str = ""
    notes: str | None = None
    status: TaskStatus = TaskStatus.NEEDS_ACTION
    due: datetime | None = None
    completed: datetime | None = None
    updated: datetime | None = None
    parent: str | None = None
    position: str | None = None
    self_link: str | None = None
    etag: str | None = None
    deleted: bool = False
    hidden: bool = False
    links: tuple[TaskLink, ...] = ()
    decode_issues: tuple[DecodeIssue, ...] = ()


# ---------------------------------------------------------------------------
# Local side (iCalendar VTODO)
# ---------------------------------------------------------------------------


@dataclass
class LocalExtras:
    """VTODO properties with no Google Tasks counterpart.

    Multi-valued and structured properties are kept as their serialized
    iCalendar property lines so they are written back exactly as read.
    """

    created: datetime | None = None
    dtstamp: datetime | None = None
    dtstart: datetime | None = None
    sequence: int | None = None
    priority: int | None = None
    percent: int | None = None
    classification: str | None = None
    organizer: str | None = None
    location: str | None = None
    geo: GeoLocation | None = None
    duration: str | None = None
    recurrence_id: str | None = None
    categories: list[str] = field(default_factory=list)
    comments: list[str] = field(default_factory=list)
    contacts: list[str] = field(default_factory=list)
    resources: list[str] = field(default_factory=list)
    related_to: list[str] = field(default_factory=list)
    attendees: list[str] = field(default_factory=list)
    attachments: list[str] = field(default_factory=list)
    request_status: list[str] = field(default_factory=list)
    rrule: list[str] = field(default_factory=list)
    rdate: list[str] = field(default_factory=list)
    exdate: list[str] = field(default_factory=list)
    exrule: list[str] = field(default_factory=list)
    # Any other property line (unknown X- names, IANA extensions), verbatim.
    extra_properties: list[str] = field(default_factory=list)


@dataclass
class LocalTodo:
    """A VTODO read from a local iCalendar file."""

    uid: str | None
    summary: str = ""
    description: str | None = None
    status: TaskStatus | None = None
    due: datetime | None = None
    completed: datetime | None = None
    last_modified: datetime | None = None
    url: str | None = None
    # X-GOOGLE-TASK-* extension properties
    remote_id: str | None = None
    remote_list: str | None = None
    remote_url: str | None = None
    remote_parent: str | None = None
    remote_position: str | None = None
    remote_deleted: bool = False
    remote_hidden: bool = False
    remote_links: list[TaskLink] = field(default_factory=list)
    extras: LocalExtras = field(default_factory=LocalExtras)
    source_path: Path | None = None
    decode_issues: list[DecodeIssue] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Unified record and reconciliation results
# ---------------------------------------------------------------------------


@dataclass
class UnifiedTask:
    """Superset record combining the Google Task and VTODO schemas."""

    uid: str
    provenance: Provenance
    remote_id: str | None = None
    title: str = ""
    description: str | None = None
    status: TaskStatus = TaskStatus.NEEDS_ACTION
    due: datetime | None = None
    completed: datetime | None = None
    last_modified: datetime | None = None
    url: str | None = None
    remote_url: str | None = None
    parent: str | None = None
    position: str | None = None
    deleted: bool = False
    hidden: bool = False
    links: list[TaskLink] = field(default_factory=list)
    extras: LocalExtras = field(default_factory=LocalExtras)


@dataclass(frozen=True)
class SyncRecord:
    """State of one remote/local pair as of the last successful sync."""

    tasklist_id: str
    remote_id: str
    local_uid: str
    remote_updated: datetime | None
    remote_hash: str
    local_hash: str
    origin: str
    last_sync_at: datetime | None = None


@dataclass
class MatchedPair:
    remote: RemoteTask
    local: LocalTodo
    unified: UnifiedTask
    authority: Authority


@dataclass
class ProblemEntry:
    """A record the engine could not classify cleanly.

    Every kind except DECODE_ERROR removes the attached records from the
    matched and unmatched buckets.
    """

    identifier: str
    kind: ProblemKind
    reason: str
    remote: RemoteTask | None = None
    local: LocalTodo | None = None
    remote_updated: datetime | None = None
    local_modified: datetime | None = None

    @property
    def excludes_records(self) -> bool:
        return self.kind is not ProblemKind.DECODE_ERROR


@dataclass
class ReconcileResult:
    matched: list[MatchedPair] = field(default_factory=list)
    unmatched_remote: list[RemoteTask] = field(default_factory=list)
    unmatched_local: list[LocalTodo] = field(default_factory=list)
    problems: list[ProblemEntry] = field(default_factory=list)

    @property
    def unified_tasks(self) -> list[UnifiedTask]:
        return [pair.unified for pair in self.matched]

    @property
    def blocking_problems(self) -> list[ProblemEntry]:
        return [p for p in self.problems if p.excludes_records]


# ---------------------------------------------------------------------------
# Run configuration and statistics
# ---------------------------------------------------------------------------


@dataclass
class SyncConfig:
    """Configuration for one sync run."""

    local_path: Path
    state_db_path: Path
    client_secrets_file: Path = DEFAULT_CLIENT_SECRETS
    token_file: Path = DEFAULT_TOKEN_FILE
    listname: str | None = None
    sync_direction: str = "both"  # 'both', 'to-local', 'to-remote'
    task_ids: tuple[str, ...] = ()
    dry_run: bool = False
    verbose: bool = False
    ipv4_only: bool = False
    retries: int = 3
    timeout: int = 30


@dataclass
class SyncStats:
    """Statistics for sync operation."""

    local_created: int = 0
    local_updated: int = 0
    local_deleted: int = 0
    remote_created: int = 0
    remote_updated: int = 0
    remote_deleted: int = 0
    unchanged: int = 0
    problems: int = 0
    warnings: int = 0
    errors: int = 0
