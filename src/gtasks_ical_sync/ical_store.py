"""
Local iCalendar store: read and write VTODOs in a .ics file or directory.

Parsing and serialization go through libical (ICalGLib).  Values are
decoded into LocalTodo fields; properties without a Google counterpart are
kept in LocalExtras, structured ones as their property lines so they are
written back unchanged.
"""

import contextlib
import logging
import os
import re
import tempfile
from datetime import datetime
from datetime import timezone
from pathlib import Path
from zoneinfo import ZoneInfo
from zoneinfo import ZoneInfoNotFoundError

import gi

gi.require_version("ICalGLib", "3.0")
from gi.repository import ICalGLib

from gtasks_ical_sync.models import DecodeIssue
from gtasks_ical_sync.models import GeoLocation
from gtasks_ical_sync.models import LocalExtras
from gtasks_ical_sync.models import LocalStoreError
from gtasks_ical_sync.models import LocalTodo
from gtasks_ical_sync.models import TaskLink
from gtasks_ical_sync.models import TaskStatus

_logger = logging.getLogger(__name__)

PRODID = "-//gtasks-ical-sync//NONSGML Google Tasks sync//EN"

_ICAL_DATETIME = re.compile(r"(\d{4})(\d{2})(\d{2})(?:T(\d{2})(\d{2})(\d{2})(Z)?)?")

_STATUS = {
    "NEEDS-ACTION": TaskStatus.NEEDS_ACTION,
    "COMPLETED": TaskStatus.COMPLETED,
    "IN-PROCESS": TaskStatus.IN_PROCESS,
    "CANCELLED": TaskStatus.CANCELLED,
}

# Properties carried as their serialized line, one list entry per occurrence.
_RAW_LIST_PROPERTIES = {
    "ATTENDEE": "attendees",
    "ATTACH": "attachments",
    "REQUEST-STATUS": "request_status",
    "RRULE": "rrule",
    "RDATE": "rdate",
    "EXDATE": "exdate",
    "EXRULE": "exrule",
}

# Text properties that may repeat; the decoded text of each is kept.
_TEXT_LIST_PROPERTIES = {
    "COMMENT": ("comments", lambda p: p.get_comment()),
    "CONTACT": ("contacts", lambda p: p.get_contact()),
    "RELATED-TO": ("related_to", lambda p: p.get_relatedto()),
}

_DATETIME_PROPERTIES = {
    "DUE": "due",
    "COMPLETED": "completed",
    "LAST-MODIFIED": "last_modified",
    "CREATED": "created",
    "DTSTAMP": "dtstamp",
    "DTSTART": "dtstart",
}

X_TASK_ID = "X-GOOGLE-TASK-ID"
X_TASK_LIST = "X-GOOGLE-TASK-LIST"
X_TASK_URL = "X-GOOGLE-TASK-URL"
X_TASK_PARENT = "X-GOOGLE-TASK-PARENT"
X_TASK_POSITION = "X-GOOGLE-TASK-POSITION"
X_TASK_DELETED = "X-GOOGLE-TASK-DELETED"
X_TASK_HIDDEN = "X-GOOGLE-TASK-HIDDEN"
X_TASK_LINKTYPES = "X-GOOGLE-TASK-LINKTYPES"
X_TASK_LINKDESCRIPTIONS = "X-GOOGLE-TASK-LINKDESCRIPTIONS"
X_TASK_LINKS = "X-GOOGLE-TASK-LINKS"


# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------


def _unfold(line: str) -> str:
    return line.replace("\r\n ", "").replace("\n ", "").strip()


def parse_ical_datetime(value: str, tzid: str | None = None) -> datetime:
    """Decode a DATE or DATE-TIME value into an aware datetime.

    UTC and TZID-qualified values keep their instant; floating times and
    DATE values are taken as UTC.  Raises ValueError on anything else.
    """
    m = _ICAL_DATETIME.fullmatch(value.strip())
    if not m:
        raise ValueError(f"not an iCalendar date or date-time: {value!r}")
    year, month, day, hour, minute, second, utc = m.groups()
    tz = timezone.utc
    if hour is not None and not utc and tzid:
        try:
            tz = ZoneInfo(tzid.strip("/"))
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown TZID {tzid!r}") from e
    return datetime(
        int(year),
        int(month),
        int(day),
        int(hour or 0),
        int(minute or 0),
        int(second or 0),
        tzinfo=tz,
    )


def format_ical_datetime(value: datetime) -> str:
    """Format as a UTC DATE-TIME (``20121001T100000Z``)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def _is_midnight_utc(value: datetime) -> bool:
    utc = value.astimezone(timezone.utc) if value.tzinfo else value
    return (utc.hour, utc.minute, utc.second, utc.microsecond) == (0, 0, 0, 0)


def _tzid_of(prop) -> str | None:
    param = prop.get_first_parameter(ICalGLib.ParameterKind.TZID_PARAMETER)
    return param.get_tzid() if param else None


def _iter_properties(comp):
    prop = comp.get_first_property(ICalGLib.PropertyKind.ANY_PROPERTY)
    while prop:
        yield prop
        prop = comp.get_next_property(ICalGLib.PropertyKind.ANY_PROPERTY)


def _iter_components(comp, kind=ICalGLib.ComponentKind.ANY_COMPONENT):
    sub = comp.get_first_component(kind)
    while sub:
        yield sub
        sub = comp.get_next_component(kind)


def _property_name(prop) -> str:
    if prop.isa() == ICalGLib.PropertyKind.X_PROPERTY:
        return (prop.get_x_name() or "").upper()
    return (prop.get_property_name() or "").upper()


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def decode_vtodo(comp, source_path: Path | None = None) -> LocalTodo:
    """Turn one ICalGLib VTODO component into a LocalTodo.

    A value that cannot be decoded is left unset and recorded as a decode
    issue; the rest of the todo is still usable.
    """
    todo = LocalTodo(uid=None, source_path=source_path)
    extras = todo.extras
    issues = todo.decode_issues
    link_types: list[str] = []
    link_descriptions: list[str] = []
    link_urls: list[str] = []

    def issue(name: str, value: str | None, message: str) -> None:
        issues.append(DecodeIssue(field=name, value=value or "", message=message))

    for prop in _iter_properties(comp):
        name = _property_name(prop)
        value = prop.get_value_as_string() or ""
        try:
            if name == "UID":
                todo.uid = prop.get_uid() or None
            elif name == "SUMMARY":
                todo.summary = prop.get_summary() or ""
            elif name == "DESCRIPTION":
                todo.description = prop.get_description()
            elif name == "URL":
                todo.url = prop.get_url() or value
            elif name == "STATUS":
                status = _STATUS.get(value.upper())
                if status is None:
                    issue(name, value, "unknown status")
                todo.status = status
            elif name in _DATETIME_PROPERTIES:
                parsed = parse_ical_datetime(value, _tzid_of(prop))
                attr = _DATETIME_PROPERTIES[name]
                if hasattr(todo, attr):
                    setattr(todo, attr, parsed)
                else:
                    setattr(extras, attr, parsed)
            elif name == "SEQUENCE":
                extras.sequence = int(value)
            elif name == "PRIORITY":
                extras.priority = int(value)
            elif name == "PERCENT-COMPLETE":
                extras.percent = int(value)
            elif name == "CLASS":
                extras.classification = value
            elif name == "LOCATION":
                extras.location = prop.get_location()
            elif name == "GEO":
                lat, lon = value.split(";")
                extras.geo = GeoLocation(float(lat), float(lon))
            elif name == "DURATION":
                extras.duration = value
            elif name == "ORGANIZER":
                extras.organizer = _unfold(prop.as_ical_string())
            elif name == "RECURRENCE-ID":
                extras.recurrence_id = _unfold(prop.as_ical_string())
            elif name == "CATEGORIES":
                text = prop.get_categories() or value
                extras.categories.extend(c for c in text.split(",") if c)
            elif name == "RESOURCES":
                text = prop.get_resources() or value
                extras.resources.extend(r for r in text.split(",") if r)
            elif name in _TEXT_LIST_PROPERTIES:
                attr, getter = _TEXT_LIST_PROPERTIES[name]
                getattr(extras, attr).append(getter(prop) or value)
            elif name in _RAW_LIST_PROPERTIES:
                getattr(extras, _RAW_LIST_PROPERTIES[name]).append(_unfold(prop.as_ical_string()))
            elif name == X_TASK_ID:
                todo.remote_id = prop.get_x() or None
            elif name == X_TASK_LIST:
                todo.remote_list = prop.get_x() or None
            elif name == X_TASK_URL:
                todo.remote_url = prop.get_x() or None
            elif name == X_TASK_PARENT:
                todo.remote_parent = prop.get_x() or None
            elif name == X_TASK_POSITION:
                todo.remote_position = prop.get_x() or None
            elif name == X_TASK_DELETED:
                todo.remote_deleted = (prop.get_x() or "").upper() == "TRUE"
            elif name == X_TASK_HIDDEN:
                todo.remote_hidden = (prop.get_x() or "").upper() == "TRUE"
            elif name == X_TASK_LINKTYPES:
                link_types.append(prop.get_x() or "")
            elif name == X_TASK_LINKDESCRIPTIONS:
                link_descriptions.append(prop.get_x() or "")
            elif name == X_TASK_LINKS:
                link_urls.append(prop.get_x() or "")
            elif name == "X-LIC-ERROR":
                # libical drops values it cannot parse and leaves this behind.
                issue(name, value, "libical could not parse a property")
            else:
                extras.extra_properties.append(_unfold(prop.as_ical_string()))
        except ValueError as e:
            issue(name, value, str(e))

    count = max(len(link_types), len(link_descriptions), len(link_urls))
    for i in range(count):
        todo.remote_links.append(
            TaskLink(
                type=link_types[i] if i < len(link_types) else None,
                description=link_descriptions[i] if i < len(link_descriptions) else None,
                link=link_urls[i] if i < len(link_urls) else None,
            )
        )
    return todo


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def _x_property(name: str, value: str):
    prop = ICalGLib.Property.new_x(value)
    prop.set_x_name(name)
    return prop


def _raw_property(line: str):
    prop = ICalGLib.Property.new_from_string(line)
    if prop is None:
        raise LocalStoreError(f"Cannot re-encode property line: {line!r}")
    return prop


def _datetime_property(name: str, value: datetime):
    return _raw_property(f"{name}:{format_ical_datetime(value)}")


def encode_vtodo(todo: LocalTodo):
    """Build an ICalGLib VTODO component from a LocalTodo."""
    comp = ICalGLib.Component.new_vtodo()
    extras = todo.extras or LocalExtras()

    def add(prop) -> None:
        comp.add_property(prop)

    if todo.uid:
        add(ICalGLib.Property.new_uid(todo.uid))
    if extras.dtstamp:
        add(_datetime_property("DTSTAMP", extras.dtstamp))
    if extras.created:
        add(_datetime_property("CREATED", extras.created))
    if todo.last_modified:
        add(_datetime_property("LAST-MODIFIED", todo.last_modified))
    if extras.sequence is not None:
        add(ICalGLib.Property.new_sequence(extras.sequence))
    add(ICalGLib.Property.new_summary(todo.summary or ""))
    if todo.description:
        add(ICalGLib.Property.new_description(todo.description))
    if todo.status:
        add(_raw_property(f"STATUS:{todo.status.value.upper()}"))
    if extras.dtstart:
        add(_datetime_property("DTSTART", extras.dtstart))
    if todo.due:
        # Google keeps only the date of a due time; midnight UTC round-trips
        # as a DATE value.
        if _is_midnight_utc(todo.due):
            add(_raw_property(f"DUE;VALUE=DATE:{todo.due.astimezone(timezone.utc):%Y%m%d}"))
        else:
            add(_datetime_property("DUE", todo.due))
    if todo.completed:
        add(_datetime_property("COMPLETED", todo.completed))
    if extras.duration:
        add(_raw_property(f"DURATION:{extras.duration}"))
    if extras.priority is not None:
        add(ICalGLib.Property.new_priority(extras.priority))
    if extras.percent is not None:
        add(ICalGLib.Property.new_percentcomplete(extras.percent))
    if extras.classification:
        add(_raw_property(f"CLASS:{extras.classification}"))
    if extras.location:
        add(ICalGLib.Property.new_location(extras.location))
    if extras.geo:
        add(_raw_property(f"GEO:{extras.geo.latitude};{extras.geo.longitude}"))
    if todo.url:
        add(ICalGLib.Property.new_url(todo.url))
    if extras.organizer:
        add(_raw_property(extras.organizer))
    if extras.recurrence_id:
        add(_raw_property(extras.recurrence_id))
    for related in extras.related_to:
        add(ICalGLib.Property.new_relatedto(related))
    # One property per value; libical would escape a joined list.
    for category in extras.categories:
        add(ICalGLib.Property.new_categories(category))
    for resource in extras.resources:
        add(ICalGLib.Property.new_resources(resource))
    for comment in extras.comments:
        add(ICalGLib.Property.new_comment(comment))
    for contact in extras.contacts:
        add(ICalGLib.Property.new_contact(contact))
    for attr in _RAW_LIST_PROPERTIES.values():
        for line in getattr(extras, attr):
            add(_raw_property(line))

    if todo.remote_id:
        add(_x_property(X_TASK_ID, todo.remote_id))
    if todo.remote_list:
        add(_x_property(X_TASK_LIST, todo.remote_list))
    if todo.remote_url:
        add(_x_property(X_TASK_URL, todo.remote_url))
    if todo.remote_parent:
        add(_x_property(X_TASK_PARENT, todo.remote_parent))
    if todo.remote_position:
        add(_x_property(X_TASK_POSITION, todo.remote_position))
    if todo.remote_deleted:
        add(_x_property(X_TASK_DELETED, "TRUE"))
    if todo.remote_hidden:
        add(_x_property(X_TASK_HIDDEN, "TRUE"))
    for link in todo.remote_links:
        add(_x_property(X_TASK_LINKTYPES, link.type or ""))
        add(_x_property(X_TASK_LINKDESCRIPTIONS, link.description or ""))
        add(_x_property(X_TASK_LINKS, link.link or ""))

    for line in extras.extra_properties:
        add(_raw_property(line))
    return comp


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------


def _parse_file(path: Path):
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise LocalStoreError(f"Cannot read {path}: {e}") from e
    if not text.strip():
        return None
    comp = ICalGLib.Component.new_from_string(text)
    if comp is None:
        raise LocalStoreError(f"Cannot parse {path} as iCalendar data")
    return comp


def _safe_filename(uid: str) -> str:
    return re.sub(r"[^A-Za-z0-9@._-]", "_", uid) + ".ics"


class IcalTodoStore:
    """VTODOs kept in a single .ics file or in a directory of .ics files."""

    def __init__(self, path: Path):
        self.path = Path(path)

    @property
    def is_directory(self) -> bool:
        return self.path.is_dir()

    def files(self) -> list[Path]:
        if self.is_directory:
            return sorted(p for p in self.path.glob("*.ics") if p.is_file())
        return [self.path] if self.path.exists() else []

    def components(self):
        """Yield (path, ICalGLib VTODO component) for every todo in the store."""
        for path in self.files():
            comp = _parse_file(path)
            if comp is None:
                continue
            if comp.isa() == ICalGLib.ComponentKind.VTODO_COMPONENT:
                yield path, comp
                continue
            for vtodo in _iter_components(comp, ICalGLib.ComponentKind.VTODO_COMPONENT):
                yield path, vtodo

    def load(self) -> list[LocalTodo]:
        """Read every VTODO.  A missing file is an empty store."""
        todos = [decode_vtodo(comp, path) for path, comp in self.components()]
        _logger.debug(f"Loaded {len(todos)} todo(s) from {self.path}")
        return todos

    def target_path(self, todo: LocalTodo) -> Path:
        """File a todo is written to: where it was read from, else a new one."""
        if todo.source_path is not None:
            return todo.source_path
        if self.is_directory:
            return self.path / _safe_filename(todo.uid or "todo")
        return self.path

    def save(self, todos: list[LocalTodo], removed: list[LocalTodo] = ()) -> list[Path]:
        """Rewrite every file holding one of ``todos`` or ``removed``.

        Each file is rewritten from ``todos`` alone, so a todo that is not
        passed in disappears from its file.  Returns the paths written.
        """
        by_file: dict[Path, list[LocalTodo]] = {}
        for todo in todos:
            by_file.setdefault(self.target_path(todo), []).append(todo)
        for todo in removed:
            if todo.source_path is not None:
                by_file.setdefault(todo.source_path, [])

        written = []
        for path, file_todos in by_file.items():
            if not file_todos and self.is_directory and path.parent == self.path:
                if self._only_todos(path):
                    _logger.debug(f"Removing empty {path}")
                    path.unlink(missing_ok=True)
                    continue
            self._write_file(path, file_todos)
            written.append(path)
        return written

    @staticmethod
    def _only_todos(path: Path) -> bool:
        comp = _parse_file(path) if path.exists() else None
        if comp is None:
            return True
        return all(
            sub.isa() == ICalGLib.ComponentKind.VTODO_COMPONENT
            for sub in _iter_components(comp)
        )

    @staticmethod
    def _write_file(path: Path, todos: list[LocalTodo]) -> None:
        # Keep whatever else lives in the file (events, timezones, calendar
        # properties such as X-WR-CALNAME).
        kept_components: list[str] = []
        kept_properties: list[str] = []
        existing = _parse_file(path) if path.exists() else None
        if existing is not None and existing.isa() == ICalGLib.ComponentKind.VCALENDAR_COMPONENT:
            for prop in _iter_properties(existing):
                if _property_name(prop) not in ("VERSION", "PRODID"):
                    kept_properties.append(_unfold(prop.as_ical_string()))
            for sub in _iter_components(existing):
                if sub.isa() != ICalGLib.ComponentKind.VTODO_COMPONENT:
                    kept_components.append(sub.as_ical_string())

        cal = ICalGLib.Component.new_vcalendar()
        cal.add_property(ICalGLib.Property.new_version("2.0"))
        cal.add_property(ICalGLib.Property.new_prodid(PRODID))
        for line in kept_properties:
            cal.add_property(_raw_property(line))
        for text in kept_components:
            cal.add_component(ICalGLib.Component.new_from_string(text))
        for todo in todos:
            cal.add_component(encode_vtodo(todo))

        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_name = None
        try:
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as fh:
                fh.write(cal.as_ical_string())
            os.replace(tmp_name, path)
        except OSError as e:
            if tmp_name is not None:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_name)
            raise LocalStoreError(f"Cannot write {path}: {e}") from e
        _logger.debug(f"Wrote {len(todos)} todo(s) to {path}")


def load_local_todos(path: Path) -> list[LocalTodo]:
    return IcalTodoStore(path).load()


def write_local_todos(todos: list[LocalTodo], path: Path, removed: list[LocalTodo] = ()) -> list[Path]:
    return IcalTodoStore(path).save(todos, removed)
