"""
Identity matching between Google Tasks and local todos.

A todo and a Google Task are the same logical task when the todo's UID is
the task ID (bare, or with the ``@google.com`` provenance suffix), or when
the todo's X-GOOGLE-TASK-ID is the task ID.  A missing UID or extension is
never a wildcard.
"""

from collections.abc import Container
from collections.abc import Iterable
from dataclasses import dataclass

from gtasks_ical_sync.mapping import remote_id_from_uid
from gtasks_ical_sync.models import LocalTodo


@dataclass(frozen=True)
class Identity:
    """The Google Task a todo points at.

    ``remote_id`` may name a task that is not in the fetched set (the remote
    was deleted).  ``conflict`` lists the IDs when the UID and the extension
    disagree; ``remote_id`` is None in that case.
    """

    remote_id: str | None = None
    conflict: tuple[str, ...] = ()


def referenced_remote_ids(
    local: LocalTodo, known_remote_ids: Container[str]
) -> tuple[str | None, str | None]:
    """Return (id referenced by the UID, id referenced by X-GOOGLE-TASK-ID)."""
    uid_ref = None
    if local.uid:
        if local.uid in known_remote_ids:
            uid_ref = local.uid
        else:
            uid_ref = remote_id_from_uid(local.uid)
    return uid_ref, (local.remote_id or None)


def identify(local: LocalTodo, known_remote_ids: Container[str]) -> Identity:
    """Resolve which Google Task a todo refers to, if any."""
    uid_ref, ext_ref = referenced_remote_ids(local, known_remote_ids)
    if uid_ref and ext_ref and uid_ref != ext_ref:
        return Identity(conflict=(uid_ref, ext_ref))
    return Identity(remote_id=uid_ref or ext_ref)


class IdentityMatcher:
    """Lookup from Google Task ID to the local todo that claims it."""

    def __init__(self, local_todos: Iterable[LocalTodo], known_remote_ids: Container[str]):
        self.known_remote_ids = known_remote_ids
        self._identities: dict[int, Identity] = {}
        self._claims: dict[str, list[LocalTodo]] = {}
        for local in local_todos:
            identity = identify(local, known_remote_ids)
            self._identities[id(local)] = identity
            if identity.remote_id:
                self._claims.setdefault(identity.remote_id, []).append(local)

    def identity_of(self, local: LocalTodo) -> Identity:
        identity = self._identities.get(id(local))
        if identity is None:
            identity = identify(local, self.known_remote_ids)
        return identity

    def claimants(self, remote_id: str) -> list[LocalTodo]:
        """All todos whose identity resolves to remote_id."""
        return list(self._claims.get(remote_id, ()))

    def match(self, remote_id: str | None) -> LocalTodo | None:
        """Return the todo matching remote_id.

        None when nothing claims the ID, or when more than one todo does
        (an integrity problem the caller reports).
        """
        if not remote_id:
            return None
        claimants = self._claims.get(remote_id, ())
        if len(claimants) != 1:
            return None
        return claimants[0]
