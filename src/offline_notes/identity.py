from __future__ import annotations

import re
from dataclasses import dataclass


LOCAL_PREFIX = "local-"
SHADOW_PREFIX = "remote-"

_SHADOW_RE = re.compile(r"^remote-(\d+)$")


@dataclass(frozen=True)
class LocalId:
    """Client-minted identity of a note the server has not acknowledged yet."""

    token: str

    def __str__(self) -> str:
        return self.token


@dataclass(frozen=True)
class RemoteId:
    """Server-assigned identity."""

    id: int

    def __str__(self) -> str:
        return str(self.id)


Identity = LocalId | RemoteId


def shadow_of(remote: RemoteId) -> LocalId:
    """Deterministic local key for the offline copy of a remote note.

    Repeated offline edits of the same remote note collapse into one shadow.
    Minted tokens use LOCAL_PREFIX, so the two namespaces never collide.
    """
    return LocalId(f"{SHADOW_PREFIX}{remote.id}")


def shadow_target(local: LocalId) -> RemoteId | None:
    m = _SHADOW_RE.match(local.token)
    if m is None:
        return None
    return RemoteId(int(m.group(1)))


def is_shadow(local: LocalId) -> bool:
    return shadow_target(local) is not None


def identity_from_fields(*, local_id: str | None, remote_id: int | None) -> Identity:
    if (local_id is None) == (remote_id is None):
        raise ValueError("exactly one of local_id / remote_id must be set")
    if remote_id is not None:
        return RemoteId(int(remote_id))
    return LocalId(str(local_id))


def identity_fields(identity: Identity) -> tuple[str | None, int | None]:
    """Inverse of identity_from_fields: (local_id, remote_id)."""
    if isinstance(identity, RemoteId):
        return None, identity.id
    return identity.token, None
