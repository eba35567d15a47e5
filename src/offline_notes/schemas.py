from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

from offline_notes.identity import Identity, identity_fields, identity_from_fields


NoteStatus = Literal["active", "deleted"]
OpKind = Literal["create", "update", "delete"]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class NoteInput(BaseModel):
    """Create payload (what the server's POST accepts)."""

    title: str = Field(max_length=500)
    content: str = ""
    format: str = "markdown"
    color: str | None = None
    priority: int = 0


class NotePatch(BaseModel):
    title: str | None = Field(default=None, max_length=500)
    content: str | None = None
    format: str | None = None
    color: str | None = None
    priority: int | None = None

    @model_validator(mode="after")
    def _ensure_any_field_present(self) -> "NotePatch":
        if not self.model_fields_set:
            raise ValueError("at least one field must be provided")
        return self

    def changes(self) -> dict[str, Any]:
        # Explicitly provided fields only; color=None is a legitimate change.
        return self.model_dump(exclude_unset=True)


class Note(BaseModel):
    id: int | None = None
    local_id: str | None = None

    title: str = ""
    content: str = ""
    format: str = "markdown"
    color: str | None = None
    status: NoteStatus = "active"
    priority: int = 0
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    synced: bool = False

    @model_validator(mode="after")
    def _ensure_single_identity(self) -> "Note":
        _ = identity_from_fields(local_id=self.local_id, remote_id=self.id)
        return self

    @property
    def identity(self) -> Identity:
        return identity_from_fields(local_id=self.local_id, remote_id=self.id)

    def with_identity(self, identity: Identity, **update: Any) -> "Note":
        local_id, remote_id = identity_fields(identity)
        return self.model_copy(update={"local_id": local_id, "id": remote_id, **update})

    def marked_deleted(self, **update: Any) -> "Note":
        return self.model_copy(update={"status": "deleted", **update})

    def apply(self, changes: dict[str, Any], *, now: datetime) -> "Note":
        return self.model_copy(update={**changes, "updated_at": now})


class PendingOperation(BaseModel):
    op_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    seq: int
    kind: OpKind
    local_id: str | None = None
    remote_id: int | None = None
    payload: dict[str, Any] | None = None
    permanent: bool = False
    enqueued_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def _ensure_consistent(self) -> "PendingOperation":
        _ = identity_from_fields(local_id=self.local_id, remote_id=self.remote_id)
        if self.kind == "delete" and self.payload is not None:
            raise ValueError("delete operations carry no payload")
        if self.kind != "delete" and self.payload is None:
            raise ValueError(f"{self.kind} operations require a payload")
        return self

    @property
    def target(self) -> Identity:
        return identity_from_fields(local_id=self.local_id, remote_id=self.remote_id)

    def sort_key(self) -> tuple[datetime, int]:
        return (self.enqueued_at, self.seq)


@dataclass(frozen=True)
class MutationResult:
    note: Note | None
    offline: bool


SyncStatus = Literal["completed", "already_running", "offline"]


@dataclass(frozen=True)
class SyncReport:
    status: SyncStatus
    succeeded: int = 0
    remaining: int = 0
    discarded: int = 0
