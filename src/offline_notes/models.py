from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import BigInteger, Column, Text
from sqlalchemy.types import JSON as SAJSON
from sqlmodel import Field, SQLModel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class NoteRowBase(SQLModel):
    # 在所属集合中的位置（镜像顺序 / 离线插入顺序）
    position: int = Field(default=0, index=True)

    title: str = Field(default="", max_length=500)
    # sa_type, not sa_column: the base is shared by two tables.
    content: str = Field(default="", sa_type=Text)
    format: str = Field(default="markdown", max_length=50)
    color: Optional[str] = Field(default=None, max_length=32)
    status: str = Field(default="active", max_length=20)
    priority: int = Field(default=0)
    synced: bool = Field(default=False)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class RemoteNoteRow(NoteRowBase, table=True):
    __tablename__ = "remote_notes"  # pyright: ignore[reportAssignmentType]

    id: int = Field(primary_key=True, sa_column_kwargs={"autoincrement": False})


class OfflineNoteRow(NoteRowBase, table=True):
    __tablename__ = "offline_notes"  # pyright: ignore[reportAssignmentType]

    local_id: str = Field(primary_key=True, min_length=1, max_length=64)


class PendingOperationRow(SQLModel, table=True):
    __tablename__ = "pending_operations"  # pyright: ignore[reportAssignmentType]

    op_id: str = Field(primary_key=True, min_length=1, max_length=36)
    seq: int = Field(index=True)
    kind: str = Field(max_length=10)

    # Exactly one of local_id / remote_id is set.
    local_id: Optional[str] = Field(default=None, max_length=64, index=True)
    remote_id: Optional[int] = Field(default=None, index=True)

    payload_json: Optional[dict[str, Any]] = Field(default=None, sa_column=Column(SAJSON))
    permanent: bool = Field(default=False)
    enqueued_at: datetime = Field(default_factory=utc_now, index=True)


class IdTranslation(SQLModel, table=True):
    __tablename__ = "id_translations"  # pyright: ignore[reportAssignmentType]

    local_id: str = Field(primary_key=True, min_length=1, max_length=64)
    remote_id: int = Field(index=True)


class SyncMeta(SQLModel, table=True):
    __tablename__ = "sync_meta"  # pyright: ignore[reportAssignmentType]

    key: str = Field(primary_key=True, min_length=1, max_length=64)
    # 毫秒级计数会超过 32 位，需用 BigInteger
    value: int = Field(default=0, sa_column=Column(BigInteger, nullable=False))


class LegacyPendingNote(SQLModel, table=True):
    __tablename__ = "legacy_pending_notes"  # pyright: ignore[reportAssignmentType]

    id: Optional[int] = Field(default=None, primary_key=True)
    position: int = Field(default=0, index=True)
    # Raw create payload as stored by older clients: {title, content, format, color?, priority?}
    payload_json: dict[str, Any] = Field(default_factory=dict, sa_column=Column(SAJSON))
