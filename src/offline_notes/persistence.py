from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import cast

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession as SAAsyncSession
from sqlmodel import select

from offline_notes.db import session_scope
from offline_notes.models import (
    IdTranslation,
    LegacyPendingNote,
    NoteRowBase,
    OfflineNoteRow,
    PendingOperationRow,
    RemoteNoteRow,
    SyncMeta,
)
from offline_notes.schemas import Note, NoteInput, OpKind, PendingOperation
from offline_notes.state import SyncState

logger = logging.getLogger(__name__)


_META_LAST_MINTED = "last_minted"
_META_NEXT_SEQ = "next_seq"

_TABLES = (
    RemoteNoteRow,
    OfflineNoteRow,
    PendingOperationRow,
    IdTranslation,
    SyncMeta,
    LegacyPendingNote,
)


def _as_utc(dt: datetime) -> datetime:
    # SQLite drops tzinfo; everything is stored as UTC.
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _note_fields(note: Note, position: int) -> dict[str, object]:
    return {
        "position": position,
        "title": note.title,
        "content": note.content,
        "format": note.format,
        "color": note.color,
        "status": note.status,
        "priority": note.priority,
        "synced": note.synced,
        "created_at": _as_utc(note.created_at),
        "updated_at": _as_utc(note.updated_at),
    }


def _note_from_row(row: NoteRowBase, *, remote_id: int | None, local_id: str | None) -> Note:
    return Note(
        id=remote_id,
        local_id=local_id,
        title=row.title,
        content=row.content,
        format=row.format,
        color=row.color,
        status="deleted" if row.status == "deleted" else "active",
        priority=row.priority,
        synced=row.synced,
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
    )


class SyncStateStore:
    """load()/save() for SyncState on the configured database.

    save() replaces the stored state in one transaction.
    """

    async def load(self) -> SyncState:
        state = SyncState()
        async with session_scope() as session:
            remote_rows = (
                await session.exec(select(RemoteNoteRow).order_by(RemoteNoteRow.position))
            ).all()
            state.remote_mirror = [
                _note_from_row(r, remote_id=r.id, local_id=None) for r in remote_rows
            ]

            offline_rows = (
                await session.exec(select(OfflineNoteRow).order_by(OfflineNoteRow.position))
            ).all()
            state.offline_notes = {
                r.local_id: _note_from_row(r, remote_id=None, local_id=r.local_id)
                for r in offline_rows
            }

            op_rows = (
                await session.exec(select(PendingOperationRow).order_by(PendingOperationRow.seq))
            ).all()
            state.pending = [
                PendingOperation(
                    op_id=r.op_id,
                    seq=r.seq,
                    kind=cast(OpKind, r.kind),
                    local_id=r.local_id,
                    remote_id=r.remote_id,
                    payload=r.payload_json,
                    permanent=r.permanent,
                    enqueued_at=_as_utc(r.enqueued_at),
                )
                for r in op_rows
            ]

            translations = (await session.exec(select(IdTranslation))).all()
            state.translations = {t.local_id: t.remote_id for t in translations}

            meta = {m.key: m.value for m in (await session.exec(select(SyncMeta))).all()}
            state.last_minted = int(meta.get(_META_LAST_MINTED, 0))
            max_seq = max((op.seq for op in state.pending), default=0)
            state.next_seq = max(int(meta.get(_META_NEXT_SEQ, 1)), max_seq + 1)

            legacy_rows = (
                await session.exec(select(LegacyPendingNote).order_by(LegacyPendingNote.position))
            ).all()
            state.legacy_pending = [NoteInput.model_validate(r.payload_json) for r in legacy_rows]

        logger.debug(
            "loaded sync state mirror=%s offline=%s pending=%s",
            len(state.remote_mirror),
            len(state.offline_notes),
            len(state.pending),
        )
        return state

    async def save(self, state: SyncState) -> None:
        async with session_scope() as session:
            sa_session = cast(SAAsyncSession, session)
            for table in _TABLES:
                _ = await sa_session.execute(delete(table))

            for pos, note in enumerate(state.remote_mirror):
                if note.id is None:
                    raise ValueError("mirror notes carry a server id")
                session.add(RemoteNoteRow(id=note.id, **_note_fields(note, pos)))
            for pos, (token, note) in enumerate(state.offline_notes.items()):
                session.add(OfflineNoteRow(local_id=token, **_note_fields(note, pos)))
            for op in state.pending:
                session.add(
                    PendingOperationRow(
                        op_id=op.op_id,
                        seq=op.seq,
                        kind=op.kind,
                        local_id=op.local_id,
                        remote_id=op.remote_id,
                        payload_json=op.payload,
                        permanent=op.permanent,
                        enqueued_at=_as_utc(op.enqueued_at),
                    )
                )
            for token, remote_id in state.translations.items():
                session.add(IdTranslation(local_id=token, remote_id=remote_id))
            session.add(SyncMeta(key=_META_LAST_MINTED, value=state.last_minted))
            session.add(SyncMeta(key=_META_NEXT_SEQ, value=state.next_seq))
            for pos, payload in enumerate(state.legacy_pending):
                session.add(LegacyPendingNote(position=pos, payload_json=payload.model_dump()))

            await session.commit()
        logger.debug("saved sync state pending=%s", len(state.pending))
