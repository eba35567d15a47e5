from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import httpx
import pytest
from fastapi import FastAPI, Header, Request
from fastapi.responses import JSONResponse

from offline_notes.client import NotesSyncClient
from offline_notes.connectivity import ConnectivityMonitor
from offline_notes.db import dispose_engine_cache, init_db, reset_engine_cache
from offline_notes.errors import Unauthorized
from offline_notes.identity import LocalId, RemoteId
from offline_notes.integrations.notes_api import HttpxNotesAPI
from offline_notes.persistence import SyncStateStore
from offline_notes.schemas import NoteInput, NotePatch


@dataclass
class NotesServer:
    """Minimal notes service speaking the {success, data, message} envelope."""

    token: str = "tok"
    notes: dict[int, dict[str, Any]] = field(default_factory=dict)
    idempotency_keys: list[str | None] = field(default_factory=list)
    next_id: int = 0

    def app(self) -> FastAPI:
        app = FastAPI()

        def denied(authorization: str | None) -> JSONResponse | None:
            if authorization != f"Bearer {self.token}":
                return JSONResponse({"success": False, "message": "unauthorized"}, status_code=401)
            return None

        def missing(note_id: int) -> JSONResponse:
            return JSONResponse({"success": False, "message": f"note {note_id} not found"}, 404)

        @app.get("/api/notes")
        async def list_notes(authorization: str | None = Header(default=None)) -> Any:
            if (resp := denied(authorization)) is not None:
                return resp
            data = sorted(self.notes.values(), key=lambda n: n["id"], reverse=True)
            return {"success": True, "data": data}

        @app.post("/api/notes")
        async def create_note(
            request: Request,
            authorization: str | None = Header(default=None),
            idempotency_key: str | None = Header(default=None),
        ) -> Any:
            if (resp := denied(authorization)) is not None:
                return resp
            payload = await request.json()
            self.idempotency_keys.append(idempotency_key)
            self.next_id += 1
            now = datetime.now(timezone.utc).isoformat()
            note = {
                "id": self.next_id,
                "status": "active",
                "createdAt": now,
                "updatedAt": now,
                **payload,
            }
            self.notes[self.next_id] = note
            return {"success": True, "data": note}

        @app.put("/api/notes/{note_id}")
        async def update_note(
            note_id: int, request: Request, authorization: str | None = Header(default=None)
        ) -> Any:
            if (resp := denied(authorization)) is not None:
                return resp
            if note_id not in self.notes:
                return missing(note_id)
            payload = await request.json()
            note = {
                **self.notes[note_id],
                **payload,
                "updatedAt": datetime.now(timezone.utc).isoformat(),
            }
            self.notes[note_id] = note
            return {"success": True, "data": note}

        @app.delete("/api/notes/{note_id}")
        async def delete_note(
            note_id: int,
            permanent: bool = False,
            authorization: str | None = Header(default=None),
        ) -> Any:
            if (resp := denied(authorization)) is not None:
                return resp
            if note_id not in self.notes:
                return missing(note_id)
            if permanent:
                del self.notes[note_id]
            else:
                self.notes[note_id] = {**self.notes[note_id], "status": "deleted"}
            return {"success": True, "data": None, "message": "deleted"}

        return app


def _make_async_client(server: NotesServer) -> httpx.AsyncClient:
    transport = httpx.ASGITransport(app=server.app())
    return httpx.AsyncClient(transport=transport, base_url="http://test")


def _api(http: httpx.AsyncClient, token: str = "tok") -> HttpxNotesAPI:
    return HttpxNotesAPI(
        base_url="http://test", bearer_token=token, timeout_seconds=5, client=http
    )


@pytest.mark.anyio
async def test_offline_writes_survive_restart_and_sync_on_reconnect(tmp_path: Path):
    from offline_notes.config import settings

    old_db = settings.database_url
    server = NotesServer()
    try:
        settings.database_url = f"sqlite:///{tmp_path / 'client-e2e.db'}"
        reset_engine_cache()
        await init_db()

        async with _make_async_client(server) as http:
            monitor = ConnectivityMonitor(online=False)
            async with await NotesSyncClient.open(
                remote=_api(http), oracle=monitor, sync_on_reconnect=True
            ) as client:
                created = await client.create(NoteInput(title="A", content="draft"))
                assert created.note is not None
                local = created.note.identity
                assert isinstance(local, LocalId)
                await client.update(local, NotePatch(content="final"))

            # Process restart: a fresh client sees the persisted queue.
            monitor = ConnectivityMonitor(online=False)
            client = await NotesSyncClient.open(remote=_api(http), oracle=monitor)
            assert [op.kind for op in client.pending_operations()] == ["create", "update"]
            assert [(n.title, n.synced) for n in client.view()] == [("A", False)]

            await monitor.set_online(True)

            view = client.view()
            assert len(view) == 1
            assert view[0].identity == RemoteId(1)
            assert (view[0].title, view[0].content, view[0].synced) == ("A", "final", True)
            assert client.pending_operations() == []
            assert server.notes[1]["content"] == "final"
            assert server.idempotency_keys[0] is not None
            await client.close()

        reloaded = await SyncStateStore().load()
        assert reloaded.pending == []
        assert reloaded.offline_notes == {}
        assert reloaded.translations == {local.token: 1}
        assert [n.id for n in reloaded.remote_mirror] == [1]
    finally:
        await dispose_engine_cache()
        settings.database_url = old_db


@pytest.mark.anyio
async def test_unauthorized_sync_keeps_the_queue_and_flags_reauth(tmp_path: Path):
    from offline_notes.config import settings

    old_db = settings.database_url
    server = NotesServer(token="rotated")
    try:
        settings.database_url = f"sqlite:///{tmp_path / 'client-unauthorized.db'}"
        reset_engine_cache()
        await init_db()

        async with _make_async_client(server) as http:
            monitor = ConnectivityMonitor(online=False)
            client = await NotesSyncClient.open(remote=_api(http), oracle=monitor)
            await client.create(NoteInput(title="A"))

            # The reconnect callback logs and flags instead of raising.
            await monitor.set_online(True)
            assert client.auth_required is True

            with pytest.raises(Unauthorized):
                await client.sync()
            assert len(client.pending_operations()) == 1

            server.token = "tok"
            report = await client.sync()
            assert (report.status, report.remaining) == ("completed", 0)
            assert client.auth_required is False

        reloaded = await SyncStateStore().load()
        assert reloaded.pending == []
    finally:
        await dispose_engine_cache()
        settings.database_url = old_db


@pytest.mark.anyio
async def test_online_write_rejected_as_unauthorized_is_still_captured(tmp_path: Path):
    from offline_notes.config import settings

    old_db = settings.database_url
    server = NotesServer(token="rotated")
    try:
        settings.database_url = f"sqlite:///{tmp_path / 'client-captured.db'}"
        reset_engine_cache()
        await init_db()

        async with _make_async_client(server) as http:
            monitor = ConnectivityMonitor(online=True)
            client = await NotesSyncClient.open(remote=_api(http), oracle=monitor)

            with pytest.raises(Unauthorized) as excinfo:
                await client.create(NoteInput(title="A"))

            assert excinfo.value.captured is not None
            assert server.notes == {}

        # Autosave persisted the captured write before the error surfaced.
        reloaded = await SyncStateStore().load()
        assert [op.kind for op in reloaded.pending] == ["create"]
    finally:
        await dispose_engine_cache()
        settings.database_url = old_db


@pytest.mark.anyio
async def test_sync_pending_migrates_legacy_creates(tmp_path: Path):
    from offline_notes.config import settings

    old_db = settings.database_url
    server = NotesServer()
    try:
        settings.database_url = f"sqlite:///{tmp_path / 'client-legacy.db'}"
        reset_engine_cache()
        await init_db()

        store = SyncStateStore()
        state = await store.load()
        state.legacy_pending = [NoteInput(title="old one"), NoteInput(title="old two")]
        await store.save(state)

        async with _make_async_client(server) as http:
            client = await NotesSyncClient.open(
                remote=_api(http), oracle=ConnectivityMonitor(online=True)
            )
            report = await client.sync_pending()

            assert (report.succeeded, report.remaining) == (2, 0)
            assert sorted(n["title"] for n in server.notes.values()) == ["old one", "old two"]
            assert sorted(n.title for n in client.view()) == ["old one", "old two"]

        reloaded = await store.load()
        assert reloaded.legacy_pending == []
    finally:
        await dispose_engine_cache()
        settings.database_url = old_db


@pytest.mark.anyio
async def test_fetch_notes_refreshes_the_mirror_only_when_online(tmp_path: Path):
    from offline_notes.config import settings

    old_db = settings.database_url
    server = NotesServer()
    server.notes[7] = {"id": 7, "title": "from server", "content": "", "status": "active"}
    try:
        settings.database_url = f"sqlite:///{tmp_path / 'client-fetch.db'}"
        reset_engine_cache()
        await init_db()

        async with _make_async_client(server) as http:
            monitor = ConnectivityMonitor(online=False)
            client = await NotesSyncClient.open(remote=_api(http), oracle=monitor)

            assert await client.fetch_notes() is False
            assert client.view() == []

            await monitor.set_online(True)
            assert await client.fetch_notes() is True
            assert [(n.identity, n.title) for n in client.view()] == [(RemoteId(7), "from server")]
    finally:
        await dispose_engine_cache()
        settings.database_url = old_db
