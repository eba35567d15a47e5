from __future__ import annotations

import logging
from types import TracebackType

from offline_notes.config import settings
from offline_notes.connectivity import ConnectivityOracle
from offline_notes.errors import Unauthorized
from offline_notes.identity import Identity
from offline_notes.integrations.notes_api import RemoteStore
from offline_notes.persistence import SyncStateStore
from offline_notes.reconciler import Reconciler
from offline_notes.router import MutationRouter
from offline_notes.schemas import (
    MutationResult,
    Note,
    NoteInput,
    NotePatch,
    PendingOperation,
    SyncReport,
)
from offline_notes.state import SyncState
from offline_notes.translator import IdentifierTranslator
from offline_notes.view_merger import merge_view

logger = logging.getLogger(__name__)


class NotesSyncClient:
    """One client session: owns the SyncState and wires router, reconciler and persistence.

    State is saved explicitly: after every captured write when autosave is on,
    after every reconciliation pass and fetch, and on close().
    """

    def __init__(
        self,
        *,
        remote: RemoteStore,
        oracle: ConnectivityOracle,
        state: SyncState | None = None,
        store: SyncStateStore | None = None,
        autosave: bool | None = None,
        sync_on_reconnect: bool | None = None,
    ) -> None:
        self.state = state or SyncState()
        self._store = store
        self._autosave = settings.sync_autosave if autosave is None else autosave

        translator = IdentifierTranslator(self.state)
        self.router = MutationRouter(self.state, remote, oracle, translator=translator)
        self.reconciler = Reconciler(self.state, remote, oracle, translator=translator)

        # Set when a background pass hit Unauthorized; cleared by the next successful pass.
        self.auth_required = False

        reconnect = settings.sync_on_reconnect if sync_on_reconnect is None else sync_on_reconnect
        if reconnect:
            oracle.on_became_online(self._on_became_online)

    @classmethod
    async def open(
        cls,
        *,
        remote: RemoteStore,
        oracle: ConnectivityOracle,
        store: SyncStateStore | None = None,
        autosave: bool | None = None,
        sync_on_reconnect: bool | None = None,
    ) -> "NotesSyncClient":
        store = store or SyncStateStore()
        state = await store.load()
        return cls(
            remote=remote,
            oracle=oracle,
            state=state,
            store=store,
            autosave=autosave,
            sync_on_reconnect=sync_on_reconnect,
        )

    async def __aenter__(self) -> "NotesSyncClient":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def save(self) -> None:
        if self._store is not None:
            await self._store.save(self.state)

    async def close(self) -> None:
        await self.save()

    async def _after_write(self) -> None:
        if self._autosave:
            await self.save()

    # --- writes ---

    async def create(self, payload: NoteInput) -> MutationResult:
        try:
            return await self.router.create(payload)
        finally:
            await self._after_write()

    async def update(self, target: Identity, patch: NotePatch) -> MutationResult:
        try:
            return await self.router.update(target, patch)
        finally:
            await self._after_write()

    async def delete(self, target: Identity, *, permanent: bool = False) -> MutationResult:
        try:
            return await self.router.delete(target, permanent=permanent)
        finally:
            await self._after_write()

    # --- reads ---

    def view(self) -> list[Note]:
        s = self.state
        return merge_view(s.remote_mirror, s.offline_notes, s.translations)

    def pending_operations(self) -> list[PendingOperation]:
        return self.router.log.snapshot()

    # --- sync ---

    async def sync(self) -> SyncReport:
        try:
            report = await self.reconciler.sync()
        except Unauthorized:
            self.auth_required = True
            await self.save()
            raise
        if report.status == "completed":
            self.auth_required = False
            await self.save()
        return report

    async def sync_pending(self) -> SyncReport:
        """Migrate creates left by older clients, then reconcile."""
        if self.router.migrate_legacy_pending():
            await self.save()
        return await self.sync()

    async def fetch_notes(self) -> bool:
        fetched = await self.reconciler.refresh_mirror()
        if fetched:
            await self.save()
        return fetched

    async def _on_became_online(self) -> None:
        try:
            report = await self.sync()
        except Unauthorized:
            logger.warning("reconciliation on reconnect needs re-authentication")
            return
        logger.info("reconciliation on reconnect status=%s", report.status)
