from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from offline_notes.connectivity import ConnectivityOracle
from offline_notes.errors import NotFound, RemoteError, Unauthorized
from offline_notes.identity import Identity, LocalId, RemoteId, shadow_of, shadow_target
from offline_notes.integrations.notes_api import RemoteStore
from offline_notes.mutation_log import LocalMutationLog
from offline_notes.offline_store import OfflineEntityStore
from offline_notes.schemas import MutationResult, Note, NoteInput, NotePatch, utc_now
from offline_notes.state import SyncState
from offline_notes.translator import IdentifierTranslator

logger = logging.getLogger(__name__)


class MutationRouter:
    """Entry point for every create/update/delete.

    The online/offline branch exists once per operation kind, here. A remote
    failure never prevents a write from being captured locally: creates and
    updates fall back to the offline path, deletes are queued.
    """

    def __init__(
        self,
        state: SyncState,
        remote: RemoteStore,
        oracle: ConnectivityOracle,
        *,
        translator: IdentifierTranslator | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._state = state
        self._remote = remote
        self._oracle = oracle
        self._clock = clock
        self.translator = translator or IdentifierTranslator(state)
        self.log = LocalMutationLog(state)
        self.offline = OfflineEntityStore(state)

    # --- identity helpers ---

    def entity_targets(self, remote: RemoteId) -> set[Identity]:
        """Every identity under which operations for this remote note may be queued."""
        return {remote, *self.translator.reverse(remote)}

    def _canonical(self, target: Identity, *, keep_local_copy: bool) -> Identity:
        if isinstance(target, RemoteId):
            return target
        shadowed = shadow_target(target)
        if shadowed is not None:
            return shadowed
        translated = self.translator.resolve(target)
        if translated is None:
            return target
        # A translated note whose offline copy is still around has queued
        # operations; updates keep going through that copy to stay ordered.
        if keep_local_copy and target in self.offline:
            return target
        return translated

    # --- create ---

    async def create(self, payload: NoteInput) -> MutationResult:
        if self._oracle.is_online():
            try:
                note = await self._remote.create_note(payload.model_dump())
            except Unauthorized as e:
                e.captured = self._create_offline(payload)
                raise
            except RemoteError as e:
                logger.warning("remote create failed, capturing offline: %s", e)
            else:
                self._state.mirror_put(note, prepend=True)
                return MutationResult(note=note, offline=False)
        return self._create_offline(payload)

    def _create_offline(self, payload: NoteInput, *, now: datetime | None = None) -> MutationResult:
        now = now or self._clock()
        local = self.translator.mint_local()
        data = payload.model_dump()
        note = self.offline.put(
            Note(
                local_id=local.token,
                **data,
                status="active",
                created_at=now,
                updated_at=now,
                synced=False,
            )
        )
        self.log.append("create", local, payload=data, now=now)
        logger.info("captured offline create local_id=%s", local.token)
        return MutationResult(note=note, offline=True)

    # --- update ---

    async def update(self, target: Identity, patch: NotePatch) -> MutationResult:
        changes = patch.changes()
        target = self._canonical(target, keep_local_copy=True)
        if isinstance(target, LocalId):
            return self._update_local(target, changes)

        # Queued operations for this note must replay first; do not overtake them.
        if self._oracle.is_online() and not self.log.has_pending(self.entity_targets(target)):
            try:
                note = await self._remote.update_note(target.id, changes)
            except Unauthorized as e:
                e.captured = self._update_shadow(target, changes)
                raise
            except NotFound:
                _ = self._state.mirror_remove(target.id)
                raise
            except RemoteError as e:
                logger.warning("remote update failed id=%s, capturing offline: %s", target.id, e)
            else:
                self._state.mirror_put(note)
                return MutationResult(note=note, offline=False)
        return self._update_shadow(target, changes)

    def _update_local(self, local: LocalId, changes: dict[str, object]) -> MutationResult:
        existing = self.offline.get(local)
        if existing is None:
            raise NotFound(f"note {local} not found")
        now = self._clock()
        note = self.offline.put(existing.apply(changes, now=now))
        self.log.append("update", local, payload=changes, now=now)
        return MutationResult(note=note, offline=True)

    def _update_shadow(self, remote: RemoteId, changes: dict[str, object]) -> MutationResult:
        key = shadow_of(remote)
        base = self.offline.get(key)
        if base is None:
            original = self._state.mirror_get(remote.id)
            if original is None:
                raise NotFound(f"note {remote} not found")
            base = original.with_identity(key, synced=False)
        now = self._clock()
        note = self.offline.put(base.apply(changes, now=now))
        self.log.append("update", remote, payload=changes, now=now)
        logger.info("captured offline update id=%s", remote.id)
        return MutationResult(note=note, offline=True)

    # --- delete ---

    async def delete(self, target: Identity, *, permanent: bool = False) -> MutationResult:
        target = self._canonical(target, keep_local_copy=False)
        if isinstance(target, LocalId):
            return self._cancel_local(target)

        if not self._knows(target):
            raise NotFound(f"note {target} not found")

        if self._oracle.is_online():
            try:
                await self._remote.delete_note(target.id, permanent=permanent)
            except Unauthorized as e:
                e.captured = self._delete_queued(target, permanent=permanent)
                raise
            except NotFound:
                self._forget(target)
                _ = self._state.mirror_remove(target.id)
                raise
            except RemoteError as e:
                logger.warning("remote delete failed id=%s, queueing: %s", target.id, e)
            else:
                self._forget(target)
                existing = self._state.mirror_get(target.id)
                if permanent or existing is None:
                    _ = self._state.mirror_remove(target.id)
                else:
                    self._state.mirror_put(existing.marked_deleted())
                return MutationResult(note=None, offline=False)
        return self._delete_queued(target, permanent=permanent)

    def _knows(self, remote: RemoteId) -> bool:
        if self._state.mirror_get(remote.id) is not None:
            return True
        candidates = (shadow_of(remote), *self.translator.reverse(remote))
        return any(local in self.offline for local in candidates)

    def _cancel_local(self, local: LocalId) -> MutationResult:
        # Never synced: nothing exists remotely, the create and its edits cancel out.
        if self.offline.remove(local) is None:
            raise NotFound(f"note {local} not found")
        purged = self.log.purge({local})
        logger.info("cancelled offline note local_id=%s purged_ops=%s", local.token, len(purged))
        return MutationResult(note=None, offline=True)

    def _forget(self, remote: RemoteId) -> None:
        """Drop queued operations and offline copies of a note that is gone remotely."""
        targets = self.entity_targets(remote)
        _ = self.log.purge(targets)
        _ = self.offline.remove(shadow_of(remote))
        for t in targets:
            if isinstance(t, LocalId):
                _ = self.offline.remove(t)

    def _delete_queued(self, remote: RemoteId, *, permanent: bool) -> MutationResult:
        now = self._clock()
        if permanent:
            # Gone for the user right away; only the queued delete remains.
            _ = self._state.mirror_remove(remote.id)
            _ = self.offline.remove(shadow_of(remote))
            for local in self.translator.reverse(remote):
                _ = self.offline.remove(local)
            self.log.append("delete", remote, permanent=True, now=now)
            logger.info("queued offline delete id=%s permanent=True", remote.id)
            return MutationResult(note=None, offline=True)
        mirrored = self._state.mirror_get(remote.id)
        if mirrored is not None:
            self._state.mirror_put(mirrored.marked_deleted(synced=False))
        shadow = self.offline.shadow(remote)
        if shadow is not None:
            _ = self.offline.put(shadow.marked_deleted(updated_at=now))
        for local in self.translator.reverse(remote):
            copy = self.offline.get(local)
            if copy is not None:
                _ = self.offline.put(copy.marked_deleted(updated_at=now))
        self.log.append("delete", remote, permanent=permanent, now=now)
        logger.info("queued offline delete id=%s permanent=%s", remote.id, permanent)
        return MutationResult(note=None, offline=True)

    # --- legacy ---

    def migrate_legacy_pending(self) -> list[MutationResult]:
        """Turn raw create payloads left by older clients into offline notes + create ops."""
        legacy = list(self._state.legacy_pending)
        if not legacy:
            return []
        now = self._clock()
        results = [self._create_offline(payload, now=now) for payload in legacy]
        self._state.legacy_pending = []
        logger.info("migrated legacy pending notes count=%s", len(results))
        return results
