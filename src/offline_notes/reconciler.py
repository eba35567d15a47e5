from __future__ import annotations

import logging
from typing import Literal

from offline_notes.connectivity import ConnectivityOracle
from offline_notes.errors import NotFound, RemoteError, ServerError, Unauthorized
from offline_notes.identity import Identity, LocalId, RemoteId, shadow_target
from offline_notes.integrations.notes_api import RemoteStore
from offline_notes.mutation_log import LocalMutationLog
from offline_notes.offline_store import OfflineEntityStore
from offline_notes.schemas import PendingOperation, SyncReport
from offline_notes.state import SyncState
from offline_notes.translator import IdentifierTranslator

logger = logging.getLogger(__name__)


ReplayOutcome = Literal["applied", "discarded", "skipped"]


class Reconciler:
    """Replays the mutation log against the remote store.

    idle -> running -> idle. A trigger that arrives while a pass is running is
    coalesced: the running pass already holds everything enqueued before its
    snapshot, later writes wait for the next trigger.
    """

    def __init__(
        self,
        state: SyncState,
        remote: RemoteStore,
        oracle: ConnectivityOracle,
        *,
        translator: IdentifierTranslator | None = None,
    ) -> None:
        self._state = state
        self._remote = remote
        self._oracle = oracle
        self.translator = translator or IdentifierTranslator(state)
        self.log = LocalMutationLog(state)
        self.offline = OfflineEntityStore(state)
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def sync(self) -> SyncReport:
        if self._running:
            logger.info("reconciliation already running; trigger coalesced")
            return SyncReport(status="already_running", remaining=len(self.log))
        if not self._oracle.is_online():
            return SyncReport(status="offline", remaining=len(self.log))

        self._running = True
        try:
            return await self._run_pass()
        finally:
            self._running = False

    async def refresh_mirror(self) -> bool:
        """Replace the mirror with the server's list. False when offline."""
        if not self._oracle.is_online():
            return False
        notes = await self._remote.list_notes()
        self._state.remote_mirror = notes
        self._overlay_pending_deletes()
        return True

    async def _run_pass(self) -> SyncReport:
        snapshot = self.log.snapshot()
        logger.info("reconciliation started pending=%s", len(snapshot))

        finished: set[str] = set()
        # Entities with a failed or skipped op; later ops for them must wait too.
        blocked: set[str] = set()
        succeeded = 0
        discarded = 0
        try:
            for op in snapshot:
                if not self._still_queued(op):
                    # Purged by a user write earlier in this pass.
                    continue
                key = self._entity_key(op.target)
                if key in blocked:
                    continue
                try:
                    outcome = await self._replay(op)
                except Unauthorized:
                    raise
                except RemoteError as e:
                    logger.warning(
                        "replay failed op_id=%s kind=%s target=%s: %s",
                        op.op_id,
                        op.kind,
                        op.target,
                        e,
                    )
                    blocked.add(key)
                    continue

                if outcome == "skipped":
                    blocked.add(key)
                    continue
                finished.add(op.op_id)
                if outcome == "applied":
                    succeeded += 1
                else:
                    discarded += 1
        finally:
            # Dequeue by op_id: writes captured during the pass stay queued.
            _ = self.log.remove(finished)
            self._prune_offline()

        try:
            _ = await self.refresh_mirror()
        except Unauthorized:
            raise
        except RemoteError as e:
            logger.warning("mirror refresh after reconciliation failed: %s", e)

        report = SyncReport(
            status="completed",
            succeeded=succeeded,
            remaining=len(self.log),
            discarded=discarded,
        )
        logger.info(
            "reconciliation finished succeeded=%s remaining=%s discarded=%s",
            report.succeeded,
            report.remaining,
            report.discarded,
        )
        return report

    def _resolve(self, target: Identity) -> RemoteId | None:
        if isinstance(target, RemoteId):
            return target
        return self.translator.resolve(target)

    def _entity_key(self, target: Identity) -> str:
        if isinstance(target, RemoteId):
            return f"r:{target.id}"
        resolved = self.translator.resolve(target)
        if resolved is not None:
            return f"r:{resolved.id}"
        return f"l:{target.token}"

    def _still_queued(self, op: PendingOperation) -> bool:
        return any(p.op_id == op.op_id for p in self._state.pending)

    async def _replay(self, op: PendingOperation) -> ReplayOutcome:
        target = op.target
        if op.kind == "create":
            if not isinstance(target, LocalId) or op.payload is None:
                logger.warning("malformed create op_id=%s; discarding", op.op_id)
                return "discarded"
            if self.translator.resolve(target) is not None:
                # Confirmed by an earlier pass; never POST the same create twice.
                return "applied"

            note = await self._remote.create_note(op.payload, idempotency_key=op.op_id)
            if note.id is None:
                raise ServerError(f"create note returned no id for op_id={op.op_id}")
            remote = RemoteId(note.id)
            self.translator.record_translation(target, remote)
            self._state.mirror_put(note, prepend=True)

            if not self._still_queued(op):
                # The user deleted the note while its create was in flight; it
                # never existed for them, so remove the server copy for good.
                logger.info("create cancelled in flight local_id=%s; queueing delete", target)
                _ = self._state.mirror_remove(remote.id)
                _ = self.log.append("delete", remote, permanent=True)
            return "applied"

        remote = self._resolve(target)
        if remote is None:
            # Its create has not succeeded yet.
            return "skipped"

        if op.kind == "update":
            if op.payload is None:
                logger.warning("malformed update op_id=%s; discarding", op.op_id)
                return "discarded"
            try:
                note = await self._remote.update_note(remote.id, op.payload)
            except NotFound:
                logger.warning("update target gone id=%s; discarding op_id=%s", remote.id, op.op_id)
                _ = self._state.mirror_remove(remote.id)
                return "discarded"
            self._state.mirror_put(note)
            return "applied"

        try:
            await self._remote.delete_note(remote.id, permanent=op.permanent)
        except NotFound:
            logger.info("delete target already gone id=%s", remote.id)
        _ = self._state.mirror_remove(remote.id)
        return "applied"

    def _prune_offline(self) -> None:
        """Drop offline copies whose whole operation chain has been confirmed."""
        pending_targets = {op.target for op in self._state.pending}
        for token in list(self._state.offline_notes):
            local = LocalId(token)
            shadowed = shadow_target(local)
            if shadowed is not None:
                if shadowed not in pending_targets:
                    _ = self.offline.remove(local)
                continue
            resolved = self.translator.resolve(local)
            if resolved is None:
                continue
            if local not in pending_targets and resolved not in pending_targets:
                _ = self.offline.remove(local)

    def _overlay_pending_deletes(self) -> None:
        # A refresh must not resurrect notes whose delete is still queued.
        for op in self._state.pending:
            if op.kind != "delete":
                continue
            remote = self._resolve(op.target)
            if remote is None:
                continue
            if op.permanent:
                _ = self._state.mirror_remove(remote.id)
                continue
            note = self._state.mirror_get(remote.id)
            if note is not None and (note.status != "deleted" or note.synced):
                self._state.mirror_put(note.marked_deleted(synced=False))
