from __future__ import annotations

from collections.abc import Collection, Iterator
from datetime import datetime
from typing import Any

from offline_notes.identity import Identity, identity_fields
from offline_notes.schemas import OpKind, PendingOperation, utc_now
from offline_notes.state import SyncState


class LocalMutationLog:
    """Ordered log of writes waiting to be replayed against the remote store.

    Entries are removed by op_id, never by position: the log can grow while a
    reconciliation pass is awaiting the network.
    """

    def __init__(self, state: SyncState) -> None:
        self._state = state

    def __len__(self) -> int:
        return len(self._state.pending)

    def __iter__(self) -> Iterator[PendingOperation]:
        return iter(list(self._state.pending))

    def append(
        self,
        kind: OpKind,
        target: Identity,
        *,
        payload: dict[str, Any] | None = None,
        permanent: bool = False,
        now: datetime | None = None,
    ) -> PendingOperation:
        local_id, remote_id = identity_fields(target)
        op = PendingOperation(
            seq=self._state.next_seq,
            kind=kind,
            local_id=local_id,
            remote_id=remote_id,
            payload=dict(payload) if payload is not None else None,
            permanent=permanent,
            enqueued_at=now or utc_now(),
        )
        self._state.next_seq += 1
        self._state.pending.append(op)
        return op

    def snapshot(self) -> list[PendingOperation]:
        """Copy in replay order: enqueued_at, ties by enqueue order."""
        return sorted(self._state.pending, key=PendingOperation.sort_key)

    def remove(self, op_ids: Collection[str]) -> int:
        if not op_ids:
            return 0
        before = len(self._state.pending)
        self._state.pending = [op for op in self._state.pending if op.op_id not in op_ids]
        return before - len(self._state.pending)

    def for_targets(self, targets: Collection[Identity]) -> list[PendingOperation]:
        return [op for op in self._state.pending if op.target in targets]

    def has_pending(self, targets: Collection[Identity]) -> bool:
        return any(op.target in targets for op in self._state.pending)

    def purge(self, targets: Collection[Identity]) -> list[PendingOperation]:
        purged = self.for_targets(targets)
        self.remove({op.op_id for op in purged})
        return purged
