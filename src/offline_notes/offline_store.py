from __future__ import annotations

from collections.abc import Iterator

from offline_notes.identity import LocalId, RemoteId, shadow_of
from offline_notes.schemas import Note
from offline_notes.state import SyncState


class OfflineEntityStore:
    """Notes created or last modified while offline, keyed by local token.

    Every member is unsynced; members leave only through remove().
    """

    def __init__(self, state: SyncState) -> None:
        self._state = state

    def __len__(self) -> int:
        return len(self._state.offline_notes)

    def __contains__(self, local: LocalId) -> bool:
        return local.token in self._state.offline_notes

    def __iter__(self) -> Iterator[Note]:
        return iter(list(self._state.offline_notes.values()))

    def get(self, local: LocalId) -> Note | None:
        return self._state.offline_notes.get(local.token)

    def put(self, note: Note) -> Note:
        if note.local_id is None:
            raise ValueError("offline notes are keyed by a local identity")
        if note.synced:
            note = note.model_copy(update={"synced": False})
        self._state.offline_notes[note.local_id] = note
        return note

    def remove(self, local: LocalId) -> Note | None:
        return self._state.offline_notes.pop(local.token, None)

    def shadow(self, remote: RemoteId) -> Note | None:
        return self.get(shadow_of(remote))
