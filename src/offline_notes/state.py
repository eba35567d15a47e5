from __future__ import annotations

from dataclasses import dataclass, field

from offline_notes.schemas import Note, NoteInput, PendingOperation


@dataclass
class SyncState:
    """Everything one client session owns.

    Injected into the router and the reconciler; persisted explicitly through
    SyncStateStore.load()/save().
    """

    # Last known server notes, in server order.
    remote_mirror: list[Note] = field(default_factory=list)
    # Local token -> note; insertion ordered.
    offline_notes: dict[str, Note] = field(default_factory=dict)
    # Enqueue order.
    pending: list[PendingOperation] = field(default_factory=list)
    # Local token -> server id.
    translations: dict[str, int] = field(default_factory=dict)
    # Highest number ever minted into a local token.
    last_minted: int = 0
    # Next PendingOperation.seq.
    next_seq: int = 1
    # Creates queued by older clients that only stored raw payloads.
    legacy_pending: list[NoteInput] = field(default_factory=list)

    def mirror_index(self, remote_id: int) -> int | None:
        for i, note in enumerate(self.remote_mirror):
            if note.id == remote_id:
                return i
        return None

    def mirror_get(self, remote_id: int) -> Note | None:
        idx = self.mirror_index(remote_id)
        return None if idx is None else self.remote_mirror[idx]

    def mirror_put(self, note: Note, *, prepend: bool = False) -> None:
        """Replace the copy with the same id in place, else insert."""
        if note.id is None:
            raise ValueError("mirror notes carry a server id")
        idx = self.mirror_index(note.id)
        if idx is not None:
            self.remote_mirror[idx] = note
        elif prepend:
            self.remote_mirror.insert(0, note)
        else:
            self.remote_mirror.append(note)

    def mirror_remove(self, remote_id: int) -> Note | None:
        idx = self.mirror_index(remote_id)
        if idx is None:
            return None
        return self.remote_mirror.pop(idx)
