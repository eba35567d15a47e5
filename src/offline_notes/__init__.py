"""Offline mutation queue and reconciliation engine for a notes client."""

from offline_notes.client import NotesSyncClient
from offline_notes.identity import LocalId, RemoteId
from offline_notes.schemas import MutationResult, Note, NoteInput, NotePatch, SyncReport

__all__ = [
    "LocalId",
    "MutationResult",
    "Note",
    "NoteInput",
    "NotePatch",
    "NotesSyncClient",
    "RemoteId",
    "SyncReport",
]
