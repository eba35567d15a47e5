from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from offline_notes.errors import TranslationConflict
from offline_notes.identity import LOCAL_PREFIX, LocalId, RemoteId
from offline_notes.state import SyncState

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


class IdentifierTranslator:
    """Mints local identities and keeps the local -> remote mapping.

    Tokens are creation-time derived (milliseconds) and strictly increasing
    across the persisted session, so a token is never minted twice even after
    it has been translated.
    """

    def __init__(self, state: SyncState, *, clock_ms: Callable[[], int] = now_ms) -> None:
        self._state = state
        self._clock_ms = clock_ms

    def mint_local(self) -> LocalId:
        n = max(self._clock_ms(), self._state.last_minted + 1)
        self._state.last_minted = n
        return LocalId(f"{LOCAL_PREFIX}{n}")

    def record_translation(self, local: LocalId, remote: RemoteId) -> None:
        existing = self._state.translations.get(local.token)
        if existing is not None:
            if existing == remote.id:
                return
            raise TranslationConflict(local.token, existing, remote.id)
        self._state.translations[local.token] = remote.id
        logger.debug("translated %s -> %s", local.token, remote.id)

    def resolve(self, local: LocalId) -> RemoteId | None:
        remote_id = self._state.translations.get(local.token)
        return None if remote_id is None else RemoteId(remote_id)

    def reverse(self, remote: RemoteId) -> list[LocalId]:
        return [LocalId(tok) for tok, rid in self._state.translations.items() if rid == remote.id]
