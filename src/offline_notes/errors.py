"""Error taxonomy shared by the router, the reconciler and the notes API client.

- NetworkUnavailable: degrade to the offline path; never a hard failure for writes.
- Unauthorized: surfaced verbatim so the caller can force re-authentication.
- NotFound: surfaced, never queued (nothing meaningful to retry).
- ServerError: transient; queued operations stay queued for the next pass.
- TranslationConflict: invariant violation, indicates a bug.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from offline_notes.schemas import MutationResult


RemoteErrorKind = Literal["unauthorized", "not_found", "server_error", "network_unavailable"]


class NotesSyncError(RuntimeError):
    pass


class RemoteError(NotesSyncError):
    kind: RemoteErrorKind = "server_error"

    def __init__(self, message: str = "", *, status_code: int | None = None) -> None:
        super().__init__(message or self.kind)
        self.message = message
        self.status_code = status_code


class NetworkUnavailable(RemoteError):
    kind: RemoteErrorKind = "network_unavailable"


class Unauthorized(RemoteError):
    kind: RemoteErrorKind = "unauthorized"

    # Set by the router when the write was captured locally before surfacing.
    captured: MutationResult | None = None


class NotFound(RemoteError):
    kind: RemoteErrorKind = "not_found"


class ServerError(RemoteError):
    kind: RemoteErrorKind = "server_error"


class TranslationConflict(NotesSyncError):
    def __init__(self, local_token: str, existing: int, incoming: int) -> None:
        super().__init__(
            f"local id {local_token} already translated to {existing}, refusing {incoming}"
        )
        self.local_token = local_token
        self.existing = existing
        self.incoming = incoming
