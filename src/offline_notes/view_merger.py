from __future__ import annotations

from collections.abc import Mapping, Sequence

from offline_notes.identity import LocalId, RemoteId, shadow_of, shadow_target
from offline_notes.schemas import Note


def merge_view(
    remote_mirror: Sequence[Note],
    offline_notes: Mapping[str, Note],
    translations: Mapping[str, int],
) -> list[Note]:
    """Presented view = remote mirror + offline notes, de-duplicated.

    - No I/O, no caching; callers recompute after every mutation.
    - Mirror notes come first, in mirror order. A pending shadow replaces its
      remote note in place (same remote identity, synced=False).
    - Offline notes whose local token translates to a mirrored remote id are
      suppressed: the mirror copy wins.
    - Everything else follows, newest updated_at first (ties keep insertion order).
    """

    remote_ids = {n.id for n in remote_mirror if n.id is not None}
    view: list[Note] = []

    for note in remote_mirror:
        if note.id is None:
            continue
        shadow = offline_notes.get(shadow_of(RemoteId(note.id)).token)
        if shadow is not None:
            view.append(shadow.with_identity(note.identity, synced=False))
        else:
            view.append(note)

    leftovers: list[Note] = []
    for token, note in offline_notes.items():
        translated = translations.get(token)
        if translated is not None and translated in remote_ids:
            continue
        target = shadow_target(LocalId(token))
        if target is not None:
            if target.id in remote_ids:
                continue
            # Shadow of a note the last refresh no longer lists.
            leftovers.append(note.with_identity(target, synced=False))
            continue
        leftovers.append(note)

    # sorted() is stable with reverse=True.
    leftovers = sorted(leftovers, key=lambda n: n.updated_at, reverse=True)
    return view + leftovers
