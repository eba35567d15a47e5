from __future__ import annotations

from datetime import datetime, timedelta, timezone

from offline_notes.identity import LocalId, RemoteId
from offline_notes.schemas import Note
from offline_notes.view_merger import merge_view


T0 = datetime(2026, 3, 1, tzinfo=timezone.utc)


def _remote(note_id: int, title: str, **extra: object) -> Note:
    return Note.model_validate({"id": note_id, "title": title, "synced": True, **extra})


def _offline(token: str, title: str, minutes: int = 0) -> Note:
    ts = T0 + timedelta(minutes=minutes)
    return Note(local_id=token, title=title, created_at=ts, updated_at=ts)


def test_mirror_first_then_offline_notes_newest_first() -> None:
    mirror = [_remote(2, "two"), _remote(1, "one")]
    offline = {
        "local-1": _offline("local-1", "older", minutes=1),
        "local-2": _offline("local-2", "newer", minutes=5),
        "local-3": _offline("local-3", "same-as-older", minutes=1),
    }

    view = merge_view(mirror, offline, {})

    assert [n.title for n in view] == ["two", "one", "newer", "older", "same-as-older"]
    assert [n.synced for n in view] == [True, True, False, False, False]


def test_translated_offline_note_is_suppressed_once_mirrored() -> None:
    mirror = [_remote(10, "server copy")]
    offline = {"local-1": _offline("local-1", "offline copy")}

    view = merge_view(mirror, offline, {"local-1": 10})

    assert [(n.identity, n.title) for n in view] == [(RemoteId(10), "server copy")]


def test_translated_offline_note_stays_visible_until_mirror_has_it() -> None:
    offline = {"local-1": _offline("local-1", "offline copy")}

    view = merge_view([], offline, {"local-1": 10})

    assert [n.identity for n in view] == [LocalId("local-1")]


def test_shadow_replaces_its_remote_note_in_place() -> None:
    mirror = [_remote(6, "six"), _remote(5, "five"), _remote(4, "four")]
    shadow = Note(local_id="remote-5", title="edited offline", updated_at=T0)

    view = merge_view(mirror, {"remote-5": shadow}, {})

    assert [n.title for n in view] == ["six", "edited offline", "four"]
    edited = view[1]
    assert edited.identity == RemoteId(5)
    assert edited.synced is False
    assert len(view) == 3


def test_shadow_of_unlisted_note_is_presented_under_its_remote_identity() -> None:
    shadow = Note(local_id="remote-9", title="orphan", updated_at=T0)

    view = merge_view([], {"remote-9": shadow}, {})

    assert len(view) == 1
    assert view[0].identity == RemoteId(9)
    assert view[0].synced is False


def test_merge_view_does_not_mutate_inputs() -> None:
    mirror = [_remote(5, "five")]
    offline = {"remote-5": Note(local_id="remote-5", title="x")}

    _ = merge_view(mirror, offline, {})

    assert mirror[0].title == "five"
    assert offline["remote-5"].local_id == "remote-5"
