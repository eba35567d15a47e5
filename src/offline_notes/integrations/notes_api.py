from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Protocol

import httpx

from offline_notes.errors import NetworkUnavailable, NotFound, ServerError, Unauthorized
from offline_notes.schemas import Note


class RemoteStore(Protocol):
    async def list_notes(self) -> list[Note]: ...

    async def get_note(self, note_id: int) -> Note: ...

    async def create_note(
        self, payload: dict[str, Any], *, idempotency_key: str | None = None
    ) -> Note: ...

    async def update_note(self, note_id: int, payload: dict[str, Any]) -> Note: ...

    async def delete_note(self, note_id: int, *, permanent: bool = False) -> None: ...


def _parse_datetime(value: object) -> datetime | None:
    if isinstance(value, (int, float)):
        # Epoch milliseconds.
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if not isinstance(value, str) or not value:
        return None
    try:
        # Allow trailing Z.
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _first(obj: dict[str, Any], *keys: str) -> object:
    for key in keys:
        if key in obj:
            return obj[key]
    return None


def _parse_note_id(obj: dict[str, Any]) -> int | None:
    v = obj.get("id")
    if isinstance(v, bool):
        return None
    if isinstance(v, int):
        return v
    if isinstance(v, str) and v.isdigit():
        return int(v)
    return None


def _parse_note(obj: dict[str, Any]) -> Note:
    note_id = _parse_note_id(obj)
    if note_id is None:
        raise ServerError(f"cannot parse note id: {obj}")

    created_at = _parse_datetime(_first(obj, "createdAt", "created_at"))
    updated_at = _parse_datetime(_first(obj, "updatedAt", "updated_at"))
    created_at = created_at or updated_at or datetime.now(timezone.utc)

    status = obj.get("status")
    color = obj.get("color")
    priority = obj.get("priority")
    return Note(
        id=note_id,
        title=str(obj.get("title") or ""),
        content=str(obj.get("content") or ""),
        format=str(obj.get("format") or "markdown"),
        color=color if isinstance(color, str) and color else None,
        status="deleted" if status == "deleted" else "active",
        priority=priority if isinstance(priority, int) and not isinstance(priority, bool) else 0,
        created_at=created_at,
        updated_at=updated_at or created_at,
        synced=True,
    )


def _extract_list(data: object) -> list[dict[str, Any]]:
    if isinstance(data, list):
        return [x for x in data if isinstance(x, dict)]
    if isinstance(data, dict):
        for key in ("notes", "items", "data"):
            if isinstance(data.get(key), list):
                return [x for x in data[key] if isinstance(x, dict)]
    return []


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return f"{resp.status_code} {resp.text[:300]}"
    if isinstance(body, dict):
        msg = body.get("message") or body.get("error")
        if isinstance(msg, str) and msg:
            return msg
    return f"{resp.status_code} {resp.text[:300]}"


def _unwrap(resp: httpx.Response, what: str) -> object:
    """Map a response onto the error taxonomy and return the envelope's data.

    The notes API answers {"success": bool, "data": ..., "message": str}.
    Bodies without a "success" key are returned as-is.
    """
    code = resp.status_code
    if code in (401, 403):
        raise Unauthorized(f"{what}: {_error_message(resp)}", status_code=code)
    if code == 404:
        raise NotFound(f"{what}: {_error_message(resp)}", status_code=code)
    if not 200 <= code < 300:
        raise ServerError(f"{what} failed: {_error_message(resp)}", status_code=code)

    if code == 204 or not resp.content:
        return None
    try:
        body = resp.json()
    except ValueError as e:
        raise ServerError(f"{what} returned a non-JSON body", status_code=code) from e

    if isinstance(body, dict) and "success" in body:
        if not body.get("success"):
            msg = body.get("message")
            raise ServerError(
                f"{what} failed: {msg if isinstance(msg, str) and msg else 'success=false'}",
                status_code=code,
            )
        return body.get("data")
    return body


class HttpxNotesAPI:
    def __init__(
        self,
        *,
        base_url: str,
        bearer_token: str,
        timeout_seconds: float,
        notes_path: str = "/api/notes",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._notes_path = "/" + notes_path.strip("/")
        self._token = bearer_token.strip()
        self._timeout = timeout_seconds
        self._client = client

    def _headers(self) -> dict[str, str]:
        if not self._token:
            raise Unauthorized("notes api bearer token is empty")
        return {"Authorization": f"Bearer {self._token}"}

    def _url(self, note_id: int | None = None) -> str:
        if note_id is None:
            return f"{self._base_url}{self._notes_path}"
        return f"{self._base_url}{self._notes_path}/{note_id}"

    async def _request(
        self,
        method: str,
        url: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
        extra_headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        headers = {**self._headers(), **(extra_headers or {})}
        try:
            if self._client is not None:
                return await self._client.request(
                    method, url, headers=headers, json=json, params=params
                )
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                return await client.request(method, url, headers=headers, json=json, params=params)
        except httpx.TransportError as e:
            # Connect/read errors and timeouts all mean "treat as offline".
            raise NetworkUnavailable(f"{method} {url}: {e!r}") from e

    async def list_notes(self) -> list[Note]:
        resp = await self._request("GET", self._url())
        data = _unwrap(resp, "list notes")
        return [_parse_note(x) for x in _extract_list(data)]

    async def get_note(self, note_id: int) -> Note:
        resp = await self._request("GET", self._url(note_id))
        data = _unwrap(resp, "get note")
        if not isinstance(data, dict):
            raise ServerError(f"get note succeeded but bad response: {data}")
        return _parse_note(data)

    async def create_note(
        self, payload: dict[str, Any], *, idempotency_key: str | None = None
    ) -> Note:
        extra = {"Idempotency-Key": idempotency_key} if idempotency_key else None
        resp = await self._request("POST", self._url(), json=payload, extra_headers=extra)
        data = _unwrap(resp, "create note")
        if not isinstance(data, dict):
            raise ServerError(f"create note succeeded but bad response: {data}")
        return _parse_note(data)

    async def update_note(self, note_id: int, payload: dict[str, Any]) -> Note:
        resp = await self._request("PUT", self._url(note_id), json=payload)
        data = _unwrap(resp, "update note")
        if not isinstance(data, dict):
            raise ServerError(f"update note succeeded but bad response: {data}")
        return _parse_note(data)

    async def delete_note(self, note_id: int, *, permanent: bool = False) -> None:
        params = {"permanent": "true"} if permanent else None
        resp = await self._request("DELETE", self._url(note_id), params=params)
        _ = _unwrap(resp, "delete note")


def notes_api_from_settings(client: httpx.AsyncClient | None = None) -> HttpxNotesAPI:
    from offline_notes.config import settings

    return HttpxNotesAPI(
        base_url=settings.notes_api_base_url,
        bearer_token=settings.notes_api_token,
        timeout_seconds=settings.notes_api_timeout_seconds,
        notes_path=settings.notes_api_notes_path,
        client=client,
    )
