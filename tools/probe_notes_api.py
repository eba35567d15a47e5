from __future__ import annotations

import argparse
import asyncio
import json
import logging
import re
from dataclasses import asdict
from typing import Any

import httpx

from offline_notes.client import NotesSyncClient
from offline_notes.config import settings
from offline_notes.connectivity import ConnectivityMonitor
from offline_notes.db import dispose_engine_cache, init_db
from offline_notes.errors import RemoteError
from offline_notes.integrations.notes_api import notes_api_from_settings


def _redact(value: Any) -> Any:
    # 输出前脱敏：token/authorization/password 一律打码
    if isinstance(value, dict):
        out: dict[str, Any] = {}
        for k, v in value.items():
            if re.search(r"token|authorization|password", str(k), re.IGNORECASE):
                out[k] = "***REDACTED***"
            else:
                out[k] = _redact(v)
        return out
    if isinstance(value, list):
        return [_redact(x) for x in value]
    return value


def _print_json(title: str, obj: Any) -> None:
    print(f"\n== {title} ==")
    print(json.dumps(_redact(obj), ensure_ascii=False, indent=2, default=str))


async def _run(args: argparse.Namespace) -> None:
    _print_json(
        "Settings",
        {
            "DATABASE_URL": settings.database_url,
            "NOTES_API_BASE_URL": settings.notes_api_base_url,
            "NOTES_API_TOKEN_SET": bool(settings.notes_api_token.strip()),
            "notes_url": settings.notes_url(),
            "health_url": settings.health_url(),
            "warnings": settings.security_warnings(),
        },
    )

    # 本地状态库不存在时先建表，避免首次运行直接报错
    await init_db()
    async with httpx.AsyncClient(timeout=settings.notes_api_timeout_seconds) as http:
        monitor = ConnectivityMonitor(health_url=settings.health_url(), client=http)
        online = await monitor.probe()
        print("\nonline:", online)

        api = notes_api_from_settings(client=http)
        client = await NotesSyncClient.open(remote=api, oracle=monitor, sync_on_reconnect=False)
        async with client:
            ops = client.pending_operations()
            _print_json(
                "Local queue",
                {
                    "pending": len(ops),
                    "offline_notes": len(client.state.offline_notes),
                    "translations": len(client.state.translations),
                    "ops": [op.model_dump(mode="json") for op in ops],
                },
            )

            # 服务端不可达时只展示本地队列
            if not online:
                print("\n== Remote probe skipped (server unreachable) ==")
                return

            # 远端探测（默认只读；仅 --sync 时才回放本地队列）
            try:
                notes = await api.list_notes()
            except RemoteError as e:
                _print_json("GET notes", {"error": str(e), "kind": e.kind})
            else:
                _print_json(
                    "GET notes",
                    {"count": len(notes), "first": [n.model_dump(mode="json") for n in notes[:3]]},
                )

            if args.sync:
                try:
                    report = await client.sync_pending()
                except RemoteError as e:
                    _print_json("sync", {"error": str(e), "kind": e.kind})
                else:
                    _print_json("sync", asdict(report))

    await dispose_engine_cache()


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Probe the notes API and show the local offline queue (read-only by default)"
    )
    parser.add_argument(
        "--sync", action="store_true", help="replay the local queue against the server"
    )
    args = parser.parse_args()

    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
    asyncio.run(_run(args))


if __name__ == "__main__":
    main()
