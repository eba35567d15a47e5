from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)


OnlineCallback = Callable[[], Awaitable[object]]


class ConnectivityOracle(Protocol):
    def is_online(self) -> bool: ...

    def on_became_online(self, callback: OnlineCallback) -> None: ...


class ConnectivityMonitor:
    """Online flag with an edge-triggered "became online" event.

    Callbacks fire once per offline -> online transition, in registration
    order. A failing callback is logged and does not stop the others.
    """

    def __init__(
        self,
        *,
        online: bool = False,
        health_url: str | None = None,
        timeout_seconds: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._online = online
        self._callbacks: list[OnlineCallback] = []
        self._health_url = health_url
        self._timeout = timeout_seconds
        self._client = client

    def is_online(self) -> bool:
        return self._online

    def on_became_online(self, callback: OnlineCallback) -> None:
        self._callbacks.append(callback)

    async def set_online(self, online: bool) -> None:
        was_online = self._online
        self._online = online
        if online and not was_online:
            logger.info("connectivity restored")
            for cb in list(self._callbacks):
                try:
                    await cb()
                except Exception:
                    logger.warning("became-online callback failed", exc_info=True)
        elif was_online and not online:
            logger.info("connectivity lost")

    async def probe(self) -> bool:
        """GET the health URL; any HTTP answer counts as reachable."""
        if not self._health_url:
            raise ValueError("health_url is not configured")
        try:
            if self._client is not None:
                _ = await self._client.get(self._health_url)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    _ = await client.get(self._health_url)
            online = True
        except httpx.TransportError:
            logger.debug("health probe failed url=%s", self._health_url, exc_info=True)
            online = False
        await self.set_online(online)
        return online
