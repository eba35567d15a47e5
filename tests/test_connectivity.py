from __future__ import annotations

import logging

import httpx
import pytest

from offline_notes.connectivity import ConnectivityMonitor


@pytest.mark.anyio
async def test_became_online_fires_once_per_transition() -> None:
    monitor = ConnectivityMonitor(online=False)
    fired: list[str] = []

    async def on_online() -> None:
        fired.append("up")

    monitor.on_became_online(on_online)

    await monitor.set_online(True)
    await monitor.set_online(True)
    await monitor.set_online(False)
    await monitor.set_online(True)

    assert fired == ["up", "up"]
    assert monitor.is_online()


@pytest.mark.anyio
async def test_failing_callback_is_logged_and_others_still_run(
    caplog: pytest.LogCaptureFixture,
) -> None:
    monitor = ConnectivityMonitor()
    fired: list[str] = []

    async def broken() -> None:
        raise RuntimeError("boom")

    async def healthy() -> None:
        fired.append("ok")

    monitor.on_became_online(broken)
    monitor.on_became_online(healthy)

    with caplog.at_level(logging.WARNING, logger="offline_notes.connectivity"):
        await monitor.set_online(True)

    assert fired == ["ok"]
    assert "became-online callback failed" in caplog.text


@pytest.mark.anyio
async def test_probe_treats_any_http_answer_as_online() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"success": False})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        monitor = ConnectivityMonitor(
            health_url="https://notes.example.com/api/notes", client=client
        )
        assert await monitor.probe() is True
        assert monitor.is_online()


@pytest.mark.anyio
async def test_probe_transport_error_goes_offline() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        monitor = ConnectivityMonitor(
            online=True, health_url="https://notes.example.com/api/notes", client=client
        )
        assert await monitor.probe() is False
        assert not monitor.is_online()


@pytest.mark.anyio
async def test_probe_requires_a_health_url() -> None:
    with pytest.raises(ValueError):
        await ConnectivityMonitor().probe()
