from __future__ import annotations

from collections.abc import AsyncGenerator

import pytest

from offline_notes.db import dispose_engine_cache


@pytest.fixture(scope="module")
def anyio_backend() -> str:
    # SQLAlchemy's asyncio extension and aiosqlite only run under asyncio.
    return "asyncio"


@pytest.fixture(autouse=True)
async def _dispose_engine_cache_per_test(  # pyright: ignore[reportUnusedFunction]
    anyio_backend: object,  # noqa: ARG001
) -> AsyncGenerator[None, None]:
    # Dispose the cached AsyncEngine (aiosqlite worker thread) before the
    # per-test event loop is torn down.
    _ = anyio_backend
    yield
    await dispose_engine_cache()
