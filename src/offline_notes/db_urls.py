from __future__ import annotations


def normalize_database_url_for_async(database_url: str) -> str:
    """
    Normalize DATABASE_URL to the async driver used at runtime.

    - SQLite: sqlite+aiosqlite://...
    """
    url = (database_url or "").strip()
    if not url:
        return url

    # 已显式指定 driver 的 URL 原样返回
    if url.startswith("sqlite://") and "+aiosqlite" not in url:
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)

    return url


def normalize_database_url_for_alembic(database_url: str) -> str:
    """
    Alembic connects with a synchronous engine (engine_from_config).

    Strip async drivers so migrations do not try to run on aiosqlite:
    - sqlite+aiosqlite:// -> sqlite://
    """
    url = (database_url or "").strip()
    if not url:
        return url

    if url.startswith("sqlite+aiosqlite://"):
        return url.replace("sqlite+aiosqlite://", "sqlite://", 1)

    return url
