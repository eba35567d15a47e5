from __future__ import annotations

from contextlib import asynccontextmanager
from functools import lru_cache
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from offline_notes.config import settings
from offline_notes.db_urls import normalize_database_url_for_async


# 所有创建过的 engine；reset 只清缓存，dispose 时需逐个关闭
_engines: list[AsyncEngine] = []


def _create_async_engine(database_url: str) -> AsyncEngine:
    # 运行时统一使用异步 driver（sqlite+aiosqlite），避免同步 driver 混入
    url = normalize_database_url_for_async(database_url)
    return create_async_engine(url, echo=False, pool_pre_ping=True)


@lru_cache(maxsize=4)
def _engine_for(database_url: str) -> AsyncEngine:
    engine = _create_async_engine(database_url)
    _engines.append(engine)
    return engine


def get_engine() -> AsyncEngine:
    # 允许测试/工具通过 settings.database_url 切换数据库；按 URL 缓存 engine
    return _engine_for(settings.database_url)


def reset_engine_cache() -> None:
    _engine_for.cache_clear()


async def dispose_engine_cache() -> None:
    # 在事件循环结束前关闭全部 engine（包括 reset 之后被换下的旧 engine），
    # 否则 aiosqlite 的工作线程会残留
    while _engines:
        await _engines.pop().dispose()
    _engine_for.cache_clear()


async def init_db() -> None:
    # 仅用于本地/测试场景兜底；正式客户端以 Alembic 迁移为准
    from offline_notes import models  # noqa: F401

    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    session_maker = async_sessionmaker(get_engine(), class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        yield session
