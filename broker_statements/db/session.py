from __future__ import annotations

import os

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from broker_statements.core.config import DEFAULT_DATABASE_URL
from broker_statements.db.models import Base


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


_ENGINE: AsyncEngine | None = None
_SESSION_FACTORY: async_sessionmaker[AsyncSession] | None = None


def get_engine(url: str | None = None) -> AsyncEngine:
    global _ENGINE, _SESSION_FACTORY
    if _ENGINE is not None and url is None:
        return _ENGINE
    _ENGINE = create_async_engine(url or get_database_url(), future=True, echo=False)
    _SESSION_FACTORY = async_sessionmaker(_ENGINE, expire_on_commit=False)
    return _ENGINE


def get_session_factory(url: str | None = None) -> async_sessionmaker[AsyncSession]:
    if _SESSION_FACTORY is None or url is not None:
        get_engine(url)
    if _SESSION_FACTORY is None:
        raise RuntimeError("Session factory was not initialised")
    return _SESSION_FACTORY


async def init_db(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

