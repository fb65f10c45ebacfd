from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from formbridge.core.config import get_settings
from formbridge.db.base import Base
from formbridge import models  # noqa: F401


def build_session_factory(database_url: str | None = None) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    engine = create_async_engine(database_url or get_settings().database_url, echo=False, pool_pre_ping=True)
    return engine, async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def init_models(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def database(database_url: str | None = None) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """Engine with tables created, disposed on exit."""
    engine, session_factory = build_session_factory(database_url)
    try:
        await init_models(engine)
        yield session_factory
    finally:
        await engine.dispose()
