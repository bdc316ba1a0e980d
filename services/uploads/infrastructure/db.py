from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase


def _engine_options():
    return {
        "pool_pre_ping": True,
    }


class Base(DeclarativeBase):
    pass


def create_engine(dsn: str) -> AsyncEngine:
    return create_async_engine(dsn, **_engine_options())


def create_session_factory(engine: AsyncEngine):
    return async_sessionmaker(bind=engine, expire_on_commit=False)


async def create_tables(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
