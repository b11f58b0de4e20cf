from __future__ import annotations

from typing import Awaitable, Callable, TypeVar

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession, AsyncEngine
from sqlalchemy.orm import DeclarativeBase

from barbershop.config import Config

T = TypeVar("T")


class Base(DeclarativeBase):
    pass


def make_engine(cfg: Config) -> AsyncEngine:
    return create_async_engine(cfg.database_url, pool_pre_ping=True)


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def init_db(engine: AsyncEngine) -> None:
    # models must be imported so their tables are registered on Base.metadata
    from barbershop import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def run_in_session(
    session_factory: async_sessionmaker[AsyncSession],
    fn: Callable[[AsyncSession], Awaitable[T]],
) -> T:
    """Execute async DB logic inside one committed transaction.

    Used by jobs and handlers that only need a single store call:
        bookings = await run_in_session(session_factory, lambda s: list_local_bookings(s, tg_id))
    """
    async with session_factory() as session:
        async with session.begin():
            return await fn(session)
