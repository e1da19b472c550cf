"""
Database configuration and session management

The engine is built from an explicit Settings value; pool size follows
DATABASE_CONNECTION_LIMIT.
"""
from contextlib import asynccontextmanager
from typing import Tuple

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from order_seeder.core.config import Settings

Base = declarative_base()


def create_engine_and_sessionmaker(
    settings: Settings,
) -> Tuple[AsyncEngine, async_sessionmaker]:
    """
    Create the async engine and a session factory bound to it.

    Usage:
        engine, session_factory = create_engine_and_sessionmaker(settings)
        async with session_scope(session_factory) as session:
            ...
        await engine.dispose()
    """
    engine = create_async_engine(
        settings.DATABASE_URL,
        echo=settings.DEBUG,
        future=True,
        pool_size=settings.DATABASE_CONNECTION_LIMIT,
        max_overflow=0,
        pool_pre_ping=True,
    )
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    return engine, session_factory


@asynccontextmanager
async def session_scope(session_factory: async_sessionmaker):
    """
    One session, one transaction: commit on success, rollback on error.

    Usage:
        async with session_scope(session_factory) as db:
            db.add(...)
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
