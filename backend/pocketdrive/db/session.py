"""Async engine and session handling for the metadata store."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class Database:
    """One engine + session factory, created at startup and disposed at shutdown."""

    def __init__(self, url: str, echo: bool = False) -> None:
        self.url = url
        self._engine = create_async_engine(url, echo=echo)
        self._async_session = async_sessionmaker(
            self._engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
        )

    async def init_db(self) -> None:
        """Create tables if they do not exist."""
        # Register models with Base before create_all
        from pocketdrive.files import models  # noqa: F401

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Yield an async session; commit on success, roll back on error."""
        async with self._async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def dispose(self) -> None:
        await self._engine.dispose()
