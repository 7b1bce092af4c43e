"""Async database engine and session management."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from praxis.config import Settings
from praxis.storage.models import Base


class Database:
    def __init__(self, settings: Settings) -> None:
        engine_kwargs: dict = {"echo": settings.log_level == "debug"}
        if settings.db_url.startswith("postgresql"):
            engine_kwargs["pool_size"] = settings.db_pool_size
            engine_kwargs["max_overflow"] = settings.db_max_overflow
        self.engine = create_async_engine(settings.db_url, **engine_kwargs)
        self.session_factory = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)
        self._auto_create = settings.auto_create_schema

    async def connect(self) -> None:
        """Verify connection and table existence (or create tables when allowed)."""
        if self._auto_create:
            await self.create_schema()
            return
        async with self.engine.begin() as conn:
            existing = set(await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names()))
            expected = set(Base.metadata.tables)
            if not expected <= existing:
                missing = expected - existing
                raise RuntimeError(f"Missing database tables: {sorted(missing)}")

    async def create_schema(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def disconnect(self) -> None:
        """Dispose of connection pool."""
        await self.engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Yield an async session with automatic cleanup."""
        async with self.session_factory() as session:
            yield session

    async def __aenter__(self) -> "Database":
        await self.connect()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.disconnect()
