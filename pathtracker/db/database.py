"""
Database engine lifecycle and session management.
"""
from __future__ import annotations

import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from pathtracker.core.config import settings
from pathtracker.core.logging import logger
from pathtracker.db.tables import Base


class Database:
    """Owned connection pool for the relational store.

    Constructed explicitly, opened by the application lifespan and handed to
    every service that needs storage. Nothing here is created lazily at import.
    """

    def __init__(
        self,
        url: str,
        *,
        pool_size: int = 20,
        max_overflow: int = 10,
        pool_timeout: float = 5.0,
        echo: bool = False,
    ) -> None:
        self.url = url
        self._pool_size = pool_size
        self._max_overflow = max_overflow
        self._pool_timeout = pool_timeout
        self._echo = echo
        self._engine: AsyncEngine | None = None
        self._sessionmaker: async_sessionmaker[AsyncSession] | None = None

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("database is not open")
        return self._engine

    def open(self) -> None:
        if self._engine is not None:
            return

        url = make_url(self.url)
        engine_kwargs: dict[str, Any] = {"echo": self._echo, "pool_pre_ping": True}
        if url.get_backend_name() != "sqlite":
            engine_kwargs.update(
                pool_size=self._pool_size,
                max_overflow=self._max_overflow,
                pool_timeout=self._pool_timeout,
            )
        if url.get_driver_name() == "psycopg":
            engine_kwargs["connect_args"] = {"connect_timeout": max(1, int(self._pool_timeout))}

        self._engine = create_async_engine(self.url, **engine_kwargs)
        self._sessionmaker = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        logger.info("database_opened", backend=url.get_backend_name())

    async def close(self) -> None:
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._sessionmaker = None
        logger.info("database_closed")

    async def create_schema(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Yield a session that commits on success and rolls back on error."""
        if self._sessionmaker is None:
            raise RuntimeError("database is not open")
        async with self._sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def ping(self) -> dict[str, Any]:
        start = time.perf_counter()
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError, RuntimeError) as exc:
            logger.warning(
                "database_ping_failed",
                error_type=type(exc).__name__,
                error_message=str(exc),
            )
            return {
                "status": "unhealthy",
                "latency_ms": round((time.perf_counter() - start) * 1000),
                "error": "Database connection failed",
            }
        return {
            "status": "healthy",
            "latency_ms": round((time.perf_counter() - start) * 1000),
        }


def build_database(database_url: str | None = None) -> Database:
    return Database(
        database_url or settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_timeout=settings.database_pool_timeout_seconds,
        echo=settings.database_echo,
    )
