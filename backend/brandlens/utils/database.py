"""
Database connection and session management
One explicit handle per process, opened at startup and closed at shutdown
"""

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from brandlens.config import Settings, get_settings
from brandlens.errors import PersistenceError
from brandlens.models import Base


def _to_async_url(database_url: str) -> str:
    """Convert a plain PostgreSQL URL to the asyncpg driver"""
    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return database_url


def _is_serverless() -> bool:
    """Check if running in serverless environment"""
    return bool(os.environ.get("VERCEL") or os.environ.get("AWS_LAMBDA_FUNCTION_NAME"))


class Database:
    """
    Persistence handle with a defined lifecycle.

    Created once, opened once, shared by every request or task in the
    process, and closed on shutdown. It is never re-created implicitly:
    using a closed handle raises PersistenceError.
    """

    def __init__(self, url: str, echo: bool = False, **engine_kwargs):
        self.url = _to_async_url(url)
        self.echo = echo
        self.engine_kwargs = engine_kwargs
        self._engine: Optional[AsyncEngine] = None
        self._session_maker: Optional[async_sessionmaker] = None

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, **overrides) -> "Database":
        """Build a handle from application settings"""
        settings = settings or get_settings()
        engine_kwargs = {"pool_pre_ping": True}

        if _is_serverless():
            engine_kwargs["poolclass"] = NullPool
        elif not settings.DATABASE_URL.startswith("sqlite"):
            engine_kwargs["pool_size"] = settings.DATABASE_POOL_SIZE
            engine_kwargs["max_overflow"] = settings.DATABASE_MAX_OVERFLOW

        engine_kwargs.update(overrides)
        return cls(settings.DATABASE_URL, echo=settings.DEBUG, **engine_kwargs)

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise PersistenceError("Database handle is not open")
        return self._engine

    async def open(self) -> "Database":
        """Create the engine and session factory"""
        if self._engine is not None:
            raise PersistenceError("Database handle is already open")

        self._engine = create_async_engine(self.url, echo=self.echo, **self.engine_kwargs)
        self._session_maker = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        return self

    async def close(self) -> None:
        """Dispose of pooled connections"""
        if self._engine is not None:
            await self._engine.dispose()
        self._engine = None
        self._session_maker = None

    async def create_all(self) -> None:
        """Create tables that do not exist yet"""
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to create tables: {e}") from e

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Session scope: commit on success, roll back on error"""
        if self._session_maker is None:
            raise PersistenceError("Database handle is not open")

        async with self._session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a session from the app's handle"""
    database: Database = request.app.state.database
    async with database.session() as session:
        yield session
