"""Database connection management."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

# Registers every table on SQLModel.metadata before create_all runs.
import chatbridge.domain.entities  # noqa: F401

IN_MEMORY_PATH = ":memory:"


class Database:
    """Non-blocking database connection manager.

    Manages SQLite database connections using SQLModel and aiosqlite. An
    in-memory URL shares a single connection so that every session sees the
    same database.

    Attributes:
        url: SQLAlchemy connection URL.
        engine: Async database engine (available after initialize()).

    Example:
        >>> database = Database("sqlite+aiosqlite:///./data/chatbridge.db")
        >>> await database.initialize()
        >>> async with database.get_session() as session:
        ...     result = await session.execute(select(Channel))
        >>> await database.close()
    """

    def __init__(self, url: str) -> None:
        """Initialize Database with connection URL.

        Args:
            url: SQLAlchemy-style connection URL.

        Raises:
            ValueError: If URL is empty or invalid format.
        """
        if not url:
            raise ValueError("Database URL cannot be empty")

        self._validate_url(url)
        self._url = url
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    def _validate_url(self, url: str) -> None:
        parsed = urlparse(url)
        if not parsed.scheme or "+" not in parsed.scheme:
            raise ValueError(f"Invalid database URL format: {url}")

    @property
    def url(self) -> str:
        """Get the connection URL."""
        return self._url

    @property
    def engine(self) -> AsyncEngine:
        """Get the async engine.

        Raises:
            RuntimeError: If database is not initialized.
        """
        if self._engine is None:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        return self._engine

    @property
    def is_initialized(self) -> bool:
        """Return True between initialize() and close()."""
        return self._engine is not None

    def _sqlite_path(self) -> str | None:
        """Return the SQLite file path, or None for non-SQLite URLs."""
        parsed = urlparse(self._url)
        if not parsed.scheme.startswith("sqlite"):
            return None
        db_path = parsed.path
        if db_path.startswith("///"):
            db_path = db_path[3:]
        elif db_path.startswith("/"):
            db_path = db_path[1:]
        return db_path

    async def initialize(self) -> None:
        """Initialize database engine and create tables.

        Creates parent directories for a SQLite file if they don't exist,
        then creates the async engine and all registered SQLModel tables.
        """
        engine_options: dict[str, Any] = {"echo": False}
        db_path = self._sqlite_path()
        if db_path in (None, ""):
            pass
        elif db_path == IN_MEMORY_PATH:
            engine_options["poolclass"] = StaticPool
            engine_options["connect_args"] = {"check_same_thread": False}
        else:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self._engine = create_async_engine(self._url, **engine_options)
        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

        async with self._engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)

    async def close(self) -> None:
        """Close database connection and dispose engine."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None

    @asynccontextmanager
    async def get_session(self) -> AsyncIterator[AsyncSession]:
        """Get a database session.

        Yields:
            AsyncSession: Database session with auto-commit on success
                and auto-rollback on exception.

        Raises:
            RuntimeError: If database is not initialized or has been closed.
        """
        if self._session_factory is None:
            raise RuntimeError("Database not initialized or has been closed.")

        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
