"""
Async SQLAlchemy engine and session factory.
Provides get_db for FastAPI route injection and session_scope for other callers.
"""
from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event, text
from sqlalchemy.engine import Connection, make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import Pool

from commentstore.core.config import settings


def _on_sqlite_connect(dbapi_connection: Any, connection_record: Any) -> None:
    # Driver-level autocommit; transactions are begun by _on_sqlite_begin instead
    dbapi_connection.isolation_level = None
    # SQLite ignores FOREIGN KEY clauses (including ON DELETE RESTRICT) unless asked
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _on_sqlite_begin(conn: Connection) -> None:
    conn.exec_driver_sql("BEGIN")


def configure_sqlite(engine: AsyncEngine) -> None:
    """
    Enforce foreign keys and let SQLAlchemy own transaction boundaries on a
    SQLite engine. The driver's implicit BEGIN otherwise breaks SAVEPOINT,
    which the service uses to undo a single failed write.
    """
    event.listen(engine.sync_engine, "connect", _on_sqlite_connect)
    event.listen(engine.sync_engine, "begin", _on_sqlite_begin)


def build_engine(
    database_url: str,
    *,
    echo: bool | None = None,
    poolclass: type[Pool] | None = None,
) -> AsyncEngine:
    """
    Create an async engine with options suited to the backend in the URL.
    PostgreSQL gets a sized, pre-pinged pool and a per-command timeout;
    SQLite gets a lock timeout and foreign key enforcement.
    Passing ``poolclass`` (Alembic uses NullPool) skips the pool sizing.
    """
    url = make_url(database_url)
    echo = settings.DEBUG if echo is None else echo

    if url.get_backend_name() == "sqlite":
        engine = create_async_engine(
            url,
            echo=echo,
            poolclass=poolclass,
            connect_args={
                "check_same_thread": False,
                "timeout": settings.DB_COMMAND_TIMEOUT,
            },
        )
        configure_sqlite(engine)
        return engine

    connect_args: dict[str, Any] = {}
    if url.get_driver_name() == "asyncpg":
        connect_args["command_timeout"] = settings.DB_COMMAND_TIMEOUT

    if poolclass is not None:
        return create_async_engine(
            url, echo=echo, poolclass=poolclass, connect_args=connect_args
        )

    return create_async_engine(
        url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_recycle=settings.DB_POOL_RECYCLE,
        connect_args=connect_args,
    )


async def ping(bind: AsyncEngine) -> None:
    """Round-trip a trivial query; raises whatever the driver raises when the store is down."""
    async with bind.connect() as conn:
        await conn.execute(text("SELECT 1"))


def build_sessionmaker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# ── Engine ────────────────────────────────────────────────────────────────────
engine = build_engine(settings.DATABASE_URL)

# ── Session factory ───────────────────────────────────────────────────────────
AsyncSessionLocal = build_sessionmaker(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that yields an async database session.
    Commits when the request succeeds, rolls back on any exception.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@asynccontextmanager
async def session_scope(
    factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncGenerator[AsyncSession, None]:
    """
    Transactional scope for callers outside FastAPI (jobs, import tooling).

        async with session_scope() as db:
            await comment_service.moderate_comment(db, ...)
    """
    async with (factory or AsyncSessionLocal)() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
