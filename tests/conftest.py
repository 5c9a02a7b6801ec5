"""
Test configuration and shared fixtures.
Every test gets its own in-memory SQLite database with foreign keys enforced.
"""
from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from commentstore.core.dependencies import get_comment_service
from commentstore.core.limiter import limiter
from commentstore.db.ddl import create_schema
from commentstore.db.session import build_engine, build_sessionmaker, get_db
from commentstore.main import app
from commentstore.models.comment import ModerationStatus
from commentstore.services.comment_service import CommentService

# ── Test database ─────────────────────────────────────────────────────────────
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

START_TIME = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Deterministic UTC clock that advances one second per reading."""

    def __init__(self, start: datetime = START_TIME, step: timedelta = timedelta(seconds=1)) -> None:
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        value = self.now
        self.now += self.step
        return value


@dataclass(frozen=True)
class Scope:
    site_id: uuid.UUID
    feature_id: uuid.UUID
    module_id: uuid.UUID
    content_id: uuid.UUID

    def payload(self, **overrides: Any) -> dict[str, Any]:
        data: dict[str, Any] = {
            "site_id": self.site_id,
            "feature_id": self.feature_id,
            "module_id": self.module_id,
            "content_id": self.content_id,
            "body": "First!",
        }
        data.update(overrides)
        return data

    def json(self, **overrides: Any) -> dict[str, Any]:
        """Same as payload() with identifiers rendered for an HTTP body."""
        return {
            key: str(value) if isinstance(value, uuid.UUID) else value
            for key, value in self.payload(**overrides).items()
        }


def new_scope(site_id: uuid.UUID | None = None) -> Scope:
    return Scope(
        site_id=site_id or uuid.uuid4(),
        feature_id=uuid.uuid4(),
        module_id=uuid.uuid4(),
        content_id=uuid.uuid4(),
    )


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh schema per test, built the same way tooling builds it."""
    test_engine = build_engine(TEST_DATABASE_URL, echo=False)
    async with test_engine.begin() as conn:
        await create_schema(conn)
    yield test_engine
    await test_engine.dispose()


@pytest_asyncio.fixture
async def db(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session that rolls back after each test."""
    factory = build_sessionmaker(engine)
    async with factory() as session:
        try:
            yield session
            await session.rollback()
        finally:
            await session.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def service(clock: FakeClock) -> CommentService:
    return CommentService(default_status=ModerationStatus.APPROVED, clock=clock)


@pytest.fixture
def scope() -> Scope:
    return new_scope()


@pytest.fixture
def make_scope() -> Callable[..., Scope]:
    """Factory for additional content scopes, optionally on the same site."""
    return new_scope


@pytest_asyncio.fixture
async def client(
    db: AsyncSession, service: CommentService
) -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP test client with the test DB and service injected."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_comment_service] = lambda: service
    limiter.enabled = False

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    limiter.enabled = True
    app.dependency_overrides.clear()
