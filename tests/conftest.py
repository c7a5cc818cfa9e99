"""Shared test fixtures for repjan."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from repjan.config import Settings
from repjan.database import ensure_tables
from repjan.services.store_service import CacheStore
from repjan.snapshot import RepositorySnapshot

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator
    from pathlib import Path

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


class FakeClock:
    """Manually advanced clock for deterministic timestamps."""

    def __init__(self, start: datetime = NOW) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def make_repo(name: str = "repo", owner: str = "alice", **overrides: Any) -> RepositorySnapshot:
    """Build a snapshot with sensible defaults; ``days`` sets both age fields."""
    days = overrides.pop("days", overrides.get("days_since_activity", 10))
    fields: dict[str, Any] = {
        "owner": owner,
        "name": name,
        "description": f"{name} description",
        "stars": 1,
        "forks": 0,
        "primary_language": "Python",
        "pushed_at": NOW - timedelta(days=days),
        "created_at": NOW - timedelta(days=days + 100),
        "days_since_activity": days,
    }
    fields.update(overrides)
    return RepositorySnapshot(**fields)


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Create test settings with temporary paths."""
    return Settings(
        _env_file=None,  # type: ignore[call-arg]
        data_dir=tmp_path / "data",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        github_token="test-token",
        export_dir=tmp_path / "exports",
    )


@pytest.fixture
async def db_engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine]:
    """Create a test database engine with the cache tables in place."""
    engine = create_async_engine(test_settings.resolved_database_url, echo=False)
    await ensure_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(session_factory: async_sessionmaker[AsyncSession], clock: FakeClock) -> CacheStore:
    return CacheStore(session_factory, clock=clock)
