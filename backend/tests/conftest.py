"""Shared test fixtures for the lendit booking engine."""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from lendit.models.base import Base, register_engine_events


@pytest.fixture
async def db_session_factory() -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """In-memory async SQLite with all tables, triggers and production pragmas."""
    engine = create_async_engine("sqlite+aiosqlite://", echo=False)
    register_engine_events(engine.sync_engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()
