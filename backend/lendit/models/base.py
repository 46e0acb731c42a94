"""SQLAlchemy base, async engine setup, DecimalText type, and SQLite pragmas."""

from __future__ import annotations

import json
from decimal import Decimal
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import String, Text, TypeDecorator

DEFAULT_BUSY_TIMEOUT_MS = 5000


class DecimalText(TypeDecorator[Decimal]):
    """Store Python Decimal as TEXT in SQLite for exact precision.

    All monetary values (rental cost, fees, payouts, bond amounts) and
    engine-hour readings use this type to avoid floating-point drift.
    """

    impl = String
    cache_ok = True

    def process_bind_param(
        self,
        value: Decimal | None,
        dialect: Any,
    ) -> str | None:
        if value is None:
            return None
        return str(value)

    def process_result_value(
        self,
        value: str | None,
        dialect: Any,
    ) -> Decimal | None:
        if value is None:
            return None
        return Decimal(value)


class JSONText(TypeDecorator[dict[str, Any]]):
    """Store a JSON object as TEXT. Decimals are written as strings."""

    impl = Text
    cache_ok = True

    def process_bind_param(
        self,
        value: dict[str, Any] | None,
        dialect: Any,
    ) -> str | None:
        if value is None:
            return None
        return json.dumps(value, default=str, sort_keys=True)

    def process_result_value(
        self,
        value: str | None,
        dialect: Any,
    ) -> dict[str, Any] | None:
        if value is None:
            return None
        loaded: dict[str, Any] = json.loads(value)
        return loaded


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def set_sqlite_pragmas(
    dbapi_connection: Any,
    connection_record: Any,
    busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
) -> None:
    """Set SQLite pragmas on every new connection.

    SQLite pragmas are per-connection, not per-database, so they must be
    set every time a connection is opened.
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def register_engine_events(
    engine: Engine,
    busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
) -> None:
    """Register SQLite pragma listener on an engine."""

    def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        set_sqlite_pragmas(dbapi_connection, connection_record, busy_timeout_ms)

    event.listen(engine, "connect", _on_connect)


def create_session_factory(
    database_url: str,
    busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
) -> async_sessionmaker[AsyncSession]:
    """Build an async session factory for the given database URL.

    Usage with config::

        config = AppConfig()
        factory = create_session_factory(config.database_url, config.db_busy_timeout_ms)
    """
    engine = create_async_engine(database_url, echo=False)
    if engine.dialect.name == "sqlite":
        register_engine_events(engine.sync_engine, busy_timeout_ms)
    return async_sessionmaker(engine, expire_on_commit=False)
