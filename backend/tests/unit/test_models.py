"""Tests for database models, DecimalText/JSONText types, SQLite pragmas
and the booking guard triggers attached to the metadata.
"""

from __future__ import annotations

from collections.abc import Iterator
from decimal import Decimal
from pathlib import Path

import pytest
import sqlalchemy as sa
from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Session

from lendit.models.base import Base, register_engine_events
from lendit.models.booking import BookingEventModel, BookingModel, NotificationModel
from tests.factories import BOOKING_ID, make_booking_model, make_listing_model, persist

_TS = "2026-03-02T09:00:00.000000Z"


@pytest.fixture()
def sync_engine() -> Engine:
    """In-memory SQLite engine with pragmas, tables and triggers."""
    engine = sa.create_engine("sqlite:///:memory:")
    register_engine_events(engine)
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture()
def session(sync_engine: Engine) -> Iterator[Session]:
    with Session(sync_engine) as session:
        yield session


def _seed_booking(session: Session, status: str = "PENDING") -> None:
    # No relationship orders the inserts, so the listing goes in first
    session.add(make_listing_model())
    session.commit()
    booking = make_booking_model()
    booking.status = status
    session.add(booking)
    session.commit()


class TestSQLitePragmas:
    def test_wal_mode_enabled(self, tmp_path: Path) -> None:
        """WAL mode only works with file-based SQLite, not :memory:."""
        engine = sa.create_engine(f"sqlite:///{tmp_path / 'wal.db'}")
        register_engine_events(engine)
        with engine.connect() as conn:
            assert conn.execute(text("PRAGMA journal_mode")).scalar() == "wal"
        engine.dispose()

    def test_foreign_keys_enabled(self, sync_engine: Engine) -> None:
        with sync_engine.connect() as conn:
            assert conn.execute(text("PRAGMA foreign_keys")).scalar() == 1

    def test_busy_timeout_default(self, sync_engine: Engine) -> None:
        with sync_engine.connect() as conn:
            assert conn.execute(text("PRAGMA busy_timeout")).scalar() == 5000

    def test_busy_timeout_configurable(self) -> None:
        engine = sa.create_engine("sqlite:///:memory:")
        register_engine_events(engine, busy_timeout_ms=1234)
        with engine.connect() as conn:
            assert conn.execute(text("PRAGMA busy_timeout")).scalar() == 1234

    async def test_async_sessions_enforce_foreign_keys(
        self,
        db_session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        with pytest.raises(sa.exc.IntegrityError, match="FOREIGN KEY"):
            await persist(db_session_factory, make_booking_model())


class TestTableCreation:
    def test_all_tables_exist(self, sync_engine: Engine) -> None:
        assert set(inspect(sync_engine).get_table_names()) >= {
            "listing",
            "booking",
            "booking_event",
            "payment",
            "handover_checklist",
            "notification",
            "policy_page",
            "damage_report",
            "damage_report_photo",
        }

    def test_booking_snapshot_columns(self, sync_engine: Engine) -> None:
        columns = {col["name"] for col in inspect(sync_engine).get_columns("booking")}
        assert {
            "status",
            "version",
            "rental_subtotal",
            "platform_fee",
            "owner_payout_amount",
            "total_charged",
            "bond_amount_at_booking",
            "insurance_mode_snapshot",
            "insurance_snapshot",
            "platform_policy_version_accepted",
            "engine_hours_at_pickup",
            "engine_hours_used",
            "damage_status",
        } <= columns


class TestColumnTypes:
    def test_decimal_round_trip(self, session: Session) -> None:
        _seed_booking(session)
        row = session.execute(
            sa.select(BookingModel).where(BookingModel.id == BOOKING_ID)
        ).scalar_one()
        assert row.platform_fee == Decimal("8.25")
        assert isinstance(row.platform_fee_rate, Decimal)
        assert str(row.platform_fee_rate) == "0.015"

    def test_json_round_trip(self, session: Session) -> None:
        session.add(
            NotificationModel(
                user_id="renter-1",
                type="BOOKING_ACCEPTED",
                payload={"booking_id": BOOKING_ID, "amount": Decimal("1.50")},
                created_at=_TS,
            )
        )
        session.commit()
        row = session.execute(sa.select(NotificationModel)).scalar_one()
        assert row.payload == {"amount": "1.50", "booking_id": BOOKING_ID}


class TestConstraints:
    def test_invalid_status_rejected(self, session: Session) -> None:
        with pytest.raises(sa.exc.IntegrityError):
            _seed_booking(session, status="SHIPPED")

    def test_booking_requires_listing(self, session: Session) -> None:
        session.add(make_booking_model(listing_id="nonexistent"))
        with pytest.raises(sa.exc.IntegrityError):
            session.commit()


class TestBookingTriggers:
    """Guards that hold even for writes that bypass the services."""

    def _insert_event(self, session: Session) -> None:
        session.add(
            BookingEventModel(
                booking_id=BOOKING_ID,
                event_type="status_changed",
                old_state="PENDING",
                new_state="ACCEPTED",
                actor_id="owner-1",
                actor_role="OWNER",
                occurred_at=_TS,
                recorded_at=_TS,
            )
        )
        session.commit()

    def test_booking_event_update_rejected(self, session: Session) -> None:
        self._insert_event(session)
        with pytest.raises(sa.exc.IntegrityError, match="immutable"):
            session.execute(sa.update(BookingEventModel).values(reason="edited"))
            session.commit()

    def test_booking_event_delete_rejected(self, session: Session) -> None:
        self._insert_event(session)
        with pytest.raises(sa.exc.IntegrityError, match="immutable"):
            session.execute(sa.delete(BookingEventModel))
            session.commit()

    @pytest.mark.parametrize("terminal", ["DECLINED", "CANCELLED", "COMPLETED"])
    def test_terminal_status_locked(self, session: Session, terminal: str) -> None:
        _seed_booking(session, status=terminal)
        with pytest.raises(sa.exc.IntegrityError, match="booking status is terminal"):
            session.execute(
                sa.update(BookingModel)
                .where(BookingModel.id == BOOKING_ID)
                .values(status="IN_DISPUTE")
            )
            session.commit()

    def test_terminal_booking_other_columns_writable(self, session: Session) -> None:
        _seed_booking(session, status="COMPLETED")
        session.execute(
            sa.update(BookingModel)
            .where(BookingModel.id == BOOKING_ID)
            .values(damage_status="POTENTIAL_DAMAGE_REPORTED")
        )
        session.commit()

    def test_non_terminal_status_writable(self, session: Session) -> None:
        _seed_booking(session, status="PENDING")
        session.execute(
            sa.update(BookingModel)
            .where(BookingModel.id == BOOKING_ID)
            .values(status="ACCEPTED")
        )
        session.commit()

    def test_policy_version_write_once(self, session: Session) -> None:
        _seed_booking(session)
        with pytest.raises(sa.exc.IntegrityError, match="immutable"):
            session.execute(
                sa.update(BookingModel)
                .where(BookingModel.id == BOOKING_ID)
                .values(platform_policy_version_accepted=None)
            )
            session.commit()
