"""Persistence collaborator for the lifecycle service.

The lifecycle service needs only: load the facts the validator needs,
and atomically move a booking from an expected (status, version) to a
new status. SqlBookingRepository implements both over SQLAlchemy;
InMemoryBookingRepository keeps facts in a dict for tests and dry runs.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable

import structlog
from sqlalchemy import exists, select, update
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lendit.bookings.types import BookingState, HandoverType
from lendit.errors import BookingNotFoundError, ConcurrentModificationError, PersistenceError
from lendit.models.booking import BookingModel, HandoverChecklistModel, PaymentModel
from lendit.utils.time import now_timestamp

log = structlog.get_logger()

PAYMENT_SUCCEEDED = "succeeded"
RETURN_CHECKLIST = HandoverType.RETURN.value

# Columns a status write may carry alongside the status change
SIDE_WRITE_COLUMNS = frozenset(
    {
        "engine_hours_at_pickup",
        "engine_hours_at_return",
        "engine_hours_used",
        "actual_pickup_time",
        "actual_return_time",
    }
)


@dataclass(frozen=True)
class BookingFacts:
    """Minimal snapshot the validator and notifier need."""

    id: str
    status: BookingState
    version: int
    renter_id: str
    owner_id: str
    listing_id: str
    is_payment_complete: bool
    is_inspection_complete: bool
    engine_hours_at_pickup: Decimal | None = None


@runtime_checkable
class BookingRepository(Protocol):
    async def load_facts(self, booking_id: str) -> BookingFacts | None:
        """Load a booking's transition facts, or None if it doesn't exist."""
        ...

    async def update_status(
        self,
        booking_id: str,
        expected_status: BookingState,
        expected_version: int,
        new_status: BookingState,
        side_writes: Mapping[str, Any] | None = None,
    ) -> int:
        """Compare-and-set the status; returns the new version.

        Raises:
            ConcurrentModificationError: If status/version moved on.
            PersistenceError: If the write itself failed.
        """
        ...


def _storage_message(exc: SQLAlchemyError) -> str:
    if isinstance(exc, DBAPIError) and exc.orig is not None:
        return str(exc.orig)
    return str(exc)


def _check_side_writes(side_writes: Mapping[str, Any] | None) -> dict[str, Any]:
    extra = dict(side_writes or {})
    unknown = set(extra) - SIDE_WRITE_COLUMNS
    if unknown:
        raise ValueError(f"Unsupported side writes: {sorted(unknown)}")
    return extra


def _conflict(
    booking_id: str,
    expected_status: BookingState,
    found_status: str,
) -> ConcurrentModificationError:
    return ConcurrentModificationError(
        f"Booking {booking_id} status already changed "
        f"(expected {expected_status.value}, found {found_status}). "
        "Reload the booking and retry."
    )


class SqlBookingRepository:
    """SQLAlchemy implementation with optimistic (status, version) checks."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def load_facts(self, booking_id: str) -> BookingFacts | None:
        payment_ok = (
            exists()
            .where(
                PaymentModel.booking_id == BookingModel.id,
                PaymentModel.status == PAYMENT_SUCCEEDED,
            )
            .correlate(BookingModel)
        )
        inspection_ok = (
            exists()
            .where(
                HandoverChecklistModel.booking_id == BookingModel.id,
                HandoverChecklistModel.type == RETURN_CHECKLIST,
                HandoverChecklistModel.completed_at.is_not(None),
            )
            .correlate(BookingModel)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(
                        BookingModel,
                        payment_ok.label("payment_ok"),
                        inspection_ok.label("inspection_ok"),
                    ).where(BookingModel.id == booking_id)
                )
                row = result.one_or_none()
        except SQLAlchemyError as exc:
            raise PersistenceError(_storage_message(exc)) from exc

        if row is None:
            return None
        booking, payment_complete, inspection_complete = row
        return BookingFacts(
            id=booking.id,
            status=BookingState(booking.status),
            version=booking.version,
            renter_id=booking.renter_id,
            owner_id=booking.owner_id,
            listing_id=booking.listing_id,
            is_payment_complete=bool(payment_complete),
            is_inspection_complete=bool(inspection_complete),
            engine_hours_at_pickup=booking.engine_hours_at_pickup,
        )

    async def update_status(
        self,
        booking_id: str,
        expected_status: BookingState,
        expected_version: int,
        new_status: BookingState,
        side_writes: Mapping[str, Any] | None = None,
    ) -> int:
        extra = _check_side_writes(side_writes)
        new_version = expected_version + 1
        try:
            async with self._session_factory() as session, session.begin():
                result = await session.execute(
                    update(BookingModel)
                    .where(
                        BookingModel.id == booking_id,
                        BookingModel.status == expected_status.value,
                        BookingModel.version == expected_version,
                    )
                    .values(
                        status=new_status.value,
                        version=new_version,
                        updated_at=now_timestamp(),
                        **extra,
                    )
                )
                if result.rowcount == 1:
                    return new_version

                current = await session.execute(
                    select(BookingModel.status).where(BookingModel.id == booking_id)
                )
                current_status = current.scalar_one_or_none()
        except SQLAlchemyError as exc:
            log.exception(
                "booking_status_write_failed",
                booking_id=booking_id,
                to_state=new_status.value,
            )
            raise PersistenceError(_storage_message(exc)) from exc

        if current_status is None:
            raise BookingNotFoundError(booking_id)
        raise _conflict(booking_id, expected_status, current_status)


@dataclass
class InMemoryBookingRepository:
    """Dict-backed BookingRepository for tests and dry runs.

    Applies the same (status, version) compare-and-set as the SQL
    implementation. Set ``fail_with`` to make every write raise it.
    """

    bookings: dict[str, BookingFacts] = field(default_factory=dict)
    writes: dict[str, dict[str, Any]] = field(default_factory=dict)
    fail_with: Exception | None = None

    def add(self, facts: BookingFacts) -> None:
        self.bookings[facts.id] = facts

    async def load_facts(self, booking_id: str) -> BookingFacts | None:
        return self.bookings.get(booking_id)

    async def update_status(
        self,
        booking_id: str,
        expected_status: BookingState,
        expected_version: int,
        new_status: BookingState,
        side_writes: Mapping[str, Any] | None = None,
    ) -> int:
        extra = _check_side_writes(side_writes)
        if self.fail_with is not None:
            raise self.fail_with

        current = self.bookings.get(booking_id)
        if current is None:
            raise BookingNotFoundError(booking_id)
        if current.status != expected_status or current.version != expected_version:
            raise _conflict(booking_id, expected_status, current.status.value)

        self.bookings[booking_id] = replace(
            current,
            status=new_status,
            version=expected_version + 1,
            engine_hours_at_pickup=extra.get(
                "engine_hours_at_pickup", current.engine_hours_at_pickup
            ),
        )
        self.writes.setdefault(booking_id, {}).update(extra)
        return expected_version + 1
