"""Booking creation -- validates a request and writes the PENDING booking.

The fee breakdown, insurance snapshot and policy stamp are all fixed
here, in the same transaction that inserts the booking row.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import uuid4

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lendit.bookings.types import BookingState
from lendit.config import FeeConfig
from lendit.errors import InvariantViolationError, ListingNotFoundError, PreconditionNotMetError
from lendit.fees.calculator import (
    FeeBreakdown,
    Money,
    calculate_fees,
    fee_breakdown_lines,
)
from lendit.insurance.snapshot import snapshot_columns, snapshot_from_listing
from lendit.insurance.types import DamageStatus, InsuranceSnapshot
from lendit.models.booking import BookingModel
from lendit.models.listing import ListingModel
from lendit.policy.service import PolicyProvider
from lendit.utils.time import now_timestamp

log = structlog.get_logger()


@dataclass(frozen=True)
class BookingRequest:
    """A renter's booking request as submitted from the checkout page."""

    listing_id: str
    renter_id: str
    start_date: date
    end_date: date
    rental_cost: Money
    accepted_policy_version: int
    delivery_fee: Money = 0
    owner_terms_acknowledged: bool = False
    renter_responsibility_acknowledged: bool = False


@dataclass(frozen=True)
class CreatedBooking:
    id: str
    status: BookingState
    owner_id: str
    fees: FeeBreakdown
    insurance: InsuranceSnapshot
    policy_version: int
    fee_lines: tuple[str, ...] = ()


class BookingCreator:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        policy: PolicyProvider,
        fee_config: FeeConfig | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._policy = policy
        self._fee_config = fee_config or FeeConfig()

    async def create_booking(self, request: BookingRequest) -> CreatedBooking:
        """Create a PENDING booking.

        Raises:
            InvariantViolationError: Bad date range, self-booking, or an
                accepted policy version that is no longer current.
            PreconditionNotMetError: Terms not acknowledged.
            ListingNotFoundError: Unknown listing.
            ValueError: Negative or non-finite amounts.
        """
        if request.end_date <= request.start_date:
            raise InvariantViolationError("End date must be after start date")
        if not (request.owner_terms_acknowledged and request.renter_responsibility_acknowledged):
            raise PreconditionNotMetError(
                "Owner terms and renter responsibilities must both be acknowledged"
            )

        policy = await self._policy.require_policy_version(request.accepted_policy_version)

        booking_id = str(uuid4())
        now = now_timestamp()
        async with self._session_factory() as session, session.begin():
            listing = await session.get(ListingModel, request.listing_id)
            if listing is None:
                raise ListingNotFoundError(request.listing_id)
            if listing.owner_id == request.renter_id:
                raise InvariantViolationError("Owners cannot book their own listing")

            snapshot = snapshot_from_listing(listing)
            fees = calculate_fees(
                request.rental_cost,
                request.delivery_fee,
                snapshot.bond_amount or Decimal("0"),
                rate=self._fee_config.platform_fee_rate,
            )
            session.add(
                BookingModel(
                    id=booking_id,
                    renter_id=request.renter_id,
                    owner_id=listing.owner_id,
                    listing_id=listing.id,
                    start_date=request.start_date.isoformat(),
                    end_date=request.end_date.isoformat(),
                    status=BookingState.PENDING.value,
                    version=0,
                    rental_cost=fees.rental_cost,
                    delivery_fee=fees.delivery_fee,
                    bond_amount_at_booking=fees.bond_amount,
                    rental_subtotal=fees.rental_subtotal,
                    platform_fee_rate=fees.platform_fee_rate,
                    platform_fee=fees.platform_fee,
                    owner_payout_amount=fees.owner_payout_amount,
                    total_charged=fees.total_charged,
                    damage_status=DamageStatus.NONE_REPORTED.value,
                    created_at=now,
                    updated_at=now,
                    **snapshot_columns(
                        snapshot,
                        policy.version,
                        request.owner_terms_acknowledged,
                        request.renter_responsibility_acknowledged,
                    ),
                )
            )

        log.info(
            "booking_created",
            booking_id=booking_id,
            listing_id=request.listing_id,
            renter_id=request.renter_id,
            owner_id=listing.owner_id,
            total_charged=str(fees.total_charged),
            policy_version=policy.version,
        )
        return CreatedBooking(
            id=booking_id,
            status=BookingState.PENDING,
            owner_id=listing.owner_id,
            fees=fees,
            insurance=snapshot,
            policy_version=policy.version,
            fee_lines=tuple(
                fee_breakdown_lines(
                    fees,
                    currency=self._fee_config.currency,
                    description=self._fee_config.platform_fee_description,
                )
            ),
        )
