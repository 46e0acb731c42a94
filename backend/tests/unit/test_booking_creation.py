"""Tests for BookingCreator -- request validation and snapshotting."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lendit.bookings.creation import BookingCreator
from lendit.bookings.types import BookingState
from lendit.config import FeeConfig
from lendit.errors import (
    InvariantViolationError,
    ListingNotFoundError,
    PolicyNotFoundError,
    PreconditionNotMetError,
)
from lendit.insurance.types import InsuranceMode
from lendit.models.booking import BookingModel
from lendit.policy.service import PolicyService
from tests.factories import (
    OWNER_ID,
    RENTER_ID,
    make_booking_request,
    make_listing_model,
    make_policy_page_model,
    persist,
)


@pytest.fixture
async def creator(db_session_factory: async_sessionmaker[AsyncSession]) -> BookingCreator:
    await persist(db_session_factory, make_listing_model(), make_policy_page_model())
    return BookingCreator(db_session_factory, PolicyService(db_session_factory))


async def _load(
    session_factory: async_sessionmaker[AsyncSession],
    booking_id: str,
) -> BookingModel:
    async with session_factory() as session:
        booking = await session.get(BookingModel, booking_id)
    assert booking is not None
    return booking


class TestCreateBooking:
    """Successful creation writes every snapshot once."""

    async def test_creates_pending_booking(
        self,
        creator: BookingCreator,
        db_session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        created = await creator.create_booking(make_booking_request())

        assert created.status == BookingState.PENDING
        assert created.owner_id == OWNER_ID
        assert created.policy_version == 1
        assert created.fees.total_charged == Decimal("758.25")

        row = await _load(db_session_factory, created.id)
        assert row.status == "PENDING"
        assert row.version == 0
        assert row.renter_id == RENTER_ID
        assert row.start_date == "2026-03-10"
        assert row.end_date == "2026-03-12"
        assert row.rental_subtotal == Decimal("550.00")
        assert row.platform_fee == Decimal("8.25")
        assert row.owner_payout_amount == Decimal("541.75")
        assert row.bond_amount_at_booking == Decimal("200.00")
        assert row.damage_status == "NONE_REPORTED"

    async def test_insurance_and_policy_snapshot(
        self,
        creator: BookingCreator,
        db_session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        created = await creator.create_booking(make_booking_request())

        assert created.insurance.insurance_mode is InsuranceMode.OWNER_PROVIDED
        row = await _load(db_session_factory, created.id)
        assert row.insurance_mode_snapshot == "OWNER_PROVIDED"
        assert row.insurance_notes_snapshot == "Covered by owner's plant policy"
        assert row.estimated_replacement_value_snapshot == Decimal("65000.00")
        assert row.insurance_snapshot is not None
        assert row.insurance_snapshot["bond_amount"] == "200.00"
        assert row.platform_policy_version_accepted == 1
        assert row.owner_terms_acknowledged is True
        assert row.renter_responsibility_acknowledged is True

    async def test_listing_without_bond(
        self,
        db_session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        await persist(
            db_session_factory,
            make_listing_model(bond_amount=None, insurance_mode="NONE"),
            make_policy_page_model(),
        )
        creator = BookingCreator(db_session_factory, PolicyService(db_session_factory))

        created = await creator.create_booking(make_booking_request())

        assert created.fees.bond_amount == Decimal("0.00")
        assert created.fees.total_charged == Decimal("558.25")

    async def test_custom_fee_rate(
        self,
        db_session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        await persist(db_session_factory, make_listing_model(), make_policy_page_model())
        creator = BookingCreator(
            db_session_factory,
            PolicyService(db_session_factory),
            FeeConfig(platform_fee_rate=Decimal("0.02"), currency="AUD"),
        )
        created = await creator.create_booking(make_booking_request())
        assert created.fees.platform_fee == Decimal("11.00")
        assert "Platform service fee (2%): A$11.00" in created.fee_lines
        assert created.fee_lines[-1] == "Total: A$761.00"

    async def test_fee_lines_default_config(self, creator: BookingCreator) -> None:
        created = await creator.create_booking(make_booking_request())
        assert created.fee_lines == (
            "Rental cost: $500.00",
            "Delivery fee: $50.00",
            "Subtotal: $550.00",
            "Platform service fee (1.5%): $8.25",
            "Security bond (authorised): $200.00",
            "Total: $758.25",
        )


class TestCreateBookingRejections:
    """Invalid requests write nothing."""

    async def test_end_before_start(self, creator: BookingCreator) -> None:
        with pytest.raises(InvariantViolationError, match="End date must be after start date"):
            await creator.create_booking(make_booking_request(end_date=date(2026, 3, 10)))

    @pytest.mark.parametrize(
        ("owner_ack", "renter_ack"),
        [(False, True), (True, False), (False, False)],
    )
    async def test_acknowledgements_required(
        self,
        creator: BookingCreator,
        owner_ack: bool,
        renter_ack: bool,
    ) -> None:
        with pytest.raises(PreconditionNotMetError, match="must both be acknowledged"):
            await creator.create_booking(
                make_booking_request(
                    owner_terms_acknowledged=owner_ack,
                    renter_responsibility_acknowledged=renter_ack,
                )
            )

    async def test_stale_policy_version(self, creator: BookingCreator) -> None:
        with pytest.raises(InvariantViolationError, match="Policy version mismatch"):
            await creator.create_booking(make_booking_request(accepted_policy_version=2))

    async def test_unknown_listing(self, creator: BookingCreator) -> None:
        with pytest.raises(ListingNotFoundError):
            await creator.create_booking(make_booking_request(listing_id="missing"))

    async def test_owner_cannot_book_own_listing(self, creator: BookingCreator) -> None:
        with pytest.raises(InvariantViolationError, match="Owners cannot book their own listing"):
            await creator.create_booking(make_booking_request(renter_id=OWNER_ID))

    async def test_negative_amount(self, creator: BookingCreator) -> None:
        with pytest.raises(ValueError, match="rental_cost"):
            await creator.create_booking(make_booking_request(rental_cost=Decimal("-10")))

    async def test_no_published_policy(
        self,
        db_session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        await persist(db_session_factory, make_listing_model())
        creator = BookingCreator(db_session_factory, PolicyService(db_session_factory))
        with pytest.raises(PolicyNotFoundError):
            await creator.create_booking(make_booking_request())
