"""Insurance snapshot service.

Copies a listing's insurance terms onto a booking at creation time so
later listing edits never change what the renter agreed to.
"""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lendit.errors import BookingNotFoundError, InvariantViolationError, ListingNotFoundError
from lendit.insurance.types import InsuranceMode, InsuranceSnapshot
from lendit.models.booking import BookingModel
from lendit.models.listing import ListingModel
from lendit.utils.time import now_timestamp

log = structlog.get_logger()


def snapshot_from_listing(listing: ListingModel) -> InsuranceSnapshot:
    return InsuranceSnapshot(
        insurance_mode=InsuranceMode(listing.insurance_mode),
        insurance_notes=listing.insurance_notes,
        estimated_replacement_value=listing.estimated_replacement_value,
        bond_amount=listing.bond_amount,
        damage_excess_notes=listing.damage_excess_notes,
        safe_use_requirements=listing.safe_use_requirements,
        maintenance_responsibility_owner=listing.maintenance_responsibility_owner,
    )


def snapshot_columns(
    snapshot: InsuranceSnapshot,
    policy_version: int,
    owner_terms_acknowledged: bool,
    renter_responsibility_acknowledged: bool,
) -> dict[str, Any]:
    """Booking column values that record a snapshot and policy stamp."""
    return {
        "insurance_mode_snapshot": snapshot.insurance_mode.value,
        "insurance_notes_snapshot": snapshot.insurance_notes,
        "estimated_replacement_value_snapshot": snapshot.estimated_replacement_value,
        "damage_excess_notes_snapshot": snapshot.damage_excess_notes,
        "insurance_snapshot": snapshot.to_dict(),
        "platform_policy_version_accepted": policy_version,
        "owner_terms_acknowledged": owner_terms_acknowledged,
        "renter_responsibility_acknowledged": renter_responsibility_acknowledged,
    }


class InsuranceSnapshotService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create_insurance_snapshot(self, listing_id: str) -> InsuranceSnapshot:
        """Current insurance terms of a listing.

        Raises:
            ListingNotFoundError: If the listing does not exist.
        """
        async with self._session_factory() as session:
            listing = await session.get(ListingModel, listing_id)
        if listing is None:
            raise ListingNotFoundError(listing_id)
        return snapshot_from_listing(listing)

    async def apply_insurance_snapshot_to_booking(
        self,
        booking_id: str,
        snapshot: InsuranceSnapshot,
        policy_version: int,
        owner_terms_acknowledged: bool,
        renter_responsibility_acknowledged: bool,
    ) -> None:
        """Stamp a snapshot onto a booking that has none yet.

        Raises:
            BookingNotFoundError: If the booking does not exist.
            InvariantViolationError: If the booking already carries a
                policy stamp. Snapshots are write-once.
        """
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                select(BookingModel.platform_policy_version_accepted).where(
                    BookingModel.id == booking_id
                )
            )
            row = result.one_or_none()
            if row is None:
                raise BookingNotFoundError(booking_id)
            if row[0] is not None:
                raise InvariantViolationError(
                    f"Booking {booking_id} already has an insurance snapshot "
                    f"(policy version {row[0]})"
                )
            await session.execute(
                update(BookingModel)
                .where(BookingModel.id == booking_id)
                .values(
                    updated_at=now_timestamp(),
                    **snapshot_columns(
                        snapshot,
                        policy_version,
                        owner_terms_acknowledged,
                        renter_responsibility_acknowledged,
                    ),
                )
            )

        log.info(
            "insurance_snapshot_applied",
            booking_id=booking_id,
            insurance_mode=snapshot.insurance_mode.value,
            policy_version=policy_version,
        )
