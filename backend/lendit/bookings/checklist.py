"""Pickup and return handover checklists.

Completing a checklist records the handover; it never moves the booking's
status. A completed RETURN checklist is what satisfies the inspection
precondition on completing the booking.
"""

from __future__ import annotations

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lendit.bookings.types import ActorRole, BookingState, HandoverChecklist, HandoverType
from lendit.errors import BookingNotFoundError, PreconditionNotMetError, UnauthorizedActorError
from lendit.models.booking import BookingModel, HandoverChecklistModel
from lendit.utils.time import now_timestamp

log = structlog.get_logger()

# Return can be recorded after the booking has been marked returned
HANDOVER_STATES: dict[HandoverType, frozenset[BookingState]] = {
    HandoverType.PICKUP: frozenset({BookingState.AWAITING_PICKUP}),
    HandoverType.RETURN: frozenset(
        {BookingState.IN_USE, BookingState.AWAITING_RETURN_INSPECTION}
    ),
}


def _to_checklist(row: HandoverChecklistModel) -> HandoverChecklist:
    return HandoverChecklist(
        id=row.id,
        booking_id=row.booking_id,
        type=HandoverType(row.type),
        issues_flagged=row.issues_flagged,
        completed_by_id=row.completed_by_id,
        completed_by_role=(
            ActorRole(row.completed_by_role) if row.completed_by_role is not None else None
        ),
        notes=row.notes,
        completed_at=row.completed_at,
        created_at=row.created_at,
    )


class HandoverChecklistService:
    """Records and reads handover checklists."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def complete_handover_checklist(
        self,
        booking_id: str,
        handover_type: HandoverType,
        actor_id: str,
        actor_role: ActorRole,
        issues_flagged: bool = False,
        notes: str | None = None,
    ) -> HandoverChecklist:
        """Record a completed pickup or return checklist.

        Raises:
            BookingNotFoundError: If the booking does not exist.
            UnauthorizedActorError: If the actor is not the renter or owner
                on the booking.
            PreconditionNotMetError: If the booking is not at that handover,
                or a checklist of this type is already complete.
        """
        async with self._session_factory() as session, session.begin():
            booking = await session.get(BookingModel, booking_id)
            if booking is None:
                raise BookingNotFoundError(booking_id)

            party_id = {
                ActorRole.RENTER: booking.renter_id,
                ActorRole.OWNER: booking.owner_id,
            }.get(actor_role)
            if party_id is None or party_id != actor_id:
                raise UnauthorizedActorError(
                    f"{actor_role.value} {actor_id} is not a party to booking {booking_id}"
                )

            if BookingState(booking.status) not in HANDOVER_STATES[handover_type]:
                raise PreconditionNotMetError(
                    f"Cannot complete {handover_type.value.lower()} checklist. "
                    f"Booking status is {booking.status}"
                )

            existing = await session.execute(
                select(HandoverChecklistModel.id).where(
                    HandoverChecklistModel.booking_id == booking_id,
                    HandoverChecklistModel.type == handover_type.value,
                    HandoverChecklistModel.completed_at.is_not(None),
                )
            )
            if existing.first() is not None:
                raise PreconditionNotMetError(
                    f"{handover_type.value.title()} checklist already completed "
                    f"for booking {booking_id}"
                )

            now = now_timestamp()
            row = HandoverChecklistModel(
                booking_id=booking_id,
                type=handover_type.value,
                issues_flagged=issues_flagged,
                completed_by_id=actor_id,
                completed_by_role=actor_role.value,
                notes=notes,
                completed_at=now,
                created_at=now,
            )
            session.add(row)
            await session.flush()
            checklist = _to_checklist(row)

        log.info(
            "handover_checklist_completed",
            booking_id=booking_id,
            handover_type=handover_type.value,
            actor_role=actor_role.value,
            issues_flagged=issues_flagged,
        )
        return checklist

    async def get_handover_checklist(
        self,
        booking_id: str,
        handover_type: HandoverType,
    ) -> HandoverChecklist | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(HandoverChecklistModel)
                .where(
                    HandoverChecklistModel.booking_id == booking_id,
                    HandoverChecklistModel.type == handover_type.value,
                )
                .order_by(HandoverChecklistModel.id)
                .limit(1)
            )
            row = result.scalar_one_or_none()
            return _to_checklist(row) if row is not None else None

    async def get_handover_checklists(self, booking_id: str) -> list[HandoverChecklist]:
        """All checklists for a booking, oldest first."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(HandoverChecklistModel)
                .where(HandoverChecklistModel.booking_id == booking_id)
                .order_by(HandoverChecklistModel.completed_at, HandoverChecklistModel.id)
            )
            return [_to_checklist(row) for row in result.scalars().all()]
