"""Tests for HandoverChecklistService -- party, status and duplicate checks."""

from __future__ import annotations

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lendit.bookings.checklist import HandoverChecklistService
from lendit.bookings.repository import SqlBookingRepository
from lendit.bookings.types import ActorRole, BookingState, HandoverType
from lendit.errors import BookingNotFoundError, PreconditionNotMetError, UnauthorizedActorError
from lendit.models.booking import BookingModel, HandoverChecklistModel
from tests.factories import (
    ADMIN_ID,
    BOOKING_ID,
    OWNER_ID,
    RENTER_ID,
    make_booking_model,
    make_listing_model,
    persist,
)

S = BookingState


@pytest.fixture
def service(db_session_factory: async_sessionmaker[AsyncSession]) -> HandoverChecklistService:
    return HandoverChecklistService(db_session_factory)


async def _seed(
    session_factory: async_sessionmaker[AsyncSession],
    status: BookingState,
) -> None:
    await persist(session_factory, make_listing_model(), make_booking_model(status=status))


async def _checklist_count(session_factory: async_sessionmaker[AsyncSession]) -> int:
    async with session_factory() as session:
        return (
            await session.execute(select(func.count()).select_from(HandoverChecklistModel))
        ).scalar_one()


class TestCompleteHandoverChecklist:
    """Completion records a row and leaves the booking status alone."""

    async def test_pickup_by_renter(
        self,
        service: HandoverChecklistService,
        db_session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        await _seed(db_session_factory, S.AWAITING_PICKUP)

        checklist = await service.complete_handover_checklist(
            BOOKING_ID, HandoverType.PICKUP, RENTER_ID, ActorRole.RENTER, notes="Scratch on bucket"
        )

        assert checklist.type is HandoverType.PICKUP
        assert checklist.completed_by_id == RENTER_ID
        assert checklist.completed_by_role is ActorRole.RENTER
        assert checklist.notes == "Scratch on bucket"
        assert checklist.issues_flagged is False
        assert checklist.completed_at is not None
        async with db_session_factory() as session:
            booking = await session.get(BookingModel, BOOKING_ID)
        assert booking is not None
        assert booking.status == S.AWAITING_PICKUP.value

    async def test_return_with_issues_by_owner(
        self,
        service: HandoverChecklistService,
        db_session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        await _seed(db_session_factory, S.IN_USE)

        checklist = await service.complete_handover_checklist(
            BOOKING_ID, HandoverType.RETURN, OWNER_ID, ActorRole.OWNER, issues_flagged=True
        )

        assert checklist.issues_flagged is True
        assert checklist.completed_by_role is ActorRole.OWNER

    async def test_return_after_marked_returned(
        self,
        service: HandoverChecklistService,
        db_session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        await _seed(db_session_factory, S.AWAITING_RETURN_INSPECTION)
        checklist = await service.complete_handover_checklist(
            BOOKING_ID, HandoverType.RETURN, OWNER_ID, ActorRole.OWNER
        )
        assert checklist.type is HandoverType.RETURN

    async def test_completed_return_satisfies_inspection(
        self,
        service: HandoverChecklistService,
        db_session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        await _seed(db_session_factory, S.IN_USE)
        repository = SqlBookingRepository(db_session_factory)

        before = await repository.load_facts(BOOKING_ID)
        await service.complete_handover_checklist(
            BOOKING_ID, HandoverType.RETURN, RENTER_ID, ActorRole.RENTER
        )
        after = await repository.load_facts(BOOKING_ID)

        assert before is not None and not before.is_inspection_complete
        assert after is not None and after.is_inspection_complete

    async def test_pickup_does_not_satisfy_inspection(
        self,
        service: HandoverChecklistService,
        db_session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        await _seed(db_session_factory, S.AWAITING_PICKUP)
        await service.complete_handover_checklist(
            BOOKING_ID, HandoverType.PICKUP, RENTER_ID, ActorRole.RENTER
        )
        facts = await SqlBookingRepository(db_session_factory).load_facts(BOOKING_ID)
        assert facts is not None
        assert not facts.is_inspection_complete


class TestCompleteHandoverChecklistRejections:
    """Rejected completions write nothing."""

    async def test_unknown_booking(
        self,
        service: HandoverChecklistService,
        db_session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        with pytest.raises(BookingNotFoundError):
            await service.complete_handover_checklist(
                "missing", HandoverType.PICKUP, RENTER_ID, ActorRole.RENTER
            )
        assert await _checklist_count(db_session_factory) == 0

    @pytest.mark.parametrize(
        ("actor_id", "actor_role"),
        [
            ("stranger", ActorRole.RENTER),
            (OWNER_ID, ActorRole.RENTER),
            (RENTER_ID, ActorRole.OWNER),
            (ADMIN_ID, ActorRole.ADMIN),
            ("SYSTEM", ActorRole.SYSTEM),
        ],
    )
    async def test_non_party(
        self,
        service: HandoverChecklistService,
        db_session_factory: async_sessionmaker[AsyncSession],
        actor_id: str,
        actor_role: ActorRole,
    ) -> None:
        await _seed(db_session_factory, S.AWAITING_PICKUP)
        with pytest.raises(UnauthorizedActorError, match="not a party"):
            await service.complete_handover_checklist(
                BOOKING_ID, HandoverType.PICKUP, actor_id, actor_role
            )
        assert await _checklist_count(db_session_factory) == 0

    @pytest.mark.parametrize(
        ("handover_type", "status"),
        [
            (HandoverType.PICKUP, S.ACCEPTED),
            (HandoverType.PICKUP, S.IN_USE),
            (HandoverType.RETURN, S.AWAITING_PICKUP),
            (HandoverType.RETURN, S.COMPLETED),
        ],
    )
    async def test_wrong_status(
        self,
        service: HandoverChecklistService,
        db_session_factory: async_sessionmaker[AsyncSession],
        handover_type: HandoverType,
        status: BookingState,
    ) -> None:
        await _seed(db_session_factory, status)
        with pytest.raises(PreconditionNotMetError, match=f"Booking status is {status.value}"):
            await service.complete_handover_checklist(
                BOOKING_ID, handover_type, RENTER_ID, ActorRole.RENTER
            )
        assert await _checklist_count(db_session_factory) == 0

    async def test_second_completion_rejected(
        self,
        service: HandoverChecklistService,
        db_session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        await _seed(db_session_factory, S.IN_USE)
        await service.complete_handover_checklist(
            BOOKING_ID, HandoverType.RETURN, RENTER_ID, ActorRole.RENTER
        )
        with pytest.raises(PreconditionNotMetError, match="already completed"):
            await service.complete_handover_checklist(
                BOOKING_ID, HandoverType.RETURN, OWNER_ID, ActorRole.OWNER
            )
        assert await _checklist_count(db_session_factory) == 1


class TestGetHandoverChecklists:
    async def test_none_before_completion(self, service: HandoverChecklistService) -> None:
        assert await service.get_handover_checklist(BOOKING_ID, HandoverType.PICKUP) is None
        assert await service.get_handover_checklists(BOOKING_ID) == []

    async def test_pickup_then_return(
        self,
        service: HandoverChecklistService,
        db_session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        await _seed(db_session_factory, S.AWAITING_PICKUP)
        pickup = await service.complete_handover_checklist(
            BOOKING_ID, HandoverType.PICKUP, RENTER_ID, ActorRole.RENTER
        )
        async with db_session_factory() as session, session.begin():
            booking = await session.get(BookingModel, BOOKING_ID)
            assert booking is not None
            booking.status = S.IN_USE.value
        returned = await service.complete_handover_checklist(
            BOOKING_ID, HandoverType.RETURN, OWNER_ID, ActorRole.OWNER, issues_flagged=True
        )

        assert await service.get_handover_checklist(BOOKING_ID, HandoverType.PICKUP) == pickup
        assert await service.get_handover_checklist(BOOKING_ID, HandoverType.RETURN) == returned
        assert [c.type for c in await service.get_handover_checklists(BOOKING_ID)] == [
            HandoverType.PICKUP,
            HandoverType.RETURN,
        ]
