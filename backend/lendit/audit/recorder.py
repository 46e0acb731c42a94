"""Audit collaborator -- append-only record of booking transitions.

AuditRecorder is the protocol the lifecycle service depends on.
SqlAuditRecorder writes to the immutable booking_event table;
InMemoryAuditRecorder keeps events in a list for tests and dry runs.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lendit.bookings.types import ActorRole, BookingState, TransitionEvent
from lendit.models.booking import BookingEventModel
from lendit.utils.time import format_timestamp, now_timestamp, parse_timestamp

log = structlog.get_logger()

STATUS_CHANGED = "status_changed"


@runtime_checkable
class AuditRecorder(Protocol):
    async def record(self, event: TransitionEvent) -> None:
        """Persist one transition event. May raise; callers log failures."""
        ...


class SqlAuditRecorder:
    """Writes transition events to the booking_event table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def record(self, event: TransitionEvent) -> None:
        async with self._session_factory() as session, session.begin():
            session.add(
                BookingEventModel(
                    booking_id=event.booking_id,
                    event_type=STATUS_CHANGED,
                    old_state=event.from_state.value,
                    new_state=event.to_state.value,
                    actor_id=event.actor_id,
                    actor_role=event.actor_role.value,
                    reason=event.reason,
                    detail=dict(event.metadata) or None,
                    occurred_at=format_timestamp(event.timestamp),
                    recorded_at=now_timestamp(),
                )
            )
        log.debug(
            "audit_recorded",
            booking_id=event.booking_id,
            from_state=event.from_state.value,
            to_state=event.to_state.value,
        )

    async def history(self, booking_id: str) -> list[TransitionEvent]:
        """All recorded transitions for a booking, oldest first."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(BookingEventModel)
                .where(BookingEventModel.booking_id == booking_id)
                .order_by(BookingEventModel.id)
            )
            rows = result.scalars().all()

        return [
            TransitionEvent(
                booking_id=row.booking_id,
                from_state=BookingState(row.old_state),
                to_state=BookingState(row.new_state),
                actor_id=row.actor_id,
                actor_role=ActorRole(row.actor_role),
                timestamp=parse_timestamp(row.occurred_at),
                reason=row.reason,
                metadata=row.detail or {},
            )
            for row in rows
            if row.old_state is not None
        ]


class InMemoryAuditRecorder:
    """List-backed AuditRecorder. Set ``fail_with`` to simulate outages."""

    def __init__(self, fail_with: Exception | None = None) -> None:
        self.events: list[TransitionEvent] = []
        self.fail_with = fail_with

    async def record(self, event: TransitionEvent) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.events.append(event)
