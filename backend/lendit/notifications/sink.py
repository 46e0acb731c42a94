"""Notification collaborator.

The lifecycle service emits at most one notification per transition via
a NotificationSink. Payloads are versioned so consumers can detect shape
changes instead of silently misreading them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lendit.bookings.types import BookingState
from lendit.models.booking import NotificationModel
from lendit.utils.time import now_timestamp

log = structlog.get_logger()

PAYLOAD_SCHEMA_VERSION = 1


class NotificationType(str, Enum):
    BOOKING_ACCEPTED = "BOOKING_ACCEPTED"
    BOOKING_DECLINED = "BOOKING_DECLINED"
    BOOKING_CANCELLED = "BOOKING_CANCELLED"
    PICKUP_REMINDER = "PICKUP_REMINDER"
    HANDOVER_COMPLETED = "HANDOVER_COMPLETED"
    RETURN_REMINDER = "RETURN_REMINDER"
    DISPUTE_RAISED = "DISPUTE_RAISED"
    BOOKING_COMPLETED = "BOOKING_COMPLETED"


@dataclass(frozen=True)
class NotificationPayload:
    """Structured payload of a booking status notification."""

    booking_id: str
    from_status: BookingState
    to_status: BookingState
    message: str
    schema_version: int = PAYLOAD_SCHEMA_VERSION
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "schema_version": self.schema_version,
            "booking_id": self.booking_id,
            "from_status": self.from_status.value,
            "to_status": self.to_status.value,
            "message": self.message,
        }
        if self.extra:
            data["extra"] = dict(self.extra)
        return data


@dataclass(frozen=True)
class SentNotification:
    user_id: str
    type: NotificationType
    payload: NotificationPayload


@runtime_checkable
class NotificationSink(Protocol):
    async def create(
        self,
        user_id: str,
        type: NotificationType,
        payload: NotificationPayload,
    ) -> None:
        """Deliver or enqueue one notification. May raise; callers log."""
        ...


class SqlNotificationSink:
    """Stores in-app notifications in the notification table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create(
        self,
        user_id: str,
        type: NotificationType,
        payload: NotificationPayload,
    ) -> None:
        async with self._session_factory() as session, session.begin():
            session.add(
                NotificationModel(
                    user_id=user_id,
                    type=type.value,
                    payload=payload.to_dict(),
                    created_at=now_timestamp(),
                )
            )
        log.debug(
            "notification_created",
            user_id=user_id,
            type=type.value,
            booking_id=payload.booking_id,
        )

    async def for_user(self, user_id: str) -> list[NotificationModel]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(NotificationModel)
                .where(NotificationModel.user_id == user_id)
                .order_by(NotificationModel.id)
            )
            return list(result.scalars().all())


class InMemoryNotificationSink:
    """List-backed NotificationSink. Set ``fail_with`` to simulate outages."""

    def __init__(self, fail_with: Exception | None = None) -> None:
        self.sent: list[SentNotification] = []
        self.fail_with = fail_with

    async def create(
        self,
        user_id: str,
        type: NotificationType,
        payload: NotificationPayload,
    ) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(SentNotification(user_id=user_id, type=type, payload=payload))
