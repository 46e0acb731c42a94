"""Booking-related database models.

Tables: booking, booking_event, payment, handover_checklist, notification
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import (
    DDL,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column

from lendit.models.base import Base, DecimalText, JSONText


class BookingModel(Base):
    """Mutable booking lifecycle tracking with immutable snapshots.

    Financial, insurance and policy columns are written once at
    creation. ``version`` is bumped on every status write for
    optimistic concurrency.
    """

    __tablename__ = "booking"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    renter_id: Mapped[str] = mapped_column(String, nullable=False)
    owner_id: Mapped[str] = mapped_column(String, nullable=False)
    listing_id: Mapped[str] = mapped_column(
        String, ForeignKey("listing.id"), nullable=False
    )
    start_date: Mapped[str] = mapped_column(String, nullable=False)
    end_date: Mapped[str] = mapped_column(String, nullable=False)
    actual_pickup_time: Mapped[str | None] = mapped_column(String, nullable=True)
    actual_return_time: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(
        String,
        CheckConstraint(
            "status IN ('PENDING', 'ACCEPTED', 'DECLINED', 'CANCELLED', "
            "'AWAITING_PICKUP', 'IN_USE', 'AWAITING_RETURN_INSPECTION', "
            "'IN_DISPUTE', 'COMPLETED')",
            name="ck_booking_status",
        ),
        nullable=False,
        server_default="PENDING",
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")

    # Financial snapshot
    rental_cost: Mapped[DecimalText] = mapped_column(DecimalText, nullable=False)
    delivery_fee: Mapped[DecimalText] = mapped_column(
        DecimalText, nullable=False, server_default="0"
    )
    bond_amount_at_booking: Mapped[DecimalText] = mapped_column(
        DecimalText, nullable=False, server_default="0"
    )
    rental_subtotal: Mapped[DecimalText] = mapped_column(DecimalText, nullable=False)
    platform_fee_rate: Mapped[DecimalText] = mapped_column(DecimalText, nullable=False)
    platform_fee: Mapped[DecimalText] = mapped_column(DecimalText, nullable=False)
    owner_payout_amount: Mapped[DecimalText] = mapped_column(
        DecimalText, nullable=False
    )
    total_charged: Mapped[DecimalText] = mapped_column(DecimalText, nullable=False)

    # Insurance snapshot
    insurance_mode_snapshot: Mapped[str] = mapped_column(
        String, nullable=False, server_default="NONE"
    )
    insurance_notes_snapshot: Mapped[str | None] = mapped_column(Text, nullable=True)
    estimated_replacement_value_snapshot: Mapped[DecimalText | None] = mapped_column(
        DecimalText, nullable=True
    )
    damage_excess_notes_snapshot: Mapped[str | None] = mapped_column(
        Text, nullable=True
    )
    insurance_snapshot: Mapped[dict[str, Any] | None] = mapped_column(
        JSONText, nullable=True
    )

    # Policy snapshot
    platform_policy_version_accepted: Mapped[int | None] = mapped_column(
        Integer, nullable=True
    )
    owner_terms_acknowledged: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default="0"
    )
    renter_responsibility_acknowledged: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default="0"
    )

    # Engine hours
    engine_hours_at_pickup: Mapped[DecimalText | None] = mapped_column(
        DecimalText, nullable=True
    )
    engine_hours_at_return: Mapped[DecimalText | None] = mapped_column(
        DecimalText, nullable=True
    )
    engine_hours_used: Mapped[DecimalText | None] = mapped_column(
        DecimalText, nullable=True
    )

    damage_status: Mapped[str] = mapped_column(
        String, nullable=False, server_default="NONE_REPORTED"
    )
    created_at: Mapped[str] = mapped_column(String, nullable=False)
    updated_at: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (
        Index("ix_booking_status", "status"),
        Index("ix_booking_renter", "renter_id"),
        Index("ix_booking_owner", "owner_id"),
        Index("ix_booking_listing_dates", "listing_id", "start_date"),
    )


class BookingEventModel(Base):
    """Immutable append-only audit log of booking transitions."""

    __tablename__ = "booking_event"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    booking_id: Mapped[str] = mapped_column(String, nullable=False)
    event_type: Mapped[str] = mapped_column(String, nullable=False)
    old_state: Mapped[str | None] = mapped_column(String, nullable=True)
    new_state: Mapped[str] = mapped_column(String, nullable=False)
    actor_id: Mapped[str] = mapped_column(String, nullable=False)
    actor_role: Mapped[str] = mapped_column(String, nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    detail: Mapped[dict[str, Any] | None] = mapped_column(JSONText, nullable=True)
    occurred_at: Mapped[str] = mapped_column(String, nullable=False)
    recorded_at: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (
        Index("ix_booking_event_booking_id", "booking_id"),
        Index("ix_booking_event_recorded", "recorded_at"),
    )


class PaymentModel(Base):
    """Payment intent state as last reported by the payment provider."""

    __tablename__ = "payment"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    booking_id: Mapped[str] = mapped_column(
        String, ForeignKey("booking.id"), nullable=False, unique=True
    )
    provider_intent_id: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[DecimalText] = mapped_column(DecimalText, nullable=False)
    created_at: Mapped[str] = mapped_column(String, nullable=False)
    updated_at: Mapped[str] = mapped_column(String, nullable=False)


class HandoverChecklistModel(Base):
    """Pickup or return handover checklist for a booking."""

    __tablename__ = "handover_checklist"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    booking_id: Mapped[str] = mapped_column(
        String, ForeignKey("booking.id"), nullable=False
    )
    type: Mapped[str] = mapped_column(
        String,
        CheckConstraint("type IN ('PICKUP', 'RETURN')", name="ck_handover_type"),
        nullable=False,
    )
    issues_flagged: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default="0"
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_by_id: Mapped[str | None] = mapped_column(String, nullable=True)
    completed_by_role: Mapped[str | None] = mapped_column(String, nullable=True)
    completed_at: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (Index("ix_handover_booking_type", "booking_id", "type"),)


class NotificationModel(Base):
    """In-app notification addressed to one user."""

    __tablename__ = "notification"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    type: Mapped[str] = mapped_column(String, nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSONText, nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="0")
    created_at: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (Index("ix_notification_user_created", "user_id", "created_at"),)


# SQLite guards mirrored by the initial Alembic migration, attached here so
# metadata.create_all() builds the same schema.
BOOKING_TRIGGERS = (
    "CREATE TRIGGER IF NOT EXISTS no_update_booking_event "
    "BEFORE UPDATE ON booking_event "
    "BEGIN SELECT RAISE(ABORT, 'booking_event is immutable'); END;",
    "CREATE TRIGGER IF NOT EXISTS no_delete_booking_event "
    "BEFORE DELETE ON booking_event "
    "BEGIN SELECT RAISE(ABORT, 'booking_event is immutable'); END;",
    "CREATE TRIGGER IF NOT EXISTS booking_terminal_status_locked "
    "BEFORE UPDATE OF status ON booking "
    "WHEN OLD.status IN ('DECLINED', 'CANCELLED', 'COMPLETED') "
    "AND NEW.status != OLD.status "
    "BEGIN SELECT RAISE(ABORT, 'booking status is terminal'); END;",
    "CREATE TRIGGER IF NOT EXISTS booking_policy_version_locked "
    "BEFORE UPDATE OF platform_policy_version_accepted ON booking "
    "WHEN OLD.platform_policy_version_accepted IS NOT NULL "
    "AND (NEW.platform_policy_version_accepted IS NULL "
    "OR NEW.platform_policy_version_accepted != OLD.platform_policy_version_accepted) "
    "BEGIN SELECT RAISE(ABORT, 'platform_policy_version_accepted is immutable'); END;",
)

for _statement in BOOKING_TRIGGERS[:2]:
    event.listen(
        BookingEventModel.__table__,
        "after_create",
        DDL(_statement).execute_if(dialect="sqlite"),
    )
for _statement in BOOKING_TRIGGERS[2:]:
    event.listen(
        BookingModel.__table__,
        "after_create",
        DDL(_statement).execute_if(dialect="sqlite"),
    )
