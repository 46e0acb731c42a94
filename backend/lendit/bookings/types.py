"""Booking domain types shared across the lifecycle engine.

Enums for the closed state/actor sets, frozen dataclasses for value
objects. All monetary values use Decimal.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from lendit.errors import ErrorKind


class BookingState(str, Enum):
    """Booking lifecycle states."""

    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"
    CANCELLED = "CANCELLED"
    AWAITING_PICKUP = "AWAITING_PICKUP"
    IN_USE = "IN_USE"
    AWAITING_RETURN_INSPECTION = "AWAITING_RETURN_INSPECTION"
    IN_DISPUTE = "IN_DISPUTE"
    COMPLETED = "COMPLETED"


TERMINAL_STATES = frozenset(
    {
        BookingState.DECLINED,
        BookingState.CANCELLED,
        BookingState.COMPLETED,
    }
)

# Bookings that are "in progress"
ACTIVE_STATES = frozenset(
    {
        BookingState.ACCEPTED,
        BookingState.AWAITING_PICKUP,
        BookingState.IN_USE,
        BookingState.AWAITING_RETURN_INSPECTION,
        BookingState.IN_DISPUTE,
    }
)


class ActorRole(str, Enum):
    """Who triggers a transition. SYSTEM is the synthetic automation actor."""

    RENTER = "RENTER"
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    SYSTEM = "SYSTEM"


SYSTEM_ACTOR_ID = "SYSTEM"


class HandoverType(str, Enum):
    """Which side of the rental a handover checklist covers."""

    PICKUP = "PICKUP"
    RETURN = "RETURN"


STATE_LABELS: dict[BookingState, str] = {
    BookingState.PENDING: "Pending Approval",
    BookingState.ACCEPTED: "Accepted - Awaiting Payment",
    BookingState.DECLINED: "Declined",
    BookingState.CANCELLED: "Cancelled",
    BookingState.AWAITING_PICKUP: "Ready for Pickup",
    BookingState.IN_USE: "In Use",
    BookingState.AWAITING_RETURN_INSPECTION: "Returned - Pending Inspection",
    BookingState.IN_DISPUTE: "In Dispute",
    BookingState.COMPLETED: "Completed",
}


@dataclass(frozen=True)
class StateTransition:
    """One edge of the booking transition graph."""

    from_state: BookingState
    to_state: BookingState
    allowed_actors: frozenset[ActorRole]
    description: str
    requires_payment: bool = False
    requires_inspection: bool = False


@dataclass(frozen=True)
class TransitionContext:
    """Precondition facts supplied to the validator.

    None means "not asserted", which fails any precondition that needs it.
    """

    is_payment_complete: bool | None = None
    is_inspection_complete: bool | None = None
    is_owner: bool | None = None
    is_renter: bool | None = None


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validate_transition()."""

    valid: bool
    error: str = ""
    error_kind: ErrorKind | None = None
    transition: StateTransition | None = None


@dataclass(frozen=True)
class TransitionEvent:
    """Audit record of a single applied transition.

    Documented metadata keys:
        engine_hours_at_pickup, engine_hours_at_return, engine_hours_used
            (str decimals) written by start_rental / mark_returned.
        payment_confirmed (bool) written by mark_ready_for_pickup.
    """

    booking_id: str
    from_state: BookingState
    to_state: BookingState
    actor_id: str
    actor_role: ActorRole
    timestamp: datetime
    reason: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BookingContext:
    """Who is asking for a transition, and why.

    ``is_payment_complete`` / ``is_inspection_complete`` override the
    stored facts when an external signal (payment webhook, inspection
    form) asserts them directly.
    """

    booking_id: str
    actor_id: str
    actor_role: ActorRole
    reason: str | None = None
    metadata: Mapping[str, Any] | None = None
    actor_email: str | None = None
    is_payment_complete: bool | None = None
    is_inspection_complete: bool | None = None


@dataclass(frozen=True)
class BookingStatusChange:
    """Status before and after a successful transition."""

    id: str
    status: BookingState
    previous_status: BookingState


@dataclass(frozen=True)
class TransitionResult:
    """Non-throwing result of every lifecycle operation."""

    success: bool
    booking: BookingStatusChange | None = None
    error: str = ""
    error_kind: ErrorKind | None = None
    event: TransitionEvent | None = None


@dataclass(frozen=True)
class AvailableAction:
    to_state: BookingState
    label: str
    description: str


@dataclass(frozen=True)
class BookingActions:
    """Current status plus the moves the actor may offer in the UI."""

    current_status: BookingState
    available_transitions: tuple[AvailableAction, ...]


@dataclass(frozen=True)
class HandoverChecklist:
    """A completed pickup or return checklist."""

    id: int
    booking_id: str
    type: HandoverType
    issues_flagged: bool
    completed_by_id: str | None
    completed_by_role: ActorRole | None
    notes: str | None
    completed_at: str | None
    created_at: str
