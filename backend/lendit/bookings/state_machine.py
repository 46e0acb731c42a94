"""Booking state machine -- pure transition table and validator.

No I/O, no database. The transition table is the single source of truth
for which (from, to) pairs exist, who may trigger them, and which
preconditions they carry. Unmapped pairs are invalid for every actor,
ADMIN included: ADMIN is exempt from actor restrictions only on edges
that list it.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from lendit.bookings.types import (
    ACTIVE_STATES,
    STATE_LABELS,
    TERMINAL_STATES,
    ActorRole,
    BookingState,
    StateTransition,
    TransitionContext,
    TransitionEvent,
    ValidationResult,
)
from lendit.errors import ErrorKind
from lendit.utils.time import utc_now

_OWNER_ADMIN = frozenset({ActorRole.OWNER, ActorRole.ADMIN})
_ANY_PARTY = frozenset({ActorRole.RENTER, ActorRole.OWNER, ActorRole.ADMIN})
_ADMIN_ONLY = frozenset({ActorRole.ADMIN})

STATE_TRANSITIONS: tuple[StateTransition, ...] = (
    # From PENDING
    StateTransition(
        BookingState.PENDING,
        BookingState.ACCEPTED,
        _OWNER_ADMIN,
        "Owner accepts booking request",
    ),
    StateTransition(
        BookingState.PENDING,
        BookingState.DECLINED,
        _OWNER_ADMIN,
        "Owner declines booking request",
    ),
    StateTransition(
        BookingState.PENDING,
        BookingState.CANCELLED,
        frozenset({ActorRole.RENTER, ActorRole.ADMIN}),
        "Renter cancels pending request",
    ),
    # From ACCEPTED
    StateTransition(
        BookingState.ACCEPTED,
        BookingState.AWAITING_PICKUP,
        frozenset({ActorRole.SYSTEM, ActorRole.ADMIN}),
        "Payment confirmed, ready for pickup",
        requires_payment=True,
    ),
    StateTransition(
        BookingState.ACCEPTED,
        BookingState.CANCELLED,
        _ANY_PARTY,
        "Booking cancelled before payment",
    ),
    # From AWAITING_PICKUP
    StateTransition(
        BookingState.AWAITING_PICKUP,
        BookingState.IN_USE,
        _OWNER_ADMIN,
        "Equipment picked up, rental started",
    ),
    StateTransition(
        BookingState.AWAITING_PICKUP,
        BookingState.CANCELLED,
        _ADMIN_ONLY,
        "Admin cancels after payment (requires refund)",
    ),
    # From IN_USE
    StateTransition(
        BookingState.IN_USE,
        BookingState.AWAITING_RETURN_INSPECTION,
        _ANY_PARTY,
        "Equipment returned, pending inspection",
    ),
    # From AWAITING_RETURN_INSPECTION
    StateTransition(
        BookingState.AWAITING_RETURN_INSPECTION,
        BookingState.COMPLETED,
        _OWNER_ADMIN,
        "Inspection passed, rental completed",
        requires_inspection=True,
    ),
    StateTransition(
        BookingState.AWAITING_RETURN_INSPECTION,
        BookingState.IN_DISPUTE,
        _ANY_PARTY,
        "Dispute raised during inspection",
    ),
    # From IN_DISPUTE
    StateTransition(
        BookingState.IN_DISPUTE,
        BookingState.COMPLETED,
        _ADMIN_ONLY,
        "Dispute resolved, rental completed",
    ),
    StateTransition(
        BookingState.IN_DISPUTE,
        BookingState.AWAITING_RETURN_INSPECTION,
        _ADMIN_ONLY,
        "Dispute withdrawn, back to inspection",
    ),
)

_TRANSITION_MAP: dict[tuple[BookingState, BookingState], StateTransition] = {
    (t.from_state, t.to_state): t for t in STATE_TRANSITIONS
}

# Display order of roles in error messages
_ROLE_ORDER = (ActorRole.RENTER, ActorRole.OWNER, ActorRole.ADMIN, ActorRole.SYSTEM)


def get_transition(
    from_state: BookingState,
    to_state: BookingState,
) -> StateTransition | None:
    """Transition record for the pair, or None if the edge does not exist."""
    return _TRANSITION_MAP.get((from_state, to_state))


def is_valid_transition(from_state: BookingState, to_state: BookingState) -> bool:
    return (from_state, to_state) in _TRANSITION_MAP


def get_valid_next_states(current: BookingState) -> list[BookingState]:
    """Graph-legal targets from ``current``, in table order. Empty if terminal."""
    return [t.to_state for t in STATE_TRANSITIONS if t.from_state == current]


def can_actor_perform_transition(
    from_state: BookingState,
    to_state: BookingState,
    actor_role: ActorRole,
) -> bool:
    transition = get_transition(from_state, to_state)
    if transition is None:
        return False
    return actor_role in transition.allowed_actors


def _format_roles(roles: frozenset[ActorRole]) -> str:
    return ", ".join(r.value for r in _ROLE_ORDER if r in roles)


def validate_transition(
    from_state: BookingState,
    to_state: BookingState,
    actor_role: ActorRole,
    context: TransitionContext | None = None,
) -> ValidationResult:
    """Validate a transition with full context. First failure wins.

    Checks, in order: edge exists, actor allowed, payment precondition,
    inspection precondition. A missing context asserts nothing, so any
    precondition-gated edge fails without one.
    """
    transition = get_transition(from_state, to_state)
    if transition is None:
        allowed = ", ".join(s.value for s in get_valid_next_states(from_state))
        return ValidationResult(
            valid=False,
            error=(
                f"Invalid transition: {from_state.value} -> {to_state.value}. "
                f"Allowed transitions from {from_state.value}: {allowed or 'none'}"
            ),
            error_kind=ErrorKind.INVALID_TRANSITION,
        )

    if actor_role not in transition.allowed_actors:
        return ValidationResult(
            valid=False,
            error=(
                f"{actor_role.value} is not allowed to perform transition "
                f"{from_state.value} -> {to_state.value}. "
                f"Allowed: {_format_roles(transition.allowed_actors)}"
            ),
            error_kind=ErrorKind.UNAUTHORIZED_ACTOR,
        )

    ctx = context or TransitionContext()

    if transition.requires_payment and not ctx.is_payment_complete:
        return ValidationResult(
            valid=False,
            error=(
                f"Transition {from_state.value} -> {to_state.value} "
                "requires payment to be complete"
            ),
            error_kind=ErrorKind.PRECONDITION_NOT_MET,
        )

    if transition.requires_inspection and not ctx.is_inspection_complete:
        return ValidationResult(
            valid=False,
            error=(
                f"Transition {from_state.value} -> {to_state.value} "
                "requires inspection to be complete"
            ),
            error_kind=ErrorKind.PRECONDITION_NOT_MET,
        )

    return ValidationResult(valid=True, transition=transition)


def is_terminal_state(state: BookingState) -> bool:
    return state in TERMINAL_STATES


def is_active_state(state: BookingState) -> bool:
    return state in ACTIVE_STATES


def can_be_cancelled(state: BookingState, actor_role: ActorRole) -> bool:
    return can_actor_perform_transition(state, BookingState.CANCELLED, actor_role)


def state_label(state: BookingState) -> str:
    return STATE_LABELS[state]


def create_transition_event(
    booking_id: str,
    from_state: BookingState,
    to_state: BookingState,
    actor_id: str,
    actor_role: ActorRole,
    reason: str | None = None,
    metadata: Mapping[str, Any] | None = None,
    timestamp: datetime | None = None,
) -> TransitionEvent:
    """Build the audit event for an applied transition."""
    return TransitionEvent(
        booking_id=booking_id,
        from_state=from_state,
        to_state=to_state,
        actor_id=actor_id,
        actor_role=actor_role,
        timestamp=timestamp or utc_now(),
        reason=reason,
        metadata=dict(metadata or {}),
    )
