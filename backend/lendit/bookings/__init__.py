"""Booking lifecycle package.

Only the dependency-free core is re-exported here. Import the lifecycle
service, repository and creator from their modules; the audit and
notification packages depend on these types.
"""

from lendit.bookings.state_machine import (
    STATE_TRANSITIONS,
    can_actor_perform_transition,
    can_be_cancelled,
    get_transition,
    get_valid_next_states,
    is_active_state,
    is_terminal_state,
    is_valid_transition,
    validate_transition,
)
from lendit.bookings.types import (
    ACTIVE_STATES,
    STATE_LABELS,
    TERMINAL_STATES,
    ActorRole,
    BookingContext,
    BookingState,
    HandoverChecklist,
    HandoverType,
    TransitionContext,
    TransitionEvent,
    TransitionResult,
    ValidationResult,
)

__all__ = [
    "ACTIVE_STATES",
    "STATE_LABELS",
    "STATE_TRANSITIONS",
    "TERMINAL_STATES",
    "ActorRole",
    "BookingContext",
    "BookingState",
    "HandoverChecklist",
    "HandoverType",
    "TransitionContext",
    "TransitionEvent",
    "TransitionResult",
    "ValidationResult",
    "can_actor_perform_transition",
    "can_be_cancelled",
    "get_transition",
    "get_valid_next_states",
    "is_active_state",
    "is_terminal_state",
    "is_valid_transition",
    "validate_transition",
]
