"""Booking engine error hierarchy.

All engine exceptions inherit from BookingError and carry an ErrorKind,
so the lifecycle service can turn any of them into a structured
TransitionResult and the API layer can map kinds to responses.
"""

from __future__ import annotations

from enum import Enum
from typing import ClassVar


class ErrorKind(str, Enum):
    """Closed taxonomy of engine failures."""

    NOT_FOUND = "not_found"
    TERMINAL_STATE = "terminal_state"
    INVALID_TRANSITION = "invalid_transition"
    UNAUTHORIZED_ACTOR = "unauthorized_actor"
    PRECONDITION_NOT_MET = "precondition_not_met"
    INVARIANT_VIOLATION = "invariant_violation"
    PERSISTENCE_FAILURE = "persistence_failure"


class BookingError(Exception):
    """Base exception for all booking engine errors."""

    kind: ClassVar[ErrorKind] = ErrorKind.INVARIANT_VIOLATION

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class NotFoundError(BookingError):
    """Referenced entity does not exist."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, resource: str, identifier: str) -> None:
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} {identifier} not found")


class BookingNotFoundError(NotFoundError):
    def __init__(self, booking_id: str) -> None:
        super().__init__("Booking", booking_id)


class DamageReportNotFoundError(NotFoundError):
    def __init__(self, report_id: str) -> None:
        super().__init__("Damage report", report_id)


class ListingNotFoundError(NotFoundError):
    def __init__(self, listing_id: str) -> None:
        super().__init__("Listing", listing_id)


class PolicyNotFoundError(NotFoundError):
    def __init__(self, slug: str) -> None:
        super().__init__("Published policy", slug)


class TerminalStateError(BookingError):
    """Modification attempted on a booking already in a terminal state."""

    kind = ErrorKind.TERMINAL_STATE


class InvalidTransitionError(BookingError):
    """The (from, to) pair is not an edge of the transition graph."""

    kind = ErrorKind.INVALID_TRANSITION


class UnauthorizedActorError(BookingError):
    """The edge exists but the actor's role may not trigger it."""

    kind = ErrorKind.UNAUTHORIZED_ACTOR


class PreconditionNotMetError(BookingError):
    """Payment or inspection precondition unsatisfied."""

    kind = ErrorKind.PRECONDITION_NOT_MET


class InvariantViolationError(BookingError):
    """A data invariant would be broken (bond cap, policy version, ...)."""

    kind = ErrorKind.INVARIANT_VIOLATION


class PersistenceError(BookingError):
    """The underlying storage write failed."""

    kind = ErrorKind.PERSISTENCE_FAILURE


class ConcurrentModificationError(PersistenceError):
    """Another writer changed the booking between read and write."""
