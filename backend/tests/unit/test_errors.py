"""Tests for the booking error hierarchy."""

from __future__ import annotations

import pytest

from lendit.errors import (
    BookingError,
    BookingNotFoundError,
    ConcurrentModificationError,
    DamageReportNotFoundError,
    ErrorKind,
    InvalidTransitionError,
    InvariantViolationError,
    ListingNotFoundError,
    NotFoundError,
    PersistenceError,
    PolicyNotFoundError,
    PreconditionNotMetError,
    TerminalStateError,
    UnauthorizedActorError,
)


class TestErrorKinds:
    @pytest.mark.parametrize(
        ("error_cls", "kind"),
        [
            (TerminalStateError, ErrorKind.TERMINAL_STATE),
            (InvalidTransitionError, ErrorKind.INVALID_TRANSITION),
            (UnauthorizedActorError, ErrorKind.UNAUTHORIZED_ACTOR),
            (PreconditionNotMetError, ErrorKind.PRECONDITION_NOT_MET),
            (InvariantViolationError, ErrorKind.INVARIANT_VIOLATION),
            (PersistenceError, ErrorKind.PERSISTENCE_FAILURE),
            (ConcurrentModificationError, ErrorKind.PERSISTENCE_FAILURE),
        ],
    )
    def test_kind_per_class(self, error_cls: type[BookingError], kind: ErrorKind) -> None:
        err = error_cls("boom")
        assert err.kind is kind
        assert err.message == "boom"
        assert str(err) == "boom"

    def test_kind_values_are_snake_case(self) -> None:
        assert ErrorKind.NOT_FOUND.value == "not_found"
        assert ErrorKind("persistence_failure") is ErrorKind.PERSISTENCE_FAILURE


class TestNotFound:
    @pytest.mark.parametrize(
        ("error", "message"),
        [
            (BookingNotFoundError("b-1"), "Booking b-1 not found"),
            (ListingNotFoundError("l-1"), "Listing l-1 not found"),
            (DamageReportNotFoundError("d-1"), "Damage report d-1 not found"),
            (PolicyNotFoundError("terms"), "Published policy terms not found"),
        ],
    )
    def test_messages(self, error: NotFoundError, message: str) -> None:
        assert error.message == message
        assert error.kind is ErrorKind.NOT_FOUND

    def test_carries_resource_and_identifier(self) -> None:
        err = BookingNotFoundError("b-1")
        assert err.resource == "Booking"
        assert err.identifier == "b-1"


class TestHierarchy:
    def test_everything_is_a_booking_error(self) -> None:
        for err in (
            BookingNotFoundError("b"),
            TerminalStateError("x"),
            ConcurrentModificationError("x"),
        ):
            assert isinstance(err, BookingError)

    def test_concurrent_modification_is_persistence_error(self) -> None:
        with pytest.raises(PersistenceError):
            raise ConcurrentModificationError("stale")
