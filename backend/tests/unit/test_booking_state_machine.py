"""Tests for the booking state machine -- transition table and validator.

Covers every table edge, actor restrictions, payment/inspection
preconditions, error message contents, helpers, and Hypothesis
properties over the whole (from, to, actor) space.
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from lendit.bookings.state_machine import (
    STATE_TRANSITIONS,
    can_actor_perform_transition,
    can_be_cancelled,
    create_transition_event,
    get_transition,
    get_valid_next_states,
    is_active_state,
    is_terminal_state,
    is_valid_transition,
    state_label,
    validate_transition,
)
from lendit.bookings.types import (
    ACTIVE_STATES,
    STATE_LABELS,
    TERMINAL_STATES,
    ActorRole,
    BookingState,
    TransitionContext,
)
from lendit.errors import ErrorKind

S = BookingState
R = ActorRole

EDGES: list[tuple[BookingState, BookingState, frozenset[ActorRole]]] = [
    (S.PENDING, S.ACCEPTED, frozenset({R.OWNER, R.ADMIN})),
    (S.PENDING, S.DECLINED, frozenset({R.OWNER, R.ADMIN})),
    (S.PENDING, S.CANCELLED, frozenset({R.RENTER, R.ADMIN})),
    (S.ACCEPTED, S.AWAITING_PICKUP, frozenset({R.SYSTEM, R.ADMIN})),
    (S.ACCEPTED, S.CANCELLED, frozenset({R.RENTER, R.OWNER, R.ADMIN})),
    (S.AWAITING_PICKUP, S.IN_USE, frozenset({R.OWNER, R.ADMIN})),
    (S.AWAITING_PICKUP, S.CANCELLED, frozenset({R.ADMIN})),
    (S.IN_USE, S.AWAITING_RETURN_INSPECTION, frozenset({R.RENTER, R.OWNER, R.ADMIN})),
    (S.AWAITING_RETURN_INSPECTION, S.COMPLETED, frozenset({R.OWNER, R.ADMIN})),
    (S.AWAITING_RETURN_INSPECTION, S.IN_DISPUTE, frozenset({R.RENTER, R.OWNER, R.ADMIN})),
    (S.IN_DISPUTE, S.COMPLETED, frozenset({R.ADMIN})),
    (S.IN_DISPUTE, S.AWAITING_RETURN_INSPECTION, frozenset({R.ADMIN})),
]

_EDGE_KEYS = {(f, t) for f, t, _ in EDGES}
_SATISFIED = TransitionContext(is_payment_complete=True, is_inspection_complete=True)


class TestTransitionTable:
    """The table holds exactly the documented edges."""

    def test_table_matches_documented_edges(self) -> None:
        actual = {(t.from_state, t.to_state, t.allowed_actors) for t in STATE_TRANSITIONS}
        assert actual == set(EDGES)

    def test_no_duplicate_edges(self) -> None:
        keys = [(t.from_state, t.to_state) for t in STATE_TRANSITIONS]
        assert len(keys) == len(set(keys))

    def test_only_payment_edge_requires_payment(self) -> None:
        gated = [(t.from_state, t.to_state) for t in STATE_TRANSITIONS if t.requires_payment]
        assert gated == [(S.ACCEPTED, S.AWAITING_PICKUP)]

    def test_only_completion_after_inspection_requires_inspection(self) -> None:
        gated = [
            (t.from_state, t.to_state) for t in STATE_TRANSITIONS if t.requires_inspection
        ]
        assert gated == [(S.AWAITING_RETURN_INSPECTION, S.COMPLETED)]

    def test_dispute_resolution_skips_inspection_precondition(self) -> None:
        transition = get_transition(S.IN_DISPUTE, S.COMPLETED)
        assert transition is not None
        assert transition.requires_inspection is False

    def test_every_transition_has_description(self) -> None:
        assert all(t.description for t in STATE_TRANSITIONS)

    def test_get_transition_unknown_pair(self) -> None:
        assert get_transition(S.PENDING, S.COMPLETED) is None


class TestValidTransitions:
    """Allowed actors pass on every edge once preconditions hold."""

    @pytest.mark.parametrize(
        ("from_state", "to_state", "actors"),
        EDGES,
        ids=[f"{f.value}->{t.value}" for f, t, _ in EDGES],
    )
    def test_allowed_actors_pass(
        self,
        from_state: BookingState,
        to_state: BookingState,
        actors: frozenset[ActorRole],
    ) -> None:
        for actor in actors:
            result = validate_transition(from_state, to_state, actor, _SATISFIED)
            assert result.valid, result.error
            assert result.transition is not None
            assert result.transition.to_state == to_state

    @pytest.mark.parametrize(
        ("from_state", "to_state", "actors"),
        EDGES,
        ids=[f"{f.value}->{t.value}" for f, t, _ in EDGES],
    )
    def test_other_actors_rejected(
        self,
        from_state: BookingState,
        to_state: BookingState,
        actors: frozenset[ActorRole],
    ) -> None:
        for actor in set(ActorRole) - actors:
            result = validate_transition(from_state, to_state, actor, _SATISFIED)
            assert not result.valid
            assert result.error_kind is ErrorKind.UNAUTHORIZED_ACTOR


class TestErrorMessages:
    """Rejections name the pair or actor so the UI can explain why."""

    def test_invalid_pair_lists_allowed_targets(self) -> None:
        result = validate_transition(S.PENDING, S.COMPLETED, R.ADMIN)
        assert result.error == (
            "Invalid transition: PENDING -> COMPLETED. "
            "Allowed transitions from PENDING: ACCEPTED, DECLINED, CANCELLED"
        )
        assert result.error_kind is ErrorKind.INVALID_TRANSITION

    def test_invalid_pair_from_terminal_lists_none(self) -> None:
        result = validate_transition(S.COMPLETED, S.IN_DISPUTE, R.ADMIN)
        assert result.error.endswith("Allowed transitions from COMPLETED: none")

    def test_renter_cannot_accept(self) -> None:
        result = validate_transition(S.PENDING, S.ACCEPTED, R.RENTER)
        assert result.error == (
            "RENTER is not allowed to perform transition PENDING -> ACCEPTED. "
            "Allowed: OWNER, ADMIN"
        )

    def test_payment_precondition_message(self) -> None:
        result = validate_transition(
            S.ACCEPTED,
            S.AWAITING_PICKUP,
            R.SYSTEM,
            TransitionContext(is_payment_complete=False),
        )
        assert not result.valid
        assert result.error_kind is ErrorKind.PRECONDITION_NOT_MET
        assert "payment" in result.error

    def test_inspection_precondition_message(self) -> None:
        result = validate_transition(
            S.AWAITING_RETURN_INSPECTION,
            S.COMPLETED,
            R.OWNER,
            TransitionContext(is_inspection_complete=False),
        )
        assert not result.valid
        assert result.error_kind is ErrorKind.PRECONDITION_NOT_MET
        assert "inspection" in result.error

    def test_actor_check_precedes_preconditions(self) -> None:
        result = validate_transition(
            S.ACCEPTED,
            S.AWAITING_PICKUP,
            R.RENTER,
            TransitionContext(is_payment_complete=False),
        )
        assert result.error_kind is ErrorKind.UNAUTHORIZED_ACTOR


class TestPreconditions:
    """Payment and inspection gates."""

    def test_payment_true_passes(self) -> None:
        result = validate_transition(
            S.ACCEPTED,
            S.AWAITING_PICKUP,
            R.SYSTEM,
            TransitionContext(is_payment_complete=True),
        )
        assert result.valid

    def test_missing_context_fails_payment(self) -> None:
        result = validate_transition(S.ACCEPTED, S.AWAITING_PICKUP, R.ADMIN)
        assert not result.valid
        assert result.error_kind is ErrorKind.PRECONDITION_NOT_MET

    def test_missing_context_fails_inspection(self) -> None:
        result = validate_transition(S.AWAITING_RETURN_INSPECTION, S.COMPLETED, R.ADMIN)
        assert not result.valid

    def test_ungated_edge_needs_no_context(self) -> None:
        assert validate_transition(S.PENDING, S.ACCEPTED, R.OWNER).valid


class TestHelpers:
    """Terminal/active sets and the small query helpers."""

    @pytest.mark.parametrize("state", sorted(TERMINAL_STATES, key=lambda s: s.value))
    def test_terminal_states_have_no_next_states(self, state: BookingState) -> None:
        assert is_terminal_state(state)
        assert get_valid_next_states(state) == []

    def test_terminal_and_active_partition_all_but_pending(self) -> None:
        assert TERMINAL_STATES.isdisjoint(ACTIVE_STATES)
        assert TERMINAL_STATES | ACTIVE_STATES | {S.PENDING} == set(BookingState)

    def test_active_state(self) -> None:
        assert is_active_state(S.IN_USE)
        assert not is_active_state(S.PENDING)
        assert not is_active_state(S.COMPLETED)

    def test_next_states_in_table_order(self) -> None:
        assert get_valid_next_states(S.ACCEPTED) == [S.AWAITING_PICKUP, S.CANCELLED]

    def test_can_be_cancelled(self) -> None:
        assert can_be_cancelled(S.PENDING, R.RENTER)
        assert not can_be_cancelled(S.PENDING, R.OWNER)
        assert can_be_cancelled(S.ACCEPTED, R.OWNER)
        assert not can_be_cancelled(S.AWAITING_PICKUP, R.RENTER)
        assert can_be_cancelled(S.AWAITING_PICKUP, R.ADMIN)
        assert not can_be_cancelled(S.IN_USE, R.ADMIN)

    def test_every_state_has_label(self) -> None:
        assert set(STATE_LABELS) == set(BookingState)
        assert state_label(S.AWAITING_PICKUP) == "Ready for Pickup"

    def test_create_transition_event(self) -> None:
        ts = datetime(2026, 3, 10, 8, 0, tzinfo=UTC)
        event = create_transition_event(
            "b-1",
            S.PENDING,
            S.ACCEPTED,
            "owner-1",
            R.OWNER,
            reason="Owner accepted booking request",
            metadata={"source": "web"},
            timestamp=ts,
        )
        assert event.booking_id == "b-1"
        assert event.timestamp == ts
        assert event.metadata == {"source": "web"}

    def test_create_transition_event_defaults_timestamp_to_now(self) -> None:
        event = create_transition_event("b-1", S.PENDING, S.ACCEPTED, "o", R.OWNER)
        assert event.timestamp.tzinfo is not None
        assert event.metadata == {}


class TestStateMachineProperties:
    """Hypothesis properties over the full (from, to, actor) space."""

    @given(
        from_state=st.sampled_from(BookingState),
        to_state=st.sampled_from(BookingState),
        actor=st.sampled_from(ActorRole),
    )
    @settings(max_examples=300)
    def test_unmapped_pairs_invalid_for_every_actor(
        self,
        from_state: BookingState,
        to_state: BookingState,
        actor: ActorRole,
    ) -> None:
        if (from_state, to_state) in _EDGE_KEYS:
            return
        result = validate_transition(from_state, to_state, actor, _SATISFIED)
        assert not result.valid
        assert result.error_kind is ErrorKind.INVALID_TRANSITION
        assert not is_valid_transition(from_state, to_state)

    @given(
        from_state=st.sampled_from(BookingState),
        to_state=st.sampled_from(BookingState),
        actor=st.sampled_from(ActorRole),
    )
    @settings(max_examples=300)
    def test_actor_helper_mirrors_validator(
        self,
        from_state: BookingState,
        to_state: BookingState,
        actor: ActorRole,
    ) -> None:
        result = validate_transition(from_state, to_state, actor, _SATISFIED)
        assert result.valid == can_actor_perform_transition(from_state, to_state, actor)

    @given(
        actor=st.sampled_from([R.SYSTEM, R.ADMIN]),
        paid=st.booleans(),
    )
    def test_payment_flag_decides_payment_edge(self, actor: ActorRole, paid: bool) -> None:
        result = validate_transition(
            S.ACCEPTED,
            S.AWAITING_PICKUP,
            actor,
            TransitionContext(is_payment_complete=paid),
        )
        assert result.valid is paid
        if not paid:
            assert "payment" in result.error
