"""Booking lifecycle service -- the single entry point for status changes.

Every status change goes through transition(): load facts, refuse
terminal bookings, validate against the transition table, persist with
an optimistic (status, version) check, then record the audit event and
emit the notification. Audit and notification are best-effort: once the
status write commits, the transition has happened.

Public operations never raise for business failures. They return a
TransitionResult carrying the user-facing error and its ErrorKind.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

import structlog

from lendit.audit.recorder import AuditRecorder
from lendit.bookings.repository import BookingFacts, BookingRepository
from lendit.bookings.state_machine import (
    can_actor_perform_transition,
    create_transition_event,
    get_valid_next_states,
    is_terminal_state,
    validate_transition,
)
from lendit.bookings.types import (
    STATE_LABELS,
    SYSTEM_ACTOR_ID,
    ActorRole,
    AvailableAction,
    BookingActions,
    BookingContext,
    BookingState,
    BookingStatusChange,
    TransitionContext,
    TransitionEvent,
    TransitionResult,
)
from lendit.errors import BookingError, BookingNotFoundError, TerminalStateError
from lendit.notifications.sink import (
    NotificationPayload,
    NotificationSink,
    NotificationType,
)
from lendit.utils.logging import bind_booking, unbind_booking
from lendit.utils.time import now_timestamp

log = structlog.get_logger()

SideWrites = Callable[[BookingFacts], Mapping[str, Any]]


class Recipient(str, Enum):
    RENTER = "RENTER"
    OWNER = "OWNER"
    OTHER_PARTY = "OTHER_PARTY"  # whichever of renter/owner did not act


@dataclass(frozen=True)
class NotificationRule:
    type: NotificationType
    recipient: Recipient


# Keyed by every BookingState; None means the state notifies nobody.
NOTIFICATION_RULES: dict[BookingState, NotificationRule | None] = {
    BookingState.PENDING: None,
    BookingState.ACCEPTED: NotificationRule(NotificationType.BOOKING_ACCEPTED, Recipient.RENTER),
    BookingState.DECLINED: NotificationRule(NotificationType.BOOKING_DECLINED, Recipient.RENTER),
    BookingState.CANCELLED: NotificationRule(
        NotificationType.BOOKING_CANCELLED, Recipient.OTHER_PARTY
    ),
    BookingState.AWAITING_PICKUP: NotificationRule(
        NotificationType.PICKUP_REMINDER, Recipient.RENTER
    ),
    BookingState.IN_USE: NotificationRule(NotificationType.HANDOVER_COMPLETED, Recipient.RENTER),
    BookingState.AWAITING_RETURN_INSPECTION: NotificationRule(
        NotificationType.RETURN_REMINDER, Recipient.OWNER
    ),
    BookingState.IN_DISPUTE: NotificationRule(
        NotificationType.DISPUTE_RAISED, Recipient.OTHER_PARTY
    ),
    BookingState.COMPLETED: NotificationRule(
        NotificationType.BOOKING_COMPLETED, Recipient.RENTER
    ),
}

DEFAULT_REASONS = {
    "accept": "Owner accepted booking request",
    "decline": "Owner declined booking request",
    "cancel": "Booking cancelled",
    "ready_for_pickup": "Payment confirmed",
    "start_rental": "Equipment picked up",
    "mark_returned": "Equipment returned",
    "complete": "Inspection passed, rental completed",
    "raise_dispute": "Dispute raised",
    "resolve_dispute": "Dispute resolved by admin",
}


def resolve_recipient(rule: NotificationRule, facts: BookingFacts, actor_id: str) -> str:
    if rule.recipient is Recipient.RENTER:
        return facts.renter_id
    if rule.recipient is Recipient.OWNER:
        return facts.owner_id
    return facts.owner_id if actor_id == facts.renter_id else facts.renter_id


def engine_hours_used(
    hours_at_pickup: Decimal | None,
    hours_at_return: Decimal | None,
) -> Decimal | None:
    """Return minus pickup reading; None if either reading is absent."""
    if hours_at_pickup is None or hours_at_return is None:
        return None
    return hours_at_return - hours_at_pickup


class BookingLifecycleService:
    """Orchestrates validated booking status transitions.

    Collaborators are injected so tests can swap in in-memory fakes and
    simulate storage, audit, or notification failures.
    """

    def __init__(
        self,
        repository: BookingRepository,
        audit: AuditRecorder,
        notifications: NotificationSink,
    ) -> None:
        self._repository = repository
        self._audit = audit
        self._notifications = notifications

    async def transition(
        self,
        context: BookingContext,
        target_state: BookingState,
    ) -> TransitionResult:
        """Move a booking to ``target_state`` on behalf of ``context``'s actor."""
        return await self._transition(context, target_state)

    async def _transition(
        self,
        context: BookingContext,
        target_state: BookingState,
        side_writes: SideWrites | None = None,
        event_metadata: Mapping[str, Any] | None = None,
    ) -> TransitionResult:
        bind_booking(context.booking_id)
        try:
            return await self._apply(context, target_state, side_writes, event_metadata)
        finally:
            unbind_booking()

    async def _apply(
        self,
        context: BookingContext,
        target_state: BookingState,
        side_writes: SideWrites | None,
        event_metadata: Mapping[str, Any] | None,
    ) -> TransitionResult:
        try:
            facts = await self._repository.load_facts(context.booking_id)
        except BookingError as exc:
            return self._reject(context, target_state, exc)

        if facts is None:
            return self._reject(context, target_state, BookingNotFoundError(context.booking_id))

        if is_terminal_state(facts.status):
            return self._reject(
                context,
                target_state,
                TerminalStateError(
                    f"Booking is in terminal state {facts.status.value} "
                    "and cannot be modified"
                ),
            )

        transition_context = TransitionContext(
            is_payment_complete=(
                context.is_payment_complete
                if context.is_payment_complete is not None
                else facts.is_payment_complete
            ),
            is_inspection_complete=(
                context.is_inspection_complete
                if context.is_inspection_complete is not None
                else facts.is_inspection_complete
            ),
            is_owner=context.actor_id == facts.owner_id,
            is_renter=context.actor_id == facts.renter_id,
        )
        validation = validate_transition(
            facts.status,
            target_state,
            context.actor_role,
            transition_context,
        )
        if not validation.valid:
            log.info(
                "booking_transition_rejected",
                from_state=facts.status.value,
                to_state=target_state.value,
                actor_role=context.actor_role.value,
                error_kind=validation.error_kind.value if validation.error_kind else None,
                error=validation.error,
            )
            return TransitionResult(
                success=False,
                error=validation.error,
                error_kind=validation.error_kind,
            )

        writes = dict(side_writes(facts)) if side_writes is not None else None
        try:
            await self._repository.update_status(
                facts.id,
                facts.status,
                facts.version,
                target_state,
                writes,
            )
        except BookingError as exc:
            return self._reject(context, target_state, exc)

        metadata = dict(context.metadata or {})
        metadata.update(event_metadata or {})
        event = create_transition_event(
            booking_id=facts.id,
            from_state=facts.status,
            to_state=target_state,
            actor_id=context.actor_id,
            actor_role=context.actor_role,
            reason=context.reason,
            metadata=metadata,
        )

        log.info(
            "booking_transitioned",
            from_state=facts.status.value,
            to_state=target_state.value,
            actor_id=context.actor_id,
            actor_role=context.actor_role.value,
            reason=context.reason,
        )

        await self._record_audit(event)
        await self._notify(facts, event)

        return TransitionResult(
            success=True,
            booking=BookingStatusChange(
                id=facts.id,
                status=target_state,
                previous_status=facts.status,
            ),
            event=event,
        )

    def _reject(
        self,
        context: BookingContext,
        target_state: BookingState,
        exc: BookingError,
    ) -> TransitionResult:
        log.warning(
            "booking_transition_failed",
            to_state=target_state.value,
            actor_role=context.actor_role.value,
            error_kind=exc.kind.value,
            error=exc.message,
        )
        return TransitionResult(success=False, error=exc.message, error_kind=exc.kind)

    async def _record_audit(self, event: TransitionEvent) -> None:
        try:
            await self._audit.record(event)
        except Exception:
            # Status already committed; a lost audit row must not undo it
            log.exception(
                "audit_record_failed",
                from_state=event.from_state.value,
                to_state=event.to_state.value,
                actor_id=event.actor_id,
            )

    async def _notify(self, facts: BookingFacts, event: TransitionEvent) -> None:
        rule = NOTIFICATION_RULES[event.to_state]
        if rule is None:
            return
        recipient = resolve_recipient(rule, facts, event.actor_id)
        payload = NotificationPayload(
            booking_id=facts.id,
            from_status=event.from_state,
            to_status=event.to_state,
            message=f"Booking status changed to {STATE_LABELS[event.to_state]}",
        )
        try:
            await self._notifications.create(recipient, rule.type, payload)
        except Exception:
            log.exception(
                "notification_failed",
                recipient_id=recipient,
                type=rule.type.value,
            )

    # -- Convenience operations ------------------------------------------------

    async def accept_booking(
        self,
        booking_id: str,
        owner_id: str,
        actor_email: str | None = None,
    ) -> TransitionResult:
        return await self.transition(
            BookingContext(
                booking_id=booking_id,
                actor_id=owner_id,
                actor_role=ActorRole.OWNER,
                actor_email=actor_email,
                reason=DEFAULT_REASONS["accept"],
            ),
            BookingState.ACCEPTED,
        )

    async def decline_booking(
        self,
        booking_id: str,
        owner_id: str,
        reason: str | None = None,
        actor_email: str | None = None,
    ) -> TransitionResult:
        return await self.transition(
            BookingContext(
                booking_id=booking_id,
                actor_id=owner_id,
                actor_role=ActorRole.OWNER,
                actor_email=actor_email,
                reason=reason or DEFAULT_REASONS["decline"],
            ),
            BookingState.DECLINED,
        )

    async def cancel_booking(
        self,
        booking_id: str,
        actor_id: str,
        actor_role: ActorRole,
        reason: str | None = None,
        actor_email: str | None = None,
    ) -> TransitionResult:
        return await self.transition(
            BookingContext(
                booking_id=booking_id,
                actor_id=actor_id,
                actor_role=actor_role,
                actor_email=actor_email,
                reason=reason or DEFAULT_REASONS["cancel"],
            ),
            BookingState.CANCELLED,
        )

    async def mark_ready_for_pickup(
        self,
        booking_id: str,
        actor_id: str = SYSTEM_ACTOR_ID,
        is_payment_complete: bool | None = None,
    ) -> TransitionResult:
        """Advance an accepted booking once payment is confirmed.

        The payment webhook calls this as the SYSTEM actor with
        ``is_payment_complete=True``; any other actor id is treated as an
        admin override. Without the flag the stored payment status decides.
        """
        role = ActorRole.SYSTEM if actor_id == SYSTEM_ACTOR_ID else ActorRole.ADMIN
        metadata = {"payment_confirmed": True} if is_payment_complete else None
        return await self.transition(
            BookingContext(
                booking_id=booking_id,
                actor_id=actor_id,
                actor_role=role,
                reason=DEFAULT_REASONS["ready_for_pickup"],
                metadata=metadata,
                is_payment_complete=is_payment_complete,
            ),
            BookingState.AWAITING_PICKUP,
        )

    async def start_rental(
        self,
        booking_id: str,
        owner_id: str,
        engine_hours: Decimal | None = None,
        actor_email: str | None = None,
    ) -> TransitionResult:
        """Hand the equipment over and start the rental clock."""

        def writes(_facts: BookingFacts) -> dict[str, Any]:
            values: dict[str, Any] = {"actual_pickup_time": now_timestamp()}
            if engine_hours is not None:
                values["engine_hours_at_pickup"] = engine_hours
            return values

        metadata = (
            {"engine_hours_at_pickup": str(engine_hours)} if engine_hours is not None else None
        )
        return await self._transition(
            BookingContext(
                booking_id=booking_id,
                actor_id=owner_id,
                actor_role=ActorRole.OWNER,
                actor_email=actor_email,
                reason=DEFAULT_REASONS["start_rental"],
            ),
            BookingState.IN_USE,
            side_writes=writes,
            event_metadata=metadata,
        )

    async def mark_returned(
        self,
        booking_id: str,
        actor_id: str,
        actor_role: ActorRole,
        engine_hours: Decimal | None = None,
        actor_email: str | None = None,
    ) -> TransitionResult:
        """Record the return; the booking always waits for inspection next.

        Issues flagged at handover are raised separately via raise_dispute().
        """
        metadata: dict[str, Any] = {}

        def writes(facts: BookingFacts) -> dict[str, Any]:
            values: dict[str, Any] = {"actual_return_time": now_timestamp()}
            if engine_hours is not None:
                used = engine_hours_used(facts.engine_hours_at_pickup, engine_hours)
                values["engine_hours_at_return"] = engine_hours
                values["engine_hours_used"] = used
                metadata["engine_hours_at_return"] = str(engine_hours)
                if used is not None:
                    metadata["engine_hours_used"] = str(used)
            return values

        return await self._transition(
            BookingContext(
                booking_id=booking_id,
                actor_id=actor_id,
                actor_role=actor_role,
                actor_email=actor_email,
                reason=DEFAULT_REASONS["mark_returned"],
            ),
            BookingState.AWAITING_RETURN_INSPECTION,
            side_writes=writes,
            event_metadata=metadata,
        )

    async def complete_booking(
        self,
        booking_id: str,
        owner_id: str,
        actor_email: str | None = None,
        is_inspection_complete: bool | None = None,
    ) -> TransitionResult:
        return await self.transition(
            BookingContext(
                booking_id=booking_id,
                actor_id=owner_id,
                actor_role=ActorRole.OWNER,
                actor_email=actor_email,
                reason=DEFAULT_REASONS["complete"],
                is_inspection_complete=is_inspection_complete,
            ),
            BookingState.COMPLETED,
        )

    async def raise_dispute(
        self,
        booking_id: str,
        actor_id: str,
        actor_role: ActorRole,
        reason: str | None = None,
        actor_email: str | None = None,
    ) -> TransitionResult:
        return await self.transition(
            BookingContext(
                booking_id=booking_id,
                actor_id=actor_id,
                actor_role=actor_role,
                actor_email=actor_email,
                reason=reason or DEFAULT_REASONS["raise_dispute"],
            ),
            BookingState.IN_DISPUTE,
        )

    async def resolve_dispute(
        self,
        booking_id: str,
        admin_id: str,
        resolution: str | None = None,
        actor_email: str | None = None,
    ) -> TransitionResult:
        """Admin closes a dispute; the booking completes."""
        return await self.transition(
            BookingContext(
                booking_id=booking_id,
                actor_id=admin_id,
                actor_role=ActorRole.ADMIN,
                actor_email=actor_email,
                reason=resolution or DEFAULT_REASONS["resolve_dispute"],
            ),
            BookingState.COMPLETED,
        )

    # -- Queries ---------------------------------------------------------------

    async def get_available_actions(
        self,
        booking_id: str,
        actor_id: str,
        actor_role: ActorRole,
    ) -> BookingActions | None:
        """Moves the actor's role may offer from the current status.

        Filters exactly like the validator's edge and actor checks.
        Preconditions are not evaluated here since they can change
        between render and submit. Returns None if the booking is unknown
        or its facts cannot be loaded.
        """
        try:
            facts = await self._repository.load_facts(booking_id)
        except BookingError as exc:
            log.warning(
                "booking_actions_failed",
                booking_id=booking_id,
                actor_role=actor_role.value,
                error_kind=exc.kind.value,
                error=exc.message,
            )
            return None
        if facts is None:
            return None

        actions = tuple(
            AvailableAction(
                to_state=next_state,
                label=STATE_LABELS[next_state],
                description=f"Transition to {STATE_LABELS[next_state]}",
            )
            for next_state in get_valid_next_states(facts.status)
            if can_actor_perform_transition(facts.status, next_state, actor_role)
        )
        log.debug(
            "booking_actions_listed",
            booking_id=booking_id,
            actor_id=actor_id,
            count=len(actions),
        )
        return BookingActions(current_status=facts.status, available_transitions=actions)
