"""Damage report state machine -- pure transition logic with validation.

Independent of the booking state machine: a booking can be IN_USE or
AWAITING_RETURN_INSPECTION while carrying an open damage report.
Resolved statuses are terminal; ESCALATED stays open for further action.
"""

from __future__ import annotations

from typing import ClassVar

from lendit.errors import InvalidTransitionError
from lendit.insurance.types import (
    OPEN_REPORT_STATUSES,
    RESOLVED_REPORT_STATUSES,
    DamageReportStatus,
    DamageStatus,
)

# Report outcome -> booking-level damage status
RESOLUTION_DAMAGE_STATUS: dict[DamageReportStatus, DamageStatus] = {
    DamageReportStatus.RESOLVED_NO_ACTION: DamageStatus.RESOLVED_NO_CHARGE,
    DamageReportStatus.RESOLVED_BOND_PARTIAL: DamageStatus.RESOLVED_BOND_PARTIALLY_USED,
    DamageReportStatus.RESOLVED_BOND_FULL: DamageStatus.RESOLVED_BOND_FULLY_USED,
    DamageReportStatus.ESCALATED: DamageStatus.CONFIRMED_DAMAGE,
}

_OPEN_TARGETS = (
    OPEN_REPORT_STATUSES | RESOLVED_REPORT_STATUSES | {DamageReportStatus.ESCALATED}
)


class DamageReportStateMachine:
    """Validates damage report status moves against a static table.

    Raises InvalidTransitionError on moves out of a resolved status or
    to a status the table does not list.
    """

    TRANSITIONS: ClassVar[dict[DamageReportStatus, frozenset[DamageReportStatus]]] = {
        DamageReportStatus.OPEN: frozenset(_OPEN_TARGETS - {DamageReportStatus.OPEN}),
        DamageReportStatus.UNDER_REVIEW: frozenset(
            _OPEN_TARGETS - {DamageReportStatus.UNDER_REVIEW}
        ),
        DamageReportStatus.AWAITING_MORE_INFO: frozenset(
            _OPEN_TARGETS - {DamageReportStatus.AWAITING_MORE_INFO}
        ),
        DamageReportStatus.ESCALATED: frozenset(
            {DamageReportStatus.UNDER_REVIEW} | RESOLVED_REPORT_STATUSES
        ),
    }

    def __init__(self, status: DamageReportStatus) -> None:
        self._status = status

    @property
    def status(self) -> DamageReportStatus:
        return self._status

    @property
    def is_resolved(self) -> bool:
        return self._status in RESOLVED_REPORT_STATUSES

    def can_transition(self, to: DamageReportStatus) -> bool:
        return to in self.TRANSITIONS.get(self._status, frozenset())

    def transition(self, to: DamageReportStatus) -> None:
        """Validate and apply a status move.

        Raises:
            InvalidTransitionError: If the move is not allowed.
        """
        if self.is_resolved:
            raise InvalidTransitionError(
                f"Damage report is already resolved ({self._status.value})"
            )
        if not self.can_transition(to):
            allowed = ", ".join(
                sorted(s.value for s in self.TRANSITIONS.get(self._status, frozenset()))
            )
            raise InvalidTransitionError(
                f"Invalid damage report transition: {self._status.value} -> {to.value}. "
                f"Allowed: {allowed or 'none'}"
            )
        self._status = to
