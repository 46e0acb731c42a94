"""Insurance snapshot and damage report domain types."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum


class InsuranceMode(str, Enum):
    OWNER_PROVIDED = "OWNER_PROVIDED"
    RENTER_PROVIDED = "RENTER_PROVIDED"
    NONE = "NONE"


class DamageStatus(str, Enum):
    """Booking-level damage status, written only by the damage service."""

    NONE_REPORTED = "NONE_REPORTED"
    POTENTIAL_DAMAGE_REPORTED = "POTENTIAL_DAMAGE_REPORTED"
    CONFIRMED_DAMAGE = "CONFIRMED_DAMAGE"
    RESOLVED_NO_CHARGE = "RESOLVED_NO_CHARGE"
    RESOLVED_BOND_PARTIALLY_USED = "RESOLVED_BOND_PARTIALLY_USED"
    RESOLVED_BOND_FULLY_USED = "RESOLVED_BOND_FULLY_USED"


class DamageSeverity(str, Enum):
    """Reported severity, ordered minor < moderate < major < total loss."""

    MINOR = "MINOR"
    MODERATE = "MODERATE"
    MAJOR = "MAJOR"
    TOTAL_LOSS = "TOTAL_LOSS"

    @property
    def rank(self) -> int:
        """Position in the severity order; compare ranks, not values."""
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    DamageSeverity.MINOR: 0,
    DamageSeverity.MODERATE: 1,
    DamageSeverity.MAJOR: 2,
    DamageSeverity.TOTAL_LOSS: 3,
}


class DamageReportStatus(str, Enum):
    OPEN = "OPEN"
    UNDER_REVIEW = "UNDER_REVIEW"
    AWAITING_MORE_INFO = "AWAITING_MORE_INFO"
    RESOLVED_NO_ACTION = "RESOLVED_NO_ACTION"
    RESOLVED_BOND_PARTIAL = "RESOLVED_BOND_PARTIAL"
    RESOLVED_BOND_FULL = "RESOLVED_BOND_FULL"
    ESCALATED = "ESCALATED"


OPEN_REPORT_STATUSES = frozenset(
    {
        DamageReportStatus.OPEN,
        DamageReportStatus.UNDER_REVIEW,
        DamageReportStatus.AWAITING_MORE_INFO,
    }
)

RESOLVED_REPORT_STATUSES = frozenset(
    {
        DamageReportStatus.RESOLVED_NO_ACTION,
        DamageReportStatus.RESOLVED_BOND_PARTIAL,
        DamageReportStatus.RESOLVED_BOND_FULL,
    }
)


class ReporterRole(str, Enum):
    OWNER = "OWNER"
    RENTER = "RENTER"
    ADMIN = "ADMIN"


@dataclass(frozen=True)
class InsuranceSnapshot:
    """Listing insurance terms copied verbatim at booking time."""

    insurance_mode: InsuranceMode
    insurance_notes: str | None
    estimated_replacement_value: Decimal | None
    bond_amount: Decimal | None
    damage_excess_notes: str | None
    safe_use_requirements: str | None
    maintenance_responsibility_owner: bool

    def to_dict(self) -> dict[str, object]:
        return {
            "insurance_mode": self.insurance_mode.value,
            "insurance_notes": self.insurance_notes,
            "estimated_replacement_value": (
                str(self.estimated_replacement_value)
                if self.estimated_replacement_value is not None
                else None
            ),
            "bond_amount": (
                str(self.bond_amount) if self.bond_amount is not None else None
            ),
            "damage_excess_notes": self.damage_excess_notes,
            "safe_use_requirements": self.safe_use_requirements,
            "maintenance_responsibility_owner": self.maintenance_responsibility_owner,
        }


@dataclass(frozen=True)
class PhotoUpload:
    url: str
    caption: str | None = None


@dataclass(frozen=True)
class CreateDamageReportParams:
    booking_id: str
    created_by_id: str
    reported_by_role: ReporterRole
    summary: str
    description: str
    reported_severity: DamageSeverity
    estimated_repair_cost: Decimal | None = None
    photos: tuple[PhotoUpload, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ResolveDamageReportParams:
    report_id: str
    reviewer_id: str
    status: DamageReportStatus
    admin_notes: str | None = None
    bond_amount_applied: Decimal | None = None
    resolution_notes: str | None = None


@dataclass(frozen=True)
class SeverityCount:
    severity: DamageSeverity
    count: int


@dataclass(frozen=True)
class DamageReportStats:
    total_open: int
    total_resolved: int
    by_severity: tuple[SeverityCount, ...]
    total_bond_applied: Decimal


@dataclass(frozen=True)
class DamagePhoto:
    id: int
    url: str
    caption: str | None
    taken_by_role: ReporterRole
    created_at: str


@dataclass(frozen=True)
class DamageReport:
    """Read model of a damage report and its photos."""

    id: str
    booking_id: str
    created_by_id: str
    reported_by_role: ReporterRole
    summary: str
    description: str
    reported_severity: DamageSeverity
    status: DamageReportStatus
    estimated_repair_cost: Decimal | None
    reviewed_by_id: str | None
    reviewed_at: str | None
    admin_notes: str | None
    bond_amount_applied: Decimal | None
    resolution_notes: str | None
    resolved_at: str | None
    created_at: str
    updated_at: str
    photos: tuple[DamagePhoto, ...] = ()


@dataclass(frozen=True)
class DamageReportPage:
    """One page of the admin damage queue. ``page`` is zero-based."""

    reports: tuple[DamageReport, ...]
    total: int
    page: int
    limit: int
    total_pages: int
