"""Insurance snapshots and damage reporting."""

from lendit.insurance.damage_service import DamageService
from lendit.insurance.damage_state import RESOLUTION_DAMAGE_STATUS, DamageReportStateMachine
from lendit.insurance.snapshot import InsuranceSnapshotService
from lendit.insurance.types import (
    CreateDamageReportParams,
    DamageReport,
    DamageReportPage,
    DamageReportStats,
    DamageReportStatus,
    DamageSeverity,
    DamageStatus,
    InsuranceMode,
    InsuranceSnapshot,
    PhotoUpload,
    ReporterRole,
    ResolveDamageReportParams,
)

__all__ = [
    "RESOLUTION_DAMAGE_STATUS",
    "CreateDamageReportParams",
    "DamageReport",
    "DamageReportPage",
    "DamageReportStateMachine",
    "DamageReportStats",
    "DamageReportStatus",
    "DamageService",
    "DamageSeverity",
    "DamageStatus",
    "InsuranceMode",
    "InsuranceSnapshot",
    "InsuranceSnapshotService",
    "PhotoUpload",
    "ReporterRole",
    "ResolveDamageReportParams",
]
