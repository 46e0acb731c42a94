"""Damage report database models.

Tables: damage_report, damage_report_photo
"""

from __future__ import annotations

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from lendit.models.base import Base, DecimalText


class DamageReportModel(Base):
    """Damage claim filed against a booking, with its review lifecycle."""

    __tablename__ = "damage_report"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    booking_id: Mapped[str] = mapped_column(
        String, ForeignKey("booking.id"), nullable=False
    )
    created_by_id: Mapped[str] = mapped_column(String, nullable=False)
    reported_by_role: Mapped[str] = mapped_column(
        String,
        CheckConstraint(
            "reported_by_role IN ('OWNER', 'RENTER', 'ADMIN')",
            name="ck_damage_report_role",
        ),
        nullable=False,
    )
    summary: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    estimated_repair_cost: Mapped[DecimalText | None] = mapped_column(
        DecimalText, nullable=True
    )
    reported_severity: Mapped[str] = mapped_column(
        String,
        CheckConstraint(
            "reported_severity IN ('MINOR', 'MODERATE', 'MAJOR', 'TOTAL_LOSS')",
            name="ck_damage_report_severity",
        ),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String, nullable=False, server_default="OPEN"
    )
    reviewed_by_id: Mapped[str | None] = mapped_column(String, nullable=True)
    reviewed_at: Mapped[str | None] = mapped_column(String, nullable=True)
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    bond_amount_applied: Mapped[DecimalText | None] = mapped_column(
        DecimalText, nullable=True
    )
    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolved_at: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[str] = mapped_column(String, nullable=False)
    updated_at: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (
        Index("ix_damage_report_booking", "booking_id"),
        Index("ix_damage_report_status", "status"),
    )


class DamageReportPhotoModel(Base):
    """Evidence photo attached to a damage report."""

    __tablename__ = "damage_report_photo"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    damage_report_id: Mapped[str] = mapped_column(
        String, ForeignKey("damage_report.id"), nullable=False
    )
    url: Mapped[str] = mapped_column(String, nullable=False)
    caption: Mapped[str | None] = mapped_column(String, nullable=True)
    taken_by_role: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (Index("ix_damage_photo_report", "damage_report_id"),)
