"""Listing and policy database models.

Tables: listing, policy_page
"""

from __future__ import annotations

from sqlalchemy import Boolean, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from lendit.models.base import Base, DecimalText


class ListingModel(Base):
    """Equipment listing. Only the insurance-relevant columns live here."""

    __tablename__ = "listing"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    owner_id: Mapped[str] = mapped_column(String, nullable=False)
    title: Mapped[str] = mapped_column(String, nullable=False)
    insurance_mode: Mapped[str] = mapped_column(
        String, nullable=False, server_default="NONE"
    )
    insurance_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    estimated_replacement_value: Mapped[DecimalText | None] = mapped_column(
        DecimalText, nullable=True
    )
    bond_amount: Mapped[DecimalText | None] = mapped_column(DecimalText, nullable=True)
    damage_excess_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    safe_use_requirements: Mapped[str | None] = mapped_column(Text, nullable=True)
    maintenance_responsibility_owner: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default="1"
    )
    is_high_risk_asset: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default="0"
    )
    created_at: Mapped[str] = mapped_column(String, nullable=False)
    updated_at: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (Index("ix_listing_owner", "owner_id"),)


class PolicyPageModel(Base):
    """One published (or superseded) version of a platform policy.

    Each publish inserts a new row; at most one row per slug has
    ``is_published`` set.
    """

    __tablename__ = "policy_page"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String, nullable=False)
    short_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_published: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default="0"
    )
    published_at: Mapped[str] = mapped_column(String, nullable=False)
    updated_at: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (
        UniqueConstraint("slug", "version", name="uq_policy_page_slug_version"),
        Index("ix_policy_page_slug_published", "slug", "is_published"),
    )
