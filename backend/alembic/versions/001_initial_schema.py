"""Initial schema: booking lifecycle tables, indexes, constraints, and triggers.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "001"
down_revision = None
branch_labels = None
depends_on = None

BOOKING_STATUSES = (
    "'PENDING', 'ACCEPTED', 'DECLINED', 'CANCELLED', 'AWAITING_PICKUP', "
    "'IN_USE', 'AWAITING_RETURN_INSPECTION', 'IN_DISPUTE', 'COMPLETED'"
)


def create_booking_triggers() -> None:
    """Create the booking guard triggers.

    Call this function from any migration that uses batch mode on
    booking or booking_event, as batch mode drops and recreates tables
    which silently destroys triggers.
    """
    # booking_event: no updates
    op.execute(
        "CREATE TRIGGER IF NOT EXISTS no_update_booking_event "
        "BEFORE UPDATE ON booking_event "
        "BEGIN SELECT RAISE(ABORT, 'booking_event is immutable'); END;"
    )
    # booking_event: no deletes
    op.execute(
        "CREATE TRIGGER IF NOT EXISTS no_delete_booking_event "
        "BEFORE DELETE ON booking_event "
        "BEGIN SELECT RAISE(ABORT, 'booking_event is immutable'); END;"
    )
    # booking: terminal statuses are final
    op.execute(
        "CREATE TRIGGER IF NOT EXISTS booking_terminal_status_locked "
        "BEFORE UPDATE OF status ON booking "
        "WHEN OLD.status IN ('DECLINED', 'CANCELLED', 'COMPLETED') "
        "AND NEW.status != OLD.status "
        "BEGIN SELECT RAISE(ABORT, 'booking status is terminal'); END;"
    )
    # booking: stamped policy version is write-once
    op.execute(
        "CREATE TRIGGER IF NOT EXISTS booking_policy_version_locked "
        "BEFORE UPDATE OF platform_policy_version_accepted ON booking "
        "WHEN OLD.platform_policy_version_accepted IS NOT NULL "
        "AND (NEW.platform_policy_version_accepted IS NULL "
        "OR NEW.platform_policy_version_accepted != OLD.platform_policy_version_accepted) "
        "BEGIN SELECT RAISE(ABORT, 'platform_policy_version_accepted is immutable'); END;"
    )


def upgrade() -> None:
    # --- listing ---
    op.create_table(
        "listing",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("insurance_mode", sa.String(), nullable=False, server_default="NONE"),
        sa.Column("insurance_notes", sa.Text(), nullable=True),
        sa.Column("estimated_replacement_value", sa.String(), nullable=True),
        sa.Column("bond_amount", sa.String(), nullable=True),
        sa.Column("damage_excess_notes", sa.Text(), nullable=True),
        sa.Column("safe_use_requirements", sa.Text(), nullable=True),
        sa.Column(
            "maintenance_responsibility_owner",
            sa.Boolean(),
            nullable=False,
            server_default="1",
        ),
        sa.Column("is_high_risk_asset", sa.Boolean(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.String(), nullable=False),
        sa.Column("updated_at", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_listing_owner", "listing", ["owner_id"])

    # --- policy_page ---
    op.create_table(
        "policy_page",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("slug", sa.String(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("short_summary", sa.Text(), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("is_published", sa.Boolean(), nullable=False, server_default="0"),
        sa.Column("published_at", sa.String(), nullable=False),
        sa.Column("updated_at", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug", "version", name="uq_policy_page_slug_version"),
    )
    op.create_index(
        "ix_policy_page_slug_published", "policy_page", ["slug", "is_published"]
    )

    # --- booking ---
    op.create_table(
        "booking",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("renter_id", sa.String(), nullable=False),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("listing_id", sa.String(), sa.ForeignKey("listing.id"), nullable=False),
        sa.Column("start_date", sa.String(), nullable=False),
        sa.Column("end_date", sa.String(), nullable=False),
        sa.Column("actual_pickup_time", sa.String(), nullable=True),
        sa.Column("actual_return_time", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="PENDING"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("rental_cost", sa.String(), nullable=False),
        sa.Column("delivery_fee", sa.String(), nullable=False, server_default="0"),
        sa.Column("bond_amount_at_booking", sa.String(), nullable=False, server_default="0"),
        sa.Column("rental_subtotal", sa.String(), nullable=False),
        sa.Column("platform_fee_rate", sa.String(), nullable=False),
        sa.Column("platform_fee", sa.String(), nullable=False),
        sa.Column("owner_payout_amount", sa.String(), nullable=False),
        sa.Column("total_charged", sa.String(), nullable=False),
        sa.Column(
            "insurance_mode_snapshot", sa.String(), nullable=False, server_default="NONE"
        ),
        sa.Column("insurance_notes_snapshot", sa.Text(), nullable=True),
        sa.Column("estimated_replacement_value_snapshot", sa.String(), nullable=True),
        sa.Column("damage_excess_notes_snapshot", sa.Text(), nullable=True),
        sa.Column("insurance_snapshot", sa.Text(), nullable=True),
        sa.Column("platform_policy_version_accepted", sa.Integer(), nullable=True),
        sa.Column(
            "owner_terms_acknowledged", sa.Boolean(), nullable=False, server_default="0"
        ),
        sa.Column(
            "renter_responsibility_acknowledged",
            sa.Boolean(),
            nullable=False,
            server_default="0",
        ),
        sa.Column("engine_hours_at_pickup", sa.String(), nullable=True),
        sa.Column("engine_hours_at_return", sa.String(), nullable=True),
        sa.Column("engine_hours_used", sa.String(), nullable=True),
        sa.Column(
            "damage_status", sa.String(), nullable=False, server_default="NONE_REPORTED"
        ),
        sa.Column("created_at", sa.String(), nullable=False),
        sa.Column("updated_at", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(f"status IN ({BOOKING_STATUSES})", name="ck_booking_status"),
    )
    op.create_index("ix_booking_status", "booking", ["status"])
    op.create_index("ix_booking_renter", "booking", ["renter_id"])
    op.create_index("ix_booking_owner", "booking", ["owner_id"])
    op.create_index("ix_booking_listing_dates", "booking", ["listing_id", "start_date"])

    # --- booking_event ---
    op.create_table(
        "booking_event",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("booking_id", sa.String(), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("old_state", sa.String(), nullable=True),
        sa.Column("new_state", sa.String(), nullable=False),
        sa.Column("actor_id", sa.String(), nullable=False),
        sa.Column("actor_role", sa.String(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("detail", sa.Text(), nullable=True),
        sa.Column("occurred_at", sa.String(), nullable=False),
        sa.Column("recorded_at", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_booking_event_booking_id", "booking_event", ["booking_id"])
    op.create_index("ix_booking_event_recorded", "booking_event", ["recorded_at"])

    # --- payment ---
    op.create_table(
        "payment",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("booking_id", sa.String(), sa.ForeignKey("booking.id"), nullable=False),
        sa.Column("provider_intent_id", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("amount", sa.String(), nullable=False),
        sa.Column("created_at", sa.String(), nullable=False),
        sa.Column("updated_at", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("booking_id"),
    )

    # --- handover_checklist ---
    op.create_table(
        "handover_checklist",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("booking_id", sa.String(), sa.ForeignKey("booking.id"), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("issues_flagged", sa.Boolean(), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("completed_by_id", sa.String(), nullable=True),
        sa.Column("completed_by_role", sa.String(), nullable=True),
        sa.Column("completed_at", sa.String(), nullable=True),
        sa.Column("created_at", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("type IN ('PICKUP', 'RETURN')", name="ck_handover_type"),
    )
    op.create_index(
        "ix_handover_booking_type", "handover_checklist", ["booking_id", "type"]
    )

    # --- notification ---
    op.create_table(
        "notification",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("payload", sa.Text(), nullable=False),
        sa.Column("read", sa.Boolean(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_notification_user_created", "notification", ["user_id", "created_at"]
    )

    # --- damage_report ---
    op.create_table(
        "damage_report",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("booking_id", sa.String(), sa.ForeignKey("booking.id"), nullable=False),
        sa.Column("created_by_id", sa.String(), nullable=False),
        sa.Column("reported_by_role", sa.String(), nullable=False),
        sa.Column("summary", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("estimated_repair_cost", sa.String(), nullable=True),
        sa.Column("reported_severity", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="OPEN"),
        sa.Column("reviewed_by_id", sa.String(), nullable=True),
        sa.Column("reviewed_at", sa.String(), nullable=True),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("bond_amount_applied", sa.String(), nullable=True),
        sa.Column("resolution_notes", sa.Text(), nullable=True),
        sa.Column("resolved_at", sa.String(), nullable=True),
        sa.Column("created_at", sa.String(), nullable=False),
        sa.Column("updated_at", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "reported_by_role IN ('OWNER', 'RENTER', 'ADMIN')",
            name="ck_damage_report_role",
        ),
        sa.CheckConstraint(
            "reported_severity IN ('MINOR', 'MODERATE', 'MAJOR', 'TOTAL_LOSS')",
            name="ck_damage_report_severity",
        ),
    )
    op.create_index("ix_damage_report_booking", "damage_report", ["booking_id"])
    op.create_index("ix_damage_report_status", "damage_report", ["status"])

    # --- damage_report_photo ---
    op.create_table(
        "damage_report_photo",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column(
            "damage_report_id",
            sa.String(),
            sa.ForeignKey("damage_report.id"),
            nullable=False,
        ),
        sa.Column("url", sa.String(), nullable=False),
        sa.Column("caption", sa.String(), nullable=True),
        sa.Column("taken_by_role", sa.String(), nullable=False),
        sa.Column("created_at", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_damage_photo_report", "damage_report_photo", ["damage_report_id"])

    # --- Guard triggers ---
    create_booking_triggers()


def downgrade() -> None:
    raise NotImplementedError(
        "Downgrade not supported. Use backup-and-restore for rollback."
    )
