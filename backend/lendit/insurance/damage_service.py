"""Damage report workflow.

Filing a report flags the booking's damage status without touching its
lifecycle status. Resolution is an admin action: the applied bond is
capped at the bond stored on the booking, and the report outcome maps
to the booking's damage status. Report and booking are written in one
transaction, after every check has passed.
"""

from __future__ import annotations

import math
from collections.abc import Collection, Sequence
from decimal import Decimal
from uuid import uuid4

import structlog
from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lendit.bookings.types import BookingState
from lendit.config import DamageConfig
from lendit.errors import (
    BookingNotFoundError,
    DamageReportNotFoundError,
    InvalidTransitionError,
    InvariantViolationError,
    ListingNotFoundError,
    PreconditionNotMetError,
    UnauthorizedActorError,
)
from lendit.fees.calculator import round_money
from lendit.insurance.damage_state import RESOLUTION_DAMAGE_STATUS, DamageReportStateMachine
from lendit.insurance.types import (
    OPEN_REPORT_STATUSES,
    RESOLVED_REPORT_STATUSES,
    CreateDamageReportParams,
    DamagePhoto,
    DamageReport,
    DamageReportPage,
    DamageReportStats,
    DamageReportStatus,
    DamageSeverity,
    DamageStatus,
    PhotoUpload,
    ReporterRole,
    ResolveDamageReportParams,
    SeverityCount,
)
from lendit.models.booking import BookingModel
from lendit.models.damage import DamageReportModel, DamageReportPhotoModel
from lendit.models.listing import ListingModel
from lendit.utils.time import now_timestamp

log = structlog.get_logger()

# Booking statuses in which equipment has changed hands
REPORTABLE_BOOKING_STATES = frozenset(
    {
        BookingState.IN_USE,
        BookingState.AWAITING_RETURN_INSPECTION,
        BookingState.IN_DISPUTE,
        BookingState.COMPLETED,
    }
)

DEFAULT_PAGE_SIZE = 20

_severity_rank = case(
    {severity.value: severity.rank for severity in DamageSeverity},
    value=DamageReportModel.reported_severity,
    else_=-1,
)


def _to_photo(row: DamageReportPhotoModel) -> DamagePhoto:
    return DamagePhoto(
        id=row.id,
        url=row.url,
        caption=row.caption,
        taken_by_role=ReporterRole(row.taken_by_role),
        created_at=row.created_at,
    )


def _to_report(
    row: DamageReportModel,
    photos: Sequence[DamageReportPhotoModel] = (),
) -> DamageReport:
    return DamageReport(
        id=row.id,
        booking_id=row.booking_id,
        created_by_id=row.created_by_id,
        reported_by_role=ReporterRole(row.reported_by_role),
        summary=row.summary,
        description=row.description,
        reported_severity=DamageSeverity(row.reported_severity),
        status=DamageReportStatus(row.status),
        estimated_repair_cost=row.estimated_repair_cost,
        reviewed_by_id=row.reviewed_by_id,
        reviewed_at=row.reviewed_at,
        admin_notes=row.admin_notes,
        bond_amount_applied=row.bond_amount_applied,
        resolution_notes=row.resolution_notes,
        resolved_at=row.resolved_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
        photos=tuple(_to_photo(p) for p in photos),
    )


async def _photos_by_report(
    session: AsyncSession,
    report_ids: Collection[str],
) -> dict[str, list[DamageReportPhotoModel]]:
    grouped: dict[str, list[DamageReportPhotoModel]] = {rid: [] for rid in report_ids}
    if not report_ids:
        return grouped
    result = await session.execute(
        select(DamageReportPhotoModel)
        .where(DamageReportPhotoModel.damage_report_id.in_(list(report_ids)))
        .order_by(DamageReportPhotoModel.id)
    )
    for photo in result.scalars().all():
        grouped[photo.damage_report_id].append(photo)
    return grouped


class DamageService:
    """Files, reviews and resolves damage reports."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: DamageConfig | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._config = config or DamageConfig()

    async def create_damage_report(self, params: CreateDamageReportParams) -> DamageReport:
        """File a report and flag the booking as potentially damaged.

        Raises:
            BookingNotFoundError: If the booking does not exist.
            UnauthorizedActorError: If a renter/owner reporter is not that
                party on the booking.
            PreconditionNotMetError: If the equipment has not been handed
                over yet.
            InvariantViolationError: If the repair estimate is negative.
        """
        if params.estimated_repair_cost is not None and params.estimated_repair_cost < 0:
            raise InvariantViolationError("Estimated repair cost cannot be negative")

        report_id = str(uuid4())
        now = now_timestamp()
        async with self._session_factory() as session, session.begin():
            booking = await session.get(BookingModel, params.booking_id)
            if booking is None:
                raise BookingNotFoundError(params.booking_id)

            party_id = {
                ReporterRole.RENTER: booking.renter_id,
                ReporterRole.OWNER: booking.owner_id,
            }.get(params.reported_by_role)
            if party_id is not None and party_id != params.created_by_id:
                raise UnauthorizedActorError(
                    f"{params.reported_by_role.value} {params.created_by_id} is not "
                    f"a party to booking {booking.id}"
                )

            if BookingState(booking.status) not in REPORTABLE_BOOKING_STATES:
                raise PreconditionNotMetError(
                    f"Damage cannot be reported while booking is {booking.status}"
                )

            report = DamageReportModel(
                id=report_id,
                booking_id=booking.id,
                created_by_id=params.created_by_id,
                reported_by_role=params.reported_by_role.value,
                summary=params.summary,
                description=params.description,
                estimated_repair_cost=(
                    round_money(params.estimated_repair_cost)
                    if params.estimated_repair_cost is not None
                    else None
                ),
                reported_severity=params.reported_severity.value,
                status=DamageReportStatus.OPEN.value,
                created_at=now,
                updated_at=now,
            )
            photos = [
                DamageReportPhotoModel(
                    damage_report_id=report_id,
                    url=photo.url,
                    caption=photo.caption,
                    taken_by_role=params.reported_by_role.value,
                    created_at=now,
                )
                for photo in params.photos
            ]
            session.add(report)
            await session.flush()
            session.add_all(photos)
            booking.damage_status = DamageStatus.POTENTIAL_DAMAGE_REPORTED.value
            booking.updated_at = now
            await session.flush()
            created = _to_report(report, photos)

        log.info(
            "damage_report_created",
            report_id=report_id,
            booking_id=params.booking_id,
            severity=params.reported_severity.value,
            reported_by_role=params.reported_by_role.value,
            photos=len(photos),
        )
        return created

    async def get_damage_reports_for_booking(self, booking_id: str) -> list[DamageReport]:
        """All reports on a booking, newest first."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(DamageReportModel)
                .where(DamageReportModel.booking_id == booking_id)
                .order_by(DamageReportModel.created_at.desc(), DamageReportModel.id)
            )
            rows = list(result.scalars().all())
            photos = await _photos_by_report(session, [r.id for r in rows])
        return [_to_report(row, photos[row.id]) for row in rows]

    async def get_damage_report(self, report_id: str) -> DamageReport | None:
        async with self._session_factory() as session:
            row = await session.get(DamageReportModel, report_id)
            if row is None:
                return None
            photos = await _photos_by_report(session, [row.id])
        return _to_report(row, photos[row.id])

    async def add_photos_to_report(
        self,
        report_id: str,
        photos: Sequence[PhotoUpload],
        taken_by_role: ReporterRole,
    ) -> int:
        """Attach more evidence. Returns the number of photos added.

        Raises:
            DamageReportNotFoundError: If the report does not exist.
        """
        now = now_timestamp()
        async with self._session_factory() as session, session.begin():
            report = await session.get(DamageReportModel, report_id)
            if report is None:
                raise DamageReportNotFoundError(report_id)
            session.add_all(
                DamageReportPhotoModel(
                    damage_report_id=report_id,
                    url=photo.url,
                    caption=photo.caption,
                    taken_by_role=taken_by_role.value,
                    created_at=now,
                )
                for photo in photos
            )
            report.updated_at = now

        log.info("damage_photos_added", report_id=report_id, count=len(photos))
        return len(photos)

    async def update_damage_report_status(
        self,
        report_id: str,
        status: DamageReportStatus,
        reviewer_id: str,
        admin_notes: str | None = None,
    ) -> DamageReport:
        """Move a report through review (not resolution).

        Raises:
            DamageReportNotFoundError: If the report does not exist.
            InvalidTransitionError: If the move is not allowed, or the
                target is an outcome that must go through
                resolve_damage_report().
        """
        if status in RESOLUTION_DAMAGE_STATUS:
            raise InvalidTransitionError(
                f"{status.value} is a resolution outcome; use resolve_damage_report"
            )

        now = now_timestamp()
        async with self._session_factory() as session, session.begin():
            report = await session.get(DamageReportModel, report_id)
            if report is None:
                raise DamageReportNotFoundError(report_id)

            machine = DamageReportStateMachine(DamageReportStatus(report.status))
            machine.transition(status)

            report.status = status.value
            report.reviewed_by_id = reviewer_id
            report.reviewed_at = now
            if admin_notes is not None:
                report.admin_notes = admin_notes
            report.updated_at = now
            await session.flush()
            photos = await _photos_by_report(session, [report.id])
            updated = _to_report(report, photos[report.id])

        log.info(
            "damage_report_status_updated",
            report_id=report_id,
            status=status.value,
            reviewer_id=reviewer_id,
        )
        return updated

    async def resolve_damage_report(self, params: ResolveDamageReportParams) -> DamageReport:
        """Record an admin outcome and derive the booking's damage status.

        Nothing is written unless every check passes.

        Raises:
            DamageReportNotFoundError: If the report does not exist.
            InvariantViolationError: If the applied bond is negative or
                exceeds the bond stored on the booking.
            InvalidTransitionError: If ``params.status`` is not an outcome
                or the report is already resolved.
        """
        outcome = RESOLUTION_DAMAGE_STATUS.get(params.status)
        if outcome is None:
            raise InvalidTransitionError(
                f"{params.status.value} is not a damage report resolution"
            )

        applied = params.bond_amount_applied
        if applied is not None and applied < 0:
            raise InvariantViolationError("Bond amount applied cannot be negative")

        now = now_timestamp()
        async with self._session_factory() as session, session.begin():
            report = await session.get(DamageReportModel, params.report_id)
            if report is None:
                raise DamageReportNotFoundError(params.report_id)
            booking = await session.get(BookingModel, report.booking_id)
            if booking is None:
                raise BookingNotFoundError(report.booking_id)

            bond_cap = booking.bond_amount_at_booking or Decimal("0")
            if applied is not None and applied > bond_cap:
                raise InvariantViolationError(
                    "Bond amount applied cannot exceed booking bond amount"
                )

            machine = DamageReportStateMachine(DamageReportStatus(report.status))
            machine.transition(params.status)

            report.status = params.status.value
            report.reviewed_by_id = params.reviewer_id
            report.reviewed_at = now
            report.admin_notes = params.admin_notes
            report.bond_amount_applied = round_money(applied) if applied is not None else None
            report.resolution_notes = params.resolution_notes
            if params.status in RESOLVED_REPORT_STATUSES:
                report.resolved_at = now
            report.updated_at = now

            booking.damage_status = outcome.value
            booking.updated_at = now
            await session.flush()
            photos = await _photos_by_report(session, [report.id])
            resolved = _to_report(report, photos[report.id])

        log.info(
            "damage_report_resolved",
            report_id=params.report_id,
            booking_id=resolved.booking_id,
            status=params.status.value,
            damage_status=outcome.value,
            bond_amount_applied=str(applied) if applied is not None else None,
        )
        return resolved

    async def get_open_damage_reports(
        self,
        statuses: Collection[DamageReportStatus] | None = None,
        severities: Collection[DamageSeverity] | None = None,
        page: int = 0,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> DamageReportPage:
        """Admin queue: most severe first, then oldest first.

        With no status filter the queue holds the open statuses.
        """
        if page < 0:
            raise ValueError(f"page must be >= 0, got {page}")
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")

        wanted = statuses or OPEN_REPORT_STATUSES
        conditions = [DamageReportModel.status.in_([s.value for s in wanted])]
        if severities:
            conditions.append(
                DamageReportModel.reported_severity.in_([s.value for s in severities])
            )

        async with self._session_factory() as session:
            total = (
                await session.execute(
                    select(func.count()).select_from(DamageReportModel).where(*conditions)
                )
            ).scalar_one()
            result = await session.execute(
                select(DamageReportModel)
                .where(*conditions)
                .order_by(
                    _severity_rank.desc(),
                    DamageReportModel.created_at.asc(),
                    DamageReportModel.id,
                )
                .offset(page * limit)
                .limit(limit)
            )
            rows = list(result.scalars().all())
            photos = await _photos_by_report(session, [r.id for r in rows])

        return DamageReportPage(
            reports=tuple(_to_report(row, photos[row.id]) for row in rows),
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit),
        )

    async def get_damage_report_stats(self) -> DamageReportStats:
        async with self._session_factory() as session:
            total_open = (
                await session.execute(
                    select(func.count())
                    .select_from(DamageReportModel)
                    .where(
                        DamageReportModel.status.in_([s.value for s in OPEN_REPORT_STATUSES])
                    )
                )
            ).scalar_one()
            total_resolved = (
                await session.execute(
                    select(func.count())
                    .select_from(DamageReportModel)
                    .where(
                        DamageReportModel.status.in_(
                            [s.value for s in RESOLVED_REPORT_STATUSES]
                        )
                    )
                )
            ).scalar_one()
            severity_rows = (
                await session.execute(
                    select(DamageReportModel.reported_severity, func.count()).group_by(
                        DamageReportModel.reported_severity
                    )
                )
            ).all()
            # Summed in Python: DecimalText is TEXT, SQL SUM would go through float
            applied = (
                await session.execute(
                    select(DamageReportModel.bond_amount_applied).where(
                        DamageReportModel.bond_amount_applied.is_not(None)
                    )
                )
            ).scalars().all()

        by_severity = sorted(
            (SeverityCount(DamageSeverity(sev), count) for sev, count in severity_rows),
            key=lambda s: s.severity.rank,
            reverse=True,
        )
        return DamageReportStats(
            total_open=total_open,
            total_resolved=total_resolved,
            by_severity=tuple(by_severity),
            total_bond_applied=sum(applied, Decimal("0")),
        )

    # -- High-risk asset flagging ----------------------------------------------

    def check_high_risk_threshold(self, estimated_replacement_value: Decimal) -> bool:
        return estimated_replacement_value >= self._config.high_risk_asset_threshold

    async def update_listing_risk_status(
        self,
        listing_id: str,
        estimated_replacement_value: Decimal,
    ) -> bool:
        """Store the replacement value and (re)flag the listing.

        Returns whether the listing is now high-risk.

        Raises:
            ListingNotFoundError: If the listing does not exist.
        """
        is_high_risk = self.check_high_risk_threshold(estimated_replacement_value)
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                update(ListingModel)
                .where(ListingModel.id == listing_id)
                .values(
                    estimated_replacement_value=estimated_replacement_value,
                    is_high_risk_asset=is_high_risk,
                    updated_at=now_timestamp(),
                )
            )
            if result.rowcount == 0:
                raise ListingNotFoundError(listing_id)

        log.info(
            "listing_risk_status_updated",
            listing_id=listing_id,
            is_high_risk_asset=is_high_risk,
        )
        return is_high_risk
