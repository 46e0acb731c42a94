"""Policy service -- versioned platform policies for booking flows.

New bookings stamp the active Insurance & Damage policy version at
booking time. Publishing a new version inserts a new row and never
touches existing bookings, so a stamped version is stable forever.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Protocol, runtime_checkable

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lendit.config import PolicyConfig
from lendit.errors import InvariantViolationError, PolicyNotFoundError
from lendit.models.booking import BookingModel
from lendit.models.listing import PolicyPageModel
from lendit.policy.cache import PolicyCache
from lendit.utils.time import now_timestamp

log = structlog.get_logger()

INSURANCE_POLICY_SLUG = "insurance-and-damage-policy"
RENTER_RESPONSIBILITIES_SLUG = "renter-responsibilities"
OWNER_RESPONSIBILITIES_SLUG = "owner-responsibilities"


@dataclass(frozen=True)
class ActivePolicy:
    id: int
    slug: str
    version: int
    title: str
    short_summary: str | None
    content: str
    published_at: str
    updated_at: str


@dataclass(frozen=True)
class PolicyVersionInfo:
    version: int
    title: str
    short_summary: str | None
    published_at: str


@dataclass(frozen=True)
class PolicyValidation:
    is_valid: bool
    current_version: int
    provided_version: int
    error: str = ""


@dataclass(frozen=True)
class BookingPolicyData:
    """What a new booking stamps about the policy it was made under."""

    policy_version: int
    policy_title: str
    policy_slug: str


@dataclass(frozen=True)
class BookingPolicyVersion:
    version: int | None
    accepted_at: str


@dataclass(frozen=True)
class PolicyStaleness:
    is_outdated: bool
    booking_version: int | None
    current_version: int


@runtime_checkable
class PolicyProvider(Protocol):
    """Read side of the policy collaborator used at booking creation."""

    async def get_active_policy(self, slug: str | None = None) -> ActivePolicy:
        """Currently published policy for ``slug``."""
        ...

    async def require_policy_version(
        self,
        provided_version: int,
        slug: str | None = None,
    ) -> ActivePolicy:
        """Active policy, if and only if ``provided_version`` matches it."""
        ...


def _to_active(row: PolicyPageModel) -> ActivePolicy:
    return ActivePolicy(
        id=row.id,
        slug=row.slug,
        version=row.version,
        title=row.title,
        short_summary=row.short_summary,
        content=row.content,
        published_at=row.published_at,
        updated_at=row.updated_at,
    )


def format_policy_version(
    version: int,
    style: Literal["short", "long"] = "short",
) -> str:
    """``v3`` or ``Version 3``."""
    if style == "long":
        return f"Version {version}"
    return f"v{version}"


class PolicyService:
    """Versioned policy lookups with an injected TTL cache."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cache: PolicyCache[ActivePolicy] | None = None,
        config: PolicyConfig | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._config = config or PolicyConfig()
        self._cache: PolicyCache[ActivePolicy] = (
            cache if cache is not None else PolicyCache(ttl_seconds=self._config.cache_ttl_seconds)
        )

    @property
    def default_slug(self) -> str:
        return self._config.insurance_policy_slug

    async def get_active_policy(self, slug: str | None = None) -> ActivePolicy:
        """Active (published) policy, served from cache while fresh.

        Raises:
            PolicyNotFoundError: If no published version exists.
        """
        slug = slug or self.default_slug
        cached = self._cache.get(slug)
        if cached is not None:
            return cached

        async with self._session_factory() as session:
            result = await session.execute(
                select(PolicyPageModel)
                .where(
                    PolicyPageModel.slug == slug,
                    PolicyPageModel.is_published.is_(True),
                )
                .order_by(PolicyPageModel.version.desc())
                .limit(1)
            )
            row = result.scalar_one_or_none()

        if row is None:
            raise PolicyNotFoundError(slug)

        policy = _to_active(row)
        self._cache.put(slug, policy)
        return policy

    async def get_active_policy_version(
        self,
        slug: str | None = None,
    ) -> PolicyVersionInfo:
        policy = await self.get_active_policy(slug)
        return PolicyVersionInfo(
            version=policy.version,
            title=policy.title,
            short_summary=policy.short_summary,
            published_at=policy.published_at,
        )

    async def validate_policy_version(
        self,
        provided_version: int,
        slug: str | None = None,
    ) -> PolicyValidation:
        """Check the version a renter accepted against the active one.

        Guards against the policy changing between page load and submit.
        """
        policy = await self.get_active_policy(slug)
        if provided_version != policy.version:
            return PolicyValidation(
                is_valid=False,
                current_version=policy.version,
                provided_version=provided_version,
                error=(
                    f"Policy version mismatch. You accepted version "
                    f"{provided_version}, but the current version is "
                    f"{policy.version}. Please review and accept the updated policy."
                ),
            )
        return PolicyValidation(
            is_valid=True,
            current_version=policy.version,
            provided_version=provided_version,
        )

    async def require_policy_version(
        self,
        provided_version: int,
        slug: str | None = None,
    ) -> ActivePolicy:
        """Raising form of validate_policy_version().

        Raises:
            InvariantViolationError: If the versions differ.
        """
        validation = await self.validate_policy_version(provided_version, slug)
        if not validation.is_valid:
            raise InvariantViolationError(validation.error)
        return await self.get_active_policy(slug)

    async def get_policy_data_for_booking(self) -> BookingPolicyData:
        policy = await self.get_active_policy()
        return BookingPolicyData(
            policy_version=policy.version,
            policy_title=policy.title,
            policy_slug=policy.slug,
        )

    async def get_policy_by_slug(self, slug: str) -> ActivePolicy | None:
        """Uncached lookup of the published version of any policy page."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(PolicyPageModel)
                .where(
                    PolicyPageModel.slug == slug,
                    PolicyPageModel.is_published.is_(True),
                )
                .order_by(PolicyPageModel.version.desc())
                .limit(1)
            )
            row = result.scalar_one_or_none()
        return _to_active(row) if row is not None else None

    async def get_historical_policy_version(
        self,
        version: int,
        slug: str | None = None,
    ) -> ActivePolicy | None:
        """Content of a specific (possibly superseded) version."""
        slug = slug or self.default_slug
        async with self._session_factory() as session:
            result = await session.execute(
                select(PolicyPageModel).where(
                    PolicyPageModel.slug == slug,
                    PolicyPageModel.version == version,
                )
            )
            row = result.scalar_one_or_none()
        return _to_active(row) if row is not None else None

    async def get_booking_policy_version(
        self,
        booking_id: str,
    ) -> BookingPolicyVersion | None:
        """Version stamped on a booking, for audit and dispute review."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(
                    BookingModel.platform_policy_version_accepted,
                    BookingModel.created_at,
                ).where(BookingModel.id == booking_id)
            )
            row = result.one_or_none()
        if row is None:
            return None
        return BookingPolicyVersion(version=row[0], accepted_at=row[1])

    async def is_booking_policy_outdated(
        self,
        booking_id: str,
    ) -> PolicyStaleness | None:
        booking_policy = await self.get_booking_policy_version(booking_id)
        if booking_policy is None:
            return None
        current = await self.get_active_policy()
        booking_version = booking_policy.version
        return PolicyStaleness(
            is_outdated=booking_version is not None
            and booking_version < current.version,
            booking_version=booking_version,
            current_version=current.version,
        )

    async def create_policy(
        self,
        slug: str,
        title: str,
        content: str,
        short_summary: str | None = None,
    ) -> ActivePolicy:
        """Publish version 1 of a new policy page.

        Raises:
            InvariantViolationError: If the slug already has versions.
        """
        now = now_timestamp()
        async with self._session_factory() as session, session.begin():
            existing = await session.execute(
                select(PolicyPageModel.id).where(PolicyPageModel.slug == slug).limit(1)
            )
            if existing.scalar_one_or_none() is not None:
                raise InvariantViolationError(f'Policy with slug "{slug}" already exists')
            row = PolicyPageModel(
                slug=slug,
                version=1,
                title=title,
                short_summary=short_summary,
                content=content,
                is_published=True,
                published_at=now,
                updated_at=now,
            )
            session.add(row)
            await session.flush()
            policy = _to_active(row)

        self._cache.invalidate(slug)
        log.info("policy_created", slug=slug, version=1)
        return policy

    async def publish_policy_version(
        self,
        slug: str,
        content: str,
        title: str | None = None,
        short_summary: str | None = None,
    ) -> ActivePolicy:
        """Publish the next version of a policy and invalidate the cache.

        Older versions are unpublished but kept for historical lookup.
        Existing bookings keep whatever version they stamped.

        Raises:
            PolicyNotFoundError: If the slug has never been published.
        """
        now = now_timestamp()
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                select(PolicyPageModel)
                .where(PolicyPageModel.slug == slug)
                .order_by(PolicyPageModel.version.desc())
                .limit(1)
            )
            current = result.scalar_one_or_none()
            if current is None:
                raise PolicyNotFoundError(slug)

            await session.execute(
                update(PolicyPageModel)
                .where(PolicyPageModel.slug == slug)
                .values(is_published=False, updated_at=now)
            )
            row = PolicyPageModel(
                slug=slug,
                version=current.version + 1,
                title=title or current.title,
                short_summary=(
                    short_summary if short_summary is not None else current.short_summary
                ),
                content=content,
                is_published=True,
                published_at=now,
                updated_at=now,
            )
            session.add(row)
            await session.flush()
            policy = _to_active(row)

        self._cache.invalidate(slug)
        log.info(
            "policy_published",
            slug=slug,
            previous_version=current.version,
            version=policy.version,
        )
        return policy

    def clear_cache(self) -> None:
        self._cache.invalidate()
