"""Short-lived cache for active policy lookups.

Injected into PolicyService rather than held at module level, so tests
control the clock and callers can invalidate after a publish.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

import structlog

log = structlog.get_logger()

T = TypeVar("T")


@dataclass
class _Entry(Generic[T]):
    value: T
    cached_at: float


class PolicyCache(Generic[T]):
    """Per-slug TTL cache.

    Entries older than ``ttl_seconds`` (by the injected monotonic clock)
    are treated as missing and evicted on read.
    """

    def __init__(
        self,
        ttl_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, _Entry[T]] = {}

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def get(self, slug: str) -> T | None:
        entry = self._entries.get(slug)
        if entry is None:
            return None
        if self._clock() - entry.cached_at >= self._ttl:
            del self._entries[slug]
            return None
        return entry.value

    def put(self, slug: str, value: T) -> None:
        self._entries[slug] = _Entry(value=value, cached_at=self._clock())

    def invalidate(self, slug: str | None = None) -> None:
        """Drop one slug, or everything when slug is None."""
        if slug is None:
            self._entries.clear()
        else:
            self._entries.pop(slug, None)
        log.debug("policy_cache_invalidated", slug=slug or "*")

    def __len__(self) -> int:
        return len(self._entries)
