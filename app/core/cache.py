"""Cache abstractions and invalidation of cached business views."""

from __future__ import annotations

import logging
from typing import Protocol
from uuid import UUID

logger = logging.getLogger(__name__)


class CacheBackend(Protocol):
    """Protocol for cache providers (Redis, memory, etc.)."""

    async def get(self, key: str) -> str | None:
        """Get cached value by key."""

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        """Set cached value with optional TTL."""

    async def delete(self, key: str) -> None:
        """Delete cached value by key."""


class NoopCacheBackend:
    """Default cache backend used until Redis is connected."""

    async def get(self, key: str) -> str | None:
        return None

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        return None

    async def delete(self, key: str) -> None:
        return None


def business_view_keys(business_id: UUID) -> tuple[str, ...]:
    """Cache keys for views derived from a business's bookings."""
    return (
        f"business:{business_id}:bookings",
        f"business:{business_id}:availability",
        f"business:{business_id}:dashboard",
    )


class CacheInvalidator:
    """Drops cached business views after booking mutations.

    Failures are logged and never propagate to the caller: a stale view is
    preferable to failing a booking that has already been committed.
    """

    def __init__(self, backend: CacheBackend) -> None:
        self.backend = backend

    async def invalidate_business_views(self, business_id: UUID) -> None:
        for key in business_view_keys(business_id):
            try:
                await self.backend.delete(key)
            except Exception:
                logger.warning("Cache invalidation failed for key=%s", key, exc_info=True)


_default_backend: CacheBackend = NoopCacheBackend()


def get_cache_invalidator() -> CacheInvalidator:
    """FastAPI dependency returning the process-wide invalidator."""
    return CacheInvalidator(_default_backend)
