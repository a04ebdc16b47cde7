"""Per-engagement mutual exclusion.

Every engagement-scoped operation runs under ``EngagementLocks.hold``. Inside
one process an ``asyncio.Lock`` keyed by engagement id serializes callers;
when a Redis client is configured a ``engagement-lock:<id>`` Redis lock is
taken as well so several API workers agree on who goes first. The database
row lock (SELECT ... FOR UPDATE) taken by the service is the last line.

Usage:
    locks = get_engagement_locks()
    async with locks.hold(engagement_id):
        ...
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from redis.exceptions import LockError

from marketplace_escrow.config import get_settings
from marketplace_escrow.domain.exceptions import EngagementBusyError
from marketplace_escrow.logging_config import get_logger

if TYPE_CHECKING:
    import uuid
    from collections.abc import AsyncIterator

    import redis.asyncio as aioredis

logger = get_logger(__name__)

REDIS_LOCK_PREFIX = "engagement-lock:"


class EngagementLocks:
    """Registry of engagement locks with waiter counting for cleanup."""

    def __init__(
        self,
        redis: aioredis.Redis | None = None,
        ttl_seconds: int = 30,
        wait_seconds: float = 10.0,
    ) -> None:
        self._redis = redis
        self._ttl_seconds = ttl_seconds
        self._wait_seconds = wait_seconds
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @property
    def distributed(self) -> bool:
        return self._redis is not None

    def _acquire_entry(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._waiters[key] = self._waiters.get(key, 0) + 1
        return lock

    def _release_entry(self, key: str) -> None:
        self._waiters[key] -= 1
        if self._waiters[key] == 0:
            del self._waiters[key]
            del self._locks[key]

    @asynccontextmanager
    async def hold(self, engagement_id: uuid.UUID | str) -> AsyncIterator[None]:
        """Hold the engagement lock for the duration of the block.

        Raises:
            EngagementBusyError: If the lock is not obtained within the wait time.
        """
        key = str(engagement_id)
        local = self._acquire_entry(key)
        try:
            try:
                await asyncio.wait_for(local.acquire(), timeout=self._wait_seconds)
            except TimeoutError as err:
                logger.warning("lock.busy", engagement_id=key, scope="local")
                raise EngagementBusyError(key) from err
            try:
                if self._redis is None:
                    yield
                else:
                    async with self._hold_redis(key):
                        yield
            finally:
                local.release()
        finally:
            self._release_entry(key)

    @asynccontextmanager
    async def _hold_redis(self, key: str) -> AsyncIterator[None]:
        lock = self._redis.lock(
            f"{REDIS_LOCK_PREFIX}{key}",
            timeout=self._ttl_seconds,
            blocking_timeout=self._wait_seconds,
        )
        if not await lock.acquire():
            logger.warning("lock.busy", engagement_id=key, scope="redis")
            raise EngagementBusyError(key)
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError as exc:
                # TTL ran out before we finished; the DB row lock still held
                logger.warning("lock.expired_before_release", engagement_id=key, error=str(exc))


_engagement_locks: EngagementLocks | None = None


def configure_engagement_locks(redis: aioredis.Redis | None = None) -> EngagementLocks:
    """Build the process-wide lock registry. Called during app startup."""
    global _engagement_locks
    settings = get_settings()
    _engagement_locks = EngagementLocks(
        redis=redis,
        ttl_seconds=settings.engagement_lock_ttl_seconds,
        wait_seconds=settings.engagement_lock_wait_seconds,
    )
    logger.info("lock.configured", distributed=_engagement_locks.distributed)
    return _engagement_locks


def get_engagement_locks() -> EngagementLocks:
    """Return the process-wide lock registry, creating a local-only one if needed."""
    global _engagement_locks
    if _engagement_locks is None:
        _engagement_locks = EngagementLocks(
            ttl_seconds=get_settings().engagement_lock_ttl_seconds,
            wait_seconds=get_settings().engagement_lock_wait_seconds,
        )
    return _engagement_locks
