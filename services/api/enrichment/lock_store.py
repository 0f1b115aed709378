"""
Per-city advisory enrichment lock.

The lock lives on the city row itself ("enrichmentLockedAt"): NULL means free,
a timestamp means an enrichment run holds it since that instant. No separate
lock service is involved.

Primitives:
  - acquire(city_id)                  -> bool   atomic "set if NULL"
  - release(city_id)                  -> None   unconditional clear, idempotent
  - force_release_older_than(max_age) -> int    stale-lock sweep

Acquire is a single conditional UPDATE. PostgreSQL takes a row-level write lock
for the UPDATE, so two concurrent acquires on the same city serialise and the
loser re-evaluates the WHERE clause against the committed value and matches
zero rows.

There is no fencing token: a holder that dies between acquire and its release
leaves the row locked until the sweeper clears it. Runs against a swept lock
may overlap briefly; that window is accepted.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LockStore(ABC):
    """Interface the orchestrator and sweeper depend on."""

    @abstractmethod
    async def acquire(self, city_id: str) -> bool:
        """Take the lock if free. Never waits; returns False on contention."""

    @abstractmethod
    async def release(self, city_id: str) -> None:
        """Clear the lock regardless of who holds it."""

    @abstractmethod
    async def force_release_older_than(self, max_age: timedelta) -> int:
        """Clear every lock held longer than max_age. Returns the number cleared."""


# ---------------------------------------------------------------------------
# PostgreSQL (asyncpg)
# ---------------------------------------------------------------------------

_ACQUIRE_SQL = """
UPDATE cities
SET "enrichmentLockedAt" = $2
WHERE id = $1
  AND "enrichmentLockedAt" IS NULL
RETURNING id
"""

_RELEASE_SQL = """
UPDATE cities
SET "enrichmentLockedAt" = NULL
WHERE id = $1
"""

_FORCE_RELEASE_SQL = """
UPDATE cities
SET "enrichmentLockedAt" = NULL
WHERE "enrichmentLockedAt" IS NOT NULL
  AND "enrichmentLockedAt" < $1
RETURNING id
"""


class PostgresLockStore(LockStore):
    """Lock store backed by the cities table through an asyncpg pool."""

    def __init__(self, pool: Any, clock: Callable[[], datetime] = _utcnow):
        self.pool = pool
        self._clock = clock

    async def acquire(self, city_id: str) -> bool:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(_ACQUIRE_SQL, city_id, self._clock())
        acquired = row is not None
        logger.debug("lock_store: acquire city=%s acquired=%s", city_id, acquired)
        return acquired

    async def release(self, city_id: str) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(_RELEASE_SQL, city_id)
        logger.debug("lock_store: released city=%s", city_id)

    async def force_release_older_than(self, max_age: timedelta) -> int:
        cutoff = self._clock() - max_age
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                rows = await conn.fetch(_FORCE_RELEASE_SQL, cutoff)
        cleared = [row["id"] for row in rows]
        if cleared:
            logger.warning(
                "lock_store: force-released %d stale locks older than %s: %s",
                len(cleared),
                cutoff.isoformat(),
                ", ".join(str(i) for i in cleared),
            )
        return len(cleared)


# ---------------------------------------------------------------------------
# In-process
# ---------------------------------------------------------------------------

class InMemoryLockStore(LockStore):
    """
    Single-process lock store for local runs and tests.

    Same contract as PostgresLockStore; the asyncio.Lock stands in for the
    row-level write lock. Only meaningful inside one event loop.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._clock = clock
        self._guard = asyncio.Lock()
        self.locks: dict[str, datetime] = {}

    async def acquire(self, city_id: str) -> bool:
        async with self._guard:
            if city_id in self.locks:
                return False
            self.locks[city_id] = self._clock()
            return True

    async def release(self, city_id: str) -> None:
        async with self._guard:
            self.locks.pop(city_id, None)

    async def force_release_older_than(self, max_age: timedelta) -> int:
        cutoff = self._clock() - max_age
        async with self._guard:
            stale = [cid for cid, locked_at in self.locks.items() if locked_at < cutoff]
            for cid in stale:
                del self.locks[cid]
        return len(stale)

    def is_locked(self, city_id: str) -> bool:
        return city_id in self.locks
