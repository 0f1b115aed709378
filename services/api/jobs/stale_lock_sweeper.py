"""
Stale enrichment lock sweeper.

An enrichment run that crashes after acquiring its city lock never reaches
its release. This job force-clears locks held longer than a threshold so the
city can be enriched again.

The threshold (default 5 minutes) sits an order of magnitude above the
fetcher's 30s hard timeout, so a slow but still-live run is never swept.
Running with no stale locks is a no-op that reports cleared_count=0.

Usage:
    # As a standalone cron job (hourly):
    python -m services.api.jobs.stale_lock_sweeper

    # Programmatic:
    result = await run_stale_lock_sweep(PostgresLockStore(pool))
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import timedelta

from services.api.enrichment.lock_store import LockStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_LOCK_AGE = timedelta(minutes=5)


@dataclass
class SweepResult:
    cleared_count: int
    max_age_s: int
    duration_ms: int


async def run_stale_lock_sweep(
    lock_store: LockStore,
    *,
    max_age: timedelta = DEFAULT_MAX_LOCK_AGE,
) -> SweepResult:
    """Force-release every enrichment lock older than max_age."""
    start_ts = time.monotonic()
    cleared = await lock_store.force_release_older_than(max_age)
    duration_ms = int((time.monotonic() - start_ts) * 1000)

    if cleared:
        logger.warning(
            "stale_lock_sweep: cleared %d stale locks (max_age=%ds, duration_ms=%d)",
            cleared,
            int(max_age.total_seconds()),
            duration_ms,
        )
    else:
        logger.info("stale_lock_sweep: no stale locks (max_age=%ds)", int(max_age.total_seconds()))

    return SweepResult(
        cleared_count=cleared,
        max_age_s=int(max_age.total_seconds()),
        duration_ms=duration_ms,
    )


# ---------------------------------------------------------------------------
# Standalone entry point
# ---------------------------------------------------------------------------

def _build_parser() -> argparse.ArgumentParser:
    from services.api.config import settings

    parser = argparse.ArgumentParser(description="Release enrichment locks held past a timeout")
    parser.add_argument("--database-url", default=settings.database_url)
    parser.add_argument(
        "--max-age-seconds",
        type=int,
        default=settings.enrichment_stale_lock_max_age_s,
        help=f"Lock age that counts as stale (default {settings.enrichment_stale_lock_max_age_s})",
    )
    return parser


async def main(argv: list[str] | None = None) -> None:
    """CLI entry point for cron / Cloud Scheduler."""
    import sys

    import asyncpg

    from services.api.enrichment.lock_store import PostgresLockStore

    args = _build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if not args.database_url:
        logger.error("No database URL configured (DATABASE_URL or --database-url)")
        sys.exit(1)

    pool = await asyncpg.create_pool(args.database_url, min_size=1, max_size=2)
    try:
        result = await run_stale_lock_sweep(
            PostgresLockStore(pool),
            max_age=timedelta(seconds=args.max_age_seconds),
        )
        logger.info("Sweep result: %s", result)
    finally:
        await pool.close()


if __name__ == "__main__":
    asyncio.run(main())
