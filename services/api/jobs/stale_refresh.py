"""
Scheduled re-enrichment of outdated cities.

Picks enriched, unlocked cities whose content is older than the staleness
window (default 7 days), oldest first, and runs the orchestrator on each one
sequentially. Because those cities are already enriched, the orchestrator
records these attempts as initiated_by=stale_refresh.

A city that a page visit is enriching at the same moment simply comes back
LOCK_CONTENDED and is counted as skipped; the next run picks it up again if
still stale.

Usage:
    python -m services.api.jobs.stale_refresh
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from services.api.enrichment.errors import ErrorCode
from services.api.enrichment.orchestrator import EnrichmentOrchestrator
from services.api.enrichment.repository import CityEnrichmentRepository

logger = logging.getLogger(__name__)

DEFAULT_STALE_AFTER = timedelta(days=7)
DEFAULT_BATCH_SIZE = 25


@dataclass
class RefreshResult:
    selected: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    duration_ms: int = 0
    failed_city_ids: list[str] = field(default_factory=list)


async def run_stale_refresh(
    repository: CityEnrichmentRepository,
    orchestrator: EnrichmentOrchestrator,
    *,
    stale_after: timedelta = DEFAULT_STALE_AFTER,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> RefreshResult:
    """Re-enrich up to batch_size stale cities."""
    start_ts = time.monotonic()
    cutoff = datetime.now(timezone.utc) - stale_after
    cities = await repository.list_stale_cities(cutoff, batch_size)

    result = RefreshResult(selected=len(cities))
    logger.info("stale_refresh: %d cities older than %s", len(cities), cutoff.isoformat())

    for city in cities:
        outcome = await orchestrator.enrich_city(city.id)
        if outcome.success:
            result.succeeded += 1
        elif outcome.error_code == ErrorCode.LOCK_CONTENDED:
            result.skipped += 1
        else:
            result.failed += 1
            result.failed_city_ids.append(city.id)

    result.duration_ms = int((time.monotonic() - start_ts) * 1000)
    logger.info(
        "stale_refresh: complete selected=%d succeeded=%d failed=%d skipped=%d duration_ms=%d",
        result.selected,
        result.succeeded,
        result.failed,
        result.skipped,
        result.duration_ms,
    )
    return result


# ---------------------------------------------------------------------------
# Standalone entry point
# ---------------------------------------------------------------------------

async def main() -> None:
    """Standalone entry point for running from cron or Cloud Run Job."""
    import asyncpg

    from services.api.config import settings
    from services.api.enrichment.orchestrator import build_orchestrator

    logging.basicConfig(level=logging.INFO)

    pool = await asyncpg.create_pool(settings.database_url, min_size=1, max_size=3)
    try:
        repository = CityEnrichmentRepository(pool)
        orchestrator = build_orchestrator(pool, settings)
        result = await run_stale_refresh(
            repository,
            orchestrator,
            stale_after=timedelta(days=settings.enrichment_stale_after_days),
            batch_size=settings.enrichment_refresh_batch_size,
        )
        print(f"stale_refresh complete: {result}")
    finally:
        await pool.close()


if __name__ == "__main__":
    asyncio.run(main())
