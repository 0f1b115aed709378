"""
City + enrichment content persistence (asyncpg, raw SQL).

The orchestrator only touches a slice of the city row:
  cities."isEnriched", cities."lastEnrichedAt", cities."enrichmentLockedAt"
plus the 1:1 city_enrichment_content row holding the enriched fields.

Lock state is NOT written here; only lock_store.py mutates "enrichmentLockedAt".

save_enrichment() is all-or-nothing: the content upsert and the city flag
update share one transaction, so a failed run leaves the city untouched.

Re-enrichment merge rule (per content field):
  - stored value missing                      -> take the new value
  - new value present, stored has no scrapedAt -> take the new value
  - new value present and newer               -> take the new value
  - new value missing                         -> keep the stored value
sourceUrl and scrapedAt always track the latest run.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from services.api.enrichment.errors import EnrichmentError, ErrorCode
from services.api.enrichment.normalizer import SECTION_FIELDS

logger = logging.getLogger(__name__)


@dataclass
class CityRecord:
    """The subset of a city row the enrichment subsystem reads."""
    id: str
    name: str
    country: str
    is_enriched: bool = False
    last_enriched_at: Optional[datetime] = None
    enrichment_locked_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Any) -> "CityRecord":
        return cls(
            id=row["id"],
            name=row["name"],
            country=row["country"],
            is_enriched=bool(row["isEnriched"]),
            last_enriched_at=row["lastEnrichedAt"],
            enrichment_locked_at=row["enrichmentLockedAt"],
        )


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------

def should_update_field(
    existing_value: Any,
    new_value: Any,
    existing_scraped_at: Optional[datetime],
    new_scraped_at: datetime,
) -> bool:
    """Decide whether a re-enrichment value replaces the stored one."""
    if existing_value is None:
        return True
    if new_value is not None:
        if existing_scraped_at is None:
            return True
        return new_scraped_at > existing_scraped_at
    return False


def merge_enrichment_fields(
    existing: Optional[dict[str, Any]],
    incoming: dict[str, Any],
) -> dict[str, Any]:
    """Combine stored content with a fresh run according to should_update_field."""
    new_scraped_at = incoming.get("scrapedAt") or datetime.now(timezone.utc)
    if not existing:
        merged = {name: incoming.get(name) for name in SECTION_FIELDS}
    else:
        existing_scraped_at = existing.get("scrapedAt")
        merged = {}
        for name in SECTION_FIELDS:
            if should_update_field(existing.get(name), incoming.get(name), existing_scraped_at, new_scraped_at):
                merged[name] = incoming.get(name)
            else:
                merged[name] = existing.get(name)
    merged["sourceUrl"] = incoming.get("sourceUrl")
    merged["scrapedAt"] = new_scraped_at
    return merged


# ---------------------------------------------------------------------------
# SQL
# ---------------------------------------------------------------------------

_GET_CITY_SQL = """
SELECT id, name, country, "isEnriched", "lastEnrichedAt", "enrichmentLockedAt"
FROM cities
WHERE id = $1
"""

_GET_CONTENT_FOR_UPDATE_SQL = """
SELECT description, history, geography, climate, transportation, "sourceUrl", "scrapedAt"
FROM city_enrichment_content
WHERE "cityId" = $1
FOR UPDATE
"""

_UPSERT_CONTENT_SQL = """
INSERT INTO city_enrichment_content (
    id, "cityId", description, history, geography, climate, transportation,
    "sourceUrl", "scrapedAt"
)
VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
ON CONFLICT ("cityId") DO UPDATE SET
    description    = EXCLUDED.description,
    history        = EXCLUDED.history,
    geography      = EXCLUDED.geography,
    climate        = EXCLUDED.climate,
    transportation = EXCLUDED.transportation,
    "sourceUrl"    = EXCLUDED."sourceUrl",
    "scrapedAt"    = EXCLUDED."scrapedAt"
"""

_MARK_ENRICHED_SQL = """
UPDATE cities
SET "isEnriched" = TRUE,
    "lastEnrichedAt" = $2
WHERE id = $1
"""

_LIST_STALE_SQL = """
SELECT id, name, country, "isEnriched", "lastEnrichedAt", "enrichmentLockedAt"
FROM cities
WHERE "isEnriched" = TRUE
  AND "enrichmentLockedAt" IS NULL
  AND ("lastEnrichedAt" IS NULL OR "lastEnrichedAt" < $1)
ORDER BY "lastEnrichedAt" ASC NULLS FIRST
LIMIT $2
"""


class CityEnrichmentRepository:
    """asyncpg-backed reads/writes for the enrichment subsystem."""

    def __init__(self, pool: Any):
        self.pool = pool

    async def get_city(self, city_id: str) -> Optional[CityRecord]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(_GET_CITY_SQL, city_id)
        return CityRecord.from_row(row) if row else None

    async def save_enrichment(self, city_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        """
        Persist normalised fields and flag the city enriched, atomically.

        Returns the merged content as written.

        Raises:
            EnrichmentError(DATABASE_ERROR): on any database failure.
        """
        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    existing_row = await conn.fetchrow(_GET_CONTENT_FOR_UPDATE_SQL, city_id)
                    existing = dict(existing_row) if existing_row else None
                    merged = merge_enrichment_fields(existing, fields)

                    await conn.execute(
                        _UPSERT_CONTENT_SQL,
                        str(uuid.uuid4()),
                        city_id,
                        merged["description"],
                        merged["history"],
                        merged["geography"],
                        merged["climate"],
                        merged["transportation"],
                        merged["sourceUrl"],
                        merged["scrapedAt"],
                    )
                    await conn.execute(_MARK_ENRICHED_SQL, city_id, datetime.now(timezone.utc))
        except Exception as exc:
            logger.error("repository: failed to save enrichment for city=%s: %s", city_id, exc)
            raise EnrichmentError(
                ErrorCode.DATABASE_ERROR,
                str(exc) or type(exc).__name__,
                context="Failed to persist enrichment",
            ) from exc

        return merged

    async def list_stale_cities(self, older_than: datetime, limit: int) -> list[CityRecord]:
        """Enriched, currently unlocked cities last enriched before older_than, oldest first."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(_LIST_STALE_SQL, older_than, limit)
        return [CityRecord.from_row(r) for r in rows]
