"""Whether a city needs enrichment, and why."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from services.api.enrichment.repository import CityRecord

DEFAULT_STALE_AFTER = timedelta(days=7)


class EnrichmentReason(str, Enum):
    NEVER_ENRICHED = "never_enriched"
    STALE_DATA = "stale_data"
    IN_PROGRESS = "in_progress"
    UP_TO_DATE = "up_to_date"


@dataclass(frozen=True)
class EnrichmentStatus:
    needs_enrichment: bool
    reason: EnrichmentReason


def check_enrichment_status(
    city: CityRecord,
    *,
    stale_after: timedelta = DEFAULT_STALE_AFTER,
    now: Optional[datetime] = None,
) -> EnrichmentStatus:
    # A locked city reports needs_enrichment so the page keeps showing the spinner
    if city.enrichment_locked_at is not None:
        return EnrichmentStatus(True, EnrichmentReason.IN_PROGRESS)

    if not city.is_enriched or city.last_enriched_at is None:
        return EnrichmentStatus(True, EnrichmentReason.NEVER_ENRICHED)

    now = now or datetime.now(timezone.utc)
    if now - city.last_enriched_at > stale_after:
        return EnrichmentStatus(True, EnrichmentReason.STALE_DATA)

    return EnrichmentStatus(False, EnrichmentReason.UP_TO_DATE)
