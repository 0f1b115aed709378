"""
City enrichment orchestrator.

Per-invocation state machine for one city:

    Idle -> Locked -> Enriched -> Idle
                   -> Failed   -> Idle
    Idle ---------------> Failed          (lock contended / city missing)

Flow:
  1. Load the city; isEnriched at entry decides initiatedBy
     (stale_refresh if already enriched, else user_visit).
  2. Acquire the per-city lock. Contention fails immediately with
     LOCK_CONTENDED; the lock belongs to the other run and is NOT released.
  3. Inside the locked region: fetch -> normalise -> persist.
  4. Release the lock on every exit path of the locked region.
  5. Outside the lock: write one audit entry, return the result.

enrich_city() never raises. Callers on the page-view path get a result object
back whatever happens upstream.

No caller-side timeout is applied here; the fetcher enforces its own, and the
stale-lock sweeper covers a run that dies while holding the lock.

Usage:
    orchestrator = EnrichmentOrchestrator(
        repository=CityEnrichmentRepository(pool),
        lock_store=PostgresLockStore(pool),
        fetcher=ContentFetcher(api_url, api_key),
        audit_logger=EnrichmentAuditLogger(pool),
    )
    result = await orchestrator.enrich_city(city_id)
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional

import sentry_sdk

from services.api.enrichment.audit import EnrichmentAuditLogger, EnrichmentLogEntry, InitiatedBy
from services.api.enrichment.errors import EnrichmentError, ErrorCode, extract_error_code
from services.api.enrichment.fetcher import ContentFetcher
from services.api.enrichment.lock_store import LockStore, PostgresLockStore
from services.api.enrichment.normalizer import count_populated_fields, normalize
from services.api.enrichment.repository import CityEnrichmentRepository

logger = logging.getLogger(__name__)

LOCK_CONTENDED_MESSAGE = "Lock acquisition failed - enrichment already in progress"


@dataclass
class EnrichmentResult:
    """Outcome of one enrich_city invocation."""
    success: bool
    duration_ms: int
    error: Optional[str] = None
    error_code: Optional[ErrorCode] = None
    fields_populated: Optional[int] = None
    source_url: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"success": self.success, "durationMs": self.duration_ms}
        if self.error is not None:
            out["error"] = self.error
        if self.error_code is not None:
            out["errorCode"] = self.error_code.value
        if self.fields_populated is not None:
            out["fieldsPopulated"] = self.fields_populated
        return out


class EnrichmentOrchestrator:

    def __init__(
        self,
        repository: CityEnrichmentRepository,
        lock_store: LockStore,
        fetcher: ContentFetcher,
        audit_logger: EnrichmentAuditLogger,
    ) -> None:
        self.repository = repository
        self.lock_store = lock_store
        self.fetcher = fetcher
        self.audit_logger = audit_logger

    @asynccontextmanager
    async def _city_lock(self, city_id: str) -> AsyncIterator[bool]:
        """
        Scoped lock acquisition. Yields whether this invocation holds the lock;
        releases on exit only if it does.
        """
        acquired = await self.lock_store.acquire(city_id)
        try:
            yield acquired
        finally:
            if acquired:
                try:
                    await self.lock_store.release(city_id)
                except Exception as exc:
                    # Lock stays held until the sweeper's next pass
                    logger.error("orchestrator: failed to release lock for city=%s: %s", city_id, exc)
                    sentry_sdk.capture_exception(exc)

    async def enrich_city(self, city_id: str) -> EnrichmentResult:
        """Enrich one city. Never raises; failures come back in the result."""
        start_ts = time.monotonic()
        initiated_by = InitiatedBy.USER_VISIT
        result: EnrichmentResult

        try:
            city = await self.repository.get_city(city_id)
            if city is None:
                raise EnrichmentError(ErrorCode.CITY_NOT_FOUND, f"city {city_id} does not exist")

            if city.is_enriched:
                initiated_by = InitiatedBy.STALE_REFRESH

            async with self._city_lock(city_id) as acquired:
                if not acquired:
                    logger.warning("orchestrator: city=%s already being enriched, skipping", city_id)
                    result = EnrichmentResult(
                        success=False,
                        duration_ms=_elapsed_ms(start_ts),
                        error=LOCK_CONTENDED_MESSAGE,
                        error_code=ErrorCode.LOCK_CONTENDED,
                    )
                else:
                    logger.info(
                        "orchestrator: enriching city=%s (%s, %s) initiated_by=%s",
                        city_id, city.name, city.country, initiated_by.value,
                    )
                    fetched = await self.fetcher.fetch(city.name, city.country)
                    fields = normalize(fetched.markdown, fetched.source_url)
                    fields_populated = count_populated_fields(fields)
                    await self.repository.save_enrichment(city_id, fields)
                    result = EnrichmentResult(
                        success=True,
                        duration_ms=_elapsed_ms(start_ts),
                        fields_populated=fields_populated,
                        source_url=fetched.source_url,
                    )

        except Exception as exc:
            error_code = extract_error_code(exc)
            if not isinstance(exc, EnrichmentError):
                sentry_sdk.capture_exception(exc)
            result = EnrichmentResult(
                success=False,
                duration_ms=_elapsed_ms(start_ts),
                error=str(exc) or type(exc).__name__,
                error_code=error_code,
            )

        # Duration covers everything up to the audit write
        result.duration_ms = _elapsed_ms(start_ts)
        if result.success:
            logger.info(
                "orchestrator: enriched city=%s duration_ms=%d fields_populated=%d",
                city_id, result.duration_ms, result.fields_populated,
            )
        elif result.error_code != ErrorCode.LOCK_CONTENDED:
            logger.error(
                "orchestrator: enrichment failed city=%s error_code=%s duration_ms=%d initiated_by=%s: %s",
                city_id,
                result.error_code.value if result.error_code else None,
                result.duration_ms,
                initiated_by.value,
                result.error,
            )

        try:
            await self.audit_logger.record(
                EnrichmentLogEntry(
                    city_id=city_id,
                    success=result.success,
                    duration_ms=result.duration_ms,
                    initiated_by=initiated_by,
                    error=result.error,
                    error_code=result.error_code,
                    fields_populated=result.fields_populated,
                    source_url=result.source_url,
                )
            )
        except Exception as exc:
            logger.error("orchestrator: audit write failed for city=%s: %s", city_id, exc)
        return result


def _elapsed_ms(start_ts: float) -> int:
    return int((time.monotonic() - start_ts) * 1000)


def build_orchestrator(pool: Any, settings: Any) -> EnrichmentOrchestrator:
    """Wire the Postgres-backed orchestrator from app settings."""
    return EnrichmentOrchestrator(
        repository=CityEnrichmentRepository(pool),
        lock_store=PostgresLockStore(pool),
        fetcher=ContentFetcher(
            settings.scrape_api_url,
            settings.scrape_api_key,
            source_base_url=settings.content_source_base_url,
            timeout_s=settings.enrichment_fetch_timeout_s,
        ),
        audit_logger=EnrichmentAuditLogger(pool),
    )
