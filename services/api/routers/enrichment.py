"""
City enrichment API: trigger enrichment and read its results.

Endpoints:
  POST /cities/{city_id}/enrich              run the orchestrator (rate-limited)
  GET  /cities/{city_id}/enrichment/status   needs enrichment? and why
  GET  /cities/{city_id}/enrichment          stored content, or null
  GET  /cities/{city_id}/enrichment/history  latest 10 attempts, newest first

The city page calls POST .../enrich when status says never_enriched. The
orchestrator never raises, so the trigger always answers 200 and reports
failure in-band; the page renders whatever content exists.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from services.api.config import settings
from services.api.db.models import City, CityEnrichmentContent, EnrichmentLog
from services.api.db.session import get_db
from services.api.enrichment.repository import CityRecord
from services.api.enrichment.status import check_enrichment_status

router = APIRouter(prefix="/cities", tags=["enrichment"])

HISTORY_LIMIT = 10


class EnrichmentContentResponse(BaseModel):
    city_id: str
    description: Optional[str]
    history: Optional[str]
    geography: Optional[str]
    climate: Optional[str]
    transportation: Optional[str]
    source_url: Optional[str]
    scraped_at: Optional[datetime]


class EnrichmentLogSummary(BaseModel):
    id: str
    success: bool
    status: str
    duration_ms: int
    error: Optional[str]
    error_code: Optional[str]
    source_url: Optional[str]
    initiated_by: str
    created_at: datetime


def _content_to_response(c: CityEnrichmentContent) -> dict:
    return EnrichmentContentResponse(
        city_id=c.cityId,
        description=c.description,
        history=c.history,
        geography=c.geography,
        climate=c.climate,
        transportation=c.transportation,
        source_url=c.sourceUrl,
        scraped_at=c.scrapedAt,
    ).model_dump()


def _log_to_summary(log: EnrichmentLog) -> dict:
    return EnrichmentLogSummary(
        id=log.id,
        success=log.success,
        status=log.status,
        duration_ms=log.durationMs,
        error=log.error,
        error_code=log.errorCode,
        source_url=log.sourceUrl,
        initiated_by=log.initiatedBy,
        created_at=log.createdAt,
    ).model_dump()


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "")


@router.post("/{city_id}/enrich")
async def trigger_enrichment(city_id: str, request: Request) -> dict:
    orchestrator = getattr(request.app.state, "enrichment_orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Enrichment unavailable")

    result = await orchestrator.enrich_city(city_id)
    return {
        "success": True,
        "data": result.to_dict(),
        "requestId": _request_id(request),
    }


@router.get("/{city_id}/enrichment/status")
async def get_enrichment_status(
    city_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> dict:
    result = await db.execute(select(City).where(City.id == city_id))
    city = result.scalars().first()
    if city is None:
        raise HTTPException(status_code=404, detail=f"City {city_id} not found")

    stale_after = timedelta(days=settings.enrichment_stale_after_days)
    status = check_enrichment_status(
        CityRecord(
            id=city.id,
            name=city.name,
            country=city.country,
            is_enriched=bool(city.isEnriched),
            last_enriched_at=city.lastEnrichedAt,
            enrichment_locked_at=city.enrichmentLockedAt,
        ),
        stale_after=stale_after,
    )
    return {
        "success": True,
        "data": {
            "needsEnrichment": status.needs_enrichment,
            "reason": status.reason.value,
        },
        "requestId": _request_id(request),
    }


@router.get("/{city_id}/enrichment")
async def get_enrichment_content(
    city_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> dict:
    result = await db.execute(
        select(CityEnrichmentContent).where(CityEnrichmentContent.cityId == city_id)
    )
    content = result.scalars().first()
    return {
        "success": True,
        "data": _content_to_response(content) if content else None,
        "requestId": _request_id(request),
    }


@router.get("/{city_id}/enrichment/history")
async def get_enrichment_history(
    city_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> dict:
    stmt = (
        select(EnrichmentLog)
        .where(EnrichmentLog.cityId == city_id)
        .order_by(EnrichmentLog.createdAt.desc())
        .limit(HISTORY_LIMIT)
    )
    result = await db.execute(stmt)
    logs = result.scalars().all()
    return {
        "success": True,
        "data": [_log_to_summary(log) for log in logs],
        "meta": {"timestamp": datetime.now(timezone.utc).isoformat()},
        "requestId": _request_id(request),
    }
