"""
Admin enrichment operations: aggregate stats and a manual stale-lock sweep.

The sweep endpoint runs the same routine as the hourly job, so an operator
can free a stuck city without waiting for the next tick.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from services.api.config import settings
from services.api.db.models import EnrichmentLog
from services.api.db.session import get_db
from services.api.jobs.stale_lock_sweeper import run_stale_lock_sweep

router = APIRouter(prefix="/admin/enrichment", tags=["admin"])


def summarize_stats(
    total: Optional[int],
    successful: Optional[int],
    avg_duration_ms: Optional[float],
) -> dict[str, Any]:
    """Shape an aggregate row into the stats payload. Empty windows report zeros."""
    total = int(total or 0)
    successful = int(successful or 0)
    return {
        "totalAttempts": total,
        "successfulAttempts": successful,
        "failedAttempts": total - successful,
        "successRate": round(successful / total, 4) if total else 0.0,
        "avgDurationMs": round(float(avg_duration_ms), 1) if avg_duration_ms is not None else 0.0,
    }


@router.get("/stats")
async def enrichment_stats(
    request: Request,
    hours: int = Query(24, ge=1, le=24 * 30),
    db: AsyncSession = Depends(get_db),
) -> dict:
    since = datetime.now(timezone.utc) - timedelta(hours=hours)
    stmt = select(
        func.count(EnrichmentLog.id),
        func.count(EnrichmentLog.id).filter(EnrichmentLog.success.is_(True)),
        func.avg(EnrichmentLog.durationMs),
    ).where(EnrichmentLog.createdAt >= since)

    result = await db.execute(stmt)
    row = result.first() or (0, 0, None)
    return {
        "success": True,
        "data": summarize_stats(*row),
        "meta": {"hours": hours, "since": since.isoformat()},
        "requestId": getattr(request.state, "request_id", ""),
    }


@router.post("/sweep")
async def sweep_stale_locks(request: Request) -> dict:
    lock_store = getattr(request.app.state, "lock_store", None)
    if lock_store is None:
        raise HTTPException(status_code=503, detail="Lock store unavailable")

    result = await run_stale_lock_sweep(
        lock_store,
        max_age=timedelta(seconds=settings.enrichment_stale_lock_max_age_s),
    )
    return {
        "success": True,
        "data": {"clearedCount": result.cleared_count},
        "requestId": getattr(request.state, "request_id", ""),
    }
