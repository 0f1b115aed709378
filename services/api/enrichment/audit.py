"""
Append-only audit trail of enrichment attempts.

One enrichment_logs row per orchestrator invocation, success or failure,
including lock contention. Rows are never updated or deleted here.

Writes are best-effort: a failed insert is logged (with the entry's fields,
so the attempt is still visible in the service logs) and swallowed. Audit
problems must never change the outcome reported to the caller.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from services.api.enrichment.errors import ErrorCode

logger = logging.getLogger(__name__)


class InitiatedBy(str, Enum):
    USER_VISIT = "user_visit"
    STALE_REFRESH = "stale_refresh"


class EnrichmentLogEntry(BaseModel):
    """
    Model for creating enrichment log entries.
    Maps to the EnrichmentLog SA model.
    """

    city_id: str
    success: bool
    duration_ms: int = Field(..., ge=0)
    initiated_by: InitiatedBy
    error: Optional[str] = None
    error_code: Optional[ErrorCode] = None
    fields_populated: Optional[int] = None
    source_url: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


_INSERT_LOG_SQL = """
INSERT INTO enrichment_logs (
    id, "cityId", success, status, "startedAt", "completedAt", "durationMs",
    "fieldsPopulated", error, "errorCode", "sourceUrl", "initiatedBy", "createdAt"
)
VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13)
"""


class EnrichmentAuditLogger:
    """Append-only writer for enrichment_logs."""

    def __init__(self, pool: Any):
        self.pool = pool

    async def record(self, entry: EnrichmentLogEntry) -> Optional[str]:
        """
        Append one entry.

        Returns:
            ID of the created row, or None if the write failed.
        """
        entry_id = str(uuid4())
        completed_at = entry.timestamp
        started_at = completed_at - timedelta(milliseconds=entry.duration_ms)
        try:
            async with self.pool.acquire() as conn:
                await conn.execute(
                    _INSERT_LOG_SQL,
                    entry_id,
                    entry.city_id,
                    entry.success,
                    "completed" if entry.success else "failed",
                    started_at,
                    completed_at,
                    entry.duration_ms,
                    entry.fields_populated,
                    entry.error,
                    entry.error_code.value if entry.error_code else None,
                    entry.source_url,
                    entry.initiated_by.value,
                    completed_at,
                )
        except Exception as exc:
            logger.error(
                "audit: failed to record enrichment attempt city=%s success=%s "
                "error_code=%s error=%r: %s",
                entry.city_id,
                entry.success,
                entry.error_code.value if entry.error_code else None,
                entry.error,
                exc,
            )
            return None
        return entry_id
