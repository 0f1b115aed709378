"""
City enrichment package.

Fetches descriptive content for a city from Wikipedia, at most one run per
city at a time, guarded by an advisory lock on the city row.
"""

from services.api.enrichment.audit import EnrichmentAuditLogger, EnrichmentLogEntry, InitiatedBy
from services.api.enrichment.errors import EnrichmentError, ErrorCode
from services.api.enrichment.fetcher import ContentFetcher, FetchResult
from services.api.enrichment.lock_store import InMemoryLockStore, LockStore, PostgresLockStore
from services.api.enrichment.orchestrator import EnrichmentOrchestrator, EnrichmentResult
from services.api.enrichment.repository import CityEnrichmentRepository, CityRecord

__all__ = [
    "CityEnrichmentRepository",
    "CityRecord",
    "ContentFetcher",
    "EnrichmentAuditLogger",
    "EnrichmentError",
    "EnrichmentLogEntry",
    "EnrichmentOrchestrator",
    "EnrichmentResult",
    "ErrorCode",
    "FetchResult",
    "InMemoryLockStore",
    "InitiatedBy",
    "LockStore",
    "PostgresLockStore",
]
