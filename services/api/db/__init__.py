"""
SQLAlchemy async database module.

Re-exports engine, session, and the read-model mirrors used by the
enrichment read endpoints.
"""

from services.api.db.engine import create_engine
from services.api.db.session import get_db
from services.api.db.models import (
    Base,
    City,
    CityEnrichmentContent,
    EnrichmentLog,
)

__all__ = [
    "create_engine",
    "get_db",
    "Base",
    "City",
    "CityEnrichmentContent",
    "EnrichmentLog",
]
