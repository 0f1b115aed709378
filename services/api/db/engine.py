"""
AsyncEngine factory for the read endpoints.

NullPool because PgBouncer owns connection pooling; SA should not keep a
pool of its own on top. The asyncpg pool used by the enrichment write path
is sized separately in main.py.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from services.api.config import settings


def create_engine() -> AsyncEngine:
    """Create async engine for use with PgBouncer transaction-mode pooling."""
    url = settings.database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return create_async_engine(
        url,
        poolclass=NullPool,
        echo=settings.debug and settings.environment == "development",
    )
