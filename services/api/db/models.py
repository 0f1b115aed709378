"""
SQLAlchemy DeclarativeBase models -- read-only mirrors of the tables the
enrichment API reads.

Column names use camelCase to match the actual PostgreSQL column names.
The web app owns the schema; SA does NOT convert names, so attributes are
camelCase too.

IMPORTANT: These models are NOT used for migrations or for the enrichment
write path. Writes go through asyncpg (services/api/enrichment/*) so that the
lock primitives stay single SQL statements.
"""

import uuid as _uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Enum, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# create_type=False: the web app's migrations own the DDL, SA just reads.
EnrichmentStatusEnum = Enum("completed", "failed", name="EnrichmentStatus", create_type=False)
InitiatedByEnum = Enum("user_visit", "stale_refresh", name="EnrichmentInitiatedBy", create_type=False)


class Base(DeclarativeBase):
    pass


class City(Base):
    __tablename__ = "cities"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(_uuid.uuid4()))
    name: Mapped[str] = mapped_column(String)
    country: Mapped[str] = mapped_column(String)
    slug: Mapped[Optional[str]] = mapped_column(String, nullable=True, unique=True)
    isEnriched: Mapped[bool] = mapped_column(Boolean, default=False)
    lastEnrichedAt: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    # Non-NULL while an enrichment run holds the city's lock
    enrichmentLockedAt: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class CityEnrichmentContent(Base):
    """Enriched fields for a city, 1:1 with cities."""

    __tablename__ = "city_enrichment_content"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(_uuid.uuid4()))
    cityId: Mapped[str] = mapped_column(String, unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    history: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    geography: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    climate: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    transportation: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sourceUrl: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    scrapedAt: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class EnrichmentLog(Base):
    """Append-only enrichment attempt log. NEVER update or delete rows from this table."""

    __tablename__ = "enrichment_logs"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(_uuid.uuid4()))
    cityId: Mapped[str] = mapped_column(String)
    success: Mapped[bool] = mapped_column(Boolean)
    status: Mapped[str] = mapped_column(EnrichmentStatusEnum)
    startedAt: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    completedAt: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    durationMs: Mapped[int] = mapped_column(Integer)
    fieldsPopulated: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    errorCode: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    sourceUrl: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    initiatedBy: Mapped[str] = mapped_column(InitiatedByEnum)
    createdAt: Mapped[datetime] = mapped_column(DateTime(timezone=True))
