"""Tests for the scheduled stale-city refresh."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from services.api.enrichment.errors import ErrorCode
from services.api.enrichment.orchestrator import EnrichmentResult
from services.api.jobs.stale_refresh import run_stale_refresh
from services.api.tests.conftest import make_city


def _repository(cities):
    repository = AsyncMock()
    repository.list_stale_cities = AsyncMock(return_value=cities)
    return repository


@pytest.mark.asyncio
async def test_counts_outcomes():
    cities = [make_city(id=cid, is_enriched=True) for cid in ("a", "b", "c")]
    outcomes = {
        "a": EnrichmentResult(success=True, duration_ms=10, fields_populated=3),
        "b": EnrichmentResult(success=False, duration_ms=1, error_code=ErrorCode.LOCK_CONTENDED),
        "c": EnrichmentResult(success=False, duration_ms=5, error_code=ErrorCode.RATE_LIMITED),
    }
    orchestrator = AsyncMock()
    orchestrator.enrich_city = AsyncMock(side_effect=lambda cid: outcomes[cid])

    result = await run_stale_refresh(_repository(cities), orchestrator)

    assert result.selected == 3
    assert result.succeeded == 1
    assert result.skipped == 1
    assert result.failed == 1
    assert result.failed_city_ids == ["c"]


@pytest.mark.asyncio
async def test_runs_sequentially_in_repository_order():
    cities = [make_city(id=cid, is_enriched=True) for cid in ("old", "older")]
    calls: list[str] = []

    async def _enrich(cid):
        calls.append(cid)
        return EnrichmentResult(success=True, duration_ms=1)

    orchestrator = AsyncMock()
    orchestrator.enrich_city = AsyncMock(side_effect=_enrich)

    await run_stale_refresh(_repository(cities), orchestrator)

    assert calls == ["old", "older"]


@pytest.mark.asyncio
async def test_cutoff_and_batch_size():
    repository = _repository([])
    orchestrator = AsyncMock()

    before = datetime.now(timezone.utc)
    result = await run_stale_refresh(
        repository, orchestrator, stale_after=timedelta(days=3), batch_size=5
    )

    cutoff, limit = repository.list_stale_cities.call_args.args
    assert limit == 5
    assert before - timedelta(days=3, seconds=5) <= cutoff <= datetime.now(timezone.utc) - timedelta(days=3)
    assert result.selected == 0
    orchestrator.enrich_city.assert_not_awaited()
