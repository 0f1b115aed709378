"""Tests for the admin enrichment routes (stats + manual sweep)."""

from __future__ import annotations

from datetime import timedelta

import pytest

from services.api.routers.admin_enrichment import summarize_stats


class TestSummarizeStats:

    def test_rates(self):
        out = summarize_stats(10, 8, 1234.56)
        assert out == {
            "totalAttempts": 10,
            "successfulAttempts": 8,
            "failedAttempts": 2,
            "successRate": 0.8,
            "avgDurationMs": 1234.6,
        }

    def test_empty_window(self):
        out = summarize_stats(0, None, None)
        assert out["totalAttempts"] == 0
        assert out["successRate"] == 0.0
        assert out["avgDurationMs"] == 0.0


class TestStatsRoute:

    @pytest.mark.asyncio
    async def test_stats(self, client, mock_session):
        mock_session.returns_row(4, 3, 500.0)

        resp = await client.get("/admin/enrichment/stats?hours=6")

        assert resp.status_code == 200
        body = resp.json()
        assert body["data"]["totalAttempts"] == 4
        assert body["data"]["successRate"] == 0.75
        assert body["meta"]["hours"] == 6

    @pytest.mark.asyncio
    async def test_no_rows(self, client, mock_session):
        mock_session.returns_row(0, 0, None)

        resp = await client.get("/admin/enrichment/stats")

        assert resp.json()["data"]["failedAttempts"] == 0
        assert resp.json()["meta"]["hours"] == 24

    @pytest.mark.asyncio
    async def test_hours_validated(self, client):
        resp = await client.get("/admin/enrichment/stats?hours=0")
        assert resp.status_code == 422


class TestSweepRoute:

    @pytest.mark.asyncio
    async def test_reports_cleared_count(self, client, mock_lock_store):
        mock_lock_store.force_release_older_than.return_value = 2

        resp = await client.post("/admin/enrichment/sweep")

        assert resp.status_code == 200
        assert resp.json()["data"] == {"clearedCount": 2}
        mock_lock_store.force_release_older_than.assert_awaited_once_with(timedelta(seconds=300))

    @pytest.mark.asyncio
    async def test_nothing_to_sweep(self, client):
        resp = await client.post("/admin/enrichment/sweep")
        assert resp.json()["data"] == {"clearedCount": 0}
