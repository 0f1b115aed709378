"""
Tests for services/api/enrichment/errors.py

Covers:
- Ordered substring rules (first match wins)
- Structural classification of httpx exceptions and status codes
- Code recovery from wrapped / re-raised exceptions
"""

from __future__ import annotations

from unittest.mock import MagicMock

import httpx
import pytest

from services.api.enrichment.errors import (
    EnrichmentError,
    ErrorCode,
    classify_error_message,
    classify_exception,
    classify_status_code,
    extract_error_code,
)


def _status_error(status: int) -> httpx.HTTPStatusError:
    response = MagicMock()
    response.status_code = status
    return httpx.HTTPStatusError(f"HTTP {status}", request=MagicMock(), response=response)


class TestClassifyErrorMessage:

    @pytest.mark.parametrize(
        "message, expected",
        [
            ("Page not found", ErrorCode.WIKIPEDIA_NOT_FOUND),
            ("upstream returned 404", ErrorCode.WIKIPEDIA_NOT_FOUND),
            ("Rate limit exceeded", ErrorCode.RATE_LIMITED),
            ("HTTP 429", ErrorCode.RATE_LIMITED),
            ("Request timed out", ErrorCode.TIMEOUT),
            ("read timeout", ErrorCode.TIMEOUT),
            ("Invalid API key provided", ErrorCode.AUTH_FAILED),
            ("403 Forbidden", ErrorCode.AUTH_FAILED),
            ("Unauthorized", ErrorCode.AUTH_FAILED),
            ("Network unreachable", ErrorCode.NETWORK_ERROR),
            ("connection reset by peer", ErrorCode.NETWORK_ERROR),
            ("something odd happened", ErrorCode.ENRICHMENT_ERROR),
        ],
    )
    def test_rules(self, message, expected):
        assert classify_error_message(message) == expected

    def test_first_rule_wins(self):
        """A message matching both 404 and 429 maps to the earlier rule."""
        assert classify_error_message("404 then 429") == ErrorCode.WIKIPEDIA_NOT_FOUND

    def test_case_insensitive(self):
        assert classify_error_message("RATE LIMIT hit") == ErrorCode.RATE_LIMITED

    @pytest.mark.parametrize("message", [None, ""])
    def test_empty_is_generic(self, message):
        assert classify_error_message(message) == ErrorCode.ENRICHMENT_ERROR


class TestStructuralClassification:

    @pytest.mark.parametrize(
        "status, expected",
        [
            (404, ErrorCode.WIKIPEDIA_NOT_FOUND),
            (429, ErrorCode.RATE_LIMITED),
            (401, ErrorCode.AUTH_FAILED),
            (403, ErrorCode.AUTH_FAILED),
            (504, ErrorCode.TIMEOUT),
        ],
    )
    def test_status_codes(self, status, expected):
        assert classify_status_code(status) == expected
        assert classify_exception(_status_error(status)) == expected

    def test_unmapped_status_returns_none(self):
        assert classify_status_code(500) is None

    def test_unmapped_status_error_falls_back_to_message(self):
        assert classify_exception(_status_error(500)) == ErrorCode.ENRICHMENT_ERROR

    def test_httpx_timeout_is_fetch_timeout(self):
        exc = httpx.ReadTimeout("read timed out", request=MagicMock())
        assert classify_exception(exc) == ErrorCode.FIRECRAWL_TIMEOUT

    def test_transport_error_is_network(self):
        exc = httpx.ConnectError("DNS failure", request=MagicMock())
        assert classify_exception(exc) == ErrorCode.NETWORK_ERROR

    def test_enrichment_error_keeps_code(self):
        exc = EnrichmentError(ErrorCode.DATABASE_ERROR, "connection refused")
        assert classify_exception(exc) == ErrorCode.DATABASE_ERROR

    def test_plain_exception_uses_message(self):
        assert classify_exception(RuntimeError("rate limit")) == ErrorCode.RATE_LIMITED


class TestEnrichmentError:

    def test_message_embeds_code(self):
        exc = EnrichmentError(ErrorCode.RATE_LIMITED, "slow down", context="Content fetch failed")
        assert str(exc) == "Content fetch failed (RATE_LIMITED): slow down"
        assert exc.code == ErrorCode.RATE_LIMITED
        assert exc.detail == "slow down"


class TestExtractErrorCode:

    def test_embedded_code_survives_rewrap(self):
        inner = EnrichmentError(ErrorCode.AUTH_FAILED, "bad key")
        outer = RuntimeError(f"wrapped: {inner}")
        assert extract_error_code(outer) == ErrorCode.AUTH_FAILED

    def test_embedded_code_beats_message_rules(self):
        """'not found' would classify as WIKIPEDIA_NOT_FOUND; the embedded code wins."""
        exc = RuntimeError("Enrichment failed (CITY_NOT_FOUND): city not found")
        assert extract_error_code(exc) == ErrorCode.CITY_NOT_FOUND

    def test_unknown_parenthesised_token_ignored(self):
        exc = RuntimeError("failed (SOMETHING_ELSE): connection dropped")
        assert extract_error_code(exc) == ErrorCode.NETWORK_ERROR

    def test_falls_back_to_classification(self):
        assert extract_error_code(ValueError("boom")) == ErrorCode.ENRICHMENT_ERROR
