"""
Error taxonomy for city enrichment.

Upstream failures arrive in two shapes:
  - structured: httpx status errors / transport errors raised by the fetcher
  - opaque: free-text messages (scrape API error bodies, wrapped exceptions)

Structured failures are mapped by status code / exception type. Opaque ones
fall back to case-insensitive substring rules, first match wins:

    404 | not found                        -> WIKIPEDIA_NOT_FOUND
    429 | rate limit                       -> RATE_LIMITED
    timeout | timed out                    -> TIMEOUT
    401 | 403 | unauthorized | forbidden
        | invalid api key                  -> AUTH_FAILED
    network | connection                   -> NETWORK_ERROR
    (anything else)                        -> ENRICHMENT_ERROR

Codes are embedded in exception messages as "(CODE)" so they survive
re-wrapping across layers.
"""

from __future__ import annotations

import re
from enum import Enum

import httpx


class ErrorCode(str, Enum):
    WIKIPEDIA_NOT_FOUND = "WIKIPEDIA_NOT_FOUND"
    RATE_LIMITED = "RATE_LIMITED"
    TIMEOUT = "TIMEOUT"
    # Fetcher's own hard timeout; key kept stable for existing dashboards
    FIRECRAWL_TIMEOUT = "FIRECRAWL_TIMEOUT"
    AUTH_FAILED = "AUTH_FAILED"
    NETWORK_ERROR = "NETWORK_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    LOCK_CONTENDED = "LOCK_CONTENDED"
    CITY_NOT_FOUND = "CITY_NOT_FOUND"
    ENRICHMENT_ERROR = "ENRICHMENT_ERROR"


_KNOWN_CODES = frozenset(code.value for code in ErrorCode)

# Ordered: first matching rule wins
_MESSAGE_RULES: list[tuple[tuple[str, ...], ErrorCode]] = [
    (("404", "not found"), ErrorCode.WIKIPEDIA_NOT_FOUND),
    (("429", "rate limit"), ErrorCode.RATE_LIMITED),
    (("timeout", "timed out"), ErrorCode.TIMEOUT),
    (
        ("401", "403", "unauthorized", "forbidden", "invalid api key"),
        ErrorCode.AUTH_FAILED,
    ),
    (("network", "connection"), ErrorCode.NETWORK_ERROR),
]

_STATUS_CODES: dict[int, ErrorCode] = {
    404: ErrorCode.WIKIPEDIA_NOT_FOUND,
    410: ErrorCode.WIKIPEDIA_NOT_FOUND,
    429: ErrorCode.RATE_LIMITED,
    401: ErrorCode.AUTH_FAILED,
    403: ErrorCode.AUTH_FAILED,
    408: ErrorCode.TIMEOUT,
    504: ErrorCode.TIMEOUT,
}

_EMBEDDED_CODE_RE = re.compile(r"\(([A-Z_]+)\)")


class EnrichmentError(Exception):
    """An enrichment failure with a stable taxonomy code."""

    def __init__(self, code: ErrorCode, message: str, *, context: str = "Enrichment failed"):
        self.code = code
        self.detail = message
        super().__init__(f"{context} ({code.value}): {message}")


def classify_error_message(message: str | None) -> ErrorCode:
    """Map free-text failure output to an ErrorCode using the ordered substring rules."""
    if not message:
        return ErrorCode.ENRICHMENT_ERROR
    lowered = message.lower()
    for needles, code in _MESSAGE_RULES:
        if any(needle in lowered for needle in needles):
            return code
    return ErrorCode.ENRICHMENT_ERROR


def classify_status_code(status_code: int) -> ErrorCode | None:
    """Structural mapping for HTTP status codes. None when the status carries no meaning for us."""
    return _STATUS_CODES.get(status_code)


def classify_exception(exc: BaseException) -> ErrorCode:
    """
    Classify an exception, preferring its structure over its message.

    Order:
      1. EnrichmentError -> its own code
      2. httpx timeouts -> FIRECRAWL_TIMEOUT (the fetch budget was exhausted)
      3. httpx status errors -> status code table
      4. httpx transport errors -> NETWORK_ERROR
      5. substring rules on str(exc)
    """
    if isinstance(exc, EnrichmentError):
        return exc.code
    if isinstance(exc, httpx.TimeoutException):
        return ErrorCode.FIRECRAWL_TIMEOUT
    if isinstance(exc, httpx.HTTPStatusError):
        mapped = classify_status_code(exc.response.status_code)
        if mapped is not None:
            return mapped
    elif isinstance(exc, httpx.TransportError):
        return ErrorCode.NETWORK_ERROR
    return classify_error_message(str(exc))


def extract_error_code(exc: BaseException) -> ErrorCode:
    """
    Recover the taxonomy code from an exception caught at the orchestrator boundary.

    A known "(CODE)" already embedded in the message wins over re-classification,
    so a code assigned deep in the fetcher is not lost when the error is re-wrapped.
    """
    if isinstance(exc, EnrichmentError):
        return exc.code
    for candidate in _EMBEDDED_CODE_RE.findall(str(exc)):
        if candidate in _KNOWN_CODES:
            return ErrorCode(candidate)
    return classify_exception(exc)
