"""
ContentFetcher: retrieves a city's Wikipedia article as markdown through a
hosted scrape API.

One outbound request per fetch. The article URL is derived deterministically
from city name + country:

    https://en.wikipedia.org/wiki/<City_Name>,_<Country_Name>

The country suffix disambiguates same-named cities (Portland, Oregon vs
Portland, England).

Scrape API contract (POST {scrape_api_url}):
  request:  {"url": "<article url>", "formats": ["markdown"]}
  success:  {"success": true, "data": {"markdown": "...", "metadata": {"statusCode": 200, ...}}}
  failure:  {"success": false, "error": "..."}

Every failure leaves this module as an EnrichmentError carrying a taxonomy
code (see errors.py). The whole call is capped by a hard timeout (default 30s)
which surfaces as FIRECRAWL_TIMEOUT rather than a hang.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from services.api.enrichment.errors import (
    EnrichmentError,
    ErrorCode,
    classify_error_message,
    classify_exception,
    classify_status_code,
)

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_BASE_URL = "https://en.wikipedia.org/wiki"
DEFAULT_FETCH_TIMEOUT_S = 30.0

_FETCH_CONTEXT = "Content fetch failed"


def build_source_url(city_name: str, country: str, base_url: str = DEFAULT_SOURCE_BASE_URL) -> str:
    """
    Article URL for a city.

    Spaces become underscores, then each part is percent-encoded on its own so
    the ",_" separator stays literal.

    >>> build_source_url("New York", "United States")
    'https://en.wikipedia.org/wiki/New_York,_United_States'
    """
    city_part = quote(city_name.strip().replace(" ", "_"), safe="!~*'()")
    country_part = quote(country.strip().replace(" ", "_"), safe="!~*'()")
    return f"{base_url.rstrip('/')}/{city_part},_{country_part}"


@dataclass
class FetchResult:
    """Raw article payload plus the URL it was resolved from."""
    markdown: str
    source_url: str


class ContentFetcher:
    """
    Scrape API client.

    Usage:
        fetcher = ContentFetcher(api_url=settings.scrape_api_url, api_key=settings.scrape_api_key)
        result = await fetcher.fetch("Paris", "France")
    """

    def __init__(
        self,
        api_url: str,
        api_key: str,
        *,
        source_base_url: str = DEFAULT_SOURCE_BASE_URL,
        timeout_s: float = DEFAULT_FETCH_TIMEOUT_S,
    ) -> None:
        self._api_url = api_url
        self._api_key = api_key
        self._source_base_url = source_base_url
        self.timeout_s = timeout_s

    async def fetch(self, city_name: str, country: str) -> FetchResult:
        """
        Fetch the article for a city.

        Raises:
            EnrichmentError: on every failure, with the code already assigned.
        """
        source_url = build_source_url(city_name, country, self._source_base_url)

        if not self._api_key:
            raise EnrichmentError(
                ErrorCode.AUTH_FAILED,
                "scrape API key is not configured",
                context=_FETCH_CONTEXT,
            )

        try:
            payload = await asyncio.wait_for(self._request(source_url), timeout=self.timeout_s)
        except asyncio.TimeoutError:
            raise EnrichmentError(
                ErrorCode.FIRECRAWL_TIMEOUT,
                f"no response for {source_url} within {self.timeout_s:.0f}s",
                context=_FETCH_CONTEXT,
            ) from None
        except EnrichmentError:
            raise
        except Exception as exc:
            code = classify_exception(exc)
            logger.warning("fetcher: request for %s failed (%s): %s", source_url, code.value, exc)
            raise EnrichmentError(code, str(exc) or type(exc).__name__, context=_FETCH_CONTEXT) from exc

        markdown = self._extract_markdown(payload, source_url)
        logger.info("fetcher: fetched %s (%d chars)", source_url, len(markdown))
        return FetchResult(markdown=markdown, source_url=source_url)

    async def _request(self, source_url: str) -> dict[str, Any] | None:
        async with httpx.AsyncClient(timeout=self.timeout_s) as client:
            resp = await client.post(
                self._api_url,
                json={"url": source_url, "formats": ["markdown"]},
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Accept": "application/json",
                },
            )
            resp.raise_for_status()
            return resp.json()

    @staticmethod
    def _extract_markdown(payload: dict[str, Any] | None, source_url: str) -> str:
        """Validate the scrape response body; failures are classified from its error text."""
        if not payload:
            raise EnrichmentError(
                ErrorCode.ENRICHMENT_ERROR,
                f"empty response for {source_url}",
                context=_FETCH_CONTEXT,
            )

        error = payload.get("error")
        if error or payload.get("success") is False:
            message = str(error or "Unknown error")
            raise EnrichmentError(classify_error_message(message), message, context=_FETCH_CONTEXT)

        data = payload.get("data") or {}
        metadata = data.get("metadata") or {}
        status_code = metadata.get("statusCode")
        if isinstance(status_code, int) and status_code >= 400:
            code = classify_status_code(status_code) or ErrorCode.ENRICHMENT_ERROR
            raise EnrichmentError(
                code,
                f"source returned HTTP {status_code} for {source_url}",
                context=_FETCH_CONTEXT,
            )

        markdown = data.get("markdown") or payload.get("markdown") or ""
        if not markdown.strip():
            raise EnrichmentError(
                ErrorCode.ENRICHMENT_ERROR,
                f"no article content returned for {source_url}",
                context=_FETCH_CONTEXT,
            )
        return markdown
