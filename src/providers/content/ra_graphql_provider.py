"""Resident Advisor (RA.co) content provider via their undocumented GraphQL API.

RA.co is a client-side rendered React app behind bot protection; direct
HTML scraping returns 403.  Its GraphQL endpoint, however, answers plain
POST requests.  This provider asks it for the upcoming listings of one
area and renders each listing as an ``EVENT:`` block, so the extractor
receives clean pre-structured input instead of a page.

Includes bounded retry with backoff on 403/429/5xx responses.
"""

from __future__ import annotations

import asyncio
from datetime import date
from typing import Any
from urllib.parse import urlparse

import httpx
import structlog

from src.interfaces.content_provider import FetchedContent, FetchOptions, IContentProvider
from src.models.ra_event import RAEvent
from src.utils.errors import FetchError, RateLimitError

logger = structlog.get_logger(logger_name=__name__)

_GRAPHQL_URL = "https://ra.co/graphql"
_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36"
)
_DEFAULT_AREA_ID = 302  # Sicily
_DEFAULT_PAGE_SIZE = 30
_MAX_RETRIES = 3
_RETRY_BACKOFF = 5.0  # seconds, multiplied by the attempt number

NO_EVENTS_TEXT = "No events found for this area."

_GRAPHQL_QUERY = (
    "query GET_EVENT_LISTINGS("
    "$filters: FilterInputDtoInput, "
    "$pageSize: Int, "
    "$page: Int"
    ") {"
    "eventListings(filters: $filters, pageSize: $pageSize, page: $page) {"
    "data {"
    "id listingDate "
    "event {"
    "id title date startTime endTime contentUrl "
    "images {filename} "
    "venue {name address} "
    "artists {name}"
    "}"
    "} "
    "totalResults"
    "}"
    "}"
)


def is_ra_url(url: str) -> bool:
    """Return ``True`` when *url* points at ra.co."""
    host = (urlparse(url).hostname or "").lower()
    return host in ("ra.co", "www.ra.co")


class RAGraphQLProvider(IContentProvider):
    """Fetches upcoming RA.co listings for a single area.

    Parameters
    ----------
    http_client:
        Injected ``httpx.AsyncClient`` for testability and connection pooling.
    area_id:
        RA numeric area ID (302 is Sicily).
    page_size:
        Number of listings requested.
    retry_backoff:
        Base seconds to wait between retries; scaled by attempt number.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        area_id: int = _DEFAULT_AREA_ID,
        page_size: int = _DEFAULT_PAGE_SIZE,
        retry_backoff: float = _RETRY_BACKOFF,
    ) -> None:
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient()
        self._area_id = area_id
        self._page_size = page_size
        self._retry_backoff = retry_backoff

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _build_variables(self, today: date | None = None) -> dict[str, Any]:
        """Build the GraphQL variables for today's-and-later listings."""
        start = (today or date.today()).isoformat()
        return {
            "filters": {
                "areas": {"eq": self._area_id},
                "listingDate": {"gte": start},
            },
            "pageSize": self._page_size,
            "page": 1,
        }

    async def _graphql_request(self, variables: dict[str, Any], timeout: float) -> dict[str, Any]:
        """POST to RA's GraphQL endpoint with retry logic.

        Returns the ``data`` portion of the response.

        Raises
        ------
        RateLimitError
            If every attempt was answered with 403/429.
        FetchError
            On GraphQL errors, unexpected statuses, or exhausted retries.
        """
        headers = {
            "User-Agent": _USER_AGENT,
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Origin": "https://ra.co",
            "Referer": "https://ra.co/events",
        }
        payload = {
            "operationName": "GET_EVENT_LISTINGS",
            "variables": variables,
            "query": _GRAPHQL_QUERY,
        }

        last_status: int | None = None
        for attempt in range(1, _MAX_RETRIES + 1):
            try:
                response = await self._http.post(
                    _GRAPHQL_URL, json=payload, headers=headers, timeout=timeout
                )
            except httpx.HTTPError as exc:
                logger.warning("ra_request_failed", error=str(exc), attempt=attempt)
                last_status = None
                if attempt < _MAX_RETRIES:
                    await asyncio.sleep(self._retry_backoff * attempt)
                continue

            last_status = response.status_code
            if response.status_code == 200:
                data = response.json()
                if data.get("errors"):
                    messages = ", ".join(
                        str(err.get("message", err)) for err in data["errors"][:3]
                    )
                    raise FetchError(
                        message=f"RA GraphQL errors: {messages}",
                        provider_name=self.get_provider_name(),
                    )
                return data.get("data") or {}

            if response.status_code in (403, 429) or response.status_code >= 500:
                backoff = self._retry_backoff * attempt
                logger.warning(
                    "ra_retryable_status",
                    status=response.status_code,
                    attempt=attempt,
                    backoff_s=backoff,
                )
                if attempt < _MAX_RETRIES:
                    await asyncio.sleep(backoff)
                continue

            raise FetchError(
                message=f"RA GraphQL returned HTTP {response.status_code}",
                provider_name=self.get_provider_name(),
            )

        if last_status in (403, 429):
            raise RateLimitError(
                message=f"RA GraphQL throttled (HTTP {last_status}) after {_MAX_RETRIES} attempts",
                provider_name=self.get_provider_name(),
            )
        raise FetchError(
            message=f"RA GraphQL failed after {_MAX_RETRIES} attempts",
            provider_name=self.get_provider_name(),
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def fetch_events(self, timeout: float = 30.0) -> list[RAEvent]:
        """Return the upcoming listings for the configured area."""
        data = await self._graphql_request(self._build_variables(), timeout)
        raw_items = (data.get("eventListings") or {}).get("data") or []

        events: list[RAEvent] = []
        for item in raw_items:
            if not item:
                continue
            try:
                events.append(RAEvent.from_graphql(item))
            except (KeyError, TypeError, ValueError):
                logger.warning("ra_event_parse_failed", event_data=str(item)[:200])

        logger.debug("ra_listings_fetched", area_id=self._area_id, events=len(events))
        return events

    async def fetch(self, url: str, options: FetchOptions | None = None) -> FetchedContent:
        options = options or FetchOptions()
        events = await self.fetch_events(timeout=options.timeout)
        if not events:
            text = NO_EVENTS_TEXT
        else:
            text = "\n\n".join(event.to_block() for event in events)
        return FetchedContent(url=url, text=text, provider=self.get_provider_name())

    def rate_limit_key(self, url: str) -> str:
        return "ra.co"

    def get_provider_name(self) -> str:
        return "ra_graphql"

    async def close(self) -> None:
        if self._owns_client:
            await self._http.aclose()
