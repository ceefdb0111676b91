"""Direct HTTP page provider using httpx and trafilatura.

The last resort in every fetch chain: a plain GET with a bot user agent.
trafilatura reduces the page to markdown (keeping links and images so
the model can still find detail URLs and cover art); if it finds no main
content the raw HTML is passed through instead.  The raw HTML is always
returned alongside for link extraction.
"""

from __future__ import annotations

import httpx
import structlog
import trafilatura

from src.interfaces.content_provider import FetchedContent, FetchOptions, IContentProvider
from src.utils.errors import FetchError, RateLimitError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_TIMEOUT = 30.0
_DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; eventScoutBot/1.0)",
    "Accept": "text/html,application/xhtml+xml",
}


class HttpPageProvider(IContentProvider):
    """Page fetch backed by httpx + trafilatura."""

    def __init__(self, http_client: httpx.AsyncClient | None = None) -> None:
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(_DEFAULT_TIMEOUT),
            follow_redirects=True,
        )

    # ------------------------------------------------------------------
    # IContentProvider implementation
    # ------------------------------------------------------------------

    async def fetch(self, url: str, options: FetchOptions | None = None) -> FetchedContent:
        """GET *url* and reduce it to readable markdown."""
        options = options or FetchOptions()
        try:
            response = await self._client.get(
                url, headers=_DEFAULT_HEADERS, timeout=options.timeout
            )
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise FetchError(
                message=f"Timeout fetching {url}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 429:
                raise RateLimitError(
                    message=f"HTTP 429 for {url}",
                    provider_name=self.get_provider_name(),
                ) from exc
            raise FetchError(
                message=f"HTTP {exc.response.status_code} for {url}",
                provider_name=self.get_provider_name(),
            ) from exc
        except httpx.HTTPError as exc:
            raise FetchError(
                message=f"HTTP error fetching {url}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        html = response.text
        if not html.strip():
            raise FetchError(
                message=f"Empty response body for {url}",
                provider_name=self.get_provider_name(),
            )

        text = trafilatura.extract(
            html,
            output_format="markdown",
            include_links=True,
            include_images=True,
            include_comments=False,
            include_tables=True,
        )
        if not text:
            logger.warning("trafilatura_extraction_empty", url=url)
            text = html

        logger.debug("http_page_fetched", url=url, chars=len(text))
        return FetchedContent(url=url, text=text, html=html, provider=self.get_provider_name())

    def get_provider_name(self) -> str:
        return "http"

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
