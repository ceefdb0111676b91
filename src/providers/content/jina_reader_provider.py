"""Jina Reader content provider.

Jina Reader (``https://r.jina.ai/<url>``) renders a page server-side and
returns it as markdown, which is both cheaper to send to the model and
easier for it to read than raw HTML.  It is the first choice for static
sources and the first fallback for scripted ones.
"""

from __future__ import annotations

import httpx
import structlog

from src.interfaces.content_provider import FetchedContent, FetchOptions, IContentProvider
from src.utils.concurrency import get_domain
from src.utils.errors import FetchError, RateLimitError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_READER_URL = "https://r.jina.ai"
_DEFAULT_MIN_CHARS = 100


class JinaReaderProvider(IContentProvider):
    """Fetch pages as markdown through the Jina Reader proxy.

    Parameters
    ----------
    http_client:
        Optional shared ``httpx.AsyncClient``.  When omitted the provider
        creates (and owns) its own.
    reader_url:
        Base URL of the reader proxy.
    api_key:
        Optional bearer token for higher rate limits.
    min_content_chars:
        Responses shorter than this are treated as failures.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        reader_url: str = _DEFAULT_READER_URL,
        api_key: str = "",
        min_content_chars: int = _DEFAULT_MIN_CHARS,
    ) -> None:
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(follow_redirects=True)
        self._reader_url = reader_url.rstrip("/")
        self._api_key = api_key
        self._min_content_chars = min_content_chars

    async def fetch(self, url: str, options: FetchOptions | None = None) -> FetchedContent:
        options = options or FetchOptions()
        headers = {"Accept": "text/plain", "X-Return-Format": "markdown"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        try:
            response = await self._client.get(
                f"{self._reader_url}/{url}", headers=headers, timeout=options.timeout
            )
        except httpx.HTTPError as exc:
            raise FetchError(
                message=f"Reader request failed for {url}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if response.status_code == 429:
            raise RateLimitError(
                message=f"Reader rate limited while fetching {url}",
                provider_name=self.get_provider_name(),
            )
        if response.status_code >= 400:
            raise FetchError(
                message=f"Reader returned HTTP {response.status_code} for {url}",
                provider_name=self.get_provider_name(),
            )

        text = response.text
        if len(text.strip()) < self._min_content_chars:
            raise FetchError(
                message=f"Page content too short or empty for {url}",
                provider_name=self.get_provider_name(),
            )

        logger.debug("jina_page_fetched", url=url, chars=len(text))
        return FetchedContent(url=url, text=text, provider=self.get_provider_name())

    def rate_limit_key(self, url: str) -> str:
        return get_domain(self._reader_url)

    def get_provider_name(self) -> str:
        return "jina"

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
