"""Abstract base class for page content providers.

A content provider turns a source URL into text the extractor can read.
Strategies differ wildly (reader proxy, plain HTTP, scripted browser,
site-specific API) but all share this contract, so the content fetcher
can chain them as fallbacks.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from src.utils.concurrency import get_domain


@dataclass(frozen=True)
class FetchOptions:
    """Per-request knobs; providers ignore the ones they do not support."""

    timeout: float = 30.0
    wait_for_selector: str | None = None
    wait_time: float = 3.0
    scroll: bool = True


@dataclass(frozen=True)
class FetchedContent:
    """Content retrieved for one URL.

    ``text`` is what the extractor sees.  ``html`` is the raw markup when
    the provider had it, used only for link extraction.
    """

    url: str
    text: str
    provider: str
    html: str | None = None


# Concrete implementations: JinaReaderProvider, HttpPageProvider,
# HeadlessBrowserProvider, RAGraphQLProvider
# Located in: src/providers/content/
class IContentProvider(ABC):
    """Contract for fetching the content of a source page."""

    @abstractmethod
    async def fetch(self, url: str, options: FetchOptions | None = None) -> FetchedContent:
        """Fetch *url* and return its readable content.

        Raises
        ------
        src.utils.errors.RateLimitError
            On HTTP 429 (or the provider's equivalent).
        src.utils.errors.FetchError
            On any other network failure, non-2xx status, or content too
            short to be useful.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"jina"``."""

    def rate_limit_key(self, url: str) -> str:
        """Domain whose request spacing this call counts against.

        Defaults to the target URL's domain.  Proxy providers override it
        to throttle on the proxy host instead.
        """
        return get_domain(url)
