"""Strategy selection and fallback chaining for source content.

Picks an ordered provider chain for each source, then walks it until one
provider returns usable content:

    ra.co URL                       -> RA GraphQL
    needs scripted fetch            -> headless browser, Jina Reader, direct HTTP
    anything else                   -> Jina Reader, direct HTTP

A source needs a scripted fetch when its kind says so (Instagram) or
when its hostname is listed under ``fetch.scripted_fetch_domains``.
Every provider call first waits on the shared
:class:`~src.utils.concurrency.DomainRateLimiter`.  The whole chain is
retried up to ``max_attempts`` times, with the delay doubling after each
throttled attempt; when it finally fails, a
:class:`RateLimitError` from the last attempt is re-raised in preference
to a plain :class:`FetchError` so throttling can be counted separately.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Sequence

from src.interfaces.content_provider import FetchedContent, FetchOptions, IContentProvider
from src.models.source import EventSource
from src.providers.content.ra_graphql_provider import is_ra_url
from src.utils.concurrency import DomainRateLimiter
from src.utils.errors import FetchError, RateLimitError, SourceError
from src.utils.logging import get_logger


class ContentFetcher:
    """Fetches a source's content through its provider chain.

    Parameters
    ----------
    jina:
        Reader-proxy provider.
    http:
        Direct HTTP provider (last resort).
    headless:
        Scripted-browser provider; ``None`` disables scripted fetches.
    ra:
        RA GraphQL provider; ``None`` sends ra.co through the default chain.
    rate_limiter:
        Per-domain spacing shared by every provider call.
    scripted_fetch_domains:
        Hostnames (without ``www.``) that always need the headless browser.
    max_attempts:
        How many times the whole chain is tried.
    retry_delay:
        Seconds between chain attempts.
    options:
        Request options handed to every provider.
    """

    def __init__(
        self,
        jina: IContentProvider,
        http: IContentProvider,
        headless: IContentProvider | None = None,
        ra: IContentProvider | None = None,
        rate_limiter: DomainRateLimiter | None = None,
        scripted_fetch_domains: Iterable[str] = (),
        max_attempts: int = 2,
        retry_delay: float = 5.0,
        options: FetchOptions | None = None,
    ) -> None:
        self._jina = jina
        self._http = http
        self._headless = headless
        self._ra = ra
        self._rate_limiter = rate_limiter or DomainRateLimiter()
        self._scripted_domains = {d.lower().removeprefix("www.") for d in scripted_fetch_domains}
        self._max_attempts = max(1, max_attempts)
        self._retry_delay = retry_delay
        self._options = options or FetchOptions()
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Strategy selection
    # ------------------------------------------------------------------

    def needs_scripted_fetch(self, source: EventSource) -> bool:
        if source.capabilities.needs_scripted_fetch:
            return True
        host = source.hostname
        return any(host == d or host.endswith("." + d) for d in self._scripted_domains)

    def strategy_for(self, source: EventSource) -> list[IContentProvider]:
        """Return the ordered provider chain for *source*."""
        if self._ra is not None and is_ra_url(source.url):
            return [self._ra]
        if self._headless is not None and self.needs_scripted_fetch(source):
            return [self._headless, self._jina, self._http]
        return [self._jina, self._http]

    def describe_strategy(self, source: EventSource) -> list[str]:
        return [provider.get_provider_name() for provider in self.strategy_for(source)]

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    async def _try_chain(
        self, source: EventSource, chain: Sequence[IContentProvider]
    ) -> FetchedContent:
        last_error: SourceError | None = None
        for provider in chain:
            await self._rate_limiter.acquire(provider.rate_limit_key(source.url))
            try:
                content = await provider.fetch(source.url, self._options)
            except (FetchError, RateLimitError) as exc:
                self._logger.warning(
                    "fetch_provider_failed",
                    source=source.name,
                    provider=provider.get_provider_name(),
                    error=str(exc),
                )
                last_error = exc
                continue
            self._logger.info(
                "source_content_fetched",
                source=source.name,
                provider=provider.get_provider_name(),
                chars=len(content.text),
            )
            return content
        assert last_error is not None
        raise last_error

    async def fetch(self, source: EventSource) -> FetchedContent:
        """Fetch *source*'s content, falling back and retrying as configured.

        Raises
        ------
        RateLimitError
            If the final provider of the final attempt was throttled.
        FetchError
            If every provider failed on every attempt.
        """
        chain = self.strategy_for(source)
        last_error: SourceError | None = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                return await self._try_chain(source, chain)
            except (FetchError, RateLimitError) as exc:
                last_error = exc
                if attempt < self._max_attempts:
                    delay = self._retry_delay
                    if isinstance(exc, RateLimitError):
                        delay = self._retry_delay * 2 ** (attempt - 1)
                    self._logger.warning(
                        "fetch_chain_retry",
                        source=source.name,
                        attempt=attempt,
                        delay_s=delay,
                        rate_limited=isinstance(exc, RateLimitError),
                    )
                    await asyncio.sleep(delay)

        if isinstance(last_error, RateLimitError):
            raise last_error
        raise FetchError(
            message=f"All fetch strategies failed for {source.url}: {last_error}",
            provider_name="content_fetcher",
        ) from last_error
