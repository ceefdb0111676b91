"""Per-domain request spacing for the content fetchers.

The pipeline runs a single logical worker, so the only throttling it
needs is a minimum gap between consecutive requests to the same host.
:class:`DomainRateLimiter` keeps a monotonic timestamp per domain and
sleeps just long enough to honour that domain's configured delay.

The limiter is plain per-instance state, created by the composition root
and handed to :class:`~src.services.content_fetcher.ContentFetcher`, so
two pipeline instances never share (or fight over) each other's clocks.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Mapping
from urllib.parse import urlparse

import structlog

from src.utils.logging import get_logger

_DEFAULT_KEY = "default"
_DEFAULT_DELAY = 2.0

_logger: structlog.BoundLogger = get_logger(__name__)


def get_domain(url: str) -> str:
    """Return the bare hostname of *url* (lowercase, ``www.`` stripped).

    Falls back to ``"default"`` when the URL has no parseable host.
    """
    host = (urlparse(url).hostname or "").lower()
    if not host:
        return _DEFAULT_KEY
    return host.removeprefix("www.")


class DomainRateLimiter:
    """Enforce a minimum delay between requests to the same domain.

    Parameters
    ----------
    delays:
        Mapping of domain -> minimum seconds between requests.  The
        ``"default"`` key (if present) applies to unlisted domains.
    default_delay:
        Fallback delay when *delays* has no ``"default"`` entry.
    """

    def __init__(
        self,
        delays: Mapping[str, float] | None = None,
        default_delay: float = _DEFAULT_DELAY,
    ) -> None:
        self._delays = dict(delays or {})
        self._default_delay = float(self._delays.pop(_DEFAULT_KEY, default_delay))
        self._last_request: dict[str, float] = {}

    def delay_for(self, domain: str) -> float:
        """Return the configured spacing for *domain*."""
        return float(self._delays.get(domain, self._default_delay))

    async def acquire(self, domain: str) -> float:
        """Wait until *domain* may be hit again, then stamp the request time.

        Returns
        -------
        float
            Seconds actually slept (0.0 when no wait was needed).
        """
        delay = self.delay_for(domain)
        last = self._last_request.get(domain)
        waited = 0.0
        if last is not None:
            elapsed = time.monotonic() - last
            if elapsed < delay:
                waited = delay - elapsed
                _logger.debug("rate_limit_wait", domain=domain, wait_s=round(waited, 3))
                await asyncio.sleep(waited)
        self._last_request[domain] = time.monotonic()
        return waited

    def reset(self) -> None:
        """Forget every recorded request time."""
        self._last_request.clear()
