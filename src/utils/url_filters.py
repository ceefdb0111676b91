"""Listing-page detection for extracted event URLs.

An extracted event is only worth storing if its ``detail_url`` points at
a page about *that* event.  Aggregators often hand the model their own
listing page instead, and storing those would give every event from the
site the same useless link.  :func:`is_listing_page_url` matches the
known listing-page shapes from :data:`LISTING_PAGE_PATTERNS`.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence

from src.config.domain_knowledge import LISTING_PAGE_PATTERNS
from src.utils.concurrency import get_domain


def is_listing_page_url(
    url: str | None,
    patterns: Sequence[re.Pattern[str]] = LISTING_PAGE_PATTERNS,
) -> bool:
    """Return True if *url* is empty or looks like an event listing page."""
    if not url:
        return True
    return any(pattern.search(url) for pattern in patterns)


def is_trusted_listing_host(source_url: str, trusted_hosts: Iterable[str]) -> bool:
    """Return True if the source's host is on the trusted-listing allow-list.

    Hosts compare without a leading ``www.`` and case-insensitively;
    subdomains of a trusted host are trusted too.
    """
    host = get_domain(source_url)
    for trusted in trusted_hosts:
        trusted = trusted.lower().removeprefix("www.")
        if host == trusted or host.endswith("." + trusted):
            return True
    return False
