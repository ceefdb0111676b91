"""Content provider adapters.

Four concrete implementations of IContentProvider
(src/interfaces/content_provider.py), chained as fallbacks by
src/services/content_fetcher.py:
    - RAGraphQLProvider       - RA.co listings via GraphQL
    - HeadlessBrowserProvider - Playwright Chromium for script-rendered pages
    - JinaReaderProvider      - r.jina.ai markdown proxy
    - HttpPageProvider        - plain httpx GET + trafilatura
"""

from src.providers.content.headless_provider import BrowserSession, HeadlessBrowserProvider
from src.providers.content.http_provider import HttpPageProvider
from src.providers.content.jina_reader_provider import JinaReaderProvider
from src.providers.content.ra_graphql_provider import RAGraphQLProvider, is_ra_url

__all__ = [
    "BrowserSession",
    "HeadlessBrowserProvider",
    "HttpPageProvider",
    "JinaReaderProvider",
    "RAGraphQLProvider",
    "is_ra_url",
]
