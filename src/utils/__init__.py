"""Utility modules for eventScout.

Available utility modules (all re-exported here for convenience):

- **confidence** -- Additive data-completeness score (0-100) for a
  candidate event.
- **errors** -- Domain-specific exception hierarchy rooted at EventScoutError;
  the orchestrator's per-source boundary is expressed in terms of it.
- **concurrency** -- Per-domain request spacing for the content fetchers.
- **json_repair** -- Escapes stray double quotes inside JSON string values
  before parsing model output.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
- **text_normalizer** -- Title normalization for deduplication, handle and
  slug helpers.
- **url_filters** -- Aggregator listing-page detection.
"""

# -- Confidence scoring ----------------------------------------------------
from src.utils.confidence import MAX_CONFIDENCE, calculate_confidence

# -- Domain exception hierarchy --------------------------------------------
from src.utils.errors import (
    ConfigurationError,
    EventScoutError,
    ExtractionError,
    FetchError,
    LLMError,
    PersistenceError,
    PipelineError,
    RateLimitError,
    ReportingError,
    SourceError,
)

# -- Per-domain throttling -------------------------------------------------
from src.utils.concurrency import DomainRateLimiter, get_domain

# -- JSON repair for model output ------------------------------------------
from src.utils.json_repair import repair_unescaped_quotes

# -- Structured logging setup ----------------------------------------------
from src.utils.logging import configure_logging, get_logger

# -- Text normalization ----------------------------------------------------
from src.utils.text_normalizer import normalize_handle, normalize_title, slugify

# -- Listing-page policy ---------------------------------------------------
from src.utils.url_filters import is_listing_page_url, is_trusted_listing_host

__all__ = [
    "MAX_CONFIDENCE",
    "ConfigurationError",
    "DomainRateLimiter",
    "EventScoutError",
    "ExtractionError",
    "FetchError",
    "LLMError",
    "PersistenceError",
    "PipelineError",
    "RateLimitError",
    "ReportingError",
    "SourceError",
    "calculate_confidence",
    "configure_logging",
    "get_domain",
    "get_logger",
    "is_listing_page_url",
    "is_trusted_listing_host",
    "normalize_handle",
    "normalize_title",
    "repair_unescaped_quotes",
    "slugify",
]
