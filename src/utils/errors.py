"""Custom exception hierarchy for eventScout.

All application exceptions inherit from :class:`EventScoutError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "openrouter", "jina-reader", "sqlite") caused the
failure.

The hierarchy is organized around the run's error boundaries:

    EventScoutError  (base -- catch-all for any eventScout error)
    +-- SourceError              (transient, scoped to one source)
    |   +-- FetchError           (network failure, non-2xx, empty page)
    |   +-- ExtractionError      (model output invalid after all retries)
    |   +-- RateLimitError       (HTTP 429 or equivalent throttling)
    +-- LLMError                 (model transport failure other than 429)
    +-- PersistenceError         (store failure -- fatal to the run)
    +-- ReportingError           (run report could not be delivered)
    +-- PipelineError            (run aborted / invalid state transition)
    +-- ConfigurationError       (startup / missing config)

The orchestrator catches ``SourceError`` and ``LLMError`` at the
per-source boundary and moves on to the next source.  Everything else
escapes that boundary and aborts the run.  ``RateLimitError`` is counted
separately so operators can tell "site is down" from "we are throttled".
"""


class EventScoutError(Exception):
    """Base exception for all eventScout errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[openrouter] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Source-level (transient) errors
# ---------------------------------------------------------------------------

class SourceError(EventScoutError):
    """Raised when a single source cannot be processed.

    Caught at the orchestrator's per-source boundary: the source is
    skipped and the run continues with the next one.
    """

    def __init__(
        self,
        message: str = "Source processing failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class FetchError(SourceError):
    """Raised when page content cannot be retrieved (network, non-2xx, empty body)."""

    def __init__(
        self,
        message: str = "Content fetch failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ExtractionError(SourceError):
    """Raised when the model output fails schema validation on every attempt."""

    def __init__(
        self,
        message: str = "Event extraction failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RateLimitError(SourceError):
    """Raised when an upstream service throttles us (HTTP 429 or equivalent).

    The event extractor applies exponential backoff before giving up and
    re-raising; the orchestrator counts it under ``sources_rate_limited``.
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Provider errors
# ---------------------------------------------------------------------------

class LLMError(EventScoutError):
    """Raised when an LLM API call fails for a reason other than rate limiting."""

    def __init__(
        self,
        message: str = "LLM API call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class PersistenceError(EventScoutError):
    """Raised when the event store cannot be read or written.

    Not caught by the per-source boundary: a store outage aborts the run.
    """

    def __init__(
        self,
        message: str = "Event store operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ReportingError(EventScoutError):
    """Raised when a run report or alert cannot be delivered."""

    def __init__(
        self,
        message: str = "Run report delivery failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Orchestration / configuration errors
# ---------------------------------------------------------------------------

class PipelineError(EventScoutError):
    """Raised when a run aborts or attempts an invalid state transition."""

    def __init__(
        self,
        message: str = "Pipeline orchestration failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(EventScoutError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
