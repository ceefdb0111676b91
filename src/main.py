"""eventScout composition root.

Wires providers and services together from ``config/config.yaml`` and
the environment (``.env``), configures structured logging, and exposes
:func:`run_extraction_pipeline`, the single entry point a scheduler or
the CLI invokes.

Builders take the resolved config dict produced by
:func:`src.config.loader.load_config` so tests can assemble a pipeline
from a literal dict without touching the filesystem.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from src.config.loader import load_config
from src.config.settings import Settings
from src.interfaces.content_provider import FetchOptions
from src.interfaces.llm_provider import ILLMProvider
from src.models.run import ExtractionStats
from src.pipeline.orchestrator import AGENT_NAME, ExtractionPipeline
from src.providers.content.headless_provider import BrowserSession, HeadlessBrowserProvider
from src.providers.content.http_provider import HttpPageProvider
from src.providers.content.jina_reader_provider import JinaReaderProvider
from src.providers.content.ra_graphql_provider import RAGraphQLProvider
from src.providers.llm.openai_provider import OpenAILLMProvider
from src.providers.report.slack_reporter import SlackWebhookReporter
from src.providers.store.sqlite_event_store import SQLiteEventStore
from src.services.content_fetcher import ContentFetcher
from src.services.event_extractor import EventExtractor
from src.utils.concurrency import DomainRateLimiter
from src.utils.errors import ConfigurationError
from src.utils.logging import configure_logging, get_logger

DEFAULT_CONFIG_PATH = "config/config.yaml"

_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Provider builders
# ---------------------------------------------------------------------------


def build_llm_provider(settings: Settings) -> ILLMProvider:
    """Build the OpenAI-compatible LLM provider.

    Raises
    ------
    ConfigurationError
        If no API key is configured.
    """
    if not settings.has_llm_credentials():
        raise ConfigurationError(
            message="OPENROUTER_API_KEY is not set; the extraction model cannot be reached"
        )
    return OpenAILLMProvider(settings=settings)


def build_store(config: dict[str, Any]) -> SQLiteEventStore:
    return SQLiteEventStore(
        db_path=config.get("store", {}).get("db_path", "data/events.db"),
        region=config.get("pipeline", {}).get("target_region", "Palermo"),
    )


def build_content_fetcher(
    config: dict[str, Any],
    http_client: httpx.AsyncClient,
    browser_session: BrowserSession | None = None,
) -> ContentFetcher:
    """Assemble the provider chain and per-domain limiter from ``fetch`` config.

    The headless provider is only wired in when a *browser_session* is
    supplied; without one, scripted-fetch sources use Jina then HTTP.
    """
    fetch_cfg = config.get("fetch", {})
    jina = JinaReaderProvider(
        http_client=http_client,
        reader_url=fetch_cfg.get("jina_reader_url", "https://r.jina.ai"),
        api_key=fetch_cfg.get("jina_api_key", ""),
        min_content_chars=fetch_cfg.get("min_content_chars", 100),
    )
    ra = RAGraphQLProvider(
        http_client=http_client,
        area_id=fetch_cfg.get("ra_area_id", 302),
        page_size=fetch_cfg.get("ra_page_size", 30),
    )
    headless = HeadlessBrowserProvider(browser_session) if browser_session is not None else None

    return ContentFetcher(
        jina=jina,
        http=HttpPageProvider(http_client=http_client),
        headless=headless,
        ra=ra,
        rate_limiter=DomainRateLimiter(fetch_cfg.get("domain_delays", {})),
        scripted_fetch_domains=fetch_cfg.get("scripted_fetch_domains", []),
        max_attempts=fetch_cfg.get("max_attempts", 2),
        retry_delay=fetch_cfg.get("retry_delay", 5.0),
        options=FetchOptions(
            timeout=fetch_cfg.get("timeout", 30.0),
            wait_time=fetch_cfg.get("headless_wait_time", 3.0),
        ),
    )


def build_extractor(config: dict[str, Any], llm: ILLMProvider) -> EventExtractor:
    extraction_cfg = config.get("extraction", {})
    llm_cfg = config.get("llm", {})
    return EventExtractor(
        llm_provider=llm,
        target_region=config.get("pipeline", {}).get("target_region", "Palermo"),
        max_content_chars=extraction_cfg.get("max_content_chars", 100_000),
        max_attempts=extraction_cfg.get("max_attempts", 3),
        retry_delay=extraction_cfg.get("retry_delay", 2.0),
        rate_limit_attempts=extraction_cfg.get("rate_limit_attempts", 4),
        rate_limit_base_delay=extraction_cfg.get("rate_limit_base_delay", 2.0),
        max_tokens=llm_cfg.get("max_tokens", 8192),
        temperature=llm_cfg.get("temperature", 0.3),
    )


# ---------------------------------------------------------------------------
# Pipeline assembly
# ---------------------------------------------------------------------------


def build_pipeline(
    config: dict[str, Any],
    settings: Settings,
    http_client: httpx.AsyncClient,
    store: SQLiteEventStore | None = None,
) -> ExtractionPipeline:
    """Construct the extraction pipeline with every dependency injected.

    Parameters
    ----------
    config:
        Resolved configuration from :func:`load_config`.
    settings:
        Environment settings; supplies the LLM credentials.
    http_client:
        Shared client for every HTTP adapter.  The caller owns it and
        closes it once the run is over.
    store:
        Pre-built store; one is built from ``config`` when omitted.

    Raises
    ------
    ConfigurationError
        If the LLM is not configured.
    """
    llm = build_llm_provider(settings)

    fetch_cfg = config.get("fetch", {})
    browser_session = BrowserSession() if fetch_cfg.get("headless_enabled", True) else None

    pipeline_cfg = config.get("pipeline", {})
    report_cfg = config.get("report", {})
    dedup_cfg = config.get("dedup", {})

    reporter = SlackWebhookReporter(
        webhook_url=report_cfg.get("slack_webhook_url", ""),
        http_client=http_client,
        max_errors_displayed=report_cfg.get("max_errors_displayed", 5),
    )

    return ExtractionPipeline(
        store=store or build_store(config),
        fetcher=build_content_fetcher(config, http_client, browser_session),
        extractor=build_extractor(config, llm),
        reporter=reporter,
        browser_session=browser_session,
        max_events_per_run=pipeline_cfg.get("max_events_per_run", 100),
        inter_source_delay=pipeline_cfg.get("inter_source_delay", 2.0),
        stuck_run_max_age_minutes=pipeline_cfg.get("stuck_run_max_age_minutes", 30),
        partial_error_threshold=pipeline_cfg.get("partial_error_threshold", 3),
        trusted_listing_hosts=dedup_cfg.get("trusted_listing_hosts", []),
        timezone_name=pipeline_cfg.get("timezone", "Europe/Rome"),
        agent_name=config.get("app", {}).get("agent_name", AGENT_NAME),
    )


def setup(config_path: str = DEFAULT_CONFIG_PATH) -> tuple[Settings, dict[str, Any]]:
    """Read settings and config, and configure logging from them."""
    settings = Settings()
    config = load_config(config_path, settings=settings)
    logging_cfg = config.get("logging", {})
    configure_logging(
        log_level=logging_cfg.get("level", settings.log_level),
        json_output=logging_cfg.get("json", settings.app_env == "production"),
    )
    return settings, config


async def run_extraction_pipeline(
    config_path: str = DEFAULT_CONFIG_PATH,
    max_events: int | None = None,
) -> ExtractionStats:
    """Run one extraction pass with configuration from the environment.

    Parameters
    ----------
    config_path:
        YAML tuning file.
    max_events:
        Optional per-run override of ``max_events_per_run``.

    Returns
    -------
    ExtractionStats
        Aggregate counters for the run.

    Raises
    ------
    ConfigurationError
        If the LLM is not configured.
    PipelineError
        If the run aborted on a fatal error.
    """
    settings, config = setup(config_path)

    async with httpx.AsyncClient(follow_redirects=True) as client:
        store = build_store(config)
        await store.initialize()
        pipeline = build_pipeline(config, settings, http_client=client, store=store)
        stats = await pipeline.run(max_events=max_events)

    _logger.info("extraction_pipeline_finished", **stats.counters())
    return stats
