"""Run orchestrator for the event extraction pipeline.

Coordinates content fetching, LLM extraction, screening, two-layer
deduplication and persistence for every enabled source, then reports the
run through the injected :class:`IRunReporter`.

ARCHITECTURE NOTE (for junior developers):
    A run is a small state machine::

        pending -> running -> {completed, failed}

    ``_transition()`` enforces it; anything else raises PipelineError.

    The run itself has two passes:

        1. Source pass   : fetch -> discover links -> extract -> screen
                           -> in-run dedup, for each source in order,
                           until ``max_events_per_run`` candidates are
                           accepted.
        2. Persisted pass: re-screen -> dedup against the store ->
                           create / update / discard, in discovery order.

    Errors come in two flavours:
        - SourceError / LLMError : caught per source.  The source is
          counted as failed, the error string is kept for the report and
          the loop moves on.
        - Anything else (a PersistenceError, a bug): fatal.  The run
          record is marked failed, an alert goes out and PipelineError
          is raised from the original.

    The browser session is the one shared resource; it is closed in a
    ``finally`` block on every exit path.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo

import structlog

from src.interfaces.event_store import IEventStore
from src.interfaces.run_reporter import IRunReporter
from src.models.event import CandidateEvent
from src.models.run import (
    ExtractionStats,
    ReportStatus,
    RunReport,
    RunStatus,
    can_transition,
    report_status_for,
)
from src.models.source import EventSource
from src.providers.content.headless_provider import BrowserSession
from src.services.content_fetcher import ContentFetcher
from src.services.deduplication import (
    DedupDecision,
    DeduplicationEngine,
    SeenEventLedger,
    build_update,
)
from src.services.event_extractor import EventExtractor
from src.services.link_extractor import detect_event_embeds, extract_hashtags, extract_links
from src.utils.errors import (
    EventScoutError,
    LLMError,
    PipelineError,
    RateLimitError,
    ReportingError,
    SourceError,
)
from src.utils.logging import bind_run_context, clear_run_context, get_logger
from src.utils.url_filters import is_listing_page_url, is_trusted_listing_host

AGENT_TYPE = "extraction"
AGENT_NAME = "Extraction Agent"
NO_SOURCES_SUMMARY = "No event sources configured"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)  # noqa: UP017


def order_sources(sources: Iterable[EventSource]) -> list[EventSource]:
    """Social sources first, then by reliability score descending.

    The sort is stable, so sources with equal keys keep store order.
    """
    return sorted(sources, key=lambda s: (not s.is_social, -s.reliability_score))


class ExtractionPipeline:
    """Runs one extraction pass over every enabled source.

    All collaborators are injected; the composition root in
    :mod:`src.main` builds them from configuration.

    Parameters
    ----------
    store:
        Event store for lookups, writes and run bookkeeping.
    fetcher:
        Strategy-chain content fetcher.
    extractor:
        LLM event extractor.
    reporter:
        Destination for the end-of-run report and fatal alerts.
    dedup_engine:
        Persisted-layer deduplication; built over *store* when omitted.
    browser_session:
        Shared headless browser, closed when the run ends.
    max_events_per_run:
        Cap on candidates accepted in the source pass.
    inter_source_delay:
        Seconds slept after every source, successful or not.
    stuck_run_max_age_minutes:
        Age after which a ``running`` run record is reclaimed as failed.
    partial_error_threshold:
        Error count at which the report status becomes ``failed``.
    trusted_listing_hosts:
        Source hosts whose listing-page detail URLs are accepted.
    timezone_name:
        Zone used for naive extracted start times in the past check.
    now:
        Clock returning an aware datetime; injectable for tests.
    """

    def __init__(
        self,
        store: IEventStore,
        fetcher: ContentFetcher,
        extractor: EventExtractor,
        reporter: IRunReporter,
        dedup_engine: DeduplicationEngine | None = None,
        browser_session: BrowserSession | None = None,
        max_events_per_run: int = 100,
        inter_source_delay: float = 2.0,
        stuck_run_max_age_minutes: int = 30,
        partial_error_threshold: int = 3,
        trusted_listing_hosts: Sequence[str] = (),
        timezone_name: str = "Europe/Rome",
        agent_name: str = AGENT_NAME,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._fetcher = fetcher
        self._extractor = extractor
        self._reporter = reporter
        self._dedup = dedup_engine or DeduplicationEngine(store)
        self._browser_session = browser_session
        self._max_events = max_events_per_run
        self._inter_source_delay = inter_source_delay
        self._stuck_run_max_age = stuck_run_max_age_minutes
        self._partial_threshold = partial_error_threshold
        self._trusted_hosts = tuple(trusted_listing_hosts)
        self._tz = ZoneInfo(timezone_name)
        self._agent_name = agent_name
        self._now = now
        self._status = RunStatus.PENDING
        self._run_id: str | None = None
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @property
    def status(self) -> RunStatus:
        return self._status

    @property
    def run_id(self) -> str | None:
        return self._run_id

    # ------------------------------------------------------------------
    # State machine and run log
    # ------------------------------------------------------------------

    def _transition(self, target: RunStatus) -> None:
        if not can_transition(self._status, target):
            raise PipelineError(
                message=f"Invalid run transition {self._status.value} -> {target.value}"
            )
        self._logger.debug("run_transition", from_status=self._status.value, to_status=target.value)
        self._status = target

    async def _record(self, level: str, event: str, **fields: Any) -> None:
        """Log *event* and mirror it into the run's stored log."""
        getattr(self._logger, level)(event, **fields)
        if self._run_id is None:
            return
        try:
            await self._store.append_run_log(self._run_id, level, event, fields or None)
        except EventScoutError as exc:
            self._logger.warning("run_log_append_failed", error=str(exc))

    # ------------------------------------------------------------------
    # Screening
    # ------------------------------------------------------------------

    def _is_past(self, candidate: CandidateEvent) -> bool:
        start = candidate.start_time
        if start.tzinfo is None:
            start = start.replace(tzinfo=self._tz)
        return start < self._now()

    def _screen(self, candidate: CandidateEvent, source: EventSource, stats: ExtractionStats) -> bool:
        """Return True if *candidate* survives the past and listing-URL filters."""
        if self._is_past(candidate):
            stats.events_skipped_past += 1
            self._logger.debug(
                "event_skipped_past",
                title=candidate.title,
                start_time=candidate.start_time.isoformat(),
            )
            return False

        if is_listing_page_url(candidate.detail_url):
            if is_trusted_listing_host(source.url, self._trusted_hosts):
                self._logger.info(
                    "listing_url_accepted_trusted_source",
                    title=candidate.title,
                    source=source.name,
                    detail_url=candidate.detail_url,
                )
                return True
            stats.events_skipped_listing_url += 1
            self._logger.debug(
                "event_skipped_listing_url",
                title=candidate.title,
                detail_url=candidate.detail_url,
            )
            return False
        return True

    # ------------------------------------------------------------------
    # Source pass
    # ------------------------------------------------------------------

    async def _discover_sources(self, source: EventSource, markup: str, text: str, stats: ExtractionStats) -> None:
        """Queue social handles and websites found on the page for review.

        Never affects the run: failures are logged as warnings.
        """
        try:
            links = extract_links(markup, source.url)
            embeds = detect_event_embeds(markup)
            if embeds:
                self._logger.info(
                    "event_embeds_detected",
                    source=source.name,
                    platforms=sorted({embed.platform for embed in embeds}),
                )
            method = "mention" if source.is_social else "website_crawl"
            queued = 0
            if links.instagram_handles:
                result = await self._store.queue_potential_sources(
                    links.instagram_handles, "instagram", source.id, method
                )
                queued += result.queued
            if links.website_urls:
                result = await self._store.queue_potential_sources(
                    links.website_urls, "website", source.id, "website_crawl"
                )
                queued += result.queued
            if source.is_social:
                hashtags = extract_hashtags(text)
                if hashtags:
                    await self._store.update_hashtag_stats(hashtags, source.id)
            stats.potential_sources_queued += queued
            if queued:
                self._logger.info("potential_sources_queued", source=source.name, queued=queued)
        except Exception as exc:
            self._logger.warning("link_discovery_failed", source=source.name, error=str(exc))

    async def _process_source(
        self,
        source: EventSource,
        ledger: SeenEventLedger,
        accepted: list[tuple[CandidateEvent, EventSource]],
        stats: ExtractionStats,
        max_events: int,
    ) -> None:
        await self._record(
            "info", "source_processing_start", source=source.name, kind=source.kind.value, url=source.url
        )
        content = await self._fetcher.fetch(source)

        await self._discover_sources(source, content.html or content.text, content.text, stats)

        candidates = await self._extractor.extract(content.text, source.name, source.url, source=source)

        kept = 0
        for candidate in candidates:
            if stats.events_found >= max_events:
                break
            if not self._screen(candidate, source, stats):
                continue
            if ledger.check_and_add(candidate):
                stats.duplicates_in_run += 1
                self._logger.debug("event_duplicate_in_run", title=candidate.title)
                continue
            accepted.append((candidate, source))
            stats.events_found += 1
            kept += 1

        stats.sources_processed += 1
        if source.id is not None:
            await self._store.mark_source_scraped(source.id, _utcnow())
        await self._record(
            "info",
            "source_processed",
            source=source.name,
            extracted=len(candidates),
            accepted=kept,
            provider=content.provider,
        )

    # ------------------------------------------------------------------
    # Persisted pass
    # ------------------------------------------------------------------

    async def _persist(self, candidate: CandidateEvent, source: EventSource, stats: ExtractionStats) -> None:
        if self._is_past(candidate):
            stats.events_skipped_past += 1
            return

        outcome = await self._dedup.resolve(candidate)

        if outcome.decision is DedupDecision.UPDATE:
            update = build_update(outcome.existing, candidate, outcome.confidence)
            if await self._store.update_event(outcome.existing.id, update):
                stats.events_updated += 1
                self._logger.info(
                    "event_updated",
                    title=candidate.title,
                    old_confidence=outcome.existing.confidence_score,
                    new_confidence=outcome.confidence,
                )
            return
        if outcome.decision is DedupDecision.DISCARD_EXACT:
            stats.duplicates_exact += 1
            return
        if outcome.decision is DedupDecision.DISCARD_FUZZY:
            stats.duplicates_fuzzy += 1
            # Kept for review: the new record may carry better data than the stored one.
            self._logger.info(
                "event_fuzzy_duplicate_discarded",
                title=candidate.title,
                matched_id=outcome.existing.id if outcome.existing else None,
                confidence=outcome.confidence,
            )
            return

        location_name = (candidate.location_name or source.name or "").strip()
        organizer_name = (candidate.organizer_name or source.name or "").strip()
        if not location_name or not organizer_name:
            stats.events_failed += 1
            self._logger.warning(
                "event_reference_unresolved",
                title=candidate.title,
                location=location_name or None,
                organizer=organizer_name or None,
            )
            return

        location = await self._store.resolve_or_create_location(location_name, candidate.location_address)
        if location.created:
            stats.locations_created += 1
        organizer = await self._store.resolve_or_create_organizer(organizer_name)
        if organizer.created:
            stats.organizers_created += 1
        category_id = await self._store.resolve_or_create_category(candidate.category.value)

        event_id = await self._store.create_event(
            candidate,
            organizer_id=organizer.id,
            location_id=location.id,
            category_id=category_id,
            confidence_score=outcome.confidence,
            is_published=True,
        )
        stats.events_created += 1
        self._logger.info("event_created", event_id=event_id, title=candidate.title)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    async def _send_report(self, report: RunReport) -> None:
        try:
            await self._reporter.send_report(report)
        except ReportingError as exc:
            self._logger.warning("run_report_failed", error=str(exc))

    async def _alert(self, message: str) -> None:
        try:
            await self._reporter.alert_error(message, self._agent_name)
        except ReportingError as exc:
            self._logger.warning("run_alert_failed", error=str(exc))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def plan(self) -> list[tuple[EventSource, list[str]]]:
        """Return the ordered sources and the fetch chain each would use."""
        sources = order_sources(await self._store.list_enabled_sources())
        return [(source, self._fetcher.describe_strategy(source)) for source in sources]

    async def run(self, max_events: int | None = None) -> ExtractionStats:
        """Execute one extraction run.

        Parameters
        ----------
        max_events:
            Overrides ``max_events_per_run`` for this run only.

        Returns
        -------
        ExtractionStats
            Counters for the run; ``errors`` holds the per-source failures.

        Raises
        ------
        PipelineError
            If an error escaped the per-source boundary.  The run record
            has been marked failed and an alert sent.
        """
        cap = self._max_events if max_events is None else max_events
        stats = ExtractionStats()
        self._status = RunStatus.PENDING
        self._run_id = None
        started = time.monotonic()

        try:
            reclaimed = await self._store.reclaim_stuck_runs(self._stuck_run_max_age)
            if reclaimed:
                self._logger.warning("stuck_runs_reclaimed", count=reclaimed)

            self._run_id = await self._store.start_run(AGENT_TYPE, _utcnow())
            self._transition(RunStatus.RUNNING)
            bind_run_context(run_id=self._run_id)
            await self._record("info", "run_started", max_events=cap)

            sources = order_sources(await self._store.list_enabled_sources())
            if not sources:
                await self._record("warning", "no_event_sources")
                await self._finish(stats, started, NO_SOURCES_SUMMARY)
                return stats

            ledger = SeenEventLedger()
            accepted: list[tuple[CandidateEvent, EventSource]] = []

            for source in sources:
                if stats.events_found >= cap:
                    await self._record("info", "max_events_reached", max_events=cap)
                    break
                try:
                    await self._process_source(source, ledger, accepted, stats, cap)
                except (SourceError, LLMError) as exc:
                    stats.sources_failed += 1
                    if isinstance(exc, RateLimitError):
                        stats.sources_rate_limited += 1
                    message = f"Failed to process {source.name}: {exc}"
                    stats.errors.append(message)
                    await self._record(
                        "error",
                        "source_failed",
                        source=source.name,
                        error=str(exc),
                        rate_limited=isinstance(exc, RateLimitError),
                    )
                await asyncio.sleep(self._inter_source_delay)

            await self._record("info", "source_pass_complete", candidates=len(accepted))

            for candidate, source in accepted:
                await self._persist(candidate, source, stats)

            summary = (
                f"Processed {stats.sources_processed} sources, "
                f"created {stats.events_created} events, "
                f"updated {stats.events_updated} events"
            )
            await self._finish(stats, started, summary)
            return stats

        except Exception as exc:
            await self._fail(stats, started, exc)
            raise PipelineError(message=f"Extraction run failed: {exc}") from exc

        finally:
            if self._browser_session is not None:
                await self._browser_session.close()
            clear_run_context("run_id")

    async def _finish(self, stats: ExtractionStats, started: float, summary: str) -> None:
        duration = time.monotonic() - started
        report = RunReport(
            agent_name=self._agent_name,
            status=report_status_for(len(stats.errors), self._partial_threshold),
            duration_seconds=duration,
            stats=stats.labelled(),
            errors=list(stats.errors),
        )
        await self._send_report(report)

        await self._store.complete_run(
            self._run_id,
            RunStatus.COMPLETED,
            completed_at=_utcnow(),
            duration_seconds=duration,
            stats=stats.counters(),
            summary=summary,
            error_message="\n".join(stats.errors) or None,
        )
        self._transition(RunStatus.COMPLETED)
        await self._record(
            "info" if report.status is ReportStatus.SUCCESS else "warning",
            "run_completed",
            summary=summary,
            report_status=report.status.value,
            duration_s=round(duration, 2),
        )

    async def _fail(self, stats: ExtractionStats, started: float, exc: Exception) -> None:
        message = str(exc)
        self._logger.error("run_failed", error=message, error_type=type(exc).__name__)
        if self._run_id is not None and self._status is RunStatus.RUNNING:
            self._transition(RunStatus.FAILED)
            try:
                await self._store.complete_run(
                    self._run_id,
                    RunStatus.FAILED,
                    completed_at=_utcnow(),
                    duration_seconds=time.monotonic() - started,
                    stats=stats.counters(),
                    summary=None,
                    error_message=message,
                )
            except EventScoutError as store_exc:
                self._logger.error("run_record_update_failed", error=str(store_exc))
        await self._alert(message)
