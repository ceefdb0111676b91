"""Unit tests for the extraction run orchestrator.

Every collaborator is mocked: the store is a ``MagicMock(spec=IEventStore)``
with AsyncMock methods, the fetcher and extractor are spec'd mocks, so
each test controls exactly what a source yields.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.interfaces.content_provider import FetchedContent
from src.interfaces.event_store import IEventStore, QueueResult, Resolved
from src.interfaces.run_reporter import IRunReporter
from src.models.event import CandidateEvent, StoredEvent
from src.models.run import ReportStatus, RunStatus
from src.models.source import EventSource, SourceKind
from src.pipeline.orchestrator import NO_SOURCES_SUMMARY, ExtractionPipeline, order_sources
from src.providers.content.headless_provider import BrowserSession
from src.services.content_fetcher import ContentFetcher
from src.services.event_extractor import EventExtractor
from src.utils.errors import (
    ExtractionError,
    FetchError,
    LLMError,
    PersistenceError,
    PipelineError,
    RateLimitError,
    ReportingError,
)
from tests.conftest import make_candidate, make_source

_NOW = datetime(2026, 10, 16, 12, 0, tzinfo=timezone.utc)  # noqa: UP017


# ======================================================================
# Shared helpers
# ======================================================================


def _mock_store(sources: list[EventSource]) -> MagicMock:
    store = MagicMock(spec=IEventStore)
    store.reclaim_stuck_runs = AsyncMock(return_value=0)
    store.start_run = AsyncMock(return_value="run-1")
    store.list_enabled_sources = AsyncMock(return_value=sources)
    store.append_run_log = AsyncMock()
    store.mark_source_scraped = AsyncMock()
    store.complete_run = AsyncMock()
    store.find_event_by_normalized_title_and_date = AsyncMock(return_value=None)
    store.find_events_on_date = AsyncMock(return_value=[])
    store.resolve_or_create_location = AsyncMock(return_value=Resolved(id="loc-1", created=True))
    store.resolve_or_create_organizer = AsyncMock(return_value=Resolved(id="org-1", created=True))
    store.resolve_or_create_category = AsyncMock(return_value="cat-1")
    store.create_event = AsyncMock(return_value="evt-new")
    store.update_event = AsyncMock(return_value=True)
    store.queue_potential_sources = AsyncMock(return_value=QueueResult())
    store.update_hashtag_stats = AsyncMock()
    return store


def _mock_fetcher(*results: Any) -> MagicMock:
    """Fetcher whose fetch() yields *results* in order (exceptions are raised)."""
    fetcher = MagicMock(spec=ContentFetcher)
    if results:
        side_effect = list(results)
    else:
        side_effect = lambda source: FetchedContent(  # noqa: E731
            url=source.url, text="page text", provider="jina"
        )
    fetcher.fetch = AsyncMock(side_effect=side_effect)
    fetcher.describe_strategy = MagicMock(return_value=["jina", "http"])
    return fetcher


def _mock_extractor(by_source: dict[str, Any]) -> MagicMock:
    """Extractor returning (or raising) ``by_source[source_name]``."""

    async def extract(content, source_name, source_url, source=None) -> list[CandidateEvent]:
        result = by_source.get(source_name, [])
        if isinstance(result, Exception):
            raise result
        return result

    extractor = MagicMock(spec=EventExtractor)
    extractor.extract = AsyncMock(side_effect=extract)
    return extractor


def _mock_reporter() -> MagicMock:
    reporter = MagicMock(spec=IRunReporter)
    reporter.send_report = AsyncMock()
    reporter.alert_error = AsyncMock()
    return reporter


def _pipeline(store, fetcher=None, extractor=None, reporter=None, **kwargs) -> ExtractionPipeline:
    kwargs.setdefault("inter_source_delay", 0.0)
    kwargs.setdefault("now", lambda: _NOW)
    kwargs.setdefault("trusted_listing_hosts", ["palermoviva.it"])
    return ExtractionPipeline(
        store=store,
        fetcher=fetcher or _mock_fetcher(),
        extractor=extractor or _mock_extractor({}),
        reporter=reporter or _mock_reporter(),
        **kwargs,
    )


def _stored(**overrides: Any) -> StoredEvent:
    data: dict[str, Any] = {
        "id": "evt-1",
        "title": "Notte Techno ai Cantieri",
        "normalized_title": "notte techno ai cantieri",
        "start_time": datetime(2099, 6, 12, 22, 0),
        "event_date": datetime(2099, 6, 12).date(),
        "confidence_score": 10,
    }
    data.update(overrides)
    return StoredEvent(**data)


_AGGREGATOR = make_source(id="src-agg", name="Palermo Viva", reliability_score=60)
_VENUE = make_source(
    id="src-venue",
    name="Teatro Massimo",
    url="https://www.teatromassimo.it/calendario/",
    kind=SourceKind.LOCATION,
    reliability_score=80,
)
_INSTAGRAM = make_source(
    id="src-ig",
    name="ninfa.club",
    url="https://www.instagram.com/ninfa.club/",
    kind=SourceKind.INSTAGRAM,
    reliability_score=10,
)


# ======================================================================
# order_sources
# ======================================================================


class TestOrderSources:
    def test_social_first_then_reliability(self) -> None:
        ordered = order_sources([_AGGREGATOR, _VENUE, _INSTAGRAM])
        assert [s.id for s in ordered] == ["src-ig", "src-venue", "src-agg"]

    def test_ties_keep_store_order(self) -> None:
        a = make_source(id="a", reliability_score=50)
        b = make_source(id="b", reliability_score=50)
        assert [s.id for s in order_sources([a, b])] == ["a", "b"]
        assert [s.id for s in order_sources([b, a])] == ["b", "a"]


# ======================================================================
# State machine
# ======================================================================


class TestStateMachine:
    def test_starts_pending(self) -> None:
        pipeline = _pipeline(_mock_store([]))
        assert pipeline.status is RunStatus.PENDING
        assert pipeline.run_id is None

    def test_invalid_transition_raises(self) -> None:
        pipeline = _pipeline(_mock_store([]))
        with pytest.raises(PipelineError, match="pending -> completed"):
            pipeline._transition(RunStatus.COMPLETED)

    @pytest.mark.asyncio()
    async def test_successful_run_ends_completed(self) -> None:
        pipeline = _pipeline(_mock_store([]))
        await pipeline.run()
        assert pipeline.status is RunStatus.COMPLETED
        assert pipeline.run_id == "run-1"

    @pytest.mark.asyncio()
    async def test_pipeline_can_run_twice(self) -> None:
        pipeline = _pipeline(_mock_store([]))
        await pipeline.run()
        await pipeline.run()
        assert pipeline.status is RunStatus.COMPLETED


# ======================================================================
# Source pass
# ======================================================================


class TestSourcePass:
    @pytest.mark.asyncio()
    async def test_happy_path_creates_events(self) -> None:
        store = _mock_store([_AGGREGATOR, _VENUE])
        concert = make_candidate(title="Concerto di Primavera", detail_url="https://www.teatromassimo.it/e/1")
        techno = make_candidate()
        extractor = _mock_extractor({"Teatro Massimo": [concert], "Palermo Viva": [techno, concert]})
        reporter = _mock_reporter()

        stats = await _pipeline(store, extractor=extractor, reporter=reporter).run()

        assert stats.sources_processed == 2
        assert stats.events_found == 2
        assert stats.duplicates_in_run == 1
        assert stats.events_created == 2
        assert stats.locations_created == 2
        assert stats.organizers_created == 2
        assert stats.errors == []
        assert store.create_event.await_count == 2
        assert store.mark_source_scraped.await_count == 2

        report = reporter.send_report.await_args.args[0]
        assert report.status is ReportStatus.SUCCESS
        assert report.stats["Events Created"] == 2

        complete = store.complete_run.await_args
        assert complete.args == ("run-1", RunStatus.COMPLETED)
        assert complete.kwargs["summary"] == "Processed 2 sources, created 2 events, updated 0 events"
        assert complete.kwargs["stats"]["duplicates_in_run"] == 1
        assert complete.kwargs["error_message"] is None

    @pytest.mark.asyncio()
    async def test_sources_are_processed_social_first(self) -> None:
        store = _mock_store([_AGGREGATOR, _VENUE, _INSTAGRAM])
        extractor = _mock_extractor({})
        await _pipeline(store, extractor=extractor).run()

        names = [c.args[1] for c in extractor.extract.await_args_list]
        assert names == ["ninfa.club", "Teatro Massimo", "Palermo Viva"]

    @pytest.mark.asyncio()
    async def test_extract_receives_source_for_provenance(self) -> None:
        store = _mock_store([_VENUE])
        extractor = _mock_extractor({})
        await _pipeline(store, extractor=extractor).run()
        assert extractor.extract.await_args.kwargs["source"] is _VENUE

    @pytest.mark.asyncio()
    async def test_past_events_are_skipped(self) -> None:
        store = _mock_store([_AGGREGATOR])
        old = make_candidate(start_time=datetime(2020, 1, 1, 21, 0))
        stats = await _pipeline(store, extractor=_mock_extractor({"Palermo Viva": [old]})).run()

        assert stats.events_skipped_past == 1
        assert stats.events_found == 0
        store.create_event.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_naive_start_times_are_local_time(self) -> None:
        # 22:00 in Rome during summer time is 20:00 UTC.
        now = datetime(2099, 6, 12, 20, 30, tzinfo=timezone.utc)  # noqa: UP017
        store = _mock_store([_AGGREGATOR])
        tonight = make_candidate(start_time=datetime(2099, 6, 12, 22, 0))
        stats = await _pipeline(
            store, extractor=_mock_extractor({"Palermo Viva": [tonight]}), now=lambda: now
        ).run()
        assert stats.events_skipped_past == 1

    @pytest.mark.asyncio()
    async def test_listing_urls_are_skipped_for_untrusted_sources(self) -> None:
        store = _mock_store([_VENUE])
        listing = make_candidate(detail_url="https://www.teatromassimo.it/eventi/")
        stats = await _pipeline(store, extractor=_mock_extractor({"Teatro Massimo": [listing]})).run()

        assert stats.events_skipped_listing_url == 1
        assert stats.events_created == 0

    @pytest.mark.asyncio()
    async def test_listing_urls_are_kept_for_trusted_sources(self) -> None:
        store = _mock_store([_AGGREGATOR])
        listing = make_candidate(detail_url="https://www.palermoviva.it/eventi-a-palermo/")
        stats = await _pipeline(store, extractor=_mock_extractor({"Palermo Viva": [listing]})).run()

        assert stats.events_skipped_listing_url == 0
        assert stats.events_created == 1

    @pytest.mark.asyncio()
    async def test_cap_stops_before_next_source(self) -> None:
        store = _mock_store([_VENUE, _AGGREGATOR])
        fetcher = _mock_fetcher()
        extractor = _mock_extractor(
            {
                "Teatro Massimo": [make_candidate(title="Uno", detail_url="https://x.it/1")],
                "Palermo Viva": [make_candidate(title="Due", detail_url="https://x.it/2")],
            }
        )
        stats = await _pipeline(store, fetcher=fetcher, extractor=extractor).run(max_events=1)

        assert stats.events_found == 1
        assert fetcher.fetch.await_count == 1
        assert extractor.extract.await_count == 1

    @pytest.mark.asyncio()
    async def test_cap_truncates_within_a_source(self) -> None:
        store = _mock_store([_AGGREGATOR])
        candidates = [make_candidate(title=f"Evento {n}", detail_url=f"https://x.it/{n}") for n in "abc"]
        stats = await _pipeline(
            store, extractor=_mock_extractor({"Palermo Viva": candidates}), max_events_per_run=2
        ).run()

        assert stats.events_found == 2
        assert stats.events_created == 2

    @pytest.mark.asyncio()
    async def test_reclaims_stuck_runs_first(self) -> None:
        store = _mock_store([])
        store.reclaim_stuck_runs.return_value = 2
        await _pipeline(store, stuck_run_max_age_minutes=45).run()
        store.reclaim_stuck_runs.assert_awaited_once_with(45)

    @pytest.mark.asyncio()
    async def test_no_sources_completes_with_summary(self) -> None:
        store = _mock_store([])
        reporter = _mock_reporter()
        stats = await _pipeline(store, reporter=reporter).run()

        assert stats.sources_processed == 0
        assert store.complete_run.await_args.kwargs["summary"] == NO_SOURCES_SUMMARY
        reporter.send_report.assert_awaited_once()


# ======================================================================
# Per-source errors
# ======================================================================


class TestSourceErrors:
    @pytest.mark.asyncio()
    async def test_fetch_failure_moves_on(self) -> None:
        store = _mock_store([_VENUE, _AGGREGATOR])
        fetcher = _mock_fetcher(
            FetchError(message="All fetch strategies failed", provider_name="content_fetcher"),
            FetchedContent(url=_AGGREGATOR.url, text="page", provider="jina"),
        )
        extractor = _mock_extractor({"Palermo Viva": [make_candidate()]})
        reporter = _mock_reporter()

        stats = await _pipeline(store, fetcher=fetcher, extractor=extractor, reporter=reporter).run()

        assert stats.sources_failed == 1
        assert stats.sources_processed == 1
        assert stats.events_created == 1
        assert stats.errors == [
            "Failed to process Teatro Massimo: [content_fetcher] All fetch strategies failed"
        ]
        assert reporter.send_report.await_args.args[0].status is ReportStatus.PARTIAL
        assert store.complete_run.await_args.args[1] is RunStatus.COMPLETED
        assert "Teatro Massimo" in store.complete_run.await_args.kwargs["error_message"]

    @pytest.mark.asyncio()
    async def test_rate_limits_are_counted_separately(self) -> None:
        store = _mock_store([_AGGREGATOR])
        extractor = _mock_extractor({"Palermo Viva": RateLimitError(message="429")})
        stats = await _pipeline(store, extractor=extractor).run()

        assert stats.sources_failed == 1
        assert stats.sources_rate_limited == 1

    @pytest.mark.asyncio()
    async def test_llm_and_extraction_errors_are_per_source(self) -> None:
        store = _mock_store([_VENUE, _AGGREGATOR, _INSTAGRAM])
        extractor = _mock_extractor(
            {
                "Teatro Massimo": LLMError(message="502"),
                "Palermo Viva": ExtractionError(message="bad json"),
                "ninfa.club": [make_candidate()],
            }
        )
        stats = await _pipeline(store, extractor=extractor).run()

        assert stats.sources_failed == 2
        assert stats.sources_rate_limited == 0
        assert stats.events_created == 1

    @pytest.mark.asyncio()
    async def test_many_failures_report_failed(self) -> None:
        store = _mock_store([_VENUE, _AGGREGATOR, _INSTAGRAM])
        fetcher = _mock_fetcher(*(FetchError(message="down") for _ in range(3)))
        reporter = _mock_reporter()
        await _pipeline(store, fetcher=fetcher, reporter=reporter, partial_error_threshold=3).run()

        assert reporter.send_report.await_args.args[0].status is ReportStatus.FAILED
        assert store.complete_run.await_args.args[1] is RunStatus.COMPLETED


# ======================================================================
# Persisted pass
# ======================================================================


class TestPersistedPass:
    @pytest.mark.asyncio()
    async def test_richer_exact_match_updates(self) -> None:
        store = _mock_store([_AGGREGATOR])
        store.find_event_by_normalized_title_and_date.return_value = _stored(confidence_score=10)
        richer = make_candidate(image_url="https://example.it/img/cover.jpg", description="d" * 60)
        stats = await _pipeline(store, extractor=_mock_extractor({"Palermo Viva": [richer]})).run()

        assert stats.events_updated == 1
        assert stats.events_created == 0
        event_id, update = store.update_event.await_args.args
        assert event_id == "evt-1"
        assert update.confidence_score == 40

    @pytest.mark.asyncio()
    async def test_poorer_exact_match_is_discarded(self) -> None:
        store = _mock_store([_AGGREGATOR])
        store.find_event_by_normalized_title_and_date.return_value = _stored(confidence_score=90)
        stats = await _pipeline(store, extractor=_mock_extractor({"Palermo Viva": [make_candidate()]})).run()

        assert stats.duplicates_exact == 1
        store.update_event.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_fuzzy_match_is_discarded(self) -> None:
        store = _mock_store([_AGGREGATOR])
        store.find_events_on_date.return_value = [_stored(title="Notte Techno", normalized_title="notte techno")]
        stats = await _pipeline(store, extractor=_mock_extractor({"Palermo Viva": [make_candidate()]})).run()

        assert stats.duplicates_fuzzy == 1
        store.create_event.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_missing_references_fall_back_to_source_name(self) -> None:
        store = _mock_store([_VENUE])
        await _pipeline(store, extractor=_mock_extractor({"Teatro Massimo": [make_candidate()]})).run()

        store.resolve_or_create_location.assert_awaited_once_with("Teatro Massimo", None)
        store.resolve_or_create_organizer.assert_awaited_once_with("Teatro Massimo")
        store.resolve_or_create_category.assert_awaited_once_with("Nightlife")

    @pytest.mark.asyncio()
    async def test_extracted_references_win(self) -> None:
        store = _mock_store([_AGGREGATOR])
        store.resolve_or_create_location.return_value = Resolved(id="loc-9", created=False)
        candidate = make_candidate(
            location_name="Cantieri Culturali",
            location_address="Via Paolo Gili 4, Palermo",
            organizer_name="Mondo Sonoro",
        )
        stats = await _pipeline(store, extractor=_mock_extractor({"Palermo Viva": [candidate]})).run()

        store.resolve_or_create_location.assert_awaited_once_with(
            "Cantieri Culturali", "Via Paolo Gili 4, Palermo"
        )
        store.resolve_or_create_organizer.assert_awaited_once_with("Mondo Sonoro")
        assert stats.locations_created == 0
        kwargs = store.create_event.await_args.kwargs
        assert kwargs["location_id"] == "loc-9"
        assert kwargs["confidence_score"] == 35
        assert kwargs["is_published"] is True

    @pytest.mark.asyncio()
    async def test_blank_reference_names_count_as_failed(self) -> None:
        nameless = make_source(id="src-x", name="   ")
        store = _mock_store([nameless])
        stats = await _pipeline(store, extractor=_mock_extractor({"   ": [make_candidate()]})).run()

        assert stats.events_failed == 1
        store.create_event.assert_not_awaited()


# ======================================================================
# Fatal errors and cleanup
# ======================================================================


class TestFatalErrors:
    @pytest.mark.asyncio()
    async def test_store_failure_aborts_run(self) -> None:
        store = _mock_store([_AGGREGATOR])
        store.create_event.side_effect = PersistenceError(message="database is locked", provider_name="sqlite")
        reporter = _mock_reporter()
        session = MagicMock(spec=BrowserSession)
        session.close = AsyncMock()
        pipeline = _pipeline(
            store,
            extractor=_mock_extractor({"Palermo Viva": [make_candidate()]}),
            reporter=reporter,
            browser_session=session,
        )

        with pytest.raises(PipelineError, match="database is locked") as exc_info:
            await pipeline.run()

        assert isinstance(exc_info.value.__cause__, PersistenceError)
        assert pipeline.status is RunStatus.FAILED
        complete = store.complete_run.await_args
        assert complete.args == ("run-1", RunStatus.FAILED)
        assert "database is locked" in complete.kwargs["error_message"]
        reporter.alert_error.assert_awaited_once()
        assert reporter.alert_error.await_args.args[1] == "Extraction Agent"
        reporter.send_report.assert_not_awaited()
        session.close.assert_awaited_once()

    @pytest.mark.asyncio()
    async def test_failed_completion_write_records_failure(self) -> None:
        store = _mock_store([])
        store.complete_run.side_effect = [PersistenceError(message="database is locked"), None]
        pipeline = _pipeline(store)

        with pytest.raises(PipelineError, match="database is locked"):
            await pipeline.run()

        assert pipeline.status is RunStatus.FAILED
        statuses = [call.args[1] for call in store.complete_run.await_args_list]
        assert statuses == [RunStatus.COMPLETED, RunStatus.FAILED]

    @pytest.mark.asyncio()
    async def test_failure_before_run_record_still_alerts(self) -> None:
        store = _mock_store([])
        store.start_run.side_effect = PersistenceError(message="disk full")
        reporter = _mock_reporter()
        pipeline = _pipeline(store, reporter=reporter)

        with pytest.raises(PipelineError):
            await pipeline.run()

        assert pipeline.status is RunStatus.PENDING
        store.complete_run.assert_not_awaited()
        reporter.alert_error.assert_awaited_once()

    @pytest.mark.asyncio()
    async def test_browser_is_closed_after_success(self) -> None:
        session = MagicMock(spec=BrowserSession)
        session.close = AsyncMock()
        await _pipeline(_mock_store([]), browser_session=session).run()
        session.close.assert_awaited_once()

    @pytest.mark.asyncio()
    async def test_report_delivery_failure_does_not_fail_run(self) -> None:
        reporter = _mock_reporter()
        reporter.send_report.side_effect = ReportingError(message="HTTP 500")
        pipeline = _pipeline(_mock_store([]), reporter=reporter)
        await pipeline.run()
        assert pipeline.status is RunStatus.COMPLETED

    @pytest.mark.asyncio()
    async def test_run_log_failures_are_ignored(self) -> None:
        store = _mock_store([_AGGREGATOR])
        store.append_run_log.side_effect = PersistenceError(message="run_logs locked")
        stats = await _pipeline(store, extractor=_mock_extractor({"Palermo Viva": [make_candidate()]})).run()
        assert stats.events_created == 1


# ======================================================================
# Source discovery
# ======================================================================


class TestDiscovery:
    @pytest.mark.asyncio()
    async def test_links_are_queued(self) -> None:
        html = (
            '<p>Seguici <a href="https://www.instagram.com/ninfa.club/">IG</a></p>'
            '<p>Biglietti <a href="https://dice.fm/event/abc">Dice</a></p>'
        )
        store = _mock_store([_AGGREGATOR])
        store.queue_potential_sources.return_value = QueueResult(queued=1)
        fetcher = _mock_fetcher(FetchedContent(url=_AGGREGATOR.url, text="page", provider="http", html=html))

        stats = await _pipeline(store, fetcher=fetcher).run()

        calls = [c.args for c in store.queue_potential_sources.await_args_list]
        assert calls == [
            (["ninfa.club"], "instagram", "src-agg", "website_crawl"),
            (["https://dice.fm/event/abc"], "website", "src-agg", "website_crawl"),
        ]
        assert stats.potential_sources_queued == 2
        store.update_hashtag_stats.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_social_sources_queue_mentions_and_hashtags(self) -> None:
        text = "Sabato con @dj_uno e @dj_due #palermonight #techno"
        store = _mock_store([_INSTAGRAM])
        fetcher = _mock_fetcher(FetchedContent(url=_INSTAGRAM.url, text=text, provider="headless"))

        await _pipeline(store, fetcher=fetcher).run()

        store.queue_potential_sources.assert_awaited_once_with(
            ["dj_uno", "dj_due"], "instagram", "src-ig", "mention"
        )
        store.update_hashtag_stats.assert_awaited_once_with(["palermonight", "techno"], "src-ig")

    @pytest.mark.asyncio()
    async def test_discovery_failure_is_not_fatal(self) -> None:
        store = _mock_store([_INSTAGRAM])
        store.queue_potential_sources.side_effect = PersistenceError(message="locked")
        fetcher = _mock_fetcher(FetchedContent(url=_INSTAGRAM.url, text="con @dj_uno", provider="jina"))
        extractor = _mock_extractor({"ninfa.club": [make_candidate()]})

        stats = await _pipeline(store, fetcher=fetcher, extractor=extractor).run()

        assert stats.sources_failed == 0
        assert stats.events_created == 1


# ======================================================================
# plan
# ======================================================================


class TestPlan:
    @pytest.mark.asyncio()
    async def test_plan_lists_ordered_sources_with_chains(self) -> None:
        store = _mock_store([_AGGREGATOR, _INSTAGRAM])
        plan = await _pipeline(store).plan()
        assert [(source.id, chain) for source, chain in plan] == [
            ("src-ig", ["jina", "http"]),
            ("src-agg", ["jina", "http"]),
        ]
        store.start_run.assert_not_awaited()
