"""Shared pytest fixtures for the eventScout test suite."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
import structlog

from src.interfaces.content_provider import FetchedContent, FetchOptions, IContentProvider
from src.interfaces.llm_provider import ILLMProvider, LLMCompletion
from src.models.event import CandidateEvent, EventCategory
from src.models.source import EventSource, SourceKind
from src.providers.store.sqlite_event_store import SQLiteEventStore
from src.utils.errors import FetchError

# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_candidate(**overrides: Any) -> CandidateEvent:
    """Build a valid future CandidateEvent; keyword arguments override fields."""
    data: dict[str, Any] = {
        "title": "Notte Techno ai Cantieri",
        "start_time": datetime(2099, 6, 12, 22, 0),
        "detail_url": "https://example.it/eventi/notte-techno-cantieri",
        "category": EventCategory.NIGHTLIFE,
    }
    data.update(overrides)
    return CandidateEvent(**data)


def make_source(**overrides: Any) -> EventSource:
    """Build an EventSource; keyword arguments override fields."""
    data: dict[str, Any] = {
        "id": "src-1",
        "name": "Palermo Viva",
        "url": "https://www.palermoviva.it/eventi-a-palermo/",
        "kind": SourceKind.AGGREGATOR,
        "reliability_score": 50,
    }
    data.update(overrides)
    return EventSource(**data)


def make_mock_llm(*texts: str, truncated: bool = False) -> ILLMProvider:
    """A mock LLM returning *texts* in order from complete()."""
    mock = MagicMock(spec=ILLMProvider)
    mock.complete = AsyncMock(
        side_effect=[LLMCompletion(text=text, truncated=truncated, model="mock") for text in texts]
    )
    mock.get_provider_name.return_value = "mock-llm"
    return mock


class StubContentProvider(IContentProvider):
    """Content provider returning canned content, or raising canned errors.

    ``responses`` is consumed in order; an exception instance is raised,
    anything else is returned as the page text.  The last entry repeats.
    """

    def __init__(self, name: str, *responses: Any, html: str | None = None, key: str | None = None) -> None:
        self._name = name
        self._responses = list(responses)
        self._html = html
        self._key = key
        self.calls: list[str] = []

    async def fetch(self, url: str, options: FetchOptions | None = None) -> FetchedContent:
        self.calls.append(url)
        index = min(len(self.calls), len(self._responses)) - 1
        response = self._responses[index] if self._responses else FetchError(message="no response")
        if isinstance(response, Exception):
            raise response
        return FetchedContent(url=url, text=response, html=self._html, provider=self._name)

    def get_provider_name(self) -> str:
        return self._name

    def rate_limit_key(self, url: str) -> str:
        return self._key or super().rate_limit_key(url)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _uncached_loggers() -> None:
    """Stop structlog pinning loggers to one test's captured stdout."""
    structlog.configure(cache_logger_on_first_use=False)


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def mock_config(tmp_path: Path) -> dict[str, Any]:
    """Return a minimal resolved configuration for testing."""
    return {
        "app": {"name": "eventScout", "agent_name": "Extraction Agent"},
        "llm": {"max_tokens": 4096, "temperature": 0.2},
        "extraction": {
            "max_content_chars": 50_000,
            "max_attempts": 2,
            "retry_delay": 0.0,
            "rate_limit_attempts": 2,
            "rate_limit_base_delay": 0.0,
        },
        "fetch": {
            "timeout": 5.0,
            "min_content_chars": 10,
            "max_attempts": 1,
            "retry_delay": 0.0,
            "jina_reader_url": "https://r.jina.ai",
            "jina_api_key": "",
            "headless_enabled": False,
            "domain_delays": {"default": 0.0},
            "scripted_fetch_domains": ["dice.fm"],
            "ra_area_id": 302,
        },
        "dedup": {"trusted_listing_hosts": ["palermoviva.it"]},
        "store": {"db_path": str(tmp_path / "events.db")},
        "pipeline": {
            "target_region": "Palermo",
            "max_events_per_run": 100,
            "inter_source_delay": 0.0,
            "stuck_run_max_age_minutes": 30,
            "partial_error_threshold": 3,
            "timezone": "Europe/Rome",
        },
        "report": {"slack_webhook_url": "", "max_errors_displayed": 5},
    }


@pytest_asyncio.fixture
async def sqlite_store(tmp_path: Path) -> SQLiteEventStore:
    """An initialized SQLite store in a temporary directory."""
    store = SQLiteEventStore(db_path=tmp_path / "data" / "events.db")
    await store.initialize()
    return store
