"""Unit tests for factory functions in src/main.py.

Covers LLM provider construction, fetcher chain assembly, full pipeline
assembly from a literal config dict, and run_extraction_pipeline, all
with mocked external dependencies so no network access or API keys are
required.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from src.config.settings import Settings
from src.models.run import ExtractionStats
from src.utils.errors import ConfigurationError
from tests.conftest import make_source


# ======================================================================
# Shared helpers
# ======================================================================


def _settings(**overrides: Any) -> Settings:
    """Build a Settings instance isolated from the developer's .env."""
    defaults: dict[str, Any] = {
        "openrouter_api_key": "",
        "headless_enabled": False,
        "app_env": "test",
    }
    defaults.update(overrides)
    return Settings(_env_file=None, **defaults)


# ======================================================================
# build_llm_provider
# ======================================================================


class TestBuildLLMProvider:
    def test_missing_key_raises(self) -> None:
        from src.main import build_llm_provider

        with pytest.raises(ConfigurationError, match="OPENROUTER_API_KEY"):
            build_llm_provider(_settings())

    def test_key_builds_openai_compatible_provider(self) -> None:
        from src.main import build_llm_provider
        from src.providers.llm.openai_provider import OpenAILLMProvider

        with patch("src.providers.llm.openai_provider.openai.AsyncOpenAI"):
            provider = build_llm_provider(_settings(openrouter_api_key="sk-or-test"))
        assert isinstance(provider, OpenAILLMProvider)


# ======================================================================
# build_content_fetcher
# ======================================================================


class TestBuildContentFetcher:
    @pytest.mark.asyncio()
    async def test_without_browser_session(self, mock_config: dict[str, Any]) -> None:
        from src.main import build_content_fetcher
        from src.models.source import SourceKind

        async with httpx.AsyncClient() as client:
            fetcher = build_content_fetcher(mock_config, client)

        instagram = make_source(url="https://www.instagram.com/ninfa.club/", kind=SourceKind.INSTAGRAM)
        assert fetcher.describe_strategy(instagram) == ["jina", "http"]
        assert fetcher.describe_strategy(make_source()) == ["jina", "http"]

    @pytest.mark.asyncio()
    async def test_with_browser_session(self, mock_config: dict[str, Any]) -> None:
        from src.main import build_content_fetcher
        from src.providers.content.headless_provider import BrowserSession

        async with httpx.AsyncClient() as client:
            fetcher = build_content_fetcher(mock_config, client, BrowserSession())

        dice = make_source(url="https://dice.fm/venue/ninfa-palermo")
        assert fetcher.describe_strategy(dice) == ["headless", "jina", "http"]
        assert fetcher.describe_strategy(make_source()) == ["jina", "http"]

    @pytest.mark.asyncio()
    async def test_ra_urls_use_graphql(self, mock_config: dict[str, Any]) -> None:
        from src.main import build_content_fetcher

        async with httpx.AsyncClient() as client:
            fetcher = build_content_fetcher(mock_config, client)

        ra = make_source(url="https://ra.co/events/it/sicily")
        assert fetcher.describe_strategy(ra) == ["ra_graphql"]


# ======================================================================
# build_pipeline
# ======================================================================


class TestBuildPipeline:
    @pytest.mark.asyncio()
    async def test_assembles_from_config(self, mock_config: dict[str, Any]) -> None:
        from src.main import build_pipeline
        from src.models.run import RunStatus
        from src.pipeline.orchestrator import ExtractionPipeline

        with patch("src.providers.llm.openai_provider.openai.AsyncOpenAI"):
            async with httpx.AsyncClient() as client:
                pipeline = build_pipeline(
                    mock_config, _settings(openrouter_api_key="sk-or-test"), http_client=client
                )

        assert isinstance(pipeline, ExtractionPipeline)
        assert pipeline.status is RunStatus.PENDING

    def test_missing_llm_key_fails_before_building(self, mock_config: dict[str, Any]) -> None:
        from src.main import build_pipeline

        with pytest.raises(ConfigurationError):
            build_pipeline(mock_config, _settings(), http_client=MagicMock(spec=httpx.AsyncClient))

    def test_http_client_is_supplied_by_caller(self) -> None:
        import inspect

        from src.main import build_pipeline

        param = inspect.signature(build_pipeline).parameters["http_client"]
        assert param.default is inspect.Parameter.empty

    def test_build_store_uses_configured_path(self, mock_config: dict[str, Any], tmp_path: Path) -> None:
        from src.main import build_store

        store = build_store(mock_config)
        assert store._db_path == tmp_path / "events.db"


# ======================================================================
# run_extraction_pipeline
# ======================================================================


class TestRunExtractionPipeline:
    @pytest.mark.asyncio()
    async def test_runs_with_an_initialized_store(self, mock_config: dict[str, Any]) -> None:
        from src import main as main_module

        stats = ExtractionStats(sources_processed=1, events_created=2)
        pipeline = MagicMock()
        pipeline.run = AsyncMock(return_value=stats)
        store = MagicMock()
        store.initialize = AsyncMock()

        with (
            patch.object(
                main_module,
                "setup",
                return_value=(_settings(openrouter_api_key="sk-or-test"), mock_config),
            ),
            patch.object(main_module, "build_store", return_value=store),
            patch.object(main_module, "build_pipeline", return_value=pipeline) as mock_build,
        ):
            result = await main_module.run_extraction_pipeline("unused.yaml", max_events=5)

        assert result is stats
        store.initialize.assert_awaited_once()
        pipeline.run.assert_awaited_once_with(max_events=5)
        assert mock_build.call_args.kwargs["store"] is store
