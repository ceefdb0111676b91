"""Unit tests for per-domain request spacing."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from src.utils.concurrency import DomainRateLimiter, get_domain


class TestGetDomain:
    def test_strips_www_and_lowercases(self) -> None:
        assert get_domain("https://WWW.Dice.fm/event/1") == "dice.fm"

    def test_keeps_subdomain(self) -> None:
        assert get_domain("https://r.jina.ai/https://x.it") == "r.jina.ai"

    def test_unparseable_falls_back_to_default(self) -> None:
        assert get_domain("not a url") == "default"


class TestDomainRateLimiter:
    def test_delay_for_configured_and_default(self) -> None:
        limiter = DomainRateLimiter({"default": 3.0, "ra.co": 2.0})
        assert limiter.delay_for("ra.co") == 2.0
        assert limiter.delay_for("example.it") == 3.0

    def test_default_delay_argument_used_without_default_key(self) -> None:
        limiter = DomainRateLimiter({"ra.co": 2.0}, default_delay=1.0)
        assert limiter.delay_for("example.it") == 1.0

    @pytest.mark.asyncio()
    async def test_first_request_does_not_wait(self) -> None:
        limiter = DomainRateLimiter({"default": 5.0})
        with patch("src.utils.concurrency.asyncio.sleep", new_callable=AsyncMock) as sleep:
            waited = await limiter.acquire("example.it")
        assert waited == 0.0
        sleep.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_second_request_waits_for_remaining_gap(self) -> None:
        limiter = DomainRateLimiter({"default": 5.0})
        with patch("src.utils.concurrency.asyncio.sleep", new_callable=AsyncMock) as sleep:
            await limiter.acquire("example.it")
            waited = await limiter.acquire("example.it")
        assert 0.0 < waited <= 5.0
        assert waited == pytest.approx(5.0, abs=0.5)
        sleep.assert_awaited_once()
        assert sleep.await_args.args[0] == waited

    @pytest.mark.asyncio()
    async def test_domains_are_independent(self) -> None:
        limiter = DomainRateLimiter({"default": 5.0})
        with patch("src.utils.concurrency.asyncio.sleep", new_callable=AsyncMock) as sleep:
            await limiter.acquire("a.it")
            await limiter.acquire("b.it")
        sleep.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_reset_forgets_history(self) -> None:
        limiter = DomainRateLimiter({"default": 5.0})
        with patch("src.utils.concurrency.asyncio.sleep", new_callable=AsyncMock) as sleep:
            await limiter.acquire("a.it")
            limiter.reset()
            await limiter.acquire("a.it")
        sleep.assert_not_awaited()
