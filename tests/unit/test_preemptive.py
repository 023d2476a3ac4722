"""Unit tests for preemptive compaction and context limit resolution."""

from unittest.mock import AsyncMock

import pytest

from graphiti_memory.client.host import ContextLimitResolver
from graphiti_memory.compaction.preemptive import RESUME_PROMPT, PreemptiveCompactor
from graphiti_memory.core.config import CompactionSettings
from graphiti_memory.core.schemas import ModelInfo, ProviderInfo, TokenUsage


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def providers(host_client):
    host_client.list_providers = AsyncMock(
        return_value=[ProviderInfo(id="anthropic", models=[ModelInfo(id="sonnet", context_limit=100_000)])]
    )
    return host_client


@pytest.fixture
def clock():
    return FakeClock()


def _compactor(host, clock, **overrides):
    settings = CompactionSettings(resume_delay_seconds=0, **overrides)
    return PreemptiveCompactor(host, ContextLimitResolver(host), settings, clock=clock)


class TestContextLimitResolver:
    @pytest.mark.asyncio
    async def test_known_model(self, providers):
        assert await ContextLimitResolver(providers).resolve("anthropic", "sonnet") == 100_000

    @pytest.mark.asyncio
    async def test_unknown_model_falls_back_and_caches(self, providers):
        limits = ContextLimitResolver(providers, default_limit=123)

        assert await limits.resolve("anthropic", "unknown") == 123
        assert await limits.resolve("anthropic", "unknown") == 123
        providers.list_providers.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_lookup_failure_is_retried(self, host_client):
        host_client.list_providers = AsyncMock(side_effect=RuntimeError("host down"))
        limits = ContextLimitResolver(host_client)

        assert await limits.resolve("anthropic", "sonnet") == 200_000
        await limits.resolve("anthropic", "sonnet")
        assert host_client.list_providers.await_count == 2


class TestPreemptiveCompactor:
    @pytest.mark.asyncio
    async def test_triggers_above_threshold(self, providers, clock):
        compactor = _compactor(providers, clock)

        triggered = await compactor.check_and_trigger("s1", TokenUsage(input=70_000, output=15_000), "anthropic", "sonnet")

        assert triggered
        providers.summarize.assert_awaited_once_with("s1", "anthropic", "sonnet")
        providers.prompt.assert_awaited_once_with("s1", RESUME_PROMPT)
        providers.show_toast.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_below_threshold(self, providers, clock):
        compactor = _compactor(providers, clock)
        assert not await compactor.check_and_trigger("s1", TokenUsage(input=70_000), "anthropic", "sonnet")
        providers.summarize.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_below_min_tokens_skips_lookup(self, providers, clock):
        compactor = _compactor(providers, clock, min_tokens=200_000)
        assert not await compactor.check_and_trigger("s1", TokenUsage(input=95_000), "anthropic", "sonnet")
        providers.list_providers.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cooldown(self, providers, clock):
        compactor = _compactor(providers, clock)
        usage = TokenUsage(input=90_000)

        assert await compactor.check_and_trigger("s1", usage, "anthropic", "sonnet")
        clock.now += 30
        assert not await compactor.check_and_trigger("s1", usage, "anthropic", "sonnet")
        clock.now += 31
        assert await compactor.check_and_trigger("s1", usage, "anthropic", "sonnet")

    @pytest.mark.asyncio
    async def test_disabled(self, providers, clock):
        compactor = _compactor(providers, clock, enabled=False)
        assert not await compactor.check_and_trigger("s1", TokenUsage(input=99_000), "anthropic", "sonnet")

    @pytest.mark.asyncio
    async def test_no_auto_resume(self, providers, clock):
        compactor = _compactor(providers, clock, auto_resume=False)
        assert await compactor.check_and_trigger("s1", TokenUsage(input=99_000), "anthropic", "sonnet")
        providers.prompt.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_summarize_failure_returns_false(self, providers, clock):
        providers.summarize = AsyncMock(side_effect=RuntimeError("busy"))
        compactor = _compactor(providers, clock)

        assert not await compactor.check_and_trigger("s1", TokenUsage(input=99_000), "anthropic", "sonnet")

        providers.summarize = AsyncMock(return_value=None)
        assert await compactor.check_and_trigger("s1", TokenUsage(input=99_000), "anthropic", "sonnet")
