"""Unit tests for the turn-start hook: buffering, injection and drift re-injection."""

from unittest.mock import AsyncMock

import pytest
from factories import NOW, make_fact

from graphiti_memory.core.config import Settings
from graphiti_memory.core.enums import SourceDescription
from graphiti_memory.core.exceptions import GraphToolError
from graphiti_memory.core.schemas import HostSession, MessagePart
from graphiti_memory.hooks.chat import ChatHandler
from graphiti_memory.retrieval.drift import DriftDetector
from graphiti_memory.retrieval.pipeline import MemoryInjectionPipeline, MemoryRetriever

PROJECT = "proj__main"
USER = "proj__user-dev"


def _parts(text):
    return [MessagePart(type="text", text=text)]


@pytest.fixture
def chat(session_manager, graph_client):
    pipeline = MemoryInjectionPipeline(MemoryRetriever(graph_client), clock=lambda: NOW)
    drift = DriftDetector(graph_client, threshold=0.5, max_facts=20)
    return ChatHandler(session_manager, pipeline, drift, graph_client, Settings())


def _searched_groups(graph_client):
    return [c.args[1] for c in graph_client.search_facts.await_args_list]


class TestFirstTurn:
    @pytest.mark.asyncio
    async def test_injects_both_scopes(self, chat, session_manager, graph_client):
        graph_client.search_facts = AsyncMock(return_value=[make_fact("f1", "Deploys run on Fly.io")])

        pending = await chat("s1", _parts("How do we deploy?"))

        assert pending is not None and pending.turn == 1
        assert "Deploys run on Fly.io" in pending.context
        assert sorted(_searched_groups(graph_client)) == sorted([[PROJECT], [USER]])
        state = session_manager.get_state("s1")
        assert state.injected_memories
        assert state.last_injection_fact_uuids == {"f1"}
        assert state.pending_messages == ["User: How do we deploy?"]

    @pytest.mark.asyncio
    async def test_no_memories_found(self, chat, session_manager):
        assert await chat("s1", _parts("Hello")) is None
        assert session_manager.get_state("s1").pending_messages == ["User: Hello"]

    @pytest.mark.asyncio
    async def test_subagent_ignored(self, chat, session_manager, host_client, graph_client):
        host_client.get_session = AsyncMock(return_value=HostSession(id="child", parentID="s1"))

        assert await chat("child", _parts("Subtask")) is None
        assert session_manager.get_state("child") is None
        graph_client.search_facts.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unresolved_session_ignored(self, chat, host_client, graph_client):
        host_client.get_session = AsyncMock(side_effect=RuntimeError("host down"))

        assert await chat("s1", _parts("Hi")) is None
        graph_client.search_facts.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_text_counts_turn_only(self, chat, session_manager, graph_client):
        await chat("s1", [MessagePart(type="file")])

        state = session_manager.get_state("s1")
        assert state.message_count == 1
        assert state.pending_messages == []
        graph_client.search_facts.assert_not_awaited()


class TestLaterTurns:
    @pytest.mark.asyncio
    async def test_no_drift_runs_only_the_drift_search(self, chat, graph_client):
        graph_client.search_facts = AsyncMock(return_value=[make_fact("f1"), make_fact("f2")])
        await chat("s1", _parts("How do we deploy?"))
        graph_client.search_facts.reset_mock()

        assert await chat("s1", _parts("And the deploy rollback?")) is None

        graph_client.search_facts.assert_awaited_once_with("And the deploy rollback?", [PROJECT], 20)

    @pytest.mark.asyncio
    async def test_drift_reinjects_project_scope_only(self, chat, session_manager, graph_client):
        graph_client.search_facts = AsyncMock(return_value=[make_fact("f1"), make_fact("f2")])
        await chat("s1", _parts("How do we deploy?"))

        graph_client.search_facts = AsyncMock(
            return_value=[make_fact("f3", "Billing uses Stripe"), make_fact("f4")]
        )
        pending = await chat("s1", _parts("How is billing wired?"))

        assert pending is not None and pending.turn == 2
        assert "Billing uses Stripe" in pending.context
        assert "Persistent Memory (user)" not in pending.context
        assert USER not in [g[0] for g in _searched_groups(graph_client)]
        state = session_manager.get_state("s1")
        assert state.last_injection_fact_uuids == {"f3", "f4"}

    @pytest.mark.asyncio
    async def test_drift_check_failure_skips_turn(self, chat, session_manager, graph_client):
        graph_client.search_facts = AsyncMock(return_value=[make_fact("f1")])
        await chat("s1", _parts("How do we deploy?"))

        graph_client.search_facts = AsyncMock(side_effect=GraphToolError("search_memory_facts"))

        assert await chat("s1", _parts("Something else")) is None
        assert session_manager.get_state("s1").message_count == 2

    @pytest.mark.asyncio
    async def test_unconsumed_injection_not_returned_later(self, chat, session_manager, graph_client):
        graph_client.search_facts = AsyncMock(return_value=[make_fact("f1")])
        await chat("s1", _parts("How do we deploy?"))

        assert await chat("s1", _parts("How do we deploy again?")) is None
        assert session_manager.get_state("s1").take_pending_injection() is None


class TestExplicitMemory:
    @pytest.mark.asyncio
    async def test_remember_request_saved(self, chat, graph_client):
        await chat("s1", _parts("Remember that we deploy with Fly.io"))

        graph_client.add_episode.assert_awaited_once()
        kwargs = graph_client.add_episode.await_args.kwargs
        assert kwargs["body"] == "we deploy with Fly.io"
        assert kwargs["group_id"] == PROJECT
        assert kwargs["source_description"] == SourceDescription.EXPLICIT_MEMORY.value

    @pytest.mark.asyncio
    async def test_save_failure_does_not_block_turn(self, chat, session_manager, graph_client):
        graph_client.add_episode = AsyncMock(side_effect=GraphToolError("add_memory"))
        graph_client.search_facts = AsyncMock(return_value=[make_fact("f1")])

        pending = await chat("s1", _parts("Keep in mind the API is versioned"))

        assert pending is not None
        assert session_manager.get_state("s1").pending_messages == ["User: Keep in mind the API is versioned"]

    @pytest.mark.asyncio
    async def test_ordinary_message_not_saved(self, chat, graph_client):
        await chat("s1", _parts("Refactor the router"))
        graph_client.add_episode.assert_not_awaited()
