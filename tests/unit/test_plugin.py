"""Unit tests for plugin assembly and an end-to-end turn through the hooks."""

from unittest.mock import AsyncMock, patch

import pytest
from factories import make_fact

from graphiti_memory.core.config import Settings
from graphiti_memory.core.schemas import ChatMessage, MessageInfo, MessagePart
from graphiti_memory.plugin import MemoryPlugin


@pytest.fixture
def plugin(host_client, graph_client):
    return MemoryPlugin.build(host_client, graph_client, "/work/shop-api", Settings(group_id_prefix="oc"))


class TestBuild:
    def test_group_ids_from_directory(self, plugin):
        assert plugin.sessions.default_group_id == "oc-shop-api__main"
        assert plugin.sessions.default_user_group_id.startswith("oc-shop-api__user-")

    def test_hooks_share_one_session_store(self, plugin):
        hooks = plugin.hooks()
        assert set(hooks) == {
            "event",
            "chat.message",
            "experimental.session.compacting",
            "experimental.chat.messages.transform",
            "experimental.chat.system.transform",
        }
        assert hooks["chat.message"].sessions is hooks["event"].sessions is plugin.sessions

    @pytest.mark.asyncio
    async def test_create_connects(self, host_client):
        with patch("graphiti_memory.plugin.GraphitiClient") as client_cls:
            client_cls.return_value.connect = AsyncMock(return_value=False)
            plugin = await MemoryPlugin.create(host_client, "/work/api", Settings())

        client_cls.assert_called_once_with("http://localhost:8000/mcp")
        assert plugin.graph is client_cls.return_value


class TestTurn:
    @pytest.mark.asyncio
    async def test_memory_reaches_prompt(self, plugin, graph_client):
        graph_client.search_facts = AsyncMock(return_value=[make_fact("f1", "Payments go through Stripe")])
        await plugin.event({"type": "session.created", "properties": {"info": {"id": "s1"}}})

        await plugin.chat("s1", [MessagePart(type="text", text="How do refunds work?")])
        messages = [
            ChatMessage(
                info=MessageInfo(id="m1", sessionID="s1", role="user"),
                parts=[MessagePart(type="text", text="How do refunds work?")],
            )
        ]
        await plugin.messages_transform(messages)

        text = messages[0].parts[0].text
        assert text.startswith('<memory data-uuids="f1">')
        assert "Payments go through Stripe" in text
        assert text.endswith("How do refunds work?")
