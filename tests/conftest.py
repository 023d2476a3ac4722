"""Shared pytest fixtures: fake graph and host clients."""

from unittest.mock import AsyncMock

import pytest

from graphiti_memory.core.schemas import HostSession


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    """Clear the settings LRU cache after each test so env overrides do not leak."""
    yield
    from graphiti_memory.core.config import get_settings

    get_settings.cache_clear()


@pytest.fixture
def graph_client():
    """Graph memory client double returning empty results by default."""
    client = AsyncMock()
    client.search_facts = AsyncMock(return_value=[])
    client.search_entities = AsyncMock(return_value=[])
    client.get_episodes = AsyncMock(return_value=[])
    client.add_episode = AsyncMock(return_value=None)
    return client


@pytest.fixture
def host_client():
    """Host double: every session is a main session, no messages, no providers."""
    host = AsyncMock()
    host.get_session = AsyncMock(side_effect=lambda session_id: HostSession(id=session_id))
    host.list_messages = AsyncMock(return_value=[])
    host.list_providers = AsyncMock(return_value=[])
    host.summarize = AsyncMock(return_value=None)
    host.prompt = AsyncMock(return_value=None)
    host.show_toast = AsyncMock(return_value=None)
    return host


@pytest.fixture
def session_manager(host_client, graph_client):
    from graphiti_memory.session.manager import SessionManager

    return SessionManager("proj__main", "proj__user-dev", host_client, graph_client)
