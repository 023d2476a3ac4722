"""MCP adapter for the Graphiti knowledge-graph memory service.

Response bodies arrive either as bare lists or wrapped (``{"facts": [...]}``);
this module normalises both into typed lists so nothing downstream inspects
response shapes. Transport and tool failures raise ``GraphClientError``
subclasses; callers decide how to degrade.
"""

from __future__ import annotations

import json
from contextlib import AsyncExitStack
from typing import Any, Protocol, TypeVar

from fastmcp import Client
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..core.enums import EpisodeSource
from ..core.exceptions import GraphConnectionError, GraphToolError
from ..core.schemas import Entity, Episode, Fact
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class GraphMemoryClient(Protocol):
    """Operations the memory engine needs from the graph service."""

    async def search_facts(self, query: str, group_ids: list[str], max_facts: int) -> list[Fact]: ...

    async def search_entities(
        self, query: str, group_ids: list[str], max_entities: int
    ) -> list[Entity]: ...

    async def get_episodes(self, group_id: str, last_n: int) -> list[Episode]: ...

    async def add_episode(
        self,
        name: str,
        body: str,
        group_id: str,
        source: EpisodeSource = EpisodeSource.TEXT,
        source_description: str = "",
    ) -> None: ...


def _decode_result(result: Any) -> Any:
    """Pull the JSON payload out of an MCP tool result."""
    structured = getattr(result, "structured_content", None)
    if isinstance(structured, dict):
        # FastMCP wraps non-object returns as {"result": ...}
        return structured.get("result", structured) if len(structured) == 1 else structured
    content = getattr(result, "content", result)
    if not isinstance(content, list):
        return content
    for item in content:
        text = getattr(item, "text", None)
        if getattr(item, "type", None) == "text" and isinstance(text, str):
            try:
                return json.loads(text)
            except json.JSONDecodeError:
                return text
    return None


def _unwrap_list(payload: Any, key: str) -> list[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get(key), list):
        return payload[key]
    if payload not in (None, "", {}):
        logger.debug("graph_response_unexpected_shape", key=key, payload_type=type(payload).__name__)
    return []


def _parse_items(items: list[Any], model: type[ModelT]) -> list[ModelT]:
    parsed: list[ModelT] = []
    for item in items:
        try:
            parsed.append(model.model_validate(item))
        except PydanticValidationError:
            logger.debug("graph_item_dropped", model=model.__name__)
    return parsed


class GraphitiClient:
    """Graphiti MCP client with lazy (re)connection."""

    def __init__(self, endpoint: str, client_factory=Client) -> None:
        self.endpoint = endpoint
        self._client_factory = client_factory
        self._client: Any = None
        self._stack: AsyncExitStack | None = None

    @property
    def connected(self) -> bool:
        return self._stack is not None

    async def connect(self) -> bool:
        """Open the MCP session. Returns ``False`` (and logs) when the server is unreachable."""
        if self.connected:
            return True
        stack = AsyncExitStack()
        try:
            client = self._client_factory(self.endpoint)
            await stack.enter_async_context(client)
        except Exception:
            await stack.aclose()
            logger.error("graphiti_connect_failed", endpoint=self.endpoint, exc_info=True)
            return False
        self._client = client
        self._stack = stack
        logger.info("graphiti_connected", endpoint=self.endpoint)
        return True

    async def disconnect(self) -> None:
        if self._stack is not None:
            stack, self._stack, self._client = self._stack, None, None
            await stack.aclose()

    async def _call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        if not self.connected and not await self.connect():
            raise GraphConnectionError(f"Not connected to Graphiti at {self.endpoint}")
        try:
            result = await self._client.call_tool(name, arguments)
        except Exception as e:
            # Drop the session so the next call reconnects
            await self.disconnect()
            raise GraphToolError(name, str(e) or "Tool call failed") from e
        if getattr(result, "is_error", False):
            raise GraphToolError(name, "Tool returned an error result")
        return _decode_result(result)

    async def add_episode(
        self,
        name: str,
        body: str,
        group_id: str,
        source: EpisodeSource = EpisodeSource.TEXT,
        source_description: str = "",
    ) -> None:
        await self._call_tool(
            "add_memory",
            {
                "name": name,
                "episode_body": body,
                "group_id": group_id,
                "source": EpisodeSource(source).value,
                "source_description": source_description,
            },
        )
        logger.debug("episode_added", name=name, group_id=group_id)

    async def search_facts(self, query: str, group_ids: list[str], max_facts: int = 10) -> list[Fact]:
        payload = await self._call_tool(
            "search_memory_facts",
            {"query": query, "group_ids": group_ids, "max_facts": max_facts},
        )
        return _parse_items(_unwrap_list(payload, "facts"), Fact)

    async def search_entities(
        self, query: str, group_ids: list[str], max_entities: int = 10
    ) -> list[Entity]:
        payload = await self._call_tool(
            "search_nodes",
            {"query": query, "group_ids": group_ids, "max_nodes": max_entities},
        )
        return _parse_items(_unwrap_list(payload, "nodes"), Entity)

    async def get_episodes(self, group_id: str, last_n: int = 10) -> list[Episode]:
        payload = await self._call_tool(
            "get_episodes",
            {"group_ids": [group_id], "max_episodes": last_n},
        )
        return _parse_items(_unwrap_list(payload, "episodes"), Episode)

    async def get_status(self) -> bool:
        try:
            await self._call_tool("get_status", {})
        except Exception:
            return False
        return True
