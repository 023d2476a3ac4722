"""Host session/message query surface and model context-limit resolution."""

from __future__ import annotations

from typing import Protocol

from ..core.schemas import ChatMessage, HostSession, ProviderInfo
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_CONTEXT_LIMIT = 200_000


class HostClient(Protocol):
    """What the plugin consumes from the host. Implementations normalise host responses."""

    async def get_session(self, session_id: str) -> HostSession: ...

    async def list_messages(self, session_id: str, limit: int = 20) -> list[ChatMessage]: ...

    async def list_providers(self) -> list[ProviderInfo]: ...

    async def summarize(self, session_id: str, provider_id: str, model_id: str) -> None: ...

    async def prompt(self, session_id: str, text: str) -> None: ...

    async def show_toast(self, title: str, message: str, variant: str = "info") -> None: ...


class ContextLimitResolver:
    """Resolves and caches the context window of ``provider/model`` pairs."""

    def __init__(self, host: HostClient, default_limit: int = DEFAULT_CONTEXT_LIMIT) -> None:
        self.host = host
        self.default_limit = default_limit
        self._cache: dict[str, int] = {}

    @staticmethod
    def model_key(provider_id: str, model_id: str) -> str:
        return f"{provider_id}/{model_id}"

    async def resolve(self, provider_id: str, model_id: str) -> int:
        key = self.model_key(provider_id, model_id)
        cached = self._cache.get(key)
        if cached:
            return cached

        try:
            providers = await self.host.list_providers()
        except Exception:
            # Not cached: the next call retries the lookup.
            logger.warning("context_limit_lookup_failed", model=key, exc_info=True)
            return self.default_limit

        limit = self.default_limit
        for provider in providers:
            if provider.id != provider_id:
                continue
            for model in provider.models:
                if model.id == model_id and model.context_limit and model.context_limit > 0:
                    limit = model.context_limit
                    break

        self._cache[key] = limit
        return limit
