"""Preemptive compaction: summarise a session before the context window fills up."""

import asyncio
import time
from collections.abc import Callable

from ..client.host import ContextLimitResolver, HostClient
from ..core.config import CompactionSettings
from ..core.schemas import TokenUsage
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

RESUME_PROMPT = "Continue"


class PreemptiveCompactor:
    """Triggers host compaction when a session's token usage crosses the threshold."""

    def __init__(
        self,
        host: HostClient,
        limits: ContextLimitResolver,
        settings: CompactionSettings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.host = host
        self.limits = limits
        self.settings = settings or CompactionSettings()
        self._clock = clock
        self._last_compaction: dict[str, float] = {}
        self._in_progress: set[str] = set()

    def _cooling_down(self, session_id: str) -> bool:
        last = self._last_compaction.get(session_id)
        return last is not None and self._clock() - last < self.settings.cooldown_seconds

    async def check_and_trigger(
        self,
        session_id: str,
        tokens: TokenUsage,
        provider_id: str,
        model_id: str,
    ) -> bool:
        """Returns ``True`` when a compaction was requested."""
        s = self.settings
        if not s.enabled:
            return False
        total = tokens.context_tokens
        if total < s.min_tokens or session_id in self._in_progress:
            return False
        if self._cooling_down(session_id):
            return False

        limit = await self.limits.resolve(provider_id, model_id)
        usage_ratio = total / limit
        if usage_ratio < s.threshold:
            return False

        self._in_progress.add(session_id)
        try:
            await self.host.show_toast("Graphiti", "Compacting session to preserve context...", "info")
            await self.host.summarize(session_id, provider_id, model_id)
            self._last_compaction[session_id] = self._clock()
            if s.auto_resume:
                await asyncio.sleep(s.resume_delay_seconds)
                await self.host.prompt(session_id, RESUME_PROMPT)
            logger.info(
                "preemptive_compaction_triggered",
                session_id=session_id,
                usage_ratio=round(usage_ratio, 3),
                total_tokens=total,
                context_limit=limit,
            )
            return True
        except Exception:
            logger.error("preemptive_compaction_failed", session_id=session_id, exc_info=True)
            return False
        finally:
            self._in_progress.discard(session_id)
