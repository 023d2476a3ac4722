"""Pre-compaction hook: append the persistent knowledge digest."""

from ..compaction.builder import CompactionContextBuilder
from ..core.config import Settings
from ..retrieval.budget import calculate_injection_budget
from ..session.manager import SessionManager
from ..utils.logging_config import get_logger

logger = get_logger(__name__)


class CompactingHandler:
    def __init__(
        self,
        sessions: SessionManager,
        builder: CompactionContextBuilder,
        settings: Settings,
    ) -> None:
        self.sessions = sessions
        self.builder = builder
        self.settings = settings

    async def __call__(self, session_id: str, context: list[str]) -> None:
        state = self.sessions.get_state(session_id)
        if state is None or not state.is_main:
            logger.debug("compaction_context_skipped", session_id=session_id)
            return

        budget = calculate_injection_budget(
            state.context_limit,
            self.settings.compaction_budget_ratio,
            self.settings.chars_per_token,
        )
        try:
            additional = await self.builder.build(
                list(context),
                state.group_id or self.sessions.default_group_id,
                state.user_group_id or None,
                budget,
            )
        except Exception:
            logger.error("compaction_context_failed", session_id=session_id, exc_info=True)
            return
        if additional:
            context.extend(additional)
            logger.info("compaction_context_injected", session_id=session_id)
