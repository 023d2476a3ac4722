"""System-prompt transform hook: alternative placement for the pending injection."""

from ..session.manager import SessionManager
from ..utils.logging_config import get_logger

logger = get_logger(__name__)


class SystemTransformHandler:
    def __init__(self, sessions: SessionManager) -> None:
        self.sessions = sessions

    async def __call__(self, session_id: str | None, system: list[str]) -> None:
        if not session_id:
            return
        state = self.sessions.get_state(session_id)
        if state is None or not state.is_main:
            return
        pending = state.take_pending_injection()
        if pending is None:
            return
        system.append(pending.context)
        logger.info("memory_context_injected", target="system", session_id=session_id)
