"""Message-transform hook: track visible memory and place the pending injection."""

from collections.abc import Sequence

from ..core.schemas import ChatMessage
from ..retrieval.normalizer import extract_visible_uuids
from ..session.manager import SessionManager
from ..session.state import PendingInjection
from ..utils.logging_config import get_logger

logger = get_logger(__name__)


def render_memory_block(pending: PendingInjection) -> str:
    uuid_attr = f' data-uuids="{",".join(pending.fact_uuids)}"' if pending.fact_uuids else ""
    return f"<memory{uuid_attr}>\n{pending.context}\n</memory>"


class MessagesTransformHandler:
    """Prepends the current turn's memory block to the last user text part."""

    def __init__(self, sessions: SessionManager) -> None:
        self.sessions = sessions

    async def __call__(self, messages: Sequence[ChatMessage]) -> None:
        last_user = next((m for m in reversed(messages) if m.info.role == "user"), None)
        if last_user is None:
            return

        session_id = last_user.info.session_id
        state = self.sessions.get_state(session_id)
        if state is None or not state.is_main:
            logger.debug("memory_transform_skipped", reason="not_main", session_id=session_id)
            return

        visible: set[str] = set()
        for message in messages:
            for part in message.parts:
                if part.type == "text" and part.text:
                    visible.update(extract_visible_uuids(part.text))
        state.visible_fact_uuids = visible

        pending = state.take_pending_injection()
        if pending is None:
            logger.debug("memory_transform_skipped", reason="no_pending", session_id=session_id)
            return

        text_part = next((p for p in last_user.parts if p.type == "text" and p.text is not None), None)
        if text_part is None:
            logger.debug("memory_transform_skipped", reason="no_text_part", session_id=session_id)
            return
        if "<memory" in text_part.text:
            logger.debug("memory_transform_skipped", reason="already_injected", session_id=session_id)
            return

        block = render_memory_block(pending)
        text_part.text = f"{block}\n\n{text_part.text}"
        logger.info(
            "memory_context_injected",
            session_id=session_id,
            fact_count=len(pending.fact_uuids),
            block_length=len(block),
        )
