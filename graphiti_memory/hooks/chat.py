"""Turn-start hook: buffer the user message and prepare memory injection."""

from collections.abc import Sequence

from ..client.graphiti import GraphMemoryClient
from ..core.config import Settings
from ..core.enums import EpisodeSource, MessageRole, SourceDescription
from ..core.schemas import MessagePart
from ..retrieval.budget import calculate_injection_budget
from ..retrieval.drift import DriftDetector
from ..retrieval.pipeline import MemoryInjectionPipeline
from ..session.manager import SessionManager
from ..session.state import PendingInjection, SessionState
from ..utils.groups import extract_text_from_parts
from ..utils.logging_config import get_logger, hook_context
from .triggers import detect_memory_trigger

logger = get_logger(__name__)

EXPLICIT_MEMORY_NAME_CHARS = 80


class ChatHandler:
    """
    Handles the host's turn-start hook.

    The first turn of a session injects project and user memory. Later turns
    run a cheap drift check and only re-inject (project scope) when the topic
    has moved away from what was last injected.
    """

    def __init__(
        self,
        sessions: SessionManager,
        pipeline: MemoryInjectionPipeline,
        drift: DriftDetector,
        graph: GraphMemoryClient,
        settings: Settings,
    ) -> None:
        self.sessions = sessions
        self.pipeline = pipeline
        self.drift = drift
        self.graph = graph
        self.settings = settings

    async def _save_explicit_memory(self, state: SessionState, session_id: str, content: str) -> None:
        try:
            await self.graph.add_episode(
                name=f"Explicit memory: {content[:EXPLICIT_MEMORY_NAME_CHARS]}",
                body=content,
                group_id=state.group_id,
                source=EpisodeSource.TEXT,
                source_description=SourceDescription.EXPLICIT_MEMORY.value,
            )
            logger.info("explicit_memory_saved", session_id=session_id, length=len(content))
        except Exception:
            logger.error("explicit_memory_save_failed", session_id=session_id, exc_info=True)

    async def __call__(self, session_id: str, parts: Sequence[MessagePart]) -> PendingInjection | None:
        with hook_context("chat.message"):
            return await self._handle(session_id, parts)

    async def _handle(self, session_id: str, parts: Sequence[MessagePart]) -> PendingInjection | None:
        if await self.sessions.is_subagent(session_id):
            logger.debug("subagent_message_ignored", session_id=session_id)
            return None
        state, resolved = await self.sessions.resolve_session(session_id)
        if not resolved:
            logger.debug("session_unresolved", session_id=session_id)
            return None
        if state is None or not state.is_main:
            return None

        state.message_count += 1
        text = extract_text_from_parts(parts)
        if not text:
            return None

        state.buffer_message(MessageRole.USER, text)
        logger.info("user_message_buffered", session_id=session_id, message_length=len(text))

        trigger = detect_memory_trigger(text)
        if trigger.triggered and trigger.content:
            await self._save_explicit_memory(state, session_id, trigger.content)

        first_injection = not state.injected_memories
        baseline: set[str] | None = None
        if not first_injection:
            check = await self.drift.check(text, state.group_id, state.last_injection_fact_uuids)
            if check is None:
                return None
            if not check.drifted:
                logger.debug(
                    "reinjection_skipped",
                    session_id=session_id,
                    similarity=round(check.similarity, 3),
                )
                return None
            logger.info("memory_drift_detected", session_id=session_id, similarity=round(check.similarity, 3))
            baseline = check.current_uuids

        budget = calculate_injection_budget(
            state.context_limit,
            self.settings.injection_budget_ratio,
            self.settings.chars_per_token,
        )
        try:
            await self.pipeline.inject(
                state,
                text,
                use_user_scope=first_injection,
                budget=budget,
                baseline_uuids=baseline,
            )
            state.injected_memories = True
        except Exception:
            logger.error("memory_injection_failed", session_id=session_id, exc_info=True)
            return None
        pending = state.pending_injection
        return pending if pending is not None and pending.turn == state.message_count else None
