"""Event-stream hook: session lifecycle, assistant buffering and flushing."""

from typing import Any, assert_never

from ..client.graphiti import GraphMemoryClient
from ..client.host import ContextLimitResolver
from ..compaction.builder import save_compaction_summary
from ..compaction.preemptive import PreemptiveCompactor
from ..core.config import Settings
from ..core.enums import EpisodeSource, SourceDescription
from ..core.events import (
    MessagePartUpdated,
    MessageUpdated,
    PluginEvent,
    SessionCompacted,
    SessionCreated,
    SessionDeleted,
    SessionIdle,
    parse_event,
)
from ..session.manager import SessionManager
from ..session.snapshot import build_session_snapshot
from ..session.state import SessionState
from ..utils.logging_config import get_logger, hook_context

logger = get_logger(__name__)


class EventHandler:
    """Dispatches host events to the session store and graph writers."""

    def __init__(
        self,
        sessions: SessionManager,
        graph: GraphMemoryClient,
        limits: ContextLimitResolver,
        settings: Settings,
        compactor: PreemptiveCompactor | None = None,
    ) -> None:
        self.sessions = sessions
        self.graph = graph
        self.limits = limits
        self.settings = settings
        self.compactor = compactor

    async def __call__(self, event: PluginEvent | dict[str, Any]) -> None:
        parsed = parse_event(event) if isinstance(event, dict) else event
        if parsed is None:
            return
        with hook_context("event", event_type=parsed.type):
            try:
                await self.dispatch(parsed)
            except Exception:
                logger.error("event_handler_error", exc_info=True)

    async def dispatch(self, event: PluginEvent) -> None:
        match event:
            case SessionCreated():
                self.on_session_created(event)
            case SessionDeleted():
                self.sessions.release(event.properties.info.id)
            case SessionIdle():
                await self.on_session_idle(event.properties.session_id)
            case SessionCompacted():
                await self.on_session_compacted(event.properties.session_id, event.properties.summary)
            case MessageUpdated():
                await self.on_message_updated(event)
            case MessagePartUpdated():
                self.on_part_updated(event)
            case _:
                assert_never(event)

    async def _main_state(self, session_id: str, hook: str) -> SessionState | None:
        state, resolved = await self.sessions.resolve_session(session_id)
        if not resolved:
            logger.debug("session_unresolved", hook=hook, session_id=session_id)
            return None
        if state is None or not state.is_main:
            logger.debug("non_main_session_ignored", hook=hook, session_id=session_id)
            return None
        return state

    def on_session_created(self, event: SessionCreated) -> None:
        info = event.properties.info
        self.sessions.set_parent_id(info.id, info.parent_id)
        is_main = not info.parent_id
        logger.info("session_created", session_id=info.id, is_main=is_main, parent_id=info.parent_id)
        if is_main:
            self.sessions.set_state(info.id, self.sessions.new_state())

    async def _save_snapshot(self, session_id: str, state: SessionState) -> None:
        if not state.pending_messages:
            return
        snapshot = build_session_snapshot(session_id, state.pending_messages)
        try:
            await self.graph.add_episode(
                name=f"Snapshot: {session_id}",
                body=snapshot,
                group_id=state.group_id,
                source=EpisodeSource.TEXT,
                source_description=SourceDescription.SESSION_SNAPSHOT.value,
            )
            logger.info("session_snapshot_saved", session_id=session_id)
        except Exception:
            logger.error("session_snapshot_save_failed", session_id=session_id, exc_info=True)

    async def on_session_idle(self, session_id: str) -> None:
        state = await self._main_state(session_id, "session.idle")
        if state is None:
            return
        await self._save_snapshot(session_id, state)
        await self.sessions.flush_pending_messages(
            session_id,
            SourceDescription.IDLE_FLUSH.value,
            self.settings.idle_flush_min_bytes,
        )

    async def on_session_compacted(self, session_id: str, summary: str) -> None:
        state = await self._main_state(session_id, "session.compacted")
        if state is None:
            return
        await self.sessions.flush_pending_messages(
            session_id, SourceDescription.COMPACTION_FLUSH.value, 0
        )
        if summary and self.settings.enable_compaction_save:
            await save_compaction_summary(self.graph, state.group_id, session_id, summary)

    async def on_message_updated(self, event: MessageUpdated) -> None:
        info = event.properties.info
        state = await self._main_state(info.session_id, "message.updated")
        if state is None:
            return
        if info.role != "assistant":
            self.sessions.delete_pending_assistant(info.session_id, info.id)
            return
        if not info.completed or self.sessions.is_assistant_buffered(info.session_id, info.id):
            return

        self.sessions.finalize_assistant_message(state, info.session_id, info.id, "message.updated")

        if info.tokens is None or not info.provider_id or not info.model_id:
            return
        try:
            state.context_limit = await self.limits.resolve(info.provider_id, info.model_id)
        except Exception:
            logger.debug("context_limit_resolve_failed", session_id=info.session_id, exc_info=True)
        if self.compactor is not None:
            await self.compactor.check_and_trigger(
                info.session_id, info.tokens.to_usage(), info.provider_id, info.model_id
            )

    def on_part_updated(self, event: MessagePartUpdated) -> None:
        part = event.properties.part
        if not part.is_plain_text or not part.session_id or not part.message_id:
            return
        self.sessions.buffer_assistant_part(part.session_id, part.message_id, part.text or "")
