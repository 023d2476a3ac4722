"""Session state store and message buffer.

Owns every piece of per-process session memory: the state map, the parent
resolution cache and the streaming assistant buffers. All mutations happen
between awaits, so each one is atomic under cooperative scheduling; multi-step
sequences such as flush are not.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..client.graphiti import GraphMemoryClient
from ..client.host import DEFAULT_CONTEXT_LIMIT, HostClient
from ..core.enums import EpisodeSource, MessageRole
from ..core.exceptions import SessionResolutionError
from ..utils.groups import extract_text_from_parts
from ..utils.logging_config import get_logger
from .state import SessionState, message_role

logger = get_logger(__name__)

PREVIEW_CHARS = 120
EPISODE_NAME_CHARS = 80
FALLBACK_MESSAGE_LIMIT = 20


@dataclass
class AssistantReply:
    text: str
    message_id: str | None = None


class SessionManager:
    """
    Tracks per-session state, parent resolution, message buffering and
    flushing buffered messages to the graph service.

    Subagent sessions (those with a parent) never get durable state.
    """

    def __init__(
        self,
        default_group_id: str,
        default_user_group_id: str,
        host: HostClient,
        graph: GraphMemoryClient,
        default_context_limit: int = DEFAULT_CONTEXT_LIMIT,
    ) -> None:
        self.default_group_id = default_group_id
        self.default_user_group_id = default_user_group_id
        self.host = host
        self.graph = graph
        self.default_context_limit = default_context_limit
        self._sessions: dict[str, SessionState] = {}
        self._parent_ids: dict[str, str | None] = {}
        self._pending_assistant: dict[str, str] = {}
        self._finalized_assistant: set[str] = set()

    @staticmethod
    def _key(session_id: str, message_id: str) -> str:
        return f"{session_id}:{message_id}"

    # ── State ───────────────────────────────────────────────────────

    def get_state(self, session_id: str) -> SessionState | None:
        return self._sessions.get(session_id)

    def set_state(self, session_id: str, state: SessionState) -> None:
        self._sessions[session_id] = state

    def new_state(self) -> SessionState:
        return SessionState(
            group_id=self.default_group_id,
            user_group_id=self.default_user_group_id,
            context_limit=self.default_context_limit,
        )

    def set_parent_id(self, session_id: str, parent_id: str | None) -> None:
        self._parent_ids[session_id] = parent_id

    async def resolve_parent_id(self, session_id: str) -> str | None:
        """Return the parent session ID (``None`` = confirmed main session).

        Raises:
            SessionResolutionError: the host lookup failed; nothing is cached.
        """
        if session_id in self._parent_ids:
            return self._parent_ids[session_id]
        try:
            session = await self.host.get_session(session_id)
        except Exception as e:
            logger.debug("session_parent_lookup_failed", session_id=session_id, exc_info=True)
            raise SessionResolutionError(session_id) from e
        self._parent_ids[session_id] = session.parent_id
        return session.parent_id

    async def resolve_session(self, session_id: str) -> tuple[SessionState | None, bool]:
        """Resolve (and lazily create) state for a session.

        Returns ``(state, resolved)``. ``resolved=False`` means "try again later";
        ``(None, True)`` means the session is a subagent.
        """
        try:
            parent_id = await self.resolve_parent_id(session_id)
        except SessionResolutionError:
            return None, False
        if parent_id:
            self._sessions.pop(session_id, None)
            return None, True

        state = self._sessions.get(session_id)
        if state is None:
            state = self.new_state()
            self._sessions[session_id] = state
        return state, True

    async def is_subagent(self, session_id: str) -> bool:
        try:
            return bool(await self.resolve_parent_id(session_id))
        except SessionResolutionError:
            return False

    def release(self, session_id: str) -> None:
        """Forget everything held for a session."""
        self._sessions.pop(session_id, None)
        self._parent_ids.pop(session_id, None)
        prefix = f"{session_id}:"
        for key in [k for k in self._pending_assistant if k.startswith(prefix)]:
            del self._pending_assistant[key]
        self._finalized_assistant = {
            k for k in self._finalized_assistant if not k.startswith(prefix)
        }

    # ── Assistant streaming buffer ──────────────────────────────────

    def buffer_assistant_part(self, session_id: str, message_id: str, text: str) -> None:
        """Record the latest streamed text; later partials replace earlier ones."""
        self._pending_assistant[self._key(session_id, message_id)] = text

    def delete_pending_assistant(self, session_id: str, message_id: str) -> None:
        self._pending_assistant.pop(self._key(session_id, message_id), None)

    def is_assistant_buffered(self, session_id: str, message_id: str) -> bool:
        return self._key(session_id, message_id) in self._finalized_assistant

    def finalize_assistant_message(
        self,
        state: SessionState,
        session_id: str,
        message_id: str,
        source: str,
    ) -> None:
        """Move a completed assistant reply into the pending buffer, at most once."""
        key = self._key(session_id, message_id)
        if key in self._finalized_assistant:
            return

        text = self._pending_assistant.pop(key, "").strip()
        self._finalized_assistant.add(key)

        if not text:
            logger.debug(
                "assistant_message_without_text",
                hook=source,
                session_id=session_id,
                message_id=message_id,
            )
            return

        state.buffer_message(MessageRole.ASSISTANT, text)
        logger.info(
            "assistant_reply_buffered",
            hook=source,
            session_id=session_id,
            message_id=message_id,
            message_length=len(text),
            preview=text[:PREVIEW_CHARS],
        )

    # ── Flush ───────────────────────────────────────────────────────

    async def _fetch_latest_assistant_message(self, session_id: str) -> AssistantReply | None:
        try:
            messages = await self.host.list_messages(session_id, limit=FALLBACK_MESSAGE_LIMIT)
        except Exception:
            logger.debug("fallback_message_list_failed", session_id=session_id, exc_info=True)
            return None
        for message in reversed(messages):
            if message.info.role != "assistant":
                continue
            text = extract_text_from_parts(message.parts)
            if not text:
                return None
            return AssistantReply(text=text, message_id=message.info.id or None)
        return None

    async def _append_fallback_reply(self, session_id: str, state: SessionState) -> None:
        reply = await self._fetch_latest_assistant_message(session_id)
        if reply is None:
            return
        if reply.message_id:
            key = self._key(session_id, reply.message_id)
            already = key in self._finalized_assistant
        else:
            key = None
            already = any(
                m.startswith(f"{MessageRole.ASSISTANT.value}:") and reply.text in m
                for m in state.pending_messages
            )
        if already:
            return
        state.buffer_message(MessageRole.ASSISTANT, reply.text)
        if key:
            self._finalized_assistant.add(key)
        logger.info(
            "fallback_assistant_fetch_used",
            session_id=session_id,
            message_id=reply.message_id,
            message_length=len(reply.text),
        )

    async def flush_pending_messages(
        self,
        session_id: str,
        source_description: str,
        min_bytes: int,
    ) -> bool:
        """Persist buffered messages as one episode.

        Returns ``True`` when an episode was written. On failure the flushed
        messages are put back in front of anything buffered meanwhile.
        """
        state = self._sessions.get(session_id)
        if state is None or not state.pending_messages:
            return False

        if message_role(state.pending_messages[-1]) == MessageRole.USER.value.lower():
            await self._append_fallback_reply(session_id, state)

        combined = "\n\n".join(state.pending_messages)
        if len(combined) < min_bytes:
            logger.debug(
                "flush_below_threshold",
                session_id=session_id,
                length=len(combined),
                min_bytes=min_bytes,
            )
            return False

        to_flush = list(state.pending_messages)
        state.pending_messages = []
        name = combined[:EPISODE_NAME_CHARS].replace("\n", " ")
        logger.info("flushing_buffered_messages", session_id=session_id, count=len(to_flush))
        try:
            await self.graph.add_episode(
                name=f"Buffered messages: {name}",
                body=combined,
                group_id=state.group_id,
                source=EpisodeSource.TEXT,
                source_description=source_description,
            )
        except Exception:
            logger.error("flush_failed", session_id=session_id, count=len(to_flush), exc_info=True)
            current = self._sessions.get(session_id)
            if current is not None:
                current.pending_messages = to_flush + current.pending_messages
            return False

        logger.info("buffered_messages_flushed", session_id=session_id, count=len(to_flush))
        return True
