"""Per-session state data structures."""

from dataclasses import dataclass, field

from ..client.host import DEFAULT_CONTEXT_LIMIT
from ..core.enums import MessageRole


@dataclass
class PendingInjection:
    """Formatted memory context waiting for the prompt-transform step.

    ``turn`` is the session message count the context was produced for; the
    transform step only consumes it for that same turn.
    """

    turn: int
    context: str
    fact_uuids: list[str] = field(default_factory=list)


@dataclass
class SessionState:
    """Memory state tracked for one main (non-subagent) session."""

    group_id: str
    user_group_id: str

    injected_memories: bool = False
    last_injection_fact_uuids: set[str] = field(default_factory=set)
    visible_fact_uuids: set[str] = field(default_factory=set)  # From <memory data-uuids> in the transcript
    pending_injection: PendingInjection | None = None

    message_count: int = 0
    pending_messages: list[str] = field(default_factory=list)  # "User: ..." / "Assistant: ..."
    context_limit: int = DEFAULT_CONTEXT_LIMIT
    is_main: bool = True

    def buffer_message(self, role: MessageRole, text: str) -> None:
        self.pending_messages.append(f"{role.value}: {text}")

    def take_pending_injection(self) -> PendingInjection | None:
        """Pop the pending injection if it belongs to the current turn."""
        pending, self.pending_injection = self.pending_injection, None
        if pending is None or pending.turn != self.message_count:
            return None
        return pending


def message_role(message: str) -> str:
    """Lower-cased role prefix of a buffered message (whole message when unprefixed)."""
    head, sep, _ = message.partition(":")
    return (head if sep else message).strip().lower()
