"""Working snapshot of a session, saved on idle and replayed as a primer."""

import re
from collections.abc import Sequence

from ..core.enums import MessageRole

RECENT_MESSAGES = 12
MAX_QUESTIONS = 6

_QUESTION_RE = re.compile(r"[^\n\r?]{3,200}\?")
_ROLE_PREFIX_RE = re.compile(r"^(?:User|Assistant):\s*")


def _latest(messages: Sequence[str], role: MessageRole) -> str | None:
    prefix = f"{role.value}:"
    for message in reversed(messages):
        if message.startswith(prefix):
            return message[len(prefix) :].strip()
    return None


def build_session_snapshot(session_id: str, messages: Sequence[str]) -> str:
    """Summarise the recent focus and open questions of the buffered conversation."""
    recent = list(messages)[-RECENT_MESSAGES:]
    recent_user = _latest(recent, MessageRole.USER)
    recent_assistant = _latest(recent, MessageRole.ASSISTANT)

    questions: list[str] = []
    for message in recent:
        for match in _QUESTION_RE.findall(_ROLE_PREFIX_RE.sub("", message)):
            question = match.strip()
            if question not in questions:
                questions.append(question)

    lines = [f"Session {session_id} working snapshot"]
    if recent_user:
        lines.append(f"Recent user focus: {recent_user}")
    if recent_assistant:
        lines.append(f"Recent assistant focus: {recent_assistant}")
    if questions:
        lines.append("Open questions:")
        lines.extend(f"- {q}" for q in questions[:MAX_QUESTIONS])
    return "\n".join(lines)
