"""Core enums for fact tiers, message roles and episode sources."""

from enum import Enum


class FactTier(str, Enum):
    """Compaction priority tier of a fact."""

    DECISION = "decision"  # Decisions, constraints, agreed designs
    ACTIVE = "active"  # Recently valid facts
    BACKGROUND = "background"  # Everything else


class MessageRole(str, Enum):
    """Role of a buffered conversation message."""

    USER = "User"
    ASSISTANT = "Assistant"


class EpisodeSource(str, Enum):
    """Source kind accepted by the graph service when adding an episode."""

    TEXT = "text"
    JSON = "json"
    MESSAGE = "message"


class SourceDescription(str, Enum):
    """Descriptions tagged onto persisted episodes."""

    SESSION_SNAPSHOT = "session-snapshot"
    IDLE_FLUSH = "Buffered messages from OpenCode session"
    COMPACTION_FLUSH = "Buffered messages flushed before compaction"
    COMPACTION_SUMMARY = "OpenCode session compaction summary"
    EXPLICIT_MEMORY = "Explicit memory request"
