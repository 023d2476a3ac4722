"""Core Pydantic schemas for graph results and host payloads."""

from pydantic import BaseModel, ConfigDict, Field


class EntityRef(BaseModel):
    """Reference from a fact edge to one of its entities."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    uuid: str = ""


class Fact(BaseModel):
    """A timestamped assertion retrieved from the knowledge graph."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    uuid: str
    fact: str
    valid_at: str | None = None  # ISO timestamp; unparsable values are treated as absent
    invalid_at: str | None = None
    source_node: EntityRef | None = None
    target_node: EntityRef | None = None

    def referenced_entity_uuids(self) -> set[str]:
        refs = set()
        for node in (self.source_node, self.target_node):
            if node is not None and node.uuid:
                refs.add(node.uuid)
        return refs


class Entity(BaseModel):
    """A named node tracked by the knowledge graph."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    uuid: str
    name: str
    summary: str | None = None
    labels: list[str] = Field(default_factory=list)


class Episode(BaseModel):
    """A persisted memory record."""

    model_config = ConfigDict(extra="ignore")

    uuid: str = ""
    name: str = ""
    content: str = ""
    source: str | None = None
    source_description: str | None = None  # "session-snapshot" marks snapshot records
    created_at: str | None = None


# --- Host payloads ---


class MessagePart(BaseModel):
    """One part of a host chat message. Mutable: transform hooks rewrite text in place."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str = "text"
    text: str | None = None
    id: str | None = None
    synthetic: bool = False
    session_id: str | None = Field(default=None, alias="sessionID")
    message_id: str | None = Field(default=None, alias="messageID")

    @property
    def is_plain_text(self) -> bool:
        return self.type == "text" and isinstance(self.text, str) and not self.synthetic


class MessageInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = ""
    session_id: str = Field(default="", alias="sessionID")
    role: str = "user"


class ChatMessage(BaseModel):
    """A host message with its parts."""

    info: MessageInfo
    parts: list[MessagePart] = Field(default_factory=list)


class TokenUsage(BaseModel):
    """Token counters reported on a completed assistant message."""

    input: int = 0
    output: int = 0
    reasoning: int = 0
    cache_read: int = 0
    cache_write: int = 0

    @property
    def context_tokens(self) -> int:
        return self.input + self.cache_read + self.output + self.reasoning


class ModelInfo(BaseModel):
    id: str
    context_limit: int | None = None


class ProviderInfo(BaseModel):
    id: str
    models: list[ModelInfo] = Field(default_factory=list)


class HostSession(BaseModel):
    """Session metadata returned by the host."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    parent_id: str | None = Field(default=None, alias="parentID")
