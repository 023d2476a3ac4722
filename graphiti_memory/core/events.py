"""Host lifecycle events as a closed tagged union.

Raw host payloads look like ``{"type": "session.idle", "properties": {...}}``.
``parse_event`` validates them into exactly one of the variants below; kinds the
plugin does not handle are rejected at the boundary and never reach dispatch.
"""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from ..utils.logging_config import get_logger
from .schemas import HostSession, MessagePart, TokenUsage

logger = get_logger(__name__)


class _Props(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class SessionInfoProps(_Props):
    info: HostSession


class SessionIdProps(_Props):
    session_id: str = Field(alias="sessionID")


class CompactedProps(SessionIdProps):
    summary: str = ""


class MessageTime(BaseModel):
    created: float | None = None
    completed: float | None = None


class MessageTokens(BaseModel):
    """Host token counters; ``cache`` is nested on the wire."""

    input: int = 0
    output: int = 0
    reasoning: int = 0
    cache: dict[str, int] = Field(default_factory=dict)

    def to_usage(self) -> TokenUsage:
        return TokenUsage(
            input=self.input,
            output=self.output,
            reasoning=self.reasoning,
            cache_read=self.cache.get("read", 0),
            cache_write=self.cache.get("write", 0),
        )


class UpdatedMessageInfo(_Props):
    id: str
    session_id: str = Field(alias="sessionID")
    role: str
    time: MessageTime = Field(default_factory=MessageTime)
    tokens: MessageTokens | None = None
    provider_id: str | None = Field(default=None, alias="providerID")
    model_id: str | None = Field(default=None, alias="modelID")

    @property
    def completed(self) -> bool:
        return bool(self.time.completed)


class MessageUpdatedProps(_Props):
    info: UpdatedMessageInfo


class PartUpdatedProps(_Props):
    part: MessagePart


class SessionCreated(BaseModel):
    type: Literal["session.created"]
    properties: SessionInfoProps


class SessionDeleted(BaseModel):
    type: Literal["session.deleted"]
    properties: SessionInfoProps


class SessionIdle(BaseModel):
    type: Literal["session.idle"]
    properties: SessionIdProps


class SessionCompacted(BaseModel):
    type: Literal["session.compacted"]
    properties: CompactedProps


class MessageUpdated(BaseModel):
    type: Literal["message.updated"]
    properties: MessageUpdatedProps


class MessagePartUpdated(BaseModel):
    type: Literal["message.part.updated"]
    properties: PartUpdatedProps


PluginEvent = Annotated[
    SessionCreated
    | SessionDeleted
    | SessionIdle
    | SessionCompacted
    | MessageUpdated
    | MessagePartUpdated,
    Field(discriminator="type"),
]

_event_adapter: TypeAdapter[PluginEvent] = TypeAdapter(PluginEvent)


def parse_event(raw: dict[str, Any]) -> PluginEvent | None:
    """Validate a raw host event. Returns ``None`` for unhandled or malformed events."""
    try:
        return _event_adapter.validate_python(raw)
    except PydanticValidationError:
        logger.debug("event_ignored", event_type=raw.get("type") if isinstance(raw, dict) else None)
        return None
