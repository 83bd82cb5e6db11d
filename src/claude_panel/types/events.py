"""Typed protocol events decoded from the CLI's stream-json output."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union


class EventKind(str, Enum):
    INIT = "init"
    STATUS = "status"
    COMPACT_BOUNDARY = "compact_boundary"
    ASSISTANT = "assistant"
    USER = "user"
    RESULT = "result"
    CONTROL_REQUEST = "control_request"
    CONTROL_RESPONSE = "control_response"


@dataclass(frozen=True)
class Usage:
    """Per-message token usage as reported by the API."""
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_input_tokens: int = 0
    cache_creation_input_tokens: int = 0

    @property
    def total(self) -> int:
        return (self.input_tokens + self.output_tokens +
                self.cache_read_input_tokens + self.cache_creation_input_tokens)


@dataclass(frozen=True)
class TextBlock:
    text: str


@dataclass(frozen=True)
class ThinkingBlock:
    thinking: str


@dataclass(frozen=True)
class ToolUseBlock:
    id: str
    name: str
    input: dict = field(default_factory=dict)


@dataclass(frozen=True)
class ToolResultBlock:
    tool_use_id: str
    content: Any = ""
    is_error: bool = False


AssistantBlock = Union[TextBlock, ThinkingBlock, ToolUseBlock]


@dataclass(frozen=True)
class InitEvent:
    session_id: str
    tools: list = field(default_factory=list)
    mcp_servers: list = field(default_factory=list)
    model: str = ""
    kind: EventKind = EventKind.INIT


@dataclass(frozen=True)
class StatusEvent:
    status: Optional[str] = None
    kind: EventKind = EventKind.STATUS

    @property
    def is_compacting(self) -> bool:
        return self.status == "compacting"


@dataclass(frozen=True)
class CompactBoundaryEvent:
    trigger: str = ""
    pre_tokens: int = 0
    kind: EventKind = EventKind.COMPACT_BOUNDARY


@dataclass(frozen=True)
class AssistantEvent:
    blocks: list[AssistantBlock] = field(default_factory=list)
    usage: Optional[Usage] = None
    model: str = ""
    kind: EventKind = EventKind.ASSISTANT


@dataclass(frozen=True)
class UserEvent:
    results: list[ToolResultBlock] = field(default_factory=list)
    usage: Optional[Usage] = None
    kind: EventKind = EventKind.USER


@dataclass(frozen=True)
class ResultEvent:
    subtype: str = "success"
    is_error: bool = False
    total_cost_usd: float = 0.0
    duration_ms: int = 0
    num_turns: int = 0
    result: str = ""
    session_id: str = ""
    kind: EventKind = EventKind.RESULT


@dataclass(frozen=True)
class ControlRequestEvent:
    request_id: str
    subtype: str
    tool_name: str = "Unknown Tool"
    input: dict = field(default_factory=dict)
    tool_use_id: str = ""
    description: str = ""
    suggestions: list = field(default_factory=list)
    decision_reason: str = ""
    blocked_path: str = ""
    kind: EventKind = EventKind.CONTROL_REQUEST


@dataclass(frozen=True)
class ControlResponseEvent:
    request_id: str = ""
    subtype: str = ""
    response: dict = field(default_factory=dict)
    account: dict = field(default_factory=dict)
    kind: EventKind = EventKind.CONTROL_RESPONSE


ProtocolEvent = Union[
    InitEvent,
    StatusEvent,
    CompactBoundaryEvent,
    AssistantEvent,
    UserEvent,
    ResultEvent,
    ControlRequestEvent,
    ControlResponseEvent,
]
