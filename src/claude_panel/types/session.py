"""Session state types."""

from dataclasses import dataclass, field
from enum import Enum


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    AWAITING_RESULT = "awaiting_result"
    ENDED = "ended"


class ProcessErrorKind(str, Enum):
    EXECUTABLE_MISSING = "executable_missing"
    AUTH_REQUIRED = "auth_required"
    GENERIC = "generic"


@dataclass
class SessionTotals:
    total_cost: float = 0.0
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_creation_tokens: int = 0
    request_count: int = 0

    @property
    def total_tokens(self) -> int:
        return (self.input_tokens + self.output_tokens +
                self.cache_read_tokens + self.cache_creation_tokens)

    def to_dict(self) -> dict:
        return {
            "totalCost": self.total_cost,
            "totalTokensInput": self.input_tokens,
            "totalTokensOutput": self.output_tokens,
            "totalCacheReadTokens": self.cache_read_tokens,
            "totalCacheCreationTokens": self.cache_creation_tokens,
            "requestCount": self.request_count,
        }


@dataclass
class TurnSummary:
    """Figures reported by the terminal result event of one turn."""
    cost: float = 0.0
    duration_ms: int = 0
    num_turns: int = 0
    is_error: bool = False
    result: str = ""


@dataclass
class SendOptions:
    cwd: str = ""
    model: str = ""
    plan_mode: bool = False
    thinking_mode: bool = False
    thinking_intensity: str = "think"
    yolo_mode: bool = False
    mcp_config_path: str = ""
    images: list[str] = field(default_factory=list)
    allowed_tools: list[str] = field(default_factory=list)
    disallowed_tools: list[str] = field(default_factory=list)
