"""Type definitions for the Claude panel coordinator."""

from claude_panel.types.events import (
    AssistantEvent,
    CompactBoundaryEvent,
    ControlRequestEvent,
    ControlResponseEvent,
    EventKind,
    InitEvent,
    ProtocolEvent,
    ResultEvent,
    StatusEvent,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
    Usage,
    UserEvent,
)
from claude_panel.types.permissions import (
    PermissionDecision,
    PermissionEntry,
    PermissionRequest,
    PermissionStatus,
)
from claude_panel.types.session import (
    ProcessErrorKind,
    SendOptions,
    SessionState,
    SessionTotals,
    TurnSummary,
)
from claude_panel.types.usage import (
    CachedRateLimits,
    RateLimitSnapshot,
    RateLimitWindow,
    UsageView,
    UsageWindowView,
)

__all__ = [
    "AssistantEvent",
    "CompactBoundaryEvent",
    "ControlRequestEvent",
    "ControlResponseEvent",
    "EventKind",
    "InitEvent",
    "ProtocolEvent",
    "ResultEvent",
    "StatusEvent",
    "TextBlock",
    "ThinkingBlock",
    "ToolResultBlock",
    "ToolUseBlock",
    "Usage",
    "UserEvent",
    "PermissionDecision",
    "PermissionEntry",
    "PermissionRequest",
    "PermissionStatus",
    "ProcessErrorKind",
    "SendOptions",
    "SessionState",
    "SessionTotals",
    "TurnSummary",
    "CachedRateLimits",
    "RateLimitSnapshot",
    "RateLimitWindow",
    "UsageView",
    "UsageWindowView",
]
