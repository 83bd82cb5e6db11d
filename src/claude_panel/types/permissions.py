"""Permission request types."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class PermissionDecision(str, Enum):
    """Decision values written back to the CLI."""
    ALLOW = "allow"
    DENY = "deny"
    ALLOW_SESSION = "allow_session"
    ALLOW_ALWAYS = "allow_always"


class PermissionStatus(str, Enum):
    PENDING = "pending"
    ALLOWED_ONCE = "allowed_once"
    ALLOWED_FOR_SESSION = "allowed_for_session"
    ALLOWED_ALWAYS = "allowed_always"
    DENIED = "denied"
    ABANDONED = "abandoned"


DECISION_STATUS = {
    PermissionDecision.ALLOW: PermissionStatus.ALLOWED_ONCE,
    PermissionDecision.DENY: PermissionStatus.DENIED,
    PermissionDecision.ALLOW_SESSION: PermissionStatus.ALLOWED_FOR_SESSION,
    PermissionDecision.ALLOW_ALWAYS: PermissionStatus.ALLOWED_ALWAYS,
}


@dataclass
class PermissionRequest:
    request_id: str
    tool_use_id: str
    tool_name: str
    input: dict = field(default_factory=dict)
    description: str = ""
    suggestions: list = field(default_factory=list)
    decision_reason: str = ""
    blocked_path: str = ""
    pattern: str = ""
    status: PermissionStatus = PermissionStatus.PENDING
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def is_pending(self) -> bool:
        return self.status == PermissionStatus.PENDING

    def to_dict(self) -> dict:
        return {
            "id": self.request_id,
            "toolUseId": self.tool_use_id,
            "tool": self.tool_name,
            "input": self.input,
            "description": self.description,
            "suggestions": self.suggestions,
            "decisionReason": self.decision_reason,
            "blockedPath": self.blocked_path,
            "pattern": self.pattern,
            "status": self.status.value,
        }


@dataclass
class PermissionEntry:
    """A stored always-allow pattern."""
    tool_name: str
    pattern: str
    created_at: str = ""
