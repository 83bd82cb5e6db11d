"""Tracks tool-use permission requests and writes decisions back to the CLI."""

import logging
from typing import Callable

from PySide6.QtCore import QObject, Signal, Slot, Property

from claude_panel.services.permission_store import PermissionStore, extract_match_subject
from claude_panel.types.events import ControlRequestEvent
from claude_panel.types.permissions import (
    DECISION_STATUS,
    PermissionDecision,
    PermissionRequest,
    PermissionStatus,
)

logger = logging.getLogger(__name__)

# Tools that need a human answer even when auto-approve is on
INTERACTIVE_TOOLS = frozenset({"AskUserQuestion"})

# (first word, subcommand, pattern); an empty subcommand matches anything
COMMAND_PATTERNS: list[tuple[str, str, str]] = [
    ("npm", "install", "npm install *"),
    ("npm", "i", "npm i *"),
    ("npm", "run", "npm run *"),
    ("npm", "test", "npm test *"),
    ("npx", "", "npx *"),
    ("git", "add", "git add *"),
    ("git", "commit", "git commit *"),
    ("git", "checkout", "git checkout *"),
    ("git", "branch", "git branch *"),
    ("git", "diff", "git diff *"),
    ("git", "log", "git log *"),
    ("git", "status", "git status"),
    ("pip", "install", "pip install *"),
    ("pip3", "install", "pip3 install *"),
    ("uv", "run", "uv run *"),
    ("pytest", "", "pytest *"),
    ("cargo", "build", "cargo build *"),
    ("cargo", "test", "cargo test *"),
    ("go", "build", "go build *"),
    ("go", "test", "go test *"),
    ("pnpm", "install", "pnpm install *"),
    ("pnpm", "add", "pnpm add *"),
    ("yarn", "add", "yarn add *"),
    ("make", "", "make *"),
    ("mkdir", "", "mkdir *"),
    ("cat", "", "cat *"),
    ("ls", "", "ls *"),
]


def command_pattern(command: str) -> str:
    """Suggest a wildcard pattern covering a shell command and its variants."""
    parts = command.split()
    if not parts:
        return ""
    first = parts[0]
    sub = parts[1] if len(parts) > 1 else ""
    for cmd, subcommand, pattern in COMMAND_PATTERNS:
        if first == cmd and (not subcommand or sub == subcommand):
            return pattern
    return f"{first} *" if len(parts) > 1 else first


def suggest_pattern(tool_name: str, tool_input: dict) -> str:
    """Pattern to store for allow-always; the literal match subject outside Bash."""
    subject = extract_match_subject(tool_name, tool_input)
    if tool_name == "Bash":
        return command_pattern(subject)
    return subject


class PermissionBroker(QObject):
    """Pending permission requests keyed by request id.

    Decisions are written through ``writer``, a callable that takes the
    response dict and returns False when the child's input channel is gone.
    """

    permission_requested = Signal(dict)
    permission_resolved = Signal(str, str)  # request_id, status
    auto_approve_changed = Signal()

    def __init__(
        self,
        writer: Callable[[dict], bool] | None = None,
        store: PermissionStore | None = None,
        auto_approve: bool = False,
        parent=None,
    ):
        super().__init__(parent)
        self._writer = writer
        self._store = store
        self._auto_approve = auto_approve
        self._pending: dict[str, PermissionRequest] = {}

    def _get_auto_approve(self) -> bool:
        return self._auto_approve

    autoApprove = Property(bool, _get_auto_approve, notify=auto_approve_changed)

    def set_writer(self, writer: Callable[[dict], bool] | None):
        self._writer = writer

    def pending(self) -> list[PermissionRequest]:
        return list(self._pending.values())

    def get(self, request_id: str) -> PermissionRequest | None:
        return self._pending.get(request_id)

    def register(self, event: ControlRequestEvent) -> PermissionRequest:
        """Store a pending request, auto-resolving it when policy allows."""
        existing = self._pending.get(event.request_id)
        if existing is not None:
            logger.debug("Duplicate permission request %s ignored", event.request_id)
            return existing

        request = PermissionRequest(
            request_id=event.request_id,
            tool_use_id=event.tool_use_id or event.request_id,
            tool_name=event.tool_name,
            input=dict(event.input),
            description=event.description,
            suggestions=list(event.suggestions),
            decision_reason=event.decision_reason,
            blocked_path=event.blocked_path,
            pattern=suggest_pattern(event.tool_name, event.input),
        )
        self._pending[request.request_id] = request

        if self._should_auto_approve(request):
            logger.info("Auto-approving permission for %s", request.tool_name)
            self._finish(request, PermissionDecision.ALLOW, notify=False)
            return request
        if self._store is not None and self._store.is_pre_approved(request.tool_name, request.input):
            logger.info("Permission for %s matches a stored pattern", request.tool_name)
            self._finish(request, PermissionDecision.ALLOW, notify=False)
            return request

        self.permission_requested.emit(request.to_dict())
        return request

    @Slot(str, str, result=bool)
    def resolve(self, request_id: str, decision) -> bool:
        """Apply a decision. Unknown or already-resolved ids are a no-op."""
        decision = PermissionDecision(decision)
        request = self._pending.get(request_id)
        if request is None:
            logger.debug("Ignoring decision for unknown permission request %s", request_id)
            return False

        if decision == PermissionDecision.ALLOW_ALWAYS and self._store is not None:
            if request.pattern:
                self._store.add(request.tool_name, request.pattern)
            else:
                logger.info("No matchable input for %s, allowing once", request.tool_name)
        self._finish(request, decision, notify=True)
        return True

    @Slot(result=int)
    def approve_all_pending(self) -> int:
        """Resolve every pending request to allowed-once in one pass."""
        snapshot = list(self._pending.values())
        for request in snapshot:
            if request.is_pending:
                self._finish(request, PermissionDecision.ALLOW, notify=True)
        return len(snapshot)

    @Slot(bool)
    def set_auto_approve(self, enabled: bool):
        if self._auto_approve == enabled:
            return
        # Flag first, so a request registered during the sweep is auto-resolved too
        self._auto_approve = enabled
        self.auto_approve_changed.emit()
        if enabled:
            count = self.approve_all_pending()
            if count:
                logger.info("Auto-approve enabled, approved %d pending request(s)", count)

    @Slot()
    def abandon_all(self):
        """Drop pending requests when the session process goes away."""
        abandoned, self._pending = list(self._pending.values()), {}
        for request in abandoned:
            request.status = PermissionStatus.ABANDONED
            self.permission_resolved.emit(request.request_id, request.status.value)

    def _should_auto_approve(self, request: PermissionRequest) -> bool:
        return self._auto_approve and request.tool_name not in INTERACTIVE_TOOLS

    def _finish(self, request: PermissionRequest, decision: PermissionDecision, notify: bool):
        self._pending.pop(request.request_id, None)
        request.status = DECISION_STATUS[decision]
        self._write_decision(request.request_id, decision)
        if notify:
            self.permission_resolved.emit(request.request_id, request.status.value)

    def _write_decision(self, request_id: str, decision: PermissionDecision):
        if self._writer is None:
            logger.warning("No input channel for permission response %s", request_id)
            return
        response = {
            "type": "permission_response",
            "request_id": request_id,
            "decision": decision.value,
        }
        if not self._writer(response):
            logger.warning("Permission response %s not delivered, process input closed", request_id)
