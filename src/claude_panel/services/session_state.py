"""Session state machine driven by classified protocol events."""

import logging
import time
from dataclasses import replace
from typing import Protocol

from PySide6.QtCore import QObject, Signal, Slot, Property

from claude_panel.types.events import (
    AssistantEvent,
    CompactBoundaryEvent,
    ControlResponseEvent,
    EventKind,
    InitEvent,
    ProtocolEvent,
    ResultEvent,
    StatusEvent,
    TextBlock,
    ThinkingBlock,
    ToolUseBlock,
    Usage,
    UserEvent,
)
from claude_panel.types.session import SessionState, SessionTotals, TurnSummary

logger = logging.getLogger(__name__)

LOGIN_ERROR_MARKERS = ("Invalid API key", "Please run /login")

# Account metadata keys that carry the subscription tier, in preference order
TIER_KEYS = ("subscriptionType", "subscription_type", "tier", "plan")


class ConversationStore(Protocol):
    """Persistence collaborator that records a finished turn."""

    def save_session(self, session_id: str, totals: SessionTotals) -> None: ...


class SessionStateMachine(QObject):
    """Owns session identity, cumulative counters and per-turn state.

    Transitions: init -> ACTIVE, result -> AWAITING_RESULT (once per turn),
    process exit -> ENDED, reset() -> UNINITIALIZED. Token counters only
    grow between resets.
    """

    state_changed = Signal(str)
    processing_changed = Signal(bool)
    session_info = Signal(dict)
    account_updated = Signal(dict)
    text_received = Signal(str)
    thinking_received = Signal(str)
    tool_used = Signal(dict)
    tool_result_received = Signal(dict)
    tokens_updated = Signal(dict)
    totals_updated = Signal(dict)
    compacting = Signal(bool)
    compact_boundary = Signal(dict)
    login_required = Signal(str)
    warning = Signal(str)

    def __init__(self, store: ConversationStore | None = None, subscription_tier: str = "", parent=None):
        super().__init__(parent)
        self._store = store
        self._state = SessionState.UNINITIALIZED
        self._session_id: str | None = None
        self._tools: list = []
        self._mcp_servers: list = []
        self._totals = SessionTotals()
        self._processing = False
        self._has_output = False
        self._subscription_tier = subscription_tier
        self._pending_tool_uses: dict[str, str] = {}  # tool_use_id -> tool name
        self._turn_started: float | None = None
        self._turn_finalized = False
        self._last_turn: TurnSummary | None = None

        self._handlers = {
            EventKind.INIT: self._on_init,
            EventKind.STATUS: self._on_status,
            EventKind.COMPACT_BOUNDARY: self._on_compact_boundary,
            EventKind.ASSISTANT: self._on_assistant,
            EventKind.USER: self._on_user,
            EventKind.RESULT: self._on_result,
            EventKind.CONTROL_RESPONSE: self._on_control_response,
        }

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def totals(self) -> SessionTotals:
        return replace(self._totals)

    @property
    def last_turn(self) -> TurnSummary | None:
        return self._last_turn

    @property
    def subscription_tier(self) -> str:
        return self._subscription_tier

    @property
    def has_output(self) -> bool:
        return self._has_output

    @property
    def pending_tool_uses(self) -> set[str]:
        return set(self._pending_tool_uses)

    @property
    def tools(self) -> list:
        return list(self._tools)

    @property
    def mcp_servers(self) -> list:
        return list(self._mcp_servers)

    def _get_processing(self) -> bool:
        return self._processing

    isProcessing = Property(bool, _get_processing, notify=processing_changed)

    def _get_session_id(self) -> str:
        return self._session_id or ""

    sessionId = Property(str, _get_session_id, notify=session_info)

    def set_session_id(self, session_id: str | None):
        """Adopt a session id restored from history (resume)."""
        self._session_id = session_id or None

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @Slot()
    def begin_turn(self):
        self._turn_started = time.monotonic()
        self._turn_finalized = False
        self._has_output = False
        self._set_processing(True)

    @Slot()
    def cancel_turn(self):
        """User stop: clear in-flight state without raising an error."""
        self._pending_tool_uses.clear()
        self._turn_started = None
        self._set_processing(False)

    @Slot()
    def mark_process_ended(self):
        if self._pending_tool_uses:
            logger.debug("Process ended with %d unanswered tool use(s)", len(self._pending_tool_uses))
            self._pending_tool_uses.clear()
        self._set_processing(False)
        if self._state != SessionState.UNINITIALIZED:
            self._set_state(SessionState.ENDED)

    @Slot()
    def reset(self):
        """Start a new session: zero all counters and forget the session id."""
        self._session_id = None
        self._tools = []
        self._mcp_servers = []
        self._totals = SessionTotals()
        self._pending_tool_uses.clear()
        self._has_output = False
        self._turn_started = None
        self._turn_finalized = False
        self._last_turn = None
        self._set_processing(False)
        self._set_state(SessionState.UNINITIALIZED)
        self.totals_updated.emit(self._totals.to_dict())

    def handle_event(self, event: ProtocolEvent):
        handler = self._handlers.get(event.kind)
        if handler is not None:
            handler(event)

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def _on_init(self, event: InitEvent):
        self._session_id = event.session_id
        self._tools = list(event.tools)
        self._mcp_servers = list(event.mcp_servers)
        self._turn_finalized = False
        self._set_state(SessionState.ACTIVE)
        self.session_info.emit({
            "sessionId": event.session_id,
            "tools": self._tools,
            "mcpServers": self._mcp_servers,
            "model": event.model,
        })

    def _on_status(self, event: StatusEvent):
        self.compacting.emit(event.is_compacting)

    def _on_compact_boundary(self, event: CompactBoundaryEvent):
        self.compact_boundary.emit({"trigger": event.trigger, "preTokens": event.pre_tokens})

    def _on_assistant(self, event: AssistantEvent):
        if event.usage is not None:
            self._add_usage(event.usage)

        for block in event.blocks:
            if isinstance(block, TextBlock):
                self._has_output = True
                self.text_received.emit(block.text)
            elif isinstance(block, ThinkingBlock):
                self.thinking_received.emit(block.thinking)
            elif isinstance(block, ToolUseBlock):
                self._pending_tool_uses[block.id] = block.name
                self.tool_used.emit({
                    "toolUseId": block.id,
                    "toolName": block.name,
                    "rawInput": block.input,
                })

    def _on_user(self, event: UserEvent):
        if event.usage is not None:
            self._add_usage(event.usage)

        for result in event.results:
            tool_name = self._pending_tool_uses.pop(result.tool_use_id, None)
            if tool_name is None:
                logger.debug("Tool result for unknown tool use %s", result.tool_use_id)
            self.tool_result_received.emit({
                "toolUseId": result.tool_use_id,
                "toolName": tool_name or "",
                "content": result.content,
                "isError": result.is_error,
            })

    def _on_result(self, event: ResultEvent):
        if self._turn_finalized:
            logger.debug("Duplicate result event ignored")
            return
        self._turn_finalized = True

        if event.session_id and event.session_id != self._session_id:
            self._session_id = event.session_id
            self.session_info.emit({
                "sessionId": event.session_id,
                "tools": self._tools,
                "mcpServers": self._mcp_servers,
                "model": "",
            })

        is_error = event.is_error or event.subtype != "success"
        if event.is_error and any(m in event.result for m in LOGIN_ERROR_MARKERS):
            self.login_required.emit(event.result)

        duration_ms = event.duration_ms
        if not duration_ms and self._turn_started is not None:
            duration_ms = int((time.monotonic() - self._turn_started) * 1000)
        self._turn_started = None

        self._totals.request_count += 1
        self._totals.total_cost += event.total_cost_usd
        self._last_turn = TurnSummary(
            cost=event.total_cost_usd,
            duration_ms=duration_ms,
            num_turns=event.num_turns,
            is_error=is_error,
            result=event.result,
        )

        self._set_state(SessionState.AWAITING_RESULT)
        self._set_processing(False)

        payload = self._totals.to_dict()
        payload.update({
            "currentCost": event.total_cost_usd,
            "currentDuration": duration_ms,
            "currentTurns": event.num_turns,
            "isError": is_error,
        })
        self.totals_updated.emit(payload)
        self._save()

    def _on_control_response(self, event: ControlResponseEvent):
        if not event.account:
            return
        for key in TIER_KEYS:
            tier = event.account.get(key)
            if isinstance(tier, str) and tier:
                self._subscription_tier = tier
                break
        self.account_updated.emit({
            "account": event.account,
            "subscriptionTier": self._subscription_tier,
        })

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _add_usage(self, usage: Usage):
        self._totals.input_tokens += max(0, usage.input_tokens)
        self._totals.output_tokens += max(0, usage.output_tokens)
        self._totals.cache_read_tokens += max(0, usage.cache_read_input_tokens)
        self._totals.cache_creation_tokens += max(0, usage.cache_creation_input_tokens)
        self.tokens_updated.emit({
            "totalTokensInput": self._totals.input_tokens,
            "totalTokensOutput": self._totals.output_tokens,
            "totalCacheReadTokens": self._totals.cache_read_tokens,
            "totalCacheCreationTokens": self._totals.cache_creation_tokens,
            "currentInputTokens": usage.input_tokens,
            "currentOutputTokens": usage.output_tokens,
            "cacheReadTokens": usage.cache_read_input_tokens,
            "cacheCreationTokens": usage.cache_creation_input_tokens,
        })

    def _save(self):
        if not self._session_id:
            message = "Turn finished without a session id; conversation not saved"
            logger.warning(message)
            self.warning.emit(message)
            return
        if self._store is None:
            return
        try:
            self._store.save_session(self._session_id, replace(self._totals))
        except Exception:
            logger.exception("Failed to save session %s", self._session_id)

    def _set_state(self, state: SessionState):
        if self._state != state:
            self._state = state
            self.state_changed.emit(state.value)

    def _set_processing(self, value: bool):
        if self._processing != value:
            self._processing = value
            self.processing_changed.emit(value)
