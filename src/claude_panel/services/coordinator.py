"""Wires the CLI process, session state, permissions and usage together."""

import logging
from collections import deque

from PySide6.QtCore import QObject, Signal, Slot

from claude_panel.services.config_manager import ConfigManager
from claude_panel.services.permission_broker import PermissionBroker
from claude_panel.services.permission_store import PermissionStore
from claude_panel.services.process_manager import CliProcessManager
from claude_panel.services.rate_limit_cache import RateLimitCache
from claude_panel.services.session_state import ConversationStore, SessionStateMachine
from claude_panel.services.usage_service import UsageService
from claude_panel.types.events import ControlRequestEvent, EventKind
from claude_panel.types.session import ProcessErrorKind, SendOptions
from claude_panel.utils.event_classifier import classify_event
from claude_panel.utils.subscriptions import SubscriptionBag

logger = logging.getLogger(__name__)


class SessionCoordinator(QObject):
    """Single entry point for inward commands from the panel.

    Process output is queued on one mailbox and drained in arrival order, so
    a signal handler that triggers more output cannot interleave records.
    """

    session_error = Signal(str, str)  # ProcessErrorKind value, message
    login_required = Signal(str)
    warning = Signal(str)

    def __init__(
        self,
        config: ConfigManager | None = None,
        store: ConversationStore | None = None,
        permission_store: PermissionStore | None = None,
        rate_limit_cache: RateLimitCache | None = None,
        parent=None,
    ):
        super().__init__(parent)
        self._config = config if config is not None else ConfigManager(self)
        self._mailbox: deque[dict] = deque()
        self._draining = False
        self._disposed = False

        self._process = CliProcessManager(
            self._config.cli_command(),
            timeout_ms=self._config.get_int("usage/commandTimeoutMs"),
            kill_grace_ms=self._config.get_int("usage/killGraceMs"),
            parent=self,
        )
        self._state = SessionStateMachine(store, self._config.subscription_tier(), self)
        self._broker = PermissionBroker(
            writer=self._process.write_line,
            store=permission_store if permission_store is not None else PermissionStore(),
            auto_approve=self._config.yolo_mode(),
            parent=self,
        )
        self._usage = UsageService(
            self._process,
            cache=rate_limit_cache,
            poll_interval_ms=self._config.get_int("usage/pollIntervalMs"),
            session_end_delay_ms=self._config.get_int("usage/sessionEndDelayMs"),
            parent=self,
        )

        self._subscriptions = SubscriptionBag()
        self._subscriptions.add(self._process.record_received, self._on_record)
        self._subscriptions.add(self._process.session_finished, self._on_process_finished)
        self._subscriptions.add(self._process.session_error, self._on_process_error)
        self._subscriptions.add(self._state.login_required, self.login_required.emit)
        self._subscriptions.add(self._state.warning, self.warning.emit)
        self._subscriptions.add(self._state.account_updated, self._on_account_updated)
        self._subscriptions.add(self._config.settings_changed, self._on_setting_changed)

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    @property
    def config(self) -> ConfigManager:
        return self._config

    @property
    def process(self) -> CliProcessManager:
        return self._process

    @property
    def state(self) -> SessionStateMachine:
        return self._state

    @property
    def broker(self) -> PermissionBroker:
        return self._broker

    @property
    def usage(self) -> UsageService:
        return self._usage

    # ------------------------------------------------------------------
    # Inward commands
    # ------------------------------------------------------------------

    @Slot()
    def start(self):
        """Begin usage polling and verify the installed CLI."""
        self._usage.start()
        self._process.check_cli_version()

    def default_options(self) -> SendOptions:
        return SendOptions(
            model=self._config.get_string("cli/model"),
            thinking_intensity=self._config.get_string("cli/thinkingIntensity"),
            yolo_mode=self._config.yolo_mode(),
        )

    def send_message(self, text: str, options: SendOptions | None = None) -> bool:
        """Start a turn. Returns False if the text is empty or a turn is running."""
        if self._disposed or not text.strip():
            return False
        if self._process.session_running:
            message = "A response is still in progress"
            logger.warning(message)
            self.warning.emit(message)
            return False

        if options is None:
            options = self.default_options()
        self._state.begin_turn()
        if not self._process.start_session(text, options, self._state.session_id):
            self._state.cancel_turn()
            return False
        return True

    @Slot()
    def stop(self):
        """User stop. Not reported as an error."""
        self._mailbox.clear()
        self._process.stop_session()
        self._state.cancel_turn()

    @Slot()
    def new_session(self):
        self._mailbox.clear()
        self._process.stop_session()
        self._broker.abandon_all()
        self._state.reset()

    @Slot(str, str, result=bool)
    def resolve_permission(self, request_id: str, decision: str) -> bool:
        return self._broker.resolve(request_id, decision)

    @Slot()
    def refresh_usage(self):
        self._usage.refresh()

    @Slot(bool)
    def set_auto_approve(self, enabled: bool):
        self._broker.set_auto_approve(enabled)
        if self._config.yolo_mode() != enabled:
            self._config.set_yolo_mode(enabled)

    @Slot()
    def dispose(self):
        if self._disposed:
            return
        self._disposed = True
        self._subscriptions.dispose()
        self._mailbox.clear()
        self._usage.dispose()
        self._process.dispose()
        self._broker.abandon_all()

    # ------------------------------------------------------------------
    # Process output
    # ------------------------------------------------------------------

    @Slot(dict)
    def _on_record(self, record: dict):
        self._mailbox.append(record)
        if self._draining:
            return
        self._draining = True
        try:
            while self._mailbox:
                self._dispatch(self._mailbox.popleft())
        finally:
            self._draining = False

    def _dispatch(self, record: dict):
        event = classify_event(record)
        if event is None:
            logger.debug("Ignoring unrecognized record type %r", record.get("type"))
            return

        if isinstance(event, ControlRequestEvent):
            # The classifier only yields permission requests
            self._broker.register(event)
            return

        self._state.handle_event(event)
        if event.kind == EventKind.RESULT:
            # One turn per process: the CLI exits once its stdin closes
            self._process.end_input()

    @Slot(int)
    def _on_process_finished(self, exit_code: int):
        logger.debug("Claude process finished with code %d", exit_code)
        self._state.mark_process_ended()
        self._broker.abandon_all()
        self._usage.on_session_end()

    @Slot(str, str)
    def _on_process_error(self, kind: str, message: str):
        if kind == ProcessErrorKind.AUTH_REQUIRED.value:
            self.login_required.emit(message)
        self.session_error.emit(kind, message)

    @Slot(dict)
    def _on_account_updated(self, info: dict):
        self._config.set_subscription_tier(info.get("subscriptionTier", ""))

    @Slot(str)
    def _on_setting_changed(self, key: str):
        if key == "cli/command":
            self._process.set_command(self._config.cli_command())
        elif key == "permissions/yoloMode":
            self._broker.set_auto_approve(self._config.yolo_mode())
