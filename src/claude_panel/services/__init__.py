"""Services for Claude Panel."""

from claude_panel.services.config_manager import ConfigManager
from claude_panel.services.coordinator import SessionCoordinator
from claude_panel.services.line_decoder import LineDecoder
from claude_panel.services.permission_broker import PermissionBroker
from claude_panel.services.permission_store import PermissionStore
from claude_panel.services.process_manager import CliProcessManager
from claude_panel.services.rate_limit_cache import RateLimitCache
from claude_panel.services.session_state import ConversationStore, SessionStateMachine
from claude_panel.services.usage_service import UsageService

__all__ = [
    "ConfigManager",
    "SessionCoordinator",
    "LineDecoder",
    "PermissionBroker",
    "PermissionStore",
    "CliProcessManager",
    "RateLimitCache",
    "ConversationStore",
    "SessionStateMachine",
    "UsageService",
]
