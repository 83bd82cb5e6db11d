"""Application configuration manager wrapping QSettings."""

import logging
import shlex

from PySide6.QtCore import QObject, Signal, Slot, QSettings

logger = logging.getLogger(__name__)

# Default values
DEFAULTS = {
    "cli/command": "claude",
    "cli/model": "default",
    "cli/thinkingIntensity": "think",
    "permissions/yoloMode": False,
    "usage/pollIntervalMs": 5 * 60 * 1000,
    "usage/commandTimeoutMs": 60_000,
    "usage/killGraceMs": 5000,
    "usage/sessionEndDelayMs": 1000,
    "account/subscriptionTier": "",
    "advanced/debugLogging": False,
}


class ConfigManager(QObject):
    """Centralized settings for the CLI coordinator."""

    settings_changed = Signal(str)  # key

    def __init__(self, parent=None):
        super().__init__(parent)
        self._settings = QSettings()

    @Slot(str, result=str)
    def get_string(self, key: str) -> str:
        return str(self._settings.value(key, DEFAULTS.get(key, "")))

    @Slot(str, result=int)
    def get_int(self, key: str) -> int:
        val = self._settings.value(key, DEFAULTS.get(key, 0))
        try:
            return int(val)
        except (ValueError, TypeError):
            return DEFAULTS.get(key, 0)

    @Slot(str, result=bool)
    def get_bool(self, key: str) -> bool:
        val = self._settings.value(key, DEFAULTS.get(key, False))
        if isinstance(val, bool):
            return val
        if isinstance(val, str):
            return val.lower() in ("true", "1", "yes")
        return bool(val)

    @Slot(str, str)
    def set_string(self, key: str, value: str):
        self._settings.setValue(key, value)
        self.settings_changed.emit(key)

    @Slot(str, int)
    def set_int(self, key: str, value: int):
        self._settings.setValue(key, value)
        self.settings_changed.emit(key)

    @Slot(str, bool)
    def set_bool(self, key: str, value: bool):
        self._settings.setValue(key, value)
        self.settings_changed.emit(key)

    # Typed accessors used by the services

    def cli_command(self) -> list[str]:
        """The CLI invocation split into argv, e.g. ``["claude"]``."""
        raw = self.get_string("cli/command").strip()
        try:
            parts = shlex.split(raw)
        except ValueError:
            logger.warning("Invalid cli/command setting %r, using default", raw)
            parts = []
        return parts or [DEFAULTS["cli/command"]]

    def yolo_mode(self) -> bool:
        return self.get_bool("permissions/yoloMode")

    @Slot(bool)
    def set_yolo_mode(self, enabled: bool):
        self.set_bool("permissions/yoloMode", enabled)

    def subscription_tier(self) -> str:
        return self.get_string("account/subscriptionTier")

    @Slot(str)
    def set_subscription_tier(self, tier: str):
        if tier and tier != self.subscription_tier():
            self.set_string("account/subscriptionTier", tier)
