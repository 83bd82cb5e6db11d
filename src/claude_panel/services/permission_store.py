"""Persistent always-allow patterns for tool permissions."""

import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path

from claude_panel.types.permissions import PermissionEntry

logger = logging.getLogger(__name__)

DATA_DIR = Path.home() / ".local" / "share" / "claude-panel"
PERMISSIONS_FILE = DATA_DIR / "permissions.json"

# Tools whose input yields a matchable string, and the key it lives under
_MATCH_KEYS = {
    "Bash": "command",
    "Read": "file_path",
    "Write": "file_path",
    "Edit": "file_path",
    "MultiEdit": "file_path",
    "Glob": "pattern",
    "Grep": "pattern",
}


class PermissionStore:
    """JSON-file store of ``{toolName, pattern, createdAt}`` entries."""

    def __init__(self, path: str | Path | None = None):
        self._path = Path(path) if path is not None else PERMISSIONS_FILE
        self._entries: list[PermissionEntry] = []
        self._load()

    def entries(self) -> list[PermissionEntry]:
        return list(self._entries)

    def add(self, tool_name: str, pattern: str):
        if not tool_name or not pattern:
            return
        if any(e.tool_name == tool_name and e.pattern == pattern for e in self._entries):
            return
        self._entries.append(PermissionEntry(
            tool_name=tool_name,
            pattern=pattern,
            created_at=datetime.now(timezone.utc).isoformat(),
        ))
        self._save()

    def remove(self, tool_name: str, pattern: str):
        self._entries = [
            e for e in self._entries
            if not (e.tool_name == tool_name and e.pattern == pattern)
        ]
        self._save()

    def clear(self):
        self._entries = []
        self._save()

    def is_pre_approved(self, tool_name: str, tool_input: dict) -> bool:
        """Check a tool invocation against the stored patterns."""
        subject = extract_match_subject(tool_name, tool_input)
        if not subject:
            return False
        return any(
            e.tool_name == tool_name and matches_pattern(subject, e.pattern)
            for e in self._entries
        )

    def _load(self):
        if not self._path.exists():
            self._entries = []
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            self._entries = [
                PermissionEntry(
                    tool_name=d["toolName"],
                    pattern=d["pattern"],
                    created_at=d.get("createdAt", ""),
                )
                for d in data.get("allowedPatterns", [])
            ]
        except (json.JSONDecodeError, OSError, KeyError, TypeError, AttributeError):
            logger.warning("Corrupt permissions file %s, starting empty", self._path)
            self._entries = []

    def _save(self):
        data = {
            "allowedPatterns": [
                {"toolName": e.tool_name, "pattern": e.pattern, "createdAt": e.created_at}
                for e in self._entries
            ]
        }
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        except OSError:
            logger.warning("Failed to save permissions", exc_info=True)


def extract_match_subject(tool_name: str, tool_input: dict) -> str:
    key = _MATCH_KEYS.get(tool_name)
    if key is None or not isinstance(tool_input, dict):
        return ""
    value = tool_input.get(key)
    return value.strip() if isinstance(value, str) else ""


def matches_pattern(subject: str, pattern: str) -> bool:
    """Exact match, or glob-style match where ``*`` spans any characters."""
    if subject == pattern:
        return True
    regex = ".*".join(re.escape(part) for part in pattern.split("*"))
    return re.fullmatch(regex, subject, re.DOTALL) is not None
