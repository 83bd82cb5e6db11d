"""Single-record JSON cache of the last successful rate-limit fetch."""

import json
import logging
import time
from pathlib import Path

from claude_panel.types.usage import CachedRateLimits, RateLimitSnapshot, RateLimitWindow

logger = logging.getLogger(__name__)

CACHE_FILE = Path.home() / ".claude" / "rate-limit-cache.json"


class RateLimitCache:
    """Reads and overwrites the rate-limit cache file."""

    def __init__(self, path: str | Path | None = None):
        self._path = Path(path) if path is not None else CACHE_FILE

    @property
    def path(self) -> Path:
        return self._path

    def read(self) -> CachedRateLimits | None:
        """Load the cached record; None if missing or malformed."""
        if not self._path.exists():
            return None
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError, UnicodeDecodeError):
            logger.debug("Unreadable rate-limit cache %s", self._path, exc_info=True)
            return None
        if not isinstance(data, dict):
            return None

        session = data.get("session5h")
        weekly = data.get("weekly7d")
        timestamp = data.get("timestamp")
        if not all(_is_number(v) for v in (session, weekly, timestamp)):
            return None

        return CachedRateLimits(
            snapshot=RateLimitSnapshot(
                session_5h=RateLimitWindow(float(session), _optional_int(data.get("reset5h"))),
                weekly_7d=RateLimitWindow(float(weekly), _optional_int(data.get("reset7d"))),
            ),
            timestamp=int(timestamp),
        )

    def write(self, snapshot: RateLimitSnapshot, now_ms: int | None = None) -> CachedRateLimits:
        """Overwrite the cache with a fresh snapshot."""
        record = CachedRateLimits(
            snapshot=snapshot,
            timestamp=now_ms if now_ms is not None else int(time.time() * 1000),
        )
        data = {
            "session5h": snapshot.session_5h.utilization,
            "weekly7d": snapshot.weekly_7d.utilization,
            "timestamp": record.timestamp,
        }
        if snapshot.session_5h.reset_at is not None:
            data["reset5h"] = snapshot.session_5h.reset_at
        if snapshot.weekly_7d.reset_at is not None:
            data["reset7d"] = snapshot.weekly_7d.reset_at

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        except OSError:
            logger.warning("Failed to write rate-limit cache %s", self._path, exc_info=True)
        return record

    def clear(self):
        try:
            self._path.unlink(missing_ok=True)
        except OSError:
            logger.debug("Failed to remove rate-limit cache", exc_info=True)


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _optional_int(value) -> int | None:
    return int(value) if _is_number(value) else None
