"""Rate-limit and usage types."""

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class RateLimitWindow:
    utilization: float = 0.0          # 0..1
    reset_at: Optional[int] = None    # Unix seconds

    @property
    def percent(self) -> int:
        return round(self.utilization * 100)


@dataclass(frozen=True)
class RateLimitSnapshot:
    """Short (5h) and long (7d) window readings."""
    session_5h: RateLimitWindow = field(default_factory=RateLimitWindow)
    weekly_7d: RateLimitWindow = field(default_factory=RateLimitWindow)


@dataclass(frozen=True)
class CachedRateLimits:
    snapshot: RateLimitSnapshot
    timestamp: int  # Unix milliseconds of the write

    def age_minutes(self, now_ms: int) -> int:
        return round((now_ms - self.timestamp) / 60_000)


@dataclass(frozen=True)
class UsageWindowView:
    percent: int
    utilization: float
    resets: str


@dataclass(frozen=True)
class UsageView:
    """Usage data reshaped for display."""
    current_session: UsageWindowView
    weekly: UsageWindowView
    from_cache: bool = False

    def to_dict(self) -> dict:
        return {
            "currentSession": {
                "percent": self.current_session.percent,
                "utilization": self.current_session.utilization,
                "resetsIn": self.current_session.resets,
            },
            "weekly": {
                "percent": self.weekly.percent,
                "utilization": self.weekly.utilization,
                "resetsAt": self.weekly.resets,
            },
            "fromCache": self.from_cache,
        }
