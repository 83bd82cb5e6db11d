"""Tolerant parser for rate-limit headers echoed in CLI debug output.

The upstream header format is not contractually stable, so matching is
deliberately permissive:

* headers may appear quoted or bare, separated by ``:`` or ``": "``;
* unknown headers are ignored;
* a utilization ratio in [0, 2] is clamped to at most 1.0; anything outside
  that range is discarded. Values between 1 and 2 have been seen when the
  sender over-reports, so they are clamped rather than rejected.
"""

import re

from claude_panel.types.usage import RateLimitSnapshot, RateLimitWindow

MAX_ACCEPTED_RATIO = 2.0

_SEP = r"""["']?\s*[":]\s*["']?"""

SESSION_UTILIZATION_RE = re.compile(
    r"""["']?anthropic-ratelimit-unified-5h-utilization""" + _SEP + r"([0-9.]+)",
    re.IGNORECASE,
)
WEEKLY_UTILIZATION_RE = re.compile(
    r"""["']?anthropic-ratelimit-unified-7d-utilization""" + _SEP + r"([0-9.]+)",
    re.IGNORECASE,
)
SESSION_RESET_RE = re.compile(
    r"""["']?anthropic-ratelimit-unified-5h-reset""" + _SEP + r"([0-9]+)",
    re.IGNORECASE,
)
WEEKLY_RESET_RE = re.compile(
    r"""["']?anthropic-ratelimit-unified-7d-reset""" + _SEP + r"([0-9]+)",
    re.IGNORECASE,
)


def has_rate_limit_markers(output: str) -> bool:
    lowered = output.lower()
    return "ratelimit" in lowered or "rate limit" in lowered or "utilization" in lowered


def clamp_ratio(value: float) -> float | None:
    """Clamp a utilization ratio into [0, 1]; None if out of the accepted range."""
    if value != value or value < 0 or value > MAX_ACCEPTED_RATIO:
        return None
    return min(1.0, value)


def parse_rate_limit_headers(output: str) -> RateLimitSnapshot | None:
    """Extract both utilization windows from combined stdout+stderr text.

    Returns None when no marker is present or neither ratio parses.
    """
    if not output or not has_rate_limit_markers(output):
        return None

    session = _match_ratio(SESSION_UTILIZATION_RE, output)
    weekly = _match_ratio(WEEKLY_UTILIZATION_RE, output)
    if session is None and weekly is None:
        return None

    return RateLimitSnapshot(
        session_5h=RateLimitWindow(
            utilization=session if session is not None else 0.0,
            reset_at=_match_int(SESSION_RESET_RE, output),
        ),
        weekly_7d=RateLimitWindow(
            utilization=weekly if weekly is not None else 0.0,
            reset_at=_match_int(WEEKLY_RESET_RE, output),
        ),
    )


def _match_ratio(pattern: re.Pattern, output: str) -> float | None:
    match = pattern.search(output)
    if not match:
        return None
    try:
        value = float(match.group(1).rstrip("."))
    except ValueError:
        return None
    return clamp_ratio(value)


def _match_int(pattern: re.Pattern, output: str) -> int | None:
    match = pattern.search(output)
    if not match:
        return None
    return int(match.group(1))
