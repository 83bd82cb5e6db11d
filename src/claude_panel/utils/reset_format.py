"""Human-readable formatting of rate-limit reset timestamps."""

from datetime import datetime, timezone, tzinfo

DAY_SECONDS = 24 * 60 * 60

DEFAULT_SESSION_RESET = "~5 hr"
DEFAULT_WEEKLY_RESET = "~7 days"


def _clock(local: datetime) -> str:
    hour = local.strftime("%I").lstrip("0") or "12"
    return f"{hour}:{local:%M} {local:%p}"


def format_reset_time(
    reset_at: int,
    now: datetime | None = None,
    tz: tzinfo | None = None,
) -> str:
    """Format a Unix reset timestamp relative to now.

    Already elapsed resets read "Now". Resets within 24 hours read as a
    relative "Xh Ym @ H:MM AM" with the local clock time, and anything
    further out is an absolute date and time with the time zone name.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.astimezone()

    reset = datetime.fromtimestamp(reset_at, tz=timezone.utc)
    diff = int((reset - now).total_seconds())
    if diff <= 0:
        return "Now"

    local = reset.astimezone(tz) if tz is not None else reset.astimezone()
    if diff < DAY_SECONDS:
        hours, remainder = divmod(diff, 3600)
        minutes = remainder // 60
        relative = f"{hours}h {minutes}m" if hours else f"{minutes}m"
        return f"{relative} @ {_clock(local)}"

    return f"{local:%b} {local.day} at {_clock(local)} {local.tzname()}"


def format_window_reset(
    reset_at: int | None,
    default: str,
    now: datetime | None = None,
    tz: tzinfo | None = None,
) -> str:
    if not reset_at:
        return default
    return format_reset_time(reset_at, now=now, tz=tz)
