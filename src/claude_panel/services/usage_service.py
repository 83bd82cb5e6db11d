"""Periodic rate-limit telemetry scraped from the claude CLI."""

import logging
from concurrent.futures import Future
from datetime import datetime

from PySide6.QtCore import QObject, Signal, Slot, Property, QTimer

from claude_panel.services.process_manager import CliProcessManager
from claude_panel.services.rate_limit_cache import RateLimitCache
from claude_panel.types.usage import RateLimitSnapshot, UsageView, UsageWindowView
from claude_panel.utils.rate_limit_parser import has_rate_limit_markers, parse_rate_limit_headers
from claude_panel.utils.reset_format import (
    DEFAULT_SESSION_RESET,
    DEFAULT_WEEKLY_RESET,
    format_window_reset,
)

logger = logging.getLogger(__name__)

POLL_INTERVAL_MS = 5 * 60 * 1000
SESSION_END_DELAY_MS = 1000


def build_usage_view(snapshot: RateLimitSnapshot, from_cache: bool = False,
                     now: datetime | None = None) -> UsageView:
    session = snapshot.session_5h
    weekly = snapshot.weekly_7d
    return UsageView(
        current_session=UsageWindowView(
            percent=session.percent,
            utilization=session.utilization,
            resets=format_window_reset(session.reset_at, DEFAULT_SESSION_RESET, now),
        ),
        weekly=UsageWindowView(
            percent=weekly.percent,
            utilization=weekly.utilization,
            resets=format_window_reset(weekly.reset_at, DEFAULT_WEEKLY_RESET, now),
        ),
        from_cache=from_cache,
    )


class UsageService(QObject):
    """Polls rate-limit usage every few minutes with a disk-cache fallback.

    Fetches are single flight: a second request while one is outstanding
    returns the same future. A failed fetch shows the cached reading when
    there is one, otherwise emits ``usage_error``.
    """

    usage_updated = Signal(dict)
    usage_error = Signal(str)
    fetching_changed = Signal()

    def __init__(
        self,
        process_manager: CliProcessManager,
        cache: RateLimitCache | None = None,
        poll_interval_ms: int = POLL_INTERVAL_MS,
        session_end_delay_ms: int = SESSION_END_DELAY_MS,
        parent=None,
    ):
        super().__init__(parent)
        self._process_manager = process_manager
        self._cache = cache if cache is not None else RateLimitCache()
        self._session_end_delay_ms = session_end_delay_ms
        self._future: Future | None = None
        self._last_view: UsageView | None = None
        self._disposed = False

        self._poll_timer = QTimer(self)
        self._poll_timer.setInterval(poll_interval_ms)
        self._poll_timer.timeout.connect(self._on_poll)

        self._session_end_timer = QTimer(self)
        self._session_end_timer.setSingleShot(True)
        self._session_end_timer.timeout.connect(self.refresh)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    def _get_fetching(self) -> bool:
        return self._future is not None

    fetching = Property(bool, _get_fetching, notify=fetching_changed)

    @property
    def last_view(self) -> UsageView | None:
        return self._last_view

    @property
    def polling(self) -> bool:
        return self._poll_timer.isActive()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @Slot()
    def start(self):
        """Show the cached reading right away, then poll live."""
        if self._disposed:
            return
        cached = self._cache.read()
        if cached is not None:
            logger.debug("Showing cached usage from %s", cached.timestamp)
            self._publish(build_usage_view(cached.snapshot, from_cache=True))
        self._poll_timer.start()
        self.fetch_usage_data()

    @Slot()
    def dispose(self):
        if self._disposed:
            return
        self._disposed = True
        self._poll_timer.stop()
        self._session_end_timer.stop()
        # Dropped, not resolved: nothing may be emitted after teardown
        self._future = None
        self._process_manager.dispose_diagnostic()

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    @Slot()
    def refresh(self):
        self.fetch_usage_data()

    @Slot()
    def on_session_end(self):
        """Refresh shortly after a session ends, once usage has settled."""
        if not self._disposed:
            self._session_end_timer.start(self._session_end_delay_ms)

    @Slot()
    def _on_poll(self):
        self.fetch_usage_data()

    def fetch_usage_data(self) -> Future:
        """Start a fetch, or join the one in flight. Resolves to a UsageView or None."""
        if self._future is not None:
            return self._future
        if self._disposed:
            future = Future()
            future.set_result(None)
            return future

        result = Future()
        self._future = result
        self.fetching_changed.emit()
        diagnostic = self._process_manager.run_diagnostic()
        diagnostic.add_done_callback(lambda f: self._on_diagnostic_done(f, result))
        return result

    def _on_diagnostic_done(self, diagnostic: Future, result: Future):
        if result is not self._future:
            # Disposed while in flight
            return
        self._future = None
        view = None
        try:
            view = self._handle_output(diagnostic.result())
        except Exception:
            logger.exception("Failed to process usage output")
        finally:
            result.set_result(view)
            self.fetching_changed.emit()

    def _handle_output(self, output: str | None) -> UsageView | None:
        if output is None:
            return self._fall_back("Usage command failed or timed out")
        if not has_rate_limit_markers(output):
            return self._fall_back("No rate limit information in CLI output")

        snapshot = parse_rate_limit_headers(output)
        if snapshot is None:
            return self._fall_back("Could not parse rate limit headers")

        self._cache.write(snapshot)
        view = build_usage_view(snapshot)
        logger.info("Usage: session %d%%, weekly %d%%",
                    view.current_session.percent, view.weekly.percent)
        self._publish(view)
        return view

    def _fall_back(self, reason: str) -> UsageView | None:
        cached = self._cache.read()
        if cached is None:
            logger.warning("%s, no cached usage available", reason)
            self.usage_error.emit(reason)
            return None
        logger.info("%s, showing cached usage", reason)
        view = build_usage_view(cached.snapshot, from_cache=True)
        self._publish(view)
        return view

    def _publish(self, view: UsageView):
        self._last_view = view
        self.usage_updated.emit(view.to_dict())
