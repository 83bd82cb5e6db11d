"""Disposable subscriptions over Qt signals."""

import logging
from typing import Callable

logger = logging.getLogger(__name__)


class Subscription:
    """Handle for one signal connection; dispose() detaches only that slot."""

    __slots__ = ("_signal", "_callback")

    def __init__(self, signal, callback: Callable):
        self._signal = signal
        self._callback = callback
        signal.connect(callback)

    @property
    def active(self) -> bool:
        return self._signal is not None

    def dispose(self):
        if self._signal is None:
            return
        signal, callback = self._signal, self._callback
        self._signal = None
        self._callback = None
        try:
            signal.disconnect(callback)
        except (RuntimeError, TypeError):
            # Sender already destroyed
            logger.debug("Signal disconnect failed", exc_info=True)


def subscribe(signal, callback: Callable) -> Subscription:
    """Connect callback to a Qt signal and return a disposable handle."""
    return Subscription(signal, callback)


class SubscriptionBag:
    """Collects subscriptions so a consumer can detach all of them at once."""

    def __init__(self):
        self._subscriptions: list[Subscription] = []

    def add(self, signal, callback: Callable) -> Subscription:
        sub = subscribe(signal, callback)
        self._subscriptions.append(sub)
        return sub

    def __len__(self) -> int:
        return len(self._subscriptions)

    def dispose(self):
        subs, self._subscriptions = self._subscriptions, []
        for sub in subs:
            sub.dispose()
