"""Shared test helpers."""

import time

from PySide6.QtCore import QCoreApplication


def wait_until(predicate, timeout: float = 10.0) -> bool:
    """Pump the Qt event loop until predicate() is true or the timeout passes."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        QCoreApplication.processEvents()
        if predicate():
            return True
        time.sleep(0.01)
    QCoreApplication.processEvents()
    return predicate()


def pump(seconds: float):
    """Keep the event loop running for a fixed time."""
    wait_until(lambda: False, timeout=seconds)


def record_signal(signal) -> list:
    """Collect every emission of a signal as a tuple of its arguments."""
    calls = []
    signal.connect(lambda *args: calls.append(args))
    return calls
