"""
AOF Stagger — Shutdown Signal

Broadcast stop signal shared by the fleet scheduler and every readiness
gate. Loops never sleep with time.sleep(); they call wait(interval) so a
close() wakes them immediately.

The signal is closed at most once. Later close() calls are no-ops and
return False.

Usage:
    from infra.shutdown import ShutdownSignal, install_signal_handlers

    shutdown = ShutdownSignal()
    install_signal_handlers(shutdown)   # SIGINT / SIGTERM → close()

    while not shutdown.is_closed():
        ...
        shutdown.wait(0.01)
"""

from __future__ import annotations

import logging
import signal
import threading
import time

logger = logging.getLogger("aof_stagger.shutdown")


class ShutdownSignal:
    """Thread-safe one-way shutdown flag."""

    def __init__(self):
        self._lock = threading.Lock()
        self._event = threading.Event()
        self.reason = ""
        self.closed_by = ""
        self.closed_at = 0.0

    def close(self, reason: str = "", by: str = "system") -> bool:
        """Close the signal. Returns True only for the call that closed it."""
        with self._lock:
            if self._event.is_set():
                return False
            self.reason = reason
            self.closed_by = by
            self.closed_at = time.time()
            self._event.set()
        logger.info("Shutdown signal closed: %s (by %s)", reason or "-", by)
        return True

    def is_closed(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Sleep up to timeout seconds; returns True if closed meanwhile."""
        return self._event.wait(timeout)


def install_signal_handlers(
    shutdown: ShutdownSignal,
    signals: tuple[int, ...] = (signal.SIGINT, signal.SIGTERM),
) -> None:
    """Close the shutdown signal when the process receives a stop signal."""
    def _handler(signum, frame):
        shutdown.close(reason=signal.Signals(signum).name, by="signal")

    for sig in signals:
        signal.signal(sig, _handler)
