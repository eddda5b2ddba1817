"""Graceful shutdown coordinator.

Tracks in-flight operations by name (install requests and the
reconciles they trigger) and lets the agent drain them, up to a
timeout, before the process exits.

Usage::

    from certsync.app.shutdown import ShutdownCoordinator

    coordinator = ShutdownCoordinator(graceful_timeout=30)
    coordinator.register_signals()

    with coordinator.track("push-reconcile"):
        engine.reconcile(only_if_missing=True)

    coordinator.wait_for_request()   # main thread parks here
    coordinator.initiate()           # drains tracked operations
"""

from __future__ import annotations

import logging
import signal
import threading
import time
from collections import Counter
from contextlib import contextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Generator

log = logging.getLogger(__name__)


class ShutdownCoordinator:
    """Two-phase shutdown: a *request* from a signal, then a *drain*.

    The request only wakes the thread blocked in
    :meth:`wait_for_request`; nothing is torn down from inside a signal
    handler.  The owner then stops its own components and calls
    :meth:`initiate` to wait for tracked operations.

    Parameters
    ----------
    graceful_timeout:
        Maximum seconds :meth:`initiate` waits for tracked operations.

    """

    def __init__(self, graceful_timeout: int = 30) -> None:
        self._graceful_timeout = graceful_timeout
        self._requested = threading.Event()
        self._draining = threading.Event()
        self._active: Counter[str] = Counter()
        self._cond = threading.Condition()

    @property
    def is_shutting_down(self) -> bool:
        """True once :meth:`initiate` has started draining."""
        return self._draining.is_set()

    @property
    def shutdown_requested(self) -> bool:
        return self._requested.is_set()

    @property
    def in_flight_count(self) -> int:
        with self._cond:
            return sum(self._active.values())

    def _pending_summary(self) -> str:
        return ", ".join(f"{name} x{count}" for name, count in sorted(self._active.items()))

    @contextmanager
    def track(self, name: str) -> Generator[None, None, None]:
        """Count *name* as in flight for the duration of the block.

        Work started after draining began still runs; it is logged so a
        late arrival is visible.
        """
        if self._draining.is_set():
            log.warning("'%s' started while shutting down", name)

        with self._cond:
            self._active[name] += 1
        try:
            yield
        finally:
            with self._cond:
                self._active[name] -= 1
                if self._active[name] <= 0:
                    del self._active[name]
                if not self._active:
                    self._cond.notify_all()

    def request_shutdown(self) -> None:
        """Wake :meth:`wait_for_request`.  Safe from any thread."""
        self._requested.set()

    def wait_for_request(self, timeout: float | None = None) -> bool:
        return self._requested.wait(timeout=timeout)

    def initiate(self) -> bool:
        """Drain tracked operations.

        Returns True when nothing is left in flight, False when
        ``graceful_timeout`` expired first.  Calling it again only
        reports the current state.
        """
        if self._draining.is_set():
            return self.in_flight_count == 0

        self._requested.set()
        self._draining.set()
        log.info("Draining in-flight operations (timeout %ds)", self._graceful_timeout)

        deadline = time.monotonic() + self._graceful_timeout
        with self._cond:
            drained = self._cond.wait_for(
                lambda: not self._active,
                timeout=max(0.0, deadline - time.monotonic()),
            )
            if not drained:
                log.warning("Drain timed out; still running: %s", self._pending_summary())
                return False

        log.info("All in-flight operations finished")
        return True

    def register_signals(self) -> None:
        """Route SIGTERM and SIGINT to :meth:`request_shutdown`.

        Only possible from the main thread; elsewhere it is a no-op.
        """
        try:
            for signum in (signal.SIGTERM, signal.SIGINT):
                signal.signal(signum, self._signal_handler)
        except (ValueError, OSError):
            log.debug("Signal handlers not installed (not the main thread)")

    def _signal_handler(self, signum: int, frame) -> None:  # noqa: ARG002
        sig_name = signal.Signals(signum).name
        if self._requested.is_set():
            log.warning("Received %s again, shutdown already in progress", sig_name)
            return
        log.info("Received %s, shutting down", sig_name)
        self._requested.set()
