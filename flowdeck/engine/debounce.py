"""Debounced and periodic background triggers.

A Debouncer coalesces bursts of change notifications into one call made
`delay` seconds after the last trigger. Triggering while a call is pending
restarts the wait; nothing is queued.
"""

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class Debouncer:
    def __init__(self, delay: float, callback: Callable[[], None], name: str = "debouncer"):
        self.delay = delay
        self.name = name
        self._callback = callback
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def trigger(self) -> None:
        """Schedule the callback, replacing any pending one."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            timer = threading.Timer(self.delay, self._fire)
            timer.daemon = True
            timer.name = f"{self.name}-timer"
            self._timer = timer
            timer.start()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def flush(self) -> bool:
        """Run a pending callback now. Returns False when nothing was pending."""
        with self._lock:
            if self._timer is None:
                return False
            self._timer.cancel()
            self._timer = None
        self._run()
        return True

    def _fire(self) -> None:
        with self._lock:
            if self._timer is None or self._timer is not threading.current_thread():
                # Superseded by a later trigger or cancelled
                return
            self._timer = None
        self._run()

    def _run(self) -> None:
        try:
            self._callback()
        except Exception as e:
            logger.error(f"{self.name} callback failed: {type(e).__name__}: {str(e)}")


class PeriodicTimer:
    """Calls `callback` every `interval` seconds on a daemon thread until stopped."""

    def __init__(self, interval: float, callback: Callable[[], None], name: str = "periodic"):
        self.interval = interval
        self.name = name
        self._callback = callback
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _loop(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self._callback()
            except Exception as e:
                logger.error(f"{self.name} tick failed: {type(e).__name__}: {str(e)}")
