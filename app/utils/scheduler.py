"""Background periodic tasks for in-process maintenance sweeps."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Run a callable every ``interval_seconds`` on a daemon thread.

    ``stop()`` is cooperative: it wakes the waiting thread, but a run that is
    already in progress finishes before the thread exits. Exceptions raised
    by a run are logged and the schedule continues.
    """

    def __init__(self, name: str, interval_seconds: float, func: Callable[[], Any]) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self.name = name
        self.interval_seconds = interval_seconds
        self._func = func
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self.running:
                return
            self._stop_event.clear()
            self._thread = threading.Thread(target=self._loop, name=f"sweep-{self.name}", daemon=True)
            self._thread.start()
        logger.info("periodic_task.started", extra={"task": self.name, "interval_s": self.interval_seconds})

    def stop(self, timeout: float | None = 5.0) -> None:
        with self._lock:
            thread = self._thread
            self._thread = None
        self._stop_event.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
            logger.info("periodic_task.stopped", extra={"task": self.name})

    def run_once(self) -> Any:
        """Execute one run immediately on the calling thread."""
        try:
            return self._func()
        except Exception:
            logger.exception("periodic_task.failed", extra={"task": self.name})
            return None

    def _loop(self) -> None:
        # wait() returns True once stop() is called
        while not self._stop_event.wait(self.interval_seconds):
            self.run_once()
