"""
Fixed-interval timer for the hub's periodic work (controller ticks, water
level publishing).

One loop thread wakes every ``interval_seconds`` and submits the callback to a
small bounded executor, so a slow callback does not delay the next fire. Fires
may therefore overlap; callbacks that must not overlap guard themselves.

Stopping cancels future fires only. A callback already running is left to
finish.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable

logger = logging.getLogger(__name__)


class IntervalTimer:
    """Calls ``callback`` every ``interval_seconds`` on a worker thread."""

    def __init__(
        self,
        interval_seconds: float,
        callback: Callable[[], object],
        *,
        name: str = "IntervalTimer",
        max_workers: int = 2,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.interval_seconds = interval_seconds
        self.callback = callback
        self.name = name
        self._max_workers = max_workers
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._executor: ThreadPoolExecutor | None = None
        self.fire_count = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the timer thread. The first fire happens one interval from now."""
        if self.running:
            logger.warning("%s already running", self.name)
            return

        self._stop_event.clear()
        self._executor = ThreadPoolExecutor(
            max_workers=self._max_workers,
            thread_name_prefix=f"{self.name}Job",
        )
        self._thread = threading.Thread(target=self._run_loop, daemon=True, name=self.name)
        self._thread.start()
        logger.info("%s started (every %ss)", self.name, self.interval_seconds)

    def stop(self, wait: bool = True, timeout: float = 5.0) -> None:
        """
        Stop scheduling further fires.

        Args:
            wait: Wait for the timer thread to exit (not for running callbacks)
            timeout: Maximum wait time in seconds
        """
        if self._thread is None:
            return

        self._stop_event.set()
        if wait and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)
        self._thread = None

        if self._executor is not None:
            # In-flight callbacks finish on their own
            self._executor.shutdown(wait=False)
            self._executor = None
        logger.info("%s stopped", self.name)

    def _run_loop(self) -> None:
        logger.debug("%s loop started", self.name)
        while not self._stop_event.wait(self.interval_seconds):
            executor = self._executor
            if executor is None:
                break
            try:
                executor.submit(self._fire)
            except RuntimeError as e:
                # Executor shut down between the wait and the submit
                logger.debug("%s could not submit fire: %s", self.name, e)
                break
        logger.debug("%s loop ended", self.name)

    def _fire(self) -> None:
        self.fire_count += 1
        try:
            self.callback()
        except Exception as e:
            logger.error("Error in %s callback: %s", self.name, e, exc_info=True)
