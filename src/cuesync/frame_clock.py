# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Fixed-rate frame clock driving the scroll animation.

The clock calls its callback at a nominal rate (60 Hz by default) on a
dedicated thread. Each call receives the measured time since the previous
call rather than the nominal interval, so scheduling jitter is absorbed by
the animation instead of accumulating as drift.
"""

import logging
import threading
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)

TickCallback = Callable[[float], None]


class FrameClock:
    """
    Periodic tick source with measured delta time.

    Usage:
        clock = FrameClock(scroll.tick)
        clock.start()
        ...
        clock.stop()
    """

    def __init__(
        self,
        callback: TickCallback | None = None,
        frame_rate: float = 60.0,
        clock: Callable[[], float] = time.monotonic
    ) -> None:
        """
        Initialize the frame clock.

        Args:
            callback: Called with the elapsed seconds since the previous tick
            frame_rate: Nominal ticks per second
            clock: Monotonic time source (injectable for tests)
        """
        if frame_rate <= 0:
            raise ValueError(f"frame_rate must be positive, got {frame_rate}")
        self.frame_rate: float = frame_rate
        self.interval: float = 1.0 / frame_rate
        self._callback: TickCallback | None = callback
        self._clock = clock

        self._lock = threading.Lock()
        self._last_tick: float | None = None
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()

    def set_callback(self, callback: TickCallback | None) -> None:
        with self._lock:
            self._callback = callback

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def reset_baseline(self) -> None:
        """Measure the next delta from now instead of from the last tick."""
        with self._lock:
            self._last_tick = self._clock()

    def step(self) -> float:
        """
        Perform one tick synchronously.

        Returns:
            The delta passed to the callback.
        """
        now: float = self._clock()
        with self._lock:
            dt: float = 0.0 if self._last_tick is None else max(0.0, now - self._last_tick)
            self._last_tick = now
            callback = self._callback
        if callback is not None:
            callback(dt)
        return dt

    def start(self) -> None:
        """Start ticking on a background thread."""
        if self.is_running:
            return
        self._stop_event.clear()
        self.reset_baseline()
        self._thread = threading.Thread(
            target=self._run,
            name="FrameClock",
            daemon=True
        )
        self._thread.start()
        logger.debug("Frame clock started at %.1f Hz", self.frame_rate)

    def stop(self) -> None:
        """Stop ticking. No callback runs after this returns."""
        self._stop_event.set()
        thread = self._thread
        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=2.0)
        self._thread = None
        with self._lock:
            self._last_tick = None
        logger.debug("Frame clock stopped")

    def _run(self) -> None:
        next_deadline: float = self._clock() + self.interval
        while not self._stop_event.wait(max(0.0, next_deadline - self._clock())):
            try:
                self.step()
            except Exception as e:  # pylint: disable=broad-except
                logger.error("Error in frame callback: %s", e, exc_info=True)

            next_deadline += self.interval
            now: float = self._clock()
            if next_deadline < now - self.interval:
                # Fell more than a frame behind; skip ahead rather than burst
                next_deadline = now + self.interval
