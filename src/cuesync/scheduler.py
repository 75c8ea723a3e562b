# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Cancellable one-shot deferred actions.

The scroll state uses these for the auto-resume after a jump and for
clearing the line highlight. Each scheduled action returns a handle that can
cancel it; a cancelled or already-fired handle never runs its callback.

Two schedulers are provided:
- ThreadScheduler: real time, backed by threading.Timer
- ManualScheduler: simulated time advanced explicitly (tests, replays)
"""

import heapq
import itertools
import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable

logger = logging.getLogger(__name__)


class DeferredAction:
    """Handle to a scheduled one-shot callback."""

    def __init__(self, callback: Callable[[], None]) -> None:
        self._callback = callback
        self._lock = threading.Lock()
        self._done = False

    @property
    def pending(self) -> bool:
        with self._lock:
            return not self._done

    def cancel(self) -> bool:
        """Cancel the action. Returns True if it had not run yet."""
        with self._lock:
            if self._done:
                return False
            self._done = True
            return True

    def fire(self) -> bool:
        """Run the callback unless cancelled or already run."""
        with self._lock:
            if self._done:
                return False
            self._done = True
        self._callback()
        return True


class Scheduler(ABC):
    """Schedules deferred callbacks."""

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]) -> DeferredAction:
        """Run callback once after delay seconds, unless cancelled."""

    def shutdown(self) -> None:
        """Release any resources held by the scheduler."""


class ThreadScheduler(Scheduler):
    """Scheduler running callbacks on threading.Timer threads."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._timers: set[threading.Timer] = set()

    def call_later(self, delay: float, callback: Callable[[], None]) -> DeferredAction:
        action = DeferredAction(callback)
        timer: threading.Timer

        def run() -> None:
            with self._lock:
                self._timers.discard(timer)
            try:
                action.fire()
            except Exception as e:  # pylint: disable=broad-except
                logger.error("Deferred action failed: %s", e, exc_info=True)

        timer = threading.Timer(max(0.0, delay), run)
        timer.daemon = True
        with self._lock:
            self._timers.add(timer)
        timer.start()
        return action

    def shutdown(self) -> None:
        with self._lock:
            timers = list(self._timers)
            self._timers.clear()
        for timer in timers:
            timer.cancel()


class ManualScheduler(Scheduler):
    """
    Scheduler driven by simulated time.

    Nothing runs until advance() is called. The scheduler also works as a
    time source: pass its time() method wherever a clock callable is taken.
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now: float = start
        self._queue: list[tuple[float, int, DeferredAction]] = []
        self._counter = itertools.count()

    def time(self) -> float:
        return self._now

    @property
    def pending_count(self) -> int:
        return sum(1 for _, _, action in self._queue if action.pending)

    def call_later(self, delay: float, callback: Callable[[], None]) -> DeferredAction:
        action = DeferredAction(callback)
        heapq.heappush(self._queue, (self._now + max(0.0, delay), next(self._counter), action))
        return action

    def advance(self, seconds: float) -> int:
        """
        Move simulated time forward, firing every action that falls due.

        Returns:
            Number of callbacks that ran.
        """
        target: float = self._now + seconds
        fired: int = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, action = heapq.heappop(self._queue)
            self._now = max(self._now, due)
            if action.fire():
                fired += 1
        self._now = target
        return fired

    def shutdown(self) -> None:
        for _, _, action in self._queue:
            action.cancel()
        self._queue.clear()
