# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Animated scroll position state machine.

The scroll position is kept in pixels rather than lines so animation never
visibly snaps. Two states exist, Running and Paused. Frame ticks only move
the offset while Running, and reaching the end of the content pauses
automatically. Discrete commands (pause, resume, jumps, manual nudges, speed
changes) can arrive at any time and are applied immediately.

Renderers observe the state through subscribe() or poll snapshot(); nothing
here depends on a UI framework's data binding.
"""

import logging
import math
import threading
from collections.abc import Callable
from dataclasses import dataclass

from .scheduler import DeferredAction, Scheduler, ThreadScheduler

logger = logging.getLogger(__name__)

DEFAULT_LINE_HEIGHT: float = 28.0
DEFAULT_SPEED: float = 50.0
SPEED_MIN: float = 10.0
SPEED_MAX: float = 150.0
HIGHLIGHT_DURATION: float = 0.5


@dataclass(frozen=True)
class ScrollSnapshot:
    """Read-only view of the scroll state at one instant."""
    offset: float
    is_paused: bool
    speed: float
    highlighted_line: int | None
    current_line_index: int
    max_offset: float
    content_height: float
    visible_height: float

    def to_dict(self) -> dict[str, object]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "offset": self.offset,
            "isPaused": self.is_paused,
            "speed": self.speed,
            "highlightedLine": self.highlighted_line,
            "currentLineIndex": self.current_line_index,
            "maxOffset": self.max_offset,
            "contentHeight": self.content_height,
            "visibleHeight": self.visible_height,
        }


ScrollObserver = Callable[[ScrollSnapshot], None]


class ScrollState:
    """
    Scroll offset, pause flag and speed for one active script.

    Invariants after every tick or manual nudge:
    - 0 <= offset <= max_offset
    - speed_min <= speed <= speed_max
    - at most one auto-resume is pending
    """

    def __init__(
        self,
        content_height: float = 0.0,
        visible_height: float = 0.0,
        line_height: float = DEFAULT_LINE_HEIGHT,
        speed: float = DEFAULT_SPEED,
        speed_min: float = SPEED_MIN,
        speed_max: float = SPEED_MAX,
        highlight_duration: float = HIGHLIGHT_DURATION,
        scheduler: Scheduler | None = None,
        on_baseline_reset: Callable[[], None] | None = None
    ) -> None:
        """
        Initialize the scroll state (Paused at offset 0).

        Args:
            content_height: Total height of the rendered script in pixels
            visible_height: Height of the viewport in pixels
            line_height: Height of one script line in pixels
            speed: Initial scroll speed in pixels per second
            speed_min: Lowest allowed speed
            speed_max: Highest allowed speed
            highlight_duration: Seconds a jumped-to line stays highlighted
            scheduler: Runs the deferred auto-resume and highlight clear
            on_baseline_reset: Called whenever animation time should restart
                from now (on resume and offset jumps), e.g. FrameClock.reset_baseline
        """
        if line_height <= 0:
            raise ValueError(f"line_height must be positive, got {line_height}")
        if not math.isfinite(speed):
            raise ValueError(f"speed must be finite, got {speed}")
        if speed_min > speed_max:
            raise ValueError(f"speed_min {speed_min} exceeds speed_max {speed_max}")

        self.line_height: float = line_height
        self.speed_min: float = speed_min
        self.speed_max: float = speed_max
        self.highlight_duration: float = highlight_duration

        self._offset: float = 0.0
        self._is_paused: bool = True
        self._speed: float = min(max(speed, speed_min), speed_max)
        self._content_height: float = max(0.0, content_height)
        self._visible_height: float = max(0.0, visible_height)
        self._highlighted_line: int | None = None
        self._is_hovering: bool = False

        self._scheduler: Scheduler = scheduler or ThreadScheduler()
        self._on_baseline_reset = on_baseline_reset

        # Generation tokens: a deferred callback only acts if its token is current
        self._resume_action: DeferredAction | None = None
        self._resume_generation: int = 0
        self._highlight_action: DeferredAction | None = None
        self._highlight_generation: int = 0

        self._lock = threading.RLock()
        self._observers: list[ScrollObserver] = []

    # Read model

    @property
    def offset(self) -> float:
        return self._offset

    @property
    def is_paused(self) -> bool:
        return self._is_paused

    @property
    def speed(self) -> float:
        return self._speed

    @property
    def content_height(self) -> float:
        return self._content_height

    @property
    def visible_height(self) -> float:
        return self._visible_height

    @property
    def highlighted_line(self) -> int | None:
        return self._highlighted_line

    @property
    def is_hovering(self) -> bool:
        return self._is_hovering

    @property
    def max_offset(self) -> float:
        return max(0.0, self._content_height - self._visible_height)

    @property
    def current_line_index(self) -> int:
        return line_for_offset(self._offset, self.line_height)

    @property
    def auto_resume_pending(self) -> bool:
        return self._resume_action is not None and self._resume_action.pending

    def snapshot(self) -> ScrollSnapshot:
        with self._lock:
            return self._snapshot_locked()

    def _snapshot_locked(self) -> ScrollSnapshot:
        return ScrollSnapshot(
            offset=self._offset,
            is_paused=self._is_paused,
            speed=self._speed,
            highlighted_line=self._highlighted_line,
            current_line_index=self.current_line_index,
            max_offset=self.max_offset,
            content_height=self._content_height,
            visible_height=self._visible_height,
        )

    # Observers

    def subscribe(self, observer: ScrollObserver) -> Callable[[], None]:
        """
        Register an observer called with a snapshot after every change.

        Returns:
            A function that removes the observer.
        """
        with self._lock:
            self._observers.append(observer)

        def unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return unsubscribe

    def _notify(self, snapshot: ScrollSnapshot) -> None:
        with self._lock:
            observers = list(self._observers)
        for observer in observers:
            try:
                observer(snapshot)
            except Exception as e:  # pylint: disable=broad-except
                logger.error("Scroll observer failed: %s", e, exc_info=True)

    def _reset_baseline(self) -> None:
        if self._on_baseline_reset is not None:
            self._on_baseline_reset()

    # Continuous animation

    def tick(self, dt: float) -> None:
        """Advance the animation by dt seconds (Running only)."""
        if not math.isfinite(dt):
            logger.warning("Ignoring non-finite frame interval: %r", dt)
            return
        with self._lock:
            if self._is_paused or dt <= 0:
                return
            max_offset: float = self.max_offset
            new_offset: float = self._offset + self._speed * dt
            if new_offset >= max_offset:
                new_offset = max_offset
                self._is_paused = True
                self._cancel_auto_resume()
                logger.info("Reached end of script, auto-pausing")
            if new_offset < 0:
                new_offset = 0.0
            self._offset = new_offset
            snapshot = self._snapshot_locked()
        self._notify(snapshot)

    # Discrete commands

    def pause(self) -> None:
        with self._lock:
            self._cancel_auto_resume()
            if self._is_paused:
                return
            self._is_paused = True
            snapshot = self._snapshot_locked()
        logger.debug("Paused at offset %.1f", snapshot.offset)
        self._notify(snapshot)

    def resume(self) -> None:
        with self._lock:
            self._cancel_auto_resume()
            self._reset_baseline()
            if not self._is_paused:
                return
            self._is_paused = False
            snapshot = self._snapshot_locked()
        logger.debug("Resumed at offset %.1f", snapshot.offset)
        self._notify(snapshot)

    def toggle_pause(self) -> None:
        with self._lock:
            paused: bool = self._is_paused
        if paused:
            self.resume()
        else:
            self.pause()

    def reset(self) -> None:
        """Return to the top, paused, with no highlight."""
        with self._lock:
            self._cancel_auto_resume()
            self._cancel_highlight()
            self._offset = 0.0
            self._is_paused = True
            self._highlighted_line = None
            snapshot = self._snapshot_locked()
        logger.debug("Scroll state reset")
        self._notify(snapshot)

    def set_speed(self, speed: float) -> None:
        if not math.isfinite(speed):
            logger.warning("Ignoring non-finite speed: %r", speed)
            return
        with self._lock:
            self._speed = min(max(speed, self.speed_min), self.speed_max)
            snapshot = self._snapshot_locked()
        self._notify(snapshot)

    def adjust_speed(self, delta: float) -> None:
        if not math.isfinite(delta):
            logger.warning("Ignoring non-finite speed change: %r", delta)
            return
        with self._lock:
            speed: float = self._speed + delta
        self.set_speed(speed)

    def set_content_size(self, content_height: float, visible_height: float) -> None:
        """Update layout dimensions; the offset is clamped to the new range."""
        if not (math.isfinite(content_height) and math.isfinite(visible_height)):
            logger.warning("Ignoring non-finite layout: %r x %r",
                           content_height, visible_height)
            return
        with self._lock:
            self._content_height = max(0.0, content_height)
            self._visible_height = max(0.0, visible_height)
            self._offset = min(self._offset, self.max_offset)
            snapshot = self._snapshot_locked()
        self._notify(snapshot)

    def scroll_by_delta(self, delta: float) -> None:
        """
        Manual nudge (e.g. mouse wheel), applied in either state.

        A positive delta moves back towards the top of the script.
        """
        if not math.isfinite(delta):
            logger.warning("Ignoring non-finite scroll delta: %r", delta)
            return
        with self._lock:
            self._offset = min(max(self._offset - delta, 0.0), self.max_offset)
            snapshot = self._snapshot_locked()
        self._notify(snapshot)

    def go_to_offset(self, target: float) -> None:
        """
        Jump straight to an offset.

        Only the lower bound is enforced here; the next tick or nudge clamps
        to the upper bound.
        """
        if not math.isfinite(target):
            logger.warning("Ignoring non-finite offset: %r", target)
            return
        with self._lock:
            self._offset = max(0.0, target)
            self._reset_baseline()
            snapshot = self._snapshot_locked()
        self._notify(snapshot)

    def jump_to_line(self, line_index: int, auto_resume_after: float) -> None:
        """
        Jump to a line (e.g. clicked by the user) and highlight it briefly.

        If scrolling was running (or paused only by an earlier jump waiting to
        auto-resume), it pauses now and resumes after auto_resume_after
        seconds. A newer jump replaces the pending resume rather than queueing
        behind it. A user-paused state stays paused.
        """
        target: float = line_index * self.line_height
        if not (math.isfinite(target) and math.isfinite(auto_resume_after)):
            logger.warning("Ignoring jump to line %r (resume after %r)",
                           line_index, auto_resume_after)
            return
        with self._lock:
            resume_wanted: bool = not self._is_paused or self.auto_resume_pending
            self._offset = max(0.0, target)
            self._reset_baseline()
            self._set_highlight(line_index)
            self._is_paused = True
            if resume_wanted:
                self._schedule_auto_resume(auto_resume_after)
            snapshot = self._snapshot_locked()
        logger.debug("Jumped to line %d (auto-resume: %s)", line_index, resume_wanted)
        self._notify(snapshot)

    def set_hovering(self, hovering: bool) -> None:
        """Pointer over the prompter pauses it; leaving resumes."""
        with self._lock:
            if hovering == self._is_hovering:
                return
            self._is_hovering = hovering
        if hovering:
            self.pause()
        else:
            self.resume()

    def close(self) -> None:
        """Cancel every pending deferred action."""
        with self._lock:
            self._cancel_auto_resume()
            self._cancel_highlight()

    # Deferred actions

    def _schedule_auto_resume(self, delay: float) -> None:
        self._cancel_auto_resume()
        self._resume_generation += 1
        generation: int = self._resume_generation
        self._resume_action = self._scheduler.call_later(
            delay, lambda: self._auto_resume(generation))

    def _cancel_auto_resume(self) -> None:
        if self._resume_action is not None:
            self._resume_action.cancel()
            self._resume_action = None
        self._resume_generation += 1

    def _auto_resume(self, generation: int) -> None:
        with self._lock:
            if generation != self._resume_generation:
                logger.debug("Ignoring stale auto-resume")
                return
            self._resume_action = None
        self.resume()

    def _set_highlight(self, line_index: int) -> None:
        self._cancel_highlight()
        self._highlighted_line = line_index
        self._highlight_generation += 1
        generation: int = self._highlight_generation
        self._highlight_action = self._scheduler.call_later(
            self.highlight_duration, lambda: self._clear_highlight(generation))

    def _cancel_highlight(self) -> None:
        if self._highlight_action is not None:
            self._highlight_action.cancel()
            self._highlight_action = None
        self._highlight_generation += 1

    def _clear_highlight(self, generation: int) -> None:
        with self._lock:
            if generation != self._highlight_generation:
                return
            self._highlight_action = None
            self._highlighted_line = None
            snapshot = self._snapshot_locked()
        self._notify(snapshot)


def line_for_offset(offset: float, line_height: float) -> int:
    """Line index shown at the top of the viewport for a pixel offset."""
    return max(0, math.floor(offset / line_height))
