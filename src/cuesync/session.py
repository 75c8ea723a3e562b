# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Prompter session: the single owner of the scroll state.

Frame ticks, recognised words, UI commands and deferred timers all arrive
from different threads. Offset arithmetic is order sensitive, so none of
them touch the scroll state directly; they are queued and applied one at a
time by a worker thread.
"""

import logging
import queue
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from . import debug_log
from .config import DEFAULT_CONFIG, MatchingSettings, ScrollSettings
from .errors import RecognitionUnavailable
from .frame_clock import FrameClock
from .match_engine import JumpCommand, MatchEngine
from .scheduler import DeferredAction, Scheduler, ThreadScheduler
from .script_index import ScriptIndex
from .scroll_state import ScrollObserver, ScrollSnapshot, ScrollState
from .speech import SpeechSource

logger = logging.getLogger(__name__)


@dataclass
class WordsRequest:
    """A recognition update to match against the script."""
    words: list[str]
    timestamp: float
    request_id: int


@dataclass
class TickRequest:
    """A frame tick carrying the measured delta time."""
    dt: float


@dataclass
class ControlCommand:
    """Control command for the worker thread."""
    command: str
    param: Any = None
    done: threading.Event | None = field(default=None, compare=False)


class _SerializedScheduler(Scheduler):
    """Runs deferred callbacks on the session worker instead of a timer thread."""

    def __init__(self, inner: Scheduler, post: Callable[[DeferredAction], None]) -> None:
        self._inner = inner
        self._post = post

    def call_later(self, delay: float, callback: Callable[[], None]) -> DeferredAction:
        action = DeferredAction(callback)
        self._inner.call_later(delay, lambda: self._post(action))
        return action

    def shutdown(self) -> None:
        self._inner.shutdown()


class PrompterSession:
    """
    Owns the script index, scroll state and match engine of one prompter.

    Usage:
        session = PrompterSession(script_text)
        session.start()                     # frame clock running
        session.subscribe(render)           # called after every change
        session.resume()
        session.start_listening(source)     # voice sync
        ...
        session.shutdown()
    """

    def __init__(
        self,
        script_text: str = "",
        scroll_settings: ScrollSettings | None = None,
        matching_settings: MatchingSettings | None = None,
        scheduler: Scheduler | None = None,
        frame_clock: FrameClock | None = None,
        clock: Callable[[], float] = time.monotonic,
        max_queue_size: int = 256
    ) -> None:
        """
        Initialize the session and start its worker thread.

        Args:
            script_text: Initial script (may be empty)
            scroll_settings: Scroll animation settings (defaults from config)
            matching_settings: Voice matching settings (defaults from config)
            scheduler: Timer source for deferred actions (real time by default)
            frame_clock: Frame clock to drive (created from settings if None)
            clock: Monotonic time source for rate limiting
            max_queue_size: Commands buffered before backpressure kicks in
        """
        self.scroll_settings: ScrollSettings = {
            **DEFAULT_CONFIG["scroll"], **(scroll_settings or {})}  # type: ignore[typeddict-item]
        self.matching_settings: MatchingSettings = {
            **DEFAULT_CONFIG["matching"], **(matching_settings or {})}  # type: ignore[typeddict-item]
        self._clock = clock

        self.request_queue: queue.Queue[WordsRequest | TickRequest | ControlCommand] = (
            queue.Queue(maxsize=max_queue_size))

        self._inner_scheduler: Scheduler = scheduler or ThreadScheduler()
        self.frame_clock: FrameClock = frame_clock or FrameClock(
            frame_rate=self.scroll_settings["frame_rate"])
        self.frame_clock.set_callback(self.submit_tick)

        settings = self.scroll_settings
        self.scroll = ScrollState(
            visible_height=settings["visible_height"],
            line_height=settings["line_height"],
            speed=settings["speed"],
            speed_min=settings["speed_min"],
            speed_max=settings["speed_max"],
            highlight_duration=settings["highlight_duration"],
            scheduler=_SerializedScheduler(self._inner_scheduler, self._post_deferred),
            on_baseline_reset=self.frame_clock.reset_baseline
        )

        # Replaced wholesale on script change, only ever touched by the worker
        self.index: ScriptIndex = ScriptIndex.build([])
        self.engine: MatchEngine = self._create_engine(self.index)
        self._apply_script(script_text)

        self.latest_jump: JumpCommand | None = None
        self.request_counter: int = 0
        self.dropped_updates: int = 0
        self._counter_lock = threading.Lock()
        self._speech_source: SpeechSource | None = None
        self._closed: bool = False

        self.worker_thread: threading.Thread | None = None
        self.shutdown_flag = threading.Event()
        self.started = threading.Event()
        self._start_worker()
        self.started.wait(timeout=5.0)
        if not self.started.is_set():
            raise RuntimeError("Session worker failed to start")

    # Worker

    def _start_worker(self) -> None:
        self.worker_thread = threading.Thread(
            target=self._worker_loop,
            name="PrompterSession",
            daemon=True
        )
        self.worker_thread.start()

    def _worker_loop(self) -> None:
        logger.info("Prompter session worker started")
        self.started.set()
        try:
            while not self.shutdown_flag.is_set():
                try:
                    item = self.request_queue.get(timeout=0.1)
                except queue.Empty:
                    continue
                try:
                    if isinstance(item, TickRequest):
                        self.scroll.tick(item.dt)
                    elif isinstance(item, WordsRequest):
                        self._handle_words(item)
                    elif isinstance(item, ControlCommand):
                        self._handle_control_command(item)
                except Exception as e:  # pylint: disable=broad-except
                    logger.error("Error in session worker: %s", e, exc_info=True)
        finally:
            logger.info("Prompter session worker stopped")

    def _handle_words(self, req: WordsRequest) -> None:
        jump: JumpCommand | None = self.engine.on_recognized_words(req.words)
        if jump is not None:
            self.latest_jump = jump

    def _handle_control_command(self, cmd: ControlCommand) -> None:
        try:
            handlers: dict[str, Callable[[Any], None]] = {
                "pause": lambda _: self.scroll.pause(),
                "resume": lambda _: self.scroll.resume(),
                "toggle_pause": lambda _: self.scroll.toggle_pause(),
                "reset": lambda _: self._reset(),
                "adjust_speed": self.scroll.adjust_speed,
                "set_speed": self.scroll.set_speed,
                "scroll_by": self.scroll.scroll_by_delta,
                "go_to_offset": self.scroll.go_to_offset,
                "jump_to_line": self._jump_to_line,
                "hover": self.scroll.set_hovering,
                "set_content_size": lambda p: self.scroll.set_content_size(*p),
                "load_script": self._apply_script,
                "resync": lambda _: self.engine.resync(),
                "deferred": lambda action: action.fire(),
                "flush": lambda _: None,
                "shutdown": lambda _: self.shutdown_flag.set(),
            }
            handler = handlers.get(cmd.command)
            if handler is None:
                logger.warning("Unknown session command: %s", cmd.command)
            else:
                handler(cmd.param)
        finally:
            if cmd.done is not None:
                cmd.done.set()

    def _create_engine(self, index: ScriptIndex) -> MatchEngine:
        m = self.matching_settings
        return MatchEngine(
            index,
            self.scroll,
            min_sync_interval=m["min_sync_interval"],
            lookbehind=m["lookbehind"],
            lookahead=m["lookahead"],
            recent_words=m["recent_words"],
            max_line_jump=m["max_line_jump"],
            min_score=m["min_score"],
            clock=self._clock
        )

    def _apply_script(self, script_text: str) -> None:
        """Rebuild the index for new script text and start from the top."""
        self.index = ScriptIndex.from_text(
            script_text, anchor_length=self.matching_settings["anchor_length"])
        self.engine = self._create_engine(self.index)
        self.scroll.reset()
        self.scroll.set_content_size(
            self.index.line_count * self.scroll.line_height,
            self.scroll.visible_height
        )
        debug_log.clear_logs()
        logger.info("Script loaded: %d lines, %d tokens",
                    self.index.line_count, self.index.token_count)

    def _reset(self) -> None:
        self.scroll.reset()
        self.engine.resync()

    def _jump_to_line(self, param: tuple[int, float | None]) -> None:
        line_index, auto_resume_after = param
        if auto_resume_after is None:
            auto_resume_after = self.scroll_settings["auto_resume_after"]
        debug_log.log_manual_jump(line_index)
        self.scroll.jump_to_line(line_index, auto_resume_after)

    # Submission (any thread)

    def _post_deferred(self, action: DeferredAction) -> None:
        self._submit_control("deferred", action)

    def _submit_control(self, command: str, param: Any = None, wait: bool = False,
                        timeout: float = 1.0) -> bool:
        done: threading.Event | None = threading.Event() if wait else None
        cmd = ControlCommand(command=command, param=param, done=done)
        try:
            self.request_queue.put(cmd, timeout=timeout)
        except queue.Full:
            logger.warning("Failed to queue %s command (queue full)", command)
            return False
        if done is not None:
            return done.wait(timeout=timeout)
        return True

    def submit_tick(self, dt: float) -> bool:
        """Queue a frame tick. Dropped if the worker is behind."""
        try:
            self.request_queue.put_nowait(TickRequest(dt))
            return True
        except queue.Full:
            with self._counter_lock:
                self.dropped_updates += 1
            return False

    def submit_words(self, words: Sequence[str]) -> bool:
        """
        Queue a recognition update (non-blocking).

        Returns:
            True if queued, False if dropped because the queue is full; the
            next update carries the same transcript so nothing is lost.
        """
        with self._counter_lock:
            self.request_counter += 1
            request_id: int = self.request_counter
        request = WordsRequest(words=list(words), timestamp=self._clock(),
                               request_id=request_id)
        try:
            self.request_queue.put_nowait(request)
            return True
        except queue.Full:
            with self._counter_lock:
                self.dropped_updates += 1
            logger.warning("Backpressure: dropping recognition update %d", request_id)
            return False

    def flush(self, timeout: float = 2.0) -> bool:
        """Block until everything queued so far has been applied."""
        return self._submit_control("flush", wait=True, timeout=timeout)

    # UI commands

    def pause(self) -> None:
        self._submit_control("pause")

    def resume(self) -> None:
        self._submit_control("resume")

    def toggle_pause(self) -> None:
        self._submit_control("toggle_pause")

    def reset(self) -> None:
        self._submit_control("reset")

    def adjust_speed(self, delta: float) -> None:
        self._submit_control("adjust_speed", delta)

    def speed_up(self) -> None:
        self.adjust_speed(self.scroll_settings["speed_step"])

    def speed_down(self) -> None:
        self.adjust_speed(-self.scroll_settings["speed_step"])

    def set_speed(self, speed: float) -> None:
        self._submit_control("set_speed", speed)

    def scroll_by_delta(self, delta: float) -> None:
        self._submit_control("scroll_by", delta)

    def go_to_offset(self, target: float) -> None:
        self._submit_control("go_to_offset", target)

    def jump_to_line(self, line_index: int, auto_resume_after: float | None = None) -> None:
        self._submit_control("jump_to_line", (line_index, auto_resume_after))

    def set_hovering(self, hovering: bool) -> None:
        self._submit_control("hover", hovering)

    def set_content_size(self, content_height: float, visible_height: float) -> None:
        self._submit_control("set_content_size", (content_height, visible_height))

    def load_script(self, script_text: str) -> None:
        """Switch to new script text (rebuilds the index, resets scrolling)."""
        self._submit_control("load_script", script_text)

    def resync(self) -> None:
        self._submit_control("resync")

    # Read model

    def snapshot(self) -> ScrollSnapshot:
        return self.scroll.snapshot()

    def subscribe(self, observer: ScrollObserver) -> Callable[[], None]:
        """Observe scroll changes. Observers run on the worker thread."""
        return self.scroll.subscribe(observer)

    @property
    def lines(self) -> tuple[str, ...]:
        return self.index.lines

    @property
    def confidence(self) -> float:
        return self.engine.confidence

    # Lifecycle

    def start(self) -> None:
        """Start the frame clock."""
        self.frame_clock.start()

    def start_listening(self, source: SpeechSource) -> None:
        """
        Feed recognised words from a speech source into voice sync.

        Raises:
            RecognitionUnavailable: If the source cannot start. Manual and
                automatic scrolling keep working.
        """
        self.stop_listening()
        try:
            source.start_listening(self.submit_words)
        except RecognitionUnavailable as e:
            logger.warning("Voice sync unavailable, continuing without it: %s", e)
            raise
        self._speech_source = source
        self.resync()
        logger.info("Voice sync listening")

    def stop_listening(self) -> None:
        source: SpeechSource | None = self._speech_source
        self._speech_source = None
        if source is not None:
            source.stop_listening()
            logger.info("Voice sync stopped")

    @property
    def is_listening(self) -> bool:
        return self._speech_source is not None and self._speech_source.is_listening

    def shutdown(self) -> None:
        """Stop the clock and speech, cancel deferred actions, stop the worker."""
        if self._closed:
            return
        self._closed = True
        self.frame_clock.stop()
        self.stop_listening()
        self.scroll.close()
        self._inner_scheduler.shutdown()

        try:
            self.request_queue.put(ControlCommand(command="shutdown"), timeout=1.0)
        except queue.Full:
            pass
        self.shutdown_flag.set()

        if self.worker_thread and self.worker_thread.is_alive():
            self.worker_thread.join(timeout=2.0)

    def __enter__(self) -> "PrompterSession":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()
