# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Tests for the PrompterSession worker.

These tests verify:
- Commands, ticks and recognised words are applied in submission order
- Deferred auto-resume runs through the worker
- Backpressure drops recognition updates instead of blocking
- Voice sync failures leave manual scrolling working
"""

import threading
import unittest

from cuesync.errors import RecognitionUnavailable
from cuesync.frame_clock import FrameClock
from cuesync.scheduler import ManualScheduler
from cuesync.session import PrompterSession
from cuesync.speech import SpeechSource

SCRIPT = "hello world\nthis is a teleprompter\ngoodbye now"


class FakeSpeechSource(SpeechSource):
    """Speech source driven directly by the test."""

    def __init__(self, fail=False):
        self.fail = fail
        self.on_words = None
        self.stop_calls = 0

    @property
    def is_listening(self):
        return self.on_words is not None

    def start_listening(self, on_words):
        if self.fail:
            raise RecognitionUnavailable("no microphone")
        self.on_words = on_words

    def stop_listening(self):
        self.stop_calls += 1
        self.on_words = None

    def say(self, *words):
        self.on_words(list(words))


class SessionTestCase(unittest.TestCase):

    def setUp(self):
        self.scheduler = ManualScheduler()
        self.session = PrompterSession(
            SCRIPT,
            scroll_settings={"visible_height": 28.0},
            scheduler=self.scheduler,
            # Never started: ticks are submitted by hand
            frame_clock=FrameClock(),
            clock=self.scheduler.time
        )

    def tearDown(self):
        self.session.shutdown()


class TestSessionBasics(SessionTestCase):

    def test_initial_state(self):
        snap = self.session.snapshot()
        self.assertTrue(snap.is_paused)
        self.assertEqual(snap.offset, 0.0)
        self.assertEqual(snap.content_height, 84.0)
        self.assertEqual(snap.max_offset, 56.0)
        self.assertEqual(self.session.lines,
                         ("hello world", "this is a teleprompter", "goodbye now"))

    def test_ticks_only_move_while_running(self):
        self.session.submit_tick(0.5)
        self.assertTrue(self.session.flush())
        self.assertEqual(self.session.snapshot().offset, 0.0)

        self.session.resume()
        self.session.submit_tick(0.5)
        self.session.flush()
        self.assertAlmostEqual(self.session.snapshot().offset, 25.0)

    def test_commands_applied_in_order(self):
        self.session.resume()
        self.session.pause()
        self.session.toggle_pause()
        self.session.speed_up()
        self.session.speed_up()
        self.session.speed_down()
        self.session.flush()
        snap = self.session.snapshot()
        self.assertFalse(snap.is_paused)
        self.assertEqual(snap.speed, 60.0)

    def test_set_speed_clamped(self):
        self.session.set_speed(1000)
        self.session.flush()
        self.assertEqual(self.session.snapshot().speed, 150.0)

    def test_scroll_and_go_to_offset(self):
        self.session.scroll_by_delta(-20)
        self.session.flush()
        self.assertEqual(self.session.snapshot().offset, 20.0)
        self.session.go_to_offset(40)
        self.session.flush()
        self.assertEqual(self.session.snapshot().offset, 40.0)

    def test_reset(self):
        self.session.resume()
        self.session.submit_tick(0.5)
        self.session.reset()
        self.session.flush()
        snap = self.session.snapshot()
        self.assertTrue(snap.is_paused)
        self.assertEqual(snap.offset, 0.0)

    def test_observers_notified(self):
        snapshots = []
        self.session.subscribe(snapshots.append)
        self.session.resume()
        self.session.flush()
        self.assertTrue(snapshots)
        self.assertFalse(snapshots[-1].is_paused)

    def test_load_script_rebuilds_and_resets(self):
        self.session.go_to_offset(28)
        self.session.load_script("one\ntwo\nthree\nfour")
        self.session.flush()
        snap = self.session.snapshot()
        self.assertEqual(snap.offset, 0.0)
        self.assertEqual(snap.content_height, 112.0)
        self.assertEqual(self.session.index.line_count, 4)

    def test_context_manager_and_repeated_shutdown(self):
        with PrompterSession("a\nb", scheduler=ManualScheduler(),
                             frame_clock=FrameClock()) as session:
            self.assertTrue(session.worker_thread.is_alive())
        self.assertFalse(session.worker_thread.is_alive())
        session.shutdown()


class TestSessionJumps(SessionTestCase):

    def test_jump_to_line_while_running_auto_resumes(self):
        self.session.resume()
        self.session.jump_to_line(2, auto_resume_after=1.0)
        self.session.flush()
        snap = self.session.snapshot()
        self.assertTrue(snap.is_paused)
        self.assertEqual(snap.offset, 56.0)
        self.assertEqual(snap.highlighted_line, 2)

        self.scheduler.advance(1.0)
        self.session.flush()
        snap = self.session.snapshot()
        self.assertFalse(snap.is_paused)
        self.assertIsNone(snap.highlighted_line)

    def test_jump_uses_configured_auto_resume(self):
        self.session.resume()
        self.session.jump_to_line(1)
        self.session.flush()
        self.scheduler.advance(0.5)
        self.session.flush()
        self.assertTrue(self.session.snapshot().is_paused)
        self.scheduler.advance(0.5)
        self.session.flush()
        self.assertFalse(self.session.snapshot().is_paused)

    def test_pause_after_jump_wins(self):
        self.session.resume()
        self.session.jump_to_line(1, 1.0)
        self.session.pause()
        self.session.flush()
        self.scheduler.advance(2.0)
        self.session.flush()
        self.assertTrue(self.session.snapshot().is_paused)


class TestSessionConcurrency(SessionTestCase):

    def test_commands_from_many_threads_keep_invariants(self):
        snapshots = []
        self.session.subscribe(snapshots.append)
        barrier = threading.Barrier(5)

        def ticker():
            barrier.wait()
            self.session.resume()
            for _ in range(200):
                self.session.submit_tick(1 / 60)

        def talker():
            barrier.wait()
            for _ in range(50):
                self.session.submit_words(["this", "is", "a", "teleprompter"])
                self.session.submit_words(["goodbye", "now"])

        def clicker():
            barrier.wait()
            for i in range(50):
                self.session.jump_to_line(i % 3, auto_resume_after=1.0)

        def nudger():
            barrier.wait()
            for i in range(100):
                self.session.scroll_by_delta(15 if i % 2 else -40)

        def speeder():
            barrier.wait()
            for i in range(100):
                self.session.adjust_speed(30 if i % 3 else -70)

        threads = [threading.Thread(target=fn)
                   for fn in (ticker, talker, clicker, nudger, speeder)]
        with self.assertNoLogs("cuesync", level="ERROR"):
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join(timeout=10.0)
            self.assertTrue(self.session.flush(timeout=5.0))

        self.assertTrue(snapshots)
        for snap in snapshots + [self.session.snapshot()]:
            self.assertGreaterEqual(snap.offset, 0.0)
            self.assertLessEqual(snap.offset, snap.max_offset)
            self.assertGreaterEqual(snap.speed, 10.0)
            self.assertLessEqual(snap.speed, 150.0)
        self.assertTrue(self.session.worker_thread.is_alive())


class TestSessionVoiceSync(SessionTestCase):

    def test_recognised_words_move_scroll(self):
        source = FakeSpeechSource()
        self.session.start_listening(source)
        self.assertTrue(self.session.is_listening)

        source.say("is", "a", "teleprompter")
        self.session.flush()
        self.assertEqual(self.session.snapshot().offset, 28.0)
        self.assertEqual(self.session.latest_jump.line_index, 1)
        self.assertGreater(self.session.confidence, 0.6)

    def test_submit_words_counts_requests(self):
        self.session.submit_words(["goodbye"])
        self.session.submit_words(["now"])
        self.session.flush()
        self.assertEqual(self.session.request_counter, 2)
        self.assertEqual(self.session.snapshot().offset, 56.0)

    def test_unavailable_recognition_propagates(self):
        with self.assertLogs("cuesync.session", level="WARNING"):
            with self.assertRaises(RecognitionUnavailable):
                self.session.start_listening(FakeSpeechSource(fail=True))
        self.assertFalse(self.session.is_listening)

        # Manual scrolling still works
        self.session.resume()
        self.session.submit_tick(0.2)
        self.session.flush()
        self.assertAlmostEqual(self.session.snapshot().offset, 10.0)

    def test_stop_listening(self):
        source = FakeSpeechSource()
        self.session.start_listening(source)
        self.session.stop_listening()
        self.assertEqual(source.stop_calls, 1)
        self.assertFalse(self.session.is_listening)

    def test_new_source_replaces_old(self):
        first, second = FakeSpeechSource(), FakeSpeechSource()
        self.session.start_listening(first)
        self.session.start_listening(second)
        self.assertEqual(first.stop_calls, 1)
        self.assertTrue(self.session.is_listening)

    def test_shutdown_stops_listening(self):
        source = FakeSpeechSource()
        self.session.start_listening(source)
        self.session.shutdown()
        self.assertEqual(source.stop_calls, 1)


class TestSessionBackpressure(unittest.TestCase):

    def test_updates_dropped_when_worker_is_busy(self):
        session = PrompterSession(SCRIPT, scheduler=ManualScheduler(),
                                  frame_clock=FrameClock(), max_queue_size=4)
        entered = threading.Event()
        release = threading.Event()

        def slow_observer(_snapshot):
            entered.set()
            release.wait(timeout=5.0)

        unsubscribe = session.subscribe(slow_observer)
        try:
            session.adjust_speed(10)
            self.assertTrue(entered.wait(timeout=2.0))

            accepted = [session.submit_words(["hello"]) for _ in range(10)]
            self.assertEqual(accepted.count(True), 4)
            self.assertEqual(session.dropped_updates, 6)
        finally:
            unsubscribe()
            release.set()
            session.shutdown()
