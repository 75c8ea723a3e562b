# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Tests for cancellable deferred actions.
"""

import threading
import unittest

from cuesync.scheduler import DeferredAction, ManualScheduler, ThreadScheduler


class TestDeferredAction(unittest.TestCase):
    """A handle runs its callback at most once."""

    def test_fire_runs_once(self):
        calls = []
        action = DeferredAction(lambda: calls.append(1))
        self.assertTrue(action.pending)
        self.assertTrue(action.fire())
        self.assertFalse(action.fire())
        self.assertEqual(calls, [1])
        self.assertFalse(action.pending)

    def test_cancel_prevents_fire(self):
        calls = []
        action = DeferredAction(lambda: calls.append(1))
        self.assertTrue(action.cancel())
        self.assertFalse(action.fire())
        self.assertFalse(action.cancel())
        self.assertEqual(calls, [])


class TestManualScheduler(unittest.TestCase):
    """Simulated time only moves when advanced."""

    def setUp(self):
        self.scheduler = ManualScheduler()
        self.calls = []

    def test_nothing_runs_until_due(self):
        self.scheduler.call_later(1.0, lambda: self.calls.append("a"))
        self.assertEqual(self.scheduler.advance(0.99), 0)
        self.assertEqual(self.calls, [])
        self.assertEqual(self.scheduler.advance(0.01), 1)
        self.assertEqual(self.calls, ["a"])

    def test_runs_in_due_order(self):
        self.scheduler.call_later(2.0, lambda: self.calls.append("late"))
        self.scheduler.call_later(0.5, lambda: self.calls.append("early"))
        self.scheduler.call_later(0.5, lambda: self.calls.append("early2"))
        self.scheduler.advance(5.0)
        self.assertEqual(self.calls, ["early", "early2", "late"])

    def test_time_is_due_time_inside_callback(self):
        seen = []
        self.scheduler.call_later(0.5, lambda: seen.append(self.scheduler.time()))
        self.scheduler.advance(2.0)
        self.assertEqual(seen, [0.5])
        self.assertEqual(self.scheduler.time(), 2.0)

    def test_cancelled_action_does_not_run(self):
        action = self.scheduler.call_later(1.0, lambda: self.calls.append("x"))
        self.assertEqual(self.scheduler.pending_count, 1)
        action.cancel()
        self.assertEqual(self.scheduler.pending_count, 0)
        self.assertEqual(self.scheduler.advance(2.0), 0)
        self.assertEqual(self.calls, [])

    def test_callback_can_schedule_more(self):
        def first():
            self.calls.append("first")
            self.scheduler.call_later(0.5, lambda: self.calls.append("second"))

        self.scheduler.call_later(0.5, first)
        self.scheduler.advance(1.0)
        self.assertEqual(self.calls, ["first", "second"])

    def test_shutdown_cancels_everything(self):
        action = self.scheduler.call_later(1.0, lambda: self.calls.append("x"))
        self.scheduler.shutdown()
        self.assertFalse(action.pending)
        self.scheduler.advance(2.0)
        self.assertEqual(self.calls, [])


class TestThreadScheduler(unittest.TestCase):
    """Real timers fire on their own threads."""

    def setUp(self):
        self.scheduler = ThreadScheduler()

    def tearDown(self):
        self.scheduler.shutdown()

    def test_fires_after_delay(self):
        fired = threading.Event()
        self.scheduler.call_later(0.01, fired.set)
        self.assertTrue(fired.wait(timeout=2.0))

    def test_cancel_before_due(self):
        fired = threading.Event()
        action = self.scheduler.call_later(0.2, fired.set)
        action.cancel()
        self.assertFalse(fired.wait(timeout=0.4))

    def test_failing_callback_is_logged(self):
        def boom():
            raise ValueError("boom")

        with self.assertLogs("cuesync.scheduler", level="ERROR"):
            done = threading.Event()
            self.scheduler.call_later(0.0, boom)
            self.scheduler.call_later(0.05, done.set)
            self.assertTrue(done.wait(timeout=2.0))
