# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Tests for the scroll position state machine.

Deferred actions run on a ManualScheduler so auto-resume and highlight
timing is checked without sleeping.
"""

import unittest
from unittest import mock

import pytest

from cuesync.scheduler import ManualScheduler
from cuesync.scroll_state import ScrollSnapshot, ScrollState, line_for_offset


def make_state(content=280.0, visible=100.0, **kwargs):
    scheduler = ManualScheduler()
    state = ScrollState(content_height=content, visible_height=visible,
                        scheduler=scheduler, **kwargs)
    return state, scheduler


class TestInitialState(unittest.TestCase):

    def test_starts_paused_at_top(self):
        state, _ = make_state()
        self.assertTrue(state.is_paused)
        self.assertEqual(state.offset, 0.0)
        self.assertEqual(state.speed, 50.0)
        self.assertIsNone(state.highlighted_line)

    def test_max_offset(self):
        state, _ = make_state(content=280, visible=100)
        self.assertEqual(state.max_offset, 180)

    def test_max_offset_never_negative(self):
        state, _ = make_state(content=50, visible=100)
        self.assertEqual(state.max_offset, 0)

    def test_initial_speed_clamped(self):
        state, _ = make_state(speed=1000)
        self.assertEqual(state.speed, 150.0)

    def test_invalid_settings(self):
        with self.assertRaises(ValueError):
            ScrollState(line_height=0, scheduler=ManualScheduler())
        with self.assertRaises(ValueError):
            ScrollState(speed_min=100, speed_max=10, scheduler=ManualScheduler())


class TestTick(unittest.TestCase):

    def test_tick_ignored_while_paused(self):
        state, _ = make_state()
        state.tick(1.0)
        self.assertEqual(state.offset, 0.0)

    def test_tick_advances_by_speed_times_dt(self):
        state, _ = make_state()
        state.resume()
        state.tick(0.5)
        self.assertAlmostEqual(state.offset, 25.0)
        state.tick(1 / 60)
        self.assertAlmostEqual(state.offset, 25.0 + 50.0 / 60)

    def test_non_positive_dt_is_ignored(self):
        state, _ = make_state()
        state.resume()
        state.tick(0.0)
        state.tick(-1.0)
        self.assertEqual(state.offset, 0.0)

    def test_auto_pause_at_end(self):
        state, _ = make_state(content=280, visible=100)
        state.resume()
        state.tick(10.0)
        self.assertEqual(state.offset, 180)
        self.assertTrue(state.is_paused)

    def test_reaching_end_exactly_pauses(self):
        state, _ = make_state(content=150, visible=100)
        state.resume()
        state.tick(1.0)  # 50 px == max_offset
        self.assertEqual(state.offset, 50)
        self.assertTrue(state.is_paused)

    def test_offset_stays_in_bounds_over_many_ticks(self):
        state, _ = make_state()
        state.resume()
        for _ in range(1000):
            state.tick(1 / 60)
            self.assertGreaterEqual(state.offset, 0)
            self.assertLessEqual(state.offset, state.max_offset)

    def test_tick_clamps_offset_beyond_end(self):
        state, _ = make_state(content=280, visible=100)
        state.go_to_offset(500)
        state.resume()
        state.tick(0.01)
        self.assertEqual(state.offset, 180)
        self.assertTrue(state.is_paused)


class TestPauseResume(unittest.TestCase):

    def test_pause_is_idempotent(self):
        state, _ = make_state()
        observer = mock.Mock()
        state.resume()
        state.subscribe(observer)
        state.pause()
        state.pause()
        self.assertTrue(state.is_paused)
        self.assertEqual(observer.call_count, 1)

    def test_resume_resets_baseline(self):
        reset = mock.Mock()
        state = ScrollState(scheduler=ManualScheduler(), on_baseline_reset=reset)
        state.resume()
        reset.assert_called_once()

    def test_toggle(self):
        state, _ = make_state()
        state.toggle_pause()
        self.assertFalse(state.is_paused)
        state.toggle_pause()
        self.assertTrue(state.is_paused)

    def test_reset(self):
        state, scheduler = make_state()
        state.resume()
        state.tick(1.0)
        state.jump_to_line(2, 1.0)
        state.reset()
        self.assertTrue(state.is_paused)
        self.assertEqual(state.offset, 0.0)
        self.assertIsNone(state.highlighted_line)
        self.assertFalse(state.auto_resume_pending)
        scheduler.advance(5.0)
        self.assertTrue(state.is_paused)


class TestSpeed(unittest.TestCase):

    def test_adjust_speed_clamps_to_max(self):
        state, _ = make_state()
        state.adjust_speed(1000)
        self.assertEqual(state.speed, 150.0)

    def test_adjust_speed_clamps_to_min(self):
        state, _ = make_state()
        state.adjust_speed(-1000)
        self.assertEqual(state.speed, 10.0)

    def test_adjust_speed_does_not_change_state(self):
        state, _ = make_state()
        state.adjust_speed(10)
        self.assertEqual(state.speed, 60.0)
        self.assertTrue(state.is_paused)
        self.assertEqual(state.offset, 0.0)


class TestManualScrolling(unittest.TestCase):

    def test_positive_delta_moves_back(self):
        state, _ = make_state()
        state.go_to_offset(100)
        state.scroll_by_delta(30)
        self.assertEqual(state.offset, 70)

    def test_negative_delta_moves_forward(self):
        state, _ = make_state()
        state.scroll_by_delta(-30)
        self.assertEqual(state.offset, 30)

    def test_delta_is_clamped(self):
        state, _ = make_state(content=280, visible=100)
        state.scroll_by_delta(50)
        self.assertEqual(state.offset, 0)
        state.scroll_by_delta(-1000)
        self.assertEqual(state.offset, 180)

    def test_works_while_running(self):
        state, _ = make_state()
        state.resume()
        state.scroll_by_delta(-20)
        self.assertEqual(state.offset, 20)
        self.assertFalse(state.is_paused)

    def test_go_to_offset_only_clamps_below(self):
        reset = mock.Mock()
        state = ScrollState(content_height=280, visible_height=100,
                            scheduler=ManualScheduler(), on_baseline_reset=reset)
        state.go_to_offset(-10)
        self.assertEqual(state.offset, 0)
        state.go_to_offset(1000)
        self.assertEqual(state.offset, 1000)
        self.assertEqual(reset.call_count, 2)

    def test_content_size_change_clamps_offset(self):
        state, _ = make_state(content=1000, visible=100)
        state.go_to_offset(800)
        state.set_content_size(300, 100)
        self.assertEqual(state.offset, 200)


class TestNonFiniteInput(unittest.TestCase):
    """NaN and infinity must never reach the offset or speed."""

    def test_speed_commands_ignore_non_finite(self):
        state, _ = make_state()
        for value in (float("nan"), float("inf"), float("-inf")):
            state.adjust_speed(value)
            state.set_speed(value)
        self.assertEqual(state.speed, 50.0)

        state.resume()
        state.tick(1.0)
        self.assertEqual(state.offset, 50.0)
        self.assertEqual(state.snapshot().current_line_index, 1)

    def test_offset_commands_ignore_non_finite(self):
        state, _ = make_state()
        state.go_to_offset(40)
        for value in (float("nan"), float("inf"), float("-inf")):
            state.scroll_by_delta(value)
            state.go_to_offset(value)
            state.set_content_size(value, 100)
        self.assertEqual(state.offset, 40)
        self.assertEqual(state.max_offset, 180)
        self.assertEqual(state.snapshot().offset, 40)

    def test_tick_ignores_non_finite_dt(self):
        state, _ = make_state()
        state.resume()
        state.tick(float("nan"))
        state.tick(float("inf"))
        self.assertEqual(state.offset, 0.0)
        self.assertFalse(state.is_paused)

    def test_jump_ignores_non_finite_resume_delay(self):
        state, scheduler = make_state()
        state.resume()
        state.jump_to_line(2, float("nan"))
        self.assertEqual(state.offset, 0.0)
        self.assertFalse(state.is_paused)
        self.assertEqual(scheduler.pending_count, 0)

    def test_constructor_rejects_non_finite_speed(self):
        with self.assertRaises(ValueError):
            ScrollState(speed=float("nan"), scheduler=ManualScheduler())


class TestJumpToLine(unittest.TestCase):

    def test_jump_while_running_pauses_then_resumes(self):
        state, scheduler = make_state()
        state.resume()
        state.jump_to_line(2, auto_resume_after=1.0)
        self.assertTrue(state.is_paused)
        self.assertEqual(state.offset, 56)
        scheduler.advance(0.5)
        self.assertTrue(state.is_paused)
        scheduler.advance(0.5)
        self.assertFalse(state.is_paused)

    def test_jump_while_paused_stays_paused(self):
        state, scheduler = make_state()
        state.jump_to_line(3, auto_resume_after=1.0)
        self.assertEqual(state.offset, 84)
        self.assertFalse(state.auto_resume_pending)
        scheduler.advance(5.0)
        self.assertTrue(state.is_paused)

    def test_pause_cancels_pending_resume(self):
        state, scheduler = make_state()
        state.resume()
        state.jump_to_line(2, 1.0)
        state.pause()
        scheduler.advance(2.0)
        self.assertTrue(state.is_paused)

    def test_newer_jump_replaces_pending_resume(self):
        state, scheduler = make_state()
        state.resume()
        state.jump_to_line(1, 1.0)
        scheduler.advance(0.5)
        state.jump_to_line(4, 1.0)
        self.assertEqual(scheduler.pending_count, 2)  # one resume, one highlight clear
        scheduler.advance(0.6)  # first resume would have fired at 1.0
        self.assertTrue(state.is_paused)
        scheduler.advance(0.4)
        self.assertFalse(state.is_paused)

    def test_at_most_one_resume_pending(self):
        state, scheduler = make_state()
        state.resume()
        for line in range(5):
            state.jump_to_line(line, 1.0)
        self.assertTrue(state.auto_resume_pending)
        resumed = []
        state.subscribe(lambda snap: resumed.append(snap) if not snap.is_paused else None)
        scheduler.advance(2.0)
        self.assertEqual(len(resumed), 1)

    def test_highlight_clears_after_fixed_duration(self):
        state, scheduler = make_state()
        state.jump_to_line(2, auto_resume_after=5.0)
        self.assertEqual(state.highlighted_line, 2)
        scheduler.advance(0.25)
        self.assertEqual(state.highlighted_line, 2)
        scheduler.advance(0.25)
        self.assertIsNone(state.highlighted_line)

    def test_second_highlight_restarts_timer(self):
        state, scheduler = make_state()
        state.jump_to_line(1, 1.0)
        scheduler.advance(0.4)
        state.jump_to_line(2, 1.0)
        scheduler.advance(0.2)
        self.assertEqual(state.highlighted_line, 2)
        scheduler.advance(0.5)
        self.assertIsNone(state.highlighted_line)

    def test_negative_line_clamped_to_top(self):
        state, _ = make_state()
        state.go_to_offset(100)
        state.jump_to_line(-3, 1.0)
        self.assertEqual(state.offset, 0)

    def test_close_cancels_deferred_actions(self):
        state, scheduler = make_state()
        state.resume()
        state.jump_to_line(2, 1.0)
        state.close()
        self.assertEqual(scheduler.pending_count, 0)
        scheduler.advance(2.0)
        self.assertTrue(state.is_paused)
        self.assertEqual(state.highlighted_line, 2)


class TestHover(unittest.TestCase):

    def test_hover_pauses_and_leave_resumes(self):
        state, _ = make_state()
        state.resume()
        state.set_hovering(True)
        self.assertTrue(state.is_paused)
        self.assertTrue(state.is_hovering)
        state.set_hovering(False)
        self.assertFalse(state.is_paused)

    def test_repeated_hover_is_ignored(self):
        state, _ = make_state()
        state.set_hovering(False)
        self.assertTrue(state.is_paused)


class TestObservers(unittest.TestCase):

    def test_observer_receives_snapshots(self):
        state, _ = make_state()
        snapshots = []
        state.subscribe(snapshots.append)
        state.resume()
        state.tick(0.1)
        self.assertEqual(len(snapshots), 2)
        self.assertIsInstance(snapshots[-1], ScrollSnapshot)
        self.assertAlmostEqual(snapshots[-1].offset, 5.0)
        self.assertFalse(snapshots[-1].is_paused)

    def test_unsubscribe(self):
        state, _ = make_state()
        observer = mock.Mock()
        unsubscribe = state.subscribe(observer)
        unsubscribe()
        unsubscribe()
        state.resume()
        observer.assert_not_called()

    def test_failing_observer_does_not_break_state(self):
        state, _ = make_state()
        state.subscribe(mock.Mock(side_effect=RuntimeError("render failed")))
        good = mock.Mock()
        state.subscribe(good)
        with self.assertLogs("cuesync.scroll_state", level="ERROR"):
            state.resume()
        self.assertFalse(state.is_paused)
        good.assert_called_once()

    def test_snapshot_dict_keys(self):
        state, _ = make_state()
        data = state.snapshot().to_dict()
        self.assertEqual(data["isPaused"], True)
        self.assertEqual(data["offset"], 0.0)
        self.assertIn("currentLineIndex", data)


@pytest.mark.parametrize("offset,expected", [
    (0.0, 0),
    (27.9, 0),
    (28.0, 1),
    (83.0, 2),
    (-5.0, 0),
])
def test_line_for_offset(offset, expected):
    assert line_for_offset(offset, 28.0) == expected
