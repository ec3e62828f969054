"""
Behavior state tracker tests.

Rolling-window statistics, window eviction and the 800 ms minimum-dwell gate.
"""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import unittest


class TestBehaviorStatistics(unittest.TestCase):
    """Windowed statistics."""

    def setUp(self):
        from utils.behavior_state_tracker import BehaviorStateTracker
        self.tracker = BehaviorStateTracker()

    def test_blink_rate_default_with_few_blinks(self):
        """Fewer than two blinks gives the normal rate of 15/min."""
        self.assertEqual(self.tracker.blink_rate(), 15)
        self.tracker.record_eyes(False, 0)
        self.assertEqual(self.tracker.blink_rate(), 15)

    def test_blink_recorded_on_open_to_closed_only(self):
        """Only the open->closed transition counts as a blink."""
        self.assertTrue(self.tracker.record_eyes(False, 0))
        self.assertFalse(self.tracker.record_eyes(False, 33))
        self.assertFalse(self.tracker.record_eyes(True, 66))
        self.assertTrue(self.tracker.record_eyes(False, 100))
        self.assertEqual(len(self.tracker.blinks), 2)

    def test_blink_rate_from_spacing(self):
        """Blinks 2 s apart over 6 s give 30 blinks/min."""
        for i in range(4):
            self.tracker.record_eyes(False, i * 2000)
            self.tracker.record_eyes(True, i * 2000 + 100)
        self.assertAlmostEqual(self.tracker.blink_rate(), 30.0)

    def test_head_frequently_away(self):
        """More than 40% of samples beyond 0.25 from center."""
        for i, x in enumerate([0.5, 0.9, 0.9, 0.5]):
            self.tracker.record_head_position(x, 0.5, i * 100)
        self.assertTrue(self.tracker.is_head_frequently_away())

    def test_head_frequently_down(self):
        """More than 40% of samples below y 0.51."""
        for i, y in enumerate([0.5, 0.6, 0.6]):
            self.tracker.record_head_position(0.5, y, i * 100)
        self.assertTrue(self.tracker.is_head_frequently_down())
        self.tracker.record_head_position(0.5, 0.5, 300)
        self.tracker.record_head_position(0.5, 0.5, 400)
        self.assertFalse(self.tracker.is_head_frequently_down())

    def test_long_eye_closures(self):
        """A closure over 1200 ms counts, including one still in progress."""
        self.tracker.record_eyes(False, 0)
        self.assertFalse(self.tracker.has_long_eye_closures(now=1000))
        self.assertTrue(self.tracker.has_long_eye_closures(now=1300))
        self.tracker.record_eyes(True, 1300)
        self.assertTrue(self.tracker.has_long_eye_closures())

    def test_face_lost_ends_open_closure(self):
        """Losing the face ends an in-progress closure; the gap is not closure time."""
        self.tracker.record_eyes(False, 1000)
        self.tracker.face_lost(1100)
        self.tracker.record_eyes(True, 3100)
        self.assertFalse(self.tracker.has_long_eye_closures(now=3100))
        self.assertTrue(self.tracker.record_eyes(False, 3200))

    def test_mouth_frequently_tight(self):
        """More than 35% of mouth ratios under 0.22."""
        for i, r in enumerate([0.1, 0.3, 0.1]):
            self.tracker.record_mouth_ratio(r, i * 100)
        self.assertTrue(self.tracker.is_mouth_frequently_tight())

    def test_prune_evicts_old_samples(self):
        """Samples older than 10 s are evicted; open closures are kept."""
        self.tracker.record_head_position(0.5, 0.5, 0)
        self.tracker.record_mouth_ratio(0.3, 0)
        self.tracker.record_eyes(False, 0)
        self.tracker.prune(10001)
        self.assertEqual(len(self.tracker.head_positions), 0)
        self.assertEqual(len(self.tracker.mouth_ratios), 0)
        self.assertEqual(len(self.tracker.blinks), 0)
        self.assertEqual(len(self.tracker.closures), 1)

    def test_history_capacity_bounded(self):
        """Histories never exceed 100 entries."""
        for i in range(250):
            self.tracker.record_head_position(0.5, 0.5, i)
        self.assertEqual(len(self.tracker.head_positions), 100)

    def test_head_stable(self):
        """More than five steady samples is stable."""
        for i in range(6):
            self.tracker.record_head_position(0.5, 0.5, i * 100)
        self.assertTrue(self.tracker.is_head_stable())

    def test_head_stable_limit_from_config(self):
        """The stability limit is read from HEAD_STABLE_VARIANCE."""
        from unittest.mock import patch
        for i in range(6):
            self.tracker.record_head_position(0.5 + (i % 2) * 0.1, 0.5, i * 100)
        self.assertTrue(self.tracker.is_head_stable())
        with patch("config.HEAD_STABLE_VARIANCE", 0.001):
            self.assertFalse(self.tracker.is_head_stable())


class TestMinimumDwell(unittest.TestCase):
    """Classification hysteresis."""

    def setUp(self):
        from utils.behavior_state_tracker import BehaviorStateTracker
        self.tracker = BehaviorStateTracker(now=0)

    def test_starts_confident(self):
        """Initial state is confident."""
        from utils.behavior_state_tracker import Expression
        self.assertEqual(self.tracker.current_state, Expression.CONFIDENT)

    def test_switch_requires_800ms(self):
        """A new state is accepted only after 800 ms of continuous proposals."""
        from utils.behavior_state_tracker import Expression
        self.assertEqual(self.tracker.update_state(Expression.NERVOUS, 1000), Expression.CONFIDENT)
        self.assertEqual(self.tracker.update_state(Expression.NERVOUS, 1799), Expression.CONFIDENT)
        self.assertEqual(self.tracker.update_state(Expression.NERVOUS, 1800), Expression.NERVOUS)
        self.assertEqual(len(self.tracker.transitions), 1)
        self.assertEqual(self.tracker.transitions[0]["state"], "confident")

    def test_interrupted_proposal_restarts_dwell(self):
        """Flicker back to the current state resets the pending candidate."""
        from utils.behavior_state_tracker import Expression
        self.tracker.update_state(Expression.DISTRACTED, 0)
        self.tracker.update_state(Expression.CONFIDENT, 500)
        self.assertEqual(self.tracker.update_state(Expression.DISTRACTED, 900), Expression.CONFIDENT)
        self.assertEqual(self.tracker.update_state(Expression.DISTRACTED, 1700), Expression.DISTRACTED)

    def test_reset(self):
        """reset() clears history and returns to confident."""
        from utils.behavior_state_tracker import Expression
        self.tracker.record_head_position(0.5, 0.5, 0)
        self.tracker.update_state(Expression.NERVOUS, 0)
        self.tracker.update_state(Expression.NERVOUS, 900)
        self.tracker.reset(1000)
        self.assertEqual(self.tracker.current_state, Expression.CONFIDENT)
        self.assertEqual(len(self.tracker.head_positions), 0)


if __name__ == "__main__":
    unittest.main()
