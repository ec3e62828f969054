"""
Expression classifier tests.

Priority rules on hand-built signals, plus end-to-end classification of the
synthetic faces through the behavior tracker and dwell gate.
"""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import unittest


def _signals(**overrides):
    from utils.expression_classifier import BehaviorSignals
    values = dict(head_x=0.5, head_y=0.5, head_pose=0.9, mouth_ratio=0.3, eyes_open=True, blink_rate=15)
    values.update(overrides)
    return BehaviorSignals(**values)


class TestPriorityRules(unittest.TestCase):
    """resolve_expression cascade."""

    def test_distraction_wins_over_everything(self):
        """Distraction > 25 is Distracted even with high nervous and confident scores."""
        from utils.behavior_state_tracker import Expression
        from utils.expression_classifier import resolve_expression
        expression, confidence = resolve_expression(_signals(), nervous=80, distraction=30, confident=95)
        self.assertEqual(expression, Expression.DISTRACTED)
        self.assertEqual(confidence, 30)

    def test_strong_confident_beats_nervous(self):
        """Stable, frontal, normal blink, relaxed mouth: confident wins outright."""
        from utils.behavior_state_tracker import Expression
        from utils.expression_classifier import resolve_expression
        expression, _ = resolve_expression(_signals(head_stable=True), nervous=60, distraction=0, confident=55)
        self.assertEqual(expression, Expression.CONFIDENT)

    def test_weak_confident_falls_through_to_nervous(self):
        """Without strong conditions, nervous > 15 wins unless confident leads by 10."""
        from utils.behavior_state_tracker import Expression
        from utils.expression_classifier import resolve_expression
        s = _signals(head_pose=0.6, mouth_ratio=0.1)
        self.assertEqual(resolve_expression(s, nervous=40, distraction=0, confident=55)[0], Expression.CONFIDENT)
        self.assertEqual(resolve_expression(s, nervous=50, distraction=0, confident=55)[0], Expression.NERVOUS)
        self.assertEqual(resolve_expression(s, nervous=40, distraction=0, confident=55)[0], Expression.CONFIDENT)

    def test_nervous_above_threshold(self):
        """Confident at or below 50 and nervous > 15 is Nervous."""
        from utils.behavior_state_tracker import Expression
        from utils.expression_classifier import resolve_expression
        expression, confidence = resolve_expression(_signals(), nervous=20, distraction=0, confident=50)
        self.assertEqual(expression, Expression.NERVOUS)
        self.assertEqual(confidence, 20)

    def test_positive_baseline(self):
        """No strong indicator defaults to Confident with at least 50 confidence."""
        from utils.behavior_state_tracker import Expression
        from utils.expression_classifier import resolve_expression
        expression, confidence = resolve_expression(_signals(head_pose=0.3, blink_rate=40), 0, 0, 10)
        self.assertEqual(expression, Expression.CONFIDENT)
        self.assertGreaterEqual(confidence, 50)


class TestScores(unittest.TestCase):
    """Individual score components."""

    def test_confident_indicators_damp_nervous(self):
        """A hand near the head on an otherwise confident face is reduced, not zeroed."""
        from utils.expression_classifier import nervous_score
        plain = nervous_score(_signals(hand_near_head=True, head_pose=0.3, blink_rate=30))
        damped = nervous_score(_signals(hand_near_head=True, head_stable=True))
        self.assertGreater(damped, 0)
        self.assertLess(damped, plain)
        self.assertAlmostEqual(damped, 50 * 0.2)

    def test_distraction_head_away(self):
        """A head far from center exceeds the distraction threshold."""
        from utils.expression_classifier import distraction_score
        self.assertGreater(distraction_score(_signals(head_x=0.85)), 25)
        self.assertEqual(distraction_score(_signals()), 0)

    def test_closed_eyes_add_distraction(self):
        """Closed eyes add 20."""
        from utils.expression_classifier import distraction_score
        self.assertEqual(distraction_score(_signals(eyes_open=False)), 20)

    def test_scores_capped(self):
        """Scores never exceed 100."""
        from utils.expression_classifier import nervous_score, distraction_score, confident_score
        worst = _signals(head_x=0.95, head_y=0.9, head_pose=0.1, mouth_ratio=0.05, eyes_open=False,
                         blink_rate=40, hand_near_head=True, mouth_frequently_tight=True,
                         head_frequently_down=True, head_frequently_away=True, long_eye_closures=True)
        self.assertLessEqual(nervous_score(worst), 100)
        self.assertLessEqual(distraction_score(worst), 100)
        self.assertLessEqual(confident_score(_signals(head_stable=True)), 100)

    def test_weights_read_from_config(self):
        """Score increments and the confident margin are tunable in config."""
        from unittest.mock import patch
        import config
        from utils.behavior_state_tracker import Expression
        from utils.expression_classifier import distraction_score, resolve_expression
        with patch.dict(config.DISTRACTION_WEIGHTS, {"eyes_closed": 7}):
            self.assertEqual(distraction_score(_signals(eyes_open=False)), 7)
        s = _signals(head_pose=0.6, mouth_ratio=0.1)
        with patch("config.CONFIDENT_MARGIN_OVER_NERVOUS", 20.0):
            self.assertEqual(resolve_expression(s, nervous=40, distraction=0, confident=55)[0], Expression.NERVOUS)


class TestClassifyExpression(unittest.TestCase):
    """End-to-end classification with the tracker and dwell gate."""

    def setUp(self):
        from utils.behavior_state_tracker import BehaviorStateTracker
        self.tracker = BehaviorStateTracker(now=0)

    def _classify(self, raw_face, now, hands=()):
        from utils import geometry
        from utils import landmarks as lm
        from utils.expression_classifier import classify_expression
        face = lm.parse_face(raw_face)
        eyes_open = geometry.average_ear(face) > 0.12
        mouth = geometry.face_mouth_ratio(face)
        nose = face[lm.NOSE_TIP]
        self.tracker.record_eyes(eyes_open, now)
        self.tracker.record_head_position(nose.x, nose.y, now)
        self.tracker.record_mouth_ratio(mouth, now)
        self.tracker.prune(now)
        return classify_expression(face, lm.parse_hands(list(hands)), self.tracker, eyes_open,
                                   geometry.head_pose_score(face), mouth, now)

    def test_no_face(self):
        """No face reports no expression and 0 confidence."""
        from utils.expression_classifier import classify_expression
        result = classify_expression(None, (), self.tracker, True, 0.0, 0.0, 0)
        self.assertIsNone(result.expression)
        self.assertEqual(result.confidence, 0)

    def test_neutral_face_is_confident(self):
        """A centered, open-eyed, relaxed face is Confident."""
        from utils.behavior_state_tracker import Expression
        from tests.fixtures.synthetic_landmarks import neutral_face
        result = self._classify(neutral_face(), 0)
        self.assertEqual(result.expression, Expression.CONFIDENT)
        self.assertEqual(result.confidence, 100)

    def test_head_turned_becomes_distracted_after_dwell(self):
        """Distracted is reported only after 800 ms of distracted frames."""
        from utils.behavior_state_tracker import Expression
        from tests.fixtures.synthetic_landmarks import head_turned_face
        first = self._classify(head_turned_face(), 0)
        self.assertEqual(first.raw_expression, Expression.DISTRACTED)
        self.assertEqual(first.expression, Expression.CONFIDENT)
        self.assertEqual(first.confidence, first.confident_score)
        result = None
        for t in range(100, 1001, 100):
            result = self._classify(head_turned_face(), t)
        self.assertEqual(result.expression, Expression.DISTRACTED)

    def test_head_down_tight_mouth_becomes_nervous(self):
        """A lowered head with pressed lips settles on Nervous."""
        from utils.behavior_state_tracker import Expression
        from tests.fixtures.synthetic_landmarks import make_face
        face = make_face(center=(0.5, 0.62), mouth_open=0.01)
        result = None
        for t in range(0, 1501, 100):
            result = self._classify(face, t)
        self.assertEqual(result.expression, Expression.NERVOUS)
        self.assertIn("blinkRate", result.to_dict()["signals"])


if __name__ == "__main__":
    unittest.main()
