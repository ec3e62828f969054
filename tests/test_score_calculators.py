"""
Score calculator tests: engagement, attention, stability and safe defaults.
"""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import unittest
from unittest.mock import patch


def _face(raw):
    from utils.landmarks import parse_face
    return parse_face(raw)


class TestRounding(unittest.TestCase):
    """Integer score rounding."""

    def test_round_half_up(self):
        """.5 rounds up."""
        from utils.score_calculators import round_half_up, to_percent
        self.assertEqual(round_half_up(2.5), 3)
        self.assertEqual(round_half_up(0.5), 1)
        self.assertEqual(round_half_up(2.49), 2)
        self.assertEqual(to_percent(1.7), 100)
        self.assertEqual(to_percent(-0.2), 0)


class TestEngagementAndAttention(unittest.TestCase):
    """Engagement and attention scores."""

    def setUp(self):
        from utils.score_calculators import ScoreCalculator
        self.calc = ScoreCalculator()

    def test_engagement_neutral_face(self):
        """Presence + open eyes + frontal head pose gives 100."""
        from tests.fixtures.synthetic_landmarks import neutral_face
        self.assertEqual(self.calc.engagement(_face(neutral_face())), 100)

    def test_engagement_closed_eyes(self):
        """Closed eyes remove the 40% eye-openness share."""
        from tests.fixtures.synthetic_landmarks import eyes_closed_face
        self.assertEqual(self.calc.engagement(_face(eyes_closed_face())), 60)

    def test_attention_without_previous_frame(self):
        """Steadiness is 0.5 with no previous head position."""
        from tests.fixtures.synthetic_landmarks import neutral_face
        self.assertEqual(self.calc.attention(_face(neutral_face()), None), 85)

    def test_attention_still_and_moving(self):
        """No movement gives the full bonus; 0.05 or more gives none."""
        from tests.fixtures.synthetic_landmarks import neutral_face
        face = _face(neutral_face())
        self.assertEqual(self.calc.attention(face, (0.5, 0.5)), 100)
        self.assertEqual(self.calc.attention(face, (0.6, 0.5)), 70)

    def test_no_face_scores_zero(self):
        """Fewer than 468 landmarks gives 0."""
        self.assertEqual(self.calc.engagement(None), 0)
        self.assertEqual(self.calc.attention(None, (0.5, 0.5)), 0)

    def test_metric_failure_returns_default(self):
        """An internal error yields the metric's safe default."""
        from tests.fixtures.synthetic_landmarks import neutral_face
        with patch("utils.geometry.head_pose_score", side_effect=RuntimeError("boom")):
            self.assertEqual(self.calc.engagement(_face(neutral_face())), 0)


class TestStability(unittest.TestCase):
    """Head and hand stability."""

    def setUp(self):
        from utils.score_calculators import ScoreCalculator
        self.calc = ScoreCalculator()

    def test_no_face_is_neutral(self):
        """No current head gives the neutral default of 50."""
        self.assertEqual(self.calc.stability(None, (0.5, 0.5), (), ()), 50)

    def test_no_hands_is_neutral_contribution(self):
        """Still head and no hands: 60% + 40% * 0.5."""
        self.assertEqual(self.calc.stability((0.5, 0.5), (0.5, 0.5), (), ()), 80)
        self.assertEqual(self.calc.stability((0.5, 0.5), None, (), ()), 80)

    def test_hands_without_previous_frame(self):
        """Hands with no previous frame count as fully stable."""
        self.assertEqual(self.calc.stability((0.5, 0.5), (0.5, 0.5), ((0.1, 0.9),), ()), 100)

    def test_head_movement(self):
        """Head moving half the cap halves the head share."""
        self.assertEqual(self.calc.stability((0.55, 0.5), (0.5, 0.5), (), ()), 50)

    def test_hand_movement(self):
        """Hands moving past the cap lose the hand share."""
        current = ((0.5, 0.5), (0.6, 0.6))
        previous = ((0.5, 0.7), (0.6, 0.8))
        self.assertEqual(self.calc.stability((0.5, 0.5), (0.5, 0.5), current, previous), 60)

    def test_positions_from_landmarks(self):
        """head_position is the nose tip; hand_positions flattens all hands."""
        from utils.landmarks import parse_hands
        from utils.score_calculators import head_position, hand_positions
        from tests.fixtures.synthetic_landmarks import neutral_face, make_hand
        self.assertEqual(head_position(_face(neutral_face())), (0.5, 0.5))
        self.assertIsNone(head_position(None))
        hands = parse_hands([make_hand(), make_hand()])
        self.assertEqual(len(hand_positions(hands)), 42)


class TestScoreSample(unittest.TestCase):
    """ScoreSample serialization."""

    def test_to_dict_camel_case(self):
        """to_dict uses camelCase keys and the expression value."""
        from utils.behavior_state_tracker import Expression
        from utils.score_calculators import ScoreSample
        d = ScoreSample(80, 70, 60, 50, Expression.NERVOUS, 40, True, 1000).to_dict()
        self.assertEqual(d["eyeContact"], 80)
        self.assertEqual(d["expression"], "nervous")
        self.assertTrue(d["faceDetected"])


if __name__ == "__main__":
    unittest.main()
