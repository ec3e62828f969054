"""
Score Calculators Module

Per-frame body-language scores on a 0-100 scale:
- Eye contact (head pose, gaze estimate, eye openness; blink-aware)
- Engagement (face presence, eye openness, head pose)
- Attention (engagement plus nose-tip steadiness since the previous frame)
- Stability (head and hand displacement between consecutive frames)

Each calculator catches its own failures and returns that metric's safe
default so one bad metric never aborts the frame.
"""

import logging
import math
from dataclasses import dataclass, asdict
from typing import Optional, Sequence, Tuple

import config
from utils import geometry
from utils import landmarks as lm
from utils.behavior_state_tracker import Expression
from utils.eye_state_tracker import EyeStateTracker
from utils.landmarks import LandmarkPoint

logger = logging.getLogger(__name__)

Position = Tuple[float, float]


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up."""
    return int(math.floor(value + 0.5))


def to_percent(value: float) -> int:
    """0..1 score to a clamped 0..100 integer."""
    return round_half_up(max(0.0, min(100.0, value * 100)))


@dataclass
class ScoreSample:
    """One processed frame. All scores are integers 0-100."""
    eye_contact: int = 0
    engagement: int = 0
    attention: int = 0
    stability: int = 0
    expression: Optional[Expression] = None  # None when no face
    expression_confidence: int = 0
    face_detected: bool = False
    timestamp: float = 0.0  # ms

    def to_dict(self) -> dict:
        return {
            "eyeContact": self.eye_contact,
            "engagement": self.engagement,
            "attention": self.attention,
            "stability": self.stability,
            "expression": self.expression.value if self.expression else None,
            "expressionConfidence": self.expression_confidence,
            "faceDetected": self.face_detected,
            "timestamp": self.timestamp,
        }


@dataclass
class EyeContactResult:
    score: int = 0
    is_blinking: bool = False
    is_closed_long: bool = False
    is_eyes_open: bool = True
    ear: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


def head_position(face: Optional[Sequence[LandmarkPoint]]) -> Optional[Position]:
    """Nose-tip position used for movement tracking."""
    if not face or len(face) < lm.FACE_LANDMARK_COUNT:
        return None
    nose = face[lm.NOSE_TIP]
    return (nose.x, nose.y)


def hand_positions(hands: Sequence[Sequence[LandmarkPoint]]) -> Tuple[Position, ...]:
    """All hand landmark positions, hand by hand, for index-matched movement."""
    return tuple((p.x, p.y) for hand in hands for p in hand)


def _has_face(face) -> bool:
    return bool(face) and len(face) >= lm.FACE_LANDMARK_COUNT


class ScoreCalculator:
    """
    Computes the four frame scores.

    Usage:
        calculator = ScoreCalculator()
        eye = calculator.eye_contact(face, eye_tracker, now)
        engagement = calculator.engagement(face)
    """

    def __init__(self):
        self.eye_contact_weights = {'head_pose': 0.5, 'gaze': 0.3, 'eye_open': 0.2}
        self.engagement_weights = {'presence': 0.2, 'eye_open': 0.4, 'head_pose': 0.4}
        self.attention_weights = {'engagement': 0.7, 'steadiness': 0.3}
        self.stability_weights = {'head': 0.6, 'hands': 0.4}

    def eye_contact(self, face, eye_tracker: EyeStateTracker, now: float) -> EyeContactResult:
        """
        Eye contact with blink handling; advances eye_tracker by one frame.

        A blink keeps the full score. A sustained closure drops the head-pose
        and gaze weights, cuts the result by 80% and caps it at 0.15 before
        smoothing.
        """
        if not _has_face(face):
            return EyeContactResult(score=0)
        try:
            w = self.eye_contact_weights
            head_pose = geometry.head_pose_score(face)
            ear = geometry.average_ear(face)
            is_open = ear > config.EAR_CLOSED_THRESHOLD
            state = eye_tracker.update(is_open, now)
            gaze = geometry.gaze_score(face)

            head_mult = gaze_mult = 1.0
            if is_open:
                eye_open = geometry.normalized_eye_openness(ear)
            elif state.is_blinking:
                eye_open = 1.0
            else:
                eye_open = 0.0
                head_mult = config.CLOSED_EYE_HEAD_POSE_MULTIPLIER
                gaze_mult = config.CLOSED_EYE_GAZE_MULTIPLIER

            raw = (head_pose * w['head_pose'] * head_mult
                   + gaze * w['gaze'] * gaze_mult
                   + eye_open * w['eye_open'])
            if state.is_closed_long:
                raw = eye_tracker.apply_long_closure_penalty(raw, now)
            closed_not_blinking = not is_open and not state.is_blinking
            if closed_not_blinking:
                raw = min(raw * config.CLOSED_EYE_SCORE_MULTIPLIER, config.CLOSED_EYE_SCORE_CAP)

            smoothed = eye_tracker.smooth(raw, eyes_closed=closed_not_blinking)
            return EyeContactResult(
                score=to_percent(smoothed),
                is_blinking=state.is_blinking,
                is_closed_long=state.is_closed_long,
                is_eyes_open=is_open,
                ear=ear,
            )
        except Exception as e:
            logger.warning("Eye contact score failed: %s", e)
            return EyeContactResult(score=0)

    def engagement(self, face) -> int:
        """Face presence (20%) + eye openness (40%) + head pose (40%)."""
        if not _has_face(face):
            return 0
        try:
            w = self.engagement_weights
            eye_open = geometry.normalized_eye_openness(geometry.average_ear(face))
            head_pose = geometry.head_pose_score(face)
            return to_percent(w['presence'] * 1.0 + w['eye_open'] * eye_open + w['head_pose'] * head_pose)
        except Exception as e:
            logger.warning("Engagement score failed: %s", e)
            return 0

    def attention(self, face, previous_head: Optional[Position], engagement: Optional[int] = None) -> int:
        """70% engagement + 30% steadiness; steadiness is 0.5 with no previous frame."""
        if not _has_face(face):
            return 0
        try:
            base = (self.engagement(face) if engagement is None else engagement) / 100.0
            if previous_head is None:
                steadiness = 0.5
            else:
                nose = face[lm.NOSE_TIP]
                movement = math.hypot(nose.x - previous_head[0], nose.y - previous_head[1])
                steadiness = max(0.0, 1 - movement / config.ATTENTION_MOVEMENT_CAP)
            w = self.attention_weights
            return to_percent(base * w['engagement'] + steadiness * w['steadiness'])
        except Exception as e:
            logger.warning("Attention score failed: %s", e)
            return 0

    def stability(
        self,
        current_head: Optional[Position],
        previous_head: Optional[Position],
        current_hands: Sequence[Position],
        previous_hands: Sequence[Position],
    ) -> int:
        """
        60% head steadiness + 40% hand steadiness.

        No current head (no face) yields the neutral default; no previous head
        gives full head steadiness.
        No hands in view is neutral (0.5); hands with no previous frame give 1.0.
        """
        try:
            if current_head is None:
                return config.NEUTRAL_STABILITY_SCORE
            if previous_head is None:
                head = 1.0
            else:
                moved = math.hypot(current_head[0] - previous_head[0], current_head[1] - previous_head[1])
                head = max(0.0, 1 - moved / config.HEAD_MOVEMENT_CAP)

            if not current_hands:
                hands = 0.5
            elif not previous_hands:
                hands = 1.0
            else:
                matched = min(len(current_hands), len(previous_hands))
                total = sum(
                    math.hypot(current_hands[i][0] - previous_hands[i][0], current_hands[i][1] - previous_hands[i][1])
                    for i in range(matched)
                )
                hands = max(0.0, 1 - (total / matched) / config.HAND_MOVEMENT_CAP)

            w = self.stability_weights
            return to_percent(head * w['head'] + hands * w['hands'])
        except Exception as e:
            logger.warning("Stability score failed: %s", e)
            return config.NEUTRAL_STABILITY_SCORE
