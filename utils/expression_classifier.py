"""
Expression Classifier.

Combines the Behavior State Tracker's rolling statistics with current-frame
geometry into three competing scores (nervous, distracted, confident) and
resolves them into one Expression with a confidence value:

  1. Distracted wins whenever the distraction score exceeds its threshold.
  2. A high confident score wins outright when its strong conditions hold,
     otherwise a nervous score above threshold takes over.
  3. Nervous above threshold.
  4. Confident by default while a face is present.

The resolved expression then goes through the tracker's minimum-dwell gate.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

import config
from utils import geometry
from utils import landmarks as lm
from utils.behavior_state_tracker import BehaviorStateTracker, Expression
from utils.score_calculators import round_half_up

logger = logging.getLogger(__name__)


@dataclass
class BehaviorSignals:
    """Current-frame inputs shared by the three scores."""
    head_x: float
    head_y: float
    head_pose: float
    mouth_ratio: float
    eyes_open: bool
    blink_rate: float
    hand_near_head: bool = False
    mouth_frequently_tight: bool = False
    head_frequently_down: bool = False
    head_frequently_away: bool = False
    long_eye_closures: bool = False
    head_stable: bool = False
    head_var_x: float = 0.0
    head_var_y: float = 0.0
    head_history_len: int = 0
    mouth_variance: float = 0.0
    mouth_history_len: int = 0
    last_mouth_change: float = 0.0
    last_head_move: float = 0.0
    mouth_curvature: float = 0.0
    eyebrow_raise: float = 0.0

    @property
    def offset_x(self) -> float:
        return abs(self.head_x - 0.5)

    @property
    def offset_y(self) -> float:
        return abs(self.head_y - 0.5)

    @property
    def head_offset(self) -> float:
        return (self.offset_x ** 2 + self.offset_y ** 2) ** 0.5

    def as_dict(self) -> dict:
        return {
            "headX": round(self.head_x, 3),
            "headY": round(self.head_y, 3),
            "headPose": round(self.head_pose, 3),
            "mouthRatio": round(self.mouth_ratio, 3),
            "eyesOpen": self.eyes_open,
            "blinkRate": round(self.blink_rate, 1),
            "handNearHead": self.hand_near_head,
            "mouthFrequentlyTight": self.mouth_frequently_tight,
            "headFrequentlyDown": self.head_frequently_down,
            "headFrequentlyAway": self.head_frequently_away,
            "longEyeClosures": self.long_eye_closures,
            "headStable": self.head_stable,
            "mouthVariance": round(self.mouth_variance, 5),
            "mouthCurvature": round(self.mouth_curvature, 3),
            "eyebrowRaise": round(self.eyebrow_raise, 3),
        }


@dataclass
class ExpressionResult:
    expression: Optional[Expression]  # None when no face
    confidence: int = 0
    raw_expression: Optional[Expression] = None  # before the dwell gate
    nervous_score: int = 0
    distraction_score: int = 0
    confident_score: int = 0
    signals: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "expression": self.expression.value if self.expression else None,
            "confidence": self.confidence,
            "rawExpression": self.raw_expression.value if self.raw_expression else None,
            "nervousScore": self.nervous_score,
            "distractionScore": self.distraction_score,
            "confidentScore": self.confident_score,
            "signals": self.signals,
        }


def collect_signals(face, hands, tracker: BehaviorStateTracker, eyes_open: bool, head_pose: float,
                    mouth_ratio: float) -> BehaviorSignals:
    """Read the tracker statistics for this frame (after this frame's samples were recorded)."""
    nose = face[lm.NOSE_TIP]
    var_x, var_y = tracker.head_variance()
    mouth_values = tracker.mouth_ratio_values()
    heads = tracker.head_positions

    last_mouth_change = 0.0
    if len(mouth_values) > 1:
        last_mouth_change = abs(mouth_values[-1] - mouth_values[-2])
    last_head_move = 0.0
    if len(heads) > 1:
        a, b = heads[-1], heads[-2]
        last_head_move = ((a.x - b.x) ** 2 + (a.y - b.y) ** 2) ** 0.5

    return BehaviorSignals(
        head_x=nose.x,
        head_y=nose.y,
        head_pose=head_pose,
        mouth_ratio=mouth_ratio,
        eyes_open=eyes_open,
        blink_rate=tracker.blink_rate(),
        hand_near_head=geometry.is_hand_near_head(face, hands),
        mouth_frequently_tight=tracker.is_mouth_frequently_tight(),
        head_frequently_down=tracker.is_head_frequently_down(),
        head_frequently_away=tracker.is_head_frequently_away(),
        long_eye_closures=tracker.has_long_eye_closures(),
        head_stable=tracker.is_head_stable(),
        head_var_x=var_x,
        head_var_y=var_y,
        head_history_len=len(heads),
        mouth_variance=geometry.variance(mouth_values),
        mouth_history_len=len(mouth_values),
        last_mouth_change=last_mouth_change,
        last_head_move=last_head_move,
        mouth_curvature=geometry.mouth_curvature(face),
        eyebrow_raise=geometry.eyebrow_raise(face),
    )


def _in_band(value: float, band) -> bool:
    low, high = band
    return low <= value <= high


def _nervous_normal_blink(s: BehaviorSignals) -> bool:
    low, high = config.NERVOUS_NORMAL_BLINK_BAND
    return _in_band(s.blink_rate, (config.NORMAL_BLINK_RATE * low, config.NORMAL_BLINK_RATE * high))


def _confident_normal_blink(s: BehaviorSignals) -> bool:
    low, high = config.CONFIDENT_NORMAL_BLINK_BAND
    return _in_band(s.blink_rate, (config.NORMAL_BLINK_RATE * low, config.NORMAL_BLINK_RATE * high))


def _centered_within(s: BehaviorSignals, limit: float) -> bool:
    return s.offset_x < limit and s.offset_y < limit


def nervous_score(s: BehaviorSignals) -> float:
    """Blink excess, mouth tension, head-down posture, hand-near-head, micro movements; capped at 100."""
    w = config.NERVOUS_WEIGHTS
    score = 0.0
    normal, nervous = config.NORMAL_BLINK_RATE, config.NERVOUS_BLINK_RATE
    high_blink = s.blink_rate > nervous
    head_down_now = s.head_y > config.HEAD_DOWN_THRESHOLD

    if high_blink:
        score += min(config.BLINK_EXCESS_CAP, (s.blink_rate - normal) * config.BLINK_EXCESS_PER_UNIT)
    if normal < s.blink_rate <= nervous:
        score += w['blink_moderate']
    if s.blink_rate > normal * config.BLINK_SLIGHTLY_HIGH_FACTOR:
        score += w['blink_slight']

    if s.mouth_frequently_tight:
        score += w['mouth_frequently_tight']
    if s.mouth_ratio < config.MOUTH_TIGHT_THRESHOLD:
        score += w['mouth_tight_now']
    if s.mouth_history_len > 2 and s.mouth_variance > config.MOUTH_VARIANCE_THRESHOLD:
        score += min(config.MOUTH_VARIANCE_CAP, s.mouth_variance * config.MOUTH_VARIANCE_PER_UNIT)
    if s.last_mouth_change > config.MOUTH_CHANGE_THRESHOLD:
        score += w['mouth_change']

    if head_down_now:
        score += w['head_down_now']
    if s.head_frequently_down:
        score += w['head_frequently_down']

    if s.hand_near_head:
        score += w['hand_near_head']
        if high_blink or s.mouth_frequently_tight or head_down_now:
            score += w['hand_near_head_combined']

    var_low, var_high = config.HEAD_MICRO_VARIANCE_RANGE
    if (s.head_history_len > 3 and var_low < s.head_var_x < var_high
            and var_low < s.head_var_y < var_high):
        score += w['head_micro_variance']
    move_low, move_high = config.HEAD_MICRO_MOVE_RANGE
    if move_low < s.last_head_move < move_high:
        score += w['head_micro_move']

    # Strong confident indicators damp (never zero) the nervous score
    damping = config.NERVOUS_DAMPING
    excellent = s.head_pose > config.HEAD_POSE_EXCELLENT
    very_centered = _centered_within(s, config.VERY_CENTERED_OFFSET)
    normal_blink = _nervous_normal_blink(s)
    relaxed = _in_band(s.mouth_ratio, config.RELAXED_MOUTH_RANGE)
    if s.head_stable and excellent and very_centered and normal_blink and relaxed:
        score *= damping['stable_excellent_centered']
    elif s.head_stable and excellent and normal_blink and relaxed:
        score *= damping['stable_excellent']
    elif excellent and very_centered and normal_blink and relaxed:
        score *= damping['excellent_centered']
    elif excellent and normal_blink and relaxed:
        score *= damping['excellent']
    elif s.head_pose > config.HEAD_POSE_VERY_GOOD and normal_blink and relaxed:
        score *= damping['very_good_pose']
    elif s.head_pose > config.HEAD_POSE_EXCELLENT and normal_blink:
        score *= damping['good_pose']
    elif not s.hand_near_head and s.head_pose > config.HEAD_POSE_CONFIDENT_EXCELLENT and normal_blink:
        score *= damping['fair_pose_no_hands']

    return min(config.EXPRESSION_SCORE_CAP, score)


def distraction_score(s: BehaviorSignals) -> float:
    """Head away or down, long closures, poor head pose, closed eyes; capped at 100."""
    w = config.DISTRACTION_WEIGHTS
    score = 0.0
    if s.head_offset > config.HEAD_AWAY_THRESHOLD:
        score += w['head_away']
    if s.offset_x > config.OFF_CENTER_OFFSET or s.offset_y > config.OFF_CENTER_OFFSET:
        score += w['off_center']
    if s.head_frequently_away:
        score += w['head_frequently_away']
    if s.long_eye_closures:
        score += w['long_eye_closures']
    if s.head_pose < config.HEAD_POSE_AWAY_THRESHOLD:
        score += w['head_pose_away']
    if not s.eyes_open:
        score += w['eyes_closed']
    if s.head_y > config.HEAD_DOWN_THRESHOLD or s.head_frequently_down:
        score += w['head_down']
    if s.offset_x > config.CENTERED_OFFSET:
        score += w['horizontal_offset']
    if s.head_pose < config.HEAD_POSE_POOR:
        score += w['poor_head_pose']
    return min(config.EXPRESSION_SCORE_CAP, score)


def confident_score(s: BehaviorSignals) -> float:
    """Stable head, normal blink rate, good head pose, centering, relaxed mouth; capped at 100."""
    w = config.CONFIDENT_WEIGHTS
    score = 0.0
    excellent = s.head_pose > config.HEAD_POSE_CONFIDENT_EXCELLENT
    very_centered = _centered_within(s, config.CONFIDENT_VERY_CENTERED_OFFSET)
    normal_blink = _confident_normal_blink(s)

    stable = s.head_stable
    if stable:
        score += w['head_stable']
    elif (s.head_history_len > 5 and s.head_var_x < config.HEAD_MODERATE_VARIANCE
          and s.head_var_y < config.HEAD_MODERATE_VARIANCE):
        score += w['head_moderately_stable']
    if stable and excellent:
        score += w['stable_excellent']
    if normal_blink:
        score += w['normal_blink']
    if excellent:
        score += w['excellent_pose']
    elif s.head_pose > config.HEAD_POSE_FAIR:
        score += w['fair_pose']
    if very_centered:
        score += w['very_centered']
    elif _centered_within(s, config.CENTERED_OFFSET):
        score += w['centered']
    if _in_band(s.mouth_ratio, config.ACCEPTABLE_MOUTH_RANGE):
        score += w['acceptable_mouth']
    if stable and excellent and normal_blink and very_centered:
        score += w['all_indicators']
    return min(config.EXPRESSION_SCORE_CAP, score)


def resolve_expression(s: BehaviorSignals, nervous: float, distraction: float, confident: float):
    """Apply the priority rules; returns (expression, confidence 0-100)."""
    if distraction > config.DISTRACTED_THRESHOLD:
        return Expression.DISTRACTED, round_half_up(distraction)

    normal_blink = _confident_normal_blink(s)
    if confident > config.CONFIDENT_THRESHOLD:
        excellent = s.head_pose > config.HEAD_POSE_EXCELLENT
        very_centered = _centered_within(s, config.VERY_CENTERED_OFFSET)
        relaxed = _in_band(s.mouth_ratio, config.RELAXED_MOUTH_RANGE)
        if s.head_stable and excellent and normal_blink and relaxed:
            return Expression.CONFIDENT, round_half_up(confident)
        if excellent and very_centered and normal_blink and relaxed:
            return Expression.CONFIDENT, round_half_up(confident)
        if confident > nervous + config.CONFIDENT_MARGIN_OVER_NERVOUS:
            return Expression.CONFIDENT, round_half_up(confident)
        if nervous > config.NERVOUS_THRESHOLD:
            return Expression.NERVOUS, round_half_up(nervous)
        return Expression.CONFIDENT, round_half_up(confident)

    if nervous > config.NERVOUS_THRESHOLD:
        return Expression.NERVOUS, round_half_up(nervous)

    # Positive baseline: confident unless something adverse stands out
    w = config.BASELINE_WEIGHTS
    indicators = ((w['normal_blink'] if normal_blink else 0)
                  + (w['fair_pose'] if s.head_pose > config.HEAD_POSE_FAIR else 0)
                  + (w['centered'] if _centered_within(s, config.CENTERED_OFFSET) else 0)
                  + (w['acceptable_mouth'] if _in_band(s.mouth_ratio, config.ACCEPTABLE_MOUTH_RANGE) else 0))
    cap = int(config.EXPRESSION_SCORE_CAP)
    return Expression.CONFIDENT, max(config.BASELINE_MIN_CONFIDENCE, min(cap, indicators))


def classify_expression(face, hands, tracker: BehaviorStateTracker, eyes_open: bool, head_pose: float,
                        mouth_ratio: float, now: float) -> ExpressionResult:
    """
    Classify the current frame and pass it through the dwell gate.

    The caller records this frame's eye, head and mouth samples on the
    tracker first. No face gives no expression and 0 confidence.
    """
    if not face or len(face) < lm.FACE_LANDMARK_COUNT:
        return ExpressionResult(expression=None, confidence=0)
    try:
        signals = collect_signals(face, hands, tracker, eyes_open, head_pose, mouth_ratio)
        nervous = nervous_score(signals)
        distraction = distraction_score(signals)
        confident = confident_score(signals)
        raw, confidence = resolve_expression(signals, nervous, distraction, confident)

        gated = tracker.update_state(raw, now)
        if gated != raw:
            # Dwell gate kept the prior state; report that state's own score
            own = {Expression.CONFIDENT: confident, Expression.NERVOUS: nervous,
                   Expression.DISTRACTED: distraction}[gated]
            confidence = round_half_up(own)

        return ExpressionResult(
            expression=gated,
            confidence=int(max(0, min(100, confidence))),
            raw_expression=raw,
            nervous_score=round_half_up(nervous),
            distraction_score=round_half_up(distraction),
            confident_score=round_half_up(confident),
            signals=signals.as_dict(),
        )
    except Exception as e:
        logger.warning("Expression classification failed: %s", e)
        return ExpressionResult(expression=None, confidence=0)
