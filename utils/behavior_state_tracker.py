"""
Behavior State Tracker.

Rolling 10-second history of blinks, head positions, eye-closure intervals and
mouth-ratio samples for one session, the statistics derived from it, and the
hysteresis-gated expression state. Histories are bounded deques; expired
entries are evicted once per frame by prune().
"""

from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Deque, List, Optional

import config
from utils.geometry import variance


class Expression(Enum):
    """Behavioral interview states (not emotions). Order breaks aggregation ties."""
    CONFIDENT = "confident"
    NERVOUS = "nervous"
    DISTRACTED = "distracted"


@dataclass
class HeadSample:
    x: float
    y: float
    timestamp: float


@dataclass
class ClosureInterval:
    start: float
    end: Optional[float] = None  # None while the eyes are still closed


@dataclass
class MouthSample:
    ratio: float
    timestamp: float


@dataclass
class ClassificationState:
    current: Expression
    since: float


class BehaviorStateTracker:
    """Per-session behavioral history and classification state."""

    def __init__(self, now: float = 0.0):
        cap = config.HISTORY_MAX_SAMPLES
        self.blinks: Deque[float] = deque(maxlen=cap)
        self.head_positions: Deque[HeadSample] = deque(maxlen=cap)
        self.closures: Deque[ClosureInterval] = deque(maxlen=cap)
        self.mouth_ratios: Deque[MouthSample] = deque(maxlen=cap)
        self.classification = ClassificationState(Expression.CONFIDENT, now)
        self.transitions: Deque[dict] = deque(maxlen=config.TRANSITION_HISTORY_MAX)
        self._pending: Optional[Expression] = None
        self._pending_since: float = now
        self._last_eyes_open: bool = True
        self._last_now: float = now

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------
    def record_eyes(self, is_open: bool, now: float) -> bool:
        """
        Record raw eye openness for this frame.

        A blink is counted on each open->closed transition. Returns True when
        a blink was recorded.
        """
        blinked = False
        last = self.closures[-1] if self.closures else None
        if not is_open:
            if self._last_eyes_open:
                self.blinks.append(now)
                blinked = True
            if last is None or last.end is not None:
                self.closures.append(ClosureInterval(start=now))
        elif last is not None and last.end is None:
            last.end = now
        self._last_eyes_open = is_open
        return blinked

    def face_lost(self, now: float) -> None:
        """No face this frame: close any open closure interval and treat the eyes as open."""
        last = self.closures[-1] if self.closures else None
        if last is not None and last.end is None:
            last.end = now
        self._last_eyes_open = True

    def record_head_position(self, x: float, y: float, now: float) -> None:
        self.head_positions.append(HeadSample(x, y, now))

    def record_mouth_ratio(self, ratio: float, now: float) -> None:
        self.mouth_ratios.append(MouthSample(ratio, now))

    def prune(self, now: float) -> None:
        """Evict samples older than the analysis window."""
        self._last_now = now
        cutoff = now - config.HISTORY_WINDOW_MS
        while self.blinks and self.blinks[0] <= cutoff:
            self.blinks.popleft()
        while self.head_positions and self.head_positions[0].timestamp <= cutoff:
            self.head_positions.popleft()
        while self.mouth_ratios and self.mouth_ratios[0].timestamp <= cutoff:
            self.mouth_ratios.popleft()
        while self.closures and self.closures[0].end is not None and self.closures[0].end <= cutoff:
            self.closures.popleft()

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------
    def blink_rate(self) -> float:
        """Blinks per minute over the window; the population normal (15) until there is enough data."""
        if len(self.blinks) < 2:
            return config.NORMAL_BLINK_RATE
        span = self.blinks[-1] - self.blinks[0]
        if span < 1000:
            return config.NORMAL_BLINK_RATE
        return (len(self.blinks) - 1) / (span / 1000.0) * 60.0

    def is_head_frequently_away(self) -> bool:
        if len(self.head_positions) < 2:
            return False
        away = sum(
            1 for p in self.head_positions
            if ((p.x - 0.5) ** 2 + (p.y - 0.5) ** 2) ** 0.5 > config.HEAD_AWAY_THRESHOLD
        )
        return away / len(self.head_positions) > config.HEAD_FREQUENCY_FRACTION

    def is_head_frequently_down(self) -> bool:
        if len(self.head_positions) < 3:
            return False
        down = sum(1 for p in self.head_positions if p.y > config.HEAD_DOWN_THRESHOLD)
        return down / len(self.head_positions) > config.HEAD_FREQUENCY_FRACTION

    def has_long_eye_closures(self, now: Optional[float] = None) -> bool:
        now = self._last_now if now is None else now
        for closure in self.closures:
            end = closure.end if closure.end is not None else now
            if end - closure.start > config.LONG_EYE_CLOSURE_MS:
                return True
        return False

    def is_mouth_frequently_tight(self) -> bool:
        if len(self.mouth_ratios) < 3:
            return False
        tight = sum(1 for m in self.mouth_ratios if m.ratio < config.MOUTH_TIGHT_THRESHOLD)
        return tight / len(self.mouth_ratios) > config.MOUTH_TIGHT_FRACTION

    def mouth_ratio_values(self) -> List[float]:
        return [m.ratio for m in self.mouth_ratios]

    def head_variance(self):
        """(x variance, y variance) of head positions in the window."""
        xs = [p.x for p in self.head_positions]
        ys = [p.y for p in self.head_positions]
        return variance(xs), variance(ys)

    def is_head_stable(self, limit: Optional[float] = None) -> bool:
        """More than five samples and both variances under the limit."""
        limit = config.HEAD_STABLE_VARIANCE if limit is None else limit
        if len(self.head_positions) <= 5:
            return False
        var_x, var_y = self.head_variance()
        return var_x < limit and var_y < limit

    # ------------------------------------------------------------------
    # Hysteresis
    # ------------------------------------------------------------------
    def update_state(self, proposed: Expression, now: float) -> Expression:
        """
        Minimum-dwell gate: a different state is accepted only after it has
        been proposed continuously for MIN_STATE_DURATION_MS.
        """
        current = self.classification
        if proposed == current.current:
            self._pending = None
            return current.current
        if proposed != self._pending:
            self._pending = proposed
            self._pending_since = now
        if now - self._pending_since >= config.MIN_STATE_DURATION_MS:
            self.transitions.append({
                "state": current.current.value,
                "since": current.since,
                "until": now,
            })
            self.classification = ClassificationState(proposed, now)
            self._pending = None
        return self.classification.current

    @property
    def current_state(self) -> Expression:
        return self.classification.current

    def reset(self, now: float = 0.0) -> None:
        self.blinks.clear()
        self.head_positions.clear()
        self.closures.clear()
        self.mouth_ratios.clear()
        self.transitions.clear()
        self.classification = ClassificationState(Expression.CONFIDENT, now)
        self._pending = None
        self._pending_since = now
        self._last_eyes_open = True
        self._last_now = now
