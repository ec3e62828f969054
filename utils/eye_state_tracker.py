"""
Eye state tracking: blink vs. sustained closure, plus eye-contact smoothing.

One tracker per analysis session. Driven once per frame with the raw
open/closed decision (EAR above threshold) and an explicit timestamp in
milliseconds.
"""

import math
from collections import deque
from dataclasses import dataclass
from typing import Optional

import config


@dataclass
class EyeState:
    """Raw eye state plus the classification derived for the current frame."""
    is_open: bool = True
    closed_since: Optional[float] = None  # ms timestamp of the open->closed transition
    is_blinking: bool = False
    is_closed_long: bool = False


class EyeStateTracker:
    """
    Distinguishes blinks from long eye closures and smooths the eye-contact score.

    Smoothing reacts faster to drops than to recoveries: when the raw score
    falls more than EYE_SMOOTHING_DROP_THRESHOLD below the last output, the
    moving average is weighted 0.8; otherwise 0.3.
    """

    def __init__(self):
        self.state = EyeState()
        self._history: deque = deque(maxlen=config.EYE_SMOOTHING_WINDOW)
        self._last_smoothed: float = config.EYE_SMOOTHING_INITIAL

    @staticmethod
    def _classify(closed_duration: float):
        """Return (is_blinking, is_closed_long) for a closure of the given length."""
        if closed_duration <= config.BLINK_MAX_DURATION_MS:
            return True, False
        if closed_duration > config.LONG_CLOSURE_MS:
            return False, True
        return closed_duration < config.LONG_CLOSURE_MS / 2, False

    def update(self, is_open: bool, now: float) -> EyeState:
        """Advance the state machine by one frame."""
        state = self.state
        if not is_open:
            if state.closed_since is None:
                state.closed_since = now
            state.is_blinking, state.is_closed_long = self._classify(now - state.closed_since)
        else:
            if state.closed_since is not None:
                state.is_blinking, state.is_closed_long = self._classify(now - state.closed_since)
                state.closed_since = None
            else:
                state.is_blinking, state.is_closed_long = False, False
        state.is_open = is_open
        return state

    def clear_closure(self) -> None:
        """Forget an in-progress closure; used when the face leaves the frame."""
        self.state = EyeState()

    @property
    def is_closed_not_blinking(self) -> bool:
        return not self.state.is_open and not self.state.is_blinking

    def smooth(self, raw_score: float, eyes_closed: bool = False) -> float:
        """
        Moving-average smoothing on the 0..1 scale.

        With eyes closed (not blinking) and a raw score under 0.2 the raw score
        is returned unchanged; it still enters the history window.
        """
        self._history.append(raw_score)
        if eyes_closed and raw_score < config.EYE_SMOOTHING_BYPASS_BELOW:
            self._last_smoothed = raw_score
            return raw_score

        average = sum(self._history) / len(self._history)
        if self._last_smoothed - raw_score > config.EYE_SMOOTHING_DROP_THRESHOLD:
            alpha = config.EYE_SMOOTHING_ALPHA_DROP
        else:
            alpha = config.EYE_SMOOTHING_ALPHA_RECOVER
        self._last_smoothed = alpha * average + (1 - alpha) * self._last_smoothed
        return self._last_smoothed

    def apply_long_closure_penalty(self, score: float, now: float) -> float:
        """2% per frame (at ~30 fps) of closure beyond LONG_CLOSURE_MS, capped at 50%."""
        if self.state.closed_since is None:
            return score
        excess = (now - self.state.closed_since) - config.LONG_CLOSURE_MS
        if excess <= 0:
            return score
        frames = math.floor(excess / (1000.0 / config.LONG_CLOSURE_ASSUMED_FPS))
        penalty = min(config.LONG_CLOSURE_PENALTY_CAP, frames * config.LONG_CLOSURE_PENALTY_PER_FRAME)
        return score * (1 - penalty)

    def reset(self) -> None:
        self.state = EyeState()
        self._history.clear()
        self._last_smoothed = config.EYE_SMOOTHING_INITIAL
