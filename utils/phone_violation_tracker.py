"""
Phone violation escalation.

Each new phone incident (phone flag going from False to True) raises the
violation count: first a warning, then a final warning with a 10% penalty,
then termination. When the phone leaves the frame the visible warning stage
returns to 0 but the count is kept.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)

VIOLATION_PHONE = "MOBILE_PHONE_DETECTED"
VIOLATION_PHONE_CHEATING = "PHONE_CHEATING"
ACTION_FIRST_WARNING = "First Warning Issued"
ACTION_FINAL_WARNING = "Final Warning + Penalty Issued (10%)"
ACTION_TERMINATED = "Session Terminated"
MAX_PHONE_VIOLATIONS = 3


@dataclass
class ViolationEvent:
    violation_type: str
    action_taken: str
    count: int
    terminate: bool = False


ViolationReporter = Callable[[ViolationEvent], None]


class PhoneViolationTracker:
    """Edge-triggered phone violation counter for one session."""

    def __init__(self, reporter: Optional[ViolationReporter] = None):
        self.reporter = reporter
        self.count = 0
        self.stage = 0
        self.terminated = False
        self._last_detected = False

    def update(self, phone_detected: bool) -> Optional[ViolationEvent]:
        """Feed the current phone flag; returns the event raised on a rising edge."""
        rising = phone_detected and not self._last_detected
        self._last_detected = phone_detected
        if not phone_detected:
            self.stage = 0
            return None
        if not rising or self.terminated:
            return None

        self.count += 1
        if self.count == 1:
            self.stage = 1
            event = ViolationEvent(VIOLATION_PHONE, ACTION_FIRST_WARNING, self.count)
        elif self.count == 2:
            self.stage = 2
            event = ViolationEvent(VIOLATION_PHONE, ACTION_FINAL_WARNING, self.count)
        else:
            self.stage = 3
            self.terminated = True
            event = ViolationEvent(VIOLATION_PHONE_CHEATING, ACTION_TERMINATED, self.count, terminate=True)

        logger.warning("Phone violation %d/%d: %s", self.count, MAX_PHONE_VIOLATIONS, event.action_taken)
        if self.reporter is not None:
            try:
                self.reporter(event)
            except Exception as e:
                logger.warning("Violation report failed: %s", e)
        return event

    def to_dict(self) -> dict:
        return {
            "violationCount": self.count,
            "warningStage": self.stage,
            "terminated": self.terminated,
            "phoneDetectedNow": self._last_detected,
        }
