"""
Per-question sampling and aggregation.

While sampling is on, processed ScoreSamples are appended to the accumulator
of the current question at most once per SAMPLE_THROTTLE_MS. Stopping (or
switching question, or tearing the session down) averages the accumulator and
hands the result to the flush callback; the accumulator never spans two
question indices.
"""

import logging
import threading
from collections import Counter
from dataclasses import dataclass
from typing import Callable, List, Optional

import config
from utils.behavior_state_tracker import Expression
from utils.score_calculators import ScoreSample, round_half_up

logger = logging.getLogger(__name__)


@dataclass
class AggregatedScores:
    eye_contact: int = 0
    engagement: int = 0
    attention: int = 0
    stability: int = 0
    expression_confidence: int = 0
    dominant_expression: Optional[Expression] = None
    sample_count: int = 0
    face_detected: bool = False
    timestamp: float = 0.0

    def to_dict(self) -> dict:
        dominant = self.dominant_expression.value if self.dominant_expression else None
        return {
            "eyeContact": self.eye_contact,
            "engagement": self.engagement,
            "attention": self.attention,
            "stability": self.stability,
            "expression": dominant,
            "expressionConfidence": self.expression_confidence,
            "dominantExpression": dominant,
            "sampleCount": self.sample_count,
            "faceDetected": self.face_detected,
            "timestamp": self.timestamp,
        }


def dominant_expression(samples: List[ScoreSample]) -> Optional[Expression]:
    """Most frequent expression; ties go to the earlier of confident, nervous, distracted."""
    counts = Counter(s.expression for s in samples if s.expression is not None)
    if not counts:
        return None
    best = None
    for expression in Expression:
        if counts.get(expression, 0) > counts.get(best, 0):
            best = expression
    return best


def aggregate_samples(samples: List[ScoreSample], timestamp: float = 0.0) -> AggregatedScores:
    """
    Average the valid samples (face detected with an expression).

    sample_count is the accumulator length; with no valid samples every metric
    is 0 and there is no dominant expression.
    """
    valid = [s for s in samples if s.face_detected and s.expression is not None]
    if not valid:
        return AggregatedScores(sample_count=len(samples), timestamp=timestamp)
    n = len(valid)
    return AggregatedScores(
        eye_contact=round_half_up(sum(s.eye_contact for s in valid) / n),
        engagement=round_half_up(sum(s.engagement for s in valid) / n),
        attention=round_half_up(sum(s.attention for s in valid) / n),
        stability=round_half_up(sum(s.stability for s in valid) / n),
        expression_confidence=round_half_up(sum(s.expression_confidence for s in valid) / n),
        dominant_expression=dominant_expression(valid),
        sample_count=len(samples),
        face_detected=True,
        timestamp=timestamp,
    )


FlushCallback = Callable[[int, AggregatedScores], None]


class SamplingController:
    """
    Usage:
        controller = SamplingController(on_flush=lambda q, agg: ...)
        controller.set_sampling(True, question_index=0, now=now)
        controller.offer(sample, now)
        controller.set_sampling(False, question_index=0, now=now)  # flushes
    """

    def __init__(self, on_flush: Optional[FlushCallback] = None, throttle_ms: float = None):
        self.on_flush = on_flush
        self.throttle_ms = config.SAMPLE_THROTTLE_MS if throttle_ms is None else throttle_ms
        self.active = False
        self.question_index: Optional[int] = None
        self.accumulator: List[ScoreSample] = []
        self.running: Optional[AggregatedScores] = None
        self._last_sample_time: Optional[float] = None
        self._lock = threading.Lock()

    def start(self, question_index: int) -> None:
        """Begin sampling a question; the next eligible frame samples immediately."""
        with self._lock:
            self.active = True
            self.question_index = question_index
            self.accumulator = []
            self.running = None
            self._last_sample_time = None
        logger.info("Sampling started for question %s", question_index)

    def stop(self, now: float = 0.0) -> Optional[AggregatedScores]:
        """Stop sampling and flush a non-empty accumulator."""
        with self._lock:
            self.active = False
        return self.flush(now)

    def set_sampling(self, active: bool, question_index: int, now: float = 0.0) -> Optional[AggregatedScores]:
        """
        Drive sampling from the caller's flag. Switching question while active
        flushes the previous question before starting the new one.
        """
        flushed = None
        if active:
            if self.active and self.question_index == question_index:
                return None
            if self.active:
                flushed = self.stop(now)
            self.start(question_index)
        elif self.active:
            flushed = self.stop(now)
        return flushed

    def offer(self, sample: ScoreSample, now: float) -> bool:
        """Append a sample if sampling, throttle allows, and the face/expression are present."""
        with self._lock:
            if not self.active:
                return False
            if not sample.face_detected or sample.expression is None:
                return False
            if self._last_sample_time is not None and now - self._last_sample_time <= self.throttle_ms:
                return False
            self._last_sample_time = now
            self.accumulator.append(sample)
            self.running = aggregate_samples(self.accumulator, timestamp=now)
            logger.debug("Sample collected for question %s (total %d)", self.question_index, len(self.accumulator))
            return True

    def flush(self, now: float = 0.0) -> Optional[AggregatedScores]:
        """Aggregate and clear the accumulator; no-op when it is empty."""
        with self._lock:
            if not self.accumulator:
                return None
            samples, question_index = self.accumulator, self.question_index
            self.accumulator = []
            self.running = None
        aggregate = aggregate_samples(samples, timestamp=now)
        logger.info(
            "Question %s aggregated over %d samples (dominant=%s)",
            question_index, aggregate.sample_count,
            aggregate.dominant_expression.value if aggregate.dominant_expression else None,
        )
        if self.on_flush is not None:
            try:
                self.on_flush(question_index, aggregate)
            except Exception as e:
                logger.warning("Flush for question %s failed: %s", question_index, e)
        return aggregate

    def running_aggregate(self) -> Optional[AggregatedScores]:
        with self._lock:
            return self.running
