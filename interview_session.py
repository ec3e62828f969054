"""
Interview Analysis Session.

Per-session context for the body-language engine. One session owns its eye and
behavior trackers, cheating detector, sampling controller and phone violation
counter, so two interviews never share history.

Pipeline per frame: validate landmarks → eye contact (advances the eye
tracker) → record eye/head/mouth history → engagement, attention, stability →
expression (dwell-gated) → behavioral cheating score → phone escalation →
offer the ScoreSample to the sampler → remember this frame's head and hands.

Frames come either from the browser (pre-computed MediaPipe landmarks posted to
/session/frame) or from the optional local capture loop (OpenCV + MediaPipe).
"""

import base64
import logging
import threading
import time
from typing import Callable, Optional, Tuple

import numpy as np

import config
from services.object_detection import ObjectDetectionService, encode_jpeg
from services.persistence_api import PersistenceAPIService, get_persistence_service
from services.phone_detection_worker import PhoneDetectionWorker
from utils import geometry
from utils import landmarks as lm
from utils.behavior_state_tracker import BehaviorStateTracker
from utils.cheating_detector import CheatingDetector
from utils.expression_classifier import ExpressionResult, classify_expression
from utils.eye_state_tracker import EyeStateTracker
from utils.landmark_tracker import LandmarkTracker
from utils.phone_violation_tracker import PhoneViolationTracker, ViolationEvent
from utils.sampling_controller import AggregatedScores, SamplingController
from utils.score_calculators import (
    EyeContactResult,
    Position,
    ScoreCalculator,
    ScoreSample,
    hand_positions,
    head_position,
)
from utils.video_source_handler import VideoSourceHandler, VideoSourceType

logger = logging.getLogger(__name__)


def _now_ms() -> float:
    return time.time() * 1000


def _default_tracker_factory() -> LandmarkTracker:
    # MediaPipe graphs are only built when local capture is used
    from utils.landmark_tracker import MediaPipeLandmarkTracker
    return MediaPipeLandmarkTracker()


class InterviewAnalysisSession:
    """
    Usage:
        session = InterviewAnalysisSession("abc-123")
        session.start()
        session.set_sampling(True, question_index=0)
        sample = session.process_frame(face_landmarks, hand_landmarks, timestamp_ms)
        session.stop()  # flushes the open question
    """

    def __init__(
        self,
        session_id: str,
        persistence: Optional[PersistenceAPIService] = None,
        object_detection: Optional[ObjectDetectionService] = None,
        phone_detection_enabled: Optional[bool] = None,
        user_id: Optional[str] = None,
        tracker_factory: Optional[Callable[[], LandmarkTracker]] = None,
    ):
        self.session_id = session_id
        self.user_id = user_id
        self.persistence = persistence if persistence is not None else get_persistence_service()
        if phone_detection_enabled is None:
            phone_detection_enabled = config.is_phone_detection_enabled()
        if object_detection is None and phone_detection_enabled:
            object_detection = ObjectDetectionService()
        self.object_detection = object_detection if phone_detection_enabled else None
        self.tracker_factory = tracker_factory or _default_tracker_factory

        self.lock = threading.Lock()
        self.is_running = False
        self.calculator = ScoreCalculator()

        # Created by start(), released by stop()
        self.eye_tracker: Optional[EyeStateTracker] = None
        self.behavior: Optional[BehaviorStateTracker] = None
        self.cheating: Optional[CheatingDetector] = None
        self.sampling: Optional[SamplingController] = None
        self.violations: Optional[PhoneViolationTracker] = None
        self.phone_worker: Optional[PhoneDetectionWorker] = None
        self._retired_worker: Optional[PhoneDetectionWorker] = None

        self._previous_head: Optional[Position] = None
        self._previous_hands: Tuple[Position, ...] = ()
        self.last_sample: Optional[ScoreSample] = None
        self.last_eye: Optional[EyeContactResult] = None
        self.last_expression: Optional[ExpressionResult] = None
        self.last_flushed: Optional[AggregatedScores] = None
        self._last_snapshot: Optional[bytes] = None
        self._frame_count = 0

        # Local capture mode
        self.video_handler: Optional[VideoSourceHandler] = None
        self.landmark_tracker: Optional[LandmarkTracker] = None
        self._capture_thread: Optional[threading.Thread] = None
        self._capture_stop = threading.Event()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> bool:
        """Create fresh trackers and start phone detection. No-op when already running."""
        with self.lock:
            if self.is_running:
                return True
            now = _now_ms()
            self.eye_tracker = EyeStateTracker()
            self.behavior = BehaviorStateTracker(now)
            self.cheating = CheatingDetector()
            self.sampling = SamplingController(on_flush=self._on_question_flushed)
            self.violations = PhoneViolationTracker(reporter=self._report_violation)
            self._previous_head = None
            self._previous_hands = ()
            self.last_sample = None
            self.last_eye = None
            self.last_expression = None
            self.last_flushed = None
            self._frame_count = 0

            if self.object_detection is not None:
                self.phone_worker = PhoneDetectionWorker(self.cheating, self.object_detection)
                if not self.phone_worker.start():
                    self.phone_worker = None

            self.is_running = True
        logger.info(
            "Interview session %s started (phone detection %s)",
            self.session_id, "on" if self.phone_worker else "off",
        )
        return True

    def stop(self) -> bool:
        """Flush the open question and release everything. Returns False when not running."""
        with self.lock:
            if not self.is_running:
                return False
            self.is_running = False
            self._capture_stop.set()
            capture_thread = self._capture_thread
            workers = [w for w in (self.phone_worker, self._retired_worker) if w is not None]
            for worker in workers:
                worker.request_stop()
            self._retired_worker = None

        # The capture loop takes the session lock per frame; join threads outside the lock
        if capture_thread and capture_thread.is_alive():
            capture_thread.join(timeout=2.0)
        for worker in workers:
            worker.stop()

        with self.lock:
            self._capture_thread = None
            if self.sampling is not None:
                self.sampling.stop(_now_ms())
            self._release_capture()
            self.eye_tracker = None
            self.behavior = None
            self.cheating = None
            self.sampling = None
            self.violations = None
            self.phone_worker = None
            self._previous_head = None
            self._previous_hands = ()
        logger.info("Interview session %s stopped", self.session_id)
        return True

    def _release_capture(self) -> None:
        if self.video_handler is not None:
            self.video_handler.release()
            self.video_handler = None
        if self.landmark_tracker is not None:
            self.landmark_tracker.close()
            self.landmark_tracker = None

    # ------------------------------------------------------------------
    # Collaborator callbacks
    # ------------------------------------------------------------------
    def _on_question_flushed(self, question_index: int, aggregate: AggregatedScores) -> None:
        self.last_flushed = aggregate
        self.persistence.save_body_language(self.session_id, question_index, aggregate, aggregate.timestamp)

    def _report_violation(self, event: ViolationEvent) -> None:
        screenshot = None
        if self._last_snapshot:
            screenshot = "data:image/jpeg;base64," + base64.b64encode(self._last_snapshot).decode("ascii")
        self.persistence.report_violation(
            self.session_id, event.violation_type, event.action_taken,
            screenshot=screenshot, user_id=self.user_id,
        )

    def _terminate(self, now: float) -> None:
        """Third phone violation: stop sampling (flushing) and phone detection."""
        logger.warning("Interview session %s terminated after repeated phone violations", self.session_id)
        if self.sampling is not None:
            self.sampling.stop(now)
        if self.phone_worker is not None:
            # Joined by stop(); this runs on the frame path under the session lock
            self.phone_worker.request_stop()
            self._retired_worker = self.phone_worker
            self.phone_worker = None

    @property
    def terminated(self) -> bool:
        return bool(self.violations and self.violations.terminated)

    # ------------------------------------------------------------------
    # Frame path
    # ------------------------------------------------------------------
    def process_frame(self, face_landmarks, hand_landmarks, timestamp_ms: Optional[float] = None) -> Optional[ScoreSample]:
        """
        Score one frame of landmarks.

        Raises:
            LandmarkFormatError: malformed payload (before any state changes)

        Returns:
            The ScoreSample, or None when the session is not running.
        """
        now = _now_ms() if timestamp_ms is None else float(timestamp_ms)
        frame = lm.build_frame(face_landmarks, hand_landmarks, now)
        with self.lock:
            if not self.is_running:
                return None
            return self._process(frame)

    def _process(self, frame: lm.LandmarkFrame) -> ScoreSample:
        now = frame.timestamp_ms
        face, hands = frame.face, frame.hands

        eye = self.calculator.eye_contact(face, self.eye_tracker, now)
        head_pose = 0.0
        mouth_ratio = 0.0
        if face is not None:
            head_pose = geometry.head_pose_score(face)
            mouth_ratio = geometry.face_mouth_ratio(face)
            nose = face[lm.NOSE_TIP]
            self.behavior.record_eyes(eye.is_eyes_open, now)
            self.behavior.record_head_position(nose.x, nose.y, now)
            self.behavior.record_mouth_ratio(mouth_ratio, now)
        else:
            self.behavior.face_lost(now)
            self.eye_tracker.clear_closure()
        self.behavior.prune(now)

        engagement = self.calculator.engagement(face)
        attention = self.calculator.attention(face, self._previous_head, engagement)
        current_head = head_position(face)
        current_hands = hand_positions(hands)
        stability = self.calculator.stability(current_head, self._previous_head, current_hands, self._previous_hands)

        expression = classify_expression(face, hands, self.behavior, eye.is_eyes_open, head_pose, mouth_ratio, now)

        self.cheating.update(face, hands, now)
        event = self.violations.update(self.cheating.phone_detected)
        if event is not None and event.terminate:
            self._terminate(now)

        sample = ScoreSample(
            eye_contact=eye.score,
            engagement=engagement,
            attention=attention,
            stability=stability,
            expression=expression.expression,
            expression_confidence=expression.confidence,
            face_detected=frame.face_detected,
            timestamp=now,
        )
        if not self.terminated:
            self.sampling.offer(sample, now)

        self._previous_head = current_head
        self._previous_hands = current_hands
        self.last_sample = sample
        self.last_eye = eye
        self.last_expression = expression
        self._frame_count += 1
        self._log_diagnostics(sample, expression)
        return sample

    def _log_diagnostics(self, sample: ScoreSample, expression: ExpressionResult) -> None:
        if not config.ANALYSIS_DIAGNOSTIC_LOGGING:
            return
        interval = max(1, config.ANALYSIS_DIAGNOSTIC_LOG_INTERVAL)
        if self._frame_count % interval != 0:
            return
        logger.info(
            "[%s] frame=%d eye=%d eng=%d att=%d stab=%d expr=%s/%d raw=(n=%d d=%d c=%d) signals=%s",
            self.session_id, self._frame_count, sample.eye_contact, sample.engagement,
            sample.attention, sample.stability,
            sample.expression.value if sample.expression else None, sample.expression_confidence,
            expression.nervous_score, expression.distraction_score, expression.confident_score,
            expression.signals,
        )

    # ------------------------------------------------------------------
    # Sampling and snapshots
    # ------------------------------------------------------------------
    def set_sampling(self, active: bool, question_index: int, now: Optional[float] = None) -> Optional[AggregatedScores]:
        """Start/stop sampling for a question; returns the aggregate flushed by this call, if any."""
        now = _now_ms() if now is None else now
        with self.lock:
            if not self.is_running:
                return None
            if active and self.terminated:
                logger.warning("Session %s terminated; sampling request ignored", self.session_id)
                return None
            return self.sampling.set_sampling(active, question_index, now)

    def submit_snapshot(self, jpeg_bytes: bytes) -> bool:
        """Hand the latest still to the phone detection worker."""
        if not jpeg_bytes:
            return False
        self._last_snapshot = jpeg_bytes
        worker = self.phone_worker
        if worker is None:
            return False
        worker.submit_snapshot(jpeg_bytes)
        return True

    # ------------------------------------------------------------------
    # Local capture mode
    # ------------------------------------------------------------------
    def start_capture(self, source_type: VideoSourceType = VideoSourceType.WEBCAM,
                      source_path: Optional[str] = None) -> bool:
        """Read frames locally and run MediaPipe on them. Requires a running session."""
        with self.lock:
            if not self.is_running:
                return False
            if self._capture_thread and self._capture_thread.is_alive():
                return True
            handler = VideoSourceHandler()
            if not handler.initialize_source(source_type, source_path):
                logger.warning("Failed to initialize video source %s (%s)", source_type.value, source_path)
                return False
            self.video_handler = handler
            self.landmark_tracker = self.tracker_factory()
            self._capture_stop.clear()
            self._capture_thread = threading.Thread(target=self._capture_loop, name="capture", daemon=True)
            self._capture_thread.start()
        logger.info("Local capture started: source=%s path=%s", source_type.value, source_path)
        return True

    def _capture_loop(self) -> None:
        last_snapshot_at = 0.0
        frame_budget = 1.0 / config.LONG_CLOSURE_ASSUMED_FPS
        while not self._capture_stop.is_set():
            handler, tracker = self.video_handler, self.landmark_tracker
            if handler is None or tracker is None:
                break
            started = time.time()
            try:
                ret, frame = handler.read_frame()
                if not ret:
                    self._capture_stop.wait(0.1)
                    continue
                face, hands = tracker.process(frame)
                self.process_frame(face, hands)
                if started - last_snapshot_at >= config.PHONE_CAPTURE_INTERVAL_SEC:
                    last_snapshot_at = started
                    self._snapshot_from_frame(frame)
            except Exception as e:
                logger.warning("Error in capture loop: %s", e)
                self._capture_stop.wait(0.1)
                continue
            elapsed = time.time() - started
            if elapsed < frame_budget:
                self._capture_stop.wait(frame_budget - elapsed)

    def _snapshot_from_frame(self, frame: np.ndarray) -> None:
        jpeg = encode_jpeg(frame)
        if jpeg:
            self.submit_snapshot(jpeg)

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------
    def get_live_state(self) -> dict:
        with self.lock:
            sampling = self.sampling
            running = sampling.running_aggregate() if sampling else None
            return {
                "sessionId": self.session_id,
                "isRunning": self.is_running,
                "current": self.last_sample.to_dict() if self.last_sample else None,
                "runningAggregate": running.to_dict() if running else None,
                "lastFlushed": self.last_flushed.to_dict() if self.last_flushed else None,
                "cheating": self.cheating.snapshot() if self.cheating else None,
                "isSampling": bool(sampling and sampling.active),
                "questionIndex": sampling.question_index if sampling else None,
                "violations": self.violations.to_dict() if self.violations else None,
                "terminated": self.terminated,
                "phoneDetectionActive": bool(self.phone_worker and self.phone_worker.is_running),
                "frameCount": self._frame_count,
            }

    def get_debug(self) -> dict:
        with self.lock:
            behavior = self.behavior
            return {
                "sessionId": self.session_id,
                "eye": self.last_eye.to_dict() if self.last_eye else None,
                "expression": self.last_expression.to_dict() if self.last_expression else None,
                "classification": {
                    "current": behavior.current_state.value,
                    "since": behavior.classification.since,
                    "transitions": list(behavior.transitions),
                } if behavior else None,
                "history": {
                    "blinks": len(behavior.blinks),
                    "headSamples": len(behavior.head_positions),
                    "closures": len(behavior.closures),
                    "mouthSamples": len(behavior.mouth_ratios),
                    "blinkRate": round(behavior.blink_rate(), 2),
                } if behavior else None,
            }
