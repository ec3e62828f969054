"""
Cheating / distraction detector.

A behavioral score built from four landmark heuristics (gaze held down, head
pitched down, a hand at the face, face at the frame edge) plus a phone flag
fed asynchronously by the Object Detection Service worker. Only the phone flag
can make the status "Cheating"; a high behavioral score alone means
"Distracted".
"""

import threading
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

import config
from utils import geometry
from utils import landmarks as lm
from utils.landmarks import LandmarkPoint

SCORE_GAZE_DOWN = 30
SCORE_HEAD_PITCH_DOWN = 20
SCORE_HAND_NEAR_FACE = 20
SCORE_FACE_OUT_OF_FRAME = 10
NEUTRAL_NOSE_POSITION = 0.35
PITCH_DEGREES_SCALE = 60.0


class CheatingStatus(Enum):
    FOCUSED = "Focused"
    DISTRACTED = "Distracted"
    CHEATING = "Cheating"


def derive_status(phone_detected: bool, behavior_score: int) -> CheatingStatus:
    """Cheating iff a phone was seen; Distracted iff the behavioral score exceeds 20."""
    if phone_detected:
        return CheatingStatus.CHEATING
    if behavior_score > config.DISTRACTED_STATUS_THRESHOLD:
        return CheatingStatus.DISTRACTED
    return CheatingStatus.FOCUSED


@dataclass
class CheatingState:
    behavior_score: int = 0
    phone_detected: bool = False
    gaze_down_sec: float = 0.0
    head_pitch_down: bool = False
    hand_near_face: bool = False
    face_out_of_frame: bool = False
    detected_objects: List[str] = field(default_factory=list)
    phone_confidence: float = 0.0

    @property
    def behavioral_cheating(self) -> bool:
        """Tracked for reporting only; never escalates the status by itself."""
        return self.behavior_score >= config.BEHAVIOR_CHEATING_THRESHOLD

    @property
    def status(self) -> CheatingStatus:
        return derive_status(self.phone_detected, self.behavior_score)

    def to_dict(self) -> dict:
        return {
            "behaviorScore": self.behavior_score,
            "phoneDetected": self.phone_detected,
            "behavioralCheatingDetected": self.behavioral_cheating,
            "cheatingDetected": self.phone_detected,
            "status": self.status.value,
            "scores": {
                "gazeDown": round(self.gaze_down_sec, 2),
                "headPitchDown": self.head_pitch_down,
                "handNearFace": self.hand_near_face,
                "faceOutOfFrame": self.face_out_of_frame,
            },
            "detectedObjects": list(self.detected_objects),
            "phoneConfidence": self.phone_confidence,
        }


def head_pitch(face: Sequence[LandmarkPoint]) -> Optional[float]:
    """
    Approximate pitch in degrees from where the nose bridge sits between
    forehead and chin; negative means looking down. None for a zero-height face.
    """
    forehead, chin = face[lm.FOREHEAD], face[lm.CHIN]
    height = abs(forehead.y - chin.y)
    if height == 0:
        return None
    nose_position = (face[lm.NOSE_BRIDGE].y - forehead.y) / height
    return (NEUTRAL_NOSE_POSITION - nose_position) * PITCH_DEGREES_SCALE


def is_gaze_down(face: Sequence[LandmarkPoint]) -> bool:
    left = (face[lm.LEFT_EYE_TOP].y + face[lm.LEFT_EYE_BOTTOM].y) / 2
    right = (face[lm.RIGHT_EYE_TOP].y + face[lm.RIGHT_EYE_BOTTOM].y) / 2
    return (left + right) / 2 - face[lm.NOSE_TIP].y > config.GAZE_DOWN_OFFSET


def is_hand_near_face(face: Sequence[LandmarkPoint], hands: Sequence[Sequence[LandmarkPoint]]) -> bool:
    """Any hand whose wrist/index-tip midpoint is within 0.15 (3D) of the nose tip."""
    nose = face[lm.NOSE_TIP]
    for hand in hands:
        wrist, tip = hand[lm.HAND_WRIST], hand[lm.HAND_INDEX_TIP]
        point = LandmarkPoint(
            (wrist.x + tip.x) / 2,
            (wrist.y + tip.y) / 2,
            ((wrist.z or 0.0) + (tip.z or 0.0)) / 2,
        )
        if geometry.distance_3d(point, nose) < config.HAND_NEAR_FACE_DISTANCE:
            return True
    return False


def is_face_out_of_frame(face: Sequence[LandmarkPoint]) -> bool:
    margin = config.FRAME_EDGE_MARGIN
    return (face[lm.LEFT_FACE].x < margin
            or face[lm.RIGHT_FACE].x > 1 - margin
            or face[lm.FOREHEAD].y < margin
            or face[lm.CHIN].y > 1 - margin)


class CheatingDetector:
    """
    Per-session detector. update() runs on the frame path; set_phone_result()
    is called from the phone-detection worker thread.
    """

    def __init__(self):
        self.lock = threading.Lock()
        self.state = CheatingState()
        self._gaze_down_since: Optional[float] = None
        size = config.CHEATING_HISTORY_FRAMES
        self._pitch_history: deque = deque(maxlen=size)
        self._hand_history: deque = deque(maxlen=size)

    def _continuous(self, history: deque) -> bool:
        size = history.maxlen
        return len(history) >= size and sum(history) / size >= config.CHEATING_HISTORY_RATIO

    def _reset_tracking(self) -> None:
        self._gaze_down_since = None
        self._pitch_history.clear()
        self._hand_history.clear()

    def update(self, face, hands, now: Optional[float] = None) -> CheatingState:
        """Recompute the behavioral score for one frame (now in ms)."""
        now = time.time() * 1000 if now is None else now
        if not face or len(face) < lm.FACE_LANDMARK_COUNT:
            self._reset_tracking()
            with self.lock:
                self.state.behavior_score = 0
                self.state.gaze_down_sec = 0.0
                self.state.head_pitch_down = False
                self.state.hand_near_face = False
                self.state.face_out_of_frame = False
                return self.state

        if is_gaze_down(face):
            if self._gaze_down_since is None:
                self._gaze_down_since = now
            gaze_down_sec = (now - self._gaze_down_since) / 1000.0
        else:
            self._gaze_down_since = None
            gaze_down_sec = 0.0

        pitch = head_pitch(face)
        self._pitch_history.append(pitch is not None and pitch < config.HEAD_PITCH_DOWN_DEGREES)
        self._hand_history.append(is_hand_near_face(face, hands))
        pitch_down = self._continuous(self._pitch_history)
        hand_near = self._continuous(self._hand_history)
        out_of_frame = is_face_out_of_frame(face)

        score = 0
        if gaze_down_sec > config.GAZE_DOWN_DURATION_SEC:
            score += SCORE_GAZE_DOWN
        if pitch_down:
            score += SCORE_HEAD_PITCH_DOWN
        if hand_near:
            score += SCORE_HAND_NEAR_FACE
        if out_of_frame:
            score += SCORE_FACE_OUT_OF_FRAME

        with self.lock:
            self.state.behavior_score = min(100, score)
            self.state.gaze_down_sec = gaze_down_sec
            self.state.head_pitch_down = pitch_down
            self.state.hand_near_face = hand_near
            self.state.face_out_of_frame = out_of_frame
            return self.state

    def set_phone_result(self, phone_detected: bool, detected_objects=None, confidence: float = 0.0) -> None:
        """Replace the phone flag with the latest Object Detection Service answer."""
        with self.lock:
            self.state.phone_detected = bool(phone_detected)
            self.state.detected_objects = list(detected_objects or [])
            self.state.phone_confidence = float(confidence or 0.0)

    def snapshot(self) -> dict:
        with self.lock:
            return self.state.to_dict()

    @property
    def phone_detected(self) -> bool:
        with self.lock:
            return self.state.phone_detected

    def reset(self) -> None:
        self._reset_tracking()
        with self.lock:
            self.state = CheatingState()
