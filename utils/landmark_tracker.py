"""
Landmark Tracker

Abstract interface for turning a video frame into normalized face and hand
landmarks, plus the MediaPipe implementation (FaceMesh for the 468-point face,
Hands for up to two 21-point hands). Only used in local capture mode; in the
browser-fed mode landmarks arrive already computed.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

import cv2
import mediapipe as mp
import numpy as np

import config

logger = logging.getLogger(__name__)

# (face points or None, list of hands); points are (x, y, z) normalized to the frame
TrackerOutput = Tuple[Optional[np.ndarray], List[np.ndarray]]


class LandmarkTracker(ABC):
    """Any backend that produces MediaPipe-style normalized landmarks."""

    @abstractmethod
    def process(self, image: np.ndarray) -> TrackerOutput:
        """
        Detect landmarks in a BGR frame.

        Returns:
            (face, hands): face is an (N, 3) array or None when no face is
            found; hands is a list of (21, 3) arrays (possibly empty).
        """

    @abstractmethod
    def close(self) -> None:
        """Release model resources."""

    def get_name(self) -> str:
        return self.__class__.__name__


def _to_array(landmark_list) -> np.ndarray:
    return np.array([[p.x, p.y, p.z] for p in landmark_list.landmark], dtype=np.float64)


class MediaPipeLandmarkTracker(LandmarkTracker):
    """FaceMesh (tracking mode, one face) + Hands (up to two)."""

    def __init__(self, min_face_confidence: Optional[float] = None, min_hand_confidence: Optional[float] = None):
        face_conf = config.MIN_FACE_CONFIDENCE if min_face_confidence is None else min_face_confidence
        hand_conf = config.MIN_HAND_CONFIDENCE if min_hand_confidence is None else min_hand_confidence
        self._face_conf = max(0.01, min(0.99, float(face_conf)))
        self._hand_conf = max(0.01, min(0.99, float(hand_conf)))

        self.face_mesh = mp.solutions.face_mesh.FaceMesh(
            static_image_mode=False,
            max_num_faces=1,
            refine_landmarks=False,  # 468 points; refinement adds iris points
            min_detection_confidence=self._face_conf,
            min_tracking_confidence=self._face_conf,
        )
        self.hands = mp.solutions.hands.Hands(
            static_image_mode=False,
            max_num_hands=config.MAX_NUM_HANDS,
            min_detection_confidence=self._hand_conf,
            min_tracking_confidence=self._hand_conf,
        )

    def process(self, image: np.ndarray) -> TrackerOutput:
        if image is None or image.size == 0:
            return None, []
        rgb = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)

        face = None
        face_results = self.face_mesh.process(rgb)
        if face_results.multi_face_landmarks:
            face = _to_array(face_results.multi_face_landmarks[0])

        hands: List[np.ndarray] = []
        hand_results = self.hands.process(rgb)
        if hand_results.multi_hand_landmarks:
            hands = [_to_array(h) for h in hand_results.multi_hand_landmarks[:config.MAX_NUM_HANDS]]
        return face, hands

    def get_name(self) -> str:
        return "mediapipe"

    def close(self) -> None:
        for model in (getattr(self, "face_mesh", None), getattr(self, "hands", None)):
            if model is None:
                continue
            try:
                model.close()
            except Exception as e:
                logger.warning("MediaPipe close failed: %s", e)
