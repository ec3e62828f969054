"""
Synthetic landmark generator for engine tests.

Creates MediaPipe-style 468x3 face landmarks and 21x3 hand landmarks in
normalized frame coordinates (0..1) with known geometry: a centered neutral
face, closed eyes, head down, head turned away, tight mouth, off-frame, and
hands placed at the face or away from it.

Only the indices read by utils/landmarks.py are placed; every other point sits
on the face center.

Closed eyes collapse the eye corners onto each other: with the eye aspect
ratio defined as (|top-bottom| + |left-right|) / (2|left-right|) an eye with
any width scores at least 0.5, so only a zero-width eye reads as closed.
"""

from typing import List, Optional, Tuple

import numpy as np

from utils import landmarks as lm

FACE_HEIGHT = 0.5
FACE_WIDTH = 0.3


def make_face(
    center: Tuple[float, float] = (0.5, 0.5),
    eyes_closed: bool = False,
    mouth_open: float = 0.03,
    pitch_position: float = 0.35,
    eye_offset_y: float = -0.08,
    nose_turn: float = 0.0,
) -> np.ndarray:
    """
    Args:
        center: nose-tip position; the whole face moves with it
        eyes_closed: collapse both eyes to a point (EAR 0)
        mouth_open: lip gap; mouth width is 0.10, so 0.03 gives MAR 0.3
        pitch_position: nose-bridge height between forehead and chin (0.35 is level)
        eye_offset_y: eye-center height relative to the nose tip
        nose_turn: nose-tip x offset inside the face outline (rotation proxy)
    """
    cx, cy = center
    face = np.zeros((lm.FACE_LANDMARK_COUNT, 3), dtype=np.float64)
    face[:, 0] = cx
    face[:, 1] = cy

    forehead_y = cy - FACE_HEIGHT / 2
    chin_y = cy + FACE_HEIGHT / 2
    face[lm.FOREHEAD] = (cx, forehead_y, 0)
    face[lm.CHIN] = (cx, chin_y, 0)
    face[lm.LEFT_FACE] = (cx - FACE_WIDTH / 2, cy, 0)
    face[lm.RIGHT_FACE] = (cx + FACE_WIDTH / 2, cy, 0)
    face[lm.NOSE_TIP] = (cx + nose_turn, cy, 0)
    face[lm.NOSE_BRIDGE] = (cx, forehead_y + pitch_position * FACE_HEIGHT, 0)

    eye_y = cy + eye_offset_y
    for left_idx, right_idx, top_idx, bottom_idx, eye_cx in (
        (lm.LEFT_EYE_LEFT, lm.LEFT_EYE_RIGHT, lm.LEFT_EYE_TOP, lm.LEFT_EYE_BOTTOM, cx - 0.07),
        (lm.RIGHT_EYE_LEFT, lm.RIGHT_EYE_RIGHT, lm.RIGHT_EYE_TOP, lm.RIGHT_EYE_BOTTOM, cx + 0.07),
    ):
        half_w = 0.0 if eyes_closed else 0.03
        half_h = 0.0 if eyes_closed else 0.01
        face[left_idx] = (eye_cx - half_w, eye_y, 0)
        face[right_idx] = (eye_cx + half_w, eye_y, 0)
        face[top_idx] = (eye_cx, eye_y - half_h, 0)
        face[bottom_idx] = (eye_cx, eye_y + half_h, 0)

    brow_y = eye_y - 0.04
    face[lm.LEFT_EYEBROW_OUTER] = (cx - 0.10, brow_y, 0)
    face[lm.LEFT_EYEBROW_INNER] = (cx - 0.04, brow_y, 0)
    face[lm.RIGHT_EYEBROW_OUTER] = (cx + 0.10, brow_y, 0)
    face[lm.RIGHT_EYEBROW_INNER] = (cx + 0.04, brow_y, 0)

    mouth_y = cy + 0.12
    face[lm.MOUTH_LEFT] = (cx - 0.05, mouth_y, 0)
    face[lm.MOUTH_RIGHT] = (cx + 0.05, mouth_y, 0)
    face[lm.MOUTH_TOP] = (cx, mouth_y - mouth_open / 2, 0)
    face[lm.MOUTH_BOTTOM] = (cx, mouth_y + mouth_open / 2, 0)
    return face


def neutral_face() -> np.ndarray:
    """Centered, eyes open, level head, relaxed mouth."""
    return make_face()


def eyes_closed_face() -> np.ndarray:
    return make_face(eyes_closed=True)


def head_down_face() -> np.ndarray:
    """Nose below the frame middle and the nose bridge pitched well down."""
    return make_face(center=(0.5, 0.62), pitch_position=0.7)


def gaze_down_face() -> np.ndarray:
    """Eye centers below the nose tip."""
    return make_face(eye_offset_y=0.06)


def head_turned_face() -> np.ndarray:
    """Face shifted far to the side of the frame."""
    return make_face(center=(0.8, 0.5))


def tight_mouth_face() -> np.ndarray:
    """Lips nearly pressed together (MAR 0.1)."""
    return make_face(mouth_open=0.01)


def off_frame_face() -> np.ndarray:
    """Left face boundary within the 10% frame margin."""
    return make_face(center=(0.2, 0.5))


def make_hand(center: Tuple[float, float] = (0.5, 0.95), z: float = 0.0) -> np.ndarray:
    """21 points around center; wrist below and index tip above it."""
    cx, cy = center
    hand = np.zeros((lm.HAND_LANDMARK_COUNT, 3), dtype=np.float64)
    hand[:, 0] = cx
    hand[:, 1] = cy
    hand[:, 2] = z
    hand[lm.HAND_WRIST] = (cx, cy + 0.03, z)
    hand[lm.HAND_INDEX_TIP] = (cx, cy - 0.03, z)
    hand[lm.HAND_MIDDLE_TIP] = (cx + 0.01, cy - 0.03, z)
    return hand


def hand_at_face(face: Optional[np.ndarray] = None) -> np.ndarray:
    """Hand whose wrist/index-tip midpoint sits on the nose tip."""
    face = neutral_face() if face is None else face
    nose = face[lm.NOSE_TIP]
    return make_hand(center=(float(nose[0]), float(nose[1])))


def hand_away() -> np.ndarray:
    """Hand resting low and to the side, away from the face."""
    return make_hand(center=(0.9, 0.95))


def as_dicts(points: np.ndarray) -> List[dict]:
    """JSON-style payload ({x, y, z} per point)."""
    return [{"x": float(p[0]), "y": float(p[1]), "z": float(p[2])} for p in points]
