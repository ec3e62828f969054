"""
Geometry helpers over normalized landmark points.

All functions are pure: they read LandmarkPoints (x, y in [0, 1], optional z)
and return plain floats. Indices are MediaPipe FaceMesh / Hands indices from
utils.landmarks.
"""

import math
from typing import Optional, Sequence

import numpy as np

import config
from utils import landmarks as lm
from utils.landmarks import LandmarkPoint


def distance(p1: LandmarkPoint, p2: LandmarkPoint) -> float:
    """2D Euclidean distance (x, y)."""
    return math.hypot(p1.x - p2.x, p1.y - p2.y)


def distance_3d(p1: LandmarkPoint, p2: LandmarkPoint) -> float:
    """3D Euclidean distance; a missing z counts as 0."""
    dz = (p1.z or 0.0) - (p2.z or 0.0)
    return math.sqrt((p1.x - p2.x) ** 2 + (p1.y - p2.y) ** 2 + dz * dz)


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def eye_aspect_ratio(top: LandmarkPoint, bottom: LandmarkPoint,
                     left: LandmarkPoint, right: LandmarkPoint) -> float:
    """
    Eye aspect ratio: (|top-bottom| + |left-right|) / (2 * |left-right|).

    Returns 0 when the horizontal distance is 0.
    """
    horizontal = distance(left, right)
    if horizontal == 0:
        return 0.0
    return (distance(top, bottom) + horizontal) / (2 * horizontal)


def mouth_aspect_ratio(top: LandmarkPoint, bottom: LandmarkPoint,
                       left: LandmarkPoint, right: LandmarkPoint) -> float:
    """Vertical / horizontal mouth opening; 0 when the mouth width is 0."""
    horizontal = distance(left, right)
    if horizontal == 0:
        return 0.0
    return distance(top, bottom) / horizontal


def average_ear(face: Sequence[LandmarkPoint]) -> float:
    """Mean EAR of both eyes."""
    left = eye_aspect_ratio(
        face[lm.LEFT_EYE_TOP], face[lm.LEFT_EYE_BOTTOM],
        face[lm.LEFT_EYE_LEFT], face[lm.LEFT_EYE_RIGHT],
    )
    right = eye_aspect_ratio(
        face[lm.RIGHT_EYE_TOP], face[lm.RIGHT_EYE_BOTTOM],
        face[lm.RIGHT_EYE_LEFT], face[lm.RIGHT_EYE_RIGHT],
    )
    return (left + right) / 2


def normalized_eye_openness(ear: float) -> float:
    """EAR scaled so that a typical open eye (0.25) maps to 1.0."""
    return clamp(ear / config.EAR_OPEN_REFERENCE)


def face_mouth_ratio(face: Sequence[LandmarkPoint]) -> float:
    return mouth_aspect_ratio(
        face[lm.MOUTH_TOP], face[lm.MOUTH_BOTTOM],
        face[lm.MOUTH_LEFT], face[lm.MOUTH_RIGHT],
    )


def head_pose_score(face: Optional[Sequence[LandmarkPoint]]) -> float:
    """
    How directly the face points at the camera, in [0, 1].

    Combines nose-tip centering in the frame (30% x, 30% y) with the nose
    position between the face boundary landmarks as a rotation proxy (40%).
    Without boundary landmarks only the nose-tip distance from frame center is
    used; without a nose tip the score is 0.
    """
    if not face or len(face) <= lm.NOSE_TIP:
        return 0.0
    nose = face[lm.NOSE_TIP]
    if len(face) <= lm.RIGHT_FACE:
        offset = math.hypot(nose.x - 0.5, nose.y - 0.5)
        return max(0.0, 1 - offset / config.HEAD_POSE_FALLBACK_RANGE)

    score_x = max(0.0, 1 - abs(nose.x - 0.5) / config.HEAD_POSE_CENTER_RANGE)
    score_y = max(0.0, 1 - abs(nose.y - 0.5) / config.HEAD_POSE_CENTER_RANGE)
    left_face = face[lm.LEFT_FACE]
    face_width = abs(face[lm.RIGHT_FACE].x - left_face.x)
    if face_width > 0:
        nose_position = (nose.x - left_face.x) / face_width
        rotation = 1 - abs(nose_position - 0.5) * 2
        w = config.HEAD_POSE_WEIGHTS
        return clamp(score_x * w['center_x'] + score_y * w['center_y'] + rotation * w['rotation'])
    return clamp(score_x * 0.5 + score_y * 0.5)


def gaze_score(face: Sequence[LandmarkPoint]) -> float:
    """
    Gaze estimate from how centered both eyes sit horizontally in the frame.

    Neutral 0.5 when either eye has zero width.
    """
    left_l, left_r = face[lm.LEFT_EYE_LEFT], face[lm.LEFT_EYE_RIGHT]
    right_l, right_r = face[lm.RIGHT_EYE_LEFT], face[lm.RIGHT_EYE_RIGHT]
    if abs(left_r.x - left_l.x) <= 0 or abs(right_r.x - right_l.x) <= 0:
        return 0.5
    left_symmetry = 1 - abs((left_l.x + left_r.x) / 2 - 0.5)
    right_symmetry = 1 - abs((right_l.x + right_r.x) / 2 - 0.5)
    return clamp((left_symmetry + right_symmetry) / 2 * 2)


def face_size(face: Sequence[LandmarkPoint]) -> float:
    """Forehead-to-chin distance, else face width, else 0.3."""
    size = distance(face[lm.FOREHEAD], face[lm.CHIN])
    if size > 0:
        return size
    size = distance(face[lm.LEFT_FACE], face[lm.RIGHT_FACE])
    return size if size > 0 else 0.3


def mouth_curvature(face: Sequence[LandmarkPoint]) -> float:
    """
    Positive when the mouth corners sit above the lip center (smile),
    negative when they droop. Normalized by mouth width.
    """
    left, right = face[lm.MOUTH_LEFT], face[lm.MOUTH_RIGHT]
    width = abs(right.x - left.x)
    if width == 0:
        return 0.0
    center_y = (face[lm.MOUTH_TOP].y + face[lm.MOUTH_BOTTOM].y) / 2
    corner_drop = ((left.y - center_y) + (right.y - center_y)) / 2
    return -(corner_drop / width)


def eyebrow_raise(face: Sequence[LandmarkPoint]) -> float:
    """Mean eyebrow height above the upper eyelid, relative to face size."""
    size = face_size(face)
    left_brow = (face[lm.LEFT_EYEBROW_OUTER].y + face[lm.LEFT_EYEBROW_INNER].y) / 2
    right_brow = (face[lm.RIGHT_EYEBROW_OUTER].y + face[lm.RIGHT_EYEBROW_INNER].y) / 2
    left = (face[lm.LEFT_EYE_TOP].y - left_brow) / size
    right = (face[lm.RIGHT_EYE_TOP].y - right_brow) / size
    return (left + right) / 2


def is_hand_near_head(face: Sequence[LandmarkPoint], hands: Sequence[Sequence[LandmarkPoint]]) -> bool:
    """
    True if any hand touches or hovers by the face: wrist raised to chin level
    within the face span (plus HAND_FACE_SPAN_MARGIN), or a fingertip or the
    wrist near the forehead (HAND_*_FOREHEAD_DISTANCE).
    """
    if not face or not hands:
        return False
    chin, forehead = face[lm.CHIN], face[lm.FOREHEAD]
    left_face, right_face = face[lm.LEFT_FACE], face[lm.RIGHT_FACE]
    face_center_x = (left_face.x + right_face.x) / 2
    half_width = abs(right_face.x - left_face.x) / 2
    for hand in hands:
        wrist = hand[lm.HAND_WRIST]
        if (wrist.y < chin.y + config.HAND_WRIST_BELOW_CHIN
                and abs(wrist.x - face_center_x) < half_width + config.HAND_FACE_SPAN_MARGIN):
            return True
        for tip in (hand[lm.HAND_INDEX_TIP], hand[lm.HAND_MIDDLE_TIP]):
            if distance(tip, forehead) < config.HAND_FINGERTIP_FOREHEAD_DISTANCE:
                return True
        if distance(wrist, forehead) < config.HAND_WRIST_FOREHEAD_DISTANCE:
            return True
    return False


def variance(samples: Sequence[float]) -> float:
    """Population variance; 0 for an empty sequence."""
    if len(samples) == 0:
        return 0.0
    return float(np.var(np.asarray(samples, dtype=np.float64)))
