"""
Landmark types and ingress validation.

The Landmark Tracker hands us normalized points for one face (MediaPipe
FaceMesh, 468 points) and up to two hands (21 points each). Payloads arrive as
JSON dicts, plain sequences, numpy arrays, or MediaPipe landmark objects; they
are converted once here into immutable LandmarkPoint tuples so the scoring
code never has to re-check shapes.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence, Tuple

import numpy as np


FACE_LANDMARK_COUNT = 468
HAND_LANDMARK_COUNT = 21
MAX_HANDS = 2

# Eyes (MediaPipe FaceMesh)
LEFT_EYE_TOP = 159
LEFT_EYE_BOTTOM = 145
LEFT_EYE_LEFT = 33
LEFT_EYE_RIGHT = 133
RIGHT_EYE_TOP = 386
RIGHT_EYE_BOTTOM = 374
RIGHT_EYE_LEFT = 362
RIGHT_EYE_RIGHT = 263

# Face outline and nose
NOSE_TIP = 4
NOSE_BRIDGE = 6
FOREHEAD = 10
CHIN = 175
LEFT_FACE = 234
RIGHT_FACE = 454

# Mouth
MOUTH_LEFT = 61
MOUTH_RIGHT = 291
MOUTH_TOP = 13
MOUTH_BOTTOM = 14

# Eyebrows
LEFT_EYEBROW_OUTER = 70
LEFT_EYEBROW_INNER = 107
RIGHT_EYEBROW_OUTER = 300
RIGHT_EYEBROW_INNER = 336

# Hands (MediaPipe Hands)
HAND_WRIST = 0
HAND_INDEX_TIP = 8
HAND_MIDDLE_TIP = 12


class LandmarkFormatError(ValueError):
    """Raised when a landmark payload has the wrong type or structure."""


@dataclass(frozen=True)
class LandmarkPoint:
    """One normalized landmark; x and y in [0, 1] of frame size, z depth-ish."""
    x: float
    y: float
    z: float = 0.0


FacePoints = Tuple[LandmarkPoint, ...]
HandPoints = Tuple[LandmarkPoint, ...]


@dataclass(frozen=True)
class LandmarkFrame:
    """Validated landmarks for a single video frame."""
    face: Optional[FacePoints]  # None when no face (or fewer than 468 points)
    hands: Tuple[HandPoints, ...] = field(default_factory=tuple)  # 0..2 hands of 21 points
    timestamp_ms: float = 0.0

    @property
    def face_detected(self) -> bool:
        return self.face is not None


def _to_point(raw: Any) -> LandmarkPoint:
    if isinstance(raw, LandmarkPoint):
        return raw
    if isinstance(raw, dict):
        if "x" not in raw or "y" not in raw:
            raise LandmarkFormatError("landmark dict must have 'x' and 'y'")
        x, y, z = raw["x"], raw["y"], raw.get("z", 0.0)
    elif hasattr(raw, "x") and hasattr(raw, "y"):
        # MediaPipe NormalizedLandmark and similar objects
        x, y, z = raw.x, raw.y, getattr(raw, "z", 0.0)
    elif isinstance(raw, (list, tuple, np.ndarray)):
        if len(raw) < 2:
            raise LandmarkFormatError("landmark sequence must have at least 2 values")
        x, y = raw[0], raw[1]
        z = raw[2] if len(raw) > 2 else 0.0
    else:
        raise LandmarkFormatError(f"unsupported landmark type: {type(raw).__name__}")
    try:
        return LandmarkPoint(float(x), float(y), float(z if z is not None else 0.0))
    except (TypeError, ValueError) as e:
        raise LandmarkFormatError(f"landmark coordinates must be numbers: {e}") from e


def _is_finite(points: Sequence[LandmarkPoint]) -> bool:
    return all(math.isfinite(p.x) and math.isfinite(p.y) and math.isfinite(p.z) for p in points)


def _points_from(raw: Any) -> Tuple[LandmarkPoint, ...]:
    if isinstance(raw, np.ndarray):
        if raw.ndim != 2 or raw.shape[1] not in (2, 3):
            raise LandmarkFormatError(f"landmark array must be (N, 2) or (N, 3), got {raw.shape}")
        return tuple(_to_point(row) for row in raw)
    if hasattr(raw, "landmark"):
        # MediaPipe NormalizedLandmarkList
        raw = raw.landmark
    if isinstance(raw, (str, bytes, dict)):
        raise LandmarkFormatError("landmarks must be a sequence of points")
    try:
        return tuple(_to_point(p) for p in raw)
    except TypeError as e:
        raise LandmarkFormatError(f"landmarks must be a sequence of points: {e}") from e


def parse_face(raw: Any) -> Optional[FacePoints]:
    """
    Convert a raw face payload into FacePoints.

    Returns None (no detection) when the payload is empty, shorter than 468
    points, or contains non-finite coordinates. Raises LandmarkFormatError only
    for payloads that are not landmark data at all.
    """
    if raw is None:
        return None
    points = _points_from(raw)
    if len(points) < FACE_LANDMARK_COUNT or not _is_finite(points):
        return None
    return points


def parse_hands(raw: Any) -> Tuple[HandPoints, ...]:
    """Convert raw hand payloads; partial hands are dropped and at most two are kept."""
    if raw is None:
        return ()
    if isinstance(raw, np.ndarray) and raw.ndim == 2:
        raw = [raw]
    if isinstance(raw, (str, bytes, dict)):
        raise LandmarkFormatError("hand landmarks must be a list of hands")
    try:
        items = list(raw)
    except TypeError as e:
        raise LandmarkFormatError(f"hand landmarks must be a list of hands: {e}") from e
    hands = []
    for hand in items:
        points = _points_from(hand)
        if len(points) >= HAND_LANDMARK_COUNT and _is_finite(points):
            hands.append(points)
        if len(hands) == MAX_HANDS:
            break
    return tuple(hands)


def build_frame(face_raw: Any, hands_raw: Any, timestamp_ms: float) -> LandmarkFrame:
    """Validate a face + hands payload once at ingress."""
    return LandmarkFrame(
        face=parse_face(face_raw),
        hands=parse_hands(hands_raw),
        timestamp_ms=float(timestamp_ms),
    )
