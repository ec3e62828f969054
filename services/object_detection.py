"""
Object Detection Service client.

Posts a JPEG still to the remote detector (multipart field "file") and reads
back {phoneDetected, detectedObjects, confidence}. Used once per second by the
phone detection worker.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import cv2
import numpy as np
import requests

import config

logger = logging.getLogger(__name__)

DETECT_PATH = "/api/detect-cheating"


@dataclass
class PhoneDetectionResult:
    phone_detected: bool = False
    detected_objects: List[str] = field(default_factory=list)
    confidence: float = 0.0


def encode_jpeg(frame: np.ndarray, quality: Optional[int] = None) -> Optional[bytes]:
    """Encode a BGR frame to JPEG bytes; None if encoding fails."""
    if frame is None or frame.size == 0:
        return None
    q = config.SNAPSHOT_JPEG_QUALITY if quality is None else quality
    success, buffer = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, int(q)])
    if not success or buffer is None:
        return None
    return buffer.tobytes()


class ObjectDetectionService:
    """Client for the remote phone/device detector."""

    def __init__(self, base_url: Optional[str] = None, token: Optional[str] = None,
                 timeout: Optional[float] = None):
        self.base_url = (base_url if base_url is not None else config.OBJECT_DETECTION_URL).rstrip("/")
        self.token = token if token is not None else config.PERSISTENCE_API_TOKEN
        self.timeout = timeout if timeout is not None else config.HTTP_TIMEOUT_SEC
        self.detect_url = f"{self.base_url}{DETECT_PATH}"

    def is_available(self) -> bool:
        return bool(self.base_url)

    def detect(self, jpeg_bytes: bytes) -> PhoneDetectionResult:
        """
        Submit one JPEG still.

        Raises:
            requests.RequestException: on network failure, non-2xx status or
            an unreadable response body
        """
        if not jpeg_bytes:
            raise ValueError("Invalid image: empty JPEG payload")
        headers = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        files = {"file": ("frame.jpg", jpeg_bytes, "image/jpeg")}
        try:
            response = requests.post(self.detect_url, headers=headers, files=files, timeout=self.timeout)
        except requests.RequestException as e:
            raise requests.RequestException(
                f"Object detection request failed: {e}. Endpoint: {self.detect_url}"
            )
        if response.status_code >= 400:
            raise requests.RequestException(f"Object detection returned status {response.status_code}")
        try:
            data = response.json()
        except ValueError as e:
            raise requests.RequestException(f"Object detection returned invalid JSON: {e}")
        if not isinstance(data, dict):
            raise requests.RequestException("Object detection returned unexpected payload")
        objects = data.get("detectedObjects") or []
        return PhoneDetectionResult(
            phone_detected=data.get("phoneDetected") is True,
            detected_objects=[str(o) for o in objects] if isinstance(objects, list) else [],
            confidence=float(data.get("confidence") or 0.0),
        )
