"""
Video Source Handler Module

Unified frame reader for local capture mode:
- Webcam (first camera that opens)
- Local video files
- Video streams (RTSP, HTTP, etc.)
"""

import logging
import sys
from enum import Enum
from typing import Optional, Tuple

import cv2
import numpy as np

logger = logging.getLogger(__name__)


class VideoSourceType(Enum):
    """Enumeration of supported video source types."""
    WEBCAM = "webcam"
    FILE = "file"
    STREAM = "stream"

    @classmethod
    def parse(cls, value: Optional[str]) -> "VideoSourceType":
        """Map a request string to a source type; raises ValueError for unknown values."""
        try:
            return cls((value or "webcam").strip().lower())
        except ValueError:
            raise ValueError(f"Invalid source: {value}. Must be 'webcam', 'file', or 'stream'")


def _open_webcam() -> Optional[cv2.VideoCapture]:
    apis = [cv2.CAP_DSHOW, cv2.CAP_MSMF, cv2.CAP_ANY] if sys.platform == "win32" else [cv2.CAP_ANY]
    for api in apis:
        for index in (0, 1, 2):
            cap = cv2.VideoCapture(index, api)
            if cap.isOpened() and cap.read()[0]:
                return cap
            cap.release()
    return None


class VideoSourceHandler:
    """
    Usage:
        handler = VideoSourceHandler()
        handler.initialize_source(VideoSourceType.WEBCAM)
        ret, frame = handler.read_frame()
        handler.release()
    """

    def __init__(self):
        self.cap: Optional[cv2.VideoCapture] = None
        self.source_type: Optional[VideoSourceType] = None
        self.source_path: Optional[str] = None

    def initialize_source(self, source_type: VideoSourceType, source_path: Optional[str] = None) -> bool:
        """
        Open a video source.

        Args:
            source_type: WEBCAM, FILE or STREAM
            source_path: Path to video file or stream URL (required for FILE/STREAM)
        """
        self.release()
        self.source_type = source_type
        self.source_path = source_path
        try:
            if source_type == VideoSourceType.WEBCAM:
                self.cap = _open_webcam()
                if self.cap is not None:
                    self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, 640)
                    self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, 480)
                    self.cap.set(cv2.CAP_PROP_FPS, 30)
                    self.cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)
            elif source_type in (VideoSourceType.FILE, VideoSourceType.STREAM):
                if not source_path:
                    raise ValueError(f"source_path is required for {source_type.value} source")
                self.cap = cv2.VideoCapture(source_path)
                if source_type == VideoSourceType.STREAM:
                    self.cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)
            else:
                raise ValueError(f"Unsupported source type: {source_type}")

            return self.cap is not None and self.cap.isOpened()
        except (ValueError, cv2.error) as e:
            logger.warning("Error initializing video source: %s", e)
            self.release()
            return False

    def read_frame(self) -> Tuple[bool, Optional[np.ndarray]]:
        """Returns (success, BGR frame or None)."""
        if not self.cap or not self.cap.isOpened():
            return False, None
        ret, frame = self.cap.read()
        if not ret or frame is None:
            return False, None
        return True, frame

    def release(self) -> None:
        """Release the current video source and free resources."""
        if self.cap:
            self.cap.release()
            self.cap = None
        self.source_type = None
        self.source_path = None


def decode_image(data: bytes) -> Optional[np.ndarray]:
    """Decode JPEG/PNG bytes to a BGR frame; None if the bytes are not an image."""
    if not data:
        return None
    buf = np.frombuffer(data, dtype=np.uint8)
    frame = cv2.imdecode(buf, cv2.IMREAD_COLOR)
    if frame is None or frame.size == 0:
        return None
    return frame
