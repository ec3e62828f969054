"""
Phone detection worker.

Background thread that, once per PHONE_CAPTURE_INTERVAL_SEC, takes the most
recent snapshot, submits it to the Object Detection Service and feeds the
answer into the session's CheatingDetector. It is the only concurrent part of
the analysis path: results may lag the frame-driven behavioral score by a few
frames. Network failures keep the last known phone flag.
"""

import logging
import threading
from typing import Optional

import requests

import config
from services.object_detection import ObjectDetectionService, PhoneDetectionResult
from utils.cheating_detector import CheatingDetector

logger = logging.getLogger(__name__)


class PhoneDetectionWorker:
    """
    Usage:
        worker = PhoneDetectionWorker(detector, ObjectDetectionService())
        worker.start()
        worker.submit_snapshot(jpeg_bytes)
        worker.stop()
    """

    def __init__(
        self,
        detector: CheatingDetector,
        service: ObjectDetectionService,
        interval_sec: Optional[float] = None,
    ):
        self.detector = detector
        self.service = service
        self.interval_sec = config.PHONE_CAPTURE_INTERVAL_SEC if interval_sec is None else interval_sec
        self._snapshot: Optional[bytes] = None
        self._snapshot_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def submit_snapshot(self, jpeg_bytes: bytes) -> None:
        """Store the latest still; only the newest one is ever sent."""
        with self._snapshot_lock:
            self._snapshot = jpeg_bytes

    def _take_snapshot(self) -> Optional[bytes]:
        with self._snapshot_lock:
            snapshot, self._snapshot = self._snapshot, None
        return snapshot

    def check_once(self) -> Optional[PhoneDetectionResult]:
        """Submit the pending snapshot, if any, and apply the result."""
        snapshot = self._take_snapshot()
        if not snapshot:
            return None
        try:
            result = self.service.detect(snapshot)
        except (requests.RequestException, ValueError) as e:
            logger.warning("Phone detection failed (keeping last result): %s", e)
            return None
        self.detector.set_phone_result(result.phone_detected, result.detected_objects, result.confidence)
        return result

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval_sec):
            self.check_once()

    def start(self) -> bool:
        if self.is_running:
            return True
        if not self.service.is_available():
            logger.warning("Object Detection Service not configured; phone detection disabled")
            return False
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="phone-detection", daemon=True)
        self._thread.start()
        return True

    def request_stop(self) -> None:
        """Signal the loop to exit without waiting for an in-flight request."""
        self._stop_event.set()

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=2.0)
        self._thread = None
