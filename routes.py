"""
Flask routes for the Interview Behavior Analyzer.

Handles service status, public config, and the analysis session lifecycle:
start/stop, per-frame landmark scoring, per-question sampling, phone-detection
snapshots, live state and debug output. JSON keys are camelCase.
"""

from flask import Blueprint, request, jsonify
from typing import Optional
import logging
import threading

import config
from interview_session import InterviewAnalysisSession
from utils.landmarks import LandmarkFormatError
from utils.video_source_handler import VideoSourceType, decode_image

logger = logging.getLogger(__name__)

# Create a blueprint for better organization
api = Blueprint('api', __name__)

# The live analysis session; only one interview is analyzed at a time.
analysis_session = None  # type: Optional[InterviewAnalysisSession]
# Serializes stop-old / create / start / assign across request threads
_session_lock = threading.Lock()


def _active_session() -> Optional[InterviewAnalysisSession]:
    if analysis_session is None or not analysis_session.is_running:
        return None
    return analysis_session


def _no_session():
    return jsonify({"error": "No active analysis session"}), 404


# ============================================================================
# Status and Configuration Routes
# ============================================================================

@api.route("/")
def index():
    """Service name and whether a session is live."""
    return jsonify({
        "service": "interview-behavior-analyzer",
        "status": "ok",
        "sessionActive": _active_session() is not None,
    })


@api.route("/config/all", methods=["GET"])
def get_all_config():
    """
    Get all public configuration in one endpoint.

    Returns:
        JSON: thresholds, sampling settings and which collaborators are enabled
        (never the Persistence API token)
    """
    return jsonify(config.build_config_response())


# ============================================================================
# Session Routes
# ============================================================================

@api.route("/session/start", methods=["POST"])
def start_session():
    """
    Start (or restart) an analysis session.

    Request Body:
        {
            "sessionId": "interview id",
            "userId": "optional candidate id",
            "source": optional "webcam" | "file" | "stream" for local capture,
            "sourcePath": "path or URL for file/stream sources"
        }

    Without "source" the browser is expected to POST landmarks to /session/frame.
    """
    global analysis_session

    if not request.is_json:
        return jsonify({"error": "Request must be JSON"}), 400

    data = request.get_json(silent=True) or {}
    session_id = data.get("sessionId")
    if not session_id or not isinstance(session_id, str):
        return jsonify({"error": "sessionId is required"}), 400

    source_type = None
    if data.get("source"):
        try:
            source_type = VideoSourceType.parse(data.get("source"))
        except ValueError as e:
            return jsonify({"error": str(e)}), 400

    try:
        with _session_lock:
            if analysis_session:
                analysis_session.stop()
                analysis_session = None

            session = InterviewAnalysisSession(session_id, user_id=data.get("userId"))
            session.start()
            if source_type is not None and not session.start_capture(source_type, data.get("sourcePath")):
                session.stop()
                return jsonify({
                    "error": "Failed to start video capture",
                    "details": f"Could not open {source_type.value} source"
                }), 500

            analysis_session = session
        return jsonify({
            "success": True,
            "message": "Analysis session started",
            "sessionId": session_id,
            "captureMode": source_type.value if source_type else "landmarks",
            "phoneDetection": session.phone_worker is not None,
        })

    except Exception as e:
        logger.exception("Failed to start analysis session")
        return jsonify({
            "error": "Failed to start analysis session",
            "details": str(e)
        }), 500


@api.route("/session/stop", methods=["POST"])
def stop_session():
    """Stop the session, flushing the open question. Succeeds even when nothing is running."""
    global analysis_session

    try:
        stopped = False
        with _session_lock:
            if analysis_session:
                stopped = analysis_session.stop()
                analysis_session = None
        return jsonify({
            "success": True,
            "message": "Analysis session stopped" if stopped else "No session was running"
        })

    except Exception as e:
        return jsonify({
            "error": "Failed to stop analysis session",
            "details": str(e)
        }), 500


@api.route("/session/frame", methods=["POST"])
def process_frame():
    """
    Score one frame of landmarks.

    Request Body:
        {
            "faceLandmarks": [{"x":..,"y":..,"z":..}, ...] or null,
            "handLandmarks": [[21 points], ...],
            "timestamp": optional ms
        }

    Returns:
        JSON: the ScoreSample plus the current cheating status
    """
    session = _active_session()
    if session is None:
        return _no_session()
    if not request.is_json:
        return jsonify({"error": "Request must be JSON"}), 400

    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON body"}), 400

    timestamp = data.get("timestamp")
    if timestamp is not None and (isinstance(timestamp, bool) or not isinstance(timestamp, (int, float))):
        return jsonify({"error": "timestamp must be a number of milliseconds"}), 400

    try:
        sample = session.process_frame(data.get("faceLandmarks"), data.get("handLandmarks"), timestamp)
    except LandmarkFormatError as e:
        return jsonify({"error": "Invalid landmark payload", "details": str(e)}), 400
    except Exception as e:
        logger.exception("Frame processing failed")
        return jsonify({"error": "Failed to process frame", "details": str(e)}), 500

    if sample is None:
        return _no_session()
    body = sample.to_dict()
    cheating = session.cheating.snapshot() if session.cheating else None
    body["cheating"] = cheating
    body["terminated"] = session.terminated
    return jsonify(body)


@api.route("/session/sampling", methods=["POST"])
def set_sampling():
    """
    Start or stop sampling for a question.

    Request Body:
        {"active": true, "questionIndex": 0}
    """
    session = _active_session()
    if session is None:
        return _no_session()
    if not request.is_json:
        return jsonify({"error": "Request must be JSON"}), 400

    data = request.get_json(silent=True) or {}
    active = data.get("active")
    question_index = data.get("questionIndex")
    if not isinstance(active, bool):
        return jsonify({"error": "active must be a boolean"}), 400
    if isinstance(question_index, bool) or not isinstance(question_index, int) or question_index < 0:
        return jsonify({"error": "questionIndex must be a non-negative integer"}), 400

    try:
        flushed = session.set_sampling(active, question_index)
        return jsonify({
            "success": True,
            "isSampling": bool(session.sampling and session.sampling.active),
            "questionIndex": question_index,
            "flushed": flushed.to_dict() if flushed else None,
        })
    except Exception as e:
        return jsonify({"error": "Failed to update sampling", "details": str(e)}), 500


@api.route("/session/snapshot", methods=["POST"])
def submit_snapshot():
    """
    Receive a still for phone detection.
    Expects a raw JPEG body or multipart/form-data with a "file" part.
    """
    session = _active_session()
    if session is None:
        return _no_session()
    try:
        data = None
        if request.files:
            f = request.files.get("file") or next(iter(request.files.values()), None)
            if f:
                data = f.read()
        if not data:
            data = request.get_data()
        if not data:
            return jsonify({"error": "No image data"}), 400
        if decode_image(data) is None:
            return jsonify({"error": "Invalid or unsupported image"}), 400
        queued = session.submit_snapshot(data)
        return jsonify({"success": True, "queued": queued})
    except Exception as e:
        return jsonify({"error": "Failed to process snapshot", "details": str(e)}), 500


@api.route("/session/state", methods=["GET"])
def get_session_state():
    """
    Get the live analysis state.

    Returns:
        JSON: {
            "current": latest ScoreSample,
            "runningAggregate": aggregate of the open question,
            "cheating": {... "status": "Focused" | "Distracted" | "Cheating"},
            "isSampling": true,
            "questionIndex": 2,
            "violations": {"violationCount": 1, "warningStage": 1, ...},
            "terminated": false
        }
    """
    if analysis_session is None:
        return _no_session()
    try:
        return jsonify(analysis_session.get_live_state())
    except Exception as e:
        return jsonify({"error": "Failed to get session state", "details": str(e)}), 500


@api.route("/session/debug", methods=["GET"])
def get_session_debug():
    """Last classifier signals, raw scores and history sizes."""
    if analysis_session is None:
        return jsonify({"error": "No active analysis session", "sessionRunning": False}), 404
    try:
        debug_info = analysis_session.get_debug()
        debug_info["sessionRunning"] = analysis_session.is_running
        return jsonify(debug_info)
    except Exception as e:
        return jsonify({"error": "Failed to get debug info", "details": str(e)}), 500


def register_routes(app) -> None:
    """Attach the API blueprint to the Flask app."""
    app.register_blueprint(api)
