"""
=============================================================================
CONFIGURATION FOR INTERVIEW BEHAVIOR ANALYZER (config.py)
=============================================================================

WHAT THIS FILE DOES (in plain language):
----------------------------------------
This file holds ALL configurable settings for the project in one place. Every
threshold used by the analysis engine (eye closure, blink rate, head pose,
expression scores, cheating heuristics, sampling throttle) is a named value
here so it can be tuned without touching the code that uses it.

MAIN GROUPS OF SETTINGS:
------------------------
  1. Eye state        : EAR threshold, blink / long-closure durations, smoothing.
  2. Behavior history : Rolling window length, caps, and the minimum-dwell gate.
  3. Expression       : Thresholds for the nervous / distracted / confident scores.
  4. Scores           : Movement caps for attention and stability.
  5. Cheating         : Gaze-down, head-pitch, hand-near-face, frame-edge rules.
  6. Sampling         : Per-question sample throttle.
  7. External services: Persistence API and Object Detection Service endpoints.
  8. Server           : Host, port, debug mode, and log level.

HOW VALUES ARE CHOSEN:
---------------------
  - Environment variables (e.g. PERSISTENCE_API_URL) override everything.
  - If an env var is not set, we use the tuned default.
  - We never put real tokens or secrets as defaults in code.
=============================================================================
"""

import os
import logging


logger = logging.getLogger(__name__)


# ----------------------------------------------------------------------------
# Remove surrounding quotes from env values (sometimes .env has "value")
# ----------------------------------------------------------------------------
def _strip_quotes(s: str) -> str:
    if not s:
        return ""
    s = s.strip()
    if len(s) >= 2 and s[0] == s[-1] and s[0] in ("'", '"'):
        return s[1:-1].strip()
    return s


def _env_float(name: str, default: float) -> float:
    raw = _strip_quotes(os.getenv(name, ""))
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Config %s=%r is not a number; using %s", name, raw, default)
        return default


def _env_int(name: str, default: int) -> int:
    return int(_env_float(name, float(default)))


# ============================================================================
# EYE STATE (blink vs. sustained closure)
# ============================================================================
# EAR above this value means the eye is open. Open eyes sit around 0.25.
EAR_CLOSED_THRESHOLD: float = _env_float("EAR_CLOSED_THRESHOLD", 0.12)
EAR_OPEN_REFERENCE: float = 0.25
BLINK_MAX_DURATION_MS: float = _env_float("BLINK_MAX_DURATION_MS", 300.0)
LONG_CLOSURE_MS: float = _env_float("LONG_CLOSURE_MS", 1500.0)
EYE_SMOOTHING_WINDOW: int = _env_int("EYE_SMOOTHING_WINDOW", 10)
# Initial smoothed value on the 0..1 score scale
EYE_SMOOTHING_INITIAL: float = 0.5
EYE_SMOOTHING_DROP_THRESHOLD: float = 0.15
EYE_SMOOTHING_ALPHA_DROP: float = 0.8
EYE_SMOOTHING_ALPHA_RECOVER: float = 0.3
EYE_SMOOTHING_BYPASS_BELOW: float = 0.2
# Long-closure penalty: 2% per frame beyond the threshold at ~30 fps, capped at 50%
LONG_CLOSURE_ASSUMED_FPS: float = 30.0
LONG_CLOSURE_PENALTY_PER_FRAME: float = 0.02
LONG_CLOSURE_PENALTY_CAP: float = 0.5
# Closed (non-blink) eyes: head-pose and gaze weights are multiplied down
CLOSED_EYE_HEAD_POSE_MULTIPLIER: float = 0.3
CLOSED_EYE_GAZE_MULTIPLIER: float = 0.2
CLOSED_EYE_SCORE_MULTIPLIER: float = 0.2
CLOSED_EYE_SCORE_CAP: float = 0.15

# ============================================================================
# BEHAVIOR HISTORY (rolling 10 s window + hysteresis)
# ============================================================================
HISTORY_WINDOW_MS: float = _env_float("HISTORY_WINDOW_MS", 10000.0)
HISTORY_MAX_SAMPLES: int = _env_int("HISTORY_MAX_SAMPLES", 100)
MIN_STATE_DURATION_MS: float = _env_float("MIN_STATE_DURATION_MS", 800.0)
TRANSITION_HISTORY_MAX: int = 50
NORMAL_BLINK_RATE: float = 15.0
NERVOUS_BLINK_RATE: float = 18.0
HEAD_AWAY_THRESHOLD: float = 0.25
HEAD_DOWN_THRESHOLD: float = 0.51
LONG_EYE_CLOSURE_MS: float = 1200.0
MOUTH_TIGHT_THRESHOLD: float = 0.22
HEAD_FREQUENCY_FRACTION: float = 0.4
MOUTH_TIGHT_FRACTION: float = 0.35

# ============================================================================
# EXPRESSION CLASSIFIER
# ============================================================================
NERVOUS_THRESHOLD: float = _env_float("NERVOUS_THRESHOLD", 15.0)
DISTRACTED_THRESHOLD: float = _env_float("DISTRACTED_THRESHOLD", 25.0)
CONFIDENT_THRESHOLD: float = 50.0
HEAD_POSE_AWAY_THRESHOLD: float = 0.6
MOUTH_VARIANCE_THRESHOLD: float = 0.004
# Confident wins a close call only when it leads nervous by more than this
CONFIDENT_MARGIN_OVER_NERVOUS: float = 10.0
# Floor for the default (no strong indicator) Confident result
BASELINE_MIN_CONFIDENCE: int = 50
EXPRESSION_SCORE_CAP: float = 100.0

# Blink-rate bands, as multiples of NORMAL_BLINK_RATE
NERVOUS_NORMAL_BLINK_BAND = (0.8, 1.2)
CONFIDENT_NORMAL_BLINK_BAND = (0.6, 1.4)
BLINK_SLIGHTLY_HIGH_FACTOR: float = 1.05
# Blinks above normal, per blink/min, once above NERVOUS_BLINK_RATE
BLINK_EXCESS_PER_UNIT: float = 5.0
BLINK_EXCESS_CAP: float = 60.0

# Mouth-aspect-ratio bands
RELAXED_MOUTH_RANGE = (0.15, 0.40)
ACCEPTABLE_MOUTH_RANGE = (0.12, 0.45)
MOUTH_VARIANCE_PER_UNIT: float = 1500.0
MOUTH_VARIANCE_CAP: float = 40.0
MOUTH_CHANGE_THRESHOLD: float = 0.05

# Head-pose score levels
HEAD_POSE_EXCELLENT: float = 0.7
HEAD_POSE_VERY_GOOD: float = 0.75
HEAD_POSE_CONFIDENT_EXCELLENT: float = 0.65
HEAD_POSE_FAIR: float = 0.5
HEAD_POSE_POOR: float = 0.4

# Nose-tip offset from frame center, per axis
VERY_CENTERED_OFFSET: float = 0.12
CONFIDENT_VERY_CENTERED_OFFSET: float = 0.15
CENTERED_OFFSET: float = 0.25
OFF_CENTER_OFFSET: float = 0.3

# Head micro-movements (fidgeting)
HEAD_MICRO_VARIANCE_RANGE = (0.001, 0.025)
HEAD_MICRO_MOVE_RANGE = (0.02, 0.1)
HEAD_MODERATE_VARIANCE: float = 0.02
HEAD_STABLE_VARIANCE: float = 0.01

NERVOUS_WEIGHTS = {
    'blink_moderate': 30,
    'blink_slight': 15,
    'mouth_frequently_tight': 45,
    'mouth_tight_now': 30,
    'mouth_change': 15,
    'head_down_now': 35,
    'head_frequently_down': 25,
    'hand_near_head': 50,
    'hand_near_head_combined': 25,
    'head_micro_variance': 20,
    'head_micro_move': 12,
}

# Multipliers applied to the nervous score by strong confident indicators
NERVOUS_DAMPING = {
    'stable_excellent_centered': 0.2,
    'stable_excellent': 0.3,
    'excellent_centered': 0.4,
    'excellent': 0.5,
    'very_good_pose': 0.6,
    'good_pose': 0.7,
    'fair_pose_no_hands': 0.8,
}

DISTRACTION_WEIGHTS = {
    'head_away': 50,
    'off_center': 35,
    'head_frequently_away': 40,
    'long_eye_closures': 35,
    'head_pose_away': 30,
    'eyes_closed': 20,
    'head_down': 25,
    'horizontal_offset': 20,
    'poor_head_pose': 30,
}

CONFIDENT_WEIGHTS = {
    'head_stable': 25,
    'head_moderately_stable': 15,
    'stable_excellent': 20,
    'normal_blink': 35,
    'excellent_pose': 40,
    'fair_pose': 30,
    'very_centered': 35,
    'centered': 25,
    'acceptable_mouth': 25,
    'all_indicators': 20,
}

# Indicators for the default Confident confidence
BASELINE_WEIGHTS = {
    'normal_blink': 30,
    'fair_pose': 30,
    'centered': 25,
    'acceptable_mouth': 15,
}

# Hand-near-head geometry (normalized units)
HAND_WRIST_BELOW_CHIN: float = 0.15
HAND_FACE_SPAN_MARGIN: float = 0.20
HAND_FINGERTIP_FOREHEAD_DISTANCE: float = 0.20
HAND_WRIST_FOREHEAD_DISTANCE: float = 0.25

# Head-pose score: centering normalizers and blend weights
HEAD_POSE_CENTER_RANGE: float = 0.3
HEAD_POSE_FALLBACK_RANGE: float = 0.4
HEAD_POSE_WEIGHTS = {
    'center_x': 0.3,
    'center_y': 0.3,
    'rotation': 0.4,
}

# ============================================================================
# SCORE CALCULATORS
# ============================================================================
ATTENTION_MOVEMENT_CAP: float = 0.05
HEAD_MOVEMENT_CAP: float = 0.1
HAND_MOVEMENT_CAP: float = 0.15
NEUTRAL_STABILITY_SCORE: int = 50

# ============================================================================
# CHEATING / DISTRACTION DETECTOR
# ============================================================================
GAZE_DOWN_OFFSET: float = 0.05
GAZE_DOWN_DURATION_SEC: float = _env_float("GAZE_DOWN_DURATION_SEC", 1.5)
HEAD_PITCH_DOWN_DEGREES: float = -15.0
HAND_NEAR_FACE_DISTANCE: float = 0.15
FRAME_EDGE_MARGIN: float = 0.1
CHEATING_HISTORY_FRAMES: int = 10
CHEATING_HISTORY_RATIO: float = 0.7
BEHAVIOR_CHEATING_THRESHOLD: int = 40
DISTRACTED_STATUS_THRESHOLD: int = 20

# ============================================================================
# SAMPLING
# ============================================================================
SAMPLE_THROTTLE_MS: float = _env_float("SAMPLE_THROTTLE_MS", 1500.0)

# ============================================================================
# EXTERNAL SERVICES (Persistence API, Object Detection Service)
# ============================================================================
PERSISTENCE_API_URL: str = _strip_quotes(os.getenv("PERSISTENCE_API_URL", "")).rstrip("/")
# No default token; set PERSISTENCE_API_TOKEN in env.
PERSISTENCE_API_TOKEN: str = _strip_quotes(os.getenv("PERSISTENCE_API_TOKEN", ""))
PERSISTENCE_ASYNC: bool = os.getenv("PERSISTENCE_ASYNC", "true").lower() == "true"
OBJECT_DETECTION_URL: str = _strip_quotes(os.getenv("OBJECT_DETECTION_URL", "")).rstrip("/")
PHONE_DETECTION_ENABLED: bool = os.getenv("PHONE_DETECTION_ENABLED", "true").lower() == "true"
PHONE_CAPTURE_INTERVAL_SEC: float = _env_float("PHONE_CAPTURE_INTERVAL_SEC", 1.0)
SNAPSHOT_JPEG_QUALITY: int = _env_int("SNAPSHOT_JPEG_QUALITY", 80)
HTTP_TIMEOUT_SEC: float = _env_float("HTTP_TIMEOUT_SEC", 10.0)

# ============================================================================
# LANDMARK TRACKER (MediaPipe, local capture mode only)
# ============================================================================
MIN_FACE_CONFIDENCE: float = _env_float("MIN_FACE_CONFIDENCE", 0.5)
MIN_HAND_CONFIDENCE: float = _env_float("MIN_HAND_CONFIDENCE", 0.5)
MAX_NUM_HANDS: int = 2

# ============================================================================
# DIAGNOSTICS
# ============================================================================
ANALYSIS_DIAGNOSTIC_LOGGING: bool = os.getenv("ANALYSIS_DIAGNOSTIC_LOGGING", "false").lower() == "true"
ANALYSIS_DIAGNOSTIC_LOG_INTERVAL: int = max(1, _env_int("ANALYSIS_DIAGNOSTIC_LOG_INTERVAL", 30))

# ============================================================================
# Application Configuration
# ============================================================================
FLASK_PORT: int = int(os.getenv("FLASK_PORT", "5000"))
FLASK_DEBUG: bool = os.getenv("FLASK_DEBUG", "false").lower() == "true"
FLASK_HOST: str = os.getenv("FLASK_HOST", "0.0.0.0")
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

# ============================================================================
# Helper Functions
# ============================================================================

def warn_missing_config() -> None:
    """
    Log warnings when optional collaborators are not configured.
    Call from app startup (e.g. app.py). Does not raise.
    """
    missing = []
    if not PERSISTENCE_API_URL:
        missing.append("PERSISTENCE_API_URL")
    if PERSISTENCE_API_URL and not PERSISTENCE_API_TOKEN:
        missing.append("PERSISTENCE_API_TOKEN")
    if PHONE_DETECTION_ENABLED and not OBJECT_DETECTION_URL:
        missing.append("OBJECT_DETECTION_URL")
    if missing:
        logger.warning(
            "Config warning: the following env vars are not set. Some features may be disabled: %s",
            ", ".join(missing),
        )


def is_persistence_enabled() -> bool:
    """True when aggregated results can be sent to the Persistence API."""
    return bool(PERSISTENCE_API_URL)


def is_phone_detection_enabled() -> bool:
    """True when 1 Hz snapshots can be sent to the Object Detection Service."""
    return bool(PHONE_DETECTION_ENABLED and OBJECT_DETECTION_URL)


def build_config_response() -> dict:
    """
    Build the public configuration response for GET /config/all.
    Never includes the Persistence API token.
    """
    return {
        "eyeState": {
            "earClosedThreshold": EAR_CLOSED_THRESHOLD,
            "blinkMaxDurationMs": BLINK_MAX_DURATION_MS,
            "longClosureMs": LONG_CLOSURE_MS,
            "smoothingWindow": EYE_SMOOTHING_WINDOW,
        },
        "behavior": {
            "historyWindowMs": HISTORY_WINDOW_MS,
            "historyMaxSamples": HISTORY_MAX_SAMPLES,
            "minStateDurationMs": MIN_STATE_DURATION_MS,
        },
        "expression": {
            "nervousThreshold": NERVOUS_THRESHOLD,
            "distractedThreshold": DISTRACTED_THRESHOLD,
            "confidentThreshold": CONFIDENT_THRESHOLD,
        },
        "sampling": {
            "sampleThrottleMs": SAMPLE_THROTTLE_MS,
        },
        "persistence": {
            "enabled": is_persistence_enabled(),
            "async": PERSISTENCE_ASYNC,
        },
        "phoneDetection": {
            "enabled": is_phone_detection_enabled(),
            "captureIntervalSec": PHONE_CAPTURE_INTERVAL_SEC,
        },
        "diagnostics": {
            "enabled": ANALYSIS_DIAGNOSTIC_LOGGING,
            "interval": ANALYSIS_DIAGNOSTIC_LOG_INTERVAL,
        },
    }
