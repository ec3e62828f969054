"""
Utilities package for the Interview Behavior Analyzer.

This package contains landmark parsing and geometry, the per-session trackers
(eye state, behavior history, cheating, phone violations), score calculation,
expression classification, per-question sampling, and video capture helpers.
"""

from .landmarks import LandmarkPoint, LandmarkFrame, LandmarkFormatError, build_frame
from .eye_state_tracker import EyeState, EyeStateTracker
from .behavior_state_tracker import Expression, BehaviorStateTracker
from .score_calculators import ScoreCalculator, ScoreSample
from .expression_classifier import ExpressionResult, classify_expression
from .cheating_detector import CheatingDetector, CheatingStatus
from .sampling_controller import SamplingController, AggregatedScores
from .phone_violation_tracker import PhoneViolationTracker, ViolationEvent
from .video_source_handler import VideoSourceHandler, VideoSourceType
from .landmark_tracker import LandmarkTracker, MediaPipeLandmarkTracker

__all__ = [
    'LandmarkPoint',
    'LandmarkFrame',
    'LandmarkFormatError',
    'build_frame',
    'EyeState',
    'EyeStateTracker',
    'Expression',
    'BehaviorStateTracker',
    'ScoreCalculator',
    'ScoreSample',
    'ExpressionResult',
    'classify_expression',
    'CheatingDetector',
    'CheatingStatus',
    'SamplingController',
    'AggregatedScores',
    'PhoneViolationTracker',
    'ViolationEvent',
    'VideoSourceHandler',
    'VideoSourceType',
    'LandmarkTracker',
    'MediaPipeLandmarkTracker',
]
