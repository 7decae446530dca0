"""
EVP detection.

Main Components:
- DetectionConfig: validated, immutable detector configuration
- VoiceActivityClassifier: per-frame voice likelihood score
- DetectionAccumulator: bounded buffer of voice-active frames
- EVPClassifier: confidence scoring and tier assignment
- EVPDetector: tick-driven engine tying the pipeline together
- DetectionRunner: fixed-cadence worker thread with a detection queue

Example Usage:
    source = WaveFileSource.from_file("session.wav", hop_size=1024)
    detections = run_offline(EVPDetector(), source)
"""

from .accumulator import DetectionAccumulator
from .classifier import EVPAssessment, EVPClassifier
from .config import ConfigurationError, DetectionConfig
from .detector import EVPDetector
from .runner import DetectionRunner, run_offline
from .types import (
    DetectionCallback,
    DetectionStats,
    DetectorState,
    EVPClass,
    EVPDetection,
)
from .voice_activity import VoiceActivityClassifier, VoiceActivityResult

__all__ = [
    "ConfigurationError",
    "DetectionAccumulator",
    "DetectionCallback",
    "DetectionConfig",
    "DetectionRunner",
    "DetectionStats",
    "DetectorState",
    "EVPAssessment",
    "EVPClass",
    "EVPClassifier",
    "EVPDetection",
    "EVPDetector",
    "VoiceActivityClassifier",
    "VoiceActivityResult",
    "run_offline",
]
