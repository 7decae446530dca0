"""
EVP detection types and enumerations.

This module defines the records exchanged between the detector and its
callers: classification tiers, detection events and runtime statistics.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict

from ..spectral.features import SpectralFeatures
from ..spectral.transform import SpectralFrame


class EVPClass(Enum):
    """
    Confidence tiers for a classified segment.
    """

    CLASS_A = ("class_a", "Clear and easily understood")
    CLASS_B = ("class_b", "Fairly loud, might need some interpretation")
    CLASS_C = ("class_c", "Faint, often requires amplification")
    UNKNOWN = ("unknown", "Voice-like but below every tier")

    def __init__(self, class_id: str, description: str):
        """
        Initialize EVP class enum.

        Args:
            class_id (str): Stable identifier used in serialised records.
            description (str): Human-readable description of the tier.
        """
        self.class_id = class_id
        self.description = description


class DetectorState(Enum):
    """
    Lifecycle states of the detector.
    """

    IDLE = "idle"
    DETECTING = "detecting"
    DISPOSED = "disposed"


@dataclass(frozen=True)
class EVPDetection:
    """
    A classified voice-like segment.

    Created once per accumulation cycle that clears the classification
    threshold and handed to the detection handlers.
    """

    timestamp_ms: float
    duration_ms: float
    confidence: float
    classification: EVPClass
    dominant_frequency: float
    amplitude: float
    features: SpectralFeatures
    signal_to_noise_ratio: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert detection to dictionary format.

        Returns:
            Dict[str, Any]: Dictionary representation of the detection.
        """
        return {
            "timestamp_ms": self.timestamp_ms,
            "duration_ms": self.duration_ms,
            "confidence": self.confidence,
            "classification": self.classification.class_id,
            "dominant_frequency": self.dominant_frequency,
            "amplitude": self.amplitude,
            "signal_to_noise_ratio": self.signal_to_noise_ratio,
            "features": self.features.to_dict(),
        }


@dataclass
class DetectionStats:
    """
    Snapshot of detector activity returned by ``get_stats``.
    """

    is_detecting: bool = False
    buffer_size: int = 0
    voice_activity_rate: float = 0.0
    source_available: bool = True
    frames_processed: int = 0
    detections_emitted: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_detecting": self.is_detecting,
            "buffer_size": self.buffer_size,
            "voice_activity_rate": self.voice_activity_rate,
            "source_available": self.source_available,
            "frames_processed": self.frames_processed,
            "detections_emitted": self.detections_emitted,
        }


# Type aliases for common use cases
DetectionCallback = Callable[[EVPDetection], None]

__all__ = [
    "DetectionCallback",
    "DetectionStats",
    "DetectorState",
    "EVPClass",
    "EVPDetection",
    "SpectralFeatures",
    "SpectralFrame",
]
