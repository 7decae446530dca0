"""
evpscope - real-time spectral analysis and EVP classification.
"""

from evpscope.audio.evp import (
    DetectionConfig,
    DetectionRunner,
    EVPClass,
    EVPDetection,
    EVPDetector,
)

__version__ = "0.1.0"

__all__ = [
    "DetectionConfig",
    "DetectionRunner",
    "EVPClass",
    "EVPDetection",
    "EVPDetector",
    "__version__",
]
