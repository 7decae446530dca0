"""
Spectral analysis building blocks.
"""

from .conditioning import InputConditioner
from .features import FeatureExtractor, SpectralFeatures
from .transform import SPECTROGRAM_MAX_FRAMES, SpectralFrame, SpectralTransformStage
from .windows import WindowFunctionLibrary, WindowType

__all__ = [
    "FeatureExtractor",
    "InputConditioner",
    "SPECTROGRAM_MAX_FRAMES",
    "SpectralFeatures",
    "SpectralFrame",
    "SpectralTransformStage",
    "WindowFunctionLibrary",
    "WindowType",
]
