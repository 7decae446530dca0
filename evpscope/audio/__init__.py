"""
Audio analysis for evpscope.

- spectral: windows, FFT stage, input conditioning and feature extraction
- evp: voice activity, accumulation, classification and the detector engine
- sources: pull-based audio sources
"""

from .sources import ArrayAudioSource, AudioSource, WaveFileSource

__all__ = ["ArrayAudioSource", "AudioSource", "WaveFileSource"]
