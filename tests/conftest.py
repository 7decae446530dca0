"""
Global test configuration and fixtures for evpscope.

This module provides shared fixtures and synthetic signal generators for
all test modules.
"""

import os
import time
import wave
from pathlib import Path
from typing import Callable, Optional

import numpy as np
import pytest
from loguru import logger

from evpscope.audio.evp import DetectionConfig
from evpscope.audio.spectral import SpectralFeatures, SpectralTransformStage

SAMPLE_RATE = 44100.0
FFT_SIZE = 4096
BIN_WIDTH = SAMPLE_RATE / FFT_SIZE


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: fast isolated tests")
    config.addinivalue_line("markers", "integration: multi-component tests")


# ============================================================================
# SIGNAL FIXTURES
# ============================================================================


def on_bin_frequency(bin_index: int) -> float:
    """Frequency that falls exactly on the centre of an FFT bin."""
    return bin_index * BIN_WIDTH


def make_tone(
    frequency: float,
    amplitude: float = 0.5,
    num_samples: int = FFT_SIZE,
    sample_rate: float = SAMPLE_RATE,
) -> np.ndarray:
    t = np.arange(num_samples) / sample_rate
    return amplitude * np.sin(2 * np.pi * frequency * t)


def make_voice_like_signal(
    num_samples: int, scale: float = 1.0, sample_rate: float = SAMPLE_RATE
) -> np.ndarray:
    """
    Harmonic series on a ~150.7 Hz fundamental with two emphasised partials.

    Every partial sits on an FFT bin centre so each block produces the same
    spectrum. The 4th partial (~603 Hz) and the 10th (~1507 Hz) stand out
    as first and second formants.
    """
    t = np.arange(num_samples) / sample_rate
    signal = np.zeros(num_samples)
    for n in range(1, 11):
        amplitude = {4: 1.0, 10: 0.8}.get(n, 0.2)
        signal += amplitude * np.sin(2 * np.pi * on_bin_frequency(14 * n) * t)
    return signal * scale


def write_wave(
    path: Path,
    samples: np.ndarray,
    sample_rate: int = 44100,
    channels: int = 1,
) -> Path:
    """Write float samples in [-1, 1] as 16-bit PCM."""
    data = np.clip(samples, -1.0, 1.0)
    if channels > 1:
        data = np.repeat(data[:, np.newaxis], channels, axis=1).ravel()
    with wave.open(str(path), "wb") as wav_file:
        wav_file.setnchannels(channels)
        wav_file.setsampwidth(2)
        wav_file.setframerate(sample_rate)
        wav_file.writeframes((data * 32767).astype("<i2").tobytes())
    return path


@pytest.fixture
def tone() -> Callable[..., np.ndarray]:
    return make_tone


@pytest.fixture
def voice_like_signal() -> Callable[..., np.ndarray]:
    return make_voice_like_signal


@pytest.fixture
def flat_spectrum() -> np.ndarray:
    return np.full(FFT_SIZE // 2, -20.0)


@pytest.fixture
def spectrum_with_peak() -> Callable[..., np.ndarray]:
    """Factory for a flat decibel spectrum carrying isolated peaks."""

    def factory(floor: float = -90.0, peaks: Optional[dict] = None) -> np.ndarray:
        spectrum = np.full(FFT_SIZE // 2, floor)
        for bin_index, level in (peaks or {}).items():
            spectrum[bin_index] = level
        return spectrum

    return factory


@pytest.fixture
def voice_features() -> SpectralFeatures:
    """Features inside every voice-like and EVP-like range."""
    return SpectralFeatures(centroid=1000.0, zcr=0.05, flatness=0.2)


@pytest.fixture
def noise_features() -> SpectralFeatures:
    """Features outside every voice-like range."""
    return SpectralFeatures(centroid=5000.0, zcr=0.5, flatness=0.9)


# ============================================================================
# COMPONENT FIXTURES
# ============================================================================


@pytest.fixture
def transform():
    stage = SpectralTransformStage(
        fft_size=FFT_SIZE, sample_rate=SAMPLE_RATE, smoothing_time_constant=0.0
    )
    yield stage
    stage.dispose()


@pytest.fixture
def config() -> DetectionConfig:
    """Detector configuration without conditioning or smoothing."""
    return DetectionConfig(enable_conditioning=False, smoothing_time_constant=0.0)


@pytest.fixture
def fixed_clock() -> Callable[[], float]:
    return lambda: 1700000000.5


@pytest.fixture
def clean_evp_env(monkeypatch):
    """Remove EVP_* variables so configuration tests see a clean environment."""
    for name in list(os.environ):
        if name.startswith("EVP_"):
            monkeypatch.delenv(name, raising=False)
    return monkeypatch


def wait_for(condition: Callable[[], bool], timeout: float = 5.0) -> bool:
    """Poll ``condition`` until it holds or ``timeout`` seconds pass."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.005)
    return condition()


@pytest.fixture
def loguru_records():
    """Collect (level, message) pairs emitted through loguru."""
    records = []
    handler_id = logger.add(
        lambda message: records.append(
            (message.record["level"].name, message.record["message"])
        ),
        level="DEBUG",
    )
    yield records
    logger.remove(handler_id)
