"""
Signal processing utilities for spectral analysis.

This module provides the low-level building blocks shared by the feature
extractor, the voice activity classifier and the EVP classifier: decibel
conversion, band energy, peak picking, harmonic search, mel filter banks
and zero crossing rate.

All functions operate on decibel magnitude spectra of length
``fft_size // 2`` unless stated otherwise and never raise on silent or
degenerate input.
"""

import logging
from typing import List, NamedTuple, Optional, Tuple

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view
from scipy.fft import dct

logger = logging.getLogger(__name__)

EPSILON = 1e-10


class SpectralPeak(NamedTuple):
    """A local maximum in a decibel spectrum."""

    frequency: float
    amplitude: float
    bin: int


def frequency_of_bin(bin_index: float, sample_rate: float, fft_size: int) -> float:
    """Centre frequency in Hz of an FFT bin."""
    return bin_index * sample_rate / fft_size


def bin_of_frequency(frequency: float, sample_rate: float, fft_size: int) -> int:
    """FFT bin containing ``frequency`` (floor)."""
    return int(np.floor(frequency * fft_size / sample_rate))


def db_to_magnitude(spectrum_db: np.ndarray) -> np.ndarray:
    """
    Convert decibel levels to linear magnitudes.

    Args:
        spectrum_db: Decibel spectrum.

    Returns:
        np.ndarray: ``10 ** (dB / 20)`` for every bin.
    """
    return np.power(10.0, np.asarray(spectrum_db, dtype=np.float64) / 20.0)


def band_energy_db(
    spectrum_db: np.ndarray,
    min_freq: float,
    max_freq: float,
    sample_rate: float,
    fft_size: int,
) -> float:
    """
    Calculate the summed linear magnitude of a frequency band, in dB.

    The band spans ``bin_of_frequency(min_freq)`` to
    ``bin_of_frequency(max_freq)`` inclusive, truncated to the spectrum.

    Args:
        spectrum_db: Decibel spectrum.
        min_freq: Lower band edge in Hz.
        max_freq: Upper band edge in Hz.
        sample_rate: Sample rate in Hz.
        fft_size: FFT size the spectrum was computed with.

    Returns:
        float: ``20 * log10(sum(10 ** (dB / 20)) + 1e-10)``.
    """
    min_bin = max(0, bin_of_frequency(min_freq, sample_rate, fft_size))
    max_bin = min(len(spectrum_db) - 1, bin_of_frequency(max_freq, sample_rate, fft_size))

    if max_bin < min_bin:
        energy = 0.0
    else:
        energy = float(np.sum(db_to_magnitude(spectrum_db[min_bin : max_bin + 1])))

    return float(20.0 * np.log10(energy + EPSILON))


def find_spectral_peaks(
    spectrum_db: np.ndarray,
    sample_rate: float,
    fft_size: int,
    threshold: float = -30.0,
    min_distance: int = 10,
) -> List[SpectralPeak]:
    """
    Find local maxima in a decibel spectrum.

    A bin ``i`` is a peak when it lies in ``[min_distance, N - min_distance)``,
    exceeds ``threshold`` and is strictly greater than every other bin within
    ``min_distance`` bins on either side.

    Args:
        spectrum_db: Decibel spectrum.
        sample_rate: Sample rate in Hz.
        fft_size: FFT size the spectrum was computed with.
        threshold: Minimum peak level in dB.
        min_distance: Neighbourhood half-width in bins.

    Returns:
        List[SpectralPeak]: Peaks in ascending bin order.
    """
    spectrum = np.asarray(spectrum_db, dtype=np.float64)
    span = 2 * min_distance + 1

    if min_distance < 0 or len(spectrum) < span:
        return []

    windows = sliding_window_view(spectrum, span)
    centres = windows[:, min_distance]
    neighbours = np.delete(windows, min_distance, axis=1)

    if neighbours.shape[1] > 0:
        is_peak = (centres > threshold) & (centres > neighbours.max(axis=1))
    else:
        is_peak = centres > threshold

    peak_bins = np.nonzero(is_peak)[0] + min_distance

    return [
        SpectralPeak(
            frequency=frequency_of_bin(int(b), sample_rate, fft_size),
            amplitude=float(spectrum[b]),
            bin=int(b),
        )
        for b in peak_bins
    ]


def detect_harmonics(
    spectrum_db: np.ndarray,
    fundamental: float,
    sample_rate: float,
    fft_size: int,
    level_threshold: float,
    max_harmonic: int = 10,
) -> List[float]:
    """
    List the harmonics of ``fundamental`` that carry energy.

    Harmonic ``n`` (``n = 1..max_harmonic``, so the fundamental itself is
    included) counts when its bin lies inside the spectrum and its level is
    above ``level_threshold``.

    Returns:
        List[float]: Frequencies in Hz of the detected harmonics.
    """
    harmonics = []
    for n in range(1, max_harmonic + 1):
        harmonic_freq = fundamental * n
        bin_index = bin_of_frequency(harmonic_freq, sample_rate, fft_size)
        if 0 <= bin_index < len(spectrum_db):
            if spectrum_db[bin_index] > level_threshold:
                harmonics.append(harmonic_freq)
    return harmonics


def calculate_zero_crossing_rate(samples: np.ndarray) -> float:
    """
    Calculate the zero crossing rate of a time-domain block.

    A crossing is counted between adjacent samples when one is ``>= 0`` and
    the other is ``< 0``.

    Args:
        samples: Time-domain samples.

    Returns:
        float: Crossings per adjacent sample pair (0.0 for fewer than two samples).
    """
    data = np.asarray(samples, dtype=np.float64)
    if len(data) <= 1:
        return 0.0

    non_negative = data >= 0
    crossings = np.count_nonzero(non_negative[1:] != non_negative[:-1])
    return float(crossings / (len(data) - 1))


def hz_to_mel(hz):
    return 2595.0 * np.log10(1.0 + np.asarray(hz, dtype=np.float64) / 700.0)


def mel_to_hz(mel):
    return 700.0 * (10.0 ** (np.asarray(mel, dtype=np.float64) / 2595.0) - 1.0)


def create_mel_filter_bank(
    num_bins: int, sample_rate: float, num_filters: int = 26
) -> np.ndarray:
    """
    Create a triangular mel filter bank over ``num_bins`` spectrum bins.

    Filter centres are spaced evenly on the mel scale between 0 and the
    Nyquist frequency (excluding both ends). Every filter has the same
    half-width of ``num_bins // num_filters`` bins.

    Args:
        num_bins: Number of spectrum bins (``fft_size // 2``).
        sample_rate: Sample rate in Hz.
        num_filters: Number of mel filters.

    Returns:
        np.ndarray: Filter matrix of shape ``(num_filters, num_bins)``.
    """
    nyquist = sample_rate / 2.0
    mel_max = float(hz_to_mel(nyquist))

    mel_centres = (np.arange(num_filters) + 1) * mel_max / (num_filters + 1)
    hz_centres = mel_to_hz(mel_centres)
    bin_centres = np.floor(hz_centres / (nyquist / num_bins))

    width = max(1, num_bins // num_filters)
    bins = np.arange(num_bins)

    distance = np.abs(bins[np.newaxis, :] - bin_centres[:, np.newaxis])
    return np.maximum(0.0, 1.0 - distance / width)


def cepstral_coefficients(
    log_energies: np.ndarray, num_coefficients: int
) -> np.ndarray:
    """
    Unnormalised DCT-II of log filter energies.

    ``c_i = sum_j S_j * cos(pi * i * (j + 0.5) / n)`` for the first
    ``num_coefficients`` values of ``i``.
    """
    # scipy's unnormalised type-II DCT carries an extra factor of two
    coefficients = dct(np.asarray(log_energies, dtype=np.float64), type=2) / 2.0
    return coefficients[:num_coefficients]


def peak_and_rms(samples: np.ndarray) -> Tuple[float, float]:
    """Peak absolute amplitude and RMS of a time-domain block."""
    data = np.asarray(samples, dtype=np.float64)
    if len(data) == 0:
        return 0.0, 0.0
    return float(np.max(np.abs(data))), float(np.sqrt(np.mean(data**2)))


def strongest_peak(peaks: List[SpectralPeak]) -> Optional[SpectralPeak]:
    """Return the peak with the highest amplitude, or None."""
    if not peaks:
        return None
    return max(peaks, key=lambda peak: peak.amplitude)
