"""
Spectral analysis utilities.

This package provides the signal processing helpers shared by the feature
extractor and the classifiers.
"""

from .signal_processing import (
    SpectralPeak,
    band_energy_db,
    bin_of_frequency,
    calculate_zero_crossing_rate,
    create_mel_filter_bank,
    db_to_magnitude,
    detect_harmonics,
    find_spectral_peaks,
    frequency_of_bin,
)

__all__ = [
    "SpectralPeak",
    "band_energy_db",
    "bin_of_frequency",
    "calculate_zero_crossing_rate",
    "create_mel_filter_bank",
    "db_to_magnitude",
    "detect_harmonics",
    "find_spectral_peaks",
    "frequency_of_bin",
]
