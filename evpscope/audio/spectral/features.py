"""
Spectral feature extraction.

Computes the scalar and vector descriptors used by the voice activity and
EVP classifiers from a single spectral frame:

- centroid, spread: magnitude-weighted mean and deviation of frequency
- flux: level variation (single-frame proxy, or inter-frame when enabled)
- rolloff: frequency below which 85% of the magnitude lies
- flatness: geometric over arithmetic mean of magnitudes
- energy: sum of squared magnitudes
- zcr: zero crossing rate of the time-domain block
- mfcc: simplified mel-frequency cepstral coefficients

Magnitudes are linear values recovered from the decibel spectrum with
``m = 10 ** (dB / 20)``. The MFCC is a lightweight approximation with no
pre-emphasis or liftering, adequate for heuristics but not for ASR.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import numpy as np

from .transform import SpectralFrame
from .utils.signal_processing import (
    EPSILON,
    calculate_zero_crossing_rate,
    cepstral_coefficients,
    create_mel_filter_bank,
    db_to_magnitude,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SpectralFeatures:
    """
    Descriptors derived from one spectral frame.
    """

    centroid: float = 0.0
    spread: float = 0.0
    flux: float = 0.0
    rolloff: float = 0.0
    flatness: float = 0.0
    energy: float = 0.0
    zcr: float = 0.0
    mfcc: Tuple[float, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert features to dictionary format.

        Returns:
            Dict[str, Any]: Dictionary representation of the features.
        """
        return {
            "centroid": self.centroid,
            "spread": self.spread,
            "flux": self.flux,
            "rolloff": self.rolloff,
            "flatness": self.flatness,
            "energy": self.energy,
            "zcr": self.zcr,
            "mfcc": list(self.mfcc),
        }


class FeatureExtractor:
    """
    Extract SpectralFeatures from spectral frames.

    The mel filter bank is built lazily and cached for the current bin
    count and sample rate.
    """

    def __init__(
        self,
        sample_rate: float = 44100.0,
        rolloff_threshold: float = 0.85,
        num_mel_filters: int = 26,
        num_mfcc: int = 13,
        use_interframe_flux: bool = False,
    ):
        """
        Initialize the feature extractor.

        Args:
            sample_rate (float): Sample rate in Hz.
            rolloff_threshold (float): Fraction of total magnitude for rolloff.
            num_mel_filters (int): Number of triangular mel filters.
            num_mfcc (int): Number of cepstral coefficients to keep.
            use_interframe_flux (bool): Compute flux against the previous
                frame instead of the single-frame proxy.

        Raises:
            ValueError: If any parameter is out of range.
        """
        if sample_rate <= 0:
            raise ValueError("Sample rate must be positive")
        if not 0.0 < rolloff_threshold <= 1.0:
            raise ValueError("Rolloff threshold must be in (0, 1]")
        if num_mel_filters <= 0:
            raise ValueError("Number of mel filters must be positive")
        if not 0 < num_mfcc <= num_mel_filters:
            raise ValueError("Number of MFCCs must be between 1 and the filter count")

        self.sample_rate = float(sample_rate)
        self.rolloff_threshold = rolloff_threshold
        self.num_mel_filters = num_mel_filters
        self.num_mfcc = num_mfcc
        self.use_interframe_flux = use_interframe_flux

        self._filter_bank: Optional[np.ndarray] = None
        self._filter_bank_key: Optional[Tuple[int, float]] = None
        self._previous_spectrum: Optional[np.ndarray] = None

    def reset(self) -> None:
        """Forget the previous frame used for inter-frame flux."""
        self._previous_spectrum = None

    def extract(self, frame: SpectralFrame, fft_size: Optional[int] = None) -> SpectralFeatures:
        """
        Compute all features for one frame.

        Args:
            frame: Spectral frame to describe.
            fft_size: FFT size of the frame. Defaults to ``2 * bins``.

        Returns:
            SpectralFeatures: Feature set for the frame.
        """
        spectrum_db = np.asarray(frame.magnitudes_db, dtype=np.float64)
        num_bins = len(spectrum_db)
        fft_size = fft_size or 2 * num_bins

        if num_bins == 0:
            return SpectralFeatures(
                zcr=calculate_zero_crossing_rate(frame.time_domain),
                mfcc=tuple([0.0] * self.num_mfcc),
            )

        magnitudes = db_to_magnitude(spectrum_db)
        freqs = np.arange(num_bins) * self.sample_rate / fft_size

        centroid = self.spectral_centroid(magnitudes, freqs)
        features = SpectralFeatures(
            centroid=centroid,
            spread=self.spectral_spread(magnitudes, freqs, centroid),
            flux=self.spectral_flux(spectrum_db),
            rolloff=self.spectral_rolloff(magnitudes, freqs),
            flatness=self.spectral_flatness(magnitudes),
            energy=float(np.sum(magnitudes**2)),
            zcr=calculate_zero_crossing_rate(frame.time_domain),
            mfcc=tuple(float(c) for c in self.mfcc(magnitudes)),
        )

        logger.debug(
            f"Features: centroid={features.centroid:.1f}Hz, "
            f"flatness={features.flatness:.3f}, zcr={features.zcr:.4f}"
        )
        return features

    @staticmethod
    def spectral_centroid(magnitudes: np.ndarray, freqs: np.ndarray) -> float:
        total = np.sum(magnitudes)
        if total <= 0:
            return 0.0
        return float(np.sum(freqs * magnitudes) / total)

    @staticmethod
    def spectral_spread(
        magnitudes: np.ndarray, freqs: np.ndarray, centroid: float
    ) -> float:
        total = np.sum(magnitudes)
        if total <= 0:
            return 0.0
        return float(np.sqrt(np.sum(((freqs - centroid) ** 2) * magnitudes) / total))

    def spectral_flux(self, spectrum_db: np.ndarray) -> float:
        """
        Level variation of the spectrum.

        By default this is the single-frame proxy
        ``sqrt(sum((dB[i] - dB[i-1]) ** 2))`` across adjacent bins. With
        ``use_interframe_flux`` it compares each bin with the previous frame
        instead, returning 0.0 for the first frame or after a size change.
        """
        if not self.use_interframe_flux:
            return float(np.sqrt(np.sum(np.diff(spectrum_db) ** 2)))

        previous = self._previous_spectrum
        self._previous_spectrum = spectrum_db.copy()
        if previous is None or len(previous) != len(spectrum_db):
            return 0.0
        return float(np.sqrt(np.sum((spectrum_db - previous) ** 2)))

    def spectral_rolloff(self, magnitudes: np.ndarray, freqs: np.ndarray) -> float:
        """
        Lowest bin frequency where the cumulative magnitude reaches the
        rolloff fraction of the total; Nyquist if it never does.
        """
        cumulative = np.cumsum(magnitudes)
        target = cumulative[-1] * self.rolloff_threshold
        reached = np.nonzero(cumulative >= target)[0]
        if len(reached) == 0 or cumulative[-1] <= 0:
            return self.sample_rate / 2.0
        return float(freqs[reached[0]])

    @staticmethod
    def spectral_flatness(magnitudes: np.ndarray) -> float:
        positive = magnitudes[magnitudes > 0]
        if len(positive) == 0:
            return 0.0

        geometric_mean = np.exp(np.mean(np.log(positive)))
        arithmetic_mean = np.mean(positive)
        if arithmetic_mean <= 0:
            return 0.0
        return float(geometric_mean / arithmetic_mean)

    def mfcc(self, magnitudes: np.ndarray) -> np.ndarray:
        """
        Simplified MFCC: mel filter energies, natural log, DCT-II.

        Args:
            magnitudes: Linear magnitude spectrum.

        Returns:
            np.ndarray: First ``num_mfcc`` cepstral coefficients.
        """
        filter_bank = self._get_filter_bank(len(magnitudes))
        mel_energies = filter_bank @ magnitudes
        log_energies = np.log(mel_energies + EPSILON)
        return cepstral_coefficients(log_energies, self.num_mfcc)

    def _get_filter_bank(self, num_bins: int) -> np.ndarray:
        key = (num_bins, self.sample_rate)
        if self._filter_bank is None or self._filter_bank_key != key:
            self._filter_bank = create_mel_filter_bank(
                num_bins, self.sample_rate, self.num_mel_filters
            )
            self._filter_bank_key = key
            logger.debug(
                f"Built mel filter bank: {self.num_mel_filters} filters x {num_bins} bins"
            )
        return self._filter_bank

    @property
    def mel_filter_bank(self) -> Optional[np.ndarray]:
        return self._filter_bank

