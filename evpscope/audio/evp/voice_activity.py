"""
Per-frame voice activity classification.

A frame is scored as the sum of four binary voice cues:

=====================  ======  =============================================
Cue                    Weight  Condition
=====================  ======  =============================================
Voice band energy      0.3     85-3400 Hz band energy above voice threshold
Harmonic pattern       0.3     A peak in 85-500 Hz with >= 3 harmonics
Formants               0.2     F1 peak in 200-1000 Hz and F2 in 800-2800 Hz
Feature ranges         0.2     centroid, zcr and flatness all voice-like
=====================  ======  =============================================

and is voice-like when the score reaches the sensitivity.
"""

import logging
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from ..spectral.features import SpectralFeatures
from ..spectral.transform import SpectralTransformStage
from ..spectral.utils.signal_processing import band_energy_db
from .config import DetectionConfig

logger = logging.getLogger(__name__)

VOICE_FREQ_MIN = 85.0
VOICE_FREQ_MAX = 3400.0
FUNDAMENTAL_FREQ_MAX = 500.0
FORMANT_F1_RANGE: Tuple[float, float] = (200.0, 1000.0)
FORMANT_F2_RANGE: Tuple[float, float] = (800.0, 2800.0)

ENERGY_WEIGHT = 0.3
HARMONIC_WEIGHT = 0.3
FORMANT_WEIGHT = 0.2
FEATURE_WEIGHT = 0.2


@dataclass(frozen=True)
class VoiceActivityResult:
    """Score and individual cues behind one voice decision."""

    score: float
    is_voice: bool
    band_energy_db: float
    has_voice_energy: bool
    has_harmonic_pattern: bool
    has_formants: bool
    has_voice_features: bool


class VoiceActivityClassifier:
    """
    Heuristic voice-likelihood scorer for single spectral frames.

    Peak and harmonic searches go through the transform stage so bin
    geometry and the decibel floor always match the frame being scored.
    """

    def __init__(self, transform: SpectralTransformStage):
        self._transform = transform

    def voice_band_energy(self, spectrum_db: np.ndarray) -> float:
        return band_energy_db(
            spectrum_db,
            VOICE_FREQ_MIN,
            VOICE_FREQ_MAX,
            self._transform.sample_rate,
            self._transform.fft_size,
        )

    def has_harmonic_pattern(self, spectrum_db: np.ndarray) -> bool:
        """
        Look for the harmonic structure of a voiced sound.

        Needs at least three peaks above -40 dB (5-bin separation). Any peak
        between 85 and 500 Hz whose first five harmonics include at least
        three with energy counts as a harmonic series.
        """
        peaks = self._transform.find_peaks(-40.0, 5, spectrum=spectrum_db)
        if len(peaks) < 3:
            return False

        for peak in peaks:
            if not VOICE_FREQ_MIN <= peak.frequency <= FUNDAMENTAL_FREQ_MAX:
                continue
            harmonics = self._transform.detect_harmonics(
                peak.frequency, 5, spectrum=spectrum_db
            )
            if len(harmonics) >= 3:
                return True

        return False

    def has_formants(self, spectrum_db: np.ndarray) -> bool:
        peaks = self._transform.find_peaks(-30.0, 20, spectrum=spectrum_db)

        has_f1 = any(
            FORMANT_F1_RANGE[0] <= p.frequency <= FORMANT_F1_RANGE[1] for p in peaks
        )
        has_f2 = any(
            FORMANT_F2_RANGE[0] <= p.frequency <= FORMANT_F2_RANGE[1] for p in peaks
        )
        return has_f1 and has_f2

    @staticmethod
    def has_voice_features(features: SpectralFeatures) -> bool:
        return (
            200.0 < features.centroid < 2000.0
            and 0.01 < features.zcr < 0.1
            and features.flatness < 0.5
        )

    def evaluate(
        self,
        spectrum_db: np.ndarray,
        features: SpectralFeatures,
        config: DetectionConfig,
    ) -> VoiceActivityResult:
        """
        Score a frame and report every cue.

        Args:
            spectrum_db: Decibel spectrum of the frame.
            features: Features of the same frame.
            config: Active configuration (voice threshold and sensitivity).

        Returns:
            VoiceActivityResult: Score, decision and cue breakdown.
        """
        energy_db = self.voice_band_energy(spectrum_db)
        has_energy = energy_db > config.voice_threshold
        has_pattern = self.has_harmonic_pattern(spectrum_db)
        has_formants = self.has_formants(spectrum_db)
        has_features = self.has_voice_features(features)

        score = (
            (ENERGY_WEIGHT if has_energy else 0.0)
            + (HARMONIC_WEIGHT if has_pattern else 0.0)
            + (FORMANT_WEIGHT if has_formants else 0.0)
            + (FEATURE_WEIGHT if has_features else 0.0)
        )
        # Weights are tenths; rounding keeps threshold comparisons exact
        score = round(score, 10)

        result = VoiceActivityResult(
            score=score,
            is_voice=score >= config.sensitivity,
            band_energy_db=energy_db,
            has_voice_energy=has_energy,
            has_harmonic_pattern=has_pattern,
            has_formants=has_formants,
            has_voice_features=has_features,
        )

        logger.debug(
            f"Voice score={score:.2f} (energy={has_energy}, harmonics={has_pattern}, "
            f"formants={has_formants}, features={has_features}) -> {result.is_voice}"
        )
        return result

    def is_voice(
        self,
        spectrum_db: np.ndarray,
        features: SpectralFeatures,
        config: DetectionConfig,
    ) -> bool:
        return self.evaluate(spectrum_db, features, config).is_voice
