"""
EVP segment classification.

Once the accumulator holds a full run of voice-active spectra, the run is
averaged and scored:

- SNR: strongest bin minus the median bin of the averaged spectrum
- Spectral anomaly: isolated spikes, or a mid band (500-2000 Hz) standing
  well above both its neighbours
- Confidence: SNR, voice-like features and the anomaly flag, capped at 1.0

Segments below the classification threshold are dropped; the rest are
assigned a tier (A, B, C or Unknown) and returned as EVPDetection records.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

import numpy as np

from ..spectral.features import SpectralFeatures
from ..spectral.transform import SpectralTransformStage
from ..spectral.utils.signal_processing import band_energy_db, strongest_peak
from .config import DetectionConfig
from .types import EVPClass, EVPDetection

logger = logging.getLogger(__name__)

SPIKE_THRESHOLD_DB = 20.0
BAND_DOMINANCE_DB = 10.0
ANOMALY_BAND_BONUS = 5
ANOMALY_MIN_SCORE = 5

LOW_BAND = (0.0, 500.0)
MID_BAND = (500.0, 2000.0)
HIGH_BAND = (2000.0, 8000.0)


@dataclass(frozen=True)
class EVPAssessment:
    """
    Scores for one accumulated segment, whether or not it is reported.
    """

    snr: float
    anomaly_score: int
    has_anomaly: bool
    confidence: float
    classification: EVPClass
    average_spectrum: np.ndarray

    def passes(self, threshold: float) -> bool:
        return self.confidence >= threshold


class EVPClassifier:
    """
    Score accumulated spectra and build detection records.
    """

    def __init__(
        self,
        transform: SpectralTransformStage,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the classifier.

        Args:
            transform: Stage whose bin geometry the spectra share.
            clock: Wall-clock source in seconds, used for timestamps.
        """
        self._transform = transform
        self._clock = clock

    @staticmethod
    def average_spectrum(spectra: Sequence[np.ndarray]) -> np.ndarray:
        if len(spectra) == 0:
            return np.zeros(0)
        return np.mean(np.vstack(spectra), axis=0)

    @staticmethod
    def signal_to_noise_ratio(spectrum: np.ndarray) -> float:
        """
        Peak level minus the median level, in dB.

        The median is the element at index ``floor(N * 0.5)`` of the
        ascending sort.
        """
        if len(spectrum) == 0:
            return 0.0
        ordered = np.sort(spectrum)
        noise_floor = ordered[int(np.floor(len(ordered) * 0.5))]
        return float(np.max(spectrum) - noise_floor)

    def anomaly_score(self, spectrum: np.ndarray) -> int:
        """
        Count anomalous spectral structure.

        Every bin more than 20 dB above the mean of its two neighbours adds
        one. A mid band more than 10 dB above both the low and the high band
        adds five.
        """
        score = 0

        if len(spectrum) >= 3:
            neighbour_mean = (spectrum[:-2] + spectrum[2:]) / 2.0
            score += int(np.count_nonzero(spectrum[1:-1] - neighbour_mean > SPIKE_THRESHOLD_DB))

        sample_rate = self._transform.sample_rate
        fft_size = self._transform.fft_size
        low = band_energy_db(spectrum, *LOW_BAND, sample_rate, fft_size)
        mid = band_energy_db(spectrum, *MID_BAND, sample_rate, fft_size)
        high = band_energy_db(spectrum, *HIGH_BAND, sample_rate, fft_size)

        if mid > low + BAND_DOMINANCE_DB and mid > high + BAND_DOMINANCE_DB:
            score += ANOMALY_BAND_BONUS

        return score

    @staticmethod
    def confidence(snr: float, features: SpectralFeatures, has_anomaly: bool) -> float:
        confidence = 0.0

        if snr > 10:
            confidence += 0.3
        elif snr > 5:
            confidence += 0.15

        if 300 < features.centroid < 1500:
            confidence += 0.2
        if 0.02 < features.zcr < 0.08:
            confidence += 0.15
        if features.flatness < 0.3:
            confidence += 0.15

        if has_anomaly:
            confidence += 0.2

        return min(1.0, round(confidence, 10))

    @staticmethod
    def classify_tier(confidence: float, snr: float) -> EVPClass:
        """
        Map confidence and SNR to a tier. All comparisons are strict.
        """
        if confidence > 0.8 and snr > 20:
            return EVPClass.CLASS_A
        elif confidence > 0.6 and snr > 10:
            return EVPClass.CLASS_B
        elif confidence > 0.4 and snr > 5:
            return EVPClass.CLASS_C
        else:
            return EVPClass.UNKNOWN

    def assess(
        self, spectra: Sequence[np.ndarray], features: SpectralFeatures
    ) -> EVPAssessment:
        """
        Score a run of spectra.

        Args:
            spectra: Buffered decibel spectra of equal length.
            features: Features of the frame that completed the run.

        Returns:
            EVPAssessment: All intermediate scores and the tier.
        """
        average = self.average_spectrum(spectra)
        snr = self.signal_to_noise_ratio(average)
        anomaly = self.anomaly_score(average)
        has_anomaly = anomaly > ANOMALY_MIN_SCORE
        confidence = self.confidence(snr, features, has_anomaly)

        return EVPAssessment(
            snr=snr,
            anomaly_score=anomaly,
            has_anomaly=has_anomaly,
            confidence=confidence,
            classification=self.classify_tier(confidence, snr),
            average_spectrum=average,
        )

    def dominant_frequency(self, spectrum: np.ndarray) -> float:
        peak = strongest_peak(self._transform.find_peaks(-30.0, 10, spectrum=spectrum))
        return peak.frequency if peak is not None else 0.0

    def classify(
        self,
        spectra: List[np.ndarray],
        features: SpectralFeatures,
        config: DetectionConfig,
    ) -> Optional[EVPDetection]:
        """
        Classify a run of spectra into a detection record.

        Args:
            spectra: Buffered decibel spectra.
            features: Features of the frame that completed the run.
            config: Active configuration (classification threshold).

        Returns:
            Optional[EVPDetection]: Detection, or None when the confidence is
                below the classification threshold or there are no spectra.
        """
        if not spectra:
            return None

        assessment = self.assess(spectra, features)

        logger.debug(
            f"Segment assessed: snr={assessment.snr:.1f}dB, "
            f"anomaly={assessment.anomaly_score}, "
            f"confidence={assessment.confidence:.2f}, "
            f"class={assessment.classification.class_id}"
        )

        if not assessment.passes(config.classification_threshold):
            return None

        amplitude = float(max(np.max(s) for s in spectra))
        duration = len(spectra) * (self._transform.fft_size / self._transform.sample_rate)

        return EVPDetection(
            timestamp_ms=self._clock() * 1000.0,
            duration_ms=duration * 1000.0,
            confidence=assessment.confidence,
            classification=assessment.classification,
            dominant_frequency=self.dominant_frequency(assessment.average_spectrum),
            amplitude=amplitude,
            features=features,
            signal_to_noise_ratio=assessment.snr,
        )
