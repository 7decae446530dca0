"""
Input conditioning applied before spectral analysis.

Mirrors the gain -> band-pass -> noise-gate chain that sits in front of the
analyser: a Butterworth band-pass restricts the block to the configured
frequency range and a downward expander attenuates blocks whose level falls
below the noise gate threshold.
"""

import logging
from typing import Optional

import numpy as np
from scipy import signal

from .utils.signal_processing import EPSILON

logger = logging.getLogger(__name__)


class InputConditioner:
    """
    Band-pass filter and noise gate for time-domain blocks.

    Each block is filtered independently with zero-phase filtering, since
    consecutive blocks handed to the analyser overlap.
    """

    def __init__(
        self,
        sample_rate: float,
        min_frequency: float = 100.0,
        max_frequency: float = 4000.0,
        noise_gate_threshold: float = -50.0,
        gate_ratio: float = 10.0,
        filter_order: int = 2,
        input_gain: float = 1.0,
    ):
        """
        Initialize the conditioner.

        Args:
            sample_rate (float): Sample rate in Hz.
            min_frequency (float): Lower band-pass edge in Hz.
            max_frequency (float): Upper band-pass edge in Hz.
            noise_gate_threshold (float): Gate threshold in dBFS (RMS).
            gate_ratio (float): Expansion ratio below the threshold.
            filter_order (int): Butterworth order per band edge.
            input_gain (float): Linear gain applied before filtering.

        Raises:
            ValueError: If the band is empty or reaches the Nyquist frequency.
        """
        if gate_ratio < 1.0:
            raise ValueError("Gate ratio must be at least 1.0")

        self.sample_rate = float(sample_rate)
        self.noise_gate_threshold = float(noise_gate_threshold)
        self.gate_ratio = float(gate_ratio)
        self.filter_order = int(filter_order)
        self.input_gain = float(input_gain)

        self.min_frequency = 0.0
        self.max_frequency = 0.0
        self._sos: Optional[np.ndarray] = None
        self.set_band(min_frequency, max_frequency)

    def set_band(self, min_frequency: float, max_frequency: float) -> None:
        """
        Redesign the band-pass filter.

        Raises:
            ValueError: If ``min_frequency >= max_frequency`` or the band
                does not fit strictly between 0 Hz and Nyquist.
        """
        nyquist = self.sample_rate / 2.0
        if min_frequency >= max_frequency:
            raise ValueError("Minimum frequency must be less than maximum frequency")
        if min_frequency <= 0 or max_frequency >= nyquist:
            raise ValueError(
                f"Band-pass edges must lie strictly between 0 and {nyquist}Hz"
            )

        self.min_frequency = float(min_frequency)
        self.max_frequency = float(max_frequency)
        self._sos = signal.butter(
            self.filter_order,
            [self.min_frequency, self.max_frequency],
            btype="bandpass",
            fs=self.sample_rate,
            output="sos",
        )
        logger.debug(
            f"Band-pass designed: {self.min_frequency}-{self.max_frequency}Hz, "
            f"order={self.filter_order}"
        )

    def set_noise_gate(self, threshold_db: float) -> None:
        self.noise_gate_threshold = float(threshold_db)

    def gate_gain(self, block: np.ndarray) -> float:
        """
        Linear gain the noise gate applies to a block.

        Above the threshold the gain is 1. Below it, every dB under the
        threshold is expanded to ``gate_ratio`` dB.
        """
        if len(block) == 0:
            return 1.0

        rms = float(np.sqrt(np.mean(block**2)))
        level_db = 20.0 * np.log10(rms + EPSILON)
        if level_db >= self.noise_gate_threshold:
            return 1.0

        attenuation_db = (level_db - self.noise_gate_threshold) * (self.gate_ratio - 1.0)
        return float(10.0 ** (attenuation_db / 20.0))

    def process(self, block: Optional[np.ndarray]) -> Optional[np.ndarray]:
        """
        Condition a block of samples.

        Args:
            block: Time-domain samples, or None when no audio is available.

        Returns:
            Optional[np.ndarray]: Conditioned samples, or None if input was None.
        """
        if block is None:
            return None

        data = np.asarray(block, dtype=np.float64) * self.input_gain

        # sosfiltfilt needs a minimum amount of padding
        min_length = 3 * (2 * len(self._sos) + 1)
        if len(data) > min_length:
            data = signal.sosfiltfilt(self._sos, data)
        elif len(data) > 0:
            data = signal.sosfilt(self._sos, data)

        return data * self.gate_gain(data)
