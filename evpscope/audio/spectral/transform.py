"""
Spectral transform stage.

Turns the most recent block of time-domain samples into a decibel magnitude
spectrum, the way a browser analyser node does: window, real FFT,
normalisation by the FFT size, exponential smoothing across blocks,
conversion to decibels and clipping to a fixed display range.

It also keeps a bounded spectrogram history and offers the bin/frequency
conversions and peak/harmonic queries the classifiers build on.
"""

import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Optional, Union

import numpy as np
from scipy.fft import rfft

from .utils.signal_processing import (
    EPSILON,
    SpectralPeak,
    bin_of_frequency,
    detect_harmonics,
    find_spectral_peaks,
    frequency_of_bin,
    peak_and_rms,
)
from .windows import WindowFunctionLibrary, WindowType

logger = logging.getLogger(__name__)

SPECTROGRAM_MAX_FRAMES = 1000


@dataclass(frozen=True)
class SpectralFrame:
    """
    One tick of spectral data.

    Attributes:
        magnitudes_db: Decibel spectrum of length ``fft_size // 2``.
        time_domain: Raw (unwindowed) samples of length ``fft_size``.
        peak: Peak absolute sample value.
        rms: Root mean square of the samples.
    """

    magnitudes_db: np.ndarray
    time_domain: np.ndarray
    peak: float
    rms: float

    def __post_init__(self):
        self.magnitudes_db.setflags(write=False)
        self.time_domain.setflags(write=False)


class SpectralTransformStage:
    """
    Fixed-size FFT stage producing decibel spectra per tick.

    Changing ``fft_size`` or the window at runtime regenerates the window
    coefficients and discards the smoothing state and the spectrogram,
    since their bin layout no longer applies.
    """

    def __init__(
        self,
        fft_size: int = 4096,
        sample_rate: float = 44100.0,
        window_function: Union[str, WindowType] = WindowType.HANN,
        min_decibels: float = -90.0,
        max_decibels: float = -10.0,
        smoothing_time_constant: float = 0.8,
    ):
        """
        Initialize the transform stage.

        Args:
            fft_size (int): Transform size. Must be positive.
            sample_rate (float): Sample rate of the incoming audio in Hz.
            window_function: Analysis window name or WindowType.
            min_decibels (float): Lower clip level of the spectrum.
            max_decibels (float): Upper clip level of the spectrum.
            smoothing_time_constant (float): Weight of the previous magnitude
                in the exponential average, in ``[0, 1)``.

        Raises:
            ValueError: If fft_size or sample_rate is not positive.
        """
        if fft_size <= 0:
            raise ValueError("FFT size must be positive")
        if sample_rate <= 0:
            raise ValueError("Sample rate must be positive")

        self._fft_size = int(fft_size)
        self._sample_rate = float(sample_rate)
        self._window_type = WindowType.parse(window_function)
        self._min_db = float(min_decibels)
        self._max_db = float(max_decibels)
        self._smoothing = float(smoothing_time_constant)

        self._windows = WindowFunctionLibrary(self._fft_size)
        self._spectrogram: Deque[np.ndarray] = deque(maxlen=SPECTROGRAM_MAX_FRAMES)
        self._smoothed_magnitude: Optional[np.ndarray] = None
        self._current: Optional[SpectralFrame] = None
        self._is_disposed = False

        self._allocate_buffers()

        logger.info(
            f"Spectral transform stage ready: fft_size={self._fft_size}, "
            f"sample_rate={self._sample_rate}Hz, window={self._window_type.value}"
        )

    @property
    def fft_size(self) -> int:
        return self._fft_size

    @property
    def sample_rate(self) -> float:
        return self._sample_rate

    @property
    def frequency_bin_count(self) -> int:
        """Number of bins in each spectrum (``fft_size // 2``)."""
        return self._fft_size // 2

    @property
    def window_type(self) -> WindowType:
        return self._window_type

    @property
    def min_decibels(self) -> float:
        return self._min_db

    @property
    def max_decibels(self) -> float:
        return self._max_db

    @property
    def current_frame(self) -> Optional[SpectralFrame]:
        """Frame produced by the most recent call to ``process``."""
        return self._current

    @property
    def spectrogram(self) -> np.ndarray:
        """
        Copy of the spectrogram history.

        Returns:
            np.ndarray: Array of shape ``(frames, fft_size // 2)``, oldest first.
        """
        if not self._spectrogram:
            return np.empty((0, self.frequency_bin_count))
        return np.vstack(self._spectrogram)

    @property
    def spectrogram_length(self) -> int:
        return len(self._spectrogram)

    @property
    def is_disposed(self) -> bool:
        return self._is_disposed

    def _allocate_buffers(self) -> None:
        self._smoothed_magnitude = np.zeros(self.frequency_bin_count)
        self._spectrogram.clear()
        self._current = None

    def process(self, samples: Optional[np.ndarray]) -> SpectralFrame:
        """
        Transform the latest block of samples into a spectral frame.

        The last ``fft_size`` samples are used; shorter input is zero-padded
        at the start. ``None`` is treated as a silent block.

        Args:
            samples: Time-domain samples (floats, nominally in [-1, 1]).

        Returns:
            SpectralFrame: The new frame, also appended to the spectrogram.

        Raises:
            RuntimeError: If the stage has been disposed.
        """
        if self._is_disposed:
            raise RuntimeError("Spectral transform stage has been disposed")

        block = self._prepare_block(samples)

        start_time = time.time()
        windowed = self._windows.apply(block, self._window_type)
        spectrum = rfft(windowed)
        magnitude = np.abs(spectrum[: self.frequency_bin_count]) / self._fft_size

        # Exponential smoothing across blocks
        tau = self._smoothing
        smoothed = tau * self._smoothed_magnitude + (1.0 - tau) * magnitude
        self._smoothed_magnitude = smoothed

        with np.errstate(divide="ignore"):
            magnitudes_db = 20.0 * np.log10(smoothed)
        magnitudes_db = np.clip(
            np.nan_to_num(magnitudes_db, nan=self._min_db, neginf=self._min_db),
            self._min_db,
            self._max_db,
        )

        peak, rms = peak_and_rms(block)
        frame = SpectralFrame(
            magnitudes_db=magnitudes_db,
            time_domain=block,
            peak=peak,
            rms=rms,
        )
        self._store(frame)

        logger.debug(
            f"Transformed block in {(time.time() - start_time) * 1000:.2f}ms "
            f"(peak={peak:.3f}, rms={rms:.4f})"
        )
        return frame

    def silent_frame(self) -> SpectralFrame:
        """
        Produce a frame for a tick with no audio available.

        The smoothing state decays as if a silent block had been processed.
        """
        return self.process(None)

    def _prepare_block(self, samples: Optional[np.ndarray]) -> np.ndarray:
        if samples is None:
            return np.zeros(self._fft_size)

        data = np.asarray(samples, dtype=np.float64).ravel()
        data = np.nan_to_num(data, nan=0.0, posinf=0.0, neginf=0.0)

        if len(data) >= self._fft_size:
            return data[-self._fft_size :].copy()

        block = np.zeros(self._fft_size)
        if len(data) > 0:
            block[-len(data) :] = data
        return block

    def _store(self, frame: SpectralFrame) -> None:
        self._current = frame
        self._spectrogram.append(frame.magnitudes_db)

    def frequency_of_bin(self, bin_index: float) -> float:
        return frequency_of_bin(bin_index, self._sample_rate, self._fft_size)

    def bin_of_frequency(self, frequency: float) -> int:
        return bin_of_frequency(frequency, self._sample_rate, self._fft_size)

    def find_peaks(
        self,
        threshold: float = -30.0,
        min_distance: int = 10,
        spectrum: Optional[np.ndarray] = None,
    ) -> List[SpectralPeak]:
        """
        Find local maxima in a spectrum.

        Args:
            threshold: Minimum peak level in dB.
            min_distance: Required separation in bins on either side.
            spectrum: Spectrum to search. Defaults to the current frame.

        Returns:
            List[SpectralPeak]: Peaks in ascending frequency order.
        """
        data = self._resolve_spectrum(spectrum)
        if data is None:
            return []
        return find_spectral_peaks(
            data, self._sample_rate, self._fft_size, threshold, min_distance
        )

    def detect_harmonics(
        self,
        fundamental: float,
        max_harmonic: int = 10,
        spectrum: Optional[np.ndarray] = None,
    ) -> List[float]:
        """
        List harmonics of ``fundamental`` whose level exceeds ``min_db + 20``.

        Args:
            fundamental: Candidate fundamental frequency in Hz.
            max_harmonic: Highest harmonic number checked.
            spectrum: Spectrum to search. Defaults to the current frame.

        Returns:
            List[float]: Detected harmonic frequencies in Hz.
        """
        data = self._resolve_spectrum(spectrum)
        if data is None:
            return []
        return detect_harmonics(
            data,
            fundamental,
            self._sample_rate,
            self._fft_size,
            level_threshold=self._min_db + 20.0,
            max_harmonic=max_harmonic,
        )

    def _resolve_spectrum(self, spectrum: Optional[np.ndarray]) -> Optional[np.ndarray]:
        if spectrum is not None:
            return np.asarray(spectrum, dtype=np.float64)
        if self._current is None:
            return None
        return self._current.magnitudes_db

    def update_config(
        self,
        fft_size: Optional[int] = None,
        window_function: Optional[Union[str, WindowType]] = None,
        min_decibels: Optional[float] = None,
        max_decibels: Optional[float] = None,
        smoothing_time_constant: Optional[float] = None,
        sample_rate: Optional[float] = None,
    ) -> None:
        """
        Update transform parameters.

        A new ``fft_size`` or ``sample_rate`` reallocates all buffers and
        regenerates the windows. A new window resets the smoothing state.
        Decibel range and smoothing changes apply from the next block.
        """
        reallocate = False

        if fft_size is not None and int(fft_size) != self._fft_size:
            if fft_size <= 0:
                raise ValueError("FFT size must be positive")
            self._fft_size = int(fft_size)
            self._windows.resize(self._fft_size)
            reallocate = True

        if sample_rate is not None and float(sample_rate) != self._sample_rate:
            if sample_rate <= 0:
                raise ValueError("Sample rate must be positive")
            self._sample_rate = float(sample_rate)
            reallocate = True

        if window_function is not None:
            window_type = WindowType.parse(window_function)
            if window_type != self._window_type:
                self._window_type = window_type
                reallocate = True

        if min_decibels is not None:
            self._min_db = float(min_decibels)
        if max_decibels is not None:
            self._max_db = float(max_decibels)
        if smoothing_time_constant is not None:
            self._smoothing = float(smoothing_time_constant)

        if reallocate:
            self._allocate_buffers()
            logger.info(
                f"Spectral transform reconfigured: fft_size={self._fft_size}, "
                f"window={self._window_type.value}"
            )

    def clear_spectrogram(self) -> None:
        self._spectrogram.clear()

    def reset(self) -> None:
        """Forget the smoothing state, the current frame and the spectrogram."""
        self._allocate_buffers()

    def dispose(self) -> None:
        """Release buffers. Safe to call more than once."""
        if self._is_disposed:
            return
        self._spectrogram.clear()
        self._smoothed_magnitude = None
        self._current = None
        self._is_disposed = True
        logger.info("Spectral transform stage disposed")

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"fft_size={self._fft_size}, "
            f"sample_rate={self._sample_rate}, "
            f"window={self._window_type.value})"
        )
