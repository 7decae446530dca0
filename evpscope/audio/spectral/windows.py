"""
Analysis window functions for spectral processing.

This module precomputes the tapering windows applied to each time-domain
block before the FFT. All four windows are generated together so that
switching the active window at runtime never allocates.
"""

import logging
from enum import Enum
from typing import Dict, Union

import numpy as np

logger = logging.getLogger(__name__)


class WindowType(Enum):
    """
    Enumeration of supported analysis windows.
    """

    HANN = "hann"
    HAMMING = "hamming"
    BLACKMAN = "blackman"
    BARTLETT = "bartlett"

    @classmethod
    def parse(cls, value: Union[str, "WindowType"]) -> "WindowType":
        """
        Resolve a window name or enum member.

        Args:
            value: Window name (case-insensitive) or WindowType member.

        Returns:
            WindowType: Matching window type.

        Raises:
            ValueError: If the name is not a supported window.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            supported = ", ".join(w.value for w in cls)
            raise ValueError(
                f"Unsupported window function '{value}' (expected one of: {supported})"
            ) from None


class WindowFunctionLibrary:
    """
    Precomputed Hann, Hamming, Blackman and Bartlett windows of one size.

    The symmetric forms are used, matching ``np.hanning`` and friends:
    every window is zero (or 0.08 for Hamming) at both ends and peaks at
    the centre.
    """

    def __init__(self, size: int):
        """
        Initialize the window library.

        Args:
            size (int): Number of coefficients per window. Must be positive.

        Raises:
            ValueError: If size is not positive.
        """
        self._size = 0
        self._windows: Dict[WindowType, np.ndarray] = {}
        self.resize(size)

    @property
    def size(self) -> int:
        """Number of coefficients in each window."""
        return self._size

    def resize(self, size: int) -> None:
        """
        Regenerate all windows for a new size.

        Args:
            size (int): New window length.

        Raises:
            ValueError: If size is not positive.
        """
        if size <= 0:
            raise ValueError("Window size must be positive")

        self._size = int(size)
        self._windows = {
            WindowType.HANN: np.hanning(self._size),
            WindowType.HAMMING: np.hamming(self._size),
            WindowType.BLACKMAN: np.blackman(self._size),
            WindowType.BARTLETT: np.bartlett(self._size),
        }
        for window in self._windows.values():
            window.setflags(write=False)

        logger.debug(f"Generated analysis windows of size {self._size}")

    def get(self, window_type: Union[str, WindowType]) -> np.ndarray:
        """
        Get the coefficients of a window.

        Args:
            window_type: Window name or WindowType member.

        Returns:
            np.ndarray: Read-only window coefficients of length ``size``.
        """
        return self._windows[WindowType.parse(window_type)]

    def apply(
        self, samples: np.ndarray, window_type: Union[str, WindowType]
    ) -> np.ndarray:
        """Multiply a block of ``size`` samples by the chosen window."""
        return np.asarray(samples, dtype=np.float64) * self.get(window_type)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(size={self._size})"
