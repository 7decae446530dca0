"""
Accumulation of voice-active frames between classifications.
"""

import logging
from collections import deque
from typing import Deque, List

import numpy as np

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 10
DEFAULT_HISTORY_LENGTH = 100


class DetectionAccumulator:
    """
    Bounded buffer of consecutive voice-active spectra.

    The accumulator is Collecting while it holds fewer than ``capacity``
    spectra and Ready once it is full. Non-voice frames only add a history
    entry; voice frames are also buffered. The caller classifies a Ready
    buffer and drains it, so windows never overlap.

    Every decision, voice or not, lands in a history capped at
    ``history_length`` entries (oldest evicted first) used for the voice
    activity rate.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        history_length: int = DEFAULT_HISTORY_LENGTH,
    ):
        if capacity <= 0:
            raise ValueError("Accumulator capacity must be positive")
        if history_length <= 0:
            raise ValueError("History length must be positive")

        self.capacity = capacity
        self._buffer: List[np.ndarray] = []
        self._history: Deque[bool] = deque(maxlen=history_length)

    @property
    def size(self) -> int:
        return len(self._buffer)

    @property
    def is_ready(self) -> bool:
        return len(self._buffer) >= self.capacity

    @property
    def history(self) -> List[bool]:
        """Retained voice decisions, oldest first."""
        return list(self._history)

    @property
    def voice_activity_rate(self) -> float:
        """Fraction of retained decisions that were voice (0.0 if none)."""
        if not self._history:
            return 0.0
        return sum(self._history) / len(self._history)

    def record_decision(self, is_voice: bool) -> None:
        self._history.append(bool(is_voice))

    def record(self, is_voice: bool, spectrum_db: np.ndarray) -> bool:
        """
        Record one frame.

        Args:
            is_voice: Voice decision for the frame.
            spectrum_db: Decibel spectrum of the frame; copied when buffered.

        Returns:
            bool: True if the buffer is now full and ready to classify.
        """
        self.record_decision(is_voice)

        if is_voice:
            self._buffer.append(np.array(spectrum_db, dtype=np.float64, copy=True))
            logger.debug(f"Buffered voice frame ({len(self._buffer)}/{self.capacity})")

        return self.is_ready

    def drain(self) -> List[np.ndarray]:
        """Return the buffered spectra and empty the buffer."""
        spectra, self._buffer = self._buffer, []
        return spectra

    def clear_buffer(self) -> None:
        self._buffer = []

    def reset(self) -> None:
        """Empty both the buffer and the decision history."""
        self._buffer = []
        self._history.clear()
