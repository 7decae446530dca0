"""
Pull-based audio sources feeding the detector.

The detector does not own capture or mixing. On every tick it asks a source
for the most recent block of samples; a source that has nothing to offer
returns None and the tick processes silence instead.
"""

import logging
import wave
from pathlib import Path
from typing import Optional, Protocol, Union, runtime_checkable

import numpy as np

logger = logging.getLogger(__name__)


@runtime_checkable
class AudioSource(Protocol):
    """
    Anything that can hand over the latest block of mono float samples.
    """

    sample_rate: float

    def read(self, num_samples: int) -> Optional[np.ndarray]:
        """Return up to ``num_samples`` of the most recent samples, or None."""
        ...


class ArrayAudioSource:
    """
    Audio source backed by an in-memory sample array.

    Each read returns the ``num_samples`` window ending at a cursor, then
    moves the cursor forward by ``hop_size``. Windows that start before the
    beginning of the array are zero-padded. Once the cursor passes the end
    of the array every read returns None.
    """

    def __init__(
        self,
        samples: np.ndarray,
        sample_rate: float = 44100.0,
        hop_size: Optional[int] = None,
    ):
        """
        Initialize the array source.

        Args:
            samples: Mono samples, nominally in [-1, 1].
            sample_rate: Sample rate in Hz.
            hop_size: Cursor advance per read. Defaults to the requested
                block size (no overlap).
        """
        if sample_rate <= 0:
            raise ValueError("Sample rate must be positive")
        if hop_size is not None and hop_size <= 0:
            raise ValueError("Hop size must be positive")

        self.samples = np.asarray(samples, dtype=np.float64).ravel()
        self.sample_rate = float(sample_rate)
        self.hop_size = hop_size
        self._cursor = 0

    @property
    def position(self) -> int:
        """Index one past the last sample returned."""
        return self._cursor

    @property
    def exhausted(self) -> bool:
        return self._cursor >= len(self.samples)

    @property
    def duration(self) -> float:
        """Length of the backing array in seconds."""
        return len(self.samples) / self.sample_rate

    def rewind(self) -> None:
        self._cursor = 0

    def read(self, num_samples: int) -> Optional[np.ndarray]:
        if self.exhausted or num_samples <= 0:
            return None

        end = min(self._cursor + (self.hop_size or num_samples), len(self.samples))
        start = end - num_samples

        if start >= 0:
            block = self.samples[start:end].copy()
        else:
            block = np.zeros(num_samples)
            block[-end:] = self.samples[:end]

        self._cursor = end
        return block

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"samples={len(self.samples)}, "
            f"sample_rate={self.sample_rate}, "
            f"position={self._cursor})"
        )


class WaveFileSource(ArrayAudioSource):
    """
    ArrayAudioSource loaded from a PCM WAV file.

    Multi-channel audio is averaged down to mono and integer PCM is scaled
    to [-1, 1].
    """

    _DTYPES = {1: np.uint8, 2: np.int16, 4: np.int32}

    @classmethod
    def from_file(
        cls, path: Union[str, Path], hop_size: Optional[int] = None
    ) -> "WaveFileSource":
        """
        Decode a WAV file.

        Args:
            path: Path to an 8, 16 or 32-bit PCM WAV file.
            hop_size: Cursor advance per read.

        Returns:
            WaveFileSource: Source positioned at the start of the file.

        Raises:
            ValueError: If the sample width is not supported.
        """
        with wave.open(str(path), "rb") as wav_file:
            channels = wav_file.getnchannels()
            sample_width = wav_file.getsampwidth()
            sample_rate = wav_file.getframerate()
            frames = wav_file.readframes(wav_file.getnframes())

        if sample_width not in cls._DTYPES:
            raise ValueError(f"Unsupported WAV sample width: {sample_width} bytes")

        data = np.frombuffer(frames, dtype=cls._DTYPES[sample_width]).astype(np.float64)
        if sample_width == 1:
            data = (data - 128.0) / 128.0
        else:
            data = data / float(2 ** (8 * sample_width - 1))

        if channels > 1:
            data = data.reshape(-1, channels).mean(axis=1)

        logger.info(
            f"Loaded {path}: {len(data) / sample_rate:.2f}s at {sample_rate}Hz, "
            f"{channels} channel(s)"
        )
        return cls(data, sample_rate=sample_rate, hop_size=hop_size)
