"""
EVP detector engine.

The detector is driven by an external scheduler that calls ``tick()`` once
per analysis interval. Each tick runs the whole pipeline to completion:

    source -> conditioning -> transform -> features -> voice activity
           -> accumulator -> (when full) classifier -> detection handlers

The engine never sleeps or blocks. Detection handlers run synchronously
inside the tick that produced the detection; hosts that need detections on
another thread should use ``DetectionRunner``.

Example Usage:
    detector = EVPDetector(DetectionConfig(sensitivity=0.7), source=source)
    detector.on_detection(lambda evp: print(evp.classification.class_id))
    detector.start()
    while running:
        detector.tick()
    detector.dispose()
"""

import threading
import time
from typing import Any, Callable, List, Optional

import numpy as np
from loguru import logger

from ..sources import AudioSource
from ..spectral.conditioning import InputConditioner
from ..spectral.features import FeatureExtractor
from ..spectral.transform import SpectralTransformStage
from .accumulator import DetectionAccumulator
from .classifier import EVPClassifier
from .config import DetectionConfig
from .types import DetectionCallback, DetectionStats, DetectorState, EVPDetection
from .voice_activity import VoiceActivityClassifier, VoiceActivityResult

_TRANSFORM_FIELDS = (
    "fft_size",
    "window_function",
    "sample_rate",
    "min_decibels",
    "max_decibels",
    "smoothing_time_constant",
)
_LAYOUT_FIELDS = ("fft_size", "window_function", "sample_rate")
_CONDITIONING_FIELDS = (
    "enable_conditioning",
    "min_frequency",
    "max_frequency",
    "sample_rate",
)


class EVPDetector:
    """
    Tick-driven spectral analysis and EVP classification engine.

    Lifecycle: IDLE -> DETECTING on ``start()``, back to IDLE on ``stop()``,
    DISPOSED after ``dispose()``. Ticks outside DETECTING do nothing.
    """

    def __init__(
        self,
        config: Optional[DetectionConfig] = None,
        source: Optional[AudioSource] = None,
        on_detection: Optional[DetectionCallback] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the detector.

        Args:
            config (Optional[DetectionConfig]): Detector configuration.
                If None, default configuration will be used.
            source (Optional[AudioSource]): Audio source pulled on every tick.
            on_detection (Optional[DetectionCallback]): Initial detection handler.
            clock: Wall-clock source in seconds for detection timestamps.
        """
        self._config = config or DetectionConfig()
        self._source: Optional[AudioSource] = None
        self._state = DetectorState.IDLE

        # Thread safety
        self._lock = threading.RLock()
        self._callback_lock = threading.RLock()

        self._transform = SpectralTransformStage(
            fft_size=self._config.fft_size,
            sample_rate=self._config.sample_rate,
            window_function=self._config.window_function,
            min_decibels=self._config.min_decibels,
            max_decibels=self._config.max_decibels,
            smoothing_time_constant=self._config.smoothing_time_constant,
        )
        self._extractor = FeatureExtractor(
            sample_rate=self._config.sample_rate,
            use_interframe_flux=self._config.use_interframe_flux,
        )
        self._conditioner = self._build_conditioner(self._config)
        self._voice_classifier = VoiceActivityClassifier(self._transform)
        self._accumulator = DetectionAccumulator()
        self._classifier = EVPClassifier(self._transform, clock=clock)

        self._handlers: List[DetectionCallback] = []
        if on_detection is not None:
            self._handlers.append(on_detection)

        # Runtime counters
        self._frames_processed = 0
        self._detections_emitted = 0
        self._source_available = source is not None
        self._last_voice_result: Optional[VoiceActivityResult] = None

        if source is not None:
            self.set_source(source)

        logger.info(f"EVPDetector initialized with config: {self._config.to_dict()}")

    @property
    def config(self) -> DetectionConfig:
        return self._config

    @property
    def state(self) -> DetectorState:
        return self._state

    @property
    def is_detecting(self) -> bool:
        return self._state == DetectorState.DETECTING

    @property
    def is_disposed(self) -> bool:
        return self._state == DetectorState.DISPOSED

    @property
    def transform(self) -> SpectralTransformStage:
        return self._transform

    @property
    def accumulator(self) -> DetectionAccumulator:
        return self._accumulator

    @property
    def last_voice_result(self) -> Optional[VoiceActivityResult]:
        """Voice activity breakdown of the most recent tick."""
        return self._last_voice_result

    def set_source(self, source: Optional[AudioSource]) -> None:
        """
        Attach (or detach, with None) the audio source pulled on each tick.
        """
        if source is not None and getattr(source, "sample_rate", None) not in (
            None,
            self._config.sample_rate,
        ):
            logger.warning(
                f"Source sample rate {source.sample_rate}Hz differs from "
                f"configured {self._config.sample_rate}Hz"
            )
        with self._lock:
            self._source = source

    def on_detection(self, handler: DetectionCallback) -> DetectionCallback:
        """
        Register a detection handler.

        Handlers are called synchronously, in registration order, with each
        EVPDetection. Returns the handler so this can be used as a decorator.
        """
        with self._callback_lock:
            self._handlers.append(handler)
            logger.debug(f"Detection handler registered ({len(self._handlers)} total)")
        return handler

    def remove_detection_handler(self, handler: DetectionCallback) -> bool:
        """
        Unregister a detection handler.

        Returns:
            bool: True if the handler was removed, False if not found.
        """
        with self._callback_lock:
            try:
                self._handlers.remove(handler)
                return True
            except ValueError:
                logger.warning("Detection handler not found")
                return False

    def start(self, sensitivity: Optional[float] = None) -> None:
        """
        Start detecting.

        Does nothing if already detecting. Otherwise clears the accumulator,
        the voice history, the flux memory, the spectral smoothing state and
        the spectrogram before the first tick.

        Args:
            sensitivity: Optional new voice-likelihood threshold in [0, 1].

        Raises:
            RuntimeError: If the detector has been disposed.
            ConfigurationError: If the sensitivity is out of range.
        """
        with self._lock:
            if self.is_disposed:
                raise RuntimeError("Cannot start a disposed EVPDetector")
            if self.is_detecting:
                return

            if sensitivity is not None:
                self._config = self._config.updated(sensitivity=sensitivity)

            self._accumulator.reset()
            self._extractor.reset()
            self._transform.reset()
            self._state = DetectorState.DETECTING

            logger.info(
                f"EVP detection started (sensitivity={self._config.sensitivity})"
            )

    def stop(self) -> None:
        """Stop detecting. Does nothing if not detecting."""
        with self._lock:
            if not self.is_detecting:
                return
            self._state = DetectorState.IDLE
            logger.info("EVP detection stopped")

    def tick(self) -> Optional[EVPDetection]:
        """
        Run one analysis pass on the latest block from the source.

        Returns:
            Optional[EVPDetection]: Detection emitted during this tick, if any.
                Always None when not detecting.
        """
        with self._lock:
            if not self.is_detecting:
                return None

            samples = None
            if self._source is not None:
                samples = self._source.read(self._config.fft_size)
            return self._run_pipeline(samples)

    def process_samples(self, samples: Optional[np.ndarray]) -> Optional[EVPDetection]:
        """
        Run one analysis pass on samples pushed by the host.

        Behaves like ``tick()`` but bypasses the source.
        """
        with self._lock:
            if not self.is_detecting:
                return None
            return self._run_pipeline(samples)

    def _run_pipeline(self, samples: Optional[np.ndarray]) -> Optional[EVPDetection]:
        self._source_available = samples is not None

        if self._conditioner is not None:
            samples = self._conditioner.process(samples)

        frame = self._transform.process(samples)
        features = self._extractor.extract(frame, self._config.fft_size)

        voice = self._voice_classifier.evaluate(
            frame.magnitudes_db, features, self._config
        )
        self._last_voice_result = voice
        self._frames_processed += 1

        if not self._accumulator.record(voice.is_voice, frame.magnitudes_db):
            return None

        spectra = self._accumulator.drain()
        detection = self._classifier.classify(spectra, features, self._config)
        if detection is not None:
            self._emit(detection)
        return detection

    def _emit(self, detection: EVPDetection) -> None:
        self._detections_emitted += 1
        logger.info(
            f"EVP detected: class={detection.classification.class_id}, "
            f"confidence={detection.confidence:.2f}, "
            f"frequency={detection.dominant_frequency:.1f}Hz"
        )

        with self._callback_lock:
            handlers = list(self._handlers)

        for handler in handlers:
            try:
                handler(detection)
            except Exception as e:
                logger.error(f"Error in detection handler: {e}")

    def update_config(self, **changes: Any) -> DetectionConfig:
        """
        Update configuration fields.

        The whole update is validated before anything is applied. A new
        FFT size, window or sample rate rebuilds the transform buffers and
        empties the accumulator; other fields apply from the next tick.

        Args:
            **changes: DetectionConfig field names and values.

        Returns:
            DetectionConfig: The configuration now in effect.

        Raises:
            ConfigurationError: If the update is invalid. The previous
                configuration stays in effect.
        """
        with self._lock:
            new_config = self._config.updated(**changes)
            old_config = self._config
            changed = {
                name
                for name in changes
                if getattr(old_config, name) != getattr(new_config, name)
            }

            if changed & set(_CONDITIONING_FIELDS):
                self._conditioner = self._build_conditioner(new_config)
            elif self._conditioner is not None and "noise_gate_threshold" in changed:
                self._conditioner.set_noise_gate(new_config.noise_gate_threshold)

            if changed & set(_TRANSFORM_FIELDS) and not self.is_disposed:
                self._transform.update_config(
                    fft_size=new_config.fft_size,
                    window_function=new_config.window_function,
                    min_decibels=new_config.min_decibels,
                    max_decibels=new_config.max_decibels,
                    smoothing_time_constant=new_config.smoothing_time_constant,
                    sample_rate=new_config.sample_rate,
                )

            if changed & set(_LAYOUT_FIELDS):
                self._accumulator.clear_buffer()
                self._extractor.reset()

            self._extractor.sample_rate = new_config.sample_rate
            self._extractor.use_interframe_flux = new_config.use_interframe_flux
            self._config = new_config

            logger.info(f"EVP detector configuration updated: {sorted(changed)}")
            return new_config

    @staticmethod
    def _build_conditioner(config: DetectionConfig) -> Optional[InputConditioner]:
        if not config.enable_conditioning:
            return None
        return InputConditioner(
            sample_rate=config.sample_rate,
            min_frequency=config.min_frequency,
            max_frequency=config.max_frequency,
            noise_gate_threshold=config.noise_gate_threshold,
        )

    def get_stats(self) -> DetectionStats:
        """
        Get detection statistics.

        Returns:
            DetectionStats: Current activity snapshot.
        """
        return DetectionStats(
            is_detecting=self.is_detecting,
            buffer_size=self._accumulator.size,
            voice_activity_rate=self._accumulator.voice_activity_rate,
            source_available=self._source_available,
            frames_processed=self._frames_processed,
            detections_emitted=self._detections_emitted,
        )

    def dispose(self) -> None:
        """
        Stop, release the transform and drop all handlers.

        Safe to call more than once; later ticks are no-ops.
        """
        with self._lock:
            if self.is_disposed:
                return

            self.stop()
            self._transform.dispose()
            self._accumulator.reset()
            with self._callback_lock:
                self._handlers.clear()
            self._source = None
            self._state = DetectorState.DISPOSED

            logger.info("EVP detector disposed")

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.dispose()

    def __repr__(self) -> str:
        """String representation of the detector."""
        return (
            f"{self.__class__.__name__}("
            f"state={self._state.value}, "
            f"sensitivity={self._config.sensitivity}, "
            f"fft_size={self._config.fft_size}, "
            f"buffer={self._accumulator.size})"
        )
