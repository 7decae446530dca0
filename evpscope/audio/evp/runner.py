"""
Scheduling helpers for driving an EVPDetector.

``DetectionRunner`` owns a dedicated worker thread that ticks the detector at
a fixed cadence and hands detections to other threads through a bounded
queue. ``run_offline`` ticks a detector over a finite source as fast as
possible, which is what batch analysis and tests need.
"""

import queue
import threading
import time
from typing import List, Optional

from loguru import logger

from ..sources import ArrayAudioSource
from .detector import EVPDetector
from .types import EVPDetection


class DetectionRunner:
    """
    Fixed-cadence tick loop on a worker thread.

    The detector must only be touched from the worker while the runner is
    active; detections reach other threads through ``get_detection`` and
    ``drain``. When the queue is full the oldest detection is dropped.
    """

    def __init__(
        self,
        detector: EVPDetector,
        interval: float = 1.0 / 60.0,
        max_queue_size: int = 100,
    ):
        """
        Initialize the runner.

        Args:
            detector: Detector to drive.
            interval: Seconds between tick starts.
            max_queue_size: Capacity of the detection queue.
        """
        if interval <= 0:
            raise ValueError("Tick interval must be positive")
        if max_queue_size <= 0:
            raise ValueError("Queue size must be positive")

        self.detector = detector
        self.interval = interval
        self._queue: "queue.Queue[EVPDetection]" = queue.Queue(maxsize=max_queue_size)
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._dropped = 0
        self._tick_errors = 0

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def dropped_detections(self) -> int:
        return self._dropped

    @property
    def tick_errors(self) -> int:
        return self._tick_errors

    def start(self, sensitivity: Optional[float] = None) -> None:
        """Start the detector and the worker thread. No-op if running."""
        if self.is_running:
            return

        self.detector.start(sensitivity)
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name="evp-detection-runner", daemon=True
        )
        self._thread.start()
        logger.info(f"Detection runner started (interval={self.interval * 1000:.1f}ms)")

    def stop(self, timeout: Optional[float] = 2.0) -> None:
        """Stop the worker thread, then the detector. No-op if stopped."""
        if self._thread is None:
            return

        self._stop_event.set()
        self._thread.join(timeout)
        if self._thread.is_alive():
            logger.warning("Detection runner did not stop within timeout")
        self._thread = None
        self.detector.stop()
        logger.info("Detection runner stopped")

    def _run(self) -> None:
        next_tick = time.monotonic()
        while not self._stop_event.is_set():
            try:
                detection = self.detector.tick()
            except Exception as e:
                self._tick_errors += 1
                logger.error(f"Error during detection tick: {e}")
                detection = None

            if detection is not None:
                self._enqueue(detection)

            next_tick += self.interval
            delay = next_tick - time.monotonic()
            if delay < 0:
                # Fell behind; restart the cadence instead of bursting
                next_tick = time.monotonic()
                delay = 0.0
            self._stop_event.wait(delay)

    def _enqueue(self, detection: EVPDetection) -> None:
        while True:
            try:
                self._queue.put_nowait(detection)
                return
            except queue.Full:
                try:
                    self._queue.get_nowait()
                    self._dropped += 1
                except queue.Empty:
                    pass

    def get_detection(self, timeout: Optional[float] = None) -> Optional[EVPDetection]:
        """
        Wait for the next detection.

        Returns:
            Optional[EVPDetection]: The detection, or None on timeout.
        """
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> List[EVPDetection]:
        """Remove and return every queued detection."""
        detections = []
        while True:
            try:
                detections.append(self._queue.get_nowait())
            except queue.Empty:
                return detections

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()


def run_offline(
    detector: EVPDetector,
    source: ArrayAudioSource,
    max_ticks: Optional[int] = None,
) -> List[EVPDetection]:
    """
    Tick ``detector`` over ``source`` until the source is exhausted or the
    detector stops (for example from inside a detection handler).

    The detector is started if needed and stopped afterwards; the source is
    attached for the duration of the run.

    Args:
        detector: Detector to drive.
        source: Finite source to analyse.
        max_ticks: Optional upper bound on the number of ticks.

    Returns:
        List[EVPDetection]: Detections in emission order.
    """
    detections: List[EVPDetection] = []
    detector.set_source(source)
    detector.start()

    ticks = 0
    try:
        while not source.exhausted and detector.is_detecting:
            if max_ticks is not None and ticks >= max_ticks:
                break
            detection = detector.tick()
            ticks += 1
            if detection is not None:
                detections.append(detection)
    finally:
        detector.stop()
        detector.set_source(None)

    logger.info(
        f"Offline analysis finished: {ticks} ticks, {len(detections)} detections"
    )
    return detections
