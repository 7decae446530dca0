"""
Unit tests for the EVP detector engine.
"""

import threading
from unittest.mock import patch

import numpy as np
import pytest

from evpscope.audio.evp.config import ConfigurationError
from evpscope.audio.evp.detector import EVPDetector
from evpscope.audio.evp.types import DetectorState, EVPClass, EVPDetection
from evpscope.audio.sources import ArrayAudioSource
from evpscope.audio.spectral.features import SpectralFeatures
from tests.conftest import FFT_SIZE, make_tone


@pytest.fixture
def detector(config, fixed_clock):
    """Detector that treats every frame as voice."""
    evp_detector = EVPDetector(config.updated(sensitivity=0.0), clock=fixed_clock)
    yield evp_detector
    evp_detector.dispose()


@pytest.fixture
def fake_detection():
    return EVPDetection(
        timestamp_ms=0.0,
        duration_ms=928.8,
        confidence=0.9,
        classification=EVPClass.CLASS_A,
        dominant_frequency=600.0,
        amplitude=-12.0,
        features=SpectralFeatures(),
        signal_to_noise_ratio=30.0,
    )


def run_ticks(detector, count):
    return [detector.tick() for _ in range(count)]


@pytest.mark.unit
class TestLifecycle:
    """Test start, stop and dispose."""

    def test_initial_state(self, detector):
        assert detector.state is DetectorState.IDLE
        assert not detector.is_detecting
        assert "state=idle" in repr(detector)

    def test_tick_is_noop_when_idle(self, detector):
        assert detector.tick() is None
        assert detector.get_stats().frames_processed == 0

    def test_start_is_idempotent(self, detector):
        detector.start()
        run_ticks(detector, 3)

        detector.start()

        assert detector.is_detecting
        assert detector.accumulator.size == 3

    def test_start_updates_sensitivity(self, config):
        detector = EVPDetector(config)

        detector.start(sensitivity=0.4)

        assert detector.config.sensitivity == 0.4

    def test_start_rejects_invalid_sensitivity(self, detector):
        with pytest.raises(ConfigurationError):
            detector.start(sensitivity=1.5)
        assert not detector.is_detecting

    def test_stop_is_idempotent(self, detector):
        detector.start()
        run_ticks(detector, 2)

        detector.stop()
        detector.stop()

        assert detector.state is DetectorState.IDLE
        assert detector.tick() is None
        assert detector.get_stats().frames_processed == 2

    def test_restart_clears_accumulator(self, detector):
        detector.start()
        run_ticks(detector, 3)
        detector.stop()

        detector.start()

        assert detector.accumulator.size == 0
        assert detector.accumulator.history == []

    def test_restart_clears_spectral_state(self, config, tone):
        detector = EVPDetector(config.updated(smoothing_time_constant=0.8))
        detector.start()
        detector.process_samples(tone(1000.0))
        assert detector.transform.current_frame.magnitudes_db.max() > -90.0
        detector.stop()

        detector.start()

        assert detector.transform.current_frame is None
        assert detector.transform.spectrogram_length == 0
        detector.process_samples(None)
        np.testing.assert_array_equal(detector.transform.current_frame.magnitudes_db, -90.0)
        assert detector.transform.spectrogram_length == 1

    def test_handler_may_stop_detector_during_tick(self, detector, fake_detection):
        detector.on_detection(lambda evp: detector.stop())
        detector.start()

        with patch.object(detector._classifier, "classify", return_value=fake_detection):
            results = run_ticks(detector, 12)

        assert results[9] is fake_detection
        assert not detector.is_detecting
        assert results[10:] == [None, None]

    def test_config_update_waits_for_running_tick(self, detector):
        detector.start()
        entered = threading.Event()
        release = threading.Event()
        original = detector._voice_classifier.evaluate

        def slow_evaluate(*args, **kwargs):
            entered.set()
            release.wait(5)
            return original(*args, **kwargs)

        with patch.object(detector._voice_classifier, "evaluate", side_effect=slow_evaluate):
            worker = threading.Thread(target=detector.tick)
            worker.start()
            assert entered.wait(5)

            updater = threading.Thread(
                target=detector.update_config, kwargs={"fft_size": 2048}
            )
            updater.start()
            updater.join(0.05)
            # The rebuild is blocked until the tick in flight finishes
            assert detector.transform.fft_size == FFT_SIZE

            release.set()
            worker.join(5)
            updater.join(5)

        assert detector.transform.fft_size == 2048
        assert detector.accumulator.size == 0

    def test_dispose(self, detector):
        detector.start()
        detector.dispose()
        detector.dispose()

        assert detector.is_disposed
        assert detector.transform.is_disposed
        assert detector.tick() is None
        assert detector.process_samples(np.zeros(FFT_SIZE)) is None
        with pytest.raises(RuntimeError):
            detector.start()

    def test_context_manager_disposes(self, config):
        with EVPDetector(config) as detector:
            detector.start()

        assert detector.is_disposed


@pytest.mark.unit
class TestTicking:
    """Test the per-tick pipeline."""

    def test_classifies_once_after_ten_voice_frames(self, detector):
        detector.start()
        classifier = detector._classifier

        with patch.object(classifier, "classify", wraps=classifier.classify) as classify:
            run_ticks(detector, 9)
            assert classify.call_count == 0
            assert detector.accumulator.size == 9

            # Silence scores zero confidence, so nothing is emitted
            assert detector.tick() is None
            assert classify.call_count == 1
            assert len(classify.call_args[0][0]) == 10

        assert detector.accumulator.size == 0
        assert detector.get_stats().detections_emitted == 0

    def test_non_voice_frames_do_not_accumulate(self, config):
        detector = EVPDetector(config)
        detector.start()

        run_ticks(detector, 12)

        stats = detector.get_stats()
        assert stats.buffer_size == 0
        assert stats.voice_activity_rate == 0.0
        assert stats.frames_processed == 12
        assert detector.last_voice_result.score == 0.0

    def test_missing_source_processes_silence(self, detector):
        detector.start()

        detector.tick()

        stats = detector.get_stats()
        assert not stats.source_available
        np.testing.assert_array_equal(detector.transform.current_frame.magnitudes_db, -90.0)

    def test_source_is_pulled_every_tick(self, detector, tone):
        source = ArrayAudioSource(tone(1000.0, num_samples=2 * FFT_SIZE))
        detector.set_source(source)
        detector.start()

        detector.tick()

        assert detector.get_stats().source_available
        assert source.position == FFT_SIZE
        assert detector.transform.current_frame.peak > 0.4

    def test_exhausted_source_reports_unavailable(self, detector):
        detector.set_source(ArrayAudioSource(np.zeros(FFT_SIZE)))
        detector.start()

        detector.tick()
        detector.tick()

        assert not detector.get_stats().source_available

    def test_process_samples_bypasses_source(self, detector, tone):
        detector.start()
        samples = tone(1000.0)

        detector.process_samples(samples)

        np.testing.assert_array_equal(detector.transform.current_frame.time_domain, samples)

    def test_sample_rate_mismatch_is_logged(self, detector, loguru_records):
        detector.set_source(ArrayAudioSource(np.zeros(10), sample_rate=48000.0))

        assert any(
            level == "WARNING" and "48000.0Hz" in message
            for level, message in loguru_records
        )

    def test_stats_to_dict(self, detector):
        detector.start()
        detector.tick()

        data = detector.get_stats().to_dict()

        assert data["is_detecting"] is True
        assert data["buffer_size"] == 1
        assert data["voice_activity_rate"] == 1.0
        assert data["frames_processed"] == 1


@pytest.mark.unit
class TestDetectionHandlers:
    """Test handler registration and isolation."""

    def test_handlers_receive_detection(self, detector, fake_detection):
        received = []
        detector.on_detection(received.append)
        detector.start()

        with patch.object(detector._classifier, "classify", return_value=fake_detection):
            results = run_ticks(detector, 10)

        assert results[-1] is fake_detection
        assert received == [fake_detection]
        assert detector.get_stats().detections_emitted == 1

    def test_constructor_handler(self, config, fake_detection):
        received = []
        detector = EVPDetector(
            config.updated(sensitivity=0.0), on_detection=received.append
        )
        detector.start()

        with patch.object(detector._classifier, "classify", return_value=fake_detection):
            run_ticks(detector, 10)

        assert received == [fake_detection]

    def test_failing_handler_does_not_stop_others(
        self, detector, fake_detection, loguru_records
    ):
        received = []

        @detector.on_detection
        def broken(detection):
            raise RuntimeError("handler failure")

        detector.on_detection(received.append)
        detector.start()

        with patch.object(detector._classifier, "classify", return_value=fake_detection):
            results = run_ticks(detector, 10)

        assert results[-1] is fake_detection
        assert received == [fake_detection]
        assert detector.is_detecting
        assert any(
            level == "ERROR" and "handler failure" in message
            for level, message in loguru_records
        )

    def test_remove_detection_handler(self, detector, fake_detection):
        received = []
        detector.on_detection(received.append)

        assert detector.remove_detection_handler(received.append)
        assert not detector.remove_detection_handler(received.append)

        detector.start()
        with patch.object(detector._classifier, "classify", return_value=fake_detection):
            run_ticks(detector, 10)

        assert received == []

    def test_dispose_drops_handlers(self, config, fake_detection):
        received = []
        detector = EVPDetector(config, on_detection=received.append)
        detector.dispose()

        assert not detector.remove_detection_handler(received.append)


@pytest.mark.unit
class TestRuntimeConfiguration:
    """Test update_config."""

    def test_invalid_update_keeps_previous_config(self, detector):
        previous = detector.config

        with pytest.raises(ConfigurationError):
            detector.update_config(min_frequency=100.0, max_frequency=50.0)

        assert detector.config is previous

    def test_unknown_field(self, detector):
        with pytest.raises(ConfigurationError):
            detector.update_config(gain=2.0)

    def test_fft_size_change_clears_buffer(self, detector):
        detector.start()
        run_ticks(detector, 4)

        config = detector.update_config(fft_size=2048)

        assert config.fft_size == 2048
        assert detector.transform.fft_size == 2048
        assert detector.accumulator.size == 0
        assert len(detector.accumulator.history) == 4

        detector.tick()
        assert detector.transform.current_frame.magnitudes_db.shape == (1024,)

    def test_threshold_change_keeps_buffer(self, detector):
        detector.start()
        run_ticks(detector, 4)

        detector.update_config(classification_threshold=0.9, voice_threshold=-30.0)

        assert detector.accumulator.size == 4
        assert detector.config.classification_threshold == 0.9

    def test_decibel_range_reaches_transform(self, detector):
        detector.update_config(min_decibels=-100.0, max_decibels=0.0)

        assert detector.transform.min_decibels == -100.0
        assert detector.transform.max_decibels == 0.0

    def test_conditioning_toggle(self, detector):
        assert detector._conditioner is None

        detector.update_config(enable_conditioning=True)
        assert detector._conditioner is not None

        detector.update_config(min_frequency=300.0)
        assert detector._conditioner.min_frequency == 300.0

        detector.update_config(noise_gate_threshold=-60.0)
        assert detector._conditioner.noise_gate_threshold == -60.0

    def test_conditioned_tick(self, config):
        detector = EVPDetector(config.updated(enable_conditioning=True))
        detector.start()

        detector.process_samples(make_tone(1000.0, amplitude=0.5))

        assert detector.transform.current_frame.rms > 0.1
