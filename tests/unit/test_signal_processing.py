"""
Unit tests for the low-level signal processing helpers.
"""

import numpy as np
import pytest

from evpscope.audio.spectral.utils.signal_processing import (
    SpectralPeak,
    band_energy_db,
    bin_of_frequency,
    calculate_zero_crossing_rate,
    cepstral_coefficients,
    create_mel_filter_bank,
    db_to_magnitude,
    find_spectral_peaks,
    hz_to_mel,
    mel_to_hz,
    peak_and_rms,
    strongest_peak,
)
from tests.conftest import FFT_SIZE, SAMPLE_RATE


@pytest.mark.unit
class TestConversions:
    """Test unit conversions."""

    def test_db_to_magnitude(self):
        np.testing.assert_allclose(db_to_magnitude([0.0, -20.0, -40.0]), [1.0, 0.1, 0.01])

    def test_mel_round_trip_reference_points(self):
        assert hz_to_mel(0.0) == pytest.approx(0.0)
        assert hz_to_mel(700.0) == pytest.approx(2595.0 * np.log10(2.0))
        assert mel_to_hz(hz_to_mel(1000.0)) == pytest.approx(1000.0)

    def test_bin_of_frequency(self):
        assert bin_of_frequency(0.0, SAMPLE_RATE, FFT_SIZE) == 0
        assert bin_of_frequency(500.0, SAMPLE_RATE, FFT_SIZE) == 46
        assert bin_of_frequency(2000.0, SAMPLE_RATE, FFT_SIZE) == 185


@pytest.mark.unit
class TestBandEnergy:
    """Test band energy summation."""

    def test_band_is_inclusive(self):
        spectrum = np.full(100, -400.0)
        spectrum[10] = 0.0
        spectrum[20] = 0.0

        # Bins 10..20 with fft_size = sample_rate = 200
        energy = band_energy_db(spectrum, 10.0, 20.0, 200.0, 200)

        assert energy == pytest.approx(20 * np.log10(2.0))

    def test_silent_band(self):
        spectrum = np.full(100, -np.inf)

        assert band_energy_db(spectrum, 10.0, 20.0, 200.0, 200) == pytest.approx(-200.0)

    def test_band_outside_spectrum(self):
        spectrum = np.zeros(10)

        assert band_energy_db(spectrum, 500.0, 600.0, 200.0, 200) == pytest.approx(-200.0)


@pytest.mark.unit
class TestPeakPicking:
    """Test spectral peak search."""

    def test_short_spectrum_has_no_peaks(self):
        assert find_spectral_peaks(np.zeros(5), SAMPLE_RATE, FFT_SIZE, -30.0, 10) == []

    def test_peaks_in_ascending_order(self):
        spectrum = np.full(200, -90.0)
        spectrum[[150, 40, 90]] = [-10.0, -20.0, -15.0]

        peaks = find_spectral_peaks(spectrum, SAMPLE_RATE, FFT_SIZE, -30.0, 10)

        assert [p.bin for p in peaks] == [40, 90, 150]

    def test_strongest_peak(self):
        peaks = [
            SpectralPeak(100.0, -20.0, 10),
            SpectralPeak(200.0, -5.0, 20),
            SpectralPeak(300.0, -10.0, 30),
        ]

        assert strongest_peak(peaks).bin == 20
        assert strongest_peak([]) is None


@pytest.mark.unit
class TestZeroCrossingRate:
    """Test zero crossing counting."""

    def test_degenerate_input(self):
        assert calculate_zero_crossing_rate(np.zeros(0)) == 0.0
        assert calculate_zero_crossing_rate(np.ones(1)) == 0.0

    def test_zero_counts_as_non_negative(self):
        # 0 -> -1 crosses, -1 -> 0 crosses, 0 -> 1 does not
        assert calculate_zero_crossing_rate([0.0, -1.0, 0.0, 1.0]) == pytest.approx(2 / 3)


@pytest.mark.unit
class TestMelFilterBank:
    """Test the triangular filter bank."""

    def test_shape_and_range(self):
        bank = create_mel_filter_bank(2048, SAMPLE_RATE, 26)

        assert bank.shape == (26, 2048)
        assert bank.min() >= 0.0
        np.testing.assert_allclose(bank.max(axis=1), 1.0)

    def test_filter_half_width(self):
        bank = create_mel_filter_bank(2048, SAMPLE_RATE, 26)

        # Half-width of 2048 // 26 = 78 bins: 155 non-zero taps
        assert np.count_nonzero(bank[13]) == 155

    def test_centres_increase(self):
        bank = create_mel_filter_bank(2048, SAMPLE_RATE, 26)
        centres = np.argmax(bank, axis=1)

        assert np.all(np.diff(centres) > 0)


@pytest.mark.unit
class TestCepstralCoefficients:
    """Test the DCT-II helper."""

    def test_constant_input(self):
        coefficients = cepstral_coefficients(np.full(26, 2.0), 13)

        assert coefficients[0] == pytest.approx(52.0)
        np.testing.assert_allclose(coefficients[1:], 0.0, atol=1e-9)

    def test_truncation(self):
        assert len(cepstral_coefficients(np.arange(26.0), 5)) == 5


@pytest.mark.unit
def test_peak_and_rms():
    assert peak_and_rms(np.array([0.5, -1.0, 0.5, 0.0])) == pytest.approx(
        (1.0, np.sqrt(1.5 / 4))
    )
    assert peak_and_rms(np.zeros(0)) == (0.0, 0.0)
