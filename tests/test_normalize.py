"""
Tests for peak / RMS normalization.
"""

import pytest
import numpy as np

from clearcast.normalize import (
    NormalizationMode,
    Normalizer,
    normalize_peak,
    normalize_rms,
)
from clearcast.utils import ConfigurationError


def rms_dbfs(x):
    return 20.0 * np.log10(np.sqrt(np.mean(np.square(x))))


class TestNormalizeRms:
    """RMS normalization."""

    def test_square_wave_to_minus_12(self):
        output = normalize_rms([1.0, -1.0, 1.0, -1.0], -12.0)
        assert rms_dbfs(output) == pytest.approx(-12.0, abs=1e-6)
        np.testing.assert_array_equal(np.sign(output), [1.0, -1.0, 1.0, -1.0])

    def test_sine(self, sine):
        output = normalize_rms(sine(amplitude=0.1), -18.0)
        assert rms_dbfs(output) == pytest.approx(-18.0, abs=1e-6)

    def test_silent_buffer_unchanged(self):
        np.testing.assert_array_equal(normalize_rms(np.zeros(64), -12.0), np.zeros(64))

    def test_empty(self):
        assert len(normalize_rms(np.array([]))) == 0

    def test_idempotent(self, white_noise):
        once = normalize_rms(white_noise(1000), -20.0)
        twice = normalize_rms(once, -20.0)
        np.testing.assert_allclose(once, twice, rtol=1e-12)


class TestNormalizePeak:
    """Peak normalization."""

    def test_peak_hits_target(self, sine):
        output = normalize_peak(sine(amplitude=0.2), 0.95)
        assert np.max(np.abs(output)) == pytest.approx(0.95, abs=1e-4)

    def test_attenuates_loud_input(self):
        output = normalize_peak([4.0, -2.0], 0.5)
        np.testing.assert_allclose(output, [0.5, -0.25])

    def test_silent_buffer_unchanged(self):
        np.testing.assert_array_equal(normalize_peak(np.zeros(10)), np.zeros(10))

    def test_input_not_mutated(self):
        audio = np.array([0.1, -0.2])
        normalize_peak(audio, 0.9)
        np.testing.assert_array_equal(audio, [0.1, -0.2])

    def test_idempotent(self, white_noise):
        once = normalize_peak(white_noise(1000))
        np.testing.assert_allclose(normalize_peak(once), once, rtol=1e-12)

    def test_float32_preserved(self, sine):
        output = normalize_peak(sine().astype(np.float32))
        assert output.dtype == np.float32


class TestNormalizer:
    """Normalizer effect."""

    def test_default_targets(self):
        assert Normalizer(NormalizationMode.PEAK).target == 0.95
        assert Normalizer(NormalizationMode.RMS).target == -20.0

    def test_mode_from_string(self):
        assert Normalizer("rms", -16.0).mode == NormalizationMode.RMS

    @pytest.mark.parametrize("mode,target", [
        (NormalizationMode.PEAK, 0.0),
        (NormalizationMode.PEAK, 1.5),
        (NormalizationMode.RMS, 3.0),
    ])
    def test_invalid_target(self, mode, target):
        with pytest.raises(ConfigurationError):
            Normalizer(mode, target)

    def test_unknown_mode(self):
        with pytest.raises(ValueError):
            Normalizer("lufs")

    def test_process_buffer(self, sine):
        normalizer = Normalizer(NormalizationMode.RMS, -12.0)
        assert rms_dbfs(normalizer.process_buffer(sine())) == pytest.approx(-12.0, abs=1e-6)

    def test_process_sample(self):
        normalizer = Normalizer(NormalizationMode.PEAK, 0.5)
        assert normalizer.process_sample(-0.1) == pytest.approx(-0.5)
        assert normalizer.process_sample(0.0) == 0.0
