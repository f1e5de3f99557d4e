"""
Tests for the peak-relative noise gate.
"""

import pytest
import numpy as np

from clearcast.gate import NoiseGate
from clearcast.utils import ConfigurationError


class TestNoiseGate:
    """Peak-relative gate."""

    def test_threshold_inclusive(self):
        gate = NoiseGate(0.5)
        output = gate.process_buffer([1.0, 0.5, 0.49, -0.5, -0.2])
        np.testing.assert_array_equal(output, [1.0, 0.5, 0.0, -0.5, 0.0])

    def test_zero_threshold_passes_everything(self, white_noise):
        audio = white_noise(100)
        np.testing.assert_array_equal(NoiseGate(0.0).process_buffer(audio), audio)

    def test_full_threshold_keeps_peaks(self):
        output = NoiseGate(1.0).process_buffer([0.3, -0.8, 0.8, 0.79])
        np.testing.assert_array_equal(output, [0.0, -0.8, 0.8, 0.0])

    def test_relative_to_buffer_peak(self):
        output = NoiseGate(0.5).process_buffer([0.02, 0.01, 0.005])
        np.testing.assert_array_equal(output, [0.02, 0.01, 0.0])

    def test_silence_and_empty(self):
        np.testing.assert_array_equal(NoiseGate().process_buffer(np.zeros(5)), np.zeros(5))
        assert len(NoiseGate().process_buffer(np.array([]))) == 0

    @pytest.mark.parametrize("threshold", [-0.1, 1.1])
    def test_invalid_threshold(self, threshold):
        with pytest.raises(ConfigurationError):
            NoiseGate(threshold)

    def test_input_not_mutated(self):
        audio = np.array([1.0, 0.01])
        NoiseGate(0.5).process_buffer(audio)
        np.testing.assert_array_equal(audio, [1.0, 0.01])

    def test_float32_preserved(self):
        audio = np.array([1.0, 0.01, -0.6], dtype=np.float32)
        output = NoiseGate(0.5).process_buffer(audio)
        assert output.dtype == np.float32
        np.testing.assert_array_equal(output, np.array([1.0, 0.0, -0.6], dtype=np.float32))

    def test_single_sample_is_its_own_peak(self):
        assert NoiseGate(1.0).process_sample(-0.3) == pytest.approx(-0.3)
        assert NoiseGate(1.0).name == "NoiseGate"
