"""
Tests for the soft-knee limiter.
"""

import pytest
import numpy as np

from clearcast.limiter import LimiterConfig, SoftKneeLimiter, soft_limit
from clearcast.utils import ConfigurationError, db_to_linear


class TestLimiterConfig:
    """Configuration validation."""

    def test_defaults(self):
        config = LimiterConfig()
        assert config.threshold == 0.9
        assert config.knee_width == 0.1
        assert config.ratio == 8.0
        assert config.make_up_gain_db == 0.0
        assert config.target_peak == 0.95

    def test_knee_edges(self):
        config = LimiterConfig(threshold=0.5, knee_width=0.2)
        assert config.lower_knee == pytest.approx(0.4)
        assert config.upper_knee == pytest.approx(0.6)

    @pytest.mark.parametrize("kwargs", [
        {"threshold": 1.5},
        {"threshold": -0.1},
        {"knee_width": 1.2},
        {"ratio": 0.9},
        {"make_up_gain_db": float('inf')},
        {"target_peak": 0.0},
        {"target_peak": 1.1},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ConfigurationError):
            LimiterConfig(**kwargs)


class TestSoftKneeLimiter:
    """Transfer curve and output ceiling."""

    def test_above_knee(self):
        limiter = SoftKneeLimiter(LimiterConfig(threshold=0.5, knee_width=0.2, ratio=10.0))
        assert limiter.process_sample(1.0) == pytest.approx(0.55)
        assert limiter.process_sample(-1.0) == pytest.approx(-0.55)

    def test_below_knee_passes_with_makeup(self):
        config = LimiterConfig(threshold=0.5, knee_width=0.2, ratio=10.0, make_up_gain_db=3.0)
        limiter = SoftKneeLimiter(config)
        assert limiter.process_sample(0.1) == pytest.approx(0.1 * db_to_linear(3.0))
        assert limiter.process_sample(0.4) == pytest.approx(0.4 * db_to_linear(3.0))

    def test_zero_in_zero_out(self):
        assert SoftKneeLimiter().process_sample(0.0) == 0.0

    def test_knee_is_continuous(self):
        config = LimiterConfig(threshold=0.5, knee_width=0.2, ratio=10.0, target_peak=1.0)
        limiter = SoftKneeLimiter(config)
        eps = 1e-9

        lower = config.lower_knee
        assert limiter.process_sample(lower + eps) == pytest.approx(lower, abs=1e-6)

        upper = config.upper_knee
        above = config.threshold + (upper - config.threshold) / config.ratio
        assert limiter.process_sample(upper - eps) == pytest.approx(above, abs=1e-6)
        assert limiter.process_sample(upper) == pytest.approx(above, abs=1e-12)

        # Inside the knee the gain is always below unity
        levels = np.linspace(config.lower_knee, config.upper_knee, 50)[1:-1]
        shaped = limiter.process_buffer(levels.copy())
        assert np.all(shaped < levels)
        assert np.all(shaped > config.lower_knee)

    def test_knee_slope_matches_edges(self):
        config = LimiterConfig(threshold=0.5, knee_width=0.2, ratio=10.0, target_peak=1.0)
        limiter = SoftKneeLimiter(config)
        h = 1e-6

        def slope(a, b):
            return (limiter.process_sample(b) - limiter.process_sample(a)) / (b - a)

        lower, upper = config.lower_knee, config.upper_knee
        assert slope(lower - h, lower) == pytest.approx(1.0, abs=1e-3)
        assert slope(lower, lower + h) == pytest.approx(1.0, abs=1e-3)
        assert slope(upper - h, upper) == pytest.approx(1.0 / config.ratio, abs=1e-3)
        assert slope(upper, upper + h) == pytest.approx(1.0 / config.ratio, abs=1e-3)

    @pytest.mark.parametrize("ratio,knee_width", [(10.0, 0.2), (2.0, 0.5), (100.0, 1.0)])
    def test_transfer_curve_is_monotonic(self, ratio, knee_width):
        config = LimiterConfig(threshold=0.5, knee_width=knee_width, ratio=ratio, target_peak=1.0)
        levels = np.linspace(0.0, 1.0, 10001)
        shaped = SoftKneeLimiter(config).process_buffer(levels.copy())
        assert np.all(np.diff(shaped) >= 0.0)

    @pytest.mark.parametrize("level", [1.0, 3.0, 100.0, 1e6])
    def test_never_exceeds_target_peak(self, level):
        limiter = SoftKneeLimiter(LimiterConfig(make_up_gain_db=12.0, target_peak=0.9))
        audio = np.array([level, -level, level / 2])
        output = limiter.process_buffer(audio)
        assert np.max(np.abs(output)) <= 0.9

    def test_sign_preserved(self, sine):
        limiter = SoftKneeLimiter(LimiterConfig(threshold=0.3))
        audio = sine(440.0, 0.05, amplitude=1.0)
        output = limiter.process_buffer(audio.copy())
        assert np.all(np.sign(output) == np.sign(audio))

    def test_in_place_for_float_arrays(self):
        limiter = SoftKneeLimiter(LimiterConfig(threshold=0.5, knee_width=0.2, ratio=10.0))
        audio = np.array([1.0, 0.1, -1.0])
        output = limiter.process_buffer(audio)
        assert np.shares_memory(output, audio)
        np.testing.assert_allclose(audio, [0.55, 0.1, -0.55])

    def test_in_place_for_strided_views(self):
        limiter = SoftKneeLimiter(LimiterConfig(threshold=0.5, knee_width=0.2, ratio=10.0))
        audio = np.array([1.0, 9.0, 0.1, 9.0, -1.0, 9.0])
        view = audio[::2]
        output = limiter.process_buffer(view)
        assert output is view
        np.testing.assert_allclose(audio, [0.55, 9.0, 0.1, 9.0, -0.55, 9.0])

    def test_list_input_copied(self):
        limiter = SoftKneeLimiter()
        audio = [2.0, 0.1]
        output = limiter.process_buffer(audio)
        assert audio == [2.0, 0.1]
        assert isinstance(output, np.ndarray)

    def test_float32_in_place(self):
        limiter = SoftKneeLimiter(LimiterConfig(target_peak=0.5))
        audio = np.array([0.9, -0.9], dtype=np.float32)
        output = limiter.process_buffer(audio)
        assert output.dtype == np.float32
        assert np.max(np.abs(audio)) <= 0.5

    def test_non_finite_samples_zeroed(self):
        limiter = SoftKneeLimiter()
        audio = np.array([np.nan, np.inf, -np.inf, 0.5])
        output = limiter.process_buffer(audio)
        np.testing.assert_array_equal(output[:3], [0.0, 0.0, 0.0])
        assert output[3] == pytest.approx(0.5)

    def test_empty(self):
        assert len(SoftKneeLimiter().process_buffer(np.array([]))) == 0


class TestLimiterReport:
    """Statistics."""

    def test_report(self):
        limiter = SoftKneeLimiter(LimiterConfig(threshold=0.5, knee_width=0.2, ratio=10.0))
        limiter.process_buffer(np.array([1.0, 0.1, 0.1, 0.1]))

        report = limiter.get_report()
        assert report['input_peak_db'] == pytest.approx(0.0)
        assert report['output_peak_db'] == pytest.approx(20 * np.log10(0.55), abs=0.01)
        assert report['target_peak_db'] == pytest.approx(20 * np.log10(0.95), abs=0.01)
        assert report['samples_limited_percent'] == 25.0

    def test_reset(self):
        limiter = SoftKneeLimiter()
        limiter.process_buffer(np.array([2.0]))
        limiter.reset()
        assert limiter.get_report()['samples_limited_percent'] == 0.0


class TestSoftLimit:
    """Functional form."""

    def test_does_not_mutate(self):
        audio = np.array([2.0, -2.0, 0.1])
        output = soft_limit(audio, LimiterConfig(target_peak=0.8))
        np.testing.assert_array_equal(audio, [2.0, -2.0, 0.1])
        assert np.max(np.abs(output)) <= 0.8

    def test_default_config(self):
        output = soft_limit([0.5, 5.0])
        assert output[0] == pytest.approx(0.5)
        assert output[1] <= 0.95
