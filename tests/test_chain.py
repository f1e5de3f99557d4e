"""
Tests for the cleanup chain: stage ordering, skipping, locking and metering.
"""

import logging
import threading

import pytest
import numpy as np

from clearcast.chain import ChainConfig, CleanupChain
from clearcast.effects import EffectType
from clearcast.limiter import LimiterConfig
from clearcast.multiband import create_preset_bands
from clearcast.noise_reduction import NoiseReductionParams, estimate_noise_profile
from clearcast.normalize import NormalizationMode
from clearcast.utils import ConfigurationError


def full_config(sample_rate, profile, **overrides):
    settings = dict(
        sample_rate=sample_rate,
        gate_threshold=0.01,
        noise_profile=profile,
        noise_reduction=NoiseReductionParams(1024, 256, 0.85),
        eq_gains_db=(-2.0, 1.0, 2.0),
        bands=create_preset_bands('voice_clarity', sample_rate),
        limiter=LimiterConfig(),
        normalization=NormalizationMode.PEAK,
    )
    settings.update(overrides)
    return ChainConfig(**settings)


@pytest.fixture
def profile(white_noise):
    return estimate_noise_profile(white_noise(8192, amplitude=0.02, seed=11), 1024)


@pytest.fixture
def noisy_voice(sine, white_noise):
    """Two harmonics over a noise floor, 0.3 s."""
    tone = sine(220.0, 0.3, amplitude=0.4) + sine(1760.0, 0.3, amplitude=0.1)
    return tone + white_noise(len(tone), amplitude=0.02, seed=12)


class TestStageOrder:
    """Fixed processing order."""

    def test_all_stages(self, sample_rate, profile):
        chain = CleanupChain(full_config(sample_rate, profile))
        assert [effect_type for effect_type, _ in chain.stages] == list(EffectType)

    def test_default_config(self):
        chain = CleanupChain()
        assert chain.stages == [
            (EffectType.LIMITER, "SoftKneeLimiter"),
            (EffectType.NORMALIZER, "Normalizer"),
        ]

    def test_skipped_stages_keep_order(self, sample_rate):
        config = ChainConfig(sample_rate=sample_rate, eq_gains_db=(0.0, 3.0, 0.0),
                             gate_threshold=0.02, normalization=None)
        chain = CleanupChain(config)
        assert [t for t, _ in chain.stages] == [
            EffectType.NOISE_GATE, EffectType.EQUALIZER, EffectType.LIMITER,
        ]

    def test_empty_profile_skips_noise_reduction(self, sample_rate):
        chain = CleanupChain(ChainConfig(sample_rate=sample_rate, noise_profile=np.array([])))
        assert chain.get_effect(EffectType.NOISE_REDUCTION) is None

    def test_no_stages(self):
        chain = CleanupChain(ChainConfig(limiter=None, normalization=None))
        assert chain.stages == []
        audio = np.array([0.1, -2.0])
        np.testing.assert_array_equal(chain.process(audio), audio)

    def test_get_effect(self, sample_rate, profile):
        chain = CleanupChain(full_config(sample_rate, profile))
        assert chain.get_effect(EffectType.EQUALIZER).name == "ThreeBandEQ"


class TestChainValidation:
    """Construction-time validation."""

    def test_invalid_gate(self):
        with pytest.raises(ConfigurationError):
            CleanupChain(ChainConfig(gate_threshold=1.5))

    def test_invalid_normalization_target(self):
        with pytest.raises(ConfigurationError):
            CleanupChain(ChainConfig(normalization_target=2.0))

    def test_warns_when_normalizing_above_ceiling(self, caplog):
        config = ChainConfig(limiter=LimiterConfig(target_peak=0.8), normalization_target=0.95)
        with caplog.at_level(logging.WARNING, logger="clearcast.chain"):
            CleanupChain(config)
        assert "above the limiter ceiling" in caplog.text


class TestChainProcessing:
    """End-to-end processing."""

    def test_length_preserved(self, sample_rate, profile, noisy_voice):
        chain = CleanupChain(full_config(sample_rate, profile))
        output = chain.process(noisy_voice)
        assert len(output) == len(noisy_voice)
        assert np.all(np.isfinite(output))

    def test_empty_input(self, sample_rate, profile):
        chain = CleanupChain(full_config(sample_rate, profile))
        assert len(chain.process(np.array([]))) == 0

    def test_peak_normalized_output(self, sample_rate, profile, noisy_voice):
        chain = CleanupChain(full_config(sample_rate, profile))
        output = chain.process(noisy_voice)
        assert np.max(np.abs(output)) == pytest.approx(0.95, abs=1e-4)

    def test_limiter_ceiling_without_normalization(self, sample_rate, sine):
        config = ChainConfig(sample_rate=sample_rate, eq_gains_db=(12.0, 12.0, 12.0),
                             limiter=LimiterConfig(target_peak=0.7), normalization=None)
        output = CleanupChain(config).process(sine(200.0, 0.2, amplitude=0.9))
        assert np.max(np.abs(output)) <= 0.7

    def test_rms_normalization(self, sample_rate, noisy_voice):
        config = ChainConfig(sample_rate=sample_rate, normalization=NormalizationMode.RMS,
                             normalization_target=-18.0)
        output = CleanupChain(config).process(noisy_voice)
        rms_db = 20 * np.log10(np.sqrt(np.mean(output ** 2)))
        assert rms_db == pytest.approx(-18.0, abs=1e-6)

    def test_input_not_mutated(self, sample_rate, profile, noisy_voice):
        original = noisy_voice.copy()
        CleanupChain(full_config(sample_rate, profile)).process(noisy_voice)
        np.testing.assert_array_equal(noisy_voice, original)

    def test_float32_preserved(self, sample_rate, profile, noisy_voice):
        chain = CleanupChain(full_config(sample_rate, profile))
        assert chain.process(noisy_voice.astype(np.float32)).dtype == np.float32

    def test_reset_repeats_output(self, sample_rate, profile, noisy_voice):
        chain = CleanupChain(full_config(sample_rate, profile))
        first = chain.process(noisy_voice)
        chain.reset()
        np.testing.assert_allclose(chain.process(noisy_voice), first, atol=1e-12)

    def test_shared_between_threads(self, sample_rate, profile, noisy_voice):
        chain = CleanupChain(full_config(sample_rate, profile))
        results = []
        errors = []

        def worker():
            try:
                results.append(chain.process(noisy_voice[:4096]))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert len(results) == 4
        assert all(len(r) == 4096 and np.all(np.isfinite(r)) for r in results)


class TestChainMeters:
    """Limiter report and band meters."""

    def test_meters(self, sample_rate, profile, noisy_voice):
        chain = CleanupChain(full_config(sample_rate, profile))
        chain.process(noisy_voice)

        meters = chain.get_meters()
        assert set(meters) == {'limiter', 'bands'}
        assert 'samples_limited_percent' in meters['limiter']
        assert len(meters['bands']) == 3
        for label, values in meters['bands'].items():
            assert 'gain_reduction_db' in values

    def test_meters_without_stages(self):
        chain = CleanupChain(ChainConfig(limiter=None, normalization=None))
        assert chain.get_meters() == {}
