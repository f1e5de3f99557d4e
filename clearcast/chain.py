"""
Cleanup Chain Module

Builds the configured processing stages once and runs them in the fixed
order:

    noise gate -> noise reduction -> EQ -> multiband dynamics -> limiter -> normalizer

Any stage may be left out; the remaining stages keep their relative order.
Normalization always follows limiting so a peak target is met exactly, and
limiting always follows dynamics so compressed peaks are caught.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Dict, Any

import numpy as np

from .effects import AudioEffect, EffectType
from .equalizer import ThreeBandEQ
from .gate import NoiseGate
from .limiter import LimiterConfig, SoftKneeLimiter
from .multiband import BandParams, MultibandCompressor
from .noise_reduction import NoiseReductionParams, SpectralNoiseReducer
from .normalize import NormalizationMode, Normalizer
from .utils import SAMPLE_RATE, BufferLike, as_buffer, output_dtype

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class ChainConfig:
    """
    Configuration for a CleanupChain.

    A stage is enabled by giving its settings; None leaves it out.

    Attributes:
        sample_rate: Processing sample rate in Hz.
        gate_threshold: Noise gate threshold relative to the buffer peak (0 to 1).
        noise_profile: Noise magnitude profile; enables spectral noise reduction.
        noise_reduction: STFT settings for noise reduction.
        eq_gains_db: (low, mid, high) gains in dB for the three-band EQ.
        bands: Band layout for the multiband compressor.
        limiter: Soft-knee limiter settings.
        normalization: PEAK or RMS normalization.
        normalization_target: Linear peak (PEAK) or dBFS (RMS); None = default.
        name: Display name.
    """
    sample_rate: int = SAMPLE_RATE
    gate_threshold: Optional[float] = None
    noise_profile: Optional[np.ndarray] = None
    noise_reduction: NoiseReductionParams = field(default_factory=NoiseReductionParams)
    eq_gains_db: Optional[Tuple[float, float, float]] = None
    bands: Optional[List[BandParams]] = None
    limiter: Optional[LimiterConfig] = field(default_factory=LimiterConfig)
    normalization: Optional[NormalizationMode] = NormalizationMode.PEAK
    normalization_target: Optional[float] = None
    name: str = "Cleanup Chain"


# =============================================================================
# CLEANUP CHAIN
# =============================================================================

class CleanupChain:
    """
    Ordered chain of cleanup stages.

    Stages are validated and built at construction (ConfigurationError on
    invalid settings). process() holds a chain-level lock, so a single
    chain may be shared between threads; stage state is never touched
    concurrently.

    Usage:
        >>> chain = CleanupChain(ChainConfig(noise_profile=profile,
        ...                                  bands=create_preset_bands('podcast')))
        >>> cleaned = chain.process(audio)
    """

    def __init__(self, config: ChainConfig = None):
        self.config = config or ChainConfig()
        self._lock = threading.Lock()
        self.effects: List[AudioEffect] = self._build_effects()

        logger.debug(
            f"{self.config.name}: "
            + (" -> ".join(effect.name for effect in self.effects) or "no stages")
        )

    def _build_effects(self) -> List[AudioEffect]:
        cfg = self.config
        effects: List[AudioEffect] = []

        if cfg.gate_threshold is not None:
            effects.append(NoiseGate(cfg.gate_threshold))

        if cfg.noise_profile is not None and len(cfg.noise_profile) > 0:
            effects.append(SpectralNoiseReducer(cfg.noise_profile, cfg.noise_reduction,
                                                cfg.sample_rate))

        if cfg.eq_gains_db is not None:
            effects.append(ThreeBandEQ(cfg.sample_rate, *cfg.eq_gains_db))

        if cfg.bands:
            effects.append(MultibandCompressor(cfg.bands, cfg.sample_rate))

        if cfg.limiter is not None:
            effects.append(SoftKneeLimiter(cfg.limiter))

        if cfg.normalization is not None:
            normalizer = Normalizer(cfg.normalization, cfg.normalization_target)
            if (cfg.limiter is not None
                    and normalizer.mode == NormalizationMode.PEAK
                    and normalizer.target > cfg.limiter.target_peak):
                logger.warning(
                    f"Normalization peak {normalizer.target} is above the limiter "
                    f"ceiling {cfg.limiter.target_peak}"
                )
            effects.append(normalizer)

        return sorted(effects, key=lambda effect: effect.effect_type.rank)

    @property
    def stages(self) -> List[Tuple[EffectType, str]]:
        """(EffectType, name) of every active stage in execution order."""
        return [(effect.effect_type, effect.name) for effect in self.effects]

    def get_effect(self, effect_type: EffectType) -> Optional[AudioEffect]:
        """The stage of the given kind, or None if it is not in the chain."""
        for effect in self.effects:
            if effect.effect_type == effect_type:
                return effect
        return None

    def process(self, audio: BufferLike) -> np.ndarray:
        """
        Run every stage over one buffer.

        Args:
            audio: Input audio (mono)

        Returns:
            Processed audio of the same length (empty in, empty out)
        """
        buffer = as_buffer(audio)
        if len(buffer) == 0:
            return buffer.astype(output_dtype(audio), copy=False)

        with self._lock:
            for effect in self.effects:
                buffer = as_buffer(effect.process_buffer(buffer))

        return buffer.astype(output_dtype(audio), copy=False)

    def reset(self):
        """Clear the state of every stage."""
        with self._lock:
            for effect in self.effects:
                effect.reset()

    def get_meters(self) -> Dict[str, Any]:
        """Limiter report and per-band meters from the most recent calls."""
        meters: Dict[str, Any] = {}
        limiter = self.get_effect(EffectType.LIMITER)
        if limiter is not None:
            meters['limiter'] = limiter.get_report()
        multiband = self.get_effect(EffectType.MULTIBAND_COMPRESSOR)
        if multiband is not None:
            meters['bands'] = dict(zip(multiband.get_band_labels(),
                                       multiband.get_band_meters().values()))
        return meters
