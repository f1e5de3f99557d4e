"""
Soft-Knee Limiter Module

Static soft-knee limiter with a hard safety clamp, used as the output
protection stage of the cleanup chain.

Key Features:
- Transparent below the knee (make-up gain only)
- Quadratic knee blending from unity into full ratio compression, matching
  both curves in value and slope at the knee edges
- Ratio-based compression above the knee
- Hard clamp to +/-target_peak after shaping, on every sample
- Limiting statistics for reporting

Transfer curve (|x| = magnitude, makeup = 10^(make_up_gain_db / 20)):
    lower = threshold * (1 - knee_width), upper = threshold * (1 + knee_width)
    |x| <= lower:          y = x * makeup
    lower < |x| < upper:   y = sign(x) * (|x| + (1/ratio - 1) * (|x| - lower)^2
                                          / (2 * (upper - lower))) * makeup
    |x| >= upper:          y = sign(x) * (threshold + (|x| - threshold) / ratio) * makeup
    then y = clip(y, -target_peak, target_peak)
"""

import logging
from dataclasses import dataclass
from typing import Dict

import numpy as np

from .effects import AudioEffect, EffectType
from .utils import (
    DEFAULT_TARGET_PEAK,
    BufferLike,
    ConfigurationError,
    as_buffer,
    db_to_linear,
    linear_to_db,
    output_dtype,
)

logger = logging.getLogger(__name__)


# =============================================================================
# PARAMETERS
# =============================================================================

@dataclass(frozen=True)
class LimiterConfig:
    """
    Soft-knee limiter configuration.

    Attributes:
        threshold: Linear threshold (0.0 to 1.0).
        knee_width: Knee width as a fraction of the threshold (0.0 to 1.0).
        ratio: Compression ratio above the knee (>= 1.0).
        make_up_gain_db: Gain applied after shaping, in dB.
        target_peak: Absolute output ceiling (0.0 < target_peak <= 1.0).
    """
    threshold: float = 0.9
    knee_width: float = 0.1
    ratio: float = 8.0
    make_up_gain_db: float = 0.0
    target_peak: float = DEFAULT_TARGET_PEAK

    def __post_init__(self):
        if not 0.0 <= self.threshold <= 1.0:
            raise ConfigurationError(
                f"threshold must be between 0.0 and 1.0 (got {self.threshold})"
            )
        if not 0.0 <= self.knee_width <= 1.0:
            raise ConfigurationError(
                f"knee_width must be between 0.0 and 1.0 (got {self.knee_width})"
            )
        if not self.ratio >= 1.0:
            raise ConfigurationError(f"ratio must be >= 1.0 (got {self.ratio})")
        if not np.isfinite(self.make_up_gain_db):
            raise ConfigurationError(
                f"make_up_gain_db must be finite (got {self.make_up_gain_db})"
            )
        if not 0.0 < self.target_peak <= 1.0:
            raise ConfigurationError(
                f"target_peak must be in (0.0, 1.0] (got {self.target_peak})"
            )

    @property
    def lower_knee(self) -> float:
        return self.threshold * (1.0 - self.knee_width)

    @property
    def upper_knee(self) -> float:
        return self.threshold * (1.0 + self.knee_width)

    @property
    def makeup(self) -> float:
        return db_to_linear(self.make_up_gain_db)


# =============================================================================
# SOFT-KNEE LIMITER CLASS
# =============================================================================

class SoftKneeLimiter(AudioEffect):
    """
    Memoryless soft-knee limiter with a final hard clamp.

    Usage:
        >>> limiter = SoftKneeLimiter(LimiterConfig(threshold=0.5, knee_width=0.2, ratio=10.0))
        >>> safe = limiter.process_buffer(audio)
        >>> report = limiter.get_report()
    """

    effect_type = EffectType.LIMITER

    def __init__(self, config: LimiterConfig = None):
        self.config = config or LimiterConfig()
        self._lower = self.config.lower_knee
        self._upper = self.config.upper_knee
        self._makeup = self.config.makeup

        # Statistics
        self._input_peak = 0.0
        self._output_peak = 0.0
        self._samples_limited = 0
        self._total_samples = 0

        logger.debug(f"SoftKneeLimiter: {self.config}")

    def _shape(self, magnitude: np.ndarray) -> np.ndarray:
        """Apply the static transfer curve to non-negative magnitudes."""
        cfg = self.config
        lower, upper = self._lower, self._upper

        shaped = magnitude.copy()

        knee = (magnitude > lower) & (magnitude < upper)
        if np.any(knee):
            over = magnitude[knee] - lower
            slope = 1.0 / cfg.ratio - 1.0
            shaped[knee] = magnitude[knee] + slope * over * over / (2.0 * (upper - lower))

        above = magnitude >= upper
        shaped[above] = cfg.threshold + (magnitude[above] - cfg.threshold) / cfg.ratio

        return np.minimum(shaped * self._makeup, cfg.target_peak)

    def apply(self, audio: np.ndarray) -> np.ndarray:
        """Return the limited signal for a float64 array (no statistics)."""
        finite = np.isfinite(audio)
        magnitude = np.where(finite, np.abs(audio), 0.0)
        output = np.sign(audio) * self._shape(magnitude)
        output[~finite] = 0.0
        return output

    def process_sample(self, sample: float) -> float:
        return float(self.apply(np.array([sample], dtype=np.float64))[0])

    def process_buffer(self, audio: BufferLike) -> np.ndarray:
        """
        Limit a buffer.

        Float ndarrays (including non-contiguous views) are limited in place
        and returned; any other input is copied into a new float64 array.

        Args:
            audio: Input audio (mono)

        Returns:
            Limited audio, every |sample| <= target_peak
        """
        in_place = isinstance(audio, np.ndarray) and np.issubdtype(audio.dtype, np.floating)
        working = audio.astype(np.float64).reshape(-1) if in_place else as_buffer(audio)

        if len(working) == 0:
            return audio if in_place else working

        limited = self.apply(working)
        self._update_statistics(working, limited)

        if in_place:
            audio[...] = limited.reshape(audio.shape)
            return audio
        return limited

    def _update_statistics(self, before: np.ndarray, after: np.ndarray):
        finite = before[np.isfinite(before)]
        if len(finite):
            self._input_peak = max(self._input_peak, float(np.max(np.abs(finite))))
        self._output_peak = max(self._output_peak, float(np.max(np.abs(after))))
        self._samples_limited += int(np.count_nonzero(np.abs(before) > self._lower))
        self._total_samples += len(before)

    def reset(self):
        """Reset limiting statistics (the transfer curve itself is stateless)."""
        self._input_peak = 0.0
        self._output_peak = 0.0
        self._samples_limited = 0
        self._total_samples = 0

    def get_report(self) -> Dict:
        """
        Summary of the limiting applied since the last reset().

        Returns:
            {
                'input_peak_db': float,
                'output_peak_db': float,
                'target_peak_db': float,
                'samples_limited_percent': float,
            }
        """
        limited_percent = 0.0
        if self._total_samples > 0:
            limited_percent = (self._samples_limited / self._total_samples) * 100.0

        return {
            'input_peak_db': round(linear_to_db(self._input_peak), 2),
            'output_peak_db': round(linear_to_db(self._output_peak), 2),
            'target_peak_db': round(linear_to_db(self.config.target_peak), 2),
            'samples_limited_percent': round(limited_percent, 2),
        }


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def soft_limit(audio: BufferLike, config: LimiterConfig = None) -> np.ndarray:
    """
    Functional form of the limiter; never mutates its input.

    Example:
        >>> out = soft_limit(audio, LimiterConfig(threshold=0.8, target_peak=0.9))
    """
    buffer = as_buffer(audio)
    limited = SoftKneeLimiter(config).apply(buffer)
    return limited.astype(output_dtype(audio), copy=False)
