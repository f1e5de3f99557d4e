"""
Loudness Normalization Module

Scales a whole buffer so its peak or RMS level hits a target.

Key Features:
- Peak normalization to a linear ceiling
- RMS normalization to a dBFS target
- Silent and empty buffers pass through unchanged
- Idempotent: normalizing an already-normalized buffer is a no-op
"""

import logging
from enum import Enum

import numpy as np

from .effects import AudioEffect, EffectType
from .utils import (
    DEFAULT_TARGET_PEAK,
    EPSILON,
    BufferLike,
    ConfigurationError,
    as_buffer,
    db_to_linear,
    output_dtype,
    peak_level,
    rms_level,
)

logger = logging.getLogger(__name__)


DEFAULT_TARGET_DBFS = -20.0


class NormalizationMode(Enum):
    """Level measurement used by the normalizer."""
    PEAK = "peak"  # target is a linear peak (0, 1]
    RMS = "rms"    # target is dBFS (<= 0)


# =============================================================================
# NORMALIZATION FUNCTIONS
# =============================================================================

def normalize_peak(audio: BufferLike, target_peak: float = DEFAULT_TARGET_PEAK) -> np.ndarray:
    """
    Scale so that max |sample| equals target_peak.

    Args:
        audio: Input audio (mono)
        target_peak: Linear peak target

    Returns:
        Scaled copy; unchanged copy when the buffer is empty or silent
    """
    buffer = as_buffer(audio)
    peak = peak_level(buffer)
    if peak <= EPSILON:
        logger.debug("normalize_peak: silent or empty buffer left unchanged")
        return buffer.astype(output_dtype(audio), copy=False)

    buffer *= target_peak / peak
    return buffer.astype(output_dtype(audio), copy=False)


def normalize_rms(audio: BufferLike, target_dbfs: float = DEFAULT_TARGET_DBFS) -> np.ndarray:
    """
    Scale so that the RMS level equals target_dbfs.

    Args:
        audio: Input audio (mono)
        target_dbfs: RMS target in dB relative to full scale

    Returns:
        Scaled copy; unchanged copy when the buffer is empty or silent

    Example:
        >>> normalize_rms([1.0, -1.0, 1.0, -1.0], -12.0)
        array([ 0.25118864, -0.25118864,  0.25118864, -0.25118864])
    """
    buffer = as_buffer(audio)
    rms = rms_level(buffer)
    if rms <= EPSILON:
        logger.debug("normalize_rms: silent or empty buffer left unchanged")
        return buffer.astype(output_dtype(audio), copy=False)

    buffer *= db_to_linear(target_dbfs) / rms
    return buffer.astype(output_dtype(audio), copy=False)


# =============================================================================
# NORMALIZER EFFECT
# =============================================================================

class Normalizer(AudioEffect):
    """
    Chain stage wrapping normalize_peak() / normalize_rms().

    Normalization is buffer-scoped: each process_buffer() call is measured
    and scaled on its own. process_sample() treats the sample as a one-sample
    buffer.
    """

    effect_type = EffectType.NORMALIZER

    def __init__(self, mode: NormalizationMode = NormalizationMode.PEAK,
                 target: float = None):
        """
        Args:
            mode: PEAK or RMS
            target: Linear peak in (0, 1] for PEAK, dBFS <= 0 for RMS.
                    Defaults to 0.95 peak or -20 dBFS.
        """
        self.mode = NormalizationMode(mode)
        if target is None:
            target = DEFAULT_TARGET_PEAK if self.mode == NormalizationMode.PEAK else DEFAULT_TARGET_DBFS
        self.target = float(target)

        if self.mode == NormalizationMode.PEAK and not 0.0 < self.target <= 1.0:
            raise ConfigurationError(f"Peak target must be in (0.0, 1.0] (got {self.target})")
        if self.mode == NormalizationMode.RMS and not self.target <= 0.0:
            raise ConfigurationError(f"RMS target must be <= 0 dBFS (got {self.target})")

    def process_buffer(self, audio: BufferLike) -> np.ndarray:
        if self.mode == NormalizationMode.PEAK:
            return normalize_peak(audio, self.target)
        return normalize_rms(audio, self.target)

    def process_sample(self, sample: float) -> float:
        return float(self.process_buffer([sample])[0])

    def reset(self):
        pass

    def __repr__(self) -> str:
        return f"<Normalizer ({self.mode.value}, target={self.target})>"
