"""
Noise gate relative to the buffer peak.

Samples whose magnitude is strictly below ``threshold * peak(buffer)`` are
zeroed; samples at or above that level pass untouched.
"""

import logging

import numpy as np

from .effects import AudioEffect, EffectType
from .utils import BufferLike, ConfigurationError, as_buffer, output_dtype, peak_level

logger = logging.getLogger(__name__)


DEFAULT_GATE_THRESHOLD = 0.05  # 5% of the buffer peak


class NoiseGate(AudioEffect):
    """Peak-relative noise gate (buffer-scoped, no attack/release)."""

    effect_type = EffectType.NOISE_GATE

    def __init__(self, threshold: float = DEFAULT_GATE_THRESHOLD):
        if not 0.0 <= threshold <= 1.0:
            raise ConfigurationError(
                f"Gate threshold must be between 0.0 and 1.0 (got {threshold})"
            )
        self.threshold = float(threshold)

    def process_buffer(self, audio: BufferLike) -> np.ndarray:
        buffer = as_buffer(audio)
        if len(buffer) == 0:
            return buffer.astype(output_dtype(audio), copy=False)

        level = self.threshold * peak_level(buffer)
        gated = np.abs(buffer) < level
        buffer[gated] = 0.0

        logger.debug(f"NoiseGate: {int(np.count_nonzero(gated))}/{len(buffer)} samples gated")
        return buffer.astype(output_dtype(audio), copy=False)

    def process_sample(self, sample: float) -> float:
        return float(self.process_buffer([sample])[0])

    def reset(self):
        pass
