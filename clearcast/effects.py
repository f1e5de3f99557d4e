"""
Effect Contract Module

Defines the closed set of stage kinds the cleanup chain knows about and the
small capability contract every single-channel stage satisfies:
process one sample, process one buffer, reset internal state, report a name.
"""

from abc import ABC, abstractmethod
from enum import Enum

import numpy as np

from .utils import BufferLike, as_buffer, output_dtype


# =============================================================================
# EFFECT TYPES
# =============================================================================

class EffectType(Enum):
    """Stage kinds, declared in mandatory processing order."""
    NOISE_GATE = "noise_gate"
    NOISE_REDUCTION = "noise_reduction"      # STFT Wiener filter
    EQUALIZER = "equalizer"                  # Spectral/tonal shaping
    MULTIBAND_COMPRESSOR = "multiband_compressor"
    LIMITER = "limiter"                      # Soft knee + hard safety clamp
    NORMALIZER = "normalizer"                # Peak or RMS target

    @property
    def rank(self) -> int:
        """Position of this stage kind in the processing order."""
        return list(EffectType).index(self)


# =============================================================================
# EFFECT BASE CLASS
# =============================================================================

class AudioEffect(ABC):
    """
    Base class for a single-channel processing stage.

    Subclasses implement process_sample() and reset(). The default
    process_buffer() loops over process_sample(); stages with a vectorised
    or block-based implementation override it.
    """

    effect_type: EffectType

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def process_sample(self, sample: float) -> float:
        """Process a single sample."""

    def process_buffer(self, audio: BufferLike) -> np.ndarray:
        """Process a whole buffer, returning a new array of the same length."""
        buffer = as_buffer(audio)
        for i in range(len(buffer)):
            buffer[i] = self.process_sample(buffer[i])
        return buffer.astype(output_dtype(audio), copy=False)

    @abstractmethod
    def reset(self) -> None:
        """Clear any state carried between calls."""

    def __repr__(self) -> str:
        return f"<{self.name} ({self.effect_type.value})>"
