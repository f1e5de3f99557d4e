"""
Utility functions and constants for the cleanup engine.

Provides:
- Audio constants (sample rate, numeric guards)
- dB / linear conversions
- Envelope-follower coefficient calculation
- Buffer coercion shared by every stage
"""

from typing import Sequence, Union

import numpy as np


# =============================================================================
# AUDIO CONSTANTS
# =============================================================================

SAMPLE_RATE = 44100  # Hz - default processing rate

# Guard used for near-zero denominators (RMS, peak, window sums)
EPSILON = 1e-10

# Floor applied to squared samples before taking logarithms
POWER_FLOOR = 1e-10

# Default output ceiling / normalization peak (95% of full scale)
DEFAULT_TARGET_PEAK = 0.95


BufferLike = Union[np.ndarray, Sequence[float]]


# =============================================================================
# ERRORS
# =============================================================================

class ConfigurationError(ValueError):
    """Raised when a processing component is built from invalid parameters."""
    pass


# =============================================================================
# CONVERSIONS
# =============================================================================

def db_to_linear(db: float) -> float:
    """Convert decibels to linear amplitude."""
    return 10.0 ** (db / 20.0)


def linear_to_db(linear: float) -> float:
    """Convert linear amplitude to decibels (floored at -200 dB)."""
    return 20.0 * np.log10(max(linear, EPSILON))


def calculate_envelope_coeff(time_ms: float, sample_rate: float) -> float:
    """
    Calculate the one-pole smoothing coefficient for an envelope follower.

    coeff = exp(-1 / (time_ms * 0.001 * sample_rate))

    Args:
        time_ms: Time constant in milliseconds
        sample_rate: Sample rate in Hz

    Returns:
        Filter coefficient in [0, 1). 0.0 for non-positive times.
    """
    time_samples = time_ms * 0.001 * sample_rate
    if time_samples <= 0:
        return 0.0
    return float(np.exp(-1.0 / time_samples))


def next_power_of_two(n: int) -> int:
    """Smallest power of two >= n (1 for n <= 1)."""
    if n <= 1:
        return 1
    return 1 << (int(n) - 1).bit_length()


def as_buffer(audio: BufferLike) -> np.ndarray:
    """
    Coerce input to a 1-D float64 working buffer.

    Always returns a new array so callers can mutate the result freely.
    """
    buffer = np.array(audio, dtype=np.float64)
    if buffer.ndim != 1:
        buffer = buffer.reshape(-1)
    return buffer


def output_dtype(audio: BufferLike) -> np.dtype:
    """Float dtype to hand back to the caller (float32 stays float32)."""
    if isinstance(audio, np.ndarray) and np.issubdtype(audio.dtype, np.floating):
        return audio.dtype
    return np.dtype(np.float64)


def peak_level(audio: np.ndarray) -> float:
    """Maximum absolute sample value (0.0 for empty buffers)."""
    if len(audio) == 0:
        return 0.0
    return float(np.max(np.abs(audio)))


def rms_level(audio: np.ndarray) -> float:
    """Root-mean-square level (0.0 for empty buffers)."""
    if len(audio) == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(audio))))
