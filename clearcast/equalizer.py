"""
Three-Band Equalizer Module

Broad tonal shaping for speech: a low shelf, a mid peaking band and a high
shelf, each a biquad from the RBJ Audio EQ Cookbook.

Key Features:
- Low shelf at 250 Hz, peaking band at ~775 Hz, high shelf at 2.5 kHz
- Gains clamped to +/-12 dB
- Stateful biquads (Transposed Direct Form II) shared by the per-sample
  and block paths
- One-shot parametric_eq() with headroom pre-scaling and peak restoration

References:
- RBJ Audio EQ Cookbook: https://www.w3.org/TR/audio-eq-cookbook/
"""

import logging
from enum import Enum
from typing import Dict, Tuple

import numpy as np
from scipy.signal import lfilter

from .effects import AudioEffect, EffectType
from .utils import (
    SAMPLE_RATE,
    BufferLike,
    as_buffer,
    db_to_linear,
    output_dtype,
    peak_level,
)

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

LOW_SHELF_FREQ = 250.0               # Hz
MID_CENTER_FREQ = np.sqrt(200.0 * 3000.0)  # ~775 Hz, geometric centre of speech mids
HIGH_SHELF_FREQ = 2500.0             # Hz
SHELF_Q = 0.707                      # Butterworth
MID_Q = 2.0
MAX_GAIN_DB = 12.0


class FilterType(Enum):
    """Biquad shapes used by the equalizer."""
    PEAK = "peak"
    LOW_SHELF = "low_shelf"
    HIGH_SHELF = "high_shelf"


class EQBand(Enum):
    """Bands of the three-band equalizer."""
    LOW = "low"
    MID = "mid"
    HIGH = "high"


# (filter type, frequency, Q) per band
BAND_LAYOUT: Dict[EQBand, Tuple[FilterType, float, float]] = {
    EQBand.LOW: (FilterType.LOW_SHELF, LOW_SHELF_FREQ, SHELF_Q),
    EQBand.MID: (FilterType.PEAK, MID_CENTER_FREQ, MID_Q),
    EQBand.HIGH: (FilterType.HIGH_SHELF, HIGH_SHELF_FREQ, SHELF_Q),
}


def clamp_gain(gain_db: float) -> float:
    """Limit a band gain to +/-12 dB."""
    return float(np.clip(gain_db, -MAX_GAIN_DB, MAX_GAIN_DB))


# =============================================================================
# BIQUAD COEFFICIENTS
# =============================================================================

def calculate_biquad_coefficients(
    filter_type: FilterType,
    frequency: float,
    sample_rate: float,
    gain_db: float = 0.0,
    q: float = 1.0
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Calculate biquad filter coefficients using RBJ Audio EQ Cookbook.

    Args:
        filter_type: Type of filter
        frequency: Center/corner frequency in Hz
        sample_rate: Sample rate in Hz
        gain_db: Gain in dB
        q: Q factor (bandwidth)

    Returns:
        b, a: Numerator and denominator coefficients [b0, b1, b2], [1, a1, a2]
    """
    # Clamp frequency to valid range
    nyquist = sample_rate / 2
    frequency = np.clip(frequency, 1.0, nyquist * 0.99)

    A = 10 ** (gain_db / 40)
    w0 = 2 * np.pi * frequency / sample_rate
    cos_w0 = np.cos(w0)
    sin_w0 = np.sin(w0)
    alpha = sin_w0 / (2 * max(q, 0.001))

    if filter_type == FilterType.PEAK:
        b0 = 1 + alpha * A
        b1 = -2 * cos_w0
        b2 = 1 - alpha * A
        a0 = 1 + alpha / A
        a1 = -2 * cos_w0
        a2 = 1 - alpha / A

    elif filter_type == FilterType.LOW_SHELF:
        sqrt_2A_alpha = 2 * np.sqrt(A) * alpha

        b0 = A * ((A + 1) - (A - 1) * cos_w0 + sqrt_2A_alpha)
        b1 = 2 * A * ((A - 1) - (A + 1) * cos_w0)
        b2 = A * ((A + 1) - (A - 1) * cos_w0 - sqrt_2A_alpha)
        a0 = (A + 1) + (A - 1) * cos_w0 + sqrt_2A_alpha
        a1 = -2 * ((A - 1) + (A + 1) * cos_w0)
        a2 = (A + 1) + (A - 1) * cos_w0 - sqrt_2A_alpha

    elif filter_type == FilterType.HIGH_SHELF:
        sqrt_2A_alpha = 2 * np.sqrt(A) * alpha

        b0 = A * ((A + 1) + (A - 1) * cos_w0 + sqrt_2A_alpha)
        b1 = -2 * A * ((A - 1) + (A + 1) * cos_w0)
        b2 = A * ((A + 1) + (A - 1) * cos_w0 - sqrt_2A_alpha)
        a0 = (A + 1) - (A - 1) * cos_w0 + sqrt_2A_alpha
        a1 = 2 * ((A - 1) - (A + 1) * cos_w0)
        a2 = (A + 1) - (A - 1) * cos_w0 - sqrt_2A_alpha

    else:
        raise ValueError(f"Unknown filter type: {filter_type}")

    # Normalize by a0
    b = np.array([b0 / a0, b1 / a0, b2 / a0])
    a = np.array([1.0, a1 / a0, a2 / a0])

    return b, a


# =============================================================================
# BIQUAD FILTER CLASS
# =============================================================================

class BiquadFilter:
    """
    Single biquad filter with state.

    Uses Transposed Direct Form II for better numerical stability. The block
    path runs scipy.signal.lfilter on the same two state values.
    """

    def __init__(self, b: np.ndarray = None, a: np.ndarray = None):
        self.b = np.array([1.0, 0.0, 0.0]) if b is None else b
        self.a = np.array([1.0, 0.0, 0.0]) if a is None else a
        self.z1 = 0.0
        self.z2 = 0.0

    def set_coefficients(self, b: np.ndarray, a: np.ndarray):
        """Set filter coefficients (state is kept)."""
        self.b = b
        self.a = a

    def reset(self):
        """Reset filter state."""
        self.z1 = 0.0
        self.z2 = 0.0

    def process_sample(self, x: float) -> float:
        y = self.b[0] * x + self.z1
        self.z1 = self.b[1] * x - self.a[1] * y + self.z2
        self.z2 = self.b[2] * x - self.a[2] * y
        return y

    def process_block(self, audio: np.ndarray) -> np.ndarray:
        """Process a block, carrying state across calls."""
        output, zf = lfilter(self.b, self.a, audio, zi=[self.z1, self.z2])
        self.z1, self.z2 = float(zf[0]), float(zf[1])
        return output


# =============================================================================
# THREE-BAND EQ
# =============================================================================

class ThreeBandEQ(AudioEffect):
    """
    Low shelf -> mid peak -> high shelf equalizer.

    Usage:
        >>> eq = ThreeBandEQ(44100, low_gain_db=-3.0, mid_gain_db=2.0)
        >>> eq.set_gain(EQBand.HIGH, 4.0)
        >>> brighter = eq.process_buffer(voice)
    """

    effect_type = EffectType.EQUALIZER

    def __init__(self, sample_rate: float = SAMPLE_RATE,
                 low_gain_db: float = 0.0,
                 mid_gain_db: float = 0.0,
                 high_gain_db: float = 0.0):
        self.sample_rate = sample_rate
        self.gains: Dict[EQBand, float] = {}
        self.filters: Dict[EQBand, BiquadFilter] = {band: BiquadFilter() for band in EQBand}

        for band, gain_db in zip(EQBand, (low_gain_db, mid_gain_db, high_gain_db)):
            self.set_gain(band, gain_db)

        logger.debug(
            f"ThreeBandEQ: low={self.gains[EQBand.LOW]:+.1f} dB, "
            f"mid={self.gains[EQBand.MID]:+.1f} dB, high={self.gains[EQBand.HIGH]:+.1f} dB"
        )

    @property
    def is_flat(self) -> bool:
        """True when every band gain is 0 dB."""
        return all(gain == 0.0 for gain in self.gains.values())

    @property
    def max_gain_db(self) -> float:
        return max(abs(gain) for gain in self.gains.values())

    def set_gain(self, band: EQBand, gain_db: float):
        """Set one band's gain (clamped to +/-12 dB) and update its coefficients."""
        gain_db = clamp_gain(gain_db)
        self.gains[band] = gain_db

        filter_type, frequency, q = BAND_LAYOUT[band]
        b, a = calculate_biquad_coefficients(filter_type, frequency, self.sample_rate, gain_db, q)
        self.filters[band].set_coefficients(b, a)

    def reset(self):
        for biquad in self.filters.values():
            biquad.reset()

    def process_sample(self, sample: float) -> float:
        for band in EQBand:
            sample = self.filters[band].process_sample(sample)
        return float(sample)

    def process_buffer(self, audio: BufferLike) -> np.ndarray:
        output = as_buffer(audio)
        if len(output) == 0 or self.is_flat:
            return output.astype(output_dtype(audio), copy=False)

        for band in EQBand:
            output = self.filters[band].process_block(output)
        return output.astype(output_dtype(audio), copy=False)


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def parametric_eq(
    audio: BufferLike,
    sample_rate: float = SAMPLE_RATE,
    low_gain_db: float = 0.0,
    mid_gain_db: float = 0.0,
    high_gain_db: float = 0.0,
) -> np.ndarray:
    """
    One-shot three-band EQ with headroom management.

    When any gain is non-zero the input is pre-scaled by
    min(1, 1 / 10^(max|gain| / 20)) before filtering, and the result is
    rescaled so its peak equals the input peak (capped at 1.0).

    Args:
        audio: Input audio (mono)
        sample_rate: Sample rate in Hz
        low_gain_db: Low shelf gain (clamped to +/-12 dB)
        mid_gain_db: Mid peak gain (clamped to +/-12 dB)
        high_gain_db: High shelf gain (clamped to +/-12 dB)

    Returns:
        Equalized audio of the same length

    Example:
        >>> warmer = parametric_eq(voice, 44100, low_gain_db=3.0, high_gain_db=-2.0)
    """
    buffer = as_buffer(audio)
    eq = ThreeBandEQ(sample_rate, low_gain_db, mid_gain_db, high_gain_db)
    if len(buffer) == 0 or eq.is_flat:
        return buffer.astype(output_dtype(audio), copy=False)

    input_peak = peak_level(buffer)
    if input_peak == 0.0:
        return buffer.astype(output_dtype(audio), copy=False)

    scale_factor = min(1.0, 1.0 / db_to_linear(eq.max_gain_db))
    output = eq.process_buffer(buffer * scale_factor)

    output_peak = peak_level(output)
    if output_peak > 0.0:
        output *= min(input_peak, 1.0) / output_peak

    return output.astype(output_dtype(audio), copy=False)
