"""
Multiband Dynamics Module

Multiband compressor built from a crossover filter bank of second-order
bandpass sections and one RMS envelope-following compressor per band.

Key Features:
- Bilinear-transform bandpass design with exact unity gain at the band's
  geometric-mean centre frequency
- Crossover filter bank with filter state carried across calls, usable
  per-sample or per-buffer
- Optional residual top band so split + recombine reproduces the input
- Per-band RMS compressor with asymmetric attack/release and smoothed gain
- Per-band metering and voice-oriented presets

References:
- Bilinear transform with frequency pre-warping (Oppenheim & Schafer)
- RBJ Audio EQ Cookbook (constant 0 dB peak gain bandpass)
- Giannoulis, Massberg & Reiss: Digital dynamic range compressor design
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple, Dict, Sequence

import numpy as np
from scipy import signal

from .effects import AudioEffect, EffectType
from .utils import (
    SAMPLE_RATE,
    EPSILON,
    POWER_FLOOR,
    BufferLike,
    ConfigurationError,
    as_buffer,
    calculate_envelope_coeff,
    linear_to_db,
    output_dtype,
    peak_level,
    rms_level,
)

logger = logging.getLogger(__name__)


# Filter design keeps band edges inside [MIN_DESIGN_FREQ, MAX_DESIGN_RATIO * fs]
MIN_DESIGN_FREQ = 20.0
MAX_DESIGN_RATIO = 0.49
MIN_BANDWIDTH_RATIO = 1.1


# =============================================================================
# PARAMETERS
# =============================================================================

@dataclass
class BandParams:
    """
    Parameters for a single frequency band.

    Attributes:
        low_freq: Lower band edge in Hz (0 for the lowest band).
        high_freq: Upper band edge in Hz (Nyquist for the highest band).
        threshold_db: Compression threshold in dBFS (-60 to 0).
                      float('-inf') bypasses the band's compressor.
        ratio: Compression ratio (>= 1.0). 1.0 = no compression.
        attack_ms: Attack time in milliseconds (0.1 to 100).
        release_ms: Release time in milliseconds (5 to 2000).
    """
    low_freq: float = 0.0
    high_freq: float = 20000.0
    threshold_db: float = -20.0
    ratio: float = 4.0
    attack_ms: float = 10.0
    release_ms: float = 100.0

    def __post_init__(self):
        if not (self.threshold_db == float('-inf') or -60.0 <= self.threshold_db <= 0.0):
            raise ConfigurationError(
                f"threshold_db must be between -60 and 0 dB or -inf (got {self.threshold_db})"
            )
        if not self.ratio >= 1.0:
            raise ConfigurationError(f"ratio must be >= 1.0 (got {self.ratio})")
        if not 0.1 <= self.attack_ms <= 100.0:
            raise ConfigurationError(
                f"attack_ms must be between 0.1 and 100 ms (got {self.attack_ms})"
            )
        if not 5.0 <= self.release_ms <= 2000.0:
            raise ConfigurationError(
                f"release_ms must be between 5 and 2000 ms (got {self.release_ms})"
            )
        if not 0.0 <= self.low_freq < self.high_freq:
            raise ConfigurationError(
                f"Invalid band range {self.low_freq}-{self.high_freq} Hz"
            )

    @property
    def bypassed(self) -> bool:
        return self.threshold_db == float('-inf')


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def layout_tolerance(sample_rate: float) -> float:
    """Allowed edge mismatch in Hz: 1 Hz or 0.1% of Nyquist, whichever is larger."""
    return max(1.0, 0.001 * sample_rate / 2.0)


def validate_band_layout(bands: Sequence[BandParams], sample_rate: float) -> None:
    """
    Check that bands partition [0, Nyquist].

    Bands must be sorted by frequency, contiguous and non-overlapping, with
    the first band starting at 0 Hz and the last ending at Nyquist (within
    layout_tolerance()).

    Raises:
        ConfigurationError: on any violation
    """
    if len(bands) == 0:
        raise ConfigurationError("At least one band is required")

    nyquist = sample_rate / 2.0
    tol = layout_tolerance(sample_rate)

    if abs(bands[0].low_freq) > tol:
        raise ConfigurationError(
            f"First band must start at 0 Hz (got {bands[0].low_freq} Hz)"
        )
    if abs(bands[-1].high_freq - nyquist) > tol:
        raise ConfigurationError(
            f"Last band must end at Nyquist ({nyquist} Hz), got {bands[-1].high_freq} Hz"
        )

    for i in range(1, len(bands)):
        prev, band = bands[i - 1], bands[i]
        if band.low_freq < prev.low_freq:
            raise ConfigurationError(f"Bands are not sorted by frequency (band {i})")
        if band.low_freq < prev.high_freq - tol:
            raise ConfigurationError(
                f"Band {i} overlaps band {i - 1} "
                f"({band.low_freq} Hz < {prev.high_freq} Hz)"
            )
        if band.low_freq > prev.high_freq + tol:
            raise ConfigurationError(
                f"Gap between band {i - 1} and band {i} "
                f"({prev.high_freq}-{band.low_freq} Hz)"
            )


def design_bandpass(low_freq: float, high_freq: float,
                    sample_rate: float) -> Tuple[np.ndarray, np.ndarray]:
    """
    Design a second-order bandpass section.

    Edges are clamped to [20 Hz, 0.49 * fs] (high edge at least 1.1 * low),
    pre-warped, and the analog prototype B*s / (s^2 + B*s + W0^2) is mapped
    with the bilinear transform. The numerator is then rescaled so the
    magnitude at sqrt(low * high) is exactly 1.0.

    Args:
        low_freq: Lower edge in Hz
        high_freq: Upper edge in Hz
        sample_rate: Sample rate in Hz

    Returns:
        Tuple of (b, a) coefficient arrays, a[0] == 1
    """
    ceiling = MAX_DESIGN_RATIO * sample_rate
    low = min(max(low_freq, MIN_DESIGN_FREQ), ceiling)
    high = min(max(high_freq, low * MIN_BANDWIDTH_RATIO), ceiling)
    if high <= low:
        low = high / MIN_BANDWIDTH_RATIO

    # Pre-warp band edges
    omega_low = 2.0 * sample_rate * np.tan(np.pi * low / sample_rate)
    omega_high = 2.0 * sample_rate * np.tan(np.pi * high / sample_rate)
    bandwidth = omega_high - omega_low
    omega_0_sq = omega_low * omega_high

    b, a = signal.bilinear([bandwidth, 0.0], [1.0, bandwidth, omega_0_sq], fs=sample_rate)

    center = np.sqrt(low * high)
    _, h = signal.freqz(b, a, worN=[center], fs=sample_rate)
    center_gain = np.abs(h[0])
    if center_gain > EPSILON:
        b = b / center_gain

    return np.asarray(b, dtype=np.float64), np.asarray(a, dtype=np.float64)


# =============================================================================
# CROSSOVER FILTER BANK
# =============================================================================

class CrossoverFilterBank:
    """
    Splits a signal into frequency bands with one bandpass section per band.

    Each section runs in transposed direct form II; its two state values
    persist across process_sample() and split() calls, so a stream can be
    fed in arbitrary chunks. With perfect_reconstruction the highest band
    is the residual (input minus all lower bands) and recombine() returns
    the input exactly; otherwise every band is its own bandpass output.
    """

    def __init__(self, bands: Sequence[BandParams], sample_rate: int = SAMPLE_RATE,
                 perfect_reconstruction: bool = True):
        """
        Initialize the filter bank.

        Args:
            bands: Band layout partitioning [0, Nyquist]
            sample_rate: Sample rate in Hz
            perfect_reconstruction: Use a residual highest band

        Raises:
            ConfigurationError: if the layout is invalid
        """
        validate_band_layout(bands, sample_rate)
        self.bands = list(bands)
        self.sample_rate = sample_rate
        self.perfect_reconstruction = perfect_reconstruction
        self.num_bands = len(self.bands)

        self.coefficients = [
            design_bandpass(band.low_freq, band.high_freq, sample_rate)
            for band in self.bands
        ]
        self._state = np.zeros((self.num_bands, 2))

        logger.debug(
            f"CrossoverFilterBank: {self.num_bands} bands at {sample_rate} Hz "
            f"(perfect_reconstruction={perfect_reconstruction})"
        )

    @property
    def _filtered_bands(self) -> int:
        """Number of bands produced by an actual bandpass section."""
        if self.perfect_reconstruction:
            return self.num_bands - 1
        return self.num_bands

    def reset(self):
        """Clear every section's filter state."""
        self._state[:] = 0.0

    def process_sample(self, sample: float) -> np.ndarray:
        """
        Filter one sample through every band.

        Returns:
            Array of num_bands band outputs for this sample
        """
        outputs = np.zeros(self.num_bands)
        for i in range(self._filtered_bands):
            b, a = self.coefficients[i]
            z = self._state[i]
            y = b[0] * sample + z[0]
            z[0] = b[1] * sample - a[1] * y + z[1]
            z[1] = b[2] * sample - a[2] * y
            outputs[i] = y

        if self.perfect_reconstruction:
            outputs[-1] = sample - np.sum(outputs[:-1])
        return outputs

    def split(self, audio: BufferLike) -> List[np.ndarray]:
        """
        Split a buffer into bands.

        Args:
            audio: Input audio (mono)

        Returns:
            List of num_bands arrays, each the length of the input
        """
        buffer = as_buffer(audio)
        bands = []
        for i in range(self._filtered_bands):
            b, a = self.coefficients[i]
            band, self._state[i] = signal.lfilter(b, a, buffer, zi=self._state[i])
            bands.append(band)

        if self.perfect_reconstruction:
            residual = buffer.copy()
            for band in bands:
                residual -= band
            bands.append(residual)
        return bands

    def recombine(self, bands: List[np.ndarray]) -> np.ndarray:
        """
        Sum band signals back into one buffer.

        Args:
            bands: List of band audio arrays

        Returns:
            Reconstructed audio
        """
        if len(bands) == 0:
            return np.array([])

        output = np.zeros_like(bands[0], dtype=np.float64)
        for band in bands:
            output += band
        return output

    def frequency_response(self, n_points: int = 512) -> Tuple[np.ndarray, List[np.ndarray]]:
        """
        Magnitude response of every bandpass section.

        Returns:
            Tuple of (frequencies_hz, list of |H| arrays). The residual band,
            when used, is not included.
        """
        responses = []
        freqs = None
        for b, a in self.coefficients[:self._filtered_bands]:
            freqs, h = signal.freqz(b, a, worN=n_points, fs=self.sample_rate)
            responses.append(np.abs(h))
        if freqs is None:
            freqs = np.linspace(0, self.sample_rate / 2.0, n_points, endpoint=False)
        return freqs, responses


# =============================================================================
# BAND COMPRESSOR CLASS
# =============================================================================

class BandCompressor:
    """
    RMS envelope-following compressor for one band.

    Per sample:
        target = max(x^2, 1e-10)
        coeff = attack if target > envelope else release
        envelope = (1 - coeff) * target + coeff * envelope
        env_db = 10 * log10(envelope)
        target_gain = 1 if env_db <= threshold
                      else 10^(-(env_db - threshold) * (1 - 1/ratio) / 20)
        gain = (1 - coeff) * target_gain + coeff * gain
        y = x * gain    (non-finite y -> 0)

    Envelope and gain persist across calls until reset().
    """

    def __init__(self, params: BandParams, sample_rate: int = SAMPLE_RATE):
        """
        Initialize the band compressor.

        Args:
            params: BandParams configuration
            sample_rate: Sample rate in Hz
        """
        self.params = params
        self.sample_rate = sample_rate

        self.attack_coeff = calculate_envelope_coeff(params.attack_ms, sample_rate)
        self.release_coeff = calculate_envelope_coeff(params.release_ms, sample_rate)
        self.slope = 1.0 - 1.0 / params.ratio

        self.envelope = 0.0
        self.gain = 1.0
        self.last_gain_reduction_db = 0.0

    def reset(self):
        """Reset the compressor state."""
        self.envelope = 0.0
        self.gain = 1.0
        self.last_gain_reduction_db = 0.0

    def process_sample(self, sample: float) -> float:
        if self.params.bypassed:
            return sample
        if not np.isfinite(sample):
            sample = 0.0

        target = max(sample * sample, POWER_FLOOR)
        coeff = self.attack_coeff if target > self.envelope else self.release_coeff
        self.envelope = (1.0 - coeff) * target + coeff * self.envelope

        env_db = 10.0 * np.log10(self.envelope)
        if env_db <= self.params.threshold_db:
            target_gain = 1.0
        else:
            over_db = env_db - self.params.threshold_db
            target_gain = 10.0 ** (-over_db * self.slope / 20.0)

        self.gain = (1.0 - coeff) * target_gain + coeff * self.gain

        output = sample * self.gain
        if not np.isfinite(output):
            return 0.0
        return output

    def process(self, audio: BufferLike) -> np.ndarray:
        """
        Compress a buffer.

        Args:
            audio: Band audio (mono)

        Returns:
            Compressed audio of the same length
        """
        buffer = as_buffer(audio)
        if len(buffer) == 0 or self.params.bypassed:
            return buffer

        output = np.zeros(len(buffer))
        gain_reduction_sum = 0.0
        for i in range(len(buffer)):
            output[i] = self.process_sample(buffer[i])
            gain_reduction_sum -= linear_to_db(self.gain)

        self.last_gain_reduction_db = gain_reduction_sum / len(buffer)
        return output


# =============================================================================
# MULTIBAND COMPRESSOR CLASS
# =============================================================================

class MultibandCompressor(AudioEffect):
    """
    Multiband compressor.

    Algorithm:
    1. Split input with the crossover filter bank
    2. Compress each band with its own BandCompressor
    3. Sum the compressed bands

    Usage:
        >>> bands = bands_from_crossovers((250.0, 4000.0), 44100,
        ...                               thresholds_db=(-24, -20, -18),
        ...                               ratios=(3, 2, 2))
        >>> mbc = MultibandCompressor(bands, 44100)
        >>> processed = mbc.process(audio)
    """

    effect_type = EffectType.MULTIBAND_COMPRESSOR

    def __init__(self, bands: Sequence[BandParams], sample_rate: int = SAMPLE_RATE,
                 perfect_reconstruction: bool = True):
        """
        Initialize the multiband compressor.

        Args:
            bands: Band layout with per-band dynamics settings
            sample_rate: Audio sample rate in Hz
            perfect_reconstruction: Use a residual highest band

        Raises:
            ConfigurationError: if the layout is invalid
        """
        self.sample_rate = sample_rate
        self.filter_bank = CrossoverFilterBank(bands, sample_rate, perfect_reconstruction)
        self.bands = self.filter_bank.bands
        self.band_compressors = [BandCompressor(band, sample_rate) for band in self.bands]

        # Metering data
        self.last_band_meters: Dict[int, Dict[str, float]] = {}

    def reset(self):
        """Reset filter state and all band compressors."""
        self.filter_bank.reset()
        for compressor in self.band_compressors:
            compressor.reset()
        self.last_band_meters = {}

    def process_sample(self, sample: float) -> float:
        band_samples = self.filter_bank.process_sample(sample)
        return float(sum(
            compressor.process_sample(x)
            for compressor, x in zip(self.band_compressors, band_samples)
        ))

    def process(self, audio: BufferLike) -> np.ndarray:
        """
        Process audio through the multiband compressor.

        Args:
            audio: Input audio (mono)

        Returns:
            Processed audio of the same length
        """
        buffer = as_buffer(audio)
        if len(buffer) == 0:
            return buffer.astype(output_dtype(audio), copy=False)

        bands = self.filter_bank.split(buffer)
        processed_bands = []
        for i, (band, compressor) in enumerate(zip(bands, self.band_compressors)):
            processed = compressor.process(band)
            processed_bands.append(processed)
            self.last_band_meters[i] = {
                'peak_db': linear_to_db(peak_level(processed)),
                'rms_db': linear_to_db(rms_level(processed)),
                'gain_reduction_db': compressor.last_gain_reduction_db,
            }

        output = self.filter_bank.recombine(processed_bands)
        return output.astype(output_dtype(audio), copy=False)

    def process_buffer(self, audio: BufferLike) -> np.ndarray:
        return self.process(audio)

    def get_band_meters(self) -> Dict[int, Dict[str, float]]:
        """
        Get per-band metering data from last process() call.

        Returns:
            Dict mapping band index to meter values:
            - peak_db: Peak level in dB
            - rms_db: RMS level in dB
            - gain_reduction_db: Average gain reduction in dB
        """
        return self.last_band_meters.copy()

    def get_band_labels(self) -> List[str]:
        """
        Get human-readable labels for each band.

        Returns:
            List of band labels (e.g., "Low (0-250Hz)")
        """
        if len(self.bands) == 1:
            names = ['Full']
        else:
            names = ['Low', 'Low Mid', 'Mid', 'High Mid', 'Presence', 'Air']
            names = names[:len(self.bands) - 1] + ['High']

        labels = []
        for i, band in enumerate(self.bands):
            name = names[i] if i < len(names) else f'Band {i}'
            labels.append(f"{name} ({int(band.low_freq)}-{int(band.high_freq)}Hz)")
        return labels


# =============================================================================
# PRESETS
# =============================================================================

# Per-band settings; edges come from the crossover list, the top band ends at Nyquist
MULTIBAND_PRESETS: Dict[str, Dict[str, Tuple[float, ...]]] = {
    'voice_clarity': {
        'crossover_freqs': (250.0, 4000.0),
        'thresholds_db': (-24.0, -20.0, -22.0),
        'ratios': (3.0, 2.0, 2.5),
        'attack_ms': (20.0, 10.0, 5.0),
        'release_ms': (200.0, 120.0, 80.0),
    },
    'podcast': {
        'crossover_freqs': (120.0, 2000.0, 6000.0),
        'thresholds_db': (-28.0, -18.0, -20.0, -24.0),
        'ratios': (4.0, 2.5, 3.0, 3.0),
        'attack_ms': (30.0, 10.0, 5.0, 2.0),
        'release_ms': (250.0, 150.0, 100.0, 60.0),
    },
    'broadcast': {
        'crossover_freqs': (200.0, 1000.0, 5000.0),
        'thresholds_db': (-20.0, -16.0, -16.0, -20.0),
        'ratios': (4.0, 3.0, 3.0, 4.0),
        'attack_ms': (15.0, 8.0, 4.0, 1.0),
        'release_ms': (150.0, 100.0, 80.0, 50.0),
    },
    'gentle': {
        'crossover_freqs': (300.0,),
        'thresholds_db': (-18.0, -18.0),
        'ratios': (1.5, 1.5),
        'attack_ms': (20.0, 10.0),
        'release_ms': (200.0, 150.0),
    },
}


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def bands_from_crossovers(
    crossover_freqs: Sequence[float],
    sample_rate: int = SAMPLE_RATE,
    thresholds_db: Sequence[float] = (),
    ratios: Sequence[float] = (),
    attack_ms: Sequence[float] = (),
    release_ms: Sequence[float] = (),
) -> List[BandParams]:
    """
    Build a contiguous band layout from crossover frequencies.

    Creates len(crossover_freqs) + 1 bands spanning 0 Hz to Nyquist. Missing
    per-band settings fall back to the BandParams defaults.

    Example:
        >>> bands = bands_from_crossovers((250.0,), 44100, ratios=(2.0, 3.0))
    """
    edges = [0.0] + sorted(float(f) for f in crossover_freqs) + [sample_rate / 2.0]
    defaults = BandParams()

    def pick(values: Sequence[float], i: int, default: float) -> float:
        return float(values[i]) if i < len(values) else default

    bands = []
    for i in range(len(edges) - 1):
        bands.append(BandParams(
            low_freq=edges[i],
            high_freq=edges[i + 1],
            threshold_db=pick(thresholds_db, i, defaults.threshold_db),
            ratio=pick(ratios, i, defaults.ratio),
            attack_ms=pick(attack_ms, i, defaults.attack_ms),
            release_ms=pick(release_ms, i, defaults.release_ms),
        ))
    return bands


def create_preset_bands(preset: str, sample_rate: int = SAMPLE_RATE) -> List[BandParams]:
    """
    Band layout for a named preset at the given sample rate.

    Raises:
        ConfigurationError: for an unknown preset
    """
    if preset not in MULTIBAND_PRESETS:
        available = ', '.join(MULTIBAND_PRESETS.keys())
        raise ConfigurationError(f"Unknown preset: {preset}. Available: {available}")
    return bands_from_crossovers(sample_rate=sample_rate, **MULTIBAND_PRESETS[preset])


def compress_rms(
    audio: BufferLike,
    threshold_db: float,
    ratio: float,
    attack_ms: float,
    release_ms: float,
    sample_rate: int = SAMPLE_RATE,
) -> np.ndarray:
    """
    Single-call RMS compression with fresh envelope state.

    Args:
        audio: Input audio (mono)
        threshold_db: Threshold in dBFS, or float('-inf') to bypass
        ratio: Compression ratio (>= 1.0)
        attack_ms: Attack time in milliseconds
        release_ms: Release time in milliseconds
        sample_rate: Sample rate in Hz

    Returns:
        Compressed audio of the same length

    Example:
        >>> out = compress_rms(voice, -18.0, 4.0, 10.0, 100.0, 44100)
    """
    params = BandParams(threshold_db=threshold_db, ratio=ratio,
                        attack_ms=attack_ms, release_ms=release_ms)
    output = BandCompressor(params, sample_rate).process(audio)
    return output.astype(output_dtype(audio), copy=False)


def multiband_compress(
    audio: BufferLike,
    preset: str = "voice_clarity",
    sample_rate: int = SAMPLE_RATE,
    bands: Optional[Sequence[BandParams]] = None,
) -> np.ndarray:
    """
    Quick multiband compression with a preset or explicit band layout.

    Args:
        audio: Input audio array (mono)
        preset: Preset name from MULTIBAND_PRESETS (ignored if bands given)
        sample_rate: Audio sample rate in Hz
        bands: Optional explicit band layout

    Returns:
        Processed audio

    Example:
        >>> cleaned = multiband_compress(audio, preset='podcast')
    """
    if bands is None:
        bands = create_preset_bands(preset, sample_rate)
    return MultibandCompressor(bands, sample_rate).process(audio)
