"""
Spectral Noise Reduction Module

Short-time spectral noise suppression using a Wiener-style gain rule.

Key Features:
- STFT framework with Hann analysis/synthesis windows and overlap-add
  reconstruction normalised by the summed squared window
- Decision-directed clean-power estimate smoothed across frames
- Streaming reducer whose spectral estimate survives buffer boundaries
- Noise profile estimation from a noise-only reference segment

References:
- Wiener filtering for speech enhancement (Lim & Oppenheim)
- Ephraim & Malah: decision-directed a priori SNR estimation
- Allen: Short-time spectral analysis, synthesis and modification
"""

import logging
from dataclasses import dataclass
from typing import List

import numpy as np
from scipy import signal
from scipy.fft import rfft, irfft, rfftfreq

from .effects import AudioEffect, EffectType
from .utils import (
    SAMPLE_RATE,
    EPSILON,
    BufferLike,
    ConfigurationError,
    as_buffer,
    next_power_of_two,
    output_dtype,
)

logger = logging.getLogger(__name__)


# =============================================================================
# PARAMETERS
# =============================================================================

@dataclass
class NoiseReductionParams:
    """
    Parameters for the spectral noise reducer.

    Attributes:
        fft_size: Analysis window length. Rounded up to a power of two.
                  0 disables processing.
        hop_size: Step between successive windows (fft_size // 4 typical).
                  0 disables processing.
        smoothing: Smoothing factor for the clean-power estimate (0.0 to 1.0).
                   0 = follow each frame, values near 1 = slow, stable gains.
    """
    fft_size: int = 1024
    hop_size: int = 256
    smoothing: float = 0.85

    def __post_init__(self):
        if self.fft_size < 0 or self.hop_size < 0:
            raise ConfigurationError(
                f"fft_size and hop_size must be >= 0 "
                f"(got {self.fft_size}, {self.hop_size})"
            )
        if not 0.0 <= self.smoothing <= 1.0:
            raise ConfigurationError(
                f"smoothing must be between 0.0 and 1.0 (got {self.smoothing})"
            )


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def hann_window(size: int) -> np.ndarray:
    """Symmetric raised-cosine window of the given length."""
    if size <= 0:
        return np.zeros(0)
    return signal.windows.hann(size, sym=True)


def fit_noise_profile(noise_profile: BufferLike, num_bins: int) -> np.ndarray:
    """
    Truncate or zero-pad a magnitude profile to ``num_bins`` entries.

    Bins missing from a short profile are treated as noise-free.
    """
    profile = np.abs(as_buffer(noise_profile))[:num_bins]
    if len(profile) < num_bins:
        profile = np.concatenate([profile, np.zeros(num_bins - len(profile))])
    return profile


# =============================================================================
# STFT PROCESSOR BASE CLASS
# =============================================================================

class STFTProcessor:
    """
    Windowed analysis/synthesis with overlap-add reconstruction.

    Frames start at every multiple of hop_size inside the signal; frames
    running past the end are zero padded. Synthesis multiplies each inverse
    transform by the same window and divides the accumulated output by the
    summed squared window at every sample, so any hop size reconstructs
    the whole input, edges included, when process_frame() is the identity.

    Subclass this and override process_frame() for custom spectral processing.
    """

    def __init__(self, fft_size: int = 1024, hop_size: int = 256,
                 sample_rate: int = SAMPLE_RATE):
        """
        Initialize STFT processor.

        Args:
            fft_size: Window length (rounded up to a power of two, 0 = disabled)
            hop_size: Hop between frames (0 = disabled)
            sample_rate: Sample rate in Hz (used for bin frequencies only)
        """
        self.fft_size = next_power_of_two(fft_size) if fft_size > 0 else 0
        self.hop_size = int(hop_size)
        self.sample_rate = sample_rate
        self.num_bins = self.fft_size // 2 + 1 if self.fft_size else 0
        self.window = hann_window(self.fft_size)

    @property
    def is_degenerate(self) -> bool:
        """True when the configuration cannot run a transform."""
        return self.fft_size == 0 or self.hop_size == 0

    def frame_starts(self, n_samples: int) -> range:
        """Start offsets of every analysis frame for a signal of n_samples."""
        return range(0, n_samples, self.hop_size)

    def _windowed_frame(self, audio: np.ndarray, start: int) -> np.ndarray:
        frame = np.zeros(self.fft_size)
        chunk = audio[start:start + self.fft_size]
        frame[:len(chunk)] = chunk
        return frame * self.window

    def analyze(self, audio: np.ndarray) -> np.ndarray:
        """
        Convert audio to STFT representation.

        Args:
            audio: Input audio (mono)

        Returns:
            Complex STFT array of shape (n_frames, n_bins)
        """
        starts = self.frame_starts(len(audio))
        stft = np.zeros((len(starts), self.num_bins), dtype=np.complex128)
        for i, start in enumerate(starts):
            stft[i] = rfft(self._windowed_frame(audio, start))
        return stft

    def process_frame(self, frame: np.ndarray) -> np.ndarray:
        """Process a single STFT frame. Override in subclasses."""
        return frame

    def _process_mono(self, audio: np.ndarray) -> np.ndarray:
        """
        Run analysis -> process_frame -> overlap-add synthesis.

        The signal is preceded by fft_size - hop_size zeros so the first
        samples sit under as many frames as any interior sample. Samples no
        frame covers (hop_size > fft_size, or a window zero) pass through.
        """
        n_samples = len(audio)
        lead = max(self.fft_size - self.hop_size, 0)
        padded = np.concatenate([np.zeros(lead), audio])

        output = np.zeros(len(padded) + self.fft_size)
        window_sum = np.zeros(len(padded) + self.fft_size)
        window_sq = self.window ** 2

        for start in self.frame_starts(len(padded)):
            spectrum = rfft(self._windowed_frame(padded, start))
            spectrum = self.process_frame(spectrum)
            frame = irfft(spectrum, n=self.fft_size)

            end = start + self.fft_size
            output[start:end] += frame * self.window
            window_sum[start:end] += window_sq

        output = output[lead:lead + n_samples]
        window_sum = window_sum[lead:lead + n_samples]
        covered = window_sum > EPSILON
        output[covered] /= window_sum[covered]
        output[~covered] = audio[~covered]
        return output

    def get_frequency_bins(self) -> np.ndarray:
        """Get the frequency values for each STFT bin."""
        return rfftfreq(self.fft_size, 1.0 / self.sample_rate)


# =============================================================================
# SPECTRAL NOISE REDUCER
# =============================================================================

class SpectralNoiseReducer(STFTProcessor, AudioEffect):
    """
    Wiener-style spectral noise reducer.

    For every frame and bin:
        P = |X|^2, N = profile^2
        S = smoothing * S_prev + (1 - smoothing) * P * P / (P + N)
        X' = X * S / (S + N)

    The clean-power estimate S starts at the noise power and persists across
    process() calls, so consecutive buffers of one stream are treated as a
    continuous signal. The overlap-add buffer is fresh for every call.
    Call reset() when the stream restarts.

    Usage:
        >>> profile = estimate_noise_profile(noise_only, 1024)
        >>> reducer = SpectralNoiseReducer(profile, NoiseReductionParams())
        >>> for block in blocks:
        ...     cleaned = reducer.process(block)
    """

    effect_type = EffectType.NOISE_REDUCTION

    def __init__(self, noise_profile: BufferLike,
                 params: NoiseReductionParams = None,
                 sample_rate: int = SAMPLE_RATE):
        """
        Initialize the noise reducer.

        Args:
            noise_profile: Magnitude spectrum of a noise-only segment
            params: NoiseReductionParams configuration
            sample_rate: Sample rate in Hz
        """
        self.params = params or NoiseReductionParams()
        super().__init__(self.params.fft_size, self.params.hop_size, sample_rate)

        profile = as_buffer(noise_profile)
        self._has_profile = len(profile) > 0
        self.noise_power = fit_noise_profile(profile, self.num_bins) ** 2
        self.smoothing = float(self.params.smoothing)
        self._clean_power = self.noise_power.copy()

        if self.bypassed:
            logger.debug("SpectralNoiseReducer configured as pass-through")
        else:
            logger.debug(
                f"SpectralNoiseReducer: fft={self.fft_size}, hop={self.hop_size}, "
                f"bins={self.num_bins}, smoothing={self.smoothing}"
            )

    @property
    def bypassed(self) -> bool:
        """True when input is returned untouched (no profile or no transform)."""
        return self.is_degenerate or not self._has_profile

    @property
    def clean_power_estimate(self) -> np.ndarray:
        """Current per-bin clean-power estimate (copy)."""
        return self._clean_power.copy()

    def reset(self) -> None:
        self._clean_power = self.noise_power.copy()

    def process_frame(self, frame: np.ndarray) -> np.ndarray:
        power = np.abs(frame) ** 2
        wiener = power / (power + self.noise_power + EPSILON)

        self._clean_power = (self.smoothing * self._clean_power
                             + (1.0 - self.smoothing) * power * wiener)

        # Bins with no noise energy pass unchanged
        gain = np.ones_like(power)
        noisy = self.noise_power > 0
        clean = self._clean_power[noisy]
        gain[noisy] = clean / (clean + self.noise_power[noisy])
        return frame * gain

    def process(self, audio: BufferLike) -> np.ndarray:
        """
        Denoise a buffer.

        Args:
            audio: Noisy mono buffer

        Returns:
            Denoised buffer of identical length. Empty input, an empty noise
            profile, or a zero fft/hop size return a copy of the input.
        """
        buffer = as_buffer(audio)
        if len(buffer) == 0 or self.bypassed:
            return buffer.astype(output_dtype(audio), copy=False)

        buffer[~np.isfinite(buffer)] = 0.0
        output = self._process_mono(buffer)
        output[~np.isfinite(output)] = 0.0
        return output.astype(output_dtype(audio), copy=False)

    def process_buffer(self, audio: BufferLike) -> np.ndarray:
        return self.process(audio)

    def process_sample(self, sample: float) -> float:
        raise NotImplementedError(
            "SpectralNoiseReducer works on whole frames; use process_buffer()"
        )


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def reduce_noise_wiener(
    audio: BufferLike,
    noise_profile: BufferLike,
    fft_size: int = 1024,
    hop_size: int = 256,
    smoothing: float = 0.85,
) -> np.ndarray:
    """
    One-shot Wiener noise reduction with call-scoped spectral state.

    Args:
        audio: Noisy mono buffer
        noise_profile: Noise magnitude profile (fft_size // 2 + 1 values)
        fft_size: Transform size (rounded up to a power of two)
        hop_size: Hop between analysis windows
        smoothing: Clean-estimate smoothing factor (0.0 to 1.0)

    Returns:
        Denoised buffer of identical length

    Example:
        >>> profile = estimate_noise_profile(noise, 1024)
        >>> cleaned = reduce_noise_wiener(noisy, profile, 1024, 256, 0.85)
    """
    params = NoiseReductionParams(fft_size=fft_size, hop_size=hop_size,
                                  smoothing=smoothing)
    return SpectralNoiseReducer(noise_profile, params).process(audio)


def estimate_noise_profile(noise_signal: BufferLike, fft_size: int = 1024) -> np.ndarray:
    """
    Estimate a noise magnitude profile from a noise-only segment.

    Hann-windowed frames at 50% overlap; the power spectrum is averaged over
    every frame and the square root taken bin-wise.

    Args:
        noise_signal: Buffer containing only background noise
        fft_size: Transform size (rounded up to a power of two)

    Returns:
        Array of fft_size // 2 + 1 magnitudes, or an empty array for empty
        input or a zero fft_size.
    """
    buffer = as_buffer(noise_signal)
    if len(buffer) == 0 or fft_size <= 0:
        return np.zeros(0)

    size = next_power_of_two(fft_size)
    stft = STFTProcessor(size, max(size // 2, 1))
    spectra = stft.analyze(buffer)

    power = np.mean(np.abs(spectra) ** 2, axis=0)
    logger.debug(f"Estimated noise profile from {len(spectra)} frames (fft={size})")
    return np.sqrt(power)


def profile_frequencies(fft_size: int, sample_rate: int = SAMPLE_RATE) -> List[float]:
    """Centre frequency of every profile bin for the given transform size."""
    return list(STFTProcessor(fft_size, 1, sample_rate).get_frequency_bins())
