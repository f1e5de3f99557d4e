"""
ClearCast

An audio cleanup pipeline for mono speech recordings: spectral noise
reduction, tonal shaping, multiband dynamics, soft-knee limiting and
loudness normalization, usable as single-call transforms or as a
configurable multi-stage chain.
"""

__version__ = "0.1.0"
__author__ = "ClearCast Team"

from .utils import (
    SAMPLE_RATE,
    ConfigurationError,
    db_to_linear,
    linear_to_db,
)
from .effects import AudioEffect, EffectType
from .noise_reduction import (
    NoiseReductionParams,
    SpectralNoiseReducer,
    reduce_noise_wiener,
    estimate_noise_profile,
)
from .multiband import (
    BandParams,
    CrossoverFilterBank,
    BandCompressor,
    MultibandCompressor,
    MULTIBAND_PRESETS,
    design_bandpass,
    compress_rms,
    bands_from_crossovers,
    create_preset_bands,
    multiband_compress,
)
from .equalizer import EQBand, ThreeBandEQ, parametric_eq
from .limiter import LimiterConfig, SoftKneeLimiter, soft_limit
from .normalize import NormalizationMode, Normalizer, normalize_peak, normalize_rms
from .gate import NoiseGate
from .chain import ChainConfig, CleanupChain
from .config_loader import (
    ConfigLoader,
    ConfigLoadError,
    chain_config_from_dict,
    get_config_loader,
)

__all__ = [
    # Utilities
    "SAMPLE_RATE",
    "ConfigurationError",
    "db_to_linear",
    "linear_to_db",
    # Effect contract
    "AudioEffect",
    "EffectType",
    # Noise reduction
    "NoiseReductionParams",
    "SpectralNoiseReducer",
    "reduce_noise_wiener",
    "estimate_noise_profile",
    # Multiband dynamics
    "BandParams",
    "CrossoverFilterBank",
    "BandCompressor",
    "MultibandCompressor",
    "MULTIBAND_PRESETS",
    "design_bandpass",
    "compress_rms",
    "bands_from_crossovers",
    "create_preset_bands",
    "multiband_compress",
    # Equalizer
    "EQBand",
    "ThreeBandEQ",
    "parametric_eq",
    # Limiter
    "LimiterConfig",
    "SoftKneeLimiter",
    "soft_limit",
    # Normalization
    "NormalizationMode",
    "Normalizer",
    "normalize_peak",
    "normalize_rms",
    # Gate
    "NoiseGate",
    # Chain
    "ChainConfig",
    "CleanupChain",
    # Configuration
    "ConfigLoader",
    "ConfigLoadError",
    "chain_config_from_dict",
    "get_config_loader",
]
