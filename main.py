#!/usr/bin/env python3
"""
ClearCast - CLI Entry Point

Clean up a spoken-word WAV recording: noise reduction, EQ, multiband
dynamics, limiting and normalization.

Usage:
    python main.py interview.wav cleaned.wav --preset podcast --noise-sample room.wav
    python main.py raw.wav out.wav --noise-seconds 0.5 --multiband voice_clarity
    python main.py raw.wav out.wav --normalize rms --target -16 --target-peak 0.9
    python main.py --list-presets

Features:
    - Noise profile from a separate noise recording or the leading silence
    - YAML presets, with any stage overridable from the command line
    - Integer PCM or float WAV input, multi-channel input downmixed to mono
    - 32-bit float WAV output
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import numpy as np
from colorama import init, Fore, Style
from scipy.io import wavfile

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from clearcast import (
    CleanupChain,
    ConfigLoader,
    ConfigLoadError,
    ConfigurationError,
    MULTIBAND_PRESETS,
    chain_config_from_dict,
    estimate_noise_profile,
)
from clearcast.utils import linear_to_db, peak_level, rms_level

logger = logging.getLogger("clearcast.cli")


def print_info(message: str):
    """Print info message."""
    print(f"{Fore.CYAN}i{Style.RESET_ALL}  {message}")


def print_success(message: str):
    """Print success message."""
    print(f"{Fore.GREEN}✓{Style.RESET_ALL}  {message}")


# =============================================================================
# WAV I/O
# =============================================================================

def to_mono_float(data: np.ndarray) -> np.ndarray:
    """
    Convert WAV sample data to mono float64 in [-1, 1].

    Integer PCM is scaled by its full-scale value (unsigned 8-bit is
    re-centred first); channels are averaged.
    """
    if data.dtype == np.uint8:
        audio = (data.astype(np.float64) - 128.0) / 128.0
    elif np.issubdtype(data.dtype, np.integer):
        audio = data.astype(np.float64) / float(-np.iinfo(data.dtype).min)
    else:
        audio = data.astype(np.float64)

    if audio.ndim > 1:
        audio = audio.mean(axis=1)
    return audio


def read_wav(path: Path) -> Tuple[int, np.ndarray]:
    """Read a WAV file as (sample_rate, mono float64 samples)."""
    sample_rate, data = wavfile.read(str(path))
    logger.debug(f"Read {path}: {sample_rate} Hz, shape {data.shape}, {data.dtype}")
    return sample_rate, to_mono_float(data)


def write_wav(path: Path, sample_rate: int, audio: np.ndarray):
    """Write mono audio as a 32-bit float WAV."""
    path.parent.mkdir(parents=True, exist_ok=True)
    wavfile.write(str(path), sample_rate, audio.astype(np.float32))
    logger.debug(f"Wrote {path}: {len(audio)} samples at {sample_rate} Hz")


# =============================================================================
# CONFIGURATION
# =============================================================================

def build_preset_data(args: argparse.Namespace) -> Dict[str, Any]:
    """Merge the selected preset with command-line overrides."""
    data: Dict[str, Any] = {}
    if args.preset:
        loader = ConfigLoader(args.presets_dir)
        data = dict(loader.load_preset_data(args.preset))

    if args.gate is not None:
        data["gate"] = {"threshold": args.gate}

    noise_reduction = dict(data.get("noise_reduction") or {})
    for key in ("fft_size", "hop_size", "smoothing"):
        value = getattr(args, key)
        if value is not None:
            noise_reduction[key] = value
    data["noise_reduction"] = noise_reduction

    if args.eq is not None:
        low, mid, high = args.eq
        data["equalizer"] = {"low_gain_db": low, "mid_gain_db": mid, "high_gain_db": high}

    if args.multiband is not None:
        data["multiband"] = {"preset": args.multiband}

    overrides = {
        "threshold": args.limiter_threshold,
        "knee_width": args.knee,
        "ratio": args.ratio,
        "make_up_gain_db": args.makeup_db,
        "target_peak": args.target_peak,
    }
    overrides = {k: v for k, v in overrides.items() if v is not None}
    if args.no_limiter:
        data["limiter"] = None
    elif overrides:
        data["limiter"] = {**(data.get("limiter") or {}), **overrides}

    normalization = dict(data.get("normalization") or {})
    if args.normalize is not None:
        normalization["mode"] = args.normalize
        if args.target is None:
            normalization.pop("target", None)
    if args.target is not None:
        normalization["target"] = args.target
    data["normalization"] = normalization

    return data


def build_noise_profile(args: argparse.Namespace, audio: np.ndarray,
                        sample_rate: int, fft_size: int) -> Optional[np.ndarray]:
    """Estimate a noise profile from --noise-sample or --noise-seconds."""
    if args.noise_sample:
        noise_rate, noise = read_wav(Path(args.noise_sample))
        if noise_rate != sample_rate:
            logger.warning(
                f"Noise sample rate {noise_rate} Hz differs from input rate {sample_rate} Hz"
            )
        return estimate_noise_profile(noise, fft_size)

    if args.noise_seconds:
        n_samples = int(args.noise_seconds * sample_rate)
        return estimate_noise_profile(audio[:n_samples], fft_size)

    return None


# =============================================================================
# MAIN
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Clean up spoken-word audio recordings",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s interview.wav cleaned.wav --preset podcast --noise-sample room.wav
  %(prog)s raw.wav out.wav --noise-seconds 0.5 --eq -2 1 3
  %(prog)s raw.wav out.wav --multiband broadcast --normalize rms --target -16

Stage order:
  gate -> noise reduction -> EQ -> multiband -> limiter -> normalizer
        """,
    )

    parser.add_argument("input", nargs="?", help="Input WAV file")
    parser.add_argument("output", nargs="?", help="Output WAV file (32-bit float)")

    # Presets
    parser.add_argument("-p", "--preset", help="Preset name (see --list-presets)")
    parser.add_argument("--presets-dir", type=Path, help="Directory of preset YAML files")
    parser.add_argument("--list-presets", action="store_true", help="List presets and exit")

    # Noise reduction
    noise = parser.add_argument_group("noise reduction")
    noise.add_argument("--noise-sample", help="WAV file containing only background noise")
    noise.add_argument("--noise-seconds", type=float,
                       help="Estimate noise from the first N seconds of the input")
    noise.add_argument("--fft-size", type=int, help="STFT size (default 1024)")
    noise.add_argument("--hop-size", type=int, help="STFT hop (default 256)")
    noise.add_argument("--smoothing", type=float, help="Spectral smoothing 0-1 (default 0.85)")

    # Other stages
    stages = parser.add_argument_group("stages")
    stages.add_argument("--gate", type=float, help="Noise gate threshold relative to peak (0-1)")
    stages.add_argument("--eq", type=float, nargs=3, metavar=("LOW", "MID", "HIGH"),
                        help="Three-band EQ gains in dB")
    stages.add_argument("--multiband", choices=sorted(MULTIBAND_PRESETS.keys()),
                        help="Multiband compressor layout")

    limiter = parser.add_argument_group("limiter")
    limiter.add_argument("--limiter-threshold", type=float, help="Limiter threshold (0-1)")
    limiter.add_argument("--knee", type=float, help="Knee width (0-1)")
    limiter.add_argument("--ratio", type=float, help="Limiter ratio (>= 1)")
    limiter.add_argument("--makeup-db", type=float, help="Make-up gain in dB")
    limiter.add_argument("--target-peak", type=float, help="Output ceiling (0-1]")
    limiter.add_argument("--no-limiter", action="store_true", help="Disable the limiter")

    normalize = parser.add_argument_group("normalization")
    normalize.add_argument("--normalize", choices=["peak", "rms", "none"],
                           help="Normalization mode (default peak)")
    normalize.add_argument("--target", type=float,
                           help="Peak target (linear) or RMS target (dBFS)")

    # Misc options
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--json", action="store_true", help="Print a JSON summary")

    return parser


def main(argv=None) -> int:
    """Main CLI entry point."""
    init()
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.list_presets:
        loader = ConfigLoader(args.presets_dir)
        for name in loader.get_available_presets():
            print(f"{name:20s} {loader.get_preset_description(name)}")
        return 0

    if not args.input or not args.output:
        parser.error("input and output are required")

    try:
        sample_rate, audio = read_wav(Path(args.input))
        data = build_preset_data(args)

        fft_size = int(data["noise_reduction"].get("fft_size", 1024))
        profile = build_noise_profile(args, audio, sample_rate, fft_size)

        config = chain_config_from_dict(data, sample_rate, profile)
        chain = CleanupChain(config)
        cleaned = chain.process(audio)
        write_wav(Path(args.output), sample_rate, cleaned)

    except (ConfigurationError, ConfigLoadError) as e:
        logger.error(f"Invalid configuration: {e}")
        return 1
    except (OSError, ValueError) as e:
        logger.error(f"Audio I/O failed: {e}")
        return 1

    summary = {
        "input": str(args.input),
        "output": str(args.output),
        "sample_rate": sample_rate,
        "samples": len(cleaned),
        "stages": [name for _, name in chain.stages],
        "input_peak_db": round(linear_to_db(peak_level(audio)), 2),
        "output_peak_db": round(linear_to_db(peak_level(cleaned)), 2),
        "output_rms_db": round(linear_to_db(rms_level(cleaned)), 2),
    }

    if args.json:
        print(json.dumps(summary, indent=2))
    else:
        print_info(f"Stages: {' -> '.join(summary['stages']) or 'none'}")
        print_info(f"Peak: {summary['input_peak_db']} dBFS -> {summary['output_peak_db']} dBFS")
        print_success(f"Wrote {args.output}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
