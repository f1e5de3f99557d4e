"""
Configuration loader for cleanup chain presets.

Provides centralized loading of YAML preset files with caching, and the
conversion of parsed preset dictionaries into ChainConfig objects.
Supports hot-reloading for development.

Preset layout (every section optional):

    name: Podcast
    description: Spoken word, moderate dynamics control
    gate:
      threshold: 0.02
    noise_reduction:
      fft_size: 1024
      hop_size: 256
      smoothing: 0.85
    equalizer:
      low_gain_db: -2.0
      mid_gain_db: 1.0
      high_gain_db: 2.0
    multiband:
      preset: podcast            # named layout from MULTIBAND_PRESETS, or
      bands:                     # explicit bands; "nyquist" is sample_rate / 2
        - {low_freq: 0, high_freq: 250, threshold_db: -24, ratio: 3}
        - {low_freq: 250, high_freq: nyquist, threshold_db: -20, ratio: 2}
    limiter:                     # null disables the limiter
      threshold: 0.9
      knee_width: 0.1
      ratio: 8.0
      make_up_gain_db: 0.0
      target_peak: 0.95
    normalization:
      mode: peak                 # peak | rms | none
      target: 0.95
"""

from pathlib import Path
from typing import Dict, Any, Optional, List
import logging

import numpy as np
import yaml

from .chain import ChainConfig
from .limiter import LimiterConfig
from .multiband import BandParams, create_preset_bands
from .noise_reduction import NoiseReductionParams
from .normalize import NormalizationMode
from .utils import SAMPLE_RATE, ConfigurationError

logger = logging.getLogger(__name__)


class ConfigLoadError(Exception):
    """Raised when configuration loading fails."""
    pass


# =============================================================================
# DICT -> CHAINCONFIG CONVERSION
# =============================================================================

def _parse_frequency(value: Any, sample_rate: int) -> float:
    if isinstance(value, str) and value.strip().lower() == "nyquist":
        return sample_rate / 2.0
    return float(value)


def _parse_bands(section: Dict[str, Any], sample_rate: int) -> Optional[List[BandParams]]:
    if "bands" in section:
        bands = []
        for entry in section["bands"]:
            entry = dict(entry)
            for key in ("low_freq", "high_freq"):
                if key in entry:
                    entry[key] = _parse_frequency(entry[key], sample_rate)
            if "threshold_db" in entry:
                entry["threshold_db"] = float(entry["threshold_db"])
            bands.append(BandParams(**entry))
        return bands
    if "preset" in section:
        return create_preset_bands(section["preset"], sample_rate)
    return None


def chain_config_from_dict(
    data: Dict[str, Any],
    sample_rate: int = SAMPLE_RATE,
    noise_profile: Optional[np.ndarray] = None,
) -> ChainConfig:
    """
    Build a ChainConfig from a parsed preset dictionary.

    Args:
        data: Parsed preset (see module docstring for the layout)
        sample_rate: Processing sample rate in Hz
        noise_profile: Noise profile enabling the noise reduction stage

    Returns:
        ChainConfig

    Raises:
        ConfigLoadError: If the preset structure is malformed
        ConfigurationError: If a value is out of range
    """
    if not isinstance(data, dict):
        raise ConfigLoadError(f"Preset must be a mapping, got {type(data).__name__}")

    try:
        gate = data.get("gate")
        gate_threshold = float(gate.get("threshold", 0.05)) if gate else None

        noise_reduction = NoiseReductionParams(**(data.get("noise_reduction") or {}))

        eq = data.get("equalizer")
        eq_gains = None
        if eq:
            eq_gains = (
                float(eq.get("low_gain_db", 0.0)),
                float(eq.get("mid_gain_db", 0.0)),
                float(eq.get("high_gain_db", 0.0)),
            )

        multiband = data.get("multiband")
        bands = _parse_bands(multiband, sample_rate) if multiband else None

        limiter_section = data.get("limiter", {})
        limiter = LimiterConfig(**limiter_section) if limiter_section is not None else None

        normalization_section = data.get("normalization") or {}
        mode = str(normalization_section.get("mode", "peak")).lower()
        normalization = None if mode == "none" else NormalizationMode(mode)
        target = normalization_section.get("target")

    except ConfigurationError:
        raise
    except (TypeError, ValueError, AttributeError) as e:
        raise ConfigLoadError(f"Malformed preset: {e}")

    return ChainConfig(
        sample_rate=sample_rate,
        gate_threshold=gate_threshold,
        noise_profile=noise_profile,
        noise_reduction=noise_reduction,
        eq_gains_db=eq_gains,
        bands=bands,
        limiter=limiter,
        normalization=normalization,
        normalization_target=float(target) if target is not None else None,
        name=str(data.get("name", "Cleanup Chain")),
    )


# =============================================================================
# CONFIG LOADER
# =============================================================================

class ConfigLoader:
    """
    Loads cleanup chain presets from YAML files with caching.

    Attributes:
        config_dir: Directory containing ``<name>.yaml`` preset files
    """

    def __init__(self, config_dir: Optional[Path] = None):
        """
        Initialize the configuration loader.

        Args:
            config_dir: Directory of preset files.
                        Defaults to the presets shipped with the package.
        """
        if config_dir is None:
            self.config_dir = Path(__file__).parent / "presets"
        else:
            self.config_dir = Path(config_dir)

        self._cache: Dict[str, Dict[str, Any]] = {}

    def _load_yaml(self, path: Path) -> Dict[str, Any]:
        """
        Load a YAML file and return its contents.

        Raises:
            ConfigLoadError: If the file cannot be loaded or parsed
        """
        if not path.exists():
            raise ConfigLoadError(f"Configuration file not found: {path}")

        try:
            with open(path, 'r', encoding='utf-8') as f:
                return yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigLoadError(f"Failed to parse YAML file {path}: {e}")
        except OSError as e:
            raise ConfigLoadError(f"Failed to load configuration file {path}: {e}")

    def load_preset_data(self, name: str) -> Dict[str, Any]:
        """
        Load the raw dictionary of a preset.

        Args:
            name: Preset name (file stem, e.g. 'podcast')

        Raises:
            ConfigLoadError: If the preset cannot be loaded
        """
        if name in self._cache:
            return self._cache[name]

        preset_path = self.config_dir / f"{name}.yaml"
        data = self._load_yaml(preset_path)
        if not isinstance(data, dict):
            raise ConfigLoadError(f"Preset {name} must be a mapping")

        self._cache[name] = data
        logger.debug(f"Loaded preset {name} from {preset_path}")
        return data

    def load_preset(
        self,
        name: str,
        sample_rate: int = SAMPLE_RATE,
        noise_profile: Optional[np.ndarray] = None,
    ) -> ChainConfig:
        """
        Load a preset as a ChainConfig.

        Args:
            name: Preset name
            sample_rate: Processing sample rate in Hz
            noise_profile: Optional noise profile enabling noise reduction

        Returns:
            ChainConfig built from the preset

        Raises:
            ConfigLoadError: If the preset cannot be loaded or is malformed
            ConfigurationError: If a preset value is out of range
        """
        data = self.load_preset_data(name)
        return chain_config_from_dict(data, sample_rate, noise_profile)

    def get_available_presets(self) -> List[str]:
        """
        List all available preset names.

        Returns:
            Sorted list of preset names
        """
        if not self.config_dir.exists():
            return []
        return sorted(path.stem for path in self.config_dir.glob("*.yaml"))

    def get_preset_description(self, name: str) -> str:
        """Human-readable description of a preset ('' if none)."""
        return str(self.load_preset_data(name).get("description", ""))

    def has_preset(self, name: str) -> bool:
        """
        Check if a preset file exists.

        Args:
            name: Preset name to check
        """
        return (self.config_dir / f"{name}.yaml").exists()

    def reload(self) -> None:
        """
        Clear the cache for hot-reloading.

        Call this method when preset files have been modified and you want
        to reload them on next access.
        """
        self._cache.clear()
        logger.info("Configuration cache cleared")


# Module-level singleton for convenience
_default_loader: Optional[ConfigLoader] = None


def get_config_loader(config_dir: Optional[Path] = None) -> ConfigLoader:
    """
    Get the default ConfigLoader instance.

    Creates a singleton instance on first call. Passing a config_dir returns
    a new loader for that directory.
    """
    global _default_loader

    if config_dir is not None:
        return ConfigLoader(config_dir)

    if _default_loader is None:
        _default_loader = ConfigLoader()
    return _default_loader
