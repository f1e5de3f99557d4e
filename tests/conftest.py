"""
Pytest fixtures for clearcast tests.
"""
import pytest
import sys
from pathlib import Path

import numpy as np

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


def make_sine(freq: float, sample_rate: int, duration: float, amplitude: float = 0.5) -> np.ndarray:
    """Pure sine tone."""
    t = np.arange(int(sample_rate * duration)) / sample_rate
    return amplitude * np.sin(2 * np.pi * freq * t)


@pytest.fixture
def sample_rate():
    """Standard sample rate for tests."""
    return 44100


@pytest.fixture
def sine(sample_rate):
    """Factory for sine tones at the test sample rate."""
    def _sine(freq: float = 440.0, duration: float = 0.5, amplitude: float = 0.5) -> np.ndarray:
        return make_sine(freq, sample_rate, duration, amplitude)
    return _sine


@pytest.fixture
def white_noise():
    """Factory for reproducible white noise."""
    def _noise(n_samples: int, amplitude: float = 0.05, seed: int = 1234) -> np.ndarray:
        rng = np.random.default_rng(seed)
        return amplitude * rng.standard_normal(n_samples)
    return _noise


@pytest.fixture
def presets_dir(tmp_path):
    """Empty directory for preset YAML files."""
    path = tmp_path / "presets"
    path.mkdir()
    return path
