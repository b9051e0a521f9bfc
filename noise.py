# noise.py
import numpy as np
from scipy import signal
from typing import Optional
import logging

logger = logging.getLogger(__name__)

__all__ = [
    'NOISE_TYPES',
    'NoiseGenerator',
    'generate_white_noise',
    'generate_pink_noise'
]

NOISE_TYPES = ('white', 'pink')

# Paul Kellet's pink noise approximation: one (pole, gain) pair per running
# state variable b0..b5, plus a direct white term and an output scale.
PINK_POLES = (
    (0.99886, 0.0555179),
    (0.99332, 0.0750759),
    (0.96900, 0.1538520),
    (0.86650, 0.3104856),
    (0.55000, 0.5329522),
    (-0.7616, -0.0168980),
)
PINK_WHITE_GAIN = 0.5362
PINK_SCALE = 0.11


def _buffer_length(sample_rate: int, duration: float) -> int:
    if sample_rate <= 0:
        raise ValueError(f"Sample rate must be positive, got {sample_rate}")
    return int(round(duration * sample_rate))


def generate_white_noise(sample_rate: int, duration: float = 2.0,
                         rng: Optional[np.random.Generator] = None) -> np.ndarray:
    """Uniform noise in [-1, 1], `duration * sample_rate` samples long"""
    rng = rng if rng is not None else np.random.default_rng()
    frames = _buffer_length(sample_rate, duration)
    return rng.uniform(-1.0, 1.0, frames).astype(np.float32)


def generate_pink_noise(sample_rate: int, duration: float = 2.0,
                        rng: Optional[np.random.Generator] = None) -> np.ndarray:
    """Pink noise from white noise through the 6-pole Kellet filter.

    Each pole is a first order recursion ``b = pole * b + gain * white``,
    run with lfilter from zero state so nothing carries over between calls.
    """
    rng = rng if rng is not None else np.random.default_rng()
    frames = _buffer_length(sample_rate, duration)
    white = rng.uniform(-1.0, 1.0, frames)

    pink = white * PINK_WHITE_GAIN
    for pole, gain in PINK_POLES:
        pink += signal.lfilter([gain], [1.0, -pole], white)

    return (pink * PINK_SCALE).astype(np.float32)


class NoiseGenerator:
    """Produces a fresh, read-only noise buffer per request"""

    def __init__(self, duration: float = 2.0, seed: Optional[int] = None):
        self.duration = duration
        self._rng = np.random.default_rng(seed)

    def generate(self, sample_rate: int, noise_type: str = 'white') -> np.ndarray:
        if noise_type == 'white':
            data = generate_white_noise(sample_rate, self.duration, self._rng)
        elif noise_type == 'pink':
            data = generate_pink_noise(sample_rate, self.duration, self._rng)
        else:
            raise ValueError(f"Unknown noise type: {noise_type}")

        data.setflags(write=False)
        logger.debug(f"Generated {noise_type} noise buffer: {len(data)} samples at {sample_rate} Hz")
        return data
