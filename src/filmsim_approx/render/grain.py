"""Deterministic procedural grain hashes.

Both hashes are sine-based coordinate hashes and must stay reproducible
across implementations: golden frames depend on the exact constants.
"""
from __future__ import annotations

import math

import numpy as np


HASH_X = 12.9898
HASH_Y = 78.233
SCALAR_HASH_GAIN = 43758.5453
PARALLEL_HASH_GAIN = 43758.5453123

SMALL_GRAIN_FREQUENCY = 0.24
LARGE_GRAIN_FREQUENCY = 0.12


def scalar_grain_frequency(grain_size: float) -> float:
    return LARGE_GRAIN_FREQUENCY if grain_size > 0.5 else SMALL_GRAIN_FREQUENCY


def scalar_grain_seed(x: int, y: int, frequency: float) -> float:
    """Seed in [0, 1) for pixel (x, y); fmod keeps the sign so negatives are shifted up by one."""

    seed = math.fmod(math.sin((x + 1) * HASH_X * frequency + (y + 1) * HASH_Y) * SCALAR_HASH_GAIN, 1.0)
    if seed < 0:
        seed += 1.0
    return seed


def parallel_grain_field(
    width: int,
    height: int,
    grain_size: float,
    offset: tuple[float, float],
) -> np.ndarray:
    """fract(sin(dot(uv * scale + offset, (12.9898, 78.233))) * gain) over pixel-centre uvs."""

    scale = 900.0 + (450.0 - 900.0) * float(grain_size)
    u = (np.arange(width, dtype=np.float64) + 0.5) / width
    v = (np.arange(height, dtype=np.float64) + 0.5) / height
    sx = u[None, :] * scale + offset[0]
    sy = v[:, None] * scale + offset[1]
    value = np.sin(sx * HASH_X + sy * HASH_Y) * PARALLEL_HASH_GAIN
    return value - np.floor(value)
