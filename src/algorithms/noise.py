"""
Gradient noise fields.

Vectorized Perlin and Simplex noise driven by a shuffled permutation table,
fractal octave summation and min/max normalization to 8-bit levels.
"""

import math
from typing import Callable

import numpy as np

from domain_types import GenerationConstants

NoiseFunction = Callable[[np.ndarray, np.ndarray, np.ndarray], np.ndarray]


def permutation_table(rng: np.random.Generator) -> np.ndarray:
    """Shuffled 0..255 repeated twice."""
    permutation = rng.permutation(256)
    return np.concatenate([permutation, permutation]).astype(np.int64)


def _gradient(perm: np.ndarray, ix: np.ndarray, iy: np.ndarray):
    """Unit gradient at integer lattice points, from the hashed angle index."""
    index = perm[(ix + perm[iy & 255]) & 255]
    angle = index / 255.0 * 2.0 * math.pi
    return np.cos(angle), np.sin(angle)


def _fade(t: np.ndarray) -> np.ndarray:
    """Quintic smoothstep 6t^5 - 15t^4 + 10t^3."""
    return t * t * t * (t * (t * 6.0 - 15.0) + 10.0)


def perlin_2d(x: np.ndarray, y: np.ndarray, perm: np.ndarray) -> np.ndarray:
    """Single-octave Perlin noise at the given sample coordinates."""
    x0 = np.floor(x).astype(np.int64)
    y0 = np.floor(y).astype(np.int64)
    x1 = x0 + 1
    y1 = y0 + 1

    def dot_grid(ix, iy):
        gx, gy = _gradient(perm, ix, iy)
        return (x - ix) * gx + (y - iy) * gy

    n0 = dot_grid(x0, y0)
    n1 = dot_grid(x1, y0)
    n2 = dot_grid(x0, y1)
    n3 = dot_grid(x1, y1)

    sx = _fade(x - x0)
    sy = _fade(y - y0)
    ix0 = n0 + sx * (n1 - n0)
    ix1 = n2 + sx * (n3 - n2)
    return ix0 + sy * (ix1 - ix0)


def simplex_2d(x: np.ndarray, y: np.ndarray, perm: np.ndarray) -> np.ndarray:
    """Single-octave 2-D Simplex noise at the given sample coordinates."""
    f2 = GenerationConstants.SIMPLEX_F2
    g2 = GenerationConstants.SIMPLEX_G2

    s = (x + y) * f2
    i = np.floor(x + s)
    j = np.floor(y + s)
    t = (i + j) * g2
    x0 = x - (i - t)
    y0 = y - (j - t)

    upper = x0 > y0
    i1 = np.where(upper, 1, 0)
    j1 = np.where(upper, 0, 1)

    x1 = x0 - i1 + g2
    y1 = y0 - j1 + g2
    x2 = x0 - 1.0 + 2.0 * g2
    y2 = y0 - 1.0 + 2.0 * g2

    ii = i.astype(np.int64)
    jj = j.astype(np.int64)

    def contribution(cx, cy, gi, gj):
        falloff = 0.5 - cx * cx - cy * cy
        gx, gy = _gradient(perm, gi, gj)
        value = falloff ** 4 * (gx * cx + gy * cy)
        return np.where(falloff < 0, 0.0, value)

    n0 = contribution(x0, y0, ii, jj)
    n1 = contribution(x1, y1, ii + i1, jj + j1)
    n2 = contribution(x2, y2, ii + 1, jj + 1)
    return GenerationConstants.SIMPLEX_SCALE * (n0 + n1 + n2)


def fractal_noise(
    width: int,
    height: int,
    noise: NoiseFunction,
    perm: np.ndarray,
    scale: float,
    octaves: int,
    persistence: float,
) -> np.ndarray:
    """
    Sum octaves of a noise function, each at double frequency and
    ``persistence`` times the amplitude, divided by the total amplitude.

    Returns:
        float64 field of shape (height, width)
    """
    ys, xs = np.mgrid[0:height, 0:width].astype(np.float64)
    total = np.zeros((height, width), dtype=np.float64)
    amplitude = 1.0
    frequency = 1.0
    max_amplitude = 0.0

    for _ in range(octaves):
        total += noise(xs / scale * frequency, ys / scale * frequency, perm) * amplitude
        max_amplitude += amplitude
        amplitude *= persistence
        frequency *= 2.0

    return total / max_amplitude


def normalize_to_levels(field: np.ndarray) -> np.ndarray:
    """
    Stretch a field to 0..255 by its observed min and max, truncating.

    A constant field maps to all zeros.
    """
    low = float(field.min())
    high = float(field.max())
    if high == low:
        return np.zeros(field.shape, dtype=np.uint8)
    return ((field - low) / (high - low) * 255.0).astype(np.uint8)
