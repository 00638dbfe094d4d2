"""
Difference-of-Gaussians keypoint detection.

Builds a Gaussian scale space stored as an octave x scale arena (a list of
per-octave lists of arrays), derives the signed DoG stack and reports strict
3x3x3 extrema with a dominant gradient orientation.
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Tuple

import numpy as np

from domain_types import FeatureConstants
from image.raster import RasterBuffer
from models import Keypoint
from utils import CancellationToken, check_cancelled

logger = logging.getLogger(__name__)

ScaleSpace = List[List[np.ndarray]]


def _octave_levels(
    gray: RasterBuffer,
    octave: int,
    scales: int,
    base_sigma: float,
    cancel_token: Optional[CancellationToken],
) -> List[np.ndarray]:
    """Blurred gray levels of one octave; empty if the octave is too small."""
    factor = 2 ** octave
    width, height = gray.width // factor, gray.height // factor
    if width < 3 or height < 3:
        return []

    base = gray if factor == 1 else gray.resize(width, height, maintain_aspect=False)
    levels = []
    for s in range(scales + 3):
        check_cancelled(cancel_token, "scale space construction")
        sigma = base_sigma * 2 ** (s / scales)
        blurred = base.gaussian_blur(sigma)
        levels.append(blurred.pixels[..., 0].astype(np.float64))
    return levels


def build_scale_space(
    gray: RasterBuffer,
    octaves: int = FeatureConstants.KEYPOINT_OCTAVES,
    scales: int = FeatureConstants.KEYPOINT_SCALES,
    base_sigma: float = FeatureConstants.KEYPOINT_BASE_SIGMA,
    workers: int = 1,
    cancel_token: Optional[CancellationToken] = None,
) -> ScaleSpace:
    """
    Gaussian pyramid: octave o is the image downsampled by 2^o, blurred at
    base_sigma * 2^(s/scales) for s in 0..scales+2.

    Blurring the full-resolution image at 2^o * base_sigma instead would give
    a similar effective scale, but octave coordinates would then not map back
    to pixels by the 2^o factor used for Keypoint.x/y. Downsampling keeps
    every reported keypoint inside the image, at the cost of values that
    differ slightly from full-resolution blurring.

    Octaves are independent and may be built on a thread pool.
    """
    if workers > 1 and octaves > 1:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [
                executor.submit(_octave_levels, gray, o, scales, base_sigma, cancel_token)
                for o in range(octaves)
            ]
            return [f.result() for f in futures]

    return [_octave_levels(gray, o, scales, base_sigma, cancel_token) for o in range(octaves)]


def difference_of_gaussians(scale_space: ScaleSpace) -> ScaleSpace:
    """Signed differences of adjacent blur levels per octave."""
    return [
        [levels[s] - levels[s - 1] for s in range(1, len(levels))] for levels in scale_space
    ]


def _find_extrema(below: np.ndarray, center: np.ndarray, above: np.ndarray, threshold: float):
    """
    Interior pixels of ``center`` that beat all 26 neighbours strictly.

    Returns:
        (ys, xs) arrays in raster order
    """
    height, width = center.shape
    c = center[1:-1, 1:-1]
    is_max = np.abs(c) > threshold
    is_min = is_max.copy()

    for layer_index, layer in enumerate((below, center, above)):
        for dy in (-1, 0, 1):
            for dx in (-1, 0, 1):
                if layer_index == 1 and dy == 0 and dx == 0:
                    continue
                neighbour = layer[1 + dy : height - 1 + dy, 1 + dx : width - 1 + dx]
                is_max &= c > neighbour
                is_min &= c < neighbour

    ys, xs = np.nonzero(is_max | is_min)
    return ys + 1, xs + 1


def dominant_orientation(image: np.ndarray, x: int, y: int) -> float:
    """
    Peak of a 36-bin magnitude-weighted gradient histogram around (x, y).

    Returns:
        Orientation in radians (bin * 10 degrees)
    """
    height, width = image.shape
    radius = FeatureConstants.ORIENTATION_RADIUS
    bins = FeatureConstants.ORIENTATION_BINS

    x0, x1 = max(1, x - radius), min(width - 2, x + radius)
    y0, y1 = max(1, y - radius), min(height - 2, y + radius)
    if x0 > x1 or y0 > y1:
        return 0.0

    gx = image[y0 : y1 + 1, x0 + 1 : x1 + 2] - image[y0 : y1 + 1, x0 - 1 : x1]
    gy = image[y0 + 1 : y1 + 2, x0 : x1 + 1] - image[y0 - 1 : y1, x0 : x1 + 1]

    magnitude = np.sqrt(gx * gx + gy * gy)
    angle = np.degrees(np.arctan2(gy, gx))
    angle = np.where(angle < 0, angle + 360.0, angle)
    bin_index = (angle / 360.0 * bins).astype(np.int64) % bins

    histogram = np.bincount(bin_index.ravel(), weights=magnitude.ravel(), minlength=bins)
    return math.radians(int(np.argmax(histogram)) * (360 // bins))


def detect_keypoints(
    gray: RasterBuffer,
    threshold: float = FeatureConstants.KEYPOINT_THRESHOLD_DEFAULT,
    max_keypoints: int = FeatureConstants.MAX_KEYPOINTS,
    octaves: int = FeatureConstants.KEYPOINT_OCTAVES,
    scales: int = FeatureConstants.KEYPOINT_SCALES,
    base_sigma: float = FeatureConstants.KEYPOINT_BASE_SIGMA,
    workers: int = 1,
    cancel_token: Optional[CancellationToken] = None,
) -> List[Keypoint]:
    """
    Detect DoG extrema on a grayscale buffer.

    Args:
        gray: Grayscale buffer (the r channel is used)
        threshold: Minimum |DoG| response
        max_keypoints: Number of strongest keypoints kept

    Returns:
        Keypoints sorted by response, strongest first
    """
    scale_space = build_scale_space(gray, octaves, scales, base_sigma, workers, cancel_token)
    dog_space = difference_of_gaussians(scale_space)

    candidates: List[Tuple[float, int, int, int, int]] = []
    for octave, dogs in enumerate(dog_space):
        for s in range(1, scales + 1):
            if s + 1 >= len(dogs):
                continue
            check_cancelled(cancel_token, "keypoint detection")
            ys, xs = _find_extrema(dogs[s - 1], dogs[s], dogs[s + 1], threshold)
            responses = np.abs(dogs[s][ys, xs])
            for y, x, response in zip(ys.tolist(), xs.tolist(), responses.tolist()):
                candidates.append((response, octave, s, y, x))

    # Stable sort keeps raster order among equal responses
    candidates.sort(key=lambda c: -c[0])
    candidates = candidates[:max_keypoints]

    keypoints = []
    for response, octave, s, y, x in candidates:
        factor = 2 ** octave
        keypoints.append(
            Keypoint(
                x=float(x * factor),
                y=float(y * factor),
                scale=factor * base_sigma * 2 ** (s / scales),
                octave=octave,
                response=float(response),
                orientation=dominant_orientation(scale_space[octave][s], x, y),
            )
        )

    logger.debug(f"Detected {len(keypoints)} keypoints")
    return keypoints
