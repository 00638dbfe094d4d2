"""
Spatial filters on pixel arrays.

Provides kernel construction, edge-clamped convolution processed in row
bands, the Sobel gradient operator and the non-maximum suppression and
hysteresis stages used by Canny edge detection.
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Tuple

import cv2
import numpy as np

from domain_types import RasterConstants
from exceptions import InvalidParameterException
from utils import CancellationToken, check_cancelled, round_half_away

logger = logging.getLogger(__name__)


def validate_kernel(kernel) -> np.ndarray:
    """
    Validate a convolution kernel and return it as float64.

    Raises:
        InvalidParameterException: Kernel is not 2-D with odd dimensions
    """
    k = np.asarray(kernel, dtype=np.float64)
    if k.ndim != 2 or k.size == 0:
        raise InvalidParameterException("kernel", k.shape, "kernel must be a non-empty 2-D matrix")
    if k.shape[0] % 2 == 0 or k.shape[1] % 2 == 0:
        raise InvalidParameterException("kernel", k.shape, "kernel dimensions must be odd")
    return k


def gaussian_kernel(radius: float) -> np.ndarray:
    """
    Build a normalized 2-D Gaussian kernel.

    Args:
        radius: Standard deviation; kernel size is 2*ceil(3*radius)+1

    Returns:
        Square float64 kernel summing to 1
    """
    if radius <= 0:
        raise InvalidParameterException("radius", radius, "radius must be positive")

    size = int(math.ceil(radius * 3)) * 2 + 1
    center = size // 2
    coords = np.arange(size, dtype=np.float64) - center
    dx, dy = np.meshgrid(coords, coords)
    kernel = np.exp(-(dx * dx + dy * dy) / (2.0 * radius * radius))
    return kernel / kernel.sum()


def _split_bands(height: int, band_rows: int) -> List[Tuple[int, int]]:
    return [(start, min(start + band_rows, height)) for start in range(0, height, band_rows)]


def convolve_rgb(
    pixels: np.ndarray,
    kernel: np.ndarray,
    workers: int = 1,
    cancel_token: Optional[CancellationToken] = None,
    band_rows: int = RasterConstants.CONVOLUTION_BAND_ROWS,
) -> np.ndarray:
    """
    Correlate the RGB channels of an RGBA array with a kernel.

    Out-of-range samples are clamped to the nearest edge pixel. Sums are
    rounded half away from zero and clamped to 0..255; alpha is copied.
    Rows are processed in independent bands so the result does not depend
    on the worker count.

    Args:
        pixels: uint8 RGBA array
        kernel: Validated odd-sized 2-D kernel
        workers: Thread count for band processing
        cancel_token: Optional token checked before each band
        band_rows: Output rows per band

    Returns:
        New uint8 RGBA array
    """
    kernel = validate_kernel(kernel)
    height = pixels.shape[0]
    half_h = kernel.shape[0] // 2

    rgb = pixels[..., :3].astype(np.float64)
    # Vertical replication up front so each band sees its true neighbours
    padded = np.pad(rgb, ((half_h, half_h), (0, 0), (0, 0)), mode="edge")

    def process(band: Tuple[int, int]) -> np.ndarray:
        start, stop = band
        check_cancelled(cancel_token, "convolution")
        chunk = padded[start : stop + 2 * half_h]
        filtered = cv2.filter2D(chunk, -1, kernel, borderType=cv2.BORDER_REPLICATE)
        return filtered[half_h : half_h + (stop - start)]

    bands = _split_bands(height, band_rows)
    if workers > 1 and len(bands) > 1:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            results = list(executor.map(process, bands))
    else:
        results = [process(band) for band in bands]

    out_rgb = np.clip(round_half_away(np.concatenate(results, axis=0)), 0, 255)

    result = pixels.copy()
    result[..., :3] = out_rgb.astype(np.uint8)
    return result


def sobel_gradients(gray: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Apply the 3x3 Sobel operator to an integer gray image.

    Args:
        gray: Array of shape (H, W)

    Returns:
        (magnitude, direction) float64 arrays of shape (H, W); border cells are 0
    """
    g = gray.astype(np.float64)
    height, width = g.shape
    magnitude = np.zeros((height, width), dtype=np.float64)
    direction = np.zeros((height, width), dtype=np.float64)
    if height < 3 or width < 3:
        return magnitude, direction

    gx = (g[:-2, 2:] + 2 * g[1:-1, 2:] + g[2:, 2:]) - (g[:-2, :-2] + 2 * g[1:-1, :-2] + g[2:, :-2])
    gy = (g[2:, :-2] + 2 * g[2:, 1:-1] + g[2:, 2:]) - (g[:-2, :-2] + 2 * g[:-2, 1:-1] + g[:-2, 2:])

    magnitude[1:-1, 1:-1] = np.sqrt(gx * gx + gy * gy)
    direction[1:-1, 1:-1] = np.arctan2(gy, gx)
    return magnitude, direction


def non_max_suppression(magnitude: np.ndarray, direction: np.ndarray) -> np.ndarray:
    """
    Thin gradient ridges by comparing each pixel with its two neighbours
    along the quantized gradient direction (0/45/90/135 degrees).

    Returns:
        Suppressed magnitude array; the one-pixel border is always 0
    """
    height, width = magnitude.shape
    suppressed = np.zeros_like(magnitude)
    if height < 3 or width < 3:
        return suppressed

    m = magnitude
    mag = m[1:-1, 1:-1]
    angle = np.degrees(direction[1:-1, 1:-1])
    angle = np.where(angle < 0, angle + 180.0, angle)

    east, west = m[1:-1, 2:], m[1:-1, :-2]
    south, north = m[2:, 1:-1], m[:-2, 1:-1]
    south_west, north_east = m[2:, :-2], m[:-2, 2:]
    north_west, south_east = m[:-2, :-2], m[2:, 2:]

    horizontal = (angle < 22.5) | (angle >= 157.5)
    diagonal_up = (angle >= 22.5) & (angle < 67.5)
    vertical = (angle >= 67.5) & (angle < 112.5)

    q = np.where(horizontal, east, np.where(diagonal_up, south_west, np.where(vertical, south, north_west)))
    r = np.where(horizontal, west, np.where(diagonal_up, north_east, np.where(vertical, north, south_east)))

    keep = (mag >= q) & (mag >= r)
    suppressed[1:-1, 1:-1] = np.where(keep, mag, 0.0)
    return suppressed


def hysteresis(suppressed: np.ndarray, low: float, high: float) -> np.ndarray:
    """
    Double threshold: strong pixels survive, weak pixels survive only when
    one of their 8 neighbours is strong. Only interior pixels are considered.

    Returns:
        Boolean edge mask
    """
    height, width = suppressed.shape
    interior = np.zeros((height, width), dtype=bool)
    interior[1:-1, 1:-1] = True

    strong = (suppressed >= high) & interior
    weak = (suppressed >= low) & ~strong & interior

    near_strong = cv2.dilate(strong.astype(np.uint8), np.ones((3, 3), dtype=np.uint8)) > 0
    return strong | (weak & near_strong)
