"""
Color space conversions on RGBA pixel arrays.

Pure functions operating on numpy arrays in RGBA channel order:
- Luma: BT.601 weighted luma (float and truncated integer)
- HSV: scalar and vectorized RGB to HSV with hue in degrees and S/V in percent
"""

from typing import Tuple

import numpy as np

from domain_types import RasterConstants


def luma(pixels: np.ndarray) -> np.ndarray:
    """
    Compute float luma of an RGB(A) array.

    Args:
        pixels: Array of shape (H, W, 3 or 4)

    Returns:
        Float64 array of shape (H, W)
    """
    rgb = pixels[..., :3].astype(np.float64)
    return (
        RasterConstants.LUMA_R * rgb[..., 0]
        + RasterConstants.LUMA_G * rgb[..., 1]
        + RasterConstants.LUMA_B * rgb[..., 2]
    )


def gray_levels(pixels: np.ndarray) -> np.ndarray:
    """Luma truncated to integer levels 0..255 (int32)."""
    return np.floor(luma(pixels)).astype(np.int32)


def rgb_to_hsv(r: int, g: int, b: int) -> Tuple[float, float, float]:
    """
    Convert a single RGB color to HSV.

    Args:
        r, g, b: Channel values 0..255

    Returns:
        (h in [0, 360), s in [0, 100], v in [0, 100])
    """
    rf, gf, bf = r / 255.0, g / 255.0, b / 255.0
    cmax = max(rf, gf, bf)
    cmin = min(rf, gf, bf)
    delta = cmax - cmin

    h = 0.0
    if delta != 0:
        if cmax == rf:
            h = 60.0 * ((gf - bf) / delta % 6)
        elif cmax == gf:
            h = 60.0 * ((bf - rf) / delta + 2)
        else:
            h = 60.0 * ((rf - gf) / delta + 4)

    if h < 0:
        h += 360.0

    s = 0.0 if cmax == 0 else delta / cmax
    return h, s * 100.0, cmax * 100.0


def rgb_to_hsv_array(pixels: np.ndarray) -> np.ndarray:
    """
    Vectorized RGB to HSV over a whole pixel array.

    Args:
        pixels: Array of shape (H, W, 3 or 4)

    Returns:
        Float64 array of shape (H, W, 3) with H in degrees, S and V in percent
    """
    rgb = pixels[..., :3].astype(np.float64) / 255.0
    r, g, b = rgb[..., 0], rgb[..., 1], rgb[..., 2]
    cmax = rgb.max(axis=-1)
    cmin = rgb.min(axis=-1)
    delta = cmax - cmin
    safe_delta = np.where(delta == 0, 1.0, delta)

    # Branch priority matches the scalar version: r, then g, then b
    h_r = 60.0 * np.mod((g - b) / safe_delta, 6.0)
    h_g = 60.0 * ((b - r) / safe_delta + 2.0)
    h_b = 60.0 * ((r - g) / safe_delta + 4.0)
    h = np.where(cmax == r, h_r, np.where(cmax == g, h_g, h_b))
    h = np.where(delta == 0, 0.0, h)
    h = np.where(h < 0, h + 360.0, h)

    s = np.divide(delta, cmax, out=np.zeros_like(delta), where=cmax != 0)

    return np.stack([h, s * 100.0, cmax * 100.0], axis=-1)
