"""
Perceptual hashes.

Average, difference and DCT-based perceptual hashes of an image rendered as
'0'/'1' strings, and the Hamming distance between two hashes.
"""

import math
from typing import Optional

import numpy as np

from domain_types import ComparisonConstants, HashType
from exceptions import HashLengthMismatchException, InvalidParameterException
from image.raster import RasterBuffer


def _gray_thumbnail(image: RasterBuffer, width: int, height: int) -> np.ndarray:
    """Grayscale, resize without keeping aspect, return the r channel as float."""
    small = image.to_grayscale().resize(width, height, maintain_aspect=False)
    return small.pixels[..., 0].astype(np.float64)


def _bits(mask: np.ndarray) -> str:
    return "".join("1" if bit else "0" for bit in mask.ravel())


def _check_hash_size(hash_size: int, upper: Optional[int] = None) -> None:
    if hash_size < 1 or (upper is not None and hash_size > upper):
        bound = f"between 1 and {upper}" if upper is not None else "positive"
        raise InvalidParameterException("hash_size", hash_size, f"must be {bound}")


def average_hash(image: RasterBuffer, hash_size: int = ComparisonConstants.HASH_SIZE_DEFAULT) -> str:
    """Bit set where the pixel of the hash_size^2 thumbnail is at least the mean."""
    _check_hash_size(hash_size)
    pixels = _gray_thumbnail(image, hash_size, hash_size)
    return _bits(pixels >= pixels.mean())


def difference_hash(
    image: RasterBuffer, hash_size: int = ComparisonConstants.HASH_SIZE_DEFAULT
) -> str:
    """Bit set where a pixel is darker than its right neighbour."""
    _check_hash_size(hash_size)
    pixels = _gray_thumbnail(image, hash_size + 1, hash_size)
    return _bits(pixels[:, :-1] < pixels[:, 1:])


def dct_matrix(size: int) -> np.ndarray:
    """Orthonormal DCT-II basis: C[u, i] = alpha(u) * cos((2i+1) u pi / 2N)."""
    u = np.arange(size, dtype=np.float64)[:, None]
    i = np.arange(size, dtype=np.float64)[None, :]
    basis = np.cos((2 * i + 1) * u * math.pi / (2 * size))
    alpha = np.full((size, 1), math.sqrt(2.0 / size))
    alpha[0, 0] = math.sqrt(1.0 / size)
    return alpha * basis


def dct_2d(matrix: np.ndarray) -> np.ndarray:
    """Separable 2-D DCT-II of a square matrix."""
    c = dct_matrix(matrix.shape[0])
    return c @ matrix @ c.T


def perceptual_hash(
    image: RasterBuffer,
    hash_size: int = ComparisonConstants.HASH_SIZE_DEFAULT,
    dct_size: int = ComparisonConstants.DCT_SIZE,
) -> str:
    """
    DCT hash: low-frequency hash_size x hash_size block of the DCT of a
    dct_size thumbnail, thresholded at the upper median.
    """
    _check_hash_size(hash_size, dct_size)
    pixels = _gray_thumbnail(image, dct_size, dct_size)
    low = dct_2d(pixels)[:hash_size, :hash_size]
    ordered = np.sort(low.ravel())
    median = ordered[len(ordered) // 2]
    return _bits(low >= median)


HASH_FUNCTIONS = {
    HashType.AVERAGE: average_hash,
    HashType.DIFFERENCE: difference_hash,
    HashType.PERCEPTUAL: perceptual_hash,
}


def compute_hash(image: RasterBuffer, kind: HashType, hash_size: int) -> str:
    return HASH_FUNCTIONS[HashType(kind)](image, hash_size)


def hamming_distance(hash1: str, hash2: str) -> int:
    """Number of differing positions; hashes must have equal length."""
    if len(hash1) != len(hash2):
        raise HashLengthMismatchException(len(hash1), len(hash2))
    return sum(1 for a, b in zip(hash1, hash2) if a != b)
