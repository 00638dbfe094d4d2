"""
RGBA raster buffer.

RasterBuffer wraps a uint8 numpy array of shape (height, width, 4) in RGBA
order with the origin at the top-left. Alpha is opacity: 0 is fully
transparent, 255 fully opaque.

Every transform returns a new buffer; set_pixel is the only in-place
mutation and copy() is explicit.
"""

import logging
from pathlib import Path
from typing import Dict, NamedTuple, Optional, Tuple, Union

import cv2
import numpy as np

from config import get_settings
from domain_types import ROI
from exceptions import InvalidParameterException, PixelOutOfBoundsException
from image import codec, colorspace, filters
from utils import CancellationToken, timer

logger = logging.getLogger(__name__)


class GradientField(NamedTuple):
    """Sobel gradient magnitude and direction (radians), both shaped (H, W)."""

    magnitude: np.ndarray
    direction: np.ndarray


class RasterBuffer:
    """In-memory RGBA image."""

    def __init__(self, pixels: np.ndarray):
        """
        Wrap an existing RGBA array (no copy).

        Args:
            pixels: uint8 array of shape (H, W, 4) with H, W > 0
        """
        if pixels.ndim != 3 or pixels.shape[2] != 4:
            raise InvalidParameterException("pixels", pixels.shape, "expected shape (H, W, 4)")
        if pixels.shape[0] <= 0 or pixels.shape[1] <= 0:
            raise InvalidParameterException("pixels", pixels.shape, "dimensions must be positive")
        if pixels.dtype != np.uint8:
            raise InvalidParameterException("pixels", str(pixels.dtype), "expected uint8 data")
        self._pixels = pixels

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def decode(cls, path: Union[str, Path]) -> "RasterBuffer":
        """Load an image file; the format is detected from its header bytes."""
        return cls(codec.read_image(path))

    @classmethod
    def allocate(cls, width: int, height: int) -> "RasterBuffer":
        """Create a transparent black buffer."""
        if width <= 0 or height <= 0:
            raise InvalidParameterException(
                "size", (width, height), "width and height must be positive"
            )
        return cls(np.zeros((height, width, 4), dtype=np.uint8))

    @classmethod
    def from_array(cls, array: np.ndarray) -> "RasterBuffer":
        """
        Build a buffer from a gray (H, W), RGB (H, W, 3) or RGBA (H, W, 4) array.

        Values are clipped to 0..255; missing alpha becomes opaque.
        """
        data = np.clip(np.asarray(array), 0, 255).astype(np.uint8)
        if data.ndim == 2:
            data = np.stack([data, data, data], axis=-1)
        if data.ndim != 3 or data.shape[2] not in (3, 4):
            raise InvalidParameterException("array", data.shape, "expected gray, RGB or RGBA data")
        if data.shape[2] == 3:
            alpha = np.full(data.shape[:2] + (1,), 255, dtype=np.uint8)
            data = np.concatenate([data, alpha], axis=-1)
        return cls(np.ascontiguousarray(data))

    def encode(self, path: Union[str, Path], quality: Optional[int] = None) -> None:
        """Write the buffer to a file whose extension selects the format."""
        if quality is None:
            quality = get_settings().raster.default_quality
        codec.write_image(self._pixels, path, quality)

    def copy(self) -> "RasterBuffer":
        return RasterBuffer(self._pixels.copy())

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def width(self) -> int:
        return self._pixels.shape[1]

    @property
    def height(self) -> int:
        return self._pixels.shape[0]

    @property
    def dimensions(self) -> Dict[str, int]:
        return {"width": self.width, "height": self.height}

    @property
    def pixels(self) -> np.ndarray:
        """Read-only view of the RGBA data."""
        view = self._pixels.view()
        view.flags.writeable = False
        return view

    def to_array(self) -> np.ndarray:
        """Independent copy of the RGBA data."""
        return self._pixels.copy()

    def luma(self) -> np.ndarray:
        """Float luma per pixel."""
        return colorspace.luma(self._pixels)

    def gray_levels(self) -> np.ndarray:
        """Truncated integer luma per pixel."""
        return colorspace.gray_levels(self._pixels)

    def hsv(self) -> np.ndarray:
        """Per-pixel HSV (degrees, percent, percent)."""
        return colorspace.rgb_to_hsv_array(self._pixels)

    @staticmethod
    def rgb_to_hsv(r: int, g: int, b: int) -> Tuple[float, float, float]:
        return colorspace.rgb_to_hsv(r, g, b)

    def _check_bounds(self, x: int, y: int) -> None:
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise PixelOutOfBoundsException(x, y, self.width, self.height)

    def get_pixel(self, x: int, y: int) -> Dict[str, int]:
        self._check_bounds(x, y)
        r, g, b, a = (int(v) for v in self._pixels[y, x])
        return {"r": r, "g": g, "b": b, "a": a}

    def set_pixel(self, x: int, y: int, r: int, g: int, b: int, a: int = 255) -> None:
        """Write one pixel in place; channel values are clamped to 0..255."""
        self._check_bounds(x, y)
        self._pixels[y, x] = [max(0, min(255, int(v))) for v in (r, g, b, a)]

    def __eq__(self, other) -> bool:
        if not isinstance(other, RasterBuffer):
            return NotImplemented
        return self._pixels.shape == other._pixels.shape and bool(
            np.array_equal(self._pixels, other._pixels)
        )

    __hash__ = None

    def __repr__(self) -> str:
        return f"RasterBuffer({self.width}x{self.height})"

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    def resize(self, width: int, height: int, maintain_aspect: bool = True) -> "RasterBuffer":
        """
        Resample to a new size with area interpolation.

        Args:
            width: Target width (bounding width when maintaining aspect)
            height: Target height (bounding height when maintaining aspect)
            maintain_aspect: Fit inside width x height keeping the aspect ratio
        """
        if width <= 0 or height <= 0:
            raise InvalidParameterException(
                "size", (width, height), "width and height must be positive"
            )

        if maintain_aspect:
            ratio = min(width / self.width, height / self.height)
            width = max(1, int(self.width * ratio))
            height = max(1, int(self.height * ratio))

        if (width, height) == (self.width, self.height):
            return self.copy()

        resized = cv2.resize(self._pixels, (width, height), interpolation=cv2.INTER_AREA)
        return RasterBuffer(resized)

    def crop(self, x: int, y: int, width: int, height: int) -> "RasterBuffer":
        """Extract a rectangle that must lie inside the buffer."""
        try:
            roi = ROI(x=x, y=y, width=width, height=height)
            roi.validate_with_constraints(self.width, self.height)
        except ValueError as e:
            raise InvalidParameterException(
                "region", {"x": x, "y": y, "width": width, "height": height}, str(e)
            ) from e
        return RasterBuffer(self._pixels[roi.y : roi.y2, roi.x : roi.x2].copy())

    # ------------------------------------------------------------------
    # Pixel transforms
    # ------------------------------------------------------------------

    def to_grayscale(self) -> "RasterBuffer":
        """Write truncated luma to r, g and b; alpha is kept."""
        gray = self.gray_levels().astype(np.uint8)
        out = self._pixels.copy()
        out[..., 0] = gray
        out[..., 1] = gray
        out[..., 2] = gray
        return RasterBuffer(out)

    def histogram_equalization(self) -> "RasterBuffer":
        """
        Equalize the luma histogram.

        Output pixels are gray (r = g = b) with alpha kept. An image with a
        single luma level has nothing to spread and is returned unchanged.
        """
        gray = self.gray_levels()
        total = gray.size
        histogram = np.bincount(gray.ravel(), minlength=256)
        cdf = np.cumsum(histogram)
        cdf_min = int(cdf[np.nonzero(cdf)[0][0]])

        if total == cdf_min:
            return self.copy()

        lut = np.floor((cdf - cdf_min) / (total - cdf_min) * 255.0 + 0.5)
        lut = np.clip(lut, 0, 255).astype(np.uint8)
        mapped = lut[gray]

        out = self._pixels.copy()
        out[..., 0] = mapped
        out[..., 1] = mapped
        out[..., 2] = mapped
        return RasterBuffer(out)

    def apply_convolution(
        self,
        kernel,
        workers: int = 1,
        cancel_token: Optional[CancellationToken] = None,
    ) -> "RasterBuffer":
        """
        Convolve r, g and b with an odd-sized kernel using edge clamping.

        Args:
            kernel: 2-D matrix (nested lists or array) with odd dimensions
            workers: Threads for row-band processing
            cancel_token: Optional cooperative cancellation token
        """
        with timer() as t:
            out = filters.convolve_rgb(self._pixels, kernel, workers, cancel_token)
        logger.debug(f"Convolution on {self.width}x{self.height} took {t['ms']}ms")
        return RasterBuffer(out)

    def gaussian_blur(
        self,
        radius: Optional[float] = None,
        workers: int = 1,
        cancel_token: Optional[CancellationToken] = None,
    ) -> "RasterBuffer":
        if radius is None:
            radius = get_settings().raster.blur_radius
        return self.apply_convolution(filters.gaussian_kernel(radius), workers, cancel_token)

    def sobel_edge_detection(self) -> GradientField:
        """Sobel gradients of the truncated luma; border cells are 0."""
        magnitude, direction = filters.sobel_gradients(self.gray_levels())
        return GradientField(magnitude, direction)

    def canny_edge_detection(
        self,
        low_threshold: Optional[float] = None,
        high_threshold: Optional[float] = None,
        blur_sigma: Optional[float] = None,
        workers: int = 1,
        cancel_token: Optional[CancellationToken] = None,
    ) -> "RasterBuffer":
        """
        Canny edge detection.

        Blur, Sobel, non-maximum suppression and double-threshold hysteresis.

        Returns:
            Opaque buffer with white edges on black
        """
        config = get_settings().raster
        if low_threshold is None:
            low_threshold = config.canny_low_threshold
        if high_threshold is None:
            high_threshold = config.canny_high_threshold
        if blur_sigma is None:
            blur_sigma = config.canny_blur_sigma

        blurred = self.gaussian_blur(blur_sigma, workers, cancel_token)
        gradients = blurred.sobel_edge_detection()
        suppressed = filters.non_max_suppression(gradients.magnitude, gradients.direction)
        edges = filters.hysteresis(suppressed, low_threshold, high_threshold)

        value = np.where(edges, 255, 0).astype(np.uint8)
        out = np.empty_like(self._pixels)
        out[..., 0] = value
        out[..., 1] = value
        out[..., 2] = value
        out[..., 3] = 255
        logger.debug(f"Canny found {int(edges.sum())} edge pixels")
        return RasterBuffer(out)


def as_raster(source: Union[RasterBuffer, str, Path]) -> RasterBuffer:
    """Accept a buffer or an image path."""
    if isinstance(source, RasterBuffer):
        return source
    return RasterBuffer.decode(source)
