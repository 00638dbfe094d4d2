"""
Central types module for the vision toolkit.

This module consolidates the fundamental types, enums, and constants used
throughout the toolkit. It has no dependencies on other project modules
(only stdlib and Pydantic).

Contents:
- Base Models: Point, ROI (geometric primitives)
- Enums: BlendMode, NoiseType, HashType, HistogramMetric, ImageFormat, MorphOperation
- Constants: Default parameters and magic numbers organized by component

IMPORTANT: This module must NOT import from models, config, image or
algorithms to avoid circular dependencies.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field

# ==============================================================================
# Base Data Models
# ==============================================================================


class Point(BaseModel):
    """2D Point"""

    x: float
    y: float


class ROI(BaseModel):
    """
    Region of Interest.

    Axis-aligned rectangle in pixel coordinates, used for crop regions,
    template match boxes and blob bounding boxes.
    """

    x: int = Field(..., ge=0, description="X coordinate")
    y: int = Field(..., ge=0, description="Y coordinate")
    width: int = Field(..., gt=0, description="Width")
    height: int = Field(..., gt=0, description="Height")

    def to_dict(self) -> Dict[str, int]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}

    @property
    def x2(self) -> int:
        """Exclusive right edge."""
        return self.x + self.width

    @property
    def y2(self) -> int:
        """Exclusive bottom edge."""
        return self.y + self.height

    @property
    def area_pixels(self) -> int:
        return self.width * self.height

    def intersection_area(self, other: "ROI") -> int:
        """Overlap area with another ROI (0 when disjoint)."""
        w = min(self.x2, other.x2) - max(self.x, other.x)
        h = min(self.y2, other.y2) - max(self.y, other.y)
        if w <= 0 or h <= 0:
            return 0
        return w * h

    def iou(self, other: "ROI") -> float:
        """Intersection over union with another ROI."""
        inter = self.intersection_area(other)
        union = self.area_pixels + other.area_pixels - inter
        return inter / union if union > 0 else 0.0

    def is_valid(
        self, image_width: Optional[int] = None, image_height: Optional[int] = None
    ) -> bool:
        """Check that the ROI is non-empty and, if given, inside the image bounds."""
        if self.width <= 0 or self.height <= 0:
            return False

        if self.x < 0 or self.y < 0:
            return False

        if image_width is not None and self.x2 > image_width:
            return False

        if image_height is not None and self.y2 > image_height:
            return False

        return True

    def validate_with_constraints(
        self,
        image_width: Optional[int] = None,
        image_height: Optional[int] = None,
        min_size: int = 1,
    ) -> None:
        """
        Validate ROI with size constraints.

        Raises:
            ValueError: If ROI is invalid with descriptive error message
        """
        if self.width < min_size or self.height < min_size:
            raise ValueError(f"ROI too small: {self.width}x{self.height} (min: {min_size})")

        if image_width is not None or image_height is not None:
            if not self.is_valid(image_width, image_height):
                raise ValueError(
                    f"ROI {self.to_dict()} exceeds image bounds {image_width}x{image_height}"
                )


# ==============================================================================
# Enumerations
# ==============================================================================


class ImageFormat(str, Enum):
    """Raster formats recognised by the codec."""

    JPEG = "jpeg"
    PNG = "png"
    GIF = "gif"
    BMP = "bmp"
    WEBP = "webp"


class BlendMode(str, Enum):
    """Per-channel blend modes."""

    NORMAL = "normal"
    MULTIPLY = "multiply"
    SCREEN = "screen"
    OVERLAY = "overlay"
    ADD = "add"
    SUBTRACT = "subtract"
    DIFFERENCE = "difference"


class NoiseType(str, Enum):
    """Noise generators usable as texture sources."""

    WHITE = "white"
    PERLIN = "perlin"
    SIMPLEX = "simplex"


class HashType(str, Enum):
    """Perceptual hash algorithms."""

    AVERAGE = "average"
    DIFFERENCE = "difference"
    PERCEPTUAL = "perceptual"


class HistogramMetric(str, Enum):
    """Histogram comparison metrics."""

    CHI_SQUARE = "chi_square"
    INTERSECTION = "intersection"
    BHATTACHARYYA = "bhattacharyya"
    CORRELATION = "correlation"
    ALL = "all"


class MorphOperation(str, Enum):
    """Binary morphology operations."""

    ERODE = "erode"
    DILATE = "dilate"
    OPEN = "open"
    CLOSE = "close"


# ==============================================================================
# Constants
# ==============================================================================


class RasterConstants:
    """Constants for raster decoding, encoding and filtering."""

    # Encoding
    DEFAULT_QUALITY = 90
    MIN_QUALITY = 0
    MAX_QUALITY = 100

    # Luma weights (ITU-R BT.601)
    LUMA_R = 0.299
    LUMA_G = 0.587
    LUMA_B = 0.114

    # Filtering
    DEFAULT_BLUR_RADIUS = 1.0
    CANNY_LOW_THRESHOLD_DEFAULT = 50
    CANNY_HIGH_THRESHOLD_DEFAULT = 150
    CANNY_BLUR_SIGMA = 1.4

    # Row band height for chunked convolution
    CONVOLUTION_BAND_ROWS = 64


class FeatureConstants:
    """Constants for feature extraction."""

    COLOR_BINS_DEFAULT = 16
    HSV_H_BINS_DEFAULT = 18
    HSV_S_BINS_DEFAULT = 8
    HSV_V_BINS_DEFAULT = 8
    EDGE_BINS_DEFAULT = 8
    EDGE_MIN_MAGNITUDE = 30.0

    LBP_RADIUS_DEFAULT = 1
    LBP_NEIGHBORS_DEFAULT = 8
    LBP_MAX_NEIGHBORS = 8
    LBP_BINS = 256

    MOMENT_EPSILON = 1e-5
    MAX_MOMENT_ORDER = 3

    # Scale space
    KEYPOINT_THRESHOLD_DEFAULT = 10.0
    KEYPOINT_OCTAVES = 3
    KEYPOINT_SCALES = 3
    KEYPOINT_BASE_SIGMA = 1.6
    MAX_KEYPOINTS = 100
    ORIENTATION_BINS = 36
    ORIENTATION_RADIUS = 8

    FEATURE_VECTOR_LBP_BINS = 32


class ComparisonConstants:
    """Constants for image comparison."""

    SSIM_WINDOW_DEFAULT = 11
    SSIM_C1 = (0.01 * 255) ** 2
    SSIM_C2 = (0.03 * 255) ** 2

    HASH_SIZE_DEFAULT = 8
    DCT_SIZE = 32

    BHATTACHARYYA_EPSILON = 1e-10
    MAX_PIXEL_VALUE = 255.0


class DetectionConstants:
    """Constants for object detection and segmentation."""

    TEMPLATE_THRESHOLD_DEFAULT = 0.8
    NMS_IOU_THRESHOLD = 0.5
    NCC_EPSILON = 1e-6

    COLOR_TOLERANCE_DEFAULT = 30.0
    MASK_FOREGROUND_THRESHOLD = 127

    BLOB_MIN_AREA_DEFAULT = 100
    CONTOUR_MIN_AREA_DEFAULT = 10
    CONTOUR_MAX_STEPS = 10000

    MORPH_KERNEL_SIZE_DEFAULT = 3


class GenerationConstants:
    """Constants for procedural generation."""

    NOISE_SCALE_DEFAULT = 50.0
    NOISE_OCTAVES_DEFAULT = 4
    NOISE_PERSISTENCE_DEFAULT = 0.5

    SIMPLEX_F2 = 0.5 * (3.0 ** 0.5 - 1.0)
    SIMPLEX_G2 = (3.0 - 3.0 ** 0.5) / 6.0
    SIMPLEX_SCALE = 70.0

    FRACTAL_MAX_ITERATIONS = 100
    FRACTAL_ESCAPE_RADIUS_SQ = 4.0
    FRACTAL_VIEW_SPAN = 4.0

    VORONOI_POINTS_DEFAULT = 20
    CHECKERBOARD_SQUARE_DEFAULT = 32


class SystemConstants:
    """Constants for system operations."""

    # Logging
    LOG_LEVEL_DEFAULT = "INFO"
    LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    LOG_FILE_MAX_BYTES = 10 * 1024 * 1024  # 10MB
    LOG_FILE_BACKUP_COUNT = 5

    # Threading
    MAX_WORKER_THREADS = 10
    THREAD_POOL_SIZE = 1
