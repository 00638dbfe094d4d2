"""
Pydantic models for results returned by the vision components.

Organized by component:
- Features: Histogram, TextureDescriptor, ShapeDescriptor, Keypoint, FeatureSet
- Comparison: HistogramComparison, HashComparison, FeatureDistance, ComparisonReport
- Detection: TemplateMatch, Blob, Contour

Pixel data itself lives in image.raster.RasterBuffer; these models only carry
numeric results.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from domain_types import ROI, Point

# ==============================================================================
# Base Models
# ==============================================================================


class ResultModel(BaseModel):
    """Base class for all result models."""

    model_config = ConfigDict(extra="forbid")

    def to_dict(self) -> Dict:
        return self.model_dump()


# ==============================================================================
# Feature Models
# ==============================================================================


class Histogram(ResultModel):
    """Named channels of ordered bin values."""

    channels: Dict[str, List[float]] = Field(default_factory=dict)

    def __getitem__(self, channel: str) -> List[float]:
        return self.channels[channel]

    def __contains__(self, channel: str) -> bool:
        return channel in self.channels

    @property
    def names(self) -> List[str]:
        return list(self.channels.keys())


class TextureDescriptor(ResultModel):
    """Local binary pattern statistics."""

    histogram: List[float]
    entropy: float
    uniformity: float


class ShapeDescriptor(ResultModel):
    """Image moments and Hu invariants of an intensity image."""

    raw_moments: Dict[str, float]
    central_moments: Dict[str, float]
    normalized_moments: Dict[str, float]
    hu_moments: List[float] = Field(..., min_length=4, max_length=4)
    centroid: Point


class Keypoint(ResultModel):
    """Scale-space extremum."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    x: float
    y: float
    scale: float
    octave: int = Field(..., ge=0)
    response: float
    orientation: float = Field(default=0.0, description="Dominant gradient angle in radians")


class FeatureSet(ResultModel):
    """All descriptors extracted from one image."""

    color_histogram: Optional[Histogram] = None
    hsv_histogram: Optional[Histogram] = None
    edge_histogram: Optional[List[float]] = None
    texture: Optional[TextureDescriptor] = None
    shape: Optional[ShapeDescriptor] = None
    keypoints: List[Keypoint] = Field(default_factory=list)


# ==============================================================================
# Comparison Models
# ==============================================================================


class HistogramComparison(ResultModel):
    """Histogram distances; metrics not requested stay None."""

    chi_square: Optional[float] = None
    intersection: Optional[float] = None
    bhattacharyya: Optional[float] = None
    correlation: Optional[float] = None


class HashComparison(ResultModel):
    """Perceptual hash pair and their Hamming distance."""

    hash1: str
    hash2: str
    hamming_distance: int = Field(..., ge=0)
    similarity: float = Field(..., ge=0.0, le=1.0)

    @field_validator("hash1", "hash2")
    @classmethod
    def validate_bits(cls, v):
        """Ensure hash is a bit string."""
        if set(v) - {"0", "1"}:
            raise ValueError("Hash must contain only '0' and '1'")
        return v


class FeatureDistance(ResultModel):
    """Distances between two flat feature vectors."""

    euclidean_distance: float
    cosine_similarity: float
    manhattan_distance: float


class ComparisonReport(ResultModel):
    """Full comparison of two images."""

    histogram: HistogramComparison
    ssim: float
    mse: float
    psnr: float
    perceptual_hash: Dict[str, HashComparison] = Field(
        ..., description="Hash comparisons keyed by hash type"
    )
    features: FeatureDistance


# ==============================================================================
# Detection Models
# ==============================================================================


class TemplateMatch(ResultModel):
    """Template location with its normalized cross-correlation score."""

    bounding_box: ROI
    confidence: float = Field(..., ge=0.0, le=1.0)


class Blob(ResultModel):
    """4-connected foreground component of a mask."""

    label: int
    area: int = Field(..., gt=0)
    centroid: Point
    bounding_box: ROI
    perimeter: int = Field(..., ge=0)
    circularity: float = Field(..., ge=0.0)


class Contour(ResultModel):
    """Boundary walk of a blob."""

    points: List[Tuple[int, int]]
    label: int
    area: int
    centroid: Point

    @property
    def length(self) -> int:
        return len(self.points)
