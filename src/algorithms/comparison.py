"""
Image comparison.

Histogram distances, structural similarity, MSE/PSNR, perceptual hash
comparison and feature-vector distances between two images.
"""

import math
from typing import Dict, Optional, Sequence, Union

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from algorithms import hashing
from algorithms.base import ImageSource, VisionComponent
from algorithms.feature_extraction import FeatureExtractor
from config import Settings
from domain_types import ComparisonConstants, HashType, HistogramMetric
from exceptions import DimensionMismatchException, InvalidParameterException
from image.raster import RasterBuffer
from models import (
    ComparisonReport,
    FeatureDistance,
    HashComparison,
    Histogram,
    HistogramComparison,
)

# ==============================================================================
# Histogram Distances
# ==============================================================================


def _paired_channels(hist1: Histogram, hist2: Histogram):
    """Yield (a, b) float arrays per channel, checking shapes agree."""
    if hist1.names != hist2.names:
        raise DimensionMismatchException(
            "histogram channels differ", expected=hist1.names, actual=hist2.names
        )
    for name in hist1.names:
        a = np.asarray(hist1[name], dtype=np.float64)
        b = np.asarray(hist2[name], dtype=np.float64)
        if a.shape != b.shape:
            raise DimensionMismatchException(
                f"channel '{name}' bin counts differ", expected=a.shape[0], actual=b.shape[0]
            )
        yield a, b


def chi_square_distance(hist1: Histogram, hist2: Histogram) -> float:
    """Sum of (a-b)^2/(a+b) over bins where a+b > 0."""
    distance = 0.0
    for a, b in _paired_channels(hist1, hist2):
        total = a + b
        nonzero = total > 0
        diff = a[nonzero] - b[nonzero]
        distance += float((diff * diff / total[nonzero]).sum())
    return distance


def histogram_intersection(hist1: Histogram, hist2: Histogram) -> float:
    return float(sum(np.minimum(a, b).sum() for a, b in _paired_channels(hist1, hist2)))


def bhattacharyya_distance(hist1: Histogram, hist2: Histogram) -> float:
    coefficient = sum(float(np.sqrt(a * b).sum()) for a, b in _paired_channels(hist1, hist2))
    return -math.log(max(coefficient, ComparisonConstants.BHATTACHARYYA_EPSILON))


def histogram_correlation(hist1: Histogram, hist2: Histogram) -> float:
    """Pearson correlation averaged over channels with non-zero variance (0 if none)."""
    total = 0.0
    channels = 0
    for a, b in _paired_channels(hist1, hist2):
        da = a - a.mean()
        db = b - b.mean()
        denom = math.sqrt(float((da * da).sum()) * float((db * db).sum()))
        if denom > 0:
            total += float((da * db).sum()) / denom
            channels += 1
    return total / channels if channels > 0 else 0.0


HISTOGRAM_METRICS = {
    HistogramMetric.CHI_SQUARE: chi_square_distance,
    HistogramMetric.INTERSECTION: histogram_intersection,
    HistogramMetric.BHATTACHARYYA: bhattacharyya_distance,
    HistogramMetric.CORRELATION: histogram_correlation,
}

# ==============================================================================
# Vector Distances
# ==============================================================================


def _truncate(v1: Sequence[float], v2: Sequence[float]):
    n = min(len(v1), len(v2))
    return np.asarray(v1[:n], dtype=np.float64), np.asarray(v2[:n], dtype=np.float64)


def euclidean_distance(v1: Sequence[float], v2: Sequence[float]) -> float:
    a, b = _truncate(v1, v2)
    return float(np.sqrt(((a - b) ** 2).sum()))


def cosine_similarity(v1: Sequence[float], v2: Sequence[float]) -> float:
    a, b = _truncate(v1, v2)
    magnitude1 = float(np.sqrt((a * a).sum()))
    magnitude2 = float(np.sqrt((b * b).sum()))
    if magnitude1 == 0 or magnitude2 == 0:
        return 0.0
    return float((a * b).sum()) / (magnitude1 * magnitude2)


def manhattan_distance(v1: Sequence[float], v2: Sequence[float]) -> float:
    a, b = _truncate(v1, v2)
    return float(np.abs(a - b).sum())


# ==============================================================================
# Comparator
# ==============================================================================


class ImageComparator(VisionComponent):
    """
    Quantitative similarity between two images.

    Every method accepts RasterBuffers or image paths.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        feature_extractor: Optional[FeatureExtractor] = None,
    ):
        super().__init__(settings)
        self.config = self.settings.comparison
        self.feature_extractor = feature_extractor or FeatureExtractor(self.settings)

    def compare_images(self, source1: ImageSource, source2: ImageSource) -> ComparisonReport:
        """Run every comparison on a pair of images."""
        image1 = self._resolve(source1)
        image2 = self._resolve(source2)
        mse = self.mse(image1, image2)
        return ComparisonReport(
            histogram=self.compare_histograms(image1, image2),
            ssim=self.ssim(image1, image2),
            mse=mse,
            psnr=self._psnr_from_mse(mse),
            perceptual_hash=self.compare_perceptual_hashes(image1, image2),
            features=self.compare_features(image1, image2),
        )

    # ------------------------------------------------------------------
    # Histograms
    # ------------------------------------------------------------------

    def compare_histograms(
        self,
        source1: ImageSource,
        source2: ImageSource,
        method: Union[HistogramMetric, str] = HistogramMetric.ALL,
    ) -> HistogramComparison:
        """
        Compare color histograms.

        Args:
            source1: First image
            source2: Second image
            method: One metric name, or "all"

        Returns:
            HistogramComparison with the requested metric(s) filled in
        """
        try:
            method = HistogramMetric(method)
        except ValueError as e:
            raise InvalidParameterException("method", method, "unknown histogram metric") from e

        hist1 = self.feature_extractor.color_histogram(source1)
        hist2 = self.feature_extractor.color_histogram(source2)

        results: Dict[str, float] = {}
        for metric, func in HISTOGRAM_METRICS.items():
            if method in (HistogramMetric.ALL, metric):
                results[metric.value] = func(hist1, hist2)
        return HistogramComparison(**results)

    # ------------------------------------------------------------------
    # Pixel metrics
    # ------------------------------------------------------------------

    @staticmethod
    def _match_size(reference: RasterBuffer, other: RasterBuffer) -> RasterBuffer:
        if (other.width, other.height) != (reference.width, reference.height):
            return other.resize(reference.width, reference.height, maintain_aspect=False)
        return other

    def ssim(
        self, source1: ImageSource, source2: ImageSource, window: Optional[int] = None
    ) -> float:
        """
        Mean structural similarity over non-overlapping windows.

        Both images are converted to grayscale; the second is resized to the
        first when sizes differ. Returns 0 when no window fits.
        """
        window = self._default(window, self.config.ssim_window)
        if window < 1 or window % 2 == 0:
            raise InvalidParameterException("window", window, "must be a positive odd integer")

        gray1 = self._resolve(source1).to_grayscale()
        gray2 = self._match_size(gray1, self._resolve(source2).to_grayscale())
        g1 = gray1.pixels[..., 0].astype(np.float64)
        g2 = gray2.pixels[..., 0].astype(np.float64)

        height, width = g1.shape
        half = window // 2
        starts_y = np.arange(half, height - half, window) - half
        starts_x = np.arange(half, width - half, window) - half
        if starts_y.size == 0 or starts_x.size == 0:
            return 0.0

        w1 = sliding_window_view(g1, (window, window))[starts_y][:, starts_x]
        w2 = sliding_window_view(g2, (window, window))[starts_y][:, starts_x]

        mean1 = w1.mean(axis=(-2, -1))
        mean2 = w2.mean(axis=(-2, -1))
        d1 = w1 - mean1[..., None, None]
        d2 = w2 - mean2[..., None, None]
        var1 = (d1 * d1).mean(axis=(-2, -1))
        var2 = (d2 * d2).mean(axis=(-2, -1))
        cov = (d1 * d2).mean(axis=(-2, -1))

        c1, c2 = ComparisonConstants.SSIM_C1, ComparisonConstants.SSIM_C2
        numerator = (2 * mean1 * mean2 + c1) * (2 * cov + c2)
        denominator = (mean1 * mean1 + mean2 * mean2 + c1) * (var1 + var2 + c2)
        scores = np.divide(
            numerator, denominator, out=np.zeros_like(numerator), where=denominator > 0
        )
        return float(scores.mean())

    def mse(self, source1: ImageSource, source2: ImageSource) -> float:
        """Mean over pixels of the average squared RGB channel difference."""
        image1 = self._resolve(source1)
        image2 = self._match_size(image1, self._resolve(source2))
        a = image1.pixels[..., :3].astype(np.float64)
        b = image2.pixels[..., :3].astype(np.float64)
        return float(((a - b) ** 2).mean())

    @staticmethod
    def _psnr_from_mse(mse: float) -> float:
        if mse == 0:
            return math.inf
        peak = ComparisonConstants.MAX_PIXEL_VALUE
        return 10.0 * math.log10(peak * peak / mse)

    def psnr(self, source1: ImageSource, source2: ImageSource) -> float:
        """Peak signal-to-noise ratio in dB; infinite for identical images."""
        return self._psnr_from_mse(self.mse(source1, source2))

    # ------------------------------------------------------------------
    # Perceptual hashes
    # ------------------------------------------------------------------

    def average_hash(self, source: ImageSource, hash_size: Optional[int] = None) -> str:
        return hashing.average_hash(
            self._resolve(source), self._default(hash_size, self.config.hash_size)
        )

    def difference_hash(self, source: ImageSource, hash_size: Optional[int] = None) -> str:
        return hashing.difference_hash(
            self._resolve(source), self._default(hash_size, self.config.hash_size)
        )

    def perceptual_hash(self, source: ImageSource, hash_size: Optional[int] = None) -> str:
        return hashing.perceptual_hash(
            self._resolve(source), self._default(hash_size, self.config.hash_size)
        )

    @staticmethod
    def hamming_distance(hash1: str, hash2: str) -> int:
        return hashing.hamming_distance(hash1, hash2)

    def compare_hashes(
        self,
        source1: ImageSource,
        source2: ImageSource,
        kind: Union[HashType, str] = HashType.PERCEPTUAL,
        hash_size: Optional[int] = None,
    ) -> HashComparison:
        """Hash both images with one algorithm and compare the hashes."""
        hash_size = self._default(hash_size, self.config.hash_size)
        try:
            kind = HashType(kind)
        except ValueError as e:
            raise InvalidParameterException("kind", kind, "unknown hash type") from e

        hash1 = hashing.compute_hash(self._resolve(source1), kind, hash_size)
        hash2 = hashing.compute_hash(self._resolve(source2), kind, hash_size)
        distance = hashing.hamming_distance(hash1, hash2)
        return HashComparison(
            hash1=hash1,
            hash2=hash2,
            hamming_distance=distance,
            similarity=1.0 - distance / len(hash1),
        )

    def compare_perceptual_hashes(
        self, source1: ImageSource, source2: ImageSource
    ) -> Dict[str, HashComparison]:
        """Compare with all three hash algorithms, keyed by hash type."""
        image1 = self._resolve(source1)
        image2 = self._resolve(source2)
        return {kind.value: self.compare_hashes(image1, image2, kind) for kind in HashType}

    # ------------------------------------------------------------------
    # Feature vectors
    # ------------------------------------------------------------------

    def compare_features(self, source1: ImageSource, source2: ImageSource) -> FeatureDistance:
        """Distances between the flattened feature vectors of two images."""
        vector1 = self.feature_extractor.vector_for(source1)
        vector2 = self.feature_extractor.vector_for(source2)
        return FeatureDistance(
            euclidean_distance=euclidean_distance(vector1, vector2),
            cosine_similarity=cosine_similarity(vector1, vector2),
            manhattan_distance=manhattan_distance(vector1, vector2),
        )
