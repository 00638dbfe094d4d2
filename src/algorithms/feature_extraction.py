"""
Feature extraction.

Color, HSV and edge-orientation histograms, local binary pattern texture,
moment-based shape descriptors and DoG keypoints, plus flattening of a
FeatureSet into a single vector for distance comparison.
"""

import math
from typing import Dict, List, Optional

import numpy as np

from algorithms.base import ImageSource, VisionComponent
from algorithms.keypoints import detect_keypoints
from config import Settings
from domain_types import FeatureConstants, Point
from exceptions import InvalidParameterException
from image.raster import RasterBuffer
from models import FeatureSet, Histogram, Keypoint, ShapeDescriptor, TextureDescriptor
from utils import CancellationToken, round_half_away, timer


def calculate_entropy(histogram) -> float:
    """Shannon entropy (natural log) over the non-zero bins."""
    p = np.asarray(histogram, dtype=np.float64)
    p = p[p > 0]
    return float(-(p * np.log(p)).sum())


def calculate_uniformity(histogram) -> float:
    """Sum of squared bin values."""
    p = np.asarray(histogram, dtype=np.float64)
    return float((p * p).sum())


def _binned_histogram(values: np.ndarray, bins: int, value_range: float) -> List[float]:
    index = np.minimum((values / (value_range / bins)).astype(np.int64), bins - 1)
    counts = np.bincount(index.ravel(), minlength=bins)
    return (counts / values.size).tolist()


class FeatureExtractor(VisionComponent):
    """
    Extracts numeric descriptors from images.

    Every method accepts a RasterBuffer or an image path. Parameters left
    as None fall back to the feature configuration.
    """

    def __init__(self, settings: Optional[Settings] = None):
        super().__init__(settings)
        self.config = self.settings.feature

    def extract_all_features(
        self, source: ImageSource, cancel_token: Optional[CancellationToken] = None
    ) -> FeatureSet:
        """Run every extractor on one image."""
        image = self._resolve(source)
        with timer() as t:
            features = FeatureSet(
                color_histogram=self.color_histogram(image),
                hsv_histogram=self.hsv_histogram(image),
                edge_histogram=self.edge_histogram(image),
                texture=self.lbp_features(image),
                shape=self.shape_descriptors(image),
                keypoints=self.keypoints(image, cancel_token=cancel_token),
            )
        self.logger.debug(f"Extracted features from {image} in {t['ms']}ms")
        return features

    def color_histogram(self, source: ImageSource, bins: Optional[int] = None) -> Histogram:
        """
        Normalized per-channel RGB histogram.

        Args:
            source: Image buffer or path
            bins: Bins per channel (1..256)

        Returns:
            Histogram with channels r, g, b each summing to 1
        """
        bins = self._default(bins, self.config.color_bins)
        if not 1 <= bins <= 256:
            raise InvalidParameterException("bins", bins, "must be between 1 and 256")

        pixels = self._resolve(source).pixels
        return Histogram(
            channels={
                name: _binned_histogram(pixels[..., i].astype(np.float64), bins, 256.0)
                for i, name in enumerate(("r", "g", "b"))
            }
        )

    def hsv_histogram(
        self,
        source: ImageSource,
        h_bins: Optional[int] = None,
        s_bins: Optional[int] = None,
        v_bins: Optional[int] = None,
    ) -> Histogram:
        """Normalized hue (0..360), saturation and value (0..100) histograms."""
        h_bins = self._default(h_bins, self.config.hsv_h_bins)
        s_bins = self._default(s_bins, self.config.hsv_s_bins)
        v_bins = self._default(v_bins, self.config.hsv_v_bins)
        for name, value in (("h_bins", h_bins), ("s_bins", s_bins), ("v_bins", v_bins)):
            self._require_positive(name, value)

        hsv = self._resolve(source).hsv()
        return Histogram(
            channels={
                "h": _binned_histogram(hsv[..., 0], h_bins, 360.0),
                "s": _binned_histogram(hsv[..., 1], s_bins, 100.0),
                "v": _binned_histogram(hsv[..., 2], v_bins, 100.0),
            }
        )

    def edge_histogram(
        self,
        source: ImageSource,
        bins: Optional[int] = None,
        min_magnitude: Optional[float] = None,
    ) -> List[float]:
        """
        Histogram of Sobel gradient directions over strong edge pixels.

        Returns:
            ``bins`` values normalized by the number of edge pixels; all zeros
            when no pixel exceeds ``min_magnitude``
        """
        bins = self._default(bins, self.config.edge_bins)
        min_magnitude = self._default(min_magnitude, self.config.edge_min_magnitude)
        self._require_positive("bins", bins)
        self._require_positive("min_magnitude", min_magnitude, allow_zero=True)

        gradients = self._resolve(source).sobel_edge_detection()
        edges = gradients.magnitude > min_magnitude
        count = int(edges.sum())
        if count == 0:
            return [0.0] * bins

        degrees = np.degrees(gradients.direction[edges])
        degrees = np.where(degrees < 0, degrees + 360.0, degrees)
        index = (degrees / 360.0 * bins).astype(np.int64) % bins
        return (np.bincount(index, minlength=bins) / count).tolist()

    def lbp_features(
        self,
        source: ImageSource,
        radius: Optional[int] = None,
        neighbors: Optional[int] = None,
    ) -> TextureDescriptor:
        """
        Local binary pattern texture descriptor.

        Each interior pixel gets a code with bit n set when the sample at
        angle 2*pi*n/neighbors and distance ``radius`` is not darker than the
        centre.

        Returns:
            TextureDescriptor with a 256-bin normalized histogram
        """
        radius = self._default(radius, self.config.lbp_radius)
        neighbors = self._default(neighbors, self.config.lbp_neighbors)
        if radius < 1:
            raise InvalidParameterException("radius", radius, "must be at least 1")
        if not 1 <= neighbors <= FeatureConstants.LBP_MAX_NEIGHBORS:
            raise InvalidParameterException(
                "neighbors", neighbors, f"must be between 1 and {FeatureConstants.LBP_MAX_NEIGHBORS}"
            )

        gray = self._resolve(source).gray_levels()
        height, width = gray.shape
        histogram = np.zeros(FeatureConstants.LBP_BINS, dtype=np.float64)

        if height > 2 * radius and width > 2 * radius:
            center = gray[radius : height - radius, radius : width - radius]
            codes = np.zeros(center.shape, dtype=np.int64)
            for n in range(neighbors):
                angle = 2.0 * math.pi * n / neighbors
                dx = int(round_half_away(radius * math.cos(angle)))
                dy = -int(round_half_away(radius * math.sin(angle)))
                sample = gray[
                    radius + dy : height - radius + dy, radius + dx : width - radius + dx
                ]
                codes |= (sample >= center).astype(np.int64) << n

            counts = np.bincount(codes.ravel(), minlength=FeatureConstants.LBP_BINS)
            histogram = counts / counts.sum()

        return TextureDescriptor(
            histogram=histogram.tolist(),
            entropy=calculate_entropy(histogram),
            uniformity=calculate_uniformity(histogram),
        )

    def shape_descriptors(self, source: ImageSource) -> ShapeDescriptor:
        """
        Raw, central and normalized moments up to order 3 and Hu invariants
        I1..I4 of the grayscale intensity (scaled to 0..1).
        """
        intensity = self._resolve(source).gray_levels().astype(np.float64) / 255.0
        height, width = intensity.shape
        xs = np.arange(width, dtype=np.float64)
        ys = np.arange(height, dtype=np.float64)
        eps = FeatureConstants.MOMENT_EPSILON
        order = FeatureConstants.MAX_MOMENT_ORDER

        raw: Dict[str, float] = {}
        for p in range(order + 1):
            for q in range(order + 1):
                raw[f"m{p}{q}"] = float((ys ** q) @ intensity @ (xs ** p))

        x_bar = raw["m10"] / max(raw["m00"], eps)
        y_bar = raw["m01"] / max(raw["m00"], eps)

        dx = xs - x_bar
        dy = ys - y_bar
        central: Dict[str, float] = {}
        for p in range(order + 1):
            for q in range(order + 1):
                central[f"mu{p}{q}"] = float((dy ** q) @ intensity @ (dx ** p))

        normalized: Dict[str, float] = {}
        mu00 = max(central["mu00"], eps)
        for p in range(order + 1):
            for q in range(order + 1):
                if p + q >= 2:
                    gamma = (p + q) / 2 + 1
                    normalized[f"eta{p}{q}"] = central[f"mu{p}{q}"] / mu00 ** gamma

        eta = normalized
        hu = [
            eta["eta20"] + eta["eta02"],
            (eta["eta20"] - eta["eta02"]) ** 2 + 4 * eta["eta11"] ** 2,
            (eta["eta30"] - 3 * eta["eta12"]) ** 2 + (3 * eta["eta21"] - eta["eta03"]) ** 2,
            (eta["eta30"] + eta["eta12"]) ** 2 + (eta["eta21"] + eta["eta03"]) ** 2,
        ]

        return ShapeDescriptor(
            raw_moments=raw,
            central_moments=central,
            normalized_moments=normalized,
            hu_moments=hu,
            centroid=Point(x=x_bar, y=y_bar),
        )

    def keypoints(
        self,
        source: ImageSource,
        threshold: Optional[float] = None,
        max_keypoints: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> List[Keypoint]:
        """SIFT-like DoG keypoints of the grayscale image, strongest first."""
        threshold = self._default(threshold, self.config.keypoint_threshold)
        max_keypoints = self._default(max_keypoints, self.config.max_keypoints)
        self._require_positive("threshold", threshold, allow_zero=True)
        self._require_positive("max_keypoints", max_keypoints)

        gray = self._resolve(source).to_grayscale()
        return detect_keypoints(
            gray,
            threshold=threshold,
            max_keypoints=max_keypoints,
            workers=self.workers,
            cancel_token=cancel_token,
        )

    def feature_vector(self, features: FeatureSet, lbp_bins: Optional[int] = None) -> List[float]:
        """
        Flatten a FeatureSet.

        Order: color histogram channels, edge histogram, the ``lbp_bins``
        largest LBP histogram values, then the four Hu moments. Missing parts
        are skipped.
        """
        lbp_bins = self._default(lbp_bins, self.config.vector_lbp_bins)
        vector: List[float] = []

        if features.color_histogram is not None:
            for values in features.color_histogram.channels.values():
                vector.extend(values)

        if features.edge_histogram is not None:
            vector.extend(features.edge_histogram)

        if features.texture is not None:
            lbp = np.asarray(features.texture.histogram, dtype=np.float64)
            top = np.argsort(-lbp, kind="stable")[:lbp_bins]
            vector.extend(lbp[top].tolist())

        if features.shape is not None:
            vector.extend(features.shape.hu_moments)

        return vector

    def vector_for(self, source: ImageSource) -> List[float]:
        """Feature vector of an image (all extractors except keypoints)."""
        image: RasterBuffer = self._resolve(source)
        features = FeatureSet(
            color_histogram=self.color_histogram(image),
            edge_histogram=self.edge_histogram(image),
            texture=self.lbp_features(image),
            shape=self.shape_descriptors(image),
        )
        return self.feature_vector(features)
