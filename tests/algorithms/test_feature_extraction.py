"""
Tests for algorithms.feature_extraction module.

Tests histograms, LBP texture, moment descriptors and feature vectors.
"""

import numpy as np
import pytest

from algorithms.feature_extraction import (
    FeatureExtractor,
    calculate_entropy,
    calculate_uniformity,
)
from exceptions import InvalidParameterException
from image.raster import RasterBuffer
from models import FeatureSet


@pytest.fixture
def square_image():
    """50x50 black image with a 10x10 white square at (20, 20)"""
    image = np.zeros((50, 50), dtype=np.uint8)
    image[20:30, 20:30] = 255
    return RasterBuffer.from_array(image)


class TestHistograms:
    """Tests for color, HSV and edge histograms"""

    def test_color_histogram_is_normalized(self, feature_extractor, noise_image):
        histogram = feature_extractor.color_histogram(noise_image)

        assert histogram.names == ["r", "g", "b"]
        for channel in histogram.names:
            assert len(histogram[channel]) == 16
            assert sum(histogram[channel]) == pytest.approx(1.0)

    def test_color_histogram_of_uniform_image(self, feature_extractor, uniform_image):
        histogram = feature_extractor.color_histogram(uniform_image, bins=16)

        # 200 / (256 / 16) = 12.5
        assert histogram["r"][12] == 1.0
        assert sum(histogram["r"]) == 1.0

    def test_color_histogram_rejects_zero_bins(self, feature_extractor, noise_image):
        with pytest.raises(InvalidParameterException):
            feature_extractor.color_histogram(noise_image, bins=0)

    def test_hsv_histogram(self, feature_extractor, noise_image):
        histogram = feature_extractor.hsv_histogram(noise_image)

        assert [len(histogram[c]) for c in ("h", "s", "v")] == [18, 8, 8]
        for channel in ("h", "s", "v"):
            assert sum(histogram[channel]) == pytest.approx(1.0)

    def test_edge_histogram_without_edges(self, feature_extractor, uniform_image):
        assert feature_extractor.edge_histogram(uniform_image) == [0.0] * 8

    def test_edge_histogram_with_edges(self, feature_extractor, square_image):
        histogram = feature_extractor.edge_histogram(square_image)

        assert len(histogram) == 8
        assert sum(histogram) == pytest.approx(1.0)


class TestTexture:
    """Tests for local binary patterns"""

    def test_uniform_image_has_zero_entropy(self, feature_extractor, uniform_image):
        texture = feature_extractor.lbp_features(uniform_image)

        assert len(texture.histogram) == 256
        assert sum(texture.histogram) == pytest.approx(1.0)
        assert texture.histogram[255] == 1.0
        assert texture.entropy == 0.0
        assert texture.uniformity == 1.0

    def test_lbp_sums_to_one(self, feature_extractor, noise_image):
        texture = feature_extractor.lbp_features(noise_image)

        assert sum(texture.histogram) == pytest.approx(1.0)
        assert texture.entropy > 0

    def test_image_too_small_for_radius(self, feature_extractor):
        tiny = RasterBuffer.from_array(np.zeros((2, 2), dtype=np.uint8))
        texture = feature_extractor.lbp_features(tiny)

        assert sum(texture.histogram) == 0.0
        assert texture.entropy == 0.0

    def test_too_many_neighbors(self, feature_extractor, noise_image):
        with pytest.raises(InvalidParameterException):
            feature_extractor.lbp_features(noise_image, neighbors=9)

    def test_entropy_and_uniformity_helpers(self):
        assert calculate_entropy([0.5, 0.5, 0.0]) == pytest.approx(np.log(2))
        assert calculate_uniformity([0.5, 0.5]) == pytest.approx(0.5)


class TestShape:
    """Tests for moments and Hu invariants"""

    def test_centroid_of_square(self, feature_extractor, square_image):
        shape = feature_extractor.shape_descriptors(square_image)

        assert shape.raw_moments["m00"] == pytest.approx(100.0, rel=0.01)
        assert shape.centroid.x == pytest.approx(24.5)
        assert shape.centroid.y == pytest.approx(24.5)

    def test_square_is_symmetric(self, feature_extractor, square_image):
        shape = feature_extractor.shape_descriptors(square_image)

        assert len(shape.hu_moments) == 4
        assert shape.central_moments["mu11"] == pytest.approx(0.0, abs=1e-9)
        assert shape.hu_moments[1] == pytest.approx(0.0, abs=1e-12)

    def test_black_image_uses_epsilon_floor(self, feature_extractor):
        black = RasterBuffer.from_array(np.zeros((8, 8), dtype=np.uint8))
        shape = feature_extractor.shape_descriptors(black)

        assert shape.centroid.x == 0.0
        assert all(np.isfinite(shape.hu_moments))


class TestKeypointsAndVectors:
    """Tests for keypoints, full extraction and vector flattening"""

    def test_keypoints_sorted_and_limited(self, feature_extractor, test_image):
        keypoints = feature_extractor.keypoints(test_image, threshold=1.0, max_keypoints=5)
        responses = [kp.response for kp in keypoints]

        assert len(keypoints) <= 5
        assert responses == sorted(responses, reverse=True)

    def test_high_threshold_finds_nothing(self, feature_extractor, test_image):
        assert feature_extractor.keypoints(test_image, threshold=1e9) == []

    def test_extract_all_features(self, feature_extractor, test_image):
        features = feature_extractor.extract_all_features(test_image)

        assert isinstance(features, FeatureSet)
        assert features.color_histogram is not None
        assert features.hsv_histogram is not None
        assert features.texture is not None
        assert features.shape is not None

    def test_feature_vector_layout(self, feature_extractor, test_image):
        features = feature_extractor.extract_all_features(test_image)
        vector = feature_extractor.feature_vector(features)

        # 3 x 16 color bins, 8 edge bins, 32 LBP bins, 4 Hu moments
        assert len(vector) == 48 + 8 + 32 + 4
        assert vector[-4:] == features.shape.hu_moments

    def test_feature_vector_skips_missing_parts(self, feature_extractor):
        assert feature_extractor.feature_vector(FeatureSet()) == []

    def test_accepts_paths(self, tmp_path, feature_extractor, test_image):
        path = tmp_path / "image.png"
        test_image.encode(path)

        assert (
            feature_extractor.color_histogram(str(path))
            == feature_extractor.color_histogram(test_image)
        )
