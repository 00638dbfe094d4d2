"""
Pytest configuration and fixtures for vision toolkit tests
"""

import cv2
import numpy as np
import pytest

from algorithms.comparison import ImageComparator
from algorithms.detection import ObjectDetector
from algorithms.feature_extraction import FeatureExtractor
from algorithms.generation import ImageGenerator
from config import Settings
from image.raster import RasterBuffer


@pytest.fixture
def settings():
    """Default settings, independent of the cached instance"""
    return Settings()


@pytest.fixture
def test_image():
    """Create a test image with a white rectangle and a gray circle"""
    image = np.zeros((120, 160, 3), dtype=np.uint8)
    cv2.rectangle(image, (20, 20), (70, 80), (255, 255, 255), -1)
    cv2.circle(image, (115, 60), 25, (128, 128, 128), -1)
    return RasterBuffer.from_array(image)


@pytest.fixture
def noise_image():
    """Seeded random RGB image"""
    rng = np.random.default_rng(1234)
    return RasterBuffer.from_array(rng.integers(0, 256, size=(60, 80, 3), dtype=np.uint8))


@pytest.fixture
def uniform_image():
    """Every pixel the same color"""
    image = np.full((32, 32, 3), 200, dtype=np.uint8)
    return RasterBuffer.from_array(image)


@pytest.fixture
def two_squares_mask():
    """Black mask with two disjoint 10x10 white squares at (5, 5) and (30, 30)"""
    mask = np.zeros((60, 60), dtype=np.uint8)
    mask[5:15, 5:15] = 255
    mask[30:40, 30:40] = 255
    return RasterBuffer.from_array(mask)


@pytest.fixture
def feature_extractor(settings):
    return FeatureExtractor(settings)


@pytest.fixture
def comparator(settings, feature_extractor):
    return ImageComparator(settings, feature_extractor)


@pytest.fixture
def detector(settings):
    return ObjectDetector(settings)


@pytest.fixture
def generator(settings):
    return ImageGenerator(settings)
