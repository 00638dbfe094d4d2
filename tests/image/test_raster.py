"""
Tests for image.raster module.

Tests buffer construction, pixel access, geometry and pixel transforms.
"""

import numpy as np
import pytest

from config import reload_settings
from exceptions import (
    InvalidParameterException,
    OperationCancelledException,
    PixelOutOfBoundsException,
)
from image.raster import RasterBuffer, as_raster
from utils import CancellationToken


class TestConstruction:
    """Tests for creating buffers"""

    def test_allocate_is_transparent_black(self):
        buffer = RasterBuffer.allocate(4, 3)

        assert buffer.width == 4
        assert buffer.height == 3
        assert buffer.dimensions == {"width": 4, "height": 3}
        assert not buffer.pixels.any()

    def test_allocate_rejects_empty_size(self):
        with pytest.raises(InvalidParameterException):
            RasterBuffer.allocate(0, 10)

    def test_from_gray_array_is_opaque(self):
        buffer = RasterBuffer.from_array(np.full((2, 2), 77, dtype=np.uint8))

        assert buffer.get_pixel(1, 1) == {"r": 77, "g": 77, "b": 77, "a": 255}

    def test_constructor_rejects_wrong_shape(self):
        with pytest.raises(InvalidParameterException):
            RasterBuffer(np.zeros((4, 4, 3), dtype=np.uint8))

    def test_constructor_rejects_wrong_dtype(self):
        with pytest.raises(InvalidParameterException):
            RasterBuffer(np.zeros((4, 4, 4), dtype=np.float32))

    def test_as_raster_passes_buffers_through(self, test_image):
        assert as_raster(test_image) is test_image


class TestPixelAccess:
    """Tests for get_pixel and set_pixel"""

    def test_set_pixel_clamps_values(self):
        buffer = RasterBuffer.allocate(2, 2)
        buffer.set_pixel(0, 0, 300, -5, 10)

        assert buffer.get_pixel(0, 0) == {"r": 255, "g": 0, "b": 10, "a": 255}

    def test_get_pixel_out_of_bounds(self):
        buffer = RasterBuffer.allocate(2, 2)

        with pytest.raises(PixelOutOfBoundsException):
            buffer.get_pixel(2, 0)

        # Also usable as a plain IndexError
        with pytest.raises(IndexError):
            buffer.set_pixel(0, -1, 0, 0, 0)

    def test_pixels_view_is_read_only(self, test_image):
        with pytest.raises(ValueError):
            test_image.pixels[0, 0, 0] = 1

    def test_copy_is_independent(self, test_image):
        clone = test_image.copy()
        clone.set_pixel(0, 0, 1, 2, 3)

        assert clone != test_image
        assert test_image.get_pixel(0, 0)["r"] == 0

    def test_equality(self, test_image):
        assert test_image == test_image.copy()
        assert test_image != RasterBuffer.allocate(test_image.width, test_image.height)


class TestGeometry:
    """Tests for resize and crop"""

    def test_resize_maintains_aspect(self):
        buffer = RasterBuffer.allocate(100, 50)
        resized = buffer.resize(50, 50)

        assert (resized.width, resized.height) == (50, 25)

    def test_resize_exact(self):
        resized = RasterBuffer.allocate(100, 50).resize(20, 30, maintain_aspect=False)

        assert (resized.width, resized.height) == (20, 30)

    def test_crop_extracts_region(self, test_image):
        cropped = test_image.crop(10, 15, 30, 20)

        assert (cropped.width, cropped.height) == (30, 20)
        assert np.array_equal(cropped.pixels, test_image.pixels[15:35, 10:40])

    def test_crop_outside_raises(self, test_image):
        with pytest.raises(InvalidParameterException):
            test_image.crop(150, 0, 20, 20)


class TestTransforms:
    """Tests for pixel transforms"""

    def test_to_grayscale_truncates_luma(self):
        buffer = RasterBuffer.from_array(np.array([[[255, 0, 0]]], dtype=np.uint8))
        gray = buffer.to_grayscale()

        # 0.299 * 255 = 76.245
        assert gray.get_pixel(0, 0) == {"r": 76, "g": 76, "b": 76, "a": 255}

    def test_equalization_of_uniform_image_is_noop(self, uniform_image):
        assert uniform_image.histogram_equalization() == uniform_image

    def test_equalization_stretches_levels(self):
        image = np.zeros((4, 4), dtype=np.uint8)
        image[:, 2:] = 100
        equalized = RasterBuffer.from_array(image).histogram_equalization()

        assert equalized.get_pixel(0, 0)["r"] == 0
        assert equalized.get_pixel(3, 0)["r"] == 255

    def test_identity_convolution(self, noise_image):
        kernel = [[0, 0, 0], [0, 1, 0], [0, 0, 0]]

        assert noise_image.apply_convolution(kernel) == noise_image

    def test_even_kernel_rejected(self, noise_image):
        with pytest.raises(InvalidParameterException):
            noise_image.apply_convolution([[1, 1], [1, 1]])

    def test_blur_keeps_constant_image(self, uniform_image):
        assert uniform_image.gaussian_blur(1.0) == uniform_image

    def test_blur_with_workers_matches_single_thread(self):
        rng = np.random.default_rng(7)
        image = RasterBuffer.from_array(rng.integers(0, 256, size=(150, 40, 3), dtype=np.uint8))

        assert image.gaussian_blur(1.0, workers=4) == image.gaussian_blur(1.0, workers=1)

    def test_blur_rejects_non_positive_radius(self, uniform_image):
        with pytest.raises(InvalidParameterException):
            uniform_image.gaussian_blur(0)

    def test_cancelled_convolution(self, noise_image):
        token = CancellationToken()
        token.cancel()

        with pytest.raises(OperationCancelledException):
            noise_image.gaussian_blur(1.0, cancel_token=token)

    def test_sobel_on_constant_image(self, uniform_image):
        gradients = uniform_image.sobel_edge_detection()

        assert gradients.magnitude.shape == (32, 32)
        assert not gradients.magnitude.any()

    def test_sobel_vertical_edge_direction(self):
        image = np.zeros((8, 8), dtype=np.uint8)
        image[:, 4:] = 255
        gradients = RasterBuffer.from_array(image).sobel_edge_detection()

        assert gradients.magnitude[4, 4] > 0
        assert gradients.direction[4, 4] == pytest.approx(0.0)

    def test_canny_finds_rectangle_edges(self, test_image):
        edges = test_image.canny_edge_detection()
        values = np.unique(edges.pixels[..., 0])

        assert set(values.tolist()) <= {0, 255}
        assert 255 in values
        assert (edges.pixels[..., 3] == 255).all()

    def test_canny_defaults_follow_raster_config(self, test_image, monkeypatch):
        monkeypatch.setenv("VK_RASTER_CANNY_LOW_THRESHOLD", "5000")
        monkeypatch.setenv("VK_RASTER_CANNY_HIGH_THRESHOLD", "6000")
        reload_settings()

        try:
            edges = test_image.canny_edge_detection()
        finally:
            monkeypatch.delenv("VK_RASTER_CANNY_LOW_THRESHOLD")
            monkeypatch.delenv("VK_RASTER_CANNY_HIGH_THRESHOLD")
            reload_settings()

        assert not edges.pixels[..., 0].any()
