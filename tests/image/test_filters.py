"""
Tests for image.filters and image.colorspace modules.
"""

import numpy as np
import pytest

from exceptions import InvalidParameterException
from image import colorspace, filters


class TestKernels:
    """Tests for kernel helpers"""

    def test_gaussian_kernel_size_and_sum(self):
        kernel = filters.gaussian_kernel(1.0)

        assert kernel.shape == (7, 7)
        assert kernel.sum() == pytest.approx(1.0)
        assert kernel[3, 3] == kernel.max()

    def test_gaussian_kernel_rejects_zero_radius(self):
        with pytest.raises(InvalidParameterException):
            filters.gaussian_kernel(0)

    def test_validate_kernel(self):
        assert filters.validate_kernel([[1]]).dtype == np.float64

        with pytest.raises(InvalidParameterException):
            filters.validate_kernel([1, 2, 3])


class TestCannyStages:
    """Tests for non-maximum suppression and hysteresis"""

    def test_non_max_suppression_clears_border(self):
        magnitude = np.full((5, 5), 10.0)
        direction = np.zeros((5, 5))
        suppressed = filters.non_max_suppression(magnitude, direction)

        assert not suppressed[0].any()
        assert not suppressed[:, -1].any()
        assert suppressed[2, 2] == 10.0

    def test_non_max_suppression_thins_ridge(self):
        magnitude = np.zeros((5, 5))
        magnitude[:, 1] = 5.0
        magnitude[:, 2] = 9.0
        magnitude[:, 3] = 5.0
        suppressed = filters.non_max_suppression(magnitude, np.zeros((5, 5)))

        assert suppressed[2, 2] == 9.0
        assert suppressed[2, 1] == 0.0
        assert suppressed[2, 3] == 0.0

    def test_hysteresis_keeps_weak_next_to_strong(self):
        suppressed = np.zeros((7, 7))
        suppressed[3, 3] = 200.0
        suppressed[3, 4] = 80.0
        suppressed[5, 1] = 80.0
        edges = filters.hysteresis(suppressed, 50, 150)

        assert edges[3, 3]
        assert edges[3, 4]
        assert not edges[5, 1]


class TestColorspace:
    """Tests for color conversions"""

    @pytest.mark.parametrize(
        "rgb,expected",
        [
            ((255, 0, 0), (0.0, 100.0, 100.0)),
            ((0, 255, 0), (120.0, 100.0, 100.0)),
            ((0, 0, 255), (240.0, 100.0, 100.0)),
            ((0, 0, 0), (0.0, 0.0, 0.0)),
        ],
    )
    def test_rgb_to_hsv(self, rgb, expected):
        assert colorspace.rgb_to_hsv(*rgb) == pytest.approx(expected)

    def test_gray_has_no_saturation(self):
        h, s, v = colorspace.rgb_to_hsv(128, 128, 128)

        assert h == 0.0
        assert s == 0.0
        assert v == pytest.approx(128 / 255 * 100)

    def test_array_matches_scalar(self):
        rng = np.random.default_rng(3)
        pixels = rng.integers(0, 256, size=(6, 6, 4), dtype=np.uint8)
        hsv = colorspace.rgb_to_hsv_array(pixels)

        for y in range(6):
            for x in range(6):
                r, g, b = (int(v) for v in pixels[y, x, :3])
                assert hsv[y, x] == pytest.approx(colorspace.rgb_to_hsv(r, g, b))

    def test_gray_levels_truncate(self):
        pixels = np.array([[[255, 0, 0, 255]]], dtype=np.uint8)

        assert colorspace.luma(pixels)[0, 0] == pytest.approx(76.245)
        assert colorspace.gray_levels(pixels)[0, 0] == 76
