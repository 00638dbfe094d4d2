"""
Tests for algorithms.generation module.

Tests noise, gradients, patterns, fractals, Voronoi and blend modes.
"""

import numpy as np
import pytest

from domain_types import BlendMode
from exceptions import InvalidParameterException, OperationCancelledException
from image.raster import RasterBuffer
from utils import CancellationToken


def _channel(buffer, index=0):
    return buffer.pixels[..., index].astype(int)


def _solid(value, width=4, height=4):
    return RasterBuffer.from_array(np.full((height, width, 3), value, dtype=np.uint8))


class TestNoise:
    """Tests for white, Perlin and Simplex noise"""

    def test_white_noise_is_reproducible(self, generator):
        a = generator.generate_white_noise(16, 8, seed=1)
        b = generator.generate_white_noise(16, 8, seed=1)

        assert a == b
        assert a.dimensions == {"width": 16, "height": 8}
        assert (a.pixels[..., 3] == 255).all()
        assert np.array_equal(_channel(a, 0), _channel(a, 2))

    def test_generator_object_is_accepted(self, generator):
        rng = np.random.default_rng(5)
        noise = generator.generate_white_noise(4, 4, seed=rng)

        assert noise.width == 4

    @pytest.mark.parametrize("method", ["generate_perlin_noise", "generate_simplex_noise"])
    def test_noise_spans_full_range(self, generator, method):
        image = getattr(generator, method)(64, 48, seed=3)

        assert _channel(image).min() == 0
        assert _channel(image).max() == 255

    @pytest.mark.parametrize("method", ["generate_perlin_noise", "generate_simplex_noise"])
    def test_noise_is_reproducible(self, generator, method):
        a = getattr(generator, method)(32, 32, scale=10, octaves=2, seed=11)
        b = getattr(generator, method)(32, 32, scale=10, octaves=2, seed=11)

        assert a == b

    def test_invalid_noise_parameters(self, generator):
        with pytest.raises(InvalidParameterException):
            generator.generate_perlin_noise(16, 16, scale=0)

        with pytest.raises(InvalidParameterException):
            generator.generate_simplex_noise(0, 16)

    def test_cancelled_noise(self, generator):
        token = CancellationToken()
        token.cancel()

        with pytest.raises(OperationCancelledException):
            generator.generate_perlin_noise(16, 16, cancel_token=token)


class TestTexture:
    """Tests for generate_texture"""

    def test_gray_texture_without_color_map(self, generator):
        texture = generator.generate_texture(16, 16, kind="white", seed=2)

        assert texture == generator.generate_white_noise(16, 16, seed=2)

    def test_color_map(self, generator):
        color_map = {0.0: (0, 0, 0), 1.0: {"r": 255, "g": 0, "b": 0}}
        texture = generator.generate_texture(32, 32, kind="perlin", color_map=color_map, seed=4)

        assert not _channel(texture, 1).any()
        assert not _channel(texture, 2).any()
        assert _channel(texture, 0).max() == 255

    def test_color_map_clamps_outside_stops(self, generator):
        color_map = {0.5: (10, 20, 30)}
        texture = generator.generate_texture(8, 8, kind="simplex", color_map=color_map, seed=4)

        assert (texture.pixels[..., :3] == (10, 20, 30)).all()

    def test_unknown_kind(self, generator):
        with pytest.raises(InvalidParameterException):
            generator.generate_texture(8, 8, kind="worley")


class TestGradientsAndPatterns:
    """Tests for gradients, checkerboard and sine patterns"""

    def test_linear_gradient(self, generator):
        image = generator.generate_linear_gradient(32, 4, (0, 0, 0), (255, 255, 255))
        row = _channel(image)[0]

        assert row[0] == 0
        assert (np.diff(row) >= 0).all()
        assert row[-1] > 240

    def test_vertical_linear_gradient(self, generator):
        image = generator.generate_linear_gradient(4, 32, angle=90)
        column = _channel(image)[:, 0]

        assert column[0] == 0
        assert (np.diff(column) >= 0).all()

    def test_radial_gradient(self, generator):
        image = generator.generate_radial_gradient(20, 10, (255, 0, 0), (0, 0, 255))

        assert image.get_pixel(10, 5) == {"r": 255, "g": 0, "b": 0, "a": 255}
        assert image.get_pixel(0, 0) == {"r": 0, "g": 0, "b": 255, "a": 255}

    def test_checkerboard(self, generator):
        image = generator.generate_checkerboard(8, 8, 2, (255, 255, 255), (0, 0, 0))

        assert image.get_pixel(0, 0)["r"] == 255
        assert image.get_pixel(1, 1)["r"] == 255
        assert image.get_pixel(2, 0)["r"] == 0
        assert image.get_pixel(2, 2)["r"] == 255

    def test_checkerboard_rejects_zero_square(self, generator):
        with pytest.raises(InvalidParameterException):
            generator.generate_checkerboard(8, 8, 0)

    def test_flat_sine_pattern(self, generator):
        image = generator.generate_sine_pattern(16, 16, amplitude=0)

        assert (_channel(image) == 127).all()

    def test_sine_pattern_range(self, generator):
        image = generator.generate_sine_pattern(64, 8, frequency=2, amplitude=100)
        row = _channel(image)[0]

        assert row[0] == 127
        assert row.max() <= 227
        assert row.min() >= 26
        assert row.max() - row.min() > 190


class TestFractals:
    """Tests for Mandelbrot and Julia sets"""

    def test_mandelbrot_center_is_inside(self, generator):
        image = generator.generate_mandelbrot(64, 48)

        assert image.get_pixel(32, 24)["r"] == 0

    def test_mandelbrot_corner_escapes_immediately(self, generator):
        image = generator.generate_mandelbrot(64, 48, max_iterations=100)

        # One iteration: int(1 / 100 * 255)
        assert image.get_pixel(0, 0)["r"] == 2

    def test_julia(self, generator):
        image = generator.generate_julia(32, 32, max_iterations=50)

        assert image.dimensions == {"width": 32, "height": 32}
        assert len(np.unique(_channel(image))) > 1

    def test_invalid_zoom(self, generator):
        with pytest.raises(InvalidParameterException):
            generator.generate_julia(8, 8, zoom=0)

    def test_cancelled_mandelbrot(self, generator):
        token = CancellationToken()
        token.cancel()

        with pytest.raises(OperationCancelledException):
            generator.generate_mandelbrot(16, 16, cancel_token=token)


class TestVoronoi:
    """Tests for Voronoi diagrams"""

    def test_reproducible(self, generator):
        assert generator.generate_voronoi(24, 24, 5, seed=9) == generator.generate_voronoi(
            24, 24, 5, seed=9
        )

    def test_colors_limited_by_sites(self, generator):
        image = generator.generate_voronoi(24, 24, 5, seed=9)
        colors = {tuple(p) for p in image.pixels[..., :3].reshape(-1, 3).tolist()}

        assert len(colors) <= 5

    def test_single_site_is_solid(self, generator):
        image = generator.generate_voronoi(10, 10, 1, seed=0)
        colors = {tuple(p) for p in image.pixels[..., :3].reshape(-1, 3).tolist()}

        assert len(colors) == 1


class TestBlend:
    """Tests for blend modes"""

    def test_normal_opacity_extremes(self, generator):
        a, b = _solid(40), _solid(200)

        assert generator.blend(a, b, "normal", 0.0) == a
        assert generator.blend(a, b, "normal", 1.0) == b
        assert generator.blend(a, b, "normal", 0.5).get_pixel(0, 0)["r"] == 120

    def test_multiply_and_screen_identities(self, generator):
        x = _solid(77)

        assert generator.blend(_solid(255), x, BlendMode.MULTIPLY) == x
        assert generator.blend(_solid(0), x, BlendMode.SCREEN) == x

    def test_add_and_subtract_clamp(self, generator):
        assert generator.blend(_solid(200), _solid(100), "add").get_pixel(0, 0)["r"] == 255
        assert generator.blend(_solid(50), _solid(100), "subtract").get_pixel(0, 0)["r"] == 0

    def test_difference(self, generator):
        assert generator.blend(_solid(50), _solid(100), "difference").get_pixel(0, 0)["r"] == 50

    def test_overlay_branches(self, generator):
        # Dark base: 2 * 64 * 128 / 255 = 64.25
        assert generator.blend(_solid(64), _solid(128), "overlay").get_pixel(0, 0)["r"] == 64
        # Bright base: 255 - 2 * 55 * 127 / 255 = 200.2
        assert generator.blend(_solid(200), _solid(128), "overlay").get_pixel(0, 0)["r"] == 200

    def test_common_dimensions(self, generator):
        result = generator.blend(_solid(10, 8, 4), _solid(20, 5, 6), "add")

        assert result.dimensions == {"width": 5, "height": 4}

    def test_invalid_mode_and_opacity(self, generator):
        with pytest.raises(InvalidParameterException):
            generator.blend(_solid(0), _solid(0), "dodge")

        with pytest.raises(InvalidParameterException):
            generator.blend(_solid(0), _solid(0), "normal", opacity=1.5)
