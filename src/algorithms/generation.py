"""
Procedural image generation.

Noise fields, gradients, patterns, escape-time fractals, Voronoi diagrams
and pixel blending. Every random operation takes an explicit seed or
numpy Generator; nothing touches process-wide random state.
"""

import math
from typing import Dict, Mapping, Optional, Sequence, Union

import numpy as np

from algorithms import noise
from algorithms.base import ImageSource, VisionComponent
from config import Settings
from domain_types import BlendMode, GenerationConstants, NoiseType
from exceptions import InvalidParameterException
from image.raster import RasterBuffer
from utils import CancellationToken, ensure_rng, timer

ColorSpec = Union[Dict[str, int], Sequence[int]]
Seed = Union[int, np.random.Generator, None]

BLACK = (0, 0, 0)
WHITE = (255, 255, 255)


def _rgb(color: ColorSpec) -> np.ndarray:
    if isinstance(color, Mapping):
        return np.array([color["r"], color["g"], color["b"]], dtype=np.float64)
    r, g, b = color[:3]
    return np.array([r, g, b], dtype=np.float64)


def _opaque(rgb: np.ndarray) -> RasterBuffer:
    """Opaque buffer from an (H, W, 3) array of 0..255 values."""
    height, width = rgb.shape[:2]
    pixels = np.empty((height, width, 4), dtype=np.uint8)
    pixels[..., :3] = rgb
    pixels[..., 3] = 255
    return RasterBuffer(pixels)


def _gray(levels: np.ndarray) -> RasterBuffer:
    return _opaque(np.repeat(levels[..., None], 3, axis=-1))


def _lerp_colors(color1: np.ndarray, color2: np.ndarray, t: np.ndarray) -> np.ndarray:
    """Per-pixel color between two endpoints, truncated to integers."""
    t = t[..., None]
    return np.trunc(color1 * (1.0 - t) + color2 * t).astype(np.uint8)


def apply_color_map(levels: np.ndarray, color_map: Mapping[float, ColorSpec]) -> np.ndarray:
    """
    Map 0..255 intensities through color stops.

    Args:
        levels: uint8 intensities of shape (H, W)
        color_map: {stop in [0, 1]: color}; values before the first or after
            the last stop take that stop's color

    Returns:
        uint8 RGB array of shape (H, W, 3)
    """
    stops = sorted(
        ((float(stop), _rgb(color)) for stop, color in color_map.items()), key=lambda s: s[0]
    )
    positions = np.array([stop for stop, _ in stops])
    colors = np.array([color for _, color in stops])
    intensity = levels.astype(np.float64) / 255.0

    rgb = np.empty(levels.shape + (3,), dtype=np.uint8)
    for channel in range(3):
        rgb[..., channel] = np.trunc(np.interp(intensity, positions, colors[:, channel]))
    return rgb


class ImageGenerator(VisionComponent):
    """
    Synthesizes new images.

    Every method returns a fresh, fully opaque RasterBuffer.
    """

    def __init__(self, settings: Optional[Settings] = None):
        super().__init__(settings)
        self.config = self.settings.generation

    def _check_size(self, width: int, height: int) -> None:
        self._require_positive("width", width)
        self._require_positive("height", height)

    # ------------------------------------------------------------------
    # Noise
    # ------------------------------------------------------------------

    def generate_white_noise(self, width: int, height: int, seed: Seed = None) -> RasterBuffer:
        """Uniform random gray level per pixel."""
        self._check_size(width, height)
        rng = ensure_rng(seed)
        return _gray(rng.integers(0, 256, size=(height, width), dtype=np.uint8))

    def _fractal(
        self,
        function: noise.NoiseFunction,
        width: int,
        height: int,
        scale: Optional[float],
        octaves: Optional[int],
        persistence: Optional[float],
        seed: Seed,
        cancel_token: Optional[CancellationToken],
        name: str,
    ) -> RasterBuffer:
        self._check_size(width, height)
        scale = self._default(scale, self.config.noise_scale)
        octaves = self._default(octaves, self.config.noise_octaves)
        persistence = self._default(persistence, self.config.noise_persistence)
        self._require_positive("scale", scale)
        self._require_positive("octaves", octaves)
        self._require_positive("persistence", persistence)

        perm = noise.permutation_table(ensure_rng(seed))
        self._check_cancelled(cancel_token, name)
        with timer() as t:
            field = noise.fractal_noise(width, height, function, perm, scale, octaves, persistence)
        self._check_cancelled(cancel_token, name)

        self.logger.debug(f"{name} {width}x{height}, {octaves} octaves in {t['ms']}ms")
        return _gray(noise.normalize_to_levels(field))

    def generate_perlin_noise(
        self,
        width: int,
        height: int,
        scale: Optional[float] = None,
        octaves: Optional[int] = None,
        persistence: Optional[float] = None,
        seed: Seed = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> RasterBuffer:
        """
        Fractal Perlin noise stretched to the full 0..255 range.

        Args:
            width: Output width
            height: Output height
            scale: Pixels per lattice cell at the first octave
            octaves: Number of summed octaves
            persistence: Amplitude factor between octaves
            seed: Integer seed or numpy Generator for the permutation table
            cancel_token: Optional cancellation token

        Returns:
            Grayscale RasterBuffer
        """
        return self._fractal(
            noise.perlin_2d, width, height, scale, octaves, persistence,
            seed, cancel_token, "perlin noise",
        )

    def generate_simplex_noise(
        self,
        width: int,
        height: int,
        scale: Optional[float] = None,
        octaves: Optional[int] = None,
        persistence: Optional[float] = None,
        seed: Seed = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> RasterBuffer:
        """Fractal Simplex noise; same parameters as generate_perlin_noise."""
        return self._fractal(
            noise.simplex_2d, width, height, scale, octaves, persistence,
            seed, cancel_token, "simplex noise",
        )

    def generate_texture(
        self,
        width: int,
        height: int,
        kind: Union[NoiseType, str] = NoiseType.PERLIN,
        color_map: Optional[Mapping[float, ColorSpec]] = None,
        seed: Seed = None,
    ) -> RasterBuffer:
        """
        Noise texture, optionally colored through a map of intensity stops.

        Args:
            width: Output width
            height: Output height
            kind: "perlin", "simplex" or "white"
            color_map: {stop in [0, 1]: color}; gray when omitted or empty
            seed: Integer seed or numpy Generator
        """
        try:
            kind = NoiseType(kind)
        except ValueError as e:
            raise InvalidParameterException("kind", kind, "unknown noise type") from e

        if kind == NoiseType.PERLIN:
            base = self.generate_perlin_noise(width, height, seed=seed)
        elif kind == NoiseType.SIMPLEX:
            base = self.generate_simplex_noise(width, height, seed=seed)
        else:
            base = self.generate_white_noise(width, height, seed=seed)

        if not color_map:
            return base
        return _opaque(apply_color_map(base.pixels[..., 0], color_map))

    # ------------------------------------------------------------------
    # Gradients and patterns
    # ------------------------------------------------------------------

    def generate_linear_gradient(
        self,
        width: int,
        height: int,
        color1: ColorSpec = BLACK,
        color2: ColorSpec = WHITE,
        angle: float = 0.0,
    ) -> RasterBuffer:
        """
        Linear blend from color1 to color2 along a direction in degrees
        (0 = left to right), centred on the image.
        """
        self._check_size(width, height)
        radians = math.radians(angle)
        ys, xs = np.mgrid[0:height, 0:width].astype(np.float64)
        px = (xs - width / 2) / width
        py = (ys - height / 2) / height
        t = np.clip(px * math.cos(radians) + py * math.sin(radians) + 0.5, 0.0, 1.0)
        return _opaque(_lerp_colors(_rgb(color1), _rgb(color2), t))

    def generate_radial_gradient(
        self,
        width: int,
        height: int,
        color1: ColorSpec = WHITE,
        color2: ColorSpec = BLACK,
        center_x: Optional[float] = None,
        center_y: Optional[float] = None,
    ) -> RasterBuffer:
        """color1 at the centre fading to color2 at the distance of a corner."""
        self._check_size(width, height)
        cx = self._default(center_x, width / 2)
        cy = self._default(center_y, height / 2)
        max_distance = math.sqrt((width / 2) ** 2 + (height / 2) ** 2)

        ys, xs = np.mgrid[0:height, 0:width].astype(np.float64)
        distance = np.sqrt((xs - cx) ** 2 + (ys - cy) ** 2)
        t = np.minimum(1.0, distance / max_distance)
        return _opaque(_lerp_colors(_rgb(color1), _rgb(color2), t))

    def generate_checkerboard(
        self,
        width: int,
        height: int,
        square_size: int = GenerationConstants.CHECKERBOARD_SQUARE_DEFAULT,
        color1: ColorSpec = WHITE,
        color2: ColorSpec = BLACK,
    ) -> RasterBuffer:
        """Alternating squares; the top-left square is color1."""
        self._check_size(width, height)
        self._require_positive("square_size", square_size)
        ys, xs = np.mgrid[0:height, 0:width]
        first = ((xs // square_size + ys // square_size) % 2 == 0)[..., None]
        return _opaque(np.where(first, _rgb(color1), _rgb(color2)))

    def generate_sine_pattern(
        self,
        width: int,
        height: int,
        frequency: float = 10.0,
        amplitude: float = 50.0,
        angle: float = 0.0,
    ) -> RasterBuffer:
        """Gray sine stripes: 127 + amplitude * sin(2 pi frequency x' / width)."""
        self._check_size(width, height)
        radians = math.radians(angle)
        ys, xs = np.mgrid[0:height, 0:width].astype(np.float64)
        rotated = xs * math.cos(radians) - ys * math.sin(radians)
        value = 127.0 + amplitude * np.sin(rotated / width * frequency * 2.0 * math.pi)
        return _gray(np.clip(np.trunc(value), 0, 255).astype(np.uint8))

    # ------------------------------------------------------------------
    # Fractals
    # ------------------------------------------------------------------

    def _escape_time(
        self,
        z: np.ndarray,
        c: np.ndarray,
        max_iterations: int,
        cancel_token: Optional[CancellationToken],
        name: str,
    ) -> RasterBuffer:
        """
        Iterate z = z^2 + c until |z|^2 exceeds the escape radius.

        Points that never escape are 0; others are int(iterations / max * 255).
        """
        self._require_positive("max_iterations", max_iterations)
        iterations = np.zeros(z.shape, dtype=np.int64)
        active = np.ones(z.shape, dtype=bool)

        with timer() as t:
            for _ in range(max_iterations):
                self._check_cancelled(cancel_token, name)
                active &= (z.real * z.real + z.imag * z.imag) <= GenerationConstants.FRACTAL_ESCAPE_RADIUS_SQ
                if not active.any():
                    break
                z[active] = z[active] * z[active] + c[active]
                iterations[active] += 1

        self.logger.debug(f"{name} {z.shape[1]}x{z.shape[0]} in {t['ms']}ms")
        levels = np.where(
            iterations == max_iterations,
            0,
            (iterations * 255) // max_iterations,
        )
        return _gray(levels.astype(np.uint8))

    def _complex_plane(
        self, width: int, height: int, zoom: float, center_x: float, center_y: float
    ) -> np.ndarray:
        """Pixel grid mapped to a view FRACTAL_VIEW_SPAN high, aspect-corrected."""
        self._require_positive("zoom", zoom)
        span = GenerationConstants.FRACTAL_VIEW_SPAN
        aspect = width / height
        ys, xs = np.mgrid[0:height, 0:width].astype(np.float64)
        real = (xs / width - 0.5) * span * aspect / zoom + center_x
        imag = (ys / height - 0.5) * span / zoom + center_y
        return real + 1j * imag

    def generate_mandelbrot(
        self,
        width: int,
        height: int,
        max_iterations: Optional[int] = None,
        zoom: float = 1.0,
        center_x: float = -0.5,
        center_y: float = 0.0,
        cancel_token: Optional[CancellationToken] = None,
    ) -> RasterBuffer:
        """Mandelbrot set; each pixel is c and z starts at 0."""
        self._check_size(width, height)
        max_iterations = self._default(max_iterations, self.config.fractal_max_iterations)
        c = self._complex_plane(width, height, zoom, center_x, center_y)
        return self._escape_time(
            np.zeros_like(c), c, max_iterations, cancel_token, "mandelbrot"
        )

    def generate_julia(
        self,
        width: int,
        height: int,
        c_real: float = -0.7,
        c_imag: float = 0.27015,
        max_iterations: Optional[int] = None,
        zoom: float = 1.0,
        cancel_token: Optional[CancellationToken] = None,
    ) -> RasterBuffer:
        """Julia set for constant c; each pixel is the starting z."""
        self._check_size(width, height)
        max_iterations = self._default(max_iterations, self.config.fractal_max_iterations)
        z = self._complex_plane(width, height, zoom, 0.0, 0.0)
        c = np.full(z.shape, complex(c_real, c_imag))
        return self._escape_time(z, c, max_iterations, cancel_token, "julia")

    # ------------------------------------------------------------------
    # Voronoi
    # ------------------------------------------------------------------

    def generate_voronoi(
        self,
        width: int,
        height: int,
        num_points: Optional[int] = None,
        seed: Seed = None,
    ) -> RasterBuffer:
        """
        Each pixel takes the color of its nearest random site.

        Distance is squared Euclidean; on ties the earlier site wins.
        """
        self._check_size(width, height)
        num_points = self._default(num_points, self.config.voronoi_points)
        self._require_positive("num_points", num_points)

        rng = ensure_rng(seed)
        sites_x = rng.integers(0, width, size=num_points)
        sites_y = rng.integers(0, height, size=num_points)
        colors = rng.integers(0, 256, size=(num_points, 3))

        ys, xs = np.mgrid[0:height, 0:width]
        best = np.full((height, width), np.iinfo(np.int64).max, dtype=np.int64)
        nearest = np.zeros((height, width), dtype=np.int64)
        for i in range(num_points):
            distance = (xs - sites_x[i]) ** 2 + (ys - sites_y[i]) ** 2
            closer = distance < best
            best[closer] = distance[closer]
            nearest[closer] = i

        return _opaque(colors[nearest])

    # ------------------------------------------------------------------
    # Blending
    # ------------------------------------------------------------------

    def blend(
        self,
        source1: ImageSource,
        source2: ImageSource,
        mode: Union[BlendMode, str] = BlendMode.NORMAL,
        opacity: float = 0.5,
    ) -> RasterBuffer:
        """
        Blend two images pixel by pixel over their common dimensions.

        Args:
            source1: Base image
            source2: Blend image
            mode: normal, multiply, screen, overlay, add, subtract or difference
            opacity: Weight of the blend image in normal mode (0..1)

        Returns:
            Opaque RasterBuffer of the smaller width and height
        """
        try:
            mode = BlendMode(mode)
        except ValueError as e:
            raise InvalidParameterException("mode", mode, "unknown blend mode") from e
        if not 0.0 <= opacity <= 1.0:
            raise InvalidParameterException("opacity", opacity, "must be between 0 and 1")

        image1 = self._resolve(source1)
        image2 = self._resolve(source2)
        width = min(image1.width, image2.width)
        height = min(image1.height, image2.height)
        a = image1.pixels[:height, :width, :3].astype(np.float64)
        b = image2.pixels[:height, :width, :3].astype(np.float64)

        if mode == BlendMode.NORMAL:
            result = a * (1.0 - opacity) + b * opacity
        elif mode == BlendMode.MULTIPLY:
            result = a * b / 255.0
        elif mode == BlendMode.SCREEN:
            result = 255.0 - (255.0 - a) * (255.0 - b) / 255.0
        elif mode == BlendMode.OVERLAY:
            result = np.where(
                a < 128,
                2.0 * a * b / 255.0,
                255.0 - 2.0 * (255.0 - a) * (255.0 - b) / 255.0,
            )
        elif mode == BlendMode.ADD:
            result = a + b
        elif mode == BlendMode.SUBTRACT:
            result = a - b
        else:
            result = np.abs(a - b)

        return _opaque(np.trunc(np.clip(result, 0.0, 255.0)).astype(np.uint8))
