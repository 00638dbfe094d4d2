"""
Tests for algorithms.hashing module.
"""

import numpy as np
import pytest

from algorithms import hashing
from domain_types import HashType
from exceptions import HashLengthMismatchException, InvalidParameterException
from image.raster import RasterBuffer


@pytest.fixture
def ramp_image():
    """Horizontal brightness ramp, darkest on the left"""
    ramp = np.tile(np.linspace(0, 255, 64).astype(np.uint8), (64, 1))
    return RasterBuffer.from_array(ramp)


class TestHashes:
    """Tests for average, difference and perceptual hashes"""

    def test_average_hash_of_uniform_image(self, uniform_image):
        assert hashing.average_hash(uniform_image, 8) == "1" * 64

    def test_difference_hash_of_uniform_image(self, uniform_image):
        assert hashing.difference_hash(uniform_image, 8) == "0" * 64

    def test_difference_hash_of_ramp(self, ramp_image):
        assert hashing.difference_hash(ramp_image, 8) == "1" * 64

    def test_average_hash_of_ramp(self, ramp_image):
        bits = hashing.average_hash(ramp_image, 8)

        # Each row: dark left half below the mean, bright right half above
        assert bits[:8] == "00001111"
        assert bits == bits[:8] * 8

    def test_perceptual_hash_is_stable_under_scaling(self, test_image):
        larger = test_image.resize(test_image.width * 2, test_image.height * 2)
        distance = hashing.hamming_distance(
            hashing.perceptual_hash(test_image), hashing.perceptual_hash(larger)
        )

        assert distance <= 10

    def test_perceptual_hash_size_limit(self, test_image):
        with pytest.raises(InvalidParameterException):
            hashing.perceptual_hash(test_image, hash_size=33)

    def test_zero_hash_size(self, test_image):
        with pytest.raises(InvalidParameterException):
            hashing.average_hash(test_image, 0)

    @pytest.mark.parametrize("kind", list(HashType))
    def test_compute_hash_dispatch(self, test_image, kind):
        assert len(hashing.compute_hash(test_image, kind, 6)) == 36


class TestDct:
    """Tests for the DCT helpers"""

    def test_dct_matrix_is_orthonormal(self):
        c = hashing.dct_matrix(8)

        assert np.allclose(c @ c.T, np.eye(8))

    def test_dct_of_constant_has_only_dc(self):
        coefficients = hashing.dct_2d(np.full((8, 8), 3.0))

        assert coefficients[0, 0] == pytest.approx(24.0)
        coefficients[0, 0] = 0.0
        assert np.allclose(coefficients, 0.0)


class TestHammingDistance:
    """Tests for hash distance"""

    def test_distance(self):
        assert hashing.hamming_distance("1100", "1010") == 2
        assert hashing.hamming_distance("1111", "1111") == 0

    def test_length_mismatch(self):
        with pytest.raises(HashLengthMismatchException):
            hashing.hamming_distance("1", "11")
