"""
Tests for geosearch.embeddings.vectors — pooling, normalisation, decoding.
"""

import math
import struct

import numpy as np
import pytest

from geosearch.embeddings.vectors import (
    cosine_similarity,
    decode_vector,
    is_valid_embedding,
    mean_pool,
    normalize_vector,
    quantize_embedding,
    zero_vector,
)


class TestNormalize:

    def test_zero_vector_stays_zero(self):
        result = normalize_vector(zero_vector(4))
        assert result.shape == (4,)
        assert not np.any(result)

    @pytest.mark.parametrize("vector", [[3.0, 4.0], [1e-20, 0.0, 0.0], [-2.0, 7.5, 0.25, 1e6]])
    def test_unit_length(self, vector):
        result = normalize_vector(np.array(vector, dtype=np.float32))
        assert float(np.linalg.norm(result.astype(np.float64))) == pytest.approx(1.0, abs=1e-6)

    def test_direction_preserved(self):
        np.testing.assert_allclose(normalize_vector(np.array([3.0, 4.0])), [0.6, 0.8], rtol=1e-6)

    @pytest.mark.parametrize("bad", [math.nan, math.inf, -math.inf])
    def test_non_finite_component_gives_zero_vector(self, bad):
        result = normalize_vector(np.array([1.0, bad, 2.0], dtype=np.float32))
        assert not np.any(result)
        assert np.all(np.isfinite(result))


class TestMeanPool:

    def test_componentwise_mean(self):
        pooled = mean_pool([np.array([1.0, 0.0]), np.array([0.0, 1.0]), np.array([2.0, 2.0])], 2)
        np.testing.assert_allclose(pooled, [1.0, 1.0])

    def test_empty_input(self):
        assert not np.any(mean_pool([], 3))
        assert mean_pool([], 3).shape == (3,)


class TestValidity:

    def test_empty_is_invalid(self):
        assert is_valid_embedding(np.array([], dtype=np.float32)) is False
        assert is_valid_embedding(None) is False

    def test_all_zero_is_invalid(self):
        assert is_valid_embedding(zero_vector(8)) is False

    @pytest.mark.parametrize("bad", [math.nan, math.inf])
    def test_non_finite_is_invalid(self, bad):
        assert is_valid_embedding(np.array([1.0, bad])) is False

    def test_single_non_zero_component_is_valid(self):
        assert is_valid_embedding(np.array([0.0, 0.0, 1e-6])) is True


class TestCosineSimilarity:

    def test_identical(self):
        v = normalize_vector(np.array([1.0, 2.0, 3.0]))
        assert cosine_similarity(v, v) == pytest.approx(1.0, abs=1e-6)

    def test_orthogonal(self):
        assert cosine_similarity(np.array([1.0, 0.0]), np.array([0.0, 1.0])) == pytest.approx(0.0)

    def test_opposite(self):
        v = normalize_vector(np.array([0.3, -0.4]))
        assert cosine_similarity(v, -v) == pytest.approx(-1.0, abs=1e-6)

    def test_mismatched_dimensions(self):
        with pytest.raises(ValueError, match="same dimension"):
            cosine_similarity(np.array([1.0, 0.0]), np.array([1.0, 0.0, 0.0]))


class TestQuantize:

    def test_rounds_to_six_places(self):
        np.testing.assert_array_equal(
            quantize_embedding(np.array([0.12345678, -0.0000004])),
            [0.123457, -0.0],
        )


# ═════════════════════════════════════════════════════════════════════════════
# Half precision
# ═════════════════════════════════════════════════════════════════════════════

def _decode_half(bits: int) -> float:
    return float(decode_vector(struct.pack("<H", bits), 2)[0])


class TestHalfPrecisionDecoding:
    """Every class of float16 bit pattern through the F16 row decoder."""

    @pytest.mark.parametrize("bits,expected", [
        (0x0000, 0.0),
        (0x3C00, 1.0),
        (0xC000, -2.0),
        (0x3555, 0.333251953125),
        (0x7BFF, 65504.0),            # largest normal
        (0x0400, 2.0 ** -14),         # smallest normal
        (0x0001, 2.0 ** -24),         # smallest subnormal
        (0x03FF, 1023 * 2.0 ** -24),  # largest subnormal
    ])
    def test_finite_patterns(self, bits, expected):
        assert _decode_half(bits) == expected

    def test_negative_zero(self):
        value = _decode_half(0x8000)
        assert value == 0.0
        assert math.copysign(1.0, value) == -1.0

    def test_infinities(self):
        assert _decode_half(0x7C00) == math.inf
        assert _decode_half(0xFC00) == -math.inf

    def test_nan(self):
        assert math.isnan(_decode_half(0x7E00))
        assert math.isnan(_decode_half(0x7C01))

    def test_negative_subnormal(self):
        assert _decode_half(0x8001) == -(2.0 ** -24)


class TestDecodeVector:

    def test_float32_little_endian(self):
        buffer = struct.pack("<3f", 1.5, -2.0, 0.25)
        np.testing.assert_array_equal(decode_vector(buffer, 4), [1.5, -2.0, 0.25])
        assert decode_vector(buffer, 4).dtype == np.float32

    def test_float16_widened(self):
        buffer = struct.pack("<3H", 0x3C00, 0x0001, 0x7C00)
        result = decode_vector(buffer, 2)
        assert result.dtype == np.float32
        assert result[0] == 1.0
        assert result[1] == pytest.approx(2.0 ** -24)
        assert result[2] == math.inf

    def test_unsupported_width(self):
        with pytest.raises(ValueError, match="element width"):
            decode_vector(b"\x00" * 8, 8)

    def test_partial_element(self):
        with pytest.raises(ValueError):
            decode_vector(b"\x00" * 5, 4)
