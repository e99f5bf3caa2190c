"""
Tests for the quantizer & palette helpers.
"""

import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from effects.quantize import (
    apply_contrast,
    clamp,
    contrast_factor,
    hex_to_rgb,
    indexed_levels,
    indexed_step,
    lerp_color,
    luminance,
    snap,
    snap_array,
    store,
    store_array,
)


class TestIndexedLevels:

    def test_eight_colors_is_two_levels(self):
        assert indexed_levels(8) == 2

    def test_twenty_seven_colors_is_three_levels(self):
        assert indexed_levels(27) == 3

    def test_sixty_four_truncates_to_three(self):
        """Cube root of 64 evaluates just under 4."""
        assert indexed_levels(64) == 3

    def test_floor_at_two(self):
        for count in (0, 1, 2, -5, "bogus", None):
            assert indexed_levels(count) == 2

    def test_step(self):
        assert indexed_step(8) == 255
        assert indexed_step(27) == 127.5


class TestSnap:

    def test_rounds_half_up(self):
        assert snap(63.75, 127.5) == 127.5
        assert snap(63.74, 127.5) == 0

    def test_binary_step(self):
        assert snap(200, 255) == 255
        assert snap(100, 255) == 0

    def test_array_matches_scalar(self):
        values = np.array([-40.0, 0.0, 3.9, 4.0, 100.0, 251.9, 300.0])
        expected = [snap(v, 8) for v in values]
        np.testing.assert_array_equal(snap_array(np, values, 8), expected)


class TestStore:

    def test_clamps(self):
        assert store(-3.2) == 0
        assert store(300) == 255

    def test_rounds_half_to_even(self):
        assert store(127.5) == 128
        assert store(126.5) == 126
        assert store(0.5) == 0

    def test_array_form(self):
        out = store_array(np.array([-1.0, 126.5, 127.5, 254.6, 999.0]))
        assert out.dtype == np.uint8
        np.testing.assert_array_equal(out, [0, 126, 128, 255, 255])


class TestContrast:

    def test_zero_contrast_is_unity(self):
        assert contrast_factor(0) == 1.0

    def test_positive_contrast_expands(self):
        f = contrast_factor(50)
        assert f > 1
        assert apply_contrast(200, f) > 200
        assert apply_contrast(50, f) < 50

    def test_result_is_clamped(self):
        f = contrast_factor(100)
        assert apply_contrast(255, f) == 255
        assert apply_contrast(0, f) == 0


class TestColorHelpers:

    def test_hex_parse(self):
        assert hex_to_rgb("#ff8000") == (255, 128, 0)
        assert hex_to_rgb("FF8000") == (255, 128, 0)

    def test_malformed_hex_is_black(self):
        assert hex_to_rgb("bogus") == (0, 0, 0)
        assert hex_to_rgb("#12345") == (0, 0, 0)
        assert hex_to_rgb(None) == (0, 0, 0)

    def test_luminance_weights(self):
        assert luminance(255, 255, 255) == pytest.approx(255)
        assert luminance(255, 0, 0) == pytest.approx(76.245)

    def test_lerp_endpoints(self):
        assert lerp_color((0, 0, 0), (255, 128, 64), 0) == (0, 0, 0)
        assert lerp_color((0, 0, 0), (255, 128, 64), 1) == (255, 128, 64)

    def test_clamp(self):
        assert clamp(-1) == 0
        assert clamp(256) == 255
        assert clamp(12.5) == 12.5
