"""
Tests for post corruption (RGB split, slice tearing, block displacement).
"""

import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from effects.glitch import GlitchEffect, rgb_split


@pytest.fixture
def glitch():
    return GlitchEffect()


def _run(effect, frame, scale_factor=1.0, **params):
    h, w = frame.shape[:2]
    params.setdefault("enabled", True)
    return effect.process(frame, w, h, params, scale_factor)


def _column_frame():
    frame = np.zeros((8, 16, 4), dtype=np.uint8)
    frame[:, 4, :3] = 255
    frame[:, :, 3] = 255
    return frame


class TestRgbSplit:

    def test_red_moves_right_blue_left(self):
        out = rgb_split(_column_frame(), 3)
        assert np.all(out[:, 7, 0] == 255)
        assert np.all(out[:, 1, 2] == 255)
        assert np.all(out[:, 4, 1] == 255)

    def test_zero_offset_is_identity(self):
        frame = _column_frame()
        assert rgb_split(frame, 0) is frame

    def test_scale_factor_scales_offset(self, glitch):
        out = _run(glitch, _column_frame(), scale_factor=2.0, rgbShift=3)
        assert np.all(out[:, 10, 0] == 255)


class TestGlitch:

    def test_disabled_by_default(self, glitch, gradient_frame):
        h, w = gradient_frame.shape[:2]
        assert glitch.process(gradient_frame, w, h, {}) is gradient_frame

    def test_slices_are_deterministic(self, glitch, gradient_frame):
        a = _run(glitch, gradient_frame, sliceDensity=0.6, sliceShift=10, seed=3)
        b = _run(glitch, gradient_frame, sliceDensity=0.6, sliceShift=10, seed=3)
        np.testing.assert_array_equal(a, b)
        assert not np.array_equal(a, gradient_frame)

    def test_blocks_change_frame(self, glitch, gradient_frame):
        out = _run(glitch, gradient_frame, blockCount=10, blockSize=8)
        assert out.shape == gradient_frame.shape
        assert not np.array_equal(out, gradient_frame)

    def test_host_only(self, glitch):
        assert not glitch.is_parallel_capable({"enabled": True})
