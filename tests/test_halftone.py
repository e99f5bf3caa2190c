"""
Tests for the CMYK halftone screen engine.
"""

import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.controls import ControlBuilder
from effects.halftone import HalftoneEffect, coverage_maps, grid_size, pitch


@pytest.fixture
def halftone():
    return HalftoneEffect()


def _run(effect, frame, scale_factor=1.0, **params):
    h, w = frame.shape[:2]
    params.setdefault("enabled", True)
    return effect.process(frame, w, h, params, scale_factor)


class TestGeometry:

    def test_pitch_floor(self):
        assert pitch(1) == 2.0
        assert pitch(0, 5.0) == 2.0

    def test_pitch_scales(self):
        assert pitch(4, 2.5) == 10.0

    def test_grid_is_half_open(self):
        # -10 + 4i < 10  ->  i in 0..4
        assert grid_size(10.0, 4.0) == 5
        assert grid_size(10.0, 3.0) == 7

    def test_coverage_channels(self, make_flat):
        cov = coverage_maps(make_flat((255, 128, 0), 2, 2))
        assert cov["c"][0, 0] == 0
        assert cov["m"][0, 0] == 127
        assert cov["y"][0, 0] == 255
        assert cov["k"][0, 0] == 0


class TestScreening:

    def test_white_has_no_dots(self, halftone, make_flat):
        out = _run(halftone, make_flat((255, 255, 255), 24, 24))
        np.testing.assert_array_equal(out, 255)

    def test_faint_coverage_below_threshold(self, halftone, make_flat):
        out = _run(halftone, make_flat((250, 250, 250), 24, 24))
        np.testing.assert_array_equal(out[:, :, :3], 255)

    def test_black_interior_is_solid(self, halftone, make_flat):
        out = _run(halftone, make_flat((0, 0, 0), 32, 32), scale=4, opacity=1.0)
        np.testing.assert_array_equal(out[8:24, 8:24, :3], 0)

    @pytest.mark.parametrize("size", [(16, 16), (30, 30)])
    def test_square_screens_print_solid_black(self, halftone, make_flat, size):
        w, h = size
        out = _run(halftone, make_flat((0, 0, 0), w, h), scale=4, opacity=1.0,
                   angleC=0, angleM=0, angleY=0, angleK=0)
        np.testing.assert_array_equal(out[:, :, :3], 0)
        np.testing.assert_array_equal(out[:, :, 3], 255)

    def test_dots_sampled_outside_the_raster_are_dropped(self, halftone, make_flat):
        # 64x48 at pitch 4: dot centres land on x = 0..60 and y = 0..44. The
        # next column and row sample at x = 64 / y = 48 and are skipped, so the
        # far edge is out of reach of a radius 3.33 dot.
        out = _run(halftone, make_flat((0, 0, 0), 64, 48), scale=4, opacity=1.0,
                   angleC=0, angleM=0, angleY=0, angleK=0)
        rgb = out[:, :, :3]
        np.testing.assert_array_equal(rgb[:, 63], 255)
        np.testing.assert_array_equal(rgb[47, :], 255)
        assert (rgb[46, 62] == 255).all()
        np.testing.assert_array_equal(rgb[:46, :62], 0)
        assert int((rgb != 0).any(axis=2).sum()) == 112

    def test_tiny_raster_gets_no_dots(self, halftone, make_flat):
        out = _run(halftone, make_flat((0, 0, 0), 2, 2), scale=4, opacity=1.0,
                   angleC=0, angleM=0, angleY=0, angleK=0)
        np.testing.assert_array_equal(out[:, :, :3], 255)

    def test_edge_gaps_match_on_accelerated_path(self, halftone, make_flat, numpy_accelerator):
        frame = make_flat((0, 0, 0), 64, 48)
        params = {"enabled": True, "scale": 4, "opacity": 1.0,
                  "angleC": 0, "angleM": 0, "angleY": 0, "angleK": 0}
        host = halftone.process(frame, 64, 48, params, 1.0)
        par = halftone.process_parallel(frame, 64, 48, params, 1.0, numpy_accelerator)
        np.testing.assert_array_equal(host, par)

    def test_red_survives_magenta_and_yellow(self, halftone, make_flat):
        out = _run(halftone, make_flat((255, 0, 0), 32, 32), scale=4, opacity=1.0)
        interior = out[8:24, 8:24, :3]
        np.testing.assert_array_equal(interior[:, :, 0], 255)
        np.testing.assert_array_equal(interior[:, :, 1:], 0)

    def test_opacity_controls_density(self, halftone, make_flat):
        frame = make_flat((0, 0, 0), 32, 32)
        light = _run(halftone, frame, opacity=0.3)
        heavy = _run(halftone, frame, opacity=1.0)
        assert heavy[:, :, :3].mean() < light[:, :, :3].mean()

    def test_output_is_opaque(self, halftone, gradient_frame):
        frame = gradient_frame.copy()
        frame[:, :, 3] = 10
        out = _run(halftone, frame)
        np.testing.assert_array_equal(out[:, :, 3], 255)

    def test_angle_changes_pattern(self, halftone, gradient_frame):
        a = _run(halftone, gradient_frame, angleK=45)
        b = _run(halftone, gradient_frame, angleK=10)
        assert not np.array_equal(a, b)

    def test_scale_factor_coarsens_screen(self, halftone, gradient_frame):
        fine = _run(halftone, gradient_frame, scale=3, scale_factor=1.0)
        coarse = _run(halftone, gradient_frame, scale=3, scale_factor=3.0)
        assert not np.array_equal(fine, coarse)


class TestContract:

    def test_disabled_by_default(self, halftone, gradient_frame):
        h, w = gradient_frame.shape[:2]
        assert halftone.process(gradient_frame, w, h, {}) is gradient_frame

    def test_print_controls(self, halftone):
        builder = ControlBuilder()
        halftone.get_controls(builder, halftone.default_params(), lambda k, v: None)
        group = builder.group("OFFSET PRINTER (CMYK)")
        assert [c.label for c in group.controls] == [
            "DOT SIZE (DPI)", "OPACITY",
            "ANGLE CYAN", "ANGLE MAGENTA", "ANGLE YELLOW", "ANGLE BLACK"]
        dot = group.find("DOT SIZE (DPI)")
        assert dot.options == {"min": 1, "max": 20, "step": 0.5}
        for label in ("ANGLE CYAN", "ANGLE MAGENTA", "ANGLE YELLOW", "ANGLE BLACK"):
            assert group.find(label).options["max"] == 90

    def test_always_parallel_capable(self, halftone):
        assert halftone.is_parallel_capable({})

    @pytest.mark.parametrize("opacity", [0.8, 0.35, 1.0])
    def test_gather_matches_scatter(self, halftone, gradient_frame, numpy_accelerator, opacity):
        """Pixel-centric accelerated program reproduces dot stamping exactly."""
        h, w = gradient_frame.shape[:2]
        params = {"enabled": True, "scale": 5, "opacity": opacity}
        host = halftone.process(gradient_frame, w, h, params, 1.0)
        par = halftone.process_parallel(gradient_frame, w, h, params, 1.0, numpy_accelerator)
        np.testing.assert_array_equal(host, par)
