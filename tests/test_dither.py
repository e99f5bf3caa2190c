"""
Tests for the dither & tone engine: colour mapping, error diffusion,
ordered patterns, knockout and the working-resolution round trip.
"""

import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from effects.dither import (
    ATKINSON,
    FLOYD_STEINBERG,
    SIERRA_LITE,
    DitherEffect,
    ToneSettings,
    map_color,
    pattern_bias,
    resolve_algorithm,
    working_size,
)


@pytest.fixture
def dither():
    return DitherEffect()


def _run(effect, frame, **params):
    h, w = frame.shape[:2]
    return effect.process(frame, w, h, params)


GRADE_8 = {"renderMode": "grade", "colorSpace": "indexed", "indexedCount": 8}


class TestGradeMapping:

    def test_indexed_eight_snaps_to_corners(self, dither, make_flat):
        frame = make_flat((200, 100, 50), 2, 2)
        out = _run(dither, frame, algorithm="none", **GRADE_8)
        assert out.shape == (2, 2, 4)
        np.testing.assert_array_equal(out[:, :, :3], np.broadcast_to([255, 0, 0], (2, 2, 3)))
        np.testing.assert_array_equal(out[:, :, 3], 255)

    def test_rgb_space_snaps_to_multiples_of_eight(self, dither, gradient_frame):
        out = _run(dither, gradient_frame, algorithm="none", renderMode="grade", colorSpace="rgb")
        rgb = out[:, :, :3].astype(int)
        assert np.all((rgb % 8 == 0) | (rgb == 255))

    def test_none_is_idempotent(self, dither, gradient_frame):
        once = _run(dither, gradient_frame, algorithm="none", **GRADE_8)
        twice = _run(dither, once, algorithm="none", **GRADE_8)
        np.testing.assert_array_equal(once, twice)

    def test_contrast_only_applies_in_grade_mode(self, make_flat):
        tonal = ToneSettings.from_params({"renderMode": "tonal", "contrast": 100})
        plain = ToneSettings.from_params({"renderMode": "tonal", "contrast": 0})
        assert map_color(90, 90, 90, tonal) == map_color(90, 90, 90, plain)


class TestTonalMapping:

    def test_black_maps_to_shadow(self):
        tone = ToneSettings.from_params({"colorShadow": "#102030"})
        assert map_color(0, 0, 0, tone) == (0x10, 0x20, 0x30)

    def test_white_maps_to_highlight(self, dither, make_flat):
        out = _run(dither, make_flat((255, 255, 255), 4, 4), algorithm="none",
                   colorHighlight="#ff0000")
        np.testing.assert_array_equal(out[:, :, :3], np.broadcast_to([255, 0, 0], (4, 4, 3)))

    def test_midpoint_is_mid_stop(self):
        tone = ToneSettings.from_params({"colorMid": "#40c080"})
        r, g, b = map_color(128, 128, 128, tone)
        assert (round(r), round(g), round(b)) == (0x40, 0xC0, 0x80)

    def test_out_of_range_luma_is_clamped(self):
        tone = ToneSettings.from_params({})
        assert map_color(-500, -500, -500, tone) == map_color(0, 0, 0, tone)


class TestErrorDiffusion:

    def test_kernel_weights(self):
        assert sum(f for _, _, f in FLOYD_STEINBERG) == pytest.approx(1.0)
        assert sum(f for _, _, f in SIERRA_LITE) == pytest.approx(1.0)
        assert sum(f for _, _, f in ATKINSON) == pytest.approx(0.75)

    def test_error_pushes_neighbour_over_threshold(self, dither):
        """100 maps to 0; 7/16 of the error lifts the next pixel to 144 -> 255."""
        frame = np.full((1, 2, 4), 100, dtype=np.uint8)
        frame[:, :, 3] = 255
        out = _run(dither, frame, algorithm="floyd", **GRADE_8)
        np.testing.assert_array_equal(out[0, :, 0], [0, 255])

    def test_single_pixel_drops_all_taps(self, dither):
        frame = np.array([[[100, 200, 30, 255]]], dtype=np.uint8)
        out = _run(dither, frame, algorithm="atkinson", **GRADE_8)
        np.testing.assert_array_equal(out[0, 0], [0, 255, 0, 255])

    @pytest.mark.parametrize("algorithm", ["floyd", "atkinson", "sierra"])
    def test_binary_palette_output(self, dither, gradient_frame, algorithm):
        out = _run(dither, gradient_frame, algorithm=algorithm, **GRADE_8)
        assert set(np.unique(out[:, :, :3])) <= {0, 255}

    def test_mid_grey_dithers_to_both_levels(self, dither, make_flat):
        out = _run(dither, make_flat((128, 128, 128), 16, 16), algorithm="floyd", **GRADE_8)
        values = set(np.unique(out[:, :, 0]))
        assert values == {0, 255}

    def test_atkinson_spreads_smaller_shares(self, dither):
        """1/8 taps never lift a 100 row over the threshold; 7/16 does."""
        frame = np.full((1, 3, 4), 100, dtype=np.uint8)
        frame[:, :, 3] = 255
        floyd = _run(dither, frame, algorithm="floyd", **GRADE_8)
        atkinson = _run(dither, frame, algorithm="atkinson", **GRADE_8)
        np.testing.assert_array_equal(floyd[0, :, 0], [0, 255, 0])
        np.testing.assert_array_equal(atkinson[0, :, 0], [0, 0, 0])


class TestPatterns:

    def test_bayer4_bias_values(self):
        bias = pattern_bias("bayer4", 4, 4, 1.0)
        assert bias[0, 0] == -32
        assert bias[3, 0] == pytest.approx((15 / 16 - 0.5) * 64)

    def test_bayer8_tiles(self):
        bias = pattern_bias("bayer8", 16, 16, 2.0)
        np.testing.assert_array_equal(bias[:8, :8], bias[8:, 8:])

    def test_stitched_lattice(self):
        bias = pattern_bias("stitched", 2, 2, 1.0)
        np.testing.assert_array_equal(bias, [[20, -20], [-20, 20]])

    def test_modulation_origin_is_zero(self):
        assert pattern_bias("modulation", 3, 3, 1.0)[0, 0] == 0

    def test_spread_scales_bias(self):
        np.testing.assert_allclose(pattern_bias("bayer4", 4, 4, 2.0),
                                   pattern_bias("bayer4", 4, 4, 1.0) * 2)

    def test_error_diffusion_has_no_bias(self):
        assert pattern_bias("floyd", 4, 4, 1.0) is None

    @pytest.mark.parametrize("algorithm", ["bayer4", "bayer8", "stitched", "modulation"])
    def test_patterns_stay_in_palette(self, dither, gradient_frame, algorithm):
        out = _run(dither, gradient_frame, algorithm=algorithm, **GRADE_8)
        assert set(np.unique(out[:, :, :3])) <= {0, 255}

    def test_bayer_differs_from_plain_quantize(self, dither, gradient_frame):
        plain = _run(dither, gradient_frame, algorithm="none", **GRADE_8)
        bayer = _run(dither, gradient_frame, algorithm="bayer4", **GRADE_8)
        assert not np.array_equal(plain, bayer)


class TestKnockout:

    def test_shadow_pixels_become_transparent(self, dither, make_flat):
        out = _run(dither, make_flat((0, 0, 0), 4, 4), algorithm="none", knockout=True)
        np.testing.assert_array_equal(out[:, :, 3], 0)

    def test_knockout_with_error_diffusion(self, dither, make_flat):
        out = _run(dither, make_flat((0, 0, 0), 4, 4), algorithm="floyd", knockout=True)
        np.testing.assert_array_equal(out[:, :, 3], 0)

    def test_non_shadow_pixels_keep_alpha(self, dither, make_flat):
        out = _run(dither, make_flat((255, 255, 255), 4, 4), algorithm="none", knockout=True)
        np.testing.assert_array_equal(out[:, :, 3], 255)

    def test_off_by_default(self, dither, make_flat):
        out = _run(dither, make_flat((0, 0, 0), 4, 4), algorithm="none")
        np.testing.assert_array_equal(out[:, :, 3], 255)


class TestResolution:

    def test_working_size_floors_and_clamps(self):
        assert working_size(100, 50, 0.5) == (50, 25)
        assert working_size(5, 3, 0.05) == (1, 1)
        assert working_size(10, 10, 4.0) == (10, 10)

    def test_output_keeps_input_size(self, dither, gradient_frame):
        out = _run(dither, gradient_frame, algorithm="none", resolution=0.33, **GRADE_8)
        assert out.shape == gradient_frame.shape

    def test_half_resolution_makes_blocks(self, dither):
        frame = np.zeros((8, 8, 4), dtype=np.uint8)
        frame[:, :, 0] = np.arange(64, dtype=np.uint8).reshape(8, 8) * 4
        frame[:, :, 3] = 255
        out = _run(dither, frame, algorithm="none", resolution=0.5, renderMode="grade",
                   colorSpace="rgb")
        np.testing.assert_array_equal(out[0::2, 0::2], out[1::2, 1::2])
        np.testing.assert_array_equal(out[0::2, 0::2], out[0::2, 1::2])


class TestContract:

    def test_disabled_returns_input(self, dither, gradient_frame):
        out = _run(dither, gradient_frame, enabled=False)
        assert out is gradient_frame

    def test_rgb_input_promoted(self, dither, gradient_frame):
        out = _run(dither, gradient_frame[:, :, :3], algorithm="none")
        assert out.shape[2] == 4

    def test_size_mismatch_rejected(self, dither, gradient_frame):
        with pytest.raises(ValueError):
            dither.process(gradient_frame, 10, 10, {})

    def test_parallel_capability(self, dither):
        assert dither.is_parallel_capable({"algorithm": "none"})
        assert dither.is_parallel_capable({"algorithm": "bayer8"})
        assert dither.is_parallel_capable({"algorithm": "modulation"})
        assert not dither.is_parallel_capable({"algorithm": "floyd"})
        assert not dither.is_parallel_capable({"algorithm": "atkinson"})

    def test_unknown_algorithm_falls_back_to_default(self):
        assert resolve_algorithm({"algorithm": "nope"}) == "floyd"

    def test_parallel_program_matches_host(self, dither, gradient_frame, numpy_accelerator):
        params = {"algorithm": "bayer8", "renderMode": "tonal", "colorMid": "#3366cc",
                  "knockout": True, "resolution": 0.5}
        h, w = gradient_frame.shape[:2]
        host = dither.process(gradient_frame, w, h, params)
        par = dither.process_parallel(gradient_frame, w, h, params, 1.0, numpy_accelerator)
        np.testing.assert_array_equal(host, par)
        assert numpy_accelerator.programs_run == 1
