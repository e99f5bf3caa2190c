"""
VOIDFX -- Post Corruption
Digital damage applied after tone mapping: RGB channel split, horizontal
slice tearing and macroblock displacement. Seeded, so a given parameter
set always corrupts the same way.
"""

import numpy as np

from effects.base import Effect, check_raster


def rgb_split(frame: np.ndarray, offset: int) -> np.ndarray:
    """Shift red right and blue left by ``offset`` pixels (wrapping)."""
    if offset == 0:
        return frame
    result = frame.copy()
    result[:, :, 0] = np.roll(frame[:, :, 0], offset, axis=1)
    result[:, :, 2] = np.roll(frame[:, :, 2], -offset, axis=1)
    return result


def slice_tear(frame: np.ndarray, density: float, max_shift: int,
               rng: np.random.RandomState) -> np.ndarray:
    """Shift randomly chosen horizontal bands sideways."""
    density = max(0.0, min(1.0, float(density)))
    if density <= 0 or max_shift <= 0:
        return frame
    h = frame.shape[0]
    result = frame.copy()
    band = max(1, h // 40)
    for y in range(0, h, band):
        if rng.random_sample() >= density:
            continue
        shift = rng.randint(-max_shift, max_shift + 1)
        result[y:y + band] = np.roll(frame[y:y + band], shift, axis=1)
    return result


def displace_blocks(frame: np.ndarray, count: int, size: int,
                    rng: np.random.RandomState) -> np.ndarray:
    """Copy ``count`` square blocks from random source positions."""
    h, w = frame.shape[:2]
    size = max(1, min(size, h, w))
    result = frame.copy()
    for _ in range(count):
        y = rng.randint(0, max(1, h - size + 1))
        x = rng.randint(0, max(1, w - size + 1))
        sy = rng.randint(0, max(1, h - size + 1))
        sx = rng.randint(0, max(1, w - size + 1))
        result[y:y + size, x:x + size] = frame[sy:sy + size, sx:sx + size]
    return result


class GlitchEffect(Effect):
    effect_id = "glitch_v1"
    name = "POST CORRUPTION"
    category = "destruction"
    description = "RGB split, slice tearing and block displacement."
    params = {
        "enabled": False,
        "rgbShift": 0,
        "sliceDensity": 0.0,
        "sliceShift": 20,
        "blockCount": 0,
        "blockSize": 24,
        "seed": 42,
    }

    def get_controls(self, builder, params: dict, on_change):
        group = builder.create_group("POST CORRUPTION", lambda v: on_change("enabled", v),
                                     self.description)
        group.add_slider("RGB SHIFT", 0, 50, params["rgbShift"], 1,
                         lambda v: on_change("rgbShift", v))
        group.add_slider("SLICE DENSITY", 0.0, 1.0, params["sliceDensity"], 0.05,
                         lambda v: on_change("sliceDensity", v))
        group.add_slider("SLICE SHIFT", 0, 200, params["sliceShift"], 1,
                         lambda v: on_change("sliceShift", v))
        group.add_slider("BLOCKS", 0, 100, params["blockCount"], 1,
                         lambda v: on_change("blockCount", v))
        group.add_slider("BLOCK SIZE", 4, 128, params["blockSize"], 1,
                         lambda v: on_change("blockSize", v))
        group.add_number("SEED", params["seed"], lambda v: on_change("seed", v))
        return group

    def process(self, frame, width, height, params, scale_factor=1.0):
        params = self.merged(params)
        if not self.is_enabled(params):
            return frame
        frame = check_raster(frame, width, height)
        rng = np.random.RandomState(int(params["seed"]))

        result = rgb_split(frame, int(round(float(params["rgbShift"]) * scale_factor)))
        result = slice_tear(result, params["sliceDensity"],
                            int(round(float(params["sliceShift"]) * scale_factor)), rng)
        count = max(0, min(200, int(params["blockCount"])))
        if count:
            size = max(1, int(round(float(params["blockSize"]) * scale_factor)))
            result = displace_blocks(result, count, size, rng)
        return result
