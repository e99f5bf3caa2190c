"""
VOIDFX -- Image Pre-Process
Source preparation before screening/dithering: blur, levels & gamma,
brightness, invert, hue/saturation, grain and unsharp-mask sharpening.
"""

import cv2
import numpy as np

from effects.base import Effect, check_raster
from effects.quantize import store_array


def levels_lut(black: float, white: float, gamma: float) -> np.ndarray:
    """256-entry levels/gamma lookup table (uint8).

    The black/white denominator is floored at 1 so equal or crossed
    points give a hard threshold instead of a division by zero.
    """
    gamma = max(0.01, float(gamma))
    span = max(1.0, float(white) - float(black))
    n = np.clip((np.arange(256, dtype=np.float64) - float(black)) / span, 0.0, 1.0)
    # (i / 255) * 255 can land one ulp below i; keep the neutral LUT exact.
    return np.floor(np.power(n, 1.0 / gamma) * 255 + 1e-9).astype(np.uint8)


def rgb_to_hsl(r, g, b):
    """Vectorized RGB (0..1) -> HSL (0..1). Achromatic pixels get h = s = 0."""
    mx = np.maximum(np.maximum(r, g), b)
    mn = np.minimum(np.minimum(r, g), b)
    l = (mx + mn) / 2
    d = mx - mn
    chroma = d > 0
    safe_d = np.where(chroma, d, 1.0)

    denom = np.where(l > 0.5, 2 - mx - mn, mx + mn)
    s = np.where(chroma, d / np.where(chroma, denom, 1.0), 0.0)

    h = np.select(
        [mx == r, mx == g],
        [(g - b) / safe_d + np.where(g < b, 6, 0), (b - r) / safe_d + 2],
        default=(r - g) / safe_d + 4,
    )
    h = np.where(chroma, h / 6, 0.0)
    return h, s, l


def _hue_to_rgb(p, q, t):
    t = np.where(t < 0, t + 1, t)
    t = np.where(t > 1, t - 1, t)
    return np.select(
        [t < 1 / 6, t < 1 / 2, t < 2 / 3],
        [p + (q - p) * 6 * t, q, p + (q - p) * (2 / 3 - t) * 6],
        default=p,
    )


def hsl_to_rgb(h, s, l):
    """Vectorized HSL (0..1) -> RGB (0..1)."""
    q = np.where(l < 0.5, l * (1 + s), l + s - l * s)
    p = 2 * l - q
    grey = s == 0
    r = np.where(grey, l, _hue_to_rgb(p, q, h + 1 / 3))
    g = np.where(grey, l, _hue_to_rgb(p, q, h))
    b = np.where(grey, l, _hue_to_rgb(p, q, h - 1 / 3))
    return r, g, b


def shift_hue_saturation(rgb: np.ndarray, hue: float, sat_mult: float) -> np.ndarray:
    """Rotate hue by ``hue`` degrees and multiply saturation. ``rgb`` is float 0..255."""
    h, s, l = rgb_to_hsl(rgb[..., 0] / 255, rgb[..., 1] / 255, rgb[..., 2] / 255)
    h = h + hue / 360
    h = np.where(h > 1, h - 1, h)
    h = np.where(h < 0, h + 1, h)
    s = s * sat_mult
    r, g, b = hsl_to_rgb(h, s, l)
    return np.stack([r * 255, g * 255, b * 255], axis=-1)


class PreProcessEffect(Effect):
    effect_id = "preprocess_v1"
    name = "IMAGE PRE-PROCESS"
    category = "prepare"
    uses_frame_index = True
    description = "Adjust Levels, Color Grading, Sharpen, and Noise."
    params = {
        "enabled": True,
        "blurRadius": 0,
        "sharpenAmount": 0,
        "noiseAmount": 0,
        "levelBlack": 0,
        "levelWhite": 255,
        "gamma": 1.0,
        "saturation": 100,
        "brightness": 0,
        "hue": 0,
        "invert": False,
        "seed": 42,
    }

    def get_controls(self, builder, params: dict, on_change):
        group = builder.create_group("PRE-PROCESSING", lambda v: on_change("enabled", v),
                                     self.description)
        group.add_slider("LEVELS BLACK", 0, 255, params["levelBlack"], 1,
                         lambda v: on_change("levelBlack", v))
        group.add_slider("LEVELS WHITE", 0, 255, params["levelWhite"], 1,
                         lambda v: on_change("levelWhite", v))
        group.add_slider("GAMMA", 0.1, 3.0, params["gamma"], 0.1, lambda v: on_change("gamma", v))
        group.add_slider("SATURATION %", 0, 200, params["saturation"], 5,
                         lambda v: on_change("saturation", v))
        group.add_slider("BRIGHTNESS", -100, 100, params["brightness"], 1,
                         lambda v: on_change("brightness", v))
        group.add_slider("HUE SHIFT", -180, 180, params["hue"], 5, lambda v: on_change("hue", v))
        group.add_toggle("INVERT COLORS", params["invert"], lambda v: on_change("invert", v))
        group.add_slider("BLUR RADIUS", 0, 20, params["blurRadius"], 0.5,
                         lambda v: on_change("blurRadius", v))
        group.add_slider("SHARPEN %", 0, 100, params["sharpenAmount"], 5,
                         lambda v: on_change("sharpenAmount", v))
        group.add_slider("NOISE / GRAIN", 0, 100, params["noiseAmount"], 1,
                         lambda v: on_change("noiseAmount", v))
        group.add_number("SEED", params["seed"], lambda v: on_change("seed", v))
        return group

    def process(self, frame, width, height, params, scale_factor=1.0):
        params = self.merged(params)
        if not self.is_enabled(params):
            return frame
        frame = check_raster(frame, width, height)
        out = frame.copy()
        rgb = np.ascontiguousarray(frame[:, :, :3])

        blur_radius = float(params["blurRadius"])
        if blur_radius > 0:
            rgb = cv2.GaussianBlur(rgb, (0, 0), blur_radius * scale_factor)

        lut = levels_lut(params["levelBlack"], params["levelWhite"], params["gamma"])
        v = lut[rgb].astype(np.float64)

        v = v + float(params["brightness"])
        if params["invert"]:
            v = 255 - v

        hue = float(params["hue"])
        sat_mult = float(params["saturation"]) / 100
        if hue != 0 or sat_mult != 1.0:
            v = shift_hue_saturation(v, hue, sat_mult)

        noise = float(params["noiseAmount"]) * 2.55
        if noise > 0:
            # Grain is animated: a new field per frame, stable for a given frame.
            rng = np.random.RandomState(int(params["seed"]) + int(params.get("frame_index", 0)))
            grain = (rng.random_sample((height, width)) - 0.5) * noise
            v = v + grain[:, :, np.newaxis]

        rgb = store_array(v)

        amount = float(params["sharpenAmount"])
        if amount > 0:
            blurred = cv2.GaussianBlur(rgb, (0, 0), max(0.1, float(scale_factor)))
            base = rgb.astype(np.float64)
            rgb = store_array(base + (base - blurred) * (amount / 100) * 2.5)

        out[:, :, :3] = rgb
        return out
