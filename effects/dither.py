"""
VOIDFX -- Dither & Tone Engine
Quantize colours (tonal gradient map or graded palette) with optional
error-diffusion or ordered/pattern dithering, at a reduced working
resolution for the pixelated look.
"""

from dataclasses import dataclass

import numpy as np
from PIL import Image

from effects.base import Effect, check_raster
from effects.quantize import (
    RGB_STEP,
    apply_contrast,
    apply_contrast_array,
    clamp,
    clamp_array,
    contrast_factor,
    hex_to_rgb,
    indexed_step,
    lerp_array,
    lerp_color,
    luminance,
    luminance_array,
    snap,
    snap_array,
    store,
)

# Error diffusion kernels: (dx, dy, weight).
FLOYD_STEINBERG = (
    (1, 0, 7 / 16),
    (-1, 1, 3 / 16), (0, 1, 5 / 16), (1, 1, 1 / 16),
)
# Six taps of 1/8: only 6/8 of the error is pushed forward. Atkinson's
# signature high-contrast look depends on losing the remaining quarter.
ATKINSON = (
    (1, 0, 1 / 8), (2, 0, 1 / 8),
    (-1, 1, 1 / 8), (0, 1, 1 / 8), (1, 1, 1 / 8),
    (0, 2, 1 / 8),
)
SIERRA_LITE = (
    (1, 0, 2 / 4),
    (-1, 1, 1 / 4), (0, 1, 1 / 4),
)

KERNELS = {
    "floyd": FLOYD_STEINBERG,
    "atkinson": ATKINSON,
    "sierra": SIERRA_LITE,
}

BAYER4 = np.array([
    [0, 8, 2, 10],
    [12, 4, 14, 6],
    [3, 11, 1, 9],
    [15, 7, 13, 5],
], dtype=np.int64)

BAYER8 = np.array([
    [0, 48, 12, 60, 3, 51, 15, 63],
    [32, 16, 44, 28, 35, 19, 47, 31],
    [8, 56, 4, 52, 11, 59, 7, 55],
    [40, 24, 36, 20, 43, 27, 39, 23],
    [2, 50, 14, 62, 1, 49, 13, 61],
    [34, 18, 46, 30, 33, 17, 45, 29],
    [10, 58, 6, 54, 9, 57, 5, 53],
    [42, 26, 38, 22, 41, 25, 37, 21],
], dtype=np.int64)

# Woven lattice for the "stitched" fabric look.
STITCH = np.array([
    [4, 0, 4, 0],
    [0, 4, 0, 4],
    [4, 0, 4, 0],
    [0, 4, 0, 4],
], dtype=np.int64)

ALGORITHMS = ("none", "floyd", "atkinson", "sierra", "bayer4", "bayer8", "modulation", "stitched")
PATTERN_ALGORITHMS = {"bayer4", "bayer8", "modulation", "stitched"}
_VALID_MODES = {"tonal", "grade"}
_VALID_COLOR_SPACES = {"indexed", "rgb"}


@dataclass(frozen=True)
class ToneSettings:
    """Colour-mapping configuration resolved once per render."""
    mode: str
    contrast_f: float
    step: float
    shadow: tuple
    mid: tuple
    highlight: tuple
    knockout: bool

    @classmethod
    def from_params(cls, params: dict) -> "ToneSettings":
        mode = params.get("renderMode", "tonal")
        if mode not in _VALID_MODES:
            mode = "tonal"
        color_space = params.get("colorSpace", "indexed")
        if color_space not in _VALID_COLOR_SPACES:
            color_space = "indexed"
        if color_space == "indexed":
            step = indexed_step(params.get("indexedCount", 16))
        else:
            step = float(RGB_STEP)
        contrast = max(-100.0, min(100.0, float(params.get("contrast", 0))))
        return cls(
            mode=mode,
            contrast_f=contrast_factor(contrast),
            step=step,
            shadow=hex_to_rgb(params.get("colorShadow", "#000000")),
            mid=hex_to_rgb(params.get("colorMid", "#808080")),
            highlight=hex_to_rgb(params.get("colorHighlight", "#ffffff")),
            knockout=bool(params.get("knockout", False)),
        )


def map_color(r: float, g: float, b: float, tone: ToneSettings) -> tuple:
    """Map one (possibly out-of-range) sample to its output colour."""
    if tone.mode == "grade":
        if tone.contrast_f != 0:
            r = apply_contrast(r, tone.contrast_f)
            g = apply_contrast(g, tone.contrast_f)
            b = apply_contrast(b, tone.contrast_f)
        return (snap(r, tone.step), snap(g, tone.step), snap(b, tone.step))

    luma = clamp(luminance(r, g, b))
    if luma < 128:
        return lerp_color(tone.shadow, tone.mid, luma / 128)
    return lerp_color(tone.mid, tone.highlight, (luma - 128) / 127)


def map_colors(xp, r, g, b, tone: ToneSettings) -> tuple:
    """Array form of :func:`map_color` for numpy or torch (``xp``)."""
    if tone.mode == "grade":
        if tone.contrast_f != 0:
            r = apply_contrast_array(xp, r, tone.contrast_f)
            g = apply_contrast_array(xp, g, tone.contrast_f)
            b = apply_contrast_array(xp, b, tone.contrast_f)
        return (snap_array(xp, r, tone.step), snap_array(xp, g, tone.step),
                snap_array(xp, b, tone.step))

    luma = clamp_array(xp, luminance_array(r, g, b))
    low = luma < 128
    t_low = luma / 128
    t_high = (luma - 128) / 127
    return tuple(
        xp.where(low, lerp_array(tone.shadow[c], tone.mid[c], t_low),
                 lerp_array(tone.mid[c], tone.highlight[c], t_high))
        for c in range(3)
    )


def tone_kernel(xp, r, g, b, bias, tone: ToneSettings):
    """Per-pixel tone program: bias, map, store, knockout.

    ``r``, ``g``, ``b`` and ``bias`` are float64 arrays of the same shape.
    Returns (r, g, b, keep) where the channels are rounded/clamped floats
    and ``keep`` is False where the pixel is knocked out.
    """
    if bias is not None:
        r, g, b = r + bias, g + bias, b + bias
    mr, mg, mb = map_colors(xp, r, g, b, tone)
    if tone.knockout:
        s = tone.shadow
        keep = ~((mr == s[0]) & (mg == s[1]) & (mb == s[2]))
    else:
        keep = xp.ones_like(mr) > 0
    out = tuple(xp.round(xp.clip(c, 0, 255)) for c in (mr, mg, mb))
    return out + (keep,)


def pattern_bias(algorithm: str, height: int, width: int, spread: float) -> np.ndarray | None:
    """Positional bias field (H, W) float64 for ordered/pattern algorithms."""
    if algorithm not in PATTERN_ALGORITHMS:
        return None
    ys = np.arange(height).reshape(-1, 1)
    xs = np.arange(width).reshape(1, -1)
    if algorithm == "modulation":
        field = np.sin(xs * 0.5) * np.cos(ys * 0.5)
        return field * 32 * spread
    if algorithm == "stitched":
        m = STITCH[ys % 4, xs % 4]
        return (m - 2) * 10 * spread
    if algorithm == "bayer4":
        m = BAYER4[ys % 4, xs % 4]
        return ((m / 16) - 0.5) * 64 * spread
    m = BAYER8[ys % 8, xs % 8]
    return ((m / 64) - 0.5) * 64 * spread


def diffuse(rgba: np.ndarray, tone: ToneSettings, kernel) -> np.ndarray:
    """Error-diffusion dither in raster order.

    Every write (the pixel itself and each neighbour receiving error) is a
    clamped, rounded byte store. The residual uses the unstored mapped colour.
    Offsets falling outside the raster are dropped.
    """
    h, w = rgba.shape[:2]
    out = rgba.copy()
    rs, gs, bs = (rgba[:, :, c].astype(np.int64).ravel().tolist() for c in range(3))
    alpha = out[:, :, 3]
    shadow = tone.shadow

    for y in range(h):
        row = y * w
        for x in range(w):
            i = row + x
            r, g, b = rs[i], gs[i], bs[i]
            c = map_color(r, g, b, tone)
            rs[i], gs[i], bs[i] = store(c[0]), store(c[1]), store(c[2])
            if tone.knockout and c[0] == shadow[0] and c[1] == shadow[1] and c[2] == shadow[2]:
                alpha[y, x] = 0

            er, eg, eb = r - c[0], g - c[1], b - c[2]
            for dx, dy, f in kernel:
                nx, ny = x + dx, y + dy
                if nx < 0 or nx >= w or ny >= h:
                    continue
                j = ny * w + nx
                rs[j] = store(rs[j] + er * f)
                gs[j] = store(gs[j] + eg * f)
                bs[j] = store(bs[j] + eb * f)

    out[:, :, 0] = np.asarray(rs, dtype=np.uint8).reshape(h, w)
    out[:, :, 1] = np.asarray(gs, dtype=np.uint8).reshape(h, w)
    out[:, :, 2] = np.asarray(bs, dtype=np.uint8).reshape(h, w)
    return out


def _apply_tone_result(rgba: np.ndarray, result) -> np.ndarray:
    r, g, b, keep = result
    out = rgba.copy()
    out[:, :, 0] = np.asarray(r, dtype=np.float64).astype(np.uint8)
    out[:, :, 1] = np.asarray(g, dtype=np.float64).astype(np.uint8)
    out[:, :, 2] = np.asarray(b, dtype=np.float64).astype(np.uint8)
    out[:, :, 3] = np.where(np.asarray(keep, dtype=bool), out[:, :, 3], 0)
    return out


def resolve_algorithm(params: dict) -> str:
    algorithm = params.get("algorithm", "floyd")
    if algorithm not in ALGORITHMS:
        algorithm = "floyd"
    return algorithm


def working_size(width: int, height: int, resolution) -> tuple:
    """Reduced working size: floor(W*res) x floor(H*res), at least 1x1."""
    resolution = max(0.05, min(1.0, float(resolution)))
    return max(1, int(width * resolution)), max(1, int(height * resolution))


def resample(rgba: np.ndarray, width: int, height: int, smooth: bool = False) -> np.ndarray:
    """Resize an RGBA raster. Nearest neighbour samples pixel centres."""
    if rgba.shape[1] == width and rgba.shape[0] == height:
        return rgba.copy()
    method = Image.Resampling.BILINEAR if smooth else Image.Resampling.NEAREST
    img = Image.fromarray(np.ascontiguousarray(rgba))
    return np.array(img.resize((width, height), method))


class DitherEffect(Effect):
    effect_id = "dither_v1"
    name = "DITHER & TONE"
    category = "tone"
    description = ("Quantize colors and apply dithering patterns "
                   "(Floyd-Steinberg, Atkinson, Sierra, Bayer) with retro palettes.")
    params = {
        "enabled": True,
        "resolution": 1.0,
        "algorithm": "floyd",
        "resampling": "nearest",
        "renderMode": "tonal",
        "colorShadow": "#000000",
        "colorMid": "#808080",
        "colorHighlight": "#ffffff",
        "colorSpace": "indexed",
        "indexedCount": 16,
        "contrast": 0,
        "spread": 1.0,
        # Declared for preset compatibility; no transform reads them yet.
        "bleeding": 0.0,
        "roundness": 0.0,
        "knockout": False,
    }

    def is_parallel_capable(self, params: dict) -> bool:
        return resolve_algorithm(params) not in KERNELS

    def get_controls(self, builder, params: dict, on_change):
        group = builder.create_group("DITHERING ENGINE", lambda v: on_change("enabled", v),
                                     self.description)
        group.add_select("RENDER MODE", [
            ("TONAL (Luminance Map)", "tonal"),
            ("GRADE (Color Palette)", "grade"),
        ], params["renderMode"], lambda v: on_change("renderMode", v))
        group.add_select("ALGORITHM", [
            ("None (Pixelate)", "none"),
            ("Floyd-Steinberg (Smooth)", "floyd"),
            ("Atkinson (High Contrast)", "atkinson"),
            ("Sierra Lite (Speed)", "sierra"),
            ("Bayer 4x4 (Grid)", "bayer4"),
            ("Bayer 8x8 (Fine)", "bayer8"),
            ("Modulation (Sine)", "modulation"),
            ("Stitched (Fabric)", "stitched"),
        ], params["algorithm"], lambda v: on_change("algorithm", v))
        group.add_slider("RESOLUTION / DPI", 0.05, 1.0, params["resolution"], 0.05,
                         lambda v: on_change("resolution", v))

        if params["renderMode"] == "tonal":
            group.add_description("Map grayscale values to a custom 3-color gradient.")
            group.add_color("HIGHLIGHT (Light)", params["colorHighlight"],
                            lambda v: on_change("colorHighlight", v))
            group.add_color("MIDTONE (Mid)", params["colorMid"], lambda v: on_change("colorMid", v))
            group.add_color("SHADOW (Dark)", params["colorShadow"],
                            lambda v: on_change("colorShadow", v))
        else:
            group.add_description("Reduce colors to a palette or RGB quantization.")
            group.add_select("COLOR SPACE", [
                ("INDEXED (Limited Palette)", "indexed"),
                ("RGB (Channel Quant)", "rgb"),
            ], params["colorSpace"], lambda v: on_change("colorSpace", v))
            if params["colorSpace"] == "indexed":
                group.add_slider("COLORS COUNT", 2, 64, params["indexedCount"], 1,
                                 lambda v: on_change("indexedCount", v))
            group.add_slider("CONTRAST", -100, 100, params["contrast"], 1,
                             lambda v: on_change("contrast", v))

        if params["algorithm"] in PATTERN_ALGORITHMS:
            group.add_slider("SPREAD / BIAS", 0.1, 5.0, params["spread"], 0.1,
                             lambda v: on_change("spread", v))
        group.add_toggle("KNOCKOUT BG", params["knockout"], lambda v: on_change("knockout", v))
        return group

    def _prepare(self, frame, width, height, params):
        frame = check_raster(frame, width, height)
        w, h = working_size(width, height, params.get("resolution", 1.0))
        smooth = params.get("resampling", "nearest") == "preserve"
        small = resample(frame, w, h, smooth=smooth)
        spread = float(params.get("spread", 1.0))
        bias = pattern_bias(resolve_algorithm(params), h, w, spread)
        return frame, small, bias

    def process(self, frame, width, height, params, scale_factor=1.0):
        params = self.merged(params)
        if not self.is_enabled(params):
            return frame
        frame, small, bias = self._prepare(frame, width, height, params)
        tone = ToneSettings.from_params(params)
        algorithm = resolve_algorithm(params)

        if algorithm in KERNELS:
            out = diffuse(small, tone, KERNELS[algorithm])
        else:
            rgb = small[:, :, :3].astype(np.float64)
            result = tone_kernel(np, rgb[:, :, 0], rgb[:, :, 1], rgb[:, :, 2], bias, tone)
            out = _apply_tone_result(small, result)
        return resample(out, width, height)

    def process_parallel(self, frame, width, height, params, scale_factor, accelerator):
        params = self.merged(params)
        if not self.is_enabled(params):
            return frame
        frame, small, bias = self._prepare(frame, width, height, params)
        tone = ToneSettings.from_params(params)
        rgb = small[:, :, :3].astype(np.float64)
        if bias is None:
            result = accelerator.execute(
                lambda xp, r, g, b: tone_kernel(xp, r, g, b, None, tone),
                rgb[:, :, 0], rgb[:, :, 1], rgb[:, :, 2],
            )
        else:
            result = accelerator.execute(
                lambda xp, r, g, b, bias_t: tone_kernel(xp, r, g, b, bias_t, tone),
                rgb[:, :, 0], rgb[:, :, 1], rgb[:, :, 2], bias,
            )
        out = _apply_tone_result(small, result)
        return resample(out, width, height)
