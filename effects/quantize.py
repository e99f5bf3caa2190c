"""
VOIDFX -- Quantizer & Palette Helpers
Pure numeric routines shared by the dither, tone and halftone engines.

Scalar helpers work on Python floats (used by the per-pixel error diffusion
loop). The ``*_array`` helpers take an ``xp`` array namespace (numpy or torch)
so the host path and the accelerated path evaluate the same expressions in
the same order.
"""

import math
import re

import numpy as np

# Full-range grade mode snaps every channel to this step (32 levels).
RGB_STEP = 8

_HEX_RE = re.compile(r"^#?([a-f\d]{2})([a-f\d]{2})([a-f\d]{2})$", re.IGNORECASE)


def clamp(v: float) -> float:
    """Clamp a channel value to [0, 255]."""
    return 0.0 if v < 0 else (255.0 if v > 255 else v)


def store(v: float) -> int:
    """Value a raster byte takes when ``v`` is written to it.

    Clamps to [0, 255] then rounds half to even, matching a clamped byte array.
    """
    return round(clamp(v))


def store_array(values: np.ndarray) -> np.ndarray:
    """Vectorized :func:`store`. Returns uint8."""
    return np.rint(np.clip(values, 0, 255)).astype(np.uint8)


def contrast_factor(contrast: float) -> float:
    """Classic contrast correction factor for C in [-255, 259)."""
    contrast = float(contrast)
    return (259 * (contrast + 255)) / (255 * (259 - contrast))


def apply_contrast(v: float, f: float) -> float:
    return clamp(f * (v - 128) + 128)


def luminance(r: float, g: float, b: float) -> float:
    """Rec. 601 luma."""
    return 0.299 * r + 0.587 * g + 0.114 * b


def lerp_color(c1, c2, t: float) -> tuple:
    return (
        c1[0] + (c2[0] - c1[0]) * t,
        c1[1] + (c2[1] - c1[1]) * t,
        c1[2] + (c2[2] - c1[2]) * t,
    )


def indexed_levels(count) -> int:
    """Levels per channel for an indexed palette of ``count`` colours.

    8 colours -> 2 levels (2x2x2), 27 -> 3. Never fewer than 2.
    """
    try:
        count = float(count)
    except (TypeError, ValueError):
        return 2
    if not count > 0:
        return 2
    return max(2, int(math.floor(count ** (1 / 3))))


def indexed_step(count) -> float:
    return 255 / (indexed_levels(count) - 1)


def snap(v: float, step: float) -> float:
    """Snap to the nearest multiple of ``step`` (ties round up)."""
    return math.floor(v / step + 0.5) * step


def hex_to_rgb(value) -> tuple:
    """Parse '#rrggbb' into an (r, g, b) tuple. Malformed input gives black."""
    if not isinstance(value, str):
        return (0, 0, 0)
    m = _HEX_RE.match(value.strip())
    if not m:
        return (0, 0, 0)
    return tuple(int(part, 16) for part in m.groups())


# ---------------------------------------------------------------------------
# Array forms (numpy or torch via ``xp``)
# ---------------------------------------------------------------------------

def clamp_array(xp, v):
    return xp.clip(v, 0, 255)


def apply_contrast_array(xp, v, f: float):
    return clamp_array(xp, f * (v - 128) + 128)


def luminance_array(r, g, b):
    return 0.299 * r + 0.587 * g + 0.114 * b


def snap_array(xp, v, step: float):
    return xp.floor(v / step + 0.5) * step


def lerp_array(c1: float, c2: float, t):
    return c1 + (c2 - c1) * t
