"""
VOIDFX -- Halftone / Angled-Screen Engine
CMYK print simulation: four rotated dot screens whose radii follow ink
coverage, composited multiplicatively over white paper.

Two renderers share every per-dot expression:
- host: dot-centric scatter (each dot stamps the pixels it covers)
- accelerated: pixel-centric gather (each pixel visits the 3x3 grid cells
  around its nearest screen point)
"""

import math

import numpy as np

from effects.base import Effect, check_raster

# (coverage channel, angle param, ink RGB)
SCREENS = (
    ("c", "angleC", (0, 255, 255)),
    ("m", "angleM", (255, 0, 255)),
    ("y", "angleY", (255, 255, 0)),
    ("k", "angleK", (0, 0, 0)),
)

INK_NAMES = {"c": "CYAN", "m": "MAGENTA", "y": "YELLOW", "k": "BLACK"}

MIN_COVERAGE = 10
MIN_PITCH = 2.0


def pitch(scale, scale_factor: float = 1.0) -> float:
    """Dot pitch in pixels at the current scale factor."""
    return max(MIN_PITCH, float(scale) * float(scale_factor))


def grid_size(diag: float, step: float) -> int:
    """Number of grid lines g_i = -diag + i*step with g_i < diag."""
    n = max(0, int(math.ceil(2 * diag / step)))
    while n > 0 and -diag + (n - 1) * step >= diag:
        n -= 1
    while -diag + n * step < diag:
        n += 1
    return n


def rotation(angle) -> tuple:
    rad = float(angle) * (math.pi / 180)
    return math.cos(rad), math.sin(rad)


def coverage_maps(rgba: np.ndarray) -> dict:
    """Ink coverage per channel (float64, 0..255)."""
    rgb = rgba[:, :, :3].astype(np.float64)
    r, g, b = rgb[:, :, 0], rgb[:, :, 1], rgb[:, :, 2]
    return {
        "c": 255 - r,
        "m": 255 - g,
        "y": 255 - b,
        "k": 255 - np.maximum(np.maximum(r, g), b),
    }


def dot_centres(gx, gy, cos_a: float, sin_a: float, width: int, height: int):
    """Image-space position of grid point (gx, gy)."""
    cx = gx * cos_a - gy * sin_a + width / 2
    cy = gx * sin_a + gy * cos_a + height / 2
    return cx, cy


def dot_radius(value, step: float):
    return (value / 255) * (step / 1.2)


def composite(dst, transmittance, ink: tuple):
    """Multiply one ink layer onto ``dst`` (list of three channel arrays)."""
    return [dst[c] * (1 - (1 - transmittance) * (1 - ink[c] / 255)) for c in range(3)]


def _stamp_layer(cov: np.ndarray, step: float, angle, opacity: float) -> np.ndarray:
    """Host renderer: transmittance (H, W) for one screen."""
    h, w = cov.shape
    diag = math.sqrt(w * w + h * h)
    n = grid_size(diag, step)
    cos_a, sin_a = rotation(angle)
    q = 1 - opacity

    g = -diag + np.arange(n) * step
    gy, gx = np.meshgrid(g, g, indexing="ij")
    cx, cy = dot_centres(gx, gy, cos_a, sin_a, w, h)
    sx = np.floor(cx)
    sy = np.floor(cy)
    inb = (sx >= 0) & (sx < w) & (sy >= 0) & (sy < h)
    cx, cy = cx[inb], cy[inb]
    val = cov[sy[inb].astype(np.int64), sx[inb].astype(np.int64)]
    dots = val > MIN_COVERAGE
    cx, cy, val = cx[dots], cy[dots], val[dots]

    transmittance = np.ones((h, w), dtype=np.float64)
    if val.size == 0:
        return transmittance

    r = dot_radius(val, step)
    r2 = r * r
    x0 = np.floor(cx - r - 0.5).astype(np.int64)
    y0 = np.floor(cy - r - 0.5).astype(np.int64)
    span = int(math.ceil(2 * float(r.max()))) + 2

    for oy in range(span):
        py = y0 + oy
        dy = (py + 0.5) - cy
        for ox in range(span):
            px = x0 + ox
            dx = (px + 0.5) - cx
            hit = (dx * dx + dy * dy <= r2) & (px >= 0) & (px < w) & (py >= 0) & (py < h)
            if hit.any():
                np.multiply.at(transmittance, (py[hit], px[hit]), q)
    return transmittance


def gather_layer(xp, px, py, cov_flat, step: float, n: int, angle, opacity: float,
                 width: int, height: int):
    """Accelerated renderer: transmittance for pixel coordinates (px, py).

    ``px``/``py`` are float64 pixel indices, ``cov_flat`` the raveled coverage.
    """
    diag = math.sqrt(width * width + height * height)
    cos_a, sin_a = rotation(angle)
    q = 1 - opacity

    ux = px + 0.5 - width / 2
    uy = py + 0.5 - height / 2
    u = ux * cos_a + uy * sin_a
    v = -ux * sin_a + uy * cos_a
    i0 = xp.floor((u + diag) / step + 0.5)
    j0 = xp.floor((v + diag) / step + 0.5)

    transmittance = xp.ones_like(px)
    last = width * height - 1
    for dj in (-1, 0, 1):
        j = j0 + dj
        for di in (-1, 0, 1):
            i = i0 + di
            valid = (i >= 0) & (i < n) & (j >= 0) & (j < n)
            gx = -diag + i * step
            gy = -diag + j * step
            cx, cy = dot_centres(gx, gy, cos_a, sin_a, width, height)
            sx = xp.floor(cx)
            sy = xp.floor(cy)
            inb = valid & (sx >= 0) & (sx < width) & (sy >= 0) & (sy < height)
            idx = xp.clip(sy * width + sx, 0, last)
            val = cov_flat[xp.asarray(idx, dtype=xp.int64)]
            r = dot_radius(val, step)
            dx = (px + 0.5) - cx
            dy = (py + 0.5) - cy
            hit = inb & (val > MIN_COVERAGE) & (dx * dx + dy * dy <= r * r)
            transmittance = xp.where(hit, transmittance * q, transmittance)
    return transmittance


def finish(xp, dst):
    return tuple(xp.round(xp.clip(c, 0, 255)) for c in dst)


def _to_raster(frame: np.ndarray, channels) -> np.ndarray:
    out = frame.copy()
    for c in range(3):
        out[:, :, c] = np.asarray(channels[c], dtype=np.float64).reshape(out.shape[:2]).astype(np.uint8)
    out[:, :, 3] = 255
    return out


class HalftoneEffect(Effect):
    effect_id = "halftone_v1"
    name = "HALFTONE"
    category = "print"
    description = "CMYK halftone screens with independent angles per ink."
    params = {
        "enabled": False,
        "scale": 4,
        "angleC": 15,
        "angleM": 75,
        "angleY": 0,
        "angleK": 45,
        "opacity": 0.8,
    }

    def is_parallel_capable(self, params: dict) -> bool:
        return True

    def get_controls(self, builder, params: dict, on_change):
        group = builder.create_group("OFFSET PRINTER (CMYK)", lambda v: on_change("enabled", v),
                                     self.description)
        group.add_slider("DOT SIZE (DPI)", 1, 20, params["scale"], 0.5,
                         lambda v: on_change("scale", v))
        group.add_slider("OPACITY", 0.0, 1.0, params["opacity"], 0.05,
                         lambda v: on_change("opacity", v))
        for channel, key, _ink in SCREENS:
            group.add_slider(f"ANGLE {INK_NAMES[channel]}", 0, 90, params[key], 1,
                             lambda v, key=key: on_change(key, v))
        return group

    @staticmethod
    def _opacity(params) -> float:
        return max(0.0, min(1.0, float(params.get("opacity", 0.8))))

    def process(self, frame, width, height, params, scale_factor=1.0):
        params = self.merged(params)
        if not self.is_enabled(params):
            return frame
        frame = check_raster(frame, width, height)
        step = pitch(params["scale"], scale_factor)
        opacity = self._opacity(params)
        coverage = coverage_maps(frame)

        dst = [np.full((height, width), 255.0) for _ in range(3)]
        for channel, key, ink in SCREENS:
            transmittance = _stamp_layer(coverage[channel], step, params[key], opacity)
            dst = composite(dst, transmittance, ink)
        return _to_raster(frame, finish(np, dst))

    def process_parallel(self, frame, width, height, params, scale_factor, accelerator):
        params = self.merged(params)
        if not self.is_enabled(params):
            return frame
        frame = check_raster(frame, width, height)
        step = pitch(params["scale"], scale_factor)
        opacity = self._opacity(params)
        coverage = coverage_maps(frame)
        n = grid_size(math.sqrt(width * width + height * height), step)
        angles = [params[key] for _channel, key, _ink in SCREENS]

        def program(xp, px, py, c, m, y, k):
            dst = [xp.full_like(px, 255.0) for _ in range(3)]
            for cov, angle, (_channel, _key, ink) in zip((c, m, y, k), angles, SCREENS):
                transmittance = gather_layer(xp, px, py, cov, step, n, angle, opacity,
                                             width, height)
                dst = composite(dst, transmittance, ink)
            return finish(xp, dst)

        ys, xs = np.indices((height, width), dtype=np.float64)
        result = accelerator.execute(
            program, xs.ravel(), ys.ravel(),
            *(coverage[ch].ravel() for ch in ("c", "m", "y", "k")),
        )
        return _to_raster(frame, result)
