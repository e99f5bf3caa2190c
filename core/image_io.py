"""
VOIDFX -- Image I/O
Pillow-backed loading and saving of RGBA rasters, preview fitting and
frame-sequence writers (animated GIF, PNG sequence).
"""

import logging
import os
from pathlib import Path

import numpy as np
from PIL import Image

from core.safety import ALLOWED_EXTENSIONS, preflight, validate_dimensions

logger = logging.getLogger(__name__)


def load_image(path) -> np.ndarray:
    """Load an image file as (H, W, 4) uint8 RGBA.

    Raises:
        SafetyError: If the file fails preflight or is too large.
        FileNotFoundError: If the file doesn't exist.
    """
    info = preflight(path)
    with Image.open(info["path"]) as img:
        validate_dimensions(img.width, img.height)
        rgba = np.array(img.convert("RGBA"))
    logger.debug("loaded %s (%dx%d)", path, rgba.shape[1], rgba.shape[0])
    return rgba


def save_image(path, raster: np.ndarray) -> str:
    """Write an RGBA or RGB raster. JPEG output drops alpha."""
    path = str(path)
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    img = Image.fromarray(np.ascontiguousarray(raster))
    if Path(path).suffix.lower() in (".jpg", ".jpeg") and img.mode == "RGBA":
        img = img.convert("RGB")
    img.save(path)
    return path


def fit_size(width: int, height: int, max_side: int) -> tuple:
    """Largest size within ``max_side`` keeping aspect ratio. Never upscales."""
    scale = min(1.0, max_side / width, max_side / height)
    return max(1, int(width * scale)), max(1, int(height * scale))


def resize(raster: np.ndarray, width: int, height: int) -> np.ndarray:
    if raster.shape[1] == width and raster.shape[0] == height:
        return raster.copy()
    img = Image.fromarray(np.ascontiguousarray(raster))
    return np.array(img.resize((width, height), Image.Resampling.BILINEAR))


def list_frames(directory) -> list:
    """Image files in ``directory`` sorted by name."""
    directory = Path(directory)
    if not directory.is_dir():
        raise FileNotFoundError(f"Frame directory not found: {directory}")
    return sorted(p for p in directory.iterdir() if p.suffix.lower() in ALLOWED_EXTENSIONS)


def write_gif(path, frames: list, fps: int = 15) -> str:
    """Write RGBA frames as a looping animated GIF."""
    if not frames:
        raise ValueError("No frames to write")
    path = str(path)
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    images = [Image.fromarray(np.ascontiguousarray(f)).convert("RGB") for f in frames]
    images[0].save(
        path,
        save_all=True,
        append_images=images[1:],
        duration=max(1, int(round(1000 / fps))),
        loop=0,
    )
    return path


def write_png_sequence(directory, frames: list, prefix: str = "frame") -> list:
    """Write frames as ``<prefix>_00000.png``... and return the paths."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    paths = []
    for i, frame in enumerate(frames):
        p = directory / f"{prefix}_{i:05d}.png"
        Image.fromarray(np.ascontiguousarray(frame)).save(p)
        paths.append(str(p))
    return paths
