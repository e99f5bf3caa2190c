"""
VOIDFX -- Safety & Resource Guards
Centralized preflight checks run before any file processing.
Prevents oversized inputs, runaway exports and resource exhaustion.
"""

import os
from pathlib import Path

# --- Configurable Limits ---
MAX_FILE_MB = 200          # Maximum input image size
MAX_INPUT_PIXELS = 100_000_000
MAX_CHAIN_DEPTH = 10       # Maximum effects in a chain
MAX_EXPORT_SCALE = 16.0
ALLOWED_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif", ".bmp", ".webp", ".tif", ".tiff"}


class SafetyError(Exception):
    """Raised when a preflight check fails."""
    pass


def preflight(input_path: str) -> dict:
    """Run all safety checks before loading an image.

    Args:
        input_path: Path to the input file.

    Returns:
        dict with file metadata (path, size_mb, extension)

    Raises:
        SafetyError: If any check fails.
        FileNotFoundError: If input doesn't exist.
    """
    input_path = str(input_path)
    real_path = os.path.realpath(input_path)

    if not os.path.isfile(real_path):
        raise FileNotFoundError(f"Input file not found: {input_path}")

    size_mb = os.path.getsize(real_path) / (1024 * 1024)
    if size_mb > MAX_FILE_MB:
        raise SafetyError(
            f"Input file is {size_mb:.0f}MB, exceeds {MAX_FILE_MB}MB limit."
        )

    ext = Path(real_path).suffix.lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise SafetyError(
            f"File type '{ext}' not allowed. "
            f"Supported: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
        )

    return {
        "path": real_path,
        "size_mb": size_mb,
        "extension": ext,
    }


def validate_dimensions(width: int, height: int) -> None:
    """Reject empty or absurdly large rasters.

    Raises:
        SafetyError: If either side is < 1 or the area exceeds MAX_INPUT_PIXELS.
    """
    if width < 1 or height < 1:
        raise SafetyError(f"Raster must be at least 1x1, got {width}x{height}")
    if width * height > MAX_INPUT_PIXELS:
        raise SafetyError(
            f"Raster is {width}x{height} ({width * height:,} px), "
            f"max is {MAX_INPUT_PIXELS:,} px."
        )


def validate_chain_depth(effects_list: list) -> None:
    """Check that effect chain isn't too deep.

    Raises:
        SafetyError: If chain exceeds MAX_CHAIN_DEPTH.
    """
    if len(effects_list) > MAX_CHAIN_DEPTH:
        raise SafetyError(
            f"Effect chain has {len(effects_list)} effects, max is {MAX_CHAIN_DEPTH}. "
            f"Split into multiple passes."
        )


def validate_scale(scale: float) -> float:
    """Clamp-check an export scale factor.

    Raises:
        SafetyError: If scale is not a finite positive number <= MAX_EXPORT_SCALE.
    """
    try:
        scale = float(scale)
    except (TypeError, ValueError):
        raise SafetyError(f"Invalid export scale: {scale!r}")
    if scale != scale or scale <= 0 or scale > MAX_EXPORT_SCALE:
        raise SafetyError(f"Export scale must be in (0, {MAX_EXPORT_SCALE}], got {scale}")
    return scale
