"""
VOIDFX -- Engine Configuration

Pydantic model for session-wide settings. Every field can be overridden
from the environment as VOIDFX_<FIELD_NAME> (e.g. VOIDFX_ACCEL_DEVICE=cpu).
"""

from __future__ import annotations

import os
from typing import Literal

from pydantic import BaseModel, Field

ENV_PREFIX = "VOIDFX_"


class EngineConfig(BaseModel):
    """Settings read once when a processor session starts."""

    preview_max: int = Field(
        default=960, ge=16, le=8192,
        description="Longest edge of the preview raster in pixels",
    )
    debounce_ms: int = Field(
        default=30, ge=0, le=5000,
        description="Delay before a parameter change triggers a render",
    )
    accel_device: Literal["auto", "cpu", "off"] = Field(
        default="auto",
        description="auto = CUDA then MPS, cpu = torch CPU device, off = host path only",
    )
    max_export_pixels: int = Field(
        default=50_000_000, ge=1,
        description="Exports above this pixel count need explicit confirmation",
    )
    progress_every: int = Field(
        default=5, ge=1,
        description="Frame-sequence export reports progress every N frames",
    )
    pool_capacity: int = Field(
        default=8, ge=1, le=64,
        description="Maximum idle rasters kept by the raster pool",
    )
    gif_fps: int = Field(default=15, ge=1, le=60)
    video_fps: int = Field(default=30, ge=1, le=120)


def load_config(env: dict | None = None, **overrides) -> EngineConfig:
    """Build an EngineConfig from VOIDFX_* environment variables plus overrides.

    Raises:
        pydantic.ValidationError: If a value is out of range or malformed.
    """
    env = os.environ if env is None else env
    values = {}
    for name in EngineConfig.model_fields:
        key = ENV_PREFIX + name.upper()
        if key in env:
            values[name] = env[key]
    values.update(overrides)
    return EngineConfig(**values)
