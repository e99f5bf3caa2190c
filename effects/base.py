"""
VOIDFX -- Effect Contract
Every pipeline stage implements this interface so the dispatcher, the
preview renderer and the exporters can drive any stage interchangeably.
"""

from abc import ABC, abstractmethod

import numpy as np


def as_rgba(frame: np.ndarray) -> np.ndarray:
    """Return an (H, W, 4) uint8 view/copy of ``frame``.

    RGB input gets an opaque alpha channel; grayscale is expanded.
    """
    frame = np.asarray(frame)
    if frame.dtype != np.uint8:
        frame = np.clip(frame, 0, 255).astype(np.uint8)
    if frame.ndim == 2:
        frame = np.stack([frame] * 3, axis=2)
    if frame.shape[2] == 4:
        return frame
    alpha = np.full(frame.shape[:2] + (1,), 255, dtype=np.uint8)
    return np.concatenate([frame[:, :, :3], alpha], axis=2)


def check_raster(frame: np.ndarray, width: int, height: int) -> np.ndarray:
    """``as_rgba`` plus a dimension check against the declared size."""
    frame = as_rgba(frame)
    if frame.shape[0] != height or frame.shape[1] != width:
        raise ValueError(
            f"Raster is {frame.shape[1]}x{frame.shape[0]}, expected {width}x{height}"
        )
    return frame


class Effect(ABC):
    """Base class for pipeline stages.

    Subclasses declare ``effect_id``, ``name``, ``description``, ``category``
    and the default ``params`` mapping. They are stateless: everything a
    render needs arrives through ``params`` and ``scale_factor``.
    """

    effect_id = ""
    name = ""
    description = ""
    category = ""
    params: dict = {}
    # Receives "frame_index" in params when rendering a sequence.
    uses_frame_index = False

    def default_params(self) -> dict:
        return dict(self.params)

    def merged(self, params: dict | None) -> dict:
        """Defaults overlaid with ``params``."""
        merged = self.default_params()
        if params:
            merged.update(params)
        return merged

    def is_enabled(self, params: dict) -> bool:
        return bool(params.get("enabled", True))

    def is_parallel_capable(self, params: dict) -> bool:
        """Whether the current parameter combination can run on the accelerator."""
        return False

    @abstractmethod
    def get_controls(self, builder, params: dict, on_change):
        """Describe this stage's controls on ``builder``.

        Every control calls ``on_change(key, value)`` on user interaction.
        """

    @abstractmethod
    def process(self, frame: np.ndarray, width: int, height: int,
                params: dict, scale_factor: float = 1.0) -> np.ndarray:
        """Transform ``frame`` on the host. Output shape equals input shape."""

    def process_parallel(self, frame: np.ndarray, width: int, height: int,
                         params: dict, scale_factor: float, accelerator) -> np.ndarray:
        """Transform ``frame`` with one accelerator program.

        Only called when :meth:`is_parallel_capable` is true.
        """
        raise NotImplementedError(f"{self.effect_id} has no accelerated program")

    def __repr__(self):
        return f"<{type(self).__name__} {self.effect_id}>"
