"""
VOIDFX -- Scoped Raster Pool
Reusable RGBA work rasters. ``acquire`` is a context manager so a raster
always goes back to the pool, even when a stage raises.
"""

import logging
from contextlib import contextmanager

import numpy as np

logger = logging.getLogger(__name__)


class RasterPool:
    """Bounded pool of (H, W, 4) uint8 rasters keyed by shape."""

    def __init__(self, capacity: int = 8):
        self.capacity = max(1, int(capacity))
        self._free: dict[tuple, list[np.ndarray]] = {}
        self.in_use = 0
        self.allocations = 0

    @property
    def idle(self) -> int:
        return sum(len(v) for v in self._free.values())

    def _take(self, height: int, width: int) -> np.ndarray:
        stack = self._free.get((height, width))
        if stack:
            return stack.pop()
        self.allocations += 1
        logger.debug("Allocating %dx%d raster (%d total)", width, height, self.allocations)
        return np.empty((height, width, 4), dtype=np.uint8)

    def _give(self, raster: np.ndarray) -> None:
        if self.idle >= self.capacity:
            # Drop the oldest idle shape to stay bounded.
            oldest = next(iter(self._free))
            self._free[oldest].pop(0)
            if not self._free[oldest]:
                del self._free[oldest]
        self._free.setdefault(raster.shape[:2], []).append(raster)

    @contextmanager
    def acquire(self, height: int, width: int, fill: np.ndarray | None = None):
        """Borrow a raster for the duration of a ``with`` block.

        Args:
            fill: Optional source copied into the raster before it is yielded.
        """
        raster = self._take(int(height), int(width))
        if fill is not None:
            np.copyto(raster, fill)
        self.in_use += 1
        try:
            yield raster
        finally:
            self.in_use -= 1
            self._give(raster)

    def clear(self) -> None:
        self._free.clear()
