"""
VOIDFX -- Hybrid Execution Dispatcher
Runs the fixed pipeline, choosing per stage between the accelerated
(parallel) path and the host (sequential) path. The host raster is the
synchronisation point: every parallel stage's output is copied back into
it before the next stage reads it.
"""

import logging
import time
from dataclasses import dataclass, field

import numpy as np

from core.buffers import RasterPool
from effects import PIPELINE
from effects.base import as_rgba

logger = logging.getLogger(__name__)

PARALLEL = "parallel"
SEQUENTIAL = "sequential"
SKIPPED = "skipped"


@dataclass
class RenderReport:
    """Per-render record of which path each stage took."""
    decisions: list = field(default_factory=list)
    copy_backs: int = 0
    elapsed_ms: float = 0.0

    def path_of(self, effect_id: str) -> str | None:
        for eid, path in self.decisions:
            if eid == effect_id:
                return path
        return None


class Dispatcher:
    """Executes the pipeline over one raster per call.

    Args:
        accelerator: Probed accelerator, or None for host-only sessions.
        pool: Raster pool for the host working raster.
        pipeline: Ordered effect instances (defaults to the registry order).
    """

    def __init__(self, accelerator=None, pool: RasterPool | None = None, pipeline=None):
        self.accelerator = accelerator
        self.pool = pool or RasterPool()
        self.pipeline = list(pipeline) if pipeline is not None else list(PIPELINE)
        self.last_report: RenderReport | None = None

    @property
    def accelerated(self) -> bool:
        return self.accelerator is not None

    def choose_path(self, effect, params: dict) -> str:
        if not effect.is_enabled(params):
            return SKIPPED
        if self.accelerator is not None and effect.is_parallel_capable(params):
            return PARALLEL
        return SEQUENTIAL

    def render(self, source: np.ndarray, snapshot: dict, scale_factor: float = 1.0,
               frame_index: int = 0):
        """Run every stage over ``source``.

        Args:
            source: (H, W, 3|4) uint8 raster. Not modified.
            snapshot: effect_id -> parameter mapping, read once.
            scale_factor: Pixel-constant multiplier (1.0 for preview).
            frame_index: Position in a playback or export sequence, passed to
                effects that vary per frame.

        Returns:
            (raster, RenderReport)
        """
        start = time.perf_counter()
        source = as_rgba(source)
        h, w = source.shape[:2]
        report = RenderReport()

        with self.pool.acquire(h, w, fill=source) as host:
            for effect in self.pipeline:
                params = effect.merged(snapshot.get(effect.effect_id))
                if effect.uses_frame_index:
                    params["frame_index"] = frame_index
                path = self.choose_path(effect, params)
                report.decisions.append((effect.effect_id, path))
                if path == SKIPPED:
                    continue
                if path == PARALLEL:
                    out = effect.process_parallel(host, w, h, params, scale_factor,
                                                  self.accelerator)
                    np.copyto(host, out)
                    report.copy_backs += 1
                else:
                    out = effect.process(host, w, h, params, scale_factor)
                    np.copyto(host, out)
            result = host.copy()

        report.elapsed_ms = (time.perf_counter() - start) * 1000
        logger.debug("render %dx%d scale=%.3f %s copy_backs=%d %.1fms", w, h, scale_factor,
                     " ".join(f"{eid}:{path}" for eid, path in report.decisions),
                     report.copy_backs, report.elapsed_ms)
        self.last_report = report
        return result, report
