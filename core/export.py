"""
VOIDFX -- Export
Still export at preview or full resolution, and cooperative frame-sequence
export (animated GIF / PNG sequence) with progress and cancellation.

Full-resolution renders use scale factor source_width / preview_width so
pixel-space constants (blur radius, dot pitch, glitch offsets) look the
same as in the preview.
"""

import asyncio
import logging

import numpy as np

from core.image_io import fit_size, load_image, resize, write_gif, write_png_sequence
from core.safety import SafetyError, validate_scale
from effects.base import as_rgba

logger = logging.getLogger(__name__)


class ExportError(Exception):
    """Fatal export failure. Partial output is discarded."""
    pass


class ExportCancelled(Exception):
    """The user declined a large export or cancelled it before any frame."""
    pass


def check_size(width: int, height: int, max_pixels: int, confirm=None) -> None:
    """Require confirmation for exports larger than ``max_pixels``.

    Raises:
        ExportCancelled: If confirmation is needed and not given.
    """
    pixels = width * height
    if pixels <= max_pixels:
        return
    if confirm is None or not confirm(width, height, pixels):
        raise ExportCancelled(
            f"Export of {width}x{height} ({pixels:,} px) exceeds {max_pixels:,} px "
            f"and was not confirmed"
        )
    logger.info("Large export confirmed: %dx%d (%d px)", width, height, pixels)


def export_scale(source_width: int, preview_width: int) -> float:
    return source_width / preview_width


def export_still(processor, full_res: bool = True, scale: float | None = None,
                 confirm=None) -> np.ndarray:
    """Render the current parameters once for export.

    Args:
        processor: Session with a loaded source.
        full_res: Render the source raster instead of the preview.
        scale: Optional explicit output scale relative to the source.
        confirm: ``confirm(width, height, pixels) -> bool`` for huge exports.

    Raises:
        ExportCancelled: If a large export is declined.
        ExportError: On allocation or processing failure.
    """
    if processor.source is None:
        raise ExportError("No source loaded")
    if not full_res:
        return processor.render().copy()

    source = processor.source
    try:
        if scale is not None:
            scale = validate_scale(scale)
            sw = max(1, int(source.shape[1] * scale))
            sh = max(1, int(source.shape[0] * scale))
            check_size(sw, sh, processor.config.max_export_pixels, confirm)
            source = resize(source, sw, sh)
        else:
            check_size(source.shape[1], source.shape[0],
                       processor.config.max_export_pixels, confirm)
    except SafetyError as e:
        raise ExportError(str(e)) from e

    factor = export_scale(source.shape[1], processor.preview_size[0])
    try:
        raster, report = processor.dispatcher.render(source, processor.params.snapshot(), factor)
    except MemoryError as e:
        raise ExportError(f"Out of memory rendering {source.shape[1]}x{source.shape[0]}") from e
    except RuntimeError as e:
        # Device allocation and driver failures from the accelerated path.
        raise ExportError(f"Render failed at {source.shape[1]}x{source.shape[0]}: {e}") from e
    logger.info("Exported still %dx%d at scale factor %.3f", raster.shape[1], raster.shape[0],
                factor)
    return raster


class FrameExporter:
    """Cooperative frame-sequence export.

    Args:
        processor: Session supplying parameters, dispatcher and config.
        full_res: Render frames at native size (scale factor frame_w / preview_w)
            instead of preview size.
        progress: Optional ``progress(done, total)`` callback.
        confirm: Optional large-export confirmation callback.
    """

    def __init__(self, processor, full_res: bool = False, progress=None, confirm=None):
        self.processor = processor
        self.full_res = full_res
        self.progress = progress
        self.confirm = confirm
        self.cancelled = False
        self.frames: list[np.ndarray] = []

    def cancel(self) -> None:
        """Stop after the frame currently rendering."""
        self.cancelled = True

    def _read(self, item) -> np.ndarray:
        if isinstance(item, np.ndarray):
            return as_rgba(item)
        return load_image(item)

    def _render_frame(self, frame: np.ndarray, snapshot, index: int = 0) -> np.ndarray:
        h, w = frame.shape[:2]
        pw, ph = fit_size(w, h, self.processor.config.preview_max)
        if self.full_res:
            check_size(w, h, self.processor.config.max_export_pixels, self.confirm)
            factor = export_scale(w, pw)
        else:
            frame = resize(frame, pw, ph)
            factor = 1.0
        raster, _report = self.processor.dispatcher.render(frame, snapshot, factor, index)
        return raster

    async def run(self, frames) -> list:
        """Render every frame. Returns the rendered rasters.

        A cancelled export returns the frames finished so far.

        Raises:
            ExportCancelled: If a large export is declined.
            ExportError: If reading or rendering any frame fails.
        """
        items = list(frames)
        total = len(items)
        every = self.processor.config.progress_every
        snapshot = self.processor.params.snapshot()
        self.frames = []

        for i, item in enumerate(items):
            if self.cancelled:
                logger.info("Export cancelled after %d/%d frames", i, total)
                break
            try:
                frame = self._read(item)
                self.frames.append(self._render_frame(frame, snapshot, i))
            except ExportCancelled:
                self.frames = []
                raise
            except (OSError, ValueError, MemoryError, RuntimeError, SafetyError) as e:
                logger.exception("Export failed at frame %d", i)
                self.frames = []
                raise ExportError(f"Export failed at frame {i}: {e}") from e

            done = i + 1
            if done % every == 0 or done == total:
                if self.progress is not None:
                    self.progress(done, total)
                await asyncio.sleep(0)

        return self.frames


async def export_gif(processor, frames, path, fps: int | None = None, **kwargs) -> str:
    """Render ``frames`` and write an animated GIF.

    Raises:
        ExportCancelled: If cancelled before any frame finished.
        ExportError: On any read/render/encode failure.
    """
    exporter = FrameExporter(processor, **kwargs)
    rendered = await exporter.run(frames)
    if not rendered:
        raise ExportCancelled("No frames rendered")
    try:
        return write_gif(path, rendered, fps or processor.config.gif_fps)
    except (OSError, ValueError) as e:
        raise ExportError(f"GIF encode failed: {e}") from e


async def export_png_sequence(processor, frames, directory, **kwargs) -> list:
    """Render ``frames`` and write a numbered PNG sequence."""
    exporter = FrameExporter(processor, **kwargs)
    rendered = await exporter.run(frames)
    if not rendered:
        raise ExportCancelled("No frames rendered")
    try:
        return write_png_sequence(directory, rendered)
    except (OSError, ValueError) as e:
        raise ExportError(f"PNG sequence write failed: {e}") from e
