"""
VOIDFX -- Processor Session
Owns the preview raster, parameter state, dispatcher and raster pool.
Parameter changes debounce renders on the asyncio event loop; playback is
a self-rescheduling loop that renders each frame fully before queueing
the next.
"""

import asyncio
import logging

import numpy as np

from core import accel
from core.buffers import RasterPool
from core.config import EngineConfig, load_config
from core.dispatcher import Dispatcher
from core.image_io import fit_size, load_image, resize
from core.params import ParameterState
from effects import PIPELINE
from effects.base import as_rgba

logger = logging.getLogger(__name__)

_PROBE = object()


class Processor:
    """One editing session over a single source image (or frame stream).

    Args:
        config: Engine settings (defaults from the environment).
        accelerator: Pre-probed accelerator, or None to force the host path.
            Omit to probe according to ``config.accel_device``.
        on_render: Optional callback ``(raster, report)`` after each render.
    """

    def __init__(self, config: EngineConfig | None = None, accelerator=_PROBE, on_render=None):
        self.config = config or load_config()
        if accelerator is _PROBE:
            accelerator = accel.probe(self.config.accel_device)
        self.accelerator = accelerator
        self.pool = RasterPool(self.config.pool_capacity)
        self.dispatcher = Dispatcher(self.accelerator, self.pool, PIPELINE)
        self.params = ParameterState(PIPELINE)
        self.on_render = on_render

        self.source: np.ndarray | None = None
        self.preview: np.ndarray | None = None
        self.preview_scale = 1.0
        self.output: np.ndarray | None = None
        self.last_report = None
        self.render_count = 0

        self._pending = None
        self._playing = False
        self._play_handle = None
        self._play_done = None
        self._interval = 0.0
        self._frames = None
        self.frames_played = 0

    # --- Source ---

    def load_image(self, image) -> np.ndarray:
        """Set the source from a path or raster and build the preview raster."""
        if isinstance(image, np.ndarray):
            source = as_rgba(image).copy()
        else:
            source = load_image(image)
        self.source = source
        self._set_preview(source)
        logger.info("source %dx%d, preview %dx%d", source.shape[1], source.shape[0],
                    self.preview.shape[1], self.preview.shape[0])
        return self.preview

    def _set_preview(self, frame: np.ndarray) -> None:
        frame = as_rgba(frame)
        h, w = frame.shape[:2]
        pw, ph = fit_size(w, h, self.config.preview_max)
        self.preview = resize(frame, pw, ph)
        self.preview_scale = pw / w

    @property
    def preview_size(self) -> tuple:
        if self.preview is None:
            return (0, 0)
        return (self.preview.shape[1], self.preview.shape[0])

    # --- Rendering ---

    def render(self, frame_index: int = 0) -> np.ndarray | None:
        """Render the preview at scale factor 1.0 from the latest snapshot.

        ``frame_index`` is the playback position (stills use 0).
        """
        if self.preview is None:
            return None
        self.output, self.last_report = self.dispatcher.render(
            self.preview, self.params.snapshot(), 1.0, frame_index)
        self.render_count += 1
        if self.on_render is not None:
            self.on_render(self.output, self.last_report)
        return self.output

    def update_param(self, effect_id: str, key: str, value) -> None:
        """UI callback: apply a change, then schedule a render."""
        self.params.update(effect_id, key, value)
        self.request_render()

    def request_render(self) -> None:
        """Debounced render. A new request replaces any pending one.

        Without a running event loop the render happens immediately.
        During playback this is a no-op (the playback loop renders).
        """
        if self._playing:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.render()
            return
        if self._pending is not None:
            self._pending.cancel()
        self._pending = loop.call_later(self.config.debounce_ms / 1000, self._fire)

    def _fire(self) -> None:
        self._pending = None
        try:
            self.render()
        except Exception:
            logger.exception("Preview render failed")

    @property
    def render_pending(self) -> bool:
        return self._pending is not None

    def generate_controls(self, builder):
        """Have every effect describe its controls, wired to ``update_param``."""
        for effect in PIPELINE:
            params = self.params.effect_params(effect.effect_id)
            effect.get_controls(
                builder, params,
                lambda key, value, eid=effect.effect_id: self.update_param(eid, key, value),
            )
        return builder

    # --- Playback ---

    @property
    def playing(self) -> bool:
        return self._playing

    def play(self, frames, fps: float | None = None) -> asyncio.Future:
        """Start playback over an iterable of rasters.

        Returns a future resolving to the number of frames rendered when
        the source is exhausted or :meth:`stop` is called.
        """
        loop = asyncio.get_running_loop()
        self.stop()
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
        self._frames = iter(frames)
        self._interval = 1.0 / float(fps or self.config.video_fps)
        self._playing = True
        self.frames_played = 0
        self._play_done = loop.create_future()
        self._play_handle = loop.call_soon(self._play_step)
        return self._play_done

    def _play_step(self) -> None:
        self._play_handle = None
        if not self._playing:
            return
        try:
            frame = next(self._frames)
        except StopIteration:
            self._finish_playback()
            return
        try:
            self._set_preview(frame)
            self.render(self.frames_played)
        except Exception as e:
            logger.exception("Playback render failed at frame %d", self.frames_played)
            self._playing = False
            if not self._play_done.done():
                self._play_done.set_exception(e)
            return
        self.frames_played += 1
        loop = asyncio.get_running_loop()
        self._play_handle = loop.call_later(self._interval, self._play_step)

    def _finish_playback(self) -> None:
        self._playing = False
        if self._play_handle is not None:
            self._play_handle.cancel()
            self._play_handle = None
        if self._play_done is not None and not self._play_done.done():
            self._play_done.set_result(self.frames_played)

    def stop(self) -> None:
        """Stop playback after the frame currently rendering."""
        if self._playing or self._play_handle is not None:
            self._finish_playback()
