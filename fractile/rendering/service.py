from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from typing import Callable, Optional, Tuple

import numpy as np

from fractile.backend.be_base import ComputeBackend
from fractile.backend.manager import BackendManager
from fractile.coloring.distribution import build_cdf
from fractile.coloring.filters import apply_filters
from fractile.coloring.mapper import colour_values, palette_scale
from fractile.coloring.palettes import PaletteCache
from fractile.errors import FractileError
from fractile.fractals.base import RenderSettings
from fractile.precision.selection import choose_precision
from fractile.rendering.events import (
    FrameEvent, FrameResult, FrameTask, LogEvent, TaskResult, TileEvent
)
from fractile.rendering.navigation import (
    Navigation, format_location, pan, parse_location, select_rect, viewport_bounds, zoom_at
)
from fractile.rendering.schedule import refinement_schedule
from fractile.rendering.scheduler import EpochContext, TileScheduler
from fractile.rendering.surface import PixelSurface
from fractile.utils.enums import BackendType, ColourMode, FilterMode, InteractionMode, Precision

logger = logging.getLogger(__name__)

_GPU_COLOUR_MODES = {ColourMode.NORMALIZE: 0, ColourMode.CYCLE: 1, ColourMode.FIXED: 2}


@dataclass(frozen=True)
class RenderStatus:
    epoch: int
    rendering: bool
    last_render_ms: Optional[float]
    effective_max_iterations: int
    precision: str
    precision_limit_reached: bool
    backend_label: str
    pending_bands: int


class RenderService:
    """
    The controller: owns settings, navigation, the tile scheduler, the
    pixel surface and backend selection.

    Nothing here blocks. Call `pump()` regularly (a UI timer does) to drain
    finished work; every callback fires from inside `pump()` or from the
    method that triggered it, on the caller's thread.
    """

    def __init__(
        self,
        width: int,
        height: int,
        settings: Optional[RenderSettings] = None,
        location: Optional[str] = None,
        backends: Optional[BackendManager] = None,
    ) -> None:
        self.settings = (settings or RenderSettings()).sanitized()
        self.nav: Navigation = parse_location(location, self.settings.algorithm)
        self.interaction_mode = InteractionMode.PAN

        self.backends = backends or BackendManager()
        self.palettes = PaletteCache()
        self.surface = PixelSurface(width, height)
        self.scheduler = TileScheduler(
            submit=self._submit_band,
            on_band=self._on_band,
            on_epoch_complete=self._on_epoch_complete,
        )

        # ----- Per-epoch state, frozen until the next epoch -----
        self._backend: Optional[ComputeBackend] = None
        self._backend_kind = BackendType.CPU
        self._backend_label = "idle"
        self._max_iter = self.settings.max_iterations
        self._precision_name = "native"
        self._precision_limit = False
        self._palette = self.palettes.get(self.settings.palette, self.settings.palette_stops,
                                          self.settings.palette_smoothness)
        self._last_render_ms: Optional[float] = None

        # Callbacks
        self.on_frame: Optional[Callable[[FrameEvent], None]] = None
        self.on_tile: Optional[Callable[[TileEvent], None]] = None
        self.on_log: Optional[Callable[[LogEvent], None]] = None

    # ---------------------------------------------------------------------
    # Configuration
    # ---------------------------------------------------------------------

    @property
    def width(self) -> int:
        return self.surface.width

    @property
    def height(self) -> int:
        return self.surface.height

    @property
    def location(self) -> str:
        return format_location(self.nav)

    def update_settings(self, settings: Optional[RenderSettings] = None, **changes) -> None:
        """
        Replace settings (whole object and/or individual fields) and
        regenerate. Switching algorithm jumps to that algorithm's default view.
        """
        base = settings or self.settings
        new = replace(base, **changes).sanitized() if changes else base.sanitized()
        if new.algorithm is not self.settings.algorithm:
            self.nav = Navigation.default(new.algorithm)
        self.settings = new
        self.start()

    def set_size(self, width: int, height: int) -> None:
        if (int(width), int(height)) == (self.width, self.height):
            return
        self.surface.resize(width, height)
        self.start()

    def set_location(self, location: str) -> None:
        self.nav = parse_location(location, self.settings.algorithm)
        self.start()

    def set_interaction_mode(self, mode: InteractionMode) -> None:
        self.interaction_mode = mode

    # ---------------------------------------------------------------------
    # Navigation
    # ---------------------------------------------------------------------

    def _bounds(self):
        return viewport_bounds(self.nav, self.width, self.height)

    def pan(self, dx: float, dy: float) -> None:
        """Move the content by (dx, dy) pixels, reusing what is already rendered."""
        dx, dy = int(round(dx)), int(round(dy))
        if dx == 0 and dy == 0:
            return
        self.nav = pan(self.nav, self._bounds(), dx, dy)
        self.start(displacement=(dx, dy))

    def zoom_at(self, px: float, py: float, zoom_in: bool = True) -> None:
        self.nav = zoom_at(self.nav, self._bounds(), px, py, zoom_in)
        self.start()

    def select(self, rect: Tuple[float, float, float, float]) -> None:
        self.nav = select_rect(self.nav, self._bounds(), rect)
        self.start()

    def drag_finished(self, start: Tuple[float, float], end: Tuple[float, float]) -> None:
        """Complete a drag gesture according to the interaction mode."""
        if self.interaction_mode is InteractionMode.SELECT:
            self.select((start[0], start[1], end[0] - start[0], end[1] - start[1]))
        else:
            self.pan(end[0] - start[0], end[1] - start[1])

    def reset(self) -> None:
        self.nav = Navigation.default(self.settings.algorithm)
        self.start()

    # ---------------------------------------------------------------------
    # Lifecycle
    # ---------------------------------------------------------------------

    def start(self, displacement: Optional[Tuple[int, int]] = None) -> int:
        """Begin a new epoch for the current navigation and settings."""
        st = self.settings
        bounds = self._bounds()
        self._max_iter = st.effective_max_iterations(self.nav.zoom)
        self._palette = self.palettes.get(st.palette, st.palette_stops, st.palette_smoothness)

        step = min(bounds.x_scale, bounds.y_scale)
        magnitude = max(abs(bounds.x0), abs(bounds.x1), abs(bounds.y0), abs(bounds.y1))
        wants_gpu = st.backend is BackendType.GPU
        choice = choose_precision(st.precision, step, magnitude, st.limb_profile, gpu=wants_gpu)
        selection = self.backends.select(st, choice.precision)
        if wants_gpu and selection.kind is BackendType.CPU:
            choice = choose_precision(st.precision, step, magnitude, st.limb_profile, gpu=False)
            if selection.label != self._backend_label:
                self._log(selection.label, logging.WARNING)

        if selection.kind is not self._backend_kind or selection.backend is not self._backend:
            displacement = None
        self._backend = selection.backend
        self._backend_kind = selection.kind
        self._backend_label = selection.label
        self._precision_name = choice.precision.name.lower()
        if choice.limit_reached and not self._precision_limit:
            self._log("Precision limit reached at this zoom", logging.INFO)
        self._precision_limit = choice.limit_reached

        if not self._backend.tiled:
            epoch = self.scheduler.claim_epoch()
            self._backend.submit(FrameTask(
                epoch=epoch, bounds=bounds, algorithm=st.algorithm,
                precision=choice.precision, max_iter=self._max_iter, smooth=st.smooth,
                julia_c=st.julia_c, fractional=st.limb_profile.value,
                colour_mode=_GPU_COLOUR_MODES[st.colour_mode],
                palette_scale=palette_scale(st.colour_mode, self._max_iter,
                                            st.colour_period, self._palette.shape[0]),
                dither_strength=self._dither_strength(),
                palette=self._palette,
            ))
            return epoch

        context = EpochContext(
            bounds=bounds, algorithm=st.algorithm, precision=choice.precision,
            max_iter=self._max_iter, smooth=st.smooth, julia_c=st.julia_c,
            fractional=st.limb_profile.value,
        )
        schedule = refinement_schedule(st.refinement_steps, st.final_block_size)
        epoch, reused = self.scheduler.on_navigation_change(
            self.width, self.height, st.tile_size, schedule, context, displacement)
        if reused:
            self.surface.shift(*displacement)
        else:
            self.surface.values[...] = np.nan
        return epoch

    def warm_up(self) -> float:
        """
        Compile the kernels the current settings need before the first epoch.
        Blocks; call it once at startup rather than from a UI callback.
        :return: seconds spent
        """
        st = self.settings
        started = time.perf_counter()
        requested = Precision.NATIVE if st.precision is Precision.AUTO else st.precision
        selection = self.backends.select(st, requested)
        try:
            selection.backend.compile(st)
        except FractileError as e:
            self.backends.disable_gpu(str(e))
            self.backends.cpu(st.worker_count).compile(st)
        elapsed = time.perf_counter() - started
        self._log(f"Kernels ready in {elapsed:.2f}s ({selection.label})", None)
        return elapsed

    def pump(self, timeout: float = 0.0) -> int:
        """
        Process every finished result, in receipt order.
        :return: number of results handled (stale ones included)
        """
        handled = 0
        for backend in self.backends.instances():
            for result in backend.poll(timeout if backend is self._backend else 0.0):
                handled += 1
                if isinstance(result, FrameResult):
                    self._on_frame_result(result)
                else:
                    self.scheduler.on_task_result(result)
        return handled

    def wait_idle(self, timeout: float = 30.0) -> bool:
        """Pump until the live epoch completes. Intended for headless use and tests."""
        deadline = time.perf_counter() + timeout
        while self.scheduler.rendering:
            remaining = deadline - time.perf_counter()
            if remaining <= 0:
                return False
            self.pump(timeout=min(0.05, remaining))
        return True

    def render_blocking(self, timeout: float = 60.0) -> np.ndarray:
        self.start()
        self.wait_idle(timeout)
        return self.frame()

    def shutdown(self) -> None:
        """Release backend resources."""
        self.backends.close()
        self._backend = None

    # ---------------------------------------------------------------------
    # Outputs
    # ---------------------------------------------------------------------

    def frame(self) -> np.ndarray:
        """The presented image: the surface with presentation filters applied."""
        st = self.settings
        return apply_filters(self.surface.rgb, st.filter_mode, st.gaussian_blur, st.hue_rotate)

    @property
    def status(self) -> RenderStatus:
        return RenderStatus(
            epoch=self.scheduler.epoch,
            rendering=self.scheduler.rendering,
            last_render_ms=self._last_render_ms,
            effective_max_iterations=self._max_iter,
            precision=self._precision_name,
            precision_limit_reached=self._precision_limit,
            backend_label=self._backend_label,
            pending_bands=self.scheduler.pending_bands,
        )

    # ---------------------------------------------------------------------
    # Result handling
    # ---------------------------------------------------------------------

    def _submit_band(self, task) -> None:
        self._backend.submit(task)

    def _dither_strength(self) -> float:
        st = self.settings
        return st.dither_strength if st.filter_mode is FilterMode.DITHER else 0.0

    def _colourise(self, values: np.ndarray, origin, cdf=None) -> np.ndarray:
        st = self.settings
        return colour_values(values, self._max_iter, self._palette, st.colour_mode,
                             st.colour_period, st.smooth, self._dither_strength(),
                             origin, cdf)

    def _on_band(self, result: TaskResult) -> None:
        t = result.task
        vals, rgb = self.surface.write_band(t.px, t.py, t.width, t.height, t.block,
                                            result.values, self._colourise)
        if self.on_tile:
            h, w = vals.shape
            self.on_tile(TileEvent(t.px, t.py, w, h, rgb, t.epoch, self.width, self.height))

    def _on_epoch_complete(self, epoch: int, duration: float) -> None:
        self._last_render_ms = duration * 1000.0
        if self.settings.colour_mode is ColourMode.DISTRIBUTION and self._backend_kind is BackendType.CPU:
            cdf = build_cdf(self.surface.values, self._max_iter)
            self.surface.recolour(lambda v, o: self._colourise(v, o, cdf))
        if self.on_frame:
            self.on_frame(FrameEvent(self.frame(), self.width, self.height, epoch))
        self._log(f"Render time: {duration:.3f}s ({self._backend_label})", None)

    def _on_frame_result(self, result: FrameResult) -> None:
        if result.epoch != self.scheduler.epoch:
            logger.debug("Dropping stale frame (epoch %d)", result.epoch)
            return
        if result.rgb is None:
            self.backends.disable_gpu(result.error or "frame failed")
            self._log(f"GPU frame failed, falling back to CPU: {result.error}", logging.WARNING)
            self.start()
            return
        self.surface.write_frame(result.rgb)
        self.scheduler.finish_epoch()

    def _log(self, message: str, level: Optional[int]) -> None:
        logger.log(level if level is not None else logging.INFO, message)
        if self.on_log:
            self.on_log(LogEvent(message, level))
