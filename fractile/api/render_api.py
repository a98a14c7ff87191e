from dataclasses import replace
from typing import Optional, Sequence, Tuple

import numpy as np

from fractile.coloring.palettes import stops_from_hex
from fractile.fractals.catalog import normalise_algorithm
from fractile.rendering.service import RenderService, RenderStatus
from fractile.utils.enums import (
    BackendType, ColourMode, FilterMode, InteractionMode, LimbProfile, Precision
)


class RenderConfigBuilder:
    """
    Builder for configuring render settings. Nothing changes until `apply()`,
    which regenerates once for the whole batch.
    """
    def __init__(self, service: RenderService):
        self.service = service
        self._changes = {}
        self._size: Optional[Tuple[int, int]] = None

    def resolution(self, preset: str) -> 'RenderConfigBuilder':
        self._size = self._compute_size(preset)
        return self

    def algorithm(self, name) -> 'RenderConfigBuilder':
        self._changes["algorithm"] = normalise_algorithm(name)
        return self

    def julia_constant(self, re: float, im: float) -> 'RenderConfigBuilder':
        self._changes["julia_c"] = (float(re), float(im))
        return self

    def max_iter(self, value: int, auto: Optional[bool] = None,
                 auto_scale: Optional[float] = None) -> 'RenderConfigBuilder':
        self._changes["max_iterations"] = value
        if auto is not None:
            self._changes["auto_max_iterations"] = bool(auto)
        if auto_scale is not None:
            self._changes["auto_iterations_scale"] = auto_scale
        return self

    def tiles(self, size: int) -> 'RenderConfigBuilder':
        self._changes["tile_size"] = size
        return self

    def refinement(self, steps: int, final_block_size: int = 1) -> 'RenderConfigBuilder':
        self._changes["refinement_steps"] = steps
        self._changes["final_block_size"] = final_block_size
        return self

    def smooth(self, enabled: bool = True) -> 'RenderConfigBuilder':
        self._changes["smooth"] = bool(enabled)
        return self

    def colour(self, mode: ColourMode, period: Optional[float] = None) -> 'RenderConfigBuilder':
        self._changes["colour_mode"] = mode
        if period is not None:
            self._changes["colour_period"] = period
        return self

    def palette(self, name: str = "classic",
                stops: Optional[Sequence[Tuple[float, str]]] = None,
                smoothness: Optional[float] = None) -> 'RenderConfigBuilder':
        self._changes["palette"] = name
        self._changes["palette_stops"] = stops_from_hex(stops) if stops else None
        if smoothness is not None:
            self._changes["palette_smoothness"] = smoothness
        return self

    def filter(self, mode: FilterMode, blur: Optional[float] = None,
               dither: Optional[float] = None, hue: Optional[float] = None) -> 'RenderConfigBuilder':
        self._changes["filter_mode"] = mode
        if blur is not None:
            self._changes["gaussian_blur"] = blur
        if dither is not None:
            self._changes["dither_strength"] = dither
        if hue is not None:
            self._changes["hue_rotate"] = hue
        return self

    def backend(self, backend: BackendType, workers: Optional[int] = None) -> 'RenderConfigBuilder':
        self._changes["backend"] = backend
        if workers is not None:
            self._changes["worker_count"] = workers
        return self

    def precision(self, precision: Precision,
                  limb_profile: Optional[LimbProfile] = None) -> 'RenderConfigBuilder':
        self._changes["precision"] = precision
        if limb_profile is not None:
            self._changes["limb_profile"] = limb_profile
        return self

    def apply(self) -> None:
        if self._size:
            # resizing alone would regenerate; fold it into the settings update
            self.service.surface.resize(*self._size)
        self.service.update_settings(replace(self.service.settings, **self._changes))

    @staticmethod
    def _compute_size(preset: str) -> tuple[int, int]:
        mapping = {
            "2160p": 3840,
            "1440p": 2560,
            "1080p": 1920,
            "720p": 1280,
            "480p": 854,
            "360p": 640,
        }
        h = int(preset.replace("p", ""))
        w = mapping.get(preset, 1920)
        return w, h


class RenderAPI:
    """
    Facade for controlling rendering operations and managing callbacks.
    """
    def __init__(self, service: RenderService):
        self.service: RenderService = service

    # ---------- Callbacks --------------------------------
    def on_frame(self, cb): self.service.on_frame = cb
    def on_tile(self, cb): self.service.on_tile = cb
    def on_log(self, cb): self.service.on_log = cb

    # ----------- Facade methods --------------------------
    def set_location(self, location: str) -> None:
        """
        Jumps to a location string of the form '@<x>,<y>x<zoom>'.

        Args:
            location (str): The location; malformed strings reset to the default view.
        """
        self.service.set_location(location)

    def location(self) -> str:
        return self.service.location

    def set_image_size(self, rw: int, rh: int) -> None:
        """
        Sets the canvas size and regenerates.

        Args:
            rw (int): The width of the canvas.
            rh (int): The height of the canvas.
        """
        self.service.set_size(rw, rh)

    def set_interaction_mode(self, mode: InteractionMode) -> None:
        self.service.set_interaction_mode(mode)

    def pan(self, dx: float, dy: float) -> None:
        self.service.pan(dx, dy)

    def zoom_at(self, px: float, py: float, zoom_in: bool = True) -> None:
        self.service.zoom_at(px, py, zoom_in)

    def select(self, rect: Tuple[float, float, float, float]) -> None:
        self.service.select(rect)

    def drag_finished(self, start: Tuple[float, float], end: Tuple[float, float]) -> None:
        """Completes a drag as a pan or a rectangle select, per the interaction mode."""
        self.service.drag_finished(start, end)

    def reset(self) -> None:
        self.service.reset()

    def configure(self) -> RenderConfigBuilder:
        """
        Configures the renderer with a fluent builder pattern.

        Returns:
            RenderConfigBuilder: A builder object for configuring renderer settings.
        """
        return RenderConfigBuilder(self.service)

    def start_async_render(self) -> int:
        """
        Starts a new render epoch. Progress arrives through `pump()`.
        """
        return self.service.start()

    def warm_up(self) -> float:
        """
        Compiles kernels for the current settings. Blocks.
        """
        return self.service.warm_up()

    def pump(self, timeout: float = 0.0) -> int:
        return self.service.pump(timeout)

    def frame(self) -> np.ndarray:
        return self.service.frame()

    def status(self) -> RenderStatus:
        return self.service.status

    def shutdown(self) -> None:
        self.service.shutdown()
