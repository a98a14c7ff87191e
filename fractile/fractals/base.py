import logging
import math
from dataclasses import dataclass, replace
from typing import Optional, Tuple

from fractile.fractals.catalog import normalise_algorithm
from fractile.utils.enums import (
    Algorithm, BackendType, ColourMode, FilterMode, LimbProfile, Precision
)

logger = logging.getLogger(__name__)

MIN_TILE_SIZE = 32
MAX_BLOCK_SIZE = 256
FINAL_BLOCK_SIZES = (1, 2, 4)
DEFAULT_JULIA_C = (-0.8, 0.156)


def coerce_enum(enum_cls, value, default):
    """
    Accept an enum member, its value or its name (any case, dashes or
    underscores). Anything else falls back to `default`.
    """
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except (ValueError, TypeError):
        pass
    key = str(value).strip().upper().replace("-", "_")
    member = enum_cls.__members__.get(key)
    if member is None:
        logger.debug("Unknown %s %r, using %s", enum_cls.__name__, value, default.name)
        return default
    return member


@dataclass(frozen=True)
class ViewportBounds:
    """
    World-space mapping of the canvas for one epoch.
    Pixel (px, py) maps to (x0 + px * x_scale, y0 + py * y_scale).
    x0_lo and y0_lo carry the rounding error of x0 and y0.
    """
    x0: float
    y0: float
    x_scale: float
    y_scale: float
    width: int
    height: int
    x0_lo: float = 0.0
    y0_lo: float = 0.0

    def seed(self, px: float, py: float) -> Tuple[float, float]:
        return (self.x0 + (px * self.x_scale + self.x0_lo),
                self.y0 + (py * self.y_scale + self.y0_lo))

    @property
    def x1(self) -> float:
        return self.x0 + self.width * self.x_scale

    @property
    def y1(self) -> float:
        return self.y0 + self.height * self.y_scale


@dataclass(frozen=True)
class PaletteStop:
    position: float
    rgb: Tuple[int, int, int]


@dataclass(frozen=True)
class RenderSettings:
    """
    Everything the user can tune about a render.
    Any change to these values regenerates the whole canvas.
    """
    algorithm: Algorithm = Algorithm.MANDELBROT
    julia_c: Tuple[float, float] = DEFAULT_JULIA_C

    tile_size: int = 256
    max_iterations: int = 256
    auto_max_iterations: bool = False
    auto_iterations_scale: float = 128.0
    smooth: bool = True
    refinement_steps: int = 5
    final_block_size: int = 1

    colour_mode: ColourMode = ColourMode.NORMALIZE
    colour_period: float = 256.0
    filter_mode: FilterMode = FilterMode.NONE
    gaussian_blur: float = 0.6
    dither_strength: float = 0.35
    palette_smoothness: float = 0.0
    hue_rotate: float = 0.0
    palette: str = "classic"
    palette_stops: Optional[Tuple[PaletteStop, ...]] = None

    worker_count: Optional[int] = None
    backend: BackendType = BackendType.CPU
    precision: Precision = Precision.AUTO
    limb_profile: LimbProfile = LimbProfile.BALANCED

    def sanitized(self) -> "RenderSettings":
        """
        Return a copy with every numeric field clamped into its valid range
        and every enum field converted to its member.
        """
        final = self.final_block_size if self.final_block_size in FINAL_BLOCK_SIZES else 1
        workers = self.worker_count
        if workers is not None:
            workers = max(1, min(64, int(workers)))
        return replace(
            self,
            algorithm=normalise_algorithm(self.algorithm),
            colour_mode=coerce_enum(ColourMode, self.colour_mode, ColourMode.NORMALIZE),
            filter_mode=coerce_enum(FilterMode, self.filter_mode, FilterMode.NONE),
            backend=coerce_enum(BackendType, self.backend, BackendType.CPU),
            precision=coerce_enum(Precision, self.precision, Precision.AUTO),
            limb_profile=coerce_enum(LimbProfile, self.limb_profile, LimbProfile.BALANCED),
            tile_size=max(MIN_TILE_SIZE, int(self.tile_size)),
            max_iterations=max(1, int(self.max_iterations)),
            auto_iterations_scale=max(0.0, float(self.auto_iterations_scale)),
            refinement_steps=max(2, min(9, int(self.refinement_steps))),
            final_block_size=final,
            colour_period=max(1.0, float(self.colour_period)),
            gaussian_blur=max(0.0, min(10.0, float(self.gaussian_blur))),
            dither_strength=max(0.0, min(1.0, float(self.dither_strength))),
            palette_smoothness=max(0.0, min(1.0, float(self.palette_smoothness))),
            hue_rotate=float(self.hue_rotate) % 360.0,
            worker_count=workers,
        )

    def effective_max_iterations(self, zoom: float) -> int:
        if not self.auto_max_iterations:
            return self.max_iterations
        boost = self.auto_iterations_scale * math.log2(max(1.0, zoom))
        return int(round(max(self.max_iterations, self.max_iterations + boost)))
