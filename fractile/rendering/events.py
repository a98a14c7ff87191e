from dataclasses import dataclass
import numpy as np
from typing import Optional, Tuple

from fractile.fractals.base import ViewportBounds
from fractile.utils.enums import Algorithm, Precision


@dataclass(frozen=True)
class ComputeTask:
    """One band of one tile at one refinement stage, tagged with its epoch."""
    epoch: int
    tile_id: int
    stage: int
    px: int
    py: int
    width: int
    height: int
    block: int
    bounds: ViewportBounds
    algorithm: Algorithm
    precision: Precision
    max_iter: int
    smooth: bool
    julia_c: Tuple[float, float]
    fractional: int


@dataclass(frozen=True)
class TaskResult:
    task: ComputeTask
    values: Optional[np.ndarray]    # flat, row-major over the band's block grid
    error: Optional[str] = None

    @property
    def epoch(self) -> int:
        return self.task.epoch

    @property
    def ok(self) -> bool:
        return self.error is None and self.values is not None


@dataclass(frozen=True)
class FrameTask:
    """A full-frame GPU pass; the program colours pixels itself."""
    epoch: int
    bounds: ViewportBounds
    algorithm: Algorithm
    precision: Precision
    max_iter: int
    smooth: bool
    julia_c: Tuple[float, float]
    fractional: int
    colour_mode: int
    palette_scale: float
    dither_strength: float
    palette: np.ndarray


@dataclass(frozen=True)
class FrameResult:
    task: FrameTask
    rgb: Optional[np.ndarray]
    error: Optional[str] = None

    @property
    def epoch(self) -> int:
        return self.task.epoch


@dataclass(frozen=True)
class FrameEvent:
    data: np.ndarray
    width: int
    height: int
    seq: int        # render epoch


@dataclass(frozen=True)
class TileEvent:
    x: int
    y: int
    w: int
    h: int
    data: np.ndarray
    seq: int            # render epoch
    frame_w: int
    frame_h: int


@dataclass(frozen=True)
class LogEvent:
    message: str
    level: Optional[int]
