import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from fractile.fractals.base import MIN_TILE_SIZE, ViewportBounds
from fractile.rendering.events import ComputeTask, TaskResult
from fractile.rendering.tiles import Tile, band_rects, clip_rect, exposed_strips, grid_rects
from fractile.utils.enums import Algorithm, Precision

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EpochContext:
    """Everything a ComputeTask needs besides its band; frozen per epoch."""
    bounds: ViewportBounds
    algorithm: Algorithm
    precision: Precision
    max_iter: int
    smooth: bool
    julia_c: Tuple[float, float]
    fractional: int


class TileScheduler:
    """
    Owns the tile map and the per-(tile, stage) pending band counts.

    Each tile walks Idle(k) -> InFlight(k) -> Idle(k + 1) ... -> Done. A tile
    re-dispatches as soon as its own stage finishes, so stages pipeline across
    tiles. Every task carries the epoch it was issued in; results from any
    other epoch are ignored, which is the only form of cancellation.

    All methods must be called from a single controller thread.
    """

    def __init__(self,
                 submit: Callable[[ComputeTask], None],
                 on_band: Optional[Callable[[TaskResult], None]] = None,
                 on_epoch_complete: Optional[Callable[[int, float], None]] = None):
        self._submit = submit
        self.on_band = on_band
        self.on_epoch_complete = on_epoch_complete

        self.epoch = 0
        self.tiles: Dict[int, Tile] = {}
        self.pending: Dict[Tuple[int, int], int] = {}
        self.schedule: Tuple[int, ...] = (1,)
        self.context: Optional[EpochContext] = None
        self.width = 0
        self.height = 0
        self.tile_size = 256
        self.rendering = False
        self.last_duration: Optional[float] = None

        self._next_tile_id = 0
        self._started = 0.0

    # ---- Epoch lifecycle ----

    def claim_epoch(self) -> int:
        """Start a new epoch with an empty tile map (used by full-frame passes)."""
        self.epoch += 1
        self.tiles.clear()
        self.pending.clear()
        self.rendering = True
        self._started = time.perf_counter()
        return self.epoch

    def regenerate(self, width: int, height: int, tile_size: int,
                   schedule: Tuple[int, ...], context: EpochContext) -> int:
        """Discard the tile map, regrid the whole canvas and dispatch every tile."""
        self.width = max(0, int(width))
        self.height = max(0, int(height))
        self.tile_size = max(MIN_TILE_SIZE, int(tile_size))
        self.schedule = tuple(schedule)
        self.context = context
        epoch = self.claim_epoch()

        for rect in grid_rects(0, 0, self.width, self.height, self.tile_size):
            self._add_tile(rect)
        logger.debug("Epoch %d: %d tiles, schedule %s", epoch, len(self.tiles), self.schedule)
        self._dispatch_all()
        return epoch

    def pan(self, dx: int, dy: int, context: EpochContext) -> bool:
        """
        Reuse the tile map after the content moved by (dx, dy) pixels.

        Existing tiles shift and are clipped to the canvas, the exposed strips
        get new tiles, and everything restarts at stage 0 under a new epoch.
        Returns False when the displacement is too large to reuse anything;
        the caller then regenerates.
        """
        dx, dy = int(round(dx)), int(round(dy))
        if abs(dx) >= self.width or abs(dy) >= self.height:
            return False

        old = list(self.tiles.values())
        self.context = context
        epoch = self.claim_epoch()

        for tile in old:
            rect = clip_rect((tile.x + dx, tile.y + dy, tile.width, tile.height),
                             self.width, self.height)
            if rect[2] > 0 and rect[3] > 0:
                self._add_tile(rect)
        for strip in exposed_strips(self.width, self.height, dx, dy):
            sx, sy, sw, sh = strip
            for rect in grid_rects(sx, sy, sw, sh, self.tile_size):
                self._add_tile(rect)

        logger.debug("Epoch %d: pan (%d, %d) -> %d tiles", epoch, dx, dy, len(self.tiles))
        self._dispatch_all()
        return True

    def on_navigation_change(self, width: int, height: int, tile_size: int,
                             schedule: Tuple[int, ...], context: EpochContext,
                             displacement: Optional[Tuple[int, int]] = None) -> Tuple[int, bool]:
        """
        Entry point for any change of view. A displacement means a pan, which
        reuses tiles when the geometry allows it; everything else regenerates.
        :return: (new epoch, whether existing tiles were reused)
        """
        reusable = (
            displacement is not None
            and self.tiles
            and width == self.width and height == self.height
            and max(MIN_TILE_SIZE, int(tile_size)) == self.tile_size
            and tuple(schedule) == self.schedule
        )
        if reusable and self.pan(displacement[0], displacement[1], context):
            return self.epoch, True
        return self.regenerate(width, height, tile_size, schedule, context), False

    # ---- Results ----

    def on_task_result(self, result: TaskResult) -> bool:
        """
        Apply one band result. Returns False when it belonged to a stale epoch
        or to a band the scheduler no longer expects.
        """
        task = result.task
        if task.epoch != self.epoch:
            logger.debug("Dropping stale result (epoch %d, live %d)", task.epoch, self.epoch)
            return False
        key = (task.tile_id, task.stage)
        remaining = self.pending.get(key)
        if remaining is None:
            return False

        if result.ok:
            if self.on_band is not None:
                self.on_band(result)
        else:
            logger.warning("Band failed for tile %d stage %d: %s", task.tile_id, task.stage, result.error)

        remaining -= 1
        if remaining > 0:
            self.pending[key] = remaining
            return True

        del self.pending[key]
        tile = self.tiles.get(task.tile_id)
        if tile is not None:
            tile.stage += 1
            tile.in_flight = False
            self._dispatch(tile)
        self._check_complete()
        return True

    # ---- Status ----

    @property
    def pending_bands(self) -> int:
        return sum(self.pending.values())

    def is_complete(self) -> bool:
        n = len(self.schedule)
        return not self.pending and all(t.is_done(n) for t in self.tiles.values())

    def tile_rects(self) -> List[Tuple[int, int, int, int]]:
        return [t.rect for t in self.tiles.values()]

    # ---- Internals ----

    def _add_tile(self, rect) -> Tile:
        x, y, w, h = rect
        tile = Tile(self._next_tile_id, x, y, w, h)
        self._next_tile_id += 1
        self.tiles[tile.id] = tile
        return tile

    def _dispatch_all(self) -> None:
        for tile in list(self.tiles.values()):
            self._dispatch(tile)
        self._check_complete()

    def _dispatch(self, tile: Tile) -> None:
        if tile.in_flight or tile.is_done(len(self.schedule)):
            return
        ctx = self.context
        block = self.schedule[tile.stage]
        bands = band_rects(tile.rect, block)
        tile.in_flight = True
        self.pending[(tile.id, tile.stage)] = len(bands)
        epoch = self.epoch
        for bx, by, bw, bh in bands:
            task = ComputeTask(
                epoch=epoch, tile_id=tile.id, stage=tile.stage,
                px=bx, py=by, width=bw, height=bh, block=block,
                bounds=ctx.bounds, algorithm=ctx.algorithm, precision=ctx.precision,
                max_iter=ctx.max_iter, smooth=ctx.smooth, julia_c=ctx.julia_c,
                fractional=ctx.fractional,
            )
            self._submit(task)

    def _check_complete(self) -> None:
        if self.rendering and self.is_complete():
            self.finish_epoch()

    def finish_epoch(self) -> None:
        """Mark the live epoch done; full-frame passes call this directly."""
        if not self.rendering:
            return
        self.rendering = False
        self.last_duration = time.perf_counter() - self._started
        logger.debug("Epoch %d complete in %.3fs", self.epoch, self.last_duration)
        if self.on_epoch_complete is not None:
            self.on_epoch_complete(self.epoch, self.last_duration)
