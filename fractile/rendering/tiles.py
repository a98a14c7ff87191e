"""
Tile geometry: grid layout, pan clipping and exposed-strip tiling.
"""
from dataclasses import dataclass
from typing import Iterator, List, Tuple

Rect = Tuple[int, int, int, int]  # x, y, w, h


@dataclass
class Tile:
    """
    Rectangular canvas region refined through the schedule independently.
    stage == len(schedule) means done.
    """
    id: int
    x: int
    y: int
    width: int
    height: int
    stage: int = 0
    in_flight: bool = False

    @property
    def rect(self) -> Rect:
        return self.x, self.y, self.width, self.height

    def is_done(self, schedule_len: int) -> bool:
        return self.stage >= schedule_len


def grid_rects(x: int, y: int, width: int, height: int, tile_size: int) -> Iterator[Rect]:
    """Split a region into tile_size squares (edge tiles are clipped)."""
    for ty in range(y, y + height, tile_size):
        th = min(tile_size, y + height - ty)
        for tx in range(x, x + width, tile_size):
            tw = min(tile_size, x + width - tx)
            yield tx, ty, tw, th


def band_rects(tile_rect: Rect, block: int) -> List[Rect]:
    """Row bands of height `block` covering a tile; the last one is clipped."""
    x, y, w, h = tile_rect
    return [(x, by, w, min(block, y + h - by)) for by in range(y, y + h, block)]


def clip_rect(rect: Rect, width: int, height: int) -> Rect:
    x, y, w, h = rect
    x0 = max(0, x)
    y0 = max(0, y)
    x1 = min(width, x + w)
    y1 = min(height, y + h)
    return x0, y0, max(0, x1 - x0), max(0, y1 - y0)


def exposed_strips(width: int, height: int, dx: int, dy: int) -> List[Rect]:
    """
    Regions uncovered after the content moved by (dx, dy).

    The vertical strip spans the full height; the horizontal strip skips the
    columns the vertical strip already covers, so the two never overlap.
    """
    strips: List[Rect] = []
    col_x, col_w = 0, 0
    if dx > 0:
        col_x, col_w = 0, min(dx, width)
    elif dx < 0:
        col_w = min(-dx, width)
        col_x = width - col_w
    if col_w > 0:
        strips.append((col_x, 0, col_w, height))

    row_h = min(abs(dy), height)
    if row_h > 0:
        row_y = 0 if dy > 0 else height - row_h
        rest_x = col_w if dx > 0 else 0
        rest_w = width - col_w
        if rest_w > 0:
            strips.append((rest_x, row_y, rest_w, row_h))
    return strips
