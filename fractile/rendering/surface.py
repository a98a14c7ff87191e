import numpy as np
from typing import Callable, Tuple


def shift_array(src: np.ndarray, dx: int, dy: int, fill) -> np.ndarray:
    """Move the contents of a (H, W, ...) array by (dx, dy), filling exposed cells."""
    h, w = src.shape[:2]
    out = np.empty_like(src)
    out[...] = fill
    if abs(dx) >= w or abs(dy) >= h:
        return out
    dst_y = slice(max(0, dy), h + min(0, dy))
    dst_x = slice(max(0, dx), w + min(0, dx))
    src_y = slice(max(0, -dy), h - max(0, dy))
    src_x = slice(max(0, -dx), w - max(0, dx))
    out[dst_y, dst_x] = src[src_y, src_x]
    return out


def expand_blocks(values: np.ndarray, width: int, height: int, block: int) -> np.ndarray:
    """
    Turn a band's flat block-grid samples into a (height, width) pixel array;
    each sample fills its block, clipped at the band's right and bottom edges.
    """
    rows = -(-height // block)
    cols = -(-width // block)
    grid = values.reshape(rows, cols)
    if block == 1:
        return grid
    full = np.repeat(np.repeat(grid, block, axis=0), block, axis=1)
    return full[:height, :width]


class PixelSurface:
    """
    The rendered canvas: an RGB image plus the raw iteration value behind
    every pixel (NaN where nothing has been computed yet).
    """

    def __init__(self, width: int, height: int):
        self.width = 0
        self.height = 0
        self.rgb = np.zeros((0, 0, 3), dtype=np.uint8)
        self.values = np.zeros((0, 0), dtype=np.float32)
        self.resize(width, height)

    def resize(self, width: int, height: int) -> None:
        self.width = max(0, int(width))
        self.height = max(0, int(height))
        self.rgb = np.zeros((self.height, self.width, 3), dtype=np.uint8)
        self.values = np.full((self.height, self.width), np.nan, dtype=np.float32)

    def shift(self, dx: int, dy: int) -> None:
        """Move already-rendered content; the exposed area turns black/unknown."""
        self.rgb = shift_array(self.rgb, dx, dy, 0)
        self.values = shift_array(self.values, dx, dy, np.nan)

    def write_band(self, px: int, py: int, width: int, height: int, block: int,
                   samples: np.ndarray,
                   colourise: Callable[[np.ndarray, Tuple[int, int]], np.ndarray]
                   ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Store a band's samples and their colours.
        :return: (values, rgb) of the written region.
        """
        w = max(0, min(width, self.width - px))
        h = max(0, min(height, self.height - py))
        vals = expand_blocks(samples, width, height, block)[:h, :w].astype(np.float32)
        rgb = colourise(vals, (px, py))
        self.values[py:py + h, px:px + w] = vals
        self.rgb[py:py + h, px:px + w] = rgb
        return vals, rgb

    def write_frame(self, rgb: np.ndarray) -> None:
        """Replace the colours with a full GPU frame; raw values are unknown."""
        self.rgb = np.ascontiguousarray(rgb, dtype=np.uint8)
        self.values[...] = np.nan

    def recolour(self, colourise: Callable[[np.ndarray, Tuple[int, int]], np.ndarray]) -> None:
        if self.width and self.height:
            self.rgb = colourise(self.values, (0, 0))
