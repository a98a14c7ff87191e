"""
Iteration value -> RGB mapping.

Values are escape counts (possibly fractional). Anything at or above the
iteration budget, and any unknown (NaN) sample, is interior and painted black.
"""
from typing import Optional

import numpy as np

from fractile.coloring.base import ColoringStrategy
from fractile.coloring.distribution import equalize
from fractile.utils.enums import ColourMode

# Scale used by the fixed mode, independent of the iteration budget.
FIXED_SCALE = 2048.0


def dither_noise(xs: np.ndarray, ys: np.ndarray) -> np.ndarray:
    """Per-pixel hash in [0, 1): fract(sin(12.9898 x + 78.233 y) * 43758.5453)."""
    v = np.sin(xs * 12.9898 + ys * 78.233) * 43758.5453
    return v - np.floor(v)


def palette_scale(mode: ColourMode, max_iter: float, period: float, size: int) -> float:
    if mode is ColourMode.CYCLE:
        return (size - 1) / max(1.0, float(period))
    if mode is ColourMode.FIXED:
        return (size - 1) / FIXED_SCALE
    return (size - 1) / max(1.0, float(max_iter))


def lookup(scaled: np.ndarray, palette: np.ndarray, wrap: bool, smooth: bool) -> np.ndarray:
    """
    Read colours for fractional palette indices.
    With `smooth` the two neighbouring entries are blended by the fractional part.
    """
    size = palette.shape[0]
    base = np.floor(scaled)
    if wrap:
        idx = np.mod(base, size).astype(np.int64)
        nxt = (idx + 1) % size
        t = scaled - base
    else:
        idx = np.clip(base, 0, size - 1).astype(np.int64)
        if smooth:
            idx = np.minimum(idx, size - 2)
        nxt = np.minimum(idx + 1, size - 1)
        t = np.clip(scaled - idx, 0.0, 1.0)
    if not smooth:
        return palette[idx]
    t = t[..., None]
    return palette[idx] * (1.0 - t) + palette[nxt] * t


class PaletteMapper(ColoringStrategy):
    """
    Colours normalize, cycle and fixed modes. Distribution mode feeds
    pre-equalized indices through `apply_scaled`.
    """

    def __init__(self, mode: ColourMode = ColourMode.NORMALIZE, period: float = 256.0,
                 smooth: bool = True, dither_strength: float = 0.0):
        self.mode = mode
        self.period = float(period)
        self.smooth = bool(smooth)
        self.dither_strength = float(dither_strength)

    def apply(self, values: np.ndarray, max_iter: float, palette: np.ndarray,
              origin: tuple = (0, 0)) -> np.ndarray:
        size = palette.shape[0]
        wrap = self.mode is ColourMode.CYCLE
        with np.errstate(invalid="ignore"):
            interior = ~(values < max_iter)
        safe = np.where(interior, 0.0, values)
        scaled = safe * palette_scale(self.mode, max_iter, self.period, size)
        if wrap:
            scaled = np.mod(scaled, size)
        else:
            scaled = np.clip(scaled, 0.0, size - 1)
        return self.apply_scaled(scaled, interior, palette, origin)

    def apply_scaled(self, scaled: np.ndarray, interior: np.ndarray, palette: np.ndarray,
                     origin: tuple = (0, 0)) -> np.ndarray:
        """
        Colour already-scaled palette indices.
        `origin` is the canvas position of element [0, 0], used for the dither hash.
        """
        size = palette.shape[0]
        wrap = self.mode is ColourMode.CYCLE
        if self.dither_strength > 0.0 and scaled.ndim == 2:
            h, w = scaled.shape
            ys, xs = np.mgrid[origin[1]:origin[1] + h, origin[0]:origin[0] + w]
            scaled = scaled + (dither_noise(xs.astype(np.float64), ys.astype(np.float64)) - 0.5) * self.dither_strength
            scaled = np.clip(scaled, 0.0, size - 1)
        rgb = lookup(scaled, palette, wrap and self.dither_strength == 0.0, self.smooth)
        rgb = np.clip(np.rint(rgb), 0, 255).astype(np.uint8)
        rgb[interior] = 0
        return rgb


def colour_values(values: np.ndarray, max_iter: float, palette: np.ndarray,
                  mode: ColourMode = ColourMode.NORMALIZE, period: float = 256.0,
                  smooth: bool = True, dither_strength: float = 0.0,
                  origin: tuple = (0, 0), cdf: Optional[np.ndarray] = None) -> np.ndarray:
    """
    One-call colouring of a 2-D value block.
    In distribution mode a `cdf` from `distribution.build_cdf` is required;
    without one the block is previewed with normalize.
    """
    if mode is ColourMode.DISTRIBUTION:
        mapper = PaletteMapper(ColourMode.NORMALIZE, period, smooth, dither_strength)
        if cdf is None:
            return mapper.apply(values, max_iter, palette, origin)
        scaled, interior = equalize(values, max_iter, cdf, palette.shape[0])
        return mapper.apply_scaled(scaled, interior, palette, origin)
    mapper = PaletteMapper(mode, period, smooth, dither_strength)
    return mapper.apply(values, max_iter, palette, origin)
