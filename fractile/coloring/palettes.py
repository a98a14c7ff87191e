import logging
from typing import Dict, Iterable, Optional, Sequence, Tuple

import numpy as np
from scipy.interpolate import PchipInterpolator

from fractile.fractals.base import PaletteStop

logger = logging.getLogger(__name__)

PALETTE_SIZE = 2048


def hex_to_rgb(value: str) -> Tuple[int, int, int]:
    """
    Parse '#rrggbb' (or 'rrggbb', or the short '#rgb' form) into an RGB tuple.
    """
    s = value.strip().lstrip("#")
    if len(s) == 3:
        s = "".join(ch * 2 for ch in s)
    if len(s) != 6:
        raise ValueError(f"Invalid hex colour: {value!r}")
    return int(s[0:2], 16), int(s[2:4], 16), int(s[4:6], 16)


def stops_from_hex(pairs: Iterable[Tuple[float, str]]) -> Tuple[PaletteStop, ...]:
    return tuple(PaletteStop(float(pos), hex_to_rgb(colour)) for pos, colour in pairs)


def _stops_from_channels(positions, reds, greens, blues) -> Tuple[PaletteStop, ...]:
    return tuple(PaletteStop(p, (r, g, b)) for p, r, g, b in zip(positions, reds, greens, blues))


# Define base palettes
PRESETS: Dict[str, Tuple[PaletteStop, ...]] = {
    "classic": _stops_from_channels(
        [0.0, 0.16, 0.42, 0.6425, 0.8575, 1.0],
        [0, 32, 237, 255, 0, 0],
        [7, 107, 255, 170, 2, 0],
        [100, 203, 255, 0, 0, 100]),

    "deep-ocean": stops_from_hex([
        (0.0, "#001219"), (0.2, "#005f73"), (0.45, "#0a9396"),
        (0.7, "#94d2bd"), (1.0, "#e9d8a6")]),

    "ember": stops_from_hex([
        (0.0, "#03071e"), (0.25, "#370617"), (0.5, "#9d0208"),
        (0.75, "#f48c06"), (1.0, "#ffba08")]),

    "aurora": stops_from_hex([
        (0.0, "#0b132b"), (0.3, "#1c2541"), (0.55, "#3a506b"),
        (0.75, "#5bc0be"), (1.0, "#c7f9cc")]),
}


def _clean_stops(stops: Sequence[PaletteStop]) -> Tuple[np.ndarray, np.ndarray]:
    ordered = sorted(stops, key=lambda s: s.position)
    positions = []
    colours = []
    for stop in ordered:
        pos = min(1.0, max(0.0, float(stop.position)))
        # PCHIP needs strictly increasing x; the later duplicate wins
        if positions and pos <= positions[-1]:
            positions.pop()
            colours.pop()
        positions.append(pos)
        colours.append(stop.rgb)
    if len(positions) < 2:
        raise ValueError("Palette must contain at least two stops at distinct positions.")
    return np.asarray(positions, dtype=np.float64), np.asarray(colours, dtype=np.float64)


def build_palette(stops: Sequence[PaletteStop],
                  size: int = PALETTE_SIZE,
                  smoothness: float = 0.0) -> np.ndarray:
    """
    Generate a palette lookup table from colour stops.

    Each channel is interpolated with a monotone piecewise cubic so the curve
    never overshoots between stops. Beyond the outermost stops the end colours
    are held. `smoothness` in [0, 1] blends every entry with the average of
    itself and its two neighbours.

    :return: (size, 3) float32 array of RGB values in [0, 255].
    """
    positions, colours = _clean_stops(stops)
    t = np.linspace(0.0, 1.0, size)
    clamped = np.clip(t, positions[0], positions[-1])
    curve = PchipInterpolator(positions, colours, axis=0, extrapolate=False)
    table = curve(clamped)
    table = np.clip(table, 0.0, 255.0)

    smoothness = min(1.0, max(0.0, float(smoothness)))
    if smoothness > 0.0:
        padded = np.concatenate([table[:1], table, table[-1:]], axis=0)
        blurred = (padded[:-2] + padded[1:-1] + padded[2:]) / 3.0
        table = table * (1.0 - smoothness) + blurred * smoothness

    return table.astype(np.float32)


def resolve_palette(name: str = "classic",
                    stops: Optional[Sequence[PaletteStop]] = None,
                    smoothness: float = 0.0,
                    size: int = PALETTE_SIZE) -> np.ndarray:
    """
    Build the table for explicit stops, or for a named preset.
    Unknown preset names fall back to the classic palette.
    """
    if stops is None:
        stops = PRESETS.get(name)
        if stops is None:
            logger.warning("Unknown palette %r, using 'classic'", name)
            stops = PRESETS["classic"]
    return build_palette(stops, size=size, smoothness=smoothness)


class PaletteCache:
    """Keeps the last generated table and rebuilds only when its inputs change."""

    def __init__(self):
        self._key = None
        self._table: Optional[np.ndarray] = None

    def get(self, name: str, stops: Optional[Sequence[PaletteStop]], smoothness: float) -> np.ndarray:
        key = (name, tuple(stops) if stops is not None else None, float(smoothness))
        if self._table is None or key != self._key:
            self._table = resolve_palette(name, stops, smoothness)
            self._key = key
            logger.debug("Palette regenerated (%s, smoothness=%.2f)", name, smoothness)
        return self._table
