"""
Navigation state: the view centre and zoom, and everything derived from it.
"""
import logging
import math
import re
from dataclasses import dataclass
from typing import Optional, Tuple

from fractile.fractals.base import ViewportBounds
from fractile.fractals.catalog import default_view
from fractile.precision.double_double import two_sum
from fractile.utils.enums import Algorithm

logger = logging.getLogger(__name__)

_NUMBER = r"[-+]?\d+(?:\.\d*)?(?:[eE][-+]?\d+)?"
_LOCATION = re.compile(
    rf"@\s*(?P<x>{_NUMBER})\s*,\s*(?P<y>{_NUMBER})(?:\s*[xX]\s*(?P<zoom>{_NUMBER}))?\s*$"
)

ZOOM_FACTOR = 2.0


@dataclass(frozen=True)
class Navigation:
    x: float
    y: float
    zoom: float

    @classmethod
    def default(cls, algorithm: Algorithm = Algorithm.MANDELBROT) -> "Navigation":
        return cls(*default_view(algorithm))


def viewport_bounds(nav: Navigation, width: int, height: int) -> ViewportBounds:
    """
    Map the navigation onto a canvas of `width` x `height` pixels.
    The vertical half-extent is 1 / zoom; the horizontal one follows the aspect ratio.
    The origin is kept as a (hi, lo) pair so extended-precision kernels see the
    exact sum of centre and offset.
    """
    width = max(1, int(width))
    height = max(1, int(height))
    ratio = width / height
    x0, x0_lo = two_sum(nav.x, -ratio / nav.zoom)
    y0, y0_lo = two_sum(nav.y, -1.0 / nav.zoom)
    y_scale = 2.0 / (nav.zoom * height)
    x_scale = 2.0 * ratio / (nav.zoom * width)
    return ViewportBounds(x0, y0, x_scale, y_scale, width, height, x0_lo, y0_lo)


def parse_location(text: Optional[str], algorithm: Algorithm = Algorithm.MANDELBROT) -> Navigation:
    """
    Parse '@<x>,<y>x<zoom>'. The zoom part is optional and defaults to the
    algorithm's default zoom. Anything malformed yields the default view.
    """
    fallback = Navigation.default(algorithm)
    if not text:
        return fallback
    m = _LOCATION.search(text.strip())
    if m is None:
        logger.debug("Malformed location %r, using default view", text)
        return fallback
    x = float(m.group("x"))
    y = float(m.group("y"))
    zoom = float(m.group("zoom")) if m.group("zoom") else fallback.zoom
    if not (math.isfinite(x) and math.isfinite(y) and math.isfinite(zoom)) or zoom <= 0.0:
        logger.debug("Out of range location %r, using default view", text)
        return fallback
    return Navigation(x, y, zoom)


def format_location(nav: Navigation) -> str:
    # repr() is the shortest string that round-trips a float exactly
    return f"@{nav.x!r},{nav.y!r}x{nav.zoom!r}"


def pan(nav: Navigation, bounds: ViewportBounds, dx: float, dy: float) -> Navigation:
    """Content follows the pointer: dragging right moves the centre left."""
    return Navigation(nav.x - dx * bounds.x_scale, nav.y - dy * bounds.y_scale, nav.zoom)


def zoom_at(nav: Navigation, bounds: ViewportBounds, px: float, py: float,
            zoom_in: bool = True) -> Navigation:
    """
    Centre on the pixel and double the zoom. Zooming out halves it, but never
    below 1.
    """
    cx, cy = bounds.seed(px, py)
    if zoom_in:
        zoom = nav.zoom * ZOOM_FACTOR
    elif nav.zoom > 1.0:
        zoom = max(1.0, nav.zoom / ZOOM_FACTOR)
    else:
        zoom = nav.zoom
    return Navigation(cx, cy, zoom)


def select_rect(nav: Navigation, bounds: ViewportBounds,
                rect: Tuple[float, float, float, float]) -> Navigation:
    """
    Fit the pixel rectangle (x, y, w, h) to the canvas. Degenerate
    rectangles behave like a click zoom at their corner.
    """
    x, y, w, h = rect
    if w < 0:
        x, w = x + w, -w
    if h < 0:
        y, h = y + h, -h
    if w < 1.0 or h < 1.0:
        return zoom_at(nav, bounds, x, y, True)
    cx, cy = bounds.seed(x + w / 2.0, y + h / 2.0)
    factor = min(bounds.width / w, bounds.height / h)
    return Navigation(cx, cy, nav.zoom * factor)
