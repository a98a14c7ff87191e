import re
from typing import Dict, Tuple

from fractile.utils.enums import Algorithm

# centre x, centre y, zoom
DEFAULT_VIEWS: Dict[Algorithm, Tuple[float, float, float]] = {
    Algorithm.MANDELBROT: (-0.5, 0.0, 1.0),
    Algorithm.JULIA: (0.0, 0.0, 1.4),
    Algorithm.BURNING_SHIP: (-1.75, -0.03, 1.2),
    Algorithm.TRICORN: (-0.2, 0.0, 1.2),
    Algorithm.MULTIBROT_3: (-0.2, 0.0, 1.0),
}

_ALIASES: Dict[str, Algorithm] = {
    "mandelbrot": Algorithm.MANDELBROT,
    "julia": Algorithm.JULIA,
    "burning-ship": Algorithm.BURNING_SHIP,
    "burningship": Algorithm.BURNING_SHIP,
    "tricorn": Algorithm.TRICORN,
    "mandelbar": Algorithm.TRICORN,
    "multibrot-3": Algorithm.MULTIBROT_3,
    "multibrot3": Algorithm.MULTIBROT_3,
    "multibrot": Algorithm.MULTIBROT_3,
}

_SEPARATORS = re.compile(r"[_\s]+")


def normalise_algorithm(name) -> Algorithm:
    """
    Map a user supplied algorithm name onto the canonical enum.
    Unknown names fall back to the Mandelbrot set.
    """
    if isinstance(name, Algorithm):
        return name
    if not name:
        return Algorithm.MANDELBROT
    key = _SEPARATORS.sub("-", str(name).strip().lower())
    return _ALIASES.get(key, Algorithm.MANDELBROT)


def default_view(algorithm: Algorithm) -> Tuple[float, float, float]:
    return DEFAULT_VIEWS[algorithm]
