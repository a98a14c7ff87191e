from enum import Enum, auto


class Algorithm(Enum):
    MANDELBROT = "mandelbrot"
    JULIA = "julia"
    BURNING_SHIP = "burning-ship"
    TRICORN = "tricorn"
    MULTIBROT_3 = "multibrot-3"


class Precision(Enum):
    AUTO = auto()
    NATIVE = auto()
    DOUBLE_DOUBLE = auto()
    LIMB = auto()


class LimbProfile(Enum):
    # value = fractional limbs below the radix point
    BALANCED = 4
    HIGH = 6
    EXTREME = 7
    ULTRA = 8


class ColourMode(Enum):
    NORMALIZE = "normalize"
    CYCLE = "cycle"
    FIXED = "fixed"
    DISTRIBUTION = "distribution"


class FilterMode(Enum):
    NONE = "none"
    GAUSSIAN_SOFT = "gaussianSoft"
    VIVID = "vivid"
    MONO = "mono"
    DITHER = "dither"


class BackendType(Enum):
    CPU = auto()
    GPU = auto()


class InteractionMode(Enum):
    PAN = auto()
    SELECT = auto()
