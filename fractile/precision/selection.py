"""
Choosing a numeric representation for a given zoom depth.

A pixel step is resolvable when it is comfortably larger than the smallest
difference the representation can express at the coordinate magnitude in use.
"""
from dataclasses import dataclass
from typing import Tuple

from fractile.utils.enums import LimbProfile, Precision
from fractile.precision.limb import LIMB_BASE

# Steps must exceed the representation's epsilon by this factor.
HEADROOM = 8.0
_TINY = 1e-300

CPU_RELATIVE_EPS = {
    Precision.NATIVE: 2.0 ** -52,
    Precision.DOUBLE_DOUBLE: 2.0 ** -104,
}

# The GPU program runs on float32 lanes; double-double pairs two of them.
GPU_RELATIVE_EPS = {
    Precision.NATIVE: 2.0 ** -23,
    Precision.DOUBLE_DOUBLE: 2.0 ** -46,
}


def limb_epsilon(profile: LimbProfile) -> float:
    return LIMB_BASE ** -profile.value


@dataclass(frozen=True)
class PrecisionChoice:
    precision: Precision
    limit_reached: bool


def resolves(precision: Precision, step: float, magnitude: float,
             profile: LimbProfile = LimbProfile.BALANCED,
             gpu: bool = False) -> bool:
    """True when `precision` distinguishes neighbouring samples `step` apart near `magnitude`."""
    step = abs(step)
    if precision is Precision.LIMB:
        return step > limb_epsilon(profile) * HEADROOM
    table = GPU_RELATIVE_EPS if gpu else CPU_RELATIVE_EPS
    eps = table[precision]
    return step > eps * max(abs(magnitude), _TINY) * HEADROOM


# Ordered fastest first.
CANDIDATES: Tuple[Precision, ...] = (Precision.NATIVE, Precision.DOUBLE_DOUBLE, Precision.LIMB)


def choose_precision(requested: Precision, step: float, magnitude: float,
                     profile: LimbProfile = LimbProfile.BALANCED,
                     gpu: bool = False) -> PrecisionChoice:
    """
    Resolve the representation for an epoch.

    An explicit request is honoured as-is. AUTO picks the fastest candidate
    that resolves the step, or the finest one when none does. Either way the
    limit flag reports whether the chosen representation resolves the step.
    """
    if requested is not Precision.AUTO:
        ok = resolves(requested, step, magnitude, profile, gpu)
        return PrecisionChoice(requested, not ok)

    for option in CANDIDATES:
        if resolves(option, step, magnitude, profile, gpu):
            return PrecisionChoice(option, False)
    finest = _finest(CANDIDATES, step, magnitude, profile, gpu)
    return PrecisionChoice(finest, True)


def _finest(options, step, magnitude, profile, gpu) -> Precision:
    def eps(option):
        if option is Precision.LIMB:
            return limb_epsilon(profile)
        table = GPU_RELATIVE_EPS if gpu else CPU_RELATIVE_EPS
        return table[option] * max(abs(magnitude), _TINY)
    return min(options, key=eps)
