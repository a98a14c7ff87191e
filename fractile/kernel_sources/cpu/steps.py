"""
One iteration of z -> f(z) + c for every algorithm and numeric representation.

Native steps take and return plain floats. Double-double steps take and
return (hi, lo) pairs. Limb steps update `zr` and `zi` in place and use the
rows of `s` as scratch space.
"""
from numba import njit

from fractile.kernel_sources.registry import register_kernel
from fractile.precision.double_double import dd_abs, dd_add, dd_mul, dd_mul_float, dd_sub
from fractile.precision.limb import (
    limb_abs, limb_add, limb_mul, limb_mul_scalar, limb_sub
)
from fractile.utils.enums import Algorithm, Precision

LIMB_SCRATCH_ROWS = 8


# ---- float64 ----

@njit(cache=True, nogil=True)
def quadratic_native(zr, zi, cr, ci):
    return zr * zr - zi * zi + cr, 2.0 * zr * zi + ci


@njit(cache=True, nogil=True)
def burning_ship_native(zr, zi, cr, ci):
    ar = abs(zr)
    ai = abs(zi)
    return ar * ar - ai * ai + cr, 2.0 * ar * ai + ci


@njit(cache=True, nogil=True)
def tricorn_native(zr, zi, cr, ci):
    return zr * zr - zi * zi + cr, -2.0 * zr * zi + ci


@njit(cache=True, nogil=True)
def multibrot3_native(zr, zi, cr, ci):
    zr2 = zr * zr
    zi2 = zi * zi
    return zr * (zr2 - 3.0 * zi2) + cr, zi * (3.0 * zr2 - zi2) + ci


# ---- double-double ----

@njit(cache=True, nogil=True)
def quadratic_dd(zr, zi, cr, ci):
    re = dd_add(dd_sub(dd_mul(zr, zr), dd_mul(zi, zi)), cr)
    im = dd_add(dd_mul_float(dd_mul(zr, zi), 2.0), ci)
    return re, im


@njit(cache=True, nogil=True)
def burning_ship_dd(zr, zi, cr, ci):
    return quadratic_dd(dd_abs(zr), dd_abs(zi), cr, ci)


@njit(cache=True, nogil=True)
def tricorn_dd(zr, zi, cr, ci):
    re = dd_add(dd_sub(dd_mul(zr, zr), dd_mul(zi, zi)), cr)
    im = dd_add(dd_mul_float(dd_mul(zr, zi), -2.0), ci)
    return re, im


@njit(cache=True, nogil=True)
def multibrot3_dd(zr, zi, cr, ci):
    zr2 = dd_mul(zr, zr)
    zi2 = dd_mul(zi, zi)
    re = dd_add(dd_mul(zr, dd_sub(zr2, dd_mul_float(zi2, 3.0))), cr)
    im = dd_add(dd_mul(zi, dd_sub(dd_mul_float(zr2, 3.0), zi2)), ci)
    return re, im


# ---- limbs ----

@njit(cache=True, nogil=True)
def _quadratic_limb(zr, zi, cr, ci, fractional, s, sign):
    limb_mul(zr, zr, fractional, s[0])
    limb_mul(zi, zi, fractional, s[1])
    limb_mul(zr, zi, fractional, s[2])
    limb_sub(s[0], s[1], s[3])
    limb_add(s[3], cr, zr)
    limb_mul_scalar(s[2], 2.0 * sign, s[4])
    limb_add(s[4], ci, zi)


@njit(cache=True, nogil=True)
def quadratic_limb(zr, zi, cr, ci, fractional, s):
    _quadratic_limb(zr, zi, cr, ci, fractional, s, 1.0)


@njit(cache=True, nogil=True)
def burning_ship_limb(zr, zi, cr, ci, fractional, s):
    limb_abs(zr, zr)
    limb_abs(zi, zi)
    _quadratic_limb(zr, zi, cr, ci, fractional, s, 1.0)


@njit(cache=True, nogil=True)
def tricorn_limb(zr, zi, cr, ci, fractional, s):
    _quadratic_limb(zr, zi, cr, ci, fractional, s, -1.0)


@njit(cache=True, nogil=True)
def multibrot3_limb(zr, zi, cr, ci, fractional, s):
    limb_mul(zr, zr, fractional, s[0])
    limb_mul(zi, zi, fractional, s[1])
    # re: zr * (zr^2 - 3 zi^2)
    limb_mul_scalar(s[1], 3.0, s[4])
    limb_sub(s[0], s[4], s[3])
    limb_mul(zr, s[3], fractional, s[5])
    # im: zi * (3 zr^2 - zi^2)
    limb_mul_scalar(s[0], 3.0, s[4])
    limb_sub(s[4], s[1], s[6])
    limb_mul(zi, s[6], fractional, s[7])
    limb_add(s[5], cr, zr)
    limb_add(s[7], ci, zi)


_STEPS = {
    Precision.NATIVE: {
        Algorithm.MANDELBROT: quadratic_native,
        Algorithm.JULIA: quadratic_native,
        Algorithm.BURNING_SHIP: burning_ship_native,
        Algorithm.TRICORN: tricorn_native,
        Algorithm.MULTIBROT_3: multibrot3_native,
    },
    Precision.DOUBLE_DOUBLE: {
        Algorithm.MANDELBROT: quadratic_dd,
        Algorithm.JULIA: quadratic_dd,
        Algorithm.BURNING_SHIP: burning_ship_dd,
        Algorithm.TRICORN: tricorn_dd,
        Algorithm.MULTIBROT_3: multibrot3_dd,
    },
    Precision.LIMB: {
        Algorithm.MANDELBROT: quadratic_limb,
        Algorithm.JULIA: quadratic_limb,
        Algorithm.BURNING_SHIP: burning_ship_limb,
        Algorithm.TRICORN: tricorn_limb,
        Algorithm.MULTIBROT_3: multibrot3_limb,
    },
}

for _precision, _table in _STEPS.items():
    for _algorithm, _func in _table.items():
        register_kernel("CPU", _algorithm, "step", _precision.name, func=_func)
