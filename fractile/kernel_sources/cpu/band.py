"""
Band kernels: evaluate a block grid over a horizontal strip of pixels.

A band of `width` x `height` pixels at (px, py) with block size `block` is
sampled at (px + i * block, py + j * block) for i < ceil(width / block) and
j < ceil(height / block). Results land in `out` row-major, one float per
sample: the escape count (optionally smoothed) or `max_iter` for interior
points.

One kernel is compiled per (algorithm, precision) pair by closing a band
template over the registered step function. Kernels release the GIL so a
pool of threads evaluates bands in parallel.
"""
import math
import threading
from typing import Callable, Dict, Tuple

import numpy as np
from numba import njit

import fractile.kernel_sources.cpu.steps  # noqa: F401  (registers step kernels)
from fractile.kernel_sources.registry import load_kernel
from fractile.kernel_sources.cpu.steps import LIMB_SCRATCH_ROWS
from fractile.precision.double_double import dd_add, two_prod
from fractile.precision.limb import LIMB_COUNT, limb_add, limb_from_float, limb_to_float
from fractile.utils.enums import Algorithm, Precision

LN2 = math.log(2.0)
BAILOUT = 4.0


@njit(cache=True, nogil=True)
def finish_sample(n, mag, max_iter, smooth):
    if n >= max_iter:
        return float(max_iter)
    if smooth and mag > 1.0:
        log_zn = math.log(mag) / 2.0
        nu = math.log(log_zn / LN2) / LN2
        return max(0.0, n + 1.0 - nu)
    return float(n)


def band_shape(width: int, height: int, block: int) -> Tuple[int, int]:
    """(rows, cols) of the block grid covering a band."""
    return -(-height // block), -(-width // block)


def _make_native_band(step):
    @njit(nogil=True)
    def band(x0_hi, x0_lo, y0_hi, y0_lo, x_scale, y_scale,
             px, py, width, height, block, max_iter, smooth,
             julia, jr, ji, fractional, out):
        cols = (width + block - 1) // block
        rows = (height + block - 1) // block
        for j in range(rows):
            sy = y0_hi + ((py + j * block) * y_scale + y0_lo)
            for i in range(cols):
                sx = x0_hi + ((px + i * block) * x_scale + x0_lo)
                if julia:
                    zr, zi, cr, ci = sx, sy, jr, ji
                else:
                    zr, zi, cr, ci = 0.0, 0.0, sx, sy
                n = 0
                mag = zr * zr + zi * zi
                while mag <= BAILOUT and n < max_iter:
                    zr, zi = step(zr, zi, cr, ci)
                    n += 1
                    mag = zr * zr + zi * zi
                out[j * cols + i] = finish_sample(n, mag, max_iter, smooth)
    return band


def _make_dd_band(step):
    @njit(nogil=True)
    def band(x0_hi, x0_lo, y0_hi, y0_lo, x_scale, y_scale,
             px, py, width, height, block, max_iter, smooth,
             julia, jr, ji, fractional, out):
        cols = (width + block - 1) // block
        rows = (height + block - 1) // block
        x0 = (x0_hi, x0_lo)
        y0 = (y0_hi, y0_lo)
        zero = (0.0, 0.0)
        for j in range(rows):
            sy = dd_add(y0, two_prod(float(py + j * block), y_scale))
            for i in range(cols):
                sx = dd_add(x0, two_prod(float(px + i * block), x_scale))
                if julia:
                    zr, zi, cr, ci = sx, sy, (jr, 0.0), (ji, 0.0)
                else:
                    zr, zi, cr, ci = zero, zero, sx, sy
                n = 0
                mag = zr[0] * zr[0] + zi[0] * zi[0]
                while mag <= BAILOUT and n < max_iter:
                    zr, zi = step(zr, zi, cr, ci)
                    n += 1
                    mag = zr[0] * zr[0] + zi[0] * zi[0]
                out[j * cols + i] = finish_sample(n, mag, max_iter, smooth)
    return band


def _make_limb_band(step):
    @njit(nogil=True)
    def band(x0_hi, x0_lo, y0_hi, y0_lo, x_scale, y_scale,
             px, py, width, height, block, max_iter, smooth,
             julia, jr, ji, fractional, out):
        cols = (width + block - 1) // block
        rows = (height + block - 1) // block
        f = fractional
        x0 = np.zeros(LIMB_COUNT)
        y0 = np.zeros(LIMB_COUNT)
        t = np.zeros(LIMB_COUNT)
        sx = np.zeros(LIMB_COUNT)
        sy = np.zeros(LIMB_COUNT)
        zr = np.zeros(LIMB_COUNT)
        zi = np.zeros(LIMB_COUNT)
        cr = np.zeros(LIMB_COUNT)
        ci = np.zeros(LIMB_COUNT)
        jcr = np.zeros(LIMB_COUNT)
        jci = np.zeros(LIMB_COUNT)
        s = np.zeros((LIMB_SCRATCH_ROWS, LIMB_COUNT))

        limb_from_float(x0_hi, f, x0)
        limb_from_float(x0_lo, f, t)
        limb_add(x0, t, x0)
        limb_from_float(y0_hi, f, y0)
        limb_from_float(y0_lo, f, t)
        limb_add(y0, t, y0)
        limb_from_float(jr, f, jcr)
        limb_from_float(ji, f, jci)

        for j in range(rows):
            limb_from_float((py + j * block) * y_scale, f, t)
            limb_add(y0, t, sy)
            for i in range(cols):
                limb_from_float((px + i * block) * x_scale, f, t)
                limb_add(x0, t, sx)
                for k in range(LIMB_COUNT):
                    if julia:
                        zr[k] = sx[k]
                        zi[k] = sy[k]
                        cr[k] = jcr[k]
                        ci[k] = jci[k]
                    else:
                        zr[k] = 0.0
                        zi[k] = 0.0
                        cr[k] = sx[k]
                        ci[k] = sy[k]
                n = 0
                fr = limb_to_float(zr, f)
                fi = limb_to_float(zi, f)
                mag = fr * fr + fi * fi
                while mag <= BAILOUT and n < max_iter:
                    step(zr, zi, cr, ci, f, s)
                    n += 1
                    fr = limb_to_float(zr, f)
                    fi = limb_to_float(zi, f)
                    mag = fr * fr + fi * fi
                out[j * cols + i] = finish_sample(n, mag, max_iter, smooth)
    return band


_FACTORIES: Dict[Precision, Callable] = {
    Precision.NATIVE: _make_native_band,
    Precision.DOUBLE_DOUBLE: _make_dd_band,
    Precision.LIMB: _make_limb_band,
}

_BANDS: Dict[Tuple[Algorithm, Precision], Callable] = {}
_BANDS_LOCK = threading.Lock()


def band_kernel(algorithm: Algorithm, precision: Precision) -> Callable:
    """Return the compiled band kernel for a closed (algorithm, precision) pair."""
    if precision is Precision.AUTO:
        raise ValueError("AUTO must be resolved to a concrete precision before dispatch")
    key = (algorithm, precision)
    with _BANDS_LOCK:
        kernel = _BANDS.get(key)
        if kernel is None:
            meta = load_kernel("CPU", algorithm, "step", precision.name)
            kernel = _FACTORIES[precision](meta["func"])
            _BANDS[key] = kernel
    return kernel


def evaluate_band(algorithm: Algorithm, precision: Precision,
                  x0: Tuple[float, float], y0: Tuple[float, float],
                  x_scale: float, y_scale: float,
                  px: int, py: int, width: int, height: int, block: int,
                  max_iter: int, smooth: bool,
                  julia_c: Tuple[float, float] = (0.0, 0.0),
                  fractional: int = 4) -> np.ndarray:
    """
    Evaluate one band and return its flat sample array.
    `x0` and `y0` are (hi, lo) splits of the viewport origin.
    """
    rows, cols = band_shape(width, height, block)
    out = np.empty(rows * cols, dtype=np.float64)
    kernel = band_kernel(algorithm, precision)
    kernel(float(x0[0]), float(x0[1]), float(y0[0]), float(y0[1]),
           float(x_scale), float(y_scale),
           int(px), int(py), int(width), int(height), int(block),
           int(max_iter), bool(smooth),
           algorithm is Algorithm.JULIA, float(julia_c[0]), float(julia_c[1]),
           int(fractional), out)
    return out
