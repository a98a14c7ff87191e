"""
Fixed-point numbers stored as LIMB_COUNT base-1024 digits held in float64.

Index 0 is the least significant limb. With `fractional` limbs below the
radix point the value is sum(limb[i] * 1024 ** (i - fractional)). After
normalization every limb lies in [-512, 512); the carry out of the top limb
is dropped. Every product of two limbs and every convolution sum stays far
below 2**53, so the float64 storage is exact.

Hot-path functions write into caller-provided arrays to avoid allocation
inside iteration loops. `limb_mul` must not alias its output with an input.
"""
import math

import numpy as np
from numba import njit

LIMB_BASE = 1024.0
LIMB_HALF = 512.0
LIMB_COUNT = 12


def limb_zeros() -> np.ndarray:
    return np.zeros(LIMB_COUNT, dtype=np.float64)


@njit(cache=True, nogil=True)
def limb_normalize(a):
    n = a.shape[0]
    for i in range(n):
        carry = math.floor((a[i] + LIMB_HALF) / LIMB_BASE)
        a[i] -= carry * LIMB_BASE
        if i + 1 < n:
            a[i + 1] += carry


@njit(cache=True, nogil=True)
def limb_from_float(value, fractional, out):
    scaled = value * LIMB_BASE ** fractional
    sign = 1.0
    if scaled < 0.0:
        sign = -1.0
    mag = math.floor(abs(scaled) + 0.5)
    for i in range(out.shape[0]):
        digit = mag % LIMB_BASE
        out[i] = sign * digit
        mag = math.floor(mag / LIMB_BASE)
    limb_normalize(out)


@njit(cache=True, nogil=True)
def limb_to_float(a, fractional):
    acc = 0.0
    for i in range(a.shape[0] - 1, -1, -1):
        acc = acc * LIMB_BASE + a[i]
    return acc / LIMB_BASE ** fractional


@njit(cache=True, nogil=True)
def limb_is_negative(a):
    for i in range(a.shape[0] - 1, -1, -1):
        if a[i] != 0.0:
            return a[i] < 0.0
    return False


@njit(cache=True, nogil=True)
def limb_add(a, b, out):
    for i in range(a.shape[0]):
        out[i] = a[i] + b[i]
    limb_normalize(out)


@njit(cache=True, nogil=True)
def limb_sub(a, b, out):
    for i in range(a.shape[0]):
        out[i] = a[i] - b[i]
    limb_normalize(out)


@njit(cache=True, nogil=True)
def limb_mul_scalar(a, s, out):
    for i in range(a.shape[0]):
        out[i] = a[i] * s
    limb_normalize(out)


@njit(cache=True, nogil=True)
def limb_abs(a, out):
    if limb_is_negative(a):
        for i in range(a.shape[0]):
            out[i] = -a[i]
    else:
        for i in range(a.shape[0]):
            out[i] = a[i]


@njit(cache=True, nogil=True)
def limb_mul(a, b, fractional, out):
    n = a.shape[0]
    # the two columns just below the kept range become a rounded carry
    guard = 0.0
    for target in range(max(0, fractional - 2), fractional):
        acc = 0.0
        for i in range(0, target + 1):
            acc += a[i] * b[target - i]
        guard = guard / LIMB_BASE + acc
    carry = math.floor(guard / LIMB_BASE + 0.5)
    for k in range(n):
        target = fractional + k
        acc = 0.0
        lo = max(0, target - (n - 1))
        hi = min(n - 1, target)
        for i in range(lo, hi + 1):
            acc += a[i] * b[target - i]
        out[k] = acc
    out[0] += carry
    limb_normalize(out)
