"""
Double-double arithmetic on (hi, lo) float64 pairs.

The value of a pair is hi + lo with |lo| <= ulp(hi) / 2. All operations are
error-free transformations, so they must not be compiled with fastmath.
"""
from numba import njit

# Dekker split constant for a 53-bit mantissa: 2**27 + 1
SPLITTER = 134217729.0


@njit(cache=True, nogil=True)
def two_sum(a, b):
    s = a + b
    bb = s - a
    err = (a - (s - bb)) + (b - bb)
    return s, err


@njit(cache=True, nogil=True)
def quick_two_sum(a, b):
    s = a + b
    err = b - (s - a)
    return s, err


@njit(cache=True, nogil=True)
def split(a):
    t = SPLITTER * a
    hi = t - (t - a)
    return hi, a - hi


@njit(cache=True, nogil=True)
def two_prod(a, b):
    p = a * b
    ah, al = split(a)
    bh, bl = split(b)
    err = ((ah * bh - p) + ah * bl + al * bh) + al * bl
    return p, err


@njit(cache=True, nogil=True)
def dd_from_float(a):
    return a, 0.0


@njit(cache=True, nogil=True)
def dd_to_float(a):
    return a[0] + a[1]


@njit(cache=True, nogil=True)
def dd_add(a, b):
    s, e = two_sum(a[0], b[0])
    t, f = two_sum(a[1], b[1])
    e += t
    s, e = quick_two_sum(s, e)
    e += f
    return quick_two_sum(s, e)


@njit(cache=True, nogil=True)
def dd_neg(a):
    return -a[0], -a[1]


@njit(cache=True, nogil=True)
def dd_sub(a, b):
    return dd_add(a, dd_neg(b))


@njit(cache=True, nogil=True)
def dd_mul(a, b):
    p, e = two_prod(a[0], b[0])
    e += a[0] * b[1] + a[1] * b[0]
    return quick_two_sum(p, e)


@njit(cache=True, nogil=True)
def dd_mul_float(a, b):
    p, e = two_prod(a[0], b)
    e += a[1] * b
    return quick_two_sum(p, e)


@njit(cache=True, nogil=True)
def dd_abs(a):
    if a[0] < 0.0 or (a[0] == 0.0 and a[1] < 0.0):
        return -a[0], -a[1]
    return a[0], a[1]
