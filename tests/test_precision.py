import numpy as np
import pytest
from mpmath import mp, mpf

from fractile.precision.double_double import (
    dd_add, dd_from_float, dd_mul, dd_sub, dd_to_float, two_prod, two_sum
)
from fractile.precision.limb import (
    LIMB_BASE, LIMB_COUNT, LIMB_HALF, limb_abs, limb_add, limb_from_float, limb_is_negative,
    limb_mul, limb_mul_scalar, limb_sub, limb_to_float, limb_zeros
)
from fractile.precision.selection import choose_precision, limb_epsilon, resolves
from fractile.utils.enums import LimbProfile, Precision

mp.dps = 60
rng = np.random.default_rng(1234)


def to_dd(x):
    hi = float(x)
    return hi, float(x - mpf(hi))


def dd_value(a):
    return mpf(a[0]) + mpf(a[1])


def limb_value(a, fractional):
    return sum(mpf(int(v)) * mpf(LIMB_BASE) ** (i - fractional) for i, v in enumerate(a))


def limb_of(value, fractional):
    out = limb_zeros()
    limb_from_float(value, fractional, out)
    return out


def grid_value():
    """A random float in (-1, 1) on the 2**-40 grid, which every profile represents exactly."""
    return int(rng.integers(-2 ** 40, 2 ** 40)) / 2.0 ** 40


def assert_normalized(a):
    assert a.shape == (LIMB_COUNT,)
    assert (a >= -LIMB_HALF).all() and (a < LIMB_HALF).all()
    assert (a == np.round(a)).all()


# ---- double-double ----

@pytest.mark.parametrize("a,b", [(1.0, 1e-20), (0.1, 0.2), (-3.5e10, 7.25e-7), (1e300, -1e284)])
def test_two_sum_is_exact(a, b):
    s, e = two_sum(a, b)
    assert mpf(s) + mpf(e) == mpf(a) + mpf(b)


@pytest.mark.parametrize("a,b", [(0.1, 0.3), (1.0 + 2 ** -30, 1.0 - 2 ** -29), (-7.3e5, 3.1e-4)])
def test_two_prod_is_exact(a, b):
    p, e = two_prod(a, b)
    assert mpf(p) + mpf(e) == mpf(a) * mpf(b)


def test_dd_arithmetic_matches_mpmath():
    for _ in range(200):
        x = mpf(rng.uniform(-2, 2)) + mpf(rng.uniform(-1, 1)) * mpf(2) ** -60
        y = mpf(rng.uniform(-2, 2)) + mpf(rng.uniform(-1, 1)) * mpf(2) ** -60
        a, b = to_dd(x), to_dd(y)
        tol = mpf(2) ** -100
        assert abs(dd_value(dd_add(a, b)) - (x + y)) <= tol * max(1, abs(x) + abs(y))
        assert abs(dd_value(dd_sub(a, b)) - (x - y)) <= tol * max(1, abs(x) + abs(y))
        assert abs(dd_value(dd_mul(a, b)) - (x * y)) <= tol * max(1, abs(x * y))



def test_dd_float_conversions():
    assert dd_from_float(1.25) == (1.25, 0.0)
    small = 2.0 ** -70
    assert dd_to_float(dd_add(dd_from_float(1.0), dd_from_float(small))) == 1.0
    assert dd_to_float(dd_sub(dd_from_float(3.0), dd_from_float(0.5))) == 2.5


# ---- limbs ----

@pytest.mark.parametrize("profile", list(LimbProfile))
@pytest.mark.parametrize("value", [0.0, 1.0, -1.0, 0.5, -1.75, 3.141592653589793, -2.0 ** -20, 511.999])
def test_limb_round_trip(profile, value):
    f = profile.value
    a = limb_of(value, f)
    assert_normalized(a)
    assert abs(limb_value(a, f) - mpf(value)) <= mpf(LIMB_BASE) ** -f / 2
    assert limb_to_float(a, f) == pytest.approx(value, abs=limb_epsilon(profile))


@pytest.mark.parametrize("profile", [LimbProfile.BALANCED, LimbProfile.ULTRA])
def test_limb_add_sub_are_exact_on_grid(profile):
    f = profile.value
    for _ in range(100):
        x, y = grid_value(), grid_value()
        a, b = limb_of(x, f), limb_of(y, f)
        out = limb_zeros()
        limb_add(a, b, out)
        assert_normalized(out)
        assert limb_value(out, f) == mpf(x) + mpf(y)
        limb_sub(a, b, out)
        assert_normalized(out)
        assert limb_value(out, f) == mpf(x) - mpf(y)
        limb_mul_scalar(a, -3.0, out)
        assert limb_value(out, f) == mpf(x) * -3


@pytest.mark.parametrize("profile", list(LimbProfile))
def test_limb_mul_is_within_one_unit(profile):
    f = profile.value
    unit = mpf(LIMB_BASE) ** -f
    for _ in range(100):
        x, y = grid_value(), grid_value()
        out = limb_zeros()
        limb_mul(limb_of(x, f), limb_of(y, f), f, out)
        assert_normalized(out)
        assert abs(limb_value(out, f) - mpf(x) * mpf(y)) <= unit


def test_limb_sign_and_abs():
    f = 4
    neg = limb_of(-0.3, f)
    pos = limb_of(0.3, f)
    assert limb_is_negative(neg)
    assert not limb_is_negative(pos)
    assert not limb_is_negative(limb_zeros())
    out = limb_zeros()
    limb_abs(neg, out)
    assert (out == pos).all()


# ---- selection ----

def test_auto_prefers_native_at_shallow_zoom():
    choice = choose_precision(Precision.AUTO, 1e-3, 2.0)
    assert choice.precision is Precision.NATIVE
    assert not choice.limit_reached


def test_auto_moves_to_double_double():
    choice = choose_precision(Precision.AUTO, 1e-18, 1.5)
    assert choice.precision is Precision.DOUBLE_DOUBLE
    assert not choice.limit_reached


def test_auto_flags_limit_and_keeps_finest():
    choice = choose_precision(Precision.AUTO, 1e-40, 1.5)
    assert choice.precision is Precision.DOUBLE_DOUBLE
    assert choice.limit_reached


def test_gpu_uses_limbs_past_double_float():
    choice = choose_precision(Precision.AUTO, 1e-20, 1.0, LimbProfile.ULTRA, gpu=True)
    assert choice.precision is Precision.LIMB
    assert not choice.limit_reached

    shallow = choose_precision(Precision.AUTO, 1e-10, 1.0, LimbProfile.BALANCED, gpu=True)
    assert shallow.precision is Precision.DOUBLE_DOUBLE


def test_explicit_request_is_honoured_with_flag():
    choice = choose_precision(Precision.NATIVE, 1e-18, 1.0)
    assert choice.precision is Precision.NATIVE
    assert choice.limit_reached
    assert not resolves(Precision.LIMB, 1e-13, 1.0, LimbProfile.BALANCED)
    assert resolves(Precision.LIMB, 1e-13, 1.0, LimbProfile.HIGH)
