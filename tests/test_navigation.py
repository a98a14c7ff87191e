import math

import numpy as np
import pytest

from fractile.kernel_sources.cpu.band import evaluate_band
from fractile.rendering.navigation import (
    Navigation, format_location, pan, parse_location, select_rect, viewport_bounds, zoom_at
)
from fractile.utils.enums import Algorithm, Precision


@pytest.mark.parametrize("nav", [
    Navigation(-0.5, 0.0, 1.0),
    Navigation(0.25, -0.75, 3.5),
    Navigation(-1.7497591451303665, 2.5e-7, 1.0e12),
])
@pytest.mark.parametrize("size", [(800, 600), (1, 1), (37, 401)])
def test_bounds_are_ordered(nav, size):
    w, h = size
    b = viewport_bounds(nav, w, h)
    assert b.x_scale > 0 and b.y_scale > 0
    assert b.x0 < b.x0 + b.x_scale * w
    assert b.y0 < b.y0 + b.y_scale * h


def test_centre_pixel_of_default_view_is_interior():
    nav = Navigation(-0.5, 0.0, 1.0)
    b = viewport_bounds(nav, 800, 600)
    sx, sy = b.seed(400, 300)
    assert sx == pytest.approx(-0.5, abs=1e-12)
    assert sy == pytest.approx(0.0, abs=1e-12)

    out = evaluate_band(Algorithm.MANDELBROT, Precision.NATIVE,
                        (b.x0, b.x0_lo), (b.y0, b.y0_lo), b.x_scale, b.y_scale,
                        400, 300, 1, 1, 1, 256, False)
    assert out[0] == 256.0


@pytest.mark.parametrize("nav", [
    Navigation(-0.5, 0.0, 1.0),
    Navigation(-0.743643887037151, 0.13182590420533, 2.5e13),
    Navigation(1e-300, -3.141592653589793, 7.0),
])
def test_location_round_trip(nav):
    text = format_location(nav)
    back = parse_location(text)
    for a, b in ((nav.x, back.x), (nav.y, back.y), (nav.zoom, back.zoom)):
        assert float(f"{a:.15g}") == float(f"{b:.15g}")


def test_parse_accepts_exponents_and_missing_zoom():
    nav = parse_location("@-1.5e-3,+2E2x1e5")
    assert (nav.x, nav.y, nav.zoom) == (-1.5e-3, 200.0, 1e5)

    nav = parse_location("@0.1,0.2", Algorithm.JULIA)
    assert (nav.x, nav.y) == (0.1, 0.2)
    assert nav.zoom == Navigation.default(Algorithm.JULIA).zoom


@pytest.mark.parametrize("text", ["", None, "garbage", "@1,2x0", "@1,2x-3", "@a,bx1",
                                  "@0,0x1e400", "@1e400,0x2", "@0,-1e999"])
def test_malformed_location_defaults(text):
    assert parse_location(text, Algorithm.BURNING_SHIP) == Navigation.default(Algorithm.BURNING_SHIP)


def test_pan_moves_centre_against_drag():
    nav = Navigation(0.0, 0.0, 1.0)
    b = viewport_bounds(nav, 200, 100)
    moved = pan(nav, b, 10, -5)
    assert moved.x == pytest.approx(-10 * b.x_scale)
    assert moved.y == pytest.approx(5 * b.y_scale)
    assert moved.zoom == nav.zoom


def test_zoom_in_and_out():
    nav = Navigation(-0.5, 0.0, 4.0)
    b = viewport_bounds(nav, 100, 100)
    z_in = zoom_at(nav, b, 25, 75, True)
    assert z_in.zoom == 8.0
    assert (z_in.x, z_in.y) == pytest.approx(b.seed(25, 75))
    assert zoom_at(nav, b, 50, 50, False).zoom == 2.0

    floor = Navigation(0.0, 0.0, 1.0)
    assert zoom_at(floor, viewport_bounds(floor, 10, 10), 5, 5, False).zoom == 1.0


def test_select_rect_fits_rectangle():
    nav = Navigation(0.0, 0.0, 1.0)
    b = viewport_bounds(nav, 400, 300)
    out = select_rect(nav, b, (100, 100, 100, 50))
    assert out.zoom == pytest.approx(4.0)
    assert (out.x, out.y) == pytest.approx(b.seed(150, 125))

    # dragged up-left gives the same rectangle
    assert select_rect(nav, b, (200, 150, -100, -50)) == out


def test_degenerate_select_zooms_at_point():
    nav = Navigation(0.0, 0.0, 1.0)
    b = viewport_bounds(nav, 400, 300)
    assert select_rect(nav, b, (10, 20, 0, 0)) == zoom_at(nav, b, 10, 20, True)


def test_extended_origin_carries_low_part():
    nav = Navigation(-0.75 + 2.0 ** -60, 0.1, 1.0e15)
    b = viewport_bounds(nav, 100, 100)
    assert math.isfinite(b.x0_lo)
    assert np.float64(b.x0) + np.float64(b.x0_lo) == pytest.approx(nav.x - 1.0 / nav.zoom)
