import numpy as np
import pytest

from fractile.fractals.base import MIN_TILE_SIZE, RenderSettings
from fractile.fractals.catalog import DEFAULT_VIEWS, default_view, normalise_algorithm
from fractile.rendering.surface import PixelSurface, expand_blocks, shift_array
from fractile.utils.enums import (
    Algorithm, BackendType, ColourMode, FilterMode, LimbProfile, Precision
)


def test_sanitize_clamps_out_of_range_values():
    s = RenderSettings(tile_size=3, max_iterations=-5, refinement_steps=40, final_block_size=3,
                       colour_period=0, gaussian_blur=99, dither_strength=-1,
                       palette_smoothness=2, hue_rotate=-90, worker_count=0).sanitized()
    assert s.tile_size == MIN_TILE_SIZE
    assert s.max_iterations == 1
    assert s.refinement_steps == 9
    assert s.final_block_size == 1
    assert s.colour_period == 1.0
    assert s.gaussian_blur == 10.0
    assert s.dither_strength == 0.0
    assert s.palette_smoothness == 1.0
    assert s.hue_rotate == 270.0
    assert s.worker_count == 1


def test_sanitize_keeps_valid_values():
    s = RenderSettings(tile_size=128, final_block_size=4, worker_count=None)
    assert s.sanitized() == s


def test_sanitize_converts_enum_names_and_values():
    s = RenderSettings(algorithm="burning_ship", precision="double_double", colour_mode="cycle",
                       filter_mode="gaussianSoft", backend="gpu", limb_profile=6).sanitized()
    assert s.algorithm is Algorithm.BURNING_SHIP
    assert s.precision is Precision.DOUBLE_DOUBLE
    assert s.colour_mode is ColourMode.CYCLE
    assert s.filter_mode is FilterMode.GAUSSIAN_SOFT
    assert s.backend is BackendType.GPU
    assert s.limb_profile is LimbProfile.HIGH


def test_sanitize_unknown_enum_names_fall_back():
    s = RenderSettings(algorithm="nope", precision="quad", colour_mode=None,
                       filter_mode="sepia", backend=7, limb_profile="huge").sanitized()
    assert s.algorithm is Algorithm.MANDELBROT
    assert s.precision is Precision.AUTO
    assert s.colour_mode is ColourMode.NORMALIZE
    assert s.filter_mode is FilterMode.NONE
    assert s.backend is BackendType.CPU
    assert s.limb_profile is LimbProfile.BALANCED


@pytest.mark.parametrize("zoom,expected", [(0.5, 256), (1.0, 256), (2.0, 384), (1024.0, 256 + 1280)])
def test_auto_iterations(zoom, expected):
    s = RenderSettings(max_iterations=256, auto_max_iterations=True, auto_iterations_scale=128)
    assert s.effective_max_iterations(zoom) == expected
    assert RenderSettings(max_iterations=256).effective_max_iterations(zoom) == 256


@pytest.mark.parametrize("name,expected", [
    ("Mandelbrot", Algorithm.MANDELBROT),
    ("burning_ship", Algorithm.BURNING_SHIP),
    ("Burning Ship", Algorithm.BURNING_SHIP),
    ("mandelbar", Algorithm.TRICORN),
    ("multibrot3", Algorithm.MULTIBROT_3),
    ("", Algorithm.MANDELBROT),
    ("unknown", Algorithm.MANDELBROT),
    (Algorithm.JULIA, Algorithm.JULIA),
])
def test_algorithm_aliases(name, expected):
    assert normalise_algorithm(name) is expected


def test_every_algorithm_has_a_view():
    assert set(DEFAULT_VIEWS) == set(Algorithm)
    assert default_view(Algorithm.MANDELBROT) == (-0.5, 0.0, 1.0)


# ---- surface ----

def test_expand_blocks_clips_edges():
    values = np.arange(6, dtype=np.float64)
    out = expand_blocks(values, 5, 3, 2)
    assert out.shape == (3, 5)
    assert out[0, 0] == 0 and out[0, 4] == 2 and out[2, 0] == 3 and out[2, 4] == 5


def test_shift_array_fills_exposed():
    a = np.arange(12, dtype=np.float32).reshape(3, 4)
    out = shift_array(a, 1, -1, -1)
    assert out[0, 0] == -1 and out[2, 2] == -1
    assert out[0, 1] == a[1, 0]
    assert (shift_array(a, 4, 0, 0) == 0).all()


def test_surface_write_band_clips_to_canvas():
    surface = PixelSurface(10, 6)
    seen = []

    def colourise(values, origin):
        seen.append(origin)
        return np.full(values.shape + (3,), 7, dtype=np.uint8)

    vals, rgb = surface.write_band(8, 4, 4, 4, 2, np.array([1.0, 2.0, 3.0, 4.0]), colourise)
    assert vals.shape == (2, 2)
    assert seen == [(8, 4)]
    assert (surface.rgb[4:, 8:] == 7).all()
    assert surface.values[4, 8] == 1.0
    assert np.isnan(surface.values[0, 0])

    surface.shift(-8, 0)
    assert surface.values[4, 0] == 1.0
    assert np.isnan(surface.values[4, 8])


def test_surface_write_frame_forgets_values():
    surface = PixelSurface(4, 3)
    surface.values[...] = 5.0
    frame = np.full((3, 4, 3), 9, dtype=np.uint8)
    surface.write_frame(frame)
    assert (surface.rgb == 9).all()
    assert np.isnan(surface.values).all()
