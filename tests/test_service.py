import logging

import numpy as np
import pytest

from fractile.api.render_api import RenderAPI
from fractile.backend.be_cpu import CpuBackend
from fractile.backend.manager import BackendManager, BackendSpec
from fractile.errors import BackendUnavailable
from fractile.fractals.base import RenderSettings
from fractile.rendering.service import RenderService
from fractile.utils.enums import Algorithm, BackendType, ColourMode, FilterMode, InteractionMode

TIMEOUT = 180.0


def no_gpu():
    raise BackendUnavailable("no OpenCL platform")


def cpu_only():
    return BackendManager({
        BackendType.CPU: BackendSpec(CpuBackend, takes_workers=True),
        BackendType.GPU: BackendSpec(no_gpu, takes_workers=False),
    })


def small_settings(**kw):
    base = dict(tile_size=32, max_iterations=64, refinement_steps=3, worker_count=2)
    base.update(kw)
    return RenderSettings(**base)


@pytest.fixture
def service():
    svc = RenderService(80, 48, small_settings(), backends=cpu_only())
    yield svc
    svc.shutdown()


def test_render_completes_and_fills_surface(service):
    frames = []
    service.on_frame = frames.append
    epoch = service.start()
    assert service.status.rendering
    assert service.wait_idle(TIMEOUT)

    status = service.status
    assert not status.rendering
    assert status.epoch == epoch
    assert status.last_render_ms is not None
    assert status.precision == "native"
    assert status.pending_bands == 0
    assert np.isfinite(service.surface.values).all()
    assert service.frame().shape == (48, 80, 3)
    assert [f.seq for f in frames] == [epoch]
    # default view: centre is interior, left edge is exterior
    assert (service.frame()[24, 40] == 0).all()
    assert service.frame()[24, 0].any()


def test_restart_discards_previous_epoch(service):
    tiles = []
    service.on_tile = tiles.append
    first = service.start()
    second = service.start()
    assert second == first + 1
    assert service.wait_idle(TIMEOUT)
    assert tiles and {t.seq for t in tiles} == {second}


def test_pan_reuses_and_completes(service):
    service.start()
    assert service.wait_idle(TIMEOUT)
    before = service.nav
    service.pan(10, -6)
    assert service.nav != before
    assert service.wait_idle(TIMEOUT)
    assert np.isfinite(service.surface.values).all()
    service.pan(-10, 6)
    assert service.wait_idle(TIMEOUT)
    assert service.nav.x == pytest.approx(before.x, abs=1e-12)
    assert service.nav.y == pytest.approx(before.y, abs=1e-12)


def test_select_mode_turns_drag_into_zoom(service):
    service.set_interaction_mode(InteractionMode.SELECT)
    service.drag_finished((20, 12), (60, 36))
    assert service.nav.zoom == pytest.approx(2.0)
    service.set_interaction_mode(InteractionMode.PAN)
    zoom = service.nav.zoom
    service.drag_finished((20, 12), (30, 12))
    assert service.nav.zoom == zoom
    assert service.wait_idle(TIMEOUT)


def test_distribution_mode_recolours_on_completion(service):
    service.update_settings(colour_mode=ColourMode.DISTRIBUTION)
    assert service.wait_idle(TIMEOUT)
    rgb = service.frame()
    exterior = rgb.reshape(-1, 3).any(axis=1)
    assert exterior.any()
    assert len(np.unique(rgb.reshape(-1, 3), axis=0)) > 2


def test_filters_apply_to_frame_only(service):
    service.update_settings(filter_mode=FilterMode.MONO)
    assert service.wait_idle(TIMEOUT)
    frame = service.frame()
    assert (frame[..., 0] == frame[..., 1]).all()
    assert not (service.surface.rgb[..., 0] == service.surface.rgb[..., 2]).all()


def test_gpu_request_without_device_falls_back(service):
    logs = []
    service.on_log = logs.append
    service.update_settings(backend=BackendType.GPU)
    status = service.status
    assert "CPU fallback" in status.backend_label
    assert any(e.level == logging.WARNING for e in logs)
    assert service.wait_idle(TIMEOUT)


def test_fallback_warning_is_logged_once(service):
    logs = []
    service.on_log = logs.append
    service.update_settings(backend=BackendType.GPU)
    service.pan(8, 0)
    service.zoom_at(20, 20)
    warnings = [e for e in logs if e.level == logging.WARNING]
    assert len(warnings) == 1
    assert "CPU fallback" in warnings[0].message
    assert service.wait_idle(TIMEOUT)


def test_algorithm_switch_resets_view(service):
    service.zoom_at(10, 10)
    service.update_settings(algorithm=Algorithm.JULIA)
    assert service.location.endswith("x1.4")
    assert service.wait_idle(TIMEOUT)


def test_auto_iterations_reported(service):
    service.update_settings(auto_max_iterations=True, auto_iterations_scale=16)
    service.set_location("@-0.5,0x16")
    assert service.status.effective_max_iterations == 64 + 64
    assert service.wait_idle(TIMEOUT)


def test_api_builder_applies_once():
    svc = RenderService(64, 32, small_settings(), backends=cpu_only())
    api = RenderAPI(svc)
    try:
        api.configure().max_iter(40).tiles(64).colour(ColourMode.CYCLE, 32).palette("ember").apply()
        assert svc.settings.max_iterations == 40
        assert svc.settings.tile_size == 64
        assert svc.settings.colour_mode is ColourMode.CYCLE
        assert api.status().epoch == 1
        assert svc.wait_idle(TIMEOUT)
        assert api.frame().shape == (32, 64, 3)
    finally:
        api.shutdown()


def test_warm_up_compiles_and_logs(service):
    logs = []
    service.on_log = logs.append
    elapsed = service.warm_up()
    assert elapsed >= 0.0
    assert any("Kernels ready" in e.message for e in logs)
    assert not service.status.rendering


def test_render_blocking_returns_finished_frame(service):
    frame = service.render_blocking(TIMEOUT)
    assert frame.shape == (48, 80, 3)
    assert not service.status.rendering
    assert (frame[24, 40] == 0).all()


def test_string_enum_settings_render():
    svc = RenderService(40, 24, small_settings(precision="double_double", colour_mode="cycle",
                                               backend="gpu"), backends=cpu_only())
    try:
        assert svc.settings.precision.name == "DOUBLE_DOUBLE"
        assert svc.settings.colour_mode is ColourMode.CYCLE
        svc.start()
        assert svc.wait_idle(TIMEOUT)
        assert svc.status.precision == "double_double"
        assert svc.status.backend_label.startswith("CPU fallback")
    finally:
        svc.shutdown()
